"""Models for tunnel ingress rules."""

from __future__ import annotations

from pydantic import BaseModel, Field

__all__ = ["IngressPlan", "IngressRule"]


class IngressRule(BaseModel):
    """One entry of a cloudflared ``ingress`` list."""

    hostname: str | None = Field(
        None,
        title="Public hostname",
        description="Absent for the catch-all rule.",
        examples=["staging.example.com"],
    )

    service: str = Field(
        ...,
        title="Local service",
        examples=["http://localhost:8080/", "http_status:404"],
    )


class IngressPlan(BaseModel):
    """Ingress rules generated for one profile."""

    rules: list[IngressRule] = Field(
        ...,
        title="Rules",
        description="Ends with the catch-all rule.",
    )

    @property
    def hostnames(self) -> list[str]:
        return [r.hostname for r in self.rules if r.hostname]

    def to_yaml_data(self) -> list[dict[str, str]]:
        return [r.model_dump(exclude_none=True) for r in self.rules]
