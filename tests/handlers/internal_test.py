"""Tests for the internal routes."""

from __future__ import annotations

from importlib.metadata import metadata, version

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_get_health(client: AsyncClient) -> None:
    r = await client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["name"] == "pushdeploy"
    assert data["version"] == version("pushdeploy")
    assert data["description"] == metadata("pushdeploy")["Summary"]


@pytest.mark.asyncio
async def test_get_deploys(client: AsyncClient) -> None:
    r = await client.get("/deploys")
    assert r.status_code == 200
    assert r.json() == []
