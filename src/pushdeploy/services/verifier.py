"""Authentication of GitHub webhook deliveries."""

from __future__ import annotations

import hashlib
import hmac
import re

from ..constants import SIGNATURE_PREFIX

__all__ = ["verify_signature"]

_DIGEST_PATTERN = re.compile("[0-9a-fA-F]{64}")


def verify_signature(
    secret: str | None, body: bytes, signature: str | None
) -> bool:
    """Check the ``X-Hub-Signature-256`` header of a webhook delivery.

    The header value must be the prefix followed by exactly 64 hex digits.
    The comparison is done on the decoded digest bytes, so both sides of
    `hmac.compare_digest` always have the length of a SHA-256 digest and the
    comparison time does not depend on where the first mismatch is.

    Parameters
    ----------
    secret
        Shared webhook secret. If empty or `None`, signatures are not
        checked and every delivery is accepted.
    body
        Raw request body, exactly as received.
    signature
        Value of the ``X-Hub-Signature-256`` header, if present.

    Returns
    -------
    bool
        Whether the delivery should be trusted.
    """
    if not secret:
        return True
    if not signature or not signature.startswith(SIGNATURE_PREFIX):
        return False
    digest = signature.removeprefix(SIGNATURE_PREFIX)
    if not _DIGEST_PATTERN.fullmatch(digest):
        return False
    received = bytes.fromhex(digest)
    expected = hmac.new(secret.encode(), body, hashlib.sha256).digest()
    return hmac.compare_digest(received, expected)
