"""Customer-facing report link credentials."""

from __future__ import annotations

import secrets

from ..config import get_settings

PUBLIC_TOKEN_BYTES = 32


def generate_public_token() -> str:
    """256-bit random token rendered as lowercase hex."""
    return secrets.token_hex(PUBLIC_TOKEN_BYTES)


def build_public_url(token: str) -> str:
    base_url = get_settings().PUBLIC_APP_URL.rstrip("/")
    return f"{base_url}/view/{token}"
