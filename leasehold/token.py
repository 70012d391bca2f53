"""Ownership token generation."""

import base64
import secrets

from .exceptions import TokenGenerationError

TOKEN_BYTES = 16


def generate_token() -> str:
    """Return a random base64 token identifying one lock handle.

    Raises:
        TokenGenerationError: If the OS randomness source is unavailable.
    """
    try:
        raw = secrets.token_bytes(TOKEN_BYTES)
    except (OSError, NotImplementedError) as e:
        raise TokenGenerationError(f"Failed to generate lock token: {e}") from e
    return base64.b64encode(raw).decode("ascii")
