"""Random token helpers.

Open Console state values must be unpredictable: they protect the OAuth
callback against replayed or forged approvals.  Tokens are produced with
:mod:`secrets` and only contain URL-safe characters, so they can be used as
query parameters without further escaping.

This module intentionally performs **no logging** of generated tokens.
"""

from __future__ import annotations

import secrets
from typing import Final

# 24 random bytes render as 32 URL-safe characters
_TOKEN_BYTES: Final[int] = 24
_MIN_TOKEN_BYTES: Final[int] = 16


def random_token(nbytes: int = _TOKEN_BYTES) -> str:
    """Generate a cryptographically strong, URL-safe random token.

    Parameters
    ----------
    nbytes:
        Amount of randomness in bytes (default 24, minimum 16).

    Returns
    -------
    str
        The generated token.
    """
    if nbytes < _MIN_TOKEN_BYTES:
        raise ValueError(f"token needs at least {_MIN_TOKEN_BYTES} random bytes")
    return secrets.token_urlsafe(nbytes)
