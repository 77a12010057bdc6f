"""HS256 access tokens for feed clients.

Tokens are minted by the account service; this module only needs to read
them, but can issue short-lived ones for local tooling and tests.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Sequence

import jwt
from jwt import InvalidTokenError

from app.settings import settings

ISSUER = "driftwood-api"
AUDIENCE = "driftwood-web"
ALGORITHM = "HS256"
DEFAULT_TTL_SECONDS = 15 * 60
CLOCK_SKEW_SECONDS = 5

_REQUIRED_REGISTERED = ["exp", "iat", "iss", "aud"]
_REQUIRED_PRIVATE = ("sub", "sid")


def issue_access_token(
	user_id: str,
	*,
	session_id: str,
	roles: Sequence[str] = (),
	ttl_seconds: int = DEFAULT_TTL_SECONDS,
	**extra: Any,
) -> str:
	now = int(time.time())
	claims: Dict[str, Any] = {
		"iss": ISSUER,
		"aud": AUDIENCE,
		"iat": now,
		"exp": now + ttl_seconds,
		"sub": user_id,
		"sid": session_id,
		**extra,
	}
	if roles:
		claims["roles"] = list(roles)
	return jwt.encode(claims, settings.secret_key, algorithm=ALGORITHM)


def decode_access(token: str) -> Dict[str, Any]:
	"""Validate signature, registered claims and the subject/session pair.

	Raises jwt.InvalidTokenError subclasses on failure.
	"""
	payload = jwt.decode(
		token,
		settings.secret_key,
		algorithms=[ALGORITHM],
		audience=AUDIENCE,
		issuer=ISSUER,
		leeway=CLOCK_SKEW_SECONDS,
		options={"require": _REQUIRED_REGISTERED},
	)
	missing = [claim for claim in _REQUIRED_PRIVATE if not payload.get(claim)]
	if missing:
		raise InvalidTokenError(f"missing_claim:{missing[0]}")
	return payload
