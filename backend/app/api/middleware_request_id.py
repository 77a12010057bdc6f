"""ASGI middleware guaranteeing an X-Request-Id on every response.

Runs outermost so that error responses produced by inner layers carry the
same id the error handlers wrote into their JSON bodies.
"""

from __future__ import annotations

import re
import uuid

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.api.request_id import REQUEST_ID_ATTR, REQUEST_ID_HEADER

_VALID_ID = re.compile(r"^[A-Za-z0-9._\-]{1,128}$")


def _incoming_id(scope: Scope) -> str | None:
	wanted = REQUEST_ID_HEADER.lower().encode("latin-1")
	for name, value in scope.get("headers", []):
		if name == wanted:
			candidate = value.decode("latin-1").strip()
			return candidate if _VALID_ID.match(candidate) else None
	return None


class RequestIdMiddleware:
	def __init__(self, app: ASGIApp) -> None:
		self.app = app

	async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
		if scope["type"] != "http":
			await self.app(scope, receive, send)
			return

		rid = _incoming_id(scope) or str(uuid.uuid4())
		scope.setdefault("state", {})[REQUEST_ID_ATTR] = rid

		async def send_with_id(message: Message) -> None:
			if message["type"] == "http.response.start":
				headers = MutableHeaders(scope=message)
				if REQUEST_ID_HEADER not in headers:
					headers[REQUEST_ID_HEADER] = rid
			await send(message)

		await self.app(scope, receive, send_with_id)
