"""Shared asyncpg pool for the feed store.

Feed reads fan out with asyncio.gather, so the first callers can race to
open the pool; a lock makes sure only one pool is ever created.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional

import asyncpg

from app.settings import settings

logger = logging.getLogger(__name__)

_pool: Optional[asyncpg.pool.Pool] = None
_pool_lock = asyncio.Lock()


async def _init_connection(conn: asyncpg.Connection) -> None:
	# Post content is stored as jsonb; decode it on the wire
	for type_name in ("json", "jsonb"):
		await conn.set_type_codec(type_name, encoder=json.dumps, decoder=json.loads, schema="pg_catalog")


async def init_pool() -> asyncpg.pool.Pool:
	global _pool
	async with _pool_lock:
		if _pool is None:
			_pool = await asyncpg.create_pool(
				dsn=settings.postgres_url,
				min_size=settings.postgres_min_pool_size,
				max_size=settings.postgres_max_pool_size,
				command_timeout=settings.postgres_command_timeout,
				ssl="require" if settings.postgres_ssl else "disable",
				init=_init_connection,
			)
			logger.info(
				"postgres_pool_opened",
				extra={"min_size": settings.postgres_min_pool_size, "max_size": settings.postgres_max_pool_size},
			)
	return _pool


def set_pool(pool: Optional[asyncpg.pool.Pool]) -> None:
	global _pool
	_pool = pool


async def get_pool() -> asyncpg.pool.Pool:
	if _pool is not None:
		return _pool
	return await init_pool()


async def close_pool() -> None:
	global _pool
	async with _pool_lock:
		if _pool is not None:
			await _pool.close()
			_pool = None
			logger.info("postgres_pool_closed")
