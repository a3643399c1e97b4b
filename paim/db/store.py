# ICN PAIM LTI Tool
# Copyright (c) 2024-2025  ICN PAIM Project Team
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.


import datetime
import logging

import sqlalchemy as sa

from .core import IntegrityError, async_session
from .models import Cache

logger = logging.getLogger(__name__)

CACHE_TTL_DEFAULT = 3600
CACHE_TTL_TYPE_FIXED = "fixed"
CACHE_TTL_TYPE_ROLLING = "rolling"


async def cache_put(
    key: str,
    value: str,
    *,
    ttl: int = CACHE_TTL_DEFAULT,
    ttl_type: str = CACHE_TTL_TYPE_FIXED,
) -> str:
    """Updates an entry in the cache else creates a new entry."""
    await cache_purge_expired()
    expires_at = _cache_calc_expires(ttl)
    entry = Cache(
        key=key,
        value=value,
        ttl=ttl,
        ttl_type=ttl_type,
        expire_at=expires_at,
    )
    async with async_session() as session:
        try:
            session.add(entry)
            await session.commit()
        except IntegrityError:
            await session.rollback()
            if db_entry := await session.get(Cache, key):
                db_entry.value = value
                db_entry.ttl = ttl
                db_entry.ttl_type = ttl_type
                db_entry.expire_at = expires_at
            else:
                session.add(entry)
            await session.commit()

    return key


async def cache_get(key: str, default: str | None = None) -> str | None:
    """Returns an entry from the cache else ``default`` if no entry exists."""
    async with async_session.begin() as session:
        if entry := await session.get(Cache, key):
            if _cache_is_live(entry):
                if entry.ttl_type == CACHE_TTL_TYPE_ROLLING:
                    entry.expire_at = _cache_calc_expires(entry.ttl)
                return entry.value

            await session.delete(entry)

    return default


async def cache_pop(key: str, default: str | None = None) -> str | None:
    """Removes an entry from the cache and returns it else ``default``.

    Only the caller whose delete removed the row gets the value, so of any
    number of concurrent pops for one key at most one succeeds.
    """
    select_stmt = sa.select(Cache.value, Cache.expire_at).where(Cache.key == key)
    delete_stmt = (
        sa.delete(Cache)
        .where(Cache.key == key)
        .execution_options(synchronize_session=False)
    )
    async with async_session.begin() as session:
        if (row := (await session.execute(select_stmt)).one_or_none()) is None:
            return default
        result = await session.execute(delete_stmt)
        if result.rowcount != 1:
            return default

    value, expire_at = row
    return value if expire_at > _utc_now() else default


async def cache_delete(key: str) -> None:
    stmt = sa.delete(Cache).where(Cache.key == key)
    async with async_session.begin() as session:
        await session.execute(stmt)


async def cache_purge_expired() -> None:
    """Removes all entries that are expired."""
    stmt = sa.delete(Cache).where(Cache.expire_at <= _utc_now())
    async with async_session.begin() as session:
        await session.execute(stmt)


def _utc_now() -> datetime.datetime:
    # we store without a timezone, so we produce a naive timestamp
    return datetime.datetime.now(tz=datetime.UTC).replace(tzinfo=None)


def _cache_calc_expires(ttl: int) -> datetime.datetime:
    return _utc_now() + datetime.timedelta(seconds=ttl)


def _cache_is_live(entry: Cache) -> bool:
    return entry.expire_at > _utc_now()
