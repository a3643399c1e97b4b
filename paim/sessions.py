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


"""
Server-side Sessions

The browser only ever holds an opaque session id, signed with the session
secret. Session data lives server-side in a ``SessionBackend``: the
database cache table by default, or process memory for single process
local runs and tests.
"""

import logging
import time
from collections.abc import Callable
from typing import Any, Literal, Protocol

import joserfc.errors
import joserfc.jwk
import joserfc.jws
from fastapi import Request, Response

from . import db, schemas, tokens

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "session-"
COOKIE_ALGORITHM = "HS256"


class SessionBackend(Protocol):
    async def load(self, session_id: str) -> str | None: ...

    async def save(self, session_id: str, value: str, ttl: int) -> None: ...

    async def delete(self, session_id: str) -> None: ...

    async def pop(self, session_id: str) -> str | None:
        """Removes and returns a value. Concurrent pops of one key get it once."""
        ...


class DatabaseBackend:
    """Stores sessions in the ``cache_objects`` table with a rolling TTL."""

    async def load(self, session_id: str) -> str | None:
        return await db.store.cache_get(SESSION_KEY_PREFIX + session_id)

    async def save(self, session_id: str, value: str, ttl: int) -> None:
        await db.store.cache_put(
            SESSION_KEY_PREFIX + session_id,
            value,
            ttl=ttl,
            ttl_type=db.store.CACHE_TTL_TYPE_ROLLING,
        )

    async def delete(self, session_id: str) -> None:
        await db.store.cache_delete(SESSION_KEY_PREFIX + session_id)

    async def pop(self, session_id: str) -> str | None:
        return await db.store.cache_pop(SESSION_KEY_PREFIX + session_id)


class MemoryBackend:
    """Stores sessions in a dict with a rolling TTL."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self.clock = clock
        self._entries: dict[str, tuple[float, int, str]] = {}

    async def load(self, session_id: str) -> str | None:
        if (entry := self._entries.get(session_id)) is None:
            return None
        expires_at, ttl, value = entry
        now = self.clock()
        if expires_at <= now:
            del self._entries[session_id]
            return None
        self._entries[session_id] = (now + ttl, ttl, value)
        return value

    async def save(self, session_id: str, value: str, ttl: int) -> None:
        self._purge_expired()
        self._entries[session_id] = (self.clock() + ttl, ttl, value)

    async def delete(self, session_id: str) -> None:
        self._entries.pop(session_id, None)

    async def pop(self, session_id: str) -> str | None:
        if (entry := self._entries.pop(session_id, None)) is None:
            return None
        expires_at, _, value = entry
        return value if expires_at > self.clock() else None

    def __len__(self) -> int:
        return len(self._entries)

    def _purge_expired(self) -> None:
        now = self.clock()
        for key in [k for k, (exp, _, _) in self._entries.items() if exp <= now]:
            del self._entries[key]


class SessionStore:
    """Reads and writes ``SessionData`` keyed by a signed session cookie."""

    def __init__(
        self,
        backend: SessionBackend,
        secret: str,
        *,
        ttl: int = 60 * 60 * 24,
        cookie_name: str = "paim.sid",
        cookie_secure: bool = True,
        cookie_samesite: Literal["lax", "strict", "none"] = "none",
    ) -> None:
        self.backend = backend
        self.ttl = ttl
        self.cookie_name = cookie_name
        self.cookie_secure = cookie_secure
        self.cookie_samesite = cookie_samesite
        self._key = joserfc.jwk.OctKey.import_key(secret)

    async def get(self, session_id: str | None) -> schemas.SessionData:
        """Returns the session data, empty if there is no live session."""
        if not session_id:
            return schemas.SessionData()
        if (raw := await self.backend.load(session_id)) is None:
            return schemas.SessionData()
        return schemas.SessionData.model_validate_json(raw)

    async def set(self, session_id: str, **partial: Any) -> schemas.SessionData:
        """Merges ``partial`` into the stored session data and saves it."""
        data = await self.get(session_id)
        data = data.model_copy(update=partial)
        await self.backend.save(session_id, data.model_dump_json(), self.ttl)
        return data

    async def destroy(self, session_id: str | None) -> None:
        if session_id:
            await self.backend.delete(session_id)
            await self.backend.delete(_launch_key(session_id))

    async def set_launch(self, session_id: str, launch: schemas.LaunchSession) -> None:
        """Stores the pending launch of a session, replacing any earlier one."""
        await self.backend.save(
            _launch_key(session_id), launch.model_dump_json(), self.ttl
        )

    async def pop_launch(self, session_id: str | None) -> schemas.LaunchSession | None:
        """Returns the pending launch and removes it from the session.

        The pending launch has its own backend key and is removed with a
        single ``pop``, so of concurrent launch attempts on one session at
        most one receives it whatever the outcome of the attempt.
        """
        if not session_id:
            return None
        if (raw := await self.backend.pop(_launch_key(session_id))) is None:
            return None
        return schemas.LaunchSession.model_validate_json(raw)

    @staticmethod
    def create_id() -> str:
        return tokens.generate_session_id()

    def session_id(self, request: Request) -> str | None:
        """Returns the session id from the request cookie if it is valid."""
        if not (value := request.cookies.get(self.cookie_name)):
            return None
        return self.unsign(value)

    def sign(self, session_id: str) -> str:
        return joserfc.jws.serialize_compact(
            {"alg": COOKIE_ALGORITHM}, session_id, self._key
        )

    def unsign(self, value: str) -> str | None:
        try:
            obj = joserfc.jws.deserialize_compact(
                value, self._key, algorithms=[COOKIE_ALGORITHM]
            )
        except (joserfc.errors.JoseError, ValueError) as exc:
            logger.warning("Ignoring session cookie that failed to verify: %r", exc)
            return None
        return obj.payload.decode("utf-8")

    def set_cookie(self, response: Response, session_id: str) -> None:
        response.set_cookie(
            key=self.cookie_name,
            value=self.sign(session_id),
            max_age=self.ttl,
            path="/",
            httponly=True,
            secure=self.cookie_secure,
            samesite=self.cookie_samesite,
        )

    def clear_cookie(self, response: Response) -> None:
        response.delete_cookie(
            key=self.cookie_name,
            path="/",
            httponly=True,
            secure=self.cookie_secure,
            samesite=self.cookie_samesite,
        )


def _launch_key(session_id: str) -> str:
    return f"{session_id}.launch"
