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
Content/Progress Gateway

Units, student progress, courses and students are stored in WordPress as
the ``icn_unit``, ``icn_grade``, ``icn_course`` and ``icn_student`` custom
post types and read through the WordPress REST API, page by page.
Any failure talking to WordPress is raised as ``GatewayUnavailable``; it
is never reported as an empty result.
"""

import contextlib
import datetime
import json
import logging
from collections.abc import AsyncIterator, Mapping
from typing import Any

import httpx
from fastapi import status

from . import schemas
from .errors import GatewayUnavailable

logger = logging.getLogger(__name__)

API_PATH = "/wp-json/wp/v2/"
PAGE_SIZE = 100


class UnitNotFound(LookupError):
    pass


@contextlib.asynccontextmanager
async def wordpress_errors(endpoint: str) -> AsyncIterator[None]:
    try:
        yield
    except httpx.HTTPStatusError as exc:
        logger.error(
            "WordPress [%s] returned %s: %s",
            endpoint,
            exc.response.status_code,
            exc.response.text[:500],
        )
        raise GatewayUnavailable(f"{endpoint}: {exc.response.status_code}") from None
    except httpx.HTTPError as exc:
        logger.error("WordPress [%s] request failed: %r", endpoint, exc)
        raise GatewayUnavailable(f"{endpoint}: {exc!r}") from None
    except (KeyError, TypeError, ValueError) as exc:
        logger.error("WordPress [%s] returned unexpected data: %r", endpoint, exc)
        raise GatewayUnavailable(f"{endpoint}: {exc!r}") from None


class WordPressGateway:
    """Client for the WordPress REST API."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        *,
        username: str | None = None,
        password: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.http_client = http_client
        self.api_url = base_url.rstrip("/") + API_PATH
        self.auth = None
        if username and password:
            self.auth = httpx.BasicAuth(username, password)
        self.timeout = timeout

    async def _send(
        self,
        method: str,
        endpoint: str,
        *,
        params: Mapping[str, Any] | None = None,
        data: Mapping[str, Any] | None = None,
        not_found: type[LookupError] | None = None,
    ) -> httpx.Response:
        url = self.api_url + endpoint
        logger.info("WordPress %s %s %s", method, endpoint, params or "")
        async with wordpress_errors(endpoint):
            r = await self.http_client.request(
                method,
                url,
                params=params,
                json=data,
                auth=self.auth or httpx.USE_CLIENT_DEFAULT,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
            if not_found and r.status_code == status.HTTP_404_NOT_FOUND:
                raise not_found(endpoint)
            return r.raise_for_status()

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Mapping[str, Any] | None = None,
        data: Mapping[str, Any] | None = None,
        not_found: type[LookupError] | None = None,
    ) -> Any:
        r = await self._send(
            method, endpoint, params=params, data=data, not_found=not_found
        )
        async with wordpress_errors(endpoint):
            return r.json()

    async def _collection(
        self, endpoint: str, params: Mapping[str, Any]
    ) -> list[Mapping[str, Any]]:
        """Returns every post of a collection.

        WordPress caps a page at ``PAGE_SIZE`` posts and reports the page
        count in the ``X-WP-TotalPages`` header; pages are read until that
        count or an empty page is reached.
        """
        posts: list[Mapping[str, Any]] = []
        page, total_pages = 1, 1
        while page <= total_pages:
            r = await self._send(
                "GET", endpoint, params={**params, "per_page": PAGE_SIZE, "page": page}
            )
            async with wordpress_errors(endpoint):
                batch = _as_list(r.json(), endpoint)
                total_pages = int(r.headers.get("X-WP-TotalPages", 1))
            if not batch:
                break
            posts.extend(batch)
            page += 1
        return posts

    async def course_units(self, course_id: str) -> list[schemas.Unit]:
        """Returns the units of a course ordered by their ``order_index``."""
        posts = await self._collection(
            "icn_unit", {"meta_key": "course_id", "meta_value": course_id}
        )
        async with wordpress_errors("icn_unit"):
            units = [unit_from_post(p) for p in posts]
        return sorted(units, key=lambda u: (u.order_index, u.id))

    async def unit(self, unit_id: int) -> schemas.Unit:
        """Returns a single unit else raises ``UnitNotFound``."""
        post = await self._request("GET", f"icn_unit/{unit_id}", not_found=UnitNotFound)
        if not isinstance(post, Mapping):
            raise GatewayUnavailable(f"icn_unit/{unit_id}: expected an object")
        async with wordpress_errors(f"icn_unit/{unit_id}"):
            return unit_from_post(post)

    async def student_progress(
        self, student_id: str, course_id: str | None = None
    ) -> dict[int, schemas.UnitProgress]:
        """Returns the progress records of a student keyed by unit id.

        With a ``course_id`` only records of that course are returned;
        records saved without a course are kept.
        """
        posts = await self._collection(
            "icn_grade", {"meta_key": "student_id", "meta_value": student_id}
        )
        progress: dict[int, schemas.UnitProgress] = {}
        async with wordpress_errors("icn_grade"):
            records = [progress_from_post(p) for p in posts]
        for record in records:
            if record is None:
                continue
            if course_id and record.course_id and record.course_id != course_id:
                continue
            # keep the best record if WordPress holds duplicates
            current = progress.get(record.unit_id)
            if current is None or _is_improvement(current, record):
                progress[record.unit_id] = record
        return progress

    async def courses(self) -> list[schemas.Course]:
        """Returns the active courses."""
        posts = await self._collection(
            "icn_course", {"meta_key": "active", "meta_value": "true"}
        )
        async with wordpress_errors("icn_course"):
            return [course_from_post(p) for p in posts]

    async def students(self) -> list[schemas.Student]:
        """Returns the active students."""
        posts = await self._collection(
            "icn_student", {"meta_key": "active", "meta_value": "true"}
        )
        async with wordpress_errors("icn_student"):
            return [student_from_post(p) for p in posts]

    async def save_progress(
        self,
        student_id: str,
        course_id: str | None,
        update: schemas.ProgressUpdate,
    ) -> schemas.ProgressResult:
        """Records progress for a unit.

        An existing record is only changed when the score improves or the
        unit becomes completed. A completed unit stays completed.
        """
        progress = await self.student_progress(student_id, course_id)
        existing = progress.get(update.unit_id)
        now = datetime.datetime.now(tz=datetime.UTC)
        candidate = schemas.UnitProgress(
            unit_id=update.unit_id,
            score=update.score,
            completed=update.completed,
            completion_percentage=_completion(update, existing),
            last_updated=now,
        )

        if existing is not None and not _is_improvement(existing, candidate):
            logger.info(
                "Progress for student [%s] unit [%s] not improved, keeping %r",
                student_id,
                update.unit_id,
                existing,
            )
            return schemas.ProgressResult(updated=False, progress=existing)

        if existing is not None:
            candidate.completed = candidate.completed or existing.completed
            candidate.score = max(candidate.score, existing.score)
            candidate.completion_percentage = max(
                candidate.completion_percentage, existing.completion_percentage
            )

        post_data = {
            "title": f"Progress - Student {student_id} - Unit {update.unit_id}",
            "status": "publish",
            "meta": {
                "student_id": student_id,
                "unit_id": update.unit_id,
                "course_id": course_id or "",
                "content_id": str(update.content_id or ""),
                "completion_percentage": candidate.completion_percentage,
                "score": candidate.score,
                "completed": "true" if candidate.completed else "false",
                "last_updated": now.isoformat(),
            },
        }
        if existing is not None and existing.record_id is not None:
            endpoint = f"icn_grade/{existing.record_id}"
        else:
            endpoint = "icn_grade"
        post = await self._request("POST", endpoint, data=post_data)
        if isinstance(post, Mapping) and isinstance(post.get("id"), int):
            candidate.record_id = post["id"]
        return schemas.ProgressResult(updated=True, progress=candidate)


def _as_list(value: Any, endpoint: str) -> list[Mapping[str, Any]]:
    if not isinstance(value, list):
        raise GatewayUnavailable(f"{endpoint}: expected a list")
    return [v for v in value if isinstance(v, Mapping)]


def _rendered(value: Any) -> str:
    if isinstance(value, Mapping):
        return str(value.get("rendered", ""))
    return "" if value is None else str(value)


def _int_or_none(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _json_field(value: Any, post_id: Any) -> Any:
    if not isinstance(value, str):
        return value
    if not value:
        return None
    try:
        return json.loads(value)
    except ValueError:
        logger.warning("Unit [%s] has invalid unit_content JSON", post_id)
        return None


def unit_from_post(post: Mapping[str, Any]) -> schemas.Unit:
    """Returns a ``Unit`` from an ``icn_unit`` post."""
    meta = post.get("meta") or {}
    return schemas.Unit(
        id=post["id"],
        title=_rendered(post.get("title")),
        content=_rendered(post.get("content")),
        unit_type=meta.get("unit_type") or None,
        estimated_duration=_int_or_none(meta.get("estimated_duration")),
        difficulty_level=meta.get("difficulty_level") or None,
        order_index=_int_or_none(meta.get("order_index")) or 0,
        unit_content=_json_field(meta.get("unit_content"), post.get("id")),
    )


def progress_from_post(post: Mapping[str, Any]) -> schemas.UnitProgress | None:
    """Returns a ``UnitProgress`` from an ``icn_grade`` post."""
    meta = post.get("meta") or {}
    if (unit_id := _int_or_none(meta.get("unit_id"))) is None:
        return None
    last_updated = None
    if raw := meta.get("last_updated"):
        try:
            last_updated = datetime.datetime.fromisoformat(str(raw))
        except ValueError:
            logger.warning("icn_grade [%s] has invalid last_updated", post.get("id"))
    return schemas.UnitProgress(
        unit_id=unit_id,
        completion_percentage=_float(meta.get("completion_percentage")),
        score=_float(meta.get("score")),
        completed=meta.get("completed") in (True, "true", "1", 1),
        last_updated=last_updated,
        record_id=_int_or_none(post.get("id")),
        course_id=_str_or_none(meta.get("course_id")),
    )


def _str_or_none(value: Any) -> str | None:
    return str(value) if value not in (None, "") else None


def _roles(value: Any, post_id: Any) -> list[str]:
    if isinstance(value, str):
        try:
            value = json.loads(value) if value else []
        except ValueError:
            logger.warning("icn_student [%s] has invalid roles JSON", post_id)
            return []
    if not isinstance(value, list):
        return []
    return [str(role) for role in value]


def course_from_post(post: Mapping[str, Any]) -> schemas.Course:
    """Returns a ``Course`` from an ``icn_course`` post."""
    meta = post.get("meta") or {}
    return schemas.Course(
        id=post["id"],
        title=_rendered(post.get("title")),
        lti_course_id=_str_or_none(meta.get("lti_course_id")),
        context_id=_str_or_none(meta.get("context_id")),
        context_label=_str_or_none(meta.get("context_label")),
        platform_id=_str_or_none(meta.get("platform_id")),
        instructor_id=_str_or_none(meta.get("instructor_id")),
        created_date=_str_or_none(meta.get("created_date")),
    )


def student_from_post(post: Mapping[str, Any]) -> schemas.Student:
    """Returns a ``Student`` from an ``icn_student`` post."""
    meta = post.get("meta") or {}
    return schemas.Student(
        id=post["id"],
        name=_rendered(post.get("title")),
        lti_user_id=_str_or_none(meta.get("lti_user_id")),
        email=_str_or_none(meta.get("email")),
        wp_user_id=_int_or_none(meta.get("wp_user_id")),
        roles=_roles(meta.get("roles"), post.get("id")),
        platform_id=_str_or_none(meta.get("platform_id")),
        last_access=_str_or_none(meta.get("last_access")),
    )


def _is_improvement(old: schemas.UnitProgress, new: schemas.UnitProgress) -> bool:
    return new.score > old.score or (new.completed and not old.completed)


def _completion(
    update: schemas.ProgressUpdate, existing: schemas.UnitProgress | None
) -> float:
    if update.completed:
        return 100.0
    if update.completion_percentage is not None:
        return update.completion_percentage
    return existing.completion_percentage if existing else 0.0
