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
Progress Service

Combines the units of a course with a student's progress and works out
which units are unlocked. Units are cached per course for a short time;
progress is always read fresh.
"""

import logging
import time
from collections.abc import Callable

from . import schemas
from .errors import GatewayUnavailable
from .gateway import WordPressGateway

logger = logging.getLogger(__name__)

UNITS_CACHE_EXPIRY = 60 * 5


class ProgressService:
    def __init__(
        self,
        gateway: WordPressGateway | None,
        cache_expiry: float = UNITS_CACHE_EXPIRY,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._gateway = gateway
        self.cache_expiry = cache_expiry
        self.clock = clock
        self._units_cache: dict[str, tuple[float, list[schemas.Unit]]] = {}

    @property
    def gateway(self) -> WordPressGateway:
        if self._gateway is None:
            raise GatewayUnavailable("WORDPRESS_URL is not set")
        return self._gateway

    @property
    def is_configured(self) -> bool:
        return self._gateway is not None

    async def course_units(self, course_id: str) -> list[schemas.Unit]:
        if cached := self._units_cache.get(course_id):
            expires_at, units = cached
            if expires_at > self.clock():
                logger.debug("Returning cached units for course [%s]", course_id)
                return units

        units = await self.gateway.course_units(course_id)
        self._purge_expired()
        self._units_cache[course_id] = (self.clock() + self.cache_expiry, units)
        return units

    async def unit(self, unit_id: int) -> schemas.Unit:
        return await self.gateway.unit(unit_id)

    async def student_progress(
        self, student_id: str, course_id: str | None = None
    ) -> dict[int, schemas.UnitProgress]:
        return await self.gateway.student_progress(student_id, course_id)

    async def courses(self) -> list[schemas.Course]:
        return await self.gateway.courses()

    async def students(self) -> list[schemas.Student]:
        return await self.gateway.students()

    async def student_units(
        self, student_id: str, course_id: str
    ) -> list[schemas.UnitWithProgress]:
        """Returns the units of a course with the student's progress.

        The first unit is always unlocked and every other unit is unlocked
        once the unit before it is completed.
        """
        units = await self.course_units(course_id)
        progress = await self.student_progress(student_id, course_id)

        results: list[schemas.UnitWithProgress] = []
        previous_completed = True
        for unit in units:
            unit_progress = progress.get(unit.id)
            if unit_progress is None:
                unit_progress = schemas.UnitProgress(unit_id=unit.id)
            results.append(
                schemas.UnitWithProgress(
                    **unit.model_dump(),
                    progress=unit_progress,
                    unlocked=previous_completed,
                )
            )
            previous_completed = unit_progress.completed
        return results

    async def update_progress(
        self,
        student_id: str,
        course_id: str | None,
        update: schemas.ProgressUpdate,
    ) -> schemas.ProgressResult:
        result = await self.gateway.save_progress(student_id, course_id, update)
        if course_id:
            self.invalidate(course_id)
        logger.info(
            "Progress for student [%s] unit [%s]: updated=%s, %r",
            student_id,
            update.unit_id,
            result.updated,
            result.progress,
        )
        return result

    def invalidate(self, course_id: str) -> None:
        self._units_cache.pop(course_id, None)

    def _purge_expired(self) -> None:
        now = self.clock()
        for key in [k for k, (exp, _) in self._units_cache.items() if exp <= now]:
            del self._units_cache[key]
