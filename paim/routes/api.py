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
Dashboard API routes

All routes require an ``AuthenticatedSession``; the ``/admin`` routes also
require an instructor role.
"""

import logging

from fastapi import APIRouter, Request

from .. import schemas
from ..errors import NoCourseContext, NotFound
from ..gateway import UnitNotFound
from ..security import CurrentUser, Instructor, Learner
from ..services import ProgressService

logger = logging.getLogger(__name__)

router = APIRouter()


def _progress(request: Request) -> ProgressService:
    return request.app.state.progress  # type: ignore[no-any-return]


@router.get("/user")
async def current_user(user: CurrentUser) -> schemas.AuthenticatedSession:
    """Returns the identity stored by the launch."""
    return user


@router.get("/student/units")
async def student_units(
    request: Request, user: CurrentUser
) -> list[schemas.UnitWithProgress]:
    if (course_id := user.course_id) is None:
        raise NoCourseContext(f"user [{user.subject}] has no course context")
    return await _progress(request).student_units(user.subject, course_id)


@router.get("/student/progress")
async def student_progress(
    request: Request, user: CurrentUser
) -> list[schemas.UnitProgress]:
    progress = await _progress(request).student_progress(
        user.subject, user.course_id
    )
    return [progress[k] for k in sorted(progress)]


@router.get("/units/{unit_id}")
async def unit_content(
    request: Request, unit_id: int, user: CurrentUser
) -> schemas.Unit:
    try:
        return await _progress(request).unit(unit_id)
    except UnitNotFound:
        raise NotFound(f"unit [{unit_id}] requested by [{user.subject}]") from None


@router.post("/progress/update")
async def update_progress(
    request: Request,
    update: schemas.ProgressUpdate,
    user: Learner,
) -> schemas.ProgressResult:
    return await _progress(request).update_progress(
        user.subject, user.course_id, update
    )


@router.get("/admin/courses")
async def admin_courses(request: Request, user: Instructor) -> list[schemas.Course]:
    """Returns the active courses."""
    return await _progress(request).courses()


@router.get("/admin/students")
async def admin_students(request: Request, user: Instructor) -> list[schemas.Student]:
    """Returns the active students."""
    return await _progress(request).students()
