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
Schemas

Pydantic models shared by the session store, the content gateway and the
API routes. API models are serialized with camelCase names to match what
the dashboard expects.
"""

import datetime
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LaunchSession(BaseModel):
    """A pending launch, created at login initiation.

    Consumed by exactly one launch attempt, successful or not.
    """

    state: str
    nonce: str
    login_hint: str
    message_hint: str | None = None
    issuer: str
    client_id: str


class CourseContext(ApiModel):
    id: str
    label: str | None = None
    title: str | None = None


class ResourceLink(ApiModel):
    id: str
    title: str | None = None


class AuthenticatedSession(ApiModel):
    """The identity established by a successful launch."""

    subject: str
    display_name: str | None = None
    email: str | None = None

    # Every role URI from the token, recognized or not. Classification
    # happens on use, see ``paim.roles``.
    roles: list[str] = []

    course_context: CourseContext | None = None
    resource_link: ResourceLink | None = None
    issuer: str
    client_id: str
    deployment_id: str

    @property
    def course_id(self) -> str | None:
        return self.course_context.id if self.course_context else None


class SessionData(BaseModel):
    """Everything stored server-side for one browser session."""

    user: AuthenticatedSession | None = None
    authenticated: bool = False


class Unit(ApiModel):
    """A learning unit in a course."""

    id: int
    title: str
    content: str = ""
    unit_type: str | None = None
    estimated_duration: int | None = None
    difficulty_level: str | None = None
    order_index: int = 0
    unit_content: Any = None


class UnitProgress(ApiModel):
    unit_id: int
    completion_percentage: float = 0.0
    score: float = 0.0
    completed: bool = False
    last_updated: datetime.datetime | None = None
    record_id: int | None = Field(default=None, exclude=True)
    course_id: str | None = Field(default=None, exclude=True)


class UnitWithProgress(Unit):
    progress: UnitProgress
    unlocked: bool = False


class ProgressUpdate(ApiModel):
    """Request body of ``POST /api/progress/update``."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    unit_id: int
    content_id: int | str | None = None
    completed: bool = False
    score: float = Field(default=0.0, ge=0, le=100)
    completion_percentage: float | None = Field(default=None, ge=0, le=100)


class ProgressResult(ApiModel):
    success: bool = True
    updated: bool
    progress: UnitProgress


class Course(ApiModel):
    """An LTI course context registered in WordPress as an ``icn_course``."""

    id: int
    title: str
    lti_course_id: str | None = None
    context_id: str | None = None
    context_label: str | None = None
    platform_id: str | None = None
    instructor_id: str | None = None
    created_date: str | None = None


class Student(ApiModel):
    """An LTI user registered in WordPress as an ``icn_student``."""

    id: int
    name: str
    lti_user_id: str | None = None
    email: str | None = None
    wp_user_id: int | None = None
    roles: list[str] = []
    platform_id: str | None = None
    last_access: str | None = None
