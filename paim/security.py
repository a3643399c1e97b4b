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
Security dependencies

Every protected route depends on ``req_user``. The only way to obtain an
``AuthenticatedSession`` is a launch that passed every check; there is no
guest or default identity.
"""

import logging
from typing import Annotated

from fastapi import Depends, Request

from . import roles, schemas
from .errors import Forbidden, NotAuthenticated
from .sessions import SessionStore

logger = logging.getLogger(__name__)


def session_store(request: Request) -> SessionStore:
    return request.app.state.sessions  # type: ignore[no-any-return]


Sessions = Annotated[SessionStore, Depends(session_store)]


async def optional_user(
    request: Request, sessions: Sessions
) -> schemas.AuthenticatedSession | None:
    """Returns the authenticated user for this request, if there is one.

    The user is also set on ``request.state.user``.
    """
    session_id = sessions.session_id(request)
    data = await sessions.get(session_id)
    user = data.user if data.authenticated else None
    request.state.user = user
    return user


OptionalUser = Annotated[schemas.AuthenticatedSession | None, Depends(optional_user)]


async def req_user(user: OptionalUser) -> schemas.AuthenticatedSession:
    """Raises ``NotAuthenticated`` unless the request has a launched session."""
    if user is None:
        raise NotAuthenticated()
    return user


CurrentUser = Annotated[schemas.AuthenticatedSession, Depends(req_user)]


async def req_learner(user: CurrentUser) -> schemas.AuthenticatedSession:
    if not roles.is_learner(user.roles):
        logger.warning("[%s] is not a learner, roles %r", user.subject, user.roles)
        raise Forbidden(f"user [{user.subject}] is not a learner")
    return user


Learner = Annotated[schemas.AuthenticatedSession, Depends(req_learner)]


async def req_instructor(user: CurrentUser) -> schemas.AuthenticatedSession:
    if not roles.is_instructor(user.roles):
        logger.warning("[%s] is not an instructor, roles %r", user.subject, user.roles)
        raise Forbidden(f"user [{user.subject}] is not an instructor")
    return user


Instructor = Annotated[schemas.AuthenticatedSession, Depends(req_instructor)]
