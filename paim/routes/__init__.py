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
API Endpoints

Contains the configuration for all endpoint routers.
"""

import logging

from fastapi import APIRouter

from ..settings import ToolSettings
from . import api, lti, pages, well_known

logger = logging.getLogger(__name__)


def create_router(tool: ToolSettings) -> APIRouter:
    router = APIRouter()

    router.include_router(
        lti.router,
        prefix="/lti",
        tags=["LTI 1.3"],
    )

    router.include_router(
        api.router,
        prefix="/api",
        tags=["Dashboard API"],
    )

    router.include_router(
        well_known.router,
        prefix="/.well-known",
        tags=["Well Known"],
    )

    router.include_router(pages.create_router(tool))

    logger.info("Routes configured: %s", [getattr(r, "path", r) for r in router.routes])
    return router
