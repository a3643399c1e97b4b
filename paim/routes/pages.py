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
Landing and dashboard pages

The dashboards are served by the frontend when ``PAIM_FRONTEND_URL`` is set,
otherwise a minimal HTML shell is returned.
"""

from fastapi import APIRouter, Response, status
from fastapi.responses import RedirectResponse

from .. import roles, schemas, templates
from ..errors import Forbidden
from ..security import OptionalUser
from ..settings import ToolSettings


def create_router(tool: ToolSettings) -> APIRouter:
    """Returns the page routes for the configured paths."""
    router = APIRouter(include_in_schema=False)

    def to_landing() -> Response:
        return RedirectResponse(
            tool.landing_path, status_code=status.HTTP_303_SEE_OTHER
        )

    def dashboard(
        title: str, path: str, user: schemas.AuthenticatedSession
    ) -> Response:
        if tool.frontend_url:
            return RedirectResponse(
                f"{tool.frontend_url}{path}", status_code=status.HTTP_303_SEE_OTHER
            )
        return templates.dashboard_page(title, user, "/api")

    async def landing() -> Response:
        return templates.landing_page()

    async def student_dashboard(user: OptionalUser) -> Response:
        if user is None or roles.classify(user.roles) is roles.RoleClass.UNKNOWN:
            return to_landing()
        return dashboard("Student Dashboard", tool.student_dashboard_path, user)

    async def admin_dashboard(user: OptionalUser) -> Response:
        if user is None:
            return to_landing()
        if not roles.is_instructor(user.roles):
            raise Forbidden(f"user [{user.subject}] is not an instructor")
        return dashboard("Admin Dashboard", tool.admin_dashboard_path, user)

    router.add_api_route("/", landing, methods=["GET"], name="index")
    if tool.landing_path != "/":
        router.add_api_route(
            tool.landing_path, landing, methods=["GET"], name="landing"
        )
    router.add_api_route(
        tool.student_dashboard_path,
        student_dashboard,
        methods=["GET"],
        name="student_dashboard",
    )
    router.add_api_route(
        tool.admin_dashboard_path,
        admin_dashboard,
        methods=["GET"],
        name="admin_dashboard",
    )
    return router
