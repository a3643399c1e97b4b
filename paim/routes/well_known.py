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
OAuth/OIDC Well Known routes
"""

from typing import Any

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/jwks.json")
async def jwks(request: Request) -> dict[str, Any]:
    """JSON Web Key Set endpoint.

    Empty unless ``PAIM_TOOL_JWKS`` is configured, since the tool does not
    sign any messages to the platform.
    """
    return request.app.state.tool_jwks  # type: ignore[no-any-return]
