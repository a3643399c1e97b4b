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
Templating library for HTML Responses
"""

import html

from fastapi import Response

from . import schemas


def _page(title: str, body: str) -> str:
    return f"""\
    <!doctype html>
    <html lang="en">
    <head>
        <meta charset="utf-8">
        <meta name="viewport" content="width=device-width, initial-scale=1">
        <title>{html.escape(title)}</title>
    </head>
    <body>
    {body}
    </body>
    </html>
    """


def landing_page() -> Response:
    body = """\
        <h1>ICN PAIM</h1>
        <p>Please open this tool from your course in Blackboard.</p>
    """
    return Response(content=_page("ICN PAIM", body), media_type="text/html")


def dashboard_page(
    title: str, user: schemas.AuthenticatedSession, api_path: str
) -> Response:
    """Minimal shell for a dashboard when no frontend is configured."""
    name = html.escape(user.display_name or user.subject)
    course = ""
    if user.course_context:
        label = user.course_context.label or user.course_context.title or ""
        course = f"<p>{html.escape(label)}</p>"
    body = f"""\
        <h1>{html.escape(title)}</h1>
        <p>{name}</p>
        {course}
        <div id="root" data-api="{html.escape(api_path)}"></div>
    """
    return Response(
        content=_page(title, body),
        media_type="text/html",
        headers={"Cache-Control": "no-store"},
    )
