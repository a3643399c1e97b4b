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
LTI 1.3 routes

OIDC third party login initiation, the launch (``redirect_uri``) endpoint,
logout and the health check.
"""

import datetime
import logging
import secrets
import urllib.parse
from collections.abc import Mapping
from typing import Any

from fastapi import APIRouter, Request, Response, status
from fastapi.responses import RedirectResponse

from .. import __version__, roles, schemas, tokens
from ..errors import (
    ConfigurationError,
    InvalidNonce,
    InvalidState,
    InvalidToken,
    MissingParameter,
    MissingToken,
)
from ..keys import TokenVerifier, VerificationError
from ..lti.messages import LtiLaunchRequest
from ..registry import PlatformRegistry
from ..security import Sessions
from ..settings import AppConfig

logger = logging.getLogger(__name__)

router = APIRouter()

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store",
    "Pragma": "no-cache",
}


def _config(request: Request) -> AppConfig:
    return request.app.state.config  # type: ignore[no-any-return]


def _registry(request: Request) -> PlatformRegistry:
    return request.app.state.registry  # type: ignore[no-any-return]


def _verifier(request: Request) -> TokenVerifier:
    return request.app.state.verifier  # type: ignore[no-any-return]


def _launch_url(config: AppConfig) -> str:
    """Returns the pre-registered ``redirect_uri`` else raises."""
    if not (launch_url := config.tool.launch_url):
        raise ConfigurationError("PAIM_BASE_URL is not set")
    return launch_url


async def _params(request: Request) -> dict[str, str]:
    """Returns the query parameters overlaid with any form parameters."""
    params = dict(request.query_params)
    if request.method == "POST":
        form = await request.form()
        params.update({k: v for k, v in form.items() if isinstance(v, str)})
    return params


def destination(config: AppConfig, role_class: roles.RoleClass) -> str:
    """Returns where a user with ``role_class`` goes after a launch."""
    return {
        roles.RoleClass.INSTRUCTOR: config.tool.admin_dashboard_path,
        roles.RoleClass.LEARNER: config.tool.student_dashboard_path,
    }.get(role_class, config.tool.landing_path)


@router.api_route("/login", methods=["GET", "POST"], include_in_schema=False)
async def login(request: Request, sessions: Sessions) -> Response:
    """LTI OIDC Login Initiation.

    LTI 1.3 uses a modified version of OIDC 3rd Party Login Initiation. The
    platform may use either GET or POST. A ``LaunchSession`` is stored for
    this browser and the user-agent is sent to the platform's
    authorization endpoint.
    """
    config = _config(request)
    registry = _registry(request)
    registry.require()
    redirect_uri = _launch_url(config)

    params = await _params(request)
    iss = params.get("iss")
    login_hint = params.get("login_hint")
    client_id = params.get("client_id")
    message_hint = params.get("lti_message_hint")
    logger.info(
        "LTI Login Init: iss=%s, login_hint=%s, target_link_uri=%s, "
        "lti_message_hint=%s, lti_deployment_id=%s, client_id=%s",
        iss,
        login_hint,
        params.get("target_link_uri"),
        message_hint,
        params.get("lti_deployment_id"),
        client_id,
    )
    if not iss:
        raise MissingParameter("iss")
    if not login_hint:
        raise MissingParameter("login_hint")

    registration = registry.find(iss, client_id)

    launch = schemas.LaunchSession(
        state=tokens.generate_state(),
        nonce=tokens.generate_nonce(),
        login_hint=login_hint,
        message_hint=message_hint,
        issuer=registration.issuer,
        client_id=registration.client_id,
    )
    session_id = sessions.session_id(request) or sessions.create_id()
    await sessions.set_launch(session_id, launch)

    query_string = {
        # only supported type is id_token
        "response_type": "id_token",
        # since the id_token can be large we ask that it be sent in a POST
        "response_mode": "form_post",
        "scope": "openid",
        "client_id": registration.client_id,
        # always the registered launch url, ``target_link_uri`` is ignored
        "redirect_uri": redirect_uri,
        "state": launch.state,
        "nonce": launch.nonce,
        "login_hint": login_hint,
        # the launch is initiated from the platform and the user is already
        # logged in, so the platform must not show a login prompt
        "prompt": "none",
    }
    if message_hint:
        query_string["lti_message_hint"] = message_hint

    auth_url = str(registration.auth_url)
    sep = "&" if "?" in auth_url else "?"
    target_url = f"{auth_url}{sep}{urllib.parse.urlencode(query_string)}"
    logger.info("Redirecting to %s for %s", registration.auth_url, registration)

    response = RedirectResponse(
        url=target_url,
        status_code=status.HTTP_302_FOUND,
        headers={**NO_CACHE_HEADERS, "X-Frame-Options": "DENY"},
    )
    sessions.set_cookie(response, session_id)
    return response


@router.post("/launch", include_in_schema=False)
async def launch(request: Request, sessions: Sessions) -> Response:
    """LTI Launch endpoint.

    Handles the form post of the IDToken from the platform. Either every
    check passes and an ``AuthenticatedSession`` is stored, or nothing is.
    """
    config = _config(request)
    registry = _registry(request)
    registry.require()
    _launch_url(config)

    form = await request.form()
    id_token = form.get("id_token")
    state = form.get("state")
    logger.info("LTI Launch: state [%s]", state)

    # The pending launch is consumed before any check so it can never be
    # used by a second attempt.
    session_id = sessions.session_id(request)
    pending = await sessions.pop_launch(session_id)

    if not isinstance(id_token, str) or not id_token:
        logger.error(
            "missing IDToken: error code=[%s], description=[%s]",
            form.get("error"),
            form.get("error_description"),
        )
        raise MissingToken()

    if pending is None:
        raise InvalidState("no pending launch for this session")
    if not isinstance(state, str) or not secrets.compare_digest(state, pending.state):
        raise InvalidState(f"state [{state}] does not match the pending launch")

    registration = registry.get(pending.issuer, pending.client_id)
    try:
        claims = await _verifier(request).verify(
            id_token,
            issuer=registration.issuer,
            audience=registration.client_id,
            jwks_url=str(registration.jwks_url),
        )
    except VerificationError as exc:
        logger.warning("IDToken failed verification for %s: %s", registration, exc)
        raise InvalidToken(exc.reason) from None

    nonce = claims.get("nonce")
    if not isinstance(nonce, str) or not secrets.compare_digest(nonce, pending.nonce):
        raise InvalidNonce(f"nonce [{nonce}] does not match the pending launch")

    message_launch = LtiLaunchRequest(registration, claims)
    message_launch.validate()
    user = message_launch.authenticated_session()

    # The pre-login session id is never promoted to an authenticated one.
    await sessions.destroy(session_id)
    session_id = sessions.create_id()
    await sessions.set(session_id, user=user, authenticated=True)

    role_class = roles.classify(user.roles)
    target_url = destination(config, role_class)
    logger.info(
        "launch for %s as %s, redirecting to %s", message_launch, role_class, target_url
    )
    response = RedirectResponse(
        url=target_url,
        status_code=status.HTTP_303_SEE_OTHER,
        headers=NO_CACHE_HEADERS,
    )
    sessions.set_cookie(response, session_id)
    return response


@router.post("/logout")
async def logout(request: Request, sessions: Sessions) -> Response:
    await sessions.destroy(sessions.session_id(request))
    response = Response(
        status_code=status.HTTP_204_NO_CONTENT, headers=NO_CACHE_HEADERS
    )
    sessions.clear_cookie(response)
    return response


@router.get("/health")
async def health_check(request: Request) -> dict[str, Any]:
    """Liveness check that echoes the non-secret configuration."""
    config = _config(request)
    registry = _registry(request)
    base_url = config.tool.base_url
    return {
        "status": "ok",
        "timestamp": datetime.datetime.now(tz=datetime.UTC).isoformat(),
        "version": __version__,
        "environment": config.tool.env,
        "lti": {
            "configured": registry.is_ready,
            "problems": registry.problems,
            "platforms": [_platform_info(r.model_dump(mode="json")) for r in registry],
            "login_url": f"{base_url}/lti/login" if base_url else None,
            "launch_url": config.tool.launch_url,
            "jwks_url": f"{base_url}/.well-known/jwks.json" if base_url else None,
        },
        "integrations": {
            "wordpress": request.app.state.progress.is_configured,
        },
    }


def _platform_info(data: Mapping[str, Any]) -> dict[str, Any]:
    keys = ("name", "issuer", "client_id", "deployment_id", "auth_url", "jwks_url")
    return {k: data.get(k) for k in keys}
