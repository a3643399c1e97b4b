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
FastAPI main entry point

``create_app`` builds the application from an ``AppConfig``. Everything a
request needs (registry, key set cache, verifier, sessions and the
progress service) is constructed here once and kept on ``app.state``.
"""

import asyncio
import contextlib
import logging
import secrets
from collections.abc import AsyncIterator

import fastapi
import httpx
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import __version__, db, keys, middleware, routes
from .errors import ConfigurationError, InvalidRequest, LtiError
from .gateway import WordPressGateway
from .registry import PlatformRegistry
from .services import ProgressService
from .sessions import DatabaseBackend, MemoryBackend, SessionBackend, SessionStore
from .settings import AppConfig

logger = logging.getLogger(__name__)

NO_STORE_HEADERS = {"Cache-Control": "no-store"}


def _session_secret(config: AppConfig) -> str:
    if config.tool.session_secret is not None:
        return config.tool.session_secret.get_secret_value()
    if not config.tool.is_local:
        raise ConfigurationError("PAIM_SESSION_SECRET is not set")
    logger.warning("PAIM_SESSION_SECRET is not set, using a random secret")
    return secrets.token_urlsafe(32)


def _session_backend(config: AppConfig) -> SessionBackend:
    if config.tool.session_backend == "memory":
        if not config.tool.is_local:
            logger.warning("Memory sessions are not shared between workers")
        return MemoryBackend()
    return DatabaseBackend()


async def lti_error_handler(_: fastapi.Request, exc: LtiError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.warning  # noqa: PLR2004
    log("%s: %s", type(exc).__name__, exc.detail or exc.description)
    return JSONResponse(
        content=exc.as_dict(),
        status_code=exc.status_code,
        headers=NO_STORE_HEADERS,
    )


async def validation_error_handler(
    request: fastapi.Request, exc: RequestValidationError
) -> JSONResponse:
    return await lti_error_handler(request, InvalidRequest(repr(exc.errors())))


def create_app(
    config: AppConfig | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> fastapi.FastAPI:
    """Returns the configured application.

    ``http_client`` is used for every outbound call (platform JWKS and
    WordPress). When not given one is created and closed with the app.
    """
    if config is None:
        config = AppConfig.from_env()
    tool = config.tool
    logger.info("Environment [%s], Is Production: %s", tool.env, tool.is_production)

    registry = PlatformRegistry.from_settings(config.platform)
    owns_client = http_client is None
    if http_client is None:
        http_client = httpx.AsyncClient(timeout=tool.http_timeout)

    key_sets = keys.KeySetCache(
        http_client, expire_in=tool.jwks_cache_ttl, timeout=tool.http_timeout
    )
    verifier = keys.TokenVerifier(key_sets, leeway=tool.clock_skew)

    sessions = SessionStore(
        _session_backend(config),
        _session_secret(config),
        ttl=tool.session_ttl,
        cookie_name=tool.cookie_name,
        cookie_secure=tool.cookie_secure,
        cookie_samesite=tool.cookie_samesite,
    )
    if tool.cookie_samesite == "none" and not tool.cookie_secure:
        logger.warning("SameSite=None cookies without Secure are rejected by browsers")

    gateway = None
    if config.gateway.is_configured:
        password = config.gateway.api_password
        gateway = WordPressGateway(
            http_client,
            str(config.gateway.url),
            username=config.gateway.api_user,
            password=password.get_secret_value() if password else None,
            timeout=tool.http_timeout,
        )
    else:
        logger.warning("WORDPRESS_URL is not set, course content is unavailable")

    @contextlib.asynccontextmanager
    async def lifespan(_: fastapi.FastAPI) -> AsyncIterator[None]:
        logger.info("Running in loop [%r]", asyncio.get_running_loop())
        if isinstance(sessions.backend, DatabaseBackend):
            await db.create_tables()
        try:
            yield
        finally:
            if owns_client:
                await http_client.aclose()
            logger.info("closing db engine connections")
            await db.engine.dispose()

    app = fastapi.FastAPI(
        title="ICN PAIM LTI",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if tool.is_local else None,
        redoc_url=None,
        openapi_url="/openapi.json" if tool.is_local else None,
        debug=tool.debug,
        middleware=middleware.handlers,
    )
    app.add_exception_handler(LtiError, lti_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(
        RequestValidationError,
        validation_error_handler,  # type: ignore[arg-type]
    )

    app.state.config = config
    app.state.registry = registry
    app.state.http_client = http_client
    app.state.key_sets = key_sets
    app.state.verifier = verifier
    app.state.sessions = sessions
    app.state.progress = ProgressService(gateway)
    app.state.tool_jwks = keys.tool_key_set(tool.tool_jwks)

    app.include_router(routes.create_router(tool))
    return app
