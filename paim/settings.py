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
Application Settings and Configuration

Application-wide configuration settings that are read in from the Environment.
Settings are grouped by concern and bundled into an ``AppConfig`` that is
handed to ``paim.app.create_app``; nothing outside of logging and the
database engine reads the environment directly.
"""

import contextvars
import dataclasses
import logging
from pathlib import Path
from typing import Any, Literal, Self

import pydantic_settings
from pydantic import SecretStr, field_validator

from . import tokens

BASE_PATH = Path(__file__).parent.parent

VALID_ENVIRONMENTS = ("local", "sandbox", "dev", "prod")


@dataclasses.dataclass(frozen=True)
class RequestContext:
    """Context information to pass from routes to other services."""

    request_id: str
    client_ip: str | None


CTX_REQUEST: contextvars.ContextVar[RequestContext] = contextvars.ContextVar(
    "RequestContext",
    default=RequestContext(  # noqa: B039
        request_id=tokens.generate_request_id(),
        client_ip=None,
    ),
)


class SharedSettings(pydantic_settings.BaseSettings):
    model_config = {"env_file": BASE_PATH / ".env", "frozen": True, "extra": "ignore"}


class LogSettings(SharedSettings, env_prefix="LOG_"):
    level_root: str = "WARNING"
    level_app: str = "INFO"
    level_uvicorn: str = "INFO"


class DatabaseSettings(SharedSettings, env_prefix="PAIM_DB_"):
    url: str = (
        f"sqlite+aiosqlite:///{BASE_PATH}/paim_db.sqlite?check_same_thread=False"
    )
    debug: bool = False


class ToolSettings(SharedSettings, env_prefix="PAIM_"):
    """Main tool settings.

    The attributes are populated from OS environment variables that are
    prefixed by ``PAIM_``.
    """

    env: str = "local"
    debug: bool = False
    port: int = 8443
    base_url: str | None = None
    session_secret: SecretStr | None = None
    session_backend: Literal["database", "memory"] = "database"
    session_ttl: int = 60 * 60 * 24
    cookie_name: str = "paim.sid"
    cookie_secure: bool = True
    cookie_samesite: Literal["lax", "strict", "none"] = "none"
    student_dashboard_path: str = "/student-dashboard"
    admin_dashboard_path: str = "/admin-dashboard"
    landing_path: str = "/welcome"
    frontend_url: str | None = None
    jwks_cache_ttl: int = 600
    clock_skew: int = 60
    http_timeout: float = 10.0
    tool_jwks: str | None = None

    @field_validator("env")
    def _verify_environment(cls, v: str) -> str:
        """Raises a ``ValueError`` if the provided environment is not valid."""
        if v not in VALID_ENVIRONMENTS:
            msg = f"Invalid env [{v}], must be one of: {' '.join(VALID_ENVIRONMENTS)}"
            raise ValueError(msg)

        db_url = DatabaseSettings().url
        if db_url.startswith("sqlite") and v != "local":
            msg = "Sqlite DB_URL should only be used in local environments"
            raise ValueError(msg)

        return v

    @field_validator("session_secret")
    def _verify_session_secret(cls, v: SecretStr | None) -> SecretStr | None:
        if v is not None and len(v.get_secret_value()) < 32:  # noqa: PLR2004
            raise ValueError("PAIM_SESSION_SECRET must be at least 32 characters")
        return v

    @field_validator("base_url", "frontend_url")
    def _strip_trailing_slash(cls, v: str | None) -> str | None:
        return v.rstrip("/") if v else v

    @property
    def is_production(self) -> bool:
        """Returns True if the environment is set to Production mode."""
        return self.env == "prod"

    @property
    def is_local(self) -> bool:
        """Returns True if the environment is set to Local mode."""
        return self.env == "local"

    @property
    def launch_url(self) -> str | None:
        """The pre-registered ``redirect_uri`` for this tool."""
        return f"{self.base_url}/lti/launch" if self.base_url else None


class PlatformSettings(SharedSettings, env_prefix="LTI_"):
    """Registration of the Platform (LMS) with this tool.

    A single registration may be given with the individual variables, and
    more can be listed in ``LTI_PLATFORMS`` as either JSON text or a path
    to a JSON file.
    """

    name: str | None = None
    issuer: str | None = None
    client_id: str | None = None
    deployment_id: str | None = None
    auth_url: str | None = None
    jwks_url: str | None = None
    platforms: str | None = None


class GatewaySettings(SharedSettings, env_prefix="WORDPRESS_"):
    url: str | None = None
    api_user: str | None = None
    api_password: SecretStr | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self.url)


@dataclasses.dataclass(frozen=True)
class AppConfig:
    """All of the configuration the application is built from."""

    tool: ToolSettings
    platform: PlatformSettings
    gateway: GatewaySettings

    @classmethod
    def from_env(cls, **tool_overrides: Any) -> Self:
        return cls(
            tool=ToolSettings(**tool_overrides),
            platform=PlatformSettings(),
            gateway=GatewaySettings(),
        )


db = DatabaseSettings()
log = LogSettings()

_old_log_factory = logging.getLogRecordFactory()


def _new_log_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
    record = _old_log_factory(*args, **kwargs)
    record.request_id = CTX_REQUEST.get().request_id
    return record


logging.setLogRecordFactory(_new_log_factory)
logging.basicConfig(
    format="%(asctime)s[%(levelname)s][%(request_id)s]%(name)s: %(message)s",
    level=log.level_root,
)
logging.getLogger("uvicorn").setLevel(log.level_uvicorn)
logging.getLogger(__package__).setLevel(log.level_app)
