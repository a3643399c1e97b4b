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
Platform Registrations

A ``PlatformRegistration`` is what the LMS administrator gives us when the
tool is installed: the issuer, the client id assigned to the tool, the
deployment id and the platform's OIDC endpoints. The registry is loaded
once at startup and keyed by ``(issuer, client_id)``.
"""

import json
import logging
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any, Self

from pydantic import BaseModel, HttpUrl, ValidationError

from . import settings
from .errors import ConfigurationError, UnknownClient

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("issuer", "client_id", "deployment_id", "auth_url", "jwks_url")


class PlatformRegistration(BaseModel):
    """Learning Management System (LMS) Platform registration."""

    model_config = {"frozen": True}

    name: str | None = None
    issuer: str
    client_id: str
    deployment_id: str
    auth_url: HttpUrl
    jwks_url: HttpUrl

    @property
    def key(self) -> tuple[str, str]:
        return self.issuer, self.client_id

    def __str__(self) -> str:
        return f"Platform({self.name or self.issuer}, {self.client_id})"


class PlatformRegistry:
    """All ``PlatformRegistration`` entries known to this tool.

    ``problems`` lists configuration that was started but left incomplete.
    A registry with problems, or without any registrations, refuses every
    lookup with a ``ConfigurationError`` so the login and launch routes
    fail fast instead of falling back to a partial registration.
    """

    def __init__(
        self,
        registrations: Iterable[PlatformRegistration],
        problems: Iterable[str] = (),
    ) -> None:
        self._registrations: dict[tuple[str, str], PlatformRegistration] = {}
        for reg in registrations:
            if reg.key in self._registrations:
                msg = f"Duplicate platform registration for {reg.key}"
                raise ConfigurationError(msg)
            self._registrations[reg.key] = reg
        self.problems = list(problems)

    def __iter__(self) -> Iterator[PlatformRegistration]:
        return iter(self._registrations.values())

    def __len__(self) -> int:
        return len(self._registrations)

    @property
    def is_ready(self) -> bool:
        return bool(self._registrations) and not self.problems

    def require(self) -> None:
        """Raises a ``ConfigurationError`` if the registry can not be used."""
        if self.problems:
            raise ConfigurationError("; ".join(self.problems))
        if not self._registrations:
            raise ConfigurationError("No platform registrations configured")

    def find(self, issuer: str, client_id: str | None = None) -> PlatformRegistration:
        """Returns the registration for a login initiation request.

        When the platform does not send a ``client_id`` the issuer alone
        must identify exactly one registration.
        """
        self.require()
        if client_id:
            return self.get(issuer, client_id)

        candidates = [r for r in self if r.issuer == issuer]
        if len(candidates) == 1:
            return candidates[0]
        if not candidates:
            raise UnknownClient(f"issuer [{issuer}] is not registered")
        msg = f"issuer [{issuer}] has {len(candidates)} registrations, need client_id"
        raise UnknownClient(msg)

    def get(self, issuer: str, client_id: str) -> PlatformRegistration:
        self.require()
        try:
            return self._registrations[(issuer, client_id)]
        except KeyError:
            msg = f"client_id [{client_id}] is not registered for issuer [{issuer}]"
            raise UnknownClient(msg) from None

    @classmethod
    def from_settings(cls, platform_settings: settings.PlatformSettings) -> Self:
        """Builds the registry from the ``LTI_`` environment settings."""
        registrations: list[PlatformRegistration] = []
        problems: list[str] = []

        values = {f: getattr(platform_settings, f) for f in REQUIRED_FIELDS}
        if any(values.values()):
            if missing := [f for f, v in values.items() if not v]:
                problems.extend(f"LTI_{f.upper()} is not set" for f in missing)
            else:
                registrations.append(
                    _registration({"name": platform_settings.name, **values})
                )

        if platform_settings.platforms:
            for entry in _load_platforms(platform_settings.platforms):
                registrations.append(_registration(entry))

        registry = cls(registrations, problems)
        for reg in registry:
            logger.info("Registered %s, deployment [%s]", reg, reg.deployment_id)
        for problem in registry.problems:
            logger.error("Platform configuration: %s", problem)
        return registry


def _registration(data: dict[str, Any]) -> PlatformRegistration:
    try:
        return PlatformRegistration.model_validate(data)
    except ValidationError as exc:
        msg = f"Invalid platform registration: {exc}"
        raise ConfigurationError(msg) from None


def _load_platforms(value: str) -> list[dict[str, Any]]:
    """Load platform registrations from a JSON string or file path."""
    stripped = value.strip()
    try:
        if stripped.startswith(("{", "[")):
            data = json.loads(stripped)
        else:
            data = json.loads(Path(stripped).read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        msg = f"Unable to load LTI_PLATFORMS: {exc}"
        raise ConfigurationError(msg) from None

    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list) or not all(isinstance(d, dict) for d in data):
        raise ConfigurationError("LTI_PLATFORMS must be a JSON object or list")
    return data
