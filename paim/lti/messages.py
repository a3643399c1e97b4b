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
LTI Messages

Validates the LTI specific claims of a verified IDToken and turns a
Resource Link launch into an ``AuthenticatedSession``.
"""

import logging
from collections.abc import Mapping
from typing import Any

from .. import schemas
from ..errors import InvalidClaims
from ..registry import PlatformRegistration

MESSAGE_TYPE_KEY = "https://purl.imsglobal.org/spec/lti/claim/message_type"
MESSAGE_VERSION_KEY = "https://purl.imsglobal.org/spec/lti/claim/version"
MESSAGE_DEPLOYMENT_ID_KEY = "https://purl.imsglobal.org/spec/lti/claim/deployment_id"
MESSAGE_CONTEXT_KEY = "https://purl.imsglobal.org/spec/lti/claim/context"
MESSAGE_RESOURCE_LINK_KEY = "https://purl.imsglobal.org/spec/lti/claim/resource_link"
MESSAGE_ROLES_KEY = "https://purl.imsglobal.org/spec/lti/claim/roles"
MESSAGE_TARGET_LINK_URI_KEY = (
    "https://purl.imsglobal.org/spec/lti/claim/target_link_uri"
)

RESOURCE_LINK_REQUEST = "LtiResourceLinkRequest"
LTI_VERSION = "1.3.0"

logger = logging.getLogger(__name__)


class LtiLaunchRequest:
    """LTI Resource Link Launch Request.

    Wraps the claims of an IDToken whose signature, issuer, audience and
    timestamps have already been verified.
    """

    def __init__(
        self, registration: PlatformRegistration, message: Mapping[str, Any]
    ) -> None:
        self.registration = registration
        self.message = message

    def validate(self) -> None:
        """Raises ``InvalidClaims`` unless this is a launch meant for us."""
        message_type = self.message.get(MESSAGE_TYPE_KEY)
        if message_type != RESOURCE_LINK_REQUEST:
            raise InvalidClaims(f"message_type [{message_type}]")
        if (version := self.message.get(MESSAGE_VERSION_KEY)) != LTI_VERSION:
            raise InvalidClaims(f"version [{version}]")
        deployment_id = self.message.get(MESSAGE_DEPLOYMENT_ID_KEY)
        if deployment_id != self.registration.deployment_id:
            msg = (
                f"deployment_id [{deployment_id}] does not match "
                f"[{self.registration.deployment_id}]"
            )
            raise InvalidClaims(msg)
        if not isinstance(self.message.get("sub"), str) or not self.message["sub"]:
            raise InvalidClaims("sub is missing")
        if not isinstance(self.message.get(MESSAGE_ROLES_KEY, []), list):
            raise InvalidClaims("roles is not a list")

    @property
    def sub(self) -> str:
        return self.message["sub"]  # type: ignore[no-any-return]

    @property
    def roles(self) -> list[str]:
        """Returns every role string in the message."""
        claim = self.message.get(MESSAGE_ROLES_KEY) or []
        return [r for r in claim if isinstance(r, str)]

    @property
    def display_name(self) -> str | None:
        if name := self.message.get("name"):
            return str(name)
        parts = [self.message.get("given_name"), self.message.get("family_name")]
        return " ".join(str(p) for p in parts if p) or None

    @property
    def context(self) -> schemas.CourseContext | None:
        """Returns the Course information from the request."""
        claim = self.message.get(MESSAGE_CONTEXT_KEY)
        if not isinstance(claim, Mapping) or not claim.get("id"):
            return None
        return schemas.CourseContext(
            id=str(claim["id"]),
            label=claim.get("label"),
            title=claim.get("title"),
        )

    @property
    def resource_link(self) -> schemas.ResourceLink | None:
        claim = self.message.get(MESSAGE_RESOURCE_LINK_KEY)
        if not isinstance(claim, Mapping) or not claim.get("id"):
            return None
        return schemas.ResourceLink(id=str(claim["id"]), title=claim.get("title"))

    @property
    def target_link_uri(self) -> str | None:
        return self.message.get(MESSAGE_TARGET_LINK_URI_KEY)

    def authenticated_session(self) -> schemas.AuthenticatedSession:
        """Returns the identity to store in the session for this launch."""
        return schemas.AuthenticatedSession(
            subject=self.sub,
            display_name=self.display_name,
            email=self.message.get("email") or None,
            roles=self.roles,
            course_context=self.context,
            resource_link=self.resource_link,
            issuer=self.registration.issuer,
            client_id=self.registration.client_id,
            deployment_id=self.registration.deployment_id,
        )

    def __str__(self) -> str:
        return (
            f"LtiLaunchRequest(sub={self.message.get('sub')!r}, "
            f"platform={self.registration})"
        )
