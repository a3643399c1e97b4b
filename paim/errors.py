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
Error taxonomy

Every error raised on the login, launch and API paths derives from
``LtiError``. The ``description`` is what the user-agent sees and is
generic; the detail passed to the constructor is only
written to the logs.
"""

from fastapi import status


class LtiError(Exception):
    error = "server_error"
    description = "The request could not be processed"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail
        super().__init__(f"{self.error}: {detail or self.description}")

    def as_dict(self) -> dict[str, str]:
        return {"error": self.error, "error_description": self.description}


class MissingParameter(LtiError):
    error = "invalid_request"
    description = "A required parameter is missing"
    status_code = status.HTTP_400_BAD_REQUEST


class UnknownClient(LtiError):
    error = "unauthorized_client"
    description = "The platform or client is not registered with this tool"
    status_code = status.HTTP_400_BAD_REQUEST


class MissingToken(LtiError):
    error = "invalid_request"
    description = "The launch did not include an id_token"
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidState(LtiError):
    error = "invalid_state"
    description = "The launch could not be matched to a login, please relaunch"
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidNonce(LtiError):
    error = "invalid_nonce"
    description = "The launch could not be matched to a login, please relaunch"
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidToken(LtiError):
    error = "invalid_token"
    description = "The id_token could not be verified"
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidClaims(LtiError):
    error = "invalid_claims"
    description = "The id_token is not a valid LTI launch for this tool"
    status_code = status.HTTP_400_BAD_REQUEST


class NotAuthenticated(LtiError):
    error = "not_authenticated"
    description = "Please launch this tool from your course"
    status_code = status.HTTP_401_UNAUTHORIZED


class InvalidRequest(LtiError):
    error = "invalid_request"
    description = "The request body is not valid"
    status_code = status.HTTP_400_BAD_REQUEST


class Forbidden(LtiError):
    error = "forbidden"
    description = "Your course role does not give access to this resource"
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(LtiError):
    error = "not_found"
    description = "The requested resource was not found"
    status_code = status.HTTP_404_NOT_FOUND


class NoCourseContext(LtiError):
    error = "no_course_context"
    description = "This launch did not come from a course"
    status_code = status.HTTP_409_CONFLICT


class GatewayUnavailable(LtiError):
    error = "gateway_unavailable"
    description = "Course content is temporarily unavailable, please try again"
    status_code = status.HTTP_502_BAD_GATEWAY


class ConfigurationError(LtiError):
    error = "configuration_error"
    description = "This tool is not fully configured"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
