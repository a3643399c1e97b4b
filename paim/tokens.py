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
Random token generation

All values come from the ``secrets`` module (the OS CSPRNG). State, nonce
and session ids carry 256 bits of entropy and are base64url encoded so
they can be used in URLs, form posts and cookies without escaping.
"""

import secrets
import uuid

TOKEN_BYTES = 32


def generate_state() -> str:
    """Returns a single-use value binding a login redirect to the browser."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def generate_nonce() -> str:
    """Returns a single-use value binding an IDToken to a login attempt."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def generate_session_id() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


def generate_request_id() -> str:
    """Return a request id as a 32-character hex string."""
    return uuid.uuid4().hex
