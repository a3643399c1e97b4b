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
PAIM Database

This package defines the models and the cache store used to persist
server-side sessions.
"""

from . import store
from .core import async_session, create_tables, engine
from .models import Base

__all__ = [
    "Base",
    "async_session",
    "create_tables",
    "engine",
    "store",
]
