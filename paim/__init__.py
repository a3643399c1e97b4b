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
ICN PAIM LTI 1.3 Tool

Launches the ICN PAIM learning units from Blackboard via LTI 1.3 and
serves per-student unit progress backed by WordPress.
"""

__version__ = "2025.3.1"
