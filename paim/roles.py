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
LTI Roles

Maps the role URIs sent in the ``roles`` claim onto the three classes the
tool cares about. Matching is by exact value; anything not listed here is
ignored.
"""

import enum
from collections.abc import Iterable

CONTEXT_ROLE = "http://purl.imsglobal.org/vocab/lis/v2/membership#"
CONTEXT_SUB_ROLE = "http://purl.imsglobal.org/vocab/lis/v2/membership/"
SYSTEM_ROLE = "http://purl.imsglobal.org/vocab/lis/v2/system/person#"
INSTITUTION_ROLE = "http://purl.imsglobal.org/vocab/lis/v2/institution/person#"


class RoleClass(enum.Enum):
    INSTRUCTOR = "instructor"
    LEARNER = "learner"
    UNKNOWN = "unknown"


def _context_roles(role: str, sub_roles: Iterable[str]) -> set[str]:
    """Returns the full, sub-role and short forms of a context role."""
    uris = {role, f"{CONTEXT_ROLE}{role}"}
    uris.update(f"{CONTEXT_SUB_ROLE}{role}#{s}" for s in sub_roles)
    return uris


INSTRUCTOR_ROLES = frozenset(
    _context_roles(
        "Instructor",
        (
            "ExternalInstructor",
            "Grader",
            "GuestInstructor",
            "Lecturer",
            "PrimaryInstructor",
            "SecondaryInstructor",
            "TeachingAssistant",
            "TeachingAssistantGroup",
            "TeachingAssistantOffering",
            "TeachingAssistantSection",
            "TeachingAssistantSectionAssociation",
            "TeachingAssistantTemplate",
        ),
    )
    | _context_roles(
        "Administrator",
        (
            "Administrator",
            "Developer",
            "ExternalDeveloper",
            "ExternalSupport",
            "ExternalSystemAdministrator",
            "Support",
            "SystemAdministrator",
        ),
    )
    | _context_roles(
        "ContentDeveloper",
        (
            "ContentDeveloper",
            "ContentExpert",
            "ExternalContentExpert",
            "Librarian",
        ),
    )
    | {
        "TeachingAssistant",
        f"{SYSTEM_ROLE}Administrator",
        f"{SYSTEM_ROLE}SysAdmin",
    }
)

LEARNER_ROLES = frozenset(
    _context_roles(
        "Learner",
        (
            "ExternalLearner",
            "GuestLearner",
            "Learner",
            "NonCreditLearner",
        ),
    )
)

# Recognized, but they grant nothing in this tool.
UNKNOWN_ROLES = frozenset(
    _context_roles("Mentor", ())
    | _context_roles("Member", ())
    | _context_roles("Manager", ())
    | _context_roles("Officer", ())
    | {
        f"{INSTITUTION_ROLE}{r}"
        for r in (
            "Administrator",
            "Faculty",
            "Guest",
            "Instructor",
            "Learner",
            "Member",
            "Mentor",
            "Staff",
            "Student",
        )
    }
)


def classify(roles: Iterable[str] | None) -> RoleClass:
    """Returns the ``RoleClass`` for a set of LTI role URIs.

    A user may hold several roles; an instructor-like role always wins over
    a learner-like one.
    """
    role_set = set(roles or ())
    if role_set & INSTRUCTOR_ROLES:
        return RoleClass.INSTRUCTOR
    if role_set & LEARNER_ROLES:
        return RoleClass.LEARNER
    return RoleClass.UNKNOWN


def is_instructor(roles: Iterable[str] | None) -> bool:
    return classify(roles) is RoleClass.INSTRUCTOR


def is_learner(roles: Iterable[str] | None) -> bool:
    """Returns True if any role is learner-like, whatever else is held."""
    return bool(set(roles or ()) & LEARNER_ROLES)
