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


import datetime

import sqlalchemy as sa
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
)


class Base(DeclarativeBase):
    pass


class Cache(Base):
    """Cache table.

    Holds server-side session data, and anything else that needs to expire,
    without depending on a service like Redis. Entries are either ``fixed``
    (expire ``ttl`` seconds after being written) or ``rolling`` (every read
    pushes the expiry out by ``ttl`` seconds).
    """

    __tablename__ = "cache_objects"

    key: Mapped[str] = mapped_column(sa.String(255), primary_key=True)
    ttl: Mapped[int] = mapped_column(sa.Integer, default=3600)
    ttl_type: Mapped[str] = mapped_column(sa.String(10), default="fixed")
    expire_at: Mapped[datetime.datetime]
    value: Mapped[str]

    def __repr__(self) -> str:
        return (
            f"Cache(key={self.key!r}, "
            f"ttl={self.ttl}, "
            f"ttl_type={self.ttl_type}, "
            f"expire_at={self.expire_at}"
            ")"
        )
