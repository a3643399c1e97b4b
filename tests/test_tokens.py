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


import unittest

from paim import tokens


class TokensTestCase(unittest.TestCase):
    def test_state_and_nonce_are_unique(self) -> None:
        values = set()
        for _ in range(10_000):
            values.add(tokens.generate_state())
            values.add(tokens.generate_nonce())
        self.assertEqual(len(values), 20_000)

    def test_entropy_and_encoding(self) -> None:
        for value in (
            tokens.generate_state(),
            tokens.generate_nonce(),
            tokens.generate_session_id(),
        ):
            # 32 bytes base64url encoded without padding
            self.assertEqual(len(value), 43)
            self.assertRegex(value, r"^[A-Za-z0-9_-]+$")

    def test_request_id(self) -> None:
        rid = tokens.generate_request_id()
        self.assertRegex(rid, r"^[0-9a-f]{32}$")
        self.assertNotEqual(rid, tokens.generate_request_id())
