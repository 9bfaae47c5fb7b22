# Copyright 2014-2016 OpenMarket Ltd
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

from parameterized import parameterized

from roommember.api.errors import SynapseError
from roommember.types import RoomID, UserID, contains_invalid_mxid_characters
from roommember.util.stringutils import parse_and_validate_server_name

from tests import unittest


class UserIDTestCase(unittest.TestCase):
    def test_parse(self) -> None:
        user = UserID.from_string("@1234abcd:test")

        self.assertEqual("1234abcd", user.localpart)
        self.assertEqual("test", user.domain)

    def test_parse_rejects_empty_id(self) -> None:
        with self.assertRaises(SynapseError):
            UserID.from_string("")

    def test_parse_rejects_missing_sigil(self) -> None:
        with self.assertRaises(SynapseError):
            UserID.from_string("alice:example.com")

    def test_parse_rejects_missing_separator(self) -> None:
        with self.assertRaises(SynapseError):
            UserID.from_string("@alice.example.com")

    def test_build(self) -> None:
        user = UserID("5678efgh", "my.domain")

        self.assertEqual(user.to_string(), "@5678efgh:my.domain")

    def test_compare(self) -> None:
        userA = UserID.from_string("@userA:my.domain")
        userAagain = UserID.from_string("@userA:my.domain")
        userB = UserID.from_string("@userB:my.domain")

        self.assertTrue(userA == userAagain)
        self.assertTrue(userA != userB)

    @parameterized.expand(
        [
            ("@alice:example.com", True),
            ("@alice:example.com:8448", True),
            ("@alice:[::1]", True),
            ("@:example.com", False),
            ("@alice:", False),
            ("@alice:bad_domain", False),
            ("@alice:[::1", False),
            ("!alice:example.com", False),
            ("@" + "a" * 255 + ":example.com", False),
        ]
    )
    def test_is_valid(self, user_id: str, valid: bool) -> None:
        self.assertEqual(UserID.is_valid(user_id), valid)


class RoomIDTestCase(unittest.TestCase):
    def test_parse(self) -> None:
        room = RoomID.from_string("!abc123:my.domain")

        self.assertEqual("abc123", room.localpart)
        self.assertEqual("my.domain", room.domain)

    def test_build(self) -> None:
        room = RoomID("xyz987", "my.domain")

        self.assertEqual(room.to_string(), "!xyz987:my.domain")

    def test_generate(self) -> None:
        room = RoomID.generate("my.domain")

        self.assertEqual(room.domain, "my.domain")
        self.assertEqual(len(room.localpart), 18)
        self.assertTrue(RoomID.is_valid(room.to_string()))
        self.assertNotEqual(room, RoomID.generate("my.domain"))

    def test_is_valid(self) -> None:
        self.assertTrue(RoomID.is_valid("!room:my.domain"))
        self.assertFalse(RoomID.is_valid("#room:my.domain"))
        self.assertFalse(RoomID.is_valid("!room"))


class MxidCharactersTestCase(unittest.TestCase):
    def test_valid_localparts(self) -> None:
        for localpart in ("alice", "a.b-c_d=e/f", "123"):
            self.assertFalse(contains_invalid_mxid_characters(localpart), localpart)

    def test_invalid_localparts(self) -> None:
        for localpart in ("Alice", "a b", "al!ce", "ü"):
            self.assertTrue(contains_invalid_mxid_characters(localpart), localpart)


class ServerNameTestCase(unittest.TestCase):
    def test_parse_and_validate_server_name(self) -> None:
        test_data = {
            "localhost": ("localhost", None),
            "my-example.com:1234": ("my-example.com", 1234),
            "1.2.3.4": ("1.2.3.4", None),
            "[0abc:1def::1234]": ("[0abc:1def::1234]", None),
            "1.2.3.4:1": ("1.2.3.4", 1),
            "[0abc:1def::1234]:8080": ("[0abc:1def::1234]", 8080),
        }
        for server_name, expected in test_data.items():
            self.assertEqual(parse_and_validate_server_name(server_name), expected)

        for server_name in (
            "",
            "localhost:http",  # non-numeric port
            "my_example.com",  # underscore not allowed
            "[0abc:1def::1234",  # mismatched brackets
            "[]",  # empty ipv6 literal
            "[0abc:1def::1234]:",  # empty port
        ):
            with self.assertRaises(ValueError, msg=server_name):
                parse_and_validate_server_name(server_name)
