# Copyright 2022 The Matrix.org Foundation C.I.C.
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
import argparse
import json
from io import StringIO
from typing import Any, Awaitable, Callable
from unittest.mock import patch

from twisted.test.proto_helpers import MemoryReactor

from roommember.api.constants import Membership, MembershipAction
from roommember.api.errors import AuthError, Codes, SynapseError
from roommember.app.admin_cmd import (
    create_room_command,
    deactivate_user_command,
    membership_command,
    register_user_command,
    set_power_level_command,
    show_membership_command,
)
from roommember.server import HomeServer
from roommember.types import JsonDict
from roommember.util import Clock

from tests import unittest

Command = Callable[[HomeServer, argparse.Namespace], Awaitable[None]]


class AdminCommandTestCase(unittest.HomeserverTestCase):
    def prepare(self, reactor: MemoryReactor, clock: Clock, hs: HomeServer) -> None:
        self.store = hs.get_datastores().main

    def _run_command(self, command: Command, **kwargs: Any) -> JsonDict:
        """Run an admin command and return the JSON it printed."""
        with patch("sys.stdout", new_callable=StringIO) as stdout:
            self.get_success(command(self.hs, argparse.Namespace(**kwargs)))
        return json.loads(stdout.getvalue())

    def _create_room(self, creator: str, public: bool = False) -> str:
        result = self._run_command(create_room_command, creator=creator, public=public)
        return result["room_id"]

    def test_register_user(self) -> None:
        result = self._run_command(register_user_command, user_id="@alice:test")

        self.assertEqual(result, {"user_id": "@alice:test"})
        self.assertIsNotNone(self.get_success(self.store.get_user_by_id("@alice:test")))

    def test_register_user_on_other_server(self) -> None:
        f = self.get_failure(
            register_user_command(
                self.hs, argparse.Namespace(user_id="@alice:elsewhere")
            ),
            SynapseError,
        )
        self.assertEqual(f.value.code, 400)
        self.assertEqual(f.value.errcode, Codes.INVALID_PARAM)

    def test_register_user_invalid_localpart(self) -> None:
        f = self.get_failure(
            register_user_command(self.hs, argparse.Namespace(user_id="@Alice:test")),
            SynapseError,
        )
        self.assertEqual(f.value.errcode, Codes.INVALID_USERNAME)

    def test_deactivate_user(self) -> None:
        self._run_command(register_user_command, user_id="@alice:test")

        result = self._run_command(
            deactivate_user_command, user_id="@alice:test", reactivate=False
        )
        self.assertEqual(result, {"user_id": "@alice:test", "deactivated": True})
        self.assertTrue(
            self.get_success(self.store.get_user_deactivated_status("@alice:test"))
        )

        self._run_command(
            deactivate_user_command, user_id="@alice:test", reactivate=True
        )
        self.assertFalse(
            self.get_success(self.store.get_user_deactivated_status("@alice:test"))
        )

    def test_create_room(self) -> None:
        result = self._run_command(
            create_room_command, creator="@alice:test", public=True
        )

        self.assertEqual(result["creator"], "@alice:test")
        self.assertTrue(result["is_public"])
        self.assertEqual(result["membership"], Membership.JOIN)

        room = self.get_success(self.store.get_room(result["room_id"]))
        self.assertTrue(room.is_public)

    @unittest.override_config({"allow_creator_join": False})
    def test_create_private_room_without_creator_join(self) -> None:
        f = self.get_failure(
            create_room_command(
                self.hs, argparse.Namespace(creator="@alice:test", public=False)
            ),
            SynapseError,
        )
        self.assertEqual(f.value.code, 400)
        self.assertEqual(f.value.errcode, Codes.INVALID_PARAM)

        # No room was left behind.
        rooms = self.get_success(
            self.store.db_pool.simple_select_list("rooms", None, ("room_id",))
        )
        self.assertEqual(rooms, [])

    @unittest.override_config({"allow_creator_join": False})
    def test_create_public_room_without_creator_join(self) -> None:
        result = self._run_command(
            create_room_command, creator="@alice:test", public=True
        )
        self.assertEqual(result["membership"], Membership.JOIN)

    def test_set_power_level(self) -> None:
        room_id = self._create_room("@alice:test")

        result = self._run_command(
            set_power_level_command,
            room_id=room_id,
            user=["@bob:test=50"],
            kick=75,
            ban=None,
            invite=None,
            users_default=None,
        )

        self.assertEqual(
            result["power_levels"]["users"], {"@alice:test": 100, "@bob:test": 50}
        )

        levels = self.get_success(self.store.get_current_power_levels(room_id))
        self.assertEqual(levels.get_user_power_level("@alice:test"), 100)
        self.assertEqual(levels.get_user_power_level("@bob:test"), 50)
        self.assertEqual(levels.kick, 75)
        self.assertEqual(levels.ban, 50)

    def test_set_power_level_bad_user_level(self) -> None:
        room_id = self._create_room("@alice:test")

        for user_level in ("50", "@bob:test=high"):
            self.get_failure(
                set_power_level_command(
                    self.hs,
                    argparse.Namespace(
                        room_id=room_id,
                        user=[user_level],
                        kick=None,
                        ban=None,
                        invite=None,
                        users_default=None,
                    ),
                ),
                SynapseError,
            )

    def test_membership_and_show_membership(self) -> None:
        self._run_command(register_user_command, user_id="@bob:test")
        room_id = self._create_room("@alice:test")

        result = self._run_command(
            membership_command,
            actor="@alice:test",
            target="@bob:test",
            room_id=room_id,
            action=MembershipAction.INVITE,
            reason="welcome",
        )
        self.assertEqual(
            result,
            {
                "room_id": room_id,
                "user_id": "@bob:test",
                "membership": Membership.INVITE,
                "sender": "@alice:test",
                "reason": "welcome",
                "version": 1,
            },
        )

        result = self._run_command(
            show_membership_command, room_id=room_id, user_id=None, membership=None
        )
        self.assertEqual(
            result["members"],
            {"@alice:test": Membership.JOIN, "@bob:test": Membership.INVITE},
        )

        result = self._run_command(
            show_membership_command,
            room_id=room_id,
            user_id="@bob:test",
            membership=None,
        )
        self.assertEqual(result["membership"], Membership.INVITE)

    def test_membership_refused(self) -> None:
        room_id = self._create_room("@alice:test")

        self.get_failure(
            membership_command(
                self.hs,
                argparse.Namespace(
                    actor="@bob:test",
                    target="@bob:test",
                    room_id=room_id,
                    action=MembershipAction.JOIN,
                    reason=None,
                ),
            ),
            AuthError,
        )
