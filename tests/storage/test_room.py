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

from twisted.test.proto_helpers import MemoryReactor

from roommember.api.errors import Codes, StoreError, SynapseError
from roommember.server import HomeServer
from roommember.storage.databases.main.room import RoomInfo
from roommember.types import RoomID, UserID
from roommember.util import Clock

from tests import unittest


class RoomStoreTestCase(unittest.HomeserverTestCase):
    def prepare(self, reactor: MemoryReactor, clock: Clock, hs: HomeServer) -> None:
        self.store = hs.get_datastores().main

        self.u_creator = UserID.from_string("@creator:test").to_string()
        self.room = RoomID.from_string("!abcde:test").to_string()

        self.get_success(
            self.store.store_room(self.room, self.u_creator, is_public=True)
        )

    def test_get_room(self) -> None:
        self.assertEqual(
            self.get_success(self.store.get_room(self.room)),
            RoomInfo(room_id=self.room, creator=self.u_creator, is_public=True),
        )

    def test_get_room_unknown_room(self) -> None:
        self.assertIsNone(self.get_success(self.store.get_room("!uknown:test")))

    def test_store_room_twice(self) -> None:
        f = self.get_failure(
            self.store.store_room(self.room, "@other:test", is_public=False),
            StoreError,
        )
        self.assertEqual(f.value.code, 500)

        # The original room is untouched.
        room = self.get_success(self.store.get_room(self.room))
        self.assertEqual(room.creator, self.u_creator)


class RoomPowerLevelsTestCase(unittest.HomeserverTestCase):
    def prepare(self, reactor: MemoryReactor, clock: Clock, hs: HomeServer) -> None:
        self.store = hs.get_datastores().main

        self.u_creator = "@creator:test"
        self.u_alice = "@alice:test"
        self.room = "!room:test"

        self.get_success(self.store.store_room(self.room, self.u_creator, False))

    def test_default_power_levels(self) -> None:
        levels = self.get_success(self.store.get_current_power_levels(self.room))

        self.assertEqual(levels.get_user_power_level(self.u_creator), 100)
        self.assertEqual(levels.get_user_power_level(self.u_alice), 0)
        self.assertEqual(levels.kick, 50)
        self.assertEqual(levels.ban, 50)
        self.assertEqual(levels.invite, 0)

        # Nothing has been stored.
        self.assertIsNone(
            self.get_success(self.store.get_power_levels_content(self.room))
        )

    @unittest.override_config(
        {
            "membership": {
                "default_power_levels": {"kick": 10, "invite": 5},
                "creator_power_level": 20,
            }
        }
    )
    def test_configured_default_power_levels(self) -> None:
        levels = self.get_success(self.store.get_current_power_levels(self.room))

        self.assertEqual(levels.get_user_power_level(self.u_creator), 20)
        self.assertEqual(levels.kick, 10)
        self.assertEqual(levels.ban, 50)
        self.assertEqual(levels.invite, 5)

    def test_set_power_levels(self) -> None:
        content = {"users": {self.u_alice: 60}, "kick": 55}
        self.get_success(self.store.set_power_levels(self.room, content))

        self.assertEqual(
            self.get_success(self.store.get_power_levels_content(self.room)), content
        )

        levels = self.get_success(self.store.get_current_power_levels(self.room))
        self.assertEqual(levels.get_user_power_level(self.u_alice), 60)
        self.assertEqual(levels.kick, 55)
        # Missing thresholds come from the configured defaults.
        self.assertEqual(levels.ban, 50)
        # Once power levels are stored the creator is only as powerful as they say.
        self.assertEqual(levels.get_user_power_level(self.u_creator), 0)

    def test_set_power_levels_replaces_document(self) -> None:
        self.get_success(
            self.store.set_power_levels(self.room, {"users": {self.u_alice: 60}})
        )
        self.get_success(self.store.set_power_levels(self.room, {"ban": 10}))

        levels = self.get_success(self.store.get_current_power_levels(self.room))
        self.assertEqual(levels.get_user_power_level(self.u_alice), 0)
        self.assertEqual(levels.ban, 10)

    def test_set_power_levels_invalid(self) -> None:
        for content in (
            {"kick": "fifty"},
            {"users": {self.u_alice: "high"}},
            {"redact": 50},
        ):
            f = self.get_failure(
                self.store.set_power_levels(self.room, content), SynapseError
            )
            self.assertEqual(f.value.code, 400)
            self.assertEqual(f.value.errcode, Codes.BAD_JSON)

        self.assertIsNone(
            self.get_success(self.store.get_power_levels_content(self.room))
        )

    def test_set_power_levels_unknown_room(self) -> None:
        f = self.get_failure(
            self.store.set_power_levels("!unknown:test", {"kick": 0}), StoreError
        )
        self.assertEqual(f.value.code, 404)

    def test_get_current_power_levels_unknown_room(self) -> None:
        f = self.get_failure(
            self.store.get_current_power_levels("!unknown:test"), StoreError
        )
        self.assertEqual(f.value.code, 404)
