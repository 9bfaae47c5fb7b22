# Copyright 2014-2016 OpenMarket Ltd
# Copyright 2019 The Matrix.org Foundation C.I.C.
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
from typing import Optional, Tuple
from unittest.mock import Mock

from twisted.test.proto_helpers import MemoryReactor

from roommember.api.constants import Membership
from roommember.api.errors import AuthError, StoreError
from roommember.event_auth import MembershipOutcome, PowerLevels
from roommember.server import HomeServer
from roommember.storage.databases.main.room import RoomInfo
from roommember.storage.roommember import RoomMembership, RoomsForUser
from roommember.util import Clock

from tests import unittest


class RoomMemberStoreTestCase(unittest.HomeserverTestCase):
    def prepare(self, reactor: MemoryReactor, clock: Clock, hs: HomeServer) -> None:
        self.store = hs.get_datastores().main

        self.u_alice = "@alice:test"
        self.u_bob = "@bob:test"
        self.room = "!abc123:test"

        self.get_success(self.store.store_room(self.room, self.u_alice, False))

    def test_get_membership_none(self) -> None:
        self.assertIsNone(
            self.get_success(self.store.get_membership(self.room, self.u_bob))
        )

    def test_upsert_membership(self) -> None:
        first = self.get_success(
            self.store.upsert_membership(
                self.room, self.u_bob, self.u_alice, Membership.INVITE, reason="hi"
            )
        )
        self.assertEqual(first.version, 1)
        self.assertEqual(first.reason, "hi")

        self.reactor.advance(10)

        second = self.get_success(
            self.store.upsert_membership(
                self.room, self.u_bob, self.u_bob, Membership.JOIN
            )
        )
        self.assertEqual(second.version, 2)
        self.assertGreater(second.updated_ts, first.updated_ts)

        self.assertEqual(
            self.get_success(self.store.get_membership(self.room, self.u_bob)),
            second,
        )
        self.assertObjectHasAttributes(
            {
                "room_id": self.room,
                "user_id": self.u_bob,
                "sender": self.u_bob,
                "membership": Membership.JOIN,
                "reason": None,
            },
            second,
        )

    def test_update_membership(self) -> None:
        existing = self.get_success(
            self.store.upsert_membership(
                self.room, self.u_bob, self.u_bob, Membership.JOIN
            )
        )

        updated = self.get_success(
            self.store.update_membership(
                existing, self.u_alice, Membership.LEAVE, reason="bye"
            )
        )
        self.assertEqual(updated.version, existing.version + 1)
        self.assertEqual(updated.membership, Membership.LEAVE)
        self.assertEqual(updated.sender, self.u_alice)

        self.assertEqual(
            self.get_success(self.store.get_membership(self.room, self.u_bob)),
            updated,
        )

    def test_update_membership_stale_version(self) -> None:
        existing = self.get_success(
            self.store.upsert_membership(
                self.room, self.u_bob, self.u_bob, Membership.JOIN
            )
        )
        self.get_success(
            self.store.update_membership(existing, self.u_bob, Membership.LEAVE)
        )

        # A second writer working from the same read loses.
        f = self.get_failure(
            self.store.update_membership(existing, self.u_alice, Membership.BAN),
            StoreError,
        )
        self.assertEqual(f.value.code, 409)

        current = self.get_success(self.store.get_membership(self.room, self.u_bob))
        self.assertEqual(current.membership, Membership.LEAVE)
        self.assertEqual(current.version, 2)

    def test_update_membership_missing(self) -> None:
        existing = RoomMembership(
            room_id=self.room,
            user_id=self.u_bob,
            sender=self.u_bob,
            membership=Membership.JOIN,
            reason=None,
            version=1,
            updated_ts=0,
        )
        f = self.get_failure(
            self.store.update_membership(existing, self.u_bob, Membership.LEAVE),
            StoreError,
        )
        self.assertEqual(f.value.code, 404)

    def test_get_members_in_room(self) -> None:
        self.get_success(
            self.store.upsert_membership(
                self.room, self.u_alice, self.u_alice, Membership.JOIN
            )
        )
        self.get_success(
            self.store.upsert_membership(
                self.room, self.u_bob, self.u_alice, Membership.INVITE
            )
        )

        self.assertEqual(
            self.get_success(self.store.get_members_in_room(self.room)),
            {self.u_alice: Membership.JOIN, self.u_bob: Membership.INVITE},
        )
        self.assertEqual(
            self.get_success(
                self.store.get_members_in_room(self.room, Membership.INVITE)
            ),
            {self.u_bob: Membership.INVITE},
        )
        self.assertEqual(
            self.get_success(self.store.get_members_in_room("!other:test")), {}
        )

    def test_get_rooms_for_user_where_membership_is(self) -> None:
        other_room = "!0other:test"
        self.get_success(self.store.store_room(other_room, self.u_alice, True))

        self.get_success(
            self.store.upsert_membership(
                self.room, self.u_bob, self.u_alice, Membership.INVITE
            )
        )
        self.get_success(
            self.store.upsert_membership(
                other_room, self.u_bob, self.u_bob, Membership.JOIN
            )
        )

        rooms = self.get_success(
            self.store.get_rooms_for_user_where_membership_is(
                self.u_bob, [Membership.JOIN, Membership.INVITE]
            )
        )
        self.assertEqual(
            rooms,
            [
                RoomsForUser(other_room, self.u_bob, Membership.JOIN),
                RoomsForUser(self.room, self.u_alice, Membership.INVITE),
            ],
        )

        rooms = self.get_success(
            self.store.get_rooms_for_user_where_membership_is(
                self.u_bob, [Membership.BAN]
            )
        )
        self.assertEqual(rooms, [])

        rooms = self.get_success(
            self.store.get_rooms_for_user_where_membership_is(self.u_bob, [])
        )
        self.assertEqual(rooms, [])


class MembershipTransitionTestCase(unittest.HomeserverTestCase):
    def prepare(self, reactor: MemoryReactor, clock: Clock, hs: HomeServer) -> None:
        self.store = hs.get_datastores().main

        self.u_alice = "@alice:test"
        self.u_bob = "@bob:test"
        self.room = "!abc123:test"

        self.get_success(self.store.store_room(self.room, self.u_alice, False))

    def _transition(
        self,
        target: str,
        actor: str,
        outcome: MembershipOutcome,
        reason: Optional[str] = None,
    ) -> Tuple[Optional[RoomMembership], MembershipOutcome]:
        return self.get_success(
            self.store.run_membership_transition(
                self.room, target, actor, Mock(return_value=outcome), reason=reason
            )
        )

    def test_check_is_given_state(self) -> None:
        self.get_success(
            self.store.upsert_membership(
                self.room, self.u_alice, self.u_alice, Membership.JOIN
            )
        )
        check = Mock(return_value=MembershipOutcome(Membership.INVITE, changed=True))

        self.get_success(
            self.store.run_membership_transition(
                self.room, self.u_bob, self.u_alice, check
            )
        )

        check.assert_called_once()
        room, current, actor_membership, power_levels = check.call_args[0]
        self.assertEqual(room, RoomInfo(self.room, self.u_alice, False))
        self.assertIsNone(current)
        self.assertEqual(actor_membership.membership, Membership.JOIN)
        self.assertIsInstance(power_levels, PowerLevels)
        self.assertEqual(power_levels.get_user_power_level(self.u_alice), 100)

    def test_creates_membership(self) -> None:
        membership, outcome = self._transition(
            self.u_bob,
            self.u_alice,
            MembershipOutcome(Membership.INVITE, changed=True),
            reason="come in",
        )

        self.assertTrue(outcome.changed)
        self.assertEqual(membership.membership, Membership.INVITE)
        self.assertEqual(membership.sender, self.u_alice)
        self.assertEqual(membership.reason, "come in")
        self.assertEqual(membership.version, 1)

    def test_updates_membership(self) -> None:
        self._transition(
            self.u_bob, self.u_alice, MembershipOutcome(Membership.INVITE, True)
        )
        membership, _ = self._transition(
            self.u_bob, self.u_bob, MembershipOutcome(Membership.JOIN, True)
        )

        self.assertEqual(membership.membership, Membership.JOIN)
        self.assertEqual(membership.version, 2)
        self.assertEqual(
            self.get_success(self.store.get_membership(self.room, self.u_bob)),
            membership,
        )

    def test_noop_leaves_membership_alone(self) -> None:
        first, _ = self._transition(
            self.u_bob, self.u_alice, MembershipOutcome(Membership.INVITE, True)
        )
        membership, outcome = self._transition(
            self.u_bob, self.u_alice, MembershipOutcome(Membership.INVITE, False)
        )

        self.assertFalse(outcome.changed)
        self.assertEqual(membership, first)

    def test_check_refuses(self) -> None:
        check = Mock(side_effect=AuthError(403, "no"))

        self.get_failure(
            self.store.run_membership_transition(
                self.room, self.u_bob, self.u_alice, check
            ),
            AuthError,
        )
        self.assertIsNone(
            self.get_success(self.store.get_membership(self.room, self.u_bob))
        )

    def test_unknown_room(self) -> None:
        check = Mock()

        f = self.get_failure(
            self.store.run_membership_transition(
                "!unknown:test", self.u_bob, self.u_bob, check
            ),
            StoreError,
        )
        self.assertEqual(f.value.code, 404)
        check.assert_not_called()
