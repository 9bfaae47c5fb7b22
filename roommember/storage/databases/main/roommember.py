# Copyright 2014-2016 OpenMarket Ltd
# Copyright 2018 New Vector Ltd
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

import logging
from typing import Callable, Collection, Dict, List, Optional, Tuple

from roommember.api.errors import StoreError
from roommember.event_auth import MembershipOutcome, PowerLevels
from roommember.storage.database import LoggingTransaction, make_in_list_sql_clause
from roommember.storage.databases.main.room import RoomInfo, RoomStore
from roommember.storage.engines import IsolationLevel
from roommember.storage.roommember import RoomMembership, RoomsForUser

logger = logging.getLogger(__name__)

_MEMBERSHIP_COLUMNS = (
    "room_id",
    "user_id",
    "sender",
    "membership",
    "reason",
    "version",
    "updated_ts",
)

# Called with the room, the target's current membership, the actor's current
# membership and the room's power levels.
MembershipCheck = Callable[
    [RoomInfo, Optional[RoomMembership], Optional[RoomMembership], PowerLevels],
    MembershipOutcome,
]


class RoomMemberStore(RoomStore):
    async def get_membership(
        self, room_id: str, user_id: str
    ) -> Optional[RoomMembership]:
        """Get the current membership of the user in the room.

        Returns:
            The membership, or None if the user has never had one in the room.
        """
        return await self.db_pool.runInteraction(
            "get_membership", self._get_membership_txn, room_id, user_id
        )

    def _get_membership_txn(
        self, txn: LoggingTransaction, room_id: str, user_id: str
    ) -> Optional[RoomMembership]:
        row = self.db_pool.simple_select_one_txn(
            txn,
            table="room_memberships",
            keyvalues={"room_id": room_id, "user_id": user_id},
            retcols=_MEMBERSHIP_COLUMNS,
            allow_none=True,
        )
        if row is None:
            return None
        return RoomMembership(**row)

    async def upsert_membership(
        self,
        room_id: str,
        user_id: str,
        sender: str,
        membership: str,
        reason: Optional[str] = None,
    ) -> RoomMembership:
        """Insert the user's membership of the room, or overwrite the existing one.

        Returns:
            The membership as written.
        """
        attempts = 0
        while True:
            try:
                return await self.db_pool.runInteraction(
                    "upsert_membership",
                    self._upsert_membership_txn,
                    room_id,
                    user_id,
                    sender,
                    membership,
                    reason,
                )
            except self.database_engine.module.IntegrityError as e:
                attempts += 1
                if attempts >= 5:
                    # don't retry forever, because things other than races
                    # can cause IntegrityErrors
                    raise

                # presumably we raced with another transaction: let's retry.
                logger.warning(
                    "IntegrityError upserting membership of %s in %s; retrying: %s",
                    user_id,
                    room_id,
                    e,
                )

    def _upsert_membership_txn(
        self,
        txn: LoggingTransaction,
        room_id: str,
        user_id: str,
        sender: str,
        membership: str,
        reason: Optional[str],
    ) -> RoomMembership:
        existing = self._get_membership_txn(txn, room_id, user_id)
        version = existing.version + 1 if existing else 1
        now = self._clock.time_msec()

        self.db_pool.simple_upsert_txn(
            txn,
            table="room_memberships",
            keyvalues={"room_id": room_id, "user_id": user_id},
            values={
                "sender": sender,
                "membership": membership,
                "reason": reason,
                "version": version,
                "updated_ts": now,
            },
        )

        return RoomMembership(
            room_id=room_id,
            user_id=user_id,
            sender=sender,
            membership=membership,
            reason=reason,
            version=version,
            updated_ts=now,
        )

    async def update_membership(
        self,
        existing: RoomMembership,
        sender: str,
        membership: str,
        reason: Optional[str] = None,
    ) -> RoomMembership:
        """Change an existing membership in place.

        The write only happens if the row is still at `existing.version`.

        Raises:
            StoreError(409) if the membership has changed since `existing` was read.
            StoreError(404) if the membership no longer exists.
        """
        return await self.db_pool.runInteraction(
            "update_membership",
            self._update_membership_txn,
            existing,
            sender,
            membership,
            reason,
        )

    def _update_membership_txn(
        self,
        txn: LoggingTransaction,
        existing: RoomMembership,
        sender: str,
        membership: str,
        reason: Optional[str],
    ) -> RoomMembership:
        now = self._clock.time_msec()

        txn.execute(
            """
            UPDATE room_memberships
            SET sender = ?, membership = ?, reason = ?, version = version + 1,
                updated_ts = ?
            WHERE room_id = ? AND user_id = ? AND version = ?
            """,
            (
                sender,
                membership,
                reason,
                now,
                existing.room_id,
                existing.user_id,
                existing.version,
            ),
        )

        if txn.rowcount == 0:
            current = self._get_membership_txn(txn, existing.room_id, existing.user_id)
            if current is None:
                raise StoreError(404, "No membership found (room_memberships)")
            raise StoreError(
                409,
                "Membership of %s in %s changed concurrently (version %d, expected %d)"
                % (
                    existing.user_id,
                    existing.room_id,
                    current.version,
                    existing.version,
                ),
            )

        return RoomMembership(
            room_id=existing.room_id,
            user_id=existing.user_id,
            sender=sender,
            membership=membership,
            reason=reason,
            version=existing.version + 1,
            updated_ts=now,
        )

    async def run_membership_transition(
        self,
        room_id: str,
        user_id: str,
        actor_id: str,
        check: MembershipCheck,
        reason: Optional[str] = None,
    ) -> Tuple[Optional[RoomMembership], MembershipOutcome]:
        """Read the state of the room, decide on a membership change and apply it,
        all in one transaction.

        The transaction runs at SERIALIZABLE isolation, so if it conflicts with a
        concurrent change it is rolled back and run again from the start against
        the fresh state.

        Args:
            room_id: the room.
            user_id: the user whose membership is changing.
            actor_id: the user making the change; recorded as the sender.
            check: decides the outcome, or raises to refuse the change.
            reason: optional reason to record with the change.

        Returns:
            The target's membership after the change (None only if the check
            allowed a no-op for a user with no membership), and the outcome.

        Raises:
            StoreError(404) if the room is unknown.
            Whatever `check` raises.
        """
        return await self.db_pool.runInteraction(
            "run_membership_transition",
            self._run_membership_transition_txn,
            room_id,
            user_id,
            actor_id,
            check,
            reason,
            isolation_level=IsolationLevel.SERIALIZABLE,
        )

    def _run_membership_transition_txn(
        self,
        txn: LoggingTransaction,
        room_id: str,
        user_id: str,
        actor_id: str,
        check: MembershipCheck,
        reason: Optional[str],
    ) -> Tuple[Optional[RoomMembership], MembershipOutcome]:
        room = self.get_room_txn(txn, room_id)
        if room is None:
            raise StoreError(404, "No room %s" % (room_id,))

        current = self._get_membership_txn(txn, room_id, user_id)
        if actor_id == user_id:
            actor_membership = current
        else:
            actor_membership = self._get_membership_txn(txn, room_id, actor_id)
        power_levels = self.get_current_power_levels_txn(txn, room)

        outcome = check(room, current, actor_membership, power_levels)

        if not outcome.changed:
            return current, outcome

        if current is not None:
            new_membership = self._update_membership_txn(
                txn, current, actor_id, outcome.membership, reason
            )
        else:
            assert outcome.is_upsert, "%s needs an existing membership" % (outcome,)
            new_membership = self._upsert_membership_txn(
                txn, room_id, user_id, actor_id, outcome.membership, reason
            )

        return new_membership, outcome

    async def get_members_in_room(
        self, room_id: str, membership: Optional[str] = None
    ) -> Dict[str, str]:
        """Get the users with a membership of the room.

        Args:
            room_id: the room.
            membership: only return users with this membership, if given.

        Returns:
            A map from user ID to their membership.
        """
        keyvalues = {"room_id": room_id}
        if membership is not None:
            keyvalues["membership"] = membership

        rows = await self.db_pool.simple_select_list(
            table="room_memberships",
            keyvalues=keyvalues,
            retcols=("user_id", "membership"),
            desc="get_members_in_room",
        )
        return {row["user_id"]: row["membership"] for row in rows}

    async def get_rooms_for_user_where_membership_is(
        self, user_id: str, membership_list: Collection[str]
    ) -> List[RoomsForUser]:
        """Get all the rooms for this user where the membership for this user
        matches one in the membership list.

        Args:
            user_id: The user ID.
            membership_list: A list of roommember.api.constants.Membership
                values which the user must be in.

        Returns:
            The RoomsForUser that the user matches the membership types.
        """
        if not membership_list:
            return []

        return await self.db_pool.runInteraction(
            "get_rooms_for_user_where_membership_is",
            self._get_rooms_for_user_where_membership_is_txn,
            user_id,
            membership_list,
        )

    def _get_rooms_for_user_where_membership_is_txn(
        self,
        txn: LoggingTransaction,
        user_id: str,
        membership_list: Collection[str],
    ) -> List[RoomsForUser]:
        clause, args = make_in_list_sql_clause(
            self.database_engine, "membership", membership_list
        )

        sql = """
            SELECT room_id, sender, membership
            FROM room_memberships
            WHERE user_id = ? AND %s
            ORDER BY room_id
        """ % (
            clause,
        )

        txn.execute(sql, (user_id, *args))
        return [RoomsForUser(*r) for r in txn]
