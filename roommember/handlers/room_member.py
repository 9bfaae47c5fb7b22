# Copyright 2016-2020 The Matrix.org Foundation C.I.C.
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
from typing import TYPE_CHECKING, Optional, Tuple

from prometheus_client import Counter

from roommember.api.constants import MAX_REASON_LENGTH, MembershipAction
from roommember.api.errors import AuthError, Codes, NotFoundError, SynapseError
from roommember.event_auth import (
    MembershipAuthContext,
    MembershipOutcome,
    PowerLevels,
    check_membership_transition,
)
from roommember.storage.databases.main.room import RoomInfo
from roommember.storage.roommember import RoomMembership
from roommember.types import RoomID, UserID
from roommember.util.async_helpers import Linearizer

if TYPE_CHECKING:
    from roommember.server import HomeServer


logger = logging.getLogger(__name__)

membership_attempts_counter = Counter(
    "roommember_membership_attempts",
    "Number of requested membership changes",
    ["action", "outcome"],
)


class RoomMemberHandler:
    """Applies membership changes (join, leave, invite, kick, ban) to rooms."""

    def __init__(self, hs: "HomeServer"):
        self.hs = hs
        self.store = hs.get_datastores().main
        self.config = hs.config
        self.clock = hs.get_clock()
        self.user_directory_handler = hs.get_user_directory_handler()

        self._allow_creator_join = hs.config.server.allow_creator_join

        self.member_linearizer: Linearizer = Linearizer(
            name="member", clock=self.clock
        )

    async def update_membership(
        self,
        actor: str,
        target: str,
        room_id: str,
        action: str,
        reason: Optional[str] = None,
    ) -> RoomMembership:
        """Update a user's membership in a room.

        Params:
            actor: The user who is performing the update.
            target: The user whose membership is being updated.
            room_id: The room ID whose membership is being updated.
            action: The membership change, see
                roommember.api.constants.MembershipAction.
            reason: An optional reason for the change, stored with the membership.

        Returns:
            The target's membership once the change has been applied. If the
            change was a no-op this is their existing membership.

        Raises:
            SynapseError (400) if any of the arguments are malformed.
            AuthError if the actor may not make the change.
            NotFoundError if an invited user does not exist.
            ConflictError if an invited user has already joined.
        """
        try:
            self._validate_request(actor, target, room_id, action, reason)

            # Changes to the same membership are applied one at a time within
            # this process. The database transaction takes care of anyone else.
            key = (room_id, target)
            async with self.member_linearizer.queue(key):
                result = await self.update_membership_locked(
                    actor, target, room_id, action, reason
                )
        except SynapseError as e:
            logger.info(
                "Refused %s of %s in %s by %s: %s", action, target, room_id, actor, e
            )
            membership_attempts_counter.labels(
                _action_label(action), "rejected"
            ).inc()
            raise

        membership, outcome = result
        if outcome.changed:
            logger.info(
                "%s: %s is now %s in %s (version %d)",
                action,
                target,
                membership.membership,
                room_id,
                membership.version,
            )
            membership_attempts_counter.labels(action, "changed").inc()
        else:
            logger.debug(
                "%s of %s in %s by %s is a no-op", action, target, room_id, actor
            )
            membership_attempts_counter.labels(action, "noop").inc()

        return membership

    async def update_membership_locked(
        self,
        actor: str,
        target: str,
        room_id: str,
        action: str,
        reason: Optional[str],
    ) -> Tuple[RoomMembership, MembershipOutcome]:
        """Helper for update_membership.

        Assumes that the membership linearizer is already held for the room
        and target.
        """
        room = await self.store.get_room(room_id)
        if room is None:
            raise AuthError(403, "The room was not found on this server")

        if action == MembershipAction.INVITE:
            if not await self.user_directory_handler.exists_and_active(target):
                raise NotFoundError(
                    "The invited user %s was not found on this server" % (target,)
                )

        def _check(
            room: RoomInfo,
            current: Optional[RoomMembership],
            actor_membership: Optional[RoomMembership],
            power_levels: PowerLevels,
        ) -> MembershipOutcome:
            context = MembershipAuthContext(
                actor=actor,
                target=target,
                room_creator=room.creator,
                room_is_public=room.is_public,
                actor_membership=(
                    actor_membership.membership if actor_membership else None
                ),
                power_levels=power_levels,
                allow_creator_join=self._allow_creator_join,
            )
            return check_membership_transition(
                current.membership if current else None, action, context
            )

        membership, outcome = await self.store.run_membership_transition(
            room_id, target, actor, _check, reason=reason
        )

        # Every allowed outcome leaves the target with a membership.
        assert membership is not None
        return membership, outcome

    def _validate_request(
        self,
        actor: str,
        target: str,
        room_id: str,
        action: str,
        reason: Optional[str],
    ) -> None:
        for name, user_id in (("actor", actor), ("target", target)):
            if not user_id:
                raise SynapseError(
                    400, "Missing %s user ID" % (name,), Codes.MISSING_PARAM
                )
            if not UserID.is_valid(user_id):
                raise SynapseError(
                    400,
                    "Invalid %s user ID %r" % (name, user_id),
                    Codes.INVALID_PARAM,
                )

        if not room_id:
            raise SynapseError(400, "Missing room ID", Codes.MISSING_PARAM)
        if not RoomID.is_valid(room_id):
            raise SynapseError(
                400, "Invalid room ID %r" % (room_id,), Codes.INVALID_PARAM
            )

        if action not in MembershipAction.LIST:
            raise SynapseError(
                400, "Unknown membership action %r" % (action,), Codes.INVALID_PARAM
            )

        if reason is not None and len(reason) > MAX_REASON_LENGTH:
            raise SynapseError(
                400,
                "Reason too long (max %d characters)" % (MAX_REASON_LENGTH,),
                Codes.INVALID_PARAM,
            )


def _action_label(action: str) -> str:
    # Keep the metric's label set bounded when given garbage.
    if action in MembershipAction.LIST:
        return action
    return "unknown"
