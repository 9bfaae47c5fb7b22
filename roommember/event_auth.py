# Copyright 2014 - 2016 OpenMarket Ltd
# Copyright 2020 The Matrix.org Foundation C.I.C.
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

"""Authorization rules for membership changes.

Everything in this module is a pure function of the state it is handed: the
caller is responsible for reading that state (and for writing the result)
inside a single database transaction.
"""

import logging
from typing import Mapping, Optional

import attr
from frozendict import frozendict

from roommember.api.constants import Membership, MembershipAction, PowerLevelNames
from roommember.api.errors import (
    AuthError,
    Codes,
    ConflictError,
    UnstableSpecAuthError,
)
from roommember.types import JsonMapping

logger = logging.getLogger(__name__)


@attr.s(slots=True, frozen=True, auto_attribs=True)
class PowerLevels:
    """The power levels in force in a room."""

    users: Mapping[str, int] = attr.ib(converter=frozendict)
    users_default: int = 0
    kick: int = 50
    ban: int = 50
    invite: int = 0

    @classmethod
    def from_content(
        cls, content: JsonMapping, defaults: "PowerLevels"
    ) -> "PowerLevels":
        """Build the power levels from a stored power levels document.

        Any threshold missing from `content` is taken from `defaults`.
        """
        users = content.get(PowerLevelNames.USERS) or {}
        return cls(
            users={user_id: int(level) for user_id, level in users.items()},
            users_default=int(
                content.get(PowerLevelNames.USERS_DEFAULT, defaults.users_default)
            ),
            kick=int(content.get(PowerLevelNames.KICK, defaults.kick)),
            ban=int(content.get(PowerLevelNames.BAN, defaults.ban)),
            invite=int(content.get(PowerLevelNames.INVITE, defaults.invite)),
        )

    def get_user_power_level(self, user_id: str) -> int:
        """Get a user's power level, falling back to `users_default`."""
        level = self.users.get(user_id)
        if level is None:
            return self.users_default
        return level

    def get_named_level(self, name: str) -> int:
        """Get the threshold for one of the named actions (kick, ban, invite)."""
        if name == PowerLevelNames.KICK:
            return self.kick
        if name == PowerLevelNames.BAN:
            return self.ban
        if name == PowerLevelNames.INVITE:
            return self.invite
        raise KeyError(name)


@attr.s(slots=True, frozen=True, auto_attribs=True)
class MembershipAuthContext:
    """What the membership rules need to know beyond the target's own state."""

    actor: str
    target: str
    room_creator: str
    room_is_public: bool
    actor_membership: Optional[str]
    power_levels: PowerLevels
    allow_creator_join: bool = True


@attr.s(slots=True, frozen=True, auto_attribs=True)
class MembershipOutcome:
    """The result of an authorized membership change.

    Attributes:
        membership: the target's membership once the change is applied.
        changed: False if the change is a no-op and nothing should be written.
    """

    membership: str
    changed: bool

    @property
    def is_upsert(self) -> bool:
        """Whether the new state may be written over an absent record."""
        return self.membership in (Membership.JOIN, Membership.INVITE)


def check_membership_transition(
    current: Optional[str],
    transition: str,
    context: MembershipAuthContext,
) -> MembershipOutcome:
    """Decide whether the requested membership change is allowed.

    Args:
        current: the target's current membership, or None if they have never
            had one in this room.
        transition: one of the `MembershipAction` values.
        context: the actor, the room and its power levels.

    Returns:
        The membership the target should end up with.

    Raises:
        AuthError if the change is not allowed.
        ConflictError if the target is already in the requested state in a way
            that makes the request nonsensical (inviting a joined user).
    """
    logger.debug(
        "Checking %s of %s by %s (current membership %s)",
        transition,
        context.target,
        context.actor,
        current,
    )

    if transition == MembershipAction.JOIN:
        outcome = _check_join(current, context)
    elif transition == MembershipAction.LEAVE:
        outcome = _check_leave(current, context)
    elif transition == MembershipAction.INVITE:
        outcome = _check_invite(current, context)
    elif transition in (MembershipAction.KICK, MembershipAction.BAN):
        outcome = _check_kick_or_ban(current, transition, context)
    else:
        raise AuthError(403, "Unknown membership change %r" % (transition,))

    logger.debug("Allowing! %s -> %s", current, outcome)
    return outcome


def _check_join(
    current: Optional[str], context: MembershipAuthContext
) -> MembershipOutcome:
    if context.actor != context.target:
        raise AuthError(403, "Cannot force another user to join.")

    if current == Membership.BAN:
        raise AuthError(403, "You are banned from this room")

    if current == Membership.JOIN:
        return MembershipOutcome(Membership.JOIN, changed=False)

    if current == Membership.INVITE:
        return MembershipOutcome(Membership.JOIN, changed=True)

    if context.room_is_public:
        return MembershipOutcome(Membership.JOIN, changed=True)

    # The creator may join their own room without an invite, but only if they
    # have never been a member of it.
    if (
        current is None
        and context.allow_creator_join
        and context.actor == context.room_creator
    ):
        return MembershipOutcome(Membership.JOIN, changed=True)

    raise AuthError(403, "You are not invited to this room.")


def _check_leave(
    current: Optional[str], context: MembershipAuthContext
) -> MembershipOutcome:
    if current is None:
        raise AuthError(403, "User not in room or uninvited")

    if current == Membership.BAN:
        raise AuthError(403, "User is banned from the room")

    if context.actor != context.target:
        raise AuthError(403, "Cannot make another user leave; kick them instead")

    if current == Membership.LEAVE:
        return MembershipOutcome(Membership.LEAVE, changed=False)

    return MembershipOutcome(Membership.LEAVE, changed=True)


def _check_invite(
    current: Optional[str], context: MembershipAuthContext
) -> MembershipOutcome:
    if context.actor_membership != Membership.JOIN:
        raise UnstableSpecAuthError(
            403,
            "The inviter hasn't joined the room yet",
            errcode=Codes.NOT_JOINED,
        )

    _check_power(context, PowerLevelNames.INVITE, "invite a user")

    if current == Membership.BAN:
        raise AuthError(403, "The invited user is banned from the room")

    if current == Membership.JOIN:
        raise ConflictError("The invited user has already joined")

    if current == Membership.INVITE:
        return MembershipOutcome(Membership.INVITE, changed=False)

    return MembershipOutcome(Membership.INVITE, changed=True)


def _check_kick_or_ban(
    current: Optional[str], transition: str, context: MembershipAuthContext
) -> MembershipOutcome:
    if transition == MembershipAction.KICK:
        actor_missing = "The kicker is not currently in the room"
        target_missing = "The kickee is not currently in the room"
        new_membership = Membership.LEAVE
    else:
        actor_missing = "The banner is not currently in the room"
        target_missing = "The user to be banned is not currently in the room"
        new_membership = Membership.BAN

    if context.actor_membership != Membership.JOIN:
        raise UnstableSpecAuthError(403, actor_missing, errcode=Codes.NOT_JOINED)

    if current != Membership.JOIN:
        raise UnstableSpecAuthError(403, target_missing, errcode=Codes.NOT_JOINED)

    _check_power(context, transition, "%s a user" % (transition,))

    return MembershipOutcome(new_membership, changed=True)


def _check_power(context: MembershipAuthContext, name: str, what: str) -> None:
    user_level = context.power_levels.get_user_power_level(context.actor)
    required_level = context.power_levels.get_named_level(name)

    if user_level < required_level:
        raise UnstableSpecAuthError(
            403,
            "Insufficient power level to %s" % (what,),
            errcode=Codes.INSUFFICIENT_POWER,
        )
