# Copyright 2019 Matrix.org Foundation C.I.C.
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
import logging
import sys
from typing import List

from twisted.internet import defer, task

from roommember.api.constants import Membership, MembershipAction, PowerLevelNames
from roommember.api.errors import Codes, SynapseError
from roommember.config._base import ConfigError
from roommember.config.homeserver import HomeServerConfig
from roommember.config.logger import setup_logging
from roommember.server import HomeServer
from roommember.types import JsonDict, RoomID, UserID, contains_invalid_mxid_characters
from roommember.util import json_encoder

logger = logging.getLogger("roommember.app.admin_cmd")


class AdminCmdServer(HomeServer):
    pass


def _print_json(result: JsonDict) -> None:
    print(json_encoder.encode(result))


async def register_user_command(hs: HomeServer, args: argparse.Namespace) -> None:
    """Registers a user on this server, so that they can be invited to rooms."""
    user_id = args.user_id
    if not UserID.is_valid(user_id) or not hs.is_mine_id(user_id):
        raise SynapseError(
            400,
            "%s is not a valid user on this server" % (user_id,),
            Codes.INVALID_PARAM,
        )

    if contains_invalid_mxid_characters(UserID.from_string(user_id).localpart):
        raise SynapseError(
            400,
            "User ID can only contain characters a-z, 0-9, or '=_-./'",
            Codes.INVALID_USERNAME,
        )

    await hs.get_datastores().main.register_user(user_id)
    _print_json({"user_id": user_id})


async def deactivate_user_command(hs: HomeServer, args: argparse.Namespace) -> None:
    await hs.get_datastores().main.set_user_deactivated_status(
        args.user_id, not args.reactivate
    )
    _print_json({"user_id": args.user_id, "deactivated": not args.reactivate})


async def create_room_command(hs: HomeServer, args: argparse.Namespace) -> None:
    """Creates a room and joins its creator to it."""
    creator = args.creator
    if not UserID.is_valid(creator):
        raise SynapseError(400, "Invalid user ID %r" % (creator,), Codes.INVALID_PARAM)

    # Nobody could ever join or be invited into a private room its creator
    # cannot join.
    if not args.public and not hs.config.server.allow_creator_join:
        raise SynapseError(
            400,
            "Private rooms cannot be created while allow_creator_join is disabled",
            Codes.INVALID_PARAM,
        )

    room_id = RoomID.generate(hs.hostname).to_string()
    await hs.get_datastores().main.store_room(room_id, creator, args.public)

    membership = await hs.get_room_member_handler().update_membership(
        creator, creator, room_id, MembershipAction.JOIN
    )
    _print_json(
        {
            "room_id": room_id,
            "creator": creator,
            "is_public": args.public,
            "membership": membership.membership,
        }
    )


async def set_power_level_command(hs: HomeServer, args: argparse.Namespace) -> None:
    """Updates the power levels of a room.

    The levels of individual users are merged into the existing document; the
    thresholds given replace the existing ones.
    """
    store = hs.get_datastores().main

    content = await store.get_power_levels_content(args.room_id)
    if content is None:
        # Start from the levels currently in force, so that the creator keeps
        # their level.
        levels = await store.get_current_power_levels(args.room_id)
        content = {
            PowerLevelNames.USERS: dict(levels.users),
            PowerLevelNames.USERS_DEFAULT: levels.users_default,
            PowerLevelNames.KICK: levels.kick,
            PowerLevelNames.BAN: levels.ban,
            PowerLevelNames.INVITE: levels.invite,
        }

    users = dict(content.get(PowerLevelNames.USERS) or {})
    for user_level in args.user or []:
        user_id, _, level = user_level.rpartition("=")
        if not user_id:
            raise SynapseError(
                400,
                "Expected USER_ID=LEVEL, got %r" % (user_level,),
                Codes.INVALID_PARAM,
            )
        try:
            users[user_id] = int(level)
        except ValueError:
            raise SynapseError(
                400, "Invalid power level %r" % (level,), Codes.INVALID_PARAM
            )
    content[PowerLevelNames.USERS] = users

    for name in (
        PowerLevelNames.KICK,
        PowerLevelNames.BAN,
        PowerLevelNames.INVITE,
        PowerLevelNames.USERS_DEFAULT,
    ):
        value = getattr(args, name)
        if value is not None:
            content[name] = value

    await store.set_power_levels(args.room_id, content)
    _print_json({"room_id": args.room_id, "power_levels": content})


async def membership_command(hs: HomeServer, args: argparse.Namespace) -> None:
    """Asks for a membership change on behalf of `actor`."""
    membership = await hs.get_room_member_handler().update_membership(
        args.actor, args.target, args.room_id, args.action, reason=args.reason
    )
    _print_json(
        {
            "room_id": membership.room_id,
            "user_id": membership.user_id,
            "membership": membership.membership,
            "sender": membership.sender,
            "reason": membership.reason,
            "version": membership.version,
        }
    )


async def show_membership_command(hs: HomeServer, args: argparse.Namespace) -> None:
    store = hs.get_datastores().main

    if args.user_id:
        membership = await store.get_membership(args.room_id, args.user_id)
        _print_json(
            {
                "room_id": args.room_id,
                "user_id": args.user_id,
                "membership": membership.membership if membership else None,
            }
        )
        return

    members = await store.get_members_in_room(args.room_id, args.membership)
    _print_json({"room_id": args.room_id, "members": members})


def start(config_options: List[str]) -> None:
    parser = argparse.ArgumentParser(description="Room membership admin command")
    HomeServerConfig.add_arguments_to_parser(parser)

    subparser = parser.add_subparsers(
        title="Admin Commands",
        required=True,
        dest="command",
        metavar="<admin_command>",
        help="The admin command to perform.",
    )

    register_user_parser = subparser.add_parser(
        "register-user", help="Register a user on this server"
    )
    register_user_parser.add_argument("user_id", help="The user to register")
    register_user_parser.set_defaults(func=register_user_command)

    deactivate_user_parser = subparser.add_parser(
        "deactivate-user", help="Stop a user from being invited to rooms"
    )
    deactivate_user_parser.add_argument("user_id", help="The user to deactivate")
    deactivate_user_parser.add_argument(
        "--reactivate",
        action="store_true",
        help="Reactivate the user rather than deactivating them.",
    )
    deactivate_user_parser.set_defaults(func=deactivate_user_command)

    create_room_parser = subparser.add_parser(
        "create-room", help="Create a room and join its creator to it"
    )
    create_room_parser.add_argument("creator", help="The user creating the room")
    create_room_parser.add_argument(
        "--public",
        action="store_true",
        help="Allow anyone to join the room without an invite.",
    )
    create_room_parser.set_defaults(func=create_room_command)

    set_power_level_parser = subparser.add_parser(
        "set-power-level", help="Change the power levels of a room"
    )
    set_power_level_parser.add_argument("room_id", help="The room to update")
    set_power_level_parser.add_argument(
        "--user",
        action="append",
        metavar="USER_ID=LEVEL",
        help="Set the power level of a user. May be given more than once.",
    )
    for name in (
        PowerLevelNames.KICK,
        PowerLevelNames.BAN,
        PowerLevelNames.INVITE,
    ):
        set_power_level_parser.add_argument(
            "--" + name,
            type=int,
            dest=name,
            help="The power level needed to %s another user." % (name,),
        )
    set_power_level_parser.add_argument(
        "--users-default",
        type=int,
        dest=PowerLevelNames.USERS_DEFAULT,
        help="The power level of users with no explicit level.",
    )
    set_power_level_parser.set_defaults(func=set_power_level_command)

    membership_parser = subparser.add_parser(
        "membership", help="Change the membership of a user in a room"
    )
    membership_parser.add_argument("actor", help="The user making the change")
    membership_parser.add_argument("target", help="The user whose membership changes")
    membership_parser.add_argument("room_id", help="The room")
    membership_parser.add_argument(
        "action", choices=MembershipAction.LIST, help="The membership change"
    )
    membership_parser.add_argument("--reason", help="Why the change is being made")
    membership_parser.set_defaults(func=membership_command)

    show_membership_parser = subparser.add_parser(
        "show-membership", help="Show the membership of a room"
    )
    show_membership_parser.add_argument("room_id", help="The room")
    show_membership_parser.add_argument(
        "--user-id", help="Only show the membership of this user"
    )
    show_membership_parser.add_argument(
        "--membership",
        choices=Membership.LIST,
        help="Only show users with this membership",
    )
    show_membership_parser.set_defaults(func=show_membership_command)

    try:
        config, args = HomeServerConfig.load_config_with_parser(parser, config_options)
    except ConfigError as e:
        sys.stderr.write("\n" + str(e) + "\n")
        sys.exit(1)

    ss = AdminCmdServer(config.server.server_name, config=config)

    setup_logging(config)

    ss.setup()

    # We use task.react as the basic run command as it correctly handles tearing
    # down the reactor when the deferreds resolve and setting the return value.
    async def run() -> None:
        try:
            await args.func(ss, args)
        except SynapseError as e:
            sys.stderr.write(json_encoder.encode(e.error_dict()) + "\n")
            raise SystemExit(1)

    task.react(lambda _reactor: defer.ensureDeferred(run()))


def main() -> None:
    start(sys.argv[1:])


if __name__ == "__main__":
    main()
