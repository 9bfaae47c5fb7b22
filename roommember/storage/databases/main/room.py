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

import logging
from typing import TYPE_CHECKING, Optional

import attr
import jsonschema

from roommember.api.errors import Codes, StoreError, SynapseError
from roommember.event_auth import PowerLevels
from roommember.storage._base import SQLBaseStore, db_to_json
from roommember.storage.database import (
    DatabasePool,
    LoggingDatabaseConnection,
    LoggingTransaction,
)
from roommember.types import JsonDict, JsonMapping
from roommember.util import json_encoder

if TYPE_CHECKING:
    from roommember.server import HomeServer

logger = logging.getLogger(__name__)


POWER_LEVELS_SCHEMA = {
    "type": "object",
    "properties": {
        "users": {
            "type": "object",
            "additionalProperties": {"type": "integer"},
        },
        "users_default": {"type": "integer"},
        "kick": {"type": "integer"},
        "ban": {"type": "integer"},
        "invite": {"type": "integer"},
    },
    "additionalProperties": False,
}


@attr.s(slots=True, frozen=True, auto_attribs=True)
class RoomInfo:
    room_id: str
    creator: str
    is_public: bool


class RoomStore(SQLBaseStore):
    def __init__(
        self,
        database: DatabasePool,
        db_conn: LoggingDatabaseConnection,
        hs: "HomeServer",
    ):
        super().__init__(database, db_conn, hs)

        membership_config = hs.config.membership
        self._default_power_levels = PowerLevels(
            users={},
            users_default=membership_config.users_default_level,
            kick=membership_config.kick_level,
            ban=membership_config.ban_level,
            invite=membership_config.invite_level,
        )
        self._creator_power_level = membership_config.creator_power_level

    async def store_room(self, room_id: str, creator: str, is_public: bool) -> None:
        """Stores a room.

        Args:
            room_id: The desired room ID.
            creator: The user ID of the room creator.
            is_public: True if anyone may join the room without an invite.
        Raises:
            StoreError if the room could not be stored.
        """
        try:
            await self.db_pool.simple_insert(
                "rooms",
                {
                    "room_id": room_id,
                    "creator": creator,
                    "is_public": is_public,
                    "creation_ts": self._clock.time_msec(),
                },
                desc="store_room",
            )
        except Exception as e:
            logger.error("store_room with room_id=%s failed: %s", room_id, e)
            raise StoreError(500, "Problem creating room.")

    async def get_room(self, room_id: str) -> Optional[RoomInfo]:
        """Retrieve a room.

        Args:
            room_id: The ID of the room to retrieve.
        Returns:
            The room, or None if the room is unknown.
        """
        return await self.db_pool.runInteraction(
            "get_room", self.get_room_txn, room_id
        )

    def get_room_txn(self, txn: LoggingTransaction, room_id: str) -> Optional[RoomInfo]:
        row = self.db_pool.simple_select_one_txn(
            txn,
            table="rooms",
            keyvalues={"room_id": room_id},
            retcols=("room_id", "creator", "is_public"),
            allow_none=True,
        )
        if row is None:
            return None

        return RoomInfo(
            room_id=row["room_id"],
            creator=row["creator"],
            is_public=bool(row["is_public"]),
        )

    async def get_current_power_levels(self, room_id: str) -> PowerLevels:
        """Get the power levels currently in force in the room.

        Raises:
            StoreError(404) if the room is unknown.
        """

        def _get_current_power_levels_txn(txn: LoggingTransaction) -> PowerLevels:
            room = self.get_room_txn(txn, room_id)
            if room is None:
                raise StoreError(404, "No room %s" % (room_id,))
            return self.get_current_power_levels_txn(txn, room)

        return await self.db_pool.runInteraction(
            "get_current_power_levels", _get_current_power_levels_txn
        )

    def get_current_power_levels_txn(
        self, txn: LoggingTransaction, room: RoomInfo
    ) -> PowerLevels:
        content = self._get_power_levels_content_txn(txn, room.room_id)

        if content is None:
            # If no power levels have been set for the room then we use the
            # configured defaults, and the creator is all powerful.
            return attr.evolve(
                self._default_power_levels,
                users={room.creator: self._creator_power_level},
            )

        return PowerLevels.from_content(content, self._default_power_levels)

    async def get_power_levels_content(self, room_id: str) -> Optional[JsonDict]:
        """Get the power levels document stored for the room, if any."""
        return await self.db_pool.runInteraction(
            "get_power_levels_content",
            self._get_power_levels_content_txn,
            room_id,
        )

    def _get_power_levels_content_txn(
        self, txn: LoggingTransaction, room_id: str
    ) -> Optional[JsonDict]:
        content = self.db_pool.simple_select_one_onecol_txn(
            txn,
            table="room_power_levels",
            keyvalues={"room_id": room_id},
            retcol="content",
            allow_none=True,
        )
        return db_to_json(content)

    async def set_power_levels(self, room_id: str, content: JsonMapping) -> None:
        """Replace the power levels document for the room.

        Raises:
            SynapseError(400) if the document is malformed.
            StoreError(404) if the room is unknown.
        """
        try:
            jsonschema.validate(dict(content), POWER_LEVELS_SCHEMA)
        except jsonschema.ValidationError as e:
            raise SynapseError(400, str(e.message), Codes.BAD_JSON)

        def _set_power_levels_txn(txn: LoggingTransaction) -> None:
            if self.get_room_txn(txn, room_id) is None:
                raise StoreError(404, "No room %s" % (room_id,))

            self.db_pool.simple_upsert_txn(
                txn,
                table="room_power_levels",
                keyvalues={"room_id": room_id},
                values={"content": json_encoder.encode(content)},
            )

        await self.db_pool.runInteraction("set_power_levels", _set_power_levels_txn)
