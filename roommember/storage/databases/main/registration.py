# Copyright 2014-2016 OpenMarket Ltd
# Copyright 2017-2018 New Vector Ltd
# Copyright 2019,2020 The Matrix.org Foundation C.I.C.
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
from typing import Any, Dict, Optional

from roommember.api.errors import Codes, StoreError
from roommember.storage._base import SQLBaseStore
from roommember.storage.database import LoggingTransaction
from roommember.types import UserID

logger = logging.getLogger(__name__)


class RegistrationStore(SQLBaseStore):
    async def get_user_by_id(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self.db_pool.simple_select_one(
            table="users",
            keyvalues={"name": user_id},
            retcols=["name", "creation_ts", "deactivated"],
            allow_none=True,
            desc="get_user_by_id",
        )

    async def register_user(self, user_id: str) -> None:
        """Attempts to register an account.

        Args:
            user_id: The desired user ID to register.

        Raises:
            StoreError if the user_id could not be registered.
        """
        await self.db_pool.runInteraction(
            "register_user",
            self._register_user,
            user_id,
        )

    def _register_user(self, txn: LoggingTransaction, user_id: str) -> None:
        # Make sure we are storing a well formed id.
        UserID.from_string(user_id)

        now = int(self._clock.time())

        try:
            self.db_pool.simple_insert_txn(
                txn,
                "users",
                values={
                    "name": user_id,
                    "creation_ts": now,
                    "deactivated": 0,
                },
            )
        except self.database_engine.module.IntegrityError:
            raise StoreError(400, "User ID already taken.", errcode=Codes.USER_IN_USE)

    async def set_user_deactivated_status(
        self, user_id: str, deactivated: bool
    ) -> None:
        """Set the `deactivated` property for the provided user to the provided value.

        Args:
            user_id: The ID of the user to set the status for.
            deactivated: The value to set for `deactivated`.
        """

        await self.db_pool.simple_update_one(
            table="users",
            keyvalues={"name": user_id},
            updatevalues={"deactivated": 1 if deactivated else 0},
            desc="set_user_deactivated_status",
        )

    async def get_user_deactivated_status(self, user_id: str) -> bool:
        """Retrieve the value for the `deactivated` property for the provided user.

        Args:
            user_id: The ID of the user to retrieve the status for.

        Returns:
            True if the user was deactivated, false if the user is still active.
        """

        res = await self.db_pool.simple_select_one_onecol(
            table="users",
            keyvalues={"name": user_id},
            retcol="deactivated",
            desc="get_user_deactivated_status",
        )

        # Convert the integer into a boolean.
        return res == 1
