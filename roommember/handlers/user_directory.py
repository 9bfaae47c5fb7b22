# Copyright 2017 Vector Creations Ltd
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
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from roommember.server import HomeServer

logger = logging.getLogger(__name__)


class UserDirectoryHandler:
    """Answers questions about the users registered on this server.

    Lookups always go to the database: a user who has just been deactivated must
    not be invitable.
    """

    def __init__(self, hs: "HomeServer"):
        self.store = hs.get_datastores().main
        self.server_name = hs.hostname

    async def exists_and_active(self, user_id: str) -> bool:
        """Check that the user is registered and has not been deactivated."""
        user = await self.store.get_user_by_id(user_id)
        if user is None:
            logger.debug("User %s is not registered", user_id)
            return False

        if user["deactivated"]:
            logger.debug("User %s is deactivated", user_id)
            return False

        return True
