# Copyright 2014-2016 OpenMarket Ltd
# Copyright 2017-2018 New Vector Ltd
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
from typing import Any

from roommember.config._base import Config, ConfigError
from roommember.types import JsonDict
from roommember.util.stringutils import parse_and_validate_server_name

logger = logging.getLogger(__name__)


class ServerConfig(Config):
    section = "server"

    def read_config(self, config: JsonDict, **kwargs: Any) -> None:
        self.server_name = config["server_name"]

        try:
            parse_and_validate_server_name(self.server_name)
        except ValueError as e:
            raise ConfigError(str(e), ("server_name",))

        # Allow the creator of a room to join it without an invite, even when the
        # room is not public.
        self.allow_creator_join = bool(config.get("allow_creator_join", True))

    def generate_config_section(self, server_name: str, **kwargs: Any) -> str:
        parse_and_validate_server_name(server_name)
        return (
            """\
        server_name: "%(server_name)s"

        # Whether the creator of a room may join it without an invite.
        #
        #allow_creator_join: true
        """
            % locals()
        )
