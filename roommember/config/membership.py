# Copyright 2021 The Matrix.org Foundation C.I.C.
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

from typing import Any

from roommember.config._base import Config
from roommember.config._util import validate_config
from roommember.types import JsonDict

_DEFAULT_POWER_LEVELS_SCHEMA = {
    "type": "object",
    "properties": {
        "kick": {"type": "integer"},
        "ban": {"type": "integer"},
        "invite": {"type": "integer"},
        "users_default": {"type": "integer"},
    },
    "additionalProperties": False,
}

_MEMBERSHIP_SCHEMA = {
    "type": "object",
    "properties": {
        "default_power_levels": _DEFAULT_POWER_LEVELS_SCHEMA,
        "creator_power_level": {"type": "integer"},
    },
}


class MembershipConfig(Config):
    """Thresholds used when a room has no power levels of its own."""

    section = "membership"

    def read_config(self, config: JsonDict, **kwargs: Any) -> None:
        membership_config = config.get("membership") or {}
        validate_config(_MEMBERSHIP_SCHEMA, membership_config, ("membership",))

        defaults = membership_config.get("default_power_levels") or {}

        self.kick_level: int = defaults.get("kick", 50)
        self.ban_level: int = defaults.get("ban", 50)
        self.invite_level: int = defaults.get("invite", 0)
        self.users_default_level: int = defaults.get("users_default", 0)

        # The level granted to the creator of a room which has no power levels
        # stored.
        self.creator_power_level: int = membership_config.get(
            "creator_power_level", 100
        )

    def generate_config_section(self, **kwargs: Any) -> str:
        return """\
        ## Membership ##

        membership:
          # Power levels used for rooms which have not had any set explicitly.
          #
          #default_power_levels:
          #  kick: 50
          #  ban: 50
          #  invite: 0
          #  users_default: 0

          # The power level of a room's creator, for rooms which have not had
          # any power levels set explicitly.
          #
          #creator_power_level: 100
        """
