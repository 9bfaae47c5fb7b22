# Copyright 2014-2016 OpenMarket Ltd
# Copyright 2018-2019 New Vector Ltd
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

import os
from typing import Dict, Union, overload

from typing_extensions import Literal

from roommember.config.homeserver import HomeServerConfig

# set this to True to run the tests against postgres instead of sqlite.
#
# When running under postgres, we create a unique database for each test case
# and build the schema in it from scratch.
USE_POSTGRES_FOR_TESTS = os.environ.get("ROOMMEMBER_POSTGRES", False)
LEAVE_DB = os.environ.get("ROOMMEMBER_LEAVE_DB", False)
POSTGRES_USER = os.environ.get("ROOMMEMBER_POSTGRES_USER", None)
POSTGRES_HOST = os.environ.get("ROOMMEMBER_POSTGRES_HOST", None)
POSTGRES_PASSWORD = os.environ.get("ROOMMEMBER_POSTGRES_PASSWORD", None)
POSTGRES_PORT = (
    int(os.environ["ROOMMEMBER_POSTGRES_PORT"])
    if "ROOMMEMBER_POSTGRES_PORT" in os.environ
    else None
)

# When debugging a specific test, it's occasionally useful to write the
# DB to disk and query it with the sqlite CLI.
SQLITE_PERSIST_DB = os.environ.get("ROOMMEMBER_TEST_PERSIST_SQLITE_DB") is not None

# the dbname we will connect to in order to create the per-test databases.
POSTGRES_DBNAME_FOR_INITIAL_CREATE = "postgres"


@overload
def default_config(name: str, parse: Literal[False] = ...) -> Dict[str, object]:
    ...


@overload
def default_config(name: str, parse: Literal[True]) -> HomeServerConfig:
    ...


def default_config(
    name: str, parse: bool = False
) -> Union[Dict[str, object], HomeServerConfig]:
    """
    Create a reasonable test config.
    """
    config_dict: Dict[str, object] = {
        "server_name": name,
        "allow_creator_join": True,
        "membership": {
            "default_power_levels": {
                "kick": 50,
                "ban": 50,
                "invite": 0,
                "users_default": 0,
            },
            "creator_power_level": 100,
        },
    }

    if parse:
        config = HomeServerConfig()
        config.parse_config_dict(config_dict, "", "")
        return config

    return config_dict
