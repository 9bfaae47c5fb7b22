# Copyright 2014-2016 OpenMarket Ltd
# Copyright 2017 Vector Creations Ltd
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

"""Contains constants shared by the membership code."""

from typing_extensions import Final

# the maximum length for a user id is 255 characters
MAX_USERID_LENGTH = 255

# the maximum length for a membership reason
MAX_REASON_LENGTH = 4096


class Membership:

    """Represents the membership states of a user in a room."""

    INVITE: Final = "invite"
    JOIN: Final = "join"
    LEAVE: Final = "leave"
    BAN: Final = "ban"
    LIST: Final = (INVITE, JOIN, LEAVE, BAN)


class MembershipAction:

    """The membership changes a caller can ask for."""

    JOIN: Final = "join"
    LEAVE: Final = "leave"
    INVITE: Final = "invite"
    KICK: Final = "kick"
    BAN: Final = "ban"
    LIST: Final = (JOIN, LEAVE, INVITE, KICK, BAN)


class PowerLevelNames:
    """Keys of the thresholds in a power levels document."""

    KICK: Final = "kick"
    BAN: Final = "ban"
    INVITE: Final = "invite"
    USERS: Final = "users"
    USERS_DEFAULT: Final = "users_default"
