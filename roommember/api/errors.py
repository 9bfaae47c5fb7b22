# Copyright 2014-2016 OpenMarket Ltd
# Copyright 2018 New Vector Ltd
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

"""Contains exceptions and error codes."""

import logging
import typing
from enum import Enum
from http import HTTPStatus
from typing import Any, Dict, Optional, Union

if typing.TYPE_CHECKING:
    from roommember.types import JsonDict

logger = logging.getLogger(__name__)


class Codes(str, Enum):
    """
    All known error codes, as an enum of strings.
    """

    FORBIDDEN = "M_FORBIDDEN"
    BAD_JSON = "M_BAD_JSON"
    UNKNOWN = "M_UNKNOWN"
    NOT_FOUND = "M_NOT_FOUND"
    MISSING_PARAM = "M_MISSING_PARAM"
    INVALID_PARAM = "M_INVALID_PARAM"
    USER_IN_USE = "M_USER_IN_USE"
    INVALID_USERNAME = "M_INVALID_USERNAME"

    # Finer-grained reasons for a refused membership change, as proposed by
    # MSC3848.
    ALREADY_JOINED = "ORG.MATRIX.MSC3848.ALREADY_JOINED"
    NOT_JOINED = "ORG.MATRIX.MSC3848.NOT_JOINED"
    INSUFFICIENT_POWER = "ORG.MATRIX.MSC3848.INSUFFICIENT_POWER"


class CodeMessageException(RuntimeError):
    """An exception with integer code and message string attributes.

    Attributes:
        code: HTTP error code
        msg: string describing the error
    """

    def __init__(self, code: Union[int, HTTPStatus], msg: str):
        super().__init__("%d: %s" % (code, msg))

        # HTTPStatus has a __str__ which renders as `HTTPStatus.FORBIDDEN`
        # rather than `403`, so store the plain integer.
        self.code = int(code)
        self.msg = msg


class SynapseError(CodeMessageException):
    """A base exception type for matrix errors which have an errcode and error
    message (as well as an HTTP status code).

    Every refused membership change is reported as a subclass of this, so callers
    can translate it into a client response with `error_dict`.

    Attributes:
        errcode: Matrix error code e.g 'M_FORBIDDEN'
    """

    def __init__(
        self,
        code: int,
        msg: str,
        errcode: str = Codes.UNKNOWN,
        additional_fields: Optional[Dict] = None,
    ):
        """Constructs a matrix error.

        Args:
            code: The integer error code (an HTTP response code)
            msg: The human-readable error message.
            errcode: The matrix error code e.g 'M_FORBIDDEN'
        """
        super().__init__(code, msg)
        self.errcode = errcode
        if additional_fields is None:
            self._additional_fields: Dict = {}
        else:
            self._additional_fields = dict(additional_fields)

    def error_dict(self) -> "JsonDict":
        return cs_error(self.msg, self.errcode, **self._additional_fields)


class NotFoundError(SynapseError):
    """An error indicating we can't find the thing you asked for"""

    def __init__(self, msg: str = "Not found", errcode: str = Codes.NOT_FOUND):
        super().__init__(404, msg, errcode=errcode)


class AuthError(SynapseError):
    """An error raised when the actor is not allowed to make a membership change.

    A room that does not exist is also reported as an AuthError, so that callers
    cannot probe for the existence of rooms they have no access to.
    """

    def __init__(
        self,
        code: int,
        msg: str,
        errcode: str = Codes.FORBIDDEN,
        additional_fields: Optional[dict] = None,
    ):
        super().__init__(code, msg, errcode, additional_fields)


class UnstableSpecAuthError(AuthError):
    """An AuthError carrying one of the finer-grained MSC3848 error codes.

    The stable `errcode` in the body stays M_FORBIDDEN; the new code is reported
    under "org.matrix.msc3848.unstable.errcode".
    """

    def __init__(
        self,
        code: int,
        msg: str,
        errcode: str,
        previous_errcode: str = Codes.FORBIDDEN,
        additional_fields: Optional[dict] = None,
    ):
        self.previous_errcode = previous_errcode
        super().__init__(code, msg, errcode, additional_fields)

    def error_dict(self) -> "JsonDict":
        return cs_error(
            self.msg,
            self.previous_errcode,
            **{"org.matrix.msc3848.unstable.errcode": self.errcode},
            **self._additional_fields,
        )


class ConflictError(SynapseError):
    """The requested membership change is incompatible with the target's current
    membership, e.g. inviting a user who has already joined.

    This is not an AuthError: the actor had the right to try, the room is just in
    the wrong state for it.
    """

    def __init__(self, msg: str, errcode: str = Codes.ALREADY_JOINED):
        super().__init__(403, msg, errcode)


class StoreError(SynapseError):
    """An error raised when there was a problem storing some data."""


def cs_error(msg: str, code: str = Codes.UNKNOWN, **kwargs: Any) -> "JsonDict":
    """Utility method for constructing an error response for client-server
    interactions.

    Args:
        msg: The error message.
        code: The error code.
        kwargs: Additional keys to add to the response.
    Returns:
        A dict representing the error response JSON.
    """
    err = {"error": msg, "errcode": code}
    for key, value in kwargs.items():
        err[key] = value
    return err
