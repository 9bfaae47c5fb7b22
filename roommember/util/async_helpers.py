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

import collections
import logging
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncIterator, Dict, Hashable, Optional

import attr

from twisted.internet import defer
from twisted.internet.defer import CancelledError

from roommember.util import Clock

logger = logging.getLogger(__name__)


@attr.s(slots=True)
class _LinearizerEntry:
    # The number of things executing.
    count: int = attr.ib()
    # Deferreds for the things blocked from executing.
    deferreds: "collections.OrderedDict[defer.Deferred[None], int]" = attr.ib()


class Linearizer:
    """Limits concurrent access to resources based on a key. Useful to ensure
    only a few things happen at a time on a given resource.

    Example:

        async with limiter.queue("test_key"):
            # do some work.

    """

    def __init__(
        self,
        name: Optional[str] = None,
        max_count: int = 1,
        clock: Optional[Clock] = None,
    ):
        """
        Args:
            max_count: The maximum number of concurrent accesses
        """
        if name is None:
            self.name: str = str(id(self))
        else:
            self.name = name

        if not clock:
            from twisted.internet import reactor

            clock = Clock(reactor)
        self._clock = clock
        self.max_count = max_count

        # key_to_defer is a map from the key to a _LinearizerEntry.
        self.key_to_defer: Dict[Hashable, _LinearizerEntry] = {}

    def is_queued(self, key: Hashable) -> bool:
        """Checks whether there is a process queued up waiting"""
        entry = self.key_to_defer.get(key)
        if not entry:
            # No entry so nothing is waiting.
            return False

        # There are waiting deferreds only in the OrderedDict of deferreds is
        # non-empty.
        return bool(entry.deferreds)

    def queue(self, key: Hashable) -> AsyncContextManager[None]:
        @asynccontextmanager
        async def _ctx_manager() -> AsyncIterator[None]:
            entry = await self._acquire_lock(key)
            try:
                yield
            finally:
                self._release_lock(key, entry)

        return _ctx_manager()

    async def _acquire_lock(self, key: Hashable) -> _LinearizerEntry:
        """Acquires a linearizer lock, waiting if necessary.

        Returns once we have secured the lock.
        """
        entry = self.key_to_defer.setdefault(
            key, _LinearizerEntry(0, collections.OrderedDict())
        )

        if entry.count < self.max_count:
            # The number of things executing is less than the maximum.
            logger.debug(
                "Acquired uncontended linearizer lock %r for key %r", self.name, key
            )
            entry.count += 1
            return entry

        # Otherwise, the number of things executing is at the maximum and we have to
        # add a deferred to the list of blocked items.
        # When one of the things currently executing finishes it will callback
        # this item so that it can continue executing.
        logger.debug("Waiting to acquire linearizer lock %r for key %r", self.name, key)

        new_defer: "defer.Deferred[None]" = defer.Deferred()
        entry.deferreds[new_defer] = 1

        try:
            await new_defer
        except Exception as e:
            logger.info("defer %r got err %r", new_defer, e)
            if isinstance(e, CancelledError):
                logger.debug(
                    "Cancelling wait for linearizer lock %r for key %r",
                    self.name,
                    key,
                )
            else:
                logger.warning(
                    "Unexpected exception waiting for linearizer lock %r for key %r",
                    self.name,
                    key,
                )

            # we just have to take ourselves back out of the queue.
            del entry.deferreds[new_defer]
            raise

        logger.debug("Acquired linearizer lock %r for key %r", self.name, key)
        entry.count += 1

        # if the code holding the lock completes synchronously, then it
        # will recursively run the next claimant on the list. That can
        # relatively rapidly lead to stack exhaustion. This is essentially
        # the same problem as http://twistedmatrix.com/trac/ticket/9304.
        #
        # In order to break the cycle, we add a cheeky sleep(0) here to
        # ensure that we fall back to the reactor between each iteration.
        #
        # This needs to happen while we hold the lock. We could put it on the
        # exit path, but that would slow down the uncontended case.
        try:
            await self._clock.sleep(0)
        except CancelledError:
            self._release_lock(key, entry)
            raise

        return entry

    def _release_lock(self, key: Hashable, entry: _LinearizerEntry) -> None:
        """Releases a held linearizer lock."""
        logger.debug("Releasing linearizer lock %r for key %r", self.name, key)

        # We've finished executing so check if there are any things
        # blocked waiting to execute and start one of them
        entry.count -= 1

        if entry.deferreds:
            (next_def, _) = entry.deferreds.popitem(last=False)
            next_def.callback(None)
        elif entry.count == 0:
            # We were the last thing for this key: remove it from the
            # map.
            del self.key_to_defer[key]
