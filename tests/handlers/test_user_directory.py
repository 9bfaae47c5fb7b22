# Copyright 2018 New Vector
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
from twisted.test.proto_helpers import MemoryReactor

from roommember.server import HomeServer
from roommember.util import Clock

from tests import unittest


class UserDirectoryTestCase(unittest.HomeserverTestCase):
    def prepare(self, reactor: MemoryReactor, clock: Clock, hs: HomeServer) -> None:
        self.store = hs.get_datastores().main
        self.handler = hs.get_user_directory_handler()

    def test_registered_user(self) -> None:
        user_id = self.register_user("user")
        self.assertTrue(self.get_success(self.handler.exists_and_active(user_id)))

    def test_unknown_user(self) -> None:
        self.assertFalse(
            self.get_success(self.handler.exists_and_active("@ghost:test"))
        )

    def test_deactivated_user(self) -> None:
        user_id = self.register_user("user")
        self.get_success(self.store.set_user_deactivated_status(user_id, True))

        self.assertFalse(self.get_success(self.handler.exists_and_active(user_id)))

    def test_reactivated_user(self) -> None:
        user_id = self.register_user("user")
        self.get_success(self.store.set_user_deactivated_status(user_id, True))
        self.get_success(self.store.set_user_deactivated_status(user_id, False))

        self.assertTrue(self.get_success(self.handler.exists_and_active(user_id)))
