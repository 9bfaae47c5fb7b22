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

"""
The storage layer is split into two parts. The `DatabasePool` class represents
connections to a single physical database. The `databases` are classes that
talk directly to a `DatabasePool` instance and have an associated schema.

The schema (including the schema version tables that get applied to every
database) is stored in `roommember.storage.schema`.
"""

from roommember.storage.databases import Databases
from roommember.storage.databases.main import DataStore

__all__ = ["Databases", "DataStore"]
