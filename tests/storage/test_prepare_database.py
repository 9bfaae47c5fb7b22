# Copyright 2022 The Matrix.org Foundation C.I.C.
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
import sqlite3

from roommember.config.homeserver import HomeServerConfig
from roommember.storage.database import LoggingDatabaseConnection
from roommember.storage.engines import create_engine
from roommember.storage.prepare_database import (
    SCHEMA_VERSION,
    UpgradeDatabaseException,
    get_statements,
    prepare_database,
)

from tests import unittest
from tests.utils import default_config


class GetStatementsTestCase(unittest.TestCase):
    def test_splits_on_semicolons(self) -> None:
        statements = list(
            get_statements(
                [
                    "CREATE TABLE a (x INTEGER);",
                    "CREATE TABLE b (",
                    "    y TEXT  -- a trailing comment; with a semicolon",
                    ");",
                ]
            )
        )
        self.assertEqual(
            statements, ["CREATE TABLE a (x INTEGER)", "CREATE TABLE b ( y TEXT )"]
        )

    def test_strips_block_comments(self) -> None:
        statements = list(
            get_statements(
                [
                    "/* Licensed under the Apache License;",
                    " * http://www.apache.org/licenses/LICENSE-2.0",
                    " */",
                    "INSERT INTO a VALUES (1); /* inline */ INSERT INTO a VALUES (2);",
                ]
            )
        )
        self.assertEqual(
            statements, ["INSERT INTO a VALUES (1)", "INSERT INTO a VALUES (2)"]
        )


class PrepareDatabaseTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine({"name": "sqlite3", "args": {}})
        self.db_conn = LoggingDatabaseConnection(
            sqlite3.connect(":memory:"), self.engine, "test"
        )
        self.addCleanup(self.db_conn.close)
        self.config: HomeServerConfig = default_config("test", parse=True)

    def _schema_version(self):
        cur = self.db_conn.cursor()
        cur.execute("SELECT version, upgraded FROM schema_version")
        row = cur.fetchone()
        cur.close()
        return row

    def _tables(self):
        cur = self.db_conn.cursor()
        cur.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        tables = {name for name, in cur}
        cur.close()
        return tables

    def test_new_database(self) -> None:
        prepare_database(self.db_conn, self.engine, self.config)

        self.assertEqual(self._schema_version(), (SCHEMA_VERSION, 1))
        self.assertTrue(
            {"users", "rooms", "room_power_levels", "room_memberships"}
            <= self._tables()
        )

        cur = self.db_conn.cursor()
        cur.execute("SELECT version, file FROM applied_schema_deltas")
        self.assertEqual(cur.fetchall(), [(2, "2/room_memberships_user_idx.sql")])
        cur.close()

    def test_prepare_is_idempotent(self) -> None:
        prepare_database(self.db_conn, self.engine, self.config)
        prepare_database(self.db_conn, self.engine, self.config)
        prepare_database(self.db_conn, self.engine, None)

        self.assertEqual(self._schema_version(), (SCHEMA_VERSION, 1))

    def test_upgrade_from_old_version(self) -> None:
        prepare_database(self.db_conn, self.engine, self.config)

        # Wind the database back to before the delta was applied.
        cur = self.db_conn.cursor()
        cur.execute("DROP INDEX room_memberships_user_id")
        cur.execute("DELETE FROM applied_schema_deltas")
        cur.execute("UPDATE schema_version SET version = 1, upgraded = ?", (False,))
        cur.close()
        self.db_conn.commit()

        # Without a config we refuse to upgrade.
        with self.assertRaises(UpgradeDatabaseException):
            prepare_database(self.db_conn, self.engine, None)

        prepare_database(self.db_conn, self.engine, self.config)
        self.assertEqual(self._schema_version(), (SCHEMA_VERSION, 1))

        cur = self.db_conn.cursor()
        cur.execute(
            "SELECT name FROM sqlite_master WHERE type = 'index'"
            " AND name = 'room_memberships_user_id'"
        )
        self.assertIsNotNone(cur.fetchone())
        cur.close()

    def test_too_new_database(self) -> None:
        prepare_database(self.db_conn, self.engine, self.config)

        cur = self.db_conn.cursor()
        cur.execute("UPDATE schema_version SET version = ?", (SCHEMA_VERSION + 1,))
        cur.close()
        self.db_conn.commit()

        with self.assertRaises(ValueError):
            prepare_database(self.db_conn, self.engine, self.config)
