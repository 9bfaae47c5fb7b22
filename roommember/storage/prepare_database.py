# Copyright 2014 - 2016 OpenMarket Ltd
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

import logging
import os
import re
from typing import TYPE_CHECKING, Generator, Iterable, List, Optional, TextIO

import attr

from roommember.storage.engines import BaseDatabaseEngine, Sqlite3Engine
from roommember.storage.types import Cursor

if TYPE_CHECKING:
    from roommember.config.homeserver import HomeServerConfig
    from roommember.storage.database import LoggingDatabaseConnection

logger = logging.getLogger(__name__)


# Remember to update this number every time a change is made to database
# schema files, so the users will be informed on server restarts.
SCHEMA_VERSION = 2

schema_path = os.path.join(os.path.abspath(os.path.dirname(__file__)), "schema")


class PrepareDatabaseException(Exception):
    pass


class UpgradeDatabaseException(PrepareDatabaseException):
    pass


@attr.s(slots=True, auto_attribs=True)
class _SchemaState:
    current_version: int
    """The current schema version of the database"""

    applied_deltas: List[str]
    """Relative paths of the deltas applied at or after `current_version`"""

    upgraded: bool
    """Whether the current version was reached by applying deltas, rather than
    from a full schema"""


def prepare_database(
    db_conn: "LoggingDatabaseConnection",
    database_engine: BaseDatabaseEngine,
    config: Optional["HomeServerConfig"],
) -> None:
    """Prepares a physical database for usage. Will either create all necessary tables
    or upgrade from an older schema version.

    If `config` is None then prepare_database will assert that no upgrade is
    necessary, *or* will create a fresh database if the database is empty.

    Args:
        db_conn:
        database_engine:
        config :
            application config, or None if we are connecting to an existing
            database which we expect to be configured already
    """

    try:
        cur = db_conn.cursor(txn_name="prepare_database")

        version_info = _get_or_create_schema_state(cur, database_engine)

        if version_info:
            if config is None:
                if version_info.current_version != SCHEMA_VERSION:
                    # If we don't pass in a config file then we are expecting to
                    # have already upgraded the DB.
                    raise UpgradeDatabaseException(
                        "Expected database schema version %i but got %i"
                        % (SCHEMA_VERSION, version_info.current_version)
                    )
            else:
                _upgrade_existing_database(
                    cur,
                    version_info,
                    database_engine,
                )
        else:
            logger.info("Setting up new database")
            _setup_new_database(cur, database_engine)

        cur.close()
        db_conn.commit()
    except Exception:
        db_conn.rollback()
        raise


def _setup_new_database(cur: Cursor, database_engine: BaseDatabaseEngine) -> None:
    """Sets up the database by finding a base set of "full schemas" and then
    applying any necessary deltas.

    The "full_schemas" directory has subdirectories named after versions. This
    function searches for the highest version less than or equal to
    `SCHEMA_VERSION` and executes all .sql files in that directory.

    The function will then apply all deltas for all versions after the base
    version.

    Example directory structure:

        schema/
            delta/
                ...
            full_schemas/
                1/
                    full.sql
                    ...
                3/
                    foo.sql
                    bar.sql.postgres
                ...

    In the example foo.sql and bar.sql.postgres would be run (the latter only
    on postgres), and then any delta files for versions strictly greater than 3.
    """

    # We're about to set up a brand new database so we check that its
    # configured to our liking.
    database_engine.check_new_database(cur)

    full_schemas_dir = os.path.join(schema_path, "full_schemas")

    # First we find the highest full schema version we have
    valid_versions = []

    for filename in os.listdir(full_schemas_dir):
        try:
            ver = int(filename)
        except ValueError:
            continue

        if ver <= SCHEMA_VERSION:
            valid_versions.append(ver)

    if not valid_versions:
        raise PrepareDatabaseException(
            "Could not find a suitable base set of full schemas"
        )

    max_current_ver = max(valid_versions)

    logger.debug("Initialising schema v%d", max_current_ver)

    directory = os.path.join(full_schemas_dir, str(max_current_ver))
    directory_entries = sorted(
        _DirectoryListing(file_name, os.path.join(directory, file_name))
        for file_name in os.listdir(directory)
    )

    specific = _engine_specific_extension(database_engine)

    for entry in directory_entries:
        if entry.file_name.endswith(".sql") or entry.file_name.endswith(
            ".sql" + specific
        ):
            logger.debug("Applying schema %s", entry.absolute_path)
            executescript(cur, entry.absolute_path)

    cur.execute(
        "INSERT INTO schema_version (version, upgraded) VALUES (?,?)",
        (max_current_ver, False),
    )

    _upgrade_existing_database(
        cur,
        _SchemaState(
            current_version=max_current_ver, applied_deltas=[], upgraded=False
        ),
        database_engine,
    )


def _upgrade_existing_database(
    cur: Cursor,
    current_schema_state: _SchemaState,
    database_engine: BaseDatabaseEngine,
) -> None:
    """Upgrades an existing physical database.

    Delta files are SQL stored in *.sql files, optionally suffixed with the
    engine they apply to (`.sql.sqlite`, `.sql.postgres`).

    There can be multiple delta files per version. We keep track of which delta
    files have been applied, and will apply any that haven't been even if there
    has been no version bump.

    Different delta files for the same version *must* be orthogonal and give
    the same result when applied in any order.

    This is a no-op if current_version == SCHEMA_VERSION.

    Args:
        cur
        current_schema_state: The current version of the schema, as
            returned by _get_or_create_schema_state
        database_engine
    """
    if current_schema_state.current_version > SCHEMA_VERSION:
        raise ValueError(
            "Cannot use this database as it is too "
            + "new for the server to understand"
        )

    start_ver = current_schema_state.current_version
    if not current_schema_state.upgraded:
        start_ver += 1

    logger.debug("applied_delta_files: %s", current_schema_state.applied_deltas)

    specific_engine_extension = _engine_specific_extension(database_engine)
    specific_engine_extensions = (".sqlite", ".postgres")

    for v in range(start_ver, SCHEMA_VERSION + 1):
        logger.info("Applying schema deltas for v%d", v)

        delta_dir = os.path.join(schema_path, "delta", str(v))

        directory_entries: List[_DirectoryListing] = []
        logger.debug("Looking for schema deltas in %s", delta_dir)
        try:
            file_names = os.listdir(delta_dir)
        except FileNotFoundError:
            # Not every version has deltas.
            file_names = []
        except OSError:
            raise UpgradeDatabaseException(
                "Could not open delta dir for version %d: %s" % (v, delta_dir)
            )

        for file_name in file_names:
            directory_entries.append(
                _DirectoryListing(file_name, os.path.join(delta_dir, file_name))
            )

        # We sort to ensure that we apply the delta files in a consistent
        # order (to avoid bugs caused by inconsistent directory listing order)
        directory_entries.sort()
        for entry in directory_entries:
            file_name = entry.file_name
            relative_path = os.path.join(str(v), file_name)
            absolute_path = entry.absolute_path

            logger.debug("Found file: %s (%s)", relative_path, absolute_path)
            if relative_path in current_schema_state.applied_deltas:
                continue

            root_name, ext = os.path.splitext(file_name)

            if ext == ".sql":
                # A plain old .sql file, just read and execute it
                logger.info("Applying schema %s", relative_path)
                executescript(cur, absolute_path)
            elif ext == specific_engine_extension and root_name.endswith(".sql"):
                # A .sql file specific to our engine; just read and execute it
                logger.info("Applying engine-specific schema %s", relative_path)
                executescript(cur, absolute_path)
            elif ext in specific_engine_extensions and root_name.endswith(".sql"):
                # A .sql file for a different engine; skip it.
                continue
            else:
                # Not a valid delta file.
                logger.warning(
                    "Found directory entry that did not end in .sql: %s",
                    relative_path,
                )
                continue

            # Mark as done.
            cur.execute(
                "INSERT INTO applied_schema_deltas (version, file) VALUES (?,?)",
                (v, relative_path),
            )

            cur.execute("DELETE FROM schema_version")
            cur.execute(
                "INSERT INTO schema_version (version, upgraded) VALUES (?,?)",
                (v, True),
            )

    logger.info("Schema now up to date")


def _engine_specific_extension(database_engine: BaseDatabaseEngine) -> str:
    if isinstance(database_engine, Sqlite3Engine):
        return ".sqlite"
    return ".postgres"


def get_statements(f: Iterable[str]) -> Generator[str, None, None]:
    statement_buffer = ""
    in_comment = False  # If we're in a /* ... */ style comment

    for line in f:
        line = line.strip()

        if in_comment:
            # Check if this line contains an end to the comment
            comments = line.split("*/", 1)
            if len(comments) == 1:
                continue
            line = comments[1]
            in_comment = False

        # Remove inline block comments
        line = re.sub(r"/\*.*\*/", " ", line)

        # Does this line start a comment?
        comments = line.split("/*", 1)
        if len(comments) > 1:
            line = comments[0]
            in_comment = True

        # Deal with line comments
        line = line.split("--", 1)[0]
        line = line.split("//", 1)[0]

        # Find *all* semicolons. We need to treat first and last entry
        # specially.
        statements = line.split(";")

        # We must prepend statement_buffer to the first statement
        first_statement = "%s %s" % (statement_buffer.strip(), statements[0].strip())
        statements[0] = first_statement

        # Every entry, except the last, is a full statement
        for statement in statements[:-1]:
            yield statement.strip()

        # The last entry did *not* end in a semicolon, so we store it for the
        # next semicolon we find
        statement_buffer = statements[-1].strip()


def executescript(txn: Cursor, schema_path: str) -> None:
    with open(schema_path) as f:
        execute_statements_from_stream(txn, f)


def execute_statements_from_stream(cur: Cursor, f: TextIO) -> None:
    for statement in get_statements(f):
        cur.execute(statement)


def _get_or_create_schema_state(
    txn: Cursor, database_engine: BaseDatabaseEngine
) -> Optional[_SchemaState]:
    # Bluntly try creating the schema_version tables.
    executescript(txn, os.path.join(schema_path, "schema_version.sql"))

    txn.execute("SELECT version, upgraded FROM schema_version")
    row = txn.fetchone()

    if row is None:
        # new database
        return None

    current_version = int(row[0])
    upgraded = bool(row[1])

    txn.execute(
        "SELECT file FROM applied_schema_deltas WHERE version >= ?",
        (current_version,),
    )
    applied_deltas = [d for d, in txn]

    return _SchemaState(
        current_version=current_version,
        applied_deltas=applied_deltas,
        upgraded=upgraded,
    )


@attr.s(slots=True, auto_attribs=True, order=True)
class _DirectoryListing:
    """Helper class to store schema file name and the
    absolute path to it.

    These entries get sorted, so for consistency we want to ensure that
    `file_name` attr is kept first.
    """

    file_name: str
    absolute_path: str


__all__ = ["prepare_database", "SCHEMA_VERSION", "get_statements"]
