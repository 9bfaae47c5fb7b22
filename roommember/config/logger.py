# Copyright 2014-2016 OpenMarket Ltd
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
import argparse
import logging
import logging.config
import os
import sys
import threading
from string import Template
from typing import TYPE_CHECKING, Any, Dict, Optional

import yaml
from zope.interface import implementer

from twisted.logger import (
    ILogObserver,
    LogBeginner,
    STDLibLogObserver,
    eventAsText,
    globalLogBeginner,
)

from roommember import __version__
from roommember.config._base import Config, ConfigError
from roommember.logging.filter import MetadataFilter
from roommember.types import JsonDict

if TYPE_CHECKING:
    from roommember.config.homeserver import HomeServerConfig

LOG_FORMAT = (
    "%(asctime)s - %(name)s - %(lineno)d - %(levelname)s - %(server_name)s"
    " - %(message)s"
)

DEFAULT_LOG_CONFIG = Template(
    """\
# Log configuration for roommember.
#
# This is a YAML file containing a standard Python logging configuration
# dictionary. See [1] for details on the valid settings.
#
# [1]: https://docs.python.org/3/library/logging.config.html#configuration-dictionary-schema

version: 1

formatters:
    precise:
        format: '%(asctime)s - %(name)s - %(lineno)d - %(levelname)s - \
%(server_name)s - %(message)s'

handlers:
    file:
        class: logging.handlers.TimedRotatingFileHandler
        formatter: precise
        filename: ${log_file}
        when: midnight
        backupCount: 3  # Does not include the current log file.
        encoding: utf8

    # A handler that writes logs to stderr. Unused by default, but can be used
    # instead of "file" in the logger handlers.
    console:
        class: logging.StreamHandler
        formatter: precise

loggers:
    roommember.storage.SQL:
        # increasing this to DEBUG will log every query with its arguments.
        level: INFO

root:
    level: INFO
    handlers: [file]

disable_existing_loggers: false
"""
)

STRUCTURED_ERROR = """\
Structured logging configuration is not supported. You should instead use the
standard logging configuration.
"""


class LoggingConfig(Config):
    section = "logging"

    def read_config(self, config: JsonDict, **kwargs: Any) -> None:
        self.log_config = self.abspath(config.get("log_config"))

    def generate_config_section(
        self, config_dir_path: str, server_name: str, **kwargs: Any
    ) -> str:
        log_config = os.path.join(config_dir_path, server_name + ".log.config")
        return (
            """\
        log_config: "%(log_config)s"
        """
            % locals()
        )

    def read_arguments(self, args: argparse.Namespace) -> None:
        if getattr(args, "log_config", None) is not None:
            self.log_config = self.abspath(args.log_config)

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        logging_group = parser.add_argument_group("logging")
        logging_group.add_argument(
            "--log-config",
            dest="log_config",
            metavar="LOG_CONFIG_FILE",
            help="Override the log_config setting of the config file.",
        )

    def generate_files(self, config: Dict[str, Any], config_dir_path: str) -> None:
        log_config = config.get("log_config")
        if log_config and not os.path.exists(log_config):
            log_file = self.abspath("roommember.log")
            print(
                "Generating log config file %s which will log to %s"
                % (log_config, log_file),
                file=sys.stderr,
            )
            with open(log_config, "w") as log_config_file:
                log_config_file.write(DEFAULT_LOG_CONFIG.substitute(log_file=log_file))


def _setup_stdlib_logging(
    config: "HomeServerConfig", log_config_path: Optional[str], logBeginner: LogBeginner
) -> None:
    """
    Set up Python standard library logging.
    """
    if log_config_path is None:
        logger = logging.getLogger("")
        logger.setLevel(logging.INFO)
        logging.getLogger("roommember.storage.SQL").setLevel(logging.INFO)

        formatter = logging.Formatter(LOG_FORMAT)

        handler = logging.StreamHandler()
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    else:
        # Load the logging configuration.
        _load_logging_config(log_config_path)

    # We add a log record factory that runs all messages through the
    # MetadataFilter so that every record carries the server name, whichever
    # handler ends up writing it.
    log_metadata_filter = MetadataFilter({"server_name": config.server.server_name})
    old_factory = logging.getLogRecordFactory()

    def factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
        record = old_factory(*args, **kwargs)
        log_metadata_filter.filter(record)
        return record

    logging.setLogRecordFactory(factory)

    # Route Twisted's native logging through to the standard library logging
    # system.
    observer = STDLibLogObserver()

    threadlocal = threading.local()

    @implementer(ILogObserver)
    def _log(event: dict) -> None:
        # this is a workaround to make sure we don't get stack overflows when the
        # logging system raises an error which is written to stderr which is redirected
        # to the logging system, etc.
        if getattr(threadlocal, "active", False):
            print("logging during logging: %s" % eventAsText(event), file=sys.__stderr__)
            return

        try:
            threadlocal.active = True
            return observer(event)
        finally:
            threadlocal.active = False

    logBeginner.beginLoggingTo([_log], redirectStandardIO=False)


def _load_logging_config(log_config_path: str) -> None:
    """
    Configure logging from a log config path.
    """
    with open(log_config_path, "rb") as f:
        log_config = yaml.safe_load(f.read())

    if not log_config:
        raise ConfigError("Loaded a blank logging config", ("log_config",))

    if "structured" in log_config and log_config.get("structured"):
        raise ConfigError(STRUCTURED_ERROR)

    logging.config.dictConfig(log_config)


def setup_logging(
    config: "HomeServerConfig",
    logBeginner: LogBeginner = globalLogBeginner,
) -> None:
    """
    Set up the logging subsystem.

    Args:
        config: configuration data

        logBeginner: The Twisted logBeginner to use.
    """
    from twisted.internet import reactor

    log_config_path = config.logging.log_config

    # Perform one-time logging configuration.
    _setup_stdlib_logging(config, log_config_path, logBeginner=logBeginner)

    # Log immediately so we can grep backwards.
    logging.info("Server %s version %s", sys.argv[0], __version__)
    logging.info("Server hostname: %s", config.server.server_name)
    logging.info("Twisted reactor: %s", type(reactor).__name__)
