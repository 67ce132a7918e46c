# Copyright Red Hat
#
# gitread/_gitread.py - Git repository reader global definitions
#
# This file is part of the gitread project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Global definitions for the top-level gitread package.
"""
from configparser import ConfigParser, Error as ConfigParserError
from dataclasses import dataclass
from datetime import datetime
from os.path import exists
from typing import Optional
import logging

_log = logging.getLogger("gitread")

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

# Gitread debugging subsystem mask
GITREAD_DEBUG_ODB = 1
GITREAD_DEBUG_WALK = 2
GITREAD_DEBUG_DIFF = 4
GITREAD_DEBUG_QUERY = 8
GITREAD_DEBUG_COMMAND = 16
GITREAD_DEBUG_ALL = (
    GITREAD_DEBUG_ODB
    | GITREAD_DEBUG_WALK
    | GITREAD_DEBUG_DIFF
    | GITREAD_DEBUG_QUERY
    | GITREAD_DEBUG_COMMAND
)

# Gitread debugging subsystem names
GITREAD_SUBSYSTEM_ODB = "gitread.odb"
GITREAD_SUBSYSTEM_WALK = "gitread.walk"
GITREAD_SUBSYSTEM_DIFF = "gitread.diff"
GITREAD_SUBSYSTEM_QUERY = "gitread.query"
GITREAD_SUBSYSTEM_COMMAND = "gitread.command"

_DEBUG_MASK_TO_SUBSYSTEM = {
    GITREAD_DEBUG_ODB: GITREAD_SUBSYSTEM_ODB,
    GITREAD_DEBUG_WALK: GITREAD_SUBSYSTEM_WALK,
    GITREAD_DEBUG_DIFF: GITREAD_SUBSYSTEM_DIFF,
    GITREAD_DEBUG_QUERY: GITREAD_SUBSYSTEM_QUERY,
    GITREAD_DEBUG_COMMAND: GITREAD_SUBSYSTEM_COMMAND,
}

_debug_subsystems = set()

#: Default number of commits listed by the history query
DEFAULT_HISTORY_LIMIT = 10

#: Default location of the gitread configuration file
GITREAD_CONF_PATH = "/etc/gitread/gitread.conf"

_GITREAD_CFG_GLOBAL = "global"
_GITREAD_CFG_HISTORY = "history"
_GITREAD_CFG_DIFF = "diff"


class SubsystemFilter(logging.Filter):
    """
    Filters DEBUG records based on a set of enabled subsystem names.
    Non-DEBUG records or DEBUG records without a 'subsystem' attribute
    are always passed through.
    """

    def __init__(self, name=""):
        super().__init__(name)
        self.enabled_subsystems = set(_debug_subsystems)

    def filter(self, record):
        if record.levelno != logging.DEBUG:
            return True

        if not hasattr(record, "subsystem"):
            return True

        return record.subsystem in self.enabled_subsystems

    def set_debug_subsystems(self, subsystems):
        """Sets the collection of subsystems to allow."""
        self.enabled_subsystems = set(subsystems)


def get_debug_mask():
    """
    Return the current debug mask for the ``gitread`` package.

    :returns: The current debug mask value
    :rtype: int
    """
    enabled_subsystems = set(_debug_subsystems)
    gitread_log = logging.getLogger("gitread")

    for handler in gitread_log.handlers:
        for f in handler.filters:
            if isinstance(f, SubsystemFilter):
                enabled_subsystems.update(f.enabled_subsystems)

    mask_map = {v: k for k, v in _DEBUG_MASK_TO_SUBSYSTEM.items()}
    mask = 0
    for subsystem_name in enabled_subsystems:
        mask |= mask_map.get(subsystem_name, 0)
    return mask


def set_debug_mask(mask):
    """
    Set the debug mask for the ``gitread`` package.

    :param mask: the logical OR of the ``GITREAD_DEBUG_*``
                 values to log.
    :rtype: None
    """
    # pylint: disable=global-statement
    global _debug_subsystems

    if mask < 0 or mask > GITREAD_DEBUG_ALL:
        raise ValueError(f"Invalid gitread debug mask: {mask}")

    enabled_subsystems = []
    for flag, subsystem_name in _DEBUG_MASK_TO_SUBSYSTEM.items():
        if mask & flag:
            enabled_subsystems.append(subsystem_name)

    gitread_log = logging.getLogger("gitread")
    for handler in gitread_log.handlers:
        for f in handler.filters:
            if isinstance(f, SubsystemFilter):
                f.set_debug_subsystems(enabled_subsystems)

    _debug_subsystems = set(enabled_subsystems)


def format_date(when: datetime) -> str:
    """
    Format ``when`` as a ``YYYY-MM-DD`` string in its own time zone.

    :param when: The timestamp to format.
    :type when: ``datetime``
    :returns: The formatted date.
    :rtype: ``str``
    """
    return when.strftime("%Y-%m-%d")


def format_git_date(when: datetime) -> str:
    """
    Format ``when`` the way ``git log`` prints author dates, for example
    ``Mon Jan 2 15:04:05 2006 -0700``.

    :param when: The timestamp to format.
    :type when: ``datetime``
    :returns: The formatted date.
    :rtype: ``str``
    """
    return f"{when:%a %b} {when.day} {when:%H:%M:%S %Y %z}"


@dataclass(frozen=True)
class GitreadConfig:
    """
    Gitread configuration, as read from ``gitread.conf``.
    """

    #: Repository to query when none is given on the command line
    repository: Optional[str] = None
    #: Default number of commits listed by ``log``
    history_limit: int = DEFAULT_HISTORY_LIMIT
    #: Worker threads used to compute file history diffs
    workers: int = 1
    #: Detect blob types using magic
    use_magic_file_type: bool = False
    #: Maximum blob size for generating content diffs
    max_content_diff_size: int = 2**20
    #: Edit distance above which the line differ falls back to difflib
    max_edit_distance: int = 4096
    #: Context lines around each unified diff hunk
    context_lines: int = 3

    @classmethod
    def from_file(cls, config_file: str) -> "GitreadConfig":
        """
        Load ``GitreadConfig`` from an INI-style configuration file located
        at ``config_file``.

        :param config_file: path to gitread.conf
        :type config_file: ``str``.
        :returns: A ``GitreadConfig`` instance initialised from
                  ``config_file``.
        :rtype: ``GitreadConfig``
        """
        if not exists(config_file):
            return GitreadConfig()

        _log_debug("Loading configuration from '%s'", config_file)
        cfg = ConfigParser()
        try:
            cfg.read([config_file])
            kwargs = {}
            if cfg.has_option(_GITREAD_CFG_GLOBAL, "repository"):
                kwargs["repository"] = cfg.get(_GITREAD_CFG_GLOBAL, "repository")
            if cfg.has_option(_GITREAD_CFG_HISTORY, "limit"):
                kwargs["history_limit"] = cfg.getint(_GITREAD_CFG_HISTORY, "limit")
            if cfg.has_option(_GITREAD_CFG_HISTORY, "workers"):
                kwargs["workers"] = cfg.getint(_GITREAD_CFG_HISTORY, "workers")
            if cfg.has_option(_GITREAD_CFG_DIFF, "use_magic_file_type"):
                kwargs["use_magic_file_type"] = cfg.getboolean(
                    _GITREAD_CFG_DIFF, "use_magic_file_type"
                )
            for name in ("max_content_diff_size", "max_edit_distance", "context_lines"):
                if cfg.has_option(_GITREAD_CFG_DIFF, name):
                    kwargs[name] = cfg.getint(_GITREAD_CFG_DIFF, name)
        except (ConfigParserError, ValueError) as err:
            raise GitreadConfigError(
                f"Invalid configuration file {config_file}: {err}"
            ) from err

        return GitreadConfig(**kwargs)


#
# Gitread exception types
#


class GitreadError(Exception):
    """
    Base class for gitread errors.
    """


class GitreadConfigError(GitreadError):
    """
    The configuration file could not be parsed.
    """


class GitreadArgumentError(GitreadError):
    """
    An invalid argument was passed to a gitread API call.
    """


class GitreadCancelledError(GitreadError):
    """
    A history walk was aborted by its cancellation signal.
    """


class RepositoryNotFoundError(GitreadError):
    """
    The given path is not the root of a git repository.
    """


class GitreadObjectError(GitreadError):
    """
    Base class for errors reading an individual object.
    """

    def __init__(self, message: str, oid=None, path: Optional[str] = None):
        """
        Initialise a new ``GitreadObjectError`` exception.

        :param message: A description of the failure.
        :param oid: The ``ObjectId`` being read, if known.
        :param path: The tree path being compared when the failure occurred.
        """
        super().__init__(message)
        self.message = message
        self.oid = oid
        self.path = path

    def __str__(self):
        if self.path is not None:
            return f"{self.message} (at path '{self.path}')"
        return self.message


class ObjectNotFoundError(GitreadObjectError):
    """
    No loose or packed object matches the requested id.
    """


class ReferenceNotFoundError(ObjectNotFoundError):
    """
    A reference (``HEAD`` or a branch) could not be resolved to an object.
    """


class CorruptObjectError(GitreadObjectError):
    """
    An object could not be decoded, or its content does not hash to its id.
    """


class RootReachedError(GitreadError):
    """
    The requested ancestor is further back than the root commit.
    """

    def __init__(self, start, requested: int, depth: int):
        """
        Initialise a new ``RootReachedError`` exception.

        :param start: The ``ObjectId`` the walk started from.
        :param requested: The number of commits requested.
        :param depth: The number of first-parent steps available.
        """
        self.start, self.requested, self.depth = start, requested, depth
        super().__init__(
            f"Reached root commit before going back {requested} commits "
            f"from {start} (history depth {depth})"
        )


class PathNotFoundError(GitreadError):
    """
    The requested file never existed on the relevant commit range.
    """

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Path '{path}' not found in the requested history")


__all__ = [
    # Debug logging
    "GITREAD_DEBUG_ODB",
    "GITREAD_DEBUG_WALK",
    "GITREAD_DEBUG_DIFF",
    "GITREAD_DEBUG_QUERY",
    "GITREAD_DEBUG_COMMAND",
    "GITREAD_DEBUG_ALL",
    "GITREAD_SUBSYSTEM_ODB",
    "GITREAD_SUBSYSTEM_WALK",
    "GITREAD_SUBSYSTEM_DIFF",
    "GITREAD_SUBSYSTEM_QUERY",
    "GITREAD_SUBSYSTEM_COMMAND",
    "SubsystemFilter",
    "get_debug_mask",
    "set_debug_mask",
    # Configuration
    "DEFAULT_HISTORY_LIMIT",
    "GITREAD_CONF_PATH",
    "GitreadConfig",
    # Formatting
    "format_date",
    "format_git_date",
    # Exceptions
    "GitreadError",
    "GitreadConfigError",
    "GitreadArgumentError",
    "GitreadCancelledError",
    "RepositoryNotFoundError",
    "GitreadObjectError",
    "ObjectNotFoundError",
    "ReferenceNotFoundError",
    "CorruptObjectError",
    "RootReachedError",
    "PathNotFoundError",
]
