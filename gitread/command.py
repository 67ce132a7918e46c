# Copyright Red Hat
#
# gitread/command.py - Repository query command interface
#
# This file is part of the gitread project.
#
# SPDX-License-Identifier: Apache-2.0
"""The ``gitread.command`` module provides both the gitread command line
interface infrastructure, and a simple procedural interface to the
``gitread`` library modules.

The procedural interface is used by the ``gitread`` command line tool,
and may be used by application programs, or interactively in the
Python shell by users who do not require all the features present
in the ``GitQuery`` object API.
"""
from argparse import ArgumentParser
from typing import Optional
from os.path import basename
import logging
import os
import sys

from gitread import (
    GITREAD_CONF_PATH,
    GITREAD_DEBUG_ODB,
    GITREAD_DEBUG_WALK,
    GITREAD_DEBUG_DIFF,
    GITREAD_DEBUG_QUERY,
    GITREAD_DEBUG_COMMAND,
    GITREAD_DEBUG_ALL,
    GITREAD_SUBSYSTEM_COMMAND,
    GitreadConfig,
    GitreadError,
    SubsystemFilter,
    set_debug_mask,
    __version__,
)
from gitread.odb import Repository
from gitread.diff import DiffOptions
from gitread.query import GitQuery
from gitread.results import (
    ChangedFilesResults,
    FileDiffResult,
    FileHistoryResults,
    HistoryResults,
)

#: Environment variables naming the repository, in lookup order
REPOSITORY_ENV_VARS = ("CLIENT_WORKDIR", "WORKDIR")

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_command(msg, *args, **kwargs):
    """A wrapper for command subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": GITREAD_SUBSYSTEM_COMMAND}, **kwargs)


_DEFAULT_LOG_LEVEL = logging.WARNING
_CONSOLE_HANDLER = None

#
# Procedural interface
#


def resolve_repository_path(
    repository: Optional[str] = None, config: Optional[GitreadConfig] = None
) -> str:
    """
    Return the repository path to query.

    The first of the explicit ``repository`` argument, the
    ``CLIENT_WORKDIR`` and ``WORKDIR`` environment variables, the
    configured repository and the current working directory is used.

    :param repository: An explicit repository path.
    :type repository: ``Optional[str]``
    :param config: The loaded configuration.
    :type config: ``Optional[GitreadConfig]``
    :returns: The repository path.
    :rtype: ``str``
    """
    if repository:
        return repository
    for var in REPOSITORY_ENV_VARS:
        value = os.environ.get(var)
        if value:
            _log_debug_command("Using repository from %s=%s", var, value)
            return value
    if config is not None and config.repository:
        return config.repository
    return os.getcwd()


def list_history(
    repository: Repository, limit: int, first_parent: bool = True
) -> HistoryResults:
    """
    List the most recent ``limit`` commits reachable from ``HEAD``.

    :param repository: The repository to query.
    :param limit: The maximum number of commits to list.
    :param first_parent: Follow only first parents.
    :returns: A ``HistoryResults`` object.
    """
    return GitQuery(repository).list_history(limit=limit, first_parent=first_parent)


def list_changed_files(
    repository: Repository, commits_back: int
) -> ChangedFilesResults:
    """
    List the files changed in the last ``commits_back`` commits.

    :param repository: The repository to query.
    :param commits_back: The first-parent distance of the base commit.
    :returns: A ``ChangedFilesResults`` object.
    """
    return GitQuery(repository).list_changed_files(commits_back)


def file_diff(
    repository: Repository,
    path: str,
    commits_back: int = 1,
    options: Optional[DiffOptions] = None,
) -> FileDiffResult:
    """
    Diff the file at ``path`` against its version ``commits_back`` commits
    ago.

    :param repository: The repository to query.
    :param path: The file path to compare.
    :param commits_back: The first-parent distance of the base commit.
    :param options: Diff options.
    :returns: A ``FileDiffResult`` object.
    """
    return GitQuery(repository, options=options).file_diff(path, commits_back)


def file_history(
    repository: Repository, path: str, options: Optional[DiffOptions] = None
) -> FileHistoryResults:
    """
    Return the history of the file at ``path`` with per-commit diffs.

    :param repository: The repository to query.
    :param path: The file path to trace.
    :param options: Diff options.
    :returns: A ``FileHistoryResults`` object.
    """
    return GitQuery(repository, options=options).file_history(path)


#
# Command handlers
#


def _load_config(cmd_args) -> GitreadConfig:
    config_file = cmd_args.config or GITREAD_CONF_PATH
    config = GitreadConfig.from_file(config_file)
    _log_debug_command("Loaded configuration: %s", config)
    return config


def _open_repository(cmd_args, config: GitreadConfig) -> Repository:
    path = resolve_repository_path(cmd_args.repository, config)
    _log_info("Opening repository at %s", path)
    return Repository.open(path)


def _check_output_args(cmd_args) -> bool:
    if cmd_args.pretty and not cmd_args.json:
        _log_error("Option --pretty only supported with --json")
        return False
    return True


def _write_output(text: str):
    """
    Write ``text`` to standard output. Blob content and path names that are
    not valid UTF-8 were decoded with ``surrogateescape`` and are written
    back as their original bytes.
    """
    buffer = getattr(sys.stdout, "buffer", None)
    if buffer is None:
        sys.stdout.write(text)
        return
    sys.stdout.flush()
    buffer.write(text.encode("utf-8", errors="surrogateescape"))
    buffer.flush()


def _print_results(results, cmd_args):
    if cmd_args.json:
        _write_output(results.json(pretty=cmd_args.pretty) + "\n")
        return
    text = str(results)
    _write_output(text if text.endswith("\n") else text + "\n")


def _log_cmd(cmd_args):
    """
    Commit history command handler.

    List the most recent commits on the first-parent chain from ``HEAD``.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    if not _check_output_args(cmd_args):
        return 1
    try:
        config = _load_config(cmd_args)
        limit = cmd_args.limit if cmd_args.limit is not None else config.history_limit
        with _open_repository(cmd_args, config) as repository:
            results = list_history(
                repository, limit, first_parent=not cmd_args.all_parents
            )
    except GitreadError as err:
        _log_error("Could not list history: %s", err)
        return 1
    _print_results(results, cmd_args)
    return 0


def _changed_files_cmd(cmd_args):
    """
    Changed files command handler.

    List the files changed between ``HEAD`` and an ancestor commit.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    if not _check_output_args(cmd_args):
        return 1
    try:
        config = _load_config(cmd_args)
        with _open_repository(cmd_args, config) as repository:
            results = list_changed_files(repository, cmd_args.commits_back)
    except GitreadError as err:
        _log_error("Could not list changed files: %s", err)
        return 1
    _print_results(results, cmd_args)
    return 0


def _diff_cmd(cmd_args):
    """
    File diff command handler.

    Compare one file between an ancestor commit and ``HEAD``.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    if not _check_output_args(cmd_args):
        return 1
    try:
        config = _load_config(cmd_args)
        options = DiffOptions.from_cmd_args(cmd_args, DiffOptions.from_config(config))
        with _open_repository(cmd_args, config) as repository:
            result = file_diff(
                repository, cmd_args.file, cmd_args.commits_back, options=options
            )
    except GitreadError as err:
        _log_error("Could not diff %s: %s", cmd_args.file, err)
        return 1
    _print_results(result, cmd_args)
    return 0


def _history_cmd(cmd_args):
    """
    File history command handler.

    Show every commit that changed a file together with its diff.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    if not _check_output_args(cmd_args):
        return 1
    try:
        config = _load_config(cmd_args)
        options = DiffOptions.from_cmd_args(cmd_args, DiffOptions.from_config(config))
        with _open_repository(cmd_args, config) as repository:
            results = file_history(repository, cmd_args.file, options=options)
    except GitreadError as err:
        _log_error("Could not show history of %s: %s", cmd_args.file, err)
        return 1
    _print_results(results, cmd_args)
    return 0


def setup_logging(cmd_args):
    """
    Set up gitread logging.
    """
    # pylint: disable=global-statement
    global _CONSOLE_HANDLER
    level = _DEFAULT_LOG_LEVEL
    if cmd_args.verbose and cmd_args.verbose > 1:
        level = logging.DEBUG
    elif cmd_args.verbose and cmd_args.verbose > 0:
        level = logging.INFO

    gitread_log = logging.getLogger("gitread")
    formatter = logging.Formatter("%(levelname)s - %(message)s")
    gitread_log.setLevel(level)
    if gitread_log.hasHandlers():
        gitread_log.handlers.clear()

    _gitread_subsystem_filter = SubsystemFilter("gitread")

    _CONSOLE_HANDLER = logging.StreamHandler()
    _CONSOLE_HANDLER.setLevel(level)
    _CONSOLE_HANDLER.setFormatter(formatter)
    _CONSOLE_HANDLER.addFilter(_gitread_subsystem_filter)

    gitread_log.addHandler(_CONSOLE_HANDLER)


def shutdown_logging():
    """
    Shut down gitread logging.
    """
    logging.shutdown()


def set_debug(debug_arg):
    """
    Set debugging mask from command line argument.
    """
    if not debug_arg:
        return

    mask_map = {
        "odb": GITREAD_DEBUG_ODB,
        "walk": GITREAD_DEBUG_WALK,
        "diff": GITREAD_DEBUG_DIFF,
        "query": GITREAD_DEBUG_QUERY,
        "command": GITREAD_DEBUG_COMMAND,
        "all": GITREAD_DEBUG_ALL,
    }

    mask = 0
    for name in debug_arg.split(","):
        if name not in mask_map:
            raise ValueError(f"Unknown debug option: {name}")
        mask |= mask_map[name]
    set_debug_mask(mask)


def _add_json_args(parser):
    parser.add_argument(
        "-j",
        "--json",
        action="store_true",
        help="Display output in JSON notation",
    )
    parser.add_argument(
        "-p",
        "--pretty",
        action="store_true",
        help="Indent JSON output",
    )


def _add_magic_arg(parser):
    parser.add_argument(
        "-m",
        "--magic",
        dest="use_magic_file_type",
        action="store_true",
        default=None,
        help="Detect file types using libmagic",
    )


def _add_log_subparser(command_subparser):
    log_parser = command_subparser.add_parser("log", help="Show commit history")
    log_parser.set_defaults(func=_log_cmd)
    log_parser.add_argument(
        "-n",
        "--limit",
        metavar="LIMIT",
        type=int,
        help="Maximum number of commits to show",
    )
    log_parser.add_argument(
        "-a",
        "--all-parents",
        action="store_true",
        help="Include commits reachable through any parent",
    )
    _add_json_args(log_parser)


def _add_changed_files_subparser(command_subparser):
    changed_parser = command_subparser.add_parser(
        "changed-files", help="List files changed in recent commits"
    )
    changed_parser.set_defaults(func=_changed_files_cmd)
    changed_parser.add_argument(
        "commits_back",
        metavar="COMMITS_BACK",
        type=int,
        help="Number of commits back from HEAD to compare with",
    )
    _add_json_args(changed_parser)


def _add_diff_subparser(command_subparser):
    diff_parser = command_subparser.add_parser(
        "diff", help="Show changes to a file in recent commits"
    )
    diff_parser.set_defaults(func=_diff_cmd)
    diff_parser.add_argument(
        "file",
        metavar="FILE",
        type=str,
        help="The path of the file to compare",
    )
    diff_parser.add_argument(
        "commits_back",
        metavar="COMMITS_BACK",
        type=int,
        nargs="?",
        default=1,
        help="Number of commits back from HEAD to compare with (default: 1)",
    )
    diff_parser.add_argument(
        "-U",
        "--context",
        dest="context_lines",
        metavar="LINES",
        type=int,
        help="Number of context lines around each change",
    )
    _add_magic_arg(diff_parser)
    _add_json_args(diff_parser)


def _add_history_subparser(command_subparser):
    history_parser = command_subparser.add_parser(
        "history", help="Show every commit that changed a file"
    )
    history_parser.set_defaults(func=_history_cmd)
    history_parser.add_argument(
        "file",
        metavar="FILE",
        type=str,
        help="The path of the file to trace",
    )
    history_parser.add_argument(
        "-w",
        "--workers",
        metavar="WORKERS",
        type=int,
        help="Number of threads used to compute diffs",
    )
    history_parser.add_argument(
        "-U",
        "--context",
        dest="context_lines",
        metavar="LINES",
        type=int,
        help="Number of context lines around each change",
    )
    _add_magic_arg(history_parser)
    _add_json_args(history_parser)


def main(args):
    """
    Main entry point for gitread.
    """
    parser = ArgumentParser(
        description="Read-only git repository queries", prog=basename(args[0])
    )

    # Global arguments
    parser.add_argument(
        "-d",
        "--debug",
        metavar="DEBUGOPTS",
        type=str,
        help="A list of debug options to enable",
    )
    parser.add_argument("-v", "--verbose", help="Enable verbose output", action="count")
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        help="Report the version number of gitread",
        version=__version__,
    )
    parser.add_argument(
        "-r",
        "--repository",
        metavar="REPOSITORY",
        type=str,
        help="Path to the repository to query",
    )
    parser.add_argument(
        "-c",
        "--config",
        metavar="CONFIG",
        type=str,
        help=f"Path to the configuration file (default: {GITREAD_CONF_PATH})",
    )
    command_subparser = parser.add_subparsers(dest="command", help="Command")

    _add_log_subparser(command_subparser)

    _add_changed_files_subparser(command_subparser)

    _add_diff_subparser(command_subparser)

    _add_history_subparser(command_subparser)

    cmd_args = parser.parse_args(args[1:])

    status = 1

    try:
        set_debug(cmd_args.debug)
    except ValueError as err:
        print(err)
        parser.print_help()
        return status

    setup_logging(cmd_args)

    _log_debug_command("Parsed %s", " ".join(args[1:]))

    if "func" not in cmd_args:
        parser.print_help()
        shutdown_logging()
        return status

    if cmd_args.debug:
        status = cmd_args.func(cmd_args)
    else:
        try:
            status = cmd_args.func(cmd_args)
        # pylint: disable=broad-except
        except KeyboardInterrupt:  # pragma: no cover
            _log_info("Exiting on user cancel")
        except Exception as err:
            _log_error("Command failed: %s", err)

    shutdown_logging()
    return status


def run():
    """
    Console script entry point.
    """
    sys.exit(main(sys.argv))


__all__ = [
    "REPOSITORY_ENV_VARS",
    "resolve_repository_path",
    "list_history",
    "list_changed_files",
    "file_diff",
    "file_history",
    "setup_logging",
    "shutdown_logging",
    "set_debug",
    "main",
    "run",
]


# vim: set et ts=4 sw=4 :
