# Copyright Red Hat
#
# gitread/diff/options.py - Git diff options
#
# This file is part of the gitread project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Diff options.
"""
from dataclasses import dataclass, fields
from typing import Optional
from argparse import Namespace
import logging

from gitread import GitreadArgumentError, GitreadConfig

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


@dataclass(frozen=True)
class DiffOptions:
    """
    Content and history comparison options.
    """

    #: Generate blob type information using magic
    use_magic_file_type: bool = False
    #: Maximum blob size for generating content diffs (0 = unlimited)
    max_content_diff_size: int = 2**20
    #: Edit distance above which line diffs become near-minimal (0 = unlimited)
    max_edit_distance: int = 4096
    #: Context lines around each unified diff hunk
    context_lines: int = 3
    #: Worker threads used to compute file history diffs
    workers: int = 1

    def __post_init__(self):
        for name in ("max_content_diff_size", "max_edit_distance", "context_lines"):
            if getattr(self, name) < 0:
                raise GitreadArgumentError(f"{name} must be >= 0")
        if self.workers < 1:
            raise GitreadArgumentError("workers must be >= 1")

    def __str__(self):
        """
        Return a human readable string representation of this
        ``DiffOptions`` instance.

        :returns: A human readable string.
        :rtype: ``str``
        """
        return "\n".join(f"{key}={val}" for key, val in self.__dict__.items())

    @classmethod
    def from_config(cls, config: GitreadConfig) -> "DiffOptions":
        """
        Initialise DiffOptions from a ``GitreadConfig``.

        :param config: The loaded configuration.
        :type config: ``GitreadConfig``
        :returns: A new ``DiffOptions`` instance
        :rtype: ``DiffOptions``
        """
        return cls(
            use_magic_file_type=config.use_magic_file_type,
            max_content_diff_size=config.max_content_diff_size,
            max_edit_distance=config.max_edit_distance,
            context_lines=config.context_lines,
            workers=config.workers,
        )

    @classmethod
    def from_cmd_args(
        cls, cmd_args: Namespace, base: Optional["DiffOptions"] = None
    ) -> "DiffOptions":
        """
        Initialise DiffOptions from command line arguments.

        Construct a new ``DiffOptions`` object from the command line
        arguments in ``cmd_args``. Arguments that are absent or ``None``
        keep the value from ``base``.

        :param cmd_args: The command line selection arguments.
        :type cmd_args: ``Namespace``
        :param base: Options supplying values not given on the command line.
        :type base: ``DiffOptions``
        :returns: A new ``DiffOptions`` instance
        :rtype: ``DiffOptions``
        """
        kwargs = dict(base.__dict__) if base is not None else {}
        for name in (f.name for f in fields(cls)):
            value = getattr(cmd_args, name, None)
            if value is not None:
                kwargs[name] = value
        options = cls(**kwargs)
        _log_debug("Initialised DiffOptions from arguments: %s", repr(options))
        return options


__all__ = [
    "DiffOptions",
]
