# Copyright Red Hat
#
# gitread/diff/__init__.py - Git diff package
#
# This file is part of the gitread project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Tree and content diff package.

Provides structural comparison of tree snapshots and line level comparison
of blob contents. The main entry points are ``TreeDiffer``, ``diff_lines``
and ``ContentDifferManager``.
"""
from .changes import FileChange, LineEdit
from .contentdiff import (
    NO_NEWLINE_MARKER,
    ContentDiff,
    ContentDifferManager,
    diff_lines,
    split_lines,
    unified_hunks,
)
from .difftypes import ChangeKind, EditKind
from .filetypes import BlobTypeDetector, FileTypeCategory, FileTypeInfo
from .options import DiffOptions
from .treediff import TreeDiffer

__all__ = [
    "NO_NEWLINE_MARKER",
    "BlobTypeDetector",
    "ChangeKind",
    "ContentDiff",
    "ContentDifferManager",
    "DiffOptions",
    "EditKind",
    "FileChange",
    "FileTypeCategory",
    "FileTypeInfo",
    "LineEdit",
    "TreeDiffer",
    "diff_lines",
    "split_lines",
    "unified_hunks",
]
