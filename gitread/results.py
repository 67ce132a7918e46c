# Copyright Red Hat
#
# gitread/results.py - Query result containers
#
# This file is part of the gitread project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Result containers for the gitread queries, with text and JSON formatting.
"""
from typing import Any, Dict, Iterator, List, Optional
from datetime import datetime
import json
import logging

from gitread import format_date, format_git_date
from gitread.odb import Commit, ObjectId
from gitread.diff import ChangeKind, ContentDiff, FileChange, LineEdit

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

#: Separator printed after each entry of the history listing
HISTORY_SEPARATOR = "-" * 40

_ABBREV = 7
_NULL_ABBREV = "0" * _ABBREV


def render_file_diff(
    change: FileChange, content_diff: Optional[ContentDiff], context: int = 3
) -> str:
    """
    Render the git style diff of one changed file.

    :param change: The tree change for the file.
    :type change: ``FileChange``
    :param content_diff: The content diff of the two blobs, if available.
    :type content_diff: ``Optional[ContentDiff]``
    :param context: Number of unchanged lines shown around each change.
    :type context: ``int``
    :returns: The rendered diff, newline terminated.
    :rtype: ``str``
    """
    path = change.path
    lines = [f"diff --git a/{path} b/{path}\n"]
    old_abbrev = str(change.old_id)[:_ABBREV] if change.old_id else _NULL_ABBREV
    new_abbrev = str(change.new_id)[:_ABBREV] if change.new_id else _NULL_ABBREV
    if change.kind == ChangeKind.ADDED:
        lines.append(f"new file mode {change.new_mode:06o}\n")
        lines.append(f"index {old_abbrev}..{new_abbrev}\n")
    elif change.kind == ChangeKind.DELETED:
        lines.append(f"deleted file mode {change.old_mode:06o}\n")
        lines.append(f"index {old_abbrev}..{new_abbrev}\n")
    elif change.old_mode != change.new_mode:
        lines.append(f"old mode {change.old_mode:06o}\n")
        lines.append(f"new mode {change.new_mode:06o}\n")
        if change.old_id != change.new_id:
            lines.append(f"index {old_abbrev}..{new_abbrev}\n")
    else:
        lines.append(f"index {old_abbrev}..{new_abbrev} {change.new_mode:06o}\n")

    old_label = "/dev/null" if change.kind == ChangeKind.ADDED else f"a/{path}"
    new_label = "/dev/null" if change.kind == ChangeKind.DELETED else f"b/{path}"

    if content_diff is None:
        lines.append("Content diff unavailable\n")
    elif content_diff.is_binary:
        lines.append(f"Binary files {old_label} and {new_label} differ\n")
    elif content_diff.diff_type != "text":
        lines.append(f"{content_diff.summary}\n")
    else:
        hunks = content_diff.unified(context)
        if hunks:
            lines.append(f"--- {old_label}\n")
            lines.append(f"+++ {new_label}\n")
            lines.extend(hunks)
    return "".join(lines)


class CommitSummary:
    """
    The fields of a commit shown in history listings.
    """

    def __init__(
        self,
        oid: ObjectId,
        author: str,
        email: str,
        when: datetime,
        message: str,
    ):
        """
        Initialise a new ``CommitSummary``.

        :param oid: The commit id.
        :type oid: ``ObjectId``
        :param author: The author's name.
        :type author: ``str``
        :param email: The author's email address.
        :type email: ``str``
        :param when: The author timestamp, in the author's time zone.
        :type when: ``datetime``
        :param message: The full commit message.
        :type message: ``str``
        """
        self.oid = oid
        self.author = author
        self.email = email
        self.when = when
        self.message = message

    @classmethod
    def from_commit(cls, commit: Commit) -> "CommitSummary":
        """
        Build a ``CommitSummary`` from a decoded ``Commit``.

        :param commit: The commit to summarise.
        :type commit: ``Commit``
        :rtype: ``CommitSummary``
        """
        return cls(
            commit.oid,
            commit.author.name,
            commit.author.email,
            commit.author.when,
            commit.message,
        )

    @property
    def hash(self) -> str:
        """The hexadecimal commit id."""
        return str(self.oid)

    @property
    def date(self) -> str:
        """The author date as ``YYYY-MM-DD``."""
        return format_date(self.when)

    @property
    def summary(self) -> str:
        """The first line of the commit message."""
        return self.message.split("\n", 1)[0]

    def __str__(self):
        return (
            f"Commit: {self.hash}\n"
            f"Author: {self.author}\n"
            f"Date: {self.date}\n"
            f"Message: {self.summary}"
        )

    def log_header(self) -> str:
        """
        Return a ``git log`` style header for this commit.

        :rtype: ``str``
        """
        message = self.message.rstrip("\n").replace("\n", "\n    ")
        return (
            f"commit {self.hash}\n"
            f"Author: {self.author} <{self.email}>\n"
            f"Date:   {format_git_date(self.when)}\n"
            "\n"
            f"    {message}\n"
            "\n"
        )

    def to_dict(self) -> Dict[str, str]:
        """
        Convert this ``CommitSummary`` into a dictionary representation
        suitable for encoding as JSON.

        :rtype: ``Dict[str, str]``
        """
        return {
            "hash": self.hash,
            "author": self.author,
            "email": self.email,
            "date": self.date,
            "message": self.summary,
        }


class _ResultList:
    """
    List-like base for result containers.
    """

    def __init__(self, items: List):
        self._items = items

    def __iter__(self) -> Iterator:
        return iter(self._items)

    def __len__(self):
        return len(self._items)

    def __getitem__(self, index: int):
        return self._items[index]

    def to_dict(self) -> Dict[str, Any]:
        """
        Return a dictionary representation of this result.
        """
        raise NotImplementedError

    def json(self, pretty: bool = False) -> str:
        """
        Return a JSON representation of this result.

        :param pretty: Indent the JSON output.
        :type pretty: ``bool``
        :rtype: ``str``
        """
        return json.dumps(self.to_dict(), indent=4 if pretty else None)


class HistoryResults(_ResultList):
    """Container for a commit history listing."""

    def __init__(self, head: ObjectId, commits: List[CommitSummary]):
        super().__init__(commits)
        self.head = head

    def __repr__(self):
        return f"HistoryResults({str(self.head)!r}, [...{len(self)} commits])"

    def __str__(self):
        out = "Git History:\n\n"
        for commit in self._items:
            out += f"{commit}\n{HISTORY_SEPARATOR}\n"
        return out

    def to_dict(self) -> Dict[str, Any]:
        return {
            "head": str(self.head),
            "commits": [commit.to_dict() for commit in self._items],
        }


class ChangedFilesResults(_ResultList):
    """Container for the files changed between two commits."""

    def __init__(
        self,
        changes: List[FileChange],
        commits_back: int,
        head: ObjectId,
        base: ObjectId,
    ):
        super().__init__(changes)
        self.commits_back = commits_back
        self.head = head
        self.base = base

    def __repr__(self):
        return (
            f"ChangedFilesResults([...{len(self)} changes], {self.commits_back}, "
            f"{str(self.head)!r}, {str(self.base)!r})"
        )

    @property
    def added(self) -> List[FileChange]:
        """
        Return added files.

        :rtype: ``List[FileChange]``
        """
        return [c for c in self._items if c.kind == ChangeKind.ADDED]

    @property
    def modified(self) -> List[FileChange]:
        """
        Return modified files.

        :rtype: ``List[FileChange]``
        """
        return [c for c in self._items if c.kind == ChangeKind.MODIFIED]

    @property
    def deleted(self) -> List[FileChange]:
        """
        Return deleted files.

        :rtype: ``List[FileChange]``
        """
        return [c for c in self._items if c.kind == ChangeKind.DELETED]

    def paths(self) -> List[str]:
        """
        Return the changed paths.

        :rtype: ``List[str]``
        """
        return [change.path for change in self._items]

    def __str__(self):
        out = f"Files changed in the last {self.commits_back} commits:\n\n"
        for change in self._items:
            out += f"{change}\n"
        return out

    def to_dict(self) -> Dict[str, Any]:
        return {
            "commits_back": self.commits_back,
            "head": str(self.head),
            "base": str(self.base),
            "changes": [change.to_dict() for change in self._items],
        }


class FileDiffResult:
    """
    The diff of one file between an ancestor commit and ``HEAD``.
    """

    def __init__(
        self,
        path: str,
        commits_back: int,
        head: ObjectId,
        base: ObjectId,
        change: Optional[FileChange] = None,
        content_diff: Optional[ContentDiff] = None,
        context: int = 3,
    ):
        """
        Initialise a new ``FileDiffResult``.

        :param path: The file path that was compared.
        :param commits_back: The ancestor distance that was compared.
        :param head: The ``HEAD`` commit id.
        :param base: The ancestor commit id.
        :param change: The tree change for the path, ``None`` if unchanged.
        :param content_diff: The content diff, ``None`` if unchanged.
        :param context: Context lines for text rendering.
        """
        self.path = path
        self.commits_back = commits_back
        self.head = head
        self.base = base
        self.change = change
        self.content_diff = content_diff
        self.context = context

    @property
    def has_changes(self) -> bool:
        """``True`` if the file differs between the two commits."""
        return self.change is not None

    @property
    def edits(self) -> List[LineEdit]:
        """The line edit script, empty if unchanged or binary."""
        return self.content_diff.edits if self.content_diff else []

    def __str__(self):
        if not self.has_changes:
            return f"No changes found for file: {self.path}"
        return render_file_diff(self.change, self.content_diff, self.context)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert this ``FileDiffResult`` into a dictionary representation
        suitable for encoding as JSON.

        :rtype: ``Dict[str, Any]``
        """
        return {
            "path": self.path,
            "commits_back": self.commits_back,
            "head": str(self.head),
            "base": str(self.base),
            "has_changes": self.has_changes,
            "change": self.change.to_dict() if self.change else None,
            "content_diff": self.content_diff.to_dict() if self.content_diff else None,
        }

    def json(self, pretty: bool = False) -> str:
        """
        Return a JSON representation of this result.

        :rtype: ``str``
        """
        return json.dumps(self.to_dict(), indent=4 if pretty else None)


class FileHistoryEntry:
    """
    One commit of a file's history with the file's diff against its parent.
    """

    def __init__(
        self,
        commit: CommitSummary,
        change: FileChange,
        content_diff: Optional[ContentDiff],
        context: int = 3,
    ):
        self.commit = commit
        self.change = change
        self.content_diff = content_diff
        self.context = context

    def __str__(self):
        return self.commit.log_header() + render_file_diff(
            self.change, self.content_diff, self.context
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert this entry into a dictionary suitable for JSON.

        :rtype: ``Dict[str, Any]``
        """
        return {
            "commit": self.commit.to_dict(),
            "change": self.change.to_dict(),
            "content_diff": self.content_diff.to_dict() if self.content_diff else None,
        }


class FileHistoryResults(_ResultList):
    """Container for a file's history, newest commit first."""

    def __init__(self, path: str, head: ObjectId, entries: List[FileHistoryEntry]):
        super().__init__(entries)
        self.path = path
        self.head = head

    def __repr__(self):
        return f"FileHistoryResults({self.path!r}, [...{len(self)} entries])"

    def __str__(self):
        return "\n".join(str(entry) for entry in self._items)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "head": str(self.head),
            "entries": [entry.to_dict() for entry in self._items],
        }


__all__ = [
    "HISTORY_SEPARATOR",
    "render_file_diff",
    "CommitSummary",
    "HistoryResults",
    "ChangedFilesResults",
    "FileDiffResult",
    "FileHistoryEntry",
    "FileHistoryResults",
]
