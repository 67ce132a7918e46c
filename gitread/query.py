# Copyright Red Hat
#
# gitread/query.py - Read-only repository queries
#
# This file is part of the gitread project.
#
# SPDX-License-Identifier: Apache-2.0
"""
The four read-only repository queries: commit history, changed files,
single file diff and single file history.

A ``GitQuery`` wraps an open ``Repository`` and answers each question by
combining the commit walker, the tree differ and the content differ. All
commit distances follow the first-parent chain from ``HEAD``.
"""
from concurrent.futures import ThreadPoolExecutor
from itertools import islice
from typing import List, Optional, Tuple
import logging

from gitread import (
    DEFAULT_HISTORY_LIMIT,
    GITREAD_SUBSYSTEM_QUERY,
    GitreadArgumentError,
    PathNotFoundError,
)
from gitread.odb import Blob, Commit, EntryKind, ObjectId, Repository
from gitread.walker import CommitWalker
from gitread.diff import (
    ContentDiff,
    ContentDifferManager,
    DiffOptions,
    FileChange,
    TreeDiffer,
)
from gitread.results import (
    ChangedFilesResults,
    CommitSummary,
    FileDiffResult,
    FileHistoryEntry,
    FileHistoryResults,
    HistoryResults,
)

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_query(msg, *args, **kwargs):
    """A wrapper for query subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": GITREAD_SUBSYSTEM_QUERY}, **kwargs)


def _normalize_path(path: str) -> str:
    normalized = "/".join(part for part in path.split("/") if part not in ("", "."))
    if not normalized:
        raise GitreadArgumentError(f"Invalid file path: '{path}'")
    return normalized


class GitQuery:
    """
    Answer history and diff questions about one repository.
    """

    def __init__(
        self,
        repository: Repository,
        options: Optional[DiffOptions] = None,
        cancel=None,
    ):
        """
        Initialise a new ``GitQuery``.

        :param repository: The open repository to query.
        :type repository: ``Repository``
        :param options: Diff options, or ``None`` for defaults.
        :type options: ``Optional[DiffOptions]``
        :param cancel: An optional object with an ``is_set()`` method that
                       is polled at every step of a commit walk.
        """
        self.repository = repository
        self.store = repository.store
        self.options = options or DiffOptions()
        self.walker = CommitWalker(self.store, cancel=cancel)
        self.tree_differ = TreeDiffer(self.store)
        self.content_differ = ContentDifferManager(self.options)

    def _head(self) -> Tuple[ObjectId, Commit]:
        head = self.repository.head()
        return head, self.store.resolve_commit(head)

    def _blob(self, oid: Optional[ObjectId]) -> Optional[Blob]:
        return self.store.resolve_blob(oid) if oid is not None else None

    def _content_diff(self, change: FileChange) -> Optional[ContentDiff]:
        return self.content_differ.generate_content_diff(
            change.path, self._blob(change.old_id), self._blob(change.new_id)
        )

    def list_history(
        self, limit: int = DEFAULT_HISTORY_LIMIT, first_parent: bool = True
    ) -> HistoryResults:
        """
        List the most recent commits reachable from ``HEAD``.

        :param limit: The maximum number of commits to return.
        :type limit: ``int``
        :param first_parent: Follow only first parents.
        :type first_parent: ``bool``
        :returns: Commit summaries, newest first.
        :rtype: ``HistoryResults``
        """
        if limit < 0:
            raise GitreadArgumentError(f"History limit must be >= 0: {limit}")
        head, _ = self._head()
        commits = [
            CommitSummary.from_commit(commit)
            for commit in islice(self.walker.walk_from(head, first_parent), limit)
        ]
        _log_debug_query("Listed %d commits from %s", len(commits), head)
        return HistoryResults(head, commits)

    def list_changed_files(self, commits_back: int) -> ChangedFilesResults:
        """
        List the files changed between the ``commits_back`` ancestor of
        ``HEAD`` and ``HEAD``.

        :param commits_back: The first-parent distance of the base commit.
        :type commits_back: ``int``
        :returns: The changed files in path order.
        :rtype: ``ChangedFilesResults``
        """
        head, head_commit = self._head()
        base = self.walker.nth_ancestor(head, commits_back)
        changes = self.tree_differ.diff(base.tree, head_commit.tree)
        _log_debug_query(
            "Found %d changed files between %s and %s", len(changes), base.oid, head
        )
        return ChangedFilesResults(changes, commits_back, head, base.oid)

    def _path_in_range(self, path: str, head: ObjectId, commits_back: int) -> bool:
        for commit in islice(self.walker.walk_from(head), commits_back + 1):
            entry = self.tree_differ.lookup(commit.tree, path)
            if entry is not None and entry.kind == EntryKind.BLOB:
                return True
        return False

    def file_diff(self, path: str, commits_back: int = 1) -> FileDiffResult:
        """
        Compare one file between the ``commits_back`` ancestor of ``HEAD``
        and ``HEAD``.

        :param path: The slash separated file path.
        :type path: ``str``
        :param commits_back: The first-parent distance of the base commit.
        :type commits_back: ``int``
        :returns: The change and content diff, or an empty result if the
                  file did not change.
        :rtype: ``FileDiffResult``
        :raises PathNotFoundError: The path is not a file at either end or
                                   at any commit between them.
        """
        path = _normalize_path(path)
        head, head_commit = self._head()
        base = self.walker.nth_ancestor(head, commits_back)
        context = self.options.context_lines

        changes = self.tree_differ.diff(base.tree, head_commit.tree, paths=[path])
        if not changes:
            if not self._path_in_range(path, head, commits_back):
                raise PathNotFoundError(path)
            _log_debug_query("No changes to %s since %s", path, base.oid)
            return FileDiffResult(path, commits_back, head, base.oid, context=context)

        change = changes[0]
        content_diff = self._content_diff(change)
        _log_debug_query("Diffed %s (%s) since %s", path, change.kind.value, base.oid)
        return FileDiffResult(
            path,
            commits_back,
            head,
            base.oid,
            change=change,
            content_diff=content_diff,
            context=context,
        )

    def _history_candidates(
        self, path: str, head: ObjectId
    ) -> List[Tuple[Commit, FileChange]]:
        candidates = []
        for commit, parent in self.walker.pairs(head):
            old_tree = parent.tree if parent is not None else None
            for change in self.tree_differ.diff(old_tree, commit.tree, paths=[path]):
                candidates.append((commit, change))
        return candidates

    def file_history(self, path: str, workers: Optional[int] = None):
        """
        Return every first-parent commit that changed ``path``, with the
        file's diff against that commit's parent.

        :param path: The slash separated file path.
        :type path: ``str``
        :param workers: Threads used for content diffs, or ``None`` to use
                        the configured value.
        :type workers: ``Optional[int]``
        :returns: History entries, newest first.
        :rtype: ``FileHistoryResults``
        :raises PathNotFoundError: No commit reachable from ``HEAD`` has a
                                   file at ``path``.
        """
        path = _normalize_path(path)
        workers = workers if workers is not None else self.options.workers
        if workers < 1:
            raise GitreadArgumentError(f"Worker count must be >= 1: {workers}")

        head, _ = self._head()
        candidates = self._history_candidates(path, head)
        if not candidates:
            raise PathNotFoundError(path)
        _log_debug_query(
            "Found %d commits changing %s, diffing with %d workers",
            len(candidates),
            path,
            workers,
        )

        changes = [change for _, change in candidates]
        if workers > 1 and len(candidates) > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                content_diffs = list(executor.map(self._content_diff, changes))
        else:
            content_diffs = [self._content_diff(change) for change in changes]

        context = self.options.context_lines
        entries = [
            FileHistoryEntry(
                CommitSummary.from_commit(commit), change, content_diff, context
            )
            for (commit, change), content_diff in zip(candidates, content_diffs)
        ]
        _log_debug_query("Object store reads: %s", self.store.stats)
        return FileHistoryResults(path, head, entries)


__all__ = [
    "GitQuery",
]
