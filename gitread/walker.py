# Copyright Red Hat
#
# gitread/walker.py - Commit graph walker
#
# This file is part of the gitread project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Lazy traversal of commit history.

"N commits back" is always measured along first parents: a merge commit's
other parents are side branches and are not counted. The full-parent walk
is only used to list every reachable commit.
"""
from typing import Iterator, Optional, Tuple
import heapq
import logging

from gitread import (
    GitreadArgumentError,
    GitreadCancelledError,
    RootReachedError,
    GITREAD_SUBSYSTEM_WALK,
)
from gitread.odb import Commit, ObjectId, ObjectStore

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_walk(msg, *args, **kwargs):
    """A wrapper for walk subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": GITREAD_SUBSYSTEM_WALK}, **kwargs)


class CommitWalker:
    """
    Walk commit history through an ``ObjectStore``.
    """

    def __init__(self, store: ObjectStore, cancel=None):
        """
        Initialise a new ``CommitWalker``.

        :param store: The object store to read commits from.
        :type store: ``ObjectStore``
        :param cancel: An optional object with an ``is_set()`` method (for
                       example a ``threading.Event``), polled before every
                       step of a walk.
        """
        self.store = store
        self.cancel = cancel

    def _check_cancel(self):
        if self.cancel is not None and self.cancel.is_set():
            _log_debug_walk("Commit walk cancelled")
            raise GitreadCancelledError("History walk cancelled")

    def walk_from(self, oid: ObjectId, first_parent: bool = True) -> Iterator[Commit]:
        """
        Lazily yield commits starting at ``oid``.

        Each call returns an independent iterator. The first-parent walk ends
        at the root commit; the full walk yields every reachable commit once,
        newest committer date first.

        :param oid: The commit to start from (yielded first).
        :type oid: ``ObjectId``
        :param first_parent: Follow only first parents.
        :type first_parent: ``bool``
        :returns: An iterator over ``Commit`` objects.
        :rtype: ``Iterator[Commit]``
        """
        if first_parent:
            return self._walk_first_parent(oid)
        return self._walk_all(oid)

    def _walk_first_parent(self, oid: ObjectId) -> Iterator[Commit]:
        current: Optional[ObjectId] = oid
        while current is not None:
            self._check_cancel()
            commit = self.store.resolve_commit(current)
            yield commit
            current = commit.first_parent
        _log_debug_walk("Reached root commit walking from %s", oid)

    def _walk_all(self, oid: ObjectId) -> Iterator[Commit]:
        start = self.store.resolve_commit(oid)
        seen = {oid}
        counter = 0
        queue = [(-start.committer.when.timestamp(), counter, start)]
        while queue:
            self._check_cancel()
            _, _, commit = heapq.heappop(queue)
            yield commit
            for parent_id in commit.parents:
                if parent_id in seen:
                    continue
                seen.add(parent_id)
                parent = self.store.resolve_commit(parent_id)
                counter += 1
                heapq.heappush(
                    queue, (-parent.committer.when.timestamp(), counter, parent)
                )

    def pairs(self, oid: ObjectId) -> Iterator[Tuple[Commit, Optional[Commit]]]:
        """
        Yield ``(commit, parent)`` pairs along the first-parent chain from
        ``oid``. The root commit is paired with ``None``.

        :param oid: The commit to start from.
        :type oid: ``ObjectId``
        :rtype: ``Iterator[Tuple[Commit, Optional[Commit]]]``
        """
        previous = None
        for commit in self.walk_from(oid):
            if previous is not None:
                yield previous, commit
            previous = commit
        if previous is not None:
            yield previous, None

    def nth_ancestor(self, oid: ObjectId, n: int) -> Commit:
        """
        Return the commit ``n`` first-parent steps back from ``oid``.

        :param oid: The commit to start from.
        :type oid: ``ObjectId``
        :param n: The number of steps; 0 returns the start commit.
        :type n: ``int``
        :returns: The ancestor commit.
        :rtype: ``Commit``
        :raises RootReachedError: ``n`` exceeds the distance to the root.
        """
        if n < 0:
            raise GitreadArgumentError(f"Ancestor distance must be >= 0: {n}")
        depth = -1
        for depth, commit in enumerate(self.walk_from(oid)):
            if depth == n:
                return commit
        raise RootReachedError(oid, n, depth)


__all__ = [
    "CommitWalker",
]
