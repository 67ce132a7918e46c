# Copyright Red Hat
#
# gitread/diff/treediff.py - Structural tree comparison
#
# This file is part of the gitread project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Structural comparison of two tree snapshots.
"""
from typing import Iterable, List, Optional, Set
import logging

from gitread import GitreadObjectError, GITREAD_SUBSYSTEM_DIFF
from gitread.odb import EntryKind, ObjectId, ObjectStore, Tree, TreeEntry

from .changes import FileChange
from .difftypes import ChangeKind

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_diff(msg, *args, **kwargs):
    """A wrapper for diff subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": GITREAD_SUBSYSTEM_DIFF}, **kwargs)


def _join(prefix: str, name: str) -> str:
    return f"{prefix}/{name}" if prefix else name


class _PathFilter:
    """
    Restricts a tree comparison to a set of file paths and the directories
    leading to them.
    """

    def __init__(self, paths: Iterable[str]):
        self.files: Set[str] = {path.strip("/") for path in paths}
        self.dirs: Set[str] = set()
        for path in self.files:
            parts = path.split("/")
            for i in range(1, len(parts)):
                self.dirs.add("/".join(parts[:i]))

    def wants_file(self, path: str) -> bool:
        return path in self.files

    def wants_dir(self, path: str) -> bool:
        return path in self.dirs


class TreeDiffer:
    """
    Compute the ``FileChange`` set between two trees.

    Sub-trees with equal ids are skipped without being read, so the cost
    of a comparison depends on the size of the change rather than the
    size of the trees.
    """

    def __init__(self, store: ObjectStore):
        """
        Initialise a new ``TreeDiffer``.

        :param store: The object store to resolve trees from.
        :type store: ``ObjectStore``
        """
        self.store = store

    def _tree(self, oid: Optional[ObjectId], path: str) -> Optional[Tree]:
        if oid is None:
            return None
        try:
            return self.store.resolve_tree(oid)
        except GitreadObjectError as err:
            if err.path is None:
                err.path = path or "/"
            raise

    def diff(
        self,
        old_tree_id: Optional[ObjectId],
        new_tree_id: Optional[ObjectId],
        paths: Optional[Iterable[str]] = None,
    ) -> List[FileChange]:
        """
        Compare two trees.

        :param old_tree_id: The original tree, or ``None`` for an empty tree.
        :type old_tree_id: ``Optional[ObjectId]``
        :param new_tree_id: The updated tree, or ``None`` for an empty tree.
        :type new_tree_id: ``Optional[ObjectId]``
        :param paths: Restrict the comparison to these file paths.
        :type paths: ``Optional[Iterable[str]]``
        :returns: The changed files, sorted by path.
        :rtype: ``List[FileChange]``
        """
        path_filter = _PathFilter(paths) if paths is not None else None
        changes: List[FileChange] = []
        if old_tree_id != new_tree_id:
            self._diff_trees(old_tree_id, new_tree_id, "", path_filter, changes)
        changes.sort(key=lambda change: change.path)
        _log_debug_diff(
            "Compared trees %s and %s: %d changes",
            old_tree_id,
            new_tree_id,
            len(changes),
        )
        return changes

    def _diff_trees(
        self,
        old_id: Optional[ObjectId],
        new_id: Optional[ObjectId],
        prefix: str,
        path_filter: Optional[_PathFilter],
        changes: List[FileChange],
    ):
        old_tree = self._tree(old_id, prefix)
        new_tree = self._tree(new_id, prefix)
        names = set()
        for tree in (old_tree, new_tree):
            if tree is not None:
                names.update(entry.name for entry in tree)

        for name in sorted(names):
            path = _join(prefix, name)
            old = old_tree.get(name) if old_tree is not None else None
            new = new_tree.get(name) if new_tree is not None else None
            if old is not None and old.kind == EntryKind.GITLINK:
                old = None
            if new is not None and new.kind == EntryKind.GITLINK:
                new = None
            self._diff_entries(old, new, path, path_filter, changes)

    def _diff_entries(
        self,
        old: Optional[TreeEntry],
        new: Optional[TreeEntry],
        path: str,
        path_filter: Optional[_PathFilter],
        changes: List[FileChange],
    ):
        if old is None and new is None:
            return
        if old is not None and new is not None:
            if old.oid == new.oid and old.mode == new.mode:
                return
            if old.is_tree and new.is_tree:
                if path_filter is None or path_filter.wants_dir(path):
                    self._diff_trees(old.oid, new.oid, path, path_filter, changes)
                return
            if not old.is_tree and not new.is_tree:
                if path_filter is None or path_filter.wants_file(path):
                    changes.append(
                        FileChange(
                            path,
                            ChangeKind.MODIFIED,
                            old.oid,
                            new.oid,
                            old.mode,
                            new.mode,
                        )
                    )
                return
            _log_debug_diff("Kind of %s changed", path)
        if old is not None:
            self._expand(old, path, ChangeKind.DELETED, path_filter, changes)
        if new is not None:
            self._expand(new, path, ChangeKind.ADDED, path_filter, changes)

    def _expand(
        self,
        entry: TreeEntry,
        path: str,
        kind: ChangeKind,
        path_filter: Optional[_PathFilter],
        changes: List[FileChange],
    ):
        """
        Report every blob under ``entry`` as added or deleted.
        """
        if entry.is_tree:
            if path_filter is not None and not path_filter.wants_dir(path):
                return
            tree = self._tree(entry.oid, path)
            for child in tree:
                if child.kind == EntryKind.GITLINK:
                    continue
                self._expand(child, _join(path, child.name), kind, path_filter, changes)
            return

        if path_filter is not None and not path_filter.wants_file(path):
            return
        if kind == ChangeKind.ADDED:
            changes.append(
                FileChange(path, kind, new_id=entry.oid, new_mode=entry.mode)
            )
        else:
            changes.append(
                FileChange(path, kind, old_id=entry.oid, old_mode=entry.mode)
            )

    def lookup(self, tree_id: Optional[ObjectId], path: str) -> Optional[TreeEntry]:
        """
        Find the entry at ``path`` below the tree ``tree_id``.

        :param tree_id: The root tree to search, or ``None`` for an empty tree.
        :type tree_id: ``Optional[ObjectId]``
        :param path: A slash separated path.
        :type path: ``str``
        :returns: The matching ``TreeEntry`` or ``None`` if there is none.
        :rtype: ``Optional[TreeEntry]``
        """
        parts = [part for part in path.split("/") if part]
        if not parts:
            return None
        entry = None
        current = tree_id
        walked = ""
        for part in parts:
            if current is None:
                return None
            tree = self._tree(current, walked)
            entry = tree.get(part)
            if entry is None:
                return None
            walked = _join(walked, part)
            current = entry.oid if entry.is_tree else None
        return entry


__all__ = [
    "TreeDiffer",
]
