# Copyright Red Hat
#
# gitread/odb/repository.py - Git repository handle
#
# This file is part of the gitread project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Repository discovery, configuration and reference resolution.
"""
from configparser import ConfigParser, Error as ConfigParserError
from typing import Dict, Optional
from os.path import abspath, exists, isdir, isfile, join
import logging

from gitread import (
    ReferenceNotFoundError,
    RepositoryNotFoundError,
    GITREAD_SUBSYSTEM_ODB,
)

from .objects import Commit, ObjectId
from .store import ObjectStore

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_odb(msg, *args, **kwargs):
    """A wrapper for odb subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": GITREAD_SUBSYSTEM_ODB}, **kwargs)


#: Maximum number of symbolic references followed when resolving a ref
MAX_SYMREF_DEPTH = 5

_SYMREF_PREFIX = "ref: "
_GITDIR_PREFIX = "gitdir:"

# Order in which short reference names are tried, as rev-parse does.
_REF_SEARCH = ("{}", "refs/{}", "refs/tags/{}", "refs/heads/{}", "refs/remotes/{}")


def _read_text(path: str) -> Optional[str]:
    try:
        with open(path, "r", encoding="utf-8") as fp:
            return fp.read()
    except (FileNotFoundError, NotADirectoryError, IsADirectoryError):
        return None


def _find_git_dir(path: str) -> Optional[str]:
    """
    Return the git directory for the repository rooted at ``path``.

    Recognises a ``.git`` directory, a ``.git`` file containing a
    ``gitdir:`` pointer, and bare repositories.
    """
    dot_git = join(path, ".git")
    if isdir(dot_git):
        return dot_git
    if isfile(dot_git):
        content = _read_text(dot_git) or ""
        if content.startswith(_GITDIR_PREFIX):
            target = content[len(_GITDIR_PREFIX) :].strip()
            return abspath(join(path, target))
        return None
    if isfile(join(path, "HEAD")) and isdir(join(path, "objects")):
        return path
    return None


class Repository:
    """
    A read-only handle on an on-disk git repository.
    """

    def __init__(self, git_dir: str, work_tree: Optional[str] = None):
        """
        Initialise a ``Repository`` for the git directory ``git_dir``.

        :param git_dir: Path to the git directory.
        :type git_dir: ``str``
        :param work_tree: The working tree root, or ``None`` if bare.
        :type work_tree: ``Optional[str]``
        """
        self.git_dir = git_dir
        self.work_tree = work_tree

        commondir = _read_text(join(git_dir, "commondir"))
        self.common_dir = (
            abspath(join(git_dir, commondir.strip())) if commondir else git_dir
        )

        self.config = ConfigParser(
            strict=False, interpolation=None, allow_no_value=True
        )
        try:
            self.config.read([join(self.common_dir, "config")], encoding="utf-8")
        except (ConfigParserError, UnicodeDecodeError) as err:
            raise RepositoryNotFoundError(
                f"Invalid repository configuration in {self.common_dir}: {err}"
            ) from err

        self.object_format = (
            self.config.get("extensions", "objectformat", fallback="sha1") or "sha1"
        ).lower()
        objects_dir = join(self.common_dir, "objects")
        if not isdir(objects_dir):
            raise RepositoryNotFoundError(f"Missing objects directory: {objects_dir}")
        self.store = ObjectStore(objects_dir, self.object_format)
        self._packed_refs: Optional[Dict[str, ObjectId]] = None

    @classmethod
    def open(cls, path: str) -> "Repository":
        """
        Open the repository rooted at ``path``.

        :param path: A working tree root or a bare repository directory.
        :type path: ``str``
        :returns: A new repository handle.
        :rtype: ``Repository``
        :raises RepositoryNotFoundError: ``path`` is not a repository root.
        """
        path = abspath(path)
        if not isdir(path):
            raise RepositoryNotFoundError(f"No such directory: {path}")
        git_dir = _find_git_dir(path)
        if git_dir is None or not exists(join(git_dir, "HEAD")):
            raise RepositoryNotFoundError(f"Not a git repository: {path}")
        work_tree = None if git_dir == path else path
        _log_debug_odb("Opening repository %s (git dir %s)", path, git_dir)
        return cls(git_dir, work_tree)

    def __repr__(self):
        return f"Repository('{self.work_tree or self.git_dir}')"

    def close(self):
        """Release the object store."""
        self.store.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    @property
    def is_bare(self) -> bool:
        """``True`` if this repository has no working tree."""
        return self.work_tree is None

    @property
    def packed_refs(self) -> Dict[str, ObjectId]:
        """References listed in ``packed-refs``, loaded on first use."""
        if self._packed_refs is None:
            refs = {}
            content = _read_text(join(self.common_dir, "packed-refs")) or ""
            for line in content.splitlines():
                if not line or line[0] in "#^":
                    continue
                hexid, _, name = line.partition(" ")
                try:
                    refs[name.strip()] = ObjectId.from_hex(hexid)
                except ValueError:
                    _log_warn("Ignoring malformed packed-refs line: %s", line)
            self._packed_refs = refs
        return self._packed_refs

    def _read_ref(self, name: str) -> Optional[str]:
        # Per-worktree refs live in the git dir, shared refs in the common dir.
        for base in (self.git_dir, self.common_dir):
            content = _read_text(join(base, name))
            if content is not None:
                return content.strip()
        oid = self.packed_refs.get(name)
        return str(oid) if oid is not None else None

    def _resolve_exact(self, name: str) -> Optional[ObjectId]:
        for _ in range(MAX_SYMREF_DEPTH + 1):
            value = self._read_ref(name)
            if value is None:
                return None
            if value.startswith(_SYMREF_PREFIX):
                name = value[len(_SYMREF_PREFIX) :].strip()
                continue
            try:
                return ObjectId.from_hex(value)
            except ValueError as err:
                raise ReferenceNotFoundError(
                    f"Malformed reference {name}: {value!r}"
                ) from err
        raise ReferenceNotFoundError(
            f"Too many levels of symbolic references resolving {name}"
        )

    def resolve_ref(self, name: str) -> ObjectId:
        """
        Resolve a reference name (``HEAD``, ``refs/heads/main``, ``main``)
        to the object id it points at, following symbolic references.

        :param name: The reference name.
        :type name: ``str``
        :returns: The id the reference points at.
        :rtype: ``ObjectId``
        :raises ReferenceNotFoundError: The reference does not exist, is
                                        unborn, or loops.
        """
        for pattern in _REF_SEARCH:
            oid = self._resolve_exact(pattern.format(name))
            if oid is not None:
                _log_debug_odb("Resolved %s to %s", name, oid)
                return oid
        raise ReferenceNotFoundError(f"Reference {name} not found")

    def head(self) -> ObjectId:
        """
        Resolve ``HEAD``.

        :rtype: ``ObjectId``
        """
        return self.resolve_ref("HEAD")

    def head_commit(self) -> Commit:
        """
        Resolve ``HEAD`` to its commit.

        :rtype: ``Commit``
        """
        return self.store.resolve_commit(self.head())


__all__ = [
    "MAX_SYMREF_DEPTH",
    "Repository",
]
