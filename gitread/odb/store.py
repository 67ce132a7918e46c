# Copyright Red Hat
#
# gitread/odb/store.py - Git object store
#
# This file is part of the gitread project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Object store combining loose and packed storage with a per-query cache.
"""
from typing import Dict, List, Optional, Tuple
import logging
import os
import threading
import weakref

from gitread import (
    CorruptObjectError,
    ObjectNotFoundError,
    GITREAD_SUBSYSTEM_ODB,
)

from .objects import (
    HASH_LENGTHS,
    Blob,
    Commit,
    GitObject,
    ObjectId,
    ObjectType,
    Tree,
    hash_object,
    parse_object,
)
from .loose import LooseObjectStore
from .pack import Pack, find_packs

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_odb(msg, *args, **kwargs):
    """A wrapper for odb subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": GITREAD_SUBSYSTEM_ODB}, **kwargs)


class ObjectStoreStats:
    """
    Counters describing how an ``ObjectStore`` satisfied its reads.
    """

    def __init__(self):
        self.loose_reads = 0
        self.packed_reads = 0
        self.cache_hits = 0

    @property
    def reads(self) -> int:
        """Total number of objects read from disk."""
        return self.loose_reads + self.packed_reads

    def __str__(self):
        return (
            f"loose_reads={self.loose_reads}, packed_reads={self.packed_reads}, "
            f"cache_hits={self.cache_hits}"
        )

    def to_dict(self) -> Dict[str, int]:
        """
        Return the counters as a dictionary.

        :rtype: ``Dict[str, int]``
        """
        return {
            "loose_reads": self.loose_reads,
            "packed_reads": self.packed_reads,
            "cache_hits": self.cache_hits,
        }


class ObjectStore:
    """
    Resolve object ids to decoded objects, loose storage first, then packs.

    Commits and trees are memoised by value for the lifetime of the store;
    blobs only while some caller still holds a reference. The caches and
    counters are guarded by a lock so that worker threads can share one
    store.
    """

    def __init__(self, objects_dir: str, object_format: str = "sha1"):
        """
        Initialise a new ``ObjectStore``.

        :param objects_dir: Path to the repository ``objects`` directory.
        :type objects_dir: ``str``
        :param object_format: The repository hash algorithm, ``sha1`` or
                              ``sha256``.
        :type object_format: ``str``
        """
        if object_format not in HASH_LENGTHS:
            raise CorruptObjectError(f"Unsupported object format: {object_format}")
        self.objects_dir = objects_dir
        self.object_format = object_format
        self.hash_len = HASH_LENGTHS[object_format]
        self.loose = LooseObjectStore(objects_dir)
        self.stats = ObjectStoreStats()
        self._packs: Optional[List[Pack]] = None
        self._cache: Dict[ObjectId, GitObject] = {}
        self._blobs = weakref.WeakValueDictionary()
        self._lock = threading.RLock()

    @property
    def packs(self) -> List[Pack]:
        """The packs found under ``objects/pack``, opened on first use."""
        with self._lock:
            if self._packs is None:
                pack_dir = os.path.join(self.objects_dir, "pack")
                packs = [Pack(base, self.hash_len) for base in find_packs(pack_dir)]
                _log_debug_odb("Opened %d packs in %s", len(packs), pack_dir)
                self._packs = packs
            return self._packs

    def close(self):
        """Release pack mappings and drop cached objects."""
        with self._lock:
            for pack in self._packs or []:
                pack.close()
            self._packs = None
            self._cache.clear()
            self._blobs.clear()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def __contains__(self, oid: ObjectId) -> bool:
        return oid in self.loose or any(oid in pack for pack in self.packs)

    def read_raw(self, oid: ObjectId) -> Tuple[ObjectType, bytes]:
        """
        Read the type and payload of ``oid`` without decoding or verifying it.

        :param oid: The object id.
        :type oid: ``ObjectId``
        :returns: A 2-tuple of (type, payload).
        :rtype: ``Tuple[ObjectType, bytes]``
        :raises ObjectNotFoundError: No loose or packed object matches.
        """
        found = self.loose.read(oid)
        if found is not None:
            with self._lock:
                self.stats.loose_reads += 1
            return found

        for pack in self.packs:
            found = pack.read(oid, self.read_raw)
            if found is not None:
                _log_debug_odb("Read %s from pack %s", oid, pack.name)
                with self._lock:
                    self.stats.packed_reads += 1
                return found

        raise ObjectNotFoundError(f"Object {oid} not found", oid=oid)

    def _cached(self, oid: ObjectId) -> Optional[GitObject]:
        with self._lock:
            obj = self._cache.get(oid)
            if obj is None:
                obj = self._blobs.get(oid)
            if obj is not None:
                self.stats.cache_hits += 1
            return obj

    def resolve(self, oid: ObjectId) -> GitObject:
        """
        Resolve ``oid`` to a decoded, hash-verified object.

        :param oid: The object id.
        :type oid: ``ObjectId``
        :returns: The shared decoded object.
        :rtype: ``GitObject``
        :raises ObjectNotFoundError: No loose or packed object matches.
        :raises CorruptObjectError: The object could not be decoded or does not
                                    hash to ``oid``.
        """
        obj = self._cached(oid)
        if obj is not None:
            return obj

        obj_type, data = self.read_raw(oid)
        computed = hash_object(obj_type, data, self.object_format)
        if computed != oid:
            raise CorruptObjectError(
                f"Hash mismatch: object {oid} hashes to {computed}", oid=oid
            )
        obj = parse_object(oid, obj_type, data)

        with self._lock:
            if obj_type == ObjectType.BLOB:
                return self._blobs.setdefault(oid, obj)
            return self._cache.setdefault(oid, obj)

    def _resolve_typed(self, oid: ObjectId, obj_class):
        obj = self.resolve(oid)
        if not isinstance(obj, obj_class):
            raise CorruptObjectError(
                f"Object {oid} is a {obj.type.name.lower()}, "
                f"expected a {obj_class.type.name.lower()}",
                oid=oid,
            )
        return obj

    def resolve_commit(self, oid: ObjectId) -> Commit:
        """
        Resolve ``oid`` and check that it names a commit.

        :rtype: ``Commit``
        """
        return self._resolve_typed(oid, Commit)

    def resolve_tree(self, oid: ObjectId) -> Tree:
        """
        Resolve ``oid`` and check that it names a tree.

        :rtype: ``Tree``
        """
        return self._resolve_typed(oid, Tree)

    def resolve_blob(self, oid: ObjectId) -> Blob:
        """
        Resolve ``oid`` and check that it names a blob.

        :rtype: ``Blob``
        """
        return self._resolve_typed(oid, Blob)


__all__ = [
    "ObjectStore",
    "ObjectStoreStats",
]
