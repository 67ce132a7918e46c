# Copyright Red Hat
#
# gitread/odb/__init__.py - Git object database package
#
# This file is part of the gitread project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Read-only git object database: loose objects, packs, refs.
"""
from .objects import (
    HASH_LENGTHS,
    MODE_TREE,
    MODE_GITLINK,
    MODE_BLOB,
    MODE_EXECUTABLE,
    MODE_SYMLINK,
    ObjectId,
    ObjectType,
    hash_object,
    Signature,
    GitObject,
    Blob,
    EntryKind,
    TreeEntry,
    Tree,
    Commit,
    parse_object,
)
from .loose import LooseObjectStore, parse_loose_header
from .pack import apply_delta, find_packs, Pack, PackData, PackIndex
from .store import ObjectStore, ObjectStoreStats
from .repository import MAX_SYMREF_DEPTH, Repository

__all__ = [
    "HASH_LENGTHS",
    "MODE_TREE",
    "MODE_GITLINK",
    "MODE_BLOB",
    "MODE_EXECUTABLE",
    "MODE_SYMLINK",
    "ObjectId",
    "ObjectType",
    "hash_object",
    "Signature",
    "GitObject",
    "Blob",
    "EntryKind",
    "TreeEntry",
    "Tree",
    "Commit",
    "parse_object",
    "LooseObjectStore",
    "parse_loose_header",
    "apply_delta",
    "find_packs",
    "Pack",
    "PackData",
    "PackIndex",
    "ObjectStore",
    "ObjectStoreStats",
    "MAX_SYMREF_DEPTH",
    "Repository",
]
