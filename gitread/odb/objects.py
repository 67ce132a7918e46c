# Copyright Red Hat
#
# gitread/odb/objects.py - Git object model
#
# This file is part of the gitread project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Decoded git objects: commits, trees and blobs.
"""
from datetime import datetime, timedelta, timezone
from typing import ClassVar, Dict, List, Optional, Tuple
from enum import Enum
import hashlib
import logging
import re

from gitread import CorruptObjectError

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

#: Raw digest length for each supported object format
HASH_LENGTHS = {"sha1": 20, "sha256": 32}

MODE_TREE = 0o40000
MODE_GITLINK = 0o160000
MODE_BLOB = 0o100644
MODE_EXECUTABLE = 0o100755
MODE_SYMLINK = 0o120000

_SIGNATURE_RE = re.compile(
    rb"^(.*?)\s*<([^>]*)>\s*(-?\d+)(?:\s+([+-])(\d\d)(\d\d))?\s*$"
)


class ObjectId(bytes):
    """
    A binary git object id (20 bytes for SHA-1, 32 bytes for SHA-256).
    """

    def __new__(cls, raw: bytes):
        if len(raw) not in HASH_LENGTHS.values():
            raise ValueError(f"Invalid object id length: {len(raw)}")
        return super().__new__(cls, raw)

    @classmethod
    def from_hex(cls, hexid) -> "ObjectId":
        """
        Parse a hexadecimal object id.

        :param hexid: The hex string (``str`` or ``bytes``) to parse.
        :returns: The corresponding ``ObjectId``.
        :rtype: ``ObjectId``
        """
        if isinstance(hexid, bytes):
            hexid = hexid.decode("ascii")
        return cls(bytes.fromhex(hexid.strip()))

    def __str__(self):
        return bytes.hex(self)

    def __repr__(self):
        return f"ObjectId('{bytes.hex(self)}')"


class ObjectType(Enum):
    """
    Git object types, numbered as in pack entry headers.
    """

    COMMIT = 1
    TREE = 2
    BLOB = 3
    TAG = 4

    @property
    def type_name(self) -> bytes:
        """The name used in loose object headers."""
        return self.name.lower().encode("ascii")

    @classmethod
    def from_name(cls, name: bytes) -> "ObjectType":
        """
        Look up an ``ObjectType`` by its loose header name.

        :param name: The type name, e.g. ``b"commit"``.
        :type name: ``bytes``
        :returns: The matching ``ObjectType``.
        :rtype: ``ObjectType``
        """
        try:
            return cls[name.decode("ascii").upper()]
        except (KeyError, UnicodeDecodeError) as err:
            raise CorruptObjectError(f"Unknown object type {name!r}") from err


def hash_object(obj_type: ObjectType, data: bytes, algorithm: str = "sha1") -> ObjectId:
    """
    Compute the id of an object from its type and payload.

    :param obj_type: The object type.
    :type obj_type: ``ObjectType``
    :param data: The object payload, without header.
    :type data: ``bytes``
    :param algorithm: The repository object format, ``sha1`` or ``sha256``.
    :type algorithm: ``str``
    :returns: The content address of the object.
    :rtype: ``ObjectId``
    """
    hasher = hashlib.new(algorithm)
    hasher.update(obj_type.type_name + b" " + str(len(data)).encode("ascii") + b"\0")
    hasher.update(data)
    return ObjectId(hasher.digest())


class Signature:
    """
    An author or committer identity with its timestamp.
    """

    def __init__(self, name: str, email: str, when: datetime):
        """
        Initialise a new ``Signature``.

        :param name: The person's name.
        :type name: ``str``
        :param email: The person's email address.
        :type email: ``str``
        :param when: Time zone aware timestamp.
        :type when: ``datetime``
        """
        self.name = name
        self.email = email
        self.when = when

    def __str__(self):
        return f"{self.name} <{self.email}>"

    def __eq__(self, other):
        if not isinstance(other, Signature):
            return NotImplemented
        return (self.name, self.email, self.when) == (
            other.name,
            other.email,
            other.when,
        )

    def __hash__(self):
        return hash((self.name, self.email, self.when))

    @classmethod
    def parse(cls, raw: bytes, encoding: str = "utf-8") -> "Signature":
        """
        Parse a ``Name <email> timestamp [+hhmm]`` signature line. A missing
        offset is read as UTC.

        :param raw: The signature value from a commit header.
        :type raw: ``bytes``
        :param encoding: The commit's declared text encoding.
        :type encoding: ``str``
        :returns: The parsed signature.
        :rtype: ``Signature``
        """
        match = _SIGNATURE_RE.match(raw)
        if not match:
            raise CorruptObjectError(f"Malformed signature: {raw!r}")
        name, email, stamp, sign, hours, minutes = match.groups()
        if sign is None:
            # No offset recorded
            tz = timezone.utc
        else:
            offset = timedelta(hours=int(hours), minutes=int(minutes))
            tz = timezone(-offset if sign == b"-" else offset)
        when = datetime.fromtimestamp(int(stamp), tz)
        return cls(
            name.decode(encoding, errors="replace"),
            email.decode(encoding, errors="replace"),
            when,
        )


class GitObject:
    """
    Base class for decoded git objects.
    """

    type: ClassVar[ObjectType]

    def __init__(self, oid: ObjectId):
        self.oid = oid

    def __eq__(self, other):
        if not isinstance(other, GitObject):
            return NotImplemented
        return self.type == other.type and self.oid == other.oid

    def __hash__(self):
        return hash(self.oid)

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.oid}>"

    @classmethod
    def parse(cls, oid: ObjectId, data: bytes) -> "GitObject":
        """
        Decode an object payload.

        :param oid: The id the payload was stored under.
        :type oid: ``ObjectId``
        :param data: The raw payload without header.
        :type data: ``bytes``
        """
        raise NotImplementedError


class Blob(GitObject):
    """
    The raw content of one file version.
    """

    type = ObjectType.BLOB

    def __init__(self, oid: ObjectId, data: bytes):
        super().__init__(oid)
        self.data = data

    def __len__(self):
        return len(self.data)

    @classmethod
    def parse(cls, oid: ObjectId, data: bytes) -> "Blob":
        return cls(oid, data)


class EntryKind(Enum):
    """
    The kind of object a tree entry points at.
    """

    TREE = "tree"
    BLOB = "blob"
    GITLINK = "commit"

    @classmethod
    def from_mode(cls, mode: int) -> "EntryKind":
        """Classify a tree entry by its file mode."""
        if mode == MODE_TREE:
            return cls.TREE
        if mode == MODE_GITLINK:
            return cls.GITLINK
        return cls.BLOB


class TreeEntry:
    """
    One named entry in a tree object.
    """

    __slots__ = ("name", "mode", "oid")

    def __init__(self, name: str, mode: int, oid: ObjectId):
        self.name = name
        self.mode = mode
        self.oid = oid

    @property
    def kind(self) -> EntryKind:
        """The ``EntryKind`` implied by this entry's mode."""
        return EntryKind.from_mode(self.mode)

    @property
    def is_tree(self) -> bool:
        """``True`` if this entry is a sub-directory."""
        return self.mode == MODE_TREE

    def __eq__(self, other):
        if not isinstance(other, TreeEntry):
            return NotImplemented
        return (self.name, self.mode, self.oid) == (other.name, other.mode, other.oid)

    def __hash__(self):
        return hash((self.name, self.mode, self.oid))

    def __repr__(self):
        return f"TreeEntry({self.name!r}, {self.mode:06o}, {self.oid})"


class Tree(GitObject):
    """
    A directory snapshot: entries unique by name, in git's stored order.
    """

    type = ObjectType.TREE

    def __init__(self, oid: ObjectId, entries: Tuple[TreeEntry, ...]):
        super().__init__(oid)
        self.entries = entries
        self._by_name: Dict[str, TreeEntry] = {entry.name: entry for entry in entries}
        if len(self._by_name) != len(entries):
            raise CorruptObjectError(f"Duplicate entry names in tree {oid}", oid=oid)

    def __iter__(self):
        return iter(self.entries)

    def __len__(self):
        return len(self.entries)

    def __contains__(self, name):
        return name in self._by_name

    def get(self, name: str) -> Optional[TreeEntry]:
        """
        Return the entry called ``name`` or ``None``.

        :param name: The entry name (a single path component).
        :type name: ``str``
        :rtype: ``Optional[TreeEntry]``
        """
        return self._by_name.get(name)

    @classmethod
    def parse(cls, oid: ObjectId, data: bytes) -> "Tree":
        hash_len = len(oid)
        entries = []
        pos = 0
        end = len(data)
        while pos < end:
            space = data.find(b" ", pos)
            nul = data.find(b"\0", space + 1)
            if space < 0 or nul < 0 or nul + 1 + hash_len > end:
                raise CorruptObjectError(f"Truncated tree entry in {oid}", oid=oid)
            try:
                mode = int(data[pos:space], 8)
            except ValueError as err:
                raise CorruptObjectError(
                    f"Bad mode {data[pos:space]!r} in tree {oid}", oid=oid
                ) from err
            # Names are kept as surrogate-escaped str so non-UTF-8 bytes survive.
            name = data[space + 1 : nul].decode("utf-8", errors="surrogateescape")
            child = ObjectId(data[nul + 1 : nul + 1 + hash_len])
            entries.append(TreeEntry(name, mode, child))
            pos = nul + 1 + hash_len
        return cls(oid, tuple(entries))


class Commit(GitObject):
    """
    A commit: a root tree, its parents, identities and message.
    """

    type = ObjectType.COMMIT

    def __init__(
        self,
        oid: ObjectId,
        tree: ObjectId,
        parents: Tuple[ObjectId, ...],
        author: Signature,
        committer: Signature,
        message: str,
        encoding: str = "utf-8",
    ):
        """
        Initialise a new ``Commit``.

        :param oid: The id of this commit.
        :param tree: The id of the commit's root tree.
        :param parents: Parent ids, first parent first.
        :param author: The author signature.
        :param committer: The committer signature.
        :param message: The full commit message.
        :param encoding: The declared message encoding.
        """
        super().__init__(oid)
        self.tree = tree
        self.parents = parents
        self.author = author
        self.committer = committer
        self.message = message
        self.encoding = encoding

    @property
    def summary(self) -> str:
        """The first line of the commit message."""
        return self.message.split("\n", 1)[0]

    @property
    def body(self) -> str:
        """The message after the summary line and following blank lines."""
        parts = self.message.split("\n", 1)
        return parts[1].lstrip("\n") if len(parts) > 1 else ""

    @property
    def first_parent(self) -> Optional[ObjectId]:
        """The first parent id, or ``None`` for a root commit."""
        return self.parents[0] if self.parents else None

    @property
    def is_root(self) -> bool:
        """``True`` if this commit has no parents."""
        return not self.parents

    @property
    def is_merge(self) -> bool:
        """``True`` if this commit has more than one parent."""
        return len(self.parents) > 1

    @classmethod
    def parse(cls, oid: ObjectId, data: bytes) -> "Commit":
        header, _, message = data.partition(b"\n\n")

        headers: List[Tuple[bytes, bytes]] = []
        for line in header.split(b"\n"):
            if not line:
                continue
            if line.startswith(b" ") and headers:
                key, value = headers[-1]
                headers[-1] = (key, value + b"\n" + line[1:])
                continue
            key, _, value = line.partition(b" ")
            headers.append((key, value))

        tree = None
        parents = []
        author = committer = None
        encoding = "utf-8"
        for key, value in headers:
            if key == b"encoding":
                encoding = value.decode("ascii", errors="replace").strip()

        text_encoding = encoding
        try:
            b"".decode(encoding)
        except LookupError:
            _log_warn(
                "Unknown text encoding '%s' in commit %s: decoding as utf-8",
                encoding,
                oid,
            )
            text_encoding = "utf-8"

        try:
            for key, value in headers:
                if key == b"tree":
                    tree = ObjectId.from_hex(value)
                elif key == b"parent":
                    parents.append(ObjectId.from_hex(value))
                elif key == b"author":
                    author = Signature.parse(value, text_encoding)
                elif key == b"committer":
                    committer = Signature.parse(value, text_encoding)
            text = message.decode(text_encoding, errors="replace")
        except ValueError as err:
            raise CorruptObjectError(f"Malformed commit {oid}: {err}", oid=oid) from err
        except CorruptObjectError as err:
            raise CorruptObjectError(f"{err.message} in commit {oid}", oid=oid) from err

        if tree is None or author is None:
            raise CorruptObjectError(f"Commit {oid} is missing tree or author", oid=oid)

        return cls(
            oid,
            tree,
            tuple(parents),
            author,
            committer or author,
            text,
            encoding,
        )


_OBJECT_CLASSES = {
    ObjectType.COMMIT: Commit,
    ObjectType.TREE: Tree,
    ObjectType.BLOB: Blob,
}


def parse_object(oid: ObjectId, obj_type: ObjectType, data: bytes) -> GitObject:
    """
    Decode a payload into the ``GitObject`` subclass for ``obj_type``.

    :param oid: The object id.
    :type oid: ``ObjectId``
    :param obj_type: The object type from the loose or pack header.
    :type obj_type: ``ObjectType``
    :param data: The payload.
    :type data: ``bytes``
    :returns: The decoded object.
    :rtype: ``GitObject``
    """
    try:
        obj_class = _OBJECT_CLASSES[obj_type]
    except KeyError as err:
        raise CorruptObjectError(
            f"Unsupported object type {obj_type.name.lower()} for {oid}", oid=oid
        ) from err
    return obj_class.parse(oid, data)


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
]
