# Copyright Red Hat
#
# gitread/odb/pack.py - Pack file and pack index reader
#
# This file is part of the gitread project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Pack file support: index lookup, entry decoding and delta resolution.
"""
from typing import Callable, Iterator, List, Optional, Tuple
import logging
import mmap
import os
import struct
import zlib

from gitread import CorruptObjectError, GITREAD_SUBSYSTEM_ODB

from .objects import ObjectId, ObjectType

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_odb(msg, *args, **kwargs):
    """A wrapper for odb subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": GITREAD_SUBSYSTEM_ODB}, **kwargs)


#: Signature of a version 2 (or later) pack index
IDX_MAGIC = b"\377tOc"
#: Signature of a pack data file
PACK_MAGIC = b"PACK"

OFS_DELTA = 6
REF_DELTA = 7

_FANOUT_ENTRIES = 256
_FANOUT_SIZE = _FANOUT_ENTRIES * 4
_LARGE_OFFSET_FLAG = 0x80000000
_INFLATE_CHUNK = 64 * 1024

#: Callback used to resolve REF_DELTA bases stored outside this pack
ExternalResolver = Callable[[ObjectId], Tuple[ObjectType, bytes]]


def _read_varint(data, pos: int) -> Tuple[int, int]:
    """
    Read a little-endian base-128 size from a delta header.

    :returns: A 2-tuple of (value, next position).
    """
    value = shift = 0
    while True:
        byte = data[pos]
        pos += 1
        value |= (byte & 0x7F) << shift
        shift += 7
        if not byte & 0x80:
            return value, pos


def apply_delta(base: bytes, delta: bytes) -> bytes:
    """
    Replay the copy and insert instructions of ``delta`` against ``base``.

    :param base: The reconstructed base object payload.
    :type base: ``bytes``
    :param delta: The inflated delta data.
    :type delta: ``bytes``
    :returns: The target object payload.
    :rtype: ``bytes``
    """
    try:
        src_size, pos = _read_varint(delta, 0)
        dst_size, pos = _read_varint(delta, pos)
        if src_size != len(base):
            raise CorruptObjectError(
                f"Delta base size mismatch: expected {src_size}, got {len(base)}"
            )
        out = bytearray()
        end = len(delta)
        while pos < end:
            op = delta[pos]
            pos += 1
            if op & 0x80:
                offset = size = 0
                for i in range(4):
                    if op & (1 << i):
                        offset |= delta[pos] << (8 * i)
                        pos += 1
                for i in range(3):
                    if op & (0x10 << i):
                        size |= delta[pos] << (8 * i)
                        pos += 1
                if size == 0:
                    size = 0x10000
                if offset + size > len(base):
                    raise CorruptObjectError("Delta copy outside base object")
                out += base[offset : offset + size]
            elif op:
                if pos + op > end:
                    raise CorruptObjectError("Truncated delta insert")
                out += delta[pos : pos + op]
                pos += op
            else:
                raise CorruptObjectError("Invalid delta opcode 0")
    except IndexError as err:
        raise CorruptObjectError("Truncated delta instruction stream") from err

    if len(out) != dst_size:
        raise CorruptObjectError(
            f"Delta result size mismatch: expected {dst_size}, got {len(out)}"
        )
    return bytes(out)


class PackIndex:
    """
    A pack index (``.idx``), version 1 or 2, mapping ids to pack offsets.
    """

    def __init__(self, path: str, hash_len: int = 20):
        """
        Load the pack index at ``path``.

        :param path: Path to the ``.idx`` file.
        :type path: ``str``
        :param hash_len: Object id length for the repository object format.
        :type hash_len: ``int``
        """
        self.path = path
        self.hash_len = hash_len
        with open(path, "rb") as fp:
            self._data = fp.read()

        data = self._data
        if data[:4] == IDX_MAGIC:
            (self.version,) = struct.unpack(">I", data[4:8])
            if self.version != 2:
                raise CorruptObjectError(
                    f"Unsupported pack index version {self.version}: {path}"
                )
            fanout_start = 8
        else:
            self.version = 1
            fanout_start = 0

        if len(data) < fanout_start + _FANOUT_SIZE:
            raise CorruptObjectError(f"Truncated pack index: {path}")
        self._fanout = struct.unpack(
            f">{_FANOUT_ENTRIES}I", data[fanout_start : fanout_start + _FANOUT_SIZE]
        )
        self.count = self._fanout[-1]
        table = fanout_start + _FANOUT_SIZE

        if self.version == 2:
            self._names = table
            self._offsets = table + self.count * (hash_len + 4)
            self._large = self._offsets + self.count * 4
            minimum = self._large + 2 * hash_len
        else:
            self._names = table + 4
            self._offsets = table
            self._large = 0
            minimum = table + self.count * (hash_len + 4) + 2 * hash_len
        if len(data) < minimum:
            raise CorruptObjectError(f"Truncated pack index: {path}")
        _log_debug_odb(
            "Loaded v%d pack index %s with %d objects", self.version, path, self.count
        )

    def __len__(self):
        return self.count

    def _name_at(self, i: int) -> bytes:
        if self.version == 2:
            start = self._names + i * self.hash_len
        else:
            start = self._names + i * (self.hash_len + 4)
        return self._data[start : start + self.hash_len]

    def _offset_at(self, i: int) -> int:
        if self.version == 1:
            start = self._offsets + i * (self.hash_len + 4)
            return struct.unpack(">I", self._data[start : start + 4])[0]
        start = self._offsets + i * 4
        (offset,) = struct.unpack(">I", self._data[start : start + 4])
        if offset & _LARGE_OFFSET_FLAG:
            large = self._large + (offset & ~_LARGE_OFFSET_FLAG) * 8
            if large + 8 > len(self._data):
                raise CorruptObjectError(f"Bad large offset in pack index {self.path}")
            (offset,) = struct.unpack(">Q", self._data[large : large + 8])
        return offset

    def __iter__(self) -> Iterator[ObjectId]:
        for i in range(self.count):
            yield ObjectId(self._name_at(i))

    def find(self, oid: ObjectId) -> Optional[int]:
        """
        Binary search the fanout bucket of ``oid`` for its pack offset.

        :param oid: The object id to look up.
        :type oid: ``ObjectId``
        :returns: The offset of the entry in the pack, or ``None``.
        :rtype: ``Optional[int]``
        """
        first = oid[0]
        lo = self._fanout[first - 1] if first else 0
        hi = self._fanout[first]
        key = bytes(oid)
        while lo < hi:
            mid = (lo + hi) // 2
            name = self._name_at(mid)
            if name < key:
                lo = mid + 1
            elif name > key:
                hi = mid
            else:
                return self._offset_at(mid)
        return None


class PackData:
    """
    A memory-mapped pack data file (``.pack``).
    """

    def __init__(self, path: str, hash_len: int = 20):
        """
        Map the pack file at ``path`` read-only and check its header.

        :param path: Path to the ``.pack`` file.
        :type path: ``str``
        :param hash_len: Object id length for the repository object format.
        :type hash_len: ``int``
        """
        self.path = path
        self.hash_len = hash_len
        with open(path, "rb") as fp:
            try:
                self._map = mmap.mmap(fp.fileno(), 0, access=mmap.ACCESS_READ)
            except ValueError as err:
                raise CorruptObjectError(f"Empty pack file: {path}") from err
        if len(self._map) < 12 + hash_len or self._map[:4] != PACK_MAGIC:
            self.close()
            raise CorruptObjectError(f"Bad pack file signature: {path}")
        self.version, self.count = struct.unpack(">II", self._map[4:12])
        if self.version not in (2, 3):
            self.close()
            raise CorruptObjectError(f"Unsupported pack version {self.version}: {path}")

    def close(self):
        """Release the pack mapping."""
        if self._map is not None:
            self._map.close()
            self._map = None

    def entry_header(self, offset: int) -> Tuple[int, int, int]:
        """
        Decode the type and size header of the entry at ``offset``.

        :returns: A 3-tuple of (type number, inflated size, data offset).
        :rtype: ``Tuple[int, int, int]``
        """
        data = self._map
        try:
            byte = data[offset]
            type_num = (byte >> 4) & 0x07
            size = byte & 0x0F
            shift = 4
            pos = offset + 1
            while byte & 0x80:
                byte = data[pos]
                pos += 1
                size |= (byte & 0x7F) << shift
                shift += 7
        except IndexError as err:
            raise CorruptObjectError(
                f"Truncated entry header at offset {offset} in {self.path}"
            ) from err
        return type_num, size, pos

    def delta_base_offset(self, pos: int) -> Tuple[int, int]:
        """
        Decode the negative base offset that follows an OFS_DELTA header.

        :returns: A 2-tuple of (relative offset, data offset).
        :rtype: ``Tuple[int, int]``
        """
        data = self._map
        try:
            byte = data[pos]
            pos += 1
            offset = byte & 0x7F
            while byte & 0x80:
                byte = data[pos]
                pos += 1
                offset = ((offset + 1) << 7) | (byte & 0x7F)
        except IndexError as err:
            raise CorruptObjectError(f"Truncated delta offset in {self.path}") from err
        return offset, pos

    def read_id(self, pos: int) -> ObjectId:
        """Read the base object id that follows a REF_DELTA header."""
        raw = self._map[pos : pos + self.hash_len]
        if len(raw) != self.hash_len:
            raise CorruptObjectError(f"Truncated delta base id in {self.path}")
        return ObjectId(raw)

    def inflate(self, pos: int, size: int) -> bytes:
        """
        Inflate the zlib stream starting at ``pos``.

        :param pos: Offset of the compressed data.
        :type pos: ``int``
        :param size: The expected inflated size.
        :type size: ``int``
        :returns: The inflated data.
        :rtype: ``bytes``
        """
        decomp = zlib.decompressobj()
        chunks = []
        end = len(self._map)
        try:
            while not decomp.eof:
                if pos >= end:
                    raise CorruptObjectError(f"Truncated zlib stream in {self.path}")
                chunk = self._map[pos : pos + _INFLATE_CHUNK]
                pos += len(chunk)
                chunks.append(decomp.decompress(chunk))
        except zlib.error as err:
            raise CorruptObjectError(f"Bad zlib stream in {self.path}: {err}") from err
        data = b"".join(chunks)
        if len(data) != size:
            raise CorruptObjectError(
                f"Pack entry size mismatch in {self.path}: "
                f"expected {size}, got {len(data)}"
            )
        return data


class Pack:
    """
    A pack index and its data file.
    """

    def __init__(self, basename: str, hash_len: int = 20):
        """
        Open the pack ``basename.idx`` / ``basename.pack``.

        :param basename: The pack path without extension.
        :type basename: ``str``
        :param hash_len: Object id length for the repository object format.
        :type hash_len: ``int``
        """
        self.name = os.path.basename(basename)
        self.index = PackIndex(basename + ".idx", hash_len)
        self.data = PackData(basename + ".pack", hash_len)
        if self.data.count != self.index.count:
            self.data.close()
            raise CorruptObjectError(
                f"Pack {self.name} holds {self.data.count} objects but its "
                f"index lists {self.index.count}"
            )

    def __contains__(self, oid: ObjectId) -> bool:
        return self.index.find(oid) is not None

    def __len__(self):
        return self.index.count

    def close(self):
        """Release the pack data mapping."""
        self.data.close()

    def read(
        self, oid: ObjectId, resolve_external: ExternalResolver
    ) -> Optional[Tuple[ObjectType, bytes]]:
        """
        Read and reconstruct the object ``oid`` from this pack.

        The delta chain is collected first and then replayed from the base
        outwards.

        :param oid: The object id to read.
        :type oid: ``ObjectId``
        :param resolve_external: Called with the id of a REF_DELTA base not
                                 stored in this pack.
        :type resolve_external: ``ExternalResolver``
        :returns: A 2-tuple of (type, payload), or ``None`` if the pack does
                  not hold ``oid``.
        :rtype: ``Optional[Tuple[ObjectType, bytes]]``
        """
        offset = self.index.find(oid)
        if offset is None:
            return None

        data = self.data
        chain: List[bytes] = []
        visited = set()
        while True:
            if offset in visited:
                raise CorruptObjectError(f"Delta cycle in pack {self.name}", oid=oid)
            visited.add(offset)
            type_num, size, pos = data.entry_header(offset)
            if type_num in (1, 2, 3, 4):
                base_type = ObjectType(type_num)
                base = data.inflate(pos, size)
                break
            if type_num == OFS_DELTA:
                relative, pos = data.delta_base_offset(pos)
                chain.append(data.inflate(pos, size))
                if relative <= 0 or relative > offset:
                    raise CorruptObjectError(
                        f"Bad delta base offset in pack {self.name}", oid=oid
                    )
                offset -= relative
            elif type_num == REF_DELTA:
                base_id = data.read_id(pos)
                chain.append(data.inflate(pos + data.hash_len, size))
                base_offset = self.index.find(base_id)
                if base_offset is None:
                    _log_debug_odb(
                        "Resolving REF_DELTA base %s outside pack %s",
                        base_id,
                        self.name,
                    )
                    base_type, base = resolve_external(base_id)
                    break
                offset = base_offset
            else:
                raise CorruptObjectError(
                    f"Invalid pack entry type {type_num} in pack {self.name}", oid=oid
                )

        if chain:
            _log_debug_odb("Replaying delta chain of length %d for %s", len(chain), oid)
        for delta in reversed(chain):
            base = apply_delta(base, delta)
        return base_type, base


def find_packs(pack_dir: str) -> List[str]:
    """
    Return the basenames of all complete packs in ``pack_dir``.

    :param pack_dir: The ``objects/pack`` directory.
    :type pack_dir: ``str``
    :returns: Paths without extension, sorted by name.
    :rtype: ``List[str]``
    """
    try:
        names = os.listdir(pack_dir)
    except FileNotFoundError:
        return []
    bases = []
    for name in sorted(names):
        if not (name.startswith("pack-") and name.endswith(".idx")):
            continue
        base = os.path.join(pack_dir, name[: -len(".idx")])
        if os.path.exists(base + ".pack"):
            bases.append(base)
        else:
            _log_warn("Ignoring pack index without pack data: %s", name)
    return bases


__all__ = [
    "IDX_MAGIC",
    "PACK_MAGIC",
    "OFS_DELTA",
    "REF_DELTA",
    "apply_delta",
    "PackIndex",
    "PackData",
    "Pack",
    "find_packs",
]
