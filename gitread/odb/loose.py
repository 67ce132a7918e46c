# Copyright Red Hat
#
# gitread/odb/loose.py - Loose object storage
#
# This file is part of the gitread project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Reader for loose objects stored under ``objects/xx/yyyy...``.
"""
from typing import Optional, Tuple
import logging
import os
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


def parse_loose_header(oid: ObjectId, raw: bytes) -> Tuple[ObjectType, bytes]:
    """
    Split a decompressed loose object into its type and payload.

    :param oid: The id being read, for error reporting.
    :type oid: ``ObjectId``
    :param raw: The inflated ``<type> <size>\\0<payload>`` bytes.
    :type raw: ``bytes``
    :returns: A 2-tuple of (type, payload).
    :rtype: ``Tuple[ObjectType, bytes]``
    """
    nul = raw.find(b"\0")
    if nul < 0:
        raise CorruptObjectError(f"Missing header terminator in object {oid}", oid=oid)
    type_name, _, size = raw[:nul].partition(b" ")
    try:
        obj_type = ObjectType.from_name(type_name)
        declared = int(size)
    except ValueError as err:
        raise CorruptObjectError(f"Malformed header in object {oid}", oid=oid) from err
    except CorruptObjectError as err:
        raise CorruptObjectError(f"{err.message} in object {oid}", oid=oid) from err
    payload = raw[nul + 1 :]
    if len(payload) != declared:
        raise CorruptObjectError(
            f"Object {oid} declares {declared} bytes but contains {len(payload)}",
            oid=oid,
        )
    return obj_type, payload


class LooseObjectStore:
    """
    Read-only access to a repository's loose objects.
    """

    def __init__(self, objects_dir: str):
        """
        Initialise a new ``LooseObjectStore``.

        :param objects_dir: Path to the repository ``objects`` directory.
        :type objects_dir: ``str``
        """
        self.objects_dir = objects_dir

    def object_path(self, oid: ObjectId) -> str:
        """
        Return the file path a loose object with id ``oid`` is stored at.

        :param oid: The object id.
        :type oid: ``ObjectId``
        :rtype: ``str``
        """
        hexid = str(oid)
        return os.path.join(self.objects_dir, hexid[:2], hexid[2:])

    def __contains__(self, oid: ObjectId) -> bool:
        return os.path.isfile(self.object_path(oid))

    def read(self, oid: ObjectId) -> Optional[Tuple[ObjectType, bytes]]:
        """
        Read and inflate the loose object ``oid``.

        :param oid: The object id.
        :type oid: ``ObjectId``
        :returns: A 2-tuple of (type, payload), or ``None`` if no loose object
                  with this id exists.
        :rtype: ``Optional[Tuple[ObjectType, bytes]]``
        """
        path = self.object_path(oid)
        try:
            with open(path, "rb") as fp:
                compressed = fp.read()
        except FileNotFoundError:
            return None

        _log_debug_odb("Reading loose object %s (%d bytes)", oid, len(compressed))
        try:
            raw = zlib.decompress(compressed)
        except zlib.error as err:
            raise CorruptObjectError(
                f"Bad zlib stream in loose object {oid}: {err}", oid=oid
            ) from err
        return parse_loose_header(oid, raw)


__all__ = [
    "LooseObjectStore",
    "parse_loose_header",
]
