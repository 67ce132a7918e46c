# Copyright Red Hat
#
# gitread/diff/changes.py - Tree and line change records
#
# This file is part of the gitread project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Change records produced by the tree and content differs.
"""
from typing import Any, Dict, Optional
import logging

from gitread.odb import ObjectId

from .difftypes import ChangeKind, EditKind

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


class FileChange:
    """
    Representation of one path that differs between two tree snapshots.
    """

    __slots__ = ("path", "kind", "old_id", "new_id", "old_mode", "new_mode")

    def __init__(
        self,
        path: str,
        kind: ChangeKind,
        old_id: Optional[ObjectId] = None,
        new_id: Optional[ObjectId] = None,
        old_mode: Optional[int] = None,
        new_mode: Optional[int] = None,
    ):
        """
        Initialise a new ``FileChange`` object.

        :param path: The slash separated path relative to the tree root.
        :type path: ``str``
        :param kind: How the path changed.
        :type kind: ``ChangeKind``
        :param old_id: The blob id before the change, if any.
        :type old_id: ``Optional[ObjectId]``
        :param new_id: The blob id after the change, if any.
        :type new_id: ``Optional[ObjectId]``
        :param old_mode: The file mode before the change, if any.
        :type old_mode: ``Optional[int]``
        :param new_mode: The file mode after the change, if any.
        :type new_mode: ``Optional[int]``
        """
        self.path = path
        self.kind = kind
        self.old_id = old_id
        self.new_id = new_id
        self.old_mode = old_mode
        self.new_mode = new_mode

    def _key(self):
        return (
            self.path,
            self.kind,
            self.old_id,
            self.new_id,
            self.old_mode,
            self.new_mode,
        )

    def __eq__(self, other):
        if not isinstance(other, FileChange):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self):
        return hash(self._key())

    def __repr__(self):
        return f"FileChange({self.path!r}, {self.kind})"

    def __str__(self) -> str:
        """
        Return a string representation of this ``FileChange`` object.

        :returns: A human readable string representation of this instance.
        :rtype: str
        """
        return f"[{self.kind.value}] {self.path}"

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert this ``FileChange`` object into a dictionary representation
        suitable for encoding as JSON.

        :returns: A dictionary mapping this instance's keys to values.
        :rtype: ``Dict[str, Any]``
        """
        return {
            "path": self.path,
            "kind": self.kind.value,
            "old_id": str(self.old_id) if self.old_id else None,
            "new_id": str(self.new_id) if self.new_id else None,
            "old_mode": f"{self.old_mode:06o}" if self.old_mode else None,
            "new_mode": f"{self.new_mode:06o}" if self.new_mode else None,
        }


class LineEdit:
    """
    One line of an edit script: kept, inserted or deleted.
    """

    __slots__ = ("kind", "text")

    def __init__(self, kind: EditKind, text: str):
        self.kind = kind
        self.text = text

    def __eq__(self, other):
        if not isinstance(other, LineEdit):
            return NotImplemented
        return self.kind == other.kind and self.text == other.text

    def __hash__(self):
        return hash((self.kind, self.text))

    def __repr__(self):
        return f"LineEdit({self.kind}, {self.text!r})"

    def __str__(self):
        return f"{self.kind.prefix}{self.text}"

    def to_dict(self) -> Dict[str, str]:
        """
        Convert this ``LineEdit`` into a dictionary suitable for JSON.

        :rtype: ``Dict[str, str]``
        """
        return {"kind": self.kind.value, "text": self.text}


__all__ = [
    "FileChange",
    "LineEdit",
]
