# Copyright Red Hat
#
# gitread/diff/difftypes.py - Git diff types
#
# This file is part of the gitread project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Git diff types
"""
from enum import Enum


class ChangeKind(Enum):
    """
    Enum for the ways a path can differ between two tree snapshots.
    """

    ADDED = "Added"
    MODIFIED = "Modified"
    DELETED = "Deleted"


class EditKind(Enum):
    """
    Enum for line edit operations.
    """

    EQUAL = "equal"
    INSERT = "insert"
    DELETE = "delete"

    @property
    def prefix(self) -> str:
        """The unified diff prefix for this edit kind."""
        return {"equal": " ", "insert": "+", "delete": "-"}[self.value]
