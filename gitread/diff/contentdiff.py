# Copyright Red Hat
#
# gitread/diff/contentdiff.py - Line and blob content diffs
#
# This file is part of the gitread project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Content-aware diff support.

Line diffs use an O(ND) Myers search to find the edit distance between the
two line sequences, and then walk forwards choosing, at each mismatch, a
deletion whenever it keeps the script minimal and an insertion otherwise.
Equal lines are always taken as soon as they line up, so common lines are
matched as early as possible and deletions come before insertions within a
changed region.
"""
from typing import Any, Dict, List, Optional, Tuple
from abc import ABC, abstractmethod
from bisect import bisect_right
import logging
import difflib

from gitread import GITREAD_SUBSYSTEM_DIFF
from gitread.odb import Blob

from .changes import LineEdit
from .difftypes import EditKind
from .filetypes import BlobTypeDetector, FileTypeCategory, FileTypeInfo
from .options import DiffOptions

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_diff(msg, *args, **kwargs):
    """A wrapper for diff subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": GITREAD_SUBSYSTEM_DIFF}, **kwargs)


#: Marker printed after a line that lacks a trailing newline
NO_NEWLINE_MARKER = "\\ No newline at end of file"


def split_lines(text: str) -> List[str]:
    """
    Split ``text`` into lines, keeping each ``\\n`` terminator. A final line
    without a terminator is kept as it is.

    :param text: The text to split.
    :type text: ``str``
    :returns: The list of lines.
    :rtype: ``List[str]``
    """
    if not text:
        return []
    parts = text.split("\n")
    lines = [part + "\n" for part in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


class _EditDistance:
    """
    Myers search over the reversed sequences. The furthest point reached on
    each diagonal is recorded per edit count so that the distance between
    any two suffixes of the inputs can be bounded afterwards.
    """

    def __init__(self, a: List[int], b: List[int], limit: int = 0):
        self.n = n = len(a)
        self.m = m = len(b)
        ra = a[::-1]
        rb = b[::-1]
        # diagonal -> ([edit counts], [furthest x at that count])
        self._history: Dict[int, Tuple[List[int], List[int]]] = {}
        self.distance: Optional[int] = None

        v: Dict[int, int] = {}
        d = 0
        while True:
            if limit and d > limit:
                return
            for k in range(max(-d, -m), min(d, n) + 1):
                if (k - d) % 2:
                    continue
                best = v.get(k, -1)
                if d == 0:
                    best = 0
                down = v.get(k + 1)
                if down is not None:
                    x = min(down, m + k)
                    if x - k >= 1:
                        best = max(best, x)
                right = v.get(k - 1)
                if right is not None:
                    x = min(right + 1, n, m + k)
                    if x >= 1 and x >= k:
                        best = max(best, x)
                if best < 0:
                    continue
                x = best
                y = x - k
                while x < n and y < m and ra[x] == rb[y]:
                    x += 1
                    y += 1
                if v.get(k, -1) < x:
                    v[k] = x
                    counts, reached = self._history.setdefault(k, ([], []))
                    counts.append(d)
                    reached.append(x)
            if v.get(n - m, -1) >= n:
                self.distance = d
                return
            d += 1

    def within(self, x: int, y: int, r: int) -> bool:
        """
        Return ``True`` if ``a[x:]`` can be turned into ``b[y:]`` with at
        most ``r`` insertions and deletions.
        """
        if r < 0:
            return False
        rx = self.n - x
        k = rx - (self.m - y)
        history = self._history.get(k)
        if history is None:
            return False
        counts, reached = history
        i = bisect_right(counts, r)
        return i > 0 and rx <= reached[i - 1]


def _fallback_edits(old: List[str], new: List[str]) -> List[LineEdit]:
    matcher = difflib.SequenceMatcher(None, old, new, autojunk=False)
    edits = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            edits.extend(LineEdit(EditKind.EQUAL, line) for line in old[i1:i2])
            continue
        edits.extend(LineEdit(EditKind.DELETE, line) for line in old[i1:i2])
        edits.extend(LineEdit(EditKind.INSERT, line) for line in new[j1:j2])
    return edits


def diff_lines(
    old: List[str], new: List[str], max_edit_distance: int = 0
) -> List[LineEdit]:
    """
    Compute a minimal line edit script turning ``old`` into ``new``.

    Concatenating the ``EQUAL`` and ``DELETE`` edits in order reproduces
    ``old``; concatenating the ``EQUAL`` and ``INSERT`` edits reproduces
    ``new``.

    :param old: The original lines, as returned by ``split_lines()``.
    :type old: ``List[str]``
    :param new: The updated lines.
    :type new: ``List[str]``
    :param max_edit_distance: Edit distance above which a near-minimal
                              ``difflib`` script is returned instead
                              (0 = unlimited).
    :type max_edit_distance: ``int``
    :returns: The ordered edit script.
    :rtype: ``List[LineEdit]``
    """
    prefix = 0
    limit = min(len(old), len(new))
    while prefix < limit and old[prefix] == new[prefix]:
        prefix += 1

    edits = [LineEdit(EditKind.EQUAL, line) for line in old[:prefix]]
    a_lines = old[prefix:]
    b_lines = new[prefix:]
    if not a_lines and not b_lines:
        return edits

    line_ids: Dict[str, int] = {}
    a = [line_ids.setdefault(line, len(line_ids)) for line in a_lines]
    b = [line_ids.setdefault(line, len(line_ids)) for line in b_lines]

    search = _EditDistance(a, b, max_edit_distance)
    if search.distance is None:
        _log_debug_diff(
            "Edit distance exceeds %d, using difflib for %d/%d lines",
            max_edit_distance,
            len(a),
            len(b),
        )
        return edits + _fallback_edits(a_lines, b_lines)

    _log_debug_diff(
        "Edit distance %d for %d/%d lines", search.distance, len(a), len(b)
    )
    x = y = 0
    remaining = search.distance
    n, m = len(a), len(b)
    while x < n or y < m:
        if x < n and y < m and a[x] == b[y]:
            edits.append(LineEdit(EditKind.EQUAL, a_lines[x]))
            x += 1
            y += 1
        elif x < n and search.within(x + 1, y, remaining - 1):
            edits.append(LineEdit(EditKind.DELETE, a_lines[x]))
            x += 1
            remaining -= 1
        else:
            edits.append(LineEdit(EditKind.INSERT, b_lines[y]))
            y += 1
            remaining -= 1
    return edits


def _hunk_range(start: int, length: int) -> str:
    if length == 1:
        return f"{start}"
    if length == 0:
        return f"{start - 1},0"
    return f"{start},{length}"


def unified_hunks(edits: List[LineEdit], context: int = 3) -> List[str]:
    """
    Render ``edits`` as unified diff hunks.

    :param edits: The edit script.
    :type edits: ``List[LineEdit]``
    :param context: The number of unchanged lines shown around each change.
    :type context: ``int``
    :returns: Newline terminated output lines, starting with ``@@``
              headers.
    :rtype: ``List[str]``
    """
    changed = [i for i, edit in enumerate(edits) if edit.kind != EditKind.EQUAL]
    if not changed:
        return []

    groups = []
    first = last = changed[0]
    for i in changed[1:]:
        if i - last > 2 * context + 1:
            groups.append((first, last))
            first = i
        last = i
    groups.append((first, last))

    # line numbers (1-based) at the start of each edit
    old_no = []
    new_no = []
    old_line = new_line = 1
    for edit in edits:
        old_no.append(old_line)
        new_no.append(new_line)
        if edit.kind != EditKind.INSERT:
            old_line += 1
        if edit.kind != EditKind.DELETE:
            new_line += 1

    lines = []
    for first, last in groups:
        start = max(0, first - context)
        end = min(len(edits), last + context + 1)
        hunk = edits[start:end]
        old_len = sum(1 for edit in hunk if edit.kind != EditKind.INSERT)
        new_len = sum(1 for edit in hunk if edit.kind != EditKind.DELETE)
        lines.append(
            f"@@ -{_hunk_range(old_no[start], old_len)} "
            f"+{_hunk_range(new_no[start], new_len)} @@\n"
        )
        for edit in hunk:
            if edit.text.endswith("\n"):
                lines.append(str(edit))
            else:
                lines.append(f"{edit}\n{NO_NEWLINE_MARKER}\n")
    return lines


class ContentDiff:
    """
    Represents a content-aware diff between two blobs.
    """

    def __init__(
        self,
        diff_type: str,
        edits: Optional[List[LineEdit]] = None,
        summary: str = "",
    ):
        """
        Initialise a new ``ContentDiff`` object.

        :param diff_type: The type of diff: 'text', 'binary' or 'skipped'.
        :type diff_type: ``str``
        :param edits: The line edit script for text diffs.
        :type edits: ``Optional[List[LineEdit]]``
        :param summary: A summary of the difference.
        :type summary: ``str``
        """
        self.diff_type = diff_type
        self.edits = edits if edits is not None else []
        self.summary = summary
        self.has_changes = any(edit.kind != EditKind.EQUAL for edit in self.edits)
        self.error_message = None

    @property
    def is_binary(self) -> bool:
        """``True`` if no line diff was produced for binary content."""
        return self.diff_type == "binary"

    @property
    def insertions(self) -> int:
        """Number of inserted lines."""
        return sum(1 for edit in self.edits if edit.kind == EditKind.INSERT)

    @property
    def deletions(self) -> int:
        """Number of deleted lines."""
        return sum(1 for edit in self.edits if edit.kind == EditKind.DELETE)

    def __str__(self):
        """
        Return a string representation of this ``ContentDiff`` object.

        :returns: A human readable string representing this instance.
        :rtype: ``str``
        """
        return (
            f"    diff_type: {self.diff_type}\n"
            f"      edits: <{len(self.edits)} lines>\n"
            f"      summary: {self.summary}\n"
            f"      has_changes: {self.has_changes}\n"
            f"      error_message: {self.error_message if self.error_message else ''}"
        )

    def unified(self, context: int = 3) -> List[str]:
        """
        Return the unified diff hunks for this diff.

        :param context: Number of context lines.
        :type context: ``int``
        :rtype: ``List[str]``
        """
        return unified_hunks(self.edits, context)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert this ``ContentDiff`` object into a dictionary representation
        suitable for encoding as JSON.

        :returns: A dictionary mapping this instance's keys to values.
        :rtype: ``Dict[str, Any]``
        """
        return {
            "diff_type": self.diff_type,
            "summary": self.summary,
            "has_changes": self.has_changes,
            "insertions": self.insertions,
            "deletions": self.deletions,
            "edits": [edit.to_dict() for edit in self.edits],
            "error_message": self.error_message,
        }


class ContentDifferBase(ABC):
    """
    Base class for content-aware diff implementations.
    """

    @abstractmethod
    def can_handle(self, file_type_info: FileTypeInfo) -> bool:
        """
        Return True if this differ can handle the given blob type.

        :param file_type_info: Type information for the blobs to compare.
        :type file_type_info: ``FileTypeInfo``
        :returns: ``True`` if this content differ can handle this blob.
        :rtype: ``bool``
        """

    @abstractmethod
    def generate_diff(
        self,
        old_blob: Optional[Blob],
        new_blob: Optional[Blob],
        file_type_info: FileTypeInfo,
        options: DiffOptions,
    ) -> ContentDiff:
        """
        Generate content diff between two blobs.

        :param old_blob: The original blob, ``None`` if the file was added.
        :type old_blob: ``Optional[Blob]``
        :param new_blob: The updated blob, ``None`` if the file was deleted.
        :type new_blob: ``Optional[Blob]``
        :param file_type_info: Type information for the blobs.
        :type file_type_info: ``FileTypeInfo``
        :param options: Diff options.
        :type options: ``DiffOptions``
        :returns: A diff of the two blobs.
        :rtype: ``ContentDiff``
        """

    @property
    @abstractmethod
    def priority(self) -> int:
        """
        Priority for selection when multiple differs match (higher = preferred)

        :returns: Integer priority level.
        :rtype: ``int``
        """


class TextContentDiffer(ContentDifferBase):
    """
    Default text-based content differ.
    """

    def can_handle(self, file_type_info: FileTypeInfo) -> bool:
        return file_type_info.is_text_like

    def generate_diff(
        self,
        old_blob: Optional[Blob],
        new_blob: Optional[Blob],
        file_type_info: FileTypeInfo,
        options: DiffOptions,
    ) -> ContentDiff:
        """
        Generate a line diff for text blobs.

        Content is decoded with ``surrogateescape`` so that undecodable bytes
        survive and both versions can be reconstructed exactly.
        """
        encoding = file_type_info.encoding
        if file_type_info.category == FileTypeCategory.EMPTY or encoding in (
            None,
            "binary",
            "unknown-8bit",
        ):
            encoding = "utf-8"

        def decode(blob: Optional[Blob]) -> List[str]:
            if blob is None:
                return []
            return split_lines(blob.data.decode(encoding, errors="surrogateescape"))

        edits = diff_lines(
            decode(old_blob), decode(new_blob), options.max_edit_distance
        )
        content_diff = ContentDiff("text", edits)
        content_diff.summary = (
            f"{content_diff.deletions} deletions, {content_diff.insertions} additions"
        )
        return content_diff

    @property
    def priority(self) -> int:
        return 10  # Default priority


class BinaryContentDiffer(ContentDifferBase):
    """
    Binary blob content differ.
    """

    def can_handle(self, file_type_info: FileTypeInfo) -> bool:
        return not file_type_info.is_text_like

    def generate_diff(
        self,
        old_blob: Optional[Blob],
        new_blob: Optional[Blob],
        file_type_info: FileTypeInfo,
        options: DiffOptions,
    ) -> ContentDiff:
        """
        Generate binary diff summary.
        """
        content_diff = ContentDiff("binary")
        old_size = len(old_blob) if old_blob is not None else 0
        new_size = len(new_blob) if new_blob is not None else 0
        size_diff = new_size - old_size
        id_changed = (old_blob.oid if old_blob else None) != (
            new_blob.oid if new_blob else None
        )
        content_diff.has_changes = id_changed

        if size_diff != 0:
            content_diff.summary = f"Binary file size changed by {size_diff:+d} bytes"
        elif id_changed:
            content_diff.summary = "Binary file content changed (same size)"
        else:
            content_diff.summary = "Binary file unchanged"
        return content_diff

    @property
    def priority(self) -> int:
        return 5  # Lower than text differ


class ContentDifferManager:
    """
    Manager for content-aware diff implementations.
    """

    def __init__(self, options: Optional[DiffOptions] = None):
        """
        Initialise a new ``ContentDifferManager`` instance.

        :param options: Diff options, or ``None`` for defaults.
        :type options: ``Optional[DiffOptions]``
        """
        self.options = options or DiffOptions()
        self.detector = BlobTypeDetector()
        self.differs = []
        self._register_default_differs()

    def _register_default_differs(self):
        """
        Register built-in content differs.
        """
        self.register_differ(TextContentDiffer())
        self.register_differ(BinaryContentDiffer())

    def register_differ(self, differ: ContentDifferBase):
        """
        Register a new content differ.
        """
        self.differs.append(differ)
        # Sort by priority (highest first)
        self.differs.sort(key=lambda d: d.priority, reverse=True)

    def get_differ_for_blob(self, file_type_info: FileTypeInfo) -> ContentDifferBase:
        """
        Get the best content differ for a blob type.

        :param file_type_info: The blob type to find a differ for.
        :type file_type_info: ``FileTypeInfo``
        :returns: An appropriate differ for ``file_type_info``.
        :rtype: A ``ContentDifferBase`` subclass.
        """
        for differ in self.differs:
            if differ.can_handle(file_type_info):
                return differ
        return BinaryContentDiffer()

    def generate_content_diff(
        self,
        path: str,
        old_blob: Optional[Blob],
        new_blob: Optional[Blob],
    ) -> Optional[ContentDiff]:
        """
        Generate content diff using the appropriate differ.

        :param path: The path being compared.
        :type path: ``str``
        :param old_blob: The original blob, ``None`` if the file was added.
        :type old_blob: ``Optional[Blob]``
        :param new_blob: The updated blob, ``None`` if the file was deleted.
        :type new_blob: ``Optional[Blob]``
        :returns: A diff of the two blobs, or ``None`` on error.
        :rtype: ``Optional[ContentDiff]``
        """
        if old_blob is None and new_blob is None:
            return None

        limit = self.options.max_content_diff_size
        sizes = [len(blob) for blob in (old_blob, new_blob) if blob is not None]
        if limit and max(sizes) > limit:
            _log_debug_diff(
                "Skipping content diff for %s: %d > %d", path, max(sizes), limit
            )
            content_diff = ContentDiff(
                "skipped",
                summary=f"Content diff skipped: blob larger than {limit} bytes",
            )
            content_diff.has_changes = (old_blob.oid if old_blob else None) != (
                new_blob.oid if new_blob else None
            )
            return content_diff

        sample = new_blob if new_blob is not None else old_blob
        file_type_info = self.detector.detect_blob_type(
            path, sample.data, self.options.use_magic_file_type
        )
        if file_type_info.is_text_like and old_blob not in (None, sample):
            # Either side being binary makes the whole diff binary.
            old_info = self.detector.detect_blob_type(
                path, old_blob.data, self.options.use_magic_file_type
            )
            if not old_info.is_text_like:
                file_type_info = old_info

        try:
            differ = self.get_differ_for_blob(file_type_info)
            _log_debug_diff(
                "Using %s for %s (%s)", differ.__class__.__name__, path, file_type_info
            )
            return differ.generate_diff(
                old_blob, new_blob, file_type_info, self.options
            )
        except (LookupError, UnicodeError, TypeError) as err:
            _log_error(
                "Error generating content diff for %s (mime_type=%s): %s",
                path,
                file_type_info.mime_type,
                err,
            )
            return None


__all__ = [
    "NO_NEWLINE_MARKER",
    "split_lines",
    "diff_lines",
    "unified_hunks",
    "ContentDiff",
    "ContentDifferBase",
    "TextContentDiffer",
    "BinaryContentDiffer",
    "ContentDifferManager",
]
