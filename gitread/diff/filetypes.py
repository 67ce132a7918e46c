# Copyright Red Hat
#
# gitread/diff/filetypes.py - Blob type detection
#
# This file is part of the gitread project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Blob type information support.
"""
from typing import ClassVar, Optional, Tuple
from pathlib import PurePosixPath
from enum import Enum
import logging

from gitread import GITREAD_SUBSYSTEM_DIFF

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_diff(msg, *args, **kwargs):
    """A wrapper for diff subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": GITREAD_SUBSYSTEM_DIFF}, **kwargs)


#: Number of leading bytes inspected for NUL when sniffing binary content
BINARY_SNIFF_SIZE = 8000


def _by_extension(table):
    return {
        ext: (mime_type, description)
        for mime_type, description, extensions in table
        for ext in extensions.split()
    }


# (mime type, description, space separated extensions)
_TEXT_TYPES = (
    ("text/plain", "plain text", ".txt"),
    ("text/markdown", "markdown text", ".md .markdown"),
    ("text/x-rst", "restructured text", ".rst"),
    ("text/asciidoc", "asciidoc text", ".adoc"),
    ("application/json", "json data", ".json"),
    ("application/xml", "xml data", ".xml"),
    ("application/yaml", "yaml data", ".yaml .yml"),
    ("application/toml", "toml data", ".toml"),
    ("text/x-ini", "ini settings", ".ini"),
    ("text/x-config", "settings file", ".cfg .conf"),
    ("text/csv", "csv table", ".csv"),
    ("text/x-log", "log output", ".log"),
    ("text/html", "html markup", ".html .htm"),
    ("text/css", "css stylesheet", ".css"),
    ("image/svg+xml", "svg drawing", ".svg"),
    ("text/javascript", "javascript program", ".js"),
    ("application/typescript", "typescript program", ".ts"),
    ("application/x-sh", "shell program", ".sh"),
    ("text/x-python", "python program", ".py"),
    ("text/x-ruby", "ruby program", ".rb"),
    ("text/x-perl", "perl program", ".pl"),
    ("text/x-go", "go program", ".go"),
    ("text/x-rust", "rust program", ".rs"),
    ("text/x-java-source", "java program", ".java"),
    ("text/x-c", "c program", ".c .h"),
    ("text/x-c++", "c++ program", ".cc .cpp .hpp"),
    ("text/x-diff", "unified diff output", ".diff .patch"),
    ("text/x-rpm-spec", "rpm spec file", ".spec"),
)

_BINARY_TYPES = (
    ("image/png", "png image", ".png"),
    ("image/jpeg", "jpeg image", ".jpg .jpeg"),
    ("image/gif", "gif image", ".gif"),
    ("image/vnd.microsoft.icon", "windows icon", ".ico"),
    ("application/pdf", "pdf document", ".pdf"),
    ("application/zip", "zip archive", ".zip"),
    ("application/gzip", "gzip stream", ".gz .tgz"),
    ("application/x-xz", "xz stream", ".xz"),
    ("application/x-bzip2", "bzip2 stream", ".bz2"),
    ("application/zstd", "zstandard stream", ".zst"),
    ("application/x-tar", "tar archive", ".tar"),
    ("application/java-archive", "java archive", ".jar"),
    ("application/x-sharedlib", "shared library", ".so"),
    ("application/x-object", "object file", ".o"),
    ("application/x-dosexec", "windows executable", ".exe"),
    ("application/x-bytecode.python", "python bytecode", ".pyc"),
    ("application/vnd.sqlite3", "sqlite database", ".sqlite .db"),
    ("font/woff", "woff font", ".woff"),
    ("font/woff2", "woff2 font", ".woff2"),
    ("audio/mpeg", "mpeg audio", ".mp3"),
    ("video/mp4", "mp4 video", ".mp4"),
)

TEXT_EXTENSION_MAP = _by_extension(_TEXT_TYPES)
BINARY_EXTENSION_MAP = _by_extension(_BINARY_TYPES)

# Matched against the lowercased file name.
TEXT_FILENAME_MAP = {
    "makefile": ("text/x-makefile", "make rules"),
    "dockerfile": ("text/x-dockerfile", "container build rules"),
    "readme": ("text/plain", "readme text"),
    "license": ("text/plain", "license text"),
    "copying": ("text/plain", "license text"),
    ".gitignore": ("text/plain", "git ignore rules"),
    ".gitattributes": ("text/plain", "git attributes"),
    "go.mod": ("text/plain", "go module definition"),
    "go.sum": ("text/plain", "go module checksums"),
}


def _guess_blob(path: PurePosixPath, data: bytes) -> Tuple[str, str, str]:
    """
    Guess a blob's MIME type, description and encoding from its path and a
    NUL byte check of its leading content.

    :param path: The blob's path in the tree.
    :type path: ``PurePosixPath``
    :param data: The blob content.
    :type data: ``bytes``
    :returns: A 3-tuple containing (mime_type, description, encoding).
    :rtype: ``Tuple[str, str, str]``
    """
    extension = path.suffix.lower()
    if extension in BINARY_EXTENSION_MAP:
        return (*BINARY_EXTENSION_MAP[extension], "binary")

    if b"\0" in data[:BINARY_SNIFF_SIZE]:
        return ("application/octet-stream", "data", "binary")

    if not data:
        return ("inode/x-empty", "empty", "binary")

    name = path.name.lower()
    if name in TEXT_FILENAME_MAP:
        return (*TEXT_FILENAME_MAP[name], "utf-8")
    if extension in TEXT_EXTENSION_MAP:
        return (*TEXT_EXTENSION_MAP[extension], "utf-8")

    return ("text/plain", "text", "utf-8")


class FileTypeCategory(Enum):
    """
    Enum for blob type categories.
    """

    TEXT = "text"
    BINARY = "binary"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    ARCHIVE = "archive"
    EXECUTABLE = "executable"
    CONFIG = "config"
    DATABASE = "database"
    DOCUMENT = "document"
    SOURCE_CODE = "source_code"
    EMPTY = "empty"


class FileTypeInfo:
    """
    Class representing blob type information and encoding.
    """

    def __init__(
        self,
        mime_type: str,
        description: str,
        category: FileTypeCategory,
        encoding: Optional[str] = None,
    ):
        """
        Initialise a new ``FileTypeInfo`` object.

        :param mime_type: The detected MIME type.
        :type mime_type: ``str``
        :param description: Type description.
        :type description: ``str``
        :param category: Blob type category.
        :type category: ``FileTypeCategory``
        :param encoding: Optional text encoding.
        :type encoding: ``Optional[str]``
        """
        self.mime_type = mime_type
        self.description = description
        self.category = category
        self.encoding = encoding
        self.is_text_like = category in (
            FileTypeCategory.TEXT,
            FileTypeCategory.CONFIG,
            FileTypeCategory.SOURCE_CODE,
            FileTypeCategory.EMPTY,
        ) or (category == FileTypeCategory.DOCUMENT and mime_type.startswith("text/"))

    def __str__(self):
        """
        Return a string representation of this ``FileTypeInfo`` object.

        :returns: A human readable string describing this instance.
        :rtype: ``str``
        """
        return (
            f"MIME type: {self.mime_type}, "
            f"Category: {self.category.value}, "
            f"Encoding: {self.encoding if self.encoding else 'unknown'}, "
            f"Description: {self.description}"
        )


class BlobTypeDetector:
    """
    Detect blob types, optionally using ``magic`` from file-magic.
    """

    #: MIME type prefixes per category, first match wins.
    category_rules: ClassVar[Tuple[Tuple[FileTypeCategory, Tuple[str, ...]], ...]] = (
        (FileTypeCategory.EMPTY, ("inode/x-empty", "application/x-empty")),
        (
            FileTypeCategory.ARCHIVE,
            (
                "application/zip",
                "application/gzip",
                "application/x-gzip",
                "application/x-xz",
                "application/x-bzip2",
                "application/zstd",
                "application/x-tar",
                "application/java-archive",
            ),
        ),
        (
            FileTypeCategory.EXECUTABLE,
            (
                "application/x-executable",
                "application/x-sharedlib",
                "application/x-pie-executable",
                "application/x-object",
                "application/x-dosexec",
                "application/x-bytecode.python",
            ),
        ),
        (
            FileTypeCategory.DOCUMENT,
            ("application/pdf", "text/markdown", "text/asciidoc", "text/x-rst"),
        ),
        (
            FileTypeCategory.CONFIG,
            (
                "application/json",
                "application/xml",
                "application/yaml",
                "application/toml",
                "text/x-ini",
                "text/x-config",
            ),
        ),
        (
            FileTypeCategory.DATABASE,
            ("application/vnd.sqlite3", "application/x-sqlite3"),
        ),
        (
            FileTypeCategory.SOURCE_CODE,
            (
                "application/javascript",
                "application/typescript",
                "application/x-sh",
                "image/svg+xml",
                "text/x-",
                "text/html",
                "text/css",
                "text/javascript",
            ),
        ),
        (FileTypeCategory.TEXT, ("text/",)),
        (FileTypeCategory.IMAGE, ("image/",)),
        (FileTypeCategory.AUDIO, ("audio/",)),
        (FileTypeCategory.VIDEO, ("video/",)),
        (FileTypeCategory.BINARY, ("font/",)),
    )

    def detect_blob_type(
        self, path: str, data: bytes, use_magic: bool = False
    ) -> FileTypeInfo:
        """
        Detect type information for a blob, optionally using magic for MIME
        type detection.

        :param path: The path of the blob in its tree.
        :type path: ``str``
        :param data: The blob content.
        :type data: ``bytes``
        :param use_magic: Use libmagic rather than name based guessing.
        :type use_magic: ``bool``
        :returns: Type information for the blob.
        :rtype: ``FileTypeInfo``
        """
        if use_magic:
            return self._detect_with_magic(path, data)
        return self._guess_blob_type(path, data)

    def _detect_with_magic(self, path: str, data: bytes) -> FileTypeInfo:
        # Imported on use: libmagic is only needed when magic detection is on.
        import magic  # pylint: disable=import-outside-toplevel

        # Some file-magic builds lack magic.error
        if hasattr(magic, "error"):
            magic_errors = (magic.error, OSError, ValueError)
        else:
            magic_errors = (OSError, ValueError)

        try:
            fm = magic.detect_from_content(data[: 2**20])
        except magic_errors as err:
            _log_warn("Error detecting blob type for %s: %s", path, err)
            return FileTypeInfo(
                "application/octet-stream", "unknown", FileTypeCategory.BINARY
            )
        category = self._categorize(fm.mime_type)
        _log_debug_diff("Detected %s as %s (%s)", path, fm.mime_type, fm.encoding)
        return FileTypeInfo(fm.mime_type, fm.name, category, fm.encoding)

    def _categorize(self, mime_type: str) -> FileTypeCategory:
        """
        Categorize a blob based on its MIME type.

        :param mime_type: Detected MIME type.
        :type mime_type: ``str``
        :returns: Blob type categorization.
        :rtype: ``FileTypeCategory``
        """
        mime_type = mime_type.lower()
        for category, prefixes in self.category_rules:
            if mime_type.startswith(prefixes):
                return category
        return FileTypeCategory.BINARY

    def _guess_blob_type(self, path: str, data: bytes) -> FileTypeInfo:
        mime_type, description, encoding = _guess_blob(PurePosixPath(path), data)
        category = self._categorize(mime_type)
        return FileTypeInfo(mime_type, description, category, encoding)


__all__ = [
    "BINARY_SNIFF_SIZE",
    "FileTypeCategory",
    "FileTypeInfo",
    "BlobTypeDetector",
]
