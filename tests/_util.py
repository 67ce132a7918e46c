import hashlib
import logging
import os
import shutil
import struct
import tempfile
import zlib
from os.path import join

from gitread.odb import MODE_BLOB, MODE_TREE, ObjectType, hash_object

log = logging.getLogger()

# Fixed base for commit timestamps: 2023-11-14 22:13:20 UTC
_BASE_TIME = 1700000000

_DEFAULT_BRANCH = "refs/heads/main"

_IDX_MAGIC = b"\377tOc"

_OFS_DELTA = 6
_REF_DELTA = 7


def _git_sort_key(item):
    name, (mode, _) = item
    return name + "/" if mode == MODE_TREE else name


def _nest(files):
    """
    Turn a flat ``{"dir/name": content}`` mapping into nested dicts.
    """
    root = {}
    for path, value in files.items():
        parts = path.split("/")
        node = root
        for part in parts[:-1]:
            node = node.setdefault(part, {})
        node[parts[-1]] = value
    return root


def encode_varint(value):
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def delta_copy(offset, size):
    op = 0x80
    args = bytearray()
    for i in range(4):
        byte = (offset >> (8 * i)) & 0xFF
        if byte:
            op |= 1 << i
            args.append(byte)
    for i in range(3):
        byte = (size >> (8 * i)) & 0xFF
        if byte:
            op |= 0x10 << i
            args.append(byte)
    return bytes([op]) + bytes(args)


def delta_insert(data):
    out = bytearray()
    for i in range(0, len(data), 127):
        chunk = data[i : i + 127]
        out.append(len(chunk))
        out += chunk
    return bytes(out)


def make_delta(base, target):
    """
    Build a delta that copies the common prefix of ``base`` and inserts
    the rest of ``target``.
    """
    prefix = 0
    while prefix < min(len(base), len(target)) and base[prefix] == target[prefix]:
        prefix += 1
    delta = encode_varint(len(base)) + encode_varint(len(target))
    if prefix:
        delta += delta_copy(0, prefix)
    return delta + delta_insert(target[prefix:])


class RepoBuilder:
    """
    Write a git repository on disk without the git binary.
    """

    def __init__(self, root=None, bare=False, object_format="sha1"):
        self.root = root or tempfile.mkdtemp(prefix="gitread-test-")
        self.git_dir = self.root if bare else join(self.root, ".git")
        self.object_format = object_format
        self.objects = {}
        self.head = None
        self._time = _BASE_TIME

        for subdir in ("objects/pack", "refs/heads", "refs/tags"):
            os.makedirs(join(self.git_dir, subdir), exist_ok=True)
        self.write_file("HEAD", f"ref: {_DEFAULT_BRANCH}\n")
        config = "[core]\n"
        if object_format == "sha1":
            config += "\trepositoryformatversion = 0\n"
        else:
            config += "\trepositoryformatversion = 1\n"
        config += f"\tbare = {'true' if bare else 'false'}\n"
        if object_format != "sha1":
            config += f"[extensions]\n\tobjectformat = {object_format}\n"
        self.write_file("config", config)
        log.debug("Created test repository at %s", self.root)

    def cleanup(self):
        shutil.rmtree(self.root, ignore_errors=True)

    def write_file(self, name, content):
        path = join(self.git_dir, name)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as fp:
            fp.write(content)

    def loose_path(self, oid):
        hexid = str(oid)
        return join(self.git_dir, "objects", hexid[:2], hexid[2:])

    def write_object(self, obj_type, data, loose=True):
        oid = hash_object(obj_type, data, self.object_format)
        self.objects[oid] = (obj_type, data)
        if loose:
            path = self.loose_path(oid)
            os.makedirs(os.path.dirname(path), exist_ok=True)
            header = obj_type.type_name + b" " + str(len(data)).encode() + b"\0"
            with open(path, "wb") as fp:
                fp.write(zlib.compress(header + data))
        return oid

    def blob(self, content, loose=True):
        if isinstance(content, str):
            content = content.encode("utf-8")
        return self.write_object(ObjectType.BLOB, content, loose=loose)

    def tree(self, entries, loose=True):
        """
        Write a tree. ``entries`` maps names to blob content (``str`` or
        ``bytes``), nested dicts (subtrees) or ``(mode, oid)`` tuples.
        """
        resolved = {}
        for name, value in entries.items():
            if isinstance(value, dict):
                resolved[name] = (MODE_TREE, self.tree(value, loose=loose))
            elif isinstance(value, tuple):
                resolved[name] = value
            else:
                resolved[name] = (MODE_BLOB, self.blob(value, loose=loose))
        data = b""
        for name, (mode, oid) in sorted(resolved.items(), key=_git_sort_key):
            data += f"{mode:o} {name}".encode("utf-8") + b"\0" + bytes(oid)
        return self.write_object(ObjectType.TREE, data, loose=loose)

    def commit(
        self,
        tree,
        parents=(),
        message="Commit\n",
        author="A U Thor",
        email="author@example.com",
        when=None,
        tz="+0000",
        loose=True,
    ):
        if when is None:
            when = self._time
            self._time += 60
        ident = f"{author} <{email}> {when} {tz}".encode("utf-8")
        data = f"tree {tree}\n".encode("ascii")
        for parent in parents:
            data += f"parent {parent}\n".encode("ascii")
        data += b"author " + ident + b"\n"
        data += b"committer " + ident + b"\n"
        data += b"\n" + message.encode("utf-8")
        return self.write_object(ObjectType.COMMIT, data, loose=loose)

    def set_ref(self, name, oid):
        self.write_file(name, f"{oid}\n")

    def write_packed_refs(self, refs):
        content = "# pack-refs with: peeled fully-peeled sorted \n"
        for name, oid in sorted(refs.items()):
            content += f"{oid} {name}\n"
        self.write_file("packed-refs", content)

    def commit_files(self, files, message="Commit\n", parents=None, **kwargs):
        """
        Commit the flat ``{"path": content}`` snapshot ``files`` on the
        default branch and return the new commit id.
        """
        tree = self.tree(_nest(files))
        if parents is None:
            parents = (self.head,) if self.head is not None else ()
        self.head = self.commit(tree, parents, message=message, **kwargs)
        self.set_ref(_DEFAULT_BRANCH, self.head)
        return self.head


class PackBuilder:
    """
    Write a pack file and its index from full objects and deltas.
    """

    def __init__(self, object_format="sha1"):
        self.object_format = object_format
        self.entries = []

    def add_object(self, oid, obj_type, data):
        self.entries.append((oid, obj_type.value, data, None))

    def add_ofs_delta(self, oid, base_oid, delta):
        self.entries.append((oid, _OFS_DELTA, delta, base_oid))

    def add_ref_delta(self, oid, base_oid, delta):
        self.entries.append((oid, _REF_DELTA, delta, base_oid))

    def _hash(self, data):
        return hashlib.new(self.object_format, data).digest()

    @staticmethod
    def _entry_header(type_num, size):
        out = bytearray()
        byte = (type_num << 4) | (size & 0x0F)
        size >>= 4
        while size:
            out.append(byte | 0x80)
            byte = size & 0x7F
            size >>= 7
        out.append(byte)
        return bytes(out)

    @staticmethod
    def _ofs_encode(relative):
        out = [relative & 0x7F]
        relative >>= 7
        while relative:
            relative -= 1
            out.append(0x80 | (relative & 0x7F))
            relative >>= 7
        return bytes(reversed(out))

    def write(self, pack_dir, name="pack-test", index_version=2, large_offsets=False):
        """
        Write ``name.pack`` and ``name.idx`` into ``pack_dir`` and return
        the pack path without extension.
        """
        pack = bytearray(b"PACK" + struct.pack(">II", 2, len(self.entries)))
        offsets = {}
        crcs = {}
        for oid, type_num, data, base in self.entries:
            offset = len(pack)
            entry = self._entry_header(type_num, len(data))
            if type_num == _OFS_DELTA:
                entry += self._ofs_encode(offset - offsets[base])
            elif type_num == _REF_DELTA:
                entry += bytes(base)
            entry += zlib.compress(data)
            offsets[oid] = offset
            crcs[oid] = zlib.crc32(entry)
            pack += entry
        pack_sum = self._hash(bytes(pack))
        pack += pack_sum

        names = sorted(offsets)
        fanout = [0] * 256
        for oid in names:
            fanout[oid[0]] += 1
        total = 0
        for i in range(256):
            total += fanout[i]
            fanout[i] = total

        if index_version == 2:
            idx = bytearray(_IDX_MAGIC + struct.pack(">I", 2))
            idx += struct.pack(">256I", *fanout)
            for oid in names:
                idx += bytes(oid)
            for oid in names:
                idx += struct.pack(">I", crcs[oid])
            large = bytearray()
            for oid in names:
                if large_offsets:
                    idx += struct.pack(">I", 0x80000000 | (len(large) // 8))
                    large += struct.pack(">Q", offsets[oid])
                else:
                    idx += struct.pack(">I", offsets[oid])
            idx += large
        else:
            idx = bytearray(struct.pack(">256I", *fanout))
            for oid in names:
                idx += struct.pack(">I", offsets[oid]) + bytes(oid)
        idx += pack_sum
        idx += self._hash(bytes(idx))

        base = join(pack_dir, name)
        with open(base + ".pack", "wb") as fp:
            fp.write(pack)
        with open(base + ".idx", "wb") as fp:
            fp.write(idx)
        return base
