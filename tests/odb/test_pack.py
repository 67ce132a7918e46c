# Copyright Red Hat
#
# tests/odb/test_pack.py - Pack file tests
#
# This file is part of the gitread project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
import logging
from os.path import join

from gitread import CorruptObjectError
from gitread.odb import (
    ObjectId,
    ObjectType,
    Pack,
    PackIndex,
    apply_delta,
    find_packs,
    hash_object,
)

from tests._util import (
    PackBuilder,
    RepoBuilder,
    delta_copy,
    delta_insert,
    encode_varint,
    make_delta,
)

log = logging.getLogger()

BASE = b"line one\nline two\nline three\n"
TARGET = b"line one\nline two\nline 3\n"
TARGET2 = b"line one\nline two\nline 3\nline four\n"


def _no_external(oid):
    raise AssertionError(f"Unexpected external lookup of {oid}")


class TestApplyDelta(unittest.TestCase):
    def test_copy_and_insert(self):
        delta = (
            encode_varint(len(BASE))
            + encode_varint(len(TARGET))
            + delta_copy(0, 18)
            + delta_insert(b"line 3\n")
        )
        self.assertEqual(apply_delta(BASE, delta), TARGET)

    def test_copy_with_offset(self):
        delta = encode_varint(len(BASE)) + encode_varint(9) + delta_copy(9, 9)
        self.assertEqual(apply_delta(BASE, delta), b"line two\n")

    def test_copy_size_zero_means_64k(self):
        base = b"x" * 0x10000
        delta = encode_varint(len(base)) + encode_varint(0x10000) + bytes([0x80])
        self.assertEqual(apply_delta(base, delta), base)

    def test_make_delta(self):
        self.assertEqual(apply_delta(BASE, make_delta(BASE, TARGET2)), TARGET2)

    def test_base_size_mismatch(self):
        delta = encode_varint(len(BASE) + 1) + encode_varint(1) + delta_insert(b"x")
        with self.assertRaises(CorruptObjectError):
            apply_delta(BASE, delta)

    def test_result_size_mismatch(self):
        delta = encode_varint(len(BASE)) + encode_varint(5) + delta_insert(b"x")
        with self.assertRaises(CorruptObjectError):
            apply_delta(BASE, delta)

    def test_copy_out_of_range(self):
        delta = encode_varint(len(BASE)) + encode_varint(10) + delta_copy(25, 10)
        with self.assertRaises(CorruptObjectError):
            apply_delta(BASE, delta)

    def test_opcode_zero(self):
        delta = encode_varint(len(BASE)) + encode_varint(1) + b"\x00"
        with self.assertRaises(CorruptObjectError):
            apply_delta(BASE, delta)

    def test_truncated(self):
        delta = encode_varint(len(BASE)) + encode_varint(10) + bytes([0x91])
        with self.assertRaises(CorruptObjectError):
            apply_delta(BASE, delta)


class PackTestsBase(unittest.TestCase):
    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)
        self.repo = RepoBuilder()
        self.pack_dir = join(self.repo.git_dir, "objects", "pack")
        self.base_id = hash_object(ObjectType.BLOB, BASE)
        self.target_id = hash_object(ObjectType.BLOB, TARGET)
        self.target2_id = hash_object(ObjectType.BLOB, TARGET2)

    def tearDown(self):
        log.debug("Tearing down %s", self._testMethodName)
        self.repo.cleanup()

    def _build(self, **kwargs):
        builder = PackBuilder()
        builder.add_object(self.base_id, ObjectType.BLOB, BASE)
        builder.add_ofs_delta(self.target_id, self.base_id, make_delta(BASE, TARGET))
        builder.add_ref_delta(
            self.target2_id, self.target_id, make_delta(TARGET, TARGET2)
        )
        return builder.write(self.pack_dir, **kwargs)


class TestPackIndex(PackTestsBase):
    def _check_index(self, index):
        self.assertEqual(len(index), 3)
        self.assertEqual(
            sorted(index), sorted([self.base_id, self.target_id, self.target2_id])
        )
        self.assertEqual(index.find(self.base_id), 12)
        self.assertIsNotNone(index.find(self.target_id))
        self.assertIsNone(index.find(ObjectId(b"\xff" * 20)))
        self.assertIsNone(index.find(ObjectId(b"\x00" * 20)))

    def test_version_2(self):
        index = PackIndex(self._build() + ".idx")
        self.assertEqual(index.version, 2)
        self._check_index(index)

    def test_version_2_large_offsets(self):
        index = PackIndex(self._build(large_offsets=True) + ".idx")
        self._check_index(index)

    def test_version_1(self):
        index = PackIndex(self._build(index_version=1) + ".idx")
        self.assertEqual(index.version, 1)
        self._check_index(index)

    def test_truncated(self):
        path = self._build() + ".idx"
        with open(path, "rb") as fp:
            data = fp.read()
        with open(path, "wb") as fp:
            fp.write(data[:100])
        with self.assertRaises(CorruptObjectError):
            PackIndex(path)


class TestPack(PackTestsBase):
    def test_find_packs(self):
        base = self._build()
        self.assertEqual(find_packs(self.pack_dir), [base])

    def test_find_packs_missing_dir(self):
        self.assertEqual(find_packs(join(self.pack_dir, "nonexistent")), [])

    def test_read_full_object(self):
        pack = Pack(self._build())
        try:
            self.assertEqual(len(pack), 3)
            self.assertIn(self.base_id, pack)
            self.assertEqual(
                pack.read(self.base_id, _no_external), (ObjectType.BLOB, BASE)
            )
        finally:
            pack.close()

    def test_read_ofs_delta(self):
        pack = Pack(self._build())
        try:
            self.assertEqual(
                pack.read(self.target_id, _no_external), (ObjectType.BLOB, TARGET)
            )
        finally:
            pack.close()

    def test_read_ref_delta_chain(self):
        pack = Pack(self._build())
        try:
            self.assertEqual(
                pack.read(self.target2_id, _no_external), (ObjectType.BLOB, TARGET2)
            )
        finally:
            pack.close()

    def test_read_missing(self):
        pack = Pack(self._build())
        try:
            self.assertIsNone(pack.read(ObjectId(b"\x42" * 20), _no_external))
        finally:
            pack.close()

    def test_read_external_ref_delta_base(self):
        builder = PackBuilder()
        builder.add_ref_delta(self.target_id, self.base_id, make_delta(BASE, TARGET))
        pack = Pack(builder.write(self.pack_dir))
        lookups = []

        def resolve(oid):
            lookups.append(oid)
            return ObjectType.BLOB, BASE

        try:
            self.assertEqual(
                pack.read(self.target_id, resolve), (ObjectType.BLOB, TARGET)
            )
            self.assertEqual(lookups, [self.base_id])
        finally:
            pack.close()

    def test_long_delta_chain(self):
        builder = PackBuilder()
        data = b"start\n"
        oid = hash_object(ObjectType.BLOB, data)
        builder.add_object(oid, ObjectType.BLOB, data)
        for i in range(200):
            new_data = data + f"line {i}\n".encode()
            new_oid = hash_object(ObjectType.BLOB, new_data)
            builder.add_ofs_delta(new_oid, oid, make_delta(data, new_data))
            data, oid = new_data, new_oid
        pack = Pack(builder.write(self.pack_dir))
        try:
            self.assertEqual(pack.read(oid, _no_external), (ObjectType.BLOB, data))
        finally:
            pack.close()

    def test_bad_signature(self):
        base = self._build()
        with open(base + ".pack", "r+b") as fp:
            fp.write(b"JUNK")
        with self.assertRaises(CorruptObjectError):
            Pack(base)

    def test_count_mismatch(self):
        base = self._build()
        builder = PackBuilder()
        builder.add_object(self.base_id, ObjectType.BLOB, BASE)
        other = builder.write(self.pack_dir, name="pack-other")
        with open(other + ".idx", "rb") as src, open(base + ".idx", "wb") as dst:
            dst.write(src.read())
        with self.assertRaises(CorruptObjectError):
            Pack(base)
