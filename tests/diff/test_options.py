# Copyright Red Hat
#
# tests/diff/test_options.py - Diff options tests
#
# This file is part of the gitread project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
import logging

from gitread import GitreadArgumentError, GitreadConfig
from gitread.diff import DiffOptions

from tests import MockArgs

log = logging.getLogger()


class TestDiffOptions(unittest.TestCase):
    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)

    def tearDown(self):
        log.debug("Tearing down %s", self._testMethodName)

    def test_defaults(self):
        options = DiffOptions()
        self.assertFalse(options.use_magic_file_type)
        self.assertEqual(options.max_content_diff_size, 2**20)
        self.assertEqual(options.max_edit_distance, 4096)
        self.assertEqual(options.context_lines, 3)
        self.assertEqual(options.workers, 1)

    def test_str(self):
        self.assertIn("context_lines=3", str(DiffOptions()))

    def test_negative_values_rejected(self):
        for name in ("max_content_diff_size", "max_edit_distance", "context_lines"):
            with self.subTest(name=name):
                with self.assertRaises(GitreadArgumentError):
                    DiffOptions(**{name: -1})

    def test_workers_rejected(self):
        with self.assertRaises(GitreadArgumentError):
            DiffOptions(workers=0)

    def test_from_config(self):
        config = GitreadConfig(
            use_magic_file_type=True,
            max_content_diff_size=100,
            max_edit_distance=10,
            context_lines=1,
            workers=4,
        )
        options = DiffOptions.from_config(config)
        self.assertEqual(
            options,
            DiffOptions(
                use_magic_file_type=True,
                max_content_diff_size=100,
                max_edit_distance=10,
                context_lines=1,
                workers=4,
            ),
        )

    def test_from_cmd_args_defaults(self):
        self.assertEqual(DiffOptions.from_cmd_args(MockArgs()), DiffOptions())

    def test_from_cmd_args_overrides(self):
        args = MockArgs()
        args.context_lines = 0
        args.workers = 2
        options = DiffOptions.from_cmd_args(args)
        self.assertEqual(options.context_lines, 0)
        self.assertEqual(options.workers, 2)

    def test_from_cmd_args_keeps_base(self):
        base = DiffOptions(max_edit_distance=7, context_lines=5)
        args = MockArgs()
        args.context_lines = 1
        options = DiffOptions.from_cmd_args(args, base=base)
        self.assertEqual(options.max_edit_distance, 7)
        self.assertEqual(options.context_lines, 1)

    def test_from_cmd_args_invalid(self):
        args = MockArgs()
        args.workers = 0
        with self.assertRaises(GitreadArgumentError):
            DiffOptions.from_cmd_args(args)
