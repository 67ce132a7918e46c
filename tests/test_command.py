# Copyright Red Hat
#
# tests/test_command.py - CLI layer tests
#
# This file is part of the gitread project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
from unittest.mock import patch
import io
import json
import logging
import os
import shutil
import tempfile
from os.path import join

import gitread
import gitread.command as command
from gitread import (
    GITREAD_DEBUG_ALL,
    GITREAD_DEBUG_COMMAND,
    GITREAD_DEBUG_DIFF,
    GitreadConfig,
    get_debug_mask,
    set_debug_mask,
)
from gitread.odb import Repository

from tests import MockArgs
from tests._util import RepoBuilder

log = logging.getLogger()


class CommandTestsBase(unittest.TestCase):
    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)
        self.repo = RepoBuilder()
        self.c0 = self.repo.commit_files({}, message="C0\n")
        self.c1 = self.repo.commit_files({"a.txt": "hello\n"}, message="C1\n")
        self.c2 = self.repo.commit_files({"a.txt": "hello\nworld\n"}, message="C2\n")
        self.conf_dir = tempfile.mkdtemp(prefix="gitread-conf-")
        self.config_file = join(self.conf_dir, "gitread.conf")

    def tearDown(self):
        log.debug("Tearing down %s", self._testMethodName)
        set_debug_mask(0)
        self.repo.cleanup()
        shutil.rmtree(self.conf_dir, ignore_errors=True)

    def get_main_args(self):
        """
        Return an argument array (in the form of sys.argv) reflecting the
        ``gitread`` command, querying the test repository.

        :returns: A list of command arguments.
        """
        return [
            os.path.join(os.getcwd(), "bin/gitread"),
            "-c",
            self.config_file,
            "-r",
            self.repo.root,
        ]

    def get_debug_main_args(self):
        """
        Return an argument array with verbose logging and debug enabled.

        :returns: A list of command arguments.
        """
        return self.get_main_args() + ["-vv", "--debug=all"]

    def run_main(self, args):
        """
        Run ``command.main()`` capturing standard output.

        :returns: A 2-tuple of (status, output).
        """
        with patch("sys.stdout", new_callable=io.StringIO) as stdout:
            status = command.main(args)
        return status, stdout.getvalue()


class CommandTestsSimple(CommandTestsBase):
    """
    Test command interfaces
    """

    def test_set_debug_none(self):
        args = MockArgs()
        command.set_debug(args.debug)
        self.assertEqual(get_debug_mask(), 0)

    def test_set_debug_single(self):
        command.set_debug("command")
        self.assertEqual(get_debug_mask(), GITREAD_DEBUG_COMMAND)

    def test_set_debug_list(self):
        command.set_debug("odb,walk,diff,query,command")
        self.assertEqual(get_debug_mask(), GITREAD_DEBUG_ALL)

    def test_set_debug_all(self):
        command.set_debug("all")
        self.assertEqual(get_debug_mask(), GITREAD_DEBUG_ALL)

    def test_set_debug_single_bad(self):
        with self.assertRaises(ValueError):
            command.set_debug("nosuch")

    def test_resolve_repository_explicit(self):
        with patch.dict(os.environ, {"CLIENT_WORKDIR": "/client", "WORKDIR": "/w"}):
            self.assertEqual(command.resolve_repository_path("/explicit"), "/explicit")

    def test_resolve_repository_client_workdir(self):
        with patch.dict(os.environ, {"CLIENT_WORKDIR": "/client", "WORKDIR": "/w"}):
            self.assertEqual(command.resolve_repository_path(), "/client")

    def test_resolve_repository_workdir(self):
        with patch.dict(os.environ, {"WORKDIR": "/w"}):
            os.environ.pop("CLIENT_WORKDIR", None)
            self.assertEqual(command.resolve_repository_path(), "/w")

    def test_resolve_repository_config_and_cwd(self):
        with patch.dict(os.environ):
            for var in command.REPOSITORY_ENV_VARS:
                os.environ.pop(var, None)
            config = GitreadConfig(repository="/configured")
            self.assertEqual(command.resolve_repository_path(None, config), "/configured")
            self.assertEqual(command.resolve_repository_path(), os.getcwd())

    def test_procedural_interface(self):
        with Repository.open(self.repo.root) as repository:
            self.assertEqual(len(command.list_history(repository, 2)), 2)
            self.assertEqual(
                command.list_changed_files(repository, 1).paths(), ["a.txt"]
            )
            result = command.file_diff(repository, "a.txt")
            self.assertTrue(result.has_changes)
            self.assertEqual(len(command.file_history(repository, "a.txt")), 2)

    def test_main_version(self):
        args = self.get_main_args() + ["--version"]
        with self.assertRaises(SystemExit):
            self.run_main(args)

    def test_main_too_few_args(self):
        status, _ = self.run_main(self.get_main_args())
        self.assertEqual(status, 1)

    def test_main_bad_command(self):
        args = self.get_main_args() + ["nosuch"]
        with self.assertRaises(SystemExit):
            self.run_main(args)

    def test_main_bad_debug(self):
        args = self.get_main_args() + ["--debug=quux", "log"]
        status, output = self.run_main(args)
        self.assertEqual(status, 1)
        self.assertIn("Unknown debug option: quux", output)

    def test_main_log(self):
        status, output = self.run_main(self.get_main_args() + ["log"])
        self.assertEqual(status, 0)
        self.assertTrue(output.startswith("Git History:\n\n"))
        self.assertIn(f"Commit: {self.c2}\n", output)
        self.assertIn("Message: C0\n", output)

    def test_main_log_limit_json(self):
        args = self.get_main_args() + ["log", "-n", "1", "--json"]
        status, output = self.run_main(args)
        self.assertEqual(status, 0)
        data = json.loads(output)
        self.assertEqual([c["hash"] for c in data["commits"]], [str(self.c2)])

    def test_main_log_pretty_requires_json(self):
        status, output = self.run_main(self.get_main_args() + ["log", "--pretty"])
        self.assertEqual(status, 1)
        self.assertEqual(output, "")

    def test_main_log_debug(self):
        status, _ = self.run_main(self.get_debug_main_args() + ["log", "-a"])
        self.assertEqual(status, 0)
        self.assertEqual(get_debug_mask(), GITREAD_DEBUG_ALL)

    def test_main_log_config_limit(self):
        with open(self.config_file, "w", encoding="utf-8") as fp:
            fp.write("[history]\nlimit = 2\n")
        status, output = self.run_main(self.get_main_args() + ["log", "--json"])
        self.assertEqual(status, 0)
        self.assertEqual(len(json.loads(output)["commits"]), 2)

    def test_main_config_repository(self):
        with open(self.config_file, "w", encoding="utf-8") as fp:
            fp.write(f"[global]\nrepository = {self.repo.root}\n")
        args = [os.path.join(os.getcwd(), "bin/gitread"), "-c", self.config_file]
        with patch.dict(os.environ):
            for var in command.REPOSITORY_ENV_VARS:
                os.environ.pop(var, None)
            status, output = self.run_main(args + ["log", "-n", "1"])
        self.assertEqual(status, 0)
        self.assertIn(f"Commit: {self.c2}\n", output)

    def test_main_bad_config(self):
        with open(self.config_file, "w", encoding="utf-8") as fp:
            fp.write("[history]\nlimit = many\n")
        status, _ = self.run_main(self.get_main_args() + ["log"])
        self.assertEqual(status, 1)

    def test_main_not_a_repository(self):
        args = [
            os.path.join(os.getcwd(), "bin/gitread"),
            "-c",
            self.config_file,
            "-r",
            self.conf_dir,
            "log",
        ]
        status, output = self.run_main(args)
        self.assertEqual(status, 1)
        self.assertEqual(output, "")

    def test_main_changed_files(self):
        status, output = self.run_main(self.get_main_args() + ["changed-files", "2"])
        self.assertEqual(status, 0)
        self.assertEqual(output, "Files changed in the last 2 commits:\n\n[Added] a.txt\n")

    def test_main_changed_files_root_reached(self):
        status, _ = self.run_main(self.get_main_args() + ["changed-files", "5"])
        self.assertEqual(status, 1)

    def test_main_changed_files_pretty_json(self):
        args = self.get_main_args() + ["changed-files", "1", "--json", "--pretty"]
        status, output = self.run_main(args)
        self.assertEqual(status, 0)
        self.assertIn('\n    "commits_back": 1', output)
        self.assertEqual(json.loads(output)["changes"][0]["path"], "a.txt")

    def test_main_diff(self):
        status, output = self.run_main(self.get_main_args() + ["diff", "a.txt"])
        self.assertEqual(status, 0)
        self.assertTrue(output.startswith("diff --git a/a.txt b/a.txt\n"))
        self.assertTrue(output.endswith("@@ -1 +1,2 @@\n hello\n+world\n"))

    def test_main_diff_context(self):
        args = self.get_main_args() + ["diff", "a.txt", "1", "-U", "0"]
        status, output = self.run_main(args)
        self.assertEqual(status, 0)
        self.assertTrue(output.endswith("@@ -1,0 +2 @@\n+world\n"))

    def test_main_diff_unchanged(self):
        args = self.get_main_args() + ["diff", "a.txt", "0"]
        status, output = self.run_main(args)
        self.assertEqual(status, 0)
        self.assertEqual(output, "No changes found for file: a.txt\n")

    def test_main_diff_missing_path(self):
        args = self.get_main_args() + ["diff", "missing.txt"]
        status, output = self.run_main(args)
        self.assertEqual(status, 1)
        self.assertEqual(output, "")

    def test_main_diff_json(self):
        args = self.get_main_args() + ["diff", "a.txt", "2", "--json"]
        status, output = self.run_main(args)
        self.assertEqual(status, 0)
        data = json.loads(output)
        self.assertEqual(data["change"]["kind"], "Added")
        self.assertEqual(data["content_diff"]["insertions"], 2)

    def test_main_history(self):
        args = self.get_main_args() + ["history", "a.txt", "-w", "2"]
        status, output = self.run_main(args)
        self.assertEqual(status, 0)
        self.assertTrue(output.startswith(f"commit {self.c2}\n"))
        self.assertIn(f"\ncommit {self.c1}\n", output)

    def test_main_history_bad_workers(self):
        args = self.get_main_args() + ["history", "a.txt", "-w", "0"]
        status, _ = self.run_main(args)
        self.assertEqual(status, 1)

    def test_main_history_json(self):
        args = self.get_main_args() + ["history", "a.txt", "--json"]
        status, output = self.run_main(args)
        self.assertEqual(status, 0)
        data = json.loads(output)
        self.assertEqual(
            [entry["commit"]["hash"] for entry in data["entries"]],
            [str(self.c2), str(self.c1)],
        )

    def run_main_bytes(self, args):
        """
        Run ``command.main()`` with a strict UTF-8 standard output.

        :returns: A 2-tuple of (status, output bytes).
        """
        stdout = io.TextIOWrapper(io.BytesIO(), encoding="utf-8", errors="strict")
        with patch("sys.stdout", stdout):
            status = command.main(args)
            stdout.flush()
            output = stdout.buffer.getvalue()
        return status, output

    def _commit_latin1(self):
        self.repo.commit_files({"notes.txt": b"caf\xe9\n"}, message="Latin-1\n")
        return self.repo.commit_files(
            {"notes.txt": b"caf\xe9\nna\xefve\n"}, message="More Latin-1\n"
        )

    def test_main_diff_latin1(self):
        self._commit_latin1()
        args = self.get_main_args() + ["diff", "notes.txt", "1"]
        status, output = self.run_main_bytes(args)
        self.assertEqual(status, 0)
        self.assertTrue(output.startswith(b"diff --git a/notes.txt b/notes.txt\n"))
        self.assertTrue(output.endswith(b"@@ -1 +1,2 @@\n caf\xe9\n+na\xefve\n"))

    def test_main_history_latin1(self):
        head = self._commit_latin1()
        args = self.get_main_args() + ["history", "notes.txt"]
        status, output = self.run_main_bytes(args)
        self.assertEqual(status, 0)
        self.assertTrue(output.startswith(f"commit {head}\n".encode("ascii")))
        self.assertIn(b"+na\xefve\n", output)
        self.assertIn(b"+caf\xe9\n", output)

    def test_main_log_bytes(self):
        status, output = self.run_main_bytes(self.get_main_args() + ["log"])
        self.assertEqual(status, 0)
        self.assertTrue(output.startswith(b"Git History:\n\n"))

    def test_version_string(self):
        self.assertEqual(gitread.__version__, "0.1.0")
