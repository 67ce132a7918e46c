# Copyright Red Hat
#
# tests/__init__.py - gitread test package
#
# This file is part of the gitread project.
#
# SPDX-License-Identifier: Apache-2.0
import logging
import os
import time

log = logging.getLogger()
log.setLevel(logging.DEBUG)
formatter = logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s')
file_handler = logging.FileHandler("test.log")
file_handler.setFormatter(formatter)
console_handler = logging.StreamHandler()
console_handler.setFormatter(formatter)
log.addHandler(file_handler)
log.addHandler(console_handler)

os.environ["TZ"] = "UTC"
time.tzset()


class MockArgs(object):
    debug = None
    verbose = 0
    version = False
    repository = None
    config = None
    json = False
    pretty = False
    limit = None
    all_parents = False
    commits_back = 1
    file = None
    context_lines = None
    workers = None
    use_magic_file_type = None
    max_content_diff_size = None
    max_edit_distance = None
