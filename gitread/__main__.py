# Copyright Red Hat
#
# gitread/__main__.py - Module entry point
#
# This file is part of the gitread project.
#
# SPDX-License-Identifier: Apache-2.0
import sys

from gitread.command import main

if __name__ == "__main__":
    sys.exit(main(["gitread"] + sys.argv[1:]))
