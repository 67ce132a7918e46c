# Copyright Red Hat
#
# gitread/__init__.py - Git repository reader package initialisation
#
# This file is part of the gitread project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Gitread top-level package.
"""
from ._gitread import *  # noqa: F401, F403
from ._gitread import __all__  # noqa: F401

__version__ = "0.1.0"
