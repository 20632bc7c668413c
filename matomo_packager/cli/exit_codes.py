# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
CLI exit codes.

Release tooling around this builder only distinguishes "you called it
wrong" from "the build failed", so these are the only codes used.
"""

SUCCESS: int = 0
USAGE_ERROR: int = 1
FATAL_ERROR: int = 2
