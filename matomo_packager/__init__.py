# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Release builder for the Matomo web application.

Clones a tagged checkout (or copies the local one), installs production
dependencies, strips development files, writes the integrity manifest and
produces signed zip and tar.gz archives for the matomo and piwik flavours.
"""

__version__ = "1.0.0"
