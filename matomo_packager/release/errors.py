# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Exceptions raised by the release steps.

Every failure in a release run is terminal. The steps raise one of these;
only the CLI turns them into a diagnostic and an exit code. The class says
which phase broke, the message says what exactly.
"""


class ReleaseError(Exception):
    """Base for all release failures."""


class UsageError(ReleaseError):
    """Missing or invalid command-line input. Raised before any side effect."""


class ToolMissingError(ReleaseError):
    """A required external tool or library capability is not available."""


class AcquisitionError(ReleaseError):
    """Clone or copy of the source failed, or its version does not match."""


class IntegrityError(ReleaseError):
    """Installer digest mismatch, or symlinks found in the organized tree."""


class DependencyError(ReleaseError):
    """Composer could not be bootstrapped or could not install packages."""


class PackagingError(ReleaseError):
    """An organization or archiving step could not complete."""


class SigningError(ReleaseError):
    """An archive could not be signed, or its signature does not verify."""
