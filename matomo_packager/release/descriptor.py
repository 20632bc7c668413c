# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
What is being released: version, flavours and how the source is acquired.

The literal version "build" means "package the checkout I am standing in,
unsigned". That decision is taken once, here, as an AcquisitionMode. Later
steps ask `descriptor.is_local_build` instead of comparing strings.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Union

from matomo_packager.release.errors import UsageError

LOCAL_BUILD_TOKEN: str = "build"
KNOWN_FLAVOURS: tuple[str, ...] = ("matomo", "piwik")


@dataclass(frozen=True)
class CloneTag:
    """Clone the remote repository at this tag."""

    tag: str


@dataclass(frozen=True)
class LocalCopy:
    """Copy the current checkout instead of cloning."""


AcquisitionMode = Union[CloneTag, LocalCopy]


@dataclass(frozen=True)
class ReleaseDescriptor:
    """Immutable description of one release run."""

    version: str
    flavours: tuple[str, ...]
    major_version: str
    mode: AcquisitionMode

    @property
    def is_local_build(self) -> bool:
        return isinstance(self.mode, LocalCopy)

    def archive_basename(self, flavour: str) -> str:
        """File name stem shared by a flavour's archives, e.g. 'matomo-5.2.0'."""
        return f"{flavour}-{self.version}"


def create_descriptor(
    version: Optional[str],
    flavour: Optional[str] = None,
    known_flavours: Sequence[str] = KNOWN_FLAVOURS,
) -> ReleaseDescriptor:
    """
    Validate CLI input and build the descriptor.

    Args:
        version: Tag to release, or "build" for a local unsigned build.
        flavour: One of `known_flavours`; None builds all of them.
        known_flavours: Allowed flavour names in build order.

    Raises:
        UsageError: Empty version or unknown flavour.
    """
    if version is None or not version.strip():
        raise UsageError("Expected a version number as a parameter")
    version = version.strip()

    if flavour is None:
        flavours = tuple(known_flavours)
    elif flavour in known_flavours:
        flavours = (flavour,)
    else:
        raise UsageError(
            f"Unknown flavour '{flavour}'. Can either be {' or '.join(repr(f) for f in known_flavours)}."
        )

    mode: AcquisitionMode = LocalCopy() if version == LOCAL_BUILD_TOKEN else CloneTag(tag=version)

    return ReleaseDescriptor(
        version=version,
        flavours=flavours,
        major_version=version.split(".", 1)[0],
        mode=mode,
    )
