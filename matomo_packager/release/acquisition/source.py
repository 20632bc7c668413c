# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Source acquisition.

This is the first stage that touches the disk. It produces the working tree
the rest of the run operates on:

  - tagged release: the working tree is deleted and re-cloned from the remote
    at the tag, so two runs for the same version start from the same bytes
  - local build ("build"): the current checkout is copied into a fresh working
    tree, `.git` included so version introspection still works

Then the submodules on the allow-list are fetched (depth 1) and the tree's
version is checked against the requested one. Submodules off the list stay
uninitialized here; the organizer deletes them later.
"""

import logging
import re
from pathlib import Path

from matomo_packager.config.schema import ReleaseConfig
from matomo_packager.logging.logger import get_logger
from matomo_packager.release.acquisition.git import (
    Submodule,
    clone_tag,
    list_submodules,
    matches_allowlist,
    tags_at_head,
    update_submodule,
)
from matomo_packager.release.descriptor import CloneTag, ReleaseDescriptor
from matomo_packager.release.errors import AcquisitionError
from matomo_packager.utils.filesystem import copy_tree, remove_path
from matomo_packager.utils.process import CommandRunner

_logger: logging.Logger = get_logger(__name__)

_DECLARED_VERSION_RE = re.compile(r"""const\s+VERSION\s*=\s*['"]([^'"]+)['"]""")


def copy_local_checkout(project_dir: Path, working_tree: Path, exclude: list[str]) -> None:
    """
    Copy the checkout at `project_dir` into a fresh `working_tree`.

    Everything at the top level is copied except the names in `exclude`
    (the working tree itself and the archive staging directory, which would
    otherwise be copied into their own copy).
    """
    remove_path(working_tree)
    copy_tree(project_dir, working_tree, exclude=exclude)
    if not (working_tree / ".git").exists():
        _logger.warning(
            "Local checkout has no .git directory, version introspection will fail",
            extra={"project_dir": str(project_dir)},
        )


def acquire_source(
    descriptor: ReleaseDescriptor,
    config: ReleaseConfig,
    project_dir: Path,
    runner: CommandRunner,
) -> Path:
    """
    Produce a fresh working tree for the release and return its path.

    Raises:
        AcquisitionError: Clone or copy failed.
    """
    working_tree = project_dir / config.working_tree

    if isinstance(descriptor.mode, CloneTag):
        if working_tree.exists():
            _logger.info("Removing previous working tree", extra={"path": str(working_tree)})
            remove_path(working_tree)
        _logger.info(
            "Cloning repository",
            extra={"tag": descriptor.mode.tag, "url": config.repository_url},
        )
        clone_tag(runner, config.repository_url, descriptor.mode.tag, working_tree)
    else:
        _logger.info(
            "Copying local checkout",
            extra={"source": str(project_dir), "destination": str(working_tree)},
        )
        try:
            copy_local_checkout(
                project_dir,
                working_tree,
                exclude=[config.working_tree, config.archive_dir],
            )
        except OSError as err:
            raise AcquisitionError(f"Error: Failed to copy {project_dir} to {working_tree}: {err}") from err

    return working_tree


def fetch_allowed_submodules(
    working_tree: Path,
    allowlist: str,
    runner: CommandRunner,
) -> list[Submodule]:
    """
    Fetch (depth 1) every submodule whose path matches the allow-list.

    Returns the submodules that were fetched.
    """
    fetched: list[Submodule] = []
    for submodule in list_submodules(runner, working_tree):
        if not matches_allowlist(submodule.path, allowlist):
            continue
        _logger.info("Cloning submodule", extra={"submodule": submodule.path})
        update_submodule(runner, working_tree, submodule.path)
        fetched.append(submodule)
    return fetched


def read_declared_version(version_file: Path) -> str | None:
    """The VERSION constant declared in core/Version.php, if it can be found."""
    if not version_file.is_file():
        return None
    match = _DECLARED_VERSION_RE.search(version_file.read_text(encoding="utf-8", errors="replace"))
    return match.group(1) if match else None


def count_version_occurrences(version_file: Path, version: str) -> int:
    """Number of lines containing the quoted version, e.g. '5.2.0'."""
    if not version_file.is_file():
        return 0
    needle = f"'{version}'"
    text = version_file.read_text(encoding="utf-8", errors="replace")
    return sum(1 for line in text.splitlines() if needle in line)


def verify_source_version(
    descriptor: ReleaseDescriptor,
    working_tree: Path,
    version_file: str,
    runner: CommandRunner,
) -> None:
    """
    Check that the acquired tree really is the requested version.

    For a tagged release, one of the tags at HEAD must equal the version and the
    quoted version must appear exactly once in the version file. A local
    build only logs what it finds.

    Raises:
        AcquisitionError: On any mismatch for a tagged release.
    """
    version_path = working_tree / version_file
    declared = read_declared_version(version_path)

    if descriptor.is_local_build:
        try:
            tags: list[str] = tags_at_head(runner, working_tree)
        except AcquisitionError:
            tags = []
        _logger.info(
            "Preparing local build",
            extra={"git_tags": tags, "git_path": str(working_tree), "declared_version": declared},
        )
        return

    tags = tags_at_head(runner, working_tree)
    _logger.info(
        "Preparing release",
        extra={
            "version": descriptor.version,
            "git_tags": tags,
            "git_path": str(working_tree),
            "declared_version": declared,
        },
    )

    if descriptor.version not in tags:
        found = " ".join(tags) or "(none)"
        raise AcquisitionError(f"git tag {found} does not match version {descriptor.version}")

    if count_version_occurrences(version_path, descriptor.version) != 1:
        raise AcquisitionError(f"version {descriptor.version} does not match {version_file}")
