# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Thin wrappers around the git commands a release needs.

The builder never interprets repository internals itself; it asks git and
parses the answers. Only a handful of commands are used: clone, submodule
status, submodule update and tag --points-at.
"""

import re
from dataclasses import dataclass
from pathlib import Path

from matomo_packager.release.errors import AcquisitionError
from matomo_packager.utils.process import CommandRunner

# Skips git-lfs smudging: large binary assets are not needed for packaging.
LFS_SKIP_SMUDGE: str = "filter.lfs.smudge=git-lfs smudge --skip"

_STATE_MARKERS = "-+U "


@dataclass(frozen=True)
class Submodule:
    """One line of `git submodule status`."""

    path: str
    sha: str
    state: str


def parse_submodule_status(output: str) -> list[Submodule]:
    """
    Parse `git submodule status` output.

    Each line is a state marker (' ', '-', '+' or 'U'), the commit sha, the
    path and an optional "(describe)" suffix. The marker may be missing on
    the first line when the output was stripped.
    """
    submodules: list[Submodule] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        if line[0] in _STATE_MARKERS:
            state, rest = line[0], line[1:]
        else:
            state, rest = " ", line
        parts = rest.split()
        if len(parts) < 2:
            raise AcquisitionError(f"Unexpected git submodule status line: {line!r}")
        submodules.append(Submodule(path=parts[1], sha=parts[0], state=state))
    return submodules


def matches_allowlist(path: str, allowlist: str) -> bool:
    """Unanchored search of the allow-list alternation in a submodule path."""
    return re.search(allowlist, path) is not None


def clone_tag(runner: CommandRunner, url: str, tag: str, destination: Path) -> None:
    """
    Single-branch clone of `url` at `tag` into `destination`.

    Raises:
        AcquisitionError: If git fails or the directory was not created.
    """
    message = f"Error: Failed to clone git repository {url}, maybe tag {tag} does not exist"
    runner.run(
        [
            "git", "clone",
            "--config", LFS_SKIP_SMUDGE,
            "--single-branch",
            "--branch", tag,
            url,
            str(destination),
        ],
        cwd=destination.parent,
        error=AcquisitionError,
        message=message,
    )
    if not destination.is_dir():
        raise AcquisitionError(message)


def list_submodules(runner: CommandRunner, tree: Path) -> list[Submodule]:
    output = runner.run_output(
        ["git", "submodule", "status"],
        cwd=tree,
        error=AcquisitionError,
        message="Error: Failed to list git submodules",
    )
    return parse_submodule_status(output)


def update_submodule(runner: CommandRunner, tree: Path, path: str) -> None:
    """Fetch one submodule at history depth 1."""
    runner.run(
        ["git", "submodule", "update", "--init", "--depth=1", path],
        cwd=tree,
        error=AcquisitionError,
        message=f"Error: Failed to fetch submodule {path}",
    )


def tags_at_head(runner: CommandRunner, tree: Path) -> list[str]:
    """Every tag pointing at HEAD; a commit may carry several."""
    output = runner.run_output(
        ["git", "tag", "--points-at", "HEAD"],
        cwd=tree,
        error=AcquisitionError,
        message="Error: Failed to list the tags of HEAD",
    )
    return [line.strip() for line in output.splitlines() if line.strip()]
