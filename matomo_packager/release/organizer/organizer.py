# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Package organization: turn a developer checkout into what ships.

Steps, in this order (later steps rely on earlier deletions):
  1. delete every submodule that is not on the allow-list
  2. save tests/README.md aside, run the clean-build hook, refuse the tree if
     any symlink is left, put the README back under tests/
  3. remove the TestRunner plugin and its activation line in global.ini.php
  4. copy the installation document next to the archives
  5. drop the leftover misc/package scratch directory
  6. write config/manifest.inc.php

Any failure stops the run. Archives are never built from a half-organized
tree.

The clean-build hook is opaque: a callable taking the working tree whose only
promise is "development artifacts are gone afterwards". The default one runs
the project's clean-build script; tests pass their own.
"""

import logging
import re
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from matomo_packager.config.schema import ReleaseConfig
from matomo_packager.logging.logger import get_logger
from matomo_packager.release.acquisition.git import list_submodules, matches_allowlist
from matomo_packager.release.errors import IntegrityError, PackagingError
from matomo_packager.release.manifests.manifest import write_manifest
from matomo_packager.utils.filesystem import atomic_write, find_symlinks, remove_path, safe_read
from matomo_packager.utils.process import CommandRunner

_logger: logging.Logger = get_logger(__name__)

CleanBuildHook = Callable[[Path], None]


@dataclass(frozen=True)
class OrganizeResult:
    """What organization removed and produced."""

    removed_submodules: list[str]
    manifest_entries: int
    install_document: Path


def script_clean_build_hook(script: Path, runner: CommandRunner) -> CleanBuildHook:
    """
    Clean-build hook backed by an external script run inside the tree.

    The script's existence is checked when the hook runs, not when it is
    created, so a dry run never needs it.
    """

    def _hook(working_tree: Path) -> None:
        if not script.is_file():
            raise PackagingError(f"Clean build script not found: {script}")
        runner.run(
            [str(script)],
            cwd=working_tree,
            error=PackagingError,
            message=f"Error running clean build script {script}",
        )

    return _hook


def remove_matching_lines(content: str, pattern: str) -> str:
    """
    Drop every line in which `pattern` is found. Other lines, including
    their line endings, are kept byte for byte.
    """
    regex = re.compile(pattern)
    return "".join(line for line in content.splitlines(keepends=True) if not regex.search(line))


def remove_disallowed_submodules(
    working_tree: Path,
    allowlist: str,
    runner: CommandRunner,
) -> list[str]:
    """Delete every submodule directory whose path is off the allow-list."""
    removed: list[str] = []
    for submodule in list_submodules(runner, working_tree):
        if matches_allowlist(submodule.path, allowlist):
            continue
        _logger.info("Removing submodule", extra={"submodule": submodule.path})
        remove_path(working_tree / submodule.path)
        removed.append(submodule.path)
    return removed


def run_clean_build(
    working_tree: Path,
    archive_dir: Path,
    tests_readme: str,
    clean_build: CleanBuildHook,
) -> None:
    """
    Run the clean-build hook while keeping the tests README.

    Raises:
        PackagingError: README missing or hook failed.
        IntegrityError: Symlinks remain in the tree after cleaning.
    """
    readme = working_tree / tests_readme
    if not readme.is_file():
        raise PackagingError(f"Cannot find {tests_readme} in the working tree")
    saved_readme = archive_dir / readme.name
    shutil.copy2(readme, saved_readme)

    clean_build(working_tree)

    symlinks = find_symlinks(working_tree)
    if symlinks:
        listed = [str(link.relative_to(working_tree)) for link in symlinks]
        _logger.error("Symlinks detected", extra={"symlinks": listed})
        raise IntegrityError(
            "Symlinks detected. Please check if following links should be removed: "
            + " ".join(listed)
        )

    tests_dir = readme.parent
    tests_dir.mkdir(parents=True, exist_ok=True)
    shutil.move(str(saved_readme), str(tests_dir / readme.name))


def remove_dev_plugin(working_tree: Path, plugin: str, global_config_file: str) -> None:
    """Delete a development-only plugin and its activation line."""
    config_path = working_tree / global_config_file
    if config_path.is_file():
        # surrogateescape keeps bytes that are not UTF-8 unchanged on rewrite.
        content = safe_read(config_path, errors="surrogateescape")
        pattern = rf"Plugins\[\] = {re.escape(plugin)}"
        updated = remove_matching_lines(content, pattern)
        if updated != content:
            atomic_write(config_path, updated, errors="surrogateescape")
            _logger.info("Deactivated plugin", extra={"plugin": plugin, "config": global_config_file})
    else:
        _logger.warning("Global config file not found", extra={"path": str(config_path)})

    if remove_path(working_tree / "plugins" / plugin):
        _logger.info("Removed plugin", extra={"plugin": plugin})


def organize_package(
    working_tree: Path,
    archive_dir: Path,
    config: ReleaseConfig,
    runner: CommandRunner,
    clean_build: CleanBuildHook,
) -> OrganizeResult:
    """
    Prune, clean and inventory the working tree.

    Args:
        working_tree: Tree holding the acquired source with dependencies installed.
        archive_dir: Staging directory; receives the installation document.
        config: Release settings (allow-list, denylist, file locations).
        runner: Runs git for the submodule listing.
        clean_build: Hook removing development artifacts.

    Raises:
        PackagingError: A required file is missing or a step failed.
        IntegrityError: Symlinks found after cleaning.
    """
    archive_dir.mkdir(parents=True, exist_ok=True)

    removed = remove_disallowed_submodules(working_tree, config.submodules_allowlist, runner)

    run_clean_build(working_tree, archive_dir, config.tests_readme, clean_build)

    remove_dev_plugin(working_tree, config.dev_plugin, config.global_config_file)

    install_doc = working_tree / config.install_document
    if not install_doc.is_file():
        raise PackagingError(f"Cannot find {config.install_document} in the working tree")
    staged_doc = archive_dir / install_doc.name
    shutil.copy2(install_doc, staged_doc)

    scratch = working_tree / config.package_scratch_dir
    if scratch.is_dir():
        remove_path(scratch)

    _logger.info("Generating manifest file", extra={"working_tree": str(working_tree)})
    entries = write_manifest(working_tree, config.manifest_file, config.manifest_denylist)

    return OrganizeResult(
        removed_submodules=removed,
        manifest_entries=len(entries),
        install_document=staged_doc,
    )
