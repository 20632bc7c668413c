# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
The release run, start to finish.

    environment check
      -> build-server check (advisory, stable versions only)
      -> acquire source (clone tag | copy local checkout)
      -> fetch allow-listed submodules, check version
      -> composer install
      -> organize tree + manifest
      -> archives (+ signatures) per flavour
      -> verify signatures

Strictly sequential, no retries. Every step raises a ReleaseError subclass
on failure and the run ends there. Re-running is safe: acquisition always
starts from a fresh working tree.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx

from matomo_packager.config.schema import ReleaseConfig
from matomo_packager.logging.logger import get_logger
from matomo_packager.release.acquisition.source import (
    acquire_source,
    fetch_allowed_submodules,
    verify_source_version,
)
from matomo_packager.release.dependencies.composer import install_dependencies
from matomo_packager.release.descriptor import ReleaseDescriptor
from matomo_packager.release.environment.validator import require_environment
from matomo_packager.release.organizer.organizer import (
    CleanBuildHook,
    organize_package,
    script_clean_build_hook,
)
from matomo_packager.release.packaging.packager import (
    ARCHIVE_EXTENSIONS,
    FlavourArchives,
    archive_path,
    build_flavour_archives,
)
from matomo_packager.release.remote import warn_if_already_published
from matomo_packager.release.signing.gpg import verify_signatures
from matomo_packager.utils.process import CommandRunner

_logger: logging.Logger = get_logger(__name__)


@dataclass(frozen=True)
class ReleaseResult:
    """Outcome of a successful release run."""

    version: str
    working_tree: Path
    archive_dir: Path
    manifest_entries: int
    packages: list[FlavourArchives]
    verified_signatures: int


def verify_release_signatures(
    descriptor: ReleaseDescriptor,
    archive_dir: Path,
    runner: CommandRunner,
) -> int:
    """
    Verify the signature of every archive of every flavour.

    Local builds are unsigned and return 0 without calling gpg.

    Raises:
        SigningError: Naming the first archive that fails.
    """
    if descriptor.is_local_build:
        return 0

    archives = [
        archive_path(archive_dir, descriptor.archive_basename(flavour), extension)
        for extension in ARCHIVE_EXTENSIONS
        for flavour in descriptor.flavours
    ]
    verified = verify_signatures(archives, runner)

    _logger.info("All signatures verified", extra={"count": verified})
    return verified


def build_release(
    descriptor: ReleaseDescriptor,
    config: ReleaseConfig,
    project_dir: Path,
    runner: CommandRunner,
    http_client: httpx.Client,
    clean_build: Optional[CleanBuildHook] = None,
    check_environment: bool = True,
) -> ReleaseResult:
    """
    Run a complete release.

    Args:
        descriptor: Version, flavours and acquisition mode.
        config: Release settings.
        project_dir: Directory the builder runs from; holds the working tree,
            the archive directory and, for local builds, the source.
        runner: Executes git, php and gpg.
        http_client: Used for the installer download and the build check.
        clean_build: Hook stripping development artifacts. Defaults to the
            project's clean-build script.
        check_environment: Skip the tool check (tests inject fake tools).

    Raises:
        ReleaseError: Any failure; the subclass names the phase.
    """
    os.umask(config.umask)

    if check_environment:
        require_environment(config.required_executables)

    archive_dir = project_dir / config.archive_dir
    if clean_build is None:
        clean_build = script_clean_build_hook(project_dir / config.clean_build_script, runner)

    _logger.info(
        "Starting release build",
        extra={
            "version": descriptor.version,
            "major_version": descriptor.major_version,
            "flavours": list(descriptor.flavours),
            "local_build": descriptor.is_local_build,
            "project_dir": str(project_dir),
        },
    )

    if not descriptor.is_local_build:
        warn_if_already_published(http_client, descriptor.version, config.builds_url_template)

    working_tree = acquire_source(descriptor, config, project_dir, runner)
    archive_dir.mkdir(parents=True, exist_ok=True)

    fetch_allowed_submodules(working_tree, config.submodules_allowlist, runner)
    verify_source_version(descriptor, working_tree, config.version_file, runner)

    install_dependencies(working_tree, config, http_client, runner)

    _logger.info("Organizing files and generating manifest file")
    organized = organize_package(working_tree, archive_dir, config, runner, clean_build)

    signer = None if descriptor.is_local_build else runner
    packages = [
        build_flavour_archives(
            flavour=flavour,
            basename=descriptor.archive_basename(flavour),
            working_tree=working_tree,
            archive_dir=archive_dir,
            install_document=organized.install_document,
            runner=signer,
        )
        for flavour in descriptor.flavours
    ]

    verified = verify_release_signatures(descriptor, archive_dir, runner)

    _logger.info(
        "Release build complete",
        extra={
            "version": descriptor.version,
            "archives": [str(a) for p in packages for a in p.archives],
            "verified_signatures": verified,
        },
    )

    return ReleaseResult(
        version=descriptor.version,
        working_tree=working_tree,
        archive_dir=archive_dir,
        manifest_entries=organized.manifest_entries,
        packages=packages,
        verified_signatures=verified,
    )
