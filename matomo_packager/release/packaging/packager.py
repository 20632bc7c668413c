# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Release archives, one set per flavour.

For each flavour the organized working tree is copied to
`<archive_dir>/<flavour>/` and packed, together with the installation
document, into:

    <archive_dir>/
    ├─ matomo/                      copy of the organized tree
    ├─ matomo-5.2.0.zip
    ├─ matomo-5.2.0.zip.asc         unless local build
    ├─ matomo-5.2.0.tar.gz
    ├─ matomo-5.2.0.tar.gz.asc      unless local build
    └─ How to install Matomo.html

Member names are relative to the staging directory (`matomo/index.php`,
`How to install Matomo.html`) and members are added in sorted order.
Stale archives with the same name are deleted first, never appended to.
"""

import logging
import os
import tarfile
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from matomo_packager.logging.logger import get_logger
from matomo_packager.release.errors import PackagingError
from matomo_packager.release.signing.gpg import sign_archive
from matomo_packager.utils.filesystem import copy_tree, remove_path
from matomo_packager.utils.process import CommandRunner

_logger: logging.Logger = get_logger(__name__)

ZIP_COMPRESSION_LEVEL: int = 9
ARCHIVE_EXTENSIONS: tuple[str, ...] = ("zip", "tar.gz")


@dataclass(frozen=True)
class FlavourArchives:
    """Everything produced for one flavour."""

    flavour: str
    tree: Path
    zip_path: Path
    tar_path: Path
    signatures: list[Path] = field(default_factory=list)

    @property
    def archives(self) -> list[Path]:
        return [self.zip_path, self.tar_path]


def archive_path(archive_dir: Path, basename: str, extension: str) -> Path:
    return archive_dir / f"{basename}.{extension}"


def _walk_sorted(root: Path) -> list[Path]:
    """Directories and files under `root` (root included), parents before children."""
    collected: list[Path] = [root]
    for dirpath, dirnames, filenames in os.walk(root, followlinks=False):
        base = Path(dirpath)
        for name in dirnames:
            collected.append(base / name)
        for name in sorted(filenames):
            collected.append(base / name)
    return sorted(collected, key=lambda p: p.relative_to(root.parent).as_posix())


def create_zip(staging_dir: Path, flavour_dir: str, extra_files: list[str], destination: Path) -> None:
    """Zip `flavour_dir` recursively plus `extra_files`, all relative to `staging_dir`."""
    remove_path(destination)
    with zipfile.ZipFile(
        destination,
        "w",
        compression=zipfile.ZIP_DEFLATED,
        compresslevel=ZIP_COMPRESSION_LEVEL,
        strict_timestamps=False,
    ) as zf:
        for path in _walk_sorted(staging_dir / flavour_dir):
            zf.write(path, path.relative_to(staging_dir).as_posix())
        for name in extra_files:
            zf.write(staging_dir / name, name)


def create_tarball(staging_dir: Path, flavour_dir: str, extra_files: list[str], destination: Path) -> None:
    """Gzip tar of `flavour_dir` plus `extra_files`, all relative to `staging_dir`."""
    remove_path(destination)
    with tarfile.open(destination, "w:gz") as tar:
        for path in _walk_sorted(staging_dir / flavour_dir):
            tar.add(path, arcname=path.relative_to(staging_dir).as_posix(), recursive=False)
        for name in extra_files:
            tar.add(staging_dir / name, arcname=name, recursive=False)


def build_flavour_archives(
    flavour: str,
    basename: str,
    working_tree: Path,
    archive_dir: Path,
    install_document: Path,
    runner: Optional[CommandRunner] = None,
) -> FlavourArchives:
    """
    Copy the tree under the flavour name and produce its zip and tar.gz.

    Args:
        flavour: Directory name inside the archives, e.g. "matomo".
        basename: Archive file stem, e.g. "matomo-5.2.0".
        working_tree: The fully organized tree.
        archive_dir: Staging directory, also where archives are written.
        install_document: Installation document already staged in archive_dir.
        runner: Command runner for gpg; None skips signing (local build).

    Raises:
        PackagingError: Copy or archive creation failed.
        SigningError: An archive could not be signed.
    """
    flavour_tree = archive_dir / flavour
    extra_files = [install_document.name]

    _logger.info("Creating release package", extra={"flavour": flavour, "basename": basename})

    try:
        remove_path(flavour_tree)
        copy_tree(working_tree, flavour_tree)
    except OSError as err:
        raise PackagingError(f"Failed to copy {working_tree} to {flavour_tree}: {err}") from err

    signatures: list[Path] = []

    zip_path = archive_path(archive_dir, basename, "zip")
    try:
        create_zip(archive_dir, flavour, extra_files, zip_path)
    except UnicodeEncodeError as err:
        # zip member names are stored as UTF-8; tar keeps the raw bytes.
        remove_path(zip_path)
        raise PackagingError(
            f"Failed to create {zip_path.name}: file name is not valid UTF-8: {err.object!r}"
        ) from err
    except OSError as err:
        raise PackagingError(f"Failed to create {zip_path.name}: {err}") from err
    if runner is not None:
        signatures.append(sign_archive(zip_path, runner))

    tar_path = archive_path(archive_dir, basename, "tar.gz")
    try:
        create_tarball(archive_dir, flavour, extra_files, tar_path)
    except (OSError, tarfile.TarError) as err:
        raise PackagingError(f"Failed to create {tar_path.name}: {err}") from err
    if runner is not None:
        signatures.append(sign_archive(tar_path, runner))

    _logger.info(
        "Release package created",
        extra={
            "flavour": flavour,
            "zip": zip_path.name,
            "tar": tar_path.name,
            "zip_bytes": zip_path.stat().st_size,
            "tar_bytes": tar_path.stat().st_size,
            "signed": runner is not None,
        },
    )

    return FlavourArchives(
        flavour=flavour,
        tree=flavour_tree,
        zip_path=zip_path,
        tar_path=tar_path,
        signatures=signatures,
    )
