# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Integrity manifest generation and verification.

The deployed Matomo checks its own files against `config/manifest.inc.php`,
a generated PHP class listing every shipped file with its size and SHA-256:

    <?php
    // This file is automatically generated during the Matomo build process
    namespace Piwik;
    class Manifest {
    	static $files=array(
    		"core/Version.php" => array("1234", "9f86d0..."),
    	);
    }

The manifest is a pure function of the tree: the same bytes at the same
relative paths always render to the same file. Entries are sorted by their
rendered line, compared by code point, so the locale of the build machine
plays no part. There are no timestamps and no absolute paths.

File names are written byte for byte: a name that is not valid UTF-8 is
carried through surrogateescape, the same bytes `find` would print.

A fixed denylist keeps some files out: the manifest itself, the Composer
autoloader files (they are regenerated on install) and user/.htaccess.
Denylist entries are regular expressions searched anywhere in the relative
path, so "manifest.inc.php" also drops e.g. "plugins/X/manifest.inc.php".
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from matomo_packager.logging.logger import get_logger
from matomo_packager.utils.filesystem import atomic_write, iter_regular_files
from matomo_packager.utils.hashing import compute_sha256

_logger: logging.Logger = get_logger(__name__)

# Undecodable file-name bytes surface as lone surrogates from os.walk.
MANIFEST_ENCODING_ERRORS: str = "surrogateescape"

MANIFEST_HEADER: str = (
    "<?php\n"
    "// This file is automatically generated during the Matomo build process \n"
    "namespace Piwik;\n"
    "class Manifest {\n"
    "\tstatic $files=array(\n"
)
MANIFEST_FOOTER: str = "\t);\n}\n"

_ENTRY_RE = re.compile(r'^\t\t"(?P<path>.*)" => array\("(?P<size>\d+)", "(?P<sha256>[0-9a-f]+)"\),$')


@dataclass(frozen=True)
class ManifestEntry:
    """One shipped file."""

    path: str
    size: int
    sha256: str

    def render(self) -> str:
        return f'\t\t"{self.path}" => array("{self.size}", "{self.sha256}"),'


@dataclass(frozen=True)
class ManifestVerification:
    """Outcome of checking a tree against its manifest."""

    is_valid: bool
    checked_count: int
    mismatches: list[str] = field(default_factory=list)
    missing_files: list[str] = field(default_factory=list)
    unlisted_files: list[str] = field(default_factory=list)


def is_denied(relative_path: str, denylist: Sequence[str]) -> bool:
    return any(re.search(pattern, relative_path) for pattern in denylist)


def build_manifest(tree: Path, denylist: Sequence[str]) -> list[ManifestEntry]:
    """
    Hash every regular file under `tree` that the denylist does not exclude.

    Returns:
        Entries sorted by their rendered line.
    """
    entries: list[ManifestEntry] = []
    excluded = 0
    for file_path in iter_regular_files(tree):
        relative = file_path.relative_to(tree).as_posix()
        if is_denied(relative, denylist):
            excluded += 1
            continue
        entries.append(
            ManifestEntry(
                path=relative,
                size=file_path.stat().st_size,
                sha256=compute_sha256(file_path),
            )
        )

    entries.sort(key=lambda entry: entry.render())
    _logger.info(
        "Manifest entries computed",
        extra={"tree": str(tree), "entries": len(entries), "excluded": excluded},
    )
    return entries


def render_manifest(entries: Sequence[ManifestEntry]) -> str:
    body = "".join(f"{entry.render()}\n" for entry in entries)
    return MANIFEST_HEADER + body + MANIFEST_FOOTER


def write_manifest(tree: Path, manifest_file: str, denylist: Sequence[str]) -> list[ManifestEntry]:
    """
    Generate the manifest for `tree` and write it to `tree/manifest_file`.

    The write is atomic. A previous manifest at the same path is excluded
    by the denylist, not by special-casing here.
    """
    entries = build_manifest(tree, denylist)
    target = tree / manifest_file
    atomic_write(target, render_manifest(entries), errors=MANIFEST_ENCODING_ERRORS)
    _logger.info("Manifest written", extra={"path": str(target), "entries": len(entries)})
    return entries


def parse_manifest(content: str) -> dict[str, ManifestEntry]:
    """
    Parse a generated manifest back into entries keyed by path.

    Raises:
        ValueError: If the header is missing or a line between header and
            footer is not a manifest entry.
    """
    if not content.startswith(MANIFEST_HEADER):
        raise ValueError("Manifest does not start with the generated header")

    entries: dict[str, ManifestEntry] = {}
    body = content[len(MANIFEST_HEADER):]
    for line_num, line in enumerate(body.splitlines(), start=1):
        if line in ("\t);", "}") or not line:
            continue
        match = _ENTRY_RE.match(line)
        if match is None:
            raise ValueError(f"Invalid manifest entry at body line {line_num}: {line!r}")
        entry = ManifestEntry(
            path=match.group("path"),
            size=int(match.group("size")),
            sha256=match.group("sha256"),
        )
        entries[entry.path] = entry
    return entries


def verify_manifest(tree: Path, manifest_file: str, denylist: Sequence[str]) -> ManifestVerification:
    """
    Compare an organized tree with its manifest.

    Reports every file whose size or digest changed, every listed file that
    is gone, and every file on disk that the manifest does not list.
    """
    manifest_path = tree / manifest_file
    if not manifest_path.is_file():
        return ManifestVerification(is_valid=False, checked_count=0, missing_files=[manifest_file])

    expected = parse_manifest(
        manifest_path.read_text(encoding="utf-8", errors=MANIFEST_ENCODING_ERRORS)
    )
    actual = {entry.path: entry for entry in build_manifest(tree, denylist)}

    mismatches = sorted(p for p in expected if p in actual and actual[p] != expected[p])
    missing = sorted(p for p in expected if p not in actual)
    unlisted = sorted(p for p in actual if p not in expected)
    checked = sum(1 for p in expected if p in actual)

    for path in mismatches:
        _logger.error("Manifest mismatch", extra={"file": path})

    is_valid = not (mismatches or missing or unlisted)
    log_fn = _logger.info if is_valid else _logger.error
    log_fn(
        "Manifest verification finished",
        extra={
            "valid": is_valid,
            "checked": checked,
            "mismatches": len(mismatches),
            "missing": len(missing),
            "unlisted": len(unlisted),
        },
    )

    return ManifestVerification(
        is_valid=is_valid,
        checked_count=checked,
        mismatches=mismatches,
        missing_files=missing,
        unlisted_files=unlisted,
    )
