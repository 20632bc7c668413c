# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Pre-flight environment validation.

Before anything is cloned or deleted we check that every tool the run will
need is there:
- git (source control)
- php (runs the Composer bootstrap and Composer itself)
- gpg (detached signatures)
- an HTTP client for the installer download and the build-existence check
- deflate support for zip and tar.gz archives
- SHA-256 and SHA-384 hashing

A missing tool fails the run right away. Nothing has happened yet, so there
is nothing to clean up.
"""

import hashlib
import importlib.util
import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from matomo_packager.logging.logger import get_logger
from matomo_packager.release.errors import ToolMissingError

_logger: logging.Logger = get_logger(__name__)

# Conventional location checked when a tool is not on PATH.
FALLBACK_BIN_DIR: Path = Path("/usr/bin")

REQUIRED_HASH_ALGORITHMS: tuple[str, ...] = ("sha256", "sha384")


@dataclass(frozen=True)
class EnvironmentCheck:
    """Result of a single environment check."""

    name: str
    passed: bool
    message: str
    value: str


def _resolve_executable(name: str, fallback_dir: Path = FALLBACK_BIN_DIR) -> str | None:
    located = shutil.which(name)
    if located is not None:
        return located
    candidate = fallback_dir / name
    if candidate.is_file() and os.access(candidate, os.X_OK):
        return str(candidate)
    return None


def check_executable(name: str, fallback_dir: Path = FALLBACK_BIN_DIR) -> EnvironmentCheck:
    """Check that an executable resolves on PATH or under `fallback_dir`."""
    located = _resolve_executable(name, fallback_dir)
    if located is None:
        return EnvironmentCheck(
            name=name,
            passed=False,
            message=f"Cannot find {name}",
            value="not_found",
        )
    return EnvironmentCheck(name=name, passed=True, message=f"{name} found", value=located)


def check_http_client() -> EnvironmentCheck:
    """The installer download and the build check both go through httpx."""
    if importlib.util.find_spec("httpx") is None:
        return EnvironmentCheck(
            name="httpx",
            passed=False,
            message="Cannot find httpx",
            value="not_installed",
        )
    return EnvironmentCheck(name="httpx", passed=True, message="httpx available", value="installed")


def check_archiver() -> EnvironmentCheck:
    """zipfile and tarfile can only deflate when the interpreter has zlib."""
    if importlib.util.find_spec("zlib") is None:
        return EnvironmentCheck(
            name="archiver",
            passed=False,
            message="Cannot find zlib, zip and tar.gz archives cannot be compressed",
            value="no_zlib",
        )
    return EnvironmentCheck(name="archiver", passed=True, message="zlib available", value="zlib")


def check_hash_algorithms(
    algorithms: Sequence[str] = REQUIRED_HASH_ALGORITHMS,
) -> EnvironmentCheck:
    missing = [a for a in algorithms if a not in hashlib.algorithms_available]
    if missing:
        return EnvironmentCheck(
            name="hashing",
            passed=False,
            message=f"Cannot find hash algorithms: {', '.join(missing)}",
            value=",".join(missing),
        )
    return EnvironmentCheck(
        name="hashing",
        passed=True,
        message="Hash algorithms available",
        value=",".join(algorithms),
    )


def validate_environment(
    executables: Sequence[str],
    fallback_dir: Path = FALLBACK_BIN_DIR,
) -> list[EnvironmentCheck]:
    """
    Run all pre-flight checks and return their results without raising.

    Args:
        executables: External programs the run shells out to.
        fallback_dir: Directory checked when an executable is not on PATH.
    """
    checks = [check_executable(name, fallback_dir) for name in executables]
    checks.extend([check_http_client(), check_archiver(), check_hash_algorithms()])

    for check in checks:
        log_fn = _logger.debug if check.passed else _logger.error
        log_fn(
            "Environment check",
            extra={"check": check.name, "passed": check.passed, "check_message": check.message},
        )

    passed_count = sum(1 for c in checks if c.passed)
    _logger.info(
        "Environment validation complete",
        extra={"passed": passed_count, "failed": len(checks) - passed_count},
    )
    return checks


def require_environment(
    executables: Sequence[str],
    fallback_dir: Path = FALLBACK_BIN_DIR,
) -> list[EnvironmentCheck]:
    """
    Run all checks and fail on the first missing tool.

    Raises:
        ToolMissingError: Naming the missing tool.
    """
    checks = validate_environment(executables, fallback_dir)
    for check in checks:
        if not check.passed:
            raise ToolMissingError(check.message)
    return checks
