# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Detached GPG signatures for release archives.

Each archive gets an ASCII-armored detached signature next to it
(`matomo-5.2.0.zip` -> `matomo-5.2.0.zip.asc`), made with the default key of
the operator's keyring. After all archives are built, every signature is
verified against its archive before the run counts as successful.
"""

import logging
from pathlib import Path
from typing import Iterable

from matomo_packager.logging.logger import get_logger
from matomo_packager.release.errors import SigningError
from matomo_packager.utils.process import CommandRunner

_logger: logging.Logger = get_logger(__name__)

SIGNATURE_SUFFIX: str = ".asc"


def signature_path(archive: Path) -> Path:
    return archive.with_name(archive.name + SIGNATURE_SUFFIX)


def sign_archive(archive: Path, runner: CommandRunner) -> Path:
    """
    Create `<archive>.asc`. A stale signature is replaced.

    Raises:
        SigningError: gpg failed; the message names the archive.
    """
    signature = signature_path(archive)
    if signature.exists():
        signature.unlink()
    runner.run(
        ["gpg", "--armor", "--detach-sign", str(archive)],
        error=SigningError,
        message=f"Failed to sign {archive.name}",
    )
    _logger.info("Archive signed", extra={"archive": archive.name, "signature": signature.name})
    return signature


def verify_signature(archive: Path, runner: CommandRunner) -> None:
    """
    Raises:
        SigningError: The signature is missing or does not verify.
    """
    signature = signature_path(archive)
    message = f"Failed to verify signature for {archive}"
    if not signature.is_file():
        raise SigningError(message)
    runner.run(["gpg", "--verify", str(signature), str(archive)], error=SigningError, message=message)
    _logger.info("Signature verified", extra={"archive": archive.name})


def verify_signatures(archives: Iterable[Path], runner: CommandRunner) -> int:
    """Verify every archive, stopping at the first failure. Returns the count."""
    count = 0
    for archive in archives:
        verify_signature(archive, runner)
        count += 1
    return count
