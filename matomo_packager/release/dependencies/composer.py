# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Composer bootstrap and production dependency install.

If the working tree has no composer.phar yet, the official installer is
downloaded and checked before it is ever executed:

  1. fetch the published SHA-384 of the installer
  2. download the installer to composer-setup.php
  3. hash the download and compare
  4. on mismatch: delete the download and fail
  5. on match: run it with php to produce composer.phar, then delete it

Then `composer.phar install` pulls production packages only, with an
optimized autoloader, tolerating PHP extensions the build machine lacks.
"""

import logging
from pathlib import Path

import httpx

from matomo_packager.config.schema import ReleaseConfig
from matomo_packager.logging.logger import get_logger
from matomo_packager.release.errors import DependencyError, IntegrityError
from matomo_packager.utils.filesystem import remove_path
from matomo_packager.utils.hashing import compute_sha384, digests_match
from matomo_packager.utils.process import CommandRunner

_logger: logging.Logger = get_logger(__name__)

COMPOSER_PHAR: str = "composer.phar"
COMPOSER_SETUP: str = "composer-setup.php"

COMPOSER_INSTALL_ARGS: tuple[str, ...] = (
    "install",
    "--no-dev",
    "-o",
    "-q",
    # the build machine may lack extensions production needs, e.g. GD
    "--ignore-platform-reqs",
)


def fetch_expected_signature(client: httpx.Client, url: str) -> str:
    try:
        response = client.get(url, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPError as err:
        raise DependencyError(f"Error downloading composer installer signature: {err}") from err
    return response.text.strip()


def download_installer(client: httpx.Client, url: str, destination: Path) -> None:
    try:
        with client.stream("GET", url, follow_redirects=True) as response:
            response.raise_for_status()
            with open(destination, "wb") as f:
                for chunk in response.iter_bytes():
                    f.write(chunk)
    except httpx.HTTPError as err:
        remove_path(destination)
        raise DependencyError(f"Error downloading composer installer: {err}") from err


def bootstrap_composer(
    working_tree: Path,
    config: ReleaseConfig,
    client: httpx.Client,
    runner: CommandRunner,
) -> Path:
    """
    Make sure composer.phar exists in the working tree.

    Returns:
        Path to composer.phar.

    Raises:
        IntegrityError: The installer digest does not match the published one.
        DependencyError: Download or installer execution failed.
    """
    phar = working_tree / COMPOSER_PHAR
    if phar.is_file():
        _logger.debug("composer.phar already present", extra={"path": str(phar)})
        return phar

    setup_script = working_tree / COMPOSER_SETUP
    expected = fetch_expected_signature(client, config.composer_signature_url)
    download_installer(client, config.composer_installer_url, setup_script)

    actual = compute_sha384(setup_script)
    if not digests_match(actual, expected):
        remove_path(setup_script)
        _logger.error(
            "Composer installer digest mismatch",
            extra={"expected": expected, "actual": actual},
        )
        raise IntegrityError("ERROR: Invalid installer signature")

    _logger.info("Composer installer verified", extra={"sha384": actual[:16] + "..."})
    try:
        runner.run(
            ["php", COMPOSER_SETUP, "--quiet"],
            cwd=working_tree,
            error=DependencyError,
            message="Error installing composer",
        )
    finally:
        remove_path(setup_script)

    if not phar.is_file():
        raise DependencyError("Error installing composer: composer.phar was not created")
    return phar


def install_dependencies(
    working_tree: Path,
    config: ReleaseConfig,
    client: httpx.Client,
    runner: CommandRunner,
) -> None:
    """
    Bootstrap Composer if needed and install production dependencies.

    Raises:
        IntegrityError: Installer digest mismatch.
        DependencyError: Any installation failure.
    """
    bootstrap_composer(working_tree, config, client, runner)
    _logger.info("Installing composer packages", extra={"working_tree": str(working_tree)})
    runner.run(
        ["php", COMPOSER_PHAR, *COMPOSER_INSTALL_ARGS],
        cwd=working_tree,
        error=DependencyError,
        message="Error installing composer packages",
    )
