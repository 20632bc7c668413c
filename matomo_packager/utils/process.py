# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
External command execution.

All of git, php and gpg go through CommandRunner. That gives one place
that logs what is executed, applies the optional timeout, and
turns a non-zero exit into the ReleaseError subclass the caller asked for,
carrying the caller's diagnostic.

Tests swap CommandRunner for a recording fake with the same two methods.
"""

import logging
import subprocess
from pathlib import Path
from typing import Optional, Sequence

from matomo_packager.logging.logger import get_logger
from matomo_packager.release.errors import ReleaseError

_logger: logging.Logger = get_logger(__name__)


class CommandRunner:
    """Runs external commands synchronously, one after the other."""

    def __init__(self, timeout: Optional[int] = None) -> None:
        self.timeout = timeout

    def run(
        self,
        cmd: Sequence[str],
        cwd: Optional[Path] = None,
        error: type[ReleaseError] = ReleaseError,
        message: Optional[str] = None,
    ) -> None:
        """
        Run a command and wait for it.

        Output is inherited from this process so long clones and composer
        installs stay visible to the operator.

        Raises:
            error: If the command is missing, exits non-zero, or times out.
        """
        _logger.debug("Running command", extra={"cmd": list(cmd), "cwd": str(cwd)})
        try:
            subprocess.run(list(cmd), cwd=cwd, check=True, timeout=self.timeout)
        except subprocess.CalledProcessError as err:
            raise error(message or f"Command failed with exit code {err.returncode}: {' '.join(cmd)}") from err
        except subprocess.TimeoutExpired as err:
            raise error(
                message or f"Command timed out after {self.timeout} seconds: {' '.join(cmd)}"
            ) from err
        except FileNotFoundError as err:
            raise error(message or f"Command not found: {cmd[0]}") from err

    def run_output(
        self,
        cmd: Sequence[str],
        cwd: Optional[Path] = None,
        error: type[ReleaseError] = ReleaseError,
        message: Optional[str] = None,
    ) -> str:
        """
        Run a command and return its stripped stdout.

        Used for introspection: submodule status, tag lookup.
        """
        _logger.debug("Reading command output", extra={"cmd": list(cmd), "cwd": str(cwd)})
        try:
            result = subprocess.run(
                list(cmd),
                cwd=cwd,
                check=True,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.CalledProcessError as err:
            stderr = (err.stderr or "").strip()
            raise error(message or f"{' '.join(cmd)} failed: {stderr}") from err
        except subprocess.TimeoutExpired as err:
            raise error(
                message or f"Command timed out after {self.timeout} seconds: {' '.join(cmd)}"
            ) from err
        except FileNotFoundError as err:
            raise error(message or f"Command not found: {cmd[0]}") from err
        return result.stdout.strip()
