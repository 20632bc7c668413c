# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for the pre-flight environment checks.
"""

import os
import sys
from pathlib import Path

import pytest

from matomo_packager.release.environment.validator import (
    check_archiver,
    check_executable,
    check_hash_algorithms,
    check_http_client,
    require_environment,
    validate_environment,
)
from matomo_packager.release.errors import ToolMissingError

MISSING_TOOL = "matomo-release-no-such-tool"


class TestExecutables:
    def test_found_on_path(self, monkeypatch: pytest.MonkeyPatch) -> None:
        name = Path(sys.executable).name
        monkeypatch.setenv("PATH", f"{Path(sys.executable).parent}{os.pathsep}{os.environ.get('PATH', '')}")
        check = check_executable(name)
        assert check.passed
        assert check.value != "not_found"

    def test_missing(self, tmp_path: Path) -> None:
        check = check_executable(MISSING_TOOL, fallback_dir=tmp_path)
        assert not check.passed
        assert check.message == f"Cannot find {MISSING_TOOL}"

    def test_fallback_directory(self, tmp_path: Path) -> None:
        tool = tmp_path / MISSING_TOOL
        tool.write_text("#!/bin/sh\n")
        tool.chmod(0o755)
        check = check_executable(MISSING_TOOL, fallback_dir=tmp_path)
        assert check.passed
        assert check.value == str(tool)

    def test_non_executable_fallback_ignored(self, tmp_path: Path) -> None:
        (tmp_path / MISSING_TOOL).write_text("not executable")
        (tmp_path / MISSING_TOOL).chmod(0o644)
        assert not check_executable(MISSING_TOOL, fallback_dir=tmp_path).passed


class TestCapabilities:
    def test_http_client_available(self) -> None:
        assert check_http_client().passed

    def test_archiver_available(self) -> None:
        assert check_archiver().passed

    def test_hash_algorithms_available(self) -> None:
        assert check_hash_algorithms().passed

    def test_unknown_hash_algorithm(self) -> None:
        check = check_hash_algorithms(["sha256", "whirlpool-9000"])
        assert not check.passed
        assert "whirlpool-9000" in check.message


class TestValidation:
    def test_validate_reports_without_raising(self, tmp_path: Path) -> None:
        checks = validate_environment([MISSING_TOOL], fallback_dir=tmp_path)
        names = [c.name for c in checks]
        assert names == [MISSING_TOOL, "httpx", "archiver", "hashing"]
        assert not checks[0].passed

    def test_require_names_first_missing_tool(self, tmp_path: Path) -> None:
        with pytest.raises(ToolMissingError, match=f"Cannot find {MISSING_TOOL}"):
            require_environment([MISSING_TOOL, "another-missing-tool"], fallback_dir=tmp_path)

    def test_require_passes_with_no_executables(self) -> None:
        assert all(c.passed for c in require_environment([]))
