# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for detached signature creation and verification.
"""

from pathlib import Path

import pytest
from conftest import FakeRunner

from matomo_packager.release.errors import SigningError
from matomo_packager.release.signing.gpg import (
    sign_archive,
    signature_path,
    verify_signature,
    verify_signatures,
)


@pytest.fixture()
def archive(tmp_path: Path) -> Path:
    path = tmp_path / "matomo-5.2.0.zip"
    path.write_bytes(b"PK")
    return path


def test_signature_path(archive: Path) -> None:
    assert signature_path(archive).name == "matomo-5.2.0.zip.asc"


class TestSign:
    def test_gpg_arguments(self, archive: Path, fake_runner: FakeRunner) -> None:
        signature = sign_archive(archive, fake_runner)
        assert fake_runner.commands[0][0] == ["gpg", "--armor", "--detach-sign", str(archive)]
        assert signature.is_file()

    def test_stale_signature_removed_first(self, archive: Path) -> None:
        stale = signature_path(archive)
        stale.write_text("stale")
        runner = FakeRunner()
        sign_archive(archive, runner)
        assert not stale.exists()

    def test_failure_names_archive(self, archive: Path) -> None:
        runner = FakeRunner()
        runner.fail_on.append(("gpg",))
        with pytest.raises(SigningError, match="Failed to sign matomo-5.2.0.zip"):
            sign_archive(archive, runner)


class TestVerify:
    def test_valid_signature(self, archive: Path, fake_runner: FakeRunner) -> None:
        sign_archive(archive, fake_runner)
        verify_signature(archive, fake_runner)
        assert fake_runner.commands[-1][0] == [
            "gpg", "--verify", str(signature_path(archive)), str(archive),
        ]

    def test_missing_signature(self, archive: Path, fake_runner: FakeRunner) -> None:
        with pytest.raises(SigningError, match="Failed to verify signature for"):
            verify_signature(archive, fake_runner)
        assert fake_runner.commands == []

    def test_bad_signature(self, archive: Path, fake_runner: FakeRunner) -> None:
        sign_archive(archive, fake_runner)
        fake_runner.fail_on.append(("gpg", "--verify"))
        with pytest.raises(SigningError, match=str(archive.name)):
            verify_signature(archive, fake_runner)

    def test_verify_many_stops_at_first_failure(
        self, tmp_path: Path, fake_runner: FakeRunner
    ) -> None:
        signed = tmp_path / "matomo-5.2.0.zip"
        unsigned = tmp_path / "matomo-5.2.0.tar.gz"
        for path in (signed, unsigned):
            path.write_bytes(b"x")
        sign_archive(signed, fake_runner)

        assert verify_signatures([signed], fake_runner) == 1
        with pytest.raises(SigningError, match="tar.gz"):
            verify_signatures([signed, unsigned], fake_runner)
