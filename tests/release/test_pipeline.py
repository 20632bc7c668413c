# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
End-to-end release runs with git, php and gpg replaced by FakeRunner.

These walk the whole sequence (acquire, submodules, version check,
composer, organize, archive, sign, verify) against a sample Matomo tree and
check what ends up in the archive directory, plus the points where a run
must stop before anything is archived.
"""

import zipfile
from pathlib import Path

import httpx
import pytest
from conftest import VERSION, FakeRunner, composer_transport, make_matomo_tree, remove_tests_dir

from matomo_packager.config.schema import ReleaseConfig
from matomo_packager.release.descriptor import create_descriptor
from matomo_packager.release.errors import AcquisitionError, IntegrityError, SigningError
from matomo_packager.release.manifests.manifest import parse_manifest
from matomo_packager.release.pipeline import ReleaseResult, build_release, verify_release_signatures


def _build(
    version: str,
    project_dir: Path,
    runner: FakeRunner,
    client: httpx.Client,
    config: ReleaseConfig,
    flavour: str | None = None,
) -> ReleaseResult:
    return build_release(
        create_descriptor(version, flavour),
        config,
        project_dir,
        runner,
        client,
        clean_build=remove_tests_dir,
        check_environment=False,
    )


def _read_member(project_dir: Path, member: str) -> str:
    with zipfile.ZipFile(project_dir / "archives" / "matomo-5.2.0.zip") as zf:
        return zf.read(member).decode("utf-8")


class TestTaggedRelease:
    def test_both_flavours_signed_and_verified(
        self,
        tmp_path: Path,
        fake_runner: FakeRunner,
        http_client: httpx.Client,
        release_config: ReleaseConfig,
    ) -> None:
        result = _build(VERSION, tmp_path, fake_runner, http_client, release_config)

        archive_dir = tmp_path / "archives"
        for name in (
            "matomo-5.2.0.zip",
            "matomo-5.2.0.zip.asc",
            "matomo-5.2.0.tar.gz",
            "matomo-5.2.0.tar.gz.asc",
            "piwik-5.2.0.zip",
            "piwik-5.2.0.zip.asc",
            "piwik-5.2.0.tar.gz",
            "piwik-5.2.0.tar.gz.asc",
            "How to install Matomo.html",
        ):
            assert (archive_dir / name).is_file(), name

        assert result.verified_signatures == 4
        assert [p.flavour for p in result.packages] == ["matomo", "piwik"]
        verify_calls = [cmd for cmd, _ in fake_runner.commands if cmd[:2] == ["gpg", "--verify"]]
        assert len(verify_calls) == 4

    def test_shipped_tree_is_organized(
        self,
        tmp_path: Path,
        fake_runner: FakeRunner,
        http_client: httpx.Client,
        release_config: ReleaseConfig,
    ) -> None:
        _build(VERSION, tmp_path, fake_runner, http_client, release_config)

        with zipfile.ZipFile(tmp_path / "archives" / "matomo-5.2.0.zip") as zf:
            names = set(zf.namelist())
            manifest = parse_manifest(zf.read("matomo/config/manifest.inc.php").decode("utf-8"))

        assert "matomo/tests/README.md" in names
        assert "matomo/tests/PHPUnit/SomeTest.php" not in names
        assert not any(n.startswith("matomo/plugins/TestRunner") for n in names)
        assert not any(n.startswith("matomo/plugins/Foo") for n in names)
        assert not any(n.startswith("matomo/misc/package") for n in names)
        assert "Plugins[] = TestRunner" not in _read_member(tmp_path, "matomo/config/global.ini.php")
        assert "index.php" in manifest
        assert "composer.phar" in manifest

    def test_single_flavour(
        self,
        tmp_path: Path,
        fake_runner: FakeRunner,
        http_client: httpx.Client,
        release_config: ReleaseConfig,
    ) -> None:
        result = _build(VERSION, tmp_path, fake_runner, http_client, release_config, flavour="piwik")

        archive_dir = tmp_path / "archives"
        assert (archive_dir / "piwik-5.2.0.zip.asc").is_file()
        assert not list(archive_dir.glob("matomo-*"))
        assert result.verified_signatures == 2

    def test_rebuild_is_idempotent(
        self,
        tmp_path: Path,
        fake_runner: FakeRunner,
        http_client: httpx.Client,
        release_config: ReleaseConfig,
    ) -> None:
        _build(VERSION, tmp_path, fake_runner, http_client, release_config)
        manifest_path = tmp_path / "archives" / "matomo" / "config" / "manifest.inc.php"
        first = manifest_path.read_bytes()

        _build(VERSION, tmp_path, fake_runner, http_client, release_config)
        assert manifest_path.read_bytes() == first


class TestLocalBuild:
    def test_unsigned_and_no_gpg(
        self,
        tmp_path: Path,
        fake_runner: FakeRunner,
        http_client: httpx.Client,
        release_config: ReleaseConfig,
    ) -> None:
        project = make_matomo_tree(tmp_path / "project")

        result = _build("build", project, fake_runner, http_client, release_config)

        archive_dir = project / "archives"
        assert (archive_dir / "matomo-build.zip").is_file()
        assert (archive_dir / "piwik-build.tar.gz").is_file()
        assert not list(archive_dir.glob("*.asc"))
        assert not fake_runner.ran("gpg")
        assert not fake_runner.ran("git", "clone")
        assert result.verified_signatures == 0

    def test_no_build_server_lookup(
        self, tmp_path: Path, fake_runner: FakeRunner, release_config: ReleaseConfig
    ) -> None:
        project = make_matomo_tree(tmp_path / "project")
        seen: list[str] = []
        inner = composer_transport()

        def record(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return inner.handle_request(request)

        with httpx.Client(transport=httpx.MockTransport(record)) as client:
            _build("build", project, fake_runner, client, release_config)
        assert not any("builds.matomo.org" in url for url in seen)


class TestAbortedRuns:
    def test_installer_digest_mismatch(
        self, tmp_path: Path, fake_runner: FakeRunner, release_config: ReleaseConfig
    ) -> None:
        with httpx.Client(transport=composer_transport(signature="f" * 96)) as client:
            with pytest.raises(IntegrityError, match="Invalid installer signature"):
                _build(VERSION, tmp_path, fake_runner, client, release_config)

        tree = tmp_path / release_config.working_tree
        assert not (tree / "composer.phar").exists()
        assert not (tree / "composer-setup.php").exists()
        assert not list((tmp_path / "archives").glob("*.zip"))

    def test_symlink_prevents_archives(
        self,
        tmp_path: Path,
        fake_runner: FakeRunner,
        http_client: httpx.Client,
        release_config: ReleaseConfig,
    ) -> None:
        def clone_with_symlink(cmd: list[str], cwd: Path | None) -> None:
            tree = make_matomo_tree(Path(cmd[-1]))
            (tree / "plugins" / "Login" / "alias.php").symlink_to("Login.php")

        fake_runner.effects[("git", "clone")] = clone_with_symlink

        with pytest.raises(IntegrityError, match="Symlinks detected"):
            _build(VERSION, tmp_path, fake_runner, http_client, release_config)
        assert not list((tmp_path / "archives").glob("*.zip"))
        assert not list((tmp_path / "archives").glob("*.tar.gz"))

    def test_version_mismatch_stops_before_organizing(
        self,
        tmp_path: Path,
        fake_runner: FakeRunner,
        http_client: httpx.Client,
        release_config: ReleaseConfig,
    ) -> None:
        fake_runner.outputs[("git", "tag", "--points-at")] = "5.1.0"

        with pytest.raises(AcquisitionError, match="does not match version"):
            _build(VERSION, tmp_path, fake_runner, http_client, release_config)

        tree = tmp_path / release_config.working_tree
        assert (tree / "plugins" / "TestRunner").exists()
        assert not fake_runner.ran("php")

    def test_signing_failure(
        self,
        tmp_path: Path,
        fake_runner: FakeRunner,
        http_client: httpx.Client,
        release_config: ReleaseConfig,
    ) -> None:
        fake_runner.fail_on.append(("gpg", "--armor"))
        with pytest.raises(SigningError, match="Failed to sign matomo-5.2.0.zip"):
            _build(VERSION, tmp_path, fake_runner, http_client, release_config)


class TestVerifyReleaseSignatures:
    def test_local_build_skips(self, tmp_path: Path, fake_runner: FakeRunner) -> None:
        assert verify_release_signatures(create_descriptor("build"), tmp_path, fake_runner) == 0
        assert fake_runner.commands == []

    def test_missing_signature(self, tmp_path: Path, fake_runner: FakeRunner) -> None:
        (tmp_path / "matomo-5.2.0.zip").write_bytes(b"PK")
        with pytest.raises(SigningError, match="matomo-5.2.0.zip"):
            verify_release_signatures(create_descriptor(VERSION, "matomo"), tmp_path, fake_runner)
