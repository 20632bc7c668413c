# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Shared pytest fixtures for the release builder tests.

The builder drives git, php and gpg. Tests never run those: FakeRunner
records every command and simulates the few side effects later steps
depend on (a clone creating the tree, php producing composer.phar, gpg
writing a .asc file). Network access goes through httpx.MockTransport.
"""

import hashlib
import os
import shutil
import textwrap
from pathlib import Path
from typing import Callable, Optional, Sequence

import httpx
import pytest

from matomo_packager.config.schema import ReleaseConfig
from matomo_packager.release.errors import ReleaseError

VERSION = "5.2.0"
INSTALLER_BYTES = b"<?php // composer installer stand-in\n"
# A file name whose bytes are not valid UTF-8, as os.listdir returns it.
NON_UTF8_NAME = os.fsdecode(b"caf\xe9.txt")

SUBMODULE_STATUS = (
    " 1111111111111111111111111111111111111111 log-analytics (heads/5.x-dev)\n"
    "-2222222222222222222222222222222222222222 plugins/Foo\n"
    " 3333333333333333333333333333333333333333 plugins/TagManager (5.2.0)\n"
    "-4444444444444444444444444444444444444444 plugins/Bar\n"
)

Effect = Callable[[list[str], Optional[Path]], None]


class FakeRunner:
    """Stand-in for CommandRunner that records commands instead of running them."""

    def __init__(self) -> None:
        self.commands: list[tuple[list[str], Optional[Path]]] = []
        self.outputs: dict[tuple[str, ...], str] = {}
        self.effects: dict[tuple[str, ...], Effect] = {}
        self.fail_on: list[tuple[str, ...]] = []

    @staticmethod
    def _lookup(keys: Sequence[tuple[str, ...]], cmd: list[str]) -> Optional[tuple[str, ...]]:
        for key in keys:
            if tuple(cmd[: len(key)]) == key:
                return key
        return None

    def _record(
        self,
        cmd: Sequence[str],
        cwd: Optional[Path],
        error: type[ReleaseError],
        message: Optional[str],
    ) -> list[str]:
        recorded = list(cmd)
        self.commands.append((recorded, cwd))
        if self._lookup(self.fail_on, recorded) is not None:
            raise error(message or f"failed: {' '.join(recorded)}")
        key = self._lookup(list(self.effects), recorded)
        if key is not None:
            self.effects[key](recorded, cwd)
        return recorded

    def run(
        self,
        cmd: Sequence[str],
        cwd: Optional[Path] = None,
        error: type[ReleaseError] = ReleaseError,
        message: Optional[str] = None,
    ) -> None:
        self._record(cmd, cwd, error, message)

    def run_output(
        self,
        cmd: Sequence[str],
        cwd: Optional[Path] = None,
        error: type[ReleaseError] = ReleaseError,
        message: Optional[str] = None,
    ) -> str:
        recorded = self._record(cmd, cwd, error, message)
        key = self._lookup(list(self.outputs), recorded)
        return self.outputs[key] if key is not None else ""

    def ran(self, *prefix: str) -> bool:
        return any(tuple(cmd[: len(prefix)]) == prefix for cmd, _ in self.commands)


def make_matomo_tree(root: Path, version: str = VERSION) -> Path:
    """Create a small tree shaped like a Matomo checkout."""
    files = {
        "index.php": "<?php require 'core/bootstrap.php';\n",
        "core/Version.php": textwrap.dedent(f"""\
            <?php
            namespace Piwik;

            final class Version
            {{
                const VERSION = '{version}';
            }}
        """),
        "config/global.ini.php": textwrap.dedent("""\
            [Plugins]
            Plugins[] = CorePluginsAdmin
            Plugins[] = TestRunner
            Plugins[] = Login
        """),
        "tests/README.md": "# Tests\n",
        "tests/PHPUnit/SomeTest.php": "<?php // test\n",
        "plugins/TestRunner/TestRunner.php": "<?php // dev only\n",
        "plugins/Login/Login.php": "<?php // login\n",
        "plugins/Foo/Foo.php": "<?php // disallowed submodule\n",
        "plugins/TagManager/TagManager.php": "<?php // allowed submodule\n",
        "log-analytics/import_logs.py": "print('import')\n",
        "misc/How to install Matomo.html": "<html>install</html>\n",
        "misc/package/scratch.txt": "scratch\n",
        "misc/user/.htaccess": "Deny from all\n",
        "vendor/autoload.php": "<?php // autoload\n",
        "vendor/composer/autoload_real.php": "<?php // autoload real\n",
        "vendor/composer/ClassLoader.php": "<?php // loader\n",
    }
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


def remove_tests_dir(working_tree: Path) -> None:
    """Clean-build hook used in tests: drops the test suite."""
    shutil.rmtree(working_tree / "tests", ignore_errors=True)


def clone_matomo_tree(cmd: list[str], cwd: Optional[Path]) -> None:
    make_matomo_tree(Path(cmd[-1]))


def write_signature(cmd: list[str], cwd: Optional[Path]) -> None:
    archive = Path(cmd[-1])
    archive.with_name(archive.name + ".asc").write_text("-----BEGIN PGP SIGNATURE-----\n")


def create_composer_phar(cmd: list[str], cwd: Optional[Path]) -> None:
    assert cwd is not None
    (cwd / "composer.phar").write_text("phar")


def composer_transport(signature: Optional[str] = None, builds_status: int = 404) -> httpx.MockTransport:
    """Mock transport serving the Composer installer, its digest and the build server."""
    expected = signature if signature is not None else hashlib.sha384(INSTALLER_BYTES).hexdigest()

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url.endswith("installer.sig"):
            return httpx.Response(200, text=expected + "\n")
        if url.endswith("/installer"):
            return httpx.Response(200, content=INSTALLER_BYTES)
        if "builds.matomo.org" in url:
            return httpx.Response(builds_status)
        return httpx.Response(404)

    return httpx.MockTransport(handler)


@pytest.fixture()
def release_config() -> ReleaseConfig:
    return ReleaseConfig()


@pytest.fixture()
def fake_runner() -> FakeRunner:
    runner = FakeRunner()
    runner.outputs[("git", "submodule", "status")] = SUBMODULE_STATUS
    runner.outputs[("git", "tag", "--points-at")] = VERSION
    runner.effects[("git", "clone")] = clone_matomo_tree
    runner.effects[("php", "composer-setup.php")] = create_composer_phar
    runner.effects[("gpg", "--armor", "--detach-sign")] = write_signature
    return runner


@pytest.fixture()
def http_client() -> httpx.Client:
    with httpx.Client(transport=composer_transport()) as client:
        yield client  # type: ignore[misc]


@pytest.fixture()
def matomo_tree(tmp_path: Path) -> Path:
    return make_matomo_tree(tmp_path / "matomo_last_version_git")


@pytest.fixture()
def tmp_config_file(tmp_path: Path) -> Path:
    """The smallest config that passes schema validation."""
    config_file = tmp_path / "test_config.yaml"
    config_file.write_text(
        textwrap.dedent("""\
            global:
              config_version: "1.0.0"
              log_level: "DEBUG"
            release:
              working_tree: "tree"
        """),
        encoding="utf-8",
    )
    return config_file


@pytest.fixture()
def invalid_config_file(tmp_path: Path) -> Path:
    """Valid YAML, but with a key the schema does not know."""
    config_file = tmp_path / "invalid_config.yaml"
    config_file.write_text(
        textwrap.dedent("""\
            release:
              working_tree: "tree"
              signing_key: "ABCDEF"
        """),
        encoding="utf-8",
    )
    return config_file


@pytest.fixture()
def broken_yaml_file(tmp_path: Path) -> Path:
    config_file = tmp_path / "broken.yaml"
    config_file.write_text("{{not: yaml: at: all:::", encoding="utf-8")
    return config_file
