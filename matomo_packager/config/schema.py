# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Type-safe configuration schemas for the release builder.

Every section is a frozen pydantic model. Frozen means the config cannot be
mutated once loaded; a release run works from one immutable picture of where
things live and which patterns apply.

The models use pydantic v2's ConfigDict with:
  - frozen=True: immutability after construction
  - extra="forbid": unknown fields cause immediate failure
  - validate_default=True: even defaults get type-checked

Every field has a default matching the upstream Matomo layout, so running
without a config file builds a regular Matomo release.
"""

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from matomo_packager.release.descriptor import KNOWN_FLAVOURS


class GlobalConfig(BaseModel):
    """Cross-cutting settings: schema version and observability."""

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    config_version: str = Field(
        default="1.0.0",
        description="Schema version for compatibility tracking, e.g. '1.0.0'",
    )
    log_level: str = Field(
        default="INFO",
        description="One of DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )
    log_file: Optional[str] = Field(
        default=None,
        description="Optional path for file-based log output, relative to the project directory",
    )

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        upper = value.upper()
        if upper not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level '{value}'")
        return upper


class ReleaseConfig(BaseModel):
    """
    Where the source comes from, where the build happens, and which files
    are kept or dropped on the way to an archive.

    Paths under the working tree (version_file, install_document, ...) are
    POSIX paths relative to the tree root. working_tree, archive_dir and
    clean_build_script are relative to the project directory the builder
    runs from.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    repository_url: str = Field(
        default="https://github.com/matomo-org/matomo.git",
        description="Remote repository cloned for tagged releases",
    )
    working_tree: str = Field(
        default="matomo_last_version_git",
        description="Directory the source is acquired into; replaced on every run",
    )
    archive_dir: str = Field(
        default="archives",
        description="Staging directory for flavour trees, archives and signatures",
    )
    flavours: list[str] = Field(
        default_factory=lambda: ["matomo", "piwik"],
        description="Brand names archives are produced under (matomo, piwik), in build order",
    )
    submodules_allowlist: str = Field(
        default="log-analytics|plugins/Morpheus/icons|plugins/TagManager",
        description="Alternation pattern of submodule paths that ship with core",
    )
    manifest_denylist: list[str] = Field(
        default_factory=lambda: [
            "user/.htaccess",
            "manifest.inc.php",
            "vendor/autoload.php",
            "vendor/composer/autoload_real.php",
        ],
        description="Patterns searched in each relative path; matches stay out of the manifest",
    )
    required_executables: list[str] = Field(
        default_factory=lambda: ["git", "php", "gpg"],
        description="Executables that must resolve on PATH or under /usr/bin",
    )
    composer_installer_url: str = Field(default="https://getcomposer.org/installer")
    composer_signature_url: str = Field(default="https://composer.github.io/installer.sig")
    builds_url_template: str = Field(
        default="https://builds.matomo.org/matomo-{version}.zip",
        description="Public download URL checked to warn about rebuilding a stable version",
    )
    version_file: str = Field(default="core/Version.php")
    clean_build_script: str = Field(default=".github/scripts/clean-build.sh")
    tests_readme: str = Field(default="tests/README.md")
    install_document: str = Field(default="misc/How to install Matomo.html")
    package_scratch_dir: str = Field(default="misc/package")
    dev_plugin: str = Field(
        default="TestRunner",
        description="Plugin removed and deactivated in production builds",
    )
    global_config_file: str = Field(default="config/global.ini.php")
    manifest_file: str = Field(default="config/manifest.inc.php")
    umask: int = Field(default=0o022, ge=0, le=0o777)
    command_timeout_seconds: Optional[int] = Field(
        default=None,
        ge=1,
        description="Timeout for each external command; None waits indefinitely",
    )

    @field_validator("submodules_allowlist")
    @classmethod
    def _check_allowlist(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as err:
            raise ValueError(f"submodules_allowlist is not a valid pattern: {err}") from err
        return value

    @field_validator("manifest_denylist")
    @classmethod
    def _check_denylist(cls, value: list[str]) -> list[str]:
        for pattern in value:
            try:
                re.compile(pattern)
            except re.error as err:
                raise ValueError(f"manifest_denylist entry {pattern!r} is invalid: {err}") from err
        return value

    @field_validator("flavours")
    @classmethod
    def _check_flavours(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("at least one flavour is required")
        if len(set(value)) != len(value):
            raise ValueError("flavours must be unique")
        unknown = [f for f in value if f not in KNOWN_FLAVOURS]
        if unknown:
            raise ValueError(
                f"unknown flavours {unknown}, expected a subset of {list(KNOWN_FLAVOURS)}"
            )
        return value


class BuilderConfig(BaseModel):
    """Top-level config container, mirroring the YAML layout."""

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    global_config: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    release: ReleaseConfig = Field(default_factory=ReleaseConfig)
