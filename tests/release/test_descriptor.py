# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for turning CLI input into a ReleaseDescriptor.
"""

import pytest

from matomo_packager.release.descriptor import CloneTag, LocalCopy, create_descriptor
from matomo_packager.release.errors import UsageError


class TestVersion:
    def test_tag_release_clones(self) -> None:
        descriptor = create_descriptor("5.2.0")
        assert descriptor.mode == CloneTag(tag="5.2.0")
        assert not descriptor.is_local_build

    def test_build_token_copies_local_checkout(self) -> None:
        descriptor = create_descriptor("build")
        assert descriptor.mode == LocalCopy()
        assert descriptor.is_local_build

    def test_major_version(self) -> None:
        assert create_descriptor("5.2.0-rc1").major_version == "5"
        assert create_descriptor("build").major_version == "build"

    @pytest.mark.parametrize("version", [None, "", "   "])
    def test_missing_version(self, version: str | None) -> None:
        with pytest.raises(UsageError, match="Expected a version number as a parameter"):
            create_descriptor(version)


class TestFlavour:
    def test_default_builds_all_in_order(self) -> None:
        assert create_descriptor("5.2.0").flavours == ("matomo", "piwik")

    def test_single_flavour(self) -> None:
        assert create_descriptor("5.2.0", "piwik").flavours == ("piwik",)

    def test_unknown_flavour(self) -> None:
        with pytest.raises(UsageError, match="Unknown flavour 'foo'"):
            create_descriptor("5.2.0", "foo")

    def test_custom_flavour_list(self) -> None:
        descriptor = create_descriptor("5.2.0", known_flavours=["matomo"])
        assert descriptor.flavours == ("matomo",)
        with pytest.raises(UsageError):
            create_descriptor("5.2.0", "piwik", known_flavours=["matomo"])


def test_archive_basename() -> None:
    descriptor = create_descriptor("5.2.0")
    assert descriptor.archive_basename("matomo") == "matomo-5.2.0"
    assert descriptor.archive_basename("piwik") == "piwik-5.2.0"
