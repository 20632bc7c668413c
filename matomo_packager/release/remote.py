# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Advisory check against the public build server.

Rebuilding a stable version that is already published is almost always a
mistake (forgotten version bump, wrong tag). Before a stable build, the
builder asks the download server whether the archive already exists and
warns if so. The answer never stops the run, and neither does a network
failure.
"""

import logging
import re

import httpx

from matomo_packager.logging.logger import get_logger

_logger: logging.Logger = get_logger(__name__)

# Any of these in a version marks it as a pre-release or local build.
_UNSTABLE_VERSION_RE = re.compile(r"rc|b|a|alpha|beta|dev|build", re.IGNORECASE)


def is_stable_version(version: str) -> bool:
    return _UNSTABLE_VERSION_RE.search(version) is None


def warn_if_already_published(client: httpx.Client, version: str, url_template: str) -> bool:
    """
    Warn when a stable version's archive already exists on the build server.

    Returns:
        True if the archive was found, False otherwise (including pre-release
        versions, which are not checked, and network errors).
    """
    if not is_stable_version(version):
        return False

    url = url_template.format(version=version)
    try:
        response = client.head(url, follow_redirects=True)
    except httpx.HTTPError as err:
        _logger.warning(
            "Could not check whether the version was already built",
            extra={"url": url, "error": str(err)},
        )
        return False

    if response.is_success:
        _logger.warning(
            "Stable version has already been built (not expected)",
            extra={"version": version, "url": url},
        )
        return True
    return False
