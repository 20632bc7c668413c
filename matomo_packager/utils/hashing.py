# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Hashing utilities.

SHA-256 is what the integrity manifest records for every shipped file.
SHA-384 is what Composer publishes for its installer. Both go through the
same chunked reader so multi-megabyte vendor files never sit in memory whole.
"""

import hashlib
from pathlib import Path

HASH_BUFFER_SIZE = 65536  # 64 KiB


def compute_digest(file_path: Path, algorithm: str) -> str:
    """
    Compute the hex digest of a file with any hashlib algorithm.

    Args:
        file_path: Path to the file to hash.
        algorithm: hashlib algorithm name, e.g. "sha256" or "sha384".

    Returns:
        Lowercase hex digest.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If the algorithm is unknown to hashlib.
    """
    hasher = hashlib.new(algorithm)
    with open(file_path, "rb") as f:
        while True:
            chunk = f.read(HASH_BUFFER_SIZE)
            if not chunk:
                break
            hasher.update(chunk)
    return hasher.hexdigest()


def compute_sha256(file_path: Path) -> str:
    """Lowercase hex SHA-256 of a file."""
    return compute_digest(file_path, "sha256")


def compute_sha384(file_path: Path) -> str:
    """Lowercase hex SHA-384 of a file."""
    return compute_digest(file_path, "sha384")


def digests_match(actual: str, expected: str) -> bool:
    """
    Compare two hex digests, ignoring case and surrounding whitespace.

    Published signature files usually end with a newline; that must not turn
    a matching digest into a mismatch.
    """
    return actual.strip().lower() == expected.strip().lower()
