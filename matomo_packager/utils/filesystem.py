# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Filesystem operations shared by the release steps.

Atomic writes go to a temporary file in the target's directory, then get
renamed over the target. Rename on the same filesystem is atomic on POSIX,
so the manifest and the edited global config are either fully old or fully
new, never half written.

Tree copies keep symlinks as links and preserve permission bits. A release
tree must look exactly like what will be unpacked on a server.
"""

import os
import shutil
import tempfile
from pathlib import Path
from typing import Iterable


def atomic_write(
    target_path: Path,
    content: str,
    encoding: str = "utf-8",
    errors: str = "strict",
) -> None:
    """
    Write content to a file atomically.

    The file mode of an existing target is carried over to the replacement,
    so rewriting config/global.ini.php does not reset its permissions.

    Raises:
        OSError: If the write or rename fails.
    """
    target_path.parent.mkdir(parents=True, exist_ok=True)
    previous_mode = target_path.stat().st_mode if target_path.exists() else None

    # newline="" keeps the line endings of `content` untouched.
    temp_fd = tempfile.NamedTemporaryFile(
        mode="w",
        encoding=encoding,
        errors=errors,
        newline="",
        dir=str(target_path.parent),
        prefix=".mrb_tmp_",
        suffix=".tmp",
        delete=False,
    )
    temp_path = Path(temp_fd.name)

    try:
        temp_fd.write(content)
        temp_fd.flush()
        temp_fd.close()
        if previous_mode is not None:
            os.chmod(temp_path, previous_mode & 0o7777)
        else:
            # NamedTemporaryFile creates 0600; a regular file honours the umask.
            umask = os.umask(0)
            os.umask(umask)
            os.chmod(temp_path, 0o666 & ~umask)
        temp_path.replace(target_path)
    except BaseException:
        temp_fd.close()
        if temp_path.exists():
            temp_path.unlink()
        raise


def safe_read(file_path: Path, encoding: str = "utf-8", errors: str = "strict") -> str:
    """
    Read a text file with proper error context.

    Raises:
        FileNotFoundError: If the path doesn't exist.
        IsADirectoryError: If the path is a directory.
    """
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")
    if not file_path.is_file():
        raise IsADirectoryError(f"Expected a file, got a directory: {file_path}")
    # newline="" so CRLF files survive a read/modify/write cycle unchanged.
    with open(file_path, encoding=encoding, errors=errors, newline="") as f:
        return f.read()


def remove_path(path: Path) -> bool:
    """
    Delete a file, symlink or directory tree if it exists.

    Returns True if something was deleted. A symlink is removed itself,
    never followed.
    """
    if path.is_symlink() or path.is_file():
        path.unlink()
        return True
    if path.is_dir():
        shutil.rmtree(path)
        return True
    return False


def copy_tree(source: Path, destination: Path, exclude: Iterable[str] = ()) -> None:
    """
    Copy a directory tree, keeping symlinks as links and preserving metadata.

    Args:
        source: Directory to copy.
        destination: Target directory; must not exist yet.
        exclude: Names of top-level entries of `source` to leave out.
    """
    excluded = set(exclude)

    def _ignore(directory: str, names: list[str]) -> set[str]:
        if Path(directory) == source:
            return {name for name in names if name in excluded}
        return set()

    shutil.copytree(source, destination, symlinks=True, ignore=_ignore)


def find_symlinks(root: Path) -> list[Path]:
    """
    Return every symbolic link under `root`, sorted.

    Symlinked directories are reported but not descended into.
    """
    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root, followlinks=False):
        for name in dirnames + filenames:
            candidate = Path(dirpath) / name
            if candidate.is_symlink():
                found.append(candidate)
    return sorted(found)


def iter_regular_files(root: Path) -> list[Path]:
    """
    Return every regular file under `root`, sorted.

    Symlinks are skipped and symlinked directories are not followed, the
    same view `find -type f` gives.
    """
    files: list[Path] = []
    for dirpath, _dirnames, filenames in os.walk(root, followlinks=False):
        for name in filenames:
            candidate = Path(dirpath) / name
            if candidate.is_file() and not candidate.is_symlink():
                files.append(candidate)
    return sorted(files)
