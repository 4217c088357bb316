"""System utilities"""

import os
from pathlib import Path
from typing import List, Optional, Tuple

from branchkeeper.util.log import logger


def fix_path_case(path):
    """Do a case-insensitive check, return the real path with correct case. If the path is
    not for a real file, this corrects as many components as do exist."""
    if not path or os.path.exists(path) or not path.startswith("/"):
        # If a path isn't provided, or it exists as is, or is a relative path, just return it.
        return path
    parts = path.strip("/").split("/")
    current_path = "/"
    for part in parts:
        parent_path = current_path
        current_path = os.path.join(current_path, part)
        if not os.path.exists(current_path) and os.path.isdir(parent_path):
            try:
                path_contents = os.listdir(parent_path)
            except OSError:
                logger.error("Can't read contents of %s", parent_path)
                path_contents = []
            for filename in path_contents:
                if filename.lower() == part.lower():
                    current_path = os.path.join(parent_path, filename)
                    break

    # Only return the path if we got the same number of elements
    if len(parts) == len(current_path.strip("/").split("/")):
        return current_path
    # otherwise return original path
    return path


def path_contains(parent, child, resolve_symlinks=False) -> bool:
    """Tests if a child path is actually within a parent directory
    or a subdirectory of it. Resolves relative paths, and ~, and
    optionally symlinks."""

    if parent is None or child is None:
        return False

    resolved_parent = Path(os.path.abspath(os.path.expanduser(parent)))
    resolved_child = Path(os.path.abspath(os.path.expanduser(child)))

    if resolve_symlinks:
        resolved_parent = resolved_parent.resolve()
        resolved_child = resolved_child.resolve()

    return resolved_child == resolved_parent or resolved_parent in resolved_child.parents


def path_exists(path: Optional[str], check_symlinks: bool = False, exclude_empty: bool = False) -> bool:
    """Wrapper around os.path.exists that doesn't crash with empty values

    Params:
        path (str): File to the file to check
        check_symlinks (bool): If the path is a broken symlink, return False
        exclude_empty (bool): If true, consider 0 bytes files as non existing
    """
    if not path:
        return False
    if path.startswith("~"):
        path = os.path.expanduser(path)
    if os.path.exists(path):
        if exclude_empty:
            return os.stat(path).st_size > 0
        return True
    if os.path.islink(path):
        logger.warning("%s is a broken link", path)
        return not check_symlinks
    return False


def create_folder(path):
    """Creates a folder specified by path"""
    if not path:
        return
    path = os.path.expanduser(path)
    os.makedirs(path, exist_ok=True)
    return path


def is_protected_folder(path: str) -> bool:
    """Folders that must never be deleted, whatever the request: the
    filesystem root and the home directory or one of its parents."""
    resolved = os.path.abspath(os.path.expanduser(path))
    if resolved == os.path.abspath(os.sep):
        return True
    return path_contains(resolved, os.path.expanduser("~"))


def get_directory_stats(path: str) -> Tuple[int, int]:
    """Return the size in bytes and the number of files of a folder.
    Symlinks are counted but not followed. Unreadable entries are skipped."""
    total_size = 0
    file_count = 0

    def on_error(error):
        logger.warning("Can't scan %s: %s", error.filename, error)

    for base, _dirs, files in os.walk(path, onerror=on_error):
        for filename in files:
            file_path = os.path.join(base, filename)
            file_count += 1
            try:
                total_size += os.lstat(file_path).st_size
            except OSError as ex:
                logger.warning("Could not get size for file %s: %s", file_path, ex)
    return total_size, file_count


def list_files(path: str, excluded_directories: Tuple[str, ...] = (), onerror=None) -> List[str]:
    """Return the paths of all files under path, relative to it and sorted.
    Symlinks to folders are listed as files, they are not followed.
    Root level folders named in excluded_directories are skipped.
    onerror is called with the OSError of a folder that can't be listed."""
    relative_paths = []
    for base, dirs, files in os.walk(path, onerror=onerror):
        if base == path:
            dirs[:] = [d for d in dirs if d not in excluded_directories]
        links = [d for d in dirs if os.path.islink(os.path.join(base, d))]
        dirs[:] = [d for d in dirs if d not in links]
        relative_base = os.path.relpath(base, path)
        for filename in files + links:
            if relative_base == ".":
                relative_paths.append(filename)
            else:
                relative_paths.append(os.path.join(relative_base, filename))
    return sorted(relative_paths)
