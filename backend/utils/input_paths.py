"""
Input path helpers shared by job submission and the worker.

Inputs are staged under their basename, so two distinct store paths with the
same basename cannot be staged side by side.
"""
from pathlib import PurePosixPath
from typing import Iterable, Optional, Tuple


def find_basename_clash(storage_paths: Iterable[str]) -> Optional[Tuple[str, str, str]]:
    """
    Find the first pair of distinct store paths that share a basename.

    The same path listed twice is not a clash.

    Returns:
        (first_path, second_path, basename), or None if every basename is unique
    """
    seen: dict[str, str] = {}
    for storage_path in dict.fromkeys(storage_paths):
        name = PurePosixPath(storage_path).name
        if name in seen:
            return seen[name], storage_path, name
        seen[name] = storage_path
    return None


def basename_clash_message(clash: Tuple[str, str, str]) -> str:
    first, second, name = clash
    return f"Input files {first} and {second} share the file name '{name}'"
