"""Access to the directory of text files a server exposes."""
from __future__ import annotations

import os
from typing import BinaryIO, Iterable, List

TEXT_SUFFIX = ".txt"


def list_text_files(directory: str) -> List[str]:
    """Return the names of regular ``.txt`` files in *directory*, sorted."""
    return sorted(
        name
        for name in os.listdir(directory)
        if name.endswith(TEXT_SUFFIX) and os.path.isfile(os.path.join(directory, name))
    )


def build_index(names: Iterable[str]) -> bytes:
    # undecodable names come back from os.listdir surrogate-escaped; send their raw bytes
    return "".join(f"{name}\n" for name in names).encode("utf-8", errors="surrogateescape")


def parse_index(data: bytes) -> List[str]:
    return [line for line in data.decode("utf-8", errors="replace").split("\n") if line]


def open_for_read(directory: str, filename: str) -> BinaryIO:
    """Open *filename* inside *directory* for binary reading.

    Raises FileNotFoundError when the name is empty or holds a NUL byte, is not
    a regular file, or resolves to a path outside *directory*.
    """
    if not filename:
        raise FileNotFoundError("empty filename")
    if "\x00" in filename:
        raise FileNotFoundError(f"invalid filename: {filename!r}")

    root = os.path.realpath(directory)
    path = os.path.realpath(os.path.join(root, filename))
    if os.path.commonpath([root, path]) != root or path == root:
        raise FileNotFoundError(f"outside served directory: {filename}")
    if not os.path.isfile(path):
        raise FileNotFoundError(f"no such file: {filename}")
    return open(path, "rb")
