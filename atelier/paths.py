"""
paths.py: classify a path string as S3 or local, and normalize local paths.

Local normalization is best effort: existing paths are fully resolved
(symlinks, '.', '..'), non-existent ones (typically destinations) resolve
their deepest existing ancestor and keep the rest of the string as given.
"""

import os
from typing import NamedTuple

from atelier import s3io


class PathInfo(NamedTuple):
    raw: str
    path: str       # absolute local path, or the validated S3 URI
    remote: bool


def is_remote(path: str) -> bool:
    return s3io.is_s3_uri(path)


def absolute_path(path: str, base: str = None) -> str:
    """
    Return an absolute form of a local path. Never raises for missing paths.

    Relative paths are taken relative to `base` (default: the current working
    directory).
    """
    if not os.path.isabs(path):
        path = os.path.join(base or os.getcwd(), path)

    if len(path) > 1:
        path = path.rstrip(os.sep) or os.sep

    head = path
    tail = []
    while not os.path.lexists(head):
        parent, name = os.path.split(head)
        if parent == head:
            break
        if name:
            tail.insert(0, name)
        head = parent

    resolved = os.path.realpath(head)
    return os.path.join(resolved, *tail) if tail else resolved


def classify(path: str, base: str = None) -> PathInfo:
    """
    Tag a path as remote or local.

    Remote paths are validated (a malformed URI raises ValidationError rather
    than being treated as a local file name) and kept verbatim.
    """
    if is_remote(path):
        s3io.parse_s3(path)
        return PathInfo(path, path, True)
    return PathInfo(path, absolute_path(path, base), False)


def basename(path: str) -> str:
    """Last path segment of a local path or S3 URI, ignoring a trailing '/'."""
    if is_remote(path):
        bucket, key = s3io.parse_s3(path)
        key = key.rstrip("/")
        return key.rsplit("/", 1)[-1] if key else bucket
    return os.path.basename(path.rstrip(os.sep))


def join(root: str, *parts: str) -> str:
    """Join path segments onto a local directory or an S3 prefix."""
    if is_remote(root):
        rel = "/".join(p.strip("/") for p in parts if p)
        return root.rstrip("/") + "/" + rel
    return os.path.join(root, *parts)
