"""
planner.py: turn a source path or a manifest into a flat list of transfers.

Two modes:
  - manifest : one source per line, each paired with destination root + basename
  - source   : a single path; with recursion a local directory or an S3 prefix
               is expanded to every file beneath it, keeping the source's own
               name one level below the destination root:

                 /src/proj/a/b.txt  ->  <dest>/proj/a/b.txt

The transfer kind of every item comes only from whether each side is an S3 URI.
"""

import enum
import logging
import os
from dataclasses import dataclass
from typing import List, Optional

from atelier import paths, s3io
from atelier.errors import ValidationError

log = logging.getLogger(__name__)


class TransferKind(enum.Enum):
    OBJECT_TO_OBJECT = "s3_to_s3"
    OBJECT_TO_LOCAL = "s3_to_local"
    LOCAL_TO_OBJECT = "local_to_s3"
    LOCAL_TO_LOCAL = "local_to_local"

    @property
    def source_remote(self) -> bool:
        return self in (TransferKind.OBJECT_TO_OBJECT, TransferKind.OBJECT_TO_LOCAL)

    @property
    def dest_remote(self) -> bool:
        return self in (TransferKind.OBJECT_TO_OBJECT, TransferKind.LOCAL_TO_OBJECT)


@dataclass(frozen=True)
class TransferItem:
    source: str
    destination: str
    kind: TransferKind


def resolve_kind(source: str, destination: str) -> TransferKind:
    """Classify a (source, destination) pair. Pure, no I/O."""
    src_remote = paths.is_remote(source)
    dst_remote = paths.is_remote(destination)
    if src_remote and dst_remote:
        return TransferKind.OBJECT_TO_OBJECT
    if src_remote:
        return TransferKind.OBJECT_TO_LOCAL
    if dst_remote:
        return TransferKind.LOCAL_TO_OBJECT
    return TransferKind.LOCAL_TO_LOCAL


def make_item(source: str, destination: str) -> TransferItem:
    return TransferItem(source, destination, resolve_kind(source, destination))


# ─────────────────────────────────────────────────────────────────────────────
# Manifest parsing
# ─────────────────────────────────────────────────────────────────────────────
def read_manifest(manifest: str) -> List[str]:
    """
    Read a manifest file: one path per line, '#' comments and blank lines
    skipped, surrounding whitespace trimmed.
    """
    if not os.path.isfile(manifest):
        raise ValidationError(f"File list not found: {manifest}")

    entries: List[str] = []
    with open(manifest, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            entries.append(line)
    return entries


def normalize_destination(dest: str) -> str:
    """S3 roots end with '/'; local roots become absolute and end with os.sep."""
    info = paths.classify(dest)
    if info.remote:
        return info.path.rstrip("/") + "/"
    return info.path.rstrip(os.sep) + os.sep


# ─────────────────────────────────────────────────────────────────────────────
# Expansion helpers
# ─────────────────────────────────────────────────────────────────────────────
def _walk_local(root: str) -> List[str]:
    found = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for name in sorted(filenames):
            full = os.path.join(dirpath, name)
            if os.path.isfile(full):
                found.append(full)
    return found


def _expand_local_dir(root: str, dest_root: str) -> List[TransferItem]:
    top = paths.basename(root)
    items = []
    for full in _walk_local(root):
        rel = os.path.relpath(full, root)
        items.append(make_item(full, paths.join(dest_root, top, *rel.split(os.sep))))
    return items


def _expand_s3_prefix(s3, source: str, dest_root: str) -> List[TransferItem]:
    bucket, prefix = s3io.parse_s3(source)
    if prefix and not prefix.endswith("/"):
        prefix += "/"
    top = paths.basename(source)
    items = []
    for key in sorted(s3io.list_keys(s3, s3io.s3_uri(bucket, prefix))):
        rel = key[len(prefix):]
        items.append(make_item(s3io.s3_uri(bucket, key), paths.join(dest_root, top, *rel.split("/"))))
    return items


def _expand(source: str, dest_root: str, recursive: bool, s3) -> List[TransferItem]:
    """Expand one already-classified source into items."""
    if paths.is_remote(source):
        if recursive:
            return _expand_s3_prefix(s3, source, dest_root)
        return [make_item(source, paths.join(dest_root, paths.basename(source)))]

    if os.path.isdir(source):
        if not recursive:
            raise ValidationError(f"Source is a directory. Use -r for recursive mode: {source}")
        return _expand_local_dir(source, dest_root)
    return [make_item(source, paths.join(dest_root, paths.basename(source)))]


# ─────────────────────────────────────────────────────────────────────────────
# Public builders
# ─────────────────────────────────────────────────────────────────────────────
def build_from_manifest(manifest: str, dest_root: str, base_source: Optional[str] = None,
                        recursive: bool = False, s3=None) -> List[TransferItem]:
    """
    Build items from a manifest. Relative local lines are taken relative to
    `base_source` when it is a local path, else to the current directory.
    Missing sources are kept; they become skips when the run reaches them.
    """
    base = None
    if base_source and not paths.is_remote(base_source):
        base = paths.absolute_path(base_source)

    items: List[TransferItem] = []
    for line in read_manifest(manifest):
        if paths.is_remote(line):
            s3io.parse_s3(line)
            if recursive and line.endswith("/"):
                items.extend(_expand_s3_prefix(s3, line, dest_root))
            else:
                items.append(make_item(line, paths.join(dest_root, paths.basename(line))))
            continue
        items.extend(_expand(paths.absolute_path(line, base), dest_root, recursive, s3))
    return items


def build_from_source(source: str, dest_root: str, recursive: bool = False, s3=None) -> List[TransferItem]:
    """Build items from a single source path (file, directory, object or prefix)."""
    info = paths.classify(source)
    if not info.remote and not os.path.lexists(info.path):
        raise ValidationError(f"Local source path does not exist: {info.path}")
    return _expand(info.path, dest_root, recursive, s3)


def build_items(dest: str, source: Optional[str] = None, manifest: Optional[str] = None,
                recursive: bool = False, s3=None) -> List[TransferItem]:
    """
    Build the full item list for one run. A manifest takes precedence and uses
    `source` only as the base for relative lines. Zero items is fatal.
    """
    dest_root = normalize_destination(dest)
    if manifest:
        log.info(f"Reading files from: {manifest}")
        items = build_from_manifest(manifest, dest_root, base_source=source, recursive=recursive, s3=s3)
    elif source:
        if recursive:
            log.info(f"Listing files recursively from: {source}")
        items = build_from_source(source, dest_root, recursive=recursive, s3=s3)
    else:
        raise ValidationError("Either a source path or a file list is required")

    if not items:
        raise ValidationError("No files to process")
    return items
