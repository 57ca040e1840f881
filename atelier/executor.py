"""
executor.py: perform one planned transfer.

Behavior per transfer kind (move mode unless keep_source is set):

  s3_to_s3       managed copy with storage class, then delete the source object
  local_to_s3    managed upload with storage class, then remove the local file
  s3_to_local    managed download, then delete the source object
  local_to_local copy (keep_source), or rename; across filesystems copy then remove

A failed write never touches the source. A failed source removal after a
successful write is reported as ItemStatus.WARNING: the data landed, but now
exists in two places. Nothing is retried.

An item whose destination is its own source is never followed by a delete:
s3_to_s3 rewrites the object in place (a storage class change), local_to_local
fails the item.
"""

import enum
import errno
import logging
import os
import shutil
from dataclasses import dataclass

from boto3.exceptions import Boto3Error
from botocore.exceptions import BotoCoreError, ClientError

from atelier import paths, s3io
from atelier.planner import TransferItem, TransferKind
from atelier.reporter import ItemStatus, format_size

log = logging.getLogger(__name__)

# Errors the backends raise for a single failed operation. Anything else is a bug.
TRANSFER_ERRORS = (ClientError, BotoCoreError, Boto3Error, OSError)


class StorageClass(enum.Enum):
    STANDARD = "STANDARD"
    GLACIER = "GLACIER"
    DEEP_ARCHIVE = "DEEP_ARCHIVE"


@dataclass(frozen=True)
class TransferConfig:
    recursive: bool = False
    dry_run: bool = False
    keep_source: bool = False
    storage_class: StorageClass = StorageClass.STANDARD

    @property
    def mode(self) -> str:
        return "COPY" if self.keep_source else "MOVE"


# ─────────────────────────────────────────────────────────────────────────────
# Source checks
# ─────────────────────────────────────────────────────────────────────────────
def source_exists(item: TransferItem, s3) -> bool:
    if item.kind.source_remote:
        return s3io.object_exists(s3, item.source)
    return os.path.isfile(item.source)


def source_size(item: TransferItem, s3):
    try:
        if item.kind.source_remote:
            meta = s3io.head(s3, item.source)
            return meta.get("ContentLength") if meta else None
        return os.path.getsize(item.source)
    except TRANSFER_ERRORS:
        return None


def same_location(item: TransferItem) -> bool:
    """True if the destination names the source itself (same key, or same local file)."""
    if item.kind is TransferKind.OBJECT_TO_OBJECT:
        return s3io.parse_s3(item.source) == s3io.parse_s3(item.destination)
    if item.kind is TransferKind.LOCAL_TO_LOCAL:
        if os.path.exists(item.source) and os.path.exists(item.destination):
            return os.path.samefile(item.source, item.destination)
        return os.path.abspath(item.source) == os.path.abspath(item.destination)
    return False


# ─────────────────────────────────────────────────────────────────────────────
# Write + cleanup per kind
# ─────────────────────────────────────────────────────────────────────────────
def _move_local(source: str, destination: str) -> bool:
    """Rename, or copy when crossing filesystems. Returns True if the source is already gone."""
    try:
        os.rename(source, destination)
        return True
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise
    shutil.copy2(source, destination)
    return False


def _write(item: TransferItem, cfg: TransferConfig, s3) -> bool:
    """Write the destination. Returns True when the write already consumed the source."""
    storage_class = cfg.storage_class.value
    kind = item.kind
    if kind is TransferKind.OBJECT_TO_OBJECT:
        s3io.copy(s3, item.source, item.destination, storage_class)
    elif kind is TransferKind.LOCAL_TO_OBJECT:
        s3io.upload(s3, item.source, item.destination, storage_class)
    elif kind is TransferKind.OBJECT_TO_LOCAL:
        s3io.download(s3, item.source, item.destination)
    elif kind is TransferKind.LOCAL_TO_LOCAL:
        if cfg.keep_source:
            shutil.copy2(item.source, item.destination)
        else:
            return _move_local(item.source, item.destination)
    else:
        raise ValueError(f"Unhandled transfer kind: {kind}")
    return False


def _remove_source(item: TransferItem, s3) -> None:
    if item.kind.source_remote:
        s3io.delete(s3, item.source)
    else:
        os.remove(item.source)


def _describe(item: TransferItem, cfg: TransferConfig) -> str:
    if cfg.keep_source:
        return {
            TransferKind.OBJECT_TO_OBJECT: "Copied",
            TransferKind.LOCAL_TO_OBJECT: "Uploaded",
            TransferKind.OBJECT_TO_LOCAL: "Downloaded",
            TransferKind.LOCAL_TO_LOCAL: "Copied",
        }[item.kind]
    return {
        TransferKind.OBJECT_TO_OBJECT: "Moved",
        TransferKind.LOCAL_TO_OBJECT: "Uploaded and removed local",
        TransferKind.OBJECT_TO_LOCAL: "Downloaded and removed S3",
        TransferKind.LOCAL_TO_LOCAL: "Moved",
    }[item.kind]


# ─────────────────────────────────────────────────────────────────────────────
# Entry point
# ─────────────────────────────────────────────────────────────────────────────
def execute(item: TransferItem, cfg: TransferConfig, s3=None) -> ItemStatus:
    """
    Transfer one item and return its status. Does not check for a missing
    source; the caller records that as a skip before calling.
    """
    name = paths.basename(item.source)
    size = format_size(source_size(item, s3))
    in_place = same_location(item)

    if cfg.dry_run:
        log.info(f"[DRY RUN] Would transfer: {item.source} -> {item.destination} ({size})")
        if in_place:
            log.warning(f"[DRY RUN] Destination is the source itself: {item.source}")
        if item.kind.dest_remote:
            log.info(f"[DRY RUN] Storage class: {cfg.storage_class.value}")
        return ItemStatus.SUCCEEDED

    if in_place and item.kind is TransferKind.LOCAL_TO_LOCAL:
        log.error(f"FAILED: Source and destination are the same file: {item.source}")
        return ItemStatus.FAILED

    log.info(f"Transferring: {item.source} ({size})")
    log.info(f"         -> {item.destination}")
    if item.kind.dest_remote:
        log.info(f"Storage class: {cfg.storage_class.value}")

    try:
        if not item.kind.dest_remote:
            os.makedirs(os.path.dirname(item.destination) or ".", exist_ok=True)
        consumed = _write(item, cfg, s3)
    except TRANSFER_ERRORS as e:
        log.error(f"FAILED: Could not transfer {name}: {e}")
        return ItemStatus.FAILED

    if in_place:
        log.info(f"SUCCESS: Rewrote {name} in place (storage class {cfg.storage_class.value}); source kept")
        return ItemStatus.SUCCEEDED

    if not cfg.keep_source and not consumed:
        try:
            _remove_source(item, s3)
        except TRANSFER_ERRORS as e:
            log.warning(f"Copied but failed to delete source: {item.source}: {e}")
            return ItemStatus.WARNING

    log.info(f"SUCCESS: {_describe(item, cfg)} {name}")
    return ItemStatus.SUCCEEDED
