#!/usr/bin/env python3
"""
s3mover.py: move/copy files between the local filesystem and S3, or within S3.

Supported transfer types:
  - Local to S3 (upload)
  - S3 to Local (download)
  - S3 to S3 (within/across buckets)
  - Local to Local

Usage (examples):
  sbatch --job-name=upload   --wrap "atelier-s3mover -s /data/sample.bam -d s3://mybucket/data/"
  atelier-s3mover -s /data/project/ -d s3://mybucket/archive/ -r -c DEEP_ARCHIVE
  atelier-s3mover -s s3://mybucket/data/project/ -d /local/data/ -r -k
  atelier-s3mover -f files_to_transfer.txt -d s3://mybucket/archive/ -n

Exit codes:
  0 : every item succeeded or was skipped (source not found)
  1 : usage/validation error, or at least one item failed
"""

# ── Stdlib deps ─────────────────────────────────────────────────────────────────
import argparse
import logging
import os
import socket
import sys
from typing import List, Optional

# ── External deps ─────────────────────────────────────────────────────────────
from botocore.exceptions import BotoCoreError, ClientError

# ── Project deps ───────────────────────────────────────────────────────────────
from atelier import cli, executor, paths, planner, reporter, s3io
from atelier.errors import UsageError, ValidationError
from atelier.executor import StorageClass, TransferConfig
from atelier.planner import TransferItem
from atelier.reporter import ItemStatus, RunOutcome

log = logging.getLogger(__name__)

TOOL_NAME = "s3mover"


def build_parser() -> argparse.ArgumentParser:
    parser = cli.HelpOnErrorParser(
        prog="atelier-s3mover",
        description="Move/copy files between local filesystem and S3, or within S3.",
        epilog=(
            "File list format (-f): one path per line (S3 URI or local path); relative "
            "local paths are prefixed with the source path if given; '#' lines and "
            "blank lines are ignored."
        ),
    )
    parser.add_argument("-s", "--source", help="Source path: S3 URI, absolute or relative local path.")
    parser.add_argument("-d", "--dest", help="Destination: S3 URI prefix or local directory.")
    parser.add_argument("-f", "--file-list", dest="file_list", help="Text file listing paths to transfer.")
    parser.add_argument("-r", "--recursive", action="store_true", help="Transfer every file beneath the source.")
    parser.add_argument("-n", "--dry-run", dest="dry_run", action="store_true", help="Show what would be transferred.")
    parser.add_argument("-k", "--keep-source", dest="keep_source", action="store_true",
                        help="Keep source files (copy instead of move).")
    parser.add_argument("-c", "--storage-class", dest="storage_class", default=StorageClass.STANDARD.value,
                        choices=[c.value for c in StorageClass], help="S3 storage class for writes (default: STANDARD).")
    return parser


def transfer_config(args: argparse.Namespace) -> TransferConfig:
    return TransferConfig(
        recursive=args.recursive,
        dry_run=args.dry_run,
        keep_source=args.keep_source,
        storage_class=StorageClass(args.storage_class),
    )


def needs_aws(args: argparse.Namespace) -> bool:
    if paths.is_remote(args.dest) or (args.source and paths.is_remote(args.source)):
        return True
    # A manifest may mix S3 URIs and local paths
    return bool(args.file_list) and any(paths.is_remote(p) for p in planner.read_manifest(args.file_list))


def process_item(item: TransferItem, cfg: TransferConfig, s3) -> ItemStatus:
    """Skip a vanished source, otherwise hand the item to the executor."""
    try:
        exists = executor.source_exists(item, s3)
    except executor.TRANSFER_ERRORS as e:
        log.error(f"FAILED: Could not check source {item.source}: {e}")
        return ItemStatus.FAILED
    if not exists:
        log.warning(f"SKIP: Source file not found: {item.source}")
        return ItemStatus.SKIPPED
    return executor.execute(item, cfg, s3)


def transfer_all(items: List[TransferItem], cfg: TransferConfig, s3) -> RunOutcome:
    outcome = RunOutcome(total=len(items))
    for i, item in enumerate(items, 1):
        log.info("-" * 60)
        log.info(f"Processing file {i} of {len(items)} [{item.kind.value}]")
        outcome.record(item.source, process_item(item, cfg, s3))
        reporter.log_progress(outcome, i, len(items))
    outcome.finish()
    return outcome


def run(args: argparse.Namespace, s3=None) -> int:
    """Validate, list, transfer and report. Returns the process exit code."""
    reporter.print_header("S3 File Mover")
    log.info(f"Hostname: {socket.gethostname()}")
    log.info(f"Working directory: {os.getcwd()}")

    # ---- Validating ---------------------------------------------------------
    reporter.print_header("Input Validation")
    if not args.dest:
        raise UsageError("Destination path (-d) is required")
    if not args.source and not args.file_list:
        raise UsageError("Either source path (-s) or file list (-f) is required")

    cfg = transfer_config(args)
    dest_root = planner.normalize_destination(args.dest)
    log.info(f"Resolved destination: {dest_root} ({'S3' if paths.is_remote(dest_root) else 'Local'})")
    log.info(f"Storage class: {cfg.storage_class.value} | Recursive: {cfg.recursive} | "
             f"Dry run: {cfg.dry_run} | Keep source: {cfg.keep_source}")

    if args.file_list:
        if not os.path.isfile(args.file_list):
            raise ValidationError(f"File list not found: {args.file_list}")
        log.info(f"File list: {args.file_list}")

    source_info = paths.classify(args.source) if args.source else None
    if source_info:
        log.info(f"Resolved source: {source_info.path} ({'S3' if source_info.remote else 'Local'})")
        log.info(f"Transfer type: {planner.resolve_kind(source_info.path, dest_root).value}")

    # ---- Environment --------------------------------------------------------
    reporter.print_header("Environment Setup")
    try:
        if needs_aws(args):
            if s3 is None:
                s3io.check_credentials()
                s3 = s3io.get_client()
            if source_info and source_info.remote and not s3io.prefix_has_objects(s3, source_info.path):
                log.warning(f"Source path may not exist or may be empty: {source_info.path}")
        else:
            log.info("Local-only transfer, AWS access not required")

        # ---- Listing --------------------------------------------------------
        reporter.print_header("Building File List")
        items = planner.build_items(
            args.dest,
            source=source_info.path if source_info else None,
            manifest=args.file_list,
            recursive=cfg.recursive,
            s3=s3,
        )
    except (ClientError, BotoCoreError) as e:
        # NoSuchBucket, AccessDenied, endpoint errors; nothing has been transferred yet
        raise ValidationError(f"Could not access S3 source: {e}") from e
    log.info(f"Total files to process: {len(items)}")
    reporter.preview([item.source for item in items])

    if not paths.is_remote(dest_root) and not cfg.dry_run:
        log.info(f"Creating local destination directory: {dest_root}")
        os.makedirs(dest_root, exist_ok=True)

    # ---- Transferring -------------------------------------------------------
    reporter.print_header("Processing Files")
    outcome = transfer_all(items, cfg, s3)

    # ---- Reporting ----------------------------------------------------------
    details = {
        "Source": source_info.path if source_info else "(from file list)",
        "Destination": dest_root,
        "Mode": cfg.mode,
        "Storage Class": cfg.storage_class.value,
        "Dry run": str(cfg.dry_run),
    }
    reporter.log_summary(outcome, details)
    reporter.write_run_log(TOOL_NAME, outcome, details)
    return outcome.exit_code


def main(argv: Optional[List[str]] = None) -> int:
    return cli.run_main(build_parser(), run, argv)


if __name__ == "__main__":
    sys.exit(main())
