#!/usr/bin/env python3
"""
filerenamer.py: batch-rename files in one directory from a tab-separated mapping.

Mapping file format, one rename per line:

  old_name<TAB>new_name

'#' lines and blank lines are ignored; names are trimmed. A rename never
overwrites: if new_name already exists the rename fails and both files are
left alone. A missing old_name is skipped, not failed.

Usage (examples):
  atelier-filerenamer -f rename_list.txt
  atelier-filerenamer -f rename_list.txt -d /data/samples/ -n -v
"""

import argparse
import logging
import os
import socket
import sys
from typing import List, NamedTuple, Optional

from atelier import cli, paths, reporter
from atelier.errors import UsageError, ValidationError
from atelier.reporter import ItemStatus, RunOutcome

log = logging.getLogger(__name__)

TOOL_NAME = "filerenamer"
RISKY_CHARS = ('"', "'", "\\")


class Rename(NamedTuple):
    old: str
    new: str

    def __str__(self) -> str:
        return f"{self.old} -> {self.new}"


def build_parser() -> argparse.ArgumentParser:
    parser = cli.HelpOnErrorParser(
        prog="atelier-filerenamer",
        description="Rename files from a mapping file of old<TAB>new names.",
    )
    parser.add_argument("-f", "--mapping", help="Tab-separated mapping file (old_name<TAB>new_name).")
    parser.add_argument("-d", "--source-dir", dest="source_dir", help="Directory holding the files (default: current).")
    parser.add_argument("-n", "--dry-run", dest="dry_run", action="store_true", help="Show what would be renamed.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log file sizes as well.")
    return parser


def read_mapping(mapping_file: str) -> List[Rename]:
    if not os.path.isfile(mapping_file):
        raise ValidationError(f"Mapping file not found: {mapping_file}")

    renames: List[Rename] = []
    comments = invalid = 0
    with open(mapping_file, "r", encoding="utf-8") as f:
        for line in f:
            if not line.strip():
                continue
            if line.lstrip().startswith("#"):
                comments += 1
                continue
            old, _, new = line.rstrip("\r\n").partition("\t")
            old, new = old.strip(), new.strip()
            if not old or not new:
                log.warning(f"Skipping line with missing old or new name: {line.strip()}")
                invalid += 1
                continue
            if any(c in new for c in RISKY_CHARS):
                log.warning(f"New filename contains special characters: {new}")
            renames.append(Rename(old, new))

    if not renames:
        raise ValidationError("No valid rename mappings found")
    log.info(f"Valid mappings: {len(renames)}")
    if comments:
        log.info(f"Comments skipped: {comments}")
    if invalid:
        log.warning(f"Invalid lines skipped: {invalid}")
    return renames


def rename_one(source_dir: str, rename: Rename, dry_run: bool = False, verbose: bool = False) -> ItemStatus:
    old_path = os.path.join(source_dir, rename.old)
    new_path = os.path.join(source_dir, rename.new)

    if not os.path.lexists(old_path):
        log.warning(f"SKIP: Source file not found: {rename.old}")
        return ItemStatus.SKIPPED
    if os.path.lexists(new_path):
        log.error(f"FAILED: Destination file already exists: {rename.new}")
        return ItemStatus.FAILED

    if dry_run:
        log.info(f"[DRY RUN] Would rename: {rename}")
        if verbose:
            log.info(f"[DRY RUN]   Size: {reporter.format_size(os.path.getsize(old_path))}")
        return ItemStatus.SUCCEEDED

    log.info(f"Renaming: {rename}")
    try:
        if verbose:
            log.info(f"  Size: {reporter.format_size(os.path.getsize(old_path))}")
        os.rename(old_path, new_path)
    except OSError as e:
        log.error(f"FAILED: Could not rename {rename.old}: {e}")
        return ItemStatus.FAILED
    log.info(f"SUCCESS: Renamed {rename.old}")
    return ItemStatus.SUCCEEDED


def run(args: argparse.Namespace) -> int:
    reporter.print_header("File Renamer")
    log.info(f"Hostname: {socket.gethostname()}")
    log.info(f"Working directory: {os.getcwd()}")

    reporter.print_header("Input Validation")
    if not args.mapping:
        raise UsageError("Mapping file (-f) is required")
    mapping_file = paths.absolute_path(args.mapping)
    source_dir = paths.absolute_path(args.source_dir) if args.source_dir else os.getcwd()
    if not os.path.isdir(source_dir):
        raise ValidationError(f"Source directory not found: {source_dir}")
    log.info(f"Mapping file: {mapping_file}")
    log.info(f"Source directory: {source_dir} | Dry run: {args.dry_run} | Verbose: {args.verbose}")

    reporter.print_header("Building Rename List")
    renames = read_mapping(mapping_file)
    log.info(f"Total rename operations to perform: {len(renames)}")
    reporter.preview([str(r) for r in renames])

    reporter.print_header("Performing Renames")
    outcome = RunOutcome(total=len(renames))
    for i, rename in enumerate(renames, 1):
        log.info("-" * 60)
        log.info(f"Processing rename {i} of {len(renames)}")
        outcome.record(str(rename), rename_one(source_dir, rename, args.dry_run, args.verbose))
        reporter.log_progress(outcome, i, len(renames))
    outcome.finish()

    details = {
        "Mapping file": mapping_file,
        "Source directory": source_dir,
        "Dry run": str(args.dry_run),
    }
    reporter.log_summary(outcome, details)
    reporter.write_run_log(TOOL_NAME, outcome, details)
    return outcome.exit_code


def main(argv: Optional[List[str]] = None) -> int:
    return cli.run_main(build_parser(), run, argv)


if __name__ == "__main__":
    sys.exit(main())
