#!/usr/bin/env python3
"""
md5checker.py: generate an md5sum-format checksum file, or verify files against one.

Usage (examples):
  atelier-md5checker -p "*.bam" -o my_bams                 # writes md5sums-my_bams.txt
  atelier-md5checker -f files_to_check.txt -o project_files
  atelier-md5checker -s /data/project/ -r -o project_backup
  atelier-md5checker -v -o md5sums-my_bams.txt             # verify every file listed
  atelier-md5checker -v -p "*.bam" -o md5sums-my_bams.txt  # verify only matching files
  atelier-md5checker -p "*.bam" -o existing -a             # append to an existing file

Output format is the standard one, so `md5sum -c` accepts it:
  <32-hex-hash>  <absolute path>

Files that vanish before they are hashed, and (verify mode) files with no
expected hash, are skipped rather than failed.
"""

import argparse
import fnmatch
import glob
import hashlib
import logging
import os
import socket
import sys
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from atelier import cli, config, paths, planner, reporter
from atelier.errors import UsageError, ValidationError
from atelier.reporter import ItemStatus, RunOutcome

log = logging.getLogger(__name__)

TOOL_NAME = "md5checker"


def build_parser() -> argparse.ArgumentParser:
    parser = cli.HelpOnErrorParser(
        prog="atelier-md5checker",
        description="Generate or verify MD5 checksums for batches of files.",
    )
    parser.add_argument("-p", "--pattern", help="Glob pattern, searched in -s directory or the current one.")
    parser.add_argument("-f", "--file-list", dest="file_list", help="Text file listing files (one per line).")
    parser.add_argument("-s", "--source-dir", dest="source_dir", help="Directory whose files are processed.")
    parser.add_argument("-o", "--output", help="Generate: output name (md5sums-<name>.txt). Verify: checksum file.")
    parser.add_argument("-v", "--verify", action="store_true", help="Verify files against an existing checksum file.")
    parser.add_argument("-r", "--recursive", action="store_true", help="Search subdirectories.")
    parser.add_argument("-n", "--dry-run", dest="dry_run", action="store_true", help="Show what would be processed.")
    parser.add_argument("-a", "--append", action="store_true", help="Append to an existing checksum file.")
    return parser


# ─────────────────────────────────────────────────────────────────────────────
# Checksum helpers
# ─────────────────────────────────────────────────────────────────────────────
def md5_file(path: str, chunk_size: int = None) -> str:
    md5 = hashlib.md5()
    with open(path, "rb") as f:
        while True:
            chunk = f.read(chunk_size or config.MD5_CHUNK_BYTES)
            if not chunk:
                break
            md5.update(chunk)
    return md5.hexdigest()


def checksum_file_name(name: str) -> str:
    """'out/md5sums-bams.txt' and 'bams' both map to <cwd>/md5sums-bams.txt."""
    base = os.path.basename(name)
    if base.endswith(".txt"):
        base = base[:-4]
    if base.startswith("md5sums-"):
        base = base[len("md5sums-"):]
    return os.path.join(os.getcwd(), f"md5sums-{base}.txt")


def load_checksums(checksum_file: str) -> Dict[str, str]:
    """
    Load '<hash>  <path>' lines into {absolute path: lowercase hash}.
    Relative paths are taken relative to the current directory; a leading
    '*' (md5sum binary-mode marker) is dropped.
    """
    expected: Dict[str, str] = {}
    with open(checksum_file, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            parts = line.split(None, 1)
            if len(parts) != 2:
                continue
            digest, name = parts
            name = name.lstrip("*")
            expected[paths.absolute_path(name)] = digest.lower()
    return expected


# ─────────────────────────────────────────────────────────────────────────────
# File discovery
# ─────────────────────────────────────────────────────────────────────────────
def _walk_files(root: str, recursive: bool) -> List[str]:
    if not recursive:
        return [os.path.join(root, n) for n in os.listdir(root) if os.path.isfile(os.path.join(root, n))]
    found = []
    for dirpath, _, filenames in os.walk(root):
        found.extend(os.path.join(dirpath, n) for n in filenames if os.path.isfile(os.path.join(dirpath, n)))
    return found


def collect_files(pattern: Optional[str] = None, file_list: Optional[str] = None,
                  source_dir: Optional[str] = None, recursive: bool = False) -> List[str]:
    """Gather absolute file paths from a glob, a list file and/or a directory; de-duplicated and sorted."""
    files: List[str] = []

    if pattern:
        search_dir = source_dir or os.getcwd()
        log.info(f"Finding files matching pattern: {pattern}")
        if recursive:
            files += [p for p in _walk_files(search_dir, True) if fnmatch.fnmatch(os.path.basename(p), pattern)]
        else:
            files += [p for p in glob.glob(os.path.join(search_dir, pattern)) if os.path.isfile(p)]

    if file_list:
        log.info(f"Reading files from list: {file_list}")
        files += planner.read_manifest(file_list)

    if source_dir and not pattern:
        log.info(f"Finding all files in: {source_dir}")
        files += _walk_files(source_dir, recursive)

    return sorted({paths.absolute_path(p) for p in files})


# ─────────────────────────────────────────────────────────────────────────────
# Per-file work
# ─────────────────────────────────────────────────────────────────────────────
def _file_size(path: str) -> int:
    try:
        return os.path.getsize(path)
    except OSError:
        return 0


def generate_one(path: str, dry_run: bool) -> Tuple[ItemStatus, Optional[str]]:
    """Hash one file. Returns the status and the md5sum line (None for dry runs/failures)."""
    try:
        size = reporter.format_size(os.path.getsize(path))
        if dry_run:
            log.info(f"[DRY RUN] Would calculate MD5 for: {path} ({size})")
            return ItemStatus.SUCCEEDED, None
        log.info(f"Calculating MD5: {path} ({size})")
        digest = md5_file(path)
    except FileNotFoundError:
        log.warning(f"SKIP: File disappeared before hashing: {path}")
        return ItemStatus.SKIPPED, None
    except OSError as e:
        log.error(f"FAILED: Could not read {path}: {e}")
        return ItemStatus.FAILED, None
    log.info(f"MD5: {digest}")
    return ItemStatus.SUCCEEDED, f"{digest}  {path}"


def verify_one(path: str, expected: str, dry_run: bool) -> ItemStatus:
    name = os.path.basename(path)
    try:
        if dry_run:
            log.info(f"[DRY RUN] Would verify: {path} ({reporter.format_size(os.path.getsize(path))})")
            log.info(f"[DRY RUN] Expected hash: {expected}")
            return ItemStatus.SUCCEEDED
        log.info(f"Verifying: {path}")
        log.info(f"Expected:  {expected}")
        actual = md5_file(path)
    except FileNotFoundError:
        log.warning(f"SKIP: File disappeared before verification: {path}")
        return ItemStatus.SKIPPED
    except OSError as e:
        log.error(f"FAILED: Could not read {path}: {e}")
        return ItemStatus.FAILED
    log.info(f"Actual:    {actual}")

    if actual.lower() == expected.lower():
        log.info(f"PASSED: {name} - checksums match")
        return ItemStatus.SUCCEEDED
    log.error(f"FAILED: {name} - checksums DO NOT match!")
    return ItemStatus.FAILED


def write_checksums(checksum_file: str, lines: List[str], append: bool, total_size: int) -> None:
    if append and os.path.isfile(checksum_file):
        log.info(f"Appending results to: {checksum_file}")
        with open(checksum_file, "a", encoding="utf-8") as f:
            f.writelines(line + "\n" for line in lines)
        return

    log.info(f"Writing results to: {checksum_file}")
    header = [
        "# MD5 Checksums generated by atelier-md5checker",
        f"# Date: {datetime.now():%Y-%m-%d %H:%M:%S}",
        f"# Host: {socket.gethostname()}",
        f"# Files: {len(lines)}",
        f"# Total size: {reporter.format_size(total_size)}",
        "#",
    ]
    with open(checksum_file, "w", encoding="utf-8") as f:
        f.write("\n".join(header + lines) + "\n")


# ─────────────────────────────────────────────────────────────────────────────
# Run
# ─────────────────────────────────────────────────────────────────────────────
def run(args: argparse.Namespace) -> int:
    reporter.print_header("MD5 Checksum Tool")
    reporter.print_header("Input Validation")

    if not args.output:
        raise UsageError("Output file (-o) is required")

    has_inputs = bool(args.pattern or args.file_list or args.source_dir)
    if args.verify:
        checksum_file = paths.absolute_path(args.output)
        if not os.path.isfile(checksum_file):
            raise ValidationError(f"Checksum file not found: {checksum_file}")
        log.info(f"Mode: VERIFY | Checksum file: {checksum_file}")
        if not has_inputs:
            log.info("No file source specified, will verify all files in checksum file")
    else:
        if not has_inputs:
            raise UsageError("At least one file source is required (-p, -f, or -s)")
        checksum_file = checksum_file_name(args.output)
        log.info(f"Mode: GENERATE | Output file: {checksum_file}")
        if os.path.isfile(checksum_file):
            if args.append:
                log.info("Append mode: will add to existing file")
            else:
                log.warning("Output file already exists, will be overwritten")

    if args.file_list and not os.path.isfile(args.file_list):
        raise ValidationError(f"File list not found: {args.file_list}")

    source_dir = None
    if args.source_dir:
        source_dir = paths.absolute_path(args.source_dir)
        if not os.path.isdir(source_dir):
            raise ValidationError(f"Source directory not found: {source_dir}")
        if not args.recursive:
            log.warning(f"Source directory provided without -r; only files directly in {source_dir} are processed")

    # ---- Listing ------------------------------------------------------------
    reporter.print_header("Building File List")
    expected: Dict[str, str] = load_checksums(checksum_file) if args.verify else {}
    if args.verify:
        log.info(f"Loaded {len(expected)} checksums")

    if args.verify and not has_inputs:
        files = sorted(expected)
    else:
        files = collect_files(args.pattern, args.file_list, source_dir, args.recursive)

    if not files:
        raise ValidationError("No files to process")

    total_size = sum(_file_size(p) for p in files)
    log.info(f"Total files to process: {len(files)} ({reporter.format_size(total_size)})")
    reporter.preview(files)

    # ---- Processing ---------------------------------------------------------
    reporter.print_header("Verifying Checksums" if args.verify else "Generating Checksums")
    outcome = RunOutcome(total=len(files))
    results: List[str] = []
    for i, path in enumerate(files, 1):
        log.info("-" * 60)
        log.info(f"Processing file {i} of {len(files)}")
        if not os.path.isfile(path):
            log.warning(f"SKIP: File not found: {path}")
            status = ItemStatus.SKIPPED
        elif args.verify:
            if path not in expected:
                log.warning(f"SKIP: No checksum found for: {path}")
                status = ItemStatus.SKIPPED
            else:
                status = verify_one(path, expected[path], args.dry_run)
        else:
            status, line = generate_one(path, args.dry_run)
            if line:
                results.append(line)
        outcome.record(path, status)
        reporter.log_progress(outcome, i, len(files))
    outcome.finish()

    if not args.verify and not args.dry_run:
        reporter.print_header("Writing Output")
        write_checksums(checksum_file, results, args.append, total_size)

    # ---- Reporting ----------------------------------------------------------
    details = {
        "Mode": "VERIFY" if args.verify else "GENERATE",
        "Checksum file": checksum_file,
        "Total data size": reporter.format_size(total_size),
        "Dry run": str(args.dry_run),
    }
    reporter.log_summary(outcome, details)
    if args.verify:
        if outcome.failed:
            log.error(f"VERIFICATION FAILED: {outcome.failed} files do not match!")
        elif outcome.skipped:
            log.info(f"VERIFICATION PASSED: {outcome.succeeded} files match ({outcome.skipped} files skipped)")
        else:
            log.info(f"VERIFICATION PASSED: All {outcome.succeeded} files match!")
    reporter.write_run_log(TOOL_NAME, outcome, details)
    return outcome.exit_code


def main(argv: Optional[List[str]] = None) -> int:
    return cli.run_main(build_parser(), run, argv)


if __name__ == "__main__":
    sys.exit(main())
