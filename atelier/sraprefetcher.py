#!/usr/bin/env python3
"""
sraprefetcher.py: download SRA runs with the SRA Toolkit's `prefetch`.

Each accession lands in <output_dir>/<accession>/<accession>.sra, the layout
atelier-sraextractor expects. Controlled-access (dbGaP) runs need the
project's repository key via -n.

Usage (examples):
  atelier-sraprefetcher -l accessions.txt
  atelier-sraprefetcher -l accessions.txt -o /data/sra/ -r
  atelier-sraprefetcher -l accessions.txt -n prj_12345.ngc -m 1T
  atelier-sraprefetcher -l accessions.txt -d

Environment knobs:
  PREFETCH_PATH : absolute path or binary name override for prefetch
"""

# ── Stdlib deps ─────────────────────────────────────────────────────────────────
import argparse
import logging
import os
import socket
import subprocess
import sys
import time
from typing import List, Optional

# ── Project deps ───────────────────────────────────────────────────────────────
from atelier import cli, config, external, paths, reporter, sra
from atelier.errors import UsageError
from atelier.reporter import ItemStatus, RunOutcome

log = logging.getLogger(__name__)

TOOL_NAME = "sraprefetcher"
DEFAULT_MAX_SIZE = "500G"


def build_parser() -> argparse.ArgumentParser:
    parser = cli.HelpOnErrorParser(
        prog="atelier-sraprefetcher",
        description="Download SRA accessions with prefetch, one directory per accession.",
        epilog="Accession list format (-l): one SRR/ERR/DRR (or SRX/SRS/SRP...) accession per line; "
               "'#' lines and blank lines are ignored.",
    )
    parser.add_argument("-l", "--list", dest="accession_list", help="Text file of SRA accessions.")
    parser.add_argument("-o", "--output-dir", dest="output_dir", help="Download directory (default: current).")
    parser.add_argument("-n", "--ngc", help="dbGaP repository key (.ngc) for controlled-access data.")
    parser.add_argument("-m", "--max-size", dest="max_size", default=DEFAULT_MAX_SIZE,
                        help=f"Largest download allowed, e.g. 20G or 1T (default: {DEFAULT_MAX_SIZE}).")
    parser.add_argument("-r", "--resume", action="store_true", help="Resume partial downloads.")
    parser.add_argument("-d", "--dry-run", dest="dry_run", action="store_true", help="Show what would be downloaded.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Run prefetch with debug logging.")
    return parser


def prefetch_command(prefetch: str, accession: str, output_dir: str, max_size: str,
                     ngc: Optional[str] = None, resume: bool = False, verbose: bool = False) -> List[str]:
    cmd = [prefetch, "--progress"]
    if resume:
        cmd += ["--resume", "yes"]
    cmd += ["--max-size", max_size, "--log-level", "debug" if verbose else "info"]
    if ngc:
        cmd += ["--ngc", ngc]
    cmd += ["-O", output_dir, accession]
    return cmd


def prefetch_one(cmd: List[str], accession: str, output_dir: str, dry_run: bool) -> ItemStatus:
    if dry_run:
        log.info(f"[DRY RUN] Would prefetch: {accession} -> {output_dir}")
        return ItemStatus.SUCCEEDED

    log.info(f"Prefetching: {accession}")
    started = time.time()
    try:
        external.run_logged(cmd)
    except (subprocess.CalledProcessError, OSError) as e:
        log.error(f"FAILED: prefetch {accession} after {reporter.format_duration(int(time.time() - started))}: {e}")
        return ItemStatus.FAILED

    sra_file = os.path.join(output_dir, accession, f"{accession}.sra")
    size = reporter.format_size(os.path.getsize(sra_file)) if os.path.isfile(sra_file) else "size unknown"
    log.info(f"SUCCESS: {accession} ({size}) in {reporter.format_duration(int(time.time() - started))}")
    return ItemStatus.SUCCEEDED


def run(args: argparse.Namespace) -> int:
    reporter.print_header("SRA Prefetcher")
    log.info(f"Hostname: {socket.gethostname()}")
    log.info(f"Working directory: {os.getcwd()}")

    # ---- Validating ---------------------------------------------------------
    reporter.print_header("Input Validation")
    if not args.accession_list:
        raise UsageError("Accession list (-l) is required")
    output_dir = paths.absolute_path(args.output_dir) if args.output_dir else os.getcwd()
    ngc = sra.resolve_ngc(args.ngc)
    max_bytes = sra.parse_size(args.max_size)
    log.info(f"Accession list: {paths.absolute_path(args.accession_list)}")
    log.info(f"Output directory: {output_dir}")
    log.info(f"Max size: {args.max_size} ({reporter.format_size(max_bytes)}) | Resume: {args.resume} | "
             f"Dry run: {args.dry_run}")
    if ngc:
        log.info(f"NGC file: {ngc}")

    # ---- Environment --------------------------------------------------------
    reporter.print_header("Environment Setup")
    prefetch = external.which_first(config.PREFETCH_CANDIDATES,
                                    "Load the sratoolkit module or set PREFETCH_PATH.")
    log.info(f"Using prefetch={prefetch} ({external.tool_version(prefetch)})")

    # ---- Listing ------------------------------------------------------------
    reporter.print_header("Building Accession List")
    accessions = sra.read_accessions(args.accession_list)
    log.info(f"Total accessions to download: {len(accessions)}")
    reporter.preview(accessions)

    if not args.dry_run:
        os.makedirs(output_dir, exist_ok=True)

    # ---- Downloading --------------------------------------------------------
    reporter.print_header("Downloading SRA Data")
    outcome = RunOutcome(total=len(accessions))
    for i, accession in enumerate(accessions, 1):
        log.info("-" * 60)
        log.info(f"Processing accession {i} of {len(accessions)}")
        cmd = prefetch_command(prefetch, accession, output_dir, args.max_size, ngc, args.resume, args.verbose)
        outcome.record(accession, prefetch_one(cmd, accession, output_dir, args.dry_run))
        reporter.log_progress(outcome, i, len(accessions))
    outcome.finish()

    details = {
        "Output directory": output_dir,
        "Max size": args.max_size,
        "Resume": str(args.resume),
        "Dry run": str(args.dry_run),
    }
    reporter.log_summary(outcome, details)
    reporter.write_run_log(TOOL_NAME, outcome, details)
    return outcome.exit_code


def main(argv: Optional[List[str]] = None) -> int:
    return cli.run_main(build_parser(), run, argv)


if __name__ == "__main__":
    sys.exit(main())
