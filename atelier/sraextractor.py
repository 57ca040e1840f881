#!/usr/bin/env python3
"""
sraextractor.py: turn prefetched SRA runs into gzipped FASTQ with `fasterq-dump`.

Expects the layout atelier-sraprefetcher produces:

  <base_dir>/<accession>/<accession>.sra

fasterq-dump runs inside each accession directory with a private tmp/
scratch directory (removed afterwards, pass or fail). Every resulting
*.fastq is then gzipped in place. A run whose extraction worked but whose
compression did not is reported as a warning, not a failure.

Usage (examples):
  atelier-sraextractor -l accessions.txt
  atelier-sraextractor -l accessions.txt -b /data/sra/ -t 16 -m 8
  atelier-sraextractor -l accessions.txt -n prj_12345.ngc -d

Environment knobs:
  FASTERQ_DUMP_PATH : absolute path or binary name override for fasterq-dump
"""

# ── Stdlib deps ─────────────────────────────────────────────────────────────────
import argparse
import glob
import gzip
import logging
import os
import shutil
import socket
import subprocess
import sys
import time
from typing import List, Optional, Tuple

# ── Project deps ───────────────────────────────────────────────────────────────
from atelier import cli, config, external, paths, reporter, sra
from atelier.errors import UsageError, ValidationError
from atelier.reporter import ItemStatus, RunOutcome

log = logging.getLogger(__name__)

TOOL_NAME = "sraextractor"
DEFAULT_THREADS = 8
DEFAULT_MEMORY_GB = 4
COPY_CHUNK = 1024 * 1024


def build_parser() -> argparse.ArgumentParser:
    parser = cli.HelpOnErrorParser(
        prog="atelier-sraextractor",
        description="Extract gzipped FASTQ from prefetched SRA accessions with fasterq-dump.",
    )
    parser.add_argument("-l", "--list", dest="accession_list", help="Text file of SRA accessions.")
    parser.add_argument("-b", "--base-dir", dest="base_dir",
                        help="Directory holding one sub-directory per accession (default: current).")
    parser.add_argument("-n", "--ngc", help="dbGaP repository key (.ngc) for controlled-access data.")
    parser.add_argument("-t", "--threads", type=int, default=DEFAULT_THREADS,
                        help=f"fasterq-dump threads (default: {DEFAULT_THREADS}).")
    parser.add_argument("-m", "--memory", type=int, default=DEFAULT_MEMORY_GB,
                        help=f"fasterq-dump memory limit in GB (default: {DEFAULT_MEMORY_GB}).")
    parser.add_argument("-d", "--dry-run", dest="dry_run", action="store_true", help="Show what would be extracted.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Run fasterq-dump with debug logging.")
    return parser


def sra_path(base_dir: str, accession: str) -> str:
    return os.path.join(base_dir, accession, f"{accession}.sra")


def fasterq_command(fasterq_dump: str, accession: str, tmp_dir: str, threads: int, memory_gb: int,
                    ngc: Optional[str] = None, verbose: bool = False) -> List[str]:
    cmd = [
        fasterq_dump, accession,
        "--mem", f"{memory_gb}G",
        "--temp", tmp_dir,
        "--threads", str(threads),
        "--progress",
        "--log-level", "debug" if verbose else "info",
    ]
    if ngc:
        cmd += ["--ngc", ngc]
    return cmd


# ───────────────────────────────────────────────────────────────────────────────
# FASTQ compression
# ───────────────────────────────────────────────────────────────────────────────
def gzip_file(path: str) -> str:
    """Compress path to path.gz and remove the original. Returns the .gz path."""
    target = f"{path}.gz"
    try:
        with open(path, "rb") as src, gzip.open(target, "wb") as dst:
            shutil.copyfileobj(src, dst, COPY_CHUNK)
    except OSError:
        if os.path.exists(target):
            os.remove(target)
        raise
    os.remove(path)
    return target


def compress_fastqs(accession_dir: str) -> bool:
    """gzip every *.fastq in accession_dir. False if any file could not be compressed."""
    fastqs = sorted(glob.glob(os.path.join(accession_dir, "*.fastq")))
    if not fastqs:
        log.warning("No FASTQ files found to compress")
        return True
    log.info(f"Compressing {len(fastqs)} FASTQ file(s)")
    ok = True
    for fq in fastqs:
        try:
            gzip_file(fq)
        except OSError as e:
            log.error(f"  Could not compress {os.path.basename(fq)}: {e}")
            ok = False
    return ok


def fastq_outputs(accession_dir: str) -> Tuple[int, int]:
    files = glob.glob(os.path.join(accession_dir, "*.fastq.gz"))
    return len(files), sum(os.path.getsize(f) for f in files)


# ───────────────────────────────────────────────────────────────────────────────
# Per-accession work
# ───────────────────────────────────────────────────────────────────────────────
def extract_one(fasterq_dump: str, base_dir: str, accession: str, threads: int, memory_gb: int,
                ngc: Optional[str] = None, dry_run: bool = False, verbose: bool = False) -> ItemStatus:
    accession_dir = os.path.join(base_dir, accession)
    if not os.path.isdir(accession_dir):
        log.error(f"FAILED: Accession directory not found: {accession_dir}")
        return ItemStatus.FAILED
    sra_file = sra_path(base_dir, accession)
    if not os.path.isfile(sra_file):
        log.error(f"FAILED: SRA file not found: {sra_file}")
        return ItemStatus.FAILED
    size = reporter.format_size(os.path.getsize(sra_file))

    if dry_run:
        log.info(f"[DRY RUN] Would extract: {accession} ({size})")
        log.info(f"[DRY RUN] Output: {accession_dir}/*.fastq.gz")
        return ItemStatus.SUCCEEDED

    log.info(f"Extracting: {accession} ({size})")
    tmp_dir = os.path.join(accession_dir, "tmp")
    started = time.time()
    try:
        os.makedirs(tmp_dir, exist_ok=True)
        external.run_logged(fasterq_command(fasterq_dump, accession, tmp_dir, threads, memory_gb, ngc, verbose),
                            cwd=accession_dir)
    except (subprocess.CalledProcessError, OSError) as e:
        log.error(f"FAILED: fasterq-dump {accession}: {e}")
        return ItemStatus.FAILED
    finally:
        shutil.rmtree(tmp_dir, ignore_errors=True)
    log.info(f"  Extraction finished in {reporter.format_duration(int(time.time() - started))}")

    compressed = compress_fastqs(accession_dir)
    count, total = fastq_outputs(accession_dir)
    log.info(f"  Output: {count} FASTQ file(s), {reporter.format_size(total)}")
    if not compressed:
        log.warning(f"WARNING: {accession} extracted but not every FASTQ was compressed")
        return ItemStatus.WARNING
    log.info(f"SUCCESS: {accession}")
    return ItemStatus.SUCCEEDED


def run(args: argparse.Namespace) -> int:
    reporter.print_header("SRA FASTQ Extractor")
    log.info(f"Hostname: {socket.gethostname()}")
    log.info(f"Working directory: {os.getcwd()}")

    # ---- Validating ---------------------------------------------------------
    reporter.print_header("Input Validation")
    if not args.accession_list:
        raise UsageError("Accession list (-l) is required")
    base_dir = paths.absolute_path(args.base_dir) if args.base_dir else os.getcwd()
    if not os.path.isdir(base_dir):
        raise ValidationError(f"Base directory not found: {base_dir}")
    if args.threads < 1:
        raise ValidationError(f"Invalid thread count: {args.threads}")
    if args.memory < 1:
        raise ValidationError(f"Invalid memory limit: {args.memory}G")
    ngc = sra.resolve_ngc(args.ngc)
    log.info(f"Accession list: {paths.absolute_path(args.accession_list)}")
    log.info(f"Base directory: {base_dir}")
    log.info(f"Threads: {args.threads} | Memory: {args.memory}G | Dry run: {args.dry_run}")
    if ngc:
        log.info(f"NGC file: {ngc}")

    # ---- Environment --------------------------------------------------------
    reporter.print_header("Environment Setup")
    fasterq_dump = external.which_first(config.FASTERQ_DUMP_CANDIDATES,
                                        "Load the sratoolkit module or set FASTERQ_DUMP_PATH.")
    log.info(f"Using fasterq-dump={fasterq_dump} ({external.tool_version(fasterq_dump)})")

    # ---- Listing ------------------------------------------------------------
    reporter.print_header("Building Accession List")
    accessions = sra.read_accessions(args.accession_list)
    log.info(f"Total accessions to extract: {len(accessions)}")
    reporter.preview(accessions)

    # ---- Extracting ---------------------------------------------------------
    reporter.print_header("Extracting FASTQ Files")
    outcome = RunOutcome(total=len(accessions))
    for i, accession in enumerate(accessions, 1):
        log.info("-" * 60)
        log.info(f"Processing accession {i} of {len(accessions)}")
        status = extract_one(fasterq_dump, base_dir, accession, args.threads, args.memory,
                             ngc, args.dry_run, args.verbose)
        outcome.record(accession, status)
        reporter.log_progress(outcome, i, len(accessions))
    outcome.finish()

    details = {
        "Base directory": base_dir,
        "Threads": str(args.threads),
        "Memory": f"{args.memory}G",
        "Dry run": str(args.dry_run),
    }
    reporter.log_summary(outcome, details, warning_note="FASTQ compression was incomplete")
    reporter.write_run_log(TOOL_NAME, outcome, details, warning_note="FASTQ compression incomplete")
    return outcome.exit_code


def main(argv: Optional[List[str]] = None) -> int:
    return cli.run_main(build_parser(), run, argv)


if __name__ == "__main__":
    sys.exit(main())
