#!/usr/bin/env python3
"""
bamcleaner.py: fix MAPQ on unmapped reads (or drop them) and validate the result.

Unmapped reads (FLAG bit 0x4) that carry a non-zero MAPQ trip strict
validators (Picard, GATK). This tool rewrites each input BAM as
<name>.cleaned.bam with MAPQ forced to 0 on unmapped reads, or with the
unmapped reads removed entirely (-r), then indexes and validates the output.
Input files are never modified.

Pipeline per BAM (streamed, nothing buffered in memory):

  samtools view -h IN.bam  ->  decode  ->  fix/filter  ->  encode  ->  samtools view -b -o OUT.bam -

Usage (examples):
  atelier-bamcleaner -i sample.bam
  atelier-bamcleaner -i sample.bam -r
  atelier-bamcleaner -i bam_list.txt -o /data/cleaned/ -t 8
  atelier-bamcleaner -i sample.bam -p sample.v2 -v

Environment knobs:
  SAMTOOLS_PATH : absolute path or binary name override for samtools
"""

# ── Stdlib deps ─────────────────────────────────────────────────────────────────
import argparse
import logging
import os
import socket
import subprocess
import sys
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Union

# ── Project deps ───────────────────────────────────────────────────────────────
from atelier import cli, config, external, paths, planner, reporter
from atelier.errors import UsageError, ValidationError
from atelier.reporter import ItemStatus, RunOutcome

log = logging.getLogger(__name__)

TOOL_NAME = "bamcleaner"
FLAG_UNMAPPED = 0x4
FLAG_DUPLICATE = 0x400
FLAG_SECONDARY = 0x100


# ───────────────────────────────────────────────────────────────────────────────
# SAM record stages: decode -> transform -> encode
# ───────────────────────────────────────────────────────────────────────────────
@dataclass
class SamRecord:
    """One alignment line; only FLAG (col 2) and MAPQ (col 5) are interpreted."""
    fields: List[str]

    @property
    def flag(self) -> int:
        return int(self.fields[1])

    @property
    def mapq(self) -> int:
        return int(self.fields[4])

    @mapq.setter
    def mapq(self, value: int) -> None:
        self.fields[4] = str(value)

    @property
    def unmapped(self) -> bool:
        return bool(self.flag & FLAG_UNMAPPED)


SamLine = Union[str, SamRecord]     # header lines stay plain strings


def decode(lines: Iterable[str]) -> Iterator[SamLine]:
    for line in lines:
        line = line.rstrip("\n")
        if not line:
            continue
        if line.startswith("@"):
            yield line
        else:
            yield SamRecord(line.split("\t"))


def fix_unmapped(records: Iterable[SamLine], remove_unmapped: bool = False) -> Iterator[SamLine]:
    """Set MAPQ=0 on unmapped reads, or drop them when remove_unmapped is set."""
    for rec in records:
        if isinstance(rec, SamRecord) and rec.unmapped:
            if remove_unmapped:
                continue
            if rec.mapq != 0:
                rec.mapq = 0
        yield rec


def encode(records: Iterable[SamLine]) -> Iterator[str]:
    for rec in records:
        if isinstance(rec, SamRecord):
            yield "\t".join(rec.fields) + "\n"
        else:
            yield rec + "\n"


def clean_lines(lines: Iterable[str], remove_unmapped: bool = False) -> Iterator[str]:
    return encode(fix_unmapped(decode(lines), remove_unmapped))


# ───────────────────────────────────────────────────────────────────────────────
# samtools helpers
# ───────────────────────────────────────────────────────────────────────────────
def default_threads() -> int:
    # Honors CPU affinity (SLURM cgroups), like nproc
    if hasattr(os, "sched_getaffinity"):
        return max(1, len(os.sched_getaffinity(0)))
    return os.cpu_count() or 1


def stream_clean(samtools: str, input_bam: str, output_bam: str, threads: int,
                 remove_unmapped: bool = False) -> None:
    """
    Run the reader -> transform -> writer pipeline for one BAM.
    Raises CalledProcessError if either samtools process exits non-zero.
    """
    read_cmd = [samtools, "view", "-h", "-@", str(threads), input_bam]
    write_cmd = [samtools, "view", "-@", str(threads), "-b", "-o", output_bam, "-"]

    reader = subprocess.Popen(read_cmd, stdout=subprocess.PIPE, text=True)
    writer = subprocess.Popen(write_cmd, stdin=subprocess.PIPE, text=True)
    try:
        for line in clean_lines(reader.stdout, remove_unmapped):
            writer.stdin.write(line)
    finally:
        writer.stdin.close()
        reader.stdout.close()
        write_rc = writer.wait()
        read_rc = reader.wait()

    if read_rc != 0:
        raise subprocess.CalledProcessError(read_rc, read_cmd)
    if write_rc != 0:
        raise subprocess.CalledProcessError(write_rc, write_cmd)


def count_reads(samtools: str, bam: str, extra: Optional[List[str]] = None) -> Optional[int]:
    cmd = [samtools, "view", "-c", *(extra or []), bam]
    result = subprocess.run(cmd, capture_output=True, text=True)
    out = result.stdout.strip()
    if result.returncode != 0 or not out.isdigit():
        return None
    return int(out)


def validate_bam(samtools: str, bam: str, verbose: bool = False) -> bool:
    """quickcheck + header presence + read count. Only quickcheck failure is fatal."""
    if not os.path.isfile(bam):
        log.error(f"BAM file not found: {bam}")
        return False
    log.info(f"Validating BAM: {os.path.basename(bam)}")

    header = subprocess.run([samtools, "view", "-H", bam], capture_output=True, text=True)
    if any(line.startswith("@HD") for line in header.stdout.splitlines()):
        log.info("  Valid SAM header detected")
    else:
        log.warning("  Could not detect @HD header line")

    if subprocess.run([samtools, "quickcheck", bam]).returncode != 0:
        log.error("  Quick check FAILED - BAM file is corrupted")
        return False
    log.info("  Quick check PASSED")
    log.info(f"  Total reads: {count_reads(samtools, bam)}")

    if verbose:
        log.info(f"  Non-duplicate reads: {count_reads(samtools, bam, ['-F', str(FLAG_DUPLICATE)])}")
        log.info(f"  Secondary alignments: {count_reads(samtools, bam, ['-f', str(FLAG_SECONDARY)])}")
    return True


# ───────────────────────────────────────────────────────────────────────────────
# Per-BAM work
# ───────────────────────────────────────────────────────────────────────────────
def output_path(input_bam: str, output_dir: Optional[str], prefix: Optional[str]) -> str:
    out_dir = output_dir or os.path.dirname(input_bam)
    if prefix:
        return os.path.join(out_dir, f"{prefix}.bam")
    name = os.path.basename(input_bam)
    if name.endswith(".bam"):
        name = name[:-4]
    return os.path.join(out_dir, f"{name}.cleaned.bam")


def clean_one(samtools: str, input_bam: str, output_bam: str, threads: int,
              remove_unmapped: bool = False, dry_run: bool = False, verbose: bool = False) -> ItemStatus:
    size = reporter.format_size(os.path.getsize(input_bam))
    mode = "Remove unmapped reads" if remove_unmapped else "Fix MAPQ for unmapped reads (set to 0)"

    if dry_run:
        log.info(f"[DRY RUN] Would clean: {os.path.basename(input_bam)} ({size})")
        log.info(f"[DRY RUN] Mode: {mode}")
        log.info(f"[DRY RUN] Output: {output_bam}")
        return ItemStatus.SUCCEEDED

    if os.path.abspath(output_bam) == os.path.abspath(input_bam):
        log.error(f"FAILED: Output would overwrite input: {input_bam}")
        return ItemStatus.FAILED

    log.info(f"  Processing: {os.path.basename(input_bam)} ({size})")
    log.info(f"  Mode: {mode} | Threads: {threads}")
    try:
        os.makedirs(os.path.dirname(output_bam) or ".", exist_ok=True)
        stream_clean(samtools, input_bam, output_bam, threads, remove_unmapped)
    except (subprocess.CalledProcessError, OSError) as e:
        log.error(f"FAILED: BAM cleaning failed: {e}")
        return ItemStatus.FAILED

    log.info("Indexing output BAM...")
    if subprocess.run([samtools, "index", "-@", str(threads), output_bam]).returncode != 0:
        log.error("FAILED: Could not create BAM index")
        return ItemStatus.FAILED

    if not validate_bam(samtools, output_bam, verbose):
        return ItemStatus.FAILED

    log.info(f"SUCCESS: Cleaned BAM created: {output_bam} "
             f"({reporter.format_size(os.path.getsize(output_bam))})")
    return ItemStatus.SUCCEEDED


# ───────────────────────────────────────────────────────────────────────────────
# CLI
# ───────────────────────────────────────────────────────────────────────────────
def build_parser() -> argparse.ArgumentParser:
    parser = cli.HelpOnErrorParser(
        prog="atelier-bamcleaner",
        description="Fix MAPQ issues in unmapped reads and validate BAM integrity.",
    )
    parser.add_argument("-i", "--input", help="Input BAM file, or a text file with one BAM path per line.")
    parser.add_argument("-o", "--output-dir", dest="output_dir", help="Output directory (default: input's directory).")
    parser.add_argument("-p", "--prefix", help="Output filename prefix, single input only (default: <name>.cleaned).")
    parser.add_argument("-t", "--threads", type=int, help="samtools threads (default: available CPUs).")
    parser.add_argument("-r", "--remove-unmapped", dest="remove_unmapped", action="store_true",
                        help="Remove unmapped reads entirely instead of setting MAPQ=0.")
    parser.add_argument("-n", "--dry-run", dest="dry_run", action="store_true", help="Show what would be processed.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Extended validation output.")
    return parser


def collect_bams(input_path: str) -> List[str]:
    """A .bam input is used as-is; anything else is read as a list of BAM paths."""
    if input_path.endswith(".bam"):
        return [input_path]

    bams = []
    for line in planner.read_manifest(input_path):
        bam = paths.absolute_path(line)
        if not os.path.isfile(bam):
            log.warning(f"BAM file not found: {bam}")
            continue
        if not bam.endswith(".bam"):
            log.warning(f"Not a BAM file: {bam}")
            continue
        bams.append(bam)
    return bams


def run(args: argparse.Namespace) -> int:
    reporter.print_header("BAM Cleaner")
    log.info(f"Hostname: {socket.gethostname()}")
    log.info(f"Working directory: {os.getcwd()}")

    reporter.print_header("Input Validation")
    if not args.input:
        raise UsageError("Input BAM file or list (-i) is required")
    input_path = paths.absolute_path(args.input)
    if not os.path.isfile(input_path):
        raise ValidationError(f"Input file not found: {input_path}")
    if args.threads is not None and args.threads < 1:
        raise ValidationError(f"Invalid thread count: {args.threads}")
    threads = args.threads or default_threads()

    output_dir = paths.absolute_path(args.output_dir) if args.output_dir else None
    if output_dir and not args.dry_run:
        os.makedirs(output_dir, exist_ok=True)
    log.info(f"Output directory: {output_dir or '(same as input)'} | Threads: {threads}")
    log.info(f"Remove unmapped reads: {args.remove_unmapped} | Verbose: {args.verbose} | Dry run: {args.dry_run}")

    reporter.print_header("Environment Setup")
    samtools = external.which_first(config.SAMTOOLS_CANDIDATES, "Load the samtools module or set SAMTOOLS_PATH.")
    log.info(f"Using samtools={samtools}")

    reporter.print_header("Building BAM File List")
    bams = collect_bams(input_path)
    if not bams:
        raise ValidationError("No valid BAM files to process")
    if args.prefix and len(bams) > 1:
        raise UsageError("Output prefix (-p) can only be used with a single input BAM")
    log.info(f"Total BAM files to process: {len(bams)}")
    reporter.preview(bams)

    reporter.print_header("Cleaning BAM Files")
    outcome = RunOutcome(total=len(bams))
    for i, bam in enumerate(bams, 1):
        log.info("-" * 60)
        log.info(f"Processing BAM file {i} of {len(bams)}")
        if not os.path.isfile(bam):
            log.warning(f"SKIP: BAM file not found: {bam}")
            status = ItemStatus.SKIPPED
        else:
            out_bam = output_path(bam, output_dir, args.prefix)
            log.info(f"Output: {os.path.basename(out_bam)}")
            status = clean_one(samtools, bam, out_bam, threads, args.remove_unmapped, args.dry_run, args.verbose)
        outcome.record(bam, status)
        reporter.log_progress(outcome, i, len(bams))
    outcome.finish()

    details = {
        "Output directory": output_dir or "(same as input)",
        "Mode": "Remove unmapped" if args.remove_unmapped else "Fix MAPQ",
        "Threads used": str(threads),
        "Dry run": str(args.dry_run),
    }
    reporter.log_summary(outcome, details)
    reporter.write_run_log(TOOL_NAME, outcome, details)
    return outcome.exit_code


def main(argv: Optional[List[str]] = None) -> int:
    return cli.run_main(build_parser(), run, argv)


if __name__ == "__main__":
    sys.exit(main())
