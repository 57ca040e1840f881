"""
reporter.py: per-run bookkeeping, progress lines, the final summary and the run log.

A run keeps one RunOutcome and feeds it the status returned for each item.
The process exit code is derived from it: non-zero if and only if any item
failed. Skips (source missing at processing time) do not fail a run.
"""

import enum
import logging
import os
import socket
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from atelier import config

log = logging.getLogger(__name__)

HEADER_WIDTH = 60
PROGRESS_WIDTH = 40


class ItemStatus(enum.Enum):
    SUCCEEDED = "succeeded"
    WARNING = "warning"      # succeeded, but a follow-up step (source removal, compression) failed
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class RunOutcome:
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    succeeded_items: List[str] = field(default_factory=list)
    failed_items: List[str] = field(default_factory=list)
    skipped_items: List[str] = field(default_factory=list)
    warned_items: List[str] = field(default_factory=list)
    started: datetime = field(default_factory=datetime.now)
    finished: Optional[datetime] = None

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed + self.skipped

    @property
    def exit_code(self) -> int:
        return 1 if self.failed > 0 else 0

    def record(self, item: str, status: ItemStatus) -> None:
        if status in (ItemStatus.SUCCEEDED, ItemStatus.WARNING):
            self.succeeded += 1
            self.succeeded_items.append(item)
            if status is ItemStatus.WARNING:
                self.warned_items.append(item)
        elif status is ItemStatus.FAILED:
            self.failed += 1
            self.failed_items.append(item)
        elif status is ItemStatus.SKIPPED:
            self.skipped += 1
            self.skipped_items.append(item)
        else:
            raise ValueError(f"Unhandled item status: {status}")

    def finish(self) -> None:
        self.finished = datetime.now()

    @property
    def elapsed_seconds(self) -> int:
        end = self.finished or datetime.now()
        return int((end - self.started).total_seconds())


# ─────────────────────────────────────────────────────────────────────────────
# Formatting helpers
# ─────────────────────────────────────────────────────────────────────────────
def format_size(size: Optional[int]) -> str:
    if size is None or size < 0:
        return "unknown size"
    for unit, factor in (("GB", 1024 ** 3), ("MB", 1024 ** 2), ("KB", 1024)):
        if size >= factor:
            return f"{size / factor:.2f} {unit}"
    return f"{size} B"


def format_duration(seconds: int) -> str:
    hours, rem = divmod(int(seconds), 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def progress_bar(current: int, total: int, width: int = PROGRESS_WIDTH) -> str:
    total = max(total, 1)
    filled = current * width // total
    pct = current * 100 // total
    return f"Progress: [{'*' * filled}{' ' * (width - filled)}] {current}/{total} ({pct}%)"


def print_header(title: str) -> None:
    log.info("~" * HEADER_WIDTH)
    log.info(f"~{title.center(HEADER_WIDTH - 2)}~")
    log.info("~" * HEADER_WIDTH)


def log_progress(outcome: RunOutcome, current: int, total: int) -> None:
    log.info(progress_bar(current, total))
    log.info(
        f"Running totals - Success: {outcome.succeeded} | "
        f"Failed: {outcome.failed} | Skipped: {outcome.skipped}"
    )


def preview(items: List[str], limit: int = 5) -> None:
    log.info(f"First {min(limit, len(items))} files to process:")
    for item in items[:limit]:
        log.info(f"  - {item}")
    if len(items) > limit:
        log.info(f"  ... and {len(items) - limit} more files")


# ─────────────────────────────────────────────────────────────────────────────
# Summary + run log
# ─────────────────────────────────────────────────────────────────────────────
def log_summary(outcome: RunOutcome, details: Dict[str, str],
                warning_note: str = "the source could not be removed (now present in two places)") -> None:
    """Print the final results table plus failures, warnings and skips."""
    print_header("Summary")
    log.info("------------------  FINAL RESULTS  -------------------------")
    log.info(f"  Total files processed: {outcome.total}")
    log.info(f"  Successful:            {outcome.succeeded}")
    log.info(f"  Failed:                {outcome.failed}")
    log.info(f"  Skipped:               {outcome.skipped}")
    log.info(f"  Total time:            {format_duration(outcome.elapsed_seconds)}")
    for label, value in details.items():
        log.info(f"  {(label + ':'):<22} {value}")

    if outcome.failed_items:
        log.warning("The following files failed:")
        for item in outcome.failed_items:
            log.warning(f"  - {item}")
    if outcome.warned_items:
        log.warning(f"Completed but {warning_note}:")
        for item in outcome.warned_items:
            log.warning(f"  - {item}")
    if outcome.skipped:
        log.warning(f"{outcome.skipped} files were skipped (source not found); exit status does not reflect skips")

    if outcome.exit_code:
        log.error("Job completed with errors")
    else:
        log.info("Job completed successfully")


def write_run_log(tool: str, outcome: RunOutcome, details: Dict[str, str],
                  log_dir: Optional[str] = None, warning_note: str = "source not removed") -> str:
    """
    Write the plain-text run log: a summary header, then the SUCCEEDED,
    SKIPPED and FAILED sections. Returns the file path.
    """
    log_dir = log_dir or config.LOG_DIR
    os.makedirs(log_dir, exist_ok=True)
    stamp = outcome.started.strftime("%Y%m%d_%H%M%S")
    path = os.path.join(log_dir, f"{tool}_{stamp}.log")

    finished = outcome.finished or datetime.now()
    warned = set(outcome.warned_items)
    lines = [
        f"# {tool} run log",
        f"# Host:       {socket.gethostname()}",
        f"# Started:    {outcome.started:%Y-%m-%d %H:%M:%S}",
        f"# Finished:   {finished:%Y-%m-%d %H:%M:%S}",
        f"# Elapsed:    {format_duration(outcome.elapsed_seconds)}",
        f"# Total:      {outcome.total}",
        f"# Succeeded:  {outcome.succeeded}",
        f"# Failed:     {outcome.failed}",
        f"# Skipped:    {outcome.skipped}",
        f"# Warnings:   {len(warned)}",
    ]
    lines += [f"# {k}: {v}" for k, v in details.items()]
    lines.append("")

    lines.append(f"[SUCCEEDED] ({outcome.succeeded})")
    for item in outcome.succeeded_items:
        lines.append(f"{item}\tWARNING: {warning_note}" if item in warned else item)
    lines.append("")
    lines.append(f"[SKIPPED] ({outcome.skipped})")
    lines += outcome.skipped_items
    lines.append("")
    lines.append(f"[FAILED] ({outcome.failed})")
    lines += outcome.failed_items

    with open(path, "w", encoding="utf-8") as f:
        f.write("\n".join(lines) + "\n")
    log.info(f"Run log written: {path}")
    return path
