"""
external.py: locate and run the command-line tools some atelier commands wrap
(samtools, the SRA Toolkit's prefetch and fasterq-dump).

Candidates come from atelier.config: an optional *_PATH environment override
first, then the bare binary name resolved via PATH.
"""

import logging
import os
import shutil
import subprocess
from typing import List, Optional

from atelier.errors import ValidationError

log = logging.getLogger(__name__)


def which_first(candidates: List[Optional[str]], hint: str = "") -> str:
    """
    Return the first existing executable path from a list of candidate names/paths.
    Accepts either absolute paths or bare binary names (resolved via PATH).
    Raises ValidationError naming the last candidate when none is found.
    """
    for c in candidates:
        if not c:
            continue
        p = shutil.which(c) if os.path.basename(c) == c else (c if os.path.exists(c) else None)
        if p:
            return p
    name = next((os.path.basename(c) for c in reversed(candidates) if c), "tool")
    raise ValidationError(f"{name} not found. {hint}".strip())


def tool_version(binary: str) -> str:
    """First line of `<binary> --version`, or 'unknown' if it cannot be read."""
    try:
        result = subprocess.run([binary, "--version"], capture_output=True, text=True)
    except OSError:
        return "unknown"
    lines = (result.stdout or result.stderr).strip().splitlines()
    return lines[0] if lines else "unknown"


def run_logged(cmd: List[str], cwd: Optional[str] = None) -> None:
    """Log and run a command; raises CalledProcessError on a non-zero exit."""
    log.info(f"Command: {' '.join(cmd)}")
    subprocess.run(cmd, cwd=cwd, check=True)
