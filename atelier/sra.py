"""
sra.py: helpers shared by the SRA Toolkit wrappers (sraprefetcher, sraextractor).

Accession lists use the manifest format: one accession per line, '#'
comments and blank lines ignored. Malformed accessions are dropped with a
warning; a list with no valid accession is a validation error.
"""

import logging
import os
import re
from typing import List, Optional

from atelier import planner
from atelier.errors import ValidationError

log = logging.getLogger(__name__)

ACCESSION_RE = re.compile(r"^(SRR|SRX|SRS|SRP|ERR|ERX|ERS|ERP|DRR|DRX|DRS|DRP)[0-9]{6,10}$")

SIZE_RE = re.compile(r"^([0-9]+)([KMGT]?)$")
SIZE_UNITS = {"": 1, "K": 1024, "M": 1024 ** 2, "G": 1024 ** 3, "T": 1024 ** 4}


def is_accession(value: str) -> bool:
    return bool(ACCESSION_RE.match(value))


def read_accessions(list_file: str) -> List[str]:
    if not os.path.isfile(list_file):
        raise ValidationError(f"Accession list not found: {list_file}")

    valid: List[str] = []
    invalid = 0
    for entry in planner.read_manifest(list_file):
        if is_accession(entry):
            valid.append(entry)
        else:
            log.warning(f"Invalid accession format, skipping: {entry}")
            invalid += 1

    if not valid:
        raise ValidationError(f"No valid SRA accessions found in {list_file}")
    log.info(f"Valid accessions: {len(valid)}")
    if invalid:
        log.warning(f"Invalid accessions skipped: {invalid}")
    return valid


def resolve_ngc(ngc: Optional[str]) -> Optional[str]:
    """
    Resolve a dbGaP repository key (.ngc) to an absolute path.
    Relative paths are tried against the working directory, then $HOME.
    """
    if not ngc:
        return None
    candidates = [ngc] if os.path.isabs(ngc) else [os.path.abspath(ngc), os.path.join(os.path.expanduser("~"), ngc)]
    for path in candidates:
        if os.path.isfile(path):
            return path
    raise ValidationError(f"NGC file not found: {ngc}")


def parse_size(size: str) -> int:
    """'500G' -> bytes. Units are K, M, G, T (powers of 1024); no unit means bytes."""
    m = SIZE_RE.match(size.strip().upper())
    if not m:
        raise ValidationError(f"Invalid size format: {size} (expected e.g. 500G, 20M)")
    return int(m.group(1)) * SIZE_UNITS[m.group(2)]
