"""
config.py: deployment knobs read from the environment, plus logging setup.

Environment variables (with defaults):
  LOG_LEVEL        : Python logging level (default: INFO)
  ATELIER_LOG_DIR  : directory that receives run logs (default: current directory)
  AWS_PROFILE      : optional named profile for the boto3 session
  AWS_REGION       : optional region (falls back to AWS_DEFAULT_REGION)
  SAMTOOLS_PATH    : optional absolute path or binary name override for samtools
  PREFETCH_PATH    : optional override for the SRA Toolkit's prefetch
  FASTERQ_DUMP_PATH: optional override for the SRA Toolkit's fasterq-dump
  MD5_CHUNK_BYTES  : read size used when hashing files (default: 8 MiB)

Values are read once at import time so a whole run sees a consistent setup.
"""

import logging
import os

# ── Config (envs with sensible defaults) ─────────────────────────────────────
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_DIR = os.environ.get("ATELIER_LOG_DIR") or os.getcwd()

AWS_PROFILE = os.environ.get("AWS_PROFILE")
AWS_REGION = os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION")

SAMTOOLS_CANDIDATES = [
    os.environ.get("SAMTOOLS_PATH"),
    "samtools",
]

PREFETCH_CANDIDATES = [
    os.environ.get("PREFETCH_PATH"),
    "prefetch",
]

FASTERQ_DUMP_CANDIDATES = [
    os.environ.get("FASTERQ_DUMP_PATH"),
    "fasterq-dump",
]

MD5_CHUNK_BYTES = int(os.environ.get("MD5_CHUNK_BYTES", str(8 * 1024 * 1024)))

LOG_FORMAT = "[%(asctime)s] %(levelname)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = None) -> None:
    """
    Configure the root logger for a CLI run.

    boto3/botocore/s3transfer are capped at WARNING; their DEBUG output drowns
    the per-item progress lines in a SLURM log.
    """
    logging.basicConfig(level=(level or LOG_LEVEL).upper(), format=LOG_FORMAT, datefmt=LOG_DATEFMT)
    for name in ("boto3", "botocore", "s3transfer", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)
