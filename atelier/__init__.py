"""Batch file tooling for HPC operators: S3 mover, MD5 checker, BAM cleaner."""

__version__ = "1.0.0"
