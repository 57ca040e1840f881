import gzip
import stat
import sys

import pytest

from atelier import config, sraextractor
from atelier.errors import ValidationError
from atelier.reporter import ItemStatus

from conftest import run_log, write

# Stands in for fasterq-dump: writes paired FASTQ into the working directory.
FAKE_FASTERQ_DUMP = r"""#!/bin/sh
if [ "$1" = "--version" ]; then echo "fasterq-dump : 3.0.0"; exit 0; fi
tmp=""; acc=""
while [ $# -gt 0 ]; do
  case "$1" in
    --temp) tmp="$2"; shift 2 ;;
    --mem|--threads|--log-level|--ngc) shift 2 ;;
    --progress) shift ;;
    *) acc="$1"; shift ;;
  esac
done
[ -d "$tmp" ] || exit 4
touch "$tmp/scratch"
if [ "$acc" = "SRR9999999" ]; then exit 3; fi
printf '@r1\nACGT\n+\nIIII\n' > "${acc}_1.fastq"
printf '@r1\nTGCA\n+\nIIII\n' > "${acc}_2.fastq"
"""

needs_sh = pytest.mark.skipif(sys.platform == "win32", reason="fake fasterq-dump is a POSIX shell script")


@pytest.fixture
def fasterq_dump(workdir, monkeypatch):
    path = workdir / "bin" / "fasterq-dump"
    write(path, FAKE_FASTERQ_DUMP)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    monkeypatch.setattr(config, "FASTERQ_DUMP_CANDIDATES", [None, str(path)])
    return path


@pytest.fixture
def base(workdir):
    root = workdir / "sra"
    for acc in ("SRR1000001", "SRR9999999"):
        write(root / acc / f"{acc}.sra", "sra")
    return root


def test_fasterq_command():
    cmd = sraextractor.fasterq_command("fasterq-dump", "SRR1000001", "/t", 8, 4, ngc="/k.ngc")
    assert cmd == ["fasterq-dump", "SRR1000001", "--mem", "4G", "--temp", "/t", "--threads", "8",
                   "--progress", "--log-level", "info", "--ngc", "/k.ngc"]


def test_gzip_file_replaces_original(workdir):
    fq = write(workdir / "a.fastq", "@r\nA\n+\nI\n")
    gz = sraextractor.gzip_file(str(fq))
    assert not fq.exists()
    with gzip.open(gz, "rt") as f:
        assert f.read() == "@r\nA\n+\nI\n"


def test_compress_failure_is_reported(workdir, monkeypatch):
    write(workdir / "a.fastq")

    def broken(path):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(sraextractor, "gzip_file", broken)
    assert sraextractor.compress_fastqs(str(workdir)) is False


def test_missing_sra_file_fails(workdir):
    (workdir / "SRR1000003").mkdir()
    assert sraextractor.extract_one("fasterq-dump", str(workdir), "SRR1000003", 1, 1) is ItemStatus.FAILED
    assert sraextractor.extract_one("fasterq-dump", str(workdir), "SRR1000004", 1, 1) is ItemStatus.FAILED


# ── full runs ──────────────────────────────────────────────────────────────────
@needs_sh
def test_extract_and_compress(workdir, base, fasterq_dump, log_dir):
    listing = write(workdir / "acc.txt", "SRR1000001\n")

    assert sraextractor.main(["-l", str(listing), "-b", str(base), "-t", "2", "-m", "1"]) == 0
    acc_dir = base / "SRR1000001"
    assert sorted(p.name for p in acc_dir.iterdir()) == [
        "SRR1000001.sra", "SRR1000001_1.fastq.gz", "SRR1000001_2.fastq.gz",
    ]
    with gzip.open(acc_dir / "SRR1000001_2.fastq.gz", "rt") as f:
        assert f.read().splitlines()[1] == "TGCA"
    assert "[SUCCEEDED] (1)" in run_log(log_dir, "sraextractor")


@needs_sh
def test_failed_extraction_cleans_tmp(workdir, base, fasterq_dump, log_dir):
    listing = write(workdir / "acc.txt", "SRR9999999\nSRR1000002\nSRR1000001\n")

    assert sraextractor.main(["-l", str(listing), "-b", str(base)]) == 1
    assert not (base / "SRR9999999" / "tmp").exists()
    assert (base / "SRR1000001" / "SRR1000001_1.fastq.gz").exists()
    text = run_log(log_dir, "sraextractor")
    assert "[FAILED] (2)\nSRR9999999\nSRR1000002" in text


@needs_sh
def test_compression_failure_is_warning(workdir, base, fasterq_dump, log_dir, monkeypatch):
    listing = write(workdir / "acc.txt", "SRR1000001\n")

    def broken(path):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(sraextractor, "gzip_file", broken)
    assert sraextractor.main(["-l", str(listing), "-b", str(base)]) == 0
    assert (base / "SRR1000001" / "SRR1000001_1.fastq").exists()
    assert "SRR1000001\tWARNING: FASTQ compression incomplete" in run_log(log_dir, "sraextractor")


@needs_sh
def test_dry_run_extracts_nothing(workdir, base, fasterq_dump):
    listing = write(workdir / "acc.txt", "SRR1000001\n")

    assert sraextractor.main(["-l", str(listing), "-b", str(base), "-d"]) == 0
    assert [p.name for p in (base / "SRR1000001").iterdir()] == ["SRR1000001.sra"]


def test_missing_base_dir_exits_1(workdir):
    listing = write(workdir / "acc.txt", "SRR1000001\n")
    assert sraextractor.main(["-l", str(listing), "-b", str(workdir / "nope")]) == 1


def test_invalid_threads(workdir):
    listing = write(workdir / "acc.txt", "SRR1000001\n")
    with pytest.raises(ValidationError, match="Invalid thread count"):
        sraextractor.run(sraextractor.build_parser().parse_args(["-l", str(listing), "-t", "0"]))
