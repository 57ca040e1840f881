import os

import pytest
from botocore.exceptions import ClientError

from atelier import config


def _client_error(code: str, status: int, op: str) -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        op,
    )


class FakeS3:
    """In-memory stand-in for the handful of boto3 S3 client calls the tools make."""

    def __init__(self, objects=None):
        # {(bucket, key): bytes}
        self.objects = dict(objects or {})
        self.storage_classes = {}
        self.fail_delete = False
        self.fail_write = False
        self.fail_list = None     # error code raised by listing calls, e.g. "NoSuchBucket"

    def put(self, bucket, key, body=b"data"):
        self.objects[(bucket, key)] = body

    # ── reads ──────────────────────────────────────────────────────────────
    def head_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise _client_error("404", 404, "HeadObject")
        return {"ContentLength": len(self.objects[(Bucket, Key)])}

    def _keys(self, bucket, prefix):
        return sorted(k for (b, k) in self.objects if b == bucket and k.startswith(prefix))

    def list_objects_v2(self, Bucket, Prefix="", MaxKeys=1000):
        if self.fail_list:
            raise _client_error(self.fail_list, 404, "ListObjectsV2")
        keys = self._keys(Bucket, Prefix)[:MaxKeys]
        return {"KeyCount": len(keys), "Contents": [{"Key": k} for k in keys]}

    def get_paginator(self, name):
        assert name == "list_objects_v2"
        client = self

        class _Paginator:
            def paginate(self, Bucket, Prefix=""):
                if client.fail_list:
                    raise _client_error(client.fail_list, 404, "ListObjectsV2")
                keys = client._keys(Bucket, Prefix)
                # two pages, to exercise pagination
                half = len(keys) // 2
                yield {"Contents": [{"Key": k} for k in keys[:half]]}
                yield {"Contents": [{"Key": k} for k in keys[half:]]}
                yield {}

        return _Paginator()

    # ── writes ─────────────────────────────────────────────────────────────
    def copy(self, CopySource, Bucket, Key, ExtraArgs=None):
        if self.fail_write:
            raise _client_error("AccessDenied", 403, "CopyObject")
        src = (CopySource["Bucket"], CopySource["Key"])
        if src not in self.objects:
            raise _client_error("404", 404, "HeadObject")
        self.objects[(Bucket, Key)] = self.objects[src]
        self.storage_classes[(Bucket, Key)] = (ExtraArgs or {}).get("StorageClass")

    def upload_file(self, Filename, Bucket, Key, ExtraArgs=None):
        if self.fail_write:
            raise _client_error("AccessDenied", 403, "PutObject")
        with open(Filename, "rb") as f:
            self.objects[(Bucket, Key)] = f.read()
        self.storage_classes[(Bucket, Key)] = (ExtraArgs or {}).get("StorageClass")

    def download_file(self, Bucket, Key, Filename):
        if (Bucket, Key) not in self.objects:
            raise _client_error("404", 404, "HeadObject")
        with open(Filename, "wb") as f:
            f.write(self.objects[(Bucket, Key)])

    def delete_object(self, Bucket, Key):
        if self.fail_delete:
            raise _client_error("AccessDenied", 403, "DeleteObject")
        self.objects.pop((Bucket, Key), None)


@pytest.fixture
def fake_s3():
    return FakeS3()


@pytest.fixture
def workdir(tmp_path):
    """tmp_path with symlinks resolved, so it compares equal to normalized paths."""
    return tmp_path.__class__(os.path.realpath(str(tmp_path)))


@pytest.fixture(autouse=True)
def log_dir(workdir, monkeypatch):
    path = workdir / "runlogs"
    monkeypatch.setattr(config, "LOG_DIR", str(path))
    return path


def write(path, text="data"):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


def run_log(log_dir, tool):
    logs = sorted(log_dir.glob(f"{tool}_*.log"))
    assert len(logs) == 1
    return logs[0].read_text()
