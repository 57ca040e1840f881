import errno

from atelier import executor, planner
from atelier.executor import StorageClass, TransferConfig
from atelier.reporter import ItemStatus

from conftest import write


def test_mode():
    assert TransferConfig().mode == "MOVE"
    assert TransferConfig(keep_source=True).mode == "COPY"


def test_local_move(workdir):
    src = write(workdir / "a.txt", "hello")
    dst = workdir / "out" / "a.txt"
    item = planner.make_item(str(src), str(dst))

    assert executor.execute(item, TransferConfig()) is ItemStatus.SUCCEEDED
    assert not src.exists()
    assert dst.read_text() == "hello"


def test_local_copy_keeps_source(workdir):
    src = write(workdir / "a.txt", "hello")
    dst = workdir / "out" / "nested" / "a.txt"
    item = planner.make_item(str(src), str(dst))

    assert executor.execute(item, TransferConfig(keep_source=True)) is ItemStatus.SUCCEEDED
    assert src.exists()
    assert dst.read_text() == "hello"


def test_upload_move_sets_storage_class(workdir, fake_s3):
    src = write(workdir / "a.txt", "hello")
    item = planner.make_item(str(src), "s3://b/arch/a.txt")
    cfg = TransferConfig(storage_class=StorageClass.DEEP_ARCHIVE)

    assert executor.execute(item, cfg, fake_s3) is ItemStatus.SUCCEEDED
    assert fake_s3.objects[("b", "arch/a.txt")] == b"hello"
    assert fake_s3.storage_classes[("b", "arch/a.txt")] == "DEEP_ARCHIVE"
    assert not src.exists()


def test_s3_copy_keeps_source(fake_s3):
    fake_s3.put("a", "k/x.bin", b"xyz")
    item = planner.make_item("s3://a/k/x.bin", "s3://b/x.bin")
    cfg = TransferConfig(keep_source=True, storage_class=StorageClass.GLACIER)

    assert executor.execute(item, cfg, fake_s3) is ItemStatus.SUCCEEDED
    assert fake_s3.objects[("b", "x.bin")] == b"xyz"
    assert fake_s3.storage_classes[("b", "x.bin")] == "GLACIER"
    assert ("a", "k/x.bin") in fake_s3.objects


def test_download_move_deletes_object(workdir, fake_s3):
    fake_s3.put("a", "k/x.bin", b"xyz")
    dst = workdir / "out" / "sub" / "x.bin"
    item = planner.make_item("s3://a/k/x.bin", str(dst))

    assert executor.execute(item, TransferConfig(), fake_s3) is ItemStatus.SUCCEEDED
    assert dst.read_bytes() == b"xyz"
    assert ("a", "k/x.bin") not in fake_s3.objects


def test_dry_run_touches_nothing(workdir, fake_s3):
    src = write(workdir / "a.txt")
    item = planner.make_item(str(src), "s3://b/a.txt")

    assert executor.execute(item, TransferConfig(dry_run=True), fake_s3) is ItemStatus.SUCCEEDED
    assert src.exists()
    assert fake_s3.objects == {}


def test_failed_write_keeps_source(workdir, fake_s3):
    src = write(workdir / "a.txt")
    fake_s3.fail_write = True
    item = planner.make_item(str(src), "s3://b/a.txt")

    assert executor.execute(item, TransferConfig(), fake_s3) is ItemStatus.FAILED
    assert src.exists()


def test_failed_source_removal_is_warning(fake_s3):
    fake_s3.put("a", "x.bin")
    fake_s3.fail_delete = True
    item = planner.make_item("s3://a/x.bin", "s3://b/x.bin")

    assert executor.execute(item, TransferConfig(), fake_s3) is ItemStatus.WARNING
    assert ("a", "x.bin") in fake_s3.objects
    assert ("b", "x.bin") in fake_s3.objects


def test_source_exists(workdir, fake_s3):
    fake_s3.put("a", "x.bin")
    assert executor.source_exists(planner.make_item("s3://a/x.bin", "/out/x.bin"), fake_s3)
    assert not executor.source_exists(planner.make_item("s3://a/y.bin", "/out/y.bin"), fake_s3)
    assert not executor.source_exists(planner.make_item(str(workdir / "nope"), "/out/nope"), fake_s3)


def test_s3_move_onto_itself_keeps_object(fake_s3):
    fake_s3.put("b", "data/x.bam", b"precious")
    item = planner.make_item("s3://b/data/x.bam", "s3://b/data/x.bam")
    cfg = TransferConfig(storage_class=StorageClass.GLACIER)

    assert executor.execute(item, cfg, fake_s3) is ItemStatus.SUCCEEDED
    assert fake_s3.objects[("b", "data/x.bam")] == b"precious"
    assert fake_s3.storage_classes[("b", "data/x.bam")] == "GLACIER"


def test_local_transfer_onto_itself_fails(workdir):
    src = write(workdir / "a.txt", "keep")
    item = planner.make_item(str(src), str(src))

    for cfg in (TransferConfig(), TransferConfig(keep_source=True)):
        assert executor.execute(item, cfg) is ItemStatus.FAILED
        assert src.read_text() == "keep"


def test_cross_device_move_copies_then_removes(workdir, monkeypatch):
    src = write(workdir / "a.txt", "hello")
    dst = workdir / "other" / "a.txt"

    def no_rename(a, b):
        raise OSError(errno.EXDEV, "Invalid cross-device link")

    monkeypatch.setattr(executor.os, "rename", no_rename)
    item = planner.make_item(str(src), str(dst))

    assert executor.execute(item, TransferConfig()) is ItemStatus.SUCCEEDED
    assert dst.read_text() == "hello"
    assert not src.exists()


def test_cross_device_move_with_failed_unlink_is_warning(workdir, monkeypatch):
    src = write(workdir / "a.txt", "hello")
    dst = workdir / "other" / "a.txt"

    def no_rename(a, b):
        raise OSError(errno.EXDEV, "Invalid cross-device link")

    def no_remove(path):
        raise PermissionError(errno.EACCES, "Permission denied", path)

    monkeypatch.setattr(executor.os, "rename", no_rename)
    monkeypatch.setattr(executor.os, "remove", no_remove)
    item = planner.make_item(str(src), str(dst))

    assert executor.execute(item, TransferConfig()) is ItemStatus.WARNING
    assert dst.read_text() == "hello"
    assert src.exists()
