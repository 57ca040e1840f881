import os

import pytest

from atelier import planner
from atelier.errors import ValidationError
from atelier.planner import TransferKind

from conftest import write


@pytest.mark.parametrize(
    "source, dest, kind",
    [
        ("s3://a/x", "s3://b/", TransferKind.OBJECT_TO_OBJECT),
        ("s3://a/x", "/local/", TransferKind.OBJECT_TO_LOCAL),
        ("/local/x", "s3://b/", TransferKind.LOCAL_TO_OBJECT),
        ("/local/x", "/other/", TransferKind.LOCAL_TO_LOCAL),
    ],
)
def test_resolve_kind(source, dest, kind):
    assert planner.resolve_kind(source, dest) is kind


def test_kind_sides():
    assert TransferKind.OBJECT_TO_LOCAL.source_remote
    assert not TransferKind.OBJECT_TO_LOCAL.dest_remote
    assert TransferKind.LOCAL_TO_OBJECT.dest_remote


def test_read_manifest_skips_comments_and_blanks(workdir):
    manifest = write(workdir / "list.txt", "# header\n\n  a.txt  \n\ts3://b/k\n#x\n")
    assert planner.read_manifest(str(manifest)) == ["a.txt", "s3://b/k"]


def test_read_manifest_missing(workdir):
    with pytest.raises(ValidationError):
        planner.read_manifest(str(workdir / "nope.txt"))


def test_normalize_destination(workdir):
    assert planner.normalize_destination("s3://b/out") == "s3://b/out/"
    assert planner.normalize_destination("s3://b/out/") == "s3://b/out/"
    assert planner.normalize_destination(str(workdir / "out")) == str(workdir / "out") + os.sep


def test_single_local_file(workdir):
    src = write(workdir / "src" / "a.txt")
    items = planner.build_items("s3://b/dest", source=str(src))
    assert items == [planner.make_item(str(src), "s3://b/dest/a.txt")]


def test_directory_requires_recursive(workdir):
    (workdir / "src").mkdir()
    with pytest.raises(ValidationError, match="-r"):
        planner.build_items(str(workdir / "out"), source=str(workdir / "src"))


def test_missing_local_source(workdir):
    with pytest.raises(ValidationError, match="does not exist"):
        planner.build_items(str(workdir / "out"), source=str(workdir / "missing.txt"))


def test_recursive_local_keeps_source_name(workdir):
    write(workdir / "src" / "proj" / "c.txt")
    write(workdir / "src" / "proj" / "a" / "b.txt")
    out = workdir / "out"

    items = planner.build_items(str(out), source=str(workdir / "src" / "proj"), recursive=True)

    pairs = sorted((i.source, i.destination) for i in items)
    assert pairs == [
        (str(workdir / "src" / "proj" / "a" / "b.txt"), str(out / "proj" / "a" / "b.txt")),
        (str(workdir / "src" / "proj" / "c.txt"), str(out / "proj" / "c.txt")),
    ]
    assert all(i.kind is TransferKind.LOCAL_TO_LOCAL for i in items)


def test_recursive_s3_prefix(fake_s3, workdir):
    fake_s3.put("b", "data/proj/x.txt")
    fake_s3.put("b", "data/proj/sub/y.txt")
    fake_s3.put("b", "data/proj/")            # folder marker
    fake_s3.put("b", "data/project2/z.txt")   # shares the string prefix only

    out = workdir / "out"
    items = planner.build_items(str(out), source="s3://b/data/proj", recursive=True, s3=fake_s3)

    assert [(i.source, i.destination) for i in items] == [
        ("s3://b/data/proj/sub/y.txt", str(out / "proj" / "sub" / "y.txt")),
        ("s3://b/data/proj/x.txt", str(out / "proj" / "x.txt")),
    ]
    assert all(i.kind is TransferKind.OBJECT_TO_LOCAL for i in items)


def test_empty_s3_prefix_is_fatal(fake_s3):
    with pytest.raises(ValidationError, match="No files to process"):
        planner.build_items("s3://dest/", source="s3://b/empty/", recursive=True, s3=fake_s3)


def test_manifest_entries(workdir):
    base = workdir / "base"
    write(base / "rel.txt")
    manifest = write(
        workdir / "list.txt",
        f"rel.txt\n{workdir / 'absent.txt'}\ns3://b/k/obj.bin\n",
    )

    items = planner.build_items("s3://dest/archive", source=str(base), manifest=str(manifest))

    assert [(i.source, i.destination, i.kind) for i in items] == [
        (str(base / "rel.txt"), "s3://dest/archive/rel.txt", TransferKind.LOCAL_TO_OBJECT),
        (str(workdir / "absent.txt"), "s3://dest/archive/absent.txt", TransferKind.LOCAL_TO_OBJECT),
        ("s3://b/k/obj.bin", "s3://dest/archive/obj.bin", TransferKind.OBJECT_TO_OBJECT),
    ]


def test_manifest_directory_entry_needs_recursive(workdir):
    write(workdir / "dir" / "f.txt")
    manifest = write(workdir / "list.txt", f"{workdir / 'dir'}\n")

    with pytest.raises(ValidationError):
        planner.build_items(str(workdir / "out"), manifest=str(manifest))

    items = planner.build_items(str(workdir / "out"), manifest=str(manifest), recursive=True)
    assert [i.destination for i in items] == [str(workdir / "out" / "dir" / "f.txt")]


def test_manifest_with_only_comments_is_fatal(workdir):
    manifest = write(workdir / "list.txt", "# nothing\n\n")
    with pytest.raises(ValidationError, match="No files to process"):
        planner.build_items(str(workdir / "out"), manifest=str(manifest))


def test_manifest_rejects_malformed_uri(workdir):
    manifest = write(workdir / "list.txt", "s3:///nobucket\n")
    with pytest.raises(ValidationError):
        planner.build_items(str(workdir / "out"), manifest=str(manifest))
