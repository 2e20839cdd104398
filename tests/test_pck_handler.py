"""
Godot PCKハンドラのテスト
"""

import io
import struct

import pytest

from arc import mount, mount_godot_pck
from arc.errors import ArchiveLoadError
from arc.handler.pck_handler import GodotPckHandler, fix_pck_path


@pytest.mark.parametrize("path, expected", [
    ("res://icon.png", "res/icon.png"),
    ("res://a/b.txt\0\0", "res/a/b.txt"),
    ("user://save.dat", "user/save.dat"),
    ("plain/path.txt", "plain/path.txt"),
])
def test_fix_pck_path(path, expected):
    assert fix_pck_path(path) == expected


@pytest.mark.parametrize("version", [1, 2])
def test_load(pck_builder, version):
    data = pck_builder([
        ("res://icon.png", b"icon"),
        ("res://sub/dir/data.bin", b"\x00" * 10),
    ], version=version)
    with mount_godot_pck(io.BytesIO(data)) as fs:
        assert fs.file_count() == 2
        assert fs.read_file("res/icon.png").read() == b"icon"
        assert fs.read_file("res/sub/dir/data.bin").read() == b"\x00" * 10


def test_mount_by_extension(tmp_path, sample_pck):
    path = tmp_path / "game.pck"
    path.write_bytes(sample_pck)
    with mount(path) as fs:
        assert fs.file_count() == 5
        assert fs.read_file("res/scenes/main.tscn").read() == b"[gd_scene]\n"


def test_encrypted_file_is_excluded(pck_builder, caplog):
    data = pck_builder([
        ("res://open.txt", b"open"),
        ("res://secret.txt", b"secret", True),
        ("res://other.txt", b"other"),
    ], version=2)
    handler = GodotPckHandler(io.BytesIO(data))
    try:
        assert handler.file_count() == 2
        assert handler.list_files() == ["res/open.txt", "res/other.txt"]
    finally:
        handler.close()

    warnings = [r for r in caplog.records if r.levelname == "WARNING"]
    assert any("secret.txt" in r.getMessage() for r in warnings)
    assert any(r.name == "arc.handler.GodotPckHandler" for r in warnings)


def test_encrypted_archive_is_rejected(pck_builder):
    data = pck_builder([("res://a.txt", b"a")], version=2, archive_flags=1)
    with pytest.raises(ArchiveLoadError):
        GodotPckHandler(io.BytesIO(data))


def test_foreign_magic():
    with pytest.raises(ArchiveLoadError) as exc_info:
        mount_godot_pck(io.BytesIO(b"RPA-3.0 " + bytes(100)))
    assert exc_info.value.kind == "godot-pck"
    assert exc_info.value.offset == 0


def test_unsupported_version(pck_builder):
    data = bytearray(pck_builder([("res://a.txt", b"a")]))
    struct.pack_into('<i', data, 4, 3)
    with pytest.raises(ArchiveLoadError):
        GodotPckHandler(io.BytesIO(bytes(data)))


def test_truncated_index(pck_builder):
    data = pck_builder([("res://a.txt", b"a")])
    stream = io.BytesIO(data[:100])
    with pytest.raises(ArchiveLoadError) as exc_info:
        GodotPckHandler(stream)
    assert exc_info.value.offset is not None
    assert stream.closed


def test_missing_file(tmp_path):
    with pytest.raises(ArchiveLoadError):
        mount_godot_pck(tmp_path / "missing.pck")
