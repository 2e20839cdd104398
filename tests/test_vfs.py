"""
仮想ファイルシステムのテスト
"""

import io
import os
import types

import pytest

from arc import mount_godot_pck
from arc.errors import EntryNotFoundError, WrongEntryTypeError
from arc.vfs import VirtualDirectory, VirtualFile


@pytest.fixture
def fs(sample_pck):
    vfs = mount_godot_pck(io.BytesIO(sample_pck))
    yield vfs
    vfs.close()


def test_read_file(fs):
    with fs.read_file("res/scenes/levels/one.tscn") as f:
        assert isinstance(f, VirtualFile)
        assert f.name == "one.tscn"
        assert f.read() == b"level one"
        assert f.size() == 9


def test_read_directory(fs):
    root = fs.root()
    assert isinstance(root, VirtualDirectory)
    assert [str(p) for p in root.entry_paths()] == ["res", "project.binary"]
    scenes = fs.read_directory("/res/scenes/")
    assert scenes.name == "scenes"
    assert [str(p) for p in scenes.entry_paths()] == ["res/scenes/main.tscn", "res/scenes/levels"]


def test_wrong_entry_type(fs):
    with pytest.raises(WrongEntryTypeError):
        fs.read_file("res/scenes")
    with pytest.raises(WrongEntryTypeError):
        fs.read_directory("res/icon.png")


def test_missing_entry(fs):
    with pytest.raises(EntryNotFoundError):
        fs.read("res/missing.png")


def test_files_are_independent(fs):
    a = fs.read_file("res/icon.png")
    b = a.clone()
    assert a.read(3) == b"PNG"
    assert b.read(3) == b"PNG"
    assert a.read() == b"DATA"
    assert b.read_all() == b"PNGDATA"
    a.close()
    b.close()


def test_entries_are_lazy(fs):
    entries = fs.root().entries()
    assert isinstance(entries, types.GeneratorType)
    first = next(entries)
    assert isinstance(first, VirtualDirectory)
    assert first.name == "res"


def test_entries_recursive(fs):
    names = [str(e.path) for e in fs.read_directory("res/scenes").entries_recursive()]
    assert names == [
        "res/scenes",
        "res/scenes/main.tscn",
        "res/scenes/levels",
        "res/scenes/levels/one.tscn",
        "res/scenes/levels/two.tscn",
    ]


def test_directory_size(fs):
    assert fs.read_directory("res/scenes/levels").size() == len(b"level one") + len(b"level two!")
    assert fs.root().size() == 7 + 11 + 9 + 10 + 3


def test_file_count(fs):
    assert fs.file_count() == 5


def test_save_file(fs, tmp_path):
    target = tmp_path / "out" / "icon.png"
    with fs.read_file("res/icon.png") as f:
        f.read(2)
        f.save(target)
    assert target.read_bytes() == b"PNGDATA"


def test_save_directory_round_trip(fs, tmp_path):
    fs.read_directory("res/scenes").save(tmp_path)
    assert (tmp_path / "main.tscn").read_bytes() == b"[gd_scene]\n"
    assert (tmp_path / "levels" / "one.tscn").read_bytes() == b"level one"
    assert (tmp_path / "levels" / "two.tscn").read_bytes() == b"level two!"
    assert sorted(os.listdir(tmp_path)) == ["levels", "main.tscn"]


def test_open_file_survives_close(sample_pck):
    vfs = mount_godot_pck(io.BytesIO(sample_pck))
    f = vfs.read_file("project.binary")
    vfs.close()
    assert f.read() == b"\x00\x01\x02"
    f.close()


def test_save_root_round_trip(fs, tmp_path, check_extracted):
    checked = check_extracted(fs, tmp_path / "out")
    assert sorted(checked) == sorted(fs.handler.list_files())
    assert (tmp_path / "out" / "res" / "scenes" / "levels" / "two.tscn").read_bytes() == b"level two!"
