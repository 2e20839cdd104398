"""
アーカイブ内パスのテスト
"""

import pytest

from arc.path_utils import FullPath, join_path, normalize_path

SAMPLES = [
    "",
    "/",
    "a",
    "a/b/c",
    "/a//b/",
    "\\materials\\models\\x.vtf",
    "res://icon.png",
    "a/ b /c",
    "///",
]


@pytest.mark.parametrize("path", SAMPLES)
def test_normalize_is_idempotent(path):
    once = normalize_path(path)
    assert normalize_path(once) == once
    assert not once.startswith('/')
    assert not once.endswith('/')
    assert '//' not in once


def test_normalize_examples():
    assert normalize_path("/a//b/") == "a/b"
    assert normalize_path("\\materials\\x.vtf") == "materials/x.vtf"
    assert normalize_path(None) == ""


@pytest.mark.parametrize("path", SAMPLES)
def test_parent_chain_reaches_root(path):
    current = FullPath(path)
    steps = 0
    while current is not None:
        previous = current
        current = current.parent()
        steps += 1
        assert steps <= 10
    assert previous.is_root


def test_full_path_properties():
    path = FullPath("models/props/crate.mdl")
    assert path.name == "crate.mdl"
    assert path.segments == ["models", "props", "crate.mdl"]
    assert path.parent() == "models/props"
    assert FullPath("").name == ""
    assert FullPath("").parent() is None


def test_join_and_relative():
    base = FullPath("scenes")
    assert base.join("levels/one.tscn") == FullPath("scenes/levels/one.tscn")
    assert join_path("", "a") == "a"
    assert FullPath("scenes/levels/one.tscn").relative_to("scenes") == "levels/one.tscn"
    assert FullPath("scenes").relative_to("scenes").is_root
    with pytest.raises(ValueError):
        FullPath("scenesx/a").relative_to("scenes")


def test_equality_and_hash():
    assert FullPath("/a/b") == FullPath("a/b")
    assert FullPath("a/b") == "a//b/"
    assert len({FullPath("a/b"), FullPath("/a/b/")}) == 1
