"""
pytest 共通フィクスチャ

各アーカイブ・テクスチャ形式のバイト列をメモリ上で組み立てるビルダーを提供する
"""

import io
import pickle
import struct
import zlib
from typing import Dict, Iterable, List, Optional, Tuple

import pytest
from PIL import Image


# ----------------------------------------------------------------------
# VPK
# ----------------------------------------------------------------------

def _split_vpk_path(path: str) -> Tuple[str, str, str]:
    directory, _, filename = path.rpartition('/')
    name, dot, ext = filename.rpartition('.')
    if not dot:
        name, ext = filename, ' '
    return directory or ' ', name, ext


def build_vpk(inline: Optional[Dict[str, bytes]] = None,
              parts: Optional[Dict[str, Tuple[int, int, int]]] = None,
              preload: Optional[Dict[str, bytes]] = None,
              version: int = 1) -> bytes:
    """
    VPKのディレクトリファイルを組み立てる

    Args:
        inline: ディレクトリファイル末尾に格納するファイル（パス -> 内容）
        parts: 分割アーカイブ上のファイル（パス -> (番号, オフセット, サイズ)）
        preload: プリロードバイトを持たせるファイル（パス -> プリロード）
        version: 1 または 2
    """
    inline = inline or {}
    parts = parts or {}
    preload = preload or {}

    records = []
    blob = bytearray()
    for path, data in inline.items():
        records.append((path, 0x7FFF, len(blob), len(data)))
        blob += data
    for path, (index, offset, size) in parts.items():
        records.append((path, index, offset, size))

    grouped: Dict[str, Dict[str, List[tuple]]] = {}
    for path, index, offset, size in records:
        directory, name, ext = _split_vpk_path(path)
        grouped.setdefault(ext, {}).setdefault(directory, []).append(
            (name, preload.get(path, b''), index, offset, size))

    tree = bytearray()
    for ext, directories in grouped.items():
        tree += ext.encode('utf-8') + b'\0'
        for directory, names in directories.items():
            tree += directory.encode('utf-8') + b'\0'
            for name, pre, index, offset, size in names:
                tree += name.encode('utf-8') + b'\0'
                tree += struct.pack('<IHHIIH', 0, len(pre), index, offset, size, 0xFFFF)
                tree += pre
            tree += b'\0'
        tree += b'\0'
    tree += b'\0'

    header = b'\x34\x12\xAA\x55' + struct.pack('<II', version, len(tree))
    if version == 2:
        header += b'\0' * 16
    return header + bytes(tree) + bytes(blob)


# ----------------------------------------------------------------------
# Godot PCK
# ----------------------------------------------------------------------

def build_pck(files: Iterable[tuple], version: int = 1, archive_flags: int = 0) -> bytes:
    """
    Godot PCK を組み立てる

    Args:
        files: (パス, 内容) または (パス, 内容, 暗号化フラグ) の並び
        version: 1 または 2
        archive_flags: バージョン2のアーカイブフラグ
    """
    files = [tuple(f) + (False,) * (3 - len(f)) for f in files]

    def padded(path: str) -> bytes:
        raw = path.encode('utf-8')
        return raw + b'\0' * (-len(raw) % 4)

    fixed = 4 + 4 + 12 + (12 if version == 2 else 0) + 64 + 4
    entry_size = 8 + 8 + 16 + (4 if version == 2 else 0)
    data_start = fixed + sum(4 + len(padded(path)) + entry_size for path, _, _ in files)
    base = data_start if version == 2 else 0

    out = bytearray(b'GDPC')
    out += struct.pack('<i3i', version, 3, 5, 1)
    if version == 2:
        out += struct.pack('<IQ', archive_flags, base)
    out += b'\0' * 64
    out += struct.pack('<i', len(files))

    blob = bytearray()
    for path, data, encrypted in files:
        raw = padded(path)
        out += struct.pack('<i', len(raw)) + raw
        out += struct.pack('<QQ', data_start + len(blob) - base, len(data))
        out += b'\0' * 16
        if version == 2:
            out += struct.pack('<I', 1 if encrypted else 0)
        blob += data
    assert len(out) == data_start
    return bytes(out + blob)


# ----------------------------------------------------------------------
# Ren'Py RPA / RPYC
# ----------------------------------------------------------------------

RPA_KEY = 0x42424242


def build_rpa(files: Dict[str, bytes],
              key: int = RPA_KEY,
              extra_index: Optional[dict] = None,
              index_override=None) -> bytes:
    """
    RPA-3.0 アーカイブを組み立てる

    Args:
        files: パス -> 内容（1チャンク）
        key: XORキー
        extra_index: インデックスに直接追加するエントリ（パス -> チャンクのリスト）
        index_override: インデックスとして pickle する値（指定時は files を無視）
    """
    header_length = 34
    blob = bytearray()
    index = {}
    for path, data in files.items():
        offset = header_length + len(blob)
        index[path] = [(offset ^ key, len(data) ^ key, '')]
        blob += data
    if extra_index:
        index.update(extra_index)
    if index_override is not None:
        index = index_override

    index_offset = header_length + len(blob)
    header = f"RPA-3.0 {index_offset:016x} {key:08x}\n".encode('ascii')
    assert len(header) == header_length
    return header + bytes(blob) + zlib.compress(pickle.dumps(index, protocol=2))


def build_rpyc(chunks: Dict[int, bytes]) -> bytes:
    """スロット -> 生データ から .rpyc を組み立てる"""
    table_size = 12 * (len(chunks) + 1)
    out = bytearray(b'RENPY RPC2')
    offset = len(out) + table_size
    blob = bytearray()
    for slot, data in chunks.items():
        out += struct.pack('<III', slot, offset + len(blob), len(data))
        blob += data
    out += struct.pack('<III', 0, 0, 0)
    return bytes(out + blob)


# ----------------------------------------------------------------------
# テクスチャ
# ----------------------------------------------------------------------

def build_vtf(width: int, height: int, fmt: int, mip_data: List[bytes],
              version: Tuple[int, int] = (7, 2),
              flags: int = 0,
              frames: int = 1,
              first_frame: int = 0,
              mipmaps: Optional[int] = None,
              with_highres_resource: bool = True) -> bytes:
    """
    VTFを組み立てる

    Args:
        mip_data: ファイル内の順（小さいミップマップから）のテクスチャデータ
        mipmaps: ミップマップ数（省略時は mip_data の数）
    """
    body = bytearray(b'VTF\0')
    body += struct.pack('<II', *version)
    body += struct.pack('<I', 0)            # ヘッダサイズ（後で埋める）
    body += struct.pack('<HHIHH', width, height, flags, frames, first_frame)
    body += b'\0' * 4
    body += struct.pack('<3f', 0.5, 0.5, 0.5)
    body += b'\0' * 4
    body += struct.pack('<f', 1.0)
    body += struct.pack('<iBiBB', fmt, mipmaps or len(mip_data), -1, 0, 0)

    if version > (7, 2):
        body += struct.pack('<H', 1)        # スライス数
        body += b'\0' * 3
        resources = [(b'\x01\0\0', 0)]
        if with_highres_resource:
            resources.append((b'\x30\0\0', 0))
        body += struct.pack('<I', len(resources))
        body += b'\0' * 8
        header_size = len(body) + 8 * len(resources)
        for tag, _ in resources:
            body += tag + b'\0' + struct.pack('<I', header_size)
    else:
        body += b'\0' * (-len(body) % 16)
        header_size = len(body)

    struct.pack_into('<I', body, 12, header_size)
    return bytes(body) + b''.join(mip_data)


def png_bytes(width: int = 3, height: int = 2, color=(10, 20, 30, 255)) -> bytes:
    buf = io.BytesIO()
    Image.new('RGBA', (width, height), color).save(buf, format='PNG')
    return buf.getvalue()


def build_gst2(payload: bytes, width: int, height: int, data_format: int = 1, version: int = 1) -> bytes:
    out = bytearray(b'GST2')
    out += struct.pack('<IIIII', version, width, height, 0, 0)
    out += b'\0' * 12
    out += struct.pack('<IHHII', data_format, width, height, 1, 5)
    out += struct.pack('<I', len(payload)) + payload
    return bytes(out)


def build_gdst(payload: bytes, width: int, height: int, webp: bool = False) -> bytes:
    bits = (1 << 21) if webp else (1 << 20)
    tag = b'WEBP' if webp else b'PNG '
    out = bytearray(b'GDST')
    out += struct.pack('<HHHHIII', width, width, height, height, 0, bits, 1)
    out += struct.pack('<I', len(payload) + 4) + tag + payload
    return bytes(out)


# ----------------------------------------------------------------------
# フィクスチャ
# ----------------------------------------------------------------------

@pytest.fixture
def vpk_builder():
    return build_vpk


@pytest.fixture
def pck_builder():
    return build_pck


@pytest.fixture
def rpa_builder():
    return build_rpa


@pytest.fixture
def rpyc_builder():
    return build_rpyc


@pytest.fixture
def vtf_builder():
    return build_vtf


@pytest.fixture
def godot_builder():
    """(build_gst2, build_gdst, png_bytes) の組"""
    return build_gst2, build_gdst, png_bytes


@pytest.fixture
def sample_pck() -> bytes:
    """ディレクトリ構造を持つ小さなPCK"""
    return build_pck([
        ("res://icon.png", b"PNGDATA"),
        ("res://scenes/main.tscn", b"[gd_scene]\n"),
        ("res://scenes/levels/one.tscn", b"level one"),
        ("res://scenes/levels/two.tscn", b"level two!"),
        ("project.binary", b"\x00\x01\x02"),
    ])


def _check_extracted(fs, out_dir) -> List[str]:
    """
    ルートを out_dir に書き出し、各ファイルがマウント上の内容と一致することを確認する

    Returns:
        確認したアーカイブ内パス
    """
    fs.root().save(out_dir)
    checked = []
    for file in fs.root().files_recursive():
        with file:
            on_disk = out_dir.joinpath(*file.path.segments).read_bytes()
        with fs.read_file(file.path) as f:
            assert on_disk == f.read(), str(file.path)
        checked.append(str(file.path))
    return checked


@pytest.fixture
def check_extracted():
    return _check_extracted
