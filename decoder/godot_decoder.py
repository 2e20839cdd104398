"""
Godot テクスチャデコーダー

Godot 3 の .stex（GDST）と Godot 4 の .ctex（GST2）から、
埋め込まれた PNG / WebP の先頭ミップマップを取り出してデコードする
"""

import io
from enum import IntEnum, IntFlag
from typing import BinaryIO, List, Optional, Tuple

import numpy as np
from PIL import Image

from arc.errors import ReaderError
from arc.reader import BinaryReader
from logutils import log_print, DEBUG, INFO
from .common import DecodingError
from .decoder import ImageDecoder


class DataFormatBits(IntFlag):
    PNG = 1 << 20
    WEBP = 1 << 21
    STREAM = 1 << 22
    HAS_MIPMAPS = 1 << 23
    DETECT_3D = 1 << 24
    DETECT_SRGB = 1 << 25
    DETECT_NORMAL = 1 << 26
    DETECT_ROUGHNESS = 1 << 27


class DataFormat(IntEnum):
    """GST2 のデータ形式"""
    IMAGE = 0
    PNG = 1
    WEBP = 2
    BASIS_UNIVERSAL = 3


_PIL_FORMATS = {
    DataFormat.PNG: 'PNG',
    DataFormat.WEBP: 'WEBP',
}

# GDST のミップマップ先頭に付くタグ
_GDST_TAGS = {
    DataFormat.PNG: b'PNG ',
    DataFormat.WEBP: b'WEBP',
}


def _gdst_format(bits: DataFormatBits) -> DataFormat:
    png = bool(bits & DataFormatBits.PNG)
    webp = bool(bits & DataFormatBits.WEBP)
    if png and not webp:
        return DataFormat.PNG
    if webp and not png:
        return DataFormat.WEBP
    raise DecodingError("PNG/WebP 以外のデータ形式のGodotテクスチャには対応していません")


def decode_embedded_image(data: bytes, fmt: DataFormat) -> np.ndarray:
    """埋め込み画像を Pillow でデコードし、RGBA の uint8 配列にする"""
    try:
        with Image.open(io.BytesIO(data), formats=[_PIL_FORMATS[fmt]]) as image:
            return np.asarray(image.convert('RGBA'), dtype=np.uint8).copy()
    except (OSError, SyntaxError, ValueError) as e:
        raise DecodingError(f"埋め込み {fmt.name} 画像のデコードに失敗しました: {e}") from e


class GodotTexture:
    """
    取り出した先頭ミップマップ

    Attributes:
        magic: 'GDST' または 'GST2'
        format: 埋め込み画像の形式
        width, height: ヘッダ上のサイズ
        data: 埋め込み画像のバイト列
    """

    def __init__(self, magic: str, format: DataFormat, width: int, height: int, data: bytes):
        self.magic = magic
        self.format = format
        self.width = width
        self.height = height
        self.data = data

    def to_array(self) -> np.ndarray:
        return decode_embedded_image(self.data, self.format)


def _read_gdst(reader: BinaryReader) -> GodotTexture:
    width = reader.read('u16')       # テクスチャ幅
    reader.read('u16')               # 画像幅
    height = reader.read('u16')      # テクスチャ高さ
    reader.read('u16')               # 画像高さ
    reader.read('u32')               # フラグ
    bits = DataFormatBits(reader.read('u32'))
    fmt = _gdst_format(bits)
    if bits & DataFormatBits.HAS_MIPMAPS:
        log_print(INFO, "Godotテクスチャの追加ミップマップは無視します", name="decoder.godot")
    reader.read('u32')               # ミップマップ数

    size = reader.read('u32')
    tag = reader.read_magic(4)
    if tag != _GDST_TAGS[fmt]:
        raise DecodingError(f"ミップマップのタグが {fmt.name} ではありません: {tag!r}")
    if size < 4:
        raise DecodingError(f"ミップマップのサイズが不正です: {size}")
    return GodotTexture('GDST', fmt, width, height, reader.read_buf(size - 4))


def _read_gst2(reader: BinaryReader) -> GodotTexture:
    version = reader.read('u32')
    if version != 1:
        raise DecodingError(f"対応していないGodotテクスチャのバージョンです: {version}")
    reader.read('u32')               # 幅
    reader.read('u32')               # 高さ
    reader.read('u32')               # データ形式ビット
    reader.read('u32')               # ミップマップ上限
    reader.skip(12)

    value = reader.read('u32')
    try:
        fmt = DataFormat(value)
    except ValueError:
        raise DecodingError(f"不正なデータ形式です: {value}") from None
    width = reader.read('u16')
    height = reader.read('u16')
    reader.read('u32')               # ミップマップ数
    reader.read('u32')               # 画像形式
    if fmt not in _PIL_FORMATS:
        raise DecodingError(f"{fmt.name} 形式のGodotテクスチャには対応していません")

    size = reader.read('u32')
    return GodotTexture('GST2', fmt, width, height, reader.read_buf(size))


def load_godot_texture(stream: BinaryIO) -> GodotTexture:
    """
    Godotテクスチャの先頭ミップマップを取り出す

    Raises:
        DecodingError: テクスチャでない、または対応していない形式の場合
    """
    reader = BinaryReader.le(stream)
    try:
        reader.rewind()
        magic = reader.read_magic(4)
        if magic == b'GDST':
            texture = _read_gdst(reader)
        elif magic == b'GST2':
            texture = _read_gst2(reader)
        elif magic == b'GD3T':
            raise DecodingError("Godotの3Dテクスチャには対応していません")
        elif magic == b'GDAT':
            raise DecodingError("Godotの配列テクスチャには対応していません")
        else:
            raise DecodingError("Godotのテクスチャファイルではありません")
    except ReaderError as e:
        raise DecodingError(f"Godotテクスチャの読み込みに失敗しました: {e}") from e

    log_print(DEBUG, f"{texture.magic} {texture.format.name} {texture.width}x{texture.height}",
              name="decoder.godot")
    return texture


class GodotTextureDecoder(ImageDecoder):
    """Godotテクスチャ（.stex / .ctex）デコーダー"""

    @property
    def supported_extensions(self) -> List[str]:
        return ['.stex', '.ctex']

    def decode(self, data: bytes) -> np.ndarray:
        return load_godot_texture(io.BytesIO(data)).to_array()

    def get_image_info(self, data: bytes) -> Optional[Tuple[int, int, int]]:
        try:
            texture = load_godot_texture(io.BytesIO(data))
        except DecodingError:
            return None
        return texture.width, texture.height, 4
