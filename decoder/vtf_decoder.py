"""
Valve Texture Format（VTF）デコーダー

Source Engine のテクスチャファイルを読み込み、各ミップマップ・フレーム・面・スライスの
テクスチャをRGBAのnumpy配列に変換する
"""

import io
from enum import IntEnum, IntFlag
from typing import BinaryIO, List, Optional, Tuple

import numpy as np

from arc.errors import ReaderError
from arc.reader import BinaryReader
from logutils import log_print, DEBUG, WARNING
from .bc_decoder import BlockFormat, decode_block_texture
from .common import DecodingError
from .decoder import ImageDecoder


class TextureFlags(IntFlag):
    POINTSAMPLE = 0x00000001
    TRILINEAR = 0x00000002
    CLAMPS = 0x00000004
    CLAMPT = 0x00000008
    ANISOTROPIC = 0x00000010
    HINT_DXT5 = 0x00000020
    PWL_CORRECTED = 0x00000040
    NORMAL = 0x00000080
    NOMIP = 0x00000100
    NOLOD = 0x00000200
    ALL_MIPS = 0x00000400
    PROCEDURAL = 0x00000800
    ONEBITALPHA = 0x00001000
    EIGHTBITALPHA = 0x00002000
    ENVMAP = 0x00004000
    RENDERTARGET = 0x00008000
    DEPTHRENDERTARGET = 0x00010000
    NODEBUGOVERRIDE = 0x00020000
    SINGLECOPY = 0x00040000
    PRE_SRGB = 0x00080000
    NODEPTHBUFFER = 0x00800000
    CLAMPU = 0x02000000
    VERTEXTEXTURE = 0x04000000
    SSBUMP = 0x08000000
    BORDER = 0x20000000


class TextureFormat(IntEnum):
    NONE = -1
    RGBA8888 = 0
    ABGR8888 = 1
    RGB888 = 2
    BGR888 = 3
    RGB565 = 4
    I8 = 5
    IA88 = 6
    P8 = 7
    A8 = 8
    RGB888_BLUESCREEN = 9
    BGR888_BLUESCREEN = 10
    ARGB8888 = 11
    BGRA8888 = 12
    DXT1 = 13
    DXT3 = 14
    DXT5 = 15
    BGRX8888 = 16
    BGR565 = 17
    BGRX5551 = 18
    BGRA4444 = 19
    DXT1_ONEBITALPHA = 20
    BGRA5551 = 21
    UV88 = 22
    UVWQ8888 = 23
    RGBA16161616F = 24
    RGBA16161616 = 25
    UVLX8888 = 26

    @classmethod
    def parse(cls, value: int) -> "TextureFormat":
        try:
            fmt = cls(value)
        except ValueError:
            raise DecodingError(f"不正なテクスチャ形式です: {value}") from None
        # DXT1 は常に1ビットアルファとして扱う
        if fmt == TextureFormat.DXT1:
            return TextureFormat.DXT1_ONEBITALPHA
        return fmt


# 1ピクセルあたりのバイト数（ブロック圧縮と特殊形式は別扱い）
_BYTES_PER_PIXEL = {
    TextureFormat.RGBA8888: 4, TextureFormat.ABGR8888: 4, TextureFormat.RGB888: 3,
    TextureFormat.BGR888: 3, TextureFormat.RGB565: 2, TextureFormat.I8: 1,
    TextureFormat.IA88: 2, TextureFormat.A8: 1, TextureFormat.RGB888_BLUESCREEN: 3,
    TextureFormat.BGR888_BLUESCREEN: 3, TextureFormat.ARGB8888: 4, TextureFormat.BGRA8888: 4,
    TextureFormat.BGRX8888: 4, TextureFormat.BGR565: 2, TextureFormat.BGRX5551: 2,
    TextureFormat.BGRA4444: 2, TextureFormat.BGRA5551: 2, TextureFormat.UV88: 2,
    TextureFormat.UVWQ8888: 4, TextureFormat.RGBA16161616F: 8, TextureFormat.RGBA16161616: 8,
    TextureFormat.UVLX8888: 4,
}

_BLOCK_FORMATS = {
    TextureFormat.DXT1: BlockFormat.BC1,
    TextureFormat.DXT1_ONEBITALPHA: BlockFormat.BC1A,
    TextureFormat.DXT3: BlockFormat.BC2,
    TextureFormat.DXT5: BlockFormat.BC3,
}


def texture_byte_size(fmt: TextureFormat, width: int, height: int) -> int:
    """指定形式・サイズのテクスチャのバイト数"""
    if fmt == TextureFormat.NONE:
        return 0
    if fmt == TextureFormat.P8:
        return 256 * 4 + width * height
    if fmt in _BLOCK_FORMATS:
        block = 8 if fmt in (TextureFormat.DXT1, TextureFormat.DXT1_ONEBITALPHA) else 16
        return ((width + 3) // 4) * ((height + 3) // 4) * block
    return width * height * _BYTES_PER_PIXEL[fmt]


def _expand_bits(value: np.ndarray, bits: int) -> np.ndarray:
    """bits ビットの値をビット複製で8ビットに広げる"""
    value = value.astype(np.int32)
    dest = np.zeros_like(value)
    remaining = 8
    while remaining >= bits:
        dest = (dest << bits) | value
        remaining -= bits
    if remaining > 0:
        dest = (dest << remaining) | (value >> (bits - remaining))
    return dest.astype(np.uint8)


def _extract(words: np.ndarray, offset: int, length: int) -> np.ndarray:
    return _expand_bits((words >> offset) & ((1 << length) - 1), length)


class VtfTexture:
    """
    1枚分のテクスチャデータ

    Args:
        width: 幅
        height: 高さ
        format: テクスチャ形式
        data: 生データ（texture_byte_size と同じ長さ）
    """

    def __init__(self, width: int, height: int, format: TextureFormat, data: bytes):
        expected = texture_byte_size(format, width, height)
        if len(data) != expected:
            raise DecodingError(
                f"{format.name} {width}x{height} のデータ長が不正です（{len(data)} != {expected}）")
        self.width = width
        self.height = height
        self.format = format
        self.data = bytes(data)

    def to_array(self, max_workers: Optional[int] = None) -> np.ndarray:
        """
        RGBAのnumpy配列に変換する

        Returns:
            (height, width, 4) の配列。RGBA16161616 系は uint16、それ以外は uint8
        """
        fmt = self.format
        w, h = self.width, self.height

        if fmt in (TextureFormat.NONE, TextureFormat.P8):
            raise DecodingError(f"{fmt.name} 形式の変換には対応していません")

        if fmt in _BLOCK_FORMATS:
            return decode_block_texture(self.data, _BLOCK_FORMATS[fmt], w, h, max_workers)

        if fmt in (TextureFormat.RGBA16161616F, TextureFormat.RGBA16161616):
            return np.frombuffer(self.data, dtype='<u2').reshape(h, w, 4).astype(np.uint16)

        raw = np.frombuffer(self.data, dtype=np.uint8).reshape(h, w, _BYTES_PER_PIXEL[fmt])
        out = np.empty((h, w, 4), dtype=np.uint8)
        out[..., 3] = 255

        if fmt in (TextureFormat.RGBA8888, TextureFormat.UVWQ8888, TextureFormat.UVLX8888):
            out[...] = raw
        elif fmt == TextureFormat.ABGR8888:
            out[...] = raw[..., ::-1]
        elif fmt == TextureFormat.ARGB8888:
            out[...] = raw[..., [3, 0, 1, 2]]
        elif fmt == TextureFormat.BGRA8888:
            out[...] = raw[..., [2, 1, 0, 3]]
        elif fmt == TextureFormat.RGB888:
            out[..., :3] = raw
        elif fmt in (TextureFormat.BGR888, TextureFormat.BGRX8888):
            out[..., :3] = raw[..., [2, 1, 0]]
            if fmt == TextureFormat.BGRX8888 and raw[..., 3].any():
                log_print(WARNING, "BGRX8888 のテクスチャにアルファ値が含まれています", name="decoder.vtf")
        elif fmt in (TextureFormat.RGB888_BLUESCREEN, TextureFormat.BGR888_BLUESCREEN):
            rgb = raw if fmt == TextureFormat.RGB888_BLUESCREEN else raw[..., ::-1]
            out[..., :3] = rgb
            blue = (rgb[..., 0] == 0) & (rgb[..., 1] == 0) & (rgb[..., 2] == 255)
            out[blue] = 0
        elif fmt == TextureFormat.I8:
            out[..., :3] = raw
        elif fmt == TextureFormat.IA88:
            out[..., :3] = raw[..., :1]
            out[..., 3] = raw[..., 1]
        elif fmt == TextureFormat.A8:
            out[..., :3] = 0
            out[..., 3] = raw[..., 0]
        elif fmt == TextureFormat.UV88:
            out[..., :2] = raw
            out[..., 2] = 0
        else:
            words = raw[..., 0].astype(np.int32) | (raw[..., 1].astype(np.int32) << 8)
            if fmt == TextureFormat.RGB565:
                out[..., 0] = _extract(words, 0, 5)
                out[..., 1] = _extract(words, 5, 6)
                out[..., 2] = _extract(words, 11, 5)
            elif fmt == TextureFormat.BGR565:
                out[..., 0] = _extract(words, 11, 5)
                out[..., 1] = _extract(words, 5, 6)
                out[..., 2] = _extract(words, 0, 5)
            elif fmt == TextureFormat.BGRX5551:
                out[..., 0] = _extract(words, 10, 5)
                out[..., 1] = _extract(words, 5, 5)
                out[..., 2] = _extract(words, 0, 5)
            elif fmt == TextureFormat.BGRA5551:
                out[..., 0] = _extract(words, 10, 5)
                out[..., 1] = _extract(words, 5, 5)
                out[..., 2] = _extract(words, 0, 5)
                out[..., 3] = _extract(words, 15, 1)
            elif fmt == TextureFormat.BGRA4444:
                out[..., 0] = _extract(words, 8, 4)
                out[..., 1] = _extract(words, 4, 4)
                out[..., 2] = _extract(words, 0, 4)
                out[..., 3] = _extract(words, 12, 4)
            else:
                raise DecodingError(f"{fmt.name} 形式の変換には対応していません")
        return out


class VtfHeader:
    """VTFヘッダ（リソーステーブルを含む）"""

    MAGIC = b'VTF\0'
    LOWRES_TAG = b'\x01\0\0'
    HIGHRES_TAG = b'\x30\0\0'

    def __init__(self):
        self.version: Tuple[int, int] = (0, 0)
        self.header_size = 0
        self.width = 0
        self.height = 0
        self.flags = TextureFlags(0)
        self.frames = 1
        self.first_frame = 0
        self.reflectivity: List[float] = [0.0, 0.0, 0.0]
        self.bumpmap_scale = 0.0
        self.highres_format = TextureFormat.NONE
        self.mipmaps = 1
        self.faces = 1
        self.lowres_format = TextureFormat.NONE
        self.lowres_width = 0
        self.lowres_height = 0
        self.slices = 1
        self.resources: List[Tuple[bytes, int, int]] = []
        self.highres_offset = 0
        self.lowres_offset: Optional[int] = None

    @classmethod
    def load(cls, stream: BinaryIO) -> "VtfHeader":
        reader = BinaryReader.le(stream)
        try:
            return cls._read(reader)
        except ReaderError as e:
            raise DecodingError(f"VTFヘッダの読み込みに失敗しました: {e}") from e

    @classmethod
    def _read(cls, reader: BinaryReader) -> "VtfHeader":
        header = cls()
        if reader.read_magic(4) != cls.MAGIC:
            raise DecodingError("VTFの識別子が不正です")

        header.version = tuple(reader.read_array('u32', 2))
        header.header_size = reader.read('u32')
        header.width = reader.read('u16')
        header.height = reader.read('u16')
        header.flags = TextureFlags(reader.read('u32'))
        header.frames = reader.read('u16')
        header.first_frame = reader.read('u16')
        reader.skip(4)
        header.reflectivity = reader.read_array('f32', 3)
        reader.skip(4)
        header.bumpmap_scale = reader.read('f32')
        header.highres_format = TextureFormat.parse(reader.read('i32'))
        header.mipmaps = reader.read('u8')
        header.lowres_format = TextureFormat.parse(reader.read('i32'))
        header.lowres_width = reader.read('u8')
        header.lowres_height = reader.read('u8')
        header.slices = reader.read('u16') if header.version > (7, 2) else 1

        if header.flags & TextureFlags.ENVMAP:
            if header.version < (7, 5) and header.first_frame == 0xFFFF:
                header.first_frame = 0
                header.faces = 7
            else:
                header.faces = 6

        if header.version < (7, 3):
            offset = header.header_size
            lowres_size = texture_byte_size(header.lowres_format, header.lowres_width, header.lowres_height)
            if lowres_size > 0:
                header.lowres_offset = offset
                offset += lowres_size
            header.highres_offset = offset
        else:
            reader.skip(3)
            count = reader.read('u32')
            reader.skip(8)
            for _ in range(count):
                tag = reader.read_magic(3)
                flags = reader.read('u8')
                offset = reader.read('u32')
                header.resources.append((tag, flags, offset))

            offsets = {tag: offset for tag, _, offset in reversed(header.resources)}
            header.lowres_offset = offsets.get(cls.LOWRES_TAG)
            if cls.HIGHRES_TAG not in offsets:
                raise DecodingError("VTFに高解像度テクスチャのリソースがありません")
            header.highres_offset = offsets[cls.HIGHRES_TAG]

        log_print(DEBUG, f"VTF v{header.version[0]}.{header.version[1]} {header.width}x{header.height} "
                         f"{header.highres_format.name} mip={header.mipmaps} frames={header.frames} "
                         f"faces={header.faces} slices={header.slices}", name="decoder.vtf")
        return header

    def mip_size(self, mipmap: int) -> Tuple[int, int]:
        """ミップマップレベル（0が最大）の幅と高さ"""
        return max(self.width >> mipmap, 1), max(self.height >> mipmap, 1)

    def texture_order(self):
        """ファイル内のテクスチャの並び順で (mipmap, frame, face, slice) を列挙する"""
        for mipmap in range(self.mipmaps - 1, -1, -1):
            for frame in range(self.frames):
                for face in range(self.faces):
                    for slice_ in range(self.slices):
                        yield mipmap, frame, face, slice_


def _read_texture(reader: BinaryReader, fmt: TextureFormat, width: int, height: int) -> VtfTexture:
    return VtfTexture(width, height, fmt, reader.read_buf(texture_byte_size(fmt, width, height)))


class Vtf:
    """
    VTFファイル全体

    テクスチャはファイル内の順（小さいミップマップから）に保持する
    """

    def __init__(self, header: VtfHeader, textures: List[VtfTexture], thumbnail: Optional[VtfTexture]):
        self.header = header
        self.textures = textures
        self.thumbnail = thumbnail

    @property
    def format(self) -> TextureFormat:
        return self.header.highres_format

    @property
    def width(self) -> int:
        return self.header.width

    @property
    def height(self) -> int:
        return self.header.height

    @property
    def mipmaps(self) -> int:
        return self.header.mipmaps

    @property
    def frames(self) -> int:
        return self.header.frames

    @property
    def faces(self) -> int:
        return self.header.faces

    @property
    def slices(self) -> int:
        return self.header.slices

    @classmethod
    def load(cls, stream: BinaryIO) -> "Vtf":
        """ストリームからVTF全体を読み込む"""
        stream.seek(0)
        header = VtfHeader.load(stream)
        reader = BinaryReader.le(stream)
        try:
            thumbnail = None
            if header.lowres_offset is not None and texture_byte_size(
                    header.lowres_format, header.lowres_width, header.lowres_height) > 0:
                reader.seek(header.lowres_offset)
                thumbnail = _read_texture(reader, header.lowres_format, header.lowres_width, header.lowres_height)

            reader.seek(header.highres_offset)
            textures = []
            for mipmap, _, _, _ in header.texture_order():
                width, height = header.mip_size(mipmap)
                textures.append(_read_texture(reader, header.highres_format, width, height))
        except ReaderError as e:
            raise DecodingError(f"VTFテクスチャの読み込みに失敗しました: {e}") from e
        return cls(header, textures, thumbnail)

    def texture_index(self, mipmap: int = 0, frame: int = 0, face: int = 0, slice: int = 0) -> Optional[int]:
        """(mipmap, frame, face, slice) のテクスチャの格納位置。範囲外ならNone"""
        if (not 0 <= mipmap < self.mipmaps or not 0 <= frame < self.frames
                or not 0 <= face < self.faces or not 0 <= slice < self.slices):
            return None
        stored_mip = self.mipmaps - 1 - mipmap
        stored_frame = (frame + self.header.first_frame) % self.frames
        return (slice
                + face * self.slices
                + stored_frame * self.faces * self.slices
                + stored_mip * self.frames * self.faces * self.slices)

    def texture(self, mipmap: int = 0, frame: int = 0, face: int = 0, slice: int = 0) -> Optional[VtfTexture]:
        index = self.texture_index(mipmap, frame, face, slice)
        return None if index is None else self.textures[index]

    @classmethod
    def load_mipmap(cls, stream: BinaryIO, mipmap: int = 0, frame: int = 0) -> VtfTexture:
        """
        指定ミップマップの1フレームだけを読み込む

        frame はヘッダの先頭フレームからの番号。手前のテクスチャは読まずにシークで飛ばす
        """
        stream.seek(0)
        header = VtfHeader.load(stream)
        if not 0 <= mipmap < header.mipmaps:
            raise DecodingError(f"ミップマップ {mipmap} は存在しません（{header.mipmaps} 段）")
        if not 0 <= frame < header.frames:
            raise DecodingError(f"フレーム {frame} は存在しません（{header.frames} フレーム）")
        stored_frame = (frame + header.first_frame) % header.frames

        reader = BinaryReader.le(stream)
        offset = header.highres_offset
        fmt = header.highres_format
        try:
            for level, frame_, face, slice_ in header.texture_order():
                width, height = header.mip_size(level)
                if (level, frame_, face, slice_) == (mipmap, stored_frame, 0, 0):
                    reader.seek(offset)
                    return _read_texture(reader, fmt, width, height)
                offset += texture_byte_size(fmt, width, height)
        except ReaderError as e:
            raise DecodingError(f"VTFテクスチャの読み込みに失敗しました: {e}") from e
        raise DecodingError("指定されたテクスチャが見つかりません")


class VTFImageDecoder(ImageDecoder):
    """VTF画像デコーダー（最大ミップマップの、ヘッダが示す先頭フレームをデコードする）"""

    @property
    def supported_extensions(self) -> List[str]:
        return ['.vtf']

    def decode(self, data: bytes) -> np.ndarray:
        texture = Vtf.load_mipmap(io.BytesIO(data), 0)
        return texture.to_array()

    def get_image_info(self, data: bytes) -> Optional[Tuple[int, int, int]]:
        try:
            header = VtfHeader.load(io.BytesIO(data))
        except DecodingError:
            return None
        return header.width, header.height, 4
