"""
型付きバイナリリーダー

シーク可能なバイトストリームからエンディアンを考慮してプリミティブ値・配列・文字列を読み込む
"""

import io
import struct
from enum import Enum
from typing import BinaryIO, List, Optional, Union

from .errors import ReaderError

Number = Union[int, float]


class Endianness(Enum):
    """バイトオーダー"""
    LITTLE = '<'
    BIG = '>'


# プリミティブ名 -> (structフォーマット文字, バイト数)
# 128ビット整数はstructにないので別扱い
_PRIMITIVES = {
    'u8': ('B', 1),
    'u16': ('H', 2),
    'u32': ('I', 4),
    'u64': ('Q', 8),
    'i8': ('b', 1),
    'i16': ('h', 2),
    'i32': ('i', 4),
    'i64': ('q', 8),
    'f32': ('f', 4),
    'f64': ('d', 8),
    'u128': (None, 16),
    'i128': (None, 16),
}


def primitive_size(fmt: str) -> int:
    """プリミティブ型のバイト数を返す"""
    try:
        return _PRIMITIVES[fmt][1]
    except KeyError:
        raise ValueError(f"未知のプリミティブ型です: {fmt}") from None


class BinaryReader:
    """
    ストリームとエンディアン設定をまとめたリーダー

    読み込みに失敗した場合は ReaderError を送出する。途中まで読めた状態は
    残らないので、例外を受けたリーダーは破棄すること。
    """

    def __init__(self, stream: BinaryIO, endianness: Endianness = Endianness.LITTLE):
        self.stream = stream
        self.endianness = endianness

    @classmethod
    def le(cls, stream: BinaryIO) -> "BinaryReader":
        return cls(stream, Endianness.LITTLE)

    @classmethod
    def be(cls, stream: BinaryIO) -> "BinaryReader":
        return cls(stream, Endianness.BIG)

    # ------------------------------------------------------------------
    # 生バイト
    # ------------------------------------------------------------------

    def _read_exact(self, length: int) -> bytes:
        if length < 0:
            raise ReaderError(f"負の長さは読み込めません: {length}", self._safe_position())
        position = self._safe_position()
        data = self.stream.read(length) if length else b''
        if data is None or len(data) != length:
            got = 0 if data is None else len(data)
            raise ReaderError(f"データが途中で終端しました（要求 {length} バイト, 取得 {got} バイト）", position)
        return data

    def _safe_position(self) -> Optional[int]:
        try:
            return self.stream.tell()
        except (OSError, ValueError):
            return None

    def read_buf(self, length: int) -> bytes:
        """length バイトをそのまま読み込む"""
        return self._read_exact(length)

    def read_magic(self, length: int) -> bytes:
        """マジックナンバー用の固定長バイト列を読み込む"""
        return self._read_exact(length)

    # ------------------------------------------------------------------
    # プリミティブ
    # ------------------------------------------------------------------

    def _unpack(self, fmt: str, order: Endianness) -> Number:
        code, size = _PRIMITIVES.get(fmt, (None, 0))
        if size == 0:
            raise ValueError(f"未知のプリミティブ型です: {fmt}")
        data = self._read_exact(size)
        if code is None:
            byteorder = 'little' if order is Endianness.LITTLE else 'big'
            return int.from_bytes(data, byteorder, signed=fmt.startswith('i'))
        return struct.unpack(order.value + code, data)[0]

    def read(self, fmt: str) -> Number:
        """設定されたエンディアンでプリミティブ値を1つ読み込む"""
        return self._unpack(fmt, self.endianness)

    def read_le(self, fmt: str) -> Number:
        return self._unpack(fmt, Endianness.LITTLE)

    def read_be(self, fmt: str) -> Number:
        return self._unpack(fmt, Endianness.BIG)

    def read_array(self, fmt: str, count: int) -> List[Number]:
        """
        同じ型のプリミティブ値を count 個読み込む

        Args:
            fmt: プリミティブ型名（'u32' など）
            count: 要素数

        Returns:
            値のリスト
        """
        code, size = _PRIMITIVES.get(fmt, (None, 0))
        if size == 0:
            raise ValueError(f"未知のプリミティブ型です: {fmt}")
        if code is None:
            return [self.read(fmt) for _ in range(count)]
        data = self._read_exact(size * count)
        return list(struct.unpack(f"{self.endianness.value}{count}{code}", data))

    read_vec = read_array

    # ------------------------------------------------------------------
    # 文字列
    # ------------------------------------------------------------------

    def _decode_utf8(self, data: bytes, position: Optional[int]) -> str:
        try:
            return data.decode('utf-8')
        except UnicodeDecodeError as e:
            raise ReaderError(f"UTF-8として不正なバイト列です: {e}", position) from e

    def read_terminated_string(self, terminator: int = 0x00) -> str:
        """終端バイトまでを読み込み、UTF-8としてデコードする（終端バイトは含まない）"""
        position = self._safe_position()
        buf = bytearray()
        while True:
            byte = self._read_exact(1)[0]
            if byte == terminator:
                break
            buf.append(byte)
        return self._decode_utf8(bytes(buf), position)

    def read_string(self, length: Optional[int] = None) -> str:
        """
        文字列を読み込む

        Args:
            length: バイト数。Noneの場合はNUL文字まで読み込む

        Returns:
            UTF-8としてデコードした文字列
        """
        if length is None:
            return self.read_terminated_string(0x00)
        position = self._safe_position()
        return self._decode_utf8(self._read_exact(length), position)

    def read_length_string(self, fmt: str) -> str:
        """
        fmt 型の長さプレフィックスに続く UTF-8 文字列を読み込む

        長さが整数でない、または負の場合は ReaderError
        """
        position = self._safe_position()
        length = self.read(fmt)
        if not isinstance(length, int) or length < 0:
            raise ReaderError(f"文字列長として使えない値です: {length!r}", position)
        return self.read_string(length)

    # ------------------------------------------------------------------
    # シーク
    # ------------------------------------------------------------------

    def seek(self, pos: int, whence: int = io.SEEK_SET) -> int:
        try:
            return self.stream.seek(pos, whence)
        except (OSError, ValueError) as e:
            raise ReaderError(f"シークに失敗しました: {e}", self._safe_position()) from e

    def rewind(self) -> None:
        self.seek(0)

    def position(self) -> int:
        return self.seek(0, io.SEEK_CUR)

    def size(self) -> int:
        """ストリーム全体のサイズ（現在位置は維持する）"""
        position = self.position()
        size = self.seek(0, io.SEEK_END)
        self.seek(position)
        return size

    def bytes_remaining(self) -> int:
        return self.size() - self.position()

    def skip(self, length: int) -> None:
        """length バイト読み飛ばす。ストリーム終端を越える場合は ReaderError"""
        if length < 0:
            raise ReaderError(f"負の長さは読み飛ばせません: {length}", self._safe_position())
        remaining = self.bytes_remaining()
        if length > remaining:
            raise ReaderError(f"読み飛ばし量がストリーム終端を越えます（{length} > {remaining}）",
                              self._safe_position())
        self.seek(length, io.SEEK_CUR)
