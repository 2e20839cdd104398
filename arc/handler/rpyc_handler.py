"""
Ren'Py コンパイル済みスクリプト（.rpyc）リーダー

スロット単位のチャンクを取り出し、zlib 展開と pickle のデコードを行う
"""

import zlib
from enum import IntEnum
from typing import BinaryIO, List, Optional, Tuple, Union

from logutils import log_print, DEBUG
from ..errors import ArchiveLoadError, PickleDecodeError, ReaderError
from ..pickle_parser import Value, loads
from ..reader import BinaryReader


class ScriptSlot(IntEnum):
    ORIGINAL = 1
    STATIC_TRANSFORM = 2


class RenPyScriptChunk:
    """スロット番号と生データ"""

    def __init__(self, slot: Union[ScriptSlot, int], data: bytes):
        self.slot = slot
        self.data = data

    def decompress(self) -> bytes:
        try:
            return zlib.decompress(self.data)
        except zlib.error as e:
            raise PickleDecodeError(f"zlibの展開に失敗しました: {e}") from e

    def decode(self) -> Value:
        """
        展開してデータ値としてデコードする

        スクリプトの AST はクラスのインスタンスなので、通常は
        オブジェクト生成のオペコードで PickleDecodeError になる
        """
        return loads(self.data, compressed=True)


class RenPyScriptReader:
    """
    .rpyc のチャンクテーブルを読むリーダー

    Args:
        stream: シーク可能なストリーム（所有権は呼び出し側に残る）
    """

    MAGIC = "RENPY RPC2"

    def __init__(self, stream: BinaryIO):
        self._stream = stream
        reader = BinaryReader.le(stream)
        try:
            reader.rewind()
            if reader.read_magic(len(self.MAGIC)) != self.MAGIC.encode('ascii'):
                raise ArchiveLoadError("renpy-rpyc", "RPYCの識別子が不正です", offset=0)

            self._chunks: List[Tuple[int, int, int]] = []
            while True:
                slot, offset, length = reader.read_array('u32', 3)
                if slot == 0:
                    break
                self._chunks.append((slot, offset, length))
        except ReaderError as e:
            raise ArchiveLoadError("renpy-rpyc", f"チャンクテーブルの読み込みに失敗しました: {e}",
                                   offset=e.offset) from e

        log_print(DEBUG, f"RPYCチャンク: {self._chunks}", name="arc.handler.RenPyScriptReader")

    @property
    def chunks(self) -> List[Tuple[int, int, int]]:
        """(スロット, オフセット, 長さ) のリスト"""
        return list(self._chunks)

    def read_chunk(self, slot: Union[ScriptSlot, int]) -> Optional[RenPyScriptChunk]:
        """指定スロットのチャンクを読み込む。存在しない場合はNone"""
        for chunk_slot, offset, length in self._chunks:
            if chunk_slot == int(slot):
                reader = BinaryReader.le(self._stream)
                reader.seek(offset)
                return RenPyScriptChunk(slot, reader.read_buf(length))
        return None
