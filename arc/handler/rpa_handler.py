"""
Ren'Py RPAアーカイブハンドラ

RPA-3.0 形式のアーカイブを読み込む。インデックスは zlib 圧縮された pickle で、
各エントリのオフセットとサイズはヘッダのキーで XOR されている。
"""

import string
from typing import Any, List, Tuple

from ..errors import ArchiveLoadError, PickleDecodeError, ReaderError
from ..pickle_parser import loads, to_json
from ..reader import BinaryReader
from .handler import ArchiveHandler, Source, source_name


def _parse_hex(token: str, digits: int) -> int:
    if len(token) != digits or any(c not in string.hexdigits for c in token):
        raise ValueError(f"{digits}桁の16進数ではありません: '{token}'")
    return int(token, 16)


class RenPyArchiveHandler(ArchiveHandler):
    """Ren'Py RPAアーカイブハンドラ"""

    supported_extensions = ['.rpa']
    kind = "renpy-rpa"

    HEADER_LENGTH = 34
    IDENTIFIER = "RPA-3.0"
    OFFSET_DIGITS = 16
    KEY_DIGITS = 8

    def __init__(self, source: Source):
        super().__init__()
        self.path = source_name(source)
        try:
            self._load(source)
        except Exception:
            self._abort()
            raise

    def _load(self, source: Source) -> None:
        shared = self._share(source)
        with shared.locked() as stream:
            reader = BinaryReader.le(stream)
            try:
                reader.rewind()
                offset, key = self._read_header(reader)
                reader.seek(offset)
                encoded = reader.read_buf(reader.bytes_remaining())
            except ReaderError as e:
                raise self._load_error(f"ヘッダの読み込みに失敗しました: {e}", self.path, e) from e

        try:
            index = to_json(loads(encoded, compressed=True))
        except PickleDecodeError as e:
            raise ArchiveLoadError(self.kind, f"インデックスのデコードに失敗しました: {e}",
                                   path=self.path, offset=offset) from e

        if not isinstance(index, dict):
            raise ArchiveLoadError(self.kind, "インデックスが辞書ではありません", path=self.path, offset=offset)

        for path, chunks in index.items():
            chunks = self._parse_chunks(path, chunks, key)
            if not chunks:
                raise ArchiveLoadError(self.kind, f"データチャンクがありません: \"{path}\"", path=self.path)
            if len(chunks) > 1:
                self.debug_warning(f"複数チャンクのファイルを除外します: \"{path}\"")
                continue
            chunk_offset, chunk_size = chunks[0]
            self._add_file(path, shared, chunk_offset, chunk_size)

        self.debug_info(f"RPAをロードしました: {self.file_count()} ファイル")

    def _read_header(self, reader: BinaryReader) -> Tuple[int, int]:
        """ヘッダを読み込み、(インデックスのオフセット, XORキー) を返す"""
        header = reader.read_string(self.HEADER_LENGTH)
        if not header.endswith('\n'):
            raise ArchiveLoadError(self.kind, "ヘッダが改行で終わっていません", path=self.path, offset=0)

        tokens = header.strip().split(' ')
        if len(tokens) != 3 or tokens[0] != self.IDENTIFIER:
            raise ArchiveLoadError(self.kind, "RPAのヘッダが不正です", path=self.path, offset=0)

        try:
            return _parse_hex(tokens[1], self.OFFSET_DIGITS), _parse_hex(tokens[2], self.KEY_DIGITS)
        except ValueError as e:
            raise ArchiveLoadError(self.kind, f"RPAのヘッダが不正です: {e}", path=self.path, offset=0) from e

    def _parse_chunks(self, path: str, chunks: Any, key: int) -> List[Tuple[int, int]]:
        if not isinstance(chunks, list):
            raise ArchiveLoadError(self.kind, f"チャンク一覧が不正です: \"{path}\"", path=self.path)

        result = []
        for chunk in chunks:
            if (not isinstance(chunk, list) or len(chunk) < 2
                    or not all(isinstance(v, int) and not isinstance(v, bool) for v in chunk[:2])):
                raise ArchiveLoadError(self.kind, f"チャンクが不正です: \"{path}\"", path=self.path)
            if len(chunk) > 2 and chunk[2]:
                self.debug_warning(f"チャンクのプレフィックスを無視します: \"{path}\"")
            result.append((chunk[0] ^ key, chunk[1] ^ key))
        return result
