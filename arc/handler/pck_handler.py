"""
Godot PCKアーカイブハンドラ

Godot Engine のリソースパック（.pck）を読み込む
"""

import re
from enum import IntFlag

from ..errors import ArchiveLoadError, ReaderError
from ..reader import BinaryReader
from .handler import ArchiveHandler, Source, source_name

# res://xxx のようなスキーム付きパス
_SCHEME_PATTERN = re.compile(r'^(.+?)://(.+)$')


class PckArchiveFlags(IntFlag):
    ENCRYPTED_ARCHIVE = 1 << 0


class PckFileFlags(IntFlag):
    ENCRYPTED_FILE = 1 << 0


def fix_pck_path(path: str) -> str:
    """
    PCK内のパスをツリー用のパスに変換する

    末尾のNUL文字を取り除き、'scheme://rest' を 'scheme/rest' にする。
    スキームを持たないパスはそのまま使う。
    """
    path = path.rstrip('\0')
    match = _SCHEME_PATTERN.match(path)
    if match:
        return f"{match.group(1)}/{match.group(2)}"
    return path


class GodotPckHandler(ArchiveHandler):
    """Godot PCKアーカイブハンドラ"""

    supported_extensions = ['.pck']
    kind = "godot-pck"

    MAGIC = b'GDPC'
    SUPPORTED_VERSIONS = (1, 2)
    RESERVED_SIZE = 16 * 4
    MD5_SIZE = 16

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
                entries = self._read_index(reader)
            except ReaderError as e:
                raise self._load_error(f"インデックスの読み込みに失敗しました: {e}", self.path, e) from e

        for path, offset, size in entries:
            self._add_file(fix_pck_path(path), shared, offset, size)

        self.debug_info(f"PCKをロードしました: {self.file_count()} ファイル")

    def _read_index(self, reader: BinaryReader) -> list:
        if reader.read_magic(4) != self.MAGIC:
            raise ArchiveLoadError(self.kind, "PCKの識別子が不正です", path=self.path, offset=0)

        pack_version = reader.read('i32')
        if pack_version not in self.SUPPORTED_VERSIONS:
            raise ArchiveLoadError(self.kind, f"対応していないPCKバージョンです: {pack_version}", path=self.path)
        engine_version = reader.read_array('i32', 3)
        self.debug_debug(f"PCK v{pack_version} (Godot {'.'.join(str(v) for v in engine_version)})")

        base_offset = 0
        if pack_version == 2:
            flags = PckArchiveFlags(reader.read('u32'))
            base_offset = reader.read('u64')
            if flags & PckArchiveFlags.ENCRYPTED_ARCHIVE:
                raise ArchiveLoadError(self.kind, "暗号化されたPCKには対応していません", path=self.path)

        reader.skip(self.RESERVED_SIZE)
        file_count = reader.read('i32')

        entries = []
        for _ in range(max(file_count, 0)):
            path = reader.read_length_string('i32')
            offset = reader.read('u64') + base_offset
            size = reader.read('u64')
            reader.skip(self.MD5_SIZE)

            if pack_version == 2:
                flags = PckFileFlags(reader.read('u32'))
                if flags & PckFileFlags.ENCRYPTED_FILE:
                    self.debug_warning(f"暗号化されたファイルを除外します: \"{path.rstrip(chr(0))}\"")
                    continue

            entries.append((path, offset, size))
        return entries
