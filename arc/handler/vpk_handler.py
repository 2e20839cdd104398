"""
Source Engine VPKアーカイブハンドラ

ディレクトリファイル（xxx_dir.vpk）と分割アーカイブ（xxx_000.vpk ...）を読み込む
"""

import os
import re
from typing import Dict, List, Optional, Union

from ..errors import ArchiveLoadError, ReaderError, UnsupportedPreloadError
from ..reader import BinaryReader
from ..window import SharedStream, SubFileWindow
from .handler import ArchiveHandler, Source

# 選択されたファイル名からアーカイブ名を取り出す
_CHOSEN_PATTERN = re.compile(r'(.+?)(?:_dir|_\d+)?\.vpk', re.IGNORECASE)
# 同じディレクトリのファイルを分類する
_SIBLING_PATTERN = re.compile(r'(.+?)(?:_(dir|\d+))?\.vpk', re.IGNORECASE)


class VpkFile(SubFileWindow):
    """
    VPK内のファイル

    プリロードバイトを持つエントリの読み込みには対応していない（シークは可能）
    """

    def __init__(self, shared: SharedStream, offset: int, size: int, preload: bytes = b''):
        super().__init__(shared, offset, size)
        self.preload = bytes(preload)

    def readinto(self, buf) -> int:
        if self.preload:
            raise UnsupportedPreloadError(
                f"プリロードバイトを持つVPKエントリは読み込めません（{len(self.preload)} バイト）")
        return super().readinto(buf)

    def _new_window(self, shared: SharedStream) -> "VpkFile":
        return VpkFile(shared, self.offset, self.size, self.preload)


class VpkArchiveFiles:
    """
    VPKアーカイブを構成するファイル群

    Args:
        dir: ディレクトリファイル（パスまたはストリーム）
        parts: 分割アーカイブ番号 -> パスまたはストリーム
        dir_path: ディレクトリファイルのパス（表示・エラー用）
    """

    def __init__(self, dir: Source, parts: Optional[Dict[int, Source]] = None,
                 dir_path: Optional[str] = None):
        self.dir = dir
        self.parts = dict(parts or {})
        if dir_path is None and isinstance(dir, (str, os.PathLike)):
            dir_path = os.fspath(dir)
        self.dir_path = dir_path

    @classmethod
    def locate(cls, path: Union[str, os.PathLike]) -> "VpkArchiveFiles":
        """
        選択されたVPKファイルと同じアーカイブに属するファイルを探す

        xxx_dir.vpk / xxx_000.vpk のどれを選んでもよい。
        拡張子なしの xxx.vpk はディレクトリファイルとして扱う。

        Raises:
            ArchiveLoadError: VPKファイルでない、またはディレクトリファイルが見つからない
        """
        path = os.fspath(path)
        if not os.path.isfile(path) or not path.lower().endswith('.vpk'):
            raise ArchiveLoadError("vpk", "VPKファイルではありません", path=path)

        match = _CHOSEN_PATTERN.fullmatch(os.path.basename(path))
        if match is None:
            raise ArchiveLoadError("vpk", "VPKのファイル名として解釈できません", path=path)
        archive_name = match.group(1)

        directory = os.path.dirname(os.path.abspath(path))
        dir_file = None
        parts: Dict[int, str] = {}

        for filename in sorted(os.listdir(directory)):
            full = os.path.join(directory, filename)
            if not os.path.isfile(full):
                continue
            sibling = _SIBLING_PATTERN.fullmatch(filename)
            if sibling is None or sibling.group(1) != archive_name:
                continue
            suffix = sibling.group(2)
            if suffix is None or suffix.lower() == 'dir':
                # xxx_dir.vpk を優先する
                if dir_file is None or suffix is not None:
                    dir_file = full
            else:
                parts[int(suffix)] = full

        if dir_file is None:
            raise ArchiveLoadError("vpk", "ディレクトリファイルが見つかりません", path=path)

        return cls(dir_file, parts)


class VpkHandler(ArchiveHandler):
    """
    VPKアーカイブハンドラ

    ディレクトリツリーをロード時にすべて読み込み、各エントリを
    ディレクトリファイルまたは分割アーカイブ上のウィンドウとして登録する
    """

    supported_extensions = ['.vpk']
    kind = "vpk"

    MAGIC = b'\x34\x12\xAA\x55'
    # ディレクトリファイル自体にデータが格納されていることを示すアーカイブ番号
    DIR_ARCHIVE_INDEX = 0x7FFF
    ENTRY_TERMINATOR = 0xFFFF
    V2_EXTRA_HEADER = 16

    def __init__(self, files: VpkArchiveFiles):
        super().__init__()
        self.path = files.dir_path
        try:
            self._load(files)
        except Exception:
            self._abort()
            raise

    def _load(self, files: VpkArchiveFiles) -> None:
        dir_shared = self._share(files.dir)

        with dir_shared.locked() as stream:
            reader = BinaryReader.le(stream)
            try:
                reader.rewind()
                records = self._read_directory(reader)
            except ReaderError as e:
                raise self._load_error(f"ディレクトリの読み込みに失敗しました: {e}", self.path, e) from e

        part_streams: Dict[int, SharedStream] = {}
        for path, index, offset, size, preload in records:
            if index == self.DIR_ARCHIVE_INDEX:
                shared = dir_shared
            else:
                shared = part_streams.get(index)
                if shared is None:
                    if index not in files.parts:
                        raise ArchiveLoadError(self.kind, f"分割アーカイブ {index:03d} が見つかりません",
                                               path=self.path)
                    shared = part_streams[index] = self._share(files.parts[index])
            self.tree.insert(path, VpkFile(shared.acquire(), offset, size, preload))

        self.debug_info(f"VPKをロードしました: {self.file_count()} ファイル, 分割 {len(part_streams)}")

    def _read_directory(self, reader: BinaryReader) -> List[tuple]:
        if reader.read_magic(4) != self.MAGIC:
            raise ArchiveLoadError(self.kind, "VPKの識別子が不正です", path=self.path, offset=0)

        version = reader.read('u32')
        tree_size = reader.read('u32')
        if version == 2:
            reader.skip(self.V2_EXTRA_HEADER)
        elif version != 1:
            raise ArchiveLoadError(self.kind, f"対応していないVPKバージョンです: {version}", path=self.path)

        end_of_directory = reader.position() + tree_size
        records = []

        while True:
            ext = reader.read_terminated_string()
            if not ext:
                break
            while True:
                directory = reader.read_terminated_string()
                if not directory:
                    break
                while True:
                    name = reader.read_terminated_string()
                    if not name:
                        break

                    reader.read('u32')  # CRC
                    preload_size = reader.read('u16')
                    archive_index = reader.read('u16')
                    offset = reader.read('u32')
                    size = reader.read('u32')
                    if reader.read('u16') != self.ENTRY_TERMINATOR:
                        raise ArchiveLoadError(self.kind, "エントリの終端が不正です",
                                               path=self.path, offset=reader.position() - 2)
                    preload = reader.read_buf(preload_size)

                    if archive_index == self.DIR_ARCHIVE_INDEX:
                        offset += end_of_directory

                    records.append((self._entry_path(directory, name, ext),
                                    archive_index, offset, size, preload))
        return records

    @staticmethod
    def _entry_path(directory: str, name: str, ext: str) -> str:
        # 空白1文字はルート・拡張子なしを表す
        filename = name if ext.strip() == '' else f"{name}.{ext}"
        if directory.strip() == '':
            return filename
        return f"{directory}/{filename}"
