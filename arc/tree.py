"""
インデックスツリー

アーカイブのディレクトリ情報から構築するパス -> エントリの木構造。
ノードはリストに格納し、インデックスで参照する（親ポインタは持たない）。
"""

from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from logutils import log_print, WARNING
from .arc import EntryType, TreeEntry
from .errors import ArchiveLoadError, EntryNotFoundError, NotADirectoryEntryError
from .path_utils import normalize_path
from .window import SubFileWindow


class _Node:
    __slots__ = ('name', 'window', 'children', 'order')

    def __init__(self, name: str, window: Optional[SubFileWindow] = None):
        self.name = name
        self.window = window
        # ディレクトリの場合のみ使う（名前 -> ノード番号 と挿入順）
        self.children: Dict[str, int] = {}
        self.order: List[str] = []

    @property
    def is_file(self) -> bool:
        return self.window is not None


class TreeFs:
    """
    ウィンドウ付きファイルのツリー

    Args:
        entries: (パス, ウィンドウ) の組。中間ディレクトリは自動で作成される
        kind: ロードエラーに記録するアーカイブ種別
    """

    ROOT = 0

    def __init__(self, entries: Iterable[Tuple[str, SubFileWindow]] = (), kind: str = "tree"):
        self.kind = kind
        self._nodes: List[_Node] = [_Node("")]
        self._files = 0
        for path, window in entries:
            self.insert(path, window)

    def insert(self, path: str, window: SubFileWindow) -> None:
        """
        ファイルを追加する

        同じパスが既にある場合は後から追加したものに置き換え、警告を出す

        Raises:
            ArchiveLoadError: パスの途中がファイルだった、または既存ディレクトリと衝突した場合
        """
        segments = normalize_path(path).split('/')
        if segments == ['']:
            raise ArchiveLoadError(self.kind, "ルートにファイルは置けません", path=path)

        current = self.ROOT
        for depth, segment in enumerate(segments[:-1]):
            node = self._nodes[current]
            index = node.children.get(segment)
            if index is None:
                index = self._add_child(current, _Node(segment))
            elif self._nodes[index].is_file:
                raise ArchiveLoadError(
                    self.kind,
                    f"パスの途中がファイルです: '{'/'.join(segments[:depth + 1])}'",
                    path=path)
            current = index

        name = segments[-1]
        parent = self._nodes[current]
        index = parent.children.get(name)
        if index is None:
            self._add_child(current, _Node(name, window))
            self._files += 1
            return

        existing = self._nodes[index]
        if not existing.is_file:
            raise ArchiveLoadError(self.kind, "ディレクトリと同じパスのファイルがあります", path=path)

        log_print(WARNING, f"重複したパスのエントリを置き換えます: '{normalize_path(path)}'", name="arc.tree")
        existing.window.close()
        existing.window = window

    def _add_child(self, parent: int, node: _Node) -> int:
        self._nodes.append(node)
        index = len(self._nodes) - 1
        owner = self._nodes[parent]
        owner.children[node.name] = index
        owner.order.append(node.name)
        return index

    def _find(self, path: str) -> _Node:
        normalized = normalize_path(path)
        node = self._nodes[self.ROOT]
        if not normalized:
            return node

        walked = []
        for segment in normalized.split('/'):
            if node.is_file:
                raise NotADirectoryEntryError('/'.join(walked))
            walked.append(segment)
            index = node.children.get(segment)
            if index is None:
                raise EntryNotFoundError(normalized)
            node = self._nodes[index]
        return node

    def read(self, path: str) -> TreeEntry:
        """
        パスのエントリを取得する

        ファイルの場合はウィンドウの複製（呼び出し側が閉じる）を返す

        Raises:
            EntryNotFoundError: パスが存在しない
            NotADirectoryEntryError: パスの途中がファイル
        """
        node = self._find(path)
        if node.is_file:
            return TreeEntry.file(node.window.clone())
        return TreeEntry.directory(node.order)

    def entry_type(self, path: str) -> EntryType:
        return EntryType.FILE if self._find(path).is_file else EntryType.DIRECTORY

    def file_count(self) -> int:
        return self._files

    def paths(self) -> Iterator[str]:
        """全ファイルのパスを深さ優先・挿入順で列挙する"""
        stack = [(self.ROOT, "")]
        while stack:
            index, prefix = stack.pop()
            node = self._nodes[index]
            if node.is_file:
                yield prefix
                continue
            for name in reversed(node.order):
                stack.append((node.children[name], f"{prefix}/{name}" if prefix else name))

    def close(self) -> None:
        """保持している全ウィンドウを閉じる"""
        for node in self._nodes:
            if node.window is not None:
                node.window.close()
