"""
アーカイブのマウントインターフェース

各形式のハンドラでアーカイブをロードし、仮想ファイルシステムとして返す
"""

import os
from typing import Callable, List, Type, Union

from logutils import log_print, ERROR
from .errors import ArchiveLoadError
from .handler.handler import ArchiveHandler, Source
from .handler.pck_handler import GodotPckHandler
from .handler.rpa_handler import RenPyArchiveHandler
from .handler.vpk_handler import VpkArchiveFiles, VpkHandler
from .vfs import VirtualFs

# 拡張子で選択できるハンドラ（登録順に判定する）
_HANDLER_CLASSES: List[Type[ArchiveHandler]] = [
    VpkHandler,
    GodotPckHandler,
    RenPyArchiveHandler,
]


def _mount(kind: str, factory: Callable[[], ArchiveHandler]) -> VirtualFs:
    try:
        handler = factory()
    except ArchiveLoadError as e:
        log_print(ERROR, f"アーカイブのロードに失敗しました: {e}", name=f"arc.mount.{kind}")
        raise
    return VirtualFs(handler)


def mount_vpk(path: Union[str, os.PathLike, VpkArchiveFiles]) -> VirtualFs:
    """
    VPKアーカイブをマウントする

    Args:
        path: 構成ファイルのどれか（xxx_dir.vpk など）、または VpkArchiveFiles

    Returns:
        仮想ファイルシステム
    """
    def factory() -> ArchiveHandler:
        files = path if isinstance(path, VpkArchiveFiles) else VpkArchiveFiles.locate(path)
        return VpkHandler(files)

    return _mount("vpk", factory)


def mount_godot_pck(source: Source) -> VirtualFs:
    """
    Godot PCKアーカイブをマウントする

    ストリームを渡した場合、その所有権は返された仮想ファイルシステムに移る
    """
    return _mount("godot-pck", lambda: GodotPckHandler(source))


def mount_renpy_rpa(source: Source) -> VirtualFs:
    """
    Ren'Py RPAアーカイブをマウントする

    ストリームを渡した場合、その所有権は返された仮想ファイルシステムに移る
    """
    return _mount("renpy-rpa", lambda: RenPyArchiveHandler(source))


def get_supported_archive_extensions() -> List[str]:
    """マウント可能なアーカイブの拡張子一覧"""
    extensions = []
    for handler_class in _HANDLER_CLASSES:
        for ext in handler_class.supported_extensions:
            if ext not in extensions:
                extensions.append(ext)
    return extensions


def mount(path: Union[str, os.PathLike]) -> VirtualFs:
    """
    拡張子からハンドラを選んでアーカイブをマウントする（内容による判定はしない）

    Raises:
        ArchiveLoadError: 対応する拡張子でない、またはロードに失敗した場合
    """
    path = os.fspath(path)
    if VpkHandler.can_handle(path):
        return mount_vpk(path)
    if GodotPckHandler.can_handle(path):
        return mount_godot_pck(path)
    if RenPyArchiveHandler.can_handle(path):
        return mount_renpy_rpa(path)

    error = ArchiveLoadError("unknown", "対応していないアーカイブ形式です", path=path)
    log_print(ERROR, str(error), name="arc.mount")
    raise error
