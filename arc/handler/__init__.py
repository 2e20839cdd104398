"""
アーカイブ形式ごとのハンドラ
"""

from .handler import ArchiveHandler
from .vpk_handler import VpkArchiveFiles, VpkFile, VpkHandler
from .pck_handler import GodotPckHandler
from .rpa_handler import RenPyArchiveHandler
from .rpyc_handler import RenPyScriptReader, RenPyScriptChunk, ScriptSlot

__all__ = [
    'ArchiveHandler',
    'VpkArchiveFiles', 'VpkFile', 'VpkHandler',
    'GodotPckHandler',
    'RenPyArchiveHandler',
    'RenPyScriptReader', 'RenPyScriptChunk', 'ScriptSlot',
]
