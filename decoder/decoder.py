"""
テクスチャファイルデコーダーの基本インターフェース

拡張子で選択され、ファイル全体のバイト列からRGBA配列を作るデコーダーの基底クラス
"""

from typing import List, Optional, Tuple

import numpy as np


class ImageDecoder:
    """
    テクスチャファイルデコーダーの基底クラス

    子クラスは supported_extensions と decode() を実装する。
    デコードに失敗した場合は None を返さず DecodingError を送出する。
    """

    @property
    def supported_extensions(self) -> List[str]:
        """対応する拡張子（ドット付き・小文字）"""
        return []

    def decode(self, data: bytes) -> np.ndarray:
        """
        ファイル全体をデコードする

        Returns:
            (height, width, 4) の RGBA 配列
        """
        raise NotImplementedError("子クラスでオーバーライドする必要があります")

    def get_image_info(self, data: bytes) -> Optional[Tuple[int, int, int]]:
        """
        ヘッダだけを読んで (幅, 高さ, チャンネル数) を返す

        読めない場合は None
        """
        return None

    def can_decode(self, extension: str) -> bool:
        if not extension.startswith('.'):
            extension = '.' + extension
        return extension.lower() in self.supported_extensions
