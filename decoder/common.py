"""
デコーダー共通のユーティリティと例外定義
"""

import numpy as np
from PIL import Image


class DecodingError(Exception):
    """
    テクスチャ・画像のデコード中に発生したエラーを示す例外
    """
    pass


def to_pil_image(array: np.ndarray) -> Image.Image:
    """
    デコード結果の配列を Pillow の画像に変換する

    Args:
        array: (height, width, 4) の RGBA 配列（uint8 または uint16）

    Returns:
        RGBA モードの画像。uint16 の場合は上位8ビットを使う
    """
    if array.ndim != 3 or array.shape[2] != 4:
        raise DecodingError(f"RGBA配列ではありません: shape={array.shape}")
    if array.dtype == np.uint16:
        array = (array >> 8).astype(np.uint8)
    elif array.dtype != np.uint8:
        raise DecodingError(f"対応していない配列の型です: {array.dtype}")
    return Image.fromarray(np.ascontiguousarray(array))
