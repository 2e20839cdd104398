"""
デコーダーインターフェース

ブロック圧縮テクスチャのデコードと、拡張子に応じたテクスチャファイルの
デコーダー振り分けを提供します。
"""

import os
import threading
from typing import Dict, List, Optional, Type, Union

import numpy as np
from PIL import Image

from logutils import log_print, DEBUG, INFO, WARNING, ERROR
from .bc_decoder import BlockFormat, decode_block_texture
from .common import DecodingError, to_pil_image
from .decoder import ImageDecoder
from .godot_decoder import GodotTextureDecoder
from .vtf_decoder import VTFImageDecoder


class DecoderManager:
    """
    各種デコーダーを管理し、拡張子から適切なデコーダーに処理を振り分けるマネージャークラス
    """

    # 登録するデコーダー（先に登録したものが優先される）
    DECODER_CLASSES: List[Type[ImageDecoder]] = [
        VTFImageDecoder,
        GodotTextureDecoder,
    ]

    def __init__(self):
        self._decoders: Dict[Type[ImageDecoder], List[str]] = {}
        self._ext_to_decoder: Dict[str, Type[ImageDecoder]] = {}

        for decoder_class in self.DECODER_CLASSES:
            self.register(decoder_class)

        log_print(INFO, f"デコーダーマネージャーが初期化されました。サポート形式: {', '.join(self.get_supported_extensions())}",
                  name="decoder")

    def register(self, decoder_class: Type[ImageDecoder]) -> None:
        """
        デコーダークラスを登録する

        Args:
            decoder_class: ImageDecoder のサブクラス
        """
        if not issubclass(decoder_class, ImageDecoder):
            raise TypeError(f"{decoder_class.__name__} はImageDecoderを継承していません")

        extensions = decoder_class().supported_extensions
        self._decoders[decoder_class] = list(extensions)

        for ext in extensions:
            norm_ext = self._normalize_extension(ext)
            if norm_ext in self._ext_to_decoder:
                # 既に別のデコーダーが登録されている場合は先に登録された方を優先
                log_print(WARNING,
                          f"拡張子 '{norm_ext}' は既に {self._ext_to_decoder[norm_ext].__name__} に"
                          f"登録されています。{decoder_class.__name__} は使われません",
                          name="decoder")
                continue
            self._ext_to_decoder[norm_ext] = decoder_class
            log_print(DEBUG, f"拡張子 '{norm_ext}' を {decoder_class.__name__} に登録しました", name="decoder")

    @staticmethod
    def _normalize_extension(extension: str) -> str:
        if not extension.startswith('.'):
            extension = '.' + extension
        return extension.lower()

    def get_supported_extensions(self) -> List[str]:
        """サポートされている拡張子のリスト（ソート済み）"""
        return sorted(self._ext_to_decoder.keys())

    def get_decoder_for_extension(self, extension: str) -> Optional[Type[ImageDecoder]]:
        return self._ext_to_decoder.get(self._normalize_extension(extension))

    def get_decoder_for_file(self, filename: str) -> Optional[Type[ImageDecoder]]:
        """ファイル名の拡張子から適切なデコーダークラスを取得する"""
        _, ext = os.path.splitext(filename.lower())
        if not ext:
            return None
        return self.get_decoder_for_extension(ext)

    def decode_file(self, filename: str, data: bytes) -> np.ndarray:
        """
        ファイル名とバイトデータから画像をデコードし、numpy配列として返す

        Args:
            filename: ファイル名（拡張子でデコーダーを選択）
            data: デコードするバイトデータ

        Returns:
            (height, width, 4) の RGBA 配列

        Raises:
            DecodingError: 対応するデコーダーがない、またはデコードに失敗した場合
        """
        decoder_class = self.get_decoder_for_file(filename)
        if decoder_class is None:
            raise DecodingError(f"ファイル '{filename}' に対応するデコーダーが見つかりません")

        try:
            return decoder_class().decode(data)
        except DecodingError as e:
            log_print(ERROR, f"ファイル '{filename}' のデコード中にエラーが発生しました: {e}", name="decoder")
            raise

    def get_decoder_info(self) -> Dict[str, List[str]]:
        """デコーダー名と対応する拡張子のリスト"""
        return {decoder_class.__name__: extensions for decoder_class, extensions in self._decoders.items()}


# シングルトンインスタンス
_decoder_manager: Optional[DecoderManager] = None
_decoder_manager_lock = threading.Lock()


def get_decoder_manager() -> DecoderManager:
    """
    デコーダーマネージャーのシングルトンインスタンスを取得する
    """
    global _decoder_manager
    with _decoder_manager_lock:
        if _decoder_manager is None:
            _decoder_manager = DecoderManager()
        return _decoder_manager


def decode_texture(data: bytes,
                   fmt: Union[BlockFormat, str],
                   width: int,
                   height: int,
                   max_workers: Optional[int] = None) -> np.ndarray:
    """
    ブロック圧縮テクスチャをデコードする

    Args:
        data: 圧縮データ
        fmt: ブロック圧縮形式（BlockFormat または 'dxt1' / 'bc3' などの名前）
        width: 幅
        height: 高さ
        max_workers: 並列デコードの最大ワーカー数

    Returns:
        (height, width, 4) の RGBA uint8 配列
    """
    return decode_block_texture(data, fmt, width, height, max_workers)


def decode_image(filename: str, data: bytes) -> np.ndarray:
    """
    ファイル名とバイトデータからテクスチャファイルをデコードするユーティリティ関数
    """
    return get_decoder_manager().decode_file(filename, data)


def decode_image_to_pil(filename: str, data: bytes) -> Image.Image:
    """decode_image の結果を Pillow の画像として返す"""
    return to_pil_image(decode_image(filename, data))


def get_supported_image_extensions() -> List[str]:
    """
    サポートされているテクスチャファイルの拡張子のリストを取得する
    """
    return get_decoder_manager().get_supported_extensions()
