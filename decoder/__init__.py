"""
テクスチャデコーダーパッケージ

ブロック圧縮テクスチャ（BC1/BC2/BC3）のデコードと、
テクスチャファイル（VTF / Godot）のデコーダー実装を提供します。
"""

from .common import DecodingError, to_pil_image
from .bc_decoder import BlockFormat, decode_bc1, decode_bc2, decode_bc3, decode_block_texture
from .interface import (
    DecoderManager,
    decode_texture,
    decode_image,
    decode_image_to_pil,
    get_supported_image_extensions,
    get_decoder_manager,
)
from .decoder import ImageDecoder
from .vtf_decoder import Vtf, VtfTexture, TextureFormat, VTFImageDecoder
from .godot_decoder import GodotTextureDecoder, load_godot_texture

__all__ = [
    'DecodingError',
    'to_pil_image',
    'BlockFormat',
    'decode_bc1',
    'decode_bc2',
    'decode_bc3',
    'decode_block_texture',
    'DecoderManager',
    'decode_texture',
    'decode_image',
    'decode_image_to_pil',
    'get_supported_image_extensions',
    'get_decoder_manager',
    'ImageDecoder',
    'Vtf',
    'VtfTexture',
    'TextureFormat',
    'VTFImageDecoder',
    'GodotTextureDecoder',
    'load_godot_texture',
]
