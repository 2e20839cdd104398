"""
ブロック圧縮テクスチャ（BC1/BC2/BC3 = DXT1/DXT3/DXT5）デコーダー

4x4ピクセルのブロック単位でRGBAに展開する。ブロック行をバンドに分割し、
スレッドプールで並列にデコードして1つの出力配列の重ならない範囲へ書き込む。
"""

from enum import Enum
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from logutils import log_print, DEBUG
from proc.parallel import run_each, split_ranges
from proc.util import adjust_workers_for_memory, get_optimal_worker_count
from .common import DecodingError

# 並列デコードで使う最大ワーカー数
WORKER_LIMIT = 8
# 1バンドあたりの最小ブロック行数（小さいテクスチャはスレッドを使わない）
MIN_ROWS_PER_BAND = 16

BLOCK_WIDTH = 4
BLOCK_HEIGHT = 4

RGBA = Tuple[int, int, int, int]
OPAQUE_BLACK: RGBA = (0, 0, 0, 255)
TRANSPARENT_BLACK: RGBA = (0, 0, 0, 0)


class BlockFormat(Enum):
    """ブロック圧縮形式"""
    BC1 = 'bc1'      # DXT1（3色モードの追加色は不透明な黒）
    BC1A = 'bc1a'    # DXT1 1ビットアルファ（追加色は透明）
    BC2 = 'bc2'      # DXT3
    BC3 = 'bc3'      # DXT5

    @property
    def block_size(self) -> int:
        """1ブロックのバイト数"""
        return 8 if self in (BlockFormat.BC1, BlockFormat.BC1A) else 16

    @classmethod
    def parse(cls, value: Union["BlockFormat", str]) -> "BlockFormat":
        """'dxt1' や 'BC3' などの名前から形式を得る"""
        if isinstance(value, BlockFormat):
            return value
        name = str(value).strip().lower()
        try:
            return cls(_ALIASES.get(name, name))
        except ValueError:
            raise DecodingError(f"未知のブロック圧縮形式です: {value}") from None


_ALIASES = {
    'dxt1': 'bc1',
    'dxt1a': 'bc1a',
    'dxt1_onebitalpha': 'bc1a',
    'dxt3': 'bc2',
    'dxt5': 'bc3',
}


def required_size(fmt: Union[BlockFormat, str], width: int, height: int) -> int:
    """width x height のテクスチャに必要なバイト数"""
    fmt = BlockFormat.parse(fmt)
    blocks_x = (width + BLOCK_WIDTH - 1) // BLOCK_WIDTH
    blocks_y = (height + BLOCK_HEIGHT - 1) // BLOCK_HEIGHT
    return blocks_x * blocks_y * fmt.block_size


# ----------------------------------------------------------------------
# ブロック単位のデコード（N個のブロックをまとめて処理する）
# ----------------------------------------------------------------------

def _le_uint(blocks: np.ndarray, start: int, length: int) -> np.ndarray:
    """各ブロックの [start, start+length) をリトルエンディアンの符号なし整数として読む"""
    value = np.zeros(blocks.shape[0], dtype=np.uint64)
    for i in range(length):
        value |= blocks[:, start + i].astype(np.uint64) << np.uint64(8 * i)
    return value


def _expand_rgb565(q: np.ndarray) -> np.ndarray:
    """RGB565 をビット複製で RGB888 に展開する。戻り値は (N, 3) の int32"""
    q = q.astype(np.int32)
    r = ((q >> 8) & 0xF8) | (q >> 13)
    g = ((q >> 3) & 0xFC) | ((q >> 9) & 0x03)
    b = ((q << 3) & 0xFF) | ((q >> 2) & 0x07)
    return np.stack([r, g, b], axis=1)


def _decode_color(blocks: np.ndarray, extra_color: RGBA) -> np.ndarray:
    """
    8バイトのカラーブロックを展開する

    Args:
        blocks: (N, 8) の uint8
        extra_color: 3色モードの4番目の色

    Returns:
        (N, 16, 4) の uint8
    """
    count = blocks.shape[0]
    q0 = blocks[:, 0].astype(np.int32) | (blocks[:, 1].astype(np.int32) << 8)
    q1 = blocks[:, 2].astype(np.int32) | (blocks[:, 3].astype(np.int32) << 8)
    c0 = _expand_rgb565(q0)
    c1 = _expand_rgb565(q1)

    four_color = (q0 > q1)[:, None]
    extra_rgb = np.array(extra_color[:3], dtype=np.int32)

    palette = np.empty((count, 4, 4), dtype=np.uint8)
    palette[:, 0, :3] = c0
    palette[:, 1, :3] = c1
    palette[:, 2, :3] = np.where(four_color, (2 * c0 + c1) // 3, (c0 + c1) // 2)
    palette[:, 3, :3] = np.where(four_color, (c0 + 2 * c1) // 3, extra_rgb)
    palette[:, :3, 3] = 255
    palette[:, 3, 3] = np.where(four_color[:, 0], 255, extra_color[3])

    indices = _le_uint(blocks, 4, 4)
    shifts = np.arange(16, dtype=np.uint64) * np.uint64(2)
    selector = ((indices[:, None] >> shifts) & np.uint64(0x3)).astype(np.intp)
    return palette[np.arange(count)[:, None], selector]


def _decode_explicit_alpha(blocks: np.ndarray) -> np.ndarray:
    """BC2の4ビットアルファ（(N, 16) の uint8）"""
    bits = _le_uint(blocks, 0, 8)
    shifts = np.arange(16, dtype=np.uint64) * np.uint64(4)
    return (((bits[:, None] >> shifts) & np.uint64(0xF)) * np.uint64(17)).astype(np.uint8)


def _decode_interpolated_alpha(blocks: np.ndarray) -> np.ndarray:
    """BC3の補間アルファ（(N, 16) の uint8）"""
    count = blocks.shape[0]
    a0 = blocks[:, 0].astype(np.int32)
    a1 = blocks[:, 1].astype(np.int32)
    eight = (a0 > a1)[:, None]

    steps = np.arange(1, 7, dtype=np.int32)[None, :]
    seven = ((7 - steps) * a0[:, None] + steps * a1[:, None]) // 7
    steps = np.arange(1, 5, dtype=np.int32)[None, :]
    five = ((5 - steps) * a0[:, None] + steps * a1[:, None]) // 5
    five = np.concatenate([five, np.zeros((count, 1), np.int32), np.full((count, 1), 255, np.int32)], axis=1)

    palette = np.empty((count, 8), dtype=np.uint8)
    palette[:, 0] = a0
    palette[:, 1] = a1
    palette[:, 2:] = np.where(eight, seven, five)

    bits = _le_uint(blocks, 2, 6)
    shifts = np.arange(16, dtype=np.uint64) * np.uint64(3)
    selector = ((bits[:, None] >> shifts) & np.uint64(0x7)).astype(np.intp)
    return palette[np.arange(count)[:, None], selector]


def _decode_blocks(blocks: np.ndarray, fmt: BlockFormat, extra_color: RGBA) -> np.ndarray:
    """(N, block_size) のブロック列を (N, 16, 4) のピクセルに展開する"""
    if fmt in (BlockFormat.BC1, BlockFormat.BC1A):
        return _decode_color(blocks, extra_color)

    pixels = _decode_color(blocks[:, 8:16], OPAQUE_BLACK)
    if fmt == BlockFormat.BC2:
        pixels[:, :, 3] = _decode_explicit_alpha(blocks[:, 0:8])
    else:
        pixels[:, :, 3] = _decode_interpolated_alpha(blocks[:, 0:8])
    return pixels


# ----------------------------------------------------------------------
# テクスチャ全体のデコード
# ----------------------------------------------------------------------

def _resolve_workers(max_workers: Optional[int], output_size: int) -> int:
    if max_workers is None:
        workers = min(get_optimal_worker_count(cpu_intensive=True), WORKER_LIMIT)
        return adjust_workers_for_memory(output_size, workers)
    return max(1, max_workers)


def decode_block_texture(data: Union[bytes, bytearray, memoryview, np.ndarray],
                         fmt: Union[BlockFormat, str],
                         width: int,
                         height: int,
                         max_workers: Optional[int] = None,
                         extra_color: Optional[RGBA] = None) -> np.ndarray:
    """
    ブロック圧縮テクスチャをRGBAにデコードする

    Args:
        data: 圧縮データ（必要量より長い分は無視する）
        fmt: ブロック圧縮形式
        width: 幅（ピクセル）
        height: 高さ（ピクセル）
        max_workers: 並列デコードの最大ワーカー数（Noneの場合は自動）
        extra_color: BC1の3色モードで使う4番目の色（Noneの場合は形式の既定値）

    Returns:
        (height, width, 4) の uint8 配列

    Raises:
        DecodingError: データが足りない場合
    """
    fmt = BlockFormat.parse(fmt)
    if width < 0 or height < 0:
        raise DecodingError(f"テクスチャのサイズが不正です: {width}x{height}")
    if extra_color is None:
        extra_color = TRANSPARENT_BLACK if fmt == BlockFormat.BC1A else OPAQUE_BLACK

    out = np.zeros((height, width, 4), dtype=np.uint8)
    if width == 0 or height == 0:
        return out

    blocks_x = (width + BLOCK_WIDTH - 1) // BLOCK_WIDTH
    blocks_y = (height + BLOCK_HEIGHT - 1) // BLOCK_HEIGHT
    row_bytes = blocks_x * fmt.block_size
    needed = row_bytes * blocks_y

    raw = np.frombuffer(data, dtype=np.uint8) if not isinstance(data, np.ndarray) else data.reshape(-1)
    if raw.size < needed:
        raise DecodingError(
            f"{fmt.name} のデータが不足しています（必要 {needed} バイト, 実際 {raw.size} バイト）")
    rows = raw[:needed].reshape(blocks_y, blocks_x, fmt.block_size)

    def decode_band(band: Tuple[int, int]) -> None:
        start, stop = band
        count = stop - start
        pixels = _decode_blocks(rows[start:stop].reshape(-1, fmt.block_size), fmt, extra_color)
        # (行, ブロック, py, px, ch) -> (行, py, ブロック, px, ch)
        tile = pixels.reshape(count, blocks_x, BLOCK_HEIGHT, BLOCK_WIDTH, 4).transpose(0, 2, 1, 3, 4)
        tile = tile.reshape(count * BLOCK_HEIGHT, blocks_x * BLOCK_WIDTH, 4)
        y0 = start * BLOCK_HEIGHT
        y1 = min(stop * BLOCK_HEIGHT, height)
        out[y0:y1] = tile[:y1 - y0, :width]

    workers = _resolve_workers(max_workers, out.nbytes)
    bands = split_ranges(blocks_y, workers, MIN_ROWS_PER_BAND)
    log_print(DEBUG, f"{fmt.name} {width}x{height}: {len(bands)} バンド, ワーカー {workers}", name="decoder.bc")
    run_each(decode_band, bands, workers)
    return out


def decode_bc1(data, width: int, height: int, extra_color: RGBA = OPAQUE_BLACK,
               max_workers: Optional[int] = None) -> np.ndarray:
    """BC1（DXT1）をデコードする"""
    return decode_block_texture(data, BlockFormat.BC1, width, height, max_workers, extra_color)


def decode_bc2(data, width: int, height: int, max_workers: Optional[int] = None) -> np.ndarray:
    """BC2（DXT3）をデコードする"""
    return decode_block_texture(data, BlockFormat.BC2, width, height, max_workers)


def decode_bc3(data, width: int, height: int, max_workers: Optional[int] = None) -> np.ndarray:
    """BC3（DXT5）をデコードする"""
    return decode_block_texture(data, BlockFormat.BC3, width, height, max_workers)


def block_palette(block: Sequence[int], extra_color: RGBA = OPAQUE_BLACK) -> np.ndarray:
    """
    1つのカラーブロックのパレット（4色）を返す

    Returns:
        (4, 4) の uint8
    """
    if len(block) < 8:
        raise DecodingError("カラーブロックは8バイト必要です")
    # 先頭4ピクセルがインデックス 0,1,2,3 を参照するブロックを作ってパレットを取り出す
    probe = np.array(bytearray(block[:8]), dtype=np.uint8).reshape(1, 8)
    probe[0, 4:8] = 0xE4
    return _decode_color(probe, extra_color)[0, :4]
