"""
ブロック圧縮デコーダーのテスト
"""

import numpy as np
import pytest

from decoder import DecodingError, decode_texture
from decoder.bc_decoder import (
    BlockFormat, OPAQUE_BLACK, TRANSPARENT_BLACK, block_palette,
    decode_bc1, decode_bc2, decode_bc3, decode_block_texture, required_size,
)

RED = 0xF800
BLUE = 0x001F


def color_block(q0: int, q1: int, index_byte: int = 0xE4) -> bytes:
    return q0.to_bytes(2, 'little') + q1.to_bytes(2, 'little') + bytes([index_byte]) * 4


class TestPalette:

    def test_four_color_mode(self):
        palette = block_palette(color_block(RED, BLUE))
        assert palette.tolist() == [
            [255, 0, 0, 255],
            [0, 0, 255, 255],
            [170, 0, 85, 255],
            [85, 0, 170, 255],
        ]

    def test_three_color_mode(self):
        palette = block_palette(color_block(BLUE, RED))
        assert palette[2].tolist() == [127, 0, 127, 255]
        assert palette[3].tolist() == list(OPAQUE_BLACK)

    def test_three_color_mode_transparent(self):
        palette = block_palette(color_block(BLUE, BLUE), TRANSPARENT_BLACK)
        assert palette[3].tolist() == [0, 0, 0, 0]

    def test_short_block(self):
        with pytest.raises(DecodingError):
            block_palette(b"\x00" * 7)


class TestBc1:

    def test_pixels(self):
        image = decode_bc1(color_block(RED, BLUE), 4, 4)
        assert image.shape == (4, 4, 4)
        assert image.dtype == np.uint8
        for row in range(4):
            assert image[row].tolist() == [
                [255, 0, 0, 255], [0, 0, 255, 255], [170, 0, 85, 255], [85, 0, 170, 255],
            ]

    def test_one_bit_alpha(self):
        block = color_block(BLUE, RED, 0xFF)
        assert decode_bc1(block, 4, 4)[0, 0].tolist() == [0, 0, 0, 255]
        assert decode_block_texture(block, 'dxt1a', 4, 4)[0, 0].tolist() == [0, 0, 0, 0]

    def test_partial_edge_blocks(self):
        data = color_block(RED, BLUE, 0x00) + color_block(BLUE, RED, 0x55)
        image = decode_bc1(data, 5, 3)
        assert image.shape == (3, 5, 4)
        assert image[0, 0].tolist() == [255, 0, 0, 255]
        # 2つ目のブロックは3色モードでインデックス1（赤）
        assert image[2, 4].tolist() == [255, 0, 0, 255]


class TestAlpha:

    def test_bc2_explicit_alpha(self):
        block = b"\xF0" * 8 + color_block(RED, BLUE, 0x00)
        image = decode_bc2(block, 4, 4)
        assert image[0, 0].tolist() == [255, 0, 0, 0]
        assert image[0, 1].tolist() == [255, 0, 0, 255]

    def test_bc3_eight_alpha_mode(self):
        block = bytes([255, 0]) + b"\xFF" * 6 + color_block(RED, BLUE, 0x00)
        image = decode_bc3(block, 4, 4)
        assert (image[..., 3] == 255 * 1 // 7).all()
        assert image[0, 0, :3].tolist() == [255, 0, 0]

    def test_bc3_six_alpha_mode(self):
        block = bytes([0, 255]) + b"\xFF" * 6 + color_block(RED, BLUE, 0x00)
        image = decode_bc3(block, 4, 4)
        assert (image[..., 3] == 255).all()

    def test_bc3_endpoint(self):
        block = bytes([200, 10]) + b"\x00" * 6 + color_block(RED, BLUE, 0x00)
        image = decode_bc3(block, 4, 4)
        assert (image[..., 3] == 200).all()


class TestTexture:

    def test_short_data(self):
        with pytest.raises(DecodingError):
            decode_bc1(b"\x00" * 15, 8, 4)

    def test_extra_data_is_ignored(self):
        data = color_block(RED, BLUE) + b"\xAA" * 32
        assert decode_bc1(data, 4, 4).shape == (4, 4, 4)

    def test_empty_texture(self):
        assert decode_bc3(b"", 0, 16).shape == (16, 0, 4)

    def test_required_size(self):
        assert required_size('bc1', 5, 5) == 4 * 8
        assert required_size(BlockFormat.BC3, 4, 4) == 16

    @pytest.mark.parametrize("name, fmt", [
        ("dxt1", BlockFormat.BC1), ("DXT3", BlockFormat.BC2), ("bc3", BlockFormat.BC3), ("dxt5", BlockFormat.BC3),
    ])
    def test_format_names(self, name, fmt):
        assert BlockFormat.parse(name) is fmt

    def test_unknown_format(self):
        with pytest.raises(DecodingError):
            BlockFormat.parse("bc7")

    @pytest.mark.parametrize("fmt", ["bc1", "bc2", "bc3"])
    def test_worker_count_does_not_change_result(self, fmt):
        width, height = 256, 252
        rng = np.random.default_rng(1234)
        data = rng.integers(0, 256, required_size(fmt, width, height), dtype=np.uint8).tobytes()
        single = decode_texture(data, fmt, width, height, max_workers=1)
        multi = decode_texture(data, fmt, width, height, max_workers=4)
        auto = decode_texture(data, fmt, width, height)
        assert single.shape == (height, width, 4)
        assert np.array_equal(single, multi)
        assert np.array_equal(single, auto)
