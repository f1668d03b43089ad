import pytest

from x16periph.vera_layers import (
    LayerProperties,
    SpriteLine,
    SpriteProperties,
    calculate_line_col_index,
    render_layer_line,
    render_sprite_line,
)


def _vram():
    return bytearray(0x20000)


@pytest.mark.parametrize(
    "z, spr, l1, l2, expected",
    [
        (3, 5, 6, 7, 5),
        (3, 0, 6, 7, 7),
        (3, 0, 6, 0, 6),
        (2, 5, 6, 7, 7),
        (2, 5, 6, 0, 5),
        (2, 0, 6, 0, 6),
        (1, 5, 6, 7, 7),
        (1, 5, 6, 0, 6),
        (1, 5, 0, 0, 5),
        (0, 5, 6, 0, 6),
        (0, 5, 0, 7, 7),
        (0, 5, 0, 0, 0),
    ],
)
def test_calculate_line_col_index(z, spr, l1, l2, expected):
    assert calculate_line_col_index(z, spr, l1, l2) == expected


def test_text_mode_properties():
    props = LayerProperties.from_registers([0, 0, 0, 0, 0, 0, 0], None)
    assert props.text_mode and not props.tile_mode and not props.bitmap_mode
    assert props.tilew == 1 << props.tilew_log2
    assert props.layerw_max == (1 << props.mapw_log2) * props.tilew - 1
    assert props.min_eff_x == 0
    assert props.max_eff_x == props.layerw_max


def test_bitmap_mode_ignores_scroll_and_keeps_shifts():
    tiled = LayerProperties.from_registers([0x11, 0, 0, 0, 0, 0, 0], None)
    bitmap = LayerProperties.from_registers([0x07, 0, 1, 0x12, 0x03, 0x34, 0x01], tiled)
    assert bitmap.bitmap_mode
    assert bitmap.tilew == 640
    assert bitmap.tileh == 480
    assert bitmap.hscroll == 0 and bitmap.vscroll == 0
    assert bitmap.mapw_log2 == tiled.mapw_log2
    assert bitmap.color_mask == 0xFF


def test_scroll_wraps_and_map_addresses():
    regs = [0x01, 0x04, 0x00, 0x10, 0x00, 0x08, 0x00]
    props = LayerProperties.from_registers(regs, None)
    assert props.tile_mode
    assert props.map_base == 0x04 << 9
    assert props.eff_x(props.layerw_max + 1) == props.eff_x(0)
    assert props.eff_y(props.layerh_max + 1) == props.eff_y(0)
    assert props.map_address(0, 0) == props.map_base
    assert props.map_address(props.tilew, 0) == props.map_base + 2
    assert props.map_address(0, props.tileh) == props.map_base + 2 * (1 << props.mapw_log2)


def test_sprite_from_bytes_fields():
    sprite = SpriteProperties.from_bytes([1, 0x80, 0xFF, 0x03, 5, 0, 0x0D, 0x0F])
    assert sprite.x == -1
    assert sprite.y == 5
    assert sprite.address == 1 << 5
    assert sprite.color_mode == 1
    assert sprite.zdepth == 3
    assert sprite.hflip
    assert sprite.palette_offset == 0xF0
    assert sprite.width == 8 and sprite.height == 8


def _sprite_8bpp(x, y, d6, address_byte=0):
    return SpriteProperties.from_bytes([address_byte, 0x80, x, 0, y, 0, d6, 0])


def test_render_sprite_line_8bpp():
    vram = _vram()
    vram[0:8] = bytes(range(1, 9))
    sprite = _sprite_8bpp(10, 5, 0x0C)
    line = render_sprite_line([sprite], vram, 5)
    assert isinstance(line, SpriteLine)
    assert line.col[10:18] == list(range(1, 9))
    assert line.z[10:18] == [3] * 8
    assert line.col[:10] == [0] * 10
    empty = render_sprite_line([sprite], vram, 4)
    assert empty.col == [0] * 640


def test_render_sprite_line_hflip():
    vram = _vram()
    vram[0:8] = bytes(range(1, 9))
    sprite = _sprite_8bpp(10, 5, 0x0D)
    line = render_sprite_line([sprite], vram, 5)
    assert line.col[10:18] == list(range(8, 0, -1))


def test_render_sprite_line_4bpp():
    vram = _vram()
    vram[0] = 0x12
    sprite = SpriteProperties.from_bytes([0, 0x00, 0, 0, 0, 0, 0x0C, 0])
    line = render_sprite_line([sprite], vram, 0)
    assert line.col[0:2] == [1, 2]


def test_sprite_depth_priority_and_collisions():
    vram = _vram()
    vram[0:8] = bytes([3] * 8)
    vram[32:40] = bytes([9] * 8)
    low = _sprite_8bpp(0, 0, 0x14)
    high = _sprite_8bpp(0, 0, 0x1C, address_byte=1)
    line = render_sprite_line([low, high], vram, 0)
    assert line.col[0:8] == [9] * 8
    assert line.collisions == 0x10
    assert line.mask[0] == 0x10
    disabled = _sprite_8bpp(0, 0, 0x00)
    assert render_sprite_line([disabled], vram, 0).col == [0] * 640


def test_text_layer_line():
    vram = _vram()
    props = LayerProperties.from_registers([0, 0, 0x08, 0, 0, 0, 0], None)
    for i in range(32):
        vram[props.map_base + 2 * i] = 0
        vram[props.map_base + 2 * i + 1] = 0x21
    vram[props.tile_base] = 0xF0
    line = render_layer_line(props, props, [0] * 7, vram, 0)
    assert len(line) == 640
    assert line[:8] == [1, 1, 1, 1, 2, 2, 2, 2]
    assert line[8:16] == line[:8]


def test_tile_layer_line_8bpp_and_hflip():
    vram = _vram()
    regs = [0x03, 0, 0x08, 0, 0, 0, 0]
    props = LayerProperties.from_registers(regs, None)
    vram[props.map_base] = 1
    vram[props.map_base + 1] = 0
    vram[props.map_base + 2] = 1
    vram[props.map_base + 3] = 0x04
    tile = props.tile_base + (1 << props.tile_size_log2)
    vram[tile : tile + 8] = bytes(range(10, 18))
    line = render_layer_line(props, props, regs, vram, 0)
    assert line[:8] == list(range(10, 18))
    assert line[8:16] == list(range(17, 9, -1))


def test_tile_layer_line_4bpp_palette_offset():
    vram = _vram()
    regs = [0x02, 0, 0x08, 0, 0, 0, 0]
    props = LayerProperties.from_registers(regs, None)
    vram[props.map_base + 1] = 0x30
    vram[props.tile_base] = 0x05
    line = render_layer_line(props, props, regs, vram, 0)
    assert line[0] == 0
    assert line[1] == 0x35


def test_bitmap_layer_line_8bpp_repeats():
    vram = _vram()
    regs = [0x07, 0, 0x08, 0, 0, 0, 0]
    props = LayerProperties.from_registers(regs, None)
    row = bytes((i * 7) & 0xFF for i in range(320))
    vram[props.tile_base : props.tile_base + 320] = row
    line = render_layer_line(props, props, regs, vram, 0)
    assert line[:320] == list(row)
    assert line[320:] == line[:320]


def test_bitmap_layer_line_4bpp_palette_offset():
    vram = _vram()
    regs = [0x06, 0, 0x08, 0, 0x02, 0, 0]
    props = LayerProperties.from_registers(regs, None)
    vram[props.tile_base] = 0x13
    line = render_layer_line(props, props, regs, vram, 0)
    assert line[0] == 0x21
    assert line[1] == 0x23
    assert line[2] == 0