"""Layer and sprite line rendering for the VERA: tile, text and bitmap layers plus sprites."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

SCREEN_WIDTH = 640
SCREEN_HEIGHT = 480
NUM_SPRITES = 128
VRAM_MASK = 0x1FFFF

_SPRITE_BUDGET = 800 + 1


def _read(vram: Sequence[int], address: int) -> int:
    return vram[address & VRAM_MASK]


@dataclass(frozen=True)
class LayerProperties:
    """Values derived from the seven registers of one layer."""

    color_depth: int = 0
    map_base: int = 0
    tile_base: int = 0
    text_mode: bool = False
    text_mode_256c: bool = False
    tile_mode: bool = False
    bitmap_mode: bool = False
    hscroll: int = 0
    vscroll: int = 0
    mapw_log2: int = 0
    maph_log2: int = 0
    tilew: int = 0
    tileh: int = 0
    tilew_log2: int = 0
    tileh_log2: int = 0
    mapw_max: int = 0
    maph_max: int = 0
    tilew_max: int = 0
    tileh_max: int = 0
    layerw_max: int = 0
    layerh_max: int = 0
    tile_size_log2: int = 0
    min_eff_x: int = 0
    max_eff_x: int = 0
    bits_per_pixel: int = 0
    first_color_pos: int = 0
    color_mask: int = 0
    color_fields_max: int = 0

    @classmethod
    def from_registers(
        cls, regs: Sequence[int], previous: Optional["LayerProperties"] = None
    ) -> "LayerProperties":
        """Derive properties from layer registers; map and tile shifts not set here carry over."""
        prev = previous if previous is not None else cls()
        r0, r1, r2 = regs[0] & 0xFF, regs[1] & 0xFF, regs[2] & 0xFF

        color_depth = r0 & 0x3
        bitmap_mode = (r0 & 0x4) != 0
        text_mode = color_depth == 0 and not bitmap_mode
        tile_mode = not bitmap_mode and not text_mode

        if bitmap_mode:
            hscroll = vscroll = 0
        else:
            hscroll = (regs[3] & 0xFF) | ((regs[4] & 0xF) << 8)
            vscroll = (regs[5] & 0xFF) | ((regs[6] & 0xF) << 8)

        mapw_log2, maph_log2 = prev.mapw_log2, prev.maph_log2
        tilew_log2, tileh_log2 = prev.tilew_log2, prev.tileh_log2
        mapw = maph = tilew = tileh = 0
        if tile_mode or text_mode:
            mapw_log2 = 5 + ((r0 >> 4) & 3)
            maph_log2 = 5 + ((r0 >> 6) & 3)
            mapw = 1 << mapw_log2
            maph = 1 << maph_log2
            tilew_log2 = 3 + (r2 & 1)
            tileh_log2 = 3 + ((r2 >> 1) & 1)
            tilew = 1 << tilew_log2
            tileh = 1 << tileh_log2
        elif bitmap_mode:
            # a bitmap is a single huge tile
            tilew = 640 if r2 & 1 else 320
            tileh = SCREEN_HEIGHT

        layerw_max = (mapw * tilew - 1) & 0xFFFF
        if prev.layerw_max != layerw_max or prev.hscroll != hscroll:
            xs = [(x + hscroll) & layerw_max for x in range(SCREEN_WIDTH)]
            min_eff_x, max_eff_x = min(xs), max(xs)
        else:
            min_eff_x, max_eff_x = prev.min_eff_x, prev.max_eff_x

        bits_per_pixel = 1 << color_depth
        return cls(
            color_depth=color_depth,
            map_base=r1 << 9,
            tile_base=(r2 & 0xFC) << 9,
            text_mode=text_mode,
            text_mode_256c=(r0 & 8) != 0,
            tile_mode=tile_mode,
            bitmap_mode=bitmap_mode,
            hscroll=hscroll,
            vscroll=vscroll,
            mapw_log2=mapw_log2,
            maph_log2=maph_log2,
            tilew=tilew,
            tileh=tileh,
            tilew_log2=tilew_log2,
            tileh_log2=tileh_log2,
            mapw_max=(mapw - 1) & 0xFFFF,
            maph_max=(maph - 1) & 0xFFFF,
            tilew_max=(tilew - 1) & 0xFFFF,
            tileh_max=(tileh - 1) & 0xFFFF,
            layerw_max=layerw_max,
            layerh_max=(maph * tileh - 1) & 0xFFFF,
            tile_size_log2=(tilew_log2 + tileh_log2 + color_depth - 3) & 0xFF,
            min_eff_x=min_eff_x,
            max_eff_x=max_eff_x,
            bits_per_pixel=bits_per_pixel,
            first_color_pos=8 - bits_per_pixel,
            color_mask=(1 << bits_per_pixel) - 1,
            color_fields_max=(8 >> color_depth) - 1,
        )

    def eff_x(self, x: int) -> int:
        """Horizontal layer coordinate of screen column ``x`` after scrolling."""
        return (x + self.hscroll) & self.layerw_max

    def eff_y(self, y: int) -> int:
        """Vertical layer coordinate of line ``y`` after scrolling."""
        return (y + self.vscroll) & self.layerh_max

    def map_address(self, eff_x: int, eff_y: int) -> int:
        """Address of the two-byte map entry covering a layer coordinate."""
        index = ((eff_y >> self.tileh_log2) << self.mapw_log2) + (eff_x >> self.tilew_log2)
        return (self.map_base + (index << 1)) & 0xFFFFFFFF


@dataclass(frozen=True)
class SpriteProperties:
    """Values derived from the eight attribute bytes of one sprite."""

    zdepth: int = 0
    collision_mask: int = 0
    x: int = 0
    y: int = 0
    width_log2: int = 3
    height_log2: int = 3
    width: int = 8
    height: int = 8
    hflip: bool = False
    vflip: bool = False
    color_mode: int = 0
    address: int = 0
    palette_offset: int = 0

    @classmethod
    def from_bytes(cls, data: Sequence[int]) -> "SpriteProperties":
        d = [b & 0xFF for b in data[:8]]
        width_log2 = ((d[7] >> 4) & 3) + 3
        height_log2 = (d[7] >> 6) + 3
        width = 1 << width_log2
        height = 1 << height_log2
        x = d[2] | ((d[3] & 3) << 8)
        y = d[4] | ((d[5] & 3) << 8)
        # coordinates near the top of the range are negative
        if x >= 0x400 - width:
            x -= 0x400
        if y >= 0x400 - height:
            y -= 0x400
        return cls(
            zdepth=(d[6] >> 2) & 3,
            collision_mask=d[6] & 0xF0,
            x=x,
            y=y,
            width_log2=width_log2,
            height_log2=height_log2,
            width=width,
            height=height,
            hflip=bool(d[6] & 1),
            vflip=bool((d[6] >> 1) & 1),
            color_mode=(d[1] >> 7) & 1,
            address=(d[0] << 5) | ((d[1] & 0xF) << 13),
            palette_offset=(d[7] & 0x0F) << 4,
        )


@dataclass
class SpriteLine:
    """Colour, depth and collision mask of every pixel of one sprite line."""

    col: List[int] = field(default_factory=lambda: [0] * SCREEN_WIDTH)
    z: List[int] = field(default_factory=lambda: [0] * SCREEN_WIDTH)
    mask: List[int] = field(default_factory=lambda: [0] * SCREEN_WIDTH)
    collisions: int = 0


def _unpack_sprite_row(vram: Sequence[int], address: int, width: int, color_mode: int) -> List[int]:
    if color_mode:
        return [_read(vram, address + i) for i in range(width)]
    pixels: List[int] = []
    for i in range(width // 2):
        byte = _read(vram, address + i)
        pixels.append(byte >> 4)
        pixels.append(byte & 0xF)
    return pixels


def render_sprite_line(
    sprites: Sequence[SpriteProperties], vram: Sequence[int], y: int
) -> SpriteLine:
    """Render all sprites touching line ``y`` within the per-line clock budget."""
    line = SpriteLine()
    budget = _SPRITE_BUDGET
    for props in sprites[:NUM_SPRITES]:
        # one clock per lookup
        budget = (budget - 1) & 0xFFFF
        if budget == 0:
            break
        if props.zdepth == 0:
            continue
        if y < props.y or y >= props.y + props.height:
            continue

        row = y - props.y
        eff_sy = (props.height - 1) - row if props.vflip else row
        eff_sx = props.width - 1 if props.hflip else 0
        incr = -1 if props.hflip else 1

        row_address = props.address + (eff_sy << (props.width_log2 - (1 - props.color_mode)))
        width = min(props.width, 64)
        pixels = _unpack_sprite_row(vram, row_address, width, props.color_mode)

        for sx in range(props.width):
            line_x = (props.x + sx) & 0xFFFF
            if line_x >= SCREEN_WIDTH:
                eff_sx += incr
                continue
            # one clock per fetched 32 bits
            if not sx & 3:
                budget = (budget - 1) & 0xFFFF
                if budget == 0:
                    break
            # one clock per rendered pixel
            budget = (budget - 1) & 0xFFFF
            if budget == 0:
                break

            col_index = pixels[eff_sx]
            eff_sx += incr
            if col_index > 0:
                line.collisions |= line.mask[line_x] & props.collision_mask
                line.mask[line_x] |= props.collision_mask
                if props.zdepth > line.z[line_x]:
                    line.col[line_x] = (col_index + props.palette_offset) & 0xFF
                    line.z[line_x] = props.zdepth
    return line


def _map_entry(props: LayerProperties, vram: Sequence[int], eff_x: int, eff_y: int):
    address = props.map_address(eff_x, eff_y)
    return _read(vram, address), _read(vram, address + 1)


def _text_colors(props: LayerProperties, attr: int):
    if props.text_mode_256c:
        return attr, 0
    return attr & 15, attr >> 4


def _render_text(props: LayerProperties, props0: LayerProperties, vram: Sequence[int], y: int) -> List[int]:
    line = [0] * SCREEN_WIDTH
    max_pixels_per_byte = (8 >> props.color_depth) - 1
    eff_y = props0.eff_y(y)
    yy = eff_y & props.tileh_max
    y_add = (yy << props.tilew_log2) >> 3

    eff_x = props.eff_x(0)
    xx = eff_x & props.tilew_max
    tile_index, attr = _map_entry(props, vram, eff_x, eff_y)
    fg, bg = _text_colors(props, attr)
    tile_start = tile_index << props.tile_size_log2
    s = _read(vram, props.tile_base + tile_start + y_add + (xx >> 3))
    color_shift = (max_pixels_per_byte - (xx & 7)) & 0xFF

    for x in range(SCREEN_WIDTH):
        eff_x = props.eff_x(x)
        xx = eff_x & props.tilew_max
        if (eff_x & 7) == 0:
            if xx == 0:
                tile_index, attr = _map_entry(props, vram, eff_x, eff_y)
                fg, bg = _text_colors(props, attr)
                tile_start = tile_index << props.tile_size_log2
            s = _read(vram, props.tile_base + tile_start + y_add + (xx >> 3))
            color_shift = max_pixels_per_byte
        bit = (s >> color_shift) & 1
        color_shift = (color_shift - 1) & 0xFF
        line[x] = fg if bit else bg
    return line


def _render_tile(props: LayerProperties, props0: LayerProperties, vram: Sequence[int], y: int) -> List[int]:
    line = [0] * SCREEN_WIDTH
    depth = props.color_depth
    max_pixels_per_byte = (8 >> depth) - 1
    eff_y = props0.eff_y(y)
    yy = eff_y & props.tileh_max & 0xFF
    yy_flip = (yy ^ props.tileh_max) & 0xFF
    row_shift = props.tilew_log2 + depth - 3
    y_add = yy << row_shift
    y_add_flip = yy_flip << row_shift

    palette_offset = 0
    vflip = hflip = False
    tile_start = 0
    shift_incr = 0

    def load_tile(eff_x: int) -> None:
        nonlocal palette_offset, vflip, hflip, tile_start, shift_incr
        byte0, byte1 = _map_entry(props, vram, eff_x, eff_y)
        vflip = bool((byte1 >> 3) & 1)
        hflip = bool((byte1 >> 2) & 1)
        palette_offset = byte1 & 0xF0
        tile_start = (byte0 | ((byte1 & 3) << 8)) << props.tile_size_log2
        shift_incr = props.bits_per_pixel if hflip else -props.bits_per_pixel

    def load_byte(eff_x: int):
        xx = eff_x & props.tilew_max
        if hflip:
            xx ^= props.tilew_max
            shift = 0
        else:
            shift = props.first_color_pos
        x_add = ((xx << depth) >> 3) & 0xFFFF
        offset = tile_start + (y_add_flip if vflip else y_add) + x_add
        return _read(vram, props.tile_base + offset), shift

    eff_x = props.eff_x(0)
    load_tile(eff_x)
    s, color_shift = load_byte(eff_x)

    for x in range(SCREEN_WIDTH):
        eff_x = props.eff_x(x)
        if (eff_x & max_pixels_per_byte) == 0:
            if (eff_x & props.tilew_max) == 0:
                load_tile(eff_x)
            s, color_shift = load_byte(eff_x)
        col_index = (s >> color_shift) & props.color_mask
        color_shift = (color_shift + shift_incr) & 0xFF
        if 0 < col_index < 16:
            col_index = (col_index + palette_offset) & 0xFF
            if props.text_mode_256c:
                col_index |= 0x80
        line[x] = col_index
    return line


def _render_bitmap(props: LayerProperties, regs: Sequence[int], vram: Sequence[int], y: int) -> List[int]:
    line = [0] * SCREEN_WIDTH
    bpp = props.bits_per_pixel
    yy = y % props.tileh
    y_add = (yy * props.tilew * bpp) >> 3
    palette_offset = (regs[4] & 0xF) << 4
    for x in range(SCREEN_WIDTH):
        xx = x % props.tilew
        x_add = ((xx * bpp) >> 3) & 0xFFFF
        s = _read(vram, props.tile_base + y_add + x_add)
        shift = props.first_color_pos - ((xx & props.color_fields_max) << props.color_depth)
        col_index = (s >> shift) & props.color_mask
        if 0 < col_index < 16:
            col_index = (col_index + palette_offset) & 0xFF
            if props.text_mode_256c:
                col_index |= 0x80
        line[x] = col_index
    return line


def render_layer_line(
    props: LayerProperties,
    props0: LayerProperties,
    regs: Sequence[int],
    vram: Sequence[int],
    y: int,
) -> List[int]:
    """Render one 640-pixel line of a layer as palette indices.

    ``props`` are the properties in effect two lines back and ``props0`` one line
    back (the latter supplies the vertical scroll); ``regs`` are the layer's registers.
    """
    if props.text_mode:
        return _render_text(props, props0, vram, y)
    if props.bitmap_mode:
        return _render_bitmap(props, regs, vram, y)
    return _render_tile(props, props0, vram, y)


def calculate_line_col_index(
    spr_zindex: int, spr_col_index: int, l1_col_index: int, l2_col_index: int
) -> int:
    """Pick the visible colour from a sprite and two layers by sprite depth."""
    if spr_zindex == 3:
        return spr_col_index or l2_col_index or l1_col_index
    if spr_zindex == 2:
        return l2_col_index or spr_col_index or l1_col_index
    if spr_zindex == 1:
        return l2_col_index or l1_col_index or spr_col_index
    if spr_zindex == 0:
        return l2_col_index or l1_col_index
    return 0