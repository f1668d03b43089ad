"""The VERA video chip as seen from the CPU: registers, scan-out timing and line composition."""

from __future__ import annotations

import logging
import math
import random
from typing import BinaryIO, Callable, List, Optional

from .sdcard import SdCard
from .vera_fx import FxUnit, VideoSpace
from .vera_layers import (
    SCREEN_HEIGHT,
    SCREEN_WIDTH,
    LayerProperties,
    SpriteLine,
    calculate_line_col_index,
    render_layer_line,
    render_sprite_line,
)
from .vera_pcm import Pcm
from .vera_psg import Psg
from .vera_spi import VeraSpi

log = logging.getLogger(__name__)

DEFAULT_MHZ = 8

# both VGA and NTSC
SCAN_HEIGHT = 525
PIXEL_FREQ = 25.0

VGA_SCAN_WIDTH = 800
VGA_Y_OFFSET = 0

# NTSC: 262.5 lines per frame, lower field first
NTSC_HALF_SCAN_WIDTH = 794
NTSC_Y_OFFSET_LOW = 42
NTSC_Y_OFFSET_HIGH = 568
TITLE_SAFE_X = 0.067
TITLE_SAFE_Y = 0.05

COMPOSER_SLOTS = 4 * 64
NUM_LAYERS = 2
SPECIAL_ADDRESS_START = 0x1F9C0

_FRAME_PIXELS = SCREEN_WIDTH * SCREEN_HEIGHT


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _pixel(line: List[int], index: int) -> int:
    # scaled-up lines can index past the end; those pixels read as transparent
    return line[index] if index < SCREEN_WIDTH else 0


class Vera:
    """The 32 CPU-visible VERA registers together with the raster that produces frames."""

    def __init__(
        self,
        psg: Optional[Psg] = None,
        pcm: Optional[Pcm] = None,
        spi: Optional[VeraSpi] = None,
        mhz: int = DEFAULT_MHZ,
    ) -> None:
        self.psg = psg if psg is not None else Psg()
        self.pcm = pcm if pcm is not None else Pcm()
        self.spi = spi if spi is not None else VeraSpi(SdCard())
        self.mhz = mhz
        self.audio_hook: Optional[Callable[[], None]] = None
        self.warp_mode = False
        self.enable_midline = False
        self.log_video = False

        self.space = VideoSpace(self.psg, self._audio_render)
        self.fx = FxUnit(self.space)
        self._rng = random.Random()

        self.framebuffer: List[int] = [0] * _FRAME_PIXELS
        self.layer_properties: List[LayerProperties] = [LayerProperties() for _ in range(NUM_LAYERS)]
        self.prev_layer_properties: List[List[LayerProperties]] = [
            list(self.layer_properties),
            list(self.layer_properties),
        ]
        self.reg_composer = bytearray(COMPOSER_SLOTS)
        self.prev_reg_composer = [bytearray(COMPOSER_SLOTS), bytearray(COMPOSER_SLOTS)]

        self.layer_line: List[List[int]] = [[0] * SCREEN_WIDTH for _ in range(NUM_LAYERS)]
        self.sprite_line = SpriteLine()
        self._layer_line_enable = [False, False]
        self._old_layer_line_enable = [False, False]
        self._sprite_line_enable = False
        self._old_sprite_line_enable = False

        # per-line render state
        self._y_prev = 0
        self._s_pos_x_p = 0
        self._eff_y_fp = 0
        self._eff_x_fp = 0
        self._col_line: List[int] = [0] * SCREEN_WIDTH
        self.frame_count = 0

        self.reset()

    def _audio_render(self) -> None:
        if self.audio_hook is not None:
            self.audio_hook()

    def reset(self) -> None:
        """Return registers, FX state, palette and sound to power-on values; VRAM gets random bytes."""
        self.fx.reset()
        self.io_addrsel = 0
        self.io_dcsel = 0
        self.ien = 0
        self.isr = 0
        self.irq_line = 0

        self.reg_layer = [bytearray(7), bytearray(7)]

        self.reg_composer[:] = bytes(COMPOSER_SLOTS)
        self.reg_composer[1] = 128  # hscale = 1.0
        self.reg_composer[2] = 128  # vscale = 1.0
        self.reg_composer[5] = 640 >> 2
        self.reg_composer[7] = 480 >> 1

        self.space.reset(self._rng)
        self.sprite_line_collisions = 0

        self.vga_scan_pos_x = 0.0
        self.vga_scan_pos_y = 0
        self.ntsc_half_cnt = 0.0
        self.ntsc_scan_pos_y = 0

        self.psg.reset()
        self.pcm.reset()

    # ------------------------------------------------------------------ raster

    def _render_line(self, y: int, scan_pos_x: float) -> None:
        y &= 0xFFFF
        composer = self.reg_composer
        dc_video = composer[0]
        vstart = composer[6] << 1

        if y != self._y_prev:
            self._y_prev = y
            self._s_pos_x_p = 0
            # two lines of history so that delayed raster effects land on the right line
            self.prev_reg_composer[1] = self.prev_reg_composer[0]
            self.prev_reg_composer[0] = bytearray(composer)
            self.prev_layer_properties[1] = self.prev_layer_properties[0]
            self.prev_layer_properties[0] = list(self.layer_properties)

            vscale = self.prev_reg_composer[1][2]
            if (dc_video & 3) > 1:  # 480i or 240p
                if (y >> 1) == 0:
                    self._eff_y_fp = y * (vscale << 9)
                elif (y & 0xFFFE) > vstart:
                    self._eff_y_fp += vscale << 10
            else:
                if y == 0:
                    self._eff_y_fp = 0
                elif y > vstart:
                    self._eff_y_fp += vscale << 9
            self._eff_y_fp &= 0xFFFFFFFF

        if (dc_video & 8) and (dc_video & 3) > 1:  # progressive NTSC/RGB
            y &= 0xFFFE

        palette = self.space.palette
        if palette.dirty:
            palette.refresh(composer[0])

        if y >= SCREEN_HEIGHT:
            return

        s_pos_x = min(_round_half_up(scan_pos_x) & 0xFFFF, SCREEN_WIDTH)
        start = self._s_pos_x_p
        if start == 0:
            self._eff_x_fp = 0

        out_mode = composer[0] & 3
        border_color = composer[3]
        hstart = composer[4] << 2
        hstop = composer[5] << 2
        vstop = composer[7] << 1
        eff_y = (self._eff_y_fp >> 16) & 0xFFFF

        self._layer_line_enable = [bool(dc_video & 0x10), bool(dc_video & 0x20)]
        self._sprite_line_enable = bool(dc_video & 0x40)

        for layer in range(NUM_LAYERS):
            if not self._layer_line_enable[layer] and self._old_layer_line_enable[layer]:
                self.layer_line[layer][start:] = [0] * (SCREEN_WIDTH - start)
            if start == 0:
                self._old_layer_line_enable[layer] = self._layer_line_enable[layer]

        if not self._sprite_line_enable and self._old_sprite_line_enable:
            blank = [0] * (SCREEN_WIDTH - start)
            self.sprite_line.col[start:] = blank
            self.sprite_line.z[start:] = blank
            self.sprite_line.mask[start:] = blank
        if start == 0:
            self._old_sprite_line_enable = self._sprite_line_enable

        if self._sprite_line_enable:
            self.sprite_line = render_sprite_line(self.space.sprite_properties, self.space.vram, eff_y)
            self.sprite_line_collisions |= self.sprite_line.collisions

        if self.warp_mode and (self.frame_count & 63):
            # sprites were needed for the collision IRQ; the picture can be skipped
            return

        for layer in range(NUM_LAYERS):
            if self._layer_line_enable[layer]:
                self.layer_line[layer] = render_layer_line(
                    self.prev_layer_properties[1][layer],
                    self.prev_layer_properties[0][layer],
                    self.reg_layer[layer],
                    self.space.vram,
                    eff_y,
                )

        col_line = self._col_line
        if out_mode != 0:
            if y < vstart or y > vstop:
                col_line[:] = [border_color] * SCREEN_WIDTH
            else:
                hstart = min(hstart, 640)
                hstop = min(hstop, 640)
                for x in range(start, min(hstart, s_pos_x)):
                    col_line[x] = border_color
                scale = composer[1]
                sprites = self.sprite_line
                l1, l2 = self.layer_line
                for x in range(max(hstart, start), min(hstop, s_pos_x)):
                    eff_x = (self._eff_x_fp >> 16) & 0xFFFF
                    col_line[x] = calculate_line_col_index(
                        _pixel(sprites.z, eff_x),
                        _pixel(sprites.col, eff_x),
                        _pixel(l1, eff_x),
                        _pixel(l2, eff_x),
                    )
                    self._eff_x_fp += scale << 9
                for x in range(hstop, s_pos_x):
                    col_line[x] = border_color

        entries = palette.entries
        base = y * SCREEN_WIDTH
        fb = self.framebuffer
        for x in range(start, s_pos_x):
            fb[base + x] = entries[col_line[x]]

        if out_mode == 2:
            # NTSC overscan: darken outside the title-safe area
            for x in range(start, s_pos_x):
                if (
                    x < SCREEN_WIDTH * TITLE_SAFE_X
                    or x > SCREEN_WIDTH * (1 - TITLE_SAFE_X)
                    or y < SCREEN_HEIGHT * TITLE_SAFE_Y
                    or y > SCREEN_HEIGHT * (1 - TITLE_SAFE_Y)
                ):
                    fb[base + x] = (fb[base + x] & 0x00FCFCFC) >> 2

        self._s_pos_x_p = s_pos_x

    def _update_isr_and_coll(self, y: int, compare: int) -> None:
        y &= 0xFFFF
        if y == SCREEN_HEIGHT:
            if self.sprite_line_collisions:
                self.isr |= 4
            self.isr = ((self.isr & 0xF) | self.sprite_line_collisions) & 0xFF
            self.sprite_line_collisions = 0
            self.isr |= 1  # VSYNC
        if y == compare:
            self.isr |= 2  # LINE

    def _render_ntsc(self, scan_pos_x: float) -> None:
        if self.ntsc_scan_pos_y < SCAN_HEIGHT:
            y = (self.ntsc_scan_pos_y - NTSC_Y_OFFSET_LOW) & 0xFFFF
            if (y & 1) == 0:
                self._render_line(y, scan_pos_x)
        else:
            y = (self.ntsc_scan_pos_y - NTSC_Y_OFFSET_HIGH) & 0xFFFF
            if (y & 1) == 0:
                self._render_line(y | 1, scan_pos_x)

    def step(self, mhz: float, steps: float, midline: bool = False) -> bool:
        """Advance the beam by ``steps`` CPU cycles at ``mhz``; True when a frame has completed."""
        ntsc_mode = bool(self.reg_composer[0] & 2)
        new_frame = False
        advance = PIXEL_FREQ * steps / mhz

        self.vga_scan_pos_x += advance
        if self.vga_scan_pos_x > VGA_SCAN_WIDTH:
            self.vga_scan_pos_x -= VGA_SCAN_WIDTH
            if not ntsc_mode:
                self._render_line(self.vga_scan_pos_y - VGA_Y_OFFSET, VGA_SCAN_WIDTH)
            self.vga_scan_pos_y = (self.vga_scan_pos_y + 1) & 0xFFFF
            if self.vga_scan_pos_y == SCAN_HEIGHT:
                self.vga_scan_pos_y = 0
                if not ntsc_mode:
                    new_frame = True
                    self.frame_count += 1
            if not ntsc_mode:
                self._update_isr_and_coll(self.vga_scan_pos_y - VGA_Y_OFFSET, self.irq_line)
        elif midline and not ntsc_mode:
            self._render_line(self.vga_scan_pos_y - VGA_Y_OFFSET, self.vga_scan_pos_x)

        self.ntsc_half_cnt += advance
        if self.ntsc_half_cnt > NTSC_HALF_SCAN_WIDTH:
            self.ntsc_half_cnt -= NTSC_HALF_SCAN_WIDTH
            if ntsc_mode:
                self._render_ntsc(NTSC_HALF_SCAN_WIDTH)
            self.ntsc_scan_pos_y = (self.ntsc_scan_pos_y + 1) & 0xFFFF
            if self.ntsc_scan_pos_y == SCAN_HEIGHT:
                self.reg_composer[0] |= 0x80
                if ntsc_mode:
                    new_frame = True
                    self.frame_count += 1
            if self.ntsc_scan_pos_y == SCAN_HEIGHT * 2:
                self.reg_composer[0] &= 0x7F
                self.ntsc_scan_pos_y = 0
                if ntsc_mode:
                    new_frame = True
                    self.frame_count += 1
            if ntsc_mode:
                # correct enough for even screen heights
                offset = NTSC_Y_OFFSET_LOW if self.ntsc_scan_pos_y < SCAN_HEIGHT else NTSC_Y_OFFSET_HIGH
                self._update_isr_and_coll(self.ntsc_scan_pos_y - offset, self.irq_line & ~1)
        elif midline and ntsc_mode:
            self._render_ntsc(self.ntsc_half_cnt)

        return new_frame

    def irq_out(self) -> bool:
        """True while an enabled interrupt source is pending."""
        isr = self.isr | (8 if self.pcm.is_fifo_almost_empty() else 0)
        return (isr & self.ien) != 0

    # ------------------------------------------------------------------ registers

    def _scanline(self) -> int:
        if self.reg_composer[0] & 2:
            scanline = self.ntsc_scan_pos_y % SCAN_HEIGHT
        else:
            scanline = self.vga_scan_pos_y
        return min(scanline, 511)

    def read(self, reg: int, debug: bool = False) -> int:
        """Read a register; with ``debug`` set, nothing is changed by the read."""
        r = reg & 0x1F
        fx = self.fx
        sel = self.io_addrsel
        if r == 0x00:
            return fx.io_addr[sel] & 0xFF
        if r == 0x01:
            return (fx.io_addr[sel] >> 8) & 0xFF
        if r == 0x02:
            return (
                (fx.io_addr[sel] >> 16)
                | (int(fx.nibble_bit[sel]) << 1)
                | (int(fx.nibble_incr[sel]) << 2)
                | (fx.io_inc[sel] << 3)
            ) & 0xFF
        if r in (0x03, 0x04):
            port = r - 3
            if debug:
                return fx.io_rddata[port]
            address = fx.get_and_inc_address(port, False)
            value = fx.io_rddata[port]
            if r == 0x04 and fx.addr1_mode == 3:
                fx.affine_prefetch()
            else:
                fx.io_rddata[port] = self.space.read(fx.io_addr[port])
            fx.fill_cache(value)
            if self.log_video:
                log.debug("READ  video_space[$%X] = $%02X", address, value)
            return value
        if r == 0x05:
            return (self.io_dcsel << 1) | self.io_addrsel
        if r == 0x06:
            scanline = self._scanline()
            return ((self.irq_line & 0x100) >> 1) | ((scanline & 0x100) >> 2) | (self.ien & 0xF)
        if r == 0x07:
            return self.isr | (8 if self.pcm.is_fifo_almost_empty() else 0)
        if r == 0x08:
            return self._scanline() & 0xFF
        if 0x09 <= r <= 0x0C:
            i = r - 0x09 + (self.io_dcsel << 2)
            if i <= 0x08:
                return self.reg_composer[i]
            return fx.read_composer(i)
        if 0x0D <= r <= 0x13:
            return self.reg_layer[0][r - 0x0D]
        if 0x14 <= r <= 0x1A:
            return self.reg_layer[1][r - 0x14]
        if r == 0x1B:
            self._audio_render()
            return self.pcm.read_ctrl()
        if r == 0x1C:
            return self.pcm.read_rate()
        if r == 0x1D:
            return 0
        return self.spi.read(r & 1)

    def _refresh_layer(self, layer: int) -> None:
        self.layer_properties[layer] = LayerProperties.from_registers(
            self.reg_layer[layer], self.layer_properties[layer]
        )

    def _write_composer(self, r: int, value: int) -> None:
        self.step(self.mhz, 0, True)  # potential midline raster effect
        i = r - 0x09 + (self.io_dcsel << 2)
        composer = self.reg_composer
        if i == 0:
            # entering progressive mode clears the picture
            if ((composer[0] & 0x8) == 0 and (value & 0x8)) or (
                (composer[0] & 0x3) == 1 and (value & 0x3) > 1 and (value & 0x8)
            ):
                self.framebuffer = [0] * _FRAME_PIXELS
            # the interlace field bit is read-only
            composer[0] = (composer[0] & 0x80) | (value & 0x7F)
            self.space.palette.dirty = True
        else:
            composer[i] = value
        self.fx.write_composer(i, value, composer)

    def write(self, reg: int, value: int) -> None:
        r = reg & 0x1F
        value &= 0xFF
        fx = self.fx
        sel = self.io_addrsel
        if r == 0x00:
            if fx.two_bit_poly and fx.four_bit_mode and fx.addr1_mode == 2 and sel == 1:
                fx.two_bit_poking = True
                fx.io_addr[1] = (fx.io_addr[1] & 0x1FFFC) | (value & 0x3)
            else:
                fx.io_addr[sel] = (fx.io_addr[sel] & 0x1FF00) | value
                if fx.hop16 and sel == 1:
                    fx.hop16_align = value & 3
            fx.io_rddata[sel] = self.space.read(fx.io_addr[sel])
        elif r == 0x01:
            fx.io_addr[sel] = (fx.io_addr[sel] & 0x100FF) | (value << 8)
            fx.io_rddata[sel] = self.space.read(fx.io_addr[sel])
        elif r == 0x02:
            fx.io_addr[sel] = (fx.io_addr[sel] & 0x0FFFF) | ((value & 0x1) << 16)
            fx.nibble_bit[sel] = bool((value >> 1) & 1)
            fx.nibble_incr[sel] = bool((value >> 2) & 1)
            fx.io_inc[sel] = value >> 3
            fx.io_rddata[sel] = self.space.read(fx.io_addr[sel])
        elif r in (0x03, 0x04):
            if not (fx.two_bit_poking and fx.addr1_mode) and self.enable_midline:
                self.step(self.mhz, 0, True)
            address = fx.write_data(r - 3, value)
            if self.log_video and address is not None:
                log.debug("WRITE video_space[$%X] = $%02X", address, value)
        elif r == 0x05:
            if value & 0x80:
                self.reset()
            self.io_dcsel = (value >> 1) & 0x3F
            self.io_addrsel = value & 1
        elif r == 0x06:
            self.irq_line = (self.irq_line & 0xFF) | ((value >> 7) << 8)
            self.ien = value & 0xF
        elif r == 0x07:
            self.isr &= value ^ 0xFF
        elif r == 0x08:
            self.irq_line = (self.irq_line & 0x100) | value
        elif 0x09 <= r <= 0x0C:
            self._write_composer(r, value)
        elif 0x0D <= r <= 0x13:
            self.step(self.mhz, 0, True)
            self.reg_layer[0][r - 0x0D] = value
            self._refresh_layer(0)
        elif 0x14 <= r <= 0x1A:
            self.step(self.mhz, 0, True)
            self.reg_layer[1][r - 0x14] = value
            self._refresh_layer(1)
        elif r == 0x1B:
            self._audio_render()
            self.pcm.write_ctrl(value)
        elif r == 0x1C:
            self._audio_render()
            self.pcm.write_rate(value)
        elif r == 0x1D:
            self._audio_render()
            self.pcm.write_fifo(value)
        else:
            self.spi.write(r & 1, value)

    # ------------------------------------------------------------------ inspection

    def save(self, stream: BinaryIO) -> None:
        """Write VRAM, composer registers, palette, layer registers and sprite attributes."""
        stream.write(bytes(self.space.vram))
        stream.write(bytes(self.reg_composer))
        stream.write(self.space.palette.raw())
        stream.write(bytes(self.reg_layer[0]) + bytes(self.reg_layer[1]))
        stream.write(b"".join(bytes(data) for data in self.space.sprite_data))

    def address(self, sel: int) -> int:
        """Current VRAM address of data port ``sel``."""
        return self.fx.io_addr[sel]

    def overlay_activity_led(self, level: int) -> None:
        """Blend a red 8x4 square of intensity ``level`` into the top right of the frame."""
        level &= 0xFF
        progressive = (self.reg_composer[0] & 0x0B) > 0x09
        fb = self.framebuffer
        for y in range(0, 4, 2 if progressive else 1):
            for x in range(SCREEN_WIDTH - 8, SCREEN_WIDTH):
                i = y * SCREEN_WIDTH + x
                pixel = fb[i]
                r = (pixel >> 16) & 0xFF
                g = (pixel >> 8) & 0xFF
                b = pixel & 0xFF
                r = (r * (255 - level) // 255 + level) & 0xFF
                g = g * (255 - level) // 255
                b = b * (255 - level) // 255
                fb[i] = (r << 16) | (g << 8) | b

    def rgb_frame(self) -> bytes:
        """The current frame as 640x480 packed RGB bytes, top row first."""
        return b"".join(pixel.to_bytes(3, "big") for pixel in self.framebuffer)

    def is_tilemap_address(self, addr: int) -> bool:
        for props in self.layer_properties:
            if addr < props.map_base:
                continue
            if addr >= props.map_base + (2 << (props.mapw_log2 + props.maph_log2)):
                continue
            return True
        return False

    def is_tiledata_address(self, addr: int) -> bool:
        for props in self.layer_properties:
            if addr < props.tile_base:
                continue
            tile_size = props.tilew * props.tileh * props.bits_per_pixel // 8
            count = 256 if props.bits_per_pixel == 1 else 1024
            if addr >= props.tile_base + tile_size * count:
                continue
            return True
        return False

    def is_special_address(self, addr: int) -> bool:
        """True for the PSG, palette and sprite attribute area at the top of VRAM."""
        return addr >= SPECIAL_ADDRESS_START