"""VERA video address space and the FX unit: address stepping, caches, multiplier and affine helper."""

from __future__ import annotations

import random
from typing import Callable, List, Optional, Sequence

from .vera_layers import NUM_SPRITES, SpriteProperties
from .vera_palette import Palette
from .vera_psg import Psg

VRAM_SIZE = 0x20000
VRAM_MASK = 0x1FFFF

ADDR_PSG_START = 0x1F9C0
ADDR_PSG_END = 0x1FA00
ADDR_PALETTE_START = 0x1FA00
ADDR_PALETTE_END = 0x1FC00
ADDR_SPRDATA_START = 0x1FC00
ADDR_SPRDATA_END = 0x20000

VERSION = (ord("V"), 0x00, 0x03, 0x02)

INCREMENTS = (
    0, 0, 1, -1, 2, -2, 4, -4, 8, -8, 16, -16, 32, -32, 64, -64,
    128, -128, 256, -256, 512, -512, 40, -40, 80, -80, 160, -160, 320, -320, 640, -640,
)

_U32 = 0xFFFFFFFF


def _int16(value: int) -> int:
    value &= 0xFFFF
    return value - 0x10000 if value & 0x8000 else value


def _int32(value: int) -> int:
    value &= _U32
    return value - 0x100000000 if value & 0x80000000 else value


def _pixel_increment(low: int, high: int) -> int:
    value = ((high & 0x7F) << 15) + (low << 7)
    if high & 0x40:
        value |= 0xFFC00000
    if high & 0x80:
        value <<= 5
    return value & _U32


class VideoSpace:
    """128 KiB of video RAM with the PSG, palette and sprite attributes mapped at the top."""

    def __init__(self, psg: Optional[Psg] = None, audio_hook: Optional[Callable[[], None]] = None) -> None:
        self.psg = psg
        self.audio_hook = audio_hook
        self.vram = bytearray(VRAM_SIZE)
        self.palette = Palette()
        self.sprite_data: List[bytearray] = [bytearray(8) for _ in range(NUM_SPRITES)]
        self.sprite_properties: List[SpriteProperties] = [SpriteProperties() for _ in range(NUM_SPRITES)]

    def reset(self, rng: Optional[random.Random] = None) -> None:
        """Clear sprite attributes, reload the palette and fill VRAM with random bytes."""
        rng = rng if rng is not None else random.Random()
        for data in self.sprite_data:
            data[:] = bytes(8)
        self.palette.reset()
        self.vram[:] = rng.randbytes(VRAM_SIZE)

    def read(self, address: int) -> int:
        return self.vram[address & VRAM_MASK]

    def read_range(self, address: int, size: int) -> bytes:
        """Read ``size`` bytes, wrapping at the end of video RAM."""
        return bytes(self.vram[(address + i) & VRAM_MASK] for i in range(size))

    def _mapped_write(self, address: int, value: int) -> None:
        if ADDR_PSG_START <= address < ADDR_PSG_END:
            if self.audio_hook is not None:
                self.audio_hook()
            if self.psg is not None:
                self.psg.write_register(address & 0x3F, value)
        elif ADDR_PALETTE_START <= address < ADDR_PALETTE_END:
            self.palette.write(address & 0x1FF, value)
        elif ADDR_SPRDATA_START <= address < ADDR_SPRDATA_END:
            index = (address >> 3) & 0x7F
            self.sprite_data[index][address & 7] = value
            self.sprite_properties[index] = SpriteProperties.from_bytes(self.sprite_data[index])

    def write(self, address: int, value: int) -> None:
        value &= 0xFF
        self.vram[address & VRAM_MASK] = value
        self._mapped_write(address, value)

    def fx_write(self, address: int, nibble: bool, value: int, four_bit: bool, transparent: bool) -> None:
        """Write through the FX unit: 4-bit mode stores one nibble, transparency skips zeros."""
        value &= 0xFF
        index = address & VRAM_MASK
        current = self.vram[index]
        if four_bit:
            if nibble:
                if not transparent or (value & 0x0F):
                    self.vram[index] = (current & 0xF0) | (value & 0x0F)
            elif not transparent or (value & 0xF0):
                self.vram[index] = (current & 0x0F) | (value & 0xF0)
        elif not transparent or value:
            self.vram[index] = value
        self._mapped_write(address, value)

    def cache_write(self, address: int, value: int, mask: int, transparent: bool) -> None:
        """Write a cache byte; mask 1 keeps the low nibble, 2 the high nibble, 3 the whole byte."""
        value &= 0xFF
        if transparent and not value:
            return
        index = address & VRAM_MASK
        current = self.vram[index]
        if mask == 0:
            self.vram[index] = value
        elif mask == 1:
            self.vram[index] = (current & 0x0F) | (value & 0xF0)
        elif mask == 2:
            self.vram[index] = (current & 0xF0) | (value & 0x0F)


class FxUnit:
    """The two data ports' address registers together with the FX helpers acting on them."""

    def __init__(self, space: VideoSpace) -> None:
        self.space = space
        self.reset()

    def reset(self) -> None:
        self.io_addr = [0, 0]
        self.io_rddata = [0, 0]
        self.io_inc = [0, 0]

        self.addr1_mode = 0
        # positions and increments are 16.16 fixed point
        self.x_position = 0x8000
        self.y_position = 0x8000
        self.x_increment = 0
        self.y_increment = 0
        self.poly_fill_length = 0

        self.cache_write = False
        self.cache_fill = False
        self.four_bit_mode = False
        self.hop16 = False
        self.subtract = False
        self.cache_byte_cycling = False
        self.trans_writes = False
        self.multiplier = False
        self.mult_accumulator = 0

        self.two_bit_poly = False
        self.two_bit_poking = False

        self.cache_nibble_index = False
        self.cache_byte_index = 0
        self.cache_increment_mode = False
        self.cache = bytearray(4)

        self.hop16_align = 0
        self.nibble_bit = [False, False]
        self.nibble_incr = [False, False]

        self.affine_tile_base = 0
        self.affine_map_base = 0
        self.affine_map_size = 2
        self.affine_clip = False

    def _step_nibble(self, target: int, flag: int, inc_index: int) -> None:
        if self.nibble_bit[flag]:
            if not inc_index & 1:
                self.io_addr[target] = (self.io_addr[target] + 1) & _U32
            self.nibble_bit[flag] = False
        else:
            if inc_index & 1:
                self.io_addr[target] = (self.io_addr[target] - 1) & _U32
            self.nibble_bit[flag] = True

    def get_and_inc_address(self, sel: int, write: bool) -> int:
        """Return the port's address and advance it, applying the active FX address mode."""
        address = self.io_addr[sel]
        incr = INCREMENTS[self.io_inc[sel]]

        if self.four_bit_mode and self.nibble_incr[sel] and not incr:
            self._step_nibble(sel, sel, self.io_inc[sel])

        if sel == 1 and self.hop16:
            aligned = self.hop16_align == (address & 3)
            if incr == 4:
                incr = 1 if aligned else 3
            elif incr == 320:
                incr = 1 if aligned else 319

        self.io_addr[sel] = (self.io_addr[sel] + incr) & _U32

        if sel == 1 and self.addr1_mode == 1:
            # line draw
            self.x_position = (self.x_position + self.x_increment) & _U32
            if self.x_position & 0x10000:
                self.x_position &= ~0x10000 & _U32
                if self.four_bit_mode and self.nibble_incr[0]:
                    self._step_nibble(1, 1, self.io_inc[0])
                self.io_addr[1] = (self.io_addr[1] + INCREMENTS[self.io_inc[0]]) & _U32
        elif self.addr1_mode == 2 and not write:
            # polygon fill
            self.x_position = (self.x_position + self.x_increment) & _U32
            self.y_position = (self.y_position + self.y_increment) & _U32
            self.poly_fill_length = (
                (_int32(self.y_position) >> 16) - (_int32(self.x_position) >> 16)
            ) & 0xFFFF
            if sel == 0 and self.cache_byte_cycling and not self.cache_fill:
                self.cache_byte_index = (self.cache_byte_index + 1) & 3
            if sel == 1:
                if self.four_bit_mode:
                    self.io_addr[1] = (self.io_addr[0] + (self.x_position >> 17)) & _U32
                    self.nibble_bit[1] = bool((self.x_position >> 16) & 1)
                else:
                    self.io_addr[1] = (self.io_addr[0] + (self.x_position >> 16)) & _U32
        elif sel == 1 and self.addr1_mode == 3 and not write:
            # affine
            self.x_position = (self.x_position + self.x_increment) & _U32
            self.y_position = (self.y_position + self.y_increment) & _U32
        return address

    def affine_prefetch(self) -> None:
        """In affine mode, point port 1 at the texel under the current position and fetch it."""
        if self.addr1_mode != 3:
            return
        fb = int(self.four_bit_mode)
        x_tile = (self.x_position >> 19) & 0xFF
        y_tile = (self.y_position >> 19) & 0xFF
        x_sub = (self.x_position >> 16) & 0x07
        y_sub = (self.y_position >> 16) & 0x07

        if not self.affine_clip:
            x_tile &= self.affine_map_size - 1
            y_tile &= self.affine_map_size - 1

        sub_offset = (y_sub << (3 - fb)) + (x_sub >> fb)
        if x_tile >= self.affine_map_size or y_tile >= self.affine_map_size:
            # clipped: take the texel from tile 0
            address = self.affine_tile_base + sub_offset
            if fb:
                self.nibble_bit[1] = False
        else:
            map_address = self.affine_map_base + y_tile * self.affine_map_size + x_tile
            tile_index = self.space.read(map_address)
            address = self.affine_tile_base + (tile_index << (6 - fb)) + sub_offset
            if fb:
                self.nibble_bit[1] = bool(x_sub & 1)
        self.io_addr[1] = address & _U32
        self.io_rddata[1] = self.space.read(address)

    def multiply(self) -> int:
        """Signed product of the two 16-bit halves of the cache."""
        a = _int16((self.cache[1] << 8) | self.cache[0])
        b = _int16((self.cache[3] << 8) | self.cache[2])
        return a * b

    def _accumulate(self) -> None:
        product = self.multiply()
        if self.subtract:
            self.mult_accumulator = _int32(self.mult_accumulator - product)
        else:
            self.mult_accumulator = _int32(self.mult_accumulator + product)

    def write_composer(self, index: int, value: int, composer: Sequence[int]) -> None:
        """Apply a write to composer slot ``index``; ``composer`` already holds the new value."""
        value &= 0xFF
        if index == 0x08:
            self.addr1_mode = value & 0x03
            self.four_bit_mode = bool(value & 0x04)
            self.hop16 = bool(value & 0x08)
            self.cache_byte_cycling = bool(value & 0x10)
            self.cache_fill = bool(value & 0x20)
            self.cache_write = bool(value & 0x40)
            self.trans_writes = bool(value & 0x80)
        elif index == 0x09:
            self.affine_tile_base = (value & 0xFC) << 9
            self.affine_clip = bool(value & 0x02)
            self.two_bit_poly = bool(value & 0x01)
        elif index == 0x0A:
            self.affine_map_base = (value & 0xFC) << 9
            self.affine_map_size = 2 << ((value & 0x03) << 1)
        elif index == 0x0B:
            self.cache_increment_mode = bool(value & 0x01)
            self.cache_nibble_index = bool(value & 0x02)
            self.cache_byte_index = (value & 0x0C) >> 2
            self.multiplier = bool(value & 0x10)
            self.subtract = bool(value & 0x20)
            if value & 0x40:
                self._accumulate()
            if value & 0x80:
                self.mult_accumulator = 0
        elif index in (0x0C, 0x0D):
            self.x_increment = _pixel_increment(composer[0x0C], composer[0x0D])
            if index == 0x0D:
                # reset the subpixel to one half
                self.x_position = (self.x_position & 0x07FF0000) | 0x00008000
        elif index in (0x0E, 0x0F):
            self.y_increment = _pixel_increment(composer[0x0E], composer[0x0F])
            if index == 0x0F:
                self.y_position = (self.y_position & 0x07FF0000) | 0x00008000
        elif index == 0x10:
            self.x_position = (self.x_position & 0x0700FF80) | (value << 16)
            self.affine_prefetch()
        elif index == 0x11:
            self.x_position = (self.x_position & 0x00FFFF00) | ((value & 0x7) << 24) | (value & 0x80)
            self.affine_prefetch()
        elif index == 0x12:
            self.y_position = (self.y_position & 0x0700FF80) | (value << 16)
            self.affine_prefetch()
        elif index == 0x13:
            self.y_position = (self.y_position & 0x00FFFF00) | ((value & 0x7) << 24) | (value & 0x80)
            self.affine_prefetch()
        elif index == 0x14:
            self.x_position = (self.x_position & 0x07FF0080) | (value << 8)
        elif index == 0x15:
            self.y_position = (self.y_position & 0x07FF0080) | (value << 8)
        elif 0x18 <= index <= 0x1B:
            self.cache[index - 0x18] = value

    def read_composer(self, index: int) -> int:
        """Read an FX composer slot (index 9 and up); write-only slots return the version string."""
        if index < 9:
            raise ValueError(f"composer slot {index} is not an FX register")
        length = self.poly_fill_length
        x = self.x_position
        if index == 0x16:
            two_bit = self.two_bit_poly and self.addr1_mode == 2
            if length >= 768:
                return 0x00 if two_bit else 0x80
            if self.four_bit_mode:
                if two_bit:
                    result = (
                        ((self.y_position & 0x8000) >> 8)
                        | ((x >> 11) & 0x60)
                        | ((x >> 14) & 0x10)
                        | ((length & 0x0007) << 1)
                        | ((x & 0x8000) >> 15)
                    )
                else:
                    result = (
                        (bool(length & 0xFFF8) << 7)
                        | ((x >> 11) & 0x60)
                        | ((x >> 14) & 0x10)
                        | ((length & 0x0007) << 1)
                    )
            else:
                result = (bool(length & 0xFFF0) << 7) | ((x >> 11) & 0x60) | ((length & 0x000F) << 1)
            return result & 0xFF
        if index == 0x17:
            return (length & 0x03F8) >> 2
        if index == 0x18:
            self.mult_accumulator = 0
        elif index == 0x19:
            self._accumulate()
        return VERSION[index % 4]

    def fill_cache(self, value: int) -> None:
        """Store a byte just read into the cache; does nothing unless cache fill is on."""
        if not self.cache_fill:
            return
        value &= 0xFF
        i = self.cache_byte_index
        if self.four_bit_mode:
            if self.cache_nibble_index:
                self.cache[i] = (self.cache[i] & 0xF0) | (value & 0x0F)
                self.cache_nibble_index = False
                self.cache_byte_index = (i + 1) & 3
            else:
                self.cache[i] = (self.cache[i] & 0x0F) | (value & 0xF0)
                self.cache_nibble_index = True
        else:
            self.cache[i] = value
            if self.cache_increment_mode:
                self.cache_byte_index = (i & 2) | ((i + 1) & 1)
            else:
                self.cache_byte_index = (i + 1) & 3

    def _poke_two_bits(self, value: int) -> None:
        self.two_bit_poking = False
        shift = 6 - 2 * (value >> 6)
        pixel_mask = 0x03 << shift
        cached = self.cache[self.cache_byte_index]
        self.space.vram[self.io_addr[1] & VRAM_MASK] = (cached & pixel_mask) | (
            self.io_rddata[1] & ~pixel_mask & 0xFF
        )

    def write_data(self, sel: int, value: int) -> Optional[int]:
        """Write through data port ``sel``; returns the address written, or None for a 2-bit poke."""
        value &= 0xFF
        if self.two_bit_poking and self.addr1_mode:
            self._poke_two_bits(value)
            return None

        space = self.space
        nibble = self.nibble_bit[sel]
        address = self.get_and_inc_address(sel, True)
        transparent = self.trans_writes
        cached = self.cache[self.cache_byte_index]

        if self.cache_write:
            address &= 0x1FFFC
            masks = (value & 3, (value >> 2) & 3, (value >> 4) & 3, value >> 6)
            if self.cache_byte_cycling:
                data = (cached,) * 4
            elif self.multiplier:
                product = self.multiply()
                total = self.mult_accumulator - product if self.subtract else self.mult_accumulator + product
                total &= _U32
                data = tuple((total >> (8 * k)) & 0xFF for k in range(4))
            else:
                data = tuple(self.cache)
            for offset, (byte, mask) in enumerate(zip(data, masks)):
                space.cache_write(address + offset, byte, mask, transparent)
        elif self.cache_byte_cycling:
            mask = int(nibble) + 1 if self.four_bit_mode else 0
            space.cache_write(address, cached, mask, transparent)
        else:
            space.fx_write(address, nibble, value, self.four_bit_mode, transparent)

        self.io_rddata[sel] = space.read(self.io_addr[sel])
        return address