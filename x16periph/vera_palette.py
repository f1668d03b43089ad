"""The VERA palette: 256 twelve-bit colours and their expansion to 24-bit RGB."""

from __future__ import annotations

from typing import List

NUM_COLORS = 256

DEFAULT_PALETTE = (
    0x000, 0xFFF, 0x800, 0xAFE, 0xC4C, 0x0C5, 0x00A, 0xEE7, 0xD85, 0x640, 0xF77, 0x333, 0x777, 0xAF6, 0x08F, 0xBBB,
    0x000, 0x111, 0x222, 0x333, 0x444, 0x555, 0x666, 0x777, 0x888, 0x999, 0xAAA, 0xBBB, 0xCCC, 0xDDD, 0xEEE, 0xFFF,
    0x211, 0x433, 0x644, 0x866, 0xA88, 0xC99, 0xFBB, 0x211, 0x422, 0x633, 0x844, 0xA55, 0xC66, 0xF77, 0x200, 0x411,
    0x611, 0x822, 0xA22, 0xC33, 0xF33, 0x200, 0x400, 0x600, 0x800, 0xA00, 0xC00, 0xF00, 0x221, 0x443, 0x664, 0x886,
    0xAA8, 0xCC9, 0xFEB, 0x211, 0x432, 0x653, 0x874, 0xA95, 0xCB6, 0xFD7, 0x210, 0x431, 0x651, 0x862, 0xA82, 0xCA3,
    0xFC3, 0x210, 0x430, 0x640, 0x860, 0xA80, 0xC90, 0xFB0, 0x121, 0x343, 0x564, 0x786, 0x9A8, 0xBC9, 0xDFB, 0x121,
    0x342, 0x463, 0x684, 0x8A5, 0x9C6, 0xBF7, 0x120, 0x241, 0x461, 0x582, 0x6A2, 0x8C3, 0x9F3, 0x120, 0x240, 0x360,
    0x480, 0x5A0, 0x6C0, 0x7F0, 0x121, 0x343, 0x465, 0x686, 0x8A8, 0x9CA, 0xBFC, 0x121, 0x242, 0x364, 0x485, 0x5A6,
    0x6C8, 0x7F9, 0x020, 0x141, 0x162, 0x283, 0x2A4, 0x3C5, 0x3F6, 0x020, 0x041, 0x061, 0x082, 0x0A2, 0x0C3, 0x0F3,
    0x122, 0x344, 0x466, 0x688, 0x8AA, 0x9CC, 0xBFF, 0x122, 0x244, 0x366, 0x488, 0x5AA, 0x6CC, 0x7FF, 0x022, 0x144,
    0x166, 0x288, 0x2AA, 0x3CC, 0x3FF, 0x022, 0x044, 0x066, 0x088, 0x0AA, 0x0CC, 0x0FF, 0x112, 0x334, 0x456, 0x668,
    0x88A, 0x9AC, 0xBCF, 0x112, 0x224, 0x346, 0x458, 0x56A, 0x68C, 0x79F, 0x002, 0x114, 0x126, 0x238, 0x24A, 0x35C,
    0x36F, 0x002, 0x014, 0x016, 0x028, 0x02A, 0x03C, 0x03F, 0x112, 0x334, 0x546, 0x768, 0x98A, 0xB9C, 0xDBF, 0x112,
    0x324, 0x436, 0x648, 0x85A, 0x96C, 0xB7F, 0x102, 0x214, 0x416, 0x528, 0x62A, 0x83C, 0x93F, 0x102, 0x204, 0x306,
    0x408, 0x50A, 0x60C, 0x70F, 0x212, 0x434, 0x646, 0x868, 0xA8A, 0xC9C, 0xFBE, 0x211, 0x423, 0x635, 0x847, 0xA59,
    0xC6B, 0xF7D, 0x201, 0x413, 0x615, 0x826, 0xA28, 0xC3A, 0xF3C, 0x201, 0x403, 0x604, 0x806, 0xA08, 0xC09, 0xF0B,
)

_BLUE_SCREEN = 0x0000FF


def _expand4(nibble: int) -> int:
    return (nibble << 4) | nibble


class Palette:
    """Palette RAM (two bytes per colour) plus the derived RGB lookup table."""

    def __init__(self) -> None:
        self._data = bytearray(NUM_COLORS * 2)
        self.entries: List[int] = [0] * NUM_COLORS
        self.dirty = False
        self.reset()

    def reset(self) -> None:
        """Load the default colours and rebuild the table with video output off."""
        for i, color in enumerate(DEFAULT_PALETTE):
            self._data[i * 2] = color & 0xFF
            self._data[i * 2 + 1] = color >> 8
        self.refresh(0)

    def write(self, offset: int, value: int) -> None:
        """Store one palette byte; the RGB table is rebuilt on the next refresh."""
        self._data[offset & 0x1FF] = value & 0xFF
        self.dirty = True

    def refresh(self, dc_video: int) -> List[int]:
        """Rebuild the 0xRRGGBB table for the output mode in ``dc_video``."""
        out_mode = dc_video & 3
        chroma_disable = (dc_video & 0x07) == 6
        entries: List[int] = []
        for i in range(NUM_COLORS):
            if out_mode == 0:
                # video generation off shows a blue screen
                entries.append(_BLUE_SCREEN)
                continue
            entry = self._data[i * 2] | (self._data[i * 2 + 1] << 8)
            r = _expand4((entry >> 8) & 0xF)
            g = _expand4((entry >> 4) & 0xF)
            b = _expand4(entry & 0xF)
            if chroma_disable:
                r = g = b = (r + g + b) // 3
            entries.append((r << 16) | (g << 8) | b)
        self.entries = entries
        self.dirty = False
        return entries

    def raw(self) -> bytes:
        """The 512 bytes of palette RAM."""
        return bytes(self._data)