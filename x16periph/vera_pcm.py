"""The VERA PCM audio FIFO and sample generator."""

from __future__ import annotations

from typing import List

FIFO_SIZE = 4096
VOLUME_TABLE = (0, 1, 2, 3, 4, 5, 6, 8, 11, 14, 18, 23, 30, 38, 49, 64)

# bytes needed per sample frame in each format: mono/stereo, 8/16 bit
_FRAME_BYTES = (1, 2, 2, 4)


def _int16(value: int) -> int:
    value &= 0xFFFF
    return value - 0x10000 if value & 0x8000 else value


def _apply_volume(sample: int, volume: int) -> int:
    product = sample * volume
    quotient = abs(product) // 64
    return _int16(quotient if product >= 0 else -quotient)


class Pcm:
    """A PCM channel fed through a 4 KiB FIFO."""

    def __init__(self) -> None:
        self._fifo = bytearray(FIFO_SIZE)
        self._loop = False
        self.reset()

    def reset(self) -> None:
        self._fifo_reset()
        self._ctrl = 0
        self._rate = 0
        self._cur_l = 0
        self._cur_r = 0
        self._phase = 0

    def _fifo_reset(self) -> None:
        self._wridx = 0
        self._rdidx = 0
        self._count = 0

    def _fifo_restart(self) -> None:
        self._rdidx = 0
        self._count = self._wridx

    def _fifo_drop(self) -> None:
        self._count = 0
        self._rdidx = self._wridx

    def write_ctrl(self, value: int) -> None:
        if (value & 0xC0) == 0xC0:
            self._loop = True
        else:
            self._loop = False
            if value & 0x80:
                self._fifo_reset()
        if value & 0x40:
            self._fifo_restart()
        self._ctrl = value & 0x3F

    def read_ctrl(self) -> int:
        result = self._ctrl
        if self._count == FIFO_SIZE - 1:
            result |= 0x80
        if self._count == 0:
            result |= 0x40
        return result

    def write_rate(self, value: int) -> None:
        value &= 0xFF
        self._rate = 256 - value if value > 128 else value

    def read_rate(self) -> int:
        return self._rate

    def write_fifo(self, value: int) -> None:
        if self._count < FIFO_SIZE - 1:
            self._fifo[self._wridx] = value & 0xFF
            self._wridx = (self._wridx + 1) % FIFO_SIZE
            self._count += 1

    def _read_fifo(self) -> int:
        if self._count == 0:
            return 0
        value = self._fifo[self._rdidx]
        self._rdidx = (self._rdidx + 1) % FIFO_SIZE
        self._count -= 1
        return value

    def _read_word(self) -> int:
        low = self._read_fifo()
        return _int16(low | (self._read_fifo() << 8))

    def is_fifo_almost_empty(self) -> bool:
        return self._count < 1024

    def _fetch_sample(self) -> None:
        if self._count == 0:
            self._cur_l = 0
            self._cur_r = 0
            return
        mode = (self._ctrl >> 4) & 3
        if self._count < _FRAME_BYTES[mode]:
            self._fifo_drop()
        elif mode == 0:
            self._cur_l = self._cur_r = _int16(self._read_fifo() << 8)
        elif mode == 1:
            self._cur_l = _int16(self._read_fifo() << 8)
            self._cur_r = _int16(self._read_fifo() << 8)
        elif mode == 2:
            self._cur_l = self._cur_r = self._read_word()
        else:
            self._cur_l = self._read_word()
            self._cur_r = self._read_word()
        if self._loop and self._count == 0:
            self._fifo_restart()

    def render(self, num_samples: int) -> List[int]:
        """Return ``num_samples`` stereo frames as interleaved signed 16-bit values."""
        out: List[int] = []
        for _ in range(num_samples):
            old_phase = self._phase
            self._phase = (old_phase + self._rate) & 0xFF
            if (old_phase ^ self._phase) & 0x80:
                self._fetch_sample()
            volume = VOLUME_TABLE[self._ctrl & 0xF]
            out.append(_apply_volume(self._cur_l, volume))
            out.append(_apply_volume(self._cur_r, volume))
        return out