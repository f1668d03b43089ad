"""The VERA programmable sound generator: sixteen channels of simple waveforms."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import List, Tuple

NUM_CHANNELS = 16

VOLUME_TABLE = (
    0, 1, 1, 1,
    2, 2, 2, 2, 2, 2, 2, 3, 3, 3, 3, 3,
    4, 4, 4, 4, 5, 5, 5, 6, 6, 7, 7, 7,
    8, 8, 9, 9, 10, 11, 11, 12, 13, 14, 14, 15,
    16, 17, 18, 19, 21, 22, 23, 25, 26, 28, 29, 31,
    33, 35, 37, 39, 42, 44, 47, 50, 52, 56, 59, 63,
)


class Waveform(IntEnum):
    PULSE = 0
    SAWTOOTH = 1
    TRIANGLE = 2
    NOISE = 3


def _int16(value: int) -> int:
    value &= 0xFFFF
    return value - 0x10000 if value & 0x8000 else value


@dataclass
class Channel:
    """State of one PSG voice."""

    freq: int = 0
    volume: int = 0
    left: bool = False
    right: bool = False
    pw: int = 0
    waveform: Waveform = Waveform.PULSE
    noiseval: int = 0
    phase: int = 0

    def level(self) -> int:
        """The current 6-bit waveform level, before signing and volume."""
        phase = self.phase
        if self.waveform == Waveform.PULSE:
            return 0 if (phase >> 10) > self.pw else 0x3F
        if self.waveform == Waveform.SAWTOOTH:
            return phase >> 11
        if self.waveform == Waveform.TRIANGLE:
            if phase & 0x10000:
                return ~(phase >> 10) & 0x3F
            return (phase >> 10) & 0x3F
        return self.noiseval


class Psg:
    """Sixteen-voice sound generator producing stereo signed 16-bit samples."""

    def __init__(self) -> None:
        self.channels: List[Channel] = []
        self._noise_state = 1
        self.reset()

    def reset(self) -> None:
        self.channels = [Channel() for _ in range(NUM_CHANNELS)]
        self._noise_state = 1

    def write_register(self, reg: int, value: int) -> None:
        """Write one of the 64 PSG registers: four per channel."""
        reg &= 0x3F
        value &= 0xFF
        ch = self.channels[reg // 4]
        idx = reg & 3
        if idx == 0:
            ch.freq = (ch.freq & 0xFF00) | value
        elif idx == 1:
            ch.freq = (ch.freq & 0x00FF) | (value << 8)
        elif idx == 2:
            ch.right = bool(value & 0x80)
            ch.left = bool(value & 0x40)
            ch.volume = VOLUME_TABLE[value & 0x3F]
        else:
            ch.pw = value & 0x3F
            ch.waveform = Waveform(value >> 6)

    def _step_noise(self) -> int:
        ns = self._noise_state
        bit = ((ns >> 1) ^ (ns >> 2) ^ (ns >> 4) ^ (ns >> 15)) & 1
        self._noise_state = ((ns << 1) | bit) & 0xFFFF
        return self._noise_state

    def _render_frame(self) -> Tuple[int, int]:
        left = 0
        right = 0
        for ch in self.channels:
            # noise advances once per channel update, as the hardware does
            noise = self._step_noise()
            if ch.left or ch.right:
                new_phase = (ch.phase + ch.freq) & 0x1FFFF
            else:
                new_phase = 0
            if (ch.phase ^ new_phase) & 0x10000:
                ch.noiseval = noise & 0x3F
            ch.phase = new_phase

            signed = ch.level() ^ 0x20
            if signed & 0x20:
                signed -= 0x40
            val = _int16(signed * ch.volume)
            if ch.left:
                left = _int16(left + val)
            if ch.right:
                right = _int16(right + val)
        return left, right

    def render(self, num_samples: int) -> List[int]:
        """Return ``num_samples`` stereo frames as interleaved signed 16-bit values."""
        out: List[int] = []
        for _ in range(num_samples):
            out.extend(self._render_frame())
        return out