"""The VERA SPI controller that talks to the SD card."""

from __future__ import annotations

from .sdcard import SdCard


class VeraSpi:
    """SPI data and control registers with an eight-clock transfer time."""

    def __init__(self, sdcard: SdCard) -> None:
        self.sdcard = sdcard
        self._sending_byte = 0
        self._outcounter = 0
        self.reset()

    def reset(self) -> None:
        self._ss = False
        self._busy = False
        self._autotx = False
        self._received_byte = 0xFF

    def _start_transfer(self, value: int) -> None:
        self._sending_byte = value & 0xFF
        self._busy = True
        self._outcounter = 0

    def step(self, clocks: int) -> None:
        if not self._busy:
            return
        self._outcounter += clocks
        if self._outcounter >= 8:
            self._busy = False
            if self.sdcard.attached:
                self._received_byte = self.sdcard.handle(self._sending_byte)
            else:
                self._received_byte = 0xFF

    def read(self, reg: int) -> int:
        if reg == 0:
            if self._autotx and self._ss and not self._busy:
                self._start_transfer(0xFF)
            return self._received_byte
        if reg == 1:
            return (self._busy << 7) | (self._autotx << 3) | int(self._ss)
        return 0

    def write(self, reg: int, value: int) -> None:
        if reg == 0:
            if self._ss and not self._busy:
                self._start_transfer(value)
        elif reg == 1:
            select = bool(value & 1)
            if self._ss != select:
                self._ss = select
                if select:
                    self.sdcard.select(True)
            self._autotx = bool(value & 8)