"""MCP7940N real-time clock: time keeping in BCD registers plus 64 bytes of NVRAM.

Both 24-hour and AM/PM modes are supported and the oscillator can be stopped.
Alarms are not emulated.
"""

from __future__ import annotations

import time

NVRAM_SIZE = 0x40
_NVRAM_START = 0x20
_NVRAM_END = _NVRAM_START + NVRAM_SIZE

_DAYS_PER_MONTH = (31, 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)


def _bcd(value: int) -> int:
    return (((value // 10) << 4) | (value % 10)) & 0xFF


def _unbcd(value: int) -> int:
    return (value >> 4) * 10 + (value & 0xF)


class Rtc:
    """The clock chip as seen over I2C: registers 0-6 hold the time, 0x20-0x5F the NVRAM."""

    def __init__(self, set_system_time: bool = False, mhz: int = 8) -> None:
        self.mhz = mhz
        self.nvram = bytearray(NVRAM_SIZE)
        self.nvram_dirty = False
        self.vbaten = True
        self.h24 = True
        self._clocks = 0

        if set_system_time:
            now = time.localtime()
            self.running = True
            self.seconds = min(now.tm_sec, 59)
            self.minutes = now.tm_min
            self.hours = now.tm_hour
            # tm_wday counts from Monday = 0; the chip uses 1..7 with Sunday = 7
            self.day_of_week = now.tm_wday + 1
            self.day = now.tm_mday
            self.month = now.tm_mon
            self.year = now.tm_year - 2000
        else:
            # the chip powers up with its oscillator stopped
            self.running = False
            self.seconds = 0
            self.minutes = 0
            self.hours = 0
            self.day_of_week = 1
            self.day = 1
            self.month = 1
            self.year = 0

    def is_leap_year(self) -> bool:
        """The clock covers 2000-2099, where every fourth year is a leap year."""
        return not (self.year & 3)

    def _days_in_month(self) -> int:
        days = _DAYS_PER_MONTH[(self.month - 1) % 12]
        if self.month == 2 and self.is_leap_year():
            days += 1
        return days

    def step(self, clocks: int) -> None:
        """Advance by ``clocks`` CPU cycles; at most one second passes per call."""
        if not self.running:
            return
        self._clocks += clocks
        per_second = self.mhz * 1_000_000
        if self._clocks < per_second:
            return
        self._clocks -= per_second

        self.seconds += 1
        if self.seconds < 60:
            return
        self.seconds = 0

        self.minutes += 1
        if self.minutes < 60:
            return
        self.minutes = 0

        self.hours += 1
        if self.hours < 24:
            return
        self.hours = 0

        self.day_of_week += 1
        if self.day_of_week > 7:
            self.day_of_week = 1

        self.day += 1
        if self.day <= self._days_in_month():
            return
        self.day = 1

        self.month += 1
        if self.month <= 12:
            return
        self.month = 1

        self.year += 1
        if self.year == 100:
            self.year = 0

    def read(self, offset: int) -> int:
        offset &= 0xFF
        if offset == 0:
            return _bcd(self.seconds) | (self.running << 7)
        if offset == 1:
            return _bcd(self.minutes)
        if offset == 2:
            hours = self.hours & 0xFF
            pm = False
            if not self.h24:
                if hours >= 12:
                    pm = True
                    hours -= 12
                if hours == 0:
                    hours = 12
            return (_bcd(hours) | (pm << 5) | ((not self.h24) << 6)) & 0xFF
        if offset == 3:
            return (self.day_of_week | (self.vbaten << 3) | (self.running << 5)) & 0xFF
        if offset == 4:
            return _bcd(self.day)
        if offset == 5:
            return _bcd(self.month) | (self.is_leap_year() << 5)
        if offset == 6:
            return _bcd(self.year)
        if _NVRAM_START <= offset < _NVRAM_END:
            return self.nvram[offset - _NVRAM_START]
        if offset >= _NVRAM_END:
            return 0xFF
        return 0

    def write(self, offset: int, value: int) -> None:
        offset &= 0xFF
        value &= 0xFF
        if offset == 0:
            self.running = bool(value & 0x80)
            self.seconds = _unbcd(value & 0x7F)
        elif offset == 1:
            self.minutes = _unbcd(value)
        elif offset == 2:
            self.h24 = not (value & 0x40)
            hours = value & 0x3F
            pm = False
            if not self.h24:
                pm = bool(value & 0x20)
                hours &= 0x1F
            hours = _unbcd(hours)
            if not self.h24 and hours == 12:
                hours = 0
            if pm:
                hours += 12
            self.hours = hours & 0xFF
        elif offset == 3:
            self.day_of_week = value & 7
            self.vbaten = bool(value & 0x20)
        elif offset == 4:
            self.day = _unbcd(value)
        elif offset == 5:
            self.month = _unbcd(value)
        elif offset == 6:
            self.year = _unbcd(value)
        elif _NVRAM_START <= offset < _NVRAM_END:
            self.nvram[offset - _NVRAM_START] = value
            self.nvram_dirty = True