"""Recording of stereo 16-bit audio to a WAV file."""

from __future__ import annotations

import logging
import struct
from enum import IntEnum
from typing import BinaryIO, Optional, Sequence

logger = logging.getLogger(__name__)

_CHANNELS = 2
_SAMPLE_BYTES = 2
_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")
_FMT_CHUNK_SIZE = 24
_DATA_CHUNK_HEADER_SIZE = 8


class WavCommand(IntEnum):
    PAUSE = 0
    RECORD = 1
    AUTOSTART = 2


class WavState(IntEnum):
    DISABLED = 0
    PAUSED = 1
    AUTOSTARTING = 2
    RECORDING = 3


class WavRecorder:
    """Writes interleaved stereo samples to a WAV file when recording."""

    def __init__(self, sample_rate: int) -> None:
        self.sample_rate = sample_rate
        self.state = WavState.DISABLED
        self._path: Optional[str] = None
        self._file: Optional[BinaryIO] = None
        self._frames_written = 0

    def _header(self, riff_size: int, data_size: int) -> bytes:
        block_align = _SAMPLE_BYTES * _CHANNELS
        return _HEADER.pack(
            b"RIFF",
            riff_size,
            b"WAVE",
            b"fmt ",
            16,
            1,
            _CHANNELS,
            self.sample_rate,
            self.sample_rate * block_align,
            block_align,
            _SAMPLE_BYTES * 8,
            b"data",
            data_size,
        )

    def _close_file(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    def _begin(self) -> None:
        self._close_file()
        self._frames_written = 0
        if self._path is None:
            return
        try:
            self._file = open(self._path, "wb")
            self._file.write(self._header(4, 0))
        except OSError as exc:
            logger.warning("cannot record WAV to %s: %s", self._path, exc)
            self._close_file()

    def _end(self) -> None:
        if self._file is None:
            return
        data_size = _SAMPLE_BYTES * _CHANNELS * self._frames_written
        riff_size = 4 + _FMT_CHUNK_SIZE + _DATA_CHUNK_HEADER_SIZE + data_size
        try:
            self._file.seek(0)
            self._file.write(self._header(riff_size, data_size))
        finally:
            self._close_file()

    def _add(self, samples: Sequence[int]) -> None:
        if self._file is None:
            return
        try:
            self._file.write(struct.pack(f"<{len(samples)}h", *samples))
        except OSError as exc:
            logger.warning("WAV recording stopped: %s", exc)
            self._close_file()
        else:
            self._frames_written += len(samples) // _CHANNELS

    def set_path(self, path: Optional[str]) -> None:
        """Choose the output file; a ",wait" or ",auto" suffix delays the start."""
        if self.state == WavState.RECORDING:
            self._end()
        if path is None:
            self._path = None
            self.state = WavState.DISABLED
            return
        path = str(path)
        if path.endswith(",wait"):
            self._path = path[:-5]
            self.state = WavState.PAUSED
        elif path.endswith(",auto"):
            self._path = path[:-5]
            self.state = WavState.AUTOSTARTING
        else:
            self._path = path
            self.state = WavState.RECORDING
            self._begin()

    def set(self, command: int) -> None:
        """Apply a recorder command; ignored while recording is disabled."""
        command = WavCommand(command)
        if self.state == WavState.DISABLED:
            return
        if command == WavCommand.PAUSE:
            self.state = WavState.PAUSED
        elif command == WavCommand.RECORD:
            self.state = WavState.RECORDING
            self._begin()
        else:
            self.state = WavState.AUTOSTARTING

    def process(self, samples: Sequence[int]) -> None:
        """Feed interleaved stereo signed 16-bit samples."""
        if self.state == WavState.AUTOSTARTING and any(samples):
            self.state = WavState.RECORDING
            self._begin()
        if self.state == WavState.RECORDING:
            self._add(samples)

    def shutdown(self) -> None:
        if self.state == WavState.RECORDING:
            self._end()