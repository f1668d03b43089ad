"""SD card speaking the SPI-mode command protocol, backed by an image file."""

from __future__ import annotations

import logging
import os
from enum import IntEnum
from typing import BinaryIO, Optional

logger = logging.getLogger(__name__)

BLOCK_SIZE = 512
_RX_BUFFER_SIZE = 3 + BLOCK_SIZE
_COMMAND_LENGTH = 6


class Command(IntEnum):
    """MMC/SD commands in SPI mode; application commands carry bit 7."""

    GO_IDLE_STATE = 0
    SEND_OP_COND = 1
    SEND_IF_COND = 8
    SEND_CSD = 9
    SEND_CID = 10
    STOP_TRANSMISSION = 12
    SEND_STATUS = 13
    SET_BLOCKLEN = 16
    READ_SINGLE_BLOCK = 17
    READ_MULTIPLE_BLOCK = 18
    SET_BLOCK_COUNT = 23
    WRITE_BLOCK = 24
    WRITE_MULTIPLE_BLOCK = 25
    ERASE_WR_BLK_START = 32
    ERASE_WR_BLK_END = 33
    ERASE = 38
    APP_CMD = 55
    READ_OCR = 58
    APP_SD_STATUS = 0x80 | 13
    APP_SET_WR_BLK_ERASE_COUNT = 0x80 | 23
    APP_SEND_OP_COND = 0x80 | 41


_CSD_TEMPLATE = bytes(
    [
        0xFF, 0xFF,  # dummy
        0x00,  # R1 response
        0xFF,  # dummy
        0xFE,  # begin block
        0x40, 0x0E, 0x00, 0x32, 0x5B, 0x59, 0x00,
        0x00, 0x00, 0x00,  # C_SIZE
        0x7F, 0x80, 0x0A, 0x40, 0x00, 0x01,
    ]
)
_R3 = bytes([0xC0, 0xFF, 0x80, 0x00])
_R7 = bytes([0x01, 0x00, 0x00, 0x01, 0xAA])
_R2_READY = bytes([0x00, 0x00])
_R2_NOT_READY = bytes([0x1F, 0xFF])
_OUT_OF_RANGE = bytes([0x00, 0x08])


class SdCard:
    """An SD card attached to an image file and driven one SPI byte at a time."""

    def __init__(self) -> None:
        self._path = ""
        self._file: Optional[BinaryIO] = None
        self.attached = False

        self._rxbuf = bytearray(_RX_BUFFER_SIZE)
        self._rx_len = 0
        self._lba = 0
        self._last_cmd = 0
        self._is_acmd = False
        self._is_idle = True
        self._is_initialized = False

        self._response: Optional[bytes] = None
        self._response_pos = 0
        self._selected = False

    def set_path(self, path: str) -> None:
        """Detach any current image and attach the image at ``path``."""
        self.detach()
        self._path = os.fspath(path)
        self.attach()

    def path_is_set(self) -> bool:
        return len(self._path) > 0

    def attach(self) -> None:
        """Open the image file; raises OSError if it cannot be opened."""
        if self.attached or not self.path_is_set():
            return
        self._file = open(self._path, "r+b")
        logger.info("SD card attached.")
        self.attached = True
        self._is_initialized = False

    def detach(self) -> None:
        if not self.attached:
            return
        if self._file is not None:
            self._file.close()
        self._file = None
        logger.info("SD card detached.")
        self.attached = False

    def select(self, selected: bool) -> None:
        self._selected = bool(selected)
        self._rx_len = 0

    def handle(self, inbyte: int) -> int:
        """Clock one byte in and return the byte clocked out."""
        if not self._selected or self._file is None:
            return 0xFF
        inbyte &= 0xFF

        if self._rx_len == 0 and inbyte == 0xFF:
            return self._next_response_byte()

        self._rxbuf[self._rx_len] = inbyte
        self._rx_len += 1

        if (self._rxbuf[0] & 0xC0) == 0x40 and self._rx_len == _COMMAND_LENGTH:
            self._rx_len = 0
            self._execute_command()
        elif self._rx_len == _RX_BUFFER_SIZE:
            self._rx_len = 0
            self._receive_data_block()
        return 0xFF

    def _next_response_byte(self) -> int:
        if not self._response:
            return 0xFF
        value = self._response[self._response_pos]
        self._response_pos += 1
        if self._response_pos == len(self._response):
            self._response = None
        return value

    def _image_size(self) -> int:
        assert self._file is not None
        return self._file.seek(0, os.SEEK_END)

    def _r1(self) -> bytes:
        return bytes([1 if self._is_idle else 0])

    def _csd(self) -> bytes:
        c_size = (self._image_size() >> 19) - 1
        csd = bytearray(_CSD_TEMPLATE)
        csd[12] |= (c_size >> 16) & 0x3F
        csd[13] = (c_size >> 8) & 0xFF
        csd[14] = c_size & 0xFF
        return bytes(csd)

    def _read_block(self, lba: int) -> bytes:
        offset = lba * BLOCK_SIZE
        if offset >= self._image_size():
            return _OUT_OF_RANGE
        assert self._file is not None
        self._file.seek(offset)
        data = self._file.read(BLOCK_SIZE)
        if len(data) != BLOCK_SIZE:
            logger.warning("short read")
            data = data.ljust(BLOCK_SIZE, b"\x00")
        return b"\x00\xfe" + data + b"\x00\x00"

    def _execute_command(self) -> None:
        cmd = self._rxbuf[0] & 0x3F
        if self._is_acmd:
            cmd |= 0x80
            self._is_acmd = False
        self._last_cmd = cmd
        argument = int.from_bytes(self._rxbuf[1:5], "big")

        if cmd == Command.GO_IDLE_STATE:
            self._is_idle = True
            self._response = self._r1()
        elif cmd == Command.SEND_IF_COND:
            self._response = _R7
        elif cmd == Command.SEND_CSD:
            self._response = self._csd()
        elif cmd == Command.APP_SEND_OP_COND:
            self._is_idle = False
            self._is_initialized = True
            self._response = self._r1()
        elif cmd == Command.SEND_STATUS:
            self._response = _R2_READY if self._is_initialized else _R2_NOT_READY
        elif cmd == Command.READ_SINGLE_BLOCK:
            self._response = self._read_block(argument)
        elif cmd == Command.WRITE_BLOCK:
            self._lba = argument
            self._response = self._r1()
        elif cmd == Command.APP_CMD:
            self._is_acmd = True
            self._response = self._r1()
        elif cmd == Command.READ_OCR:
            self._response = _R3
        else:
            self._response = self._r1()
        self._response_pos = 0

    def _receive_data_block(self) -> None:
        if self._last_cmd != Command.WRITE_BLOCK or self._rxbuf[0] != 0xFE:
            return
        offset = self._lba * BLOCK_SIZE
        if offset >= self._image_size():
            return
        assert self._file is not None
        self._file.seek(offset)
        written = self._file.write(bytes(self._rxbuf[1 : 1 + BLOCK_SIZE]))
        self._file.flush()
        if written != BLOCK_SIZE:
            logger.warning("short write")