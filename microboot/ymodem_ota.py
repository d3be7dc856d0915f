"""Over-the-air update receiver: writes a YMODEM-received file into the
application partition and drives the bootloader markers around it."""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional

from .bootloader import Bootloader
from .check_agent import CheckAgent
from .fsm import FsmResult

_log = logging.getLogger(__name__)

_FILE_NAME_SIZE = 32
_MASK32 = 0xFFFFFFFF
_ATOL = re.compile(rb"\s*([+-]?\d+)")


class YmodemState(enum.Enum):
    """What one step of a YMODEM transfer reports."""

    ON_GOING = "on_going"
    INCORRECT_NBLK = "incorrect_nblk"
    INCORRECT_CHAR = "incorrect_char"
    TIMEOUT = "timeout"
    FINISH = "finish"


@dataclass(frozen=True)
class FileHeader:
    """Name and size announced in a YMODEM block 0."""

    name: str
    size: int


def _atol(raw: bytes) -> int:
    match = _ATOL.match(raw)
    return int(match.group(1)) if match else 0


def parse_file_header(data: bytes) -> FileHeader:
    """Split block 0 into the NUL-terminated name and the decimal size after it."""
    raw_name, _, rest = bytes(data).partition(b"\x00")
    if len(raw_name) >= _FILE_NAME_SIZE:
        raise ValueError(f"file name longer than {_FILE_NAME_SIZE - 1} bytes")
    return FileHeader(raw_name.decode("latin-1"), _atol(rest) & _MASK32)


def crc16(data: bytes) -> int:
    """CRC-16 as used by YMODEM (polynomial 0x1021, initial value 0)."""
    crc = 0
    for byte in data:
        crc ^= byte << 8
        for _ in range(8):
            crc = ((crc << 1) ^ 0x1021) if crc & 0x8000 else (crc << 1)
            crc &= 0xFFFF
    return crc


def to_fsm_result(state: YmodemState) -> FsmResult:
    """Map a YMODEM step outcome to what a check agent reports."""
    if state == YmodemState.ON_GOING:
        return FsmResult.ON_GOING
    if state in (YmodemState.INCORRECT_NBLK, YmodemState.INCORRECT_CHAR):
        return FsmResult.USER_REQ_DROP
    if state == YmodemState.TIMEOUT:
        return FsmResult.USER_REQ_TIMEOUT
    return FsmResult.CPL


class OtaReceiver:
    """Callbacks for a YMODEM receiver that programs the application partition.

    ``reader`` supplies incoming bytes; ``on_send`` is told about every
    byte string the protocol sends back.
    """

    def __init__(
        self,
        bootloader: Bootloader,
        reader: Optional[Callable[[int], bytes]] = None,
        on_send: Optional[Callable[[bytes], None]] = None,
    ) -> None:
        self.bootloader = bootloader
        self.reader = reader
        self.on_send = on_send
        self.file_name = ""
        self.file_size = 0
        self.offset = 0

    @property
    def _flash(self):
        return self.bootloader.flash

    @property
    def _config(self):
        return self.bootloader.config

    def on_file_path(self, data: bytes) -> int:
        """Handle block 0: erase room for the file and start the download.

        Returns ``len(data)`` on success and 0 to reject the file.
        """
        header = parse_file_header(data)
        self.offset = 0
        self.file_name = header.name
        self.file_size = header.size
        _log.info("Ymodem file_name:%s", self.file_name)
        _log.info("Ymodem file_size:%d", self.file_size)

        cfg = self._config
        if cfg.app_part_size < self.file_size:
            _log.error("file size outrange flash size.")
            return 0
        self._flash.init(cfg.app_part_addr)
        try:
            erased = self._flash.erase(cfg.app_part_addr, self.file_size)
        finally:
            self._flash.uninit(cfg.app_part_addr)
        if erased < self.file_size:
            _log.error("target flash erase error.")
            return 0
        _log.info("flash erase success:%d", erased)
        self.bootloader.begin_download()
        return len(data)

    def on_file_data(self, data: bytes) -> int:
        """Program one data block and verify it by reading it back.

        Returns ``len(data)`` on success and 0 on a write or verify failure.
        """
        cfg = self._config
        remaining = self.file_size - self.offset
        chunk = bytes(data[:max(0, remaining)])
        address = cfg.app_part_addr + self.offset

        self._flash.init(cfg.app_part_addr)
        try:
            written = self._flash.write(address, chunk)
        finally:
            self._flash.uninit(cfg.app_part_addr)
        if written != len(chunk):
            _log.error("target flash write data error. 0x%x.", written)
            return 0

        write_check = crc16(chunk)
        self._flash.init(cfg.app_part_addr)
        try:
            read_back = self._flash.read(address, len(chunk))
        finally:
            self._flash.uninit(cfg.app_part_addr)
        if len(read_back) != len(chunk):
            _log.error("target flash read data error. 0x%x.", len(read_back))
            return 0
        read_check = crc16(read_back)
        if write_check != read_check:
            _log.error("Check error. WriteCheck:0x%x ReadCheck:0x%x.",
                       write_check, read_check)
            return 0

        self.offset += len(chunk)
        if self.offset == self.file_size:
            self.bootloader.finalize_download()
            _log.info("Download firmware to flash success.")
        return len(data)

    def read_data(self, size: int) -> bytes:
        """Fetch up to ``size`` incoming bytes."""
        if self.reader is None:
            return b""
        return self.reader(size)

    def write_data(self, data: bytes) -> int:
        """Pass outgoing bytes to ``on_send``; return how many were sent."""
        if self.on_send is not None:
            self.on_send(bytes(data))
        return len(data)

    def as_agent(self, step: Callable[[], YmodemState]) -> CheckAgent:
        """Wrap a YMODEM receive step as a check agent that keeps its context."""
        return CheckAgent(check=lambda: to_fsm_result(step()), keeping_context=True)