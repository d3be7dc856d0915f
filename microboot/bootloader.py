"""Bootloader decision logic and the flash layout of its control area.

The last bytes of the application partition hold, in address order::

    | user data backup | user data | magic1 | magic2 | magic3 |

``enter_bootloader`` fills the user data and raises magic3. ``begin_download``
backs the user data up and raises magic2. ``finalize_download`` raises magic1.
At start-up ``enter_application`` reads the markers and decides whether to stay
in the bootloader or start the application.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

BOOT_MAGIC = 0x55555555
MAGIC_FILL = 0x55
_NAME_SIZE = 16
_RECEIVE_SIZE = 128
_WORD = 4


class FlashOps(Protocol):
    """The flash operations the bootloader needs."""

    def init(self, address: int) -> bool: ...

    def uninit(self, address: int) -> bool: ...

    def erase(self, address: int, size: int) -> int: ...

    def write(self, address: int, data: bytes) -> int: ...

    def read(self, address: int, size: int) -> bytes: ...


@dataclass(frozen=True)
class BootConfig:
    """Where the application lives and how the control area is sized."""

    app_part_addr: int = 0x8020000
    app_part_offset: int = 0x4
    app_part_size: int = 0x60000
    boot_flash_ops_addr: int = 0x08001000
    user_data_size: int = 192
    mark_size: int = 64

    def __post_init__(self) -> None:
        if self.mark_size < _WORD:
            raise ValueError("mark size must hold at least one 32-bit word")
        if self.user_data_size < UserData.SIZE:
            raise ValueError(f"user data size must be at least {UserData.SIZE}")
        if 3 * self.mark_size + 2 * self.user_data_size > self.app_part_size:
            raise ValueError("control area does not fit in the application partition")

    @property
    def app_end(self) -> int:
        return self.app_part_addr + self.app_part_size

    @property
    def magic1_address(self) -> int:
        return self.app_end - 3 * self.mark_size

    @property
    def magic2_address(self) -> int:
        return self.app_end - 2 * self.mark_size

    @property
    def magic3_address(self) -> int:
        return self.app_end - self.mark_size

    @property
    def user_data_address(self) -> int:
        return self.magic1_address - self.user_data_size

    @property
    def backup_address(self) -> int:
        return self.magic1_address - 2 * self.user_data_size

    @property
    def reset_vector_address(self) -> int:
        return self.app_part_addr + self.app_part_offset


def _encode_name(value: str, what: str) -> bytes:
    raw = value.encode("latin-1")
    if len(raw) > _NAME_SIZE:
        raise ValueError(f"{what} is longer than {_NAME_SIZE} bytes")
    return raw.ljust(_NAME_SIZE, b"\x00")


def _decode_name(raw: bytes) -> str:
    return raw.split(b"\x00", 1)[0].decode("latin-1")


@dataclass
class UserData:
    """Identification strings and a message area kept across the bootloader."""

    SIZE = 4 * _NAME_SIZE + _RECEIVE_SIZE

    project_name: str = ""
    hardware_version: str = ""
    soft_boot_version: str = ""
    soft_app_version: str = ""
    receive: bytes = b""

    def __post_init__(self) -> None:
        if len(self.receive) > _RECEIVE_SIZE:
            raise ValueError(f"receive area is longer than {_RECEIVE_SIZE} bytes")
        self.receive = bytes(self.receive).ljust(_RECEIVE_SIZE, b"\x00")
        for name in ("project_name", "hardware_version",
                     "soft_boot_version", "soft_app_version"):
            _encode_name(getattr(self, name), name)

    def to_bytes(self) -> bytes:
        """Serialise to the fixed on-flash layout."""
        return b"".join((
            _encode_name(self.project_name, "project_name"),
            _encode_name(self.hardware_version, "hardware_version"),
            _encode_name(self.soft_boot_version, "soft_boot_version"),
            _encode_name(self.soft_app_version, "soft_app_version"),
            self.receive,
        ))

    @classmethod
    def from_bytes(cls, data: bytes) -> "UserData":
        """Read the fixed layout back; extra trailing bytes are ignored."""
        if len(data) < cls.SIZE:
            raise ValueError(f"user data needs {cls.SIZE} bytes, got {len(data)}")
        names = [_decode_name(data[i:i + _NAME_SIZE])
                 for i in range(0, 4 * _NAME_SIZE, _NAME_SIZE)]
        return cls(*names, receive=bytes(data[4 * _NAME_SIZE:cls.SIZE]))


class BootAction(enum.Enum):
    """What ``enter_application`` decided."""

    USER_REQUEST = "user_request"
    ENTER_BOOTLOADER = "enter_bootloader"
    DOWNLOAD_INCOMPLETE = "download_incomplete"
    NO_APPLICATION = "no_application"
    START_APPLICATION = "start_application"


def _word(data: bytes) -> int:
    return int.from_bytes(data[:_WORD], "little")


@dataclass
class Bootloader:
    """Bootloader state machine over a flash device.

    ``user_requested`` is asked first at start-up and may force the
    bootloader to stay. ``start_application`` receives the initial stack
    pointer and entry address when the application is to be started.
    """

    flash: FlashOps
    config: BootConfig = field(default_factory=BootConfig)
    user_requested: Optional[Callable[[], bool]] = None
    start_application: Optional[Callable[[int, int], None]] = None
    user_data: UserData = field(default_factory=UserData)

    def _user_data_block(self, data: bytes | UserData) -> bytes:
        raw = data.to_bytes() if isinstance(data, UserData) else bytes(data)
        size = self.config.user_data_size
        if len(raw) > size:
            raise ValueError(f"user data longer than {size} bytes")
        return raw.ljust(size, b"\x00")

    def _read_user_data(self, address: int) -> None:
        raw = self.flash.read(address, self.config.user_data_size)
        self.user_data = UserData.from_bytes(raw)

    def enter_bootloader(self, data: bytes | UserData) -> None:
        """Store ``data`` as user data and request the bootloader on next reset."""
        cfg = self.config
        block = self._user_data_block(data)
        self.flash.init(cfg.app_part_addr)
        try:
            self.flash.write(cfg.user_data_address, block)
            self.flash.write(cfg.magic3_address, BOOT_MAGIC.to_bytes(_WORD, "little"))
        finally:
            self.flash.uninit(cfg.app_part_addr)

    def begin_download(self) -> None:
        """Clear the markers, back up the user data and mark a download in progress."""
        cfg = self.config
        block = self._user_data_block(self.user_data)
        self.flash.init(cfg.app_part_addr)
        try:
            self.flash.erase(cfg.magic1_address, 3 * cfg.mark_size)
            self.flash.write(cfg.backup_address, block)
            self.flash.write(cfg.magic2_address, bytes([MAGIC_FILL]) * cfg.mark_size)
        finally:
            self.flash.uninit(cfg.app_part_addr)

    def finalize_download(self) -> None:
        """Mark the download as complete."""
        cfg = self.config
        self.flash.init(cfg.app_part_addr)
        try:
            self.flash.write(cfg.magic1_address, bytes([MAGIC_FILL]) * cfg.mark_size)
        finally:
            self.flash.uninit(cfg.app_part_addr)

    def enter_application(self) -> BootAction:
        """Decide from the flash markers whether to stay or start the application."""
        cfg = self.config
        self.flash.init(cfg.app_part_addr)
        try:
            if self.user_requested is not None and self.user_requested():
                self._read_user_data(cfg.user_data_address)
                return BootAction.USER_REQUEST

            marks = self.flash.read(cfg.magic1_address, 3 * cfg.mark_size)
            magic1 = _word(marks)
            magic2 = _word(marks[cfg.mark_size:])
            magic3 = _word(marks[2 * cfg.mark_size:])

            if magic3 == BOOT_MAGIC:
                self._read_user_data(cfg.user_data_address)
                return BootAction.ENTER_BOOTLOADER

            if magic2 == BOOT_MAGIC and magic1 != BOOT_MAGIC:
                self._read_user_data(cfg.backup_address)
                return BootAction.DOWNLOAD_INCOMPLETE

            entry = _word(self.flash.read(cfg.reset_vector_address, _WORD))
            if entry in (0xFFFFFFFF, 0):
                return BootAction.NO_APPLICATION

            stack_pointer = _word(self.flash.read(cfg.app_part_addr, _WORD))
        finally:
            self.flash.uninit(cfg.app_part_addr)

        if self.start_application is not None:
            self.start_application(stack_pointer, entry)
        return BootAction.START_APPLICATION