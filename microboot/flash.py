"""Flash device description and an in-memory flash for testing and simulation."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class FlashError(Exception):
    """Raised when a flash operation falls outside the device."""


class DeviceType(enum.IntEnum):
    UNKNOWN = 0
    ONCHIP = 1
    EXT8BIT = 2
    EXT16BIT = 3
    EXT32BIT = 4
    EXTSPI = 5


@dataclass(frozen=True)
class FlashSector:
    """A run of equally sized sectors starting at ``offset`` from the device start.

    The run lasts until the next run's offset or the end of the device.
    """

    size: int
    offset: int


@dataclass(frozen=True)
class FlashDevice:
    """Geometry and timing of one flash device."""

    name: str
    device_type: DeviceType
    start: int
    size: int
    page_size: int
    sectors: tuple[FlashSector, ...]
    erased_value: int = 0xFF
    program_timeout_ms: int = 100
    erase_timeout_ms: int = 6000

    def __post_init__(self) -> None:
        if not self.sectors:
            raise ValueError("a flash device needs at least one sector run")
        offsets = [sector.offset for sector in self.sectors]
        if offsets != sorted(offsets) or offsets[0] != 0:
            raise ValueError("sector runs must start at 0 and be in address order")
        if any(sector.size <= 0 for sector in self.sectors):
            raise ValueError("sector sizes must be positive")

    @property
    def end(self) -> int:
        return self.start + self.size

    def contains(self, address: int, size: int) -> bool:
        """Whether ``size`` bytes from ``address`` lie wholly inside the device."""
        return size >= 0 and self.start <= address and address + size <= self.end

    def _sector_at(self, offset: int) -> tuple[int, int]:
        """Return (start offset, size) of the sector holding ``offset``."""
        run = next(s for s in reversed(self.sectors) if s.offset <= offset)
        index = (offset - run.offset) // run.size
        return run.offset + index * run.size, run.size


TEMPLATE_DEVICE = FlashDevice(
    name="XXXXXX 512kB Flash",
    device_type=DeviceType.ONCHIP,
    start=0x08000000,
    size=0x00080000,
    page_size=0x00002000,
    sectors=(FlashSector(size=0x2000, offset=0x000000),),
    erased_value=0xFF,
    program_timeout_ms=100,
    erase_timeout_ms=6000,
)


@dataclass
class MemoryFlash:
    """A flash device simulated in RAM.

    Erasing sets whole sectors to the erased value; programming can only
    clear bits, as on NOR flash, so rewriting without an erase ANDs the data.
    """

    device: FlashDevice = TEMPLATE_DEVICE
    active: bool = field(default=False, init=False)
    _memory: bytearray = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._memory = bytearray([self.device.erased_value]) * self.device.size

    def _check(self, address: int, size: int) -> int:
        if not self.device.contains(address, size):
            raise FlashError(
                f"range 0x{address:08X}+{size} outside {self.device.name!r}"
            )
        return address - self.device.start

    def init(self, address: int) -> bool:
        """Prepare the device for programming."""
        self._check(address, 0)
        self.active = True
        return True

    def uninit(self, address: int) -> bool:
        """Finish programming."""
        self._check(address, 0)
        self.active = False
        return True

    def erase(self, address: int, size: int) -> int:
        """Erase every sector touching the range; return bytes erased from ``address``."""
        if size <= 0:
            self._check(address, 0)
            return 0
        offset = self._check(address, size)
        end = offset + size
        cursor = offset
        erased_end = offset
        while cursor < end:
            sector_start, sector_size = self.device._sector_at(cursor)
            sector_end = min(sector_start + sector_size, self.device.size)
            self._memory[sector_start:sector_end] = (
                bytes([self.device.erased_value]) * (sector_end - sector_start)
            )
            erased_end = sector_end
            cursor = sector_end
        return erased_end - offset

    def write(self, address: int, data: bytes) -> int:
        """Program ``data`` at ``address``; return the number of bytes written."""
        offset = self._check(address, len(data))
        current = self._memory[offset:offset + len(data)]
        self._memory[offset:offset + len(data)] = bytes(
            old & new for old, new in zip(current, data)
        )
        return len(data)

    def read(self, address: int, size: int) -> bytes:
        """Return ``size`` bytes starting at ``address``."""
        offset = self._check(address, size)
        return bytes(self._memory[offset:offset + size])