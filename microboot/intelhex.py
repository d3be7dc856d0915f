"""Streaming parser for Intel HEX data, fed in arbitrary chunks."""

from __future__ import annotations

import enum
from dataclasses import dataclass

_LINE_SIZE = 0x25
_DATA_OFFSET = 4
_MASK32 = 0xFFFFFFFF


class ParseStatus(enum.IntEnum):
    OK = 0
    EOF = 1
    UNALIGNED = 2
    LINE_OVERRUN = 3
    CKSUM_FAIL = 4
    UNINIT = 5
    FAILURE = 6


class _RecordType(enum.IntEnum):
    DATA = 0x00
    EOF = 0x01
    EXT_SEG_ADDR = 0x02
    START_SEG_ADDR = 0x03
    EXT_LINEAR_ADDR = 0x04
    START_LINEAR_ADDR = 0x05
    CUSTOM_METADATA = 0x0A
    CUSTOM_DATA = 0x0D


@dataclass(frozen=True)
class ParseResult:
    """Outcome of one ``parse`` call.

    ``data`` is padded with 0xFF to the requested buffer size; its first
    ``count`` bytes were decoded and belong at ``address``. ``consumed``
    is how many input bytes were used.
    """

    status: ParseStatus
    consumed: int
    address: int
    count: int
    data: bytes


def _nibble(char: int) -> int:
    return (char & 0xF) if char & 0x10 else ((char & 0xF) + 9) & 0xFF


class HexParser:
    """Decode Intel HEX incrementally, keeping record state between calls.

    A record of Universal Hex type metadata selects a board; data records
    for another board than ``board_id``/``board_id_default`` are skipped.
    """

    def __init__(self, board_id: int = 0, board_id_default: int = 0) -> None:
        self.board_id = board_id
        self.board_id_default = board_id_default
        self.reset()

    def reset(self) -> None:
        """Forget all state, ready for the start of a new file."""
        self._line = bytearray(_LINE_SIZE)
        self._line_address = 0
        self._next_address = 0
        self._low_nibble = False
        self._idx = 0
        self._record_processed = False
        self._load_unaligned = False
        self._skip_until_aligned = False
        self._binary_version = 0

    @property
    def _byte_count(self) -> int:
        return self._line[0]

    def _record_data(self) -> bytes:
        return bytes(self._line[_DATA_OFFSET:_DATA_OFFSET + self._byte_count])

    def _checksum_ok(self) -> bool:
        return sum(self._line[: self._byte_count + 5]) & 0xFF == 0

    def _start_record(self) -> None:
        self._line = bytearray(_LINE_SIZE)
        self._low_nibble = False
        self._idx = 0
        self._record_processed = False

    def _take_record(self, out: bytearray) -> None:
        out += self._record_data()
        self._next_address = (
            ((self._next_address & 0xFFFF0000) | self._line_address)
            + self._byte_count
        ) & _MASK32

    def _result(self, status: ParseStatus, consumed: int, out: bytearray,
                buffer_size: int, address: int | None = None) -> ParseResult:
        if address is None:
            address = (self._next_address - len(out)) & _MASK32
        data = bytes(out).ljust(buffer_size, b"\xff")
        return ParseResult(status, consumed, address, len(out), data)

    def parse(self, blob: bytes | str, buffer_size: int) -> ParseResult:
        """Decode as much of ``blob`` as possible into a buffer of ``buffer_size``."""
        if isinstance(blob, str):
            blob = blob.encode("ascii")
        out = bytearray()

        if self._skip_until_aligned:
            if blob[:1] == b":":
                self._skip_until_aligned = False
            else:
                return self._result(ParseStatus.OK, 0, out, buffer_size)

        if self._load_unaligned:
            self._load_unaligned = False
            self._take_record(out)

        for pos, char in enumerate(blob):
            if char in (0x0D, 0x0A):
                continue
            if char == 0x3A:
                self._start_record()
                continue

            if self._low_nibble:
                if self._idx < _LINE_SIZE:
                    self._line[self._idx] |= _nibble(char) & 0xF
                self._idx += 1
                if self._byte_count + 5 > _LINE_SIZE:
                    return self._result(ParseStatus.LINE_OVERRUN, pos, out, buffer_size)
                if self._idx >= self._byte_count + 5:
                    if not self._checksum_ok():
                        return self._result(ParseStatus.CKSUM_FAIL, pos, out, buffer_size)
                    if not self._record_processed:
                        self._record_processed = True
                        outcome = self._process_record(pos, out, buffer_size)
                        if outcome is not None:
                            return outcome
            elif self._idx < _LINE_SIZE:
                self._line[self._idx] = (_nibble(char) << 4) & 0xFF

            self._low_nibble = not self._low_nibble

        return self._result(ParseStatus.OK, len(blob), out, buffer_size)

    def _process_record(self, pos: int, out: bytearray,
                        buffer_size: int) -> ParseResult | None:
        line = self._line
        self._line_address = (line[1] << 8) | line[2]
        record_type = line[3]
        data = line[_DATA_OFFSET:]

        if record_type == _RecordType.CUSTOM_METADATA:
            self._binary_version = (data[0] << 8) | data[1]
            return None

        if record_type in (_RecordType.DATA, _RecordType.CUSTOM_DATA):
            if self._binary_version not in (0, self.board_id_default, self.board_id):
                self._skip_until_aligned = True
                return self._result(ParseStatus.OK, pos, out, buffer_size)
            aligned = (self._next_address & 0xFFFF0000) | self._line_address
            if aligned != self._next_address:
                # The record is kept and delivered at the start of the next call.
                self._load_unaligned = True
                return self._result(ParseStatus.UNALIGNED, pos + 1, out, buffer_size)
            self._take_record(out)
            return None

        if record_type == _RecordType.EOF:
            return self._result(ParseStatus.EOF, pos, out, buffer_size)

        if record_type in (_RecordType.EXT_SEG_ADDR, _RecordType.EXT_LINEAR_ADDR):
            address = (self._next_address - len(out)) & _MASK32
            if record_type == _RecordType.EXT_SEG_ADDR:
                self._next_address = (data[0] << 12) | (data[1] << 4)
            else:
                self._next_address = ((data[0] << 24) | (data[1] << 16)) & _MASK32
            return self._result(ParseStatus.UNALIGNED, pos, out, buffer_size, address)

        return None