"""YMODEM sender callbacks that stream a short list of files from disk."""

from __future__ import annotations

import logging
import os
from typing import BinaryIO, Callable, Optional, Sequence, Union

from .check_agent import CheckAgent
from .ymodem_ota import YmodemState, to_fsm_result

_log = logging.getLogger(__name__)

MAX_FILES = 5
_FILE_NAME_SIZE = 32

PathLike = Union[str, "os.PathLike[str]"]


class FileSender:
    """Callbacks for a YMODEM sender.

    Up to ``MAX_FILES`` files are sent in the order given. ``reader`` supplies
    bytes arriving from the receiver, ``on_send`` gets every byte string the
    protocol transmits, and ``on_progress`` is told the percentage sent
    whenever it changes.
    """

    def __init__(
        self,
        files: Sequence[PathLike] = (),
        reader: Optional[Callable[[int], bytes]] = None,
        on_send: Optional[Callable[[bytes], None]] = None,
        on_progress: Optional[Callable[[int], None]] = None,
    ) -> None:
        paths = [os.fspath(path) for path in files]
        if len(paths) > MAX_FILES:
            raise ValueError(f"at most {MAX_FILES} files can be sent at once")
        for path in paths:
            if len(os.fsencode(path)) >= _FILE_NAME_SIZE:
                raise ValueError(
                    f"file name {path!r} longer than {_FILE_NAME_SIZE - 1} bytes"
                )
        self.files: list[str] = paths
        self.reader = reader
        self.on_send = on_send
        self.on_progress = on_progress
        self.file_size = 0
        self.offset = 0
        self.progress = 0
        self._next = 0
        self._pending = len(paths)
        self._file: Optional[BinaryIO] = None

    @property
    def remaining(self) -> int:
        """Number of files not yet announced."""
        return self._pending

    def close(self) -> None:
        """Close the file being sent, if any."""
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> "FileSender":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def on_file_path(self, buffer_size: int) -> bytes:
        """Open the next file and return block 0 padded to ``buffer_size``.

        Returns ``b""`` once every file has been announced, which ends the
        batch. Raises ``OSError`` if the next file cannot be opened.
        """
        if self._pending == 0:
            self.close()
            self._next = 0
            self.file_size = 0
            self.offset = 0
            return b""

        path = self.files[self._next]
        self.close()
        try:
            handle = open(path, "rb")
        except OSError as error:
            _log.error("Failed to open %s file: %s", path, error)
            raise
        self._file = handle
        self.file_size = os.fstat(handle.fileno()).st_size & 0xFFFFFFFF
        header = os.fsencode(path) + b"\x00" + str(self.file_size).encode("ascii")
        if len(header) > buffer_size:
            self.close()
            raise ValueError(f"file header needs {len(header)} bytes, buffer has {buffer_size}")
        self._next += 1
        self._pending -= 1
        return header.ljust(buffer_size, b"\x00")

    def on_file_data(self, size: int) -> bytes:
        """Read up to ``size`` bytes of the current file; ``b""`` at its end."""
        if self._file is None:
            return b""
        try:
            return self._file.read(size)
        except OSError as error:
            self.close()
            _log.error("Failed to read file: %s", error)
            raise

    def read_data(self, size: int) -> bytes:
        """Fetch up to ``size`` bytes sent by the receiver."""
        if self.reader is None:
            return b""
        return self.reader(size)

    def write_data(self, data: bytes) -> int:
        """Transmit ``data``, track progress and return how many bytes were sent."""
        data = bytes(data)
        if self.on_send is not None:
            self.on_send(data)
        self.offset += len(data)
        if self.file_size > 0:
            percent = min(100, self.offset * 100 // self.file_size)
            if percent != self.progress:
                self.progress = percent
                _log.info("load: %3d%%", percent)
                if self.on_progress is not None:
                    self.on_progress(percent)
        return len(data)

    def as_agent(self, step: Callable[[], YmodemState]) -> CheckAgent:
        """Wrap a YMODEM send step as a check agent that keeps its context."""
        return CheckAgent(check=lambda: to_fsm_result(step()), keeping_context=True)