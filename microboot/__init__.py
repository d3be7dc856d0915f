"""Bootloader markers, in-memory flash, Intel HEX parsing, check agents and YMODEM update callbacks."""

__version__ = "0.1.0"

__all__ = [
    "bootloader",
    "check_agent",
    "flash",
    "fsm",
    "intelhex",
    "ipc",
    "ymodem_ota",
    "ymodem_send",
]