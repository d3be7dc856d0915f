"""Cooperative synchronisation primitives: a try-lock mutex and a flag event."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Mutex:
    """A non-blocking critical-section guard.

    ``enter`` never waits: it either takes the lock and returns ``True``
    or finds it already held and returns ``False``.
    """

    locked: bool = False

    def enter(self) -> bool:
        """Take the lock if it is free; report whether it was taken."""
        if self.locked:
            return False
        self.locked = True
        return True

    def leave(self) -> None:
        """Release the lock unconditionally."""
        self.locked = False


@dataclass
class Event:
    """A polled event flag.

    An automatic event clears itself when a ``wait`` observes it set;
    a manual event stays set until ``reset`` is called.
    """

    initial: bool = False
    manual: bool = False
    is_set: bool = field(init=False)

    def __post_init__(self) -> None:
        self.is_set = self.initial

    @property
    def auto_reset(self) -> bool:
        return not self.manual

    def set(self) -> None:
        """Raise the flag."""
        self.is_set = True

    def reset(self) -> None:
        """Clear the flag."""
        self.is_set = False

    def wait(self) -> bool:
        """Return whether the flag is set, clearing it for automatic events."""
        if not self.is_set:
            return False
        if self.auto_reset:
            self.reset()
        return True