"""Byte-stream dispatch to several protocol checkers that share one input queue.

Each registered agent peeks at the bytes waiting in a ``PeekQueue`` and
reports whether it recognises them. The engine walks the agents in turn.
An agent that claims the data consumes what it peeked. When every agent
declines, one byte is dropped from the queue so the stream can move on.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Union

from .fsm import FsmResult, SimpleFsm


class PeekQueue:
    """A FIFO byte queue with a separate peek cursor.

    Peeking reads ahead without removing bytes. ``get_all_peeked`` then
    removes what was peeked, and ``reset_peek`` rewinds the cursor.
    """

    def __init__(self, capacity: Optional[int] = None) -> None:
        if capacity is not None and capacity < 0:
            raise ValueError("capacity must not be negative")
        self.capacity = capacity
        self._buffer = bytearray()
        self._peek = 0

    def __len__(self) -> int:
        return len(self._buffer)

    def enqueue(self, data: Union[bytes, bytearray, int]) -> int:
        """Append bytes; return how many fitted."""
        if isinstance(data, int):
            data = bytes([data])
        if self.capacity is not None:
            data = data[: max(0, self.capacity - len(self._buffer))]
        self._buffer += data
        return len(data)

    def dequeue(self) -> Optional[int]:
        """Remove and return the oldest byte, or ``None`` if the queue is empty."""
        if not self._buffer:
            return None
        byte = self._buffer.pop(0)
        self._peek = max(0, self._peek - 1)
        return byte

    def peek(self, size: int) -> bytes:
        """Read up to ``size`` bytes from the peek cursor and advance it."""
        chunk = bytes(self._buffer[self._peek:self._peek + max(0, size)])
        self._peek += len(chunk)
        return chunk

    def reset_peek(self) -> None:
        """Rewind the peek cursor to the oldest byte."""
        self._peek = 0

    def get_all_peeked(self) -> bytes:
        """Remove and return every byte that has been peeked."""
        taken = bytes(self._buffer[:self._peek])
        del self._buffer[:self._peek]
        self._peek = 0
        return taken

    def get_peek_status(self) -> int:
        """Number of bytes peeked so far."""
        return self._peek

    def restore_peek_status(self, status: int) -> None:
        """Put the peek cursor back to a position saved by ``get_peek_status``."""
        if not 0 <= status <= len(self._buffer):
            raise ValueError(f"peek status {status} outside queue of {len(self._buffer)}")
        self._peek = status


@dataclass(eq=False)
class CheckAgent:
    """One checker: ``check`` runs a step and reports an ``FsmResult``.

    With ``keeping_context`` the agent's peek position is saved when it
    declines and restored the next time it runs.
    """

    check: Callable[[], Union[FsmResult, int]]
    keeping_context: bool = True
    peek_status: int = 0


_IS_END_OF_AGENT = "IS_END_OF_AGENT"
_CHECK_AGENT = "CHECK_AGENT"


class CheckEngine:
    """Offer the queued bytes to each registered agent in turn."""

    def __init__(self, queue: PeekQueue) -> None:
        if queue is None:
            raise ValueError("a check engine needs an input queue")
        self.queue = queue
        self._agents: list[CheckAgent] = []
        self._cursor = 0
        self._request_drop = False
        self._fsm = SimpleFsm(
            {_IS_END_OF_AGENT: self._is_end_of_agent, _CHECK_AGENT: self._check_agent},
            on_start=self._on_start,
        )

    @property
    def agents(self) -> tuple[CheckAgent, ...]:
        """Registered agents in the order they are checked."""
        return tuple(self._agents)

    def _current(self) -> Optional[CheckAgent]:
        if 0 <= self._cursor < len(self._agents):
            return self._agents[self._cursor]
        return None

    def _clear_statuses(self) -> None:
        for agent in self._agents:
            agent.peek_status = 0

    def register(self, agent: CheckAgent) -> bool:
        """Add ``agent`` in front of the others; ``False`` if already registered."""
        if agent is None or any(a is agent for a in self._agents):
            return False
        self._agents.insert(0, agent)
        self._cursor = 0
        return True

    def unregister(self, agent: CheckAgent) -> bool:
        """Remove ``agent``; ``False`` if it was not registered."""
        if agent is None:
            return False
        index = next((i for i, a in enumerate(self._agents) if a is agent), None)
        if index is None:
            return False
        del self._agents[index]
        self._cursor = 0 if index == 0 else index - 1
        return True

    def read_bytes(self, size: int) -> bytes:
        """Peek up to ``size`` bytes for the agent being checked."""
        return self.queue.peek(size)

    def run(self) -> FsmResult:
        """Run one step of the dispatch cycle."""
        return self._fsm.step()

    def _on_start(self, fsm: SimpleFsm):
        self._request_drop = True
        self._cursor = 0
        return fsm.update_state_to(_IS_END_OF_AGENT)

    def _is_end_of_agent(self, fsm: SimpleFsm):
        agent = self._current()
        if agent is None:
            if self._request_drop:
                self.queue.dequeue()
                self._clear_statuses()
            return FsmResult.CPL
        self.queue.reset_peek()
        if agent.keeping_context:
            self.queue.restore_peek_status(min(agent.peek_status, len(self.queue)))
        return fsm.update_state_to(_CHECK_AGENT)

    def _check_agent(self, fsm: SimpleFsm):
        agent = self._current()
        if agent is None:
            return fsm.update_state_to(_IS_END_OF_AGENT)
        result = FsmResult(agent.check())
        if result == FsmResult.ON_GOING:
            self._request_drop = False
            return None
        if result == FsmResult.USER_REQ_DROP:
            if agent.keeping_context:
                agent.peek_status = self.queue.get_peek_status()
            self._cursor += 1
            return fsm.transfer_to(_IS_END_OF_AGENT)
        self.queue.get_all_peeked()
        self._clear_statuses()
        if result == FsmResult.USER_REQ_TIMEOUT:
            self._cursor += 1
            return fsm.transfer_to(_IS_END_OF_AGENT)
        return FsmResult.CPL