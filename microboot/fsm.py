"""A small cooperative finite-state-machine runner.

A machine is a set of named states, each handled by a callable that
receives the machine and returns what the current step produced. Every
call to ``step`` runs the current state once. A handler can move on in
two ways:

* ``return fsm.transfer_to(name)`` switches state and ends the step with
  ``FsmResult.ON_GOING``; the new state runs on the next call;
* ``return fsm.update_state_to(name)`` switches state and runs the new
  state at once, within the same call.

A handler that returns ``None`` stays where it is and the step reports
``ON_GOING``. Any other result ends the step. Every result except
``ON_GOING`` and ``WAIT_FOR_OBJ`` also puts the machine back to ``START``.
"""

from __future__ import annotations

import enum
from typing import Any, Callable, Mapping, Optional, Union

START = "START"


class FsmResult(enum.IntEnum):
    """What one step of a state machine reports."""

    ERR = -1
    CPL = 0
    ON_GOING = 1
    WAIT_FOR_OBJ = 2
    ASYNC = 3
    USER_REQ_DROP = 4
    USER_REQ_TIMEOUT = 5


class _Jump:
    """Marker returned by ``update_state_to``: run the new state now."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "<jump>"


_JUMP = _Jump()

HandlerResult = Union[FsmResult, int, None, _Jump]
Handler = Callable[["SimpleFsm"], HandlerResult]

_KEEPS_STATE = frozenset({FsmResult.ON_GOING, FsmResult.WAIT_FOR_OBJ})


class SimpleFsm:
    """Run named states step by step.

    ``states`` maps state names to handlers, in declaration order; the first
    one is entered after ``START``. ``on_start`` runs on the first step of
    each run, after the machine has already advanced to the first state.
    ``context`` is free for the handlers to keep their data in.
    """

    def __init__(
        self,
        states: Mapping[str, Handler],
        on_start: Optional[Handler] = None,
        context: Any = None,
    ) -> None:
        if not states:
            raise ValueError("a state machine needs at least one state")
        if START in states:
            raise ValueError(f"{START!r} is reserved for the initial state")
        self._states = dict(states)
        self._first = next(iter(self._states))
        self._on_start = on_start
        self.context = context
        self._state = START

    @property
    def state(self) -> str:
        """Name of the state the next step will run."""
        return self._state

    @property
    def state_names(self) -> tuple[str, ...]:
        return tuple(self._states)

    def _check_name(self, name: str) -> None:
        if name not in self._states:
            raise ValueError(f"unknown state {name!r}")

    def update_state_to(self, name: str) -> _Jump:
        """Switch to ``name`` and run it within the current step."""
        self._check_name(name)
        self._state = name
        return _JUMP

    def transfer_to(self, name: str) -> FsmResult:
        """Switch to ``name``; it runs on the next step."""
        self._check_name(name)
        self._state = name
        return FsmResult.ON_GOING

    def reset(self) -> None:
        """Return to ``START`` so the next step begins a new run."""
        self._state = START

    def step(self) -> FsmResult:
        """Run the current state once and report the outcome."""
        if self._state == START:
            self._state = self._first
            result = self._on_start(self) if self._on_start is not None else None
        else:
            handler = self._states.get(self._state)
            if handler is None:
                return FsmResult.ERR
            result = handler(self)

        while result is _JUMP:
            result = self._states[self._state](self)

        if result is None:
            return FsmResult.ON_GOING
        outcome = FsmResult(result)
        if outcome not in _KEEPS_STATE:
            self.reset()
        return outcome

    __call__ = step