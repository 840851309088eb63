"""
Step Navigator - Progress through the multi-step application

Steps are numbered 0..total_steps-1. Moving forward marks the step being
left as completed; the application is finished once the last step is
reached and marked complete.

Transitions can be gated by a validation callback. The callback receives
the step being left and may be a plain function or a coroutine function;
the navigator awaits it before committing. Only one transition may be in
flight: a second go_to_step() while validation is pending is rejected.
"""

import inspect
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, FrozenSet, Iterable, List, Optional, Union

logger = logging.getLogger(__name__)

Validator = Callable[[int], Union[bool, Awaitable[bool]]]
StepChangeCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class ApplicationStep:
    """One section of the application form."""
    id: str
    label: str


@dataclass(frozen=True)
class StepperState:
    """Read-only snapshot of navigator progress."""
    current_step_index: int
    total_steps: int
    completed_steps: FrozenSet[int] = field(default_factory=frozenset)

    @property
    def is_first_step(self) -> bool:
        return self.current_step_index == 0

    @property
    def is_last_step(self) -> bool:
        return self.current_step_index == self.total_steps - 1

    def to_dict(self) -> dict:
        return {
            'current_step': self.current_step_index,
            'total_steps': self.total_steps,
            'is_first_step': self.is_first_step,
            'is_last_step': self.is_last_step,
            'completed_steps': sorted(self.completed_steps),
        }


class StepNavigator:
    """
    Finite-state stepper for the application form.

    Args:
        total_steps: Number of steps, fixed for the session
        initial_step: Step to start on (and to return to on reset)
        completed_steps: Steps already completed, e.g. restored progress
        validate_step: Optional gate called with the current step
        on_step_change: Optional observer called with (new_step, previous_step)

    Usage:
        navigator = StepNavigator(total_steps=8, validate_step=check)
        moved = await navigator.next_step()
    """

    def __init__(
        self,
        total_steps: int,
        initial_step: int = 0,
        completed_steps: Iterable[int] = (),
        validate_step: Optional[Validator] = None,
        on_step_change: Optional[StepChangeCallback] = None,
    ):
        if total_steps < 1:
            raise ValueError("A navigator needs at least one step")
        if not 0 <= initial_step < total_steps:
            raise ValueError(f"Initial step {initial_step} outside 0..{total_steps - 1}")

        self.total_steps = total_steps
        self.initial_step = initial_step
        self.validate_step = validate_step
        self.on_step_change = on_step_change

        self._current = initial_step
        self._completed = {s for s in completed_steps if self._in_range(s)}
        self._transition_pending = False

    # ===== PROJECTIONS =====

    @property
    def current_step(self) -> int:
        return self._current

    @property
    def is_first_step(self) -> bool:
        return self._current == 0

    @property
    def is_last_step(self) -> bool:
        return self._current == self.total_steps - 1

    @property
    def completed_steps(self) -> List[int]:
        return sorted(self._completed)

    @property
    def is_busy(self) -> bool:
        """True while a transition is waiting on validation."""
        return self._transition_pending

    @property
    def is_finished(self) -> bool:
        """Last step reached and marked complete."""
        return self.is_last_step and self.is_step_complete(self._current)

    @property
    def state(self) -> StepperState:
        return StepperState(
            current_step_index=self._current,
            total_steps=self.total_steps,
            completed_steps=frozenset(self._completed),
        )

    # ===== TRANSITIONS =====

    async def go_to_step(self, target: int) -> bool:
        """
        Move to another step.

        Returns:
            True if the navigator moved, False if the target is out of
            range, another transition is pending, or validation failed.
            State is unchanged whenever False is returned.
        """
        if not self._in_range(target):
            logger.info(f"Navigation rejected: step {target} outside 0..{self.total_steps - 1}")
            return False

        if self._transition_pending:
            logger.info(f"Navigation rejected: transition already in progress (target {target})")
            return False

        self._transition_pending = True
        try:
            if self.validate_step is not None:
                result = self.validate_step(self._current)
                if inspect.isawaitable(result):
                    result = await result
                if not result:
                    logger.info(f"Navigation rejected: step {self._current} failed validation")
                    return False

            previous = self._current
            if target > previous:
                self._completed.add(previous)
            self._current = target
        finally:
            self._transition_pending = False

        logger.debug(f"Moved from step {previous} to step {target}")
        if self.on_step_change is not None:
            self.on_step_change(target, previous)
        return True

    async def next_step(self) -> bool:
        return await self.go_to_step(self._current + 1)

    async def previous_step(self) -> bool:
        return await self.go_to_step(self._current - 1)

    def mark_step_complete(self, step: int) -> bool:
        """Add a step to the completed set without moving. Idempotent."""
        if not self._in_range(step):
            return False
        self._completed.add(step)
        return True

    def is_step_complete(self, step: int) -> bool:
        return step in self._completed

    def restore(self, current_step: int, completed_steps: Iterable[int] = ()) -> None:
        """
        Resume saved progress.

        Out-of-range values from storage are dropped: an invalid current
        step falls back to the initial step.
        """
        if self._in_range(current_step):
            self._current = current_step
        else:
            logger.warning(f"Ignoring saved step {current_step}, resuming at {self.initial_step}")
            self._current = self.initial_step
        self._completed = {s for s in completed_steps if self._in_range(s)}

    def reset(self) -> None:
        """Return to the initial step with nothing completed."""
        self._current = self.initial_step
        self._completed.clear()

    def _in_range(self, step: int) -> bool:
        return 0 <= step < self.total_steps
