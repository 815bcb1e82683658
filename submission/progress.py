"""Staged progress indicator shown while a submission is in flight."""
import asyncio
import logging
from typing import Callable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

# (delay in seconds after start, label); advances on elapsed time only
STAGES: Tuple[Tuple[float, str], ...] = (
    (0.0, 'Skickar till servern…'),
    (0.5, 'Kontrollerar aktiviteten…'),
    (2.0, 'Sparar aktiviteten…'),
)


class ProgressIndicator:
    """
    Advances through labelled stages on a fixed timer.

    The schedule is cosmetic pacing: it knows nothing about the request and
    only stops when told the outcome.
    """

    def __init__(
        self,
        stages: Sequence[Tuple[float, str]] = STAGES,
        on_change: Optional[Callable[['ProgressIndicator'], None]] = None
    ):
        """
        Args:
            stages: (delay, label) pairs; the first stage is shown immediately
            on_change: Called after every stage transition
        """
        self.stages = tuple(stages)
        self.on_change = on_change
        self.active: Optional[int] = None
        self.done: List[int] = []
        self._handles: List[asyncio.TimerHandle] = []

    @property
    def labels(self) -> List[str]:
        return [label for _, label in self.stages]

    @property
    def active_label(self) -> Optional[str]:
        if self.active is None:
            return None
        return self.stages[self.active][1]

    def start(self) -> None:
        """Show the first stage and schedule the rest. Requires a running loop."""
        self.cancel()
        self.active = None
        self.done = []
        if not self.stages:
            return

        loop = asyncio.get_running_loop()
        self._activate(0)
        for index in range(1, len(self.stages)):
            delay = self.stages[index][0]
            self._handles.append(loop.call_later(delay, self._advance, index))

    def complete(self) -> None:
        """Stop the timer and mark every stage done."""
        self.cancel()
        self.active = None
        self.done = list(range(len(self.stages)))
        self._notify()

    def cancel(self) -> None:
        """Stop the timer, leaving the stages as they are."""
        for handle in self._handles:
            handle.cancel()
        self._handles = []

    def _advance(self, index: int) -> None:
        if self.active is not None and self.active not in self.done:
            self.done.append(self.active)
        self._activate(index)

    def _activate(self, index: int) -> None:
        self.active = index
        logger.debug(f"Progress stage {index}: {self.stages[index][1]}")
        self._notify()

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self)
