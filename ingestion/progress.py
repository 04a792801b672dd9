"""
Progress reporting for long-running loads
"""

from abc import ABC, abstractmethod
from typing import Optional
from tqdm import tqdm
import sys


class ProgressReporter(ABC):
    """Observes a load; must never influence its result"""

    @abstractmethod
    def start(self, total: int) -> None:
        pass

    @abstractmethod
    def update(self, current: int) -> None:
        """Report the absolute count reached so far"""
        pass

    @abstractmethod
    def stop(self) -> None:
        pass


class NullProgressReporter(ProgressReporter):
    """Used when no terminal is attached"""

    def start(self, total: int) -> None:
        pass

    def update(self, current: int) -> None:
        pass

    def stop(self) -> None:
        pass


class TqdmProgressReporter(ProgressReporter):
    """
    Terminal progress bar: count/total, percentage, rate and ETA.

    tqdm shows the ETA as '?' until it has enough samples.
    """

    def __init__(self, description: str):
        self.description = description
        self._bar: Optional[tqdm] = None

    def start(self, total: int) -> None:
        self._bar = tqdm(
            total=total,
            desc=self.description,
            unit="rec",
            leave=True,
            dynamic_ncols=True,
        )

    def update(self, current: int) -> None:
        if self._bar is None:
            return
        delta = current - self._bar.n
        if delta:
            self._bar.update(delta)

    def stop(self) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None


def create_progress_reporter(
    description: str,
    enabled: Optional[bool] = None
) -> ProgressReporter:
    """
    Build a reporter for one load.

    Args:
        description: Label shown in front of the bar
        enabled: True/False to force; None enables bars only on a terminal
    """
    if enabled is None:
        enabled = sys.stderr.isatty()
    if not enabled:
        return NullProgressReporter()
    return TqdmProgressReporter(description)
