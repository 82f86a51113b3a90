"""
Simulation Time Manager
=======================

Monotonic simulated time for the simulation loop.
"""

import numpy as np
from datetime import datetime, timedelta, timezone

from ..dynamics.integrators import check_timestep


class SimulationTime:
    """
    Manages simulation time.

    Provides:
    - Elapsed simulated seconds since the configured epoch
    - Step counting
    - Message timestamps (milliseconds since the Unix epoch)

    Time only moves forward through step(); reset() is the only rewind.
    """

    def __init__(self, epoch_seconds: float = 0.0):
        """
        Initialize simulation time.

        Args:
            epoch_seconds: Unix time (seconds) that elapsed time zero maps to
        """
        if not np.isfinite(epoch_seconds) or epoch_seconds < 0:
            raise ValueError(f"Epoch must be a finite value >= 0, got {epoch_seconds!r}")
        self.epoch_seconds = float(epoch_seconds)
        self.elapsed_seconds = 0.0
        self.step_count = 0

    def reset(self):
        """Reset simulation time to the epoch."""
        self.elapsed_seconds = 0.0
        self.step_count = 0

    def step(self, dt: float) -> float:
        """
        Advance time by one step.

        Args:
            dt: Step length in simulated seconds

        Returns:
            Elapsed time after the step
        """
        dt = check_timestep(dt)
        self.elapsed_seconds += dt
        self.step_count += 1
        return self.elapsed_seconds

    def timestamp_ms(self, elapsed_seconds: float = None) -> int:
        """Milliseconds since the Unix epoch for an elapsed time (default: now)."""
        t = self.elapsed_seconds if elapsed_seconds is None else elapsed_seconds
        return int(round((self.epoch_seconds + t) * 1000.0))

    @property
    def current_utc(self) -> datetime:
        """Current simulated instant as an aware UTC datetime."""
        epoch = datetime(1970, 1, 1, tzinfo=timezone.utc)
        return epoch + timedelta(seconds=self.epoch_seconds + self.elapsed_seconds)

    def __repr__(self) -> str:
        return f"SimulationTime(elapsed={self.elapsed_seconds:.3f}s, steps={self.step_count})"
