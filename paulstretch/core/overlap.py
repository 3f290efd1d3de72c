"""
Overlap-add accumulator.

Processed frames are summed into ``sample_sum`` at their synthesis offset while
``weight_sum`` collects window**2 at the same positions. Positions are emitted
as sample_sum / weight_sum once the caller promises no later frame can reach
them. Storage is a sliding buffer addressed by absolute sample position;
emitted samples are released and the buffer is compacted in place.

Near the stream edges only part of the overlap is present and the weight
drops towards zero. Those positions are divided by the steady-state weight
instead, so the output fades in and out with the window rather than having
the partial frame blown up. Positions never written emit 0.
"""

import numpy as np


class OverlapAddAccumulator:

    def __init__(self, window: np.ndarray, steady_weight: float = 1.0, capacity: int | None = None):
        self.window = window
        self.size = window.shape[0]
        self._sq = window ** 2
        self._floor = steady_weight
        capacity = max(capacity or 0, 2 * self.size)
        self._sum = np.zeros(capacity)
        self._weight = np.zeros(capacity)
        self._base = 0      # absolute position of buffer index 0
        self._emitted = 0   # next absolute position to emit
        self._written = 0   # one past the last written position

    @property
    def emitted(self) -> int:
        return self._emitted

    @property
    def written(self) -> int:
        return self._written

    def add(self, frame: np.ndarray, offset: int) -> None:
        """Accumulate ``frame`` at absolute position ``offset``."""
        if frame.shape != (self.size,):
            raise ValueError(f"Expected frame of {self.size} samples, got shape {frame.shape}")
        if offset < self._emitted:
            raise ValueError(f"Offset {offset} is before already emitted position {self._emitted}")

        self._reserve(offset + self.size)
        start = offset - self._base
        self._sum[start:start + self.size] += frame
        self._weight[start:start + self.size] += self._sq
        self._written = max(self._written, offset + self.size)

    def drain_ready(self, before: int) -> np.ndarray:
        """Emit every pending position strictly before ``before``, in order."""
        end = max(before, self._emitted)
        if end == self._emitted:
            return np.zeros(0)

        self._reserve(end)
        lo = self._emitted - self._base
        hi = end - self._base
        weight = self._weight[lo:hi]
        out = np.where(weight > 0.0, self._sum[lo:hi] / np.maximum(weight, self._floor), 0.0)

        self._sum[lo:hi] = 0.0
        self._weight[lo:hi] = 0.0
        self._emitted = end
        return out

    def _reserve(self, end: int) -> None:
        """Make sure absolute positions up to ``end`` fit in the buffer."""
        if end - self._base <= self._sum.shape[0]:
            return
        # drop emitted samples first, then grow if that is not enough
        shift = self._emitted - self._base
        pending = self._written - self._emitted if self._written > self._emitted else 0
        needed = end - self._emitted
        if needed > self._sum.shape[0]:
            capacity = max(needed, 2 * self._sum.shape[0])
            new_sum = np.zeros(capacity)
            new_weight = np.zeros(capacity)
            new_sum[:pending] = self._sum[shift:shift + pending]
            new_weight[:pending] = self._weight[shift:shift + pending]
            self._sum, self._weight = new_sum, new_weight
        else:
            self._sum[:pending] = self._sum[shift:shift + pending]
            self._weight[:pending] = self._weight[shift:shift + pending]
            self._sum[pending:] = 0.0
            self._weight[pending:] = 0.0
        self._base = self._emitted
