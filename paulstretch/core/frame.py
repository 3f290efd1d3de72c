"""
Per-frame spectral processing: window, FFT, phase randomization, iFFT, window.

Magnitudes are kept and every phase is replaced by a uniform draw in
[0, 2*pi). The DC and Nyquist bins of a real FFT are purely real, so they
keep their original value; their draws are still consumed so the random
stream does not depend on that policy. The DC component of every processed
frame (before the second windowing) is therefore that of the windowed input,
whatever the random source.
"""

import numpy as np

from paulstretch.core.transform import SpectralTransform


class FrameProcessor:

    def __init__(self, window: np.ndarray, transform: SpectralTransform | None = None):
        self.window = window
        self.size = window.shape[0]
        self.transform = transform or SpectralTransform(self.size)
        if self.transform.size != self.size:
            raise ValueError(
                f"Transform size {self.transform.size} does not match window size {self.size}")
        # Real-valued bins: DC always, Nyquist for even sizes
        self._real_bins = [0]
        if self.size % 2 == 0:
            self._real_bins.append(self.transform.bins - 1)

    def process(self, frame: np.ndarray, rng) -> np.ndarray:
        """Return the phase-randomized, doubly windowed copy of ``frame``.

        ``rng`` is any object with ``random(size)`` returning uniform values
        in [0, 1), e.g. ``numpy.random.Generator``.
        """
        if frame.shape != (self.size,):
            raise ValueError(f"Expected frame of {self.size} samples, got shape {frame.shape}")

        spectrum = self.transform.forward(frame * self.window)
        magnitude = np.abs(spectrum)
        theta = 2.0 * np.pi * rng.random(spectrum.shape[0])

        randomized = magnitude * np.exp(1j * theta)
        randomized[self._real_bins] = spectrum[self._real_bins].real

        return self.transform.inverse(randomized) * self.window
