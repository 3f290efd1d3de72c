"""Fixed-size real FFT / inverse FFT."""

import numpy as np
from scipy import fft


class SpectralTransform:
    """Real-input FFT of a fixed frame size.

    Scaling follows scipy's "backward" convention: the forward transform is
    unscaled and the inverse divides by N, so ``inverse(forward(x)) == x``.
    """

    def __init__(self, size: int):
        if size < 2:
            raise ValueError(f"Transform size must be at least 2, got {size}")
        self.size = size
        self.bins = size // 2 + 1

    def forward(self, samples: np.ndarray) -> np.ndarray:
        if samples.shape != (self.size,):
            raise ValueError(f"Expected {self.size} samples, got shape {samples.shape}")
        return fft.rfft(samples)

    def inverse(self, spectrum: np.ndarray) -> np.ndarray:
        if spectrum.shape != (self.bins,):
            raise ValueError(f"Expected {self.bins} bins, got shape {spectrum.shape}")
        return fft.irfft(spectrum, n=self.size)
