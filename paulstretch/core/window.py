"""
Analysis/synthesis window.

The stretcher uses the symmetric sine window

    w[i] = sin(pi * (i + 0.5) / N)

(scipy's 'cosine' window). Its square is the raised cosine
0.5 - 0.5 * cos(2 * pi * (i + 0.5) / N), a Hann window shifted by half a
sample, so summing w**2 over frames spaced N/2 apart gives exactly 1 at every
fully overlapped position. Frames are windowed twice (before the forward
transform and after the inverse), which is why the overlap-add weight is w**2.
"""

import numpy as np
from scipy.signal import get_window

WINDOW_NAME = 'cosine'


def build(frame_size: int) -> np.ndarray:
    """Return the read-only window for frames of ``frame_size`` samples."""
    if frame_size < 2 or frame_size % 2:
        raise ValueError(f"frame_size must be a positive even integer, got {frame_size}")
    win = get_window(WINDOW_NAME, frame_size, fftbins=False).astype(np.float64)
    win.flags.writeable = False
    return win


def overlap_weight(window: np.ndarray, hop: int, frames: int = 4) -> np.ndarray:
    """Accumulated w**2 of ``frames`` windows placed ``hop`` samples apart."""
    n = window.shape[0]
    total = np.zeros((frames - 1) * hop + n)
    sq = window ** 2
    for k in range(frames):
        total[k * hop:k * hop + n] += sq
    return total


def steady_weight(window: np.ndarray, hop: int) -> float:
    """Overlap weight in the fully covered interior of a long stream."""
    n = window.shape[0]
    frames = -(-n // hop) * 2 + 1
    total = overlap_weight(window, hop, frames)
    middle = (frames // 2) * hop
    return float(total[middle:middle + hop].mean())
