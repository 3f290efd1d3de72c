"""
Paulstretch time-stretching engine.

Overlapping frames are read from the source every ``analysis_hop`` samples,
phase-randomized by FrameProcessor and overlap-added every ``synthesis_hop``
samples into the output. The synthesis hop is fixed at half a frame, the
analysis hop is ``synthesis_hop / stretch_factor``.

Channels run as independent pipelines in lockstep: each has its own random
generator and accumulator; only the read-only window and the stateless
transform are shared.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import Iterator, Protocol

import numpy as np

from paulstretch.core import window as win
from paulstretch.core.audio import AudioData, ArraySource
from paulstretch.core.frame import FrameProcessor
from paulstretch.core.overlap import OverlapAddAccumulator
from paulstretch.core.transform import SpectralTransform

MIN_FRAME_SIZE = 16
END_FADE_SECONDS = 0.05


class InvalidParameters(ValueError):
    """Stretch parameters that cannot produce a valid run."""


class SampleProvider(Protocol):
    sample_rate: int
    channels: int

    def read(self, n: int) -> np.ndarray:
        """Return up to n frames, shape (frames, channels); empty at end of stream."""


class State(enum.Enum):
    IDLE = 'idle'
    RUNNING = 'running'
    DRAINING = 'draining'
    DONE = 'done'


def next_power_of_two(n: float) -> int:
    n = max(int(math.ceil(n)), 1)
    return 1 << (n - 1).bit_length()


@dataclass(frozen=True)
class StretchParameters:
    stretch_factor: float
    window_size_seconds: float
    sample_rate: int
    channel_count: int = 1

    @property
    def frame_size(self) -> int:
        return max(next_power_of_two(self.window_size_seconds * self.sample_rate), MIN_FRAME_SIZE)

    @property
    def synthesis_hop(self) -> int:
        return self.frame_size // 2

    @property
    def analysis_hop(self) -> float:
        return self.synthesis_hop / self.stretch_factor

    def validate(self) -> None:
        if not (math.isfinite(self.stretch_factor) and self.stretch_factor > 0):
            raise InvalidParameters(f"stretch factor must be positive, got {self.stretch_factor}")
        if not (math.isfinite(self.window_size_seconds) and self.window_size_seconds > 0):
            raise InvalidParameters(f"window size must be positive, got {self.window_size_seconds}")
        if int(self.sample_rate) != self.sample_rate or self.sample_rate <= 0:
            raise InvalidParameters(f"sample rate must be a positive integer, got {self.sample_rate}")
        if int(self.channel_count) != self.channel_count or self.channel_count <= 0:
            raise InvalidParameters(f"channel count must be a positive integer, got {self.channel_count}")
        if self.analysis_hop < 1:
            raise InvalidParameters(
                f"stretch factor {self.stretch_factor:g} is too large for a {self.frame_size}-sample "
                f"window (at most {self.synthesis_hop}); increase the window size")

    def output_length(self, input_length: int) -> int:
        """Number of samples a run over ``input_length`` samples produces."""
        if input_length <= 0:
            return 0
        frames = math.ceil(input_length / self.analysis_hop)
        return (frames - 1) * self.synthesis_hop + self.frame_size


class StretchController:
    """Drives one stretch run: IDLE -> RUNNING -> DRAINING -> DONE.

    ``rngs`` holds one random source per channel. ``cancel`` is an optional
    object with ``is_set()`` (such as ``threading.Event``) checked once per
    frame; when set, the run stops at the frame boundary without yielding
    partially accumulated samples.
    """

    def __init__(self, source: SampleProvider, params: StretchParameters, rngs, cancel=None):
        self.source = source
        self.params = params
        self.rngs = list(rngs)
        self.cancel = cancel
        self.state = State.IDLE
        self.frames_processed = 0

    def _start(self) -> None:
        params = self.params
        params.validate()
        if self.source.channels != params.channel_count:
            raise InvalidParameters(
                f"source has {self.source.channels} channels, expected {params.channel_count}")
        if len(self.rngs) != params.channel_count:
            raise InvalidParameters(
                f"need one random source per channel, got {len(self.rngs)} for {params.channel_count}")

        n = params.frame_size
        self.window = win.build(n)
        self.processor = FrameProcessor(self.window, SpectralTransform(n))
        steady = win.steady_weight(self.window, params.synthesis_hop)
        self.accumulators = [OverlapAddAccumulator(self.window, steady, capacity=4 * n)
                             for _ in range(params.channel_count)]

        self._buffer = np.zeros((0, params.channel_count))
        self._buffer_start = 0
        self._exhausted = False
        self.state = State.RUNNING

    def _frame_at(self, start: int) -> np.ndarray | None:
        """Return the (frame_size, channels) block at ``start``, or None past the end."""
        n = self.params.frame_size
        buffered_end = self._buffer_start + self._buffer.shape[0]
        if start >= buffered_end:
            # hops longer than the buffer (stretch < 1) skip source samples
            self._skip(start - buffered_end)
            self._buffer = self._buffer[:0]
            self._buffer_start = start
        elif start > self._buffer_start:
            self._buffer = self._buffer[start - self._buffer_start:]
            self._buffer_start = start

        while not self._exhausted and self._buffer.shape[0] < n:
            chunk = self._read(n - self._buffer.shape[0])
            if chunk.shape[0]:
                self._buffer = np.concatenate([self._buffer, chunk])

        if self._buffer.shape[0] == 0:
            return None
        frame = np.zeros((n, self.params.channel_count))
        block = self._buffer[:n]
        frame[:block.shape[0]] = block
        return frame

    def _read(self, count: int) -> np.ndarray:
        chunk = self.source.read(count)
        if chunk.ndim == 1:
            chunk = chunk[:, np.newaxis]
        if chunk.shape[0] == 0:
            self._exhausted = True
        return chunk

    def _skip(self, count: int) -> None:
        while count > 0 and not self._exhausted:
            count -= self._read(count).shape[0]

    def _drain(self, before: int) -> np.ndarray:
        return np.stack([acc.drain_ready(before) for acc in self.accumulators], axis=1)

    def _cancelled(self) -> bool:
        return self.cancel is not None and self.cancel.is_set()

    def run(self) -> Iterator[np.ndarray]:
        """Yield finalized output blocks of shape (frames, channels)."""
        if self.state is not State.IDLE:
            raise RuntimeError(f"StretchController cannot run from state {self.state.value}")
        self._start()

        n = self.params.frame_size
        hop_in = self.params.analysis_hop
        hop_out = self.params.synthesis_hop

        # RUNNING
        k = 0
        while True:
            if self._cancelled():
                self.state = State.DONE
                return
            frame = self._frame_at(int(k * hop_in))
            if frame is None:
                break
            offset = k * hop_out
            for ch, (acc, rng) in enumerate(zip(self.accumulators, self.rngs)):
                acc.add(self.processor.process(frame[:, ch], rng), offset)
            self.frames_processed += 1
            k += 1
            block = self._drain(offset + hop_out)
            if block.shape[0]:
                yield block

        # DRAINING: silent frames complete the overlap of the last written frames
        self.state = State.DRAINING
        end = max(acc.written for acc in self.accumulators)
        silence = np.zeros(n)
        offset = k * hop_out
        while offset < end:
            if self._cancelled():
                self.state = State.DONE
                return
            for acc in self.accumulators:
                acc.add(silence, offset)
            offset += hop_out
            block = self._drain(min(offset, end))
            if block.shape[0]:
                yield block

        block = self._drain(end)
        self.state = State.DONE
        if block.shape[0]:
            yield block


def run(source: SampleProvider, params: StretchParameters, rng: np.random.Generator,
        cancel=None) -> Iterator[np.ndarray]:
    """Stretch ``source`` lazily; one independent generator is spawned per channel."""
    params.validate()
    controller = StretchController(source, params, rng.spawn(params.channel_count), cancel)
    return controller.run()


def fade_out_tail(samples: np.ndarray, sample_rate: int) -> np.ndarray:
    """Linearly fade the last 50 ms (at least 16 samples) to silence."""
    out = np.array(samples, dtype=np.float64, copy=True)
    end_size = max(int(sample_rate * END_FADE_SECONDS), 16)
    end_size = min(end_size, out.shape[0])
    if end_size == 0:
        return out
    ramp = np.linspace(1.0, 0.0, end_size)
    if out.ndim == 2:
        ramp = ramp[:, np.newaxis]
    out[out.shape[0] - end_size:] *= ramp
    return out


def stretch_audio(audio: AudioData, stretch_factor: float, window_size_seconds: float,
                  rng: np.random.Generator | None = None, cancel=None,
                  progress=None) -> AudioData:
    """Stretch in-memory audio and return the result clipped to [-1, 1].

    ``progress`` is called with the number of samples in each emitted block.
    """
    params = StretchParameters(stretch_factor, window_size_seconds,
                               audio.sample_rate, audio.channels)
    if rng is None:
        rng = np.random.default_rng()
    samples = audio.samples if audio.samples.ndim == 2 else audio.samples[:, np.newaxis]
    source = ArraySource(AudioData(fade_out_tail(samples, audio.sample_rate), audio.sample_rate))

    blocks = []
    for block in run(source, params, rng, cancel):
        blocks.append(block)
        if progress is not None:
            progress(block.shape[0])

    if blocks:
        out = np.concatenate(blocks)
    else:
        out = np.zeros((0, audio.channels))
    out = np.clip(out, -1.0, 1.0).astype(np.float32)
    return AudioData(out, audio.sample_rate, audio.subtype)
