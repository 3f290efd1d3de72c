"""
Core audio I/O: load, save, and pipe audio data.

The stretcher works on AudioData, a simple container of a numpy float32 array
(samples x channels) plus sample rate. Samples are always in [-1.0, 1.0].
The soundfile subtype of the source (PCM_16, PCM_24, FLOAT, ...) is kept so
the stretched file can be written back in the same sample format.

Pipe protocol (raw PCM via stdin/stdout):
  - Header: 16 bytes
      bytes 0-3:  magic b'PSAW'
      bytes 4-7:  sample_rate (uint32 little-endian)
      bytes 8-11: num_channels (uint32 little-endian)
      bytes 12-15: num_frames (uint32 little-endian)  0 = streaming/unknown
  - Body: float32 little-endian samples, interleaved by channel
"""

import sys
import struct
import numpy as np
import soundfile as sf
from dataclasses import dataclass
from pathlib import Path

PIPE_MAGIC = b'PSAW'
PIPE_HEADER_FMT = '<4sIII'
PIPE_HEADER_SIZE = struct.calcsize(PIPE_HEADER_FMT)  # 16 bytes


@dataclass
class AudioData:
    samples: np.ndarray   # shape: (frames, channels), dtype float32
    sample_rate: int
    subtype: str | None = None

    @property
    def channels(self) -> int:
        return self.samples.shape[1] if self.samples.ndim == 2 else 1

    @property
    def frames(self) -> int:
        return self.samples.shape[0]

    @property
    def duration(self) -> float:
        return self.frames / self.sample_rate

    def as_mono(self) -> 'AudioData':
        if self.channels == 1:
            return self
        return AudioData(self.samples.mean(axis=1, keepdims=True).astype(np.float32),
                         self.sample_rate, self.subtype)


class ArraySource:
    """Pull-based sample provider over in-memory AudioData.

    ``read(n)`` returns up to n frames as a (frames, channels) array and an
    empty array once the data is exhausted.
    """

    def __init__(self, audio: AudioData):
        samples = audio.samples
        if samples.ndim == 1:
            samples = samples[:, np.newaxis]
        self._samples = samples
        self._pos = 0
        self.sample_rate = audio.sample_rate
        self.channels = samples.shape[1]

    def __len__(self) -> int:
        return self._samples.shape[0]

    def read(self, n: int) -> np.ndarray:
        chunk = self._samples[self._pos:self._pos + n]
        self._pos += chunk.shape[0]
        return chunk


_PYDUB_FORMATS = {'.mp3', '.m4a', '.aac', '.mp4'}


def load(path: str | Path) -> AudioData:
    """Load an audio file. Supports WAV, FLAC, OGG via soundfile; MP3/M4A/AAC via pydub/ffmpeg."""
    path = Path(path)
    if path.suffix.lower() in _PYDUB_FORMATS:
        return _load_via_pydub(path)
    with sf.SoundFile(str(path)) as f:
        subtype = f.subtype
        data = f.read(dtype='float32', always_2d=True)
        sr = f.samplerate
    return AudioData(data, sr, subtype)


def _load_via_pydub(path: Path) -> AudioData:
    from pydub import AudioSegment
    seg = AudioSegment.from_file(str(path))
    sr = seg.frame_rate
    channels = seg.channels
    raw = np.array(seg.get_array_of_samples(), dtype=np.int16)
    samples = raw.reshape(-1, channels).astype(np.float32) / 32768.0
    return AudioData(samples, sr, 'PCM_16')


_DEFAULT_SUBTYPES = {'WAV': 'PCM_16', 'FLAC': 'PCM_24', 'OGG': 'VORBIS'}


def save(audio: AudioData, path: str | Path, format: str | None = None) -> None:
    """Save audio to a file. Format inferred from extension if not given.

    The source subtype is reused when the target format supports it.
    """
    path = Path(path)
    fmt = (format or path.suffix.lstrip('.')).upper()
    if fmt == 'VORBIS':
        fmt = 'OGG'
    if fmt not in _DEFAULT_SUBTYPES:
        raise ValueError(f"Unsupported output format: {fmt}")
    subtype = _DEFAULT_SUBTYPES[fmt]
    if audio.subtype and fmt != 'OGG' and sf.check_format(fmt, audio.subtype):
        subtype = audio.subtype
    sf.write(str(path), audio.samples, audio.sample_rate, format=fmt, subtype=subtype)


def read_pipe(stream=None) -> AudioData:
    """Read AudioData from a pipe stream (default: stdin binary)."""
    if stream is None:
        stream = sys.stdin.buffer
    header = stream.read(PIPE_HEADER_SIZE)
    if len(header) < PIPE_HEADER_SIZE:
        raise ValueError("Incomplete pipe header")
    magic, sr, channels, frames = struct.unpack(PIPE_HEADER_FMT, header)
    if magic != PIPE_MAGIC:
        raise ValueError(f"Invalid pipe magic: {magic!r} (expected {PIPE_MAGIC!r})")
    if channels == 0:
        raise ValueError("Invalid pipe header: zero channels")
    if frames == 0:
        raw = stream.read()
    else:
        raw = stream.read(frames * channels * 4)
    samples = np.frombuffer(raw, dtype='<f4').reshape(-1, channels)
    return AudioData(samples.astype(np.float32), sr, 'FLOAT')


def write_pipe(audio: AudioData, stream=None) -> None:
    """Write AudioData to a pipe stream (default: stdout binary)."""
    if stream is None:
        stream = sys.stdout.buffer
    header = struct.pack(PIPE_HEADER_FMT, PIPE_MAGIC, audio.sample_rate, audio.channels, audio.frames)
    stream.write(header)
    stream.write(audio.samples.astype('<f4').tobytes())
    stream.flush()


def load_input(path: str) -> AudioData:
    """Load audio from a file path, or from the stdin pipe if path is '-'."""
    if path == '-':
        return read_pipe()
    return load(path)


def save_output(audio: AudioData, path: str, format: str | None = None) -> None:
    """Save audio to a file path, or to the stdout pipe if path is '-'."""
    if path == '-':
        write_pipe(audio)
        return
    save(audio, path, format=format)
