"""Tests for paulstretch.core.audio."""

import io
import numpy as np
import pytest

from paulstretch.core.audio import (
    AudioData, ArraySource, load, save, read_pipe, write_pipe,
)


class TestAudioDataProperties:
    def test_mono_channels(self, mono_audio):
        assert mono_audio.channels == 1

    def test_stereo_channels(self, stereo_audio):
        assert stereo_audio.channels == 2

    def test_frames(self, mono_audio):
        assert mono_audio.frames == 16000

    def test_duration(self, mono_audio):
        assert mono_audio.duration == pytest.approx(1.0)


class TestChannelConversion:
    def test_stereo_to_mono(self, stereo_audio):
        m = stereo_audio.as_mono()
        assert m.channels == 1
        expected = stereo_audio.samples.mean(axis=1, keepdims=True)
        np.testing.assert_allclose(m.samples, expected, atol=1e-6)

    def test_mono_as_mono_returns_self(self, mono_audio):
        assert mono_audio.as_mono() is mono_audio


class TestArraySource:
    def test_reads_in_order_then_empty(self, stereo_audio):
        src = ArraySource(stereo_audio)
        assert src.channels == 2
        assert src.sample_rate == stereo_audio.sample_rate
        first = src.read(10000)
        second = src.read(10000)
        assert first.shape == (10000, 2)
        assert second.shape == (6000, 2)
        assert src.read(10).shape[0] == 0
        np.testing.assert_array_equal(np.concatenate([first, second]), stereo_audio.samples)

    def test_one_dimensional_samples(self):
        src = ArraySource(AudioData(np.arange(5, dtype=np.float32), 8000))
        assert src.channels == 1
        assert len(src) == 5
        assert src.read(3).shape == (3, 1)


class TestFileIO:
    def test_wav_roundtrip(self, mono_audio, tmp_path):
        p = tmp_path / "rt.wav"
        save(mono_audio, p)
        loaded = load(p)
        assert loaded.sample_rate == mono_audio.sample_rate
        assert loaded.frames == mono_audio.frames
        assert loaded.subtype == 'PCM_16'
        # PCM_16 quantization limits precision
        np.testing.assert_allclose(loaded.samples, mono_audio.samples, atol=1e-4)

    def test_subtype_preserved(self, mono_audio, tmp_path):
        p = tmp_path / "rt24.wav"
        save(AudioData(mono_audio.samples, mono_audio.sample_rate, 'PCM_24'), p)
        assert load(p).subtype == 'PCM_24'

    def test_float_subtype_preserved(self, mono_audio, tmp_path):
        p = tmp_path / "rtf.wav"
        save(AudioData(mono_audio.samples, mono_audio.sample_rate, 'FLOAT'), p)
        loaded = load(p)
        assert loaded.subtype == 'FLOAT'
        np.testing.assert_array_equal(loaded.samples, mono_audio.samples)

    def test_unsupported_subtype_falls_back(self, mono_audio, tmp_path):
        p = tmp_path / "rt.flac"
        save(AudioData(mono_audio.samples, mono_audio.sample_rate, 'FLOAT'), p)
        assert load(p).subtype == 'PCM_24'

    def test_unsupported_format_raises(self, mono_audio, tmp_path):
        with pytest.raises(ValueError, match="Unsupported"):
            save(mono_audio, tmp_path / "test.xyz")


class TestPipeRoundtrip:
    def test_pipe_roundtrip_stereo(self, stereo_audio):
        buf = io.BytesIO()
        write_pipe(stereo_audio, buf)
        buf.seek(0)
        loaded = read_pipe(buf)
        assert loaded.sample_rate == stereo_audio.sample_rate
        assert loaded.channels == 2
        np.testing.assert_array_equal(loaded.samples, stereo_audio.samples)

    def test_incomplete_header_raises(self):
        buf = io.BytesIO(b'\x00' * 4)
        with pytest.raises(ValueError, match="Incomplete"):
            read_pipe(buf)

    def test_bad_magic_raises(self):
        buf = io.BytesIO(b'XXXX' + b'\x00' * 12)
        with pytest.raises(ValueError, match="Invalid pipe magic"):
            read_pipe(buf)
