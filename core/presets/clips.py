"""
Sound clips: decoding WAV payloads and synthesizing typewriter sounds.

All clips are converted at load time to float32 arrays shaped
(frames, channels) at the output sample rate, so playback never touches
disk or converts formats.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Union

import numpy as np
from scipy.io import wavfile


@dataclass(frozen=True, eq=False)
class SoundClip:
    """Decoded audio ready for the mixer."""
    name: str
    samples: np.ndarray  # float32, (frames, channels)
    sample_rate: int
    volume: float = 1.0

    @property
    def frames(self) -> int:
        return int(self.samples.shape[0])

    @property
    def channels(self) -> int:
        return int(self.samples.shape[1])

    @property
    def duration(self) -> float:
        return self.frames / float(self.sample_rate)


class ClipError(ValueError):
    pass


def prepare_audio(audio: np.ndarray, original_sample_rate: int,
                  sample_rate: int, channels: int) -> np.ndarray:
    """Convert raw PCM to float32 (frames, channels) at the target rate."""
    if audio.dtype == np.int16:
        audio = audio.astype(np.float32) / 32768.0
    elif audio.dtype == np.int32:
        audio = audio.astype(np.float32) / 2147483648.0
    elif audio.dtype == np.uint8:
        audio = (audio.astype(np.float32) - 128.0) / 128.0
    else:
        audio = audio.astype(np.float32)

    if audio.ndim == 1:
        audio = audio[:, None]
    if audio.ndim != 2 or audio.shape[0] == 0 or audio.shape[1] == 0:
        raise ClipError(f"unsupported audio shape {audio.shape}")

    # Conform channel layout
    src_ch = audio.shape[1]
    if src_ch != channels:
        if channels == 1:
            audio = audio.mean(axis=1, keepdims=True)
        elif src_ch == 1:
            audio = np.repeat(audio, channels, axis=1)
        elif src_ch > channels:
            audio = audio[:, :channels]
        else:
            pad = np.repeat(audio[:, -1:], channels - src_ch, axis=1)
            audio = np.concatenate([audio, pad], axis=1)

    # Linear-interpolation resample
    if original_sample_rate != sample_rate:
        ratio = sample_rate / float(original_sample_rate)
        n_src = audio.shape[0]
        n_dst = max(1, int(round(n_src * ratio)))
        src_pos = np.arange(n_src)
        dst_pos = np.linspace(0, n_src - 1, n_dst)
        audio = np.column_stack([
            np.interp(dst_pos, src_pos, audio[:, c]) for c in range(audio.shape[1])
        ])

    audio = np.ascontiguousarray(audio, dtype=np.float32)
    if not np.all(np.isfinite(audio)):
        raise ClipError("audio contains non-finite samples")
    return audio


def load_wav(path: Union[str, Path], sample_rate: int, channels: int) -> np.ndarray:
    """Read a WAV file and prepare it for playback."""
    original_rate, audio = wavfile.read(str(path))
    return prepare_audio(np.asarray(audio), int(original_rate), sample_rate, channels)


# ---------- synthesized sounds ----------

def _fade(wave: np.ndarray, sample_rate: int, fade_ms: float = 2.0) -> np.ndarray:
    """Apply short fade in/out to avoid clicks at the clip edges."""
    fade_samples = min(len(wave) // 2, int(fade_ms / 1000.0 * sample_rate))
    if fade_samples > 0:
        wave[:fade_samples] *= np.linspace(0, 1, fade_samples)
        wave[-fade_samples:] *= np.linspace(1, 0, fade_samples)
    return wave


def _synth_click(sr: int, rng, duration=0.025, frequency=2400.0, amplitude=0.5, **_):
    n = max(1, int(duration * sr))
    t = np.arange(n) / sr
    noise = rng.uniform(-1, 1, n)
    env = np.linspace(1.0, 0.0, n) ** 2
    ping = 0.4 * np.sin(2 * np.pi * frequency * t) * np.exp(-180 * t)
    return amplitude * (noise * env + ping)


def _synth_tap(sr: int, rng, duration=0.012, amplitude=0.25, **_):
    n = max(1, int(duration * sr))
    noise = rng.uniform(-1, 1, n)
    # soften with a short moving average
    kernel = np.ones(4) / 4.0
    noise = np.convolve(noise, kernel, mode="same")
    env = np.linspace(1.0, 0.0, n)
    return amplitude * noise * env


def _synth_thunk(sr: int, rng, duration=0.07, frequency=110.0, amplitude=0.9, **_):
    n = max(1, int(duration * sr))
    t = np.arange(n) / sr
    tone = np.sin(2 * np.pi * frequency * t) * np.exp(-18 * t)
    click = 0.08 * np.sin(2 * np.pi * 2200 * t) * np.exp(-250 * t)
    return amplitude * (tone + click)


def _synth_bell(sr: int, rng, duration=0.6, frequency=1500.0, amplitude=0.6, decay=8.0, **_):
    n = max(1, int(duration * sr))
    t = np.arange(n) / sr
    tone = np.sin(2 * np.pi * frequency * t) + 0.3 * np.sin(2 * np.pi * 2.76 * frequency * t)
    return amplitude * tone * np.exp(-decay * t) / 1.3


SYNTHS = {
    "click": _synth_click,
    "tap": _synth_tap,
    "thunk": _synth_thunk,
    "bell": _synth_bell,
}


def synthesize(kind: str, sample_rate: int, channels: int, params: Dict[str, Any]) -> np.ndarray:
    """
    Generate a typewriter sound.

    Args:
        kind: One of SYNTHS ("click", "tap", "thunk", "bell")
        sample_rate: Output sample rate
        channels: Output channel count
        params: Synth parameters (duration, frequency, amplitude, decay, seed)

    Returns:
        float32 array shaped (frames, channels)
    """
    fn = SYNTHS.get(kind)
    if fn is None:
        raise ClipError(f"unknown synth {kind!r}, expected one of {sorted(SYNTHS)}")

    kwargs = {k: float(v) for k, v in params.items() if k in ("duration", "frequency", "amplitude", "decay")}
    if kwargs.get("duration", 1.0) <= 0:
        raise ClipError("synth duration must be positive")
    rng = np.random.default_rng(int(params.get("seed", 0)))

    wave = _fade(np.asarray(fn(sample_rate, rng, **kwargs), dtype=np.float64), sample_rate)
    wave = np.clip(wave, -1.0, 1.0).astype(np.float32)
    return np.ascontiguousarray(np.repeat(wave[:, None], channels, axis=1))
