"""
Output sink: one live sounddevice stream with an in-process mixer.

Clips are pushed to the mixer as voices; the stream callback sums all
active voices every block, so rapid keystrokes overlap instead of cutting
each other off.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

import numpy as np

try:
    import sounddevice as sd
except Exception:  # pragma: no cover - PortAudio missing
    sd = None  # type: ignore

from core.errors import DeviceEnumerationFailed, DeviceUnavailable
from core.presets.clips import SoundClip
from .devices import DeviceDescriptor, list_devices, resolve_device

logger = logging.getLogger(__name__)


@dataclass
class SinkConfig:
    """Audio output configuration."""
    sample_rate: int = 44100
    channels: int = 2
    dtype: str = 'float32'
    blocksize: int = 256      # frames per callback, small for low latency
    latency: str = 'low'
    max_voices: int = 24      # oldest voice is dropped beyond this
    volume: float = 1.0


class _Voice:
    __slots__ = ("samples", "pos", "gain")

    def __init__(self, samples: np.ndarray, gain: float):
        self.samples = samples
        self.pos = 0
        self.gain = gain


class Mixer:
    """
    Polyphonic voice mixer.

    add() is called from the dispatch worker, render() from the audio
    callback. Both hold the lock only for list manipulation and summing.
    """

    def __init__(self, channels: int, max_voices: int = 24, volume: float = 1.0):
        if channels <= 0:
            raise ValueError("channels must be positive")
        if max_voices <= 0:
            raise ValueError("max_voices must be positive")
        self.channels = int(channels)
        self.max_voices = int(max_voices)
        self.volume = float(volume)
        self._voices: List[_Voice] = []
        self._lock = threading.Lock()

    def add(self, samples: np.ndarray, gain: float = 1.0) -> None:
        if samples.ndim != 2 or samples.shape[1] != self.channels:
            raise ValueError(f"expected shape (frames,{self.channels}), got {samples.shape}")
        if samples.shape[0] == 0:
            return
        with self._lock:
            self._voices.append(_Voice(samples, float(gain)))
            if len(self._voices) > self.max_voices:
                del self._voices[:len(self._voices) - self.max_voices]

    def active_voices(self) -> int:
        with self._lock:
            return len(self._voices)

    def clear(self) -> None:
        with self._lock:
            self._voices.clear()

    def render(self, outdata: np.ndarray) -> None:
        """Mix all active voices into outdata (frames, channels)."""
        outdata.fill(0)
        frames = int(outdata.shape[0])
        if frames <= 0:
            return

        with self._lock:
            if not self._voices:
                return
            alive = []
            for v in self._voices:
                n = min(frames, v.samples.shape[0] - v.pos)
                outdata[:n] += v.samples[v.pos:v.pos + n] * v.gain
                v.pos += n
                if v.pos < v.samples.shape[0]:
                    alive.append(v)
            self._voices = alive

        if self.volume != 1.0:
            outdata *= self.volume
        np.clip(outdata, -1.0, 1.0, out=outdata)


StreamFactory = Callable[..., object]


class OutputSink:
    """
    Live binding to one output device.

    Use OutputSink.open() to resolve a device name and start the stream.
    """

    def __init__(self, device: DeviceDescriptor, config: Optional[SinkConfig] = None,
                 stream_factory: Optional[StreamFactory] = None):
        self.device = device
        self.config = config or SinkConfig()
        self.mixer = Mixer(self.config.channels, self.config.max_voices, self.config.volume)
        self._stream_factory = stream_factory
        self._stream = None
        self._closed = False

    @classmethod
    def open(cls, device_name: Optional[str] = None, config: Optional[SinkConfig] = None,
             stream_factory: Optional[StreamFactory] = None,
             devices: Optional[List[DeviceDescriptor]] = None) -> 'OutputSink':
        """
        Open a sink on the named device (default device if no name).

        Raises:
            DeviceUnavailable: the device is not present or cannot be opened
            DeviceEnumerationFailed: the audio subsystem cannot be queried
        """
        device = resolve_device(device_name, devices)
        sink = cls(device, config, stream_factory)
        sink.start()
        return sink

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    def _callback(self, outdata, frames, time_info, status) -> None:
        # audio thread: never block, never raise
        if status:
            logger.debug(f"Output stream status: {status}")
        try:
            self.mixer.render(outdata)
        except Exception:
            outdata.fill(0)

    def start(self) -> None:
        if self._closed:
            raise RuntimeError("OutputSink is closed")
        if self._stream is not None:
            return

        factory = self._stream_factory
        if factory is None:
            if sd is None:
                raise DeviceEnumerationFailed("sounddevice is not available")
            factory = sd.OutputStream

        try:
            stream = factory(
                device=self.device.index,
                samplerate=self.config.sample_rate,
                channels=self.config.channels,
                dtype=self.config.dtype,
                blocksize=self.config.blocksize,
                latency=self.config.latency,
                callback=self._callback,
            )
            stream.start()
        except Exception as e:
            raise DeviceUnavailable(self.device.name) from e

        self._stream = stream
        logger.info(f"Output sink opened on '{self.device.name}'")

    def play(self, clip: SoundClip) -> None:
        """Trigger a clip; returns immediately."""
        if self._stream is None:
            return
        self.mixer.add(clip.samples, clip.volume)

    def close(self) -> None:
        """Stop and release the output stream."""
        st = self._stream
        self._stream = None
        self._closed = True
        self.mixer.clear()

        if st is not None:
            try:
                st.stop()
            except Exception as e:
                logger.debug(f"Error stopping output stream: {e}")
            try:
                st.close()
            except Exception as e:
                logger.debug(f"Error closing output stream: {e}")
            logger.info(f"Output sink on '{self.device.name}' closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def open_sink(device_name: Optional[str] = None, config: Optional[SinkConfig] = None) -> OutputSink:
    """Open a sink with the real device list and sounddevice stream."""
    return OutputSink.open(device_name, config, devices=list_devices())
