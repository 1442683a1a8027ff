"""
Tests for device enumeration, the polyphonic mixer and the OutputSink
lifecycle. sounddevice is mocked; no audio hardware is needed.
"""

import pytest
import numpy as np
from unittest.mock import Mock, patch

from core.audio.devices import DeviceDescriptor, list_devices, resolve_device
from core.audio.sink import Mixer, OutputSink, SinkConfig
from core.errors import DeviceEnumerationFailed, DeviceUnavailable
from core.presets.clips import SoundClip


DEVICES = [
    DeviceDescriptor(name="Speakers", is_default=True, index=1),
    DeviceDescriptor(name="USB Headphones", is_default=False, index=4),
]


def _const(value, frames, channels=2):
    return np.full((frames, channels), value, dtype=np.float32)


class TestMixer:
    """Overlapping voices are summed, not truncated."""

    def test_silence_when_idle(self):
        mixer = Mixer(channels=2)
        out = np.ones((8, 2), dtype=np.float32)
        mixer.render(out)
        assert np.all(out == 0)

    def test_overlapping_voices_are_summed(self):
        mixer = Mixer(channels=2)
        mixer.add(_const(0.1, 6))

        out = np.zeros((4, 2), dtype=np.float32)
        mixer.render(out)
        assert np.allclose(out, 0.1)

        # second keystroke arrives while the first is still sounding
        mixer.add(_const(0.2, 4))
        mixer.render(out)
        assert np.allclose(out[:2], 0.3)
        assert np.allclose(out[2:], 0.2)
        assert mixer.active_voices() == 0

    def test_voice_spans_several_blocks(self):
        mixer = Mixer(channels=1)
        mixer.add(np.arange(1, 7, dtype=np.float32).reshape(-1, 1) / 10)

        out = np.zeros((4, 1), dtype=np.float32)
        mixer.render(out)
        assert np.allclose(out[:, 0], [0.1, 0.2, 0.3, 0.4])
        mixer.render(out)
        assert np.allclose(out[:, 0], [0.5, 0.6, 0.0, 0.0])

    def test_gain_and_master_volume(self):
        mixer = Mixer(channels=2, volume=0.5)
        mixer.add(_const(0.4, 4), gain=0.5)

        out = np.zeros((4, 2), dtype=np.float32)
        mixer.render(out)
        assert np.allclose(out, 0.1)

    def test_output_is_clipped(self):
        mixer = Mixer(channels=2)
        for _ in range(3):
            mixer.add(_const(0.5, 4))

        out = np.zeros((4, 2), dtype=np.float32)
        mixer.render(out)
        assert np.allclose(out, 1.0)

    def test_voice_cap_drops_oldest(self):
        mixer = Mixer(channels=2, max_voices=2)
        mixer.add(_const(0.1, 4))
        mixer.add(_const(0.2, 4))
        mixer.add(_const(0.3, 4))
        assert mixer.active_voices() == 2

        out = np.zeros((4, 2), dtype=np.float32)
        mixer.render(out)
        assert np.allclose(out, 0.5)

    def test_wrong_channel_layout_rejected(self):
        mixer = Mixer(channels=2)
        with pytest.raises(ValueError):
            mixer.add(_const(0.1, 4, channels=1))


class TestDevices:
    """Device enumeration through a mocked sounddevice."""

    def _mock_sd(self):
        sd = Mock()
        sd.query_devices.return_value = [
            {"name": "Built-in Mic", "max_output_channels": 0},
            {"name": "Speakers", "max_output_channels": 2},
            {"name": "USB Headphones", "max_output_channels": 2},
            {"name": "speakers", "max_output_channels": 8},
        ]
        sd.default.device = (0, 2)
        return sd

    def test_lists_output_devices_once(self):
        with patch("core.audio.devices.sd", self._mock_sd()):
            devices = list_devices()

        assert [d.name for d in devices] == ["Speakers", "USB Headphones"]
        assert [d.index for d in devices] == [1, 2]
        assert devices[1].is_default is True
        assert devices[0].is_default is False

    def test_default_keeps_its_own_host_api_index(self):
        sd = self._mock_sd()
        sd.default.device = (0, 3)
        with patch("core.audio.devices.sd", sd):
            devices = list_devices()

        speakers = devices[0]
        assert speakers.name == "Speakers"
        assert speakers.is_default is True
        assert speakers.index == 3
        assert devices[1].is_default is False

    def test_query_failure(self):
        sd = self._mock_sd()
        sd.query_devices.side_effect = RuntimeError("PortAudio not initialized")
        with patch("core.audio.devices.sd", sd):
            with pytest.raises(DeviceEnumerationFailed):
                list_devices()

    def test_backend_missing(self):
        with patch("core.audio.devices.sd", None):
            with pytest.raises(DeviceEnumerationFailed):
                list_devices()

    def test_resolve_is_case_insensitive(self):
        assert resolve_device("usb headphones", DEVICES).index == 4
        assert resolve_device("SPEAKERS", DEVICES).name == "Speakers"

    def test_resolve_default(self):
        assert resolve_device(None, DEVICES).name == "Speakers"
        assert resolve_device("", DEVICES).name == "Speakers"

    def test_resolve_unplugged(self):
        with pytest.raises(DeviceUnavailable):
            resolve_device("Unplugged Headphones", DEVICES)


class TestOutputSink:
    """Sink lifecycle with a fake stream factory."""

    @pytest.fixture
    def factory(self):
        return Mock(return_value=Mock())

    def test_open_binds_device_and_starts_stream(self, factory):
        config = SinkConfig(sample_rate=48000, channels=2, blocksize=128)
        sink = OutputSink.open("usb headphones", config, stream_factory=factory, devices=DEVICES)

        assert sink.is_open
        assert sink.device.name == "USB Headphones"
        kwargs = factory.call_args.kwargs
        assert kwargs["device"] == 4
        assert kwargs["samplerate"] == 48000
        assert kwargs["blocksize"] == 128
        factory.return_value.start.assert_called_once()

    def test_open_default_device(self, factory):
        sink = OutputSink.open(None, stream_factory=factory, devices=DEVICES)
        assert sink.device.is_default

    def test_open_unknown_device(self, factory):
        with pytest.raises(DeviceUnavailable):
            OutputSink.open("Unplugged Headphones", stream_factory=factory, devices=DEVICES)
        factory.assert_not_called()

    def test_stream_failure_is_device_unavailable(self):
        factory = Mock(side_effect=RuntimeError("Device busy"))
        with pytest.raises(DeviceUnavailable):
            OutputSink.open("Speakers", stream_factory=factory, devices=DEVICES)

    def test_play_feeds_callback(self, factory):
        sink = OutputSink.open("Speakers", SinkConfig(channels=2), stream_factory=factory, devices=DEVICES)
        callback = factory.call_args.kwargs["callback"]
        clip = SoundClip(name="c", samples=_const(0.5, 4), sample_rate=44100, volume=0.5)

        sink.play(clip)
        sink.play(clip)

        out = np.zeros((4, 2), dtype=np.float32)
        callback(out, 4, None, None)
        assert np.allclose(out, 0.5)

    def test_close_releases_stream(self, factory):
        sink = OutputSink.open("Speakers", stream_factory=factory, devices=DEVICES)
        stream = factory.return_value

        sink.close()
        sink.close()

        assert not sink.is_open
        stream.stop.assert_called_once()
        stream.close.assert_called_once()

    def test_play_after_close_is_noop(self, factory):
        sink = OutputSink.open("Speakers", stream_factory=factory, devices=DEVICES)
        sink.close()
        sink.play(SoundClip(name="c", samples=_const(0.5, 4), sample_rate=44100))
        assert sink.mixer.active_voices() == 0

    def test_context_manager_closes(self, factory):
        with OutputSink.open("Speakers", stream_factory=factory, devices=DEVICES) as sink:
            assert sink.is_open
        assert not sink.is_open
