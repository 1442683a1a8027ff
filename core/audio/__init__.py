"""
Audio output for the keystroke dispatch engine.

This module provides:
- Output device enumeration and case-insensitive lookup
- A polyphonic mixer feeding one sounddevice output stream
- The OutputSink lifecycle (open / play / close)
"""

from .devices import (
    DeviceDescriptor,
    list_devices,
    list_device_names,
    resolve_device
)

from .sink import (
    SinkConfig,
    Mixer,
    OutputSink,
    open_sink
)

__all__ = [
    # Devices
    'DeviceDescriptor',
    'list_devices',
    'list_device_names',
    'resolve_device',

    # Output
    'SinkConfig',
    'Mixer',
    'OutputSink',
    'open_sink',
]
