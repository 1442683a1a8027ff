"""
Error taxonomy for the keystroke dispatch core.

Reconfiguration errors (UnknownPreset, DeviceUnavailable,
DeviceEnumerationFailed) are recoverable: the engine keeps its last good
configuration. CatalogLoadFailed is startup-only and fatal.
"""


class ClatterError(Exception):
    """Base class for all errors raised by the dispatch core."""
    pass


class UnknownPreset(ClatterError):
    """Requested preset name is not in the catalog."""

    def __init__(self, name: str):
        super().__init__(f"Unknown preset: {name!r}")
        self.name = name


class DeviceUnavailable(ClatterError):
    """Named output device is not currently present."""

    def __init__(self, name: str):
        super().__init__(f"Output device not available: {name!r}")
        self.name = name


class DeviceEnumerationFailed(ClatterError):
    """The platform audio subsystem could not be queried."""
    pass


class CatalogLoadFailed(ClatterError):
    """A bundled or user preset is malformed or its audio cannot be decoded."""
    pass


class EngineNotRunning(ClatterError):
    """Command submitted to an engine that has been shut down."""
    pass
