"""
Output device enumeration via sounddevice.

Device names are matched case-insensitively; the same physical device
exposed through several host APIs is listed once.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

try:
    import sounddevice as sd
except Exception:  # pragma: no cover - PortAudio missing
    sd = None  # type: ignore

from core.errors import DeviceEnumerationFailed, DeviceUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceDescriptor:
    """An output device as seen by the audio subsystem."""
    name: str
    is_default: bool = False
    index: Optional[int] = None


def _default_output_index() -> Optional[int]:
    try:
        dev = sd.default.device[1]  # (in, out)
    except Exception:
        return None
    if dev is None or int(dev) < 0:
        return None
    return int(dev)


def list_devices() -> List[DeviceDescriptor]:
    """
    Enumerate output-capable devices.

    Returns:
        Devices in platform order, first occurrence of each name kept

    Raises:
        DeviceEnumerationFailed: if sounddevice is missing or the query fails
    """
    if sd is None:
        raise DeviceEnumerationFailed("sounddevice is not available")

    try:
        devs = sd.query_devices()
    except Exception as e:
        raise DeviceEnumerationFailed(f"Failed to query audio devices: {e}") from e

    default_index = _default_output_index()
    default_name = None
    seen = {}
    order: List[str] = []
    for i, d in enumerate(devs):
        if int(d.get("max_output_channels", 0)) <= 0:
            continue
        name = str(d.get("name", f"device {i}"))
        key = name.lower()
        if i == default_index:
            default_name = key
        if key in seen:
            continue
        seen[key] = DeviceDescriptor(name=name, index=i)
        order.append(key)

    result = []
    for key in order:
        dev = seen[key]
        if key == default_name:
            # the default may be a later host-API copy of the same name
            dev = DeviceDescriptor(name=dev.name, is_default=True, index=default_index)
        result.append(dev)
    return result


def list_device_names() -> List[str]:
    """Names of all output devices, for menu population."""
    return [d.name for d in list_devices()]


def resolve_device(device_name: Optional[str],
                   devices: Optional[List[DeviceDescriptor]] = None) -> DeviceDescriptor:
    """
    Find the device for a name, or the default device when no name is given.

    Raises:
        DeviceUnavailable: if no device matches
        DeviceEnumerationFailed: if devices must be queried and the query fails
    """
    if devices is None:
        devices = list_devices()

    if not device_name:
        for dev in devices:
            if dev.is_default:
                return dev
        if devices:
            logger.debug("No default output device flagged, using first device")
            return devices[0]
        raise DeviceUnavailable("default")

    wanted = device_name.strip().lower()
    for dev in devices:
        if dev.name.lower() == wanted:
            return dev
    raise DeviceUnavailable(device_name)
