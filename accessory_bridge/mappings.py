# Maps the deviceType reported by the cloud to the accessory implementing it.
from typing import Dict, Type

from .accessories import Accessory, CeilingLight, WaterDetector
from .devices import Device
from .errors import ConfigurationError

ACCESSORY_TYPES: Dict[str, Type[Accessory]] = {
    "Water Detector": WaterDetector,
    "Ceiling Light": CeilingLight,
    "Ceiling Light Pro": CeilingLight,
}


def create_accessory(device: Device) -> Accessory:
    try:
        cls = ACCESSORY_TYPES[device.device_type]
    except KeyError:
        raise ConfigurationError(f"device type {device.device_type!r} is not supported") from None
    return cls(device)
