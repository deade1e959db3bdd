from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Dict, List, Mapping, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError

from ..channels import Command, RawStatus
from ..devices import Device
from ..errors import ProtocolError

# characteristic values as the host framework defines them
LOW_BATTERY_NORMAL, LOW_BATTERY_LOW = 0, 1
NOT_CHARGEABLE = 2
LEAK_NOT_DETECTED, LEAK_DETECTED = 0, 1


@dataclass(frozen=True)
class Characteristic:
    name: str
    kind: type = int
    writable: bool = False
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    min_step: Optional[float] = None

    def validate(self, value: Any) -> Any:
        """Coerce a host-supplied value, raising ValueError when it violates the props."""
        if not self.writable:
            raise ValueError(f"{self.name} is read-only")
        if self.kind is bool:
            if value in (True, False, 0, 1):
                return bool(value)
            raise ValueError(f"{self.name} expects a boolean, got {value!r}")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{self.name} expects a number, got {value!r}")
        if self.min_value is not None and value < self.min_value:
            raise ValueError(f"{self.name} must be >= {self.min_value}")
        if self.max_value is not None and value > self.max_value:
            raise ValueError(f"{self.name} must be <= {self.max_value}")
        if self.min_step:
            base = self.min_value or 0
            value = base + round((value - base) / self.min_step) * self.min_step
        return self.kind(value)


@dataclass(frozen=True)
class PushStep:
    """One outbound command covering one or more fields.

    ``build`` gets the desired values of ``fields``; ``guard`` (if any) gets the
    desired values of every field and can hold the step back.
    """
    fields: Tuple[str, ...]
    build: Callable[[Dict[str, Any]], Command]
    guard: Optional[Callable[[Mapping[str, Any]], bool]] = None


def validate_payload(model: Type[BaseModel], payload: Any) -> Dict[str, Any]:
    if not isinstance(payload, Mapping):
        raise ProtocolError(f"expected an object, got {type(payload).__name__}")
    try:
        parsed = model.model_validate(payload)
    except ValidationError as e:
        raise ProtocolError(str(e)) from e
    return parsed.model_dump(exclude_none=True)


class Accessory:
    """Device-type specific half of an accessory: which fields exist, how raw
    transport payloads map onto them and which commands push them back."""

    device_type: ClassVar[str] = ""

    def __init__(self, device: Device):
        self.device = device
        self.characteristics: Dict[str, Characteristic] = {
            c.name: c for c in self.build_characteristics()
        }

    @property
    def label(self) -> str:
        return self.device.label

    def build_characteristics(self) -> List[Characteristic]:
        raise NotImplementedError

    def push_steps(self) -> List[PushStep]:
        return []

    def initial_state(self) -> Dict[str, Any]:
        """Constants that are known without asking the device."""
        return {}

    def parse_status(self, raw: RawStatus) -> Dict[str, Any]:
        raise NotImplementedError

    def parse_webhook(self, payload: Any) -> Dict[str, Any]:
        raise NotImplementedError

    def safe_state(self) -> Dict[str, Any]:
        raise NotImplementedError

    def history_entry(self, observed: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        return None
