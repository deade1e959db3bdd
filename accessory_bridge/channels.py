from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict

from .devices import Device


@dataclass(frozen=True)
class RawStatus:
    """One state read, as the channel saw it. ``source`` is the channel name."""
    source: str
    body: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Command:
    command: str
    parameter: str = "default"
    command_type: str = "command"

    def envelope(self) -> Dict[str, str]:
        return {"command": self.command, "parameter": self.parameter, "commandType": self.command_type}


@dataclass(frozen=True)
class Ack:
    source: str
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)


class TransportChannel(ABC):
    name: str = ""

    @abstractmethod
    async def fetch_state(self, device: Device) -> RawStatus:
        ...

    @abstractmethod
    async def send_command(self, device: Device, command: Command) -> Ack:
        ...
