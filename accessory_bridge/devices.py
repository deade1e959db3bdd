import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import orjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigurationError
from .settings import Settings

log = logging.getLogger("devices")


class ConnectionMode(str, Enum):
    LOCAL_ONLY = "BLE"
    REMOTE_ONLY = "OpenAPI"
    LOCAL_WITH_REMOTE_FALLBACK = "BLE/OpenAPI"
    DISABLED = "Disabled"

    @property
    def uses_local(self) -> bool:
        return self in (ConnectionMode.LOCAL_ONLY, ConnectionMode.LOCAL_WITH_REMOTE_FALLBACK)

    @property
    def uses_remote(self) -> bool:
        return self in (ConnectionMode.REMOTE_ONLY, ConnectionMode.LOCAL_WITH_REMOTE_FALLBACK)


class Device(BaseModel):
    """Identity and sync parameters of one physical device.

    Frozen: the operator ``offline`` flag is the only field that changes at
    runtime, and it does so by swapping in a copy.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    device_id: str = Field(alias="deviceId")
    device_name: str = Field(alias="deviceName")
    device_type: str = Field(alias="deviceType")
    connection_type: ConnectionMode = Field(ConnectionMode.REMOTE_ONLY, alias="connectionType")
    ble_model: Optional[str] = Field(None, alias="bleModel")

    refresh_rate: float = Field(alias="refreshRate", gt=0)
    push_rate: float = Field(alias="pushRate", ge=0)
    max_retries: int = Field(alias="maxRetries", ge=1)
    delay_between_retries: float = Field(alias="delayBetweenRetries", ge=0)

    offline: bool = False
    webhook: bool = False
    history: bool = False
    enable_cloud_service: bool = Field(True, alias="enableCloudService")

    # type specific options
    hide_leak: bool = Field(False, alias="hideLeak")
    set_min_step: int = Field(1, alias="setMinStep", ge=1)

    @property
    def label(self) -> str:
        return f"{self.device_type}: {self.device_name}"


def device_defaults(settings: Settings) -> Dict[str, Any]:
    return {
        "refreshRate": settings.REFRESH_RATE,
        "pushRate": settings.PUSH_RATE,
        "maxRetries": settings.MAX_RETRIES,
        "delayBetweenRetries": settings.DELAY_BETWEEN_RETRIES,
    }


def parse_devices(raw: List[Dict[str, Any]], settings: Settings) -> List[Device]:
    defaults = device_defaults(settings)
    out = []
    for entry in raw:
        try:
            out.append(Device.model_validate({**defaults, **entry}))
        except ValidationError as e:
            log.error("Skipping device %s: %s", entry.get("deviceId", "?"), e)
    return out


def load_devices(settings: Settings) -> List[Device]:
    path = Path(settings.DEVICES_FILE)
    if not path.exists():
        raise ConfigurationError(f"devices file {path} not found")
    try:
        raw = orjson.loads(path.read_bytes())
    except orjson.JSONDecodeError as e:
        raise ConfigurationError(f"devices file {path} is not valid JSON: {e}") from e
    if isinstance(raw, dict):
        raw = raw.get("devices", [])
    if not isinstance(raw, list):
        raise ConfigurationError(f"devices file {path} must hold a list of devices")
    return parse_devices(raw, settings)
