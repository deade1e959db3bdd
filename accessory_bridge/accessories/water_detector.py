import logging, math
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

from ..channels import RawStatus
from ..errors import ProtocolError
from ..utils import normalize_version
from .base import (
    LEAK_DETECTED, LEAK_NOT_DETECTED, LOW_BATTERY_LOW, LOW_BATTERY_NORMAL, NOT_CHARGEABLE,
    Accessory, Characteristic, validate_payload,
)

log = logging.getLogger("water_detector")

# the radio reports a coarser battery level, so it flags low earlier
LOW_BATTERY_CLOUD = 10
LOW_BATTERY_BLE = 15


class LeakWebhook(BaseModel):
    detectionState: Optional[int] = Field(None, ge=0, le=1)
    battery: Optional[int] = Field(None, ge=0, le=100)


class WaterDetector(Accessory):
    device_type = "Water Detector"

    def build_characteristics(self) -> List[Characteristic]:
        chars = [
            Characteristic("battery_level"),
            Characteristic("status_low_battery"),
            Characteristic("charging_state"),
        ]
        if not self.device.hide_leak:
            chars += [
                Characteristic("leak_detected"),
                Characteristic("status_active", kind=bool),
            ]
        chars.append(Characteristic("firmware_revision", kind=str))
        return chars

    def initial_state(self) -> Dict[str, Any]:
        return {"charging_state": NOT_CHARGEABLE}

    def _battery(self, level: int, threshold: int) -> Dict[str, Any]:
        return {
            "battery_level": level,
            "status_low_battery": LOW_BATTERY_LOW if level < threshold else LOW_BATTERY_NORMAL,
        }

    def parse_status(self, raw: RawStatus) -> Dict[str, Any]:
        if raw.source == "BLE":
            return self._parse_advertisement(raw.body)
        return self._parse_cloud(raw.body)

    def _parse_advertisement(self, body: Mapping[str, Any]) -> Dict[str, Any]:
        data = body.get("service_data") or b""
        if len(data) < 3:
            raise ProtocolError(f"service data too short: {data.hex()}")
        out = self._battery(data[2] & 0x7F, LOW_BATTERY_BLE)
        if not self.device.hide_leak:
            out["leak_detected"] = LEAK_DETECTED if data[1] & 0x01 else LEAK_NOT_DETECTED
            out["status_active"] = True
        return out

    def _parse_cloud(self, body: Mapping[str, Any]) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if "battery" in body:
            try:
                level = float(body["battery"])
            except (TypeError, ValueError):
                level = math.nan
            if math.isnan(level):
                out["battery_level"], out["status_low_battery"] = 100, LOW_BATTERY_NORMAL
            else:
                out.update(self._battery(int(level), LOW_BATTERY_CLOUD))
        if not self.device.hide_leak and "status" in body:
            try:
                out["leak_detected"] = LEAK_DETECTED if int(body["status"]) else LEAK_NOT_DETECTED
            except (TypeError, ValueError) as e:
                raise ProtocolError(f"bad leak status {body['status']!r}") from e
            out["status_active"] = True
        if body.get("version"):
            out["firmware_revision"] = normalize_version(body["version"])
        log.debug("%s parsed status: %s", self.label, out)
        return out

    def parse_webhook(self, payload: Any) -> Dict[str, Any]:
        event = validate_payload(LeakWebhook, payload)
        out = {}
        if "detectionState" in event and not self.device.hide_leak:
            out["leak_detected"] = event["detectionState"]
        if "battery" in event:
            out["battery_level"] = event["battery"]
        if not out:
            raise ProtocolError("webhook carries none of detectionState, battery")
        return out

    def safe_state(self) -> Dict[str, Any]:
        if self.device.hide_leak:
            return {}
        return {"leak_detected": LEAK_NOT_DETECTED}

    def history_entry(self, observed: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        # zero readings are unreliable and not worth a history point
        leak = observed.get("leak_detected")
        if self.device.hide_leak or not leak:
            return None
        return {"leak": leak}
