import logging
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, Field

from ..channels import Command, RawStatus
from ..errors import ProtocolError
from ..utils import MIRED_MAX, MIRED_MIN, hs_to_rgb, kelvin_to_mired, mired_to_kelvin, normalize_version, rgb_to_hs
from .base import Accessory, Characteristic, PushStep, validate_payload

log = logging.getLogger("ceiling_light")


class LightWebhook(BaseModel):
    powerState: Optional[Literal["ON", "OFF"]] = None
    brightness: Optional[int] = Field(None, ge=0, le=100)
    colorTemperature: Optional[int] = Field(None, gt=0)


def _is_on(desired: Mapping[str, Any]) -> bool:
    return bool(desired.get("on"))


class CeilingLight(Accessory):
    """Color/white ceiling light.

    Push order is power, color, color temperature, brightness. Everything
    after power waits until the light is (to be) switched on.
    """

    device_type = "Ceiling Light"

    def build_characteristics(self) -> List[Characteristic]:
        return [
            Characteristic("on", kind=bool, writable=True),
            Characteristic("hue", writable=True, min_value=0, max_value=360),
            Characteristic("saturation", writable=True, min_value=0, max_value=100),
            Characteristic("brightness", writable=True, min_value=0, max_value=100,
                           min_step=self.device.set_min_step),
            Characteristic("color_temperature", writable=True, min_value=MIRED_MIN, max_value=MIRED_MAX),
            Characteristic("firmware_revision", kind=str),
        ]

    def push_steps(self) -> List[PushStep]:
        return [
            PushStep(("on",), lambda v: Command("turnOn" if v["on"] else "turnOff")),
            PushStep(("hue", "saturation"), self._color_command, guard=_is_on),
            PushStep(("color_temperature",),
                     lambda v: Command("setColorTemperature", str(mired_to_kelvin(v["color_temperature"]))),
                     guard=_is_on),
            PushStep(("brightness",), lambda v: Command("setBrightness", str(v["brightness"])), guard=_is_on),
        ]

    @staticmethod
    def _color_command(values: Dict[str, Any]) -> Command:
        red, green, blue = hs_to_rgb(values.get("hue") or 0, values.get("saturation") or 0)
        return Command("setColor", f"{red}:{green}:{blue}")

    def parse_status(self, raw: RawStatus) -> Dict[str, Any]:
        if raw.source == "BLE":
            data = raw.body.get("service_data") or b""
            if len(data) < 2:
                raise ProtocolError(f"service data too short: {data.hex()}")
            return {"on": bool(data[1] & 0x80)}
        return self._parse_cloud(raw.body)

    def _parse_cloud(self, body: Mapping[str, Any]) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if "power" in body:
            out["on"] = body["power"] == "on"
        try:
            if body.get("brightness") is not None:
                out["brightness"] = int(body["brightness"])
            if body.get("color"):
                red, green, blue = (int(c) for c in str(body["color"]).split(":"))
                out["hue"], out["saturation"] = rgb_to_hs(red, green, blue)
            if body.get("colorTemperature"):
                out["color_temperature"] = kelvin_to_mired(float(body["colorTemperature"]))
        except (TypeError, ValueError) as e:
            raise ProtocolError(f"unexpected light status {dict(body)!r}") from e
        if body.get("version"):
            out["firmware_revision"] = normalize_version(body["version"])
        log.debug("%s parsed status: %s", self.label, out)
        return out

    def parse_webhook(self, payload: Any) -> Dict[str, Any]:
        event = validate_payload(LightWebhook, payload)
        out: Dict[str, Any] = {}
        if "powerState" in event:
            out["on"] = event["powerState"] == "ON"
        if "brightness" in event:
            out["brightness"] = event["brightness"]
        if "colorTemperature" in event:
            out["color_temperature"] = kelvin_to_mired(event["colorTemperature"])
        if not out:
            raise ProtocolError("webhook carries none of powerState, brightness, colorTemperature")
        return out

    def safe_state(self) -> Dict[str, Any]:
        return {"on": False}
