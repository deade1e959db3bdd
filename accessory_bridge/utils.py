import colorsys, re
from typing import Tuple

_VERSION_RE = re.compile(r"^V|-.*$")

MIRED_MIN, MIRED_MAX = 140, 500


def ble_address(device_id: str) -> str:
    """'AABBCCDDEEFF' -> 'aa:bb:cc:dd:ee:ff'."""
    raw = device_id.replace(":", "").replace("-", "")
    return ":".join(raw[i:i + 2] for i in range(0, len(raw), 2)).lower()


def normalize_version(version) -> str:
    """'V1.2-3' -> '1.2'."""
    out = _VERSION_RE.sub("", str(version))
    return out or "0.0.0"


def rgb_to_hs(red: int, green: int, blue: int) -> Tuple[int, int]:
    h, s, _ = colorsys.rgb_to_hsv(red / 255, green / 255, blue / 255)
    return round(h * 360), round(s * 100)


def hs_to_rgb(hue: float, saturation: float) -> Tuple[int, int, int]:
    r, g, b = colorsys.hsv_to_rgb((hue % 360) / 360, saturation / 100, 1)
    return round(r * 255), round(g * 255), round(b * 255)


def kelvin_to_mired(kelvin: float) -> int:
    mired = round(1_000_000 / kelvin)
    return max(min(mired, MIRED_MAX), MIRED_MIN)


def mired_to_kelvin(mired: float, lo: int = 2700, hi: int = 6500) -> int:
    # the cloud API wants whole hundreds
    kelvin = round(1_000_000 / mired / 100) * 100
    return min(max(kelvin, lo), hi)
