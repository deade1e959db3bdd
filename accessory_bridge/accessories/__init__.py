from .base import Accessory, Characteristic, PushStep
from .ceiling_light import CeilingLight
from .water_detector import WaterDetector

__all__ = ["Accessory", "Characteristic", "PushStep", "CeilingLight", "WaterDetector"]
