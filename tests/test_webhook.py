from accessory_bridge.accessories import CeilingLight, WaterDetector
from accessory_bridge.cache import UNKNOWN, Known
from accessory_bridge.coordinator import SyncCoordinator
from accessory_bridge.webhook import WebhookRegistry, normalize_mac

from conftest import FakeChannel, make_device


def coordinator(accessory_cls=WaterDetector, **device):
    device.setdefault("webhook", True)
    return SyncCoordinator(accessory_cls(make_device(**device)), remote=FakeChannel("OpenAPI"))


async def test_battery_only_event_touches_only_battery():
    coord = coordinator()
    coord.cache.apply({"leak_detected": 1, "status_low_battery": 1, "battery_level": 5})
    before = coord.cache.snapshot()

    assert await coord.webhook.handle({"battery": 42}) is True

    after = coord.cache.snapshot()
    assert coord.get("battery_level") == Known(42)
    for name in before:
        if name != "battery_level":
            assert after[name] == before[name]


async def test_malformed_event_is_dropped_whole():
    coord = coordinator()
    coord.cache.apply({"leak_detected": 0, "battery_level": 80})
    before = coord.cache.snapshot()
    assert await coord.webhook.handle({"battery": 42, "detectionState": 7}) is False
    assert await coord.webhook.handle({"battery": "lots"}) is False
    assert await coord.webhook.handle(["not", "an", "object"]) is False
    assert await coord.webhook.handle({"somethingElse": 1}) is False
    assert coord.cache.snapshot() == before


async def test_hidden_leak_is_ignored():
    coord = coordinator(hideLeak=True)
    assert "leak_detected" not in coord.cache
    assert await coord.webhook.handle({"detectionState": 1, "battery": 50}) is True
    assert coord.get("battery_level") == Known(50)


async def test_light_event_converts_units():
    coord = coordinator(CeilingLight, deviceType="Ceiling Light")
    assert await coord.webhook.handle({"powerState": "ON", "colorTemperature": 5000, "brightness": 20})
    assert coord.get("on") == Known(True)
    assert coord.get("color_temperature") == Known(200)
    assert coord.get("brightness") == Known(20)
    assert coord.get("hue") is UNKNOWN


async def test_event_does_not_cancel_pending_write():
    coord = coordinator(CeilingLight, deviceType="Ceiling Light", pushRate=600)
    coord.cache.apply({"on": True, "brightness": 10})
    coord.set("brightness", 70)
    await coord.webhook.handle({"brightness": 20})
    assert coord.cache.observed("brightness") == Known(20)
    assert coord.cache.desired("brightness") == Known(70)
    await coord.stop()


async def test_registry_routes_by_device_mac():
    coord = coordinator()
    registry = WebhookRegistry()
    registry.register(coord.device.device_id, coord.webhook)
    assert "aa:bb:cc:dd:ee:ff" in registry

    event = {"eventType": "changeReport", "context": {"deviceMac": "AA:BB:CC:DD:EE:FF", "battery": 33}}
    assert await registry.handle_event(event) is True
    assert coord.get("battery_level") == Known(33)

    assert await registry.handle_event({"context": {"deviceMac": "112233445566", "battery": 1}}) is False
    assert await registry.handle_event({"eventType": "changeReport"}) is False

    registry.unregister(coord.device.device_id)
    assert coord.device.device_id not in registry


def test_normalize_mac():
    assert normalize_mac("aa-bb-cc:dd:ee:ff") == "AABBCCDDEEFF"
