import asyncio

import httpx
import pytest
from fastapi import FastAPI

from accessory_bridge.api import router
from accessory_bridge.cache import Known
from accessory_bridge.channels import Command
from accessory_bridge.realtime import Broadcaster
from accessory_bridge.settings import Settings
from accessory_bridge.state import Bridge

from conftest import FakeChannel, make_device

LIGHT_ID = "112233445566"


@pytest.fixture
def remote():
    return FakeChannel("OpenAPI", statuses=[{"battery": 80, "status": 0, "version": "V1.0-1"}])


@pytest.fixture
def bridge(remote, store):
    b = Bridge(Settings(VERIFY_DELAY=600), Broadcaster(), store=store, remote=remote)
    b.load([
        make_device(webhook=True, history=True),
        make_device(deviceId=LIGHT_ID, deviceName="Kitchen", deviceType="Ceiling Light"),
    ])
    return b


@pytest.fixture
async def client(bridge):
    app = FastAPI()
    app.include_router(router)
    app.state.bridge = bridge
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c
    await bridge.stop()


async def test_list_and_filter(client):
    r = await client.get("/api/v1/accessories")
    assert r.status_code == 200
    assert {a["device_id"] for a in r.json()} == {"AABBCCDDEEFF", LIGHT_ID}
    r = await client.get("/api/v1/accessories", params={"device_type": "Ceiling Light"})
    assert [a["name"] for a in r.json()] == ["Kitchen"]


async def test_unknown_accessory_is_404(client):
    assert (await client.get("/api/v1/accessories/nope")).status_code == 404


async def test_refresh_then_read(client):
    r = await client.post("/api/v1/accessories/AABBCCDDEEFF/refresh")
    assert r.json() == {"status": "refreshed"}
    r = await client.get("/api/v1/accessories/AABBCCDDEEFF")
    body = r.json()
    assert body["characteristics"]["battery_level"] == 80
    assert body["characteristics"]["firmware_revision"] == "1.0"
    r = await client.get("/api/v1/accessories/AABBCCDDEEFF/characteristics/leak_detected")
    assert r.json()["value"] == 0


async def test_unknown_characteristic_reads_as_none(client):
    r = await client.get(f"/api/v1/accessories/{LIGHT_ID}/characteristics/brightness")
    assert r.json()["value"] is None
    r = await client.get(f"/api/v1/accessories/{LIGHT_ID}/characteristics/nope")
    assert r.status_code == 404


async def test_set_characteristics_is_accepted_and_pushed(client, bridge, remote):
    coord = bridge.get(LIGHT_ID)
    coord.cache.apply({"on": True, "brightness": 10})
    r = await client.post(f"/api/v1/accessories/{LIGHT_ID}/characteristics",
                          json={"characteristics": {"brightness": 45}})
    assert r.status_code == 202
    await coord.dispatcher.drain()
    assert remote.commands == [Command("setBrightness", "45")]
    assert coord.get("brightness") == Known(45)


async def test_set_characteristics_rejects_bad_values(client):
    url = f"/api/v1/accessories/{LIGHT_ID}/characteristics"
    assert (await client.post(url, json={"characteristics": {"brightness": 150}})).status_code == 400
    assert (await client.post(url, json={"characteristics": {"firmware_revision": "9"}})).status_code == 400
    assert (await client.post(url, json={"characteristics": {"nope": 1}})).status_code == 404


async def test_offline_toggle(client, bridge, remote):
    r = await client.put("/api/v1/accessories/AABBCCDDEEFF/offline", json={"offline": True})
    assert r.json()["offline"] is True
    await client.post("/api/v1/accessories/AABBCCDDEEFF/refresh")
    assert remote.fetches == 0
    assert bridge.get("AABBCCDDEEFF").get("leak_detected") == Known(0)


async def test_webhook_endpoint_and_history(client, bridge):
    event = {"eventType": "changeReport", "context": {"deviceMac": "AABBCCDDEEFF", "detectionState": 1}}
    r = await client.post("/api/v1/webhook", json=event)
    assert r.json() == {"status": "ok", "applied": True}
    assert bridge.get("AABBCCDDEEFF").get("leak_detected") == Known(1)

    r = await client.get("/api/v1/accessories/AABBCCDDEEFF/history")
    assert [e["leak"] for e in r.json()] == [1]

    r = await client.post("/api/v1/webhook", content=b"not json")
    assert r.status_code == 400
    # the light does not listen for webhooks
    r = await client.post("/api/v1/webhook", json={"context": {"deviceMac": LIGHT_ID, "powerState": "ON"}})
    assert r.json()["applied"] is False


async def test_bridge_fans_out_updates(bridge):
    events = bridge.broadcaster.register()
    coord = bridge.get("AABBCCDDEEFF")
    # the subscriber queue only exists once the generator has started
    task = asyncio.ensure_future(events.__anext__())
    await asyncio.sleep(0)
    await coord.refresh()
    first = await task
    assert first["event"] == "characteristic"
    assert first["data"]["characteristics"]["battery_level"] == 80
    await events.aclose()


def test_duplicate_device_is_skipped(bridge):
    bridge.load([make_device()])
    assert len(bridge.coordinators) == 2
