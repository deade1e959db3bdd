from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel
from typing import Optional, Dict, Any
from .state import Bridge, render

router = APIRouter(prefix="/api/v1")

class CharacteristicsRequest(BaseModel):
    characteristics: Dict[str, Any]

class OfflineRequest(BaseModel):
    offline: bool

def get_bridge(request: Request) -> Bridge:
    return request.app.state.bridge

def get_coordinator(request: Request, device_id: str):
    try:
        return get_bridge(request).get(device_id)
    except KeyError:
        raise HTTPException(404, "Accessory not found")

@router.get("/accessories")
def list_accessories(request: Request, device_type: Optional[str] = None):
    bridge = get_bridge(request)
    out = []
    for coord in bridge.coordinators.values():
        if device_type and coord.device.device_type != device_type:
            continue
        out.append(bridge.describe(coord))
    return out

@router.get("/accessories/{device_id}")
def get_accessory(request: Request, device_id: str):
    coord = get_coordinator(request, device_id)
    return get_bridge(request).describe(coord)

@router.get("/accessories/{device_id}/characteristics/{name}")
def get_characteristic(request: Request, device_id: str, name: str):
    coord = get_coordinator(request, device_id)
    try:
        value = coord.get(name)
    except KeyError:
        raise HTTPException(404, "Characteristic not found")
    return {"device_id": device_id, "name": name, "value": render(value)}

@router.post("/accessories/{device_id}/characteristics", status_code=202)
async def set_characteristics(request: Request, device_id: str, req: CharacteristicsRequest):
    coord = get_coordinator(request, device_id)
    unknown = [n for n in req.characteristics if n not in coord.accessory.characteristics]
    if unknown:
        raise HTTPException(404, f"Characteristic {', '.join(unknown)} not found")
    try:
        validated = {n: coord.accessory.characteristics[n].validate(v) for n, v in req.characteristics.items()}
    except ValueError as e:
        raise HTTPException(400, str(e))
    for name, value in validated.items():
        coord.set(name, value)
    return {"status": "accepted", "characteristics": validated}

@router.post("/accessories/{device_id}/refresh", status_code=202)
async def refresh(request: Request, device_id: str):
    coord = get_coordinator(request, device_id)
    ran = await coord.scheduler.tick()
    return {"status": "refreshed" if ran else "in_progress"}

@router.put("/accessories/{device_id}/offline")
def set_offline(request: Request, device_id: str, req: OfflineRequest):
    coord = get_coordinator(request, device_id)
    coord.set_offline(req.offline)
    return {"device_id": device_id, "offline": coord.device.offline}

@router.get("/accessories/{device_id}/history")
def history(request: Request, device_id: str, limit: int = 100):
    get_coordinator(request, device_id)
    store = get_bridge(request).store
    return store.history(device_id, limit) if store else []

@router.post("/webhook")
async def webhook(request: Request):
    try:
        event = await request.json()
    except ValueError:
        raise HTTPException(400, "Body is not JSON")
    if not isinstance(event, dict):
        raise HTTPException(400, "Body must be an object")
    applied = await get_bridge(request).webhooks.handle_event(event)
    return {"status": "ok", "applied": applied}
