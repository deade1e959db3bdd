import logging
from typing import Any, Dict, Iterable, Optional
from .ble import LocalRadioChannel
from .cache import Error, FieldValue, Known
from .channels import TransportChannel
from .context import ContextStore
from .coordinator import SyncCoordinator
from .devices import Device
from .errors import ConfigurationError
from .mappings import create_accessory
from .realtime import Broadcaster
from .remote import RemoteAPIChannel
from .settings import Settings
from .webhook import WebhookRegistry

log = logging.getLogger("state")

def render(value: FieldValue) -> Any:
    """Host-facing form of a field value; Unknown renders as None (do not report)."""
    if isinstance(value, Known):
        return value.value
    if isinstance(value, Error):
        return {"error": value.cause}
    return None

class Bridge:
    """Owns every accessory's coordinator and the webhook registration table."""

    def __init__(self, settings: Settings, broadcaster: Broadcaster,
                 store: Optional[ContextStore] = None,
                 local: Optional[TransportChannel] = None,
                 remote: Optional[TransportChannel] = None):
        self.settings = settings
        self.broadcaster = broadcaster
        self.store = store
        self.local = local
        self.remote = remote
        self.coordinators: Dict[str, SyncCoordinator] = {}
        self.webhooks = WebhookRegistry()

    @classmethod
    def from_settings(cls, settings: Settings, broadcaster: Broadcaster, store: Optional[ContextStore] = None):
        local = LocalRadioChannel(settings.SCAN_DURATION) if settings.BLE_ENABLED else None
        remote = None
        if settings.has_credentials:
            remote = RemoteAPIChannel(settings.API_URL, settings.API_TOKEN, settings.API_SECRET,
                                      timeout=settings.REQUEST_TIMEOUT)
        else:
            log.warning("API_TOKEN/API_SECRET not set, cloud connection disabled")
        return cls(settings, broadcaster, store=store, local=local, remote=remote)

    def add(self, device: Device) -> SyncCoordinator:
        if device.device_id in self.coordinators:
            raise ConfigurationError(f"duplicate deviceId {device.device_id}")
        accessory = create_accessory(device)
        coord = SyncCoordinator(accessory, local=self.local, remote=self.remote, store=self.store,
                                notify=self._notify, verify_delay=self.settings.VERIFY_DELAY)
        self.coordinators[device.device_id] = coord
        if coord.webhook is not None:
            self.webhooks.register(device.device_id, coord.webhook)
            log.debug("%s is listening webhook.", device.label)
        else:
            log.debug("%s is not listening webhook.", device.label)
        return coord

    def load(self, devices: Iterable[Device]):
        for device in devices:
            try:
                self.add(device)
            except ConfigurationError as e:
                log.error("%s skipped: %s", device.label, e)
        log.info("Loaded %d accessories", len(self.coordinators))

    def get(self, device_id: str) -> SyncCoordinator:
        return self.coordinators[device_id]

    def start(self):
        for coord in self.coordinators.values():
            coord.start()

    async def stop(self):
        for coord in list(self.coordinators.values()):
            await coord.stop()

    async def _notify(self, device_id: str, values: Dict[str, FieldValue]):
        self.broadcaster.publish({
            "event": "characteristic",
            "data": {"device_id": device_id, "characteristics": {n: render(v) for n, v in values.items()}},
        })
        known = {n: v.value for n, v in values.items() if isinstance(v, Known)}
        if known:
            self.broadcaster.publish({"event": "telemetry", "data": {"device_id": device_id, **known}})

    def describe(self, coord: SyncCoordinator) -> Dict[str, Any]:
        device = coord.device
        return {
            "device_id": device.device_id,
            "name": device.device_name,
            "device_type": device.device_type,
            "connection_type": device.connection_type.value,
            "offline": device.offline,
            "stale": coord.stale,
            "webhook": coord.webhook is not None,
            "characteristics": {
                n: render(v) for n, v in coord.characteristics().items() if render(v) is not None
            },
        }
