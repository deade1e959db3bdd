import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from .accessories import Accessory
from .cache import ValueCache
from .errors import ProtocolError

log = logging.getLogger("webhook")


class WebhookRouter:
    """Applies pushed events straight into one accessory's cache.

    An event is applied whole or not at all; there is no retry and no poll.
    """

    def __init__(self, accessory: Accessory, cache: ValueCache,
                 publish: Callable[[Dict[str, Any]], Awaitable[None]]):
        self.accessory = accessory
        self.cache = cache
        self._publish = publish

    async def handle(self, payload: Any) -> bool:
        label = self.accessory.label
        log.debug("%s received Webhook: %s", label, payload)
        try:
            values = self.accessory.parse_webhook(payload)
            changed = self.cache.apply(values)
        except (ProtocolError, KeyError) as e:
            log.error("%s failed to handle webhook. Received: %s Error: %s", label, payload, e)
            return False
        for name, val in values.items():
            level = logging.INFO if name in changed else logging.DEBUG
            log.log(level, "%s %s: %s", label, name, val)
        await self._publish(changed)
        return True


def normalize_mac(mac: str) -> str:
    return mac.replace(":", "").replace("-", "").upper()


class WebhookRegistry:
    """Registration table owned by the bridge: device id -> router."""

    def __init__(self):
        self._routes: Dict[str, WebhookRouter] = {}

    def __contains__(self, device_id: str) -> bool:
        return normalize_mac(device_id) in self._routes

    def register(self, device_id: str, router: WebhookRouter):
        self._routes[normalize_mac(device_id)] = router

    def unregister(self, device_id: str):
        self._routes.pop(normalize_mac(device_id), None)

    async def dispatch(self, device_id: str, payload: Any) -> bool:
        router: Optional[WebhookRouter] = self._routes.get(normalize_mac(device_id))
        if router is None:
            log.debug("no webhook listener for %s", device_id)
            return False
        return await router.handle(payload)

    async def handle_event(self, event: Mapping[str, Any]) -> bool:
        """Route a cloud webhook envelope ``{eventType, context: {deviceMac, ...}}``."""
        context = event.get("context")
        if not isinstance(context, Mapping) or not isinstance(context.get("deviceMac"), str):
            log.error("dropping webhook without context.deviceMac: %s", event)
            return False
        return await self.dispatch(context["deviceMac"], dict(context))
