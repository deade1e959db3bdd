"""Refresh/push orchestration for one accessory.

A coordinator owns the accessory's :class:`ValueCache` and drives it from
three directions: the periodic :class:`RefreshScheduler`, the debounced
:class:`CommandDispatcher` fed by host setters, and the optional
:class:`WebhookRouter`. Transport choice follows the device's
:class:`ConnectionMode`:

* ``OpenAPI`` with the cloud disabled: nothing is attempted, fields go stale.
* ``BLE`` / ``BLE/OpenAPI``: local radio first; on failure the fallback mode
  retries the same read (or the same command, once) over the cloud.
* ``OpenAPI``: cloud only, every call wrapped in the device's RetryPolicy.
* ``Disabled``, missing transports or operator offline: fail-safe state.

No error escapes ``refresh`` or ``push``; failures are logged and left for
the next cycle.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from .accessories import Accessory, PushStep
from .cache import Error, FieldValue, Known, ValueCache
from .channels import Ack, Command, RawStatus, TransportChannel
from .context import ContextStore
from .devices import ConnectionMode
from .dispatcher import CommandDispatcher
from .errors import BridgeError, ConfigurationError, OperatorOffline, ProtocolError
from .retry import RetryPolicy
from .scheduler import RefreshScheduler
from .webhook import WebhookRouter

log = logging.getLogger("sync")

Notify = Callable[[str, Dict[str, FieldValue]], Awaitable[None]]


class SyncCoordinator:
    def __init__(self, accessory: Accessory,
                 local: Optional[TransportChannel] = None,
                 remote: Optional[TransportChannel] = None,
                 store: Optional[ContextStore] = None,
                 notify: Optional[Notify] = None,
                 verify_delay: float = 15.0,
                 retry: Optional[RetryPolicy] = None):
        self.accessory = accessory
        self.local = local
        self.remote = remote
        self.store = store
        self.notify = notify
        self.verify_delay = verify_delay
        self.stale = False

        device = accessory.device
        self.cache = ValueCache(accessory.characteristics)
        self.retry = retry or RetryPolicy(device.max_retries, device.delay_between_retries)
        # push cycles can run while a refresh is retrying; keep their attempt records apart
        self.push_retry = self.retry.clone()
        self.scheduler = RefreshScheduler(device.refresh_rate, self.refresh, device.label)
        self.dispatcher = CommandDispatcher(device.push_rate, self.push, device.label)
        self.webhook = WebhookRouter(accessory, self.cache, self.publish) if device.webhook else None
        self._notices: Dict[str, str] = {}
        self._seed()

    @property
    def device(self):
        return self.accessory.device

    @property
    def label(self) -> str:
        return self.accessory.label

    # lifecycle

    def _seed(self):
        self.cache.seed(self.accessory.initial_state())
        if self.store is None:
            return
        try:
            seeded = self.cache.seed(self.store.load(self.device.device_id))
        except SQLAlchemyError as e:
            log.warning("%s could not load persisted context: %s", self.label, e)
            return
        if seeded:
            log.debug("%s seeded from context: %s", self.label, seeded)

    def start(self):
        self.scheduler.start()

    async def stop(self):
        await self.dispatcher.stop()
        await self.scheduler.stop()

    def set_offline(self, offline: bool):
        """Hot-reload the operator flag; takes effect at the start of the next cycle."""
        self.accessory.device = self.device.model_copy(update={"offline": offline})
        log.info("%s offline: %s", self.label, offline)

    # host framework surface

    def get(self, name: str) -> FieldValue:
        return self.cache.value(name)

    def characteristics(self) -> Dict[str, FieldValue]:
        return self.cache.reported()

    def set(self, name: str, value: Any):
        """Record a desired value and return; the network happens later."""
        char = self.accessory.characteristics[name]
        value = char.validate(value)
        if self.cache.observed(name) == Known(value):
            log.debug("%s No Changes, Set %s: %s", self.label, name, value)
        else:
            log.info("%s Set %s: %s", self.label, name, value)
        self.cache.set_desired(name, value)
        self.dispatcher.signal()

    # notices are logged loudly once, then quietly while unchanged

    def _notice(self, key: str, message: str, level: int = logging.WARNING):
        if self._notices.get(key) == message:
            log.debug("%s %s", self.label, message)
            return
        self._notices[key] = message
        log.log(level, "%s %s", self.label, message)

    # channel selection

    def _remote_usable(self) -> bool:
        return self.remote is not None and self.device.enable_cloud_service

    def _cloud_required_but_disabled(self) -> bool:
        return self.device.connection_type is ConnectionMode.REMOTE_ONLY and not self.device.enable_cloud_service

    def _command_channels(self) -> Tuple[Optional[TransportChannel], Optional[TransportChannel]]:
        mode = self.device.connection_type
        remote = self.remote if self._remote_usable() else None
        if mode is ConnectionMode.LOCAL_ONLY:
            return self.local, None
        if mode is ConnectionMode.LOCAL_WITH_REMOTE_FALLBACK:
            if self.local is None:
                return remote, None
            return self.local, remote
        if mode is ConnectionMode.REMOTE_ONLY:
            return remote, None
        if mode is ConnectionMode.DISABLED:
            return None, None
        raise ConfigurationError(f"unhandled connection type {mode!r}")

    # refresh

    async def refresh(self):
        device = self.device
        mode = device.connection_type
        if device.offline:
            self._notice("cycle", str(OperatorOffline("is marked offline, reporting fail-safe state")), logging.INFO)
            await self._fail_safe()
            return
        if self._cloud_required_but_disabled():
            self.stale = True
            self._notice("cycle", f"refreshStatus enableCloudService: {device.enable_cloud_service}", logging.ERROR)
            return

        if mode is ConnectionMode.LOCAL_ONLY or mode is ConnectionMode.LOCAL_WITH_REMOTE_FALLBACK:
            fallback = mode is ConnectionMode.LOCAL_WITH_REMOTE_FALLBACK and self._remote_usable()
            if self.local is None:
                if fallback:
                    await self._refresh_remote()
                    return
                self._no_transport(mode)
                await self._fail_safe()
                return
            try:
                raw = await self.local.fetch_state(device)
            except BridgeError as e:
                if fallback:
                    log.warning("%s %s refresh failed (%s), using %s connection to refresh status",
                                self.label, self.local.name, e, self.remote.name)
                    await self._refresh_remote()
                else:
                    self._notice("cycle", f"failed {self.local.name} refresh with {mode.value} connection: {e}")
                return
            await self._apply_status(raw)
        elif mode is ConnectionMode.REMOTE_ONLY:
            if not self._remote_usable():
                self._no_transport(mode)
                await self._fail_safe()
                return
            await self._refresh_remote()
        elif mode is ConnectionMode.DISABLED:
            self._no_transport(mode)
            await self._fail_safe()
        else:
            raise ConfigurationError(f"unhandled connection type {mode!r}")

    def _no_transport(self, mode: ConnectionMode):
        err = ConfigurationError(f"Connection Type: {mode.value}, no usable transport, refreshStatus will not happen.")
        self._notice("cycle", str(err))

    async def _refresh_remote(self):
        remote = self.remote
        try:
            raw = await self.retry.run(lambda: remote.fetch_state(self.device), channel=remote.name)
        except BridgeError as e:
            self._notice("cycle", f"failed {remote.name} refresh after {len(self.retry.attempts)} attempt(s): {e}")
            return
        await self._apply_status(raw)

    async def _apply_status(self, raw: RawStatus):
        try:
            values = self.accessory.parse_status(raw)
            changed = self.cache.apply(values, clear_errors=False)
        except (ProtocolError, KeyError) as e:
            self._notice("cycle", f"discarded {raw.source} status: {e}")
            return
        # a good read supersedes earlier push failures, including fields it did not carry
        recovered = [n for n in self.cache.clear_errors() if n not in changed]
        self.stale = False
        self._notices.pop("cycle", None)
        await self.publish(changed)
        if recovered:
            await self._notify({n: self.cache.value(n) for n in recovered})

    async def _fail_safe(self):
        changed = self.cache.apply(self.accessory.safe_state())
        await self.publish(changed)

    # push

    async def push(self):
        device = self.device
        if device.offline:
            self._notice("push", str(OperatorOffline("is marked offline, pushChanges will not happen.")), logging.INFO)
            return
        if self._cloud_required_but_disabled():
            self._notice("push", f"pushChanges enableCloudService: {device.enable_cloud_service}", logging.ERROR)
            return
        primary, fallback = self._command_channels()
        if primary is None:
            self._notice("push", f"Connection Type: {device.connection_type.value}, pushChanges will not happen.")
            return
        self._notices.pop("push", None)

        desired = {
            name: st.value
            for name, st in ((n, self.cache.desired(n)) for n in self.cache.fields)
            if isinstance(st, Known)
        }
        changed: Dict[str, Any] = {}
        failure: Optional[str] = None
        attempted = False
        for step in self.accessory.push_steps():
            if not any(self.cache.is_dirty(f) for f in step.fields):
                log.debug("%s No pushChanges for %s", self.label, "/".join(step.fields))
                continue
            if step.guard is not None and not step.guard(desired):
                log.debug("%s holding back %s until the guard allows it", self.label, "/".join(step.fields))
                continue
            attempted = True
            try:
                sent = await self._push_step(step, desired, primary, fallback)
            except BridgeError as e:
                failure = f"{type(e).__name__}: {e}"
                log.error("%s failed pushChanges of %s with %s Connection, Error Message: %s",
                          self.label, "/".join(step.fields), device.connection_type.value, e)
                self.cache.fail(self.cache.fields, failure)
                continue
            changed.update(sent)

        await self.publish(changed)
        if failure is not None:
            health = {n: v for n, v in self.cache.reported().items() if isinstance(v, Error)}
            await self._notify(health)
        if attempted:
            self.scheduler.verify_after(self.verify_delay)

    async def _push_step(self, step: PushStep, desired: Dict[str, Any],
                         primary: TransportChannel, fallback: Optional[TransportChannel]) -> Dict[str, Any]:
        values = {f: desired.get(f) for f in step.fields}
        command = step.build(values)
        ack = await self._send(command, primary, fallback)
        log.info("%s request over %s, body: %s sent successfully", self.label, ack.source, command.envelope())
        sent = {}
        for f in step.fields:
            if values[f] is not None and self.cache.confirm(f, values[f]):
                sent[f] = values[f]
        return sent

    async def _send(self, command: Command, primary: TransportChannel,
                    fallback: Optional[TransportChannel]) -> Ack:
        try:
            return await self._send_on(primary, command)
        except BridgeError as e:
            if fallback is None:
                raise
            log.warning("%s %s failed over %s (%s), using %s connection to push changes",
                        self.label, command.command, primary.name, e, fallback.name)
            return await self._send_on(fallback, command)

    async def _send_on(self, channel: TransportChannel, command: Command) -> Ack:
        if channel is self.remote:
            return await self.push_retry.run(lambda: channel.send_command(self.device, command), channel=channel.name)
        return await channel.send_command(self.device, command)

    # outward updates

    async def _notify(self, values: Dict[str, FieldValue]):
        if self.notify is None or not values:
            return
        try:
            await self.notify(self.device.device_id, values)
        except Exception:
            log.exception("%s characteristic update notification failed", self.label)

    async def publish(self, changed: Dict[str, Any]):
        """Push confirmed observed changes outward: host, context storage, history."""
        if not changed:
            return
        log.debug("%s updateCharacteristic %s", self.label, changed)
        await self._notify({name: Known(val) for name, val in changed.items()})
        if self.store is None:
            return
        try:
            observed = self.cache.to_context()
            self.store.save(self.device.device_id, self.device.device_type, observed)
            if self.device.history:
                entry = self.accessory.history_entry(observed)
                if entry:
                    self.store.add_history(self.device.device_id, entry)
        except SQLAlchemyError as e:
            log.warning("%s could not persist context: %s", self.label, e)
