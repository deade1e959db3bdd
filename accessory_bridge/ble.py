import asyncio, logging
from typing import Callable, Dict

from bleak import BleakClient, BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from .channels import Ack, Command, RawStatus, TransportChannel
from .devices import Device
from .errors import TransportRejected, TransportTimeout, TransportUnavailable
from .utils import ble_address

log = logging.getLogger("ble")

SERVICE_DATA_UUID = "0000fd3d-0000-1000-8000-00805f9b34fb"
WRITE_CHAR_UUID = "cba20002-224d-11e6-9fb8-0002a5d5c51b"

# command name -> frame builder(parameter)
LOCAL_COMMANDS: Dict[str, Callable[[str], bytes]] = {
    "turnOn": lambda p: bytes([0x57, 0x0F, 0x47, 0x01, 0x01]),
    "turnOff": lambda p: bytes([0x57, 0x0F, 0x47, 0x01, 0x02]),
    "setBrightness": lambda p: bytes([0x57, 0x0F, 0x47, 0x01, 0x14, max(0, min(int(p), 100))]),
}


def advertised_model(service_data: bytes) -> str:
    return chr(service_data[0] & 0x7F) if service_data else ""


class LocalRadioChannel(TransportChannel):
    """Advertisement scan for reads, a short GATT connection for commands.

    Not retried: the scan window is already the detection timeout.
    """

    name = "BLE"

    def __init__(self, scan_duration: float, scanner_factory=BleakScanner, client_factory=BleakClient):
        self.scan_duration = scan_duration
        self._scanner_factory = scanner_factory
        self._client_factory = client_factory

    async def fetch_state(self, device: Device) -> RawStatus:
        address = ble_address(device.device_id)
        log.debug("%s BLE Address: %s", device.label, address)
        found: asyncio.Future = asyncio.get_running_loop().create_future()

        def on_advertisement(dev: BLEDevice, adv: AdvertisementData):
            if dev.address.lower() != address:
                return
            data = adv.service_data.get(SERVICE_DATA_UUID)
            if not data:
                return
            model = advertised_model(data)
            if device.ble_model and model != device.ble_model:
                log.debug("%s ignoring model %r at %s", device.label, model, address)
                return
            if not found.done():
                found.set_result({"address": address, "model": model,
                                  "service_data": bytes(data), "rssi": adv.rssi})

        scanner = self._scanner_factory(detection_callback=on_advertisement)
        try:
            await scanner.start()
        except (BleakError, OSError) as e:
            # missing adapter or D-Bus socket surfaces as OSError
            raise TransportUnavailable(f"BLE scan could not start: {e}") from e
        try:
            body = await asyncio.wait_for(found, timeout=self.scan_duration)
        except asyncio.TimeoutError:
            raise TransportTimeout(f"no advertisement from {address} within {self.scan_duration}s") from None
        finally:
            try:
                await scanner.stop()
            except (BleakError, OSError) as e:
                log.warning("%s BLE scanner did not stop cleanly: %s", device.label, e)
        log.debug("%s advertisement: %s", device.label, body)
        return RawStatus(source=self.name, body=body)

    async def send_command(self, device: Device, command: Command) -> Ack:
        build = LOCAL_COMMANDS.get(command.command)
        if build is None:
            raise TransportRejected(f"{command.command} is not supported over BLE")
        address = ble_address(device.device_id)
        frame = build(command.parameter)
        log.debug("%s BLE Address: %s, frame: %s", device.label, address, frame.hex())
        try:
            async with self._client_factory(address, timeout=self.scan_duration) as client:
                await client.write_gatt_char(WRITE_CHAR_UUID, frame, response=True)
        except asyncio.TimeoutError:
            raise TransportTimeout(f"could not reach {address} within {self.scan_duration}s") from None
        except BleakError as e:
            raise TransportRejected(f"BLE write to {address} failed: {e}") from e
        except OSError as e:
            raise TransportUnavailable(f"BLE adapter unavailable for {address}: {e}") from e
        return Ack(source=self.name, status_code=100)
