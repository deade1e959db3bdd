import base64, hashlib, hmac, json, logging, time, uuid
import httpx
from typing import Any, Dict, Optional, Tuple

from .channels import Ack, Command, RawStatus, TransportChannel
from .devices import Device
from .errors import DeviceNotFound, ProtocolError, TransportRejected, TransportUnavailable

log = logging.getLogger("remote")

SUCCESS_CODES = (100, 200)

STATUS_REASONS = {
    151: "device type does not support this command",
    152: "device not found",
    160: "command is not supported",
    161: "device is offline",
    171: "hub device is offline",
    190: "device internal error, or the request was invalid",
    400: "bad request",
    401: "unauthorized, check token and secret",
    429: "too many requests, daily limit reached",
    500: "internal server error",
}


def describe_status(code: Any) -> str:
    return STATUS_REASONS.get(code, f"unknown status code {code}")


def auth_headers(token: str, secret: str) -> Dict[str, str]:
    t = str(int(time.time() * 1000))
    nonce = str(uuid.uuid4())
    digest = hmac.new(secret.encode(), f"{token}{t}{nonce}".encode(), hashlib.sha256).digest()
    return {
        "Authorization": token,
        "sign": base64.b64encode(digest).decode(),
        "t": t,
        "nonce": nonce,
        "Content-Type": "application/json; charset=utf8",
    }


class RemoteAPIChannel(TransportChannel):
    name = "OpenAPI"

    def __init__(self, base_url: str, token: str, secret: str, timeout: float = 15,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self._token = token
        self._secret = secret
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self._timeout, transport=self._transport)

    async def fetch_state(self, device: Device) -> RawStatus:
        async with self._client() as c:
            try:
                r = await c.get(f"/devices/{device.device_id}/status",
                                headers=auth_headers(self._token, self._secret))
            except httpx.HTTPError as e:
                raise TransportUnavailable(f"GET status failed: {e}") from e
        _, body = self._check(device, r)
        return RawStatus(source=self.name, body=body)

    async def send_command(self, device: Device, command: Command) -> Ack:
        payload = command.envelope()
        log.debug("%s sending request, body: %s", device.label, payload)
        async with self._client() as c:
            try:
                r = await c.post(f"/devices/{device.device_id}/commands",
                                 headers=auth_headers(self._token, self._secret),
                                 content=json.dumps(payload))
            except httpx.HTTPError as e:
                raise TransportUnavailable(f"POST command failed: {e}") from e
        code, body = self._check(device, r)
        return Ack(source=self.name, status_code=code, body=body)

    def _check(self, device: Device, r: httpx.Response) -> Tuple[int, Dict[str, Any]]:
        """Validate both the HTTP status and the envelope statusCode."""
        try:
            envelope = r.json()
        except ValueError as e:
            if r.status_code not in SUCCESS_CODES:
                self._reject(device, r.status_code)
            raise ProtocolError(f"response is not JSON (HTTP {r.status_code})") from e
        log.debug("%s statusCode: %s, response: %s", device.label, r.status_code, envelope)
        if not isinstance(envelope, dict) or not isinstance(envelope.get("statusCode"), int):
            if r.status_code not in SUCCESS_CODES:
                self._reject(device, r.status_code)
            raise ProtocolError(f"unexpected response envelope: {envelope!r}")
        code = envelope["statusCode"]
        if r.status_code not in SUCCESS_CODES:
            self._reject(device, r.status_code)
        if code not in SUCCESS_CODES:
            self._reject(device, code)
        body = envelope.get("body") or {}
        if not isinstance(body, dict):
            raise ProtocolError(f"unexpected response body: {body!r}")
        return code, body

    def _reject(self, device: Device, code: int):
        reason = describe_status(code)
        if code in (152, 404):
            raise DeviceNotFound(f"{device.device_id}: {reason}")
        raise TransportRejected(f"statusCode {code}: {reason}", status_code=code)
