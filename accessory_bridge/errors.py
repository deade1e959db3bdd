from typing import Optional


class BridgeError(Exception):
    """Base class for everything a sync cycle is allowed to recover from."""


class TransportError(BridgeError):
    pass


class TransportTimeout(TransportError):
    """Nothing arrived within the channel's time budget."""


class TransportRejected(TransportError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DeviceNotFound(TransportError):
    pass


class TransportUnavailable(TransportError):
    """The channel could not be reached at all (connection refused, DNS, adapter missing)."""


class ProtocolError(TransportError):
    """Malformed or unexpected response shape."""


class ConfigurationError(BridgeError):
    pass


class OperatorOffline(BridgeError):
    pass
