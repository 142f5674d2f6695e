"""Exceptions raised by the remote dimmer service."""


class RemoteDimmerError(Exception):
    """Base class for all remote dimmer errors."""


class ConfigUnavailable(RemoteDimmerError):
    """The binding list could not be read from the store."""


class CredentialUnresolved(RemoteDimmerError):
    """An indirect credential reference could not be resolved."""


class BindingConfigError(RemoteDimmerError):
    """A binding entry is malformed or conflicts with another binding."""


class DeviceCommunicationError(RemoteDimmerError):
    """A request to a dimmer device failed."""


class DeviceUnreachable(DeviceCommunicationError):
    """Transport-level failure (connection refused, timeout, DNS...)."""


class DeviceError(DeviceCommunicationError):
    """The device answered with a non-2xx status or an unusable body."""


class InvalidTransition(RemoteDimmerError):
    """A state transition that is not in the transition table.

    Raised by the transition check and swallowed by the controller: a
    rejected transition is an expected race with a stale callback.
    """


class StoreError(RemoteDimmerError):
    """The key-value store could not be read."""


class KeyNotFound(StoreError):
    """The requested key does not exist in the store."""
