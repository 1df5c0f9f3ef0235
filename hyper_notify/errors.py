"""Exception hierarchy for hyper_notify."""

from __future__ import annotations


class HyperNotifyError(Exception):
    """Base class for all hyper_notify errors."""


class ConfigError(HyperNotifyError):
    """Invalid or incomplete configuration."""


class UnknownInstrumentError(HyperNotifyError):
    """No bucket width is configured for the instrument."""

    def __init__(self, instrument: str) -> None:
        super().__init__(f"No bucket width configured for {instrument!r}")
        self.instrument = instrument


class DecodeError(HyperNotifyError):
    """Inbound feed message could not be decoded."""


class SelectionError(HyperNotifyError):
    """No report window can be selected (empty bucket set)."""


class StorageError(HyperNotifyError):
    """Position store query failed."""


class DeliveryError(HyperNotifyError):
    """Notification could not be delivered."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        error_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.error_code = error_code
