from __future__ import annotations
from typing import Optional


class WatcherError(Exception):
    pass


class ConfigurationError(WatcherError):
    """Missing or invalid startup configuration. Fatal before any sweep runs."""


class DiscoveryError(WatcherError):
    """A creation-event page could not be fetched; the sweep stops at discovery."""


class FetchError(WatcherError):
    def __init__(self, commitment_id: str, message: str, reason: str = "error"):
        super().__init__(f"{commitment_id}: {message}")
        self.commitment_id = commitment_id
        self.reason = reason


class AlreadySettledConflict(WatcherError):
    """Settlement rejected because the commitment is already terminal."""

    def __init__(self, commitment_id: str, message: str = ""):
        super().__init__(f"{commitment_id} already terminal" + (f": {message}" if message else ""))
        self.commitment_id = commitment_id


class SettlementFailure(WatcherError):
    def __init__(self, commitment_id: str, message: str, error_class: Optional[str] = None, digest: Optional[str] = None):
        super().__init__(f"{commitment_id}: {message}")
        self.commitment_id = commitment_id
        self.error_class = error_class
        self.digest = digest


class LedgerError(WatcherError):
    pass


class LedgerRPCError(LedgerError):
    def __init__(self, message: str, code: Optional[int] = None, error_class: str = "rpc",
                 abort_code: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.error_class = error_class
        self.abort_code = abort_code


class LedgerTimeout(LedgerError):
    pass
