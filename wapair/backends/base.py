"""Storage contract shared by the primary and fallback pairing backends."""

from typing import List, Optional

from ..models import PairingRecord


class PairingBackend:
    """Key-value store of pairing records keyed by `code`.

    Implementations raise `BackendUnavailable` (or let driver errors escape)
    when they cannot service a call; `PairingStore` decides what to do next.
    """

    name = "base"

    def insert_unique(self, record: PairingRecord, now: float) -> bool:
        """Insert unless a live record holds the same code; return False on conflict."""
        raise NotImplementedError

    def find(self, code: str) -> Optional[PairingRecord]:
        raise NotImplementedError

    def find_by_session(self, session_id: str) -> Optional[PairingRecord]:
        return None

    def replace(self, record: PairingRecord) -> bool:
        """Overwrite the stored record with the same code; return False if absent."""
        raise NotImplementedError

    def delete(self, code: str) -> bool:
        raise NotImplementedError

    def records(self) -> List[PairingRecord]:
        """Return a snapshot of every stored record."""
        raise NotImplementedError

    def ping(self) -> bool:
        """Connectivity probe used to refresh the availability flag."""
        return True

    def close(self) -> None:
        pass
