# -*- coding: utf-8 -*-
"""
Carbon Calculation Provenance Tracker - EcoTrace Carbon Calculation Pipeline

Provides SHA-256 based tamper evidence for the audit ledger. Every recorded
calculation, attached validation and methodology version is appended to an
in-memory chain where each link hashes the previous link together with the
entry payload.

Guarantees:
    - All hashes are deterministic SHA-256 over canonical JSON
    - Chain hashing links ledger events in sequence
    - JSON export for external audit systems

Example:
    >>> from ecotrace.carbon_calculation.provenance import ProvenanceTracker
    >>> tracker = ProvenanceTracker()
    >>> chain_hash = tracker.record("calculation", "audit-1", {"carbon_kg": 0.4})
    >>> tracker.verify_chain()
    True

Author: EcoTrace Platform Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


def hash_payload(data: Any) -> str:
    """Compute the SHA-256 of any JSON-serializable payload.

    Keys are sorted and non-JSON types are stringified so equal inputs
    always produce equal hashes.

    Args:
        data: Dict, list, string or number to hash.

    Returns:
        Hex-encoded SHA-256 hash.
    """
    serialized = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(serialized.encode()).hexdigest()


@dataclass
class ProvenanceEntry:
    """One link in the provenance chain."""
    kind: str
    subject_id: str
    entry_hash: str
    chain_hash: str
    recorded_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


class ProvenanceTracker:
    """Tracks ledger events with SHA-256 chain hashing.

    Attributes:
        _entries: Ordered list of provenance entries.
        _last_chain_hash: Most recent chain hash for linking.

    Example:
        >>> tracker = ProvenanceTracker()
        >>> tracker.record("methodology", "1.0.0", {"version": "1.0.0"})
        >>> len(tracker.get_entries(subject_id="1.0.0"))
        1
    """

    # Initial chain hash (genesis)
    _GENESIS_HASH = hashlib.sha256(b"ecotrace-carbon-ledger-genesis").hexdigest()

    def __init__(self) -> None:
        self._entries: List[ProvenanceEntry] = []
        self._last_chain_hash: str = self._GENESIS_HASH
        logger.info("ProvenanceTracker initialized")

    def record(self, kind: str, subject_id: str, payload: Any) -> str:
        """Append an event to the chain.

        Args:
            kind: Event kind (calculation, validation, methodology).
            subject_id: Audit id or methodology version the event is about.
            payload: Event payload; hashed, not stored.

        Returns:
            The chain hash of the new link.
        """
        entry_hash = hash_payload({"kind": kind, "subject": subject_id, "payload": payload})
        chain_hash = self._build_next_chain_hash(entry_hash)
        self._entries.append(
            ProvenanceEntry(
                kind=kind,
                subject_id=subject_id,
                entry_hash=entry_hash,
                chain_hash=chain_hash,
            )
        )
        self._last_chain_hash = chain_hash
        logger.debug("Recorded provenance: %s %s", kind, subject_id)
        return chain_hash

    def get_entries(
        self,
        kind: Optional[str] = None,
        subject_id: Optional[str] = None,
    ) -> List[ProvenanceEntry]:
        """Return chain entries in insertion order, optionally filtered."""
        entries = list(self._entries)
        if kind is not None:
            entries = [e for e in entries if e.kind == kind]
        if subject_id is not None:
            entries = [e for e in entries if e.subject_id == subject_id]
        return entries

    def verify_chain(self) -> bool:
        """Verify the integrity of the provenance chain.

        Recomputes chain hashes from genesis and verifies they match
        the stored hashes in each entry.

        Returns:
            True if chain is intact, False if tampered.
        """
        current_hash = self._GENESIS_HASH
        for entry in self._entries:
            combined = f"{current_hash}:{entry.entry_hash}"
            expected_hash = hashlib.sha256(combined.encode()).hexdigest()
            if entry.chain_hash != expected_hash:
                logger.warning(
                    "Chain verification failed at %s entry %s",
                    entry.kind, entry.subject_id,
                )
                return False
            current_hash = expected_hash
        return True

    def export_json(self) -> str:
        """Export all provenance entries as a JSON string."""
        records: List[Dict[str, Any]] = [asdict(entry) for entry in self._entries]
        return json.dumps(records, indent=2, default=str)

    @property
    def entry_count(self) -> int:
        """Return the number of provenance entries."""
        return len(self._entries)

    @property
    def last_chain_hash(self) -> str:
        return self._last_chain_hash

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _build_next_chain_hash(self, entry_hash: str) -> str:
        combined = f"{self._last_chain_hash}:{entry_hash}"
        return hashlib.sha256(combined.encode()).hexdigest()


__all__ = [
    "ProvenanceEntry",
    "ProvenanceTracker",
    "hash_payload",
]
