"""
In-memory collaborator sources (HCP directory, catalog, signals).

They stand in for the CRM / content / social-listening systems the engine
reads from. Data comes either from constructor arguments or from a JSON seed
file shaped like:

    {
      "hcps": [...], "contacts": [...], "prescriptions": [...],
      "products": [...], "approved_content": [...], "signals": [...]
    }
"""

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from data_models.base import ensure_utc
from data_models.hcp import ApprovedContent, ContactRecord, ExternalSignal, HCPProfile, Prescription, Product

logger = logging.getLogger(__name__)


class InMemoryHCPDirectory:
    def __init__(
        self,
        hcps: Iterable[HCPProfile] = (),
        contacts: Iterable[ContactRecord] = (),
        prescriptions: Iterable[Prescription] = (),
    ):
        self._lock = threading.Lock()
        self._hcps: Dict[str, HCPProfile] = {h.hcp_id: h for h in hcps}
        self._contacts: List[ContactRecord] = list(contacts)
        self._prescriptions: List[Prescription] = list(prescriptions)

    def add_hcp(self, hcp: HCPProfile) -> None:
        with self._lock:
            self._hcps[hcp.hcp_id] = hcp

    def add_contact(self, contact: ContactRecord) -> None:
        with self._lock:
            self._contacts.append(contact)

    def add_prescription(self, prescription: Prescription) -> None:
        with self._lock:
            self._prescriptions.append(prescription)

    def get_hcp(self, hcp_id: str) -> Optional[HCPProfile]:
        return self._hcps.get(hcp_id)

    def get_recent_contacts(self, hcp_id: str, limit: int) -> List[ContactRecord]:
        with self._lock:
            rows = [c for c in self._contacts if c.hcp_id == hcp_id]
        rows.sort(key=lambda c: c.contacted_at, reverse=True)
        return rows[:limit]

    def get_recent_prescriptions(self, hcp_id: str, limit: int) -> List[Prescription]:
        with self._lock:
            rows = [p for p in self._prescriptions if p.hcp_id == hcp_id]
        rows.sort(key=lambda p: p.prescribed_at, reverse=True)
        return rows[:limit]

    def list_hcps(self) -> List[HCPProfile]:
        with self._lock:
            return list(self._hcps.values())

    def list_contacts(self, since: datetime) -> List[ContactRecord]:
        since = ensure_utc(since)
        with self._lock:
            return [c for c in self._contacts if c.contacted_at >= since]

    def list_prescriptions(self) -> List[Prescription]:
        with self._lock:
            return list(self._prescriptions)


class InMemoryCatalog:
    def __init__(self, products: Iterable[Product] = (), approved_content: Iterable[ApprovedContent] = ()):
        self._products = list(products)
        self._content = list(approved_content)

    def get_active_products(self) -> List[Product]:
        return [p for p in self._products if p.active]

    def get_active_approved_content(self) -> List[ApprovedContent]:
        return [c for c in self._content if c.active]


class InMemorySignalSource:
    """Signals that mention no HCP are treated as relevant to everyone."""

    def __init__(self, signals: Iterable[ExternalSignal] = ()):
        self._signals = list(signals)

    def get_relevant_signals(self, hcp_id: str, min_relevance: int) -> List[ExternalSignal]:
        return [
            s for s in self._signals
            if s.relevance >= min_relevance and (not s.mentioned_hcp_ids or hcp_id in s.mentioned_hcp_ids)
        ]


def sources_from_dict(data: Dict[str, Any]) -> Tuple[InMemoryHCPDirectory, InMemoryCatalog, InMemorySignalSource]:
    directory = InMemoryHCPDirectory(
        hcps=[HCPProfile.model_validate(h) for h in data.get("hcps", [])],
        contacts=[ContactRecord.model_validate(c) for c in data.get("contacts", [])],
        prescriptions=[Prescription.model_validate(p) for p in data.get("prescriptions", [])],
    )
    catalog = InMemoryCatalog(
        products=[Product.model_validate(p) for p in data.get("products", [])],
        approved_content=[ApprovedContent.model_validate(c) for c in data.get("approved_content", [])],
    )
    signals = InMemorySignalSource([ExternalSignal.model_validate(s) for s in data.get("signals", [])])
    return directory, catalog, signals


def load_seed_file(path: Optional[str]) -> Tuple[InMemoryHCPDirectory, InMemoryCatalog, InMemorySignalSource]:
    """Empty sources when no path is given; a broken seed file fails loudly."""
    if not path:
        return sources_from_dict({})

    seed_path = Path(path)
    with seed_path.open("r", encoding="utf-8") as fh:
        data = json.load(fh)

    sources = sources_from_dict(data)
    logger.info(
        "Seeded collaborator sources from %s: %d HCPs, %d products",
        seed_path, len(data.get("hcps", [])), len(data.get("products", [])),
    )
    return sources
