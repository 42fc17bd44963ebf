"""Read-only collaborators: booking lookup and supplier asset files."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

from .errors import AssetUnavailable, StorageUnavailable
from .models import BookingRecord


class BookingStore(Protocol):
    def find_bookings(self, ids: Sequence[str]) -> List[BookingRecord]:
        ...


class AssetReader(Protocol):
    def read_asset(self, path: str) -> bytes:
        ...


def _index(documents: Iterable[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    return {str(doc["_id"]): doc for doc in documents if doc.get("_id") is not None}


class JsonBookingStore:
    """Bookings held as JSON documents with car/user references.

    ``find_bookings`` joins ``car``, ``driver`` and ``supplier`` references
    against the ``cars`` and ``users`` collections before building records.
    Absent ids are simply not returned.
    """

    def __init__(self, documents: Dict[str, Any]) -> None:
        self._bookings = _index(documents.get("bookings") or [])
        self._cars = _index(documents.get("cars") or [])
        self._users = _index(documents.get("users") or [])

    @classmethod
    def from_file(cls, path: Optional[str]) -> "JsonBookingStore":
        if not path:
            raise StorageUnavailable("Booking store path is not configured (INVOICE_BOOKINGS_PATH).")
        try:
            with open(path, "r", encoding="utf-8") as handle:
                documents = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise StorageUnavailable(f"Could not load bookings from {path}: {exc}") from exc
        if not isinstance(documents, dict):
            raise StorageUnavailable(f"Booking store {path} must contain a JSON object.")
        return cls(documents)

    def _populate(self, ref: Any, collection: Dict[str, Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if isinstance(ref, dict):
            return ref
        if ref is None:
            return None
        return collection.get(str(ref))

    def find_bookings(self, ids: Sequence[str]) -> List[BookingRecord]:
        records = []
        for booking_id in ids:
            doc = self._bookings.get(str(booking_id))
            if doc is None:
                continue
            populated = dict(doc)
            populated["car"] = self._populate(doc.get("car"), self._cars)
            populated["driver"] = self._populate(doc.get("driver"), self._users)
            populated["supplier"] = self._populate(doc.get("supplier"), self._users)
            records.append(BookingRecord.from_document(populated))
        return records


class FileAssetReader:
    """Reads asset files below a CDN directory."""

    def __init__(self, root: Optional[str]) -> None:
        self.root = Path(root).resolve() if root else None

    def read_asset(self, path: str) -> bytes:
        if not path:
            raise AssetUnavailable(path, "no asset on file")
        if self.root is None:
            raise AssetUnavailable(path, "asset directory is not configured")
        target = (self.root / path).resolve()
        if self.root not in target.parents:
            raise AssetUnavailable(path, "path escapes the asset directory")
        try:
            return target.read_bytes()
        except OSError as exc:
            raise AssetUnavailable(path, exc.strerror or str(exc)) from exc
