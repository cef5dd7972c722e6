import json
import logging
import os
import uuid
from pathlib import Path

from phixforge.models import RECORD_TYPES, Proposal

logger = logging.getLogger(__name__)

COLLECTIONS = (
    "proposals",
    "projects",
    "processes",
    "publications",
    "infrastructure",
    "people",
    "organizations",
    "customProgrammes",
    "personnelInvolvement",
    "exploitation",
    "companyDescription",
)

DEFAULT_DATA_PATH = "data/phixforge.json"


def default_data_path():
    return Path(os.getenv("PHIXFORGE_DATA", DEFAULT_DATA_PATH))


def new_id():
    return uuid.uuid4().hex


def _validate_collection(key, records):
    if not isinstance(records, list):
        raise ValueError(f"Invalid backup file: '{key}' is not a list")
    item_type = str if key == "customProgrammes" else dict
    bad = [i for i, r in enumerate(records) if not isinstance(r, item_type)]
    if bad:
        raise ValueError(
            f"Invalid backup file: '{key}' item(s) {', '.join(map(str, bad[:5]))} "
            f"are not {'strings' if item_type is str else 'objects'}"
        )


class RecordStore:
    """
    Named collections of records kept in one JSON document.

    Every read returns a fresh copy, so callers can aggregate or edit what they
    get without touching the stored snapshot. Writes replace a whole collection
    (last write wins) and are persisted by ``save``.
    """

    def __init__(self, path=None):
        self.path = Path(path) if path is not None else None
        self._data = {key: [] for key in COLLECTIONS}
        if self.path is not None and self.path.exists():
            self.import_all(self.path.read_text(encoding="utf-8"))
            logger.info("Loaded record store from %s", self.path)

    @staticmethod
    def _check(collection):
        if collection not in COLLECTIONS:
            raise ValueError(
                f"Unknown collection '{collection}'. Available collections: {', '.join(COLLECTIONS)}"
            )

    def get_all(self, collection):
        self._check(collection)
        return json.loads(json.dumps(self._data[collection]))

    def replace_all(self, collection, records):
        self._check(collection)
        data = [r.to_dict() if hasattr(r, "to_dict") else r for r in records]
        self._data[collection] = json.loads(json.dumps(data))

    def find(self, collection, record_id):
        for record in self.get_all(collection):
            if record.get("id") == record_id:
                return record
        return None

    def upsert(self, collection, record):
        """Insert, or replace the record with the same id. Returns the id."""
        data = record.to_dict() if hasattr(record, "to_dict") else dict(record)
        if not data.get("id"):
            data["id"] = new_id()

        records = self.get_all(collection)
        for i, existing in enumerate(records):
            if existing.get("id") == data["id"]:
                records[i] = data
                break
        else:
            records.append(data)
        self.replace_all(collection, records)
        logger.debug("Saved %s record %s", collection, data["id"])
        return data["id"]

    def delete(self, collection, record_id):
        records = self.get_all(collection)
        kept = [r for r in records if r.get("id") != record_id]
        self.replace_all(collection, kept)
        return len(kept) != len(records)

    def export_all(self):
        return json.dumps({key: self._data[key] for key in COLLECTIONS}, indent=2)

    def import_all(self, json_string):
        """Replace every collection present in ``json_string``; others are left alone."""
        try:
            all_data = json.loads(json_string)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid backup file: {e}") from e
        if not isinstance(all_data, dict):
            raise ValueError("Invalid backup file: expected a JSON object of collections")

        # Validate everything before touching the store
        imported = [key for key in COLLECTIONS if all_data.get(key)]
        for key in imported:
            _validate_collection(key, all_data[key])
        for key in imported:
            self.replace_all(key, all_data[key])
        logger.info("Imported collections: %s", ", ".join(imported) or "none")
        return imported

    def save(self):
        if self.path is None:
            raise ValueError("Record store has no file path to save to")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(self.export_all(), encoding="utf-8")
        logger.info("Saved record store to %s", self.path)


def load_proposals(store):
    return [Proposal.from_dict(r) for r in store.get_all("proposals")]


def load_records(store, collection):
    """Typed records of a reusable-data collection."""
    record_type = RECORD_TYPES.get(collection)
    if record_type is None:
        raise ValueError(f"Collection '{collection}' has no record type")
    return [record_type.from_dict(r) for r in store.get_all(collection)]


def lookup_by_id(store, collection):
    return {r.id: r for r in load_records(store, collection)}
