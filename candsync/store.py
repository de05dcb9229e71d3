"""
Candidate cache: an ID-keyed mapping of Candidate records persisted as a JSON
string in a key/value storage.
"""
import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Protocol, Tuple, Union

from loguru import logger

from candsync.config import CANDIDATES_KEY, ENDPOINT_URL_KEY
from candsync.models import Candidate


class KeyValueStorage(Protocol):
    """Persisted string storage (the browser-profile equivalent)."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class JsonFileStorage:
    """
    Key/value storage backed by a single JSON object on disk.
    An unreadable file reads as empty storage.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read_all(self) -> Dict[str, str]:
        try:
            if not self.path.exists():
                return {}
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except (OSError, ValueError) as e:
            logger.debug(f"⚠️ Storage file {self.path} unreadable, treating as empty: {e}")
            return {}

    def _write_all(self, data: Dict[str, str]) -> None:
        # Temp file must be unique per write, then swapped in atomically
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=self.path.name + ".", suffix=".tmp", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        finally:
            Path(tmp_name).unlink(missing_ok=True)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            value = self._read_all().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read_all()
            data[key] = value
            self._write_all(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._read_all()
            if key in data:
                del data[key]
                self._write_all(data)


def parse_candidates(text: str) -> Dict[str, Candidate]:
    """Parse a serialized cache. Raises ValueError on any malformed content."""
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("Candidate cache must be a JSON object keyed by ID")
    try:
        return {str(cid): Candidate.from_dict(rec) for cid, rec in data.items()}
    except (KeyError, TypeError) as e:
        raise ValueError(f"Malformed candidate record: {e!r}") from e


def serialize_candidates(mapping: Dict[str, Candidate]) -> str:
    return json.dumps({cid: c.to_dict() for cid, c in mapping.items()}, ensure_ascii=False)


class CandidateStore:
    """
    In-memory candidate mapping with explicit load/save against a KeyValueStorage.
    All mutations go through a single lock.
    """

    def __init__(self, storage: KeyValueStorage, key: str = CANDIDATES_KEY):
        self.storage = storage
        self.key = key
        self._candidates: Dict[str, Candidate] = {}
        self._lock = threading.RLock()

    def load(self) -> Dict[str, Candidate]:
        """
        Load the persisted cache into memory. Never raises: a corrupt cache
        is discarded as a whole and the store starts empty.
        """
        raw = self.storage.get(self.key)
        mapping: Dict[str, Candidate] = {}
        if raw:
            try:
                mapping = parse_candidates(raw)
            except ValueError as e:
                logger.debug(f"⚠️ Discarding corrupt candidate cache: {e}")
                mapping = {}
        with self._lock:
            self._candidates = mapping
        return dict(mapping)

    def save(self, mapping: Optional[Dict[str, Candidate]] = None) -> None:
        with self._lock:
            if mapping is not None:
                self._candidates = dict(mapping)
            payload = serialize_candidates(self._candidates)
        self.storage.set(self.key, payload)

    def clear(self) -> None:
        with self._lock:
            self._candidates = {}
        self.storage.remove(self.key)

    def replace(self, mapping: Dict[str, Candidate]) -> None:
        with self._lock:
            self._candidates = dict(mapping)

    def put(self, cid: str, candidate: Candidate) -> None:
        with self._lock:
            self._candidates[cid] = candidate

    def remove(self, cid: str) -> bool:
        with self._lock:
            return self._candidates.pop(cid, None) is not None

    def get(self, cid: str) -> Optional[Candidate]:
        return self._candidates.get(cid)

    def snapshot(self) -> Dict[str, Candidate]:
        with self._lock:
            return dict(self._candidates)

    def potentials(self) -> List[Tuple[str, Candidate]]:
        return [(cid, c) for cid, c in self.snapshot().items() if c.is_potential]

    def export_json(self) -> str:
        """Full cache as an indented, downloadable JSON document."""
        data = {cid: c.to_dict() for cid, c in self.snapshot().items()}
        return json.dumps(data, ensure_ascii=False, indent=2)

    def import_json(self, text: str) -> int:
        """Replace the whole cache from an exported document and persist it."""
        mapping = parse_candidates(text)
        self.save(mapping)
        logger.info(f"Imported {len(mapping)} candidates")
        return len(mapping)

    def __len__(self) -> int:
        return len(self._candidates)

    def __contains__(self, cid: object) -> bool:
        return cid in self._candidates

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())


def load_endpoint_url(storage: KeyValueStorage) -> Optional[str]:
    url = (storage.get(ENDPOINT_URL_KEY) or "").strip()
    return url or None


def save_endpoint_url(storage: KeyValueStorage, url: str) -> None:
    storage.set(ENDPOINT_URL_KEY, url.strip())
