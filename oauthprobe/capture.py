"""
Deduplicating store of captured authorization URLs.
"""

import json
import logging
import os
import tempfile
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import parse_qsl

from .mutator import MalformedURLError, parse_authorization_url

logger = logging.getLogger(__name__)

STORE_KEY = "oauth_data"

OAUTH_PARAMS = (
    'client_id', 'redirect_uri', 'response_type', 'response_mode', 'scope',
    'state', 'connection'
)

Snapshot = Tuple[Tuple[str, ...], int]


class CapturePolicy(Enum):
    """Which query parameters qualify a request for capture."""
    REDIRECT_URI = "redirect_uri"
    ANY_OAUTH_PARAM = "any_oauth_param"


class PersistenceError(RuntimeError):
    """Raised when the backing key/value store cannot be read or written."""


class KeyValueStore:
    """Minimal get/set interface of the persistent store."""

    def get(self, key: str) -> Any:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    """In-process store, mostly for tests."""

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self.data = dict(data or {})

    def get(self, key: str) -> Any:
        return self.data.get(key)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = json.loads(json.dumps(value))


class JsonFileStore(KeyValueStore):
    """Key/value store kept in a single JSON file, replaced atomically on write."""

    def __init__(self, path: str):
        self.path = Path(path)

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path, 'r') as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Store file {self.path} does not hold a JSON object")
        return data

    def get(self, key: str) -> Any:
        return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, 'w') as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise


def describe_endpoint(url: str) -> Dict[str, Any]:
    """
    Summarize a captured URL for listing.

    Args:
        url: Captured authorization URL

    Returns:
        Dictionary with the endpoint (origin and path) and its OAuth parameters
    """
    parts = parse_authorization_url(url)
    params = [
        (key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key in OAUTH_PARAMS
    ]
    return {
        'url': url,
        'endpoint': f"{parts.scheme}://{parts.netloc.rpartition('@')[2]}{parts.path}",
        'oauth_params': params
    }


def _normalize(record: Any) -> Tuple[List[str], bool]:
    """Return deduplicated endpoints and whether the stored record needed repair."""
    if not isinstance(record, dict) or not isinstance(record.get('endpoints'), list):
        return [], record is not None

    endpoints: List[str] = []
    for entry in record['endpoints']:
        if isinstance(entry, str) and entry not in endpoints:
            endpoints.append(entry)

    dirty = endpoints != record['endpoints'] or record.get('counter') != len(endpoints)
    return endpoints, dirty


class CaptureStore:
    """
    Ordered, deduplicated collection of captured authorization URLs.

    The counter always equals the number of entries. All mutations run under
    one lock and are committed in memory only after the backing store accepted
    the new record.
    """

    def __init__(self,
                 store: KeyValueStore,
                 policy: CapturePolicy = CapturePolicy.REDIRECT_URI):
        """
        Initialize the capture store, loading the persisted record.

        Args:
            store: Backing key/value store
            policy: Qualifying predicate for captured URLs

        Raises:
            PersistenceError: If the persisted record cannot be read or initialized
        """
        self.store = store
        self.policy = policy
        self._lock = threading.Lock()
        self._listeners: List[Callable[[Snapshot], None]] = []

        try:
            record = store.get(STORE_KEY)
        except Exception as e:
            logger.error(f"Failed to load capture store: {e}")
            raise PersistenceError(f"Failed to load capture store: {e}") from e

        endpoints, dirty = _normalize(record)
        if record is None or dirty:
            if dirty:
                logger.warning("Persisted capture record was inconsistent; normalizing")
            self._persist(endpoints)

        self._endpoints = endpoints
        logger.info(f"Capture store loaded with {len(self._endpoints)} endpoints")

    @property
    def counter(self) -> int:
        return len(self._endpoints)

    def _persist(self, endpoints: List[str]):
        try:
            self.store.set(STORE_KEY, {'endpoints': list(endpoints), 'counter': len(endpoints)})
        except Exception as e:
            logger.error(f"Failed to persist capture store: {e}")
            raise PersistenceError(f"Failed to persist capture store: {e}") from e

    def subscribe(self, listener: Callable[[Snapshot], None]):
        """Register a callback invoked with a snapshot after every change."""
        self._listeners.append(listener)

    def _notify(self, snapshot: Snapshot):
        for listener in self._listeners:
            try:
                listener(snapshot)
            except Exception as e:
                logger.warning(f"Capture listener failed: {e}")

    def should_capture(self, url: str) -> bool:
        """
        Check whether a URL qualifies for capture under the current policy.

        Malformed URLs never qualify.
        """
        try:
            parts = parse_authorization_url(url)
        except MalformedURLError as e:
            logger.debug(f"Rejected malformed URL: {e}")
            return False

        names = {key for key, _ in parse_qsl(parts.query, keep_blank_values=True)}
        if self.policy == CapturePolicy.ANY_OAUTH_PARAM:
            return any(name in names for name in OAUTH_PARAMS)
        return 'redirect_uri' in names

    def record(self, url: str) -> bool:
        """
        Add a qualifying URL if it is not already present.

        Args:
            url: Observed request URL

        Returns:
            True if a new entry was added

        Raises:
            PersistenceError: If the new record could not be persisted; the
                in-memory state is left unchanged
        """
        if not self.should_capture(url):
            return False

        with self._lock:
            if url in self._endpoints:
                return False

            updated = self._endpoints + [url]
            self._persist(updated)
            self._endpoints = updated
            snapshot = (tuple(updated), len(updated))

        logger.info(f"Captured endpoint #{snapshot[1]}: {url}")
        self._notify(snapshot)
        return True

    def feed(self, urls: Iterable[str]) -> int:
        """
        Record every URL from a capture feed.

        Persistence failures are logged per URL and do not stop the feed.

        Returns:
            Number of newly captured URLs
        """
        added = 0
        for url in urls:
            try:
                if self.record(url):
                    added += 1
            except PersistenceError as e:
                logger.error(f"Capture of {url} not persisted: {e}")
        return added

    def clear(self):
        """
        Reset to no endpoints and a zero counter.

        Raises:
            PersistenceError: If the empty record could not be persisted
        """
        with self._lock:
            self._persist([])
            self._endpoints = []

        logger.info("Capture store cleared")
        self._notify(((), 0))

    def snapshot(self) -> Snapshot:
        """Return (endpoints, counter) as an immutable view."""
        with self._lock:
            return tuple(self._endpoints), len(self._endpoints)
