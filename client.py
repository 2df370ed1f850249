import logging
import threading
from typing import Callable, Iterable, List, Optional
from urllib.parse import quote

import requests

from models import WorkoutRecord

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[List[WorkoutRecord]], None]
ErrorCallback = Callable[[Exception], None]


class RemoteLedgerError(Exception):
    """The remote workout collection could not be reached or refused a call."""


def encode_batch(records: Iterable[WorkoutRecord]) -> list[dict]:
    """Encode ``records`` for a batch write, skipping any that fail."""
    docs: list[dict] = []
    for record in records:
        try:
            docs.append(record.to_dict())
        except (TypeError, ValueError, AttributeError) as e:
            logger.warning(
                "Skipping workout %s in batch: %s", getattr(record, "id", "?"), e
            )
    return docs


def decode_snapshot(docs) -> List[WorkoutRecord]:
    """Decode a fetched collection, dropping documents that do not parse."""
    if not isinstance(docs, list):
        raise RemoteLedgerError("workout collection must be a list")
    records: List[WorkoutRecord] = []
    for doc in docs:
        try:
            records.append(WorkoutRecord.from_dict(doc))
        except (TypeError, ValueError) as e:
            logger.warning("Skipping undecodable workout document: %s", e)
    return records


class Subscription:
    """Handle for a change subscription; ``cancel`` stops delivery."""

    def __init__(self) -> None:
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        self._active = False


class LedgerClient:
    """Per-user remote workout collection.

    Blocking calls raise :class:`RemoteLedgerError` on connectivity or
    server failures; subscriptions report them through ``on_error``.
    """

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id

    def fetch_all(self) -> List[WorkoutRecord]:
        raise NotImplementedError

    def put(self, record: WorkoutRecord) -> None:
        raise NotImplementedError

    def delete(self, record_id: str) -> None:
        raise NotImplementedError

    def put_batch(self, records: Iterable[WorkoutRecord]) -> None:
        raise NotImplementedError

    def subscribe(
        self, on_snapshot: SnapshotCallback, on_error: ErrorCallback
    ) -> Subscription:
        raise NotImplementedError


class SnapshotPoller(threading.Thread, Subscription):
    """Background thread turning periodic fetches into pushed snapshots."""

    def __init__(
        self,
        client: LedgerClient,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
        interval: float = 5.0,
    ) -> None:
        threading.Thread.__init__(self, daemon=True)
        Subscription.__init__(self)
        self.client = client
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.interval = interval
        self._wake = threading.Event()
        self._last: Optional[list[dict]] = None

    def cancel(self) -> None:
        Subscription.cancel(self)
        self._wake.set()

    def poll_once(self) -> None:
        try:
            records = self.client.fetch_all()
        except RemoteLedgerError as e:
            self._last = None
            if self.active:
                self.on_error(e)
            return
        docs = [r.to_dict() for r in records]
        if docs != self._last and self.active:
            self._last = docs
            self.on_snapshot(records)

    def run(self) -> None:
        while self.active:
            try:
                self.poll_once()
            except Exception:
                logger.exception("Snapshot delivery failed")
            self._wake.wait(self.interval)


class RestLedgerClient(LedgerClient):
    """REST client for a user's collection on the ledger API."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        user_id: str = "",
        api_token: str | None = None,
        session=None,
        poll_interval: float = 5.0,
    ) -> None:
        super().__init__(user_id)
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.session = session or requests.Session()
        self.poll_interval = poll_interval

    def _url(self, *parts: str) -> str:
        path = "/".join(quote(str(p), safe="") for p in parts)
        return f"{self.base_url}/users/{quote(self.user_id, safe='')}/workouts" + (
            f"/{path}" if path else ""
        )

    def _request(self, method: str, url: str, **kwargs):
        headers = {"X-API-Key": self.api_token} if self.api_token else {}
        try:
            resp = self.session.request(method, url, headers=headers, **kwargs)
        except requests.RequestException as e:
            raise RemoteLedgerError(f"{method} {url} failed: {e}") from e
        if resp.status_code >= 400:
            raise RemoteLedgerError(
                f"{method} {url} returned {resp.status_code}: {resp.text}"
            )
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise RemoteLedgerError(f"{method} {url} returned invalid JSON") from e

    def fetch_all(self) -> List[WorkoutRecord]:
        return decode_snapshot(self._request("GET", self._url()))

    def put(self, record: WorkoutRecord) -> None:
        self._request("PUT", self._url(record.id), json=record.to_dict())

    def delete(self, record_id: str) -> None:
        self._request("DELETE", self._url(record_id))

    def put_batch(self, records: Iterable[WorkoutRecord]) -> None:
        docs = encode_batch(records)
        result = self._request("POST", self._url("batch"), json=docs)
        if result and result.get("skipped"):
            logger.warning("Server skipped %s workouts in batch", result["skipped"])

    def subscribe(
        self, on_snapshot: SnapshotCallback, on_error: ErrorCallback
    ) -> Subscription:
        poller = SnapshotPoller(self, on_snapshot, on_error, self.poll_interval)
        poller.start()
        return poller


class InMemoryLedgerClient(LedgerClient):
    """In-process collection with push snapshots, for offline use and tests."""

    def __init__(self, user_id: str = "local", store: dict | None = None) -> None:
        super().__init__(user_id)
        self.store = store if store is not None else {}
        self.online = True
        self._lock = threading.RLock()
        self._subscribers: list[tuple[Subscription, SnapshotCallback, ErrorCallback]] = []

    def _collection(self) -> dict:
        return self.store.setdefault(self.user_id, {})

    def _check(self) -> None:
        if not self.online:
            raise RemoteLedgerError("remote ledger unreachable")

    def _snapshot(self, docs: list | None = None) -> List[WorkoutRecord]:
        if docs is None:
            docs = list(self._collection().values())
        records = decode_snapshot(docs)
        records.sort(key=lambda r: r.date, reverse=True)
        return records

    def _publish(self) -> None:
        with self._lock:
            if not self.online:
                return
            self._subscribers = [s for s in self._subscribers if s[0].active]
            targets = list(self._subscribers)
            docs = list(self._collection().values())
        for sub, on_snapshot, _on_error in targets:
            if sub.active:
                on_snapshot(self._snapshot(docs))

    def fetch_all(self) -> List[WorkoutRecord]:
        with self._lock:
            self._check()
            return self._snapshot()

    def put(self, record: WorkoutRecord) -> None:
        with self._lock:
            self._check()
            self._collection()[record.id] = record.to_dict()
        self._publish()

    def delete(self, record_id: str) -> None:
        with self._lock:
            self._check()
            self._collection().pop(record_id, None)
        self._publish()

    def put_batch(self, records: Iterable[WorkoutRecord]) -> None:
        with self._lock:
            self._check()
            for doc in encode_batch(records):
                self._collection()[doc["id"]] = doc
        self._publish()

    def subscribe(
        self, on_snapshot: SnapshotCallback, on_error: ErrorCallback
    ) -> Subscription:
        sub = Subscription()
        with self._lock:
            self._subscribers.append((sub, on_snapshot, on_error))
            online = self.online
            docs = list(self._collection().values())
        if online:
            on_snapshot(self._snapshot(docs))
        else:
            on_error(RemoteLedgerError("remote ledger unreachable"))
        return sub

    def replace_remote(self, records: Iterable[WorkoutRecord]) -> None:
        """Overwrite the collection as another device would."""
        with self._lock:
            collection = self._collection()
            collection.clear()
            for doc in encode_batch(records):
                collection[doc["id"]] = doc
        self._publish()

    def go_offline(self) -> None:
        with self._lock:
            self.online = False
            targets = [s for s in self._subscribers if s[0].active]
        for _sub, _on_snapshot, on_error in targets:
            on_error(RemoteLedgerError("connection lost"))

    def go_online(self) -> None:
        with self._lock:
            self.online = True
        self._publish()
