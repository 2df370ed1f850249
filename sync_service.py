from __future__ import annotations
import copy
import dataclasses
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, List, Optional

from cache_store import CacheWriteError, LocalCacheStore
from client import LedgerClient, RemoteLedgerError, Subscription
from models import SyncStatus, WorkoutRecord

logger = logging.getLogger(__name__)

Listener = Callable[[List[WorkoutRecord], SyncStatus], None]


class SyncCoordinator:
    """Own the authoritative workout list and keep it in step with the remote.

    Writes are local first: the in-memory list and the cache file are updated
    under one lock before any network call is attempted. Remote calls run on a
    worker pool and only affect :attr:`status`. Every snapshot delivered by the
    remote subscription replaces the whole list, so a local write that has not
    reached the remote yet can be overwritten by an older snapshot
    (remote wins on reconnect).

    Records are copied on the way in and out; callers never hold a reference
    into the ledger and change it only through the operations below.
    """

    def __init__(
        self,
        cache: LocalCacheStore,
        remote: LedgerClient | None = None,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self.cache = cache
        self.remote = remote
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="ledger-sync"
        )
        self._lock = threading.RLock()
        self._workouts: List[WorkoutRecord] = []
        self._loaded = False
        self._status = SyncStatus.ONLINE
        self._subscription: Optional[Subscription] = None
        self._generation = 0
        self._listeners: list[Listener] = []

    # -- observation -------------------------------------------------------

    @property
    def workouts(self) -> List[WorkoutRecord]:
        with self._lock:
            return copy.deepcopy(self._workouts)

    @property
    def status(self) -> SyncStatus:
        with self._lock:
            return self._status

    @property
    def authenticated(self) -> bool:
        return self.remote is not None

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for ``(workouts, status)`` change events."""
        with self._lock:
            self._listeners.append(listener)

        def remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove

    def _notify(self) -> None:
        workouts = copy.deepcopy(self._workouts)
        status = self._status
        for listener in list(self._listeners):
            try:
                listener(workouts, status)
            except Exception:
                logger.exception("Workout listener failed")

    def _set_status(self, status: SyncStatus) -> None:
        with self._lock:
            if self._status is status:
                return
            self._status = status
            self._notify()

    # -- local state -------------------------------------------------------

    def _persist(self) -> None:
        try:
            self.cache.save(self._workouts)
        except CacheWriteError as e:
            logger.error("Workout cache not updated: %s", e)

    def _load_cache(self) -> None:
        self._workouts = self.cache.load()
        self._loaded = True

    def _ensure_loaded(self) -> None:
        # a write before any load must not overwrite the cached ledger
        if not self._loaded:
            self._load_cache()

    def _replace(self, records: List[WorkoutRecord]) -> None:
        self._workouts = copy.deepcopy(records)
        self._loaded = True
        self._persist()

    def _upsert(self, record: WorkoutRecord) -> WorkoutRecord:
        record = copy.deepcopy(record)
        with self._lock:
            self._ensure_loaded()
            for idx, existing in enumerate(self._workouts):
                if existing.id == record.id:
                    self._workouts[idx] = record
                    break
            else:
                self._workouts.insert(0, record)
            self._persist()
            self._notify()
        return record

    # -- remote dispatch ---------------------------------------------------

    @staticmethod
    def _completed(result: bool) -> Future:
        future: Future = Future()
        future.set_result(result)
        return future

    def _run_remote(self, label: str, call: Callable[[], None]) -> bool:
        self._set_status(SyncStatus.SYNCING)
        try:
            call()
        except RemoteLedgerError as e:
            logger.warning("Remote %s failed, working offline: %s", label, e)
            self._set_status(SyncStatus.OFFLINE)
            return False
        except Exception:
            logger.exception("Unexpected error during remote %s", label)
            self._set_status(SyncStatus.OFFLINE)
            return False
        self._set_status(SyncStatus.ONLINE)
        return True

    def _dispatch(self, label: str, call: Callable[[], None]) -> Future:
        if self.remote is None:
            return self._completed(False)
        try:
            return self._executor.submit(self._run_remote, label, call)
        except RuntimeError as e:
            logger.warning("Remote %s not scheduled: %s", label, e)
            return self._completed(False)

    # -- operations --------------------------------------------------------

    def load(self) -> List[WorkoutRecord]:
        """Populate the list from the remote, falling back to the cache."""
        remote = self.remote
        if remote is None:
            with self._lock:
                self._load_cache()
                self._notify()
            return self.workouts
        self._set_status(SyncStatus.SYNCING)
        try:
            fetched = remote.fetch_all()
        except RemoteLedgerError as e:
            logger.warning("Fetch failed, using cached workouts: %s", e)
            fetched = None
        except Exception:
            logger.exception("Unexpected error fetching workouts")
            fetched = None
        if fetched is None:
            with self._lock:
                self._load_cache()
                self._status = SyncStatus.OFFLINE
                self._notify()
            return self.workouts
        with self._lock:
            self._replace(fetched)
            self._status = SyncStatus.ONLINE
            self._notify()
        logger.info("Loaded %d workouts from remote", len(fetched))
        return self.workouts

    def save(self, record: WorkoutRecord) -> Future:
        """Insert or update ``record`` locally, then push it to the remote."""
        stored = self._upsert(record)
        remote = self.remote
        return self._dispatch("save", lambda: remote.put(stored))

    def update(self, record: WorkoutRecord) -> Future:
        return self.save(record)

    def toggle_favorite(self, record: WorkoutRecord) -> Future:
        updated = dataclasses.replace(record, is_favorite=not record.is_favorite)
        return self.save(updated)

    def delete(self, record: WorkoutRecord) -> Future:
        record_id = record.id
        with self._lock:
            self._ensure_loaded()
            remaining = [w for w in self._workouts if w.id != record_id]
            if len(remaining) != len(self._workouts):
                self._workouts = remaining
                self._persist()
                self._notify()
        remote = self.remote
        return self._dispatch("delete", lambda: remote.delete(record_id))

    def sync_all_workouts(self) -> Future:
        """Push the whole current list to the remote as one batch."""
        records = self.workouts
        remote = self.remote
        logger.info("Syncing %d workouts", len(records))
        return self._dispatch("batch sync", lambda: remote.put_batch(records))

    def finalize_draft(self, drafts) -> WorkoutRecord | None:
        """Save the autosaved draft as a workout and discard the draft."""
        draft = drafts.load()
        if draft is None:
            return None
        record = draft.to_record()
        self.save(record)
        drafts.clear()
        return record

    # -- subscription ------------------------------------------------------

    def _apply_snapshot(self, generation: int, records: List[WorkoutRecord]) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._replace(records)
            self._status = SyncStatus.ONLINE
            self._notify()
        logger.info("Applied remote snapshot with %d workouts", len(records))

    def _snapshot_error(self, generation: int, error: Exception) -> None:
        with self._lock:
            if generation != self._generation:
                return
        logger.warning("Workout subscription error: %s", error)
        self._set_status(SyncStatus.OFFLINE)

    def _unsubscribe(self) -> None:
        with self._lock:
            self._generation += 1
            subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.cancel()

    def _subscribe(self) -> None:
        remote = self.remote
        if remote is None:
            return
        self._unsubscribe()
        with self._lock:
            generation = self._generation
        subscription = remote.subscribe(
            lambda records: self._apply_snapshot(generation, records),
            lambda error: self._snapshot_error(generation, error),
        )
        with self._lock:
            if generation == self._generation:
                self._subscription = subscription
                return
        subscription.cancel()

    def start(self) -> List[WorkoutRecord]:
        """Load the ledger and, when signed in, follow remote changes."""
        workouts = self.load()
        self._subscribe()
        return workouts

    def sign_in(self, remote: LedgerClient) -> List[WorkoutRecord]:
        self._unsubscribe()
        self.remote = remote
        return self.start()

    def sign_out(self) -> None:
        self._unsubscribe()
        self.remote = None
        with self._lock:
            self._workouts = []
            self._loaded = False
            self._notify()

    def close(self) -> None:
        self._unsubscribe()
        if self._owns_executor:
            self._executor.shutdown(wait=False)
