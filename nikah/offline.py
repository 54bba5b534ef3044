"""Offline action queue and local cache.

Writes made while the client has no connectivity are queued and replayed
against the HTTP API once it comes back. Three local stores back it:
  - offline_actions (queued create/update/delete calls)
  - offline_cache (keyed JSON blobs with a TTL in seconds)
  - offline_preferences (small key/value settings, e.g. last_online_time)

Interface Contract:
- cache_data(key, data, ttl) / get_cached_data(key) -> Any | None
- queue_action(type, entity, data, max_retries) -> action id
- sync_pending_actions() -> None (never raises for a failing action)
- get_status() -> dict
- add_status_listener(fn) -> unsubscribe callable
"""

from __future__ import annotations

import logging
import random
import string
import time
from threading import Event, Lock, Thread
from typing import Any, Callable, Optional

import requests
from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from config import API_BASE_URL, OFFLINE_CACHE_TTL, OFFLINE_SYNC_INTERVAL
from nikah.db import Database
from nikah.errors import ErrorType, NikahError, ValidationFailedError
from nikah.models import CachedEntry, OfflineAction, StoredPreference
from nikah.models.offline import OFFLINE_ACTION_TYPES, OFFLINE_ENTITIES

logger = logging.getLogger(__name__)

ENDPOINTS = {
    "profile": "/api/profiles",
    "interest": "/api/interests",
}
METHODS = {
    "create": "POST",
    "update": "PUT",
    "delete": "DELETE",
}
ID_ALPHABET = string.ascii_lowercase + string.digits

StatusListener = Callable[[bool], None]


class OfflineSyncError(NikahError):
    """Raised when a queued action cannot be replayed."""
    error_type = ErrorType.NETWORK


def now_ms() -> int:
    return int(time.time() * 1000)


def new_action_id() -> str:
    suffix = "".join(random.choice(ID_ALPHABET) for _ in range(9))
    return f"action_{now_ms()}_{suffix}"


class OfflineManager:
    """Queue, cache and connectivity tracking for one local database."""

    def __init__(
        self,
        database: Database | None = None,
        *,
        base_url: str = API_BASE_URL,
        http: requests.Session | None = None,
        timeout: int = 15,
    ):
        self.database = database or Database()
        self.base_url = base_url.rstrip("/")
        self.http = http or requests.Session()
        self.timeout = timeout

        self.is_online = True
        self.sync_in_progress = False
        self._listeners: list[StatusListener] = []
        self._lock = Lock()
        self._stop = Event()
        self._thread: Optional[Thread] = None

    def _session(self) -> Session:
        return self.database.session()

    # ==========================================================================
    # Cache
    # ==========================================================================

    def cache_data(self, key: str, data: Any, ttl: float = OFFLINE_CACHE_TTL) -> None:
        with self.database.session_scope() as session:
            session.merge(CachedEntry(key=key, data=data, timestamp=time.time(), ttl=ttl, version=1))

    def get_cached_data(self, key: str) -> Any | None:
        """Cached value for ``key``; expired entries are removed and read as missing."""
        with self.database.session_scope() as session:
            entry = session.get(CachedEntry, key)
            if entry is None:
                return None
            if entry.is_expired(time.time()):
                session.delete(entry)
                logger.debug("[offline] cache entry %s expired", key)
                return None
            return entry.data

    def remove_cached_data(self, key: str) -> None:
        with self.database.session_scope() as session:
            session.execute(delete(CachedEntry).where(CachedEntry.key == key))

    def clear_expired_cache(self) -> int:
        now = time.time()
        with self.database.session_scope() as session:
            expired = [e for e in session.scalars(select(CachedEntry)) if e.is_expired(now)]
            for entry in expired:
                session.delete(entry)
        if expired:
            logger.info("[offline] cleared %d expired cache entries", len(expired))
        return len(expired)

    # ==========================================================================
    # Action queue
    # ==========================================================================

    def queue_action(self, type: str, entity: str, data: dict[str, Any] | None = None, max_retries: int = 3) -> str:
        """Store an action for later replay and try to sync right away when online.

        Args:
            type: create, update or delete
            entity: profile, interest, notification or message
            data: request body; update/delete need an ``id`` key
            max_retries: attempts before the action is dropped

        Returns:
            The generated action id.
        """
        if type not in OFFLINE_ACTION_TYPES:
            raise ValidationFailedError(f"Unknown action type: {type}")
        if entity not in OFFLINE_ENTITIES:
            raise ValidationFailedError(f"Unknown entity: {entity}")

        action_id = new_action_id()
        with self.database.session_scope() as session:
            session.add(OfflineAction(
                id=action_id,
                type=type,
                entity=entity,
                data=data or {},
                timestamp=now_ms(),
                retry_count=0,
                max_retries=max_retries,
            ))
        logger.info("[offline] queued %s %s as %s", type, entity, action_id)

        if self.is_online:
            self.sync_pending_actions()
        return action_id

    def get_pending_actions(self) -> list[OfflineAction]:
        with self._session() as session:
            return list(session.scalars(select(OfflineAction).order_by(OfflineAction.timestamp.asc())))

    def remove_action(self, action_id: str) -> None:
        with self.database.session_scope() as session:
            session.execute(delete(OfflineAction).where(OfflineAction.id == action_id))

    def sync_pending_actions(self) -> None:
        """Replay queued actions oldest first.

        A failing action has its retry count bumped; once it reaches
        max_retries the action is dropped. Skipped while offline or while
        another sync is running.
        """
        with self._lock:
            if self.sync_in_progress or not self.is_online:
                return
            self.sync_in_progress = True

        try:
            actions = self.get_pending_actions()
            if actions:
                logger.info("[offline] syncing %d pending action(s)", len(actions))
            for action in actions:
                try:
                    self.execute_action(action)
                    self.remove_action(action.id)
                    logger.info("[offline] synced %s", action.id)
                except Exception as e:
                    self._record_failure(action, e)
        finally:
            with self._lock:
                self.sync_in_progress = False

    def _record_failure(self, action: OfflineAction, error: Exception) -> None:
        retries = action.retry_count + 1
        if retries >= action.max_retries:
            self.remove_action(action.id)
            logger.error("[offline] dropping %s after %d attempt(s): %s", action.id, retries, error)
            return
        with self.database.session_scope() as session:
            stored = session.get(OfflineAction, action.id)
            if stored is not None:
                stored.retry_count = retries
        logger.warning("[offline] %s failed (attempt %d/%d): %s", action.id, retries, action.max_retries, error)

    def execute_action(self, action: OfflineAction) -> requests.Response:
        """Send one queued action to the API.

        Raises:
            OfflineSyncError: Unknown entity or a non-2xx response
        """
        endpoint = ENDPOINTS.get(action.entity)
        if endpoint is None:
            raise OfflineSyncError(f"Unknown entity: {action.entity}")

        data = action.data or {}
        url = f"{self.base_url}{endpoint}"
        if action.type in ("update", "delete"):
            url = f"{url}/{data.get('id', '')}"
        body = None if action.type == "delete" else data

        response = self.http.request(METHODS[action.type], url, json=body, timeout=self.timeout)
        if not response.ok:
            raise OfflineSyncError(f"HTTP {response.status_code}: {response.reason}")
        return response

    # ==========================================================================
    # Connectivity
    # ==========================================================================

    def set_online(self, online: bool) -> None:
        """Record a connectivity change; coming back online triggers a sync."""
        changed = online != self.is_online
        self.is_online = online
        if online:
            self.set_preference("last_online_time", now_ms())
        if not changed:
            return
        logger.info("[offline] connection %s", "restored" if online else "lost")
        self._notify_listeners(online)
        if online:
            self.sync_pending_actions()

    def add_status_listener(self, listener: StatusListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify_listeners(self, online: bool) -> None:
        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception as e:
                logger.warning("[offline] status listener failed: %s", e)

    def get_status(self) -> dict[str, Any]:
        with self._session() as session:
            pending = session.scalar(select(func.count(OfflineAction.id))) or 0
        return {
            "is_online": self.is_online,
            "last_online": self.get_preference("last_online_time"),
            "pending_actions": pending,
            "sync_in_progress": self.sync_in_progress,
        }

    # ==========================================================================
    # Preferences and housekeeping
    # ==========================================================================

    def set_preference(self, key: str, value: Any) -> None:
        with self.database.session_scope() as session:
            session.merge(StoredPreference(key=key, value=value))

    def get_preference(self, key: str, default: Any = None) -> Any:
        with self._session() as session:
            pref = session.get(StoredPreference, key)
            return default if pref is None else pref.value

    def get_storage_usage(self) -> dict[str, int]:
        with self._session() as session:
            actions = session.scalar(select(func.count(OfflineAction.id))) or 0
            cache = session.scalar(select(func.count(CachedEntry.key))) or 0
        return {"actions": actions, "cache": cache, "total": actions + cache}

    def clear_all_data(self) -> None:
        with self.database.session_scope() as session:
            session.execute(delete(OfflineAction))
            session.execute(delete(CachedEntry))
            session.execute(delete(StoredPreference))
        logger.info("[offline] cleared all local data")

    def start_periodic_sync(self, interval: float = OFFLINE_SYNC_INTERVAL) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()

        def run() -> None:
            while not self._stop.wait(interval):
                if self.is_online:
                    self.sync_pending_actions()

        self._thread = Thread(target=run, name="offline-sync", daemon=True)
        self._thread.start()
        logger.info("[offline] periodic sync every %ss", interval)

    def stop_periodic_sync(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=1)
            self._thread = None
