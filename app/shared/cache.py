"""Chat list cache.

Owned by the application (``app.state.chat_cache``) and handed to services
through a dependency. Holds, per user, the rendered chat list pages and, per
chat, the last known title with its owner. ``ChatService`` is responsible
for invalidation: any create, delete, rename, project move or derived title
drops the owner's list pages. Expired titles are swept on every title write.
"""

import logging
import threading
import time
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Any
from uuid import UUID

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    value: Any
    expires_at: float


class ChatListCache:
    def __init__(self, ttl: float = 300, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._lists: dict[UUID, dict[Hashable, _Entry]] = {}
        self._titles: dict[UUID, _Entry] = {}
        self._lock = threading.Lock()

    def _fresh(self, entry: _Entry | None) -> bool:
        return entry is not None and entry.expires_at > self._clock()

    def get_list(self, user_id: UUID, key: Hashable) -> Any | None:
        with self._lock:
            entry = self._lists.get(user_id, {}).get(key)
            if self._fresh(entry):
                return entry.value
            if entry is not None:
                del self._lists[user_id][key]
            return None

    def set_list(self, user_id: UUID, key: Hashable, value: Any) -> None:
        with self._lock:
            self._lists.setdefault(user_id, {})[key] = _Entry(value, self._clock() + self.ttl)

    def invalidate_user(self, user_id: UUID) -> None:
        with self._lock:
            if self._lists.pop(user_id, None) is not None:
                logger.debug(f"Chat list cache invalidated for user {user_id}")

    def get_title(self, chat_id: UUID, user_id: UUID) -> str | None:
        """Cached title of ``chat_id``, only when it belongs to ``user_id``."""
        with self._lock:
            entry = self._titles.get(chat_id)
            if not self._fresh(entry):
                self._titles.pop(chat_id, None)
                return None
            owner, title = entry.value
            return title if owner == user_id else None

    def set_title(self, chat_id: UUID, user_id: UUID, title: str) -> None:
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._titles.items() if entry.expires_at <= now]
            for key in expired:
                del self._titles[key]
            self._titles[chat_id] = _Entry((user_id, title), now + self.ttl)

    def drop_title(self, chat_id: UUID) -> None:
        with self._lock:
            self._titles.pop(chat_id, None)

    def clear(self) -> None:
        with self._lock:
            self._lists.clear()
            self._titles.clear()
