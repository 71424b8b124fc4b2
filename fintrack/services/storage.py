"""Local persistent storage and the Session Record kept inside it.

The browser-facing app keeps exactly one Session Record per client: the
credential token and the denormalised user JSON, stored under two well-known
keys. Storage backends only know about string keys and string values, which
mirrors the contract of a browser's local storage.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ..models.storage import StoredItem

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"
USER_KEY = "user"


class Storage(Protocol):
    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryStorage:
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.items: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> str | None:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.items[key] = value

    def remove_item(self, key: str) -> None:
        self.items.pop(key, None)


class DatabaseStorage:
    """Storage rows scoped to one browser client id."""

    def __init__(self, session_factory: Callable[[], Session], client_id: str) -> None:
        self._session_factory = session_factory
        self.client_id = client_id

    def _lookup(self, db: Session, key: str) -> StoredItem | None:
        stmt = select(StoredItem).where(StoredItem.client_id == self.client_id, StoredItem.key == key)
        return db.scalars(stmt).first()

    def get_item(self, key: str) -> str | None:
        with self._session_factory() as db:
            item = self._lookup(db, key)
            return item.value if item else None

    def set_item(self, key: str, value: str) -> None:
        with self._session_factory() as db:
            item = self._lookup(db, key)
            if item is None:
                db.add(StoredItem(client_id=self.client_id, key=key, value=value))
            else:
                item.value = value
            db.commit()

    def remove_item(self, key: str) -> None:
        with self._session_factory() as db:
            db.execute(delete(StoredItem).where(StoredItem.client_id == self.client_id, StoredItem.key == key))
            db.commit()


@dataclass
class SessionRecord:
    token: str
    user: dict[str, Any] = field(default_factory=dict)

    @property
    def username(self) -> str | None:
        value = self.user.get("username")
        return str(value) if value is not None else None


class SessionStore:
    """Explicit get/set/clear access to the Session Record."""

    def __init__(self, storage: Storage) -> None:
        self.storage = storage

    @property
    def token(self) -> str | None:
        return self.storage.get_item(TOKEN_KEY) or None

    @property
    def user(self) -> dict[str, Any] | None:
        raw = self.storage.get_item(USER_KEY)
        if not raw:
            return None
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Stored user JSON is unreadable; ignoring it")
            return None
        return value if isinstance(value, dict) else None

    def get(self) -> SessionRecord | None:
        token = self.token
        if not token:
            return None
        return SessionRecord(token=token, user=self.user or {})

    def set(self, token: str, user: dict[str, Any]) -> SessionRecord:
        self.storage.set_item(TOKEN_KEY, token)
        self.storage.set_item(USER_KEY, json.dumps(user))
        return SessionRecord(token=token, user=dict(user))

    def clear(self) -> None:
        self.storage.remove_item(TOKEN_KEY)
        self.storage.remove_item(USER_KEY)
