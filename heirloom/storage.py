from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Hashable, List, Mapping, Optional, Protocol, Tuple, TypeVar

from werkzeug.datastructures import FileStorage

from .models import Meal, Recipe, RecipeStory, User

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ORDER = "-created_date"
DEFAULT_CACHE_TTL = 30.0


class EntityStore(Protocol[T]):
    """Protocol describing one entity collection of the hosted backend."""

    def list(self, order_by: Optional[str] = DEFAULT_ORDER) -> List[T]:
        """Return every stored entity, ordered by ``order_by`` (``-`` prefix for descending)."""

    def filter(self, fields: Mapping[str, Any], order_by: Optional[str] = None) -> List[T]:
        """Return the entities whose document fields equal ``fields``."""

    def get(self, entity_id: str) -> T:
        """Return a single entity or raise :class:`KeyError` if missing."""

    def create(self, entity: T, *, created_by: Optional[str]) -> T:
        """Persist a new entity and return it with id, owner and creation date assigned."""

    def update(self, entity_id: str, entity: T) -> T:
        """Replace the stored document and return the new representation."""

    def delete(self, entity_id: str) -> None:
        """Remove an entity or raise :class:`KeyError` if missing."""


class AuthProvider(Protocol):
    def is_authenticated(self) -> bool:
        """Return whether the current request belongs to a signed in user."""

    def me(self) -> User:
        """Return the signed in user or raise :class:`LookupError`."""

    def login_url(self, return_path: str) -> str:
        """Return where to send an anonymous user who wants ``return_path``."""

    def logout(self) -> None:
        """Forget the signed in user."""


class FileUploader(Protocol):
    def upload(self, file: FileStorage, *, folder: str = "uploads") -> str:
        """Store ``file`` and return a reference that can be saved on an entity."""

    def url_for(self, reference: str) -> str:
        """Resolve a stored reference into a URL a browser can load."""

    def delete(self, reference: str) -> None:
        """Remove an uploaded file; references this uploader did not create are ignored."""


class QueryCache:
    """In-memory cache of backend query results keyed by entity type.

    Entries expire after ``ttl`` seconds so writes made by other processes
    show up eventually. Each entity type carries a generation number that
    :meth:`invalidate` bumps; a load that overlapped an invalidation is
    returned to its caller but not stored.
    """

    def __init__(self, ttl: Optional[float] = DEFAULT_CACHE_TTL, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: Dict[Tuple[str, Hashable], Tuple[float, Any]] = {}
        self._generations: Dict[str, int] = {}
        self._epoch = 0
        self._ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()

    def _generation(self, entity_type: str) -> Tuple[int, int]:
        return self._epoch, self._generations.get(entity_type, 0)

    def _is_fresh(self, stored_at: float) -> bool:
        return self._ttl is None or self._clock() - stored_at < self._ttl

    def get_or_load(self, entity_type: str, key: Hashable, loader: Callable[[], Any]) -> Any:
        cache_key = (entity_type, key)
        with self._lock:
            entry = self._entries.get(cache_key)
            if entry is not None and self._is_fresh(entry[0]):
                return entry[1]
            generation = self._generation(entity_type)

        value = loader()

        with self._lock:
            if self._generation(entity_type) == generation:
                self._entries[cache_key] = (self._clock(), value)
        return value

    def invalidate(self, entity_type: str) -> None:
        with self._lock:
            self._generations[entity_type] = self._generations.get(entity_type, 0) + 1
            stale = [key for key in self._entries if key[0] == entity_type]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug("Invalidated %d cached %s queries", len(stale), entity_type)

    def clear(self) -> None:
        with self._lock:
            self._epoch += 1
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def _freeze(fields: Mapping[str, Any]) -> Tuple[Tuple[str, Any], ...]:
    return tuple(sorted((name, repr(value)) for name, value in fields.items()))


class CachedEntityStore(Generic[T]):
    """Read-through cache in front of an :class:`EntityStore`.

    Reads are served from the cache until a create, update or delete on the
    same entity type goes through this store, which drops every cached query
    of that type.
    """

    def __init__(self, store: EntityStore[T], cache: QueryCache, entity_type: str) -> None:
        self._store = store
        self._cache = cache
        self._entity_type = entity_type

    @property
    def entity_type(self) -> str:
        return self._entity_type

    def list(self, order_by: Optional[str] = DEFAULT_ORDER) -> List[T]:
        return list(
            self._cache.get_or_load(
                self._entity_type, ("list", order_by), lambda: list(self._store.list(order_by))
            )
        )

    def filter(self, fields: Mapping[str, Any], order_by: Optional[str] = None) -> List[T]:
        key = ("filter", _freeze(fields), order_by)
        return list(
            self._cache.get_or_load(
                self._entity_type, key, lambda: list(self._store.filter(fields, order_by))
            )
        )

    def get(self, entity_id: str) -> T:
        return self._cache.get_or_load(
            self._entity_type, ("get", entity_id), lambda: self._store.get(entity_id)
        )

    def create(self, entity: T, *, created_by: Optional[str]) -> T:
        try:
            return self._store.create(entity, created_by=created_by)
        finally:
            self._cache.invalidate(self._entity_type)

    def update(self, entity_id: str, entity: T) -> T:
        try:
            return self._store.update(entity_id, entity)
        finally:
            self._cache.invalidate(self._entity_type)

    def delete(self, entity_id: str) -> None:
        try:
            self._store.delete(entity_id)
        finally:
            self._cache.invalidate(self._entity_type)


@dataclass
class Backend:
    """Everything the web layer needs from the hosted backend."""

    recipes: EntityStore[Recipe]
    meals: EntityStore[Meal]
    stories: EntityStore[RecipeStory]
    auth: AuthProvider
    uploads: FileUploader

    def with_cache(self, cache: QueryCache) -> "Backend":
        return Backend(
            recipes=CachedEntityStore(self.recipes, cache, "recipe"),
            meals=CachedEntityStore(self.meals, cache, "meal"),
            stories=CachedEntityStore(self.stories, cache, "story"),
            auth=self.auth,
            uploads=self.uploads,
        )


__all__ = [
    "AuthProvider",
    "Backend",
    "CachedEntityStore",
    "DEFAULT_CACHE_TTL",
    "DEFAULT_ORDER",
    "EntityStore",
    "FileUploader",
    "QueryCache",
]
