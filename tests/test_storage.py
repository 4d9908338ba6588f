from __future__ import annotations

import threading

import pytest

from fakes import InMemoryEntityStore
from heirloom.models import Meal, Recipe
from heirloom.storage import CachedEntityStore, QueryCache


@pytest.fixture
def store():
    return InMemoryEntityStore(Recipe.from_document)


@pytest.fixture
def cache():
    return QueryCache()


@pytest.fixture
def cached(store, cache):
    return CachedEntityStore(store, cache, "recipe")


def test_reads_are_served_from_cache(store, cached):
    store.create(Recipe(title="Soup", full_instructions="Boil."), created_by="a@example.com")

    first = cached.list()
    second = cached.list()

    assert [recipe.title for recipe in first] == ["Soup"]
    assert [recipe.title for recipe in second] == ["Soup"]
    assert store.calls.count("list") == 1


def test_writes_invalidate_cached_queries(store, cached):
    cached.list()
    created = cached.create(Recipe(title="Stew", full_instructions="Simmer."), created_by="a@example.com")

    assert [recipe.title for recipe in cached.list()] == ["Stew"]
    assert cached.get(created.id).title == "Stew"

    cached.update(created.id, Recipe(title="Beef Stew", full_instructions="Simmer."))
    assert cached.get(created.id).title == "Beef Stew"

    cached.delete(created.id)
    assert cached.list() == []
    with pytest.raises(KeyError):
        cached.get(created.id)


def test_failed_write_still_invalidates(store, cached, cache):
    cached.list()
    assert len(cache) == 1

    with pytest.raises(KeyError):
        cached.delete("missing")

    assert len(cache) == 0


def test_filters_are_cached_per_arguments(store, cached):
    store.create(Recipe(title="Soup", full_instructions="Boil."), created_by="a@example.com")
    store.create(Recipe(title="Pie", full_instructions="Bake."), created_by="b@example.com")

    assert [r.title for r in cached.filter({"created_by": "a@example.com"})] == ["Soup"]
    assert [r.title for r in cached.filter({"created_by": "b@example.com"})] == ["Pie"]
    cached.filter({"created_by": "a@example.com"})

    assert store.calls.count("filter") == 2


def test_invalidation_is_scoped_to_entity_type(store, cache, cached):
    meals = CachedEntityStore(InMemoryEntityStore(Meal.from_document), cache, "meal")
    cached.list()
    meals.list()

    meals.create(Meal(name="Brunch"), created_by="a@example.com")

    assert len(cache) == 1
    cached.list()
    assert store.calls.count("list") == 1


def test_callers_cannot_mutate_cached_lists(cached, store):
    store.create(Recipe(title="Soup", full_instructions="Boil."), created_by="a@example.com")

    cached.list().clear()

    assert len(cached.list()) == 1


class SlowGetStore(InMemoryEntityStore):
    """Holds ``get`` open until released, once ``hold`` is set."""

    def __init__(self, to_entity):
        super().__init__(to_entity)
        self.hold = False
        self.loading = threading.Event()
        self.release = threading.Event()

    def get(self, entity_id):
        entity = super().get(entity_id)
        if self.hold:
            self.loading.set()
            self.release.wait(timeout=5)
        return entity


def test_load_overlapping_a_write_is_not_cached():
    store = SlowGetStore(Recipe.from_document)
    cached = CachedEntityStore(store, QueryCache(), "recipe")
    recipe = store.create(Recipe(title="Old", full_instructions="Boil."), created_by="a@example.com")

    results = []
    store.hold = True
    reader = threading.Thread(target=lambda: results.append(cached.get(recipe.id)))
    reader.start()
    assert store.loading.wait(timeout=5)

    store.hold = False
    cached.update(recipe.id, Recipe(title="New", full_instructions="Boil."))
    store.release.set()
    reader.join(timeout=5)

    assert results[0].title == "Old"
    assert cached.get(recipe.id).title == "New"


def test_clear_drops_loads_in_flight():
    cache = QueryCache()

    def load():
        cache.clear()
        return "stale"

    assert cache.get_or_load("recipe", "key", load) == "stale"
    assert len(cache) == 0


def test_entries_expire_after_ttl(store):
    now = [100.0]
    cached = CachedEntityStore(store, QueryCache(ttl=30, clock=lambda: now[0]), "recipe")

    cached.list()
    now[0] += 29
    cached.list()
    assert store.calls.count("list") == 1

    now[0] += 1
    cached.list()
    assert store.calls.count("list") == 2


def test_cache_without_ttl_keeps_entries(store):
    now = [0.0]
    cached = CachedEntityStore(store, QueryCache(ttl=None, clock=lambda: now[0]), "recipe")

    cached.list()
    now[0] += 10_000
    cached.list()

    assert store.calls.count("list") == 1
