"""In-memory stand-ins for the hosted backend used by the tests."""

from __future__ import annotations

import copy
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from heirloom.auth import SessionAuth
from heirloom.models import Ingredient, Meal, Recipe, RecipeStory
from heirloom.storage import Backend

USER_EMAIL = "ada@example.com"
OTHER_EMAIL = "grace@example.com"


class InMemoryEntityStore:
    def __init__(self, to_entity: Callable[[str, Dict[str, Any]], Any]) -> None:
        self._to_entity = to_entity
        self._docs: Dict[str, Dict[str, Any]] = {}
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.calls: List[str] = []
        self.fail_with: Optional[Exception] = None

    def _tick(self) -> datetime:
        self._clock += timedelta(minutes=1)
        return self._clock

    def _check(self, call: str) -> None:
        self.calls.append(call)
        if self.fail_with is not None:
            raise self.fail_with

    def _ordered(self, items: List[tuple], order_by: Optional[str]) -> List[tuple]:
        if not order_by:
            return items
        field = order_by.lstrip("-")
        return sorted(
            items,
            key=lambda item: (item[1].get(field) is not None, item[1].get(field) or 0),
            reverse=order_by.startswith("-"),
        )

    def list(self, order_by: Optional[str] = "-created_date"):
        self._check("list")
        items = self._ordered(list(self._docs.items()), order_by)
        return [self._to_entity(doc_id, copy.deepcopy(data)) for doc_id, data in items]

    def filter(self, fields: Mapping[str, Any], order_by: Optional[str] = None):
        self._check("filter")
        items = [
            (doc_id, data)
            for doc_id, data in self._docs.items()
            if all((doc_id if name == "id" else data.get(name)) == value for name, value in fields.items())
        ]
        items = self._ordered(items, order_by)
        return [self._to_entity(doc_id, copy.deepcopy(data)) for doc_id, data in items]

    def get(self, entity_id: str):
        self._check("get")
        if entity_id not in self._docs:
            raise KeyError(entity_id)
        return self._to_entity(entity_id, copy.deepcopy(self._docs[entity_id]))

    def create(self, entity, *, created_by: Optional[str]):
        self._check("create")
        doc = entity.to_document()
        doc["created_by"] = created_by
        doc["created_date"] = self._tick()
        doc_id = uuid.uuid4().hex
        self._docs[doc_id] = doc
        return self._to_entity(doc_id, copy.deepcopy(doc))

    def update(self, entity_id: str, entity):
        self._check("update")
        if entity_id not in self._docs:
            raise KeyError(entity_id)
        current = self._docs[entity_id]
        doc = entity.to_document()
        doc["created_by"] = current.get("created_by")
        doc["created_date"] = current.get("created_date")
        self._docs[entity_id] = doc
        return self._to_entity(entity_id, copy.deepcopy(doc))

    def delete(self, entity_id: str) -> None:
        self._check("delete")
        if entity_id not in self._docs:
            raise KeyError(entity_id)
        del self._docs[entity_id]

    def documents(self) -> Dict[str, Dict[str, Any]]:
        return self._docs


class InMemoryUploader:
    def __init__(self) -> None:
        self.files: Dict[str, bytes] = {}
        self.deleted: List[str] = []

    def upload(self, file, *, folder: str = "uploads") -> str:
        reference = f"mem://{folder}/{uuid.uuid4().hex}_{file.filename}"
        self.files[reference] = file.stream.read()
        return reference

    def url_for(self, reference: str) -> str:
        if reference.startswith("mem://"):
            return "https://files.example.test/" + reference[len("mem://"):]
        return reference

    def delete(self, reference: str) -> None:
        if self.files.pop(reference, None) is not None:
            self.deleted.append(reference)


def fake_verifier(credential: str) -> Mapping[str, Any]:
    """Accept ``email`` or ``email|Full Name`` as an identity token."""

    if "@" not in credential:
        raise ValueError("Token used too late or malformed.")
    email, _, name = credential.partition("|")
    return {"email": email, "name": name, "email_verified": True}


def make_backend() -> Backend:
    return Backend(
        recipes=InMemoryEntityStore(Recipe.from_document),
        meals=InMemoryEntityStore(Meal.from_document),
        stories=InMemoryEntityStore(RecipeStory.from_document),
        auth=SessionAuth(fake_verifier),
        uploads=InMemoryUploader(),
    )


def login(client, email: str = USER_EMAIL, name: str = "Ada Lovelace"):
    return client.post("/login", data={"credential": f"{email}|{name}", "next": "/recipes"})


def add_recipe(backend: Backend, *, created_by: str = USER_EMAIL, **fields):
    defaults: Dict[str, Any] = dict(
        title="Chocolate Cake",
        full_instructions="1. Mix\n2. Bake",
        ingredients=[Ingredient(name="flour", quantity=2, unit="cup")],
    )
    defaults.update(fields)
    return backend.recipes.create(Recipe(**defaults), created_by=created_by)
