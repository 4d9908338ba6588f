from __future__ import annotations

import logging
import os
import uuid
from datetime import timedelta
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, TypeVar

from google.api_core import exceptions as gcloud_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import firestore, storage
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from .models import Meal, Recipe, RecipeStory
from .storage import DEFAULT_ORDER, Backend

logger = logging.getLogger(__name__)

SIGNED_URL_EXPIRATION = timedelta(days=7)
GCS_SCHEME = "gs://"

T = TypeVar("T", Recipe, Meal, RecipeStory)


def _sort_key(value: Any) -> tuple:
    # None sorts before any real value, mixed types fall back to their text.
    if value is None:
        return (0, "")
    if isinstance(value, (int, float)):
        return (1, value)
    return (2, value if not isinstance(value, str) else value.lower())


class FirestoreEntityStore(Generic[T]):
    """One Firestore collection exposed through the entity store contract."""

    def __init__(
        self,
        client: firestore.Client,
        collection_name: str,
        factory: Callable[[str, Dict[str, Any]], T],
    ) -> None:
        self._client = client
        self._collection_name = collection_name
        self._collection = client.collection(collection_name)
        self._factory = factory

    def list(self, order_by: Optional[str] = DEFAULT_ORDER) -> List[T]:
        query = self._collection
        if order_by:
            field, direction = self._parse_order(order_by)
            query = query.order_by(field, direction=direction)
        return [self._to_entity(doc) for doc in query.stream()]

    def filter(self, fields: Mapping[str, Any], order_by: Optional[str] = None) -> List[T]:
        fields = dict(fields)
        entity_id = fields.pop("id", None)

        if entity_id is not None:
            snapshot = self._collection.document(entity_id).get()
            if not snapshot.exists:
                return []
            entity_data = snapshot.to_dict() or {}
            if any(entity_data.get(name) != value for name, value in fields.items()):
                return []
            return [self._factory(snapshot.id, entity_data)]

        query = self._collection
        for name, value in fields.items():
            query = query.where(filter=firestore.FieldFilter(name, "==", value))
        docs = [(doc.id, doc.to_dict() or {}) for doc in query.stream()]

        # Sorted here; a Firestore order_by on top of equality filters needs a composite index.
        if order_by:
            field, direction = self._parse_order(order_by)
            docs.sort(
                key=lambda item: _sort_key(item[1].get(field)),
                reverse=direction == firestore.Query.DESCENDING,
            )
        return [self._factory(doc_id, data) for doc_id, data in docs]

    def get(self, entity_id: str) -> T:
        snapshot = self._collection.document(entity_id).get()

        if not snapshot.exists:
            raise KeyError(f"{self._collection_name} '{entity_id}' does not exist.")

        return self._to_entity(snapshot)

    def create(self, entity: T, *, created_by: Optional[str]) -> T:
        doc = entity.to_document()
        doc["created_by"] = created_by
        doc["created_date"] = firestore.SERVER_TIMESTAMP

        doc_ref = self._collection.document()
        doc_ref.set(doc)
        logger.info("Created %s/%s", self._collection_name, doc_ref.id)

        return self._to_entity(doc_ref.get())

    def update(self, entity_id: str, entity: T) -> T:
        doc_ref = self._collection.document(entity_id)
        snapshot = doc_ref.get()

        if not snapshot.exists:
            raise KeyError(f"{self._collection_name} '{entity_id}' does not exist.")

        current = snapshot.to_dict() or {}
        doc = entity.to_document()
        doc["created_by"] = current.get("created_by")
        doc["created_date"] = current.get("created_date")

        # Full document replace: fields missing from ``doc`` are dropped.
        doc_ref.set(doc)
        logger.info("Updated %s/%s", self._collection_name, entity_id)

        return self._to_entity(doc_ref.get())

    def delete(self, entity_id: str) -> None:
        doc_ref = self._collection.document(entity_id)
        snapshot = doc_ref.get()

        if not snapshot.exists:
            raise KeyError(f"{self._collection_name} '{entity_id}' does not exist.")

        doc_ref.delete()
        logger.info("Deleted %s/%s", self._collection_name, entity_id)

    def _to_entity(self, snapshot: Any) -> T:
        return self._factory(snapshot.id, snapshot.to_dict() or {})

    @staticmethod
    def _parse_order(order_by: str) -> tuple[str, str]:
        if order_by.startswith("-"):
            return order_by[1:], firestore.Query.DESCENDING
        return order_by, firestore.Query.ASCENDING


class CloudStorageUploader:
    """Uploads images to a Cloud Storage bucket and resolves their URLs."""

    def __init__(self, client: storage.Client, bucket_name: str) -> None:
        self._client = client
        self._bucket_name = bucket_name
        self._bucket = client.bucket(bucket_name)

    def upload(self, file: FileStorage, *, folder: str = "uploads") -> str:
        if not file or not file.filename:
            raise ValueError("No file was provided for upload.")

        blob_name = self._build_blob_name(folder, file.filename)
        blob = self._bucket.blob(blob_name)

        file.stream.seek(0)
        blob.upload_from_file(file.stream, content_type=file.mimetype)
        logger.info("Uploaded %s to bucket %s", blob_name, self._bucket_name)

        return f"{GCS_SCHEME}{self._bucket_name}/{blob_name}"

    def url_for(self, reference: str) -> str:
        blob_name = self._blob_name(reference)
        if blob_name is None:
            return reference
        return self._get_image_url(self._bucket.blob(blob_name))

    def delete(self, reference: str) -> None:
        blob_name = self._blob_name(reference)
        if blob_name is None:
            return

        try:
            self._bucket.blob(blob_name).delete()
        except gcloud_exceptions.NotFound:
            # The blob may already have been removed manually; ignore.
            pass

    def _blob_name(self, reference: str) -> Optional[str]:
        prefix = f"{GCS_SCHEME}{self._bucket_name}/"
        if not reference or not reference.startswith(prefix):
            return None
        return reference[len(prefix):]

    def _build_blob_name(self, folder: str, filename: str) -> str:
        safe = secure_filename(filename)
        unique = uuid.uuid4().hex
        return f"{folder}/{unique}_{safe}"

    def _get_image_url(self, blob: storage.Blob) -> str:
        try:
            return blob.generate_signed_url(
                version="v4", method="GET", expiration=SIGNED_URL_EXPIRATION
            )
        except (ValueError, TypeError, AttributeError, auth_exceptions.GoogleAuthError):
            # Signing needs credentials with a private key; without them the
            # public URL is the best we can do.
            return blob.public_url


def backend_from_env() -> Backend:
    """Build the Google Cloud backend from environment variables."""

    from .auth import SessionAuth

    project = os.environ.get("GCP_PROJECT")
    bucket_name = os.environ.get("GCS_BUCKET")
    if not bucket_name:
        raise RuntimeError("GCS_BUCKET must be set to store uploaded images.")

    firestore_client = firestore.Client(project=project)
    storage_client = storage.Client(project=project)

    return Backend(
        recipes=FirestoreEntityStore(
            firestore_client,
            os.environ.get("RECIPES_COLLECTION", "recipes"),
            Recipe.from_document,
        ),
        meals=FirestoreEntityStore(
            firestore_client,
            os.environ.get("MEALS_COLLECTION", "meals"),
            Meal.from_document,
        ),
        stories=FirestoreEntityStore(
            firestore_client,
            os.environ.get("STORIES_COLLECTION", "recipe_stories"),
            RecipeStory.from_document,
        ),
        auth=SessionAuth.from_env(),
        uploads=CloudStorageUploader(storage_client, bucket_name),
    )


__all__ = ["CloudStorageUploader", "FirestoreEntityStore", "backend_from_env"]
