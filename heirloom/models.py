from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from .errors import ValidationError

DEFAULT_DIFFICULTY = 3
DEFAULT_ESTIMATED_TIME = 30
DEFAULT_SERVINGS = 4

CATEGORIES = [
    "vegan",
    "vegetarian",
    "gluten-free",
    "dairy-free",
    "dessert",
    "main-course",
    "appetizer",
    "soup",
    "salad",
    "breakfast",
    "lunch",
    "dinner",
    "quick-meal",
    "comfort-food",
    "healthy",
]

FILTER_CATEGORIES = CATEGORIES[:11]


def normalize_tags(tags: Iterable[str]) -> List[str]:
    """Trim, lowercase and de-duplicate tags keeping their first position."""

    seen: List[str] = []
    for tag in tags:
        cleaned = (tag or "").strip().lower()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


def _as_int(value: Any, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def _as_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def _as_list(value: Any) -> list:
    return list(value) if isinstance(value, (list, tuple)) else []


def _require(**fields: Any) -> None:
    missing = [name for name, value in fields.items() if not str(value or "").strip()]
    if missing:
        raise ValidationError(missing)


@dataclass
class User:
    email: str
    full_name: str = ""

    @property
    def display_name(self) -> str:
        return self.full_name or self.email.split("@")[0]


@dataclass
class Ingredient:
    name: str
    quantity: float = 1.0
    unit: str = "cup"

    @classmethod
    def from_document(cls, data: Any) -> "Ingredient":
        if isinstance(data, str):
            return cls(name=data.strip())
        data = data if isinstance(data, dict) else {}
        try:
            quantity = float(data.get("quantity", 1))
        except (TypeError, ValueError):
            quantity = 1.0
        return cls(
            name=str(data.get("name") or ""),
            quantity=quantity,
            unit=str(data.get("unit") or ""),
        )

    def to_document(self) -> Dict[str, Any]:
        return {"name": self.name, "quantity": self.quantity, "unit": self.unit}


@dataclass
class Recipe:
    """Domain object representing a stored recipe."""

    title: str
    full_instructions: str
    short_description: str = ""
    ingredients: List[Ingredient] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    difficulty_level: int = DEFAULT_DIFFICULTY
    estimated_time: int = DEFAULT_ESTIMATED_TIME
    servings: int = DEFAULT_SERVINGS
    media_urls: List[str] = field(default_factory=list)
    id: Optional[str] = None
    created_by: Optional[str] = None
    created_date: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "Recipe":
        difficulty = _as_int(data.get("difficultyLevel"), DEFAULT_DIFFICULTY)
        return cls(
            id=doc_id,
            title=data.get("title") or "",
            short_description=data.get("shortDescription") or "",
            full_instructions=data.get("fullInstructions") or "",
            ingredients=[Ingredient.from_document(item) for item in _as_list(data.get("ingredients"))],
            categories=normalize_tags(_as_list(data.get("categories"))),
            difficulty_level=min(difficulty, 5),
            estimated_time=_as_int(data.get("estimatedTime"), DEFAULT_ESTIMATED_TIME),
            servings=_as_int(data.get("servings"), DEFAULT_SERVINGS),
            media_urls=[str(url) for url in _as_list(data.get("mediaUrls")) if url],
            created_by=data.get("created_by"),
            created_date=_as_datetime(data.get("created_date")),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "shortDescription": self.short_description,
            "fullInstructions": self.full_instructions,
            "ingredients": [ingredient.to_document() for ingredient in self.ingredients],
            "categories": list(self.categories),
            "difficultyLevel": self.difficulty_level,
            "estimatedTime": self.estimated_time,
            "servings": self.servings,
            "mediaUrls": list(self.media_urls),
        }

    def validate(self) -> None:
        _require(title=self.title, fullInstructions=self.full_instructions)

    def is_owned_by(self, user: Optional[User]) -> bool:
        return user is not None and self.created_by == user.email

    @property
    def author_display(self) -> str:
        if not self.created_by:
            return "Anonymous"
        return self.created_by.split("@")[0]

    @property
    def cover_image(self) -> Optional[str]:
        return self.media_urls[0] if self.media_urls else None


@dataclass
class Meal:
    name: str
    description: str = ""
    recipe_ids: List[str] = field(default_factory=list)
    id: Optional[str] = None
    created_by: Optional[str] = None
    created_date: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "Meal":
        recipe_ids: List[str] = []
        for recipe_id in _as_list(data.get("recipeIds")):
            if recipe_id and recipe_id not in recipe_ids:
                recipe_ids.append(str(recipe_id))
        return cls(
            id=doc_id,
            name=data.get("name") or "",
            description=data.get("description") or "",
            recipe_ids=recipe_ids,
            created_by=data.get("created_by"),
            created_date=_as_datetime(data.get("created_date")),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "recipeIds": list(self.recipe_ids),
        }

    def validate(self) -> None:
        _require(name=self.name)

    def with_recipe(self, recipe_id: str) -> "Meal":
        if recipe_id in self.recipe_ids:
            return self
        return Meal(
            id=self.id,
            name=self.name,
            description=self.description,
            recipe_ids=[*self.recipe_ids, recipe_id],
            created_by=self.created_by,
            created_date=self.created_date,
        )

    def without_recipe(self, recipe_id: str) -> "Meal":
        return Meal(
            id=self.id,
            name=self.name,
            description=self.description,
            recipe_ids=[existing for existing in self.recipe_ids if existing != recipe_id],
            created_by=self.created_by,
            created_date=self.created_date,
        )


@dataclass
class RecipeStory:
    recipe_id: str
    text: str
    author_name: str = ""
    media_url: Optional[str] = None
    id: Optional[str] = None
    created_by: Optional[str] = None
    created_date: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "RecipeStory":
        return cls(
            id=doc_id,
            recipe_id=data.get("recipeId") or "",
            text=data.get("text") or "",
            author_name=data.get("authorName") or "",
            media_url=data.get("mediaUrl") or None,
            created_by=data.get("created_by"),
            created_date=_as_datetime(data.get("created_date")),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "recipeId": self.recipe_id,
            "text": self.text,
            "authorName": self.author_name,
            "mediaUrl": self.media_url,
        }

    def validate(self) -> None:
        _require(recipeId=self.recipe_id, text=self.text)

    @property
    def author_display(self) -> str:
        return self.author_name or "Anonymous"

    @property
    def initial(self) -> str:
        source = self.author_name or self.created_by or "A"
        return source[0].upper()


__all__ = [
    "CATEGORIES",
    "FILTER_CATEGORIES",
    "Ingredient",
    "Meal",
    "Recipe",
    "RecipeStory",
    "User",
    "normalize_tags",
]
