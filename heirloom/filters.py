"""Filtering, sorting and searching over an already loaded recipe list."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Mapping, Optional, Tuple

from .models import Meal, Recipe

SHOW_OPTIONS = ("all", "mine", "others")
SORT_OPTIONS = ("recent", "difficulty", "time")
SEARCH_OPTIONS = ("title", "ingredient", "category")

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class RecipeFilters:
    show_mine: str = "all"
    category: str = "all"
    difficulty: str = "all"
    sort_by: str = "recent"

    @classmethod
    def from_args(cls, args: Mapping[str, str]) -> "RecipeFilters":
        show_mine = args.get("show", "all")
        sort_by = args.get("sort", "recent")
        difficulty = args.get("difficulty", "all")
        category = (args.get("category") or "all").strip().lower()

        if difficulty != "all" and not (difficulty.isdigit() and 1 <= int(difficulty) <= 5):
            difficulty = "all"

        return cls(
            show_mine=show_mine if show_mine in SHOW_OPTIONS else "all",
            category=category or "all",
            difficulty=difficulty,
            sort_by=sort_by if sort_by in SORT_OPTIONS else "recent",
        )

    def matches(self, recipe: Recipe, user_email: Optional[str]) -> bool:
        if self.show_mine == "mine" and recipe.created_by != user_email:
            return False
        if self.show_mine == "others" and recipe.created_by == user_email:
            return False
        if self.category != "all" and self.category not in recipe.categories:
            return False
        if self.difficulty != "all" and recipe.difficulty_level != int(self.difficulty):
            return False
        return True


def _created_key(recipe: Recipe) -> datetime:
    created = recipe.created_date
    if created is None:
        return _OLDEST
    if created.tzinfo is None:
        return created.replace(tzinfo=timezone.utc)
    return created


def sort_recipes(recipes: Iterable[Recipe], sort_by: str) -> List[Recipe]:
    if sort_by == "recent":
        return sorted(recipes, key=_created_key, reverse=True)
    if sort_by == "difficulty":
        return sorted(recipes, key=lambda recipe: recipe.difficulty_level or 0)
    if sort_by == "time":
        return sorted(recipes, key=lambda recipe: recipe.estimated_time or 0)
    return list(recipes)


def filter_recipes(
    recipes: Iterable[Recipe],
    filters: RecipeFilters,
    user_email: Optional[str] = None,
) -> List[Recipe]:
    """Return the recipes matching ``filters`` ordered by its ``sort_by``."""

    selected = [recipe for recipe in recipes if filters.matches(recipe, user_email)]
    return sort_recipes(selected, filters.sort_by)


def search_recipes(recipes: Iterable[Recipe], query: str, search_by: str = "title") -> List[Recipe]:
    """Case-insensitive substring search over title, ingredients or categories."""

    recipes = list(recipes)
    needle = (query or "").strip().lower()
    if not needle:
        return recipes

    if search_by == "title":
        return [recipe for recipe in recipes if needle in recipe.title.lower()]
    if search_by == "ingredient":
        return [
            recipe
            for recipe in recipes
            if any(needle in ingredient.name.lower() for ingredient in recipe.ingredients)
        ]
    if search_by == "category":
        return [
            recipe
            for recipe in recipes
            if any(needle in category.lower() for category in recipe.categories)
        ]
    return []


def count_by_owner(recipes: Iterable[Recipe], user_email: Optional[str]) -> Tuple[int, int]:
    mine = community = 0
    for recipe in recipes:
        if recipe.created_by == user_email:
            mine += 1
        else:
            community += 1
    return mine, community


def recipes_in_meal(recipes: Iterable[Recipe], meal: Meal) -> List[Recipe]:
    # Ids of recipes deleted since they were added simply match nothing.
    return [recipe for recipe in recipes if recipe.id in meal.recipe_ids]


def recipes_not_in_meal(recipes: Iterable[Recipe], meal: Meal) -> List[Recipe]:
    return [recipe for recipe in recipes if recipe.id not in meal.recipe_ids]


__all__ = [
    "RecipeFilters",
    "SEARCH_OPTIONS",
    "SHOW_OPTIONS",
    "SORT_OPTIONS",
    "count_by_owner",
    "filter_recipes",
    "recipes_in_meal",
    "recipes_not_in_meal",
    "search_recipes",
    "sort_recipes",
]
