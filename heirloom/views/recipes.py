from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from flask import (
    Blueprint,
    abort,
    current_app,
    flash,
    redirect,
    render_template,
    request,
    session,
    url_for,
)
from werkzeug.datastructures import FileStorage

from .. import allowed_image
from ..auth import current_user, login_required
from ..errors import ValidationError
from ..filters import (
    SEARCH_OPTIONS,
    RecipeFilters,
    count_by_owner,
    filter_recipes,
    search_recipes,
)
from ..instructions import CookingProgress, parse_steps
from ..models import (
    CATEGORIES,
    DEFAULT_DIFFICULTY,
    DEFAULT_ESTIMATED_TIME,
    DEFAULT_SERVINGS,
    FILTER_CATEGORIES,
    Ingredient,
    Recipe,
    RecipeStory,
    normalize_tags,
)
from ..storage import Backend

logger = logging.getLogger(__name__)

bp = Blueprint("recipes", __name__)

UNSUPPORTED_IMAGE = "Unsupported image format. Allowed formats: PNG, JPG, JPEG, GIF, WEBP."
FIELD_LABELS = {"title": "a recipe title", "fullInstructions": "instructions"}


def _backend() -> Backend:
    return current_app.config["BACKEND"]


def _load_recipe(recipe_id: str) -> Recipe:
    try:
        return _backend().recipes.get(recipe_id)
    except KeyError:
        abort(404)


def _int_field(name: str, default: int, *, upper: Optional[int] = None) -> int:
    try:
        value = int(request.form.get(name, ""))
    except ValueError:
        return default
    if value < 1:
        return default
    return min(value, upper) if upper else value


def _ingredients_from_form() -> List[Ingredient]:
    names = request.form.getlist("ingredient_name")
    quantities = request.form.getlist("ingredient_quantity")
    units = request.form.getlist("ingredient_unit")

    ingredients = []
    for index, name in enumerate(names):
        name = name.strip()
        if not name:
            continue
        raw_quantity = quantities[index] if index < len(quantities) else ""
        try:
            quantity = float(raw_quantity) if raw_quantity.strip() else 1.0
        except ValueError:
            quantity = 0.0
        if quantity <= 0:
            raise ValueError(f"Please give '{name}' a quantity greater than zero.")
        unit = units[index].strip() if index < len(units) else ""
        ingredients.append(Ingredient(name=name, quantity=quantity, unit=unit))
    return ingredients


def _images_from_form() -> List[FileStorage]:
    return [image for image in request.files.getlist("images") if image and image.filename]


def _recipe_from_form(existing: Optional[Recipe] = None) -> Tuple[Recipe, Optional[str]]:
    """Build a recipe from the editor form and return it with any input error.

    Photo references are only kept when ``existing`` already has them; new
    photos arrive as uploads, never as form values.
    """

    error = None
    try:
        ingredients = _ingredients_from_form()
    except ValueError as exc:
        ingredients = []
        error = str(exc)

    custom_tags = request.form.get("custom_tags", "").split(",")
    submitted = set(request.form.getlist("media_urls"))
    removed = set(request.form.getlist("remove_media"))
    stored = existing.media_urls if existing is not None else []

    recipe = Recipe(
        title=request.form.get("title", "").strip(),
        short_description=request.form.get("short_description", "").strip(),
        full_instructions=request.form.get("full_instructions", "").strip(),
        ingredients=ingredients,
        categories=normalize_tags([*request.form.getlist("categories"), *custom_tags]),
        difficulty_level=_int_field("difficulty_level", DEFAULT_DIFFICULTY, upper=5),
        estimated_time=_int_field("estimated_time", DEFAULT_ESTIMATED_TIME),
        servings=_int_field("servings", DEFAULT_SERVINGS),
        media_urls=[url for url in stored if url in submitted and url not in removed],
    )
    return recipe, error


def _validation_message(exc: ValidationError) -> str:
    labels = [FIELD_LABELS.get(name, name) for name in exc.missing]
    return "Please provide " + " and ".join(labels) + "."


def _render_editor(recipe: Recipe, *, recipe_id: Optional[str] = None, status: int = 200):
    page_title = f"Edit {recipe.title}" if recipe_id and recipe.title else (
        "Edit recipe" if recipe_id else "Create New Recipe"
    )
    return (
        render_template(
            "recipes/editor.html",
            recipe=recipe,
            recipe_id=recipe_id,
            categories=CATEGORIES,
            custom_tags=[tag for tag in recipe.categories if tag not in CATEGORIES],
            title=page_title,
        ),
        status,
    )


def _discard_uploads(references: List[str]) -> None:
    uploads = _backend().uploads
    for reference in references:
        try:
            uploads.delete(reference)
        except Exception:
            logger.exception("Failed to delete uploaded file %s", reference)


def _save_recipe(existing: Optional[Recipe]):
    backend = _backend()
    user = current_user()
    recipe_id = existing.id if existing is not None else None
    recipe, error = _recipe_from_form(existing)
    images = _images_from_form()

    if error:
        flash(error, "error")
        return _render_editor(recipe, recipe_id=recipe_id, status=400)

    try:
        recipe.validate()
    except ValidationError as exc:
        flash(_validation_message(exc), "error")
        return _render_editor(recipe, recipe_id=recipe_id, status=400)

    if any(not allowed_image(image.filename) for image in images):
        flash(UNSUPPORTED_IMAGE, "error")
        return _render_editor(recipe, recipe_id=recipe_id, status=400)

    dropped = [url for url in existing.media_urls if url not in recipe.media_urls] if existing else []
    uploaded: List[str] = []
    try:
        for image in images:
            uploaded.append(backend.uploads.upload(image, folder="recipes"))
        recipe.media_urls.extend(uploaded)

        if recipe_id:
            saved = backend.recipes.update(recipe_id, recipe)
        else:
            saved = backend.recipes.create(recipe, created_by=user.email)
    except KeyError:
        _discard_uploads(uploaded)
        flash("Recipe not found.", "error")
        return redirect(url_for("recipes.dashboard"))
    except Exception as exc:
        logger.exception("Failed to save recipe")
        _discard_uploads(uploaded)
        recipe.media_urls = [url for url in recipe.media_urls if url not in uploaded]
        flash(f"Failed to save recipe: {exc}", "error")
        return _render_editor(recipe, recipe_id=recipe_id, status=502)

    _discard_uploads(dropped)
    action = "updated" if recipe_id else "saved"
    flash(f"Recipe '{saved.title}' {action}.", "success")
    return redirect(url_for("recipes.view_recipe", recipe_id=saved.id))


def _require_owner(recipe: Recipe):
    if not recipe.is_owned_by(current_user()):
        flash("Only the recipe's author can change it.", "error")
        return redirect(url_for("recipes.view_recipe", recipe_id=recipe.id))
    return None


@bp.get("/recipes")
@login_required
def dashboard() -> str:
    user = current_user()
    recipes = _backend().recipes.list("-created_date")
    filters = RecipeFilters.from_args(request.args)
    visible = filter_recipes(recipes, filters, user.email)
    mine, community = count_by_owner(recipes, user.email)

    return render_template(
        "recipes/dashboard.html",
        recipes=visible,
        total=len(recipes),
        mine_count=mine,
        community_count=community,
        filters=filters,
        categories=FILTER_CATEGORIES,
        title="Community Recipes",
    )


@bp.get("/recipes/new")
@login_required
def new_recipe():
    return _render_editor(Recipe(title="", full_instructions=""))


@bp.post("/recipes")
@login_required
def create_recipe():
    return _save_recipe(None)


@bp.get("/recipes/<recipe_id>")
def view_recipe(recipe_id: str) -> str:
    recipe = _load_recipe(recipe_id)
    stories = _backend().stories.filter({"recipeId": recipe_id}, "-created_date")
    user = current_user()

    return render_template(
        "recipes/view.html",
        recipe=recipe,
        steps=parse_steps(recipe.full_instructions),
        stories=stories,
        is_owner=recipe.is_owned_by(user),
        title=recipe.title,
    )


@bp.get("/recipes/<recipe_id>/edit")
@login_required
def edit_recipe(recipe_id: str):
    recipe = _load_recipe(recipe_id)
    refused = _require_owner(recipe)
    if refused is not None:
        return refused
    return _render_editor(recipe, recipe_id=recipe_id)


@bp.post("/recipes/<recipe_id>")
@login_required
def update_recipe(recipe_id: str):
    try:
        recipe = _backend().recipes.get(recipe_id)
    except KeyError:
        flash("Recipe not found.", "error")
        return redirect(url_for("recipes.dashboard"))

    refused = _require_owner(recipe)
    if refused is not None:
        return refused
    return _save_recipe(recipe)


@bp.post("/recipes/<recipe_id>/delete")
@login_required
def delete_recipe(recipe_id: str):
    backend = _backend()
    try:
        recipe = backend.recipes.get(recipe_id)
    except KeyError:
        flash("Recipe not found.", "error")
        return redirect(url_for("recipes.dashboard"))

    refused = _require_owner(recipe)
    if refused is not None:
        return refused

    try:
        backend.recipes.delete(recipe_id)
    except Exception as exc:  # pragma: no cover - backend failures are reported, not retried
        logger.exception("Failed to delete recipe %s", recipe_id)
        flash(f"Failed to delete recipe: {exc}", "error")
    else:
        _discard_uploads(recipe.media_urls)
        flash("Recipe deleted.", "success")
    return redirect(url_for("recipes.dashboard"))


@bp.post("/recipes/<recipe_id>/stories")
@login_required
def add_story(recipe_id: str):
    backend = _backend()
    recipe = _load_recipe(recipe_id)
    image = request.files.get("image")

    story = RecipeStory(
        recipe_id=recipe.id,
        text=request.form.get("text", "").strip(),
        author_name=request.form.get("author_name", "").strip(),
    )

    try:
        story.validate()
    except ValidationError:
        flash("Please write a story before sharing it.", "error")
        return redirect(url_for("recipes.view_recipe", recipe_id=recipe_id, _anchor="stories"))

    if image and image.filename and not allowed_image(image.filename):
        flash(UNSUPPORTED_IMAGE, "error")
        return redirect(url_for("recipes.view_recipe", recipe_id=recipe_id, _anchor="stories"))

    try:
        if image and image.filename:
            story.media_url = backend.uploads.upload(image, folder="stories")
        backend.stories.create(story, created_by=current_user().email)
    except Exception as exc:  # pragma: no cover - backend failures are reported, not retried
        logger.exception("Failed to save story for recipe %s", recipe_id)
        flash(f"Failed to share story: {exc}", "error")
    else:
        flash("Story shared.", "success")

    return redirect(url_for("recipes.view_recipe", recipe_id=recipe_id, _anchor="stories"))


def _completed_steps(recipe_id: str) -> set:
    return set(session.get("cooking", {}).get(recipe_id, []))


@bp.get("/recipes/<recipe_id>/cook")
def cook(recipe_id: str) -> str:
    recipe = _load_recipe(recipe_id)
    steps = parse_steps(recipe.full_instructions)
    progress = CookingProgress(
        total=len(steps),
        current=request.args.get("step", 0, type=int),
        completed=_completed_steps(recipe_id),
    )

    return render_template(
        "recipes/cook.html",
        recipe=recipe,
        steps=steps,
        progress=progress,
        step_text=steps[progress.current] if steps else "",
        title=f"Cooking {recipe.title}",
    )


@bp.post("/recipes/<recipe_id>/cook/complete")
def toggle_step(recipe_id: str):
    recipe = _load_recipe(recipe_id)
    steps = parse_steps(recipe.full_instructions)
    progress = CookingProgress(
        total=len(steps),
        current=request.form.get("step", 0, type=int),
        completed=_completed_steps(recipe_id),
    )
    progress.toggle_complete()

    cooking = dict(session.get("cooking", {}))
    cooking[recipe_id] = sorted(progress.completed)
    session["cooking"] = cooking

    return redirect(url_for("recipes.cook", recipe_id=recipe_id, step=progress.current))


@bp.get("/search")
def search() -> str:
    recipes = _backend().recipes.list("-created_date")
    query = request.args.get("q", "")
    search_by = request.args.get("by", "title")
    if search_by not in SEARCH_OPTIONS:
        search_by = "title"

    return render_template(
        "recipes/search.html",
        recipes=search_recipes(recipes, query, search_by),
        total=len(recipes),
        query=query,
        search_by=search_by,
        options=[("title", "Recipe Name"), ("ingredient", "Ingredient"), ("category", "Category")],
        title="Search Recipes",
    )


__all__ = ["bp"]
