from __future__ import annotations

import logging

from flask import Blueprint, abort, current_app, flash, redirect, render_template, request, url_for

from ..auth import current_user, login_required
from ..errors import ValidationError
from ..filters import recipes_in_meal, recipes_not_in_meal, search_recipes
from ..models import Meal
from ..storage import Backend

logger = logging.getLogger(__name__)

bp = Blueprint("meals", __name__)

MEAL_PREVIEW_SIZE = 3


def _backend() -> Backend:
    return current_app.config["BACKEND"]


def _load_own_meal(meal_id: str) -> Meal:
    try:
        meal = _backend().meals.get(meal_id)
    except KeyError:
        abort(404)
    if meal.created_by != current_user().email:
        abort(404)
    return meal


@bp.get("/meals")
@login_required
def list_meals() -> str:
    backend = _backend()
    user = current_user()
    meals = [meal for meal in backend.meals.list("-created_date") if meal.created_by == user.email]
    recipes = backend.recipes.list("-created_date")

    return render_template(
        "meals/list.html",
        meals=[(meal, recipes_in_meal(recipes, meal)) for meal in meals],
        preview_size=MEAL_PREVIEW_SIZE,
        title="My Meals",
    )


@bp.post("/meals")
@login_required
def create_meal():
    meal = Meal(
        name=request.form.get("name", "").strip(),
        description=request.form.get("description", "").strip(),
    )

    try:
        meal.validate()
    except ValidationError:
        flash("Please give the meal a name.", "error")
        return redirect(url_for("meals.list_meals"))

    try:
        _backend().meals.create(meal, created_by=current_user().email)
    except Exception as exc:  # pragma: no cover - backend failures are reported, not retried
        logger.exception("Failed to create meal")
        flash(f"Failed to create meal: {exc}", "error")
    else:
        flash(f"Meal '{meal.name}' created.", "success")
    return redirect(url_for("meals.list_meals"))


@bp.post("/meals/<meal_id>/delete")
@login_required
def delete_meal(meal_id: str):
    _load_own_meal(meal_id)
    try:
        _backend().meals.delete(meal_id)
    except KeyError:
        flash("Meal not found.", "error")
    except Exception as exc:  # pragma: no cover - backend failures are reported, not retried
        logger.exception("Failed to delete meal %s", meal_id)
        flash(f"Failed to delete meal: {exc}", "error")
    else:
        flash("Meal deleted.", "success")
    return redirect(url_for("meals.list_meals"))


@bp.get("/meals/<meal_id>")
@login_required
def view_meal(meal_id: str) -> str:
    meal = _load_own_meal(meal_id)
    recipes = _backend().recipes.list("-created_date")
    available = recipes_not_in_meal(recipes, meal)
    query = request.args.get("q", "")

    return render_template(
        "meals/view.html",
        meal=meal,
        meal_recipes=recipes_in_meal(recipes, meal),
        available=available,
        candidates=search_recipes(available, query, "title"),
        query=query,
        title=meal.name,
    )


def _save_meal(meal: Meal, message: str):
    try:
        _backend().meals.update(meal.id, meal)
    except KeyError:
        abort(404)
    except Exception as exc:  # pragma: no cover - backend failures are reported, not retried
        logger.exception("Failed to update meal %s", meal.id)
        flash(f"Failed to update meal: {exc}", "error")
    else:
        flash(message, "success")
    return redirect(url_for("meals.view_meal", meal_id=meal.id))


@bp.post("/meals/<meal_id>/recipes")
@login_required
def add_recipe(meal_id: str):
    meal = _load_own_meal(meal_id)
    recipe_id = request.form.get("recipe_id", "")

    try:
        recipe = _backend().recipes.get(recipe_id)
    except KeyError:
        flash("Recipe not found.", "error")
        return redirect(url_for("meals.view_meal", meal_id=meal_id))

    return _save_meal(meal.with_recipe(recipe.id), f"Added '{recipe.title}' to {meal.name}.")


@bp.post("/meals/<meal_id>/recipes/<recipe_id>/remove")
@login_required
def remove_recipe(meal_id: str, recipe_id: str):
    meal = _load_own_meal(meal_id)
    return _save_meal(meal.without_recipe(recipe_id), "Recipe removed from meal.")


__all__ = ["bp"]
