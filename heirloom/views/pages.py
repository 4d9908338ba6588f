from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from flask import Blueprint, current_app, jsonify, redirect, render_template, request, url_for

from ..auth import current_user, login_required
from ..conversion import COMMON_CONVERSIONS, UNITS, convert, format_amount, units_for
from ..errors import ConversionError, DimensionMismatchError
from ..models import Ingredient, Meal, Recipe, RecipeStory

logger = logging.getLogger(__name__)

bp = Blueprint("pages", __name__)

FEATURES = [
    ("Preserve Heritage", "Store your family's culinary legacy for generations to come"),
    ("Share Stories", "Attach memories and emotions to every recipe"),
    ("Smart Search", "Find recipes by ingredients you have at home"),
    ("Cooking Mode", "Full-screen, step-by-step guidance while you cook"),
    ("Private & Secure", "Your recipes are protected and only yours to share"),
    ("Easy Sharing", "Share beloved recipes with family and friends"),
]


@bp.get("/")
def home() -> str:
    return render_template("pages/home.html", features=FEATURES, title="Heirloom Kitchen")


@bp.get("/start")
def get_started():
    auth = current_app.config["BACKEND"].auth
    dashboard = url_for("recipes.dashboard")
    if auth.is_authenticated():
        return redirect(dashboard)
    return redirect(auth.login_url(dashboard))


def _parse_amount(raw: Optional[str]) -> Optional[float]:
    try:
        amount = float(raw) if raw not in (None, "") else 1.0
    except ValueError:
        return None
    return amount if math.isfinite(amount) else None


@bp.get("/convert")
def converter() -> str:
    from_unit = request.args.get("from_unit", "cup")
    to_unit = request.args.get("to_unit", "ml")
    raw_amount = request.args.get("amount")
    amount = _parse_amount(raw_amount)

    result: Optional[str] = None
    error: Optional[str] = None
    elapsed_ms: Optional[float] = None

    if from_unit not in UNITS or to_unit not in UNITS:
        error = "Please choose units from the list."
    elif amount is not None and amount > 0:
        started = time.perf_counter()
        try:
            value = convert(amount, from_unit, to_unit)
        except DimensionMismatchError as exc:
            error = str(exc)
        else:
            elapsed_ms = (time.perf_counter() - started) * 1000
            result = format_amount(value)

    return render_template(
        "pages/converter.html",
        amount=raw_amount if raw_amount not in (None, "") else "1",
        from_unit=from_unit,
        to_unit=to_unit,
        result=result,
        error=error,
        elapsed_ms=elapsed_ms,
        volume_units=units_for("volume"),
        weight_units=units_for("weight"),
        presets=COMMON_CONVERSIONS,
        title="Unit Converter",
    )


@bp.get("/api/convert")
def convert_api():
    from_unit = request.args.get("from_unit", "")
    to_unit = request.args.get("to_unit", "")

    try:
        amount = float(request.args.get("amount", ""))
        value = convert(amount, from_unit, to_unit)
    except ConversionError as exc:
        return jsonify({"error": str(exc)}), 400
    except ValueError:
        return jsonify({"error": "Amount must be a number greater than or equal to zero."}), 400

    return jsonify({"amount": amount, "from_unit": from_unit, "to_unit": to_unit, "result": value})


def _to_json(entity: Any) -> str:
    def default(value: Any) -> str:
        if isinstance(value, datetime):
            return value.isoformat()
        return str(value)

    return json.dumps(asdict(entity), indent=2, default=default)


def _run_check(action) -> Dict[str, Any]:
    try:
        entity = action()
    except Exception as exc:  # surfaced verbatim on the page
        logger.exception("Diagnostic check failed")
        return {"success": False, "output": str(exc)}
    if isinstance(entity, str):
        return {"success": False, "output": entity}
    return {"success": True, "output": _to_json(entity)}


@bp.route("/diagnostics", methods=["GET", "POST"])
@login_required
def diagnostics() -> str:
    backend = current_app.config["BACKEND"]
    user = current_user()
    results: Dict[str, Dict[str, Any]] = {}

    if request.method == "POST":
        check = request.form.get("check")
        stamp = int(datetime.now(timezone.utc).timestamp() * 1000)

        if check == "recipe":
            results["recipe"] = _run_check(
                lambda: backend.recipes.create(
                    Recipe(
                        title=f"Test Recipe {stamp}",
                        short_description="A test recipe",
                        full_instructions="Step 1: Test\nStep 2: Done",
                        ingredients=[Ingredient(name="Test Ingredient", quantity=1, unit="cup")],
                        categories=["test"],
                    ),
                    created_by=user.email,
                )
            )
        elif check == "story":

            def create_story():
                recipes = backend.recipes.list()
                if not recipes:
                    return "No recipes found. Create a recipe first."
                return backend.stories.create(
                    RecipeStory(
                        recipe_id=recipes[0].id,
                        text=f"Test story created at {datetime.now():%Y-%m-%d %H:%M:%S}",
                        author_name="Test Author",
                    ),
                    created_by=user.email,
                )

            results["story"] = _run_check(create_story)
        elif check == "meal":
            results["meal"] = _run_check(
                lambda: backend.meals.create(
                    Meal(name=f"Test Meal {stamp}", description="A test meal collection"),
                    created_by=user.email,
                )
            )

    return render_template("pages/diagnostics.html", results=results, title="Diagnostics")


__all__ = ["bp"]
