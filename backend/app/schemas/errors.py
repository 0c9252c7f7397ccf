"""
NightPlan Backend — Pydantic → Application Error Translation
==============================================================

What:  Converts a pydantic.ValidationError into the app's ValidationError.
Why:   Callers should only ever see NightPlanError subclasses; pydantic is an
       implementation detail of the contracts.
How:   Reads each error's location, maps Python field names back to their
       wire (camelCase) alias, and keeps the full error list in context.
"""

from typing import Any, Dict, Iterable, List, Optional, Type

import pydantic
from pydantic import BaseModel

from app.exceptions import ValidationError


def _wire_name(models: Iterable[Type[BaseModel]], name: str) -> str:
    for model in models:
        field = model.model_fields.get(name)
        if field is not None and field.alias:
            return field.alias
    return name


def to_validation_error(
    exc: pydantic.ValidationError,
    models: Iterable[Type[BaseModel]] = (),
    skip_loc: Iterable[str] = (),
) -> ValidationError:
    """
    Build an app ValidationError citing the first offending field.

    Args:
        exc:      The pydantic error to translate.
        models:   Models whose field names should be reported by alias.
        skip_loc: Location parts to drop, e.g. the discriminator tags that a
                  tagged union prefixes to every error location.
    """
    models = tuple(models)
    skipped = set(skip_loc)
    errors: List[Dict[str, Any]] = []

    for err in exc.errors(include_url=False):
        err_type = err.get("type", "")
        loc = [part for part in err.get("loc", ()) if part not in skipped]
        field: Optional[str]
        if err_type.startswith("union_tag"):
            field = "kind"
        elif loc and isinstance(loc[0], str):
            field = _wire_name(models, loc[0])
        else:
            field = None
        errors.append({"field": field, "type": err_type, "message": err.get("msg", "")})

    first = errors[0] if errors else {"field": None, "message": "invalid input"}
    field = first["field"]
    if field:
        message = f"Invalid value for '{field}': {first['message']}"
    else:
        message = f"Invalid input: {first['message']}"
    return ValidationError(message=message, field=field, context={"errors": errors})
