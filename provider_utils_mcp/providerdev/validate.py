from __future__ import annotations

from collections.abc import Hashable, Mapping
from typing import Any, cast

from openapi_spec_validator import validate
from openapi_spec_validator.validation.exceptions import OpenAPIValidationError


def validate_document(document: dict[str, Any]) -> tuple[bool, str | None]:
    """Check a written service document against the OpenAPI schema.

    Returns ``(True, None)`` or ``(False, message)``; the split carries on
    either way.
    """
    try:
        validate(cast(Mapping[Hashable, Any], document))
    except OpenAPIValidationError as exc:
        location = "/".join(str(part) for part in exc.path)
        message = exc.message or exc.__class__.__name__
        return False, f"{location}: {message}" if location else message
    except Exception as exc:
        return False, str(exc).strip() or exc.__class__.__name__
    return True, None
