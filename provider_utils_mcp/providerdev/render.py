from __future__ import annotations

from dataclasses import asdict
from typing import Any

from .model import OperationFields, SplitResult, UnresolvedPointer


def _sorted_dict(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _sorted_dict(value[k]) for k in sorted(value, key=str)}
    if isinstance(value, list):
        return [_sorted_dict(item) for item in value]
    return value


def render_unresolved(items: list[UnresolvedPointer]) -> list[dict[str, Any]]:
    rendered = [
        {"pointer": item.pointer, "reason": item.reason, "service": item.service}
        for item in items
    ]
    rendered.sort(key=lambda item: (item["service"] or "", item["pointer"]))
    return rendered


def render_split_result(result: SplitResult, include_documents: bool = False) -> dict[str, Any]:
    services = []
    for name in sorted(result.services):
        service = result.services[name]
        components = service.document.get("components") or {}
        entry: dict[str, Any] = {
            "name": service.name,
            "description": service.description,
            "fileName": service.file_name,
            "pathCount": len(service.document.get("paths") or {}),
            "operationCount": service.operation_count,
            "componentCounts": {bucket: len(entries) for bucket, entries in sorted(components.items())},
        }
        if include_documents:
            entry["document"] = _sorted_dict(service.document)
        services.append(entry)

    return {
        "ok": True,
        "services": services,
        "unresolved": render_unresolved(result.unresolved),
        "skippedOperations": sorted(result.skipped_operations),
        "validationErrors": dict(sorted(result.validation_errors.items())),
    }


def render_operation_fields(fields: OperationFields) -> dict[str, Any]:
    data = asdict(fields)
    return {
        "path": data["path"],
        "verb": data["verb"],
        "opDescription": data["op_description"],
        "respDescription": data["resp_description"],
        "properties": data["properties"],
        "requiredParams": data["required_params"],
        "optionalParams": data["optional_params"],
        "requestBody": {
            "required": data["request_body"]["required"],
            "optional": data["request_body"]["optional"],
            "schema": _sorted_dict(data["request_body"]["schema"]),
        },
    }


def render_schema(schema: Any) -> dict[str, Any]:
    return {"ok": True, "schema": _sorted_dict(schema)}
