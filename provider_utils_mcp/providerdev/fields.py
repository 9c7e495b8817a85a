from __future__ import annotations

import json
import logging
from typing import Any

from .analyze import RESOURCES_KEY
from .compose import effective_schema, merge_all_of, resolve_union_first_branch
from .generate import EXEC_VERB, SQL_VERBS
from .model import OperationFields, RequestBodyFields
from .naming import decode_pointer_token
from .resolve import deep_resolve_refs

_logger = logging.getLogger(__name__)

_DESCRIBED_KEYS = ("type", "format", "description")


def get_operation_fields(
    document: dict[str, Any],
    path: str,
    verb: str,
    media_type: str = "",
    response_key: str = "200",
    object_key: str | None = None,
) -> OperationFields:
    paths = document.get("paths") if isinstance(document.get("paths"), dict) else {}
    path_item = paths.get(path)
    if not isinstance(path_item, dict):
        raise KeyError(f"Path '{path}' not found in document paths")
    raw_operation = path_item.get(verb)
    if not isinstance(raw_operation, dict):
        raise KeyError(f"HTTP verb '{verb}' not found for path '{path}'")

    operation = deep_resolve_refs(raw_operation, document)
    path_parameters = deep_resolve_refs(path_item.get("parameters") or [], document)
    op_description = operation.get("description") or operation.get("summary") or ""

    required_params, optional_params = _operation_params(path_parameters, operation.get("parameters"))
    required_params.update(server_variables(document))

    properties: dict[str, dict[str, str]] = {}
    resp_description = ""
    response = _lookup_response(operation.get("responses"), response_key)
    if response is None:
        _logger.warning("Response '%s' not found for %s/%s", response_key, path, verb)
    else:
        resp_description = response.get("description") or ""
        schema = _media_schema(response.get("content"), media_type)
        if schema is not None:
            props, schema_description = response_properties(schema, object_key)
            properties = sort_properties(format_properties(props))
            resp_description = resp_description or schema_description

    return OperationFields(
        path=path,
        verb=verb,
        op_description=op_description,
        resp_description=resp_description,
        properties=properties,
        required_params=required_params,
        optional_params=optional_params,
        request_body=request_body_fields(operation.get("requestBody")),
    )


def request_body_fields(request_body: Any) -> RequestBodyFields:
    if not isinstance(request_body, dict):
        return RequestBodyFields()
    content = request_body.get("content")
    if not isinstance(content, dict) or not content:
        return RequestBodyFields()
    content_type = "application/json" if "application/json" in content else next(iter(content))
    media = content.get(content_type)
    schema = media.get("schema") if isinstance(media, dict) else None
    if not isinstance(schema, dict):
        return RequestBodyFields()

    writable = effective_schema(schema)
    if not isinstance(writable, dict):
        return RequestBodyFields()
    props = writable.get("properties") if isinstance(writable.get("properties"), dict) else {}
    required_names = set(writable.get("required") or [])
    formatted = format_properties(props)

    fields = RequestBodyFields(schema=writable)
    for name in sorted(formatted):
        target = fields.required if name in required_names else fields.optional
        target[name] = formatted[name]
    return fields


def response_properties(schema: dict[str, Any], object_key: str | None = None) -> tuple[dict[str, Any], str]:
    shaped = resolve_union_first_branch(merge_all_of(schema))
    if not isinstance(shaped, dict):
        return {}, ""

    if shaped.get("type") == "array" or ("items" in shaped and "properties" not in shaped):
        items = shaped.get("items") if isinstance(shaped.get("items"), dict) else {}
        return _props(items), items.get("description") or ""

    if not object_key:
        return _props(shaped), shaped.get("description") or ""

    if "[*]" in object_key:
        _, _, tail = object_key.partition("[*]")
        inner_key = tail.lstrip(".")
        items = _dig(shaped, "properties", "items")
        nested = _dig(items, "additionalProperties", "properties", inner_key, "items")
        description = (
            _dig(items, "additionalProperties", "properties", inner_key, "items", "description")
            or _dig(items, "description")
            or ""
        )
        return _props(nested), description

    simple_key = object_key[2:] if object_key.startswith("$.") else object_key
    selected = _dig(shaped, "properties", simple_key)
    if isinstance(selected, dict) and isinstance(selected.get("items"), dict):
        return _props(selected["items"]), selected["items"].get("description") or ""
    return _props(selected), shaped.get("description") or ""


def format_properties(props: dict[str, Any]) -> dict[str, dict[str, str]]:
    formatted: dict[str, dict[str, str]] = {}
    for name, details in props.items():
        if not isinstance(details, dict):
            continue
        type_string = str(details.get("type") or "")
        if details.get("format"):
            type_string += f" ({details['format']})"
        description = str(details.get("description") or "").replace("\n", " ")
        extras = [
            f"{key}: {value}"
            for key, value in details.items()
            if key not in _DESCRIBED_KEYS and isinstance(value, str)
        ]
        if extras:
            description += f" ({', '.join(extras)})"
        formatted[name] = {"type": type_string, "description": description}
    return formatted


def sort_properties(props: dict[str, dict[str, str]]) -> dict[str, dict[str, str]]:
    """Order fields as ``id``/``name``, then ``*_id``, then ``*_name``, then the rest."""

    def rank(name: str) -> tuple[int, str]:
        if name in ("id", "name"):
            return 0, name
        if name.endswith("_id"):
            return 1, name
        if name.endswith("_name"):
            return 2, name
        return 3, name

    return {name: props[name] for name in sorted(props, key=rank)}


def server_variables(document: dict[str, Any]) -> dict[str, dict[str, str]]:
    servers = document.get("servers")
    if not isinstance(servers, list) or not servers or not isinstance(servers[0], dict):
        return {}
    variables = servers[0].get("variables")
    if not isinstance(variables, dict):
        return {}

    result: dict[str, dict[str, str]] = {}
    for name, details in variables.items():
        if not isinstance(details, dict):
            continue
        type_string = "string"
        if details.get("format"):
            type_string += f" ({details['format']})"
        description = str(details.get("description") or "").replace("\n", " ")
        extras = [
            f"{key}: {_format_value(value)}"
            for key, value in details.items()
            if key not in ("description", "format")
        ]
        if extras:
            description = f"{description} ({', '.join(extras)})" if description else f"({', '.join(extras)})"
        result[name] = {"type": type_string, "description": description}
    return result


def get_resource_methods(
    resource: dict[str, Any],
    document: dict[str, Any],
    sql_verb: str,
) -> dict[str, OperationFields]:
    """Map the resource methods bound to ``sql_verb`` to their fields.

    ``exec`` selects the methods not bound to any SQL verb.
    """
    methods = resource.get("methods") if isinstance(resource.get("methods"), dict) else {}
    sql_verbs = resource.get("sqlVerbs") if isinstance(resource.get("sqlVerbs"), dict) else {}

    if sql_verb == EXEC_VERB:
        bound = {
            _method_name_from_ref(ref)
            for verb in SQL_VERBS
            for ref in sql_verbs.get(verb) or []
        }
        names = [name for name in methods if name not in bound]
    else:
        names = [_method_name_from_ref(ref) for ref in sql_verbs.get(sql_verb) or []]

    result: dict[str, OperationFields] = {}
    for name in names:
        method = methods.get(name)
        if not isinstance(method, dict):
            _logger.warning("Method %s referenced by %s is not defined", name, sql_verb)
            continue
        target = method_operation(method)
        if target is None:
            _logger.warning("Could not parse operation reference for method %s", name)
            continue
        path, verb = target
        response = method.get("response") if isinstance(method.get("response"), dict) else {}
        result[name] = get_operation_fields(
            document,
            path,
            verb,
            media_type=response.get("mediaType") or "",
            response_key=str(response.get("openAPIDocKey") or "200"),
            object_key=response.get("objectKey") or None,
        )
    return result


def resources_of(document: dict[str, Any]) -> dict[str, Any]:
    components = document.get("components") if isinstance(document.get("components"), dict) else {}
    resources = components.get(RESOURCES_KEY)
    return resources if isinstance(resources, dict) else {}


def method_operation(method: dict[str, Any]) -> tuple[str, str] | None:
    operation = method.get("operation") if isinstance(method.get("operation"), dict) else {}
    ref = operation.get("$ref")
    if not isinstance(ref, str) or not ref.startswith("#/paths/"):
        return None
    encoded_path, _, verb = ref[len("#/paths/"):].rpartition("/")
    if not encoded_path or not verb:
        return None
    return decode_pointer_token(encoded_path), verb


def _method_name_from_ref(ref: Any) -> str:
    if isinstance(ref, dict) and isinstance(ref.get("$ref"), str):
        return ref["$ref"].split("/")[-1]
    return ""


def _operation_params(
    path_parameters: Any, op_parameters: Any
) -> tuple[dict[str, dict[str, str]], dict[str, dict[str, str]]]:
    merged: dict[tuple[str, str], dict[str, Any]] = {}
    for params in (path_parameters, op_parameters):
        if not isinstance(params, list):
            continue
        for param in params:
            if not isinstance(param, dict):
                continue
            name = param.get("name")
            if isinstance(name, str):
                merged[(name, str(param.get("in") or ""))] = param

    required: dict[str, dict[str, str]] = {}
    optional: dict[str, dict[str, str]] = {}
    for (name, _location), param in merged.items():
        schema = param.get("schema")
        if not isinstance(schema, dict):
            continue
        type_string = str(schema.get("type") or "")
        if schema.get("format"):
            type_string += f" ({schema['format']})"
        description = str(param.get("description") or "").replace("\n", " ")
        if "example" in param and "example" not in schema:
            description += f" (example: {_format_value(param['example'])})"
        details = {"type": type_string, "description": description}
        if param.get("required") is True:
            required[name] = details
        else:
            optional[name] = details
    return required, optional


def _lookup_response(responses: Any, key: str) -> dict[str, Any] | None:
    if not isinstance(responses, dict):
        return None
    response = responses.get(key)
    if response is None and key.isdigit():
        response = responses.get(int(key))
    return response if isinstance(response, dict) else None


def _media_schema(content: Any, media_type: str) -> dict[str, Any] | None:
    if not isinstance(content, dict) or not media_type:
        return None
    media = content.get(media_type)
    schema = media.get("schema") if isinstance(media, dict) else None
    return schema if isinstance(schema, dict) else None


def _props(schema: Any) -> dict[str, Any]:
    if not isinstance(schema, dict):
        return {}
    props = schema.get("properties")
    return props if isinstance(props, dict) else {}


def _dig(value: Any, *keys: str) -> Any:
    current = value
    for key in keys:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def _format_value(value: Any) -> str:
    if isinstance(value, list):
        return f"[{', '.join(str(item) for item in value)}]"
    if isinstance(value, dict):
        return json.dumps(value)
    return str(value)
