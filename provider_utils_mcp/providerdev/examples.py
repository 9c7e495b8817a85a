from __future__ import annotations

import hashlib
from typing import Any

from faker import Faker

from .model import OperationFields

MAX_DEPTH = 3

_NON_STRING_TYPES = ("integer", "number", "boolean")


def create_select_example(fqn: str, methods: dict[str, OperationFields]) -> str:
    if not methods:
        return ""
    lines = ["## `SELECT` examples", ""]
    for name, fields in methods.items():
        lines.append(f"### `{name}`")
        lines.append("")
        if fields.op_description:
            lines.extend([fields.op_description, ""])
        lines.append("```sql")
        lines.append("SELECT")
        columns = list(fields.properties) or ["*"]
        lines.append(",\n".join(columns))
        lines.append(f"FROM {fqn}")
        lines.extend(_where_clause(fields.required_params))
        lines.append("```")
        lines.append("")
    return "\n".join(lines)


def create_insert_example(fqn: str, resource_name: str, methods: dict[str, OperationFields]) -> str:
    if not methods:
        return ""
    _, fields = next(iter(methods.items()))
    lines = ["## `INSERT` example", ""]
    if fields.op_description:
        lines.extend([fields.op_description, ""])
    lines.extend(["### Required properties", "", "```sql"])
    lines.append(_insert_sql(fqn, fields, required_only=True))
    lines.extend(["```", "", "### All properties", "", "```sql"])
    lines.append(_insert_sql(fqn, fields, required_only=False))
    lines.extend(["```", "", "### Manifest", "", "```yaml"])
    lines.append(create_manifest_yaml(resource_name, fields))
    lines.extend(["```", ""])
    return "\n".join(lines)


def create_update_example(fqn: str, methods: dict[str, OperationFields]) -> str:
    return _set_example("UPDATE", fqn, methods)


def create_replace_example(fqn: str, methods: dict[str, OperationFields]) -> str:
    return _set_example("REPLACE", fqn, methods)


def create_delete_example(fqn: str, methods: dict[str, OperationFields]) -> str:
    if not methods:
        return ""
    _, fields = next(iter(methods.items()))
    lines = ["## `DELETE` example", ""]
    if fields.op_description:
        lines.extend([fields.op_description, ""])
    lines.extend(["```sql", "/*+ delete */", f"DELETE FROM {fqn}"])
    lines.extend(_where_clause(fields.required_params))
    lines.extend(["```", ""])
    return "\n".join(lines)


def create_exec_example(fqn: str, methods: dict[str, OperationFields]) -> str:
    if not methods:
        return ""
    lines = ["## Lifecycle methods", ""]
    for name, fields in methods.items():
        lines.append(f"### `{name}`")
        lines.append("")
        lines.append(fields.op_description or fields.resp_description or "No description available.")
        lines.append("")
        lines.append("```sql")
        lines.append(f"EXEC {fqn}.{name}")
        params = [f"@{param}='{{{{ {param} }}}}' --required" for param in fields.required_params]
        for param, details in fields.optional_params.items():
            if details.get("type") == "boolean":
                params.append(f"@{param}={{{{ {param} }}}}")
            else:
                params.append(f"@{param}='{{{{ {param} }}}}'")
        body_fields = {**fields.request_body.required, **fields.request_body.optional}
        if params:
            lines.append(", \n".join(params))
        if body_fields:
            body_lines = []
            for prop, details in body_fields.items():
                if _is_string_type(details.get("type", "")):
                    body_lines.append(f'"{prop}": "{{{{ {prop} }}}}"')
                else:
                    body_lines.append(f'"{prop}": {{{{ {prop} }}}}')
            lines.append("@@json=\n'{\n" + ", \n".join(body_lines) + "\n}'")
        lines[-1] += ";"
        lines.append("```")
        lines.append("")
    return "\n".join(lines)


def create_manifest_yaml(resource_name: str, fields: OperationFields) -> str:
    lines = [
        "# Description fields are for documentation purposes",
        f"- name: {resource_name}",
        "  props:",
    ]
    schema_props = fields.request_body.schema.get("properties") or {}
    for prop, details in _insert_properties(fields, required_only=False):
        prop_schema = schema_props.get(prop) if isinstance(schema_props.get(prop), dict) else {}
        value = sample_value(prop, prop_schema or {"type": details.get("type") or "string"})
        lines.append(f"    - name: {prop}")
        lines.append(f"      value: {_yaml_scalar(value)}")
        if details.get("description"):
            lines.append(f"      description: {_yaml_scalar(details['description'])}")
    return "\n".join(lines)


def sample_request_body(schema: dict[str, Any], depth: int = 0, field_name: str = "value") -> Any:
    """Deterministic example value for an effective schema.

    ``enum`` and ``default`` win over generated values; anything nested
    deeper than ``MAX_DEPTH`` is left out.
    """
    if depth > MAX_DEPTH:
        return None
    schema_type = schema.get("type")
    if "enum" in schema and isinstance(schema["enum"], list) and schema["enum"]:
        return schema["enum"][0]
    if "default" in schema:
        return schema["default"]
    if schema_type == "object" or isinstance(schema.get("properties"), dict):
        properties = schema.get("properties") if isinstance(schema.get("properties"), dict) else {}
        output: dict[str, Any] = {}
        for name in sorted(properties):
            prop_schema = properties[name]
            if not isinstance(prop_schema, dict):
                continue
            value = sample_request_body(prop_schema, depth + 1, name)
            if value is not None:
                output[name] = value
        return output
    if schema_type == "array":
        items = schema.get("items") if isinstance(schema.get("items"), dict) else {}
        item = sample_request_body(items, depth + 1, field_name)
        return [item] if item is not None else []
    return sample_value(field_name, schema)


def sample_value(field_name: str, schema: dict[str, Any]) -> Any:
    schema_type = str(schema.get("type") or "string").split(" ")[0]
    schema_format = schema.get("format")
    name = (field_name or "").lower()

    if schema_type == "string":
        faker = _faker_for_key(field_name)
        if schema_format == "email" or "email" in name:
            return faker.email()
        if schema_format in {"uuid", "uuid4"} or "uuid" in name:
            return faker.uuid4()
        if schema_format == "date-time" or name.endswith("_at") or "time" in name:
            return faker.iso8601()
        if schema_format == "date" or "date" in name:
            return faker.date()
        if schema_format in {"uri", "url"} or "url" in name:
            return faker.url()
        if "name" in name:
            return faker.name()
        if name == "id" or name.endswith("_id"):
            return faker.uuid4()
        return faker.word()

    if schema_type == "integer":
        if "count" in name:
            return 1
        if "limit" in name:
            return 10
        return 0
    if schema_type == "number":
        return 0.0
    if schema_type == "boolean":
        return False
    return None


def _insert_sql(fqn: str, fields: OperationFields, required_only: bool) -> str:
    properties = _insert_properties(fields, required_only)
    if not properties:
        return "-- No properties found for INSERT"
    columns = [
        f"data__{name}" if details.get("in") == "body" else name
        for name, details in properties
    ]
    values = [f"'{{{{ {name} }}}}'" for name, _ in properties]
    return "\n".join(
        [
            "/*+ create */",
            f"INSERT INTO {fqn} (",
            ",\n".join(columns),
            ")",
            "SELECT",
            ",\n".join(values),
            ";",
        ]
    )


def _insert_properties(fields: OperationFields, required_only: bool) -> list[tuple[str, dict[str, str]]]:
    properties: list[tuple[str, dict[str, str]]] = []
    params = dict(fields.required_params)
    if not required_only:
        params.update(fields.optional_params)
    for name, details in params.items():
        properties.append((name, {**details, "in": "param"}))

    body = dict(fields.request_body.required)
    if not required_only:
        body.update(fields.request_body.optional)
    for name, details in body.items():
        properties.append((name, {**details, "in": "body"}))
    return properties


def _set_example(statement: str, fqn: str, methods: dict[str, OperationFields]) -> str:
    if not methods:
        return ""
    _, fields = next(iter(methods.items()))
    lines = [f"## `{statement}` example", ""]
    if fields.op_description:
        lines.extend([fields.op_description, ""])
    lines.append("```sql")
    body_fields = {**fields.request_body.required, **fields.request_body.optional}
    if not body_fields:
        lines.append(f"-- No properties found for {statement}")
    else:
        lines.extend(["/*+ update */", f"{statement} {fqn}", "SET"])
        lines.append(",\n".join(f"data__{prop} = '{{{{ {prop} }}}}'" for prop in body_fields))
        lines.extend(_where_clause(fields.required_params))
    lines.extend(["```", ""])
    return "\n".join(lines)


def _where_clause(required_params: dict[str, Any]) -> list[str]:
    if not required_params:
        return [";"]
    conditions = [f"{param} = '{{{{ {param} }}}}'" for param in required_params]
    return ["WHERE " + "\nAND ".join(conditions) + ";"]


def _is_string_type(type_string: str) -> bool:
    return type_string.split(" ")[0] not in _NON_STRING_TYPES


def _yaml_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    text = str(value).replace('"', '\\"')
    return f'"{text}"'


def _faker_for_key(key: str) -> Faker:
    faker = Faker()
    seed = int(hashlib.sha256(key.encode("utf-8")).hexdigest()[:8], 16)
    faker.seed_instance(seed)
    return faker
