from __future__ import annotations

import json
import logging
import os
import re
import shutil
from typing import Any

from .analyze import RESOURCES_KEY
from .deref import DerefError, dereference_service
from .examples import (
    create_delete_example,
    create_exec_example,
    create_insert_example,
    create_replace_example,
    create_select_example,
    create_update_example,
    sample_request_body,
)
from .fields import get_resource_methods, resources_of
from .generate import EXEC_VERB, SQL_VERBS
from .ingest import load_document
from .model import OperationFields

_logger = logging.getLogger(__name__)

DEREF_MODES = ("lazy", "full")

_DIALECT_PREDICATE = re.compile(r"""sqlDialect\s*==\s*['"](.*?)['"]""")


def generate_docs(
    provider_dir: str,
    output_dir: str,
    provider_name: str,
    deref_mode: str = "lazy",
    logger: logging.Logger | None = None,
) -> dict[str, Any]:
    """Render one markdown page per resource of every enriched service document."""
    log = logger or _logger
    docs_dir = os.path.join(output_dir, f"{provider_name}-docs")
    providers_dir = os.path.join(docs_dir, "providers", provider_name)
    if os.path.exists(providers_dir):
        shutil.rmtree(providers_dir)
    os.makedirs(providers_dir, exist_ok=True)

    services_dir = os.path.join(provider_dir, "services")
    service_files = sorted(name for name in os.listdir(services_dir) if name.endswith(".yaml"))

    services: list[str] = []
    resource_count = 0
    for file_name in service_files:
        service_name = os.path.splitext(file_name)[0].replace("-", "_")
        log.info("Processing service: %s", service_name)
        document = _load_service(os.path.join(services_dir, file_name), deref_mode, log)
        services.append(service_name)

        for resource_name, resource in resources_of(document).items():
            if not isinstance(resource, dict):
                continue
            content = render_resource(provider_name, service_name, resource_name, resource, document)
            resource_dir = os.path.join(providers_dir, service_name, resource_name)
            os.makedirs(resource_dir, exist_ok=True)
            with open(os.path.join(resource_dir, "index.md"), "w", encoding="utf-8") as handle:
                handle.write(content)
            resource_count += 1

    index_path = os.path.join(docs_dir, "index.md")
    with open(index_path, "w", encoding="utf-8") as handle:
        handle.write(render_index(provider_name, sorted(set(services)), resource_count))
    log.info("Processed %d services and %d resources", len(services), resource_count)

    return {"services": len(services), "resources": resource_count, "indexPath": index_path}


def render_resource(
    provider_name: str,
    service_name: str,
    resource_name: str,
    resource: dict[str, Any],
    document: dict[str, Any],
) -> str:
    fqn = f"{provider_name}.{service_name}.{resource_name}"
    by_verb: dict[str, dict[str, OperationFields]] = {
        verb: get_resource_methods(resource, document, verb) for verb in (*SQL_VERBS, EXEC_VERB)
    }

    lines = [
        "---",
        f"title: {resource_name}",
        "---",
        "",
        f"Creates, updates, deletes, gets or lists {_article(resource_name)} <code>{resource_name}</code> resource.",
        "",
        "## Overview",
        "",
        "| Name | Value |",
        "|:-----|:------|",
        f"| Name | <code>{resource_name}</code> |",
        "| Type | Resource |",
        f"| Id | <code>{resource.get('id') or fqn}</code> |",
        "",
        "## Fields",
        "",
    ]
    lines.extend(_fields_table(by_verb["select"]))
    lines.extend(["## Methods", "", "| Name | Accessible by | Required Params | Optional Params |", "|:-----|:--------------|:----------------|:----------------|"])
    for verb, methods in by_verb.items():
        for name, fields in methods.items():
            lines.append(
                f"| <code>{name}</code> | <code>{verb.upper()}</code> | "
                f"{_code_list(fields.required_params)} | {_code_list(fields.optional_params)} |"
            )
    lines.append("")

    sections = [
        create_select_example(fqn, by_verb["select"]),
        create_insert_example(fqn, resource_name, by_verb["insert"]),
        _sample_body_section(by_verb["insert"]),
        create_update_example(fqn, by_verb["update"]),
        create_replace_example(fqn, by_verb["replace"]),
        create_delete_example(fqn, by_verb["delete"]),
        create_exec_example(fqn, by_verb[EXEC_VERB]),
        render_view(resource),
    ]
    lines.extend(section for section in sections if section)
    return "\n".join(lines) + "\n"


def render_view(resource: dict[str, Any]) -> str:
    """Document the ``config.views`` of a resource: fields, required params and the view DDL.

    Each ``select`` entry and its ``fallback`` chain becomes one SQL block,
    labelled with the dialect named in its predicate.
    """
    config = resource.get("config") if isinstance(resource.get("config"), dict) else {}
    views = config.get("views") if isinstance(config.get("views"), dict) else {}
    select = views.get("select")
    if not isinstance(select, dict):
        return ""

    lines = ["## View definition", ""]
    fields = views.get("fields") or []
    if fields:
        lines.extend(["The following fields are returned by this view:", ""])
        lines.extend(_view_table(fields))
    else:
        lines.extend(["See the SQL Definition (view DDL) for fields returned by this view.", ""])

    required_params = views.get("requiredParams") or []
    if required_params:
        lines.extend(["### Required Parameters", "", "The following parameters are required by this view:", ""])
        lines.extend(_view_table(required_params))

    lines.extend(["### SQL Definition", ""])
    current: Any = select
    while isinstance(current, dict):
        ddl = str(current.get("ddl") or "").strip()
        lines.extend([f"#### {dialect_name(current.get('predicate'))}", "", "```sql", ddl, "```", ""])
        current = current.get("fallback")
    return "\n".join(lines)


def dialect_name(predicate: str | None) -> str:
    if not predicate:
        return "Default"
    match = _DIALECT_PREDICATE.search(predicate)
    if not match or not match.group(1):
        raise ValueError(f"Invalid dialect predicate: {predicate}")
    name = match.group(1)
    return name[0].upper() + name[1:]


def render_index(provider_name: str, services: list[str], resource_count: int) -> str:
    lines = [
        f"# {provider_name}",
        "",
        f"total services: **{len(services)}**  ",
        f"total resources: **{resource_count}**",
        "",
        "## Services",
        "",
    ]
    lines.extend(f"- [{service}](providers/{provider_name}/{service}/)" for service in services)
    return "\n".join(lines) + "\n"


def sanitize_html(text: str) -> str:
    return (
        text.replace("{", "&#123;")
        .replace("}", "&#125;")
        .replace(">", "&gt;")
        .replace("<", "&lt;")
        .replace("&#125;_&#123;", "&#125;&#95;&#123;")
        .replace("\n", "<br />")
    )


def _load_service(path: str, deref_mode: str, log: logging.Logger) -> dict[str, Any]:
    document = load_document(path)
    if deref_mode != "full":
        return document
    try:
        resolved = dereference_service(path)
    except DerefError as exc:
        log.warning("Falling back to local reference resolution for %s: %s", path, exc)
        return document
    # method operations are $refs into paths and must stay unresolved
    resolved.setdefault("components", {})[RESOURCES_KEY] = resources_of(document)
    return resolved


def _fields_table(select_methods: dict[str, OperationFields]) -> list[str]:
    if not select_methods:
        return [
            "`SELECT` not supported for this resource, use `SHOW METHODS` to view available operations for the resource.",
            "",
        ]
    _, fields = next(iter(select_methods.items()))
    lines = ["| Name | Datatype | Description |", "|:-----|:---------|:------------|"]
    for name, details in fields.properties.items():
        lines.append(f"| <code>{name}</code> | `{details['type']}` | {sanitize_html(details['description'])} |")
    lines.append("")
    return lines


def _sample_body_section(insert_methods: dict[str, OperationFields]) -> str:
    if not insert_methods:
        return ""
    _, fields = next(iter(insert_methods.items()))
    if not fields.request_body.schema:
        return ""
    body = sample_request_body(fields.request_body.schema)
    return "\n".join(
        ["### Example request body", "", "```json", json.dumps(body, indent=2, sort_keys=True), "```", ""]
    )


def _code_list(params: dict[str, Any]) -> str:
    return ", ".join(f"<code>{name}</code>" for name in params)


def _article(name: str) -> str:
    lower = name.lower()
    if lower.startswith("hour"):
        return "an"
    if (lower and lower[0] in "aeio") or lower.startswith("un"):
        return "an"
    return "a"


def _view_table(entries: list[Any]) -> list[str]:
    lines = ["| Name | Datatype | Description |", "|:-----|:---------|:------------|"]
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        lines.append(
            f"| <code>{entry.get('name', '')}</code> | `{entry.get('type', '')}` | "
            f"{sanitize_html(str(entry.get('description') or ''))} |"
        )
    lines.append("")
    return lines
