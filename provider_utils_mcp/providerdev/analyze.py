from __future__ import annotations

import csv
import logging
import os
from typing import Any

from .ingest import discover_spec_files, iter_operations, load_document
from .naming import camel_to_snake, encode_path_ref

_logger = logging.getLogger(__name__)

MANIFEST_FILE = "all_services.csv"
MANIFEST_COLUMNS = (
    "filename",
    "path",
    "operationId",
    "formatted_op_id",
    "verb",
    "response_object",
    "tags",
    "formatted_tags",
    "stackql_resource_name",
    "stackql_method_name",
    "stackql_verb",
)
RESOURCES_KEY = "x-stackQL-resources"


def analyze(input_dir: str, output_dir: str, logger: logging.Logger | None = None) -> str:
    """Write a manifest row for every operation of every service document in ``input_dir``.

    Returns the path of the CSV written.
    """
    log = logger or _logger
    os.makedirs(output_dir, exist_ok=True)
    output_path = os.path.join(output_dir, MANIFEST_FILE)

    with open(output_path, "w", encoding="utf-8", newline="") as handle:
        writer = csv.DictWriter(handle, fieldnames=MANIFEST_COLUMNS, lineterminator="\n")
        writer.writeheader()
        for spec_path in discover_spec_files(input_dir):
            filename = os.path.basename(spec_path)
            document = load_document(spec_path)
            rows = analyze_document(filename, document)
            log.debug("Analyzed %s: %d operations", filename, len(rows))
            writer.writerows(rows)

    log.info("Analysis complete. Output written to: %s", output_path)
    return output_path


def analyze_document(filename: str, document: dict[str, Any]) -> list[dict[str, str]]:
    rows: list[dict[str, str]] = []
    for path_key, verb, operation in iter_operations(document):
        operation_id = operation.get("operationId") if isinstance(operation.get("operationId"), str) else ""
        tags = [tag for tag in operation.get("tags") or [] if isinstance(tag, str)]
        mapping = find_existing_mapping(document, encode_path_ref(path_key, verb))
        rows.append(
            {
                "filename": filename,
                "path": path_key,
                "operationId": operation_id,
                "formatted_op_id": camel_to_snake(operation_id) if operation_id else "",
                "verb": verb,
                "response_object": main_2xx_response_object(operation.get("responses")),
                "tags": "|".join(tags),
                "formatted_tags": "|".join(camel_to_snake(tag) for tag in tags),
                "stackql_resource_name": mapping[0],
                "stackql_method_name": mapping[1],
                "stackql_verb": mapping[2],
            }
        )
    return rows


def main_2xx_response_object(responses: Any) -> str:
    if not isinstance(responses, dict):
        return ""
    for code, response in responses.items():
        if not str(code).startswith("2"):
            continue
        if not isinstance(response, dict):
            return ""
        content = response.get("content") if isinstance(response.get("content"), dict) else {}
        media = content.get("application/json") if isinstance(content.get("application/json"), dict) else {}
        schema = media.get("schema") if isinstance(media.get("schema"), dict) else {}
        ref = schema.get("$ref")
        if isinstance(ref, str):
            return ref.split("/")[-1]
        if schema.get("type") == "array":
            items = schema.get("items") if isinstance(schema.get("items"), dict) else {}
            item_ref = items.get("$ref")
            if isinstance(item_ref, str):
                return item_ref.split("/")[-1]
        return ""
    return ""


def find_existing_mapping(document: dict[str, Any], path_ref: str) -> tuple[str, str, str]:
    components = document.get("components") if isinstance(document.get("components"), dict) else {}
    resources = components.get(RESOURCES_KEY) if isinstance(components.get(RESOURCES_KEY), dict) else {}

    for resource_name, resource in resources.items():
        if not isinstance(resource, dict):
            continue
        methods = resource.get("methods") if isinstance(resource.get("methods"), dict) else {}
        for method_name, method in methods.items():
            operation = method.get("operation") if isinstance(method, dict) else None
            if not isinstance(operation, dict) or operation.get("$ref") != path_ref:
                continue
            method_ref = f"#/components/{RESOURCES_KEY}/{resource_name}/methods/{method_name}"
            sql_verb = "exec"
            sql_verbs = resource.get("sqlVerbs") if isinstance(resource.get("sqlVerbs"), dict) else {}
            for verb, refs in sql_verbs.items():
                if any(isinstance(ref, dict) and ref.get("$ref") == method_ref for ref in refs or []):
                    sql_verb = verb
                    break
            return resource_name, method_name, sql_verb

    return "", "", ""
