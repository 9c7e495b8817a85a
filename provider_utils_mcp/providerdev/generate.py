from __future__ import annotations

import csv
import json
import logging
import os
from typing import Any

from .analyze import RESOURCES_KEY
from .errors import ManifestError
from .ingest import discover_spec_files, iter_operations, load_document, write_document
from .model import GenerateOptions, ManifestRow
from .naming import encode_path_ref, title_case

_logger = logging.getLogger(__name__)

PROVIDER_VERSION = "v00.00.00000"
SQL_VERBS = ("select", "insert", "update", "delete", "replace")
EXEC_VERB = "exec"


def load_manifest(config_path: str) -> dict[tuple[str, str], ManifestRow]:
    manifest: dict[tuple[str, str], ManifestRow] = {}
    try:
        with open(config_path, "r", encoding="utf-8", newline="") as handle:
            for row in csv.DictReader(handle):
                entry = ManifestRow(
                    filename=row.get("filename") or "",
                    operation_id=row.get("operationId") or "",
                    resource_name=row.get("stackql_resource_name") or "",
                    method_name=row.get("stackql_method_name") or "",
                    sql_verb=row.get("stackql_verb") or "",
                    object_key=row.get("stackql_object_key") or None,
                )
                manifest[entry.manifest_key] = entry
    except OSError as exc:
        raise ManifestError(f"Failed to load manifest {config_path}: {exc}") from exc
    return manifest


def success_response_info(operation: dict[str, Any]) -> dict[str, str]:
    responses = operation.get("responses") if isinstance(operation.get("responses"), dict) else {}
    codes = sorted(str(code) for code in responses if str(code).startswith("2"))
    if not codes:
        return {"mediaType": "", "openAPIDocKey": ""}

    lowest = codes[0]
    response = responses.get(lowest)
    if response is None:
        response = responses.get(int(lowest)) if lowest.isdigit() else None
    content = response.get("content") if isinstance(response, dict) else None
    media_types = list(content) if isinstance(content, dict) else []
    return {"mediaType": media_types[0] if media_types else "", "openAPIDocKey": lowest}


def build_resources(
    filename: str,
    service_name: str,
    provider_id: str,
    document: dict[str, Any],
    manifest: dict[tuple[str, str], ManifestRow],
    logger: logging.Logger | None = None,
) -> dict[str, Any]:
    log = logger or _logger
    resources: dict[str, Any] = {}

    for path_key, verb, operation in iter_operations(document):
        operation_id = operation.get("operationId")
        if not isinstance(operation_id, str) or not operation_id:
            continue
        entry = manifest.get((filename, operation_id))
        if entry is None:
            raise ManifestError(f"{filename} -> {operation_id} not found in manifest")

        resource = resources.get(entry.resource_name)
        if resource is None:
            resource = {
                "id": f"{provider_id}.{service_name}.{entry.resource_name}",
                "name": entry.resource_name,
                "title": title_case(entry.resource_name),
                "methods": {},
                "sqlVerbs": {verb_name: [] for verb_name in SQL_VERBS},
            }
            resources[entry.resource_name] = resource

        response = success_response_info(operation)
        if entry.object_key:
            response["objectKey"] = entry.object_key
        resource["methods"][entry.method_name] = {
            "operation": {"$ref": encode_path_ref(path_key, verb)},
            "response": response,
        }

        if entry.sql_verb == EXEC_VERB:
            log.info("exec method skipped: %s.%s", entry.resource_name, entry.method_name)
        elif entry.sql_verb in resource["sqlVerbs"]:
            resource["sqlVerbs"][entry.sql_verb].append(
                {"$ref": f"#/components/{RESOURCES_KEY}/{entry.resource_name}/methods/{entry.method_name}"}
            )
        elif entry.sql_verb:
            log.warning("Unknown SQL verb '%s' for %s.%s, skipping", entry.sql_verb, entry.resource_name, entry.method_name)

    return resources


def generate(options: GenerateOptions, logger: logging.Logger | None = None) -> str:
    """Enrich split service documents with resource mappings and write ``provider.yaml``.

    Returns the path of the provider manifest written.
    """
    log = logger or _logger
    version_dir = os.path.join(options.output_dir, PROVIDER_VERSION)
    services_dir = os.path.join(version_dir, "services")
    os.makedirs(services_dir, exist_ok=True)

    for name in os.listdir(services_dir):
        file_path = os.path.join(services_dir, name)
        if os.path.isfile(file_path):
            os.remove(file_path)
    log.info("Cleared all files in %s", services_dir)

    provider_manifest_path = os.path.join(version_dir, "provider.yaml")
    if os.path.exists(provider_manifest_path):
        os.remove(provider_manifest_path)
        log.info("Deleted %s", provider_manifest_path)

    servers = _parse_json_option(options.servers, "servers")
    provider_config = _parse_json_option(options.provider_config, "provider config")
    manifest = load_manifest(options.config_path)

    provider_services: dict[str, Any] = {}
    for spec_path in discover_spec_files(options.input_dir):
        filename = os.path.basename(spec_path)
        if filename in options.skip_files:
            log.info("Skipping %s (matched --skip)", filename)
            continue

        service_name = os.path.splitext(filename)[0].replace("-", "_")
        log.info("Processing service: %s", service_name)
        document = load_document(spec_path)

        resources = build_resources(filename, service_name, options.provider_id, document, manifest, logger=log)
        components = document.setdefault("components", {})
        components[RESOURCES_KEY] = resources
        if servers is not None:
            document["servers"] = servers

        output_path = os.path.join(services_dir, filename)
        write_document(output_path, document)
        log.info("Wrote enriched spec: %s", output_path)

        info = document.get("info") if isinstance(document.get("info"), dict) else {}
        provider_services[service_name] = {
            "id": f"{service_name}:{PROVIDER_VERSION}",
            "name": service_name,
            "preferred": True,
            "service": {"$ref": f"{options.provider_id}/{PROVIDER_VERSION}/services/{filename}"},
            "title": info.get("title") or f"{title_case(service_name)} API",
            "version": PROVIDER_VERSION,
            "description": info.get("description") or f"{title_case(service_name)} service",
        }

    provider: dict[str, Any] = {
        "id": options.provider_id,
        "name": options.provider_id,
        "version": PROVIDER_VERSION,
        "providerServices": provider_services,
    }
    if provider_config is not None:
        provider["config"] = provider_config

    write_document(provider_manifest_path, provider)
    log.info("Wrote provider.yaml to %s", provider_manifest_path)
    return provider_manifest_path


def _parse_json_option(raw: str | None, label: str) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ManifestError(f"Failed to parse {label} JSON: {exc}") from exc
