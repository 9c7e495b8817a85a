from __future__ import annotations

import copy
import logging
import os
from typing import Any, Iterable

from .closure import compute_closure
from .errors import SplitError
from .ingest import create_dest_dir, load_document, write_document
from .model import (
    COMPONENT_BUCKETS,
    HTTP_METHODS,
    Service,
    SplitOptions,
    SplitResult,
    UnresolvedPointer,
)
from .naming import (
    camel_to_snake,
    is_version_segment,
    path_placeholders,
    tag_service_name,
    to_snake_case,
    underscore_path_params,
)
from .pointers import extract_all_pointers, resolve_pointer, walk_nodes
from .validate import validate_document

_logger = logging.getLogger(__name__)

DISCRIMINATORS = ("tag", "path")
DEFAULT_SERVICE = "default"
SKIP_SERVICE = "skip"
PROGRESS_EVERY = 100
RESOURCE_HINT_KEY = "x-stackQL-resource"


class ServicePartitioner:
    """Split one OpenAPI document into self-contained per-service documents."""

    def __init__(
        self,
        provider_name: str,
        discriminator: str = "tag",
        exclude: Iterable[str] = (),
        name_overrides: dict[str, str] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if discriminator not in DISCRIMINATORS:
            raise SplitError(f"Unknown service discriminator: {discriminator}")
        self.provider_name = provider_name
        self.discriminator = discriminator
        self.exclude = frozenset(exclude)
        self.name_overrides = dict(name_overrides or {})
        self._log = logger or _logger

    def partition(self, document: dict[str, Any]) -> SplitResult:
        services: dict[str, Service] = {}
        skipped: list[str] = []
        self._classify(document, services, skipped)

        unresolved: list[UnresolvedPointer] = []
        for service in services.values():
            unresolved.extend(self._resolve_components(service, document))

        for service in services.values():
            self._rename_path_params(service)
            add_missing_object_types(service.document["paths"])
            add_missing_object_types(service.document["components"])
            _drop_empty_buckets(service.document)

        return SplitResult(services=services, unresolved=unresolved, skipped_operations=skipped)

    def service_name_and_description(
        self,
        operation: dict[str, Any],
        path_key: str,
        all_tags: list[Any],
    ) -> tuple[str, str]:
        service = DEFAULT_SERVICE
        description = f"{self.provider_name} API"

        if self.discriminator == "tag":
            tags = operation.get("tags")
            if isinstance(tags, list) and tags and isinstance(tags[0], str):
                first_tag = tags[0]
                service = tag_service_name(first_tag) or DEFAULT_SERVICE
                description = _tag_description(all_tags, first_tag, service) or description
        else:
            for segment in path_key.strip("/").split("/"):
                lower = segment.lower()
                if not lower or lower == "api" or is_version_segment(lower):
                    continue
                service = to_snake_case(lower) or DEFAULT_SERVICE
                break
            description = f"{self.provider_name} {service} API"

        if service == SKIP_SERVICE:
            return SKIP_SERVICE, ""

        override = self.name_overrides.get(service)
        if override:
            self._log.debug("Overriding service name: %s -> %s", service, override)
            if self.discriminator == "path":
                description = f"{self.provider_name} {override} API"
            service = override

        return service, description

    def is_excluded(self, operation: dict[str, Any]) -> bool:
        if not self.exclude:
            return False
        tags = operation.get("tags")
        if not isinstance(tags, list):
            return False
        return any(tag in self.exclude for tag in tags if isinstance(tag, str))

    def _classify(self, document: dict[str, Any], services: dict[str, Service], skipped: list[str]) -> None:
        paths = document.get("paths") or {}
        all_tags = document.get("tags") if isinstance(document.get("tags"), list) else []
        self._log.info("Iterating over %d paths", len(paths))

        op_counter = 0
        for path_key, path_item in paths.items():
            if not isinstance(path_item, dict):
                continue
            self._log.debug("Processing path %s", path_key)
            path_services: list[str] = []

            for verb, operation in path_item.items():
                if verb not in HTTP_METHODS or not isinstance(operation, dict):
                    continue
                op_counter += 1
                if op_counter % PROGRESS_EVERY == 0:
                    self._log.info("Operations processed: %d", op_counter)

                if self.is_excluded(operation):
                    self._log.debug("Excluding operation %s:%s", path_key, verb)
                    skipped.append(f"{verb.upper()} {path_key}")
                    continue

                name, description = self.service_name_and_description(operation, path_key, all_tags)
                if name == SKIP_SERVICE:
                    self._log.warning("Skipping operation %s:%s (service marked skip)", path_key, verb)
                    skipped.append(f"{verb.upper()} {path_key}")
                    continue

                service = services.get(name)
                if service is None:
                    self._log.debug("First occurrence of service %s", name)
                    service = Service(
                        name=name,
                        description=description,
                        document=_service_skeleton(name, description, document),
                    )
                    services[name] = service

                service_paths = service.document["paths"]
                copied = copy.deepcopy(operation)
                subcategory = _github_subcategory(self.provider_name, operation)
                if subcategory:
                    copied[RESOURCE_HINT_KEY] = camel_to_snake(subcategory)
                service_paths.setdefault(path_key, {})[verb] = copied
                if name not in path_services:
                    path_services.append(name)

            for name in path_services:
                target = services[name].document["paths"][path_key]
                for key, value in path_item.items():
                    if key not in HTTP_METHODS:
                        target[key] = copy.deepcopy(value)

    def _resolve_components(self, service: Service, document: dict[str, Any]) -> list[UnresolvedPointer]:
        seeds: set[str] = set()
        for path_item in service.document["paths"].values():
            for value in path_item.values():
                seeds.update(extract_all_pointers(value))
        self._log.debug("Found %d total refs for service %s", len(seeds), service.name)

        closure = compute_closure(seeds, document, logger=self._log, service=service.name)
        components = service.document["components"]
        for bucket, entries in closure.components.items():
            components.setdefault(bucket, {}).update(entries)
        return closure.unresolved

    def _rename_path_params(self, service: Service) -> None:
        paths = service.document["paths"]
        if not any("-" in name for key in paths for name in path_placeholders(key)):
            return

        renamed: dict[str, Any] = {}
        for path_key, path_item in paths.items():
            updated_key = underscore_path_params(path_key)
            if updated_key != path_key:
                self._log.debug("Updated path key from %s to %s", path_key, updated_key)
                hyphenated = {name for name in path_placeholders(path_key) if "-" in name}
                self._rename_params_in_path_item(service, path_item, hyphenated)
                if updated_key in paths or updated_key in renamed:
                    self._log.warning("Path %s collides with existing path %s", path_key, updated_key)
            renamed[updated_key] = path_item
        service.document["paths"] = renamed

    def _rename_params_in_path_item(self, service: Service, path_item: dict[str, Any], names: set[str]) -> None:
        parameter_lists = [path_item.get("parameters")]
        parameter_lists.extend(
            operation.get("parameters")
            for verb, operation in path_item.items()
            if verb in HTTP_METHODS and isinstance(operation, dict)
        )
        for parameters in parameter_lists:
            if not isinstance(parameters, list):
                continue
            for param in parameters:
                if not isinstance(param, dict):
                    continue
                ref = param.get("$ref")
                if isinstance(ref, str):
                    resolved = resolve_pointer(service.document, ref)
                    if resolved is not None and isinstance(resolved.value, dict):
                        self._rename_param(resolved.value, names, path_item)
                    continue
                self._rename_param(param, names, path_item)

    def _rename_param(self, param: dict[str, Any], names: set[str], path_item: dict[str, Any]) -> None:
        name = param.get("name")
        if param.get("in") != "path" or not isinstance(name, str) or name not in names:
            return
        param["name"] = name.replace("-", "_")
        self._log.debug("Updated parameter name from %s to %s", name, param["name"])


def add_missing_object_types(node: Any) -> Any:
    """Set ``type: object`` on schema nodes that declare ``properties`` but no type.

    Values of a ``properties`` map are schemas; the map itself is not.
    """

    def visit(mapping: dict[str, Any], is_properties_map: bool) -> bool:
        if is_properties_map:
            return True
        if isinstance(mapping.get("properties"), dict) and "type" not in mapping:
            mapping["type"] = "object"
        return True

    walk_nodes(node, visit)
    return node


def _github_subcategory(provider_name: str, operation: dict[str, Any]) -> str | None:
    # GitHub groups operations by x-github.subcategory, which names the resource
    if provider_name != "github":
        return None
    extension = operation.get("x-github")
    if not isinstance(extension, dict):
        return None
    subcategory = extension.get("subcategory")
    return subcategory if isinstance(subcategory, str) and subcategory else None


def _tag_description(all_tags: list[Any], tag_name: str, service: str) -> str | None:
    for tag in all_tags:
        if not isinstance(tag, dict):
            continue
        if tag.get("name") in (tag_name, service):
            description = tag.get("description")
            return description if isinstance(description, str) and description else None
    return None


def _service_skeleton(name: str, description: str, document: dict[str, Any]) -> dict[str, Any]:
    info = document.get("info") if isinstance(document.get("info"), dict) else {}
    skeleton: dict[str, Any] = {
        "openapi": document.get("openapi") or "3.0.0",
        "info": {
            "title": f"{name} API",
            "description": description,
            "version": info.get("version") or "1.0.0",
        },
        "paths": {},
        "components": {bucket: {} for bucket in COMPONENT_BUCKETS},
    }
    if document.get("servers"):
        skeleton["servers"] = copy.deepcopy(document["servers"])
    return skeleton


def _drop_empty_buckets(document: dict[str, Any]) -> None:
    components = document.get("components")
    if not isinstance(components, dict):
        return
    for bucket in [key for key, value in components.items() if isinstance(value, dict) and not value]:
        del components[bucket]


def split(options: SplitOptions, logger: logging.Logger | None = None) -> SplitResult:
    """Load, partition and write out one document per service."""
    log = logger or _logger
    log.info("Splitting OpenAPI doc for %s", options.provider_name)
    log.info("API Doc: %s", options.api_doc)
    log.info("Output: %s", options.output_dir)
    log.info("Service Discriminator: %s", options.discriminator)
    if options.name_overrides:
        log.info("Using %d service name overrides", len(options.name_overrides))

    document = load_document(options.api_doc)

    partitioner = ServicePartitioner(
        provider_name=options.provider_name,
        discriminator=options.discriminator,
        exclude=options.exclude,
        name_overrides=options.name_overrides,
        logger=log,
    )
    result = partitioner.partition(document)

    if options.fail_on_unresolved and result.unresolved:
        missing = ", ".join(sorted({item.pointer for item in result.unresolved}))
        raise SplitError(f"Unresolved references: {missing}")

    create_dest_dir(options.output_dir, options.overwrite, logger=log)

    for service in result.services.values():
        if options.validate_output:
            is_valid, error = validate_document(service.document)
            if not is_valid:
                log.warning("Service %s failed validation: %s", service.name, error)
                result.validation_errors[service.name] = error or "invalid"
        log.info("Writing out OpenAPI doc for [%s]", service.name)
        write_document(os.path.join(options.output_dir, service.file_name), service.document)

    log.info("Successfully split OpenAPI doc into %d services", len(result.services))
    return result
