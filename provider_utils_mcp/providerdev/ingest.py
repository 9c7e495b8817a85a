from __future__ import annotations

import json
import logging
import os
import shutil
from typing import Any, Iterable

import httpx
import yaml

from .errors import DocumentLoadError, OutputDirectoryError
from .model import HTTP_METHODS

_logger = logging.getLogger(__name__)

SPEC_SUFFIXES = (".json", ".yaml", ".yml")


class _NoAliasDumper(yaml.SafeDumper):
    def ignore_aliases(self, data: Any) -> bool:
        return True


def discover_spec_files(spec_dir: str, recursive: bool = False) -> list[str]:
    paths: list[str] = []
    if recursive:
        for root, _, files in os.walk(spec_dir):
            for name in files:
                if name.lower().endswith(SPEC_SUFFIXES):
                    paths.append(os.path.join(root, name))
    else:
        for name in os.listdir(spec_dir):
            path = os.path.join(spec_dir, name)
            if os.path.isfile(path) and name.lower().endswith(SPEC_SUFFIXES):
                paths.append(path)
    paths.sort()
    return paths


def is_url(source: str) -> bool:
    return source.startswith("http://") or source.startswith("https://")


def load_document(source: str, timeout: float = 30.0) -> dict[str, Any]:
    """Load an OpenAPI document from a local YAML/JSON file or an http(s) URL.

    Any read or parse failure is fatal for the caller and surfaces as
    ``DocumentLoadError``.
    """
    if is_url(source):
        try:
            with httpx.Client(timeout=timeout, follow_redirects=True) as client:
                response = client.get(source)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise DocumentLoadError(f"Failed to fetch {source}: {exc}") from exc
        text = response.text
    else:
        try:
            with open(source, "r", encoding="utf-8") as handle:
                text = handle.read()
        except OSError as exc:
            raise DocumentLoadError(f"Failed to read {source}: {exc}") from exc

    try:
        if source.lower().endswith(".json"):
            document = json.loads(text)
        else:
            document = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise DocumentLoadError(f"Failed to parse {source}: {exc}") from exc

    if not isinstance(document, dict):
        raise DocumentLoadError(f"Failed to parse {source}: document root is not a mapping")
    return document


def dump_document(document: dict[str, Any]) -> str:
    return yaml.dump(
        document,
        Dumper=_NoAliasDumper,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )


def write_document(path: str, document: dict[str, Any]) -> None:
    with open(path, "w", encoding="utf-8") as handle:
        handle.write(dump_document(document))


def create_dest_dir(dest_dir: str, overwrite: bool, logger: logging.Logger | None = None) -> None:
    log = logger or _logger
    if os.path.exists(dest_dir):
        if not overwrite:
            raise OutputDirectoryError(
                f"Destination directory {dest_dir} already exists. Use --overwrite to force."
            )
        try:
            shutil.rmtree(dest_dir)
        except OSError as exc:
            raise OutputDirectoryError(f"Failed to clean destination directory {dest_dir}: {exc}") from exc
        log.info("Cleaned destination directory %s", dest_dir)
    os.makedirs(dest_dir, exist_ok=True)


def iter_operations(document: dict[str, Any]) -> Iterable[tuple[str, str, dict[str, Any]]]:
    paths = document.get("paths") if isinstance(document, dict) else None
    if not isinstance(paths, dict):
        return
    for path_key, path_item in paths.items():
        if not isinstance(path_item, dict):
            continue
        for verb, operation in path_item.items():
            if verb not in HTTP_METHODS or not isinstance(operation, dict):
                continue
            yield path_key, verb, operation
