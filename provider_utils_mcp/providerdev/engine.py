from __future__ import annotations

import logging
import threading
from typing import Any, Iterable

from .analyze import analyze
from .compose import effective_schema
from .docs import generate_docs
from .errors import DocumentLoadError, ManifestError, OutputDirectoryError, SplitError
from .fields import get_operation_fields
from .generate import generate
from .ingest import load_document
from .model import GenerateOptions, SplitOptions
from .partition import ServicePartitioner, split
from .render import render_operation_fields, render_schema, render_split_result
from .resolve import deep_resolve_refs

_logger = logging.getLogger(__name__)

FATAL_ERRORS = (DocumentLoadError, OutputDirectoryError, SplitError, ManifestError)


class ProviderDevEngine:
    """Front door for the split -> analyze -> generate -> docs pipeline."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._log = logger or _logger
        self._lock = threading.RLock()

    def split(
        self,
        api_doc: str,
        provider_name: str,
        output_dir: str,
        discriminator: str = "tag",
        exclude: Iterable[str] = (),
        overwrite: bool = True,
        name_overrides: dict[str, str] | None = None,
        validate_output: bool = False,
        fail_on_unresolved: bool = False,
    ) -> dict[str, Any]:
        options = SplitOptions(
            api_doc=api_doc,
            provider_name=provider_name,
            output_dir=output_dir,
            discriminator=discriminator,
            exclude=tuple(exclude),
            overwrite=overwrite,
            name_overrides=dict(name_overrides or {}),
            validate_output=validate_output,
            fail_on_unresolved=fail_on_unresolved,
        )
        with self._lock:
            try:
                result = split(options, logger=self._log)
            except FATAL_ERRORS as exc:
                self._log.error("Split failed: %s", exc)
                return {"ok": False, "error": str(exc)}
            return render_split_result(result)

    def partition(
        self,
        document: dict[str, Any],
        provider_name: str,
        discriminator: str = "tag",
        exclude: Iterable[str] = (),
        name_overrides: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        with self._lock:
            try:
                partitioner = ServicePartitioner(
                    provider_name,
                    discriminator=discriminator,
                    exclude=exclude,
                    name_overrides=name_overrides,
                    logger=self._log,
                )
            except SplitError as exc:
                return {"ok": False, "error": str(exc)}
            return render_split_result(partitioner.partition(document), include_documents=True)

    def analyze(self, input_dir: str, output_dir: str) -> dict[str, Any]:
        with self._lock:
            try:
                path = analyze(input_dir, output_dir, logger=self._log)
            except (DocumentLoadError, OSError) as exc:
                self._log.error("Failed to analyze OpenAPI specs: %s", exc)
                return {"ok": False, "error": str(exc)}
            return {"ok": True, "manifestPath": path}

    def generate(
        self,
        input_dir: str,
        output_dir: str,
        config_path: str,
        provider_id: str,
        servers: str | None = None,
        provider_config: str | None = None,
        skip_files: Iterable[str] = (),
    ) -> dict[str, Any]:
        options = GenerateOptions(
            input_dir=input_dir,
            output_dir=output_dir,
            config_path=config_path,
            provider_id=provider_id,
            servers=servers,
            provider_config=provider_config,
            skip_files=tuple(skip_files),
        )
        with self._lock:
            try:
                path = generate(options, logger=self._log)
            except (*FATAL_ERRORS, OSError) as exc:
                self._log.error("Failed to generate provider: %s", exc)
                return {"ok": False, "error": str(exc)}
            return {"ok": True, "providerManifest": path}

    def docs(
        self,
        provider_dir: str,
        output_dir: str,
        provider_name: str,
        deref_mode: str = "lazy",
    ) -> dict[str, Any]:
        with self._lock:
            try:
                summary = generate_docs(provider_dir, output_dir, provider_name, deref_mode, logger=self._log)
            except (DocumentLoadError, KeyError, OSError, ValueError) as exc:
                self._log.error("Failed to generate docs: %s", exc)
                return {"ok": False, "error": str(exc)}
            return {"ok": True, **summary}

    def effective_schema(self, schema: dict[str, Any], document: dict[str, Any] | None = None) -> dict[str, Any]:
        resolved = deep_resolve_refs(schema, document) if document is not None else schema
        return render_schema(effective_schema(resolved))

    def operation_fields(self, api_doc: str, path: str, verb: str, media_type: str = "application/json",
                         response_key: str = "200") -> dict[str, Any]:
        with self._lock:
            try:
                document = load_document(api_doc)
                fields = get_operation_fields(document, path, verb.lower(), media_type, response_key)
            except (DocumentLoadError, KeyError) as exc:
                return {"ok": False, "error": str(exc)}
            return {"ok": True, **render_operation_fields(fields)}
