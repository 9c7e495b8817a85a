from __future__ import annotations

import logging
import os
import sys
from typing import Any

from fastmcp import FastMCP

from .providerdev import ProviderDevEngine

logging.basicConfig(
    stream=sys.stderr,
    level=logging.DEBUG if os.getenv("PROVIDER_VERBOSE", "0") == "1" else logging.INFO,
    format="%(levelname)s: %(message)s",
)

mcp = FastMCP("provider-utils-mcp")
engine = ProviderDevEngine(logger=logging.getLogger("provider_utils_mcp"))

DEFAULT_DISCRIMINATOR = os.getenv("PROVIDER_SVC_DISCRIMINATOR", "tag")
DEFAULT_OUTPUT_DIR = os.getenv("PROVIDER_OUTPUT_DIR", "./split-output")


@mcp.tool(name="provider_split")
def provider_split(
    api_doc: str,
    provider_name: str,
    output_dir: str | None = None,
    discriminator: str | None = None,
    exclude: list[str] | None = None,
    overwrite: bool = True,
    name_overrides: dict[str, str] | None = None,
    validate_output: bool = False,
) -> dict[str, Any]:
    """Split an OpenAPI document into self-contained per-service documents."""
    return engine.split(
        api_doc=api_doc,
        provider_name=provider_name,
        output_dir=output_dir or os.path.join(DEFAULT_OUTPUT_DIR, provider_name),
        discriminator=discriminator or DEFAULT_DISCRIMINATOR,
        exclude=exclude or (),
        overwrite=overwrite,
        name_overrides=name_overrides,
        validate_output=validate_output,
    )


@mcp.tool(name="provider_analyze")
def provider_analyze(input_dir: str, output_dir: str) -> dict[str, Any]:
    """Write the all_services.csv manifest for a directory of service documents."""
    return engine.analyze(input_dir, output_dir)


@mcp.tool(name="provider_generate")
def provider_generate(
    input_dir: str,
    output_dir: str,
    config_path: str,
    provider_id: str,
    servers: str | None = None,
    provider_config: str | None = None,
    skip_files: list[str] | None = None,
) -> dict[str, Any]:
    """Inject resource mappings from a manifest and write provider.yaml."""
    return engine.generate(
        input_dir,
        output_dir,
        config_path,
        provider_id,
        servers=servers,
        provider_config=provider_config,
        skip_files=skip_files or (),
    )


@mcp.tool(name="provider_docs")
def provider_docs(provider_dir: str, output_dir: str, provider_name: str, deref_mode: str = "lazy") -> dict[str, Any]:
    """Render resource documentation pages for a generated provider."""
    return engine.docs(provider_dir, output_dir, provider_name, deref_mode=deref_mode)


@mcp.tool(name="schema_effective")
def schema_effective(schema: dict[str, Any], document: dict[str, Any] | None = None) -> dict[str, Any]:
    """Collapse allOf/anyOf/oneOf and strip read-only fields from a schema."""
    return engine.effective_schema(schema, document)


@mcp.tool(name="operation_fields")
def operation_fields(api_doc: str, path: str, verb: str, media_type: str = "application/json") -> dict[str, Any]:
    """Return documented parameters, response fields and writable request body fields."""
    return engine.operation_fields(api_doc, path, verb, media_type=media_type)


app = mcp.http_app()


if __name__ == "__main__":
    mode = os.getenv("MCP_TRANSPORT", "stdio")
    if mode == "http":
        mcp.run(
            transport="http",
            host=os.getenv("MCP_HOST", "0.0.0.0"),  # nosec B104
            port=int(os.getenv("PORT", "8000")),
        )
    else:
        mcp.run()
