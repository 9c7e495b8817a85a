from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Any, Sequence

import yaml

from .providerdev.docs import DEREF_MODES
from .providerdev.engine import ProviderDevEngine
from .providerdev.errors import DocumentLoadError
from .providerdev.ingest import dump_document, load_document


def _parse_mapping(value: str | None) -> dict[str, str]:
    """Accept inline JSON or a path to a JSON/YAML file."""
    if not value:
        return {}
    if os.path.isfile(value):
        with open(value, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    else:
        data = json.loads(value)
    if not isinstance(data, dict):
        raise argparse.ArgumentTypeError("service name overrides must be a mapping")
    return {str(key): str(val) for key, val in data.items()}


def _parse_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="provider-utils", description="OpenAPI provider development tools")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    split_cmd = commands.add_parser("split", help="split an OpenAPI document into service documents")
    split_cmd.add_argument("api_doc", help="path or URL of the source OpenAPI document")
    split_cmd.add_argument("--provider-name", required=True)
    split_cmd.add_argument("--output-dir", required=True)
    split_cmd.add_argument(
        "--svc-discriminator",
        choices=("tag", "path"),
        default=os.getenv("PROVIDER_SVC_DISCRIMINATOR", "tag"),
    )
    split_cmd.add_argument("--exclude", help="comma separated tags to exclude")
    split_cmd.add_argument("--svc-name-overrides", help="JSON mapping or path to a JSON/YAML mapping file")
    split_cmd.add_argument("--overwrite", action="store_true")
    split_cmd.add_argument("--validate", action="store_true", help="validate each service document")
    split_cmd.add_argument("--strict", action="store_true", help="fail when a reference cannot be resolved")

    analyze_cmd = commands.add_parser("analyze", help="write the all_services.csv manifest")
    analyze_cmd.add_argument("--input-dir", required=True)
    analyze_cmd.add_argument("--output-dir", required=True)

    generate_cmd = commands.add_parser("generate", help="inject resource mappings and write provider.yaml")
    generate_cmd.add_argument("--input-dir", required=True)
    generate_cmd.add_argument("--output-dir", required=True)
    generate_cmd.add_argument("--config-path", required=True)
    generate_cmd.add_argument("--provider-id", required=True)
    generate_cmd.add_argument("--servers", help="servers block as JSON")
    generate_cmd.add_argument("--provider-config", help="provider config as JSON")
    generate_cmd.add_argument("--skip", help="comma separated file names to skip")

    docs_cmd = commands.add_parser("docs", help="render resource documentation")
    docs_cmd.add_argument("--provider-dir", required=True)
    docs_cmd.add_argument("--output-dir", required=True)
    docs_cmd.add_argument("--provider-name", required=True)
    docs_cmd.add_argument("--deref-mode", choices=DEREF_MODES, default=os.getenv("PROVIDER_DEREF_MODE", "lazy"))

    schema_cmd = commands.add_parser("effective-schema", help="print the effective schema of a component")
    schema_cmd.add_argument("api_doc")
    schema_cmd.add_argument("schema_name")

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )
    engine = ProviderDevEngine(logger=logging.getLogger("provider_utils_mcp"))

    result: dict[str, Any]
    if args.command == "split":
        result = engine.split(
            api_doc=args.api_doc,
            provider_name=args.provider_name,
            output_dir=args.output_dir,
            discriminator=args.svc_discriminator,
            exclude=_parse_list(args.exclude),
            overwrite=args.overwrite,
            name_overrides=_parse_mapping(args.svc_name_overrides),
            validate_output=args.validate,
            fail_on_unresolved=args.strict,
        )
    elif args.command == "analyze":
        result = engine.analyze(args.input_dir, args.output_dir)
    elif args.command == "generate":
        result = engine.generate(
            args.input_dir,
            args.output_dir,
            args.config_path,
            args.provider_id,
            servers=args.servers,
            provider_config=args.provider_config,
            skip_files=_parse_list(args.skip),
        )
    elif args.command == "docs":
        result = engine.docs(args.provider_dir, args.output_dir, args.provider_name, deref_mode=args.deref_mode)
    else:
        try:
            document = load_document(args.api_doc)
        except DocumentLoadError as exc:
            logging.getLogger("provider_utils_mcp").error("%s", exc)
            return 1
        schemas = (document.get("components") or {}).get("schemas") or {}
        if args.schema_name not in schemas:
            sys.stderr.write(f"Schema {args.schema_name} not found\n")
            return 1
        result = engine.effective_schema(schemas[args.schema_name], document)
        sys.stdout.write(dump_document(result["schema"]))
        return 0

    if not result.get("ok"):
        return 1
    sys.stdout.write(json.dumps(result, indent=2, sort_keys=True) + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
