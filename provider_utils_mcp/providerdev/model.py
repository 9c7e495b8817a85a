from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ResolvedPointer:
    bucket: str
    name: str
    value: Any


@dataclass(frozen=True)
class UnresolvedPointer:
    pointer: str
    reason: str
    service: str | None = None


@dataclass
class ClosureResult:
    components: dict[str, dict[str, Any]]
    unresolved: list[UnresolvedPointer]


@dataclass
class Service:
    name: str
    description: str
    document: dict[str, Any]

    @property
    def file_name(self) -> str:
        return f"{self.name}.yaml"

    @property
    def operation_count(self) -> int:
        count = 0
        for path_item in self.document.get("paths", {}).values():
            if isinstance(path_item, dict):
                count += sum(1 for key in path_item if key in HTTP_METHODS)
        return count


@dataclass
class SplitResult:
    services: dict[str, Service]
    unresolved: list[UnresolvedPointer] = field(default_factory=list)
    skipped_operations: list[str] = field(default_factory=list)
    validation_errors: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class SplitOptions:
    api_doc: str
    provider_name: str
    output_dir: str
    discriminator: str = "tag"
    exclude: tuple[str, ...] = ()
    overwrite: bool = True
    name_overrides: dict[str, str] = field(default_factory=dict)
    validate_output: bool = False
    fail_on_unresolved: bool = False


@dataclass(frozen=True)
class GenerateOptions:
    input_dir: str
    output_dir: str
    config_path: str
    provider_id: str
    servers: str | None = None
    provider_config: str | None = None
    skip_files: tuple[str, ...] = ()


@dataclass(frozen=True)
class ManifestRow:
    filename: str
    operation_id: str
    resource_name: str
    method_name: str
    sql_verb: str
    object_key: str | None = None

    @property
    def manifest_key(self) -> tuple[str, str]:
        return (self.filename, self.operation_id)


@dataclass
class RequestBodyFields:
    required: dict[str, dict[str, Any]] = field(default_factory=dict)
    optional: dict[str, dict[str, Any]] = field(default_factory=dict)
    schema: dict[str, Any] = field(default_factory=dict)


@dataclass
class OperationFields:
    path: str
    verb: str
    op_description: str
    resp_description: str
    properties: dict[str, dict[str, str]]
    required_params: dict[str, dict[str, str]]
    optional_params: dict[str, dict[str, str]]
    request_body: RequestBodyFields


HTTP_METHODS = (
    "get",
    "post",
    "put",
    "delete",
    "patch",
    "options",
    "head",
    "trace",
)

COMPONENT_BUCKETS = (
    "schemas",
    "responses",
    "parameters",
    "examples",
    "requestBodies",
    "headers",
    "securitySchemes",
    "links",
    "callbacks",
)
