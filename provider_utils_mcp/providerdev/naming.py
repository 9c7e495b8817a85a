from __future__ import annotations

import re

_CAMEL_WORD = re.compile(r"([a-z0-9])([A-Z][a-z]+)")
_CAMEL_CHAR = re.compile(r"([a-z0-9])([A-Z])")
_SEPARATORS = re.compile(r"[\s\-.]+")
_VERSION_SEGMENT = re.compile(r"^v\d+$")
_PLACEHOLDER = re.compile(r"\{([^}]+)\}")


def camel_to_snake(name: str) -> str:
    s1 = _CAMEL_WORD.sub(r"\1_\2", name)
    return _CAMEL_CHAR.sub(r"\1_\2", s1).lower()


def to_snake_case(name: str) -> str:
    """Lower snake case: camel boundaries, hyphens, spaces and dots become ``_``."""
    snake = camel_to_snake(_SEPARATORS.sub("_", name.strip()))
    return re.sub(r"_+", "_", snake).strip("_")


def tag_service_name(tag: str) -> str:
    return tag.lower().replace("-", "_").replace(" ", "_")


def is_version_segment(segment: str) -> bool:
    return bool(_VERSION_SEGMENT.match(segment.lower()))


def underscore_path_params(path_key: str) -> str:
    return _PLACEHOLDER.sub(lambda match: "{" + match.group(1).replace("-", "_") + "}", path_key)


def path_placeholders(path_key: str) -> list[str]:
    return _PLACEHOLDER.findall(path_key)


def encode_path_ref(path_key: str, verb: str) -> str:
    encoded = path_key.replace("~", "~0").replace("/", "~1")
    return f"#/paths/{encoded}/{verb}"


def decode_pointer_token(token: str) -> str:
    return token.replace("~1", "/").replace("~0", "~")


def title_case(name: str) -> str:
    return " ".join(part.capitalize() for part in name.replace("_", " ").split())
