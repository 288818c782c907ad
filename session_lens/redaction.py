"""Post-parse redaction pass.

Applied to a parsed JSON tree before it is turned into events: inline image
payloads are replaced with a placeholder and oversized text is truncated.
The input tree is never modified; a redacted copy is returned.
"""

from typing import Any, Iterable

from .config import IMAGE_PLACEHOLDER, IMAGE_VALUE_LIMIT, MAX_TEXT_LENGTH, TRUNCATION_MARKER

TEXT_KEYS = ("text", "content")


def truncate_text(text: str, limit: int = MAX_TEXT_LENGTH) -> str:
    """Cut ``text`` to ``limit`` characters and append the truncation marker."""
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def is_inline_image(node: Any) -> bool:
    return (
        isinstance(node, dict)
        and node.get("kind") == "image"
        and isinstance(node.get("value"), str)
        and len(node["value"]) > IMAGE_VALUE_LIMIT
    )


def strip_images(node: Any) -> Any:
    """Replace every large inline image value in the tree with a placeholder."""
    if isinstance(node, dict):
        redacted = {key: strip_images(value) for key, value in node.items()}
        if is_inline_image(node):
            redacted["value"] = IMAGE_PLACEHOLDER
        return redacted
    if isinstance(node, list):
        return [strip_images(item) for item in node]
    return node


def truncate_fields(node: Any, keys: Iterable[str] = TEXT_KEYS, limit: int = MAX_TEXT_LENGTH) -> Any:
    """Truncate every string stored under one of ``keys`` anywhere in the tree."""
    keys = tuple(keys)
    if isinstance(node, dict):
        redacted = {}
        for key, value in node.items():
            if key in keys and isinstance(value, str):
                redacted[key] = truncate_text(value, limit)
            else:
                redacted[key] = truncate_fields(value, keys, limit)
        return redacted
    if isinstance(node, list):
        return [truncate_fields(item, keys, limit) for item in node]
    return node


def redact(node: Any, keys: Iterable[str] = TEXT_KEYS) -> Any:
    """Full redaction pass: strip images, then truncate text fields."""
    return truncate_fields(strip_images(node), keys)
