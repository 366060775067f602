"""
Normalisation of generated text into structured values.
Every JSON call site parses through here with its own schema and fallback.
"""
import json
from typing import Any, Optional, Type, TypeVar
from loguru import logger
from pydantic import BaseModel, ValidationError


T = TypeVar("T", bound=BaseModel)


def strip_code_fence(text: str) -> str:
    """Remove a surrounding markdown code fence (``` or ```json) if present."""
    if not text:
        return ""

    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped

    lines = stripped.split("\n")
    lines = lines[1:]
    if lines and lines[-1].strip().startswith("```"):
        lines = lines[:-1]
    return "\n".join(lines).strip()


def normalize_response(text: str) -> Any:
    """
    Parse JSON from generated text, handling common formatting issues.

    Returns the decoded value for bare or fenced JSON, otherwise the input
    string unchanged.
    """
    if not text:
        return text

    body = strip_code_fence(text)

    try:
        return json.loads(body)
    except json.JSONDecodeError:
        pass

    # Object embedded in surrounding prose
    start = body.find("{")
    end = body.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(body[start:end + 1])
        except json.JSONDecodeError:
            pass

    return text


def parse_response(
    text: str,
    schema: Type[T],
    fallback: T,
    list_field: Optional[str] = None,
) -> T:
    """
    Validate generated text against `schema`, returning `fallback` on any failure.

    `list_field` names the field a bare JSON array should be wrapped into.
    """
    data = normalize_response(text)

    if isinstance(data, list) and list_field:
        data = {list_field: data}

    if not isinstance(data, dict):
        logger.warning(f"[ResponseParser] {schema.__name__}: response is not a JSON object, using fallback")
        return fallback

    try:
        return schema.model_validate(data)
    except ValidationError as e:
        logger.warning(f"[ResponseParser] {schema.__name__}: invalid response ({e.error_count()} errors), using fallback")
        return fallback
