"""JSON Schema helpers for tool declarations and argument validation."""

from typing import Any

from jsonschema import Draft7Validator


def validate_schema(data: Any, schema: dict[str, Any]) -> tuple[bool, list[str]]:
    """
    Validate data against a JSON Schema.

    Args:
        data: The data to validate
        schema: JSON Schema to validate against

    Returns:
        Tuple of (is_valid, list of error messages)
    """
    if not schema:
        return True, []

    validator = Draft7Validator(schema)
    errors = list(validator.iter_errors(data))

    if not errors:
        return True, []

    error_messages = [
        f"{'.'.join(str(p) for p in e.path)}: {e.message}" if e.path else e.message
        for e in errors
    ]

    return False, error_messages


def create_tool_schema(parameters: list[dict[str, Any]]) -> dict[str, Any]:
    """
    Build an object JSON Schema from parameter definitions.

    Each definition has name, type, description and optionally
    required (default True).
    """
    properties = {
        param["name"]: {
            "type": param.get("type", "string"),
            "description": param.get("description", ""),
        }
        for param in parameters
    }

    return {
        "type": "object",
        "properties": properties,
        "required": [p["name"] for p in parameters if p.get("required", True)],
    }
