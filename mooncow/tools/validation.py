"""JSON-schema checks for tool arguments produced by the model."""

import jsonschema

from mooncow.tools.base import Tool, normalize_schema


def validate_arguments(tool: Tool, arguments: dict) -> str | None:
    """Return a readable problem description, or ``None`` when *arguments* fit."""
    try:
        jsonschema.validate(instance=arguments, schema=normalize_schema(tool.parameters))
    except jsonschema.ValidationError as e:
        where = ".".join(str(p) for p in e.absolute_path)
        return f"{where}: {e.message}" if where else e.message
    except jsonschema.SchemaError as e:
        return f"tool {tool.name} has an invalid schema: {e.message}"
    return None
