import jsonschema

from canvasai.tools.catalog import ToolSpec, normalize_schema


class ToolValidator:
    @staticmethod
    def validate(tool: ToolSpec, arguments: dict) -> tuple[bool, str | None]:
        try:
            jsonschema.validate(
                instance=arguments,
                schema=normalize_schema(tool.parameters),
            )
            return True, None
        except jsonschema.ValidationError as e:
            return False, str(e.message)
        except jsonschema.SchemaError as e:
            return False, f"invalid schema for {tool.name}: {e.message}"
