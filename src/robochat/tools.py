import inspect
import re
import typing
from typing import Any, Callable

from pydantic import BaseModel, Field


_JSON_TYPES = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    type(None): "null",
    dict: "object",
    list: "array",
    tuple: "array",  # closest equivalent
    set: "array",    # closest equivalent
}


class ToolResultEnvelope(BaseModel):
    """Success/error envelope returned by every tool execution.

    Mirrors the universal response shape of the forms API wrapper:
    ``response`` carries the structured payload on success and
    ``error_items`` the reasons on failure.
    """

    model_config = {"frozen": True}

    is_success: bool
    response: Any = None
    error_items: list[Any] | None = None

    @classmethod
    def success(cls, response: Any = None) -> "ToolResultEnvelope":
        return cls(is_success=True, response=response)

    @classmethod
    def failure(cls, *error_items: Any) -> "ToolResultEnvelope":
        return cls(is_success=False, error_items=list(error_items))


def _json_type(annotation: Any) -> str:
    if annotation is inspect.Parameter.empty:
        return "string"
    origin = typing.get_origin(annotation) or annotation
    return _JSON_TYPES.get(origin, "string")


def _parse_param_descriptions(func: Callable) -> dict[str, str]:
    """Read per-parameter descriptions from a Google-style ``Args:`` block."""
    doc = inspect.getdoc(func)
    if not doc:
        return {}

    descriptions: dict[str, str] = {}
    in_args = False
    current: str | None = None
    for line in doc.splitlines():
        stripped = line.strip()
        if stripped in ("Args:", "Arguments:", "Parameters:"):
            in_args = True
            continue
        if not in_args:
            continue
        if not stripped:
            current = None
            continue
        if not line.startswith((" ", "\t")):
            # A new section (Returns:, Raises:, ...) ends the block.
            break
        match = re.match(r"^(\w+)\s*(?:\([^)]*\))?\s*:\s*(.*)$", stripped)
        if match:
            current = match.group(1)
            descriptions[current] = match.group(2)
        elif current is not None:
            descriptions[current] = f"{descriptions[current]} {stripped}".strip()
    return descriptions


def _summary(func: Callable) -> str:
    doc = inspect.getdoc(func) or ""
    return doc.split("\n\n", 1)[0].strip()


def _build_parameters_schema(func: Callable) -> tuple[dict, list[str]]:
    """Build a JSON-schema ``object`` for *func*'s parameters.

    Returns the schema and the list of required parameter names.
    """
    signature = inspect.signature(func)
    try:
        hints = typing.get_type_hints(func)
    except (NameError, TypeError):
        hints = {}
    descriptions = _parse_param_descriptions(func)

    properties: dict[str, dict] = {}
    required: list[str] = []
    for param_name, param in signature.parameters.items():
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        annotation = hints.get(param_name, param.annotation)
        properties[param_name] = {
            "type": _json_type(annotation),
            "description": descriptions.get(param_name, ""),
        }
        if param.default is inspect.Parameter.empty:
            required.append(param_name)

    schema = {
        "type": "object",
        "properties": properties,
        "required": required,
    }
    return schema, required


class Tool(BaseModel):
    """A callable exposed to the model, plus its declared input schema.

    Plain and ``async`` functions are both supported.  Build one with the
    :func:`tool` decorator rather than directly.
    """

    # Define as fields but exclude from serialization
    func: Callable = Field(exclude=True)
    name: str
    description: str = ""
    parameters: dict = Field(default_factory=dict)
    model_config = {"arbitrary_types_allowed": True}

    def model_dump(self, **kwargs):
        """Override to return the tool schema instead of internal attributes"""
        return self.tool_schema()

    def tool_schema(self) -> dict:
        """Provider-neutral schema: ``name``, ``description``, ``parameters``."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    async def __call__(self, **kwargs) -> ToolResultEnvelope:
        result = self.func(**kwargs)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, ToolResultEnvelope):
            return result
        return ToolResultEnvelope.success(result)


def tool(
    func: Callable | None = None,
    *,
    name: str | None = None,
    description: str | None = None,
):
    """Turn a function into a :class:`Tool`.

    The tool name defaults to the function name and the description to
    the first paragraph of its docstring.  Parameter descriptions come
    from the docstring's ``Args:`` section.

    Example::

        @tool
        async def form_create(name: str, fields: list = None):
            \"\"\"Create a new form.

            Args:
                name: Display name of the form.
                fields: Initial field definitions.
            \"\"\"
            return await forms_api.create(name, fields or [])
    """
    def wrap(f: Callable) -> Tool:
        schema, _ = _build_parameters_schema(f)
        return Tool(
            func=f,
            name=name or f.__name__,
            description=description if description is not None else _summary(f),
            parameters=schema,
        )

    if func is not None:
        return wrap(func)
    return wrap
