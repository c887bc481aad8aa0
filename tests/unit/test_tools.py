import pytest

from robochat.tools import (
    Tool,
    ToolResultEnvelope,
    _build_parameters_schema,
    _parse_param_descriptions,
    tool,
)


# ---------------------------------------------------------------------------
# Schema generation (_build_parameters_schema)
# ---------------------------------------------------------------------------


class TestBuildParametersSchema:
    def test_python_types_map_to_json_schema_types(self):
        def func(a: str, b: int, c: float, d: bool, e: list, f: dict):
            pass

        schema, _ = _build_parameters_schema(func)
        assert schema["properties"]["a"]["type"] == "string"
        assert schema["properties"]["b"]["type"] == "integer"
        assert schema["properties"]["c"]["type"] == "number"
        assert schema["properties"]["d"]["type"] == "boolean"
        assert schema["properties"]["e"]["type"] == "array"
        assert schema["properties"]["f"]["type"] == "object"

    def test_generic_aliases_use_their_origin(self):
        def func(fields: list[dict], meta: dict[str, str]):
            pass

        schema, _ = _build_parameters_schema(func)
        assert schema["properties"]["fields"]["type"] == "array"
        assert schema["properties"]["meta"]["type"] == "object"

    def test_optional_params_not_required(self):
        def func(name: str, greeting: str = "hi"):
            pass

        schema, required = _build_parameters_schema(func)
        assert required == ["name"]
        assert schema["required"] == ["name"]

    def test_unannotated_param_defaults_to_string(self):
        def func(x):
            pass

        schema, _ = _build_parameters_schema(func)
        assert schema["properties"]["x"]["type"] == "string"

    def test_var_args_skipped(self):
        def func(name: str, *args, **kwargs):
            pass

        schema, _ = _build_parameters_schema(func)
        assert list(schema["properties"]) == ["name"]


# ---------------------------------------------------------------------------
# Docstring param description parsing (_parse_param_descriptions)
# ---------------------------------------------------------------------------


class TestParseParamDescriptions:
    def test_google_style(self):
        def func(name: str, fields: list):
            """Create a form.

            Args:
                name: Display name of the form.
                fields: Initial field definitions.
            """

        assert _parse_param_descriptions(func) == {
            "name": "Display name of the form.",
            "fields": "Initial field definitions.",
        }

    def test_google_style_with_type_in_docstring(self):
        def func(name, fields):
            """Create a form.

            Args:
                name (str): Display name of the form.
                fields (list): Initial field definitions.
            """

        assert _parse_param_descriptions(func) == {
            "name": "Display name of the form.",
            "fields": "Initial field definitions.",
        }

    def test_multiline_description_is_joined(self):
        def func(query: str):
            """Search forms.

            Args:
                query: The search query string.
                    Supports wildcards.
            """

        assert _parse_param_descriptions(func) == {
            "query": "The search query string. Supports wildcards.",
        }

    def test_following_section_ends_args_block(self):
        def func(form_id: str):
            """Delete a form.

            Args:
                form_id: Form to delete.

            Returns:
                deleted: The id that was removed.
            """

        assert _parse_param_descriptions(func) == {"form_id": "Form to delete."}

    def test_no_docstring(self):
        def func(x: str):
            pass

        assert _parse_param_descriptions(func) == {}

    def test_docstring_without_params_section(self):
        def func(x: str):
            """Just a summary."""

        assert _parse_param_descriptions(func) == {}

    def test_undocumented_param_gets_empty_description(self):
        def func(a: str, b: int):
            """Do something.

            Args:
                a: Documented param.
            """

        schema, _ = _build_parameters_schema(func)
        assert schema["properties"]["a"]["description"] == "Documented param."
        assert schema["properties"]["b"]["description"] == ""


# ---------------------------------------------------------------------------
# @tool decorator: two code paths
# ---------------------------------------------------------------------------


class TestToolDecorator:
    def test_bare_decorator(self):
        @tool
        def form_list():
            """List forms.

            Longer explanation that is not part of the summary.
            """
            return []

        assert isinstance(form_list, Tool)
        assert form_list.name == "form_list"
        assert form_list.description == "List forms."

    def test_decorator_with_args(self):
        @tool(name="formCreate", description="Custom desc")
        def form_create(name: str):
            """Original docstring."""
            return name

        assert form_create.name == "formCreate"
        assert form_create.description == "Custom desc"


def test_tool_model_dump_is_neutral_schema():
    @tool
    def greet(name: str):
        """Say hello."""

    assert greet.model_dump() == {
        "name": "greet",
        "description": "Say hello.",
        "parameters": {
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": ""},
            },
            "required": ["name"],
        },
    }


# ---------------------------------------------------------------------------
# Tool.__call__: sync/async dispatch and envelope wrapping
# ---------------------------------------------------------------------------


class TestToolCall:
    @pytest.mark.asyncio
    async def test_sync_function_result_wrapped_in_success(self):
        @tool
        def add(a: int, b: int):
            """Add numbers."""
            return a + b

        result = await add(a=2, b=3)
        assert isinstance(result, ToolResultEnvelope)
        assert result.is_success
        assert result.response == 5

    @pytest.mark.asyncio
    async def test_async_function_is_awaited(self):
        @tool
        async def fetch(form_id: str):
            """Fake fetch."""
            return {"id": form_id}

        result = await fetch(form_id="form_1")
        assert result.response == {"id": "form_1"}

    @pytest.mark.asyncio
    async def test_envelope_passes_through(self):
        @tool
        def reject():
            """Always fails."""
            return ToolResultEnvelope.failure("quota exceeded")

        result = await reject()
        assert not result.is_success
        assert result.error_items == ["quota exceeded"]

    @pytest.mark.asyncio
    async def test_exceptions_propagate(self):
        @tool
        def broken():
            """Raises."""
            raise ValueError("nope")

        with pytest.raises(ValueError, match="nope"):
            await broken()


class TestToolResultEnvelope:
    def test_success(self):
        env = ToolResultEnvelope.success({"id": 1})
        assert env.is_success
        assert env.error_items is None

    def test_failure_collects_items(self):
        env = ToolResultEnvelope.failure("a", "b")
        assert not env.is_success
        assert env.response is None
        assert env.error_items == ["a", "b"]

    def test_frozen(self):
        env = ToolResultEnvelope.success()
        with pytest.raises(Exception):
            env.is_success = False
