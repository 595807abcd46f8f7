"""Tests for tool argument validation."""

from mooncow.tools.validation import validate_arguments
from tests.mock_tools import EchoTool, SearchTool


class TestValidateArguments:
    def test_valid_args_pass(self):
        assert validate_arguments(EchoTool(), {"message": "hello"}) is None

    def test_missing_required_arg(self):
        problem = validate_arguments(EchoTool(), {})
        assert problem is not None
        assert "message" in problem

    def test_type_mismatch_names_the_field(self):
        problem = validate_arguments(EchoTool(), {"message": 12345})
        assert problem.startswith("message: ")

    def test_nested_path_reported(self):
        problem = validate_arguments(SearchTool(), {"queries": ["ok", 3]})
        assert problem.startswith("queries.1: ")

    def test_empty_array_rejected(self):
        assert validate_arguments(SearchTool(), {"queries": []}) is not None

    def test_extra_keys_allowed_when_schema_is_open(self):
        assert validate_arguments(EchoTool(), {"message": "hi", "extra": 1}) is None

    def test_broken_schema_reported(self):
        class Broken(EchoTool):
            @property
            def parameters(self):
                return {"type": "object", "properties": {"message": {"type": "no-such-type"}}}

        problem = validate_arguments(Broken(), {"message": "x"})
        assert problem.startswith("tool echo has an invalid schema")
