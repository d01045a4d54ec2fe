"""Tests for template rendering."""

import pytest
from nodeflow.nodes.templating import TemplateRenderError, referenced_variables, render, render_value


class TestRender:
    def test_variable(self):
        assert render("Hi {{name}}", {"name": "Ada"}) == "Hi Ada"

    def test_dotted_lookup(self):
        assert render("{{body.user.name}}", {"body": {"user": {"name": "Ada"}}}) == "Ada"

    def test_missing_variable_renders_empty(self):
        assert render("Hi {{name}}!", {}) == "Hi !"
        assert render("[{{body.user.name}}]", {}) == "[]"

    def test_plain_string_untouched(self):
        assert render("no templates here", {"x": 1}) == "no templates here"

    def test_numbers_render_as_text(self):
        assert render("{{n}} items", {"n": 3}) == "3 items"

    def test_syntax_error_names_field(self):
        with pytest.raises(TemplateRenderError) as exc:
            render("Hi {{name", {"name": "Ada"}, field="user_prompt")
        assert exc.value.field == "user_prompt"
        assert "user_prompt" in str(exc.value)


class TestRenderValue:
    def test_nested_structures(self):
        value = {"user": "{{name}}", "tags": ["{{a}}", 3], "ok": True}
        assert render_value(value, {"name": "Ada", "a": "x"}, "body") == {
            "user": "Ada",
            "tags": ["x", 3],
            "ok": True,
        }


class TestReferencedVariables:
    def test_top_level_names(self):
        assert referenced_variables("{{b}} and {{a.c}}") == ["a", "b"]

    def test_none(self):
        assert referenced_variables("static") == []

    def test_invalid_template(self):
        assert referenced_variables("{{oops") == []
