#!/usr/bin/env python3
"""
Tests for the template engine.
"""

import pytest

from cite_core.constants import DEFAULT_CONTENT_TEMPLATE
from cite_core.errors import TemplateRenderError
from cite_core.templates import TemplateEngine


def test_render_without_escaping():
    """Test that Markdown and HTML characters are inserted literally."""
    engine = TemplateEngine()
    result = engine.render("[@{{citekey}}] {{title}}", {"citekey": "smith2020", "title": "<b>A & B</b>"})
    assert result == "[@smith2020] <b>A & B</b>"


def test_missing_and_none_variables_render_empty():
    """Test that absent values leave no trace in the output."""
    engine = TemplateEngine()
    assert engine.render("{{title}}|{{year}}|{{nope}}", {"title": "T", "year": None}) == "T||"


def test_default_content_template():
    """Test the default literature note content."""
    engine = TemplateEngine()
    result = engine.render(DEFAULT_CONTENT_TEMPLATE, {
        "title": "A Study", "authorString": "Jane Smith", "year": 2020,
    })
    assert result == "---\ntitle: A Study\nauthors: Jane Smith\nyear: 2020\n---\n\n"


def test_compile_is_cached_by_source():
    """Test that the same source reuses its compiled template."""
    engine = TemplateEngine()
    first = engine.compile("@{{citekey}}")
    assert engine.compile("@{{citekey}}") is first
    assert engine.compile("@{{ citekey }}") is not first


def test_cache_is_bounded():
    """Test that old templates are evicted."""
    engine = TemplateEngine(cache_size=2)
    engine.compile("a{{x}}")
    engine.compile("b{{x}}")
    engine.compile("c{{x}}")
    assert engine.cache_info() == {"size": 2, "max_size": 2}
    engine.clear()
    assert engine.cache_info()["size"] == 0


def test_syntax_error_propagates():
    """Test that an invalid template raises a render error."""
    engine = TemplateEngine()
    with pytest.raises(TemplateRenderError):
        engine.compile("{{title")
    with pytest.raises(TemplateRenderError):
        engine.render("{% if %}", {})


def test_runtime_error_propagates():
    """Test that errors while rendering are not swallowed."""
    engine = TemplateEngine()
    with pytest.raises(TemplateRenderError):
        engine.render("{{ entry.missing.deeper }}", {"entry": {}})
