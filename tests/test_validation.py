"""Tests for ToolValidator and ToolCatalog."""

import pytest

from canvasai.tools.catalog import ToolCatalog, ToolSpec
from canvasai.tools.validation import ToolValidator
from tests.mock_host import make_catalog


class TestToolValidator:
    """Test suite for ToolValidator.validate()."""

    def test_valid_args_pass(self):
        tool = make_catalog().require("create_rectangle")
        ok, err = ToolValidator.validate(tool, {"x": 0, "y": 0, "width": 10, "height": 10})
        assert ok is True
        assert err is None

    def test_missing_required_arg_fails(self):
        tool = make_catalog().require("look_at")
        ok, err = ToolValidator.validate(tool, {"x": 1})
        assert ok is False
        assert "y" in err

    def test_type_mismatch_fails(self):
        tool = make_catalog().require("look_at")
        ok, err = ToolValidator.validate(tool, {"x": "left", "y": 2})
        assert ok is False
        assert err is not None

    def test_empty_schema_accepts_anything(self):
        ok, err = ToolValidator.validate(ToolSpec("undo"), {"extra": True})
        assert ok is True

    def test_broken_schema_is_reported(self):
        tool = ToolSpec("bad", parameters={"type": "object", "properties": {"x": {"type": 5}}})
        ok, err = ToolValidator.validate(tool, {"x": 1})
        assert ok is False
        assert "invalid schema" in err


class TestToolCatalog:
    def test_register_and_get(self):
        catalog = ToolCatalog()
        tool = ToolSpec("undo", "Undo the last change")
        catalog.register(tool)
        assert catalog.get("undo") is tool
        assert "undo" in catalog
        assert len(catalog) == 1

    def test_require_raises_keyerror_for_unknown(self):
        with pytest.raises(KeyError, match="nonexistent"):
            ToolCatalog().require("nonexistent")

    def test_duplicate_registration_raises_valueerror(self):
        catalog = ToolCatalog([ToolSpec("undo")])
        with pytest.raises(ValueError, match="already registered"):
            catalog.register(ToolSpec("undo"))
        catalog.register(ToolSpec("undo", "replaced"), overwrite=True)
        assert catalog.require("undo").description == "replaced"

    def test_unknown_tier_rejected(self):
        with pytest.raises(ValueError, match="Unknown tool tier"):
            ToolCatalog([ToolSpec("x", tier="wizard")])

    def test_tier_filter_includes_lower_tiers(self):
        catalog = make_catalog()
        assert [t.name for t in catalog.list("basic")] == ["create_rectangle", "look_at"]
        assert len(catalog.list("advanced")) == 3
        assert len(catalog.list()) == 3

    def test_from_dicts_accepts_input_schema(self):
        catalog = ToolCatalog.from_dicts(
            [{"name": "zoom", "input_schema": {"properties": {"level": {"type": "number"}}}}]
        )
        spec = catalog.require("zoom")
        assert spec.parameters["type"] == "object"
        assert spec.to_dict() == {
            "name": "zoom",
            "description": "",
            "parameters": {"type": "object", "properties": {"level": {"type": "number"}}},
        }
