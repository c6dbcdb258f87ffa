"""Tests for the OPRA category taxonomy."""

import json

import pytest

from opradraft.core.categories import (
    OpraCategory,
    get_categories,
    get_category,
    load_categories,
    required_category_ids,
)
from opradraft.core.errors import MalformedInputError


class TestPackagedTaxonomy:
    def test_loads_thirteen_categories(self):
        categories = get_categories()
        assert len(categories) == 13
        assert len({c.id for c in categories}) == 13

    def test_required_categories(self):
        assert required_category_ids() == [
            "board-admin", "rules-regulations", "compliance-enforcement", "general-admin",
        ]

    def test_get_category(self):
        board = get_category("board-admin")
        assert board is not None
        assert board.name == "Board Administrative Records"
        assert get_category("no-such-category") is None

    def test_categories_are_immutable(self):
        board = get_category("board-admin")
        with pytest.raises(AttributeError):
            board.name = "Changed"


class TestLoadCategories:
    def test_custom_file(self, tmp_path):
        path = tmp_path / "categories.json"
        path.write_text(json.dumps([{"id": "a", "name": "Alpha", "description": "First", "required": True}]))
        categories = load_categories(path)
        assert categories == (OpraCategory(id="a", name="Alpha", description="First", required=True),)

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "categories.json"
        path.write_text("[{not json")
        with pytest.raises(MalformedInputError):
            load_categories(path)

    def test_not_a_list(self, tmp_path):
        path = tmp_path / "categories.json"
        path.write_text(json.dumps({"id": "a"}))
        with pytest.raises(MalformedInputError):
            load_categories(path)

    def test_missing_field(self, tmp_path):
        path = tmp_path / "categories.json"
        path.write_text(json.dumps([{"id": "a", "name": "Alpha"}]))
        with pytest.raises(MalformedInputError):
            load_categories(path)

    def test_duplicate_id(self, tmp_path):
        path = tmp_path / "categories.json"
        entry = {"id": "a", "name": "Alpha", "description": "First"}
        path.write_text(json.dumps([entry, entry]))
        with pytest.raises(MalformedInputError, match="Duplicate"):
            load_categories(path)


class TestFallbackRecords:
    def test_defaults_when_present(self):
        board = get_category("board-admin")
        assert board.fallback_records()[0] == "All meeting minutes from the past 2 years"

    def test_generic_when_absent(self):
        category = OpraCategory(id="x", name="Loss of Use Calculations", description="d")
        assert category.fallback_records() == ["All records related to loss of use calculations"]
