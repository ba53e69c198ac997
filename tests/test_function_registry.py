"""
Unit tests for the function registry used by the reasoning tier.
"""

import pytest

from tabgraph_router.agents.function_registry import FunctionArgs, FunctionRegistry
from tabgraph_router.agents.models import FunctionCall, TabAction
from tabgraph_router.errors import FunctionArgumentError, UnknownFunctionError


@pytest.fixture
def registry():
    return FunctionRegistry()


class TestDefaultFunctions:
    """Tests for the built-in tab functions."""

    def test_close_tabs_by_pattern(self, registry, sample_tabs):
        result = registry.execute(
            FunctionCall(function="closeTabsByPattern", args={"pattern": "github"}), sample_tabs
        )

        assert result.action == "close"
        assert result.tab_ids == ["3", "4"]
        assert result.count == 2

    def test_create_tab_group_with_camel_case_args(self, registry, sample_tabs):
        result = registry.execute(
            FunctionCall(
                function="createTabGroup",
                args={"tabIds": ["1", "2", "99"], "groupName": "Career", "color": "blue"},
            ),
            sample_tabs,
        )

        assert result.action == "group"
        assert result.group_name == "Career"
        assert result.color == "blue"
        assert result.tab_ids == ["1", "2", "99"]
        assert result.count == 2

    def test_find_tabs_by_keyword(self, registry, sample_tabs):
        result = registry.execute(
            FunctionCall(function="findTabsByKeyword", args={"keywords": ["jobs", "news"]}), sample_tabs
        )

        assert result.tab_ids == ["2", "5"]

    def test_archive_and_pin(self, registry, sample_tabs):
        archive = registry.execute(FunctionCall(function="archiveTabs", args={"tabIds": ["5"]}), sample_tabs)
        pin = registry.execute(FunctionCall(function="pinTabs", args={"tabIds": ["1", "3"]}), sample_tabs)

        assert archive.action == "archive"
        assert archive.count == 1
        assert pin.action == "pin"
        assert pin.tab_ids == ["1", "3"]

    def test_suggest_tab_groups(self, registry, sample_tabs):
        result = registry.execute(FunctionCall(function="suggestTabGroups", args={}), sample_tabs)

        assert result.action == "suggest"
        assert [s.tab_ids for s in result.suggestions] == [["1", "2"], ["3", "4"]]
        assert [s.group_name for s in result.suggestions] == ["linkedin.com", "github.com"]


class TestValidation:
    """Tests for argument validation and unknown functions."""

    def test_unknown_function(self, registry, sample_tabs):
        with pytest.raises(UnknownFunctionError) as exc_info:
            registry.execute(FunctionCall(function="deleteEverything"), sample_tabs)

        assert exc_info.value.name == "deleteEverything"

    def test_missing_required_argument(self, registry, sample_tabs):
        with pytest.raises(FunctionArgumentError):
            registry.execute(FunctionCall(function="createTabGroup", args={"tabIds": ["1"]}), sample_tabs)

    def test_wrong_argument_type(self, registry, sample_tabs):
        with pytest.raises(FunctionArgumentError):
            registry.execute(FunctionCall(function="findTabsByKeyword", args={"keywords": []}), sample_tabs)


class TestRegistry:
    """Tests for registration and prompt rendering."""

    def test_default_function_names(self, registry):
        assert registry.function_names == [
            "closeTabsByPattern",
            "createTabGroup",
            "findTabsByKeyword",
            "archiveTabs",
            "pinTabs",
            "suggestTabGroups",
        ]
        assert registry.has_function("pinTabs")
        assert not registry.has_function("unknown")

    def test_register_custom_function(self, sample_tabs):
        class MuteArgs(FunctionArgs):
            tab_id: str

        registry = FunctionRegistry(register_defaults=False)
        registry.register("muteTab", "Mute a tab", MuteArgs, lambda args, tabs: TabAction(
            action="mute", tab_ids=[args.tab_id], count=1,
        ))

        result = registry.execute(FunctionCall(function="muteTab", args={"tab_id": "3"}), sample_tabs)

        assert result.action == "mute"
        assert registry.function_names == ["muteTab"]

    def test_definitions_prompt(self, registry):
        prompt = registry.definitions_prompt()

        assert "createTabGroup(tabIds, groupName, color)" in prompt
        assert "  - tabIds: string[] (required) - Array of tab IDs to group" in prompt
        assert "  - color: string (optional)" in prompt
        assert "  - minGroupSize: number (optional)" in prompt
