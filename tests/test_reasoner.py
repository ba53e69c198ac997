"""
Tests for the reasoning tier: output parsing, function calls and graph context.
"""

import json
from unittest.mock import AsyncMock, Mock

import pytest

from tabgraph_router.agents.reasoner import TabReasoner, format_graph_context, parse_model_output
from tabgraph_router.errors import ModelNotLoadedError, ModelOutputError, TierTimeoutError


def model_json(**fields):
    return json.dumps(fields)


class TestParseModelOutput:
    """Tests for parse-then-validate of model text."""

    def test_json_carved_from_text(self):
        raw = parse_model_output(
            'Sure! {"action": "close", "tabIds": [1, 2], "reasoning": "stale tabs", "confidence": 0.7} Done.'
        )

        assert raw.action == "close"
        assert raw.tab_ids == ["1", "2"]
        assert raw.confidence == 0.7

    def test_function_call(self):
        raw = parse_model_output(model_json(function="pinTabs", args={"tabIds": ["3"]}))

        assert raw.function == "pinTabs"
        assert raw.args == {"tabIds": ["3"]}
        assert raw.confidence is None

    def test_no_json(self):
        with pytest.raises(ModelOutputError) as exc_info:
            parse_model_output("I cannot help with that")

        assert exc_info.value.raw_output == "I cannot help with that"

    def test_invalid_json(self):
        with pytest.raises(ModelOutputError):
            parse_model_output("{action: close}")

    def test_out_of_range_confidence(self):
        with pytest.raises(ModelOutputError):
            parse_model_output(model_json(action="close", confidence=3))

    def test_neither_action_nor_function(self):
        with pytest.raises(ModelOutputError):
            parse_model_output(model_json(reasoning="thinking"))


class TestGraphContext:
    """Tests for the graph summary embedded in the prompt."""

    def test_no_groups(self):
        text = format_graph_context([], 3, 0, 0)

        assert text == "\n\nKnowledge Graph Analysis: No strong groupings detected (3 tabs analyzed)"

    @pytest.mark.asyncio
    async def test_groups_listed(self, make_model, sample_tabs):
        reasoner = TabReasoner(make_model())

        text, groups = await reasoner.graph_context(sample_tabs)

        assert len(groups) == 2
        assert "Found 2 potential tab groups" in text
        assert "confidence: 96%" in text
        assert "Graph stats: 5 nodes" in text

    @pytest.mark.asyncio
    async def test_graph_failure(self, make_model, sample_tabs):
        cache = Mock()
        cache.get_graph = AsyncMock(side_effect=RuntimeError("graph unavailable"))
        reasoner = TabReasoner(make_model(), graph_cache=cache)

        text, groups = await reasoner.graph_context(sample_tabs)

        assert text == "\n\nKnowledge Graph: Unavailable (using basic analysis)"
        assert groups == []


class TestAnalyze:
    """Tests for TabReasoner.analyze."""

    @pytest.mark.asyncio
    async def test_prompt_contents(self, make_model, sample_tabs):
        model = make_model(model_json(action="find", tabIds=["5"], reasoning="news"))
        reasoner = TabReasoner(model)

        await reasoner.analyze("find my news", sample_tabs)

        prompt = model.prompts[0]
        assert 'User query: "find my news"' in prompt
        assert "Available tabs (5 total):" in prompt
        assert "1. LinkedIn Feed (linkedin.com)" in prompt
        assert "Knowledge Graph Analysis" in prompt
        assert "createTabGroup(tabIds, groupName, color)" in prompt

    @pytest.mark.asyncio
    async def test_direct_action(self, make_model, sample_tabs):
        reasoner = TabReasoner(make_model(model_json(
            action="close", tabIds=["5"], reasoning="Unrelated news", confidence=0.9,
        )))

        decision = await reasoner.analyze("close the news tab", sample_tabs)

        assert decision.action == "close"
        assert decision.tab_ids == ["5"]
        assert decision.confidence == 0.9
        assert decision.function is None
        assert decision.latency_ms >= 0

    @pytest.mark.asyncio
    async def test_group_name_filled_from_graph(self, make_model, sample_tabs):
        reasoner = TabReasoner(make_model(model_json(action="group", tabIds=["1"], reasoning="Career tabs")))

        decision = await reasoner.analyze("group my career stuff", sample_tabs)

        assert decision.group_name.startswith("Linkedin")
        assert decision.reasoning == "Career tabs (Graph suggests: Grouped because: same domain, all work)"
        assert decision.confidence == 0.8

    @pytest.mark.asyncio
    async def test_explicit_group_name_kept(self, make_model, sample_tabs):
        reasoner = TabReasoner(make_model(model_json(action="group", tabIds=["1"], groupName="Jobs")))

        decision = await reasoner.analyze("group my career stuff", sample_tabs)

        assert decision.group_name == "Jobs"

    @pytest.mark.asyncio
    async def test_function_call_executed(self, make_model, sample_tabs):
        reasoner = TabReasoner(make_model(model_json(
            function="closeTabsByPattern", args={"pattern": "github"}, confidence=0.85,
        )))

        decision = await reasoner.analyze("close everything from github", sample_tabs)

        assert decision.function == "closeTabsByPattern"
        assert decision.action == "close"
        assert decision.tab_ids == ["3", "4"]
        assert decision.result.count == 2
        assert decision.confidence == 0.85
        assert decision.reasoning == "Executed closeTabsByPattern"

    @pytest.mark.asyncio
    async def test_unknown_function_is_output_error(self, make_model, sample_tabs):
        reasoner = TabReasoner(make_model(model_json(function="formatDisk", args={})))

        with pytest.raises(ModelOutputError):
            await reasoner.analyze("do something", sample_tabs)

    @pytest.mark.asyncio
    async def test_bad_arguments_are_output_error(self, make_model, sample_tabs):
        reasoner = TabReasoner(make_model(model_json(function="createTabGroup", args={"tabIds": ["1"]})))

        with pytest.raises(ModelOutputError):
            await reasoner.analyze("group these", sample_tabs)

    @pytest.mark.asyncio
    async def test_unloaded_model(self, make_model, sample_tabs):
        reasoner = TabReasoner(make_model(ready=False))

        assert not reasoner.is_ready()
        with pytest.raises(ModelNotLoadedError):
            await reasoner.analyze("close the news tab", sample_tabs)

    @pytest.mark.asyncio
    async def test_timeout(self, make_model, sample_tabs):
        reasoner = TabReasoner(make_model(model_json(action="close"), generate_delay=1.0), timeout_s=0.05)

        with pytest.raises(TierTimeoutError) as exc_info:
            await reasoner.analyze("close the news tab", sample_tabs)

        assert exc_info.value.tier == "reasoning"

    def test_model_label(self, make_model):
        assert TabReasoner(make_model(model_name="phi-3.5-mini-instruct")).model_label == "phi-3.5-mini-instruct"
