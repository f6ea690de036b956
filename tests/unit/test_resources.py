"""Unit tests for documentation resource retrieval."""

import pytest


class TestPickRelevantResources:
    """Test keyword ranking of MCP resources."""

    def test_keyword_overlap_and_docs_bonus(self):
        from integritas_host.domain.chat.resources import pick_relevant_resources

        resources = [
            {"uri": "file:///pricing", "name": "pricing plans"},
            {"uri": "integritas://docs/pricing", "name": "Pricing"},
            {"uri": "file:///other", "name": "other"},
        ]

        picks = pick_relevant_resources("pricing plans", resources, limit=2)

        # docs namespace: 1 token + bonus 2 = 3; file pricing: 2 tokens
        assert picks == ["integritas://docs/pricing", "file:///pricing"]

    def test_ties_keep_input_order(self):
        from integritas_host.domain.chat.resources import pick_relevant_resources

        resources = [{"uri": f"file:///r{i}"} for i in range(6)]

        assert pick_relevant_resources("nothing matches", resources) == [
            "file:///r0",
            "file:///r1",
            "file:///r2",
            "file:///r3",
        ]

    def test_limit(self):
        from integritas_host.domain.chat.resources import pick_relevant_resources

        resources = [{"uri": f"file:///r{i}"} for i in range(3)]

        assert pick_relevant_resources("x", resources, limit=1) == ["file:///r0"]


class TestSelectResourceUris:
    """Test forced overview/tools docs."""

    def test_forced_docs_first_and_unique(self):
        from tests.conftest import DEFAULT_RESOURCES
        from integritas_host.domain.chat.resources import select_resource_uris

        uris = select_resource_uris("pricing", DEFAULT_RESOURCES)

        assert uris[:2] == ["integritas://docs/overview", "integritas://docs/tools"]
        assert "integritas://docs/pricing" in uris
        assert len(uris) == len(set(uris))

    def test_forced_docs_only_when_present(self):
        from integritas_host.domain.chat.resources import select_resource_uris

        assert select_resource_uris("x", [{"uri": "file:///a"}]) == ["file:///a"]


class TestFetchResourceTexts:
    """Test resource reads."""

    @pytest.mark.asyncio
    async def test_non_text_resource_rendered_empty(self, fake_tool_server):
        from integritas_host.domain.chat.resources import (
            fetch_resource_texts,
            render_resource_context,
        )

        texts = await fetch_resource_texts(
            fake_tool_server, ["integritas://docs/overview", "file:///changelog"]
        )
        context = render_resource_context(texts)

        assert texts[0].text.startswith("Integritas stamps")
        assert texts[1].text == ""
        assert "### file:///changelog\n(empty)" in context
        assert context.startswith("### integritas://docs/overview\n")
