"""Tests for prompt templating, caching and versioning."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from estatenews.prompts import (
    ARTICLE_RESEARCH,
    DEFAULT_PROMPTS,
    NEWS_FETCH,
    PromptStore,
    render_template,
    resolve_prompt,
)


class _FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> _FakeClock:
    return _FakeClock()


@pytest.fixture
def prompts(engine, clock) -> PromptStore:
    return PromptStore(engine, cache_ttl=300, clock=clock)


# ---------------------------------------------------------------------------
# Templating
# ---------------------------------------------------------------------------


class TestRenderTemplate:
    def test_placeholders(self):
        assert render_template("Titel: {{title}}", {"title": "Hellerup"}) == "Titel: Hellerup"

    def test_missing_variable_renders_empty(self):
        assert render_template("[{{missing}}]", {}) == "[]"

    def test_if_block_kept_when_set(self):
        template = "A{{#if date}} Dato: {{date}}{{/if}}B"
        assert render_template(template, {"date": "marts"}) == "A Dato: martsB"

    def test_if_block_removed_when_empty(self):
        template = "A{{#if date}} Dato: {{date}}{{/if}}B"
        assert render_template(template, {"date": ""}) == "AB"
        assert render_template(template, {}) == "AB"

    def test_multiline_block(self):
        template = "{{#if sources}}Kilder:\n{{sources}}{{/if}}"
        assert render_template(template, {"sources": "u1\nu2"}) == "Kilder:\nu1\nu2"

    def test_research_default_renders_sources(self):
        rendered = render_template(
            DEFAULT_PROMPTS[ARTICLE_RESEARCH].prompt,
            {"title": "T", "summary": "S", "sources": "https://a.dk", "date": ""},
        )
        assert "https://a.dk" in rendered
        assert "{{" not in rendered


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class TestSeedAndRead:
    def test_seed_is_idempotent(self, prompts):
        assert prompts.seed_defaults() == len(DEFAULT_PROMPTS)
        assert prompts.seed_defaults() == 0
        assert {p.key for p in prompts.list_prompts()} == set(DEFAULT_PROMPTS)

    def test_unknown_key_is_none(self, prompts):
        assert prompts.get_prompt("nope") is None

    def test_get_prompt_with_variables(self, prompts):
        prompts.set_prompt("custom", "Hej {{name}}")
        assert prompts.get_prompt_with_variables("custom", {"name": "Mette"}) == "Hej Mette"

    def test_database_error_reads_as_none(self):
        engine = MagicMock()
        engine.connect.side_effect = OperationalError("SELECT", {}, Exception("db down"))
        assert PromptStore(engine).get_prompt(NEWS_FETCH) is None


class TestCache:
    def test_cached_within_ttl(self, prompts, engine, clock):
        prompts.set_prompt("k", "first")
        assert prompts.get_prompt("k") == "first"

        # Edit behind the store's back; the cached value is still served.
        PromptStore(engine).set_prompt("k", "second")
        clock.now += 299
        assert prompts.get_prompt("k") == "first"

    def test_expires_after_ttl(self, prompts, engine, clock):
        prompts.set_prompt("k", "first")
        prompts.get_prompt("k")
        PromptStore(engine).set_prompt("k", "second")
        clock.now += 301
        assert prompts.get_prompt("k") == "second"

    def test_own_edit_invalidates(self, prompts):
        prompts.set_prompt("k", "first")
        prompts.get_prompt("k")
        prompts.set_prompt("k", "second")
        assert prompts.get_prompt("k") == "second"


class TestVersions:
    def test_each_edit_snapshots_previous_text(self, prompts):
        prompts.set_prompt("k", "v0")
        prompts.set_prompt("k", "v1", change_description="tweak")
        prompts.set_prompt("k", "v2")

        versions = prompts.list_versions("k")
        assert [v.version_number for v in versions] == [2, 1]
        assert [v.prompt for v in versions] == ["v1", "v0"]
        assert versions[1].change_description == "tweak"

    def test_new_prompt_takes_default_metadata(self, prompts):
        record = prompts.set_prompt(NEWS_FETCH, "override")
        assert record.name == DEFAULT_PROMPTS[NEWS_FETCH].name
        assert record.prompt == "override"

    def test_restore(self, prompts):
        prompts.set_prompt("k", "original")
        prompts.set_prompt("k", "edited")
        original = prompts.list_versions("k")[0]

        record = prompts.restore_version("k", original.id, created_by="admin")

        assert record.prompt == "original"
        newest = prompts.list_versions("k")[0]
        assert newest.prompt == "edited"
        assert newest.created_by == "admin"
        assert newest.change_description == "Restored from version 1"

    def test_restore_unknown_version(self, prompts):
        prompts.set_prompt("k", "original")
        with pytest.raises(LookupError):
            prompts.restore_version("k", 999)

    def test_versions_of_unknown_key(self, prompts):
        with pytest.raises(LookupError):
            prompts.list_versions("nope")


class TestResolvePrompt:
    def test_store_text_wins(self, prompts):
        prompts.set_prompt(NEWS_FETCH, "Stored news prompt")
        assert resolve_prompt(prompts, NEWS_FETCH, {}) == "Stored news prompt"

    def test_falls_back_to_default(self, prompts):
        assert resolve_prompt(prompts, NEWS_FETCH, {}) == DEFAULT_PROMPTS[NEWS_FETCH].prompt

    def test_no_store(self):
        assert resolve_prompt(None, NEWS_FETCH, {}) == DEFAULT_PROMPTS[NEWS_FETCH].prompt
