"""
Keyword Cache and Extractor Tests - Report Insight Platform
tests/test_keyword_cache.py
"""
import json

import pytest

from app.core.exceptions import TextGenerationException
from app.models.enumerations import DataStatus, KeywordImpact
from app.models.keyword import Keyword
from app.pipelines.keywords import KeywordExtractor, parse_keywords

from conftest import KEYWORD_MARKER, FakeTextGenerator, add_converted, make_record


def kw(label: str) -> Keyword:
    return Keyword(icon="📈", label=label, description=f"{label} matters", impact=KeywordImpact.POSITIVE)


A, B, C, D = (make_record(x) for x in "ABCD")


class TestContainmentLaw:

    def test_empty_cache_is_a_miss(self, keyword_cache):
        assert keyword_cache.get([A]).hit is False

    def test_subset_request_hits(self, keyword_cache):
        keyword_cache.save([kw("rates")], [A, B, C])
        lookup = keyword_cache.get([A, B])
        assert lookup.hit is True
        assert [k.label for k in lookup.keywords] == ["rates"]

    def test_equal_set_hits(self, keyword_cache):
        keyword_cache.save([kw("rates")], [A, B, C])
        assert keyword_cache.get([C, B, A]).hit is True

    def test_partial_overlap_misses(self, keyword_cache):
        keyword_cache.save([kw("rates")], [A, B, C])
        assert keyword_cache.get([A, D]).hit is False

    def test_save_after_miss_unions_covered_files(self, keyword_cache):
        keyword_cache.save([kw("rates")], [A, B, C])
        assert keyword_cache.get([A, D]).hit is False

        entry = keyword_cache.save([kw("oil")], [A, D])

        assert entry.covered_file_ids == {"A", "B", "C", "D"}
        assert [k.label for k in entry.keywords] == ["oil"]
        assert keyword_cache.get([B, D]).hit is True

    def test_covered_file_metadata_is_not_duplicated(self, keyword_cache):
        keyword_cache.save([kw("x")], [A, B])
        entry = keyword_cache.save([kw("y")], [A, B])
        assert [f.id for f in entry.covered_files] == ["A", "B"]

    def test_cache_persists_across_instances(self, keyword_cache, data_dirs):
        from app.repositories.keyword_cache_repository import KeywordCacheRepository

        keyword_cache.save([kw("rates")], [A])
        assert KeywordCacheRepository(summary_dir=data_dirs["summary"]).get([A]).hit is True


class TestParseKeywords:

    def test_invalid_items_are_dropped(self):
        payload = [
            {"icon": "📉", "label": "Tariffs", "description": "Export pressure", "impact": "NEGATIVE"},
            {"icon": "?", "label": "", "description": "empty label", "impact": "neutral"},
            {"icon": "?", "label": "Bad impact", "description": "x", "impact": "sideways"},
            "not an object",
        ]
        keywords = parse_keywords(payload)
        assert [k.label for k in keywords] == ["Tariffs"]
        assert keywords[0].impact == KeywordImpact.NEGATIVE

    def test_object_wrapper_is_accepted(self):
        payload = {"keywords": [{"icon": "📈", "label": "AI", "description": "d", "impact": "positive"}]}
        assert len(parse_keywords(payload)) == 1

    def test_non_list_yields_nothing(self):
        assert parse_keywords("nope") == []


class TestKeywordExtractor:

    @pytest.fixture
    def converted(self, strategy_catalog, texts):
        for i, date in enumerate(["2025-07-01", "2025-07-02", "2025-07-03"]):
            add_converted(strategy_catalog, texts, make_record(f"s{i}", date=date), f"text {i}")

    def _reply(self, *labels):
        return json.dumps([
            {"icon": "📈", "label": label, "description": "d", "impact": "positive"} for label in labels
        ])

    def test_no_converted_reports_is_no_data(self, strategy_catalog, texts, keyword_cache):
        extractor = KeywordExtractor(strategy_catalog, texts, keyword_cache, FakeTextGenerator(responses=[]))
        assert extractor.generate(5).status == DataStatus.NO_DATA

    def test_miss_generates_and_then_hits(self, converted, strategy_catalog, texts, keyword_cache):
        generator = FakeTextGenerator(responses=[self._reply("Rates")])
        extractor = KeywordExtractor(strategy_catalog, texts, keyword_cache, generator)

        first = extractor.generate(2)
        second = extractor.generate(2)

        assert first.status == DataStatus.OK and first.cached is False
        assert second.status == DataStatus.OK and second.cached is True
        assert len(generator.calls) == 1
        assert [f.id for f in first.referenced_files] == ["s2", "s1"]

    def test_prompt_uses_most_recent_reports(self, converted, strategy_catalog, texts, keyword_cache):
        generator = FakeTextGenerator(responses=[self._reply("Rates")])
        KeywordExtractor(strategy_catalog, texts, keyword_cache, generator).generate(2)
        prompt = generator.prompts_containing(KEYWORD_MARKER)[0]
        assert "Report s2" in prompt and "Report s1" in prompt
        assert "Report s0" not in prompt

    def test_generation_failure_serves_stale_keywords(self, converted, strategy_catalog, texts, keyword_cache):
        keyword_cache.save([kw("Old theme")], [make_record("s0")])
        generator = FakeTextGenerator(responses=[TextGenerationException("Timed out")])
        response = KeywordExtractor(strategy_catalog, texts, keyword_cache, generator).generate(3)

        assert response.status == DataStatus.STALE
        assert [k.label for k in response.keywords] == ["Old theme"]

    def test_generation_failure_without_cache_is_no_data(self, converted, strategy_catalog, texts, keyword_cache):
        generator = FakeTextGenerator(responses=["not json at all"])
        response = KeywordExtractor(strategy_catalog, texts, keyword_cache, generator).generate(3)
        assert response.status == DataStatus.NO_DATA
        assert keyword_cache.entry() is None
