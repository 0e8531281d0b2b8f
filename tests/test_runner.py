"""
Pipeline Orchestrator and Evaluation Run Tests - Report Insight Platform
tests/test_runner.py
"""
import json
import threading
from datetime import datetime, timedelta, timezone

import pytest

from app.core.exceptions import DocumentFetchException, RunInProgressException, TextGenerationException
from app.models.enumerations import EvaluationStage, ReportCategory, Sentiment, SyncStage
from app.pipelines.classifier import IndustryClassifier
from app.pipelines.converter import ChunkedConverter
from app.pipelines.evaluation_state import EvaluationPipeline
from app.pipelines.evaluator import IndustryEvaluator
from app.pipelines.runner import PipelineOrchestrator, is_fresh
from app.shutdown import set_shutdown

from conftest import (
    CLASSIFY_MARKER,
    EVALUATE_MARKER,
    SCORE_MARKER,
    FakeFetcher,
    FakeTextGenerator,
    add_converted,
    evaluation_json,
    make_record,
)

CATEGORY = ReportCategory.INVESTMENT_STRATEGY


class ListDiscovery:
    def __init__(self, candidates=None, error=None):
        self.candidates = candidates or []
        self.error = error
        self.calls = 0

    def discover(self, category):
        self.calls += 1
        if self.error:
            raise self.error
        return list(self.candidates)


def make_orchestrator(catalogs, converter, discovery):
    return PipelineOrchestrator(catalog_for=catalogs.__getitem__, converter=converter, discovery=discovery)


class TestFreshness:

    def test_never_discovered_is_stale(self):
        assert is_fresh(None, timedelta(hours=6)) is False

    def test_recent_discovery_is_fresh(self):
        now = datetime(2025, 7, 1, 12, tzinfo=timezone.utc)
        assert is_fresh(now - timedelta(hours=5), timedelta(hours=6), now) is True
        assert is_fresh(now - timedelta(hours=6), timedelta(hours=6), now) is False

    def test_naive_timestamps_are_treated_as_utc(self):
        now = datetime(2025, 7, 1, 12, tzinfo=timezone.utc)
        assert is_fresh(datetime(2025, 7, 1, 11), timedelta(hours=6), now) is True


class TestRunSync:

    def test_discovers_appends_and_converts(self, catalogs, converter, fetcher):
        records = [make_record("x"), make_record("y")]
        for r in records:
            fetcher.documents[r.download_url] = 3
        discovery = ListDiscovery(records)

        result = make_orchestrator(catalogs, converter, discovery).run_sync(CATEGORY)

        assert result.stage == SyncStage.DONE
        assert (result.discovered, result.added, result.converted, result.failed) == (2, 2, 2, 0)
        assert catalogs[CATEGORY].pending_conversion() == []
        assert catalogs[CATEGORY].last_discovered_at is not None

    def test_failure_of_one_report_does_not_stop_the_next(self, catalogs, texts):
        x, y = make_record("x"), make_record("y")
        fetcher = FakeFetcher({x.download_url: DocumentFetchException(x.download_url, "HTTP 500"), y.download_url: 2})
        generator = FakeTextGenerator(responder=lambda p, a: "summary")
        converter = ChunkedConverter(fetcher, generator, texts)

        result = make_orchestrator(catalogs, converter, ListDiscovery([x, y])).run_sync(CATEGORY)

        assert (result.converted, result.failed) == (1, 1)
        catalog = catalogs[CATEGORY]
        assert catalog.find_by_id("x").derived_text_ref is None
        assert catalog.find_by_id("y").derived_text_ref is not None
        assert fetcher.fetched == [x.download_url, y.download_url]

    def test_failed_report_is_retried_on_next_pass(self, catalogs, texts):
        x = make_record("x")
        fetcher = FakeFetcher({x.download_url: DocumentFetchException(x.download_url, "HTTP 500")})
        generator = FakeTextGenerator(responder=lambda p, a: "summary")
        orchestrator = make_orchestrator(catalogs, ChunkedConverter(fetcher, generator, texts), ListDiscovery([x]))

        orchestrator.run_sync(CATEGORY)
        fetcher.documents[x.download_url] = 1
        result = orchestrator.run_sync(CATEGORY)

        assert result.converted == 1
        assert catalogs[CATEGORY].find_by_id("x").has_derived_text

    def test_fresh_catalog_skips_discovery(self, catalogs, converter):
        catalogs[CATEGORY].touch_discovered(datetime.now(timezone.utc) - timedelta(hours=1))
        discovery = ListDiscovery([make_record("x")])

        result = make_orchestrator(catalogs, converter, discovery).run_sync(CATEGORY)

        assert result.discovery_skipped is True
        assert discovery.calls == 0

    def test_force_discovers_even_when_fresh(self, catalogs, converter):
        catalogs[CATEGORY].touch_discovered()
        discovery = ListDiscovery([])
        make_orchestrator(catalogs, converter, discovery).run_sync(CATEGORY, force=True)
        assert discovery.calls == 1

    def test_stale_catalog_rediscovers(self, catalogs, converter):
        catalogs[CATEGORY].touch_discovered(datetime.now(timezone.utc) - timedelta(hours=7))
        discovery = ListDiscovery([])
        make_orchestrator(catalogs, converter, discovery).run_sync(CATEGORY)
        assert discovery.calls == 1

    def test_discovery_failure_still_converts_pending(self, catalogs, converter, fetcher):
        pending = make_record("p")
        fetcher.documents[pending.download_url] = 1
        catalogs[CATEGORY].upsert_if_new([pending])
        discovery = ListDiscovery(error=DocumentFetchException("feed", "HTTP 503"))

        result = make_orchestrator(catalogs, converter, discovery).run_sync(CATEGORY)

        assert result.converted == 1
        assert catalogs[CATEGORY].last_discovered_at is None

    def test_unconvertible_reports_are_skipped(self, catalogs, converter, fetcher):
        catalog = catalogs[CATEGORY]
        catalog.upsert_if_new([make_record("empty")])
        catalog.mark_failed("empty", "zero pages", permanent=True)

        result = make_orchestrator(catalogs, converter, ListDiscovery()).run_sync(CATEGORY)

        assert result.attempted == 0
        assert fetcher.fetched == []

    def test_cancellation_between_documents(self, catalogs, converter, fetcher):
        records = [make_record(x) for x in "abc"]
        for r in records:
            fetcher.documents[r.download_url] = 1
        catalogs[CATEGORY].upsert_if_new(records)
        checks = iter([False, True])

        result = make_orchestrator(catalogs, converter, ListDiscovery()).run_sync(
            CATEGORY, should_stop=lambda: next(checks)
        )

        assert result.cancelled is True
        assert result.converted == 1
        assert [r.id for r in catalogs[CATEGORY].pending_conversion()] == ["b", "c"]

    def test_process_shutdown_flag_cancels(self, catalogs, converter, fetcher):
        catalogs[CATEGORY].upsert_if_new([make_record("a")])
        set_shutdown()
        result = make_orchestrator(catalogs, converter, ListDiscovery()).run_sync(CATEGORY)
        assert result.cancelled is True
        assert fetcher.fetched == []


class TestEvaluationRun:

    @pytest.fixture
    def seeded(self, industry_catalog, texts):
        add_converted(industry_catalog, texts, make_record("r1", date="2025-07-02"), "chips text")
        add_converted(industry_catalog, texts, make_record("r2", date="2025-07-01"), "banks text")

    def _responder(self, score="0.9", classify=None, evaluate=None):
        classification = classify or json.dumps([
            {"id": "r1", "industries": ["Semiconductors"]},
            {"id": "r2", "industries": ["Banks", "Semiconductors"]},
        ])

        def respond(prompt, attachment):
            if CLASSIFY_MARKER in prompt:
                return classification
            if EVALUATE_MARKER in prompt:
                if evaluate is not None:
                    return evaluate(prompt)
                return evaluation_json("NEUTRAL" if "'Banks'" in prompt else "POSITIVE")
            if SCORE_MARKER in prompt:
                return score
            raise AssertionError("unexpected prompt")

        return respond

    def _pipeline(self, industry_catalog, texts, evaluation_repo, generator):
        return EvaluationPipeline(
            catalog=industry_catalog,
            texts=texts,
            classifier=IndustryClassifier(generator),
            evaluator=IndustryEvaluator(generator),
            repository=evaluation_repo,
        )

    def test_full_run_persists_all_scored_industries(self, seeded, industry_catalog, texts, evaluation_repo):
        generator = FakeTextGenerator(responder=self._responder())
        run = self._pipeline(industry_catalog, texts, evaluation_repo, generator).run(sample_size=10)

        assert run.stage == EvaluationStage.DONE
        assert all(run.steps_completed.values())
        artifact = evaluation_repo.load()
        assert artifact.evaluated_report_count == 2
        by_name = {e.industry_name: e for e in artifact.evaluations}
        assert set(by_name) == {"Semiconductors", "Banks"}
        assert by_name["Banks"].sentiment == Sentiment.NEUTRAL
        assert by_name["Semiconductors"].referenced_report_ids == ["r1", "r2"]

    def test_sample_size_limits_to_most_recent(self, seeded, industry_catalog, texts, evaluation_repo):
        generator = FakeTextGenerator(responder=self._responder())
        run = self._pipeline(industry_catalog, texts, evaluation_repo, generator).run(sample_size=1)
        assert [r.id for r in run.reports] == ["r1"]

    def test_classification_failure_keeps_previous_artifact(self, seeded, industry_catalog, texts, evaluation_repo):
        good = FakeTextGenerator(responder=self._responder())
        self._pipeline(industry_catalog, texts, evaluation_repo, good).run()
        before = evaluation_repo.load()

        bad = FakeTextGenerator(responses=[TextGenerationException("Timed out")])
        run = self._pipeline(industry_catalog, texts, evaluation_repo, bad).run()

        assert run.stage == EvaluationStage.FAILED
        assert run.failed_stage == EvaluationStage.CLASSIFY
        assert evaluation_repo.load() == before

    def test_failed_run_resumes_from_failed_stage(self, seeded, industry_catalog, texts, evaluation_repo):
        replies = [TextGenerationException("Timed out")]
        respond = self._responder()

        def flaky(prompt, attachment):
            if CLASSIFY_MARKER in prompt and replies:
                return replies.pop()
            return respond(prompt, attachment)

        generator = FakeTextGenerator(responder=flaky)
        pipeline = self._pipeline(industry_catalog, texts, evaluation_repo, generator)

        run = pipeline.run()
        assert run.stage == EvaluationStage.FAILED

        run = pipeline.run(run)
        assert run.stage == EvaluationStage.DONE
        assert evaluation_repo.exists()

    def test_failed_industry_is_skipped_not_fatal(self, seeded, industry_catalog, texts, evaluation_repo):
        def evaluate(prompt):
            if "'Banks'" in prompt:
                raise TextGenerationException("provider error")
            return evaluation_json()

        generator = FakeTextGenerator(responder=self._responder(evaluate=evaluate))
        run = self._pipeline(industry_catalog, texts, evaluation_repo, generator).run()

        assert run.stage == EvaluationStage.DONE
        assert run.skipped_industries == ["Banks"]
        assert [e.industry_name for e in evaluation_repo.load().evaluations] == ["Semiconductors"]

    def test_bad_score_keeps_record_with_fallback(self, seeded, industry_catalog, texts, evaluation_repo):
        generator = FakeTextGenerator(responder=self._responder(score="n/a"))
        self._pipeline(industry_catalog, texts, evaluation_repo, generator).run()
        assert {e.confidence for e in evaluation_repo.load().evaluations} == {0.5}

    def test_no_converted_reports_fails_without_writing(self, industry_catalog, texts, evaluation_repo):
        generator = FakeTextGenerator(responses=[])
        run = self._pipeline(industry_catalog, texts, evaluation_repo, generator).run()
        assert run.stage == EvaluationStage.FAILED
        assert not evaluation_repo.exists()
        assert generator.calls == []

    def test_every_industry_failing_keeps_previous_artifact(self, seeded, industry_catalog, texts, evaluation_repo):
        good = FakeTextGenerator(responder=self._responder())
        self._pipeline(industry_catalog, texts, evaluation_repo, good).run()
        before = evaluation_repo.load()

        def evaluate(prompt):
            raise TextGenerationException("provider error")

        bad = FakeTextGenerator(responder=self._responder(evaluate=evaluate))
        pipeline = self._pipeline(industry_catalog, texts, evaluation_repo, bad)
        run = pipeline.run()

        assert run.stage == EvaluationStage.FAILED
        assert run.failed_stage == EvaluationStage.EVALUATE
        assert sorted(run.skipped_industries) == ["Banks", "Semiconductors"]
        assert evaluation_repo.load() == before

        bad.responder = self._responder()
        run = pipeline.run(run)
        assert run.stage == EvaluationStage.DONE
        assert run.skipped_industries == []
        assert len(bad.prompts_containing(CLASSIFY_MARKER)) == 1


class TestSingleFlight:

    def _blocking_generator(self, started, release):
        def respond(prompt, attachment):
            started.set()
            assert release.wait(5)
            if CLASSIFY_MARKER in prompt:
                return json.dumps([{"id": "r1", "industries": ["Semiconductors"]}])
            if EVALUATE_MARKER in prompt:
                return evaluation_json()
            if SCORE_MARKER in prompt:
                return "0.9"
            return "summary"

        return FakeTextGenerator(responder=respond)

    def test_second_sync_of_same_category_is_rejected(self, catalogs, texts):
        record = make_record("x")
        started, release = threading.Event(), threading.Event()
        fetcher = FakeFetcher({record.download_url: 1})
        converter = ChunkedConverter(fetcher, self._blocking_generator(started, release), texts, map_workers=1)
        orchestrator = make_orchestrator(catalogs, converter, ListDiscovery([record]))

        worker = threading.Thread(target=orchestrator.run_sync, args=(CATEGORY,))
        worker.start()
        try:
            assert started.wait(5)
            assert orchestrator.is_syncing(CATEGORY) is True
            with pytest.raises(RunInProgressException):
                orchestrator.run_sync(CATEGORY)
            assert orchestrator.is_syncing(ReportCategory.INDUSTRY_ANALYSIS) is False
        finally:
            release.set()
            worker.join(5)

        assert orchestrator.is_syncing(CATEGORY) is False
        assert fetcher.fetched == [record.download_url]
        assert catalogs[CATEGORY].find_by_id("x").derived_text_ref is not None

    def test_lock_is_released_when_sync_raises(self, catalogs, converter):
        orchestrator = make_orchestrator(catalogs, converter, ListDiscovery(error=KeyError("feed")))
        with pytest.raises(KeyError):
            orchestrator.run_sync(CATEGORY, force=True)
        assert orchestrator.is_syncing(CATEGORY) is False

        orchestrator.discovery = ListDiscovery()
        assert orchestrator.run_sync(CATEGORY, force=True).stage == SyncStage.DONE

    def test_second_evaluation_is_rejected(self, catalogs, converter, industry_catalog, texts, evaluation_repo):
        add_converted(industry_catalog, texts, make_record("r1"), "chips text")
        started, release = threading.Event(), threading.Event()
        generator = self._blocking_generator(started, release)
        pipeline = EvaluationPipeline(
            catalog=industry_catalog,
            texts=texts,
            classifier=IndustryClassifier(generator),
            evaluator=IndustryEvaluator(generator),
            repository=evaluation_repo,
        )
        orchestrator = PipelineOrchestrator(
            catalog_for=catalogs.__getitem__, converter=converter, discovery=ListDiscovery(), evaluation=pipeline
        )

        worker = threading.Thread(target=orchestrator.evaluate_industries, args=(10,))
        worker.start()
        try:
            assert started.wait(5)
            with pytest.raises(RunInProgressException):
                orchestrator.evaluate_industries(10)
        finally:
            release.set()
            worker.join(5)

        assert len(generator.prompts_containing(CLASSIFY_MARKER)) == 1
        assert evaluation_repo.exists()
