"""
Unit tests for cross-provider quote aggregation.
"""

import asyncio

import pytest

from quote_engine.models.automation import AutomationEvent
from quote_engine.models.quote import Quote
from quote_engine.orchestration.aggregator import QuoteAggregator, derive_final_status
from quote_engine.orchestration.orchestrator import WorkflowOrchestrator


def three_provider_scripts(ok, failed):
    """Alpha fails at step 2 on every attempt; Bravo and Charlie succeed."""
    return {
        "Alpha Insurance": [ok({"success": True}, run_id="a1")] + [failed("QUOTE_NOT_FOUND_TIMEOUT")] * 3,
        "Bravo Mutual": [ok({"success": True}, run_id="b1"), ok({"success": True, "quote": 120.0}, run_id="b2")],
        "Charlie Auto": [
            ok({"success": True}, run_id="c1"),
            ok({"success": True, "quote": 95.5, "estimatedMin": 90, "estimatedMax": 110}, run_id="c2"),
        ],
    }


class TestAggregate:
    """Test concurrent provider fan-out."""

    @pytest.mark.asyncio
    async def test_three_providers_one_failing(self, make_client, ok, failed, two_step_catalog, user_data, recording_sleep):
        client = make_client(scripts=three_provider_scripts(ok, failed))
        orchestrator = WorkflowOrchestrator(client, two_step_catalog, sleep=recording_sleep)
        events = []

        aggregator = QuoteAggregator(orchestrator, "key", "run-1", on_progress=events.append)
        result = await aggregator.aggregate(user_data)

        assert result.status == "partial"
        assert result.total_providers == 3
        assert result.completed_providers == 3
        assert result.completed_at is not None

        quotes = {q.provider_id: q for q in result.quotes}
        assert quotes["alpha"].status == "failed"
        assert quotes["alpha"].error == "QUOTE_NOT_FOUND_TIMEOUT"
        assert quotes["bravo"].status == "completed"
        assert quotes["bravo"].final_quote == 120.0
        assert quotes["bravo"].all_run_ids == ["b1", "b2"]
        assert quotes["charlie"].final_quote == 95.5
        assert quotes["charlie"].estimated_quote.min == 90
        assert quotes["charlie"].estimated_quote.max == 110
        assert quotes["bravo"].provider == "Bravo Mutual"

        assert events[0].type == "progress"
        assert events[-1].type == "complete"
        assert events[-1].aggregation.status == "partial"
        assert sum(1 for e in events if e.type == "complete") == 1
        assert any(e.type == "activity" and e.provider_id == "alpha" for e in events)

    @pytest.mark.asyncio
    async def test_completed_at_only_when_all_terminal(self, make_client, ok, failed, two_step_catalog, user_data, recording_sleep):
        """Every snapshot has completed_at set exactly when all quotes are terminal."""
        client = make_client(scripts=three_provider_scripts(ok, failed))
        orchestrator = WorkflowOrchestrator(client, two_step_catalog, sleep=recording_sleep)
        snapshots = []

        def on_progress(event):
            if event.aggregation is not None:
                snapshots.append(event.aggregation)

        await QuoteAggregator(orchestrator, "key", "run-1", on_progress=on_progress).aggregate(user_data)

        assert snapshots
        for snapshot in snapshots:
            all_terminal = all(q.status in ("completed", "failed") for q in snapshot.quotes)
            assert (snapshot.completed_at is not None) == all_terminal
        assert any(s.completed_at is None for s in snapshots)

    @pytest.mark.asyncio
    async def test_all_completed(self, make_client, ok, two_step_catalog, user_data, recording_sleep):
        client = make_client(responder=lambda **_: ok({"success": True, "quote": 50}))
        orchestrator = WorkflowOrchestrator(client, two_step_catalog, sleep=recording_sleep)

        result = await QuoteAggregator(orchestrator, "key", "run-1").aggregate(user_data)

        assert result.status == "completed"
        assert all(q.final_quote == 50 for q in result.quotes)

    @pytest.mark.asyncio
    async def test_all_failed(self, make_client, failed, two_step_catalog, user_data, recording_sleep):
        client = make_client(responder=lambda **_: failed("Stream ended without completion event"))
        orchestrator = WorkflowOrchestrator(client, two_step_catalog, sleep=recording_sleep)

        result = await QuoteAggregator(orchestrator, "key", "run-1", provider_ids=["alpha", "bravo"]).aggregate(user_data)

        assert result.status == "failed"
        assert result.total_providers == 2
        assert all(q.error == "Stream ended without completion event" for q in result.quotes)

    @pytest.mark.asyncio
    async def test_unknown_provider_becomes_failed_quote(self, make_client, ok, two_step_catalog, user_data, recording_sleep):
        client = make_client(responder=lambda **_: ok({"success": True, "quote": 50}))
        orchestrator = WorkflowOrchestrator(client, two_step_catalog, sleep=recording_sleep)

        result = await QuoteAggregator(orchestrator, "key", "run-1", provider_ids=["alpha", "geico"]).aggregate(user_data)

        quotes = {q.provider_id: q for q in result.quotes}
        assert quotes["geico"].status == "failed"
        assert quotes["geico"].provider == "GEICO"
        assert "geico" in quotes["geico"].error
        assert quotes["alpha"].status == "completed"
        assert result.status == "partial"

    @pytest.mark.asyncio
    async def test_step_activity_is_reported(self, make_client, ok, two_step_catalog, user_data, recording_sleep):
        client = make_client(
            responder=lambda **_: ok({"success": True, "quote": 50}, run_id="run-x"),
            activity=[AutomationEvent(type="PROGRESS", run_id="run-x", purpose="Typing ZIP code")],
        )
        orchestrator = WorkflowOrchestrator(client, two_step_catalog, sleep=recording_sleep)
        events = []

        await QuoteAggregator(orchestrator, "key", "run-1", provider_ids=["alpha"], on_progress=events.append).aggregate(user_data)

        activities = [e.activity for e in events if e.type == "activity"]
        assert "Step 1/2: Typing ZIP code" in activities
        assert "Step 1/2: Form Discovery" in activities
        assert any(e.automation_run_id == "run-x" for e in events if e.type == "activity")

    @pytest.mark.asyncio
    async def test_completion_timeout_fails_quote(self, ok, two_step_catalog, user_data):
        gate = asyncio.Event()

        class StalledClient:
            async def run_automation(self, url, goal, api_key, **kwargs):
                await gate.wait()
                return ok({"success": True, "quote": 10})

        orchestrator = WorkflowOrchestrator(StalledClient(), two_step_catalog)
        aggregator = QuoteAggregator(orchestrator, "key", "run-1", provider_ids=["alpha"], completion_timeout=0.05)

        result = await aggregator.aggregate(user_data)

        assert result.status == "failed"
        assert result.quotes[0].error == "Workflow did not complete successfully"

        # The abandoned workflow finishes later but the terminal quote does not change.
        gate.set()
        await asyncio.sleep(0.05)
        assert aggregator.quotes["alpha"].status == "failed"
        await orchestrator.shutdown()


class TestStream:
    """Test the async event iterator."""

    @pytest.mark.asyncio
    async def test_stream_ends_with_complete(self, make_client, ok, two_step_catalog, user_data, recording_sleep):
        client = make_client(responder=lambda **_: ok({"success": True, "quote": 50}))
        orchestrator = WorkflowOrchestrator(client, two_step_catalog, sleep=recording_sleep)
        aggregator = QuoteAggregator(orchestrator, "key", "run-1", provider_ids=["alpha", "bravo"])

        types = [event.type async for event in aggregator.stream(user_data)]

        assert types[0] == "progress"
        assert types[-1] == "complete"
        assert types.count("complete") == 1
        assert aggregator.snapshot().status == "completed"


class TestDeriveFinalStatus:
    """Test final aggregation status rules."""

    def make_quotes(self, *statuses):
        return [Quote(provider=f"P{i}", provider_id=f"p{i}", status=s) for i, s in enumerate(statuses)]

    def test_all_completed(self):
        assert derive_final_status(self.make_quotes("completed", "completed")) == "completed"

    def test_all_failed(self):
        assert derive_final_status(self.make_quotes("failed", "failed")) == "failed"

    def test_mixed(self):
        assert derive_final_status(self.make_quotes("completed", "failed")) == "partial"
