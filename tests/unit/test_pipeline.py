"""Unit tests for the photo report pipeline."""

import asyncio

import pytest

from site_reports.analysis.analysis import PhotoAnalyzer, fallback_result
from site_reports.broker.broker import MessagingBroker
from site_reports.errors.errors import SubmissionInProgressError
from site_reports.pipeline.pipeline import (
    NO_DESCRIPTION,
    PhotoReportPipeline,
    PipelineState,
    SubmissionOutcome,
)


class GatedCollaborator:
    """Analysis collaborator that waits until released."""

    def __init__(self, text: str = "Severity: high\nConfidence: 0.7", error: Exception = None):
        self.text = text
        self.error = error
        self.calls = []
        self.released = asyncio.Event()
        self.released.set()
        self.states = []
        self.pipeline = None

    async def analyze(self, image, kind):
        self.calls.append((image, kind))
        if self.pipeline is not None:
            self.states.append(self.pipeline.state)
        await self.released.wait()
        if self.error is not None:
            raise self.error
        return self.text


@pytest.fixture
def collaborator() -> GatedCollaborator:
    return GatedCollaborator()


@pytest.fixture
def pipeline(broker, collaborator) -> PhotoReportPipeline:
    pipeline = PhotoReportPipeline(broker, PhotoAnalyzer(collaborator))
    collaborator.pipeline = pipeline
    return pipeline


class TestSubmit:
    """End-to-end submissions."""

    @pytest.mark.asyncio
    async def test_issue_is_delivered_to_issues_channel(self, pipeline, owner, collaborator) -> None:
        result = await pipeline.submit("file:///a.jpg", "issue", "  Exposed rebar ", "p1")

        assert result.outcome == SubmissionOutcome.DELIVERED
        assert result.delivered
        assert not result.used_fallback
        report = result.report
        assert report.kind == "issue"
        assert report.severity == "high"
        assert report.confidence == 0.7
        assert report.description == "Exposed rebar"
        assert report.analysis_text == collaborator.text
        assert report.tags == frozenset({"issue", "safety"})
        assert report.project_id == "p1"
        assert report.image_ref == "file:///a.jpg"

        messages = owner.projects[0].channel("p1-issues").messages
        assert messages == (result.message,)
        assert messages[0].photo_report is report

    @pytest.mark.asyncio
    async def test_progress_goes_to_updates_channel(self, pipeline, owner) -> None:
        result = await pipeline.submit("b.jpg", "progress", "", "p2")

        assert result.delivered
        assert result.report.tags == frozenset({"progress", "construction"})
        assert result.report.description == NO_DESCRIPTION
        assert result.report.severity is None
        assert result.message.channel_id == "p2-updates"
        assert owner.projects[0].channel("p1-updates").messages == ()

    @pytest.mark.asyncio
    async def test_analysis_failure_still_delivers(self, pipeline, owner, collaborator) -> None:
        collaborator.error = TimeoutError("analysis timed out")

        result = await pipeline.submit("c.jpg", "issue", "", "p1")

        assert result.delivered
        assert result.used_fallback
        expected = fallback_result("issue")
        assert result.report.analysis_text == expected.description
        assert result.report.confidence == expected.confidence
        assert list(result.report.recommendations) == expected.recommendations
        assert len(owner.projects[0].channel("p1-issues").messages) == 1

    @pytest.mark.asyncio
    async def test_unknown_project_is_routing_failure(self, pipeline, owner) -> None:
        result = await pipeline.submit("d.jpg", "issue", "", "gone")

        assert result.outcome == SubmissionOutcome.ROUTING_FAILED
        assert not result.delivered
        assert result.message is None
        assert "not delivered" in result.error
        assert result.report.project_id == "gone"
        assert owner.updates == []
        assert pipeline.reports == [result.report]

    @pytest.mark.asyncio
    async def test_unregistered_broker_is_routing_failure(self, collaborator, settings) -> None:
        pipeline = PhotoReportPipeline(MessagingBroker(settings=settings), PhotoAnalyzer(collaborator))

        result = await pipeline.submit("e.jpg", "progress", "", "p1")

        assert result.outcome == SubmissionOutcome.ROUTING_FAILED

    @pytest.mark.asyncio
    async def test_no_project_selected(self, pipeline, owner) -> None:
        result = await pipeline.submit("f.jpg", "progress")

        assert result.outcome == SubmissionOutcome.ROUTING_FAILED
        assert result.report.project_id == "unknown"
        assert owner.updates == []


class TestProjectCapture:
    """The target project is fixed when the submission starts."""

    @pytest.mark.asyncio
    async def test_current_project_is_captured_at_submit(self, pipeline, broker, owner, collaborator) -> None:
        broker.set_current_project("p1")
        collaborator.released.clear()

        task = asyncio.create_task(pipeline.submit("g.jpg", "issue"))
        await asyncio.sleep(0)
        broker.set_current_project("p2")
        collaborator.released.set()
        result = await task

        assert result.message.channel_id == "p1-issues"
        assert result.report.project_id == "p1"
        assert owner.projects[1].channel("p2-issues").messages == ()

    @pytest.mark.asyncio
    async def test_cleared_pointer_after_submit_does_not_matter(self, pipeline, broker, collaborator) -> None:
        broker.set_current_project("p2")
        collaborator.released.clear()

        task = asyncio.create_task(pipeline.submit("h.jpg", "progress"))
        await asyncio.sleep(0)
        broker.set_current_project(None)
        collaborator.released.set()

        assert (await task).message.channel_id == "p2-updates"


class TestInFlightGuard:
    """Only one submission may be pending at a time."""

    @pytest.mark.asyncio
    async def test_second_submit_is_rejected(self, pipeline, collaborator) -> None:
        collaborator.released.clear()
        first = asyncio.create_task(pipeline.submit("i.jpg", "issue", "", "p1"))
        await asyncio.sleep(0)
        assert pipeline.in_flight

        with pytest.raises(SubmissionInProgressError):
            await pipeline.submit("j.jpg", "issue", "", "p1")

        assert len(collaborator.calls) == 1
        collaborator.released.set()
        assert (await first).delivered
        assert not pipeline.in_flight

    @pytest.mark.asyncio
    async def test_guard_released_after_routing_failure(self, pipeline) -> None:
        await pipeline.submit("k.jpg", "issue", "", "missing")

        assert not pipeline.in_flight
        assert (await pipeline.submit("l.jpg", "issue", "", "p1")).delivered

    @pytest.mark.asyncio
    async def test_guard_released_when_fallback_raises(self, broker, settings) -> None:
        def broken_fallback(kind):
            raise RuntimeError("no canned result")

        analyzer = PhotoAnalyzer(GatedCollaborator(error=ConnectionError("down")), fallback=broken_fallback)
        pipeline = PhotoReportPipeline(broker, analyzer)

        with pytest.raises(RuntimeError):
            await pipeline.submit("m.jpg", "issue", "", "p1")

        assert not pipeline.in_flight
        assert pipeline.state == PipelineState.IDLE

    @pytest.mark.asyncio
    async def test_state_walks_back_to_idle(self, pipeline, collaborator) -> None:
        assert pipeline.state == PipelineState.IDLE

        await pipeline.submit("n.jpg", "progress", "", "p1")

        assert collaborator.states == [PipelineState.ANALYZING]
        assert pipeline.state == PipelineState.IDLE


class TestReportHistory:
    """Reports kept for the capture surface."""

    @pytest.mark.asyncio
    async def test_reports_for_project(self, pipeline) -> None:
        first = await pipeline.submit("o.jpg", "progress", "", "p1")
        second = await pipeline.submit("p.jpg", "issue", "", "p2")

        assert pipeline.reports == [second.report, first.report]
        assert pipeline.reports_for_project("p1") == [first.report]
        assert pipeline.reports_for_project(None) == []
