# site_reports/pipeline.py
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

import structlog
from pydantic import BaseModel, ConfigDict

from ..analysis.analysis import AnalysisOutcome, ImageRef, PhotoAnalyzer
from ..broker.broker import MessagingBroker, ReportChannelKind
from ..errors.errors import (
    NotFoundError,
    RoutingFailure,
    SubmissionInProgressError,
    UnregisteredBrokerError,
)
from ..models.models import AnalysisResult, Message, PhotoReport, ReportKind

logger = structlog.get_logger(__name__)

NO_DESCRIPTION = "No description provided"
UNKNOWN_PROJECT = "unknown"

REPORT_TAGS: Dict[str, FrozenSet[str]] = {
    "progress": frozenset({"progress", "construction"}),
    "issue": frozenset({"issue", "safety"}),
}
REPORT_CHANNELS: Dict[str, ReportChannelKind] = {
    "progress": "updates",
    "issue": "issues",
}


class PipelineState(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    PARSED = "parsed"
    FALLBACK_APPLIED = "fallback_applied"
    ROUTING = "routing"
    DELIVERED = "delivered"
    ROUTING_FAILED = "routing_failed"


class SubmissionOutcome(str, Enum):
    DELIVERED = "delivered"
    ROUTING_FAILED = "routing_failed"


class SubmissionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    outcome: SubmissionOutcome
    report: PhotoReport
    message: Optional[Message] = None
    used_fallback: bool = False
    error: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return self.outcome == SubmissionOutcome.DELIVERED


def build_report(
    result: AnalysisResult,
    image: ImageRef,
    kind: ReportKind,
    description: str,
    project_id: Optional[str],
    location: Optional[str] = None,
) -> PhotoReport:
    return PhotoReport(
        image_ref=str(image),
        kind=kind,
        description=(description or "").strip() or NO_DESCRIPTION,
        analysis_text=result.description,
        tags=REPORT_TAGS[kind],
        project_id=project_id or UNKNOWN_PROJECT,
        severity=result.severity,
        confidence=result.confidence,
        recommendations=tuple(result.recommendations),
        location=location,
    )


class PhotoReportPipeline:
    """
        Captured image -> analysis -> PhotoReport -> channel message.

        One submission at a time. The target project is captured when
        ``submit`` is called and never re-read from the broker afterwards.
    """

    def __init__(self, broker: MessagingBroker, analyzer: PhotoAnalyzer):
        self.broker = broker
        self.analyzer = analyzer
        self.state = PipelineState.IDLE
        self.reports: List[PhotoReport] = []  # newest first
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def _transition(self, state: PipelineState, **context) -> None:
        self.state = state
        logger.debug("pipeline_state", state=state.value, **context)

    def _route(
        self, channel_kind: ReportChannelKind, report: PhotoReport, project_id: Optional[str]
    ) -> Message:
        # Never let the broker fall back to its current pointer at delivery time.
        if project_id is None:
            raise NotFoundError("no project was selected when the report was submitted")
        return self.broker.post_photo_report_to_channel(channel_kind, report, project_id)

    def reports_for_project(self, project_id: Optional[str]) -> List[PhotoReport]:
        if project_id is None:
            return []
        return [r for r in self.reports if r.project_id == project_id]

    async def submit(
        self,
        image: ImageRef,
        kind: ReportKind,
        description: str = "",
        project_id: Optional[str] = None,
        location: Optional[str] = None,
    ) -> SubmissionResult:
        # Guard is checked and set before the first await.
        if self._in_flight:
            logger.warning("submission_rejected_in_progress", kind=kind)
            raise SubmissionInProgressError("a photo report submission is already in progress")
        self._in_flight = True
        if project_id is None:
            project_id = self.broker.get_current_project()

        try:
            self._transition(PipelineState.ANALYZING, kind=kind, project_id=project_id)
            try:
                outcome = await self.analyzer.analyze(image, kind)
                report = build_report(outcome.result, image, kind, description, project_id, location)
            except Exception as e:
                logger.exception("report_build_failed_using_fallback", kind=kind, error=str(e))
                outcome = AnalysisOutcome(self.analyzer.fallback(kind), used_fallback=True)
                report = build_report(outcome.result, image, kind, description, project_id, location)

            self._transition(
                PipelineState.FALLBACK_APPLIED if outcome.used_fallback else PipelineState.PARSED
            )
            self.reports.insert(0, report)

            channel_kind = REPORT_CHANNELS[kind]
            self._transition(PipelineState.ROUTING, channel_kind=channel_kind)
            try:
                message = self._route(channel_kind, report, project_id)
            except (NotFoundError, UnregisteredBrokerError) as e:
                failure = RoutingFailure(f"report {report.id} not delivered to {channel_kind}: {e}")
                self._transition(PipelineState.ROUTING_FAILED, error=str(failure))
                logger.error("photo_report_undelivered", report_id=report.id, error=str(failure))
                return SubmissionResult(
                    outcome=SubmissionOutcome.ROUTING_FAILED,
                    report=report,
                    used_fallback=outcome.used_fallback,
                    error=str(failure),
                )

            self._transition(PipelineState.DELIVERED, message_id=message.id)
            logger.info(
                "photo_report_delivered",
                report_id=report.id,
                channel_kind=channel_kind,
                used_fallback=outcome.used_fallback,
            )
            return SubmissionResult(
                outcome=SubmissionOutcome.DELIVERED,
                report=report,
                message=message,
                used_fallback=outcome.used_fallback,
            )
        finally:
            self._in_flight = False
            self.state = PipelineState.IDLE
