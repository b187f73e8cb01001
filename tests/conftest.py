"""Pytest configuration and shared fixtures."""

from typing import List, Optional

import pytest

from site_reports.broker.broker import MessagingBroker
from site_reports.config.settings import Settings
from site_reports.models.models import Channel, PhotoReport, Project


class StateOwner:
    """Records every whole-collection replacement handed over by the broker."""

    def __init__(self, projects: List[Project]):
        self.projects = projects
        self.updates: List[List[Project]] = []

    def apply_update(self, projects: List[Project]) -> None:
        self.updates.append(projects)
        self.projects = projects


@pytest.fixture
def settings() -> Settings:
    return Settings(analysis_enabled=True, ollama_host="http://ollama.test:11434")


@pytest.fixture
def projects() -> List[Project]:
    """Two projects, each with general/issues/updates channels."""
    return [
        Project(
            id=pid,
            name=f"Project {pid}",
            external_project_id=f"PROJ-{pid}",
            channels=(
                Channel(id=f"{pid}-general", name="general", kind="general"),
                Channel(id=f"{pid}-issues", name="issues", kind="issues"),
                Channel(id=f"{pid}-updates", name="progress", kind="updates"),
            ),
        )
        for pid in ("p1", "p2")
    ]


@pytest.fixture
def owner(projects: List[Project]) -> StateOwner:
    return StateOwner(projects)


@pytest.fixture
def broker(owner: StateOwner, settings: Settings) -> MessagingBroker:
    return MessagingBroker(owner.projects, owner.apply_update, settings=settings)


def make_report(kind: str = "issue", project_id: Optional[str] = "p1") -> PhotoReport:
    return PhotoReport(
        image_ref="file:///photos/site.jpg",
        kind=kind,
        description="Cracked slab near stairwell",
        analysis_text="Severity: high",
        tags=frozenset({"issue", "safety"}) if kind == "issue" else frozenset({"progress", "construction"}),
        project_id=project_id or "unknown",
        severity="high" if kind == "issue" else None,
        confidence=0.9,
    )


@pytest.fixture
def report() -> PhotoReport:
    return make_report()


@pytest.fixture
def report_factory():
    return make_report
