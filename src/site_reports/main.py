"""Main entrypoint for the site reports demo."""
import asyncio
from typing import List

from .analysis.analysis import PhotoAnalyzer
from .broker.broker import MessagingBroker
from .config.logging import configure_logging
from .config.settings import get_settings
from .fake_data.fake_data import sample_projects
from .models.models import Project
from .pipeline.pipeline import PhotoReportPipeline


class ProjectState:
    """Stands in for the messaging surface that renders the projects."""

    def __init__(self, projects: List[Project]):
        self.projects = projects
        self.renders = 0

    def apply_update(self, projects: List[Project]) -> None:
        self.projects = projects
        self.renders += 1


def build_app(state: ProjectState):
    settings = get_settings()
    broker = MessagingBroker(state.projects, state.apply_update, settings=settings)
    pipeline = PhotoReportPipeline(broker, PhotoAnalyzer.from_settings(settings))
    return broker, pipeline


async def run_demo(image: str = "site-photo.jpg"):
    """Submit one progress and one issue report against the sample project."""
    configure_logging()
    state = ProjectState(sample_projects())
    broker, pipeline = build_app(state)
    broker.set_current_project(state.projects[0].id)

    for kind, note in (("progress", "Level 2 slab pour"), ("issue", "")):
        result = await pipeline.submit(image, kind, note, broker.get_current_project())
        print(f"{kind}: {result.outcome.value} (fallback={result.used_fallback})")

    for project in state.projects:
        print(f"\n{'='*80}")
        print(f"{project.name} ({project.external_project_id})")
        print(f"{'='*80}")
        for channel in project.channels:
            print(f"#{channel.name} [{channel.kind}] - {len(channel.messages)} message(s)")
            for message in channel.messages:
                report = message.photo_report
                if report is None:
                    print(f"  {message.sender_name}: {message.content}")
                    continue
                print(f"  {message.sender_name}: {report.kind} report, confidence {report.confidence}")
                for rec in report.recommendations:
                    print(f"    - {rec}")


if __name__ == "__main__":
    asyncio.run(run_demo())
