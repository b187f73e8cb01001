# site_reports/fake_data.py
from typing import List

from ..models.models import Channel, Project


def sample_projects() -> List[Project]:
    return [
        Project(
            id="1",
            name="Downtown Office Building",
            external_project_id="PROJ-001",
            channels=(
                Channel(id="1", name="general", kind="general"),
                Channel(id="2", name="issues", kind="issues"),
                Channel(id="3", name="progress", kind="updates"),
            ),
        ),
    ]
