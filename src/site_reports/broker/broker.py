# site_reports/broker.py
from typing import Callable, List, Literal, Optional, Sequence, Tuple

import structlog

from ..config.settings import Settings, get_settings
from ..errors.errors import (
    NotFoundError,
    StateAlreadyBoundError,
    UnregisteredBrokerError,
    ValidationError,
)
from ..models.models import (
    Channel,
    ChannelKind,
    Message,
    PhotoReport,
    Project,
    new_channel,
    new_project,
    new_text_message,
)

logger = structlog.get_logger(__name__)

ReportChannelKind = Literal["issues", "updates"]
ApplyUpdate = Callable[[List[Project]], None]
CurrentProjectListener = Callable[[Optional[str]], None]


class MessagingBroker:
    """
        Single authority over the project collection shared by the messaging
        and photo-capture surfaces.

        Every write builds a new list where only the touched project and
        channel are replaced, then hands it to ``apply_update`` in one call.
        Untouched projects, channels and messages keep their identity.
    """

    def __init__(
        self,
        projects: Optional[Sequence[Project]] = None,
        apply_update: Optional[ApplyUpdate] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self._projects: Tuple[Project, ...] = ()
        self._apply_update: Optional[ApplyUpdate] = None
        self._current_project_id: Optional[str] = None
        self._listeners: List[CurrentProjectListener] = []
        if apply_update is not None:
            self.register_state(projects or [], apply_update)

    # -- binding ---------------------------------------------------------

    @property
    def registered(self) -> bool:
        return self._apply_update is not None

    def register_state(self, projects: Sequence[Project], apply_update: ApplyUpdate) -> None:
        """Bind the broker to the live collection and its replacement acceptor."""
        if self._apply_update is not None:
            raise StateAlreadyBoundError("broker is already bound to a project collection")
        ids = [p.id for p in projects]
        if len(ids) != len(set(ids)):
            raise ValidationError("project ids must be unique")
        self._projects = tuple(projects)
        self._apply_update = apply_update
        logger.info("broker_registered", projects=len(self._projects))

    def _require_registered(self) -> None:
        if self._apply_update is None:
            logger.error("broker_not_registered")
            raise UnregisteredBrokerError("broker has no registered project state")

    def _replace(self, projects: List[Project]) -> None:
        self._apply_update(projects)
        self._projects = tuple(projects)

    # -- current project -------------------------------------------------

    def set_current_project(self, project_id: Optional[str]) -> None:
        # Unknown ids are recorded as-is and surface later as NotFoundError.
        if project_id == self._current_project_id:
            return
        self._current_project_id = project_id
        logger.info("current_project_changed", project_id=project_id)
        # A failing listener is logged and skipped; the rest are still notified.
        for listener in list(self._listeners):
            try:
                listener(project_id)
            except Exception:
                logger.exception("current_project_listener_failed", project_id=project_id)

    def get_current_project(self) -> Optional[str]:
        return self._current_project_id

    def subscribe_current_project(self, listener: CurrentProjectListener) -> Callable[[], None]:
        """Push current-project changes to ``listener``. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -- reads -----------------------------------------------------------

    def get_projects(self) -> Tuple[Project, ...]:
        """The current collection. The same object is returned until the next write."""
        return self._projects

    def find_project(self, project_id: Optional[str]) -> Project:
        if project_id is None:
            raise NotFoundError("no project selected")
        for project in self._projects:
            if project.id == project_id:
                return project
        raise NotFoundError(f"project {project_id!r} not found")

    @staticmethod
    def find_channel(project: Project, kind: ChannelKind) -> Channel:
        channel = project.channel_of_kind(kind)
        if channel is None:
            raise NotFoundError(f"project {project.id!r} has no {kind!r} channel")
        return channel

    # -- writes ----------------------------------------------------------

    def _append_message(self, project: Project, channel: Channel, message: Message) -> None:
        updated_channel = channel.model_copy(update={"messages": channel.messages + (message,)})
        updated_project = project.model_copy(
            update={
                "channels": tuple(
                    updated_channel if ch.id == channel.id else ch for ch in project.channels
                )
            }
        )
        self._replace([updated_project if p.id == project.id else p for p in self._projects])

    def post_photo_report_to_channel(
        self,
        channel_kind: ReportChannelKind,
        report: PhotoReport,
        project_id: Optional[str] = None,
    ) -> Message:
        """
            Append ``report`` as a photo-report message to the project's
            ``issues`` or ``updates`` channel.

            The target is ``project_id`` when given, else the current project.
            Raises UnregisteredBrokerError or NotFoundError and leaves the
            collection untouched when the post cannot be made.
        """
        if channel_kind not in ("issues", "updates"):
            raise ValidationError(f"cannot post photo reports to {channel_kind!r} channels")
        self._require_registered()

        target_id = project_id if project_id is not None else self._current_project_id
        try:
            project = self.find_project(target_id)
            channel = self.find_channel(project, channel_kind)
        except NotFoundError as e:
            logger.error("photo_report_not_routed", channel_kind=channel_kind, project_id=target_id, error=str(e))
            raise

        message = Message(
            content="",
            kind="photo-report",
            sender_id=self.settings.system_sender_id,
            sender_name=self.settings.system_sender_name,
            channel_id=channel.id,
            photo_report=report,
        )
        self._append_message(project, channel, message)
        logger.info(
            "photo_report_posted",
            channel_kind=channel_kind,
            project_id=project.id,
            channel_id=channel.id,
            report_id=report.id,
        )
        return message

    def post_text_message(
        self,
        project_id: str,
        channel_id: str,
        content: str,
        sender_id: str,
        sender_name: str,
    ) -> Message:
        self._require_registered()
        project = self.find_project(project_id)
        channel = project.channel(channel_id)
        if channel is None:
            raise NotFoundError(f"channel {channel_id!r} not found in project {project_id!r}")

        message = new_text_message(channel.id, content, sender_id, sender_name)
        self._append_message(project, channel, message)
        logger.debug("text_message_posted", project_id=project.id, channel_id=channel.id)
        return message

    def create_project(self, name: str, external_project_id: str) -> Project:
        """Add a project with default channels and make it the current one."""
        self._require_registered()
        project = new_project(name, external_project_id)
        self._replace(list(self._projects) + [project])
        logger.info("project_created", project_id=project.id, name=project.name)
        self.set_current_project(project.id)
        return project

    def create_channel(self, project_id: str, name: str) -> Channel:
        self._require_registered()
        project = self.find_project(project_id)
        channel = new_channel(name)
        updated = project.model_copy(update={"channels": project.channels + (channel,)})
        self._replace([updated if p.id == project.id else p for p in self._projects])
        logger.info("channel_created", project_id=project.id, channel_id=channel.id, name=channel.name)
        return channel
