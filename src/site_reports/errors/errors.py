class SiteReportsError(Exception):
    """Base exception for site_reports errors."""

    pass


class ValidationError(SiteReportsError, ValueError):
    """Raised when a required field is empty or whitespace-only."""

    pass


class NotFoundError(SiteReportsError, LookupError):
    """Raised when a referenced project or channel does not exist."""

    pass


class UnregisteredBrokerError(SiteReportsError):
    """Raised when the broker is used before it was bound to a project collection."""

    pass


class StateAlreadyBoundError(SiteReportsError):
    """Raised when a broker that already owns a collection is bound again."""

    pass


class AnalysisFailure(SiteReportsError):
    """The analysis collaborator rejected or timed out. Recovered with the fallback result."""

    pass


class ParseFailure(SiteReportsError):
    """Analysis text was unusable. Recovered with the fallback result."""

    pass


class RoutingFailure(SiteReportsError):
    """A report was generated but could not be delivered to a channel."""

    pass


class SubmissionInProgressError(SiteReportsError):
    """Raised when a submission is started while another one is still pending."""

    pass
