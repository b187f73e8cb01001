"""Site Reports - channel messaging with AI-analyzed photo reports for field teams."""

__version__ = "0.1.0"

# Make key models available at package level
from .models.models import Channel, Message, PhotoReport, Project
