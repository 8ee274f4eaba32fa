"""ORM Models — SQLAlchemy declarative models for all domain entities.

Invariants:
    - All models inherit from Base (db/base.py)
    - User is the aggregate root for identities, sessions, projects, tokens

Design Decisions:
    - One file per aggregate for locality (ADR: max 3-4 files to understand a feature)
    - All models imported here so SQLAlchemy resolves string-based relationship()
      references before any query runs (ADR: standard SQLAlchemy pattern)
"""

from app.models.user import User, UserIdentity  # noqa: F401
from app.models.api_key import ApiKey  # noqa: F401
from app.models.refresh_token import RefreshToken  # noqa: F401
from app.models.application import Application, ApplicationVote  # noqa: F401
from app.models.practice_session import PracticeSession  # noqa: F401
from app.models.project import Project  # noqa: F401
from app.models.treasury import Treasury, ProjectTreasury  # noqa: F401
from app.models.webhook import WebhookSubscription, WebhookDelivery  # noqa: F401
from app.models.log_entry import LogEntry  # noqa: F401
from app.models.discord import VanishingChannel, ChannelSetting  # noqa: F401
