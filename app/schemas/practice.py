"""Practice Session Schemas — start/stop bodies addressed by Discord id or user id."""

from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from app.core.domain_types import isoformat_or_none
from app.models.practice_session import PracticeSession


class _PracticeTarget(BaseModel):
    discord_id: str | None = Field(None, min_length=1, max_length=100)
    user_id: UUID | None = None

    @model_validator(mode="after")
    def check_target(self):
        if not self.discord_id and not self.user_id:
            raise ValueError("Either discord_id or user_id is required")
        return self


class PracticeStart(_PracticeTarget):
    notes: str | None = Field(None, max_length=2000)


class PracticeStop(_PracticeTarget):
    pass


def practice_session_to_dict(session: PracticeSession) -> dict:
    return {
        "id": str(session.id),
        "user_id": str(session.user_id),
        "start_time": isoformat_or_none(session.start_time),
        "end_time": isoformat_or_none(session.end_time),
        "duration": session.duration,
        "date": session.date,
        "notes": session.notes,
    }
