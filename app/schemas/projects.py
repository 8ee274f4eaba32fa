"""Project Schemas — project listings with tags and visibility.

Invariants:
    - title 1-255 chars; tags stripped, empty tags dropped, duplicates removed (order kept)
    - URLs must be http(s)
"""

from pydantic import BaseModel, Field, field_validator

from app.core.domain_types import isoformat_or_none
from app.models.project import Project

_URL_PATTERN = r"^https?://\S+$"


def _clean_tags(tags: list[str] | None) -> list[str] | None:
    if tags is None:
        return None
    seen: list[str] = []
    for tag in tags:
        tag = tag.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


class ProjectCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1, max_length=10_000)
    github_url: str | None = Field(None, pattern=_URL_PATTERN)
    deployment_url: str | None = Field(None, pattern=_URL_PATTERN)
    tags: list[str] = Field(default_factory=list, max_length=50)
    is_public: bool = True

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, v: list[str]) -> list[str]:
        return _clean_tags(v)


class ProjectUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, min_length=1, max_length=10_000)
    github_url: str | None = Field(None, pattern=_URL_PATTERN)
    deployment_url: str | None = Field(None, pattern=_URL_PATTERN)
    tags: list[str] | None = Field(None, max_length=50)
    is_public: bool | None = None

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, v: list[str] | None) -> list[str] | None:
        return _clean_tags(v)


def project_to_dict(project: Project) -> dict:
    return {
        "id": str(project.id),
        "user_id": str(project.user_id),
        "title": project.title,
        "description": project.description,
        "github_url": project.github_url,
        "deployment_url": project.deployment_url,
        "tags": list(project.tags or []),
        "is_public": project.is_public,
        "created_at": isoformat_or_none(project.created_at),
        "updated_at": isoformat_or_none(project.updated_at),
    }
