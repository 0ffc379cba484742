"""Pydantic schemas for payloads exchanged with the analysis backend.

The backend speaks JSON with a mix of camelCase (stream messages) and
snake_case (REST endpoints) keys, so the models accept both spellings.
All timestamps are normalised to timezone-aware UTC datetimes on the way in;
a naive timestamp is taken to already be UTC.
"""

from datetime import UTC, datetime
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

AnalysisStatus = Literal["idle", "in-progress", "completed", "error"]
TransportKind = Literal["stream", "poll"]


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class FileChangeEvent(BaseModel):
    """One file touched by one commit, as listed by `POST /commits`."""

    model_config = ConfigDict(populate_by_name=True)

    sha: str = Field(min_length=1, description="Commit identifier")
    filename: str = Field(description="Path of the changed file")
    author: str = ""
    timestamp: datetime = Field(description="Commit time (ISO 8601)")
    detected_units: dict[str, float] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("detected_units", "detectedUnits"),
        description="Knowledge units detected in the change, mapped to their weight",
    )

    @field_validator("timestamp")
    @classmethod
    def _normalise_timestamp(cls, value: datetime) -> datetime:
        return _as_utc(value)


class AnalysisResult(FileChangeEvent):
    """A per-file analysis result. Identity is the `(sha, filename)` pair."""

    repo_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("repoUrl", "repo_url"),
        description="Repository the result belongs to (present on streamed results)",
    )

    @property
    def key(self) -> tuple[str, str]:
        return (self.sha, self.filename)


class StreamMessage(BaseModel):
    """One server-sent message on the analysis stream."""

    model_config = ConfigDict(populate_by_name=True)

    repo_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("repoUrl", "repo_url"),
    )
    progress: int | None = None
    error: str | None = None
    file_data: AnalysisResult | None = None


class AnalysisStatusResponse(BaseModel):
    """Body of `GET /analysis_status`."""

    status: AnalysisStatus
    progress: int = 0
    error_message: str | None = None


class StartAnalysisBody(BaseModel):
    """Body of the `GET /analyze` start response (202 or 409)."""

    message: str | None = None
    transport: TransportKind | None = None
