"""Pydantic schemas for the editor session HTTP surface."""

from pydantic import BaseModel

from jobforge.schemas.pipeline import ErrorMessage, JobGraph, QueryDraft


class DraftUpdate(BaseModel):
    """Partial draft update. Omitted fields are left unchanged."""

    query: str | None = None
    udfs: str | None = None


class CheckResponse(BaseModel):
    valid: bool
    graph: JobGraph | None = None
    error: str | None = None
    errors: list[ErrorMessage] = []


class RunResponse(BaseModel):
    can_start: bool
    error: str | None = None


class EditorStateResponse(BaseModel):
    editor_id: str
    draft: QueryDraft
    graph: JobGraph | None = None
    error: str | None = None
    suggested_name: str | None = None
