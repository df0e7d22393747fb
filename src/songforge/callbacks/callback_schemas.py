"""Pydantic schemas for inbound Suno callbacks."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SunoCallbackData(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    callback_type: str | None = Field(default=None, alias="callbackType")
    task_id: str | None = None
    task_id_camel: str | None = Field(default=None, alias="taskId")
    data: list[dict[str, Any]] | None = None
    lyrics_data: list[dict[str, Any]] | None = Field(default=None, alias="lyricsData")


class SunoCallbackPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    code: int = 200
    msg: str | None = None
    data: SunoCallbackData = Field(default_factory=SunoCallbackData)

    @property
    def task_id(self) -> str | None:
        value = self.data.task_id or self.data.task_id_camel
        return value.strip() if value and value.strip() else None

    @property
    def callback_type(self) -> str:
        return (self.data.callback_type or "").strip().lower()

    @property
    def entries(self) -> list[dict[str, Any]]:
        return [entry for entry in (self.data.data or self.data.lyrics_data or []) if isinstance(entry, dict)]

    @property
    def is_error(self) -> bool:
        return self.code != 200 or self.callback_type == "error"


class CallbackAck(BaseModel):
    status: str
    job_id: str | None = None
    lyrics_id: str | None = None
    action: str | None = None
