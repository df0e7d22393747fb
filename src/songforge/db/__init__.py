"""Database models and utilities."""

from .db_models import Base, GeneratedArtifactModel, GenerationJobModel, LyricsRecordModel

__all__ = [
    "Base",
    "GeneratedArtifactModel",
    "GenerationJobModel",
    "LyricsRecordModel",
]
