"""Pydantic response models for the sprite HTTP API.

WHY: FastAPI uses these models to serialize responses and to document
them in the generated OpenAPI schema at /docs.

RULES:
- Every field carries a description for the OpenAPI docs
- Times are epoch seconds
- Models mirror the public parts of SpriteJob only (no filesystem paths)
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SpriteJobResponse(BaseModel):
    """Status of one sprite job."""

    id: str = Field(description="Unique job identifier.")
    status: str = Field(description="pending, building, completed or failed.")
    clips: List[str] = Field(description="Uploaded clip filenames in track order.")
    created_at: float = Field(description="Job creation time (Unix epoch seconds).")
    options: Dict[str, Any] = Field(description="Build options given with the request.")
    error: Optional[str] = Field(
        default=None,
        description="Failure message, only present when status is 'failed'.",
    )
    output_files: Optional[List[str]] = Field(
        default=None,
        description="Produced filenames, only present when status is 'completed'.",
    )
    manifest: Optional[Dict[str, Any]] = Field(
        default=None,
        description="The sprite manifest, only present when status is 'completed'.",
    )

    model_config = {"json_schema_extra": {
        "examples": [
            {
                "id": "9f0c3be1a3e44c6f8f7b2f0d0c6c1a52",
                "status": "completed",
                "clips": ["beep.wav", "boop.wav"],
                "created_at": 1760868000.0,
                "options": {"export": ["ogg", "mp3"], "format": "howler2"},
                "error": None,
                "output_files": ["sprite.ogg", "sprite.mp3", "sprite.json"],
                "manifest": {
                    "src": ["sprite.ogg", "sprite.mp3"],
                    "sprite": {"beep": [0, 1750], "boop": [3000, 1250, True]},
                },
            }
        ]
    }}


class JobCreatedResponse(BaseModel):
    id: str = Field(description="Job identifier to poll.")
    status: str = Field(description="Initial status (always 'pending').")
    clips: List[str] = Field(description="Accepted clip filenames in track order.")


class FileInfo(BaseModel):
    filename: str = Field(description="Output filename.")
    media_type: str = Field(description="MIME type of the file.")
    size: int = Field(description="File size in bytes.")


class FileListResponse(BaseModel):
    job_id: str = Field(description="The job these files belong to.")
    files: List[FileInfo] = Field(description="Files available for download.")


class FormatInfo(BaseModel):
    """Export containers and manifest schemas a build accepts."""

    export_formats: List[str] = Field(description="Audio containers for the export option.")
    default_export: List[str] = Field(description="Containers exported when none are given.")
    manifest_formats: Dict[str, str] = Field(
        description="Manifest schema keys mapped to a human-readable name.",
    )


class ErrorResponse(BaseModel):
    detail: str = Field(description="Human-readable error description.")


class HealthResponse(BaseModel):
    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="Package version.", json_schema_extra={"example": "0.1.0"})
    transcoder: str = Field(description="Configured transcoder binary.")
