from pydantic import BaseModel, Field, computed_field, field_validator, model_validator
from typing import List, Optional
from datetime import datetime
import json

from constants import JobKind, JobStatus
from utils.input_paths import basename_clash_message, find_basename_clash


class JobCreate(BaseModel):
    """Submission body: what to do and the ordered store paths to do it on"""
    kind: JobKind
    input_files: List[str] = Field(..., min_length=1)

    @field_validator('input_files')
    @classmethod
    def input_files_not_blank(cls, v: List[str]) -> List[str]:
        if any(not path.strip() for path in v):
            raise ValueError('input file paths must not be empty')
        return v

    @model_validator(mode='after')
    def stitch_inputs_have_distinct_names(self) -> 'JobCreate':
        if self.kind is JobKind.STITCH:
            clash = find_basename_clash(self.input_files)
            if clash:
                raise ValueError(basename_clash_message(clash))
        return self


class CaptionUpdate(BaseModel):
    """Replacement transcript for a completed TRANSCRIBE job"""
    captions: str


class Job(BaseModel):
    id: str
    owner_id: str
    kind: JobKind
    status: JobStatus
    input_descriptor: Optional[str] = None
    output_descriptor: Optional[str] = None
    error_detail: Optional[str] = None
    attempts: int = 0
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def input_files(self) -> List[str]:
        """Input descriptor decoded, or [] if it is not a JSON array"""
        try:
            paths = json.loads(self.input_descriptor or '[]')
        except ValueError:
            return []
        return paths if isinstance(paths, list) else []

    class Config:
        from_attributes = True


class HealthStatus(BaseModel):
    status: str
    queued_jobs: int
    processing_jobs: int
    worker_running: bool
