from sqlalchemy import Column, String, Integer, Text, DateTime, CheckConstraint, Index
from datetime import datetime
import json
import uuid
from database import Base
from constants import JobKind, JobStatus
from exceptions import ValidationError

def generate_uuid():
    return str(uuid.uuid4())


def _quoted(values: list[str]) -> str:
    return ", ".join(f"'{value}'" for value in values)


class Job(Base):
    """
    A unit of requested work tracked through its status lifecycle.

    Job States:
    - QUEUED: Created by the submission path, waiting for a worker
    - PROCESSING: Claimed by a worker (inputs downloading, tool running, result uploading)
    - COMPLETED: Output descriptor holds a store path (STITCH) or transcript text (TRANSCRIBE)
    - FAILED: Error detail holds the message of the step that failed

    The input descriptor is a JSON array of store paths and never changes after
    creation. The output descriptor is written once, when the job completes.
    """
    __tablename__ = 'jobs'

    id = Column(String, primary_key=True, default=generate_uuid)
    owner_id = Column(String, nullable=False)
    kind = Column(String, nullable=False)
    status = Column(String, nullable=False, default=JobStatus.QUEUED.value)
    input_descriptor = Column(Text)   # JSON array of store paths
    output_descriptor = Column(Text)  # Store path or inline transcript
    error_detail = Column(Text)
    attempts = Column(Integer, nullable=False, default=0)  # Incremented on every claim
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def get_input_paths(self) -> list[str]:
        """
        Parse and validate the input descriptor.

        Returns:
            Ordered list of store paths (at least one)

        Raises:
            ValidationError: If the descriptor is missing, malformed, empty or
                contains anything other than non-empty strings
        """
        if not self.input_descriptor:
            raise ValidationError("No input files specified for the job.")

        try:
            paths = json.loads(self.input_descriptor)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Failed to parse input descriptor JSON: {e}")

        if not isinstance(paths, list) or len(paths) == 0:
            raise ValidationError("Invalid or empty input file array.")

        if not all(isinstance(p, str) and p.strip() for p in paths):
            raise ValidationError("Input file array must contain only non-empty store paths.")

        return paths

    def get_kind(self) -> JobKind:
        """
        Resolve the job kind.

        Raises:
            ValidationError: If the stored kind is not a supported JobKind
        """
        try:
            return JobKind(self.kind)
        except ValueError:
            raise ValidationError(f"Unsupported job kind: {self.kind}")

    def __repr__(self) -> str:
        return f"<Job {self.id} {self.kind} {self.status}>"

    __table_args__ = (
        CheckConstraint(f"kind IN ({_quoted(JobKind.values())})", name='ck_jobs_kind'),
        CheckConstraint(f"status IN ({_quoted(JobStatus.values())})", name='ck_jobs_status'),
        Index('idx_jobs_status_created', 'status', 'created_at'),
        Index('idx_jobs_owner', 'owner_id'),
    )
