import os
import sys
import json
from pathlib import Path

# Add backend directory to Python path FIRST
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Keep the module-level engine off the user's home directory
os.environ.setdefault('DATABASE_URL', 'sqlite:///:memory:')

# Now import after path is set
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from models import Base, Job
from constants import JobKind, JobStatus


@pytest.fixture
def engine():
    """In-memory database shared by every session of a test"""
    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine)


@pytest.fixture
def db_session(session_factory):
    """Create in-memory database for testing"""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_job(session_factory):
    """Insert a job row and return its id"""
    def _make_job(
        owner_id='owner-1',
        kind=JobKind.STITCH.value,
        input_files=('clips/a.mp4', 'clips/b.mp4'),
        status=JobStatus.QUEUED.value,
        input_descriptor=None,
        **fields
    ):
        if input_descriptor is None and input_files is not None:
            input_descriptor = json.dumps(list(input_files))
        session = session_factory()
        try:
            job = Job(
                owner_id=owner_id,
                kind=kind,
                status=status,
                input_descriptor=input_descriptor,
                **fields
            )
            session.add(job)
            session.commit()
            return job.id
        finally:
            session.close()
    return _make_job


@pytest.fixture
def load_job(session_factory):
    """Read a job row in a fresh session"""
    def _load_job(job_id):
        session = session_factory()
        try:
            job = session.get(Job, job_id)
            if job is not None:
                session.expunge(job)
            return job
        finally:
            session.close()
    return _load_job
