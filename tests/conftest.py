"""Common test fixtures for filemeta."""

import tempfile
from pathlib import Path

import pytest

from filemeta.config import config
from filemeta.models.db_models import get_session_factory, init_db
from filemeta.observability import metrics
from filemeta.services.attribute_store import AttributeStore
from filemeta.services.metadata_service import MetadataService
from filemeta.storage.attribute_codec import AttributeCodec
from filemeta.storage.backup_store import BackupStore
from filemeta.storage.recent_tags import RecentTagsStore
from tests.fakes import MemoryAttributeIO


@pytest.fixture
def temp_dirs():
    """Create temporary directories for files and the backup database."""
    with tempfile.TemporaryDirectory() as files_dir:
        with tempfile.TemporaryDirectory() as db_dir:
            yield Path(files_dir), Path(db_dir)


@pytest.fixture
def test_config(temp_dirs, monkeypatch):
    """Configure with test paths (auto-restored even on crash)."""
    _, db_dir = temp_dirs
    monkeypatch.setattr(config, "base_dir", db_dir)
    monkeypatch.setattr(config, "database_path", db_dir / "test_backups.db")
    monkeypatch.setattr(config, "log_dir", db_dir / "logs")
    monkeypatch.setattr(config, "restore_workers", 4)
    monkeypatch.setattr(config, "shutdown_timeout", 10.0)
    yield config


@pytest.fixture
def files_dir(temp_dirs):
    return temp_dirs[0]


@pytest.fixture
def engine(test_config):
    """File-backed SQLite engine; worker threads need a shared database."""
    engine = init_db(test_config.get_db_url())
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return get_session_factory(engine)


@pytest.fixture
def backup_store(session_factory):
    return BackupStore(session_factory)


@pytest.fixture
def recent_tags(session_factory):
    return RecentTagsStore(session_factory, limit=10)


@pytest.fixture
def fake_io():
    return MemoryAttributeIO()


@pytest.fixture
def codec(test_config):
    return AttributeCodec()


@pytest.fixture
def store(fake_io, codec, backup_store):
    return AttributeStore(fake_io, codec, backup_store)


@pytest.fixture
def service(fake_io, backup_store, codec, recent_tags):
    """MetadataService over the in-memory attribute I/O."""
    service = MetadataService(
        io=fake_io, backup_store=backup_store, codec=codec, recent_tags=recent_tags
    )
    yield service
    service.app_is_terminating()


@pytest.fixture
def make_file(fake_io, files_dir):
    """Create a fake file under the temp directory and return its path."""
    def _make(name: str) -> Path:
        return fake_io.create(files_dir / name)
    return _make


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield
