"""
Shared pytest fixtures for bracket engine tests.

Running tests:
    pytest tests/
"""
import pytest
import sys
import os

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

# Keep app import from writing a secret key into the repository's data dir
os.environ.setdefault('SECRET_KEY', 'test-secret-key')

from brackets.broadcast import UpdateBroadcaster
from brackets.payout import PayoutFinalizer
from brackets.service import TournamentService
from brackets.store import BracketStore, MemoryDocumentRepository, YamlDocumentRepository


@pytest.fixture
def memory_repo():
    return MemoryDocumentRepository()


@pytest.fixture
def yaml_repo(tmp_path):
    return YamlDocumentRepository(str(tmp_path / "data"), timeout=5)


@pytest.fixture
def broadcaster():
    broadcaster = UpdateBroadcaster()
    yield broadcaster
    broadcaster.close()


@pytest.fixture
def store(memory_repo, broadcaster):
    return BracketStore(memory_repo, broadcaster)


@pytest.fixture
def finalizer(memory_repo, store):
    return PayoutFinalizer(memory_repo, store)


@pytest.fixture
def service(store, finalizer, broadcaster):
    """Service over an in-memory repository, retrying without delay."""
    return TournamentService(store, finalizer, broadcaster, max_attempts=4,
                             base_delay=0, heartbeat_seconds=0.05)


@pytest.fixture
def app_data_dir(tmp_path):
    """Point the Flask app at a fresh data directory."""
    import app as app_module
    data_dir = tmp_path / "app-data"
    data_dir.mkdir()
    app_module.init_services(str(data_dir))
    app_module.app.config['TESTING'] = True
    yield data_dir
    app_module.app.config['BRACKET_SERVICE'].shutdown()
    app_module.app.config.pop('BRACKET_SERVICE', None)
    app_module.app.config.pop('BRACKET_SETTINGS', None)


@pytest.fixture
def client(app_data_dir):
    """Create a test client logged in as an admin."""
    from app import app
    with app.test_client() as client:
        with client.session_transaction() as sess:
            sess['user'] = 'organizer'
            sess['role'] = 'admin'
        yield client


@pytest.fixture
def anon_client(app_data_dir):
    """Create a test client with no session."""
    from app import app
    with app.test_client() as client:
        yield client


@pytest.fixture
def player_client(app_data_dir):
    """Create a test client logged in without the admin role."""
    from app import app
    with app.test_client() as client:
        with client.session_transaction() as sess:
            sess['user'] = 'player1'
            sess['role'] = 'player'
        yield client
