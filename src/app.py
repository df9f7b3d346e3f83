"""
Flask web application for the bracket engine.
"""
import atexit
import os
from functools import wraps

import yaml
from flask import Flask, Response, g, jsonify, request, session, stream_with_context

from brackets.broadcast import UpdateBroadcaster
from brackets.errors import BracketError, ValidationError
from brackets.formats import validate_tournament_config
from brackets.payout import DEFAULT_PAYOUT_TABLE, PayoutFinalizer
from brackets.service import TournamentService
from brackets.store import BracketStore, YamlDocumentRepository, validate_key

app = Flask(__name__)


def _get_or_create_secret_key() -> bytes:
    """Get SECRET_KEY from env, or generate and persist to file."""
    env_key = os.environ.get('SECRET_KEY')
    if env_key:
        return env_key.encode() if isinstance(env_key, str) else env_key
    key_file = os.path.join(DATA_DIR, '.secret_key')
    if os.path.exists(key_file):
        with open(key_file, 'rb') as f:
            return f.read()
    key = os.urandom(24)
    os.makedirs(os.path.dirname(key_file), exist_ok=True)
    with open(key_file, 'wb') as f:
        f.write(key)
    return key


BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DATA_DIR = os.environ.get('BRACKET_DATA_DIR', os.path.join(BASE_DIR, 'data'))
SETTINGS_FILE_NAME = 'settings.yaml'

app.secret_key = _get_or_create_secret_key()


def get_default_settings():
    """Return default engine settings."""
    return {
        'heartbeat_seconds': 15,
        'max_attempts': 4,
        'retry_base_delay': 0.05,
        'lock_timeout': 10,
        'payout_table': dict(DEFAULT_PAYOUT_TABLE),
        'prize_pool': 0,
    }


def load_settings(data_dir: str) -> dict:
    """Load settings.yaml from the data directory, merged over the defaults."""
    defaults = get_default_settings()
    path = os.path.join(data_dir, SETTINGS_FILE_NAME)
    if not os.path.exists(path):
        return defaults
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        app.logger.warning(f'Failed to parse {path}: {e}')
        return defaults
    if not isinstance(data, dict):
        if data is not None:
            app.logger.warning(f'Ignoring {path}: expected a mapping')
        return defaults
    return {**defaults, **data}


def init_services(data_dir: str = None) -> TournamentService:
    """Build the bracket service for a data directory and attach it to the app."""
    data_dir = data_dir or DATA_DIR
    settings = load_settings(data_dir)
    repository = YamlDocumentRepository(data_dir, timeout=settings['lock_timeout'])
    broadcaster = UpdateBroadcaster()
    store = BracketStore(repository, broadcaster)
    service = TournamentService(
        store,
        PayoutFinalizer(repository, store),
        broadcaster,
        max_attempts=settings['max_attempts'],
        base_delay=settings['retry_base_delay'],
        heartbeat_seconds=settings['heartbeat_seconds'],
    )
    previous = app.config.get('BRACKET_SERVICE')
    if previous is not None:
        previous.shutdown()
    app.config['BRACKET_SERVICE'] = service
    app.config['BRACKET_SETTINGS'] = settings
    atexit.register(service.shutdown)
    app.logger.info(f'Bracket service ready: DATA_DIR={data_dir}')
    return service


def _service() -> TournamentService:
    service = app.config.get('BRACKET_SERVICE')
    if service is None:
        service = init_services()
    return service


def _settings() -> dict:
    return app.config.get('BRACKET_SETTINGS') or get_default_settings()


def admin_required(f):
    """Require a logged-in session with the admin role."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'user' not in session:
            return jsonify({'error': 'Authentication required'}), 401
        if session.get('role') != 'admin':
            return jsonify({'error': 'Admin access required'}), 403
        g.actor_id = session['user']
        return f(*args, **kwargs)
    return decorated_function


@app.errorhandler(BracketError)
def handle_bracket_error(error):
    return jsonify(error.to_dict()), error.status_code


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def _expected_version(data: dict):
    value = data.get('expectedVersion')
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError('expectedVersion must be an integer')
    return value


def _mutation_response(result):
    bracket, match = result
    return jsonify({'match': match.to_dict(), 'bracket': bracket.to_dict()})


@app.route('/api/tournaments/<tournament_id>/start', methods=['POST'])
@admin_required
def start_tournament(tournament_id):
    """Generate the bracket. Starting an already started tournament returns its bracket."""
    validate_key(tournament_id)
    data = _json_body()
    seeds = data.get('seeds')
    format_name = data.get('format', 'single')
    service = _service()
    existing = service.store.find(tournament_id)
    if existing is not None:
        return jsonify(existing.to_dict())
    validate_tournament_config(format_name, seeds)
    bracket = service.start(tournament_id, seeds, format_name)
    return jsonify(bracket.to_dict())


@app.route('/api/tournaments/<tournament_id>/bracket')
def get_bracket(tournament_id):
    return jsonify(_service().get_bracket(tournament_id).to_dict())


@app.route('/api/tournaments/<tournament_id>/bracket/stream')
def stream_bracket(tournament_id):
    """Server-Sent Events stream of bracket snapshots."""
    stream = _service().open_stream(tournament_id)
    return Response(
        stream_with_context(stream.events()),
        mimetype='text/event-stream',
        headers={
            'Cache-Control': 'no-cache',
            'X-Accel-Buffering': 'no',
        }
    )


@app.route('/api/tournaments/<tournament_id>/matches')
def list_matches(tournament_id):
    return jsonify(_service().list_matches(tournament_id))


@app.route('/api/tournaments/<tournament_id>/matches/<match_id>/report', methods=['POST'])
@admin_required
def report_match(tournament_id, match_id):
    data = _json_body()
    result = _service().report(
        tournament_id, match_id,
        data.get('score1'), data.get('score2'),
        winner_override=data.get('winnerId'),
        actor_id=g.actor_id,
        expected_version=_expected_version(data),
    )
    return _mutation_response(result)


@app.route('/api/tournaments/<tournament_id>/matches/<match_id>/override', methods=['POST'])
@admin_required
def override_match(tournament_id, match_id):
    data = _json_body()
    result = _service().override(
        tournament_id, match_id,
        data.get('winnerId'),
        score1=data.get('score1'),
        score2=data.get('score2'),
        actor_id=g.actor_id,
        expected_version=_expected_version(data),
    )
    return _mutation_response(result)


@app.route('/api/tournaments/<tournament_id>/matches/<match_id>/edit', methods=['POST'])
@admin_required
def edit_match(tournament_id, match_id):
    data = _json_body()
    result = _service().edit(
        tournament_id, match_id,
        data.get('score1'), data.get('score2'),
        actor_id=g.actor_id,
        expected_version=_expected_version(data),
    )
    return _mutation_response(result)


@app.route('/api/tournaments/<tournament_id>/matches/<match_id>/reset', methods=['POST'])
@admin_required
def reset_match(tournament_id, match_id):
    data = _json_body()
    result = _service().reset(
        tournament_id, match_id,
        actor_id=g.actor_id,
        expected_version=_expected_version(data),
    )
    return _mutation_response(result)


@app.route('/api/tournaments/<tournament_id>/end', methods=['POST'])
@admin_required
def end_tournament(tournament_id):
    """Finalize placements and the prize split. Repeat calls return the stored payout."""
    data = _json_body()
    settings = _settings()
    payout = _service().finalize(
        tournament_id,
        data.get('prizePool', settings['prize_pool']),
        data.get('payoutTable') or settings['payout_table'],
    )
    return jsonify(payout)


@app.route('/api/tournaments/<tournament_id>/end', methods=['GET'])
def get_payout(tournament_id):
    return jsonify(_service().get_payout(tournament_id))


if __name__ == '__main__':
    init_services()
    app.run(debug=True, port=5000, threaded=True)
