from flask import Flask, Response, jsonify, redirect, render_template, request, session, url_for
import logging
import os
import sys
import uuid

from gap_finder import find_missing
from io_service import IoService, is_safe_segment
from models import Movie, Payload, PlexProperties, PlexServer
from plex_client import PlexClient
from search_state import SearchStateStore
from settings import configure_logging, get_settings
from validators import (bind_plex_search, has_binding_errors, validate_plex_libraries,
                        validate_plex_properties)

# App version (displayed in UI)
VERSION = "v0.4.0"

# PyInstaller compatibility
def get_base_path():
    """Get the base path for files, whether running as script or executable."""
    if hasattr(sys, '_MEIPASS'):
        return sys._MEIPASS
    return os.path.dirname(os.path.abspath(__file__))

base_path = get_base_path()
template_dir = os.path.join(base_path, 'templates')
static_dir = os.path.join(base_path, 'static')

settings = get_settings()
configure_logging(settings['LOG_LEVEL'])
logger = logging.getLogger(__name__)

app = Flask(__name__, template_folder=template_dir, static_folder=static_dir)
app.secret_key = settings['SECRET_KEY']

io_service = IoService(settings['GAPS_STORAGE_FOLDER'])
search_state = SearchStateStore()

logger.info("Gaps %s starting", VERSION)
logger.info("Template folder: %s (exists: %s)", template_dir, os.path.exists(template_dir))
logger.info("Storage folder: %s", io_service.storage_folder)


def get_plex_client(plex_search):
    return PlexClient.from_search(plex_search, timeout=settings['PLEX_TIMEOUT'])


def _session_id():
    sid = session.get('sid')
    if not sid:
        sid = uuid.uuid4().hex
        session['sid'] = sid
    return sid


def _error_page(result):
    return render_template('error.html', errors=result.messages, version=VERSION), 400


def _bad_machine_identifier(machine_identifier):
    if is_safe_segment(machine_identifier):
        return None
    logger.error("Rejected machine identifier %r", machine_identifier)
    return jsonify({'error': 'Invalid machine identifier'}), 400


def _remember_server(plex_search, machine_identifier, friendly_name):
    """Add or refresh this server in the stored properties."""
    properties = io_service.read_properties()
    server = PlexServer(
        friendly_name=friendly_name,
        machine_identifier=machine_identifier,
        plex_token=plex_search.plex_token or '',
        address=plex_search.address or '',
        port=plex_search.port or 32400,
        libraries=[lib for lib in plex_search.libraries if lib.selected],
    )
    properties.plex_servers = [s for s in properties.plex_servers
                               if s.machine_identifier != machine_identifier]
    properties.plex_servers.append(server)
    if plex_search.movie_db_api_key:
        properties.movie_db_api_key = plex_search.movie_db_api_key
    io_service.write_properties(properties)


@app.route('/')
def index():
    return redirect(url_for('plex_libraries'))


@app.route('/plexLibraries', methods=['GET', 'POST'])
def plex_libraries():
    sid = _session_id()
    if request.method == 'GET':
        logger.info("get_plex_libraries()")
        return render_template('plexLibraries.html', plex_search=search_state.get_plex_search(sid), version=VERSION)

    plex_search, result = bind_plex_search(request.form)
    logger.info("post_plex_libraries(%s)", plex_search)
    validate_plex_properties(plex_search, result)
    if has_binding_errors(result):
        return _error_page(result)

    search_state.update_plex_search(sid, plex_search)
    libraries = get_plex_client(plex_search).query_plex_libraries()
    current = search_state.add_libraries(sid, libraries)
    logger.info("%s", current)
    return render_template('plexLibraries.html', plex_search=current, version=VERSION)


@app.route('/plexMovieList', methods=['GET', 'POST'])
def plex_movie_list():
    sid = _session_id()
    if request.method == 'GET':
        logger.info("get_plex_movie_list()")
        return render_template('plexMovieList.html', plex_search=search_state.get_plex_search(sid),
                               machine_identifier=None, version=VERSION)

    plex_search, result = bind_plex_search(request.form)
    logger.info("post_plex_movie_list(%s)", plex_search)
    validate_plex_libraries(plex_search, result)
    if has_binding_errors(result):
        return _error_page(result)

    search_state.update_library_selections(sid, [lib.key for lib in plex_search.libraries])
    current = search_state.update_plex_search(sid, plex_search)
    logger.info("%s", current)

    machine_identifier = None
    if current.address and current.plex_token:
        identity = get_plex_client(current).get_identity()
        if identity:
            machine_identifier, friendly_name = identity
            _remember_server(current, machine_identifier, friendly_name)
    return render_template('plexMovieList.html', plex_search=current,
                           machine_identifier=machine_identifier, version=VERSION)


@app.post('/recommended/<machine_identifier>/<int:key>')
def upload_recommended(machine_identifier, key):
    rejected = _bad_machine_identifier(machine_identifier)
    if rejected:
        return rejected
    data = request.get_json(silent=True)
    if not isinstance(data, list):
        return jsonify({'error': 'Expected a JSON list of movies'}), 400
    try:
        recommended = [Movie.from_dict(item) for item in data]
    except (AttributeError, TypeError, ValueError) as e:
        return jsonify({'error': f'Malformed movie entry: {e}'}), 400

    written = io_service.write_recommended_to_file(recommended, machine_identifier, key)
    every_movie = io_service.read_movie_ids_from_file() | set(recommended)
    io_service.write_movie_ids_to_file(every_movie)
    return jsonify({'written': written, 'recommended': len(recommended), 'known': len(every_movie)})


@app.post('/gaps/<machine_identifier>/<int:key>')
def find_gaps(machine_identifier, key):
    rejected = _bad_machine_identifier(machine_identifier)
    if rejected:
        return rejected
    plex_search = search_state.get_plex_search(_session_id())
    if not plex_search.address or not plex_search.plex_token:
        return jsonify({'error': 'Connect to a Plex server first'}), 400

    owned = get_plex_client(plex_search).get_movies(key)
    if owned:
        io_service.write_owned_movies_to_file(owned, machine_identifier, key)
    else:
        logger.warning("No movies from Plex for %s/%s, using last snapshot", machine_identifier, key)
        owned = io_service.read_owned_movies(machine_identifier, key)

    recommended = io_service.read_recommended_movies(machine_identifier, key)
    missing = find_missing(owned, recommended, threshold=settings['FUZZY_THRESHOLD'])
    io_service.write_rss_file(machine_identifier, key, missing)
    logger.info("%d of %d recommended movies missing from %s/%s",
                len(missing), len(recommended), machine_identifier, key)
    return jsonify({
        'owned': len(owned),
        'recommended': len(recommended),
        'missing': [m.to_dict() for m in missing],
    })


@app.get('/rss/<machine_identifier>/<int:key>')
def rss_feed(machine_identifier, key):
    rejected = _bad_machine_identifier(machine_identifier)
    if rejected:
        return rejected
    if not io_service.does_rss_file_exist(machine_identifier, key):
        return jsonify({'error': 'No RSS feed for this library yet'}), 404
    return Response(io_service.get_rss_file(machine_identifier, key), mimetype='application/json')


@app.route('/properties', methods=['GET', 'POST'])
def properties():
    if request.method == 'POST':
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({'error': 'Expected a JSON object'}), 400
        try:
            plex_properties = PlexProperties.from_dict(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            return jsonify({'error': f'Malformed properties: {e}'}), 400
        return jsonify({'written': io_service.write_properties(plex_properties)})

    out = io_service.read_properties().to_dict()
    # Tokens stay on disk
    for server in out['plexServers']:
        server['plexToken'] = '***' if server['plexToken'] else ''
    return jsonify(out)


@app.post('/nuke')
def nuke():
    payload = io_service.nuke()
    search_state.forget(_session_id())
    status = 200 if payload is Payload.NUKE_SUCCESSFUL else 500
    return jsonify(payload.to_dict()), status


if __name__ == '__main__':
    app.run(host=settings['HOST'], port=settings['PORT'])
