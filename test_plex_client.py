from unittest.mock import MagicMock, patch

import requests

from models import Movie, PlexLibrary, PlexSearch
from plex_client import PlexClient, _extract_ids_from_item


def _response(payload, status=200):
    response = MagicMock()
    response.status_code = status
    response.json.return_value = payload
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    return response


def test_extract_ids_from_guid_list():
    item = {
        'title': 'Avatar',
        'guid': 'plex://movie/5d776b59ad5437001f79c6f8',
        'Guid': [{'id': 'imdb://tt0499549'}, {'id': 'tmdb://19995'}],
    }
    assert _extract_ids_from_item(item) == ('tt0499549', 19995)


def test_extract_ids_from_legacy_guid():
    assert _extract_ids_from_item({'guid': 'com.plexapp.agents.themoviedb://603?lang=en'}) == ('', 603)
    assert _extract_ids_from_item({'guid': 'com.plexapp.agents.imdb://tt0133093?lang=en'}) == ('tt0133093', -1)


def test_extract_ids_without_known_agents():
    assert _extract_ids_from_item({'Guid': [{'id': 'tmdb://abc'}]}) == ('', -1)
    assert _extract_ids_from_item({'title': 'Unknown'}) == ('', -1)


def test_from_search_builds_base_url():
    client = PlexClient.from_search(PlexSearch(address='plex.local', port=32400, plex_token='t'))
    assert client.base_url == 'http://plex.local:32400'
    assert client.headers['X-Plex-Token'] == 't'

    client = PlexClient.from_search(PlexSearch(address='https://plex.example.com/', port=443))
    assert client.base_url == 'https://plex.example.com:443'

    client = PlexClient.from_search(PlexSearch(address='http://10.0.0.2:32400', port=32400))
    assert client.base_url == 'http://10.0.0.2:32400'


def test_from_search_brackets_ipv6_hosts():
    client = PlexClient.from_search(PlexSearch(address='::1', port=32400, plex_token='t'))
    assert client.base_url == 'http://[::1]:32400'

    client = PlexClient.from_search(PlexSearch(address='[fe80::1]', port=8443))
    assert client.base_url == 'http://[fe80::1]:8443'

    client = PlexClient.from_search(PlexSearch(address='https://2001:db8::5', port=443))
    assert client.base_url == 'https://[2001:db8::5]:443'


def test_from_search_keeps_port_in_address():
    client = PlexClient.from_search(PlexSearch(address='plex.local:32401', port=32400))
    assert client.base_url == 'http://plex.local:32401'


@patch('plex_client.requests.get')
def test_query_plex_libraries_keeps_movie_sections(mock_get):
    mock_get.return_value = _response({'MediaContainer': {'Directory': [
        {'key': '1', 'title': 'Movies', 'type': 'movie'},
        {'key': '2', 'title': 'TV Shows', 'type': 'show'},
        {'key': '5', 'title': '4K Movies', 'type': 'movie'},
    ]}})
    client = PlexClient('http://plex.local:32400', 'token')
    assert client.query_plex_libraries() == [PlexLibrary(1, 'Movies'), PlexLibrary(5, '4K Movies')]
    args, kwargs = mock_get.call_args
    assert args[0] == 'http://plex.local:32400/library/sections'
    assert kwargs['headers']['X-Plex-Token'] == 'token'


@patch('plex_client.requests.get')
def test_query_plex_libraries_on_connection_error(mock_get):
    mock_get.side_effect = requests.ConnectionError('refused')
    assert PlexClient('http://plex.local:32400', 'token').query_plex_libraries() == []


@patch('plex_client.requests.get')
def test_query_plex_libraries_on_http_error(mock_get):
    mock_get.return_value = _response({}, status=401)
    assert PlexClient('http://plex.local:32400', 'bad').query_plex_libraries() == []


@patch('plex_client.requests.get')
def test_get_movies(mock_get):
    mock_get.return_value = _response({'MediaContainer': {'Metadata': [
        {'title': 'The Matrix', 'year': 1999, 'thumb': '/library/metadata/1/thumb',
         'Guid': [{'id': 'imdb://tt0133093'}, {'id': 'tmdb://603'}]},
        {'title': 'Home Video'},
        {'year': 2001},
    ]}})
    movies = PlexClient('http://plex.local:32400', 'token').get_movies(1)
    assert movies == [
        Movie('The Matrix', 1999, 'tt0133093', 603, '/library/metadata/1/thumb'),
        Movie('Home Video', 0),
    ]
    args, kwargs = mock_get.call_args
    assert args[0] == 'http://plex.local:32400/library/sections/1/all'
    assert kwargs['params'] == {'type': 1, 'includeGuids': 1}


@patch('plex_client.requests.get')
def test_get_movies_on_error(mock_get):
    mock_get.side_effect = requests.Timeout('slow')
    assert PlexClient('http://plex.local:32400', 'token').get_movies(1) == []


@patch('plex_client.requests.get')
def test_get_identity(mock_get):
    mock_get.return_value = _response({'MediaContainer': {'machineIdentifier': 'abc123',
                                                          'friendlyName': 'Home Server'}})
    assert PlexClient('http://plex.local:32400', 'token').get_identity() == ('abc123', 'Home Server')


@patch('plex_client.requests.get')
def test_get_identity_unreachable(mock_get):
    mock_get.side_effect = requests.ConnectionError('refused')
    assert PlexClient('http://plex.local:32400', 'token').get_identity() is None


@patch('plex_client.requests.get')
def test_test_connection(mock_get):
    mock_get.return_value = _response({}, status=200)
    assert PlexClient('http://plex.local:32400', 'token').test_connection() is True
    mock_get.side_effect = requests.ConnectionError('refused')
    assert PlexClient('http://plex.local:32400', 'token').test_connection() is False
