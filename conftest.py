import pytest

import app as gaps_app
from io_service import IoService
from models import Movie, PlexLibrary
from search_state import SearchStateStore


class FakePlexClient:
    """Stands in for PlexClient so handler tests never touch the network."""

    def __init__(self, libraries=None, movies=None, identity=('abc123', 'Home Server')):
        self.libraries = libraries if libraries is not None else [PlexLibrary(1, 'Movies')]
        self.movies = movies if movies is not None else []
        self.identity = identity
        self.searches = []

    def query_plex_libraries(self):
        return list(self.libraries)

    def get_movies(self, library_key):
        return list(self.movies)

    def get_identity(self):
        return self.identity


@pytest.fixture
def storage(tmp_path):
    return tmp_path / 'data'


@pytest.fixture
def io_service(storage):
    return IoService(storage)


@pytest.fixture
def fake_plex():
    return FakePlexClient()


@pytest.fixture
def gaps(monkeypatch, io_service, fake_plex):
    def get_plex_client(plex_search):
        fake_plex.searches.append(plex_search)
        return fake_plex

    monkeypatch.setattr(gaps_app, 'io_service', io_service)
    monkeypatch.setattr(gaps_app, 'search_state', SearchStateStore())
    monkeypatch.setattr(gaps_app, 'get_plex_client', get_plex_client)
    gaps_app.app.config['TESTING'] = True
    return gaps_app


@pytest.fixture
def client(gaps):
    return gaps.app.test_client()


@pytest.fixture
def movies():
    return [
        Movie('The Matrix', 1999, 'tt0133093', 603, '/posters/matrix.jpg'),
        Movie('Alien', 1979, 'tt0078748', 348),
        Movie('Heat', 1995, 'tt0113277', 949, collection='', language='en'),
    ]
