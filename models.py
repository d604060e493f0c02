from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional


def _first(data, names):
    for name in names:
        value = data.get(name)
        if value is not None:
            return name, value
    return names[0], None


def _text(data, *names) -> str:
    name, value = _first(data, names)
    if value is None:
        return ''
    if not isinstance(value, str):
        raise ValueError(f"'{name}' must be a string")
    return value


def _number(data, default, *names) -> int:
    name, value = _first(data, names)
    if value is None or value == '':
        return default
    # bool is an int subclass, never a year or an id
    if isinstance(value, bool):
        raise ValueError(f"'{name}' must be a number")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise ValueError(f"'{name}' must be a number")


@dataclass(frozen=True)
class Movie:
    name: str
    year: int = 0
    imdb_id: str = ''
    tvdb_id: int = -1
    poster_url: str = ''
    collection: str = ''
    language: str = ''

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'year': self.year,
            'imdbId': self.imdb_id,
            'tvdbId': self.tvdb_id,
            'posterUrl': self.poster_url,
            'collection': self.collection,
            'language': self.language,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Movie':
        """Build a Movie from its JSON form; wrongly typed fields raise ValueError."""
        if not isinstance(data, dict):
            raise ValueError(f"expected an object, got {type(data).__name__}")
        return cls(
            name=_text(data, 'name', 'title'),
            year=_number(data, 0, 'year'),
            imdb_id=_text(data, 'imdbId', 'imdb_id'),
            tvdb_id=_number(data, -1, 'tvdbId', 'tvdb_id'),
            poster_url=_text(data, 'posterUrl', 'poster_url'),
            collection=_text(data, 'collection'),
            language=_text(data, 'language'),
        )


@dataclass(frozen=True)
class Rss:
    """One entry of the RSS-style feed of missing movies."""
    imdb_id: str
    year: int
    tvdb_id: int
    title: str
    poster_url: str

    @classmethod
    def from_movie(cls, movie: Movie) -> 'Rss':
        return cls(movie.imdb_id, movie.year, movie.tvdb_id, movie.name, movie.poster_url)

    def to_dict(self) -> dict:
        return {
            'imdb_id': self.imdb_id,
            'release_date': self.year,
            'tvdb_id': self.tvdb_id,
            'title': self.title,
            'poster_path': self.poster_url,
        }


@dataclass
class PlexLibrary:
    key: int
    title: str = ''
    selected: bool = False

    def to_dict(self) -> dict:
        return {'key': self.key, 'title': self.title, 'selected': self.selected}

    @classmethod
    def from_dict(cls, data: dict) -> 'PlexLibrary':
        return cls(int(data['key']), data.get('title') or '', bool(data.get('selected', False)))


@dataclass
class PlexSearch:
    """Search configuration a user builds up over the wizard pages."""
    movie_db_api_key: Optional[str] = None
    plex_token: Optional[str] = None
    address: Optional[str] = None
    port: Optional[int] = None
    libraries: list = field(default_factory=list)

    def copy(self) -> 'PlexSearch':
        return replace(self, libraries=[replace(lib) for lib in self.libraries])

    def __str__(self):
        token = '***' if self.plex_token else None
        libs = ', '.join(f"{lib.key}:{lib.title}{'*' if lib.selected else ''}" for lib in self.libraries)
        return (f"PlexSearch(address={self.address}, port={self.port}, plex_token={token}, "
                f"movie_db_api_key={'***' if self.movie_db_api_key else None}, libraries=[{libs}])")


@dataclass
class PlexServer:
    friendly_name: str = ''
    machine_identifier: str = ''
    plex_token: str = ''
    address: str = ''
    port: int = 32400
    libraries: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'friendlyName': self.friendly_name,
            'machineIdentifier': self.machine_identifier,
            'plexToken': self.plex_token,
            'address': self.address,
            'port': self.port,
            'libraries': [lib.to_dict() for lib in self.libraries],
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'PlexServer':
        return cls(
            friendly_name=data.get('friendlyName') or '',
            machine_identifier=data.get('machineIdentifier') or '',
            plex_token=data.get('plexToken') or '',
            address=data.get('address') or '',
            port=int(data.get('port') or 32400),
            libraries=[PlexLibrary.from_dict(lib) for lib in data.get('libraries') or []],
        )


@dataclass
class PlexProperties:
    movie_db_api_key: str = ''
    plex_servers: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'movieDbApiKey': self.movie_db_api_key,
            'plexServers': [server.to_dict() for server in self.plex_servers],
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'PlexProperties':
        return cls(
            movie_db_api_key=data.get('movieDbApiKey') or '',
            plex_servers=[PlexServer.from_dict(s) for s in data.get('plexServers') or []],
        )

    def __str__(self):
        names = [s.friendly_name or s.machine_identifier for s in self.plex_servers]
        return f"PlexProperties(plex_servers={names}, movie_db_api_key={'***' if self.movie_db_api_key else None})"


class Payload(Enum):
    NUKE_SUCCESSFUL = (30, 'Nuke successful. All files deleted.')
    NUKE_UNSUCCESSFUL = (31, 'Nuke unsuccessful. Files may not have been deleted.')

    @property
    def code(self) -> int:
        return self.value[0]

    @property
    def reason(self) -> str:
        return self.value[1]

    def to_dict(self) -> dict:
        return {'code': self.code, 'reason': self.reason}
