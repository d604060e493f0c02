import ipaddress
import logging

import requests

from models import Movie, PlexLibrary

logger = logging.getLogger(__name__)

DEFAULT_PORT = 32400


def _is_ipv6(host):
    try:
        return isinstance(ipaddress.ip_address(host), ipaddress.IPv6Address)
    except ValueError:
        return False


def _extract_ids_from_item(item):
    """Pull IMDB and TMDB/TVDB ids out of a Plex metadata item's GUIDs."""
    guids = item.get('Guid', [])
    if not isinstance(guids, list):
        guids = []
    guids = list(guids)
    # Legacy agents put a single id in the main 'guid' field
    main_guid = item.get('guid', '')
    if main_guid:
        guids.append({'id': main_guid})

    imdb_id = ''
    tvdb_id = -1
    for guid_obj in guids:
        guid_id = guid_obj.get('id', '') if isinstance(guid_obj, dict) else str(guid_obj)
        if 'imdb://' in guid_id and not imdb_id:
            imdb_id = guid_id.split('imdb://')[1].split('?')[0]
        elif 'tmdb://' in guid_id or 'themoviedb://' in guid_id or 'tvdb://' in guid_id:
            if tvdb_id != -1:
                continue
            raw = guid_id.split('://', 1)[1].split('?')[0]
            try:
                tvdb_id = int(raw)
            except ValueError:
                continue
    return imdb_id, tvdb_id


class PlexClient:
    def __init__(self, base_url, token, timeout=10):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.timeout = timeout
        self.headers = {
            'X-Plex-Token': token,
            'Accept': 'application/json'
        }

    @classmethod
    def from_search(cls, plex_search, timeout=10):
        address = (plex_search.address or '').strip().rstrip('/')
        scheme, sep, host = address.partition('://')
        if not sep:
            scheme, host = 'http', address
        port = plex_search.port or (None if sep else DEFAULT_PORT)

        bare = host.strip('[]')
        if _is_ipv6(bare):
            base_url = f"{scheme}://[{bare}]:{port or DEFAULT_PORT}"
        elif ':' in host or not port:
            # host already carries its own port
            base_url = f"{scheme}://{host}"
        else:
            base_url = f"{scheme}://{host}:{port}"
        return cls(base_url, plex_search.plex_token or '', timeout=timeout)

    def _get(self, path, params=None):
        r = requests.get(f"{self.base_url}{path}", headers=self.headers, params=params, timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def test_connection(self):
        """Test Plex server connection"""
        try:
            r = requests.get(f"{self.base_url}/identity", headers=self.headers, timeout=self.timeout)
            return r.status_code == 200
        except requests.RequestException:
            return False

    def get_identity(self):
        """Return (machine_identifier, friendly_name) or None"""
        try:
            container = self._get('/').get('MediaContainer', {})
        except (requests.RequestException, ValueError) as e:
            logger.error("Error getting Plex identity from %s: %s", self.base_url, e)
            return None
        machine_identifier = container.get('machineIdentifier')
        if not machine_identifier:
            return None
        return machine_identifier, container.get('friendlyName') or ''

    def query_plex_libraries(self):
        """Movie library sections on the server"""
        try:
            data = self._get('/library/sections')
        except (requests.RequestException, ValueError) as e:
            logger.error("Error getting Plex libraries from %s: %s", self.base_url, e)
            return []

        libraries = []
        for section in data.get('MediaContainer', {}).get('Directory', []):
            if section.get('type') != 'movie':
                continue
            try:
                libraries.append(PlexLibrary(int(section.get('key')), section.get('title') or ''))
            except (TypeError, ValueError):
                logger.warning("Skipping library with bad key: %r", section.get('key'))
        logger.info("Found %d movie libraries", len(libraries))
        return libraries

    def get_movies(self, library_key):
        """Every movie in one library section, with ids parsed from GUIDs"""
        try:
            data = self._get(f"/library/sections/{library_key}/all",
                             params={'type': 1, 'includeGuids': 1})
        except (requests.RequestException, ValueError) as e:
            logger.error("Error getting movies for library %s: %s", library_key, e)
            return []

        movies = []
        for item in data.get('MediaContainer', {}).get('Metadata', []):
            title = item.get('title')
            if not title:
                continue
            imdb_id, tvdb_id = _extract_ids_from_item(item)
            try:
                year = int(item.get('year') or 0)
            except (TypeError, ValueError):
                year = 0
            movies.append(Movie(
                name=title,
                year=year,
                imdb_id=imdb_id,
                tvdb_id=tvdb_id,
                poster_url=item.get('thumb') or '',
            ))
        logger.info("Library %s holds %d movies", library_key, len(movies))
        return movies
