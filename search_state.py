import logging
import threading
from collections import OrderedDict

from models import PlexSearch

logger = logging.getLogger(__name__)

MAX_SESSIONS = 500


class SearchStateStore:
    """Holds one PlexSearch per browser session.

    Every access goes through the store lock; callers get copies back so a
    template never renders a record another request is mutating. Reads do not
    create entries, and once ``max_sessions`` is reached the least recently
    used session is dropped.
    """

    def __init__(self, max_sessions=MAX_SESSIONS):
        self._searches = OrderedDict()
        self._lock = threading.Lock()
        self.max_sessions = max_sessions

    def _get(self, sid) -> PlexSearch:
        search = self._searches.get(sid)
        if search is None:
            search = PlexSearch()
            self._searches[sid] = search
            while len(self._searches) > self.max_sessions:
                evicted, _ = self._searches.popitem(last=False)
                logger.info("Dropped search state of idle session %s", evicted)
        else:
            self._searches.move_to_end(sid)
        return search

    def get_plex_search(self, sid) -> PlexSearch:
        with self._lock:
            search = self._searches.get(sid)
            if search is None:
                return PlexSearch()
            self._searches.move_to_end(sid)
            return search.copy()

    def update_plex_search(self, sid, plex_search: PlexSearch) -> PlexSearch:
        """Copy the connection fields that were filled in on the form."""
        with self._lock:
            current = self._get(sid)
            if plex_search.address:
                current.address = plex_search.address
            if plex_search.port:
                current.port = plex_search.port
            if plex_search.plex_token:
                current.plex_token = plex_search.plex_token
            if plex_search.movie_db_api_key:
                current.movie_db_api_key = plex_search.movie_db_api_key
            return current.copy()

    def add_libraries(self, sid, libraries) -> PlexSearch:
        # Append only; a library already listed keeps its current selection
        with self._lock:
            current = self._get(sid)
            known = {lib.key for lib in current.libraries}
            for lib in libraries:
                if lib.key not in known:
                    current.libraries.append(lib)
                    known.add(lib.key)
            return current.copy()

    def update_library_selections(self, sid, selected_keys) -> PlexSearch:
        with self._lock:
            current = self._get(sid)
            keys = set(selected_keys)
            for lib in current.libraries:
                lib.selected = lib.key in keys
            missing = keys - {lib.key for lib in current.libraries}
            if missing:
                logger.warning("Selected libraries not known for this session: %s", sorted(missing))
            return current.copy()

    def forget(self, sid):
        with self._lock:
            self._searches.pop(sid, None)

    def __len__(self):
        with self._lock:
            return len(self._searches)
