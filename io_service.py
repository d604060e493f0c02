import json
import logging
import os
import re
import shutil
import tempfile
import threading

from models import Movie, Payload, PlexProperties, Rss

logger = logging.getLogger(__name__)

RSS_FEED_JSON_FILE = 'rssFeed.json'
PROPERTIES = 'gaps.properties'
STORAGE = 'movieIds.json'
OWNED_MOVIES = 'ownedMovies.json'
RECOMMENDED_MOVIES = 'recommendedMovies.json'

_SEGMENT_RE = re.compile(r'[A-Za-z0-9_-]+')


def is_safe_segment(value) -> bool:
    """True for a machine identifier or library key usable as one folder name."""
    return _SEGMENT_RE.fullmatch(str(value)) is not None


class IoService:
    """Whole-file JSON snapshots under <storage>/<machine_identifier>/<key>/.

    Reads never raise: a missing or unreadable file is an empty result.
    Writes replace the file atomically and report failure by returning False.
    """

    def __init__(self, storage_folder):
        self.storage_folder = str(storage_folder)
        self._lock = threading.Lock()

    def _library_file(self, machine_identifier, key, name):
        # None keeps callers inside the storage folder
        if not is_safe_segment(machine_identifier) or not is_safe_segment(key):
            logger.error("Refusing library path for %r/%r", machine_identifier, key)
            return None
        return os.path.join(self.storage_folder, str(machine_identifier), str(key), name)

    def _make_folder(self, folder) -> bool:
        if os.path.isdir(folder):
            return True
        try:
            os.makedirs(folder, exist_ok=True)
            logger.info("Folder created: %s", folder)
            return True
        except OSError:
            logger.exception("Folder not created: %s", folder)
            return False

    def _write_json(self, path, data) -> bool:
        if path is None:
            return False
        folder = os.path.dirname(path)
        if not self._make_folder(folder):
            return False
        with self._lock:
            tmp_path = None
            try:
                with tempfile.NamedTemporaryFile('w', encoding='utf-8', dir=folder,
                                                 prefix='.' + os.path.basename(path) + '.',
                                                 delete=False) as f:
                    tmp_path = f.name
                    json.dump(data, f)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, path)
                return True
            except (OSError, TypeError, ValueError):
                logger.exception("Can't write to file %s", path)
                if tmp_path and os.path.exists(tmp_path):
                    try:
                        os.remove(tmp_path)
                    except OSError:
                        logger.warning("Leftover temp file %s", tmp_path)
                return False

    def _read_json(self, path, missing_message="%s does not exist"):
        if not os.path.exists(path):
            logger.warning(missing_message, path)
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, ValueError):
            logger.exception("Can't read the file %s", path)
            return None

    def _read_movies(self, path, missing_message="%s does not exist"):
        if path is None:
            return []
        data = self._read_json(path, missing_message)
        if not isinstance(data, list):
            if data is not None:
                logger.error("Expected a list of movies in %s", path)
            return []
        movies = []
        for item in data:
            try:
                movies.append(Movie.from_dict(item))
            except (AttributeError, TypeError, ValueError):
                logger.warning("Skipping malformed movie entry in %s: %r", path, item)
        return movies

    @staticmethod
    def _unique(movies):
        return list(dict.fromkeys(movies))

    # Per-library snapshots

    def read_recommended_movies(self, machine_identifier, key):
        logger.info("read_recommended_movies(%s, %s)", machine_identifier, key)
        return self._read_movies(self._library_file(machine_identifier, key, RECOMMENDED_MOVIES))

    def write_recommended_to_file(self, recommended, machine_identifier, key) -> bool:
        logger.info("write_recommended_to_file(%s, %s)", machine_identifier, key)
        path = self._library_file(machine_identifier, key, RECOMMENDED_MOVIES)
        return self._write_json(path, [m.to_dict() for m in self._unique(recommended)])

    def read_owned_movies(self, machine_identifier, key):
        logger.info("read_owned_movies(%s, %s)", machine_identifier, key)
        return self._read_movies(self._library_file(machine_identifier, key, OWNED_MOVIES))

    def write_owned_movies_to_file(self, owned_movies, machine_identifier, key) -> bool:
        logger.info("write_owned_movies_to_file(%s, %s)", machine_identifier, key)
        path = self._library_file(machine_identifier, key, OWNED_MOVIES)
        return self._write_json(path, [m.to_dict() for m in self._unique(owned_movies)])

    def does_rss_file_exist(self, machine_identifier, key) -> bool:
        path = self._library_file(machine_identifier, key, RSS_FEED_JSON_FILE)
        return path is not None and os.path.exists(path)

    def get_rss_file(self, machine_identifier, key) -> str:
        path = self._library_file(machine_identifier, key, RSS_FEED_JSON_FILE)
        if path is None:
            return ''
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return f.read()
        except OSError:
            logger.exception("Check for RSS file next time")
            return ''

    def write_rss_file(self, machine_identifier, key, recommended) -> bool:
        """Write the missing movies as the RSS feed. IMDB ids are expected on every movie."""
        path = self._library_file(machine_identifier, key, RSS_FEED_JSON_FILE)
        rss = [Rss.from_movie(m).to_dict() for m in self._unique(recommended)]
        return self._write_json(path, rss)

    # Global documents

    def write_movie_ids_to_file(self, every_movie) -> bool:
        logger.info("write_movie_ids_to_file()")
        ordered = sorted(set(every_movie), key=lambda m: (m.name.lower(), m.year, m.imdb_id, m.tvdb_id))
        return self._write_json(os.path.join(self.storage_folder, STORAGE), [m.to_dict() for m in ordered])

    def read_movie_ids_from_file(self) -> set:
        path = os.path.join(self.storage_folder, STORAGE)
        every_movie = set(self._read_movies(path, "Can't find json file '%s'. Most likely first run."))
        logger.info("every_movie size: %d", len(every_movie))
        return every_movie

    def write_properties(self, plex_properties: PlexProperties) -> bool:
        logger.info("write_properties(%s)", plex_properties)
        return self._write_json(os.path.join(self.storage_folder, PROPERTIES), plex_properties.to_dict())

    def read_properties(self) -> PlexProperties:
        logger.info("read_properties()")
        path = os.path.join(self.storage_folder, PROPERTIES)
        data = self._read_json(path, "Can't find json file '%s'. Most likely first run.")
        if not isinstance(data, dict):
            return PlexProperties()
        try:
            return PlexProperties.from_dict(data)
        except (AttributeError, KeyError, TypeError, ValueError):
            logger.exception("Can't read file %s", path)
            return PlexProperties()

    def nuke(self) -> Payload:
        """Delete everything under the storage folder."""
        logger.info("nuke()")
        with self._lock:
            try:
                if os.path.isdir(self.storage_folder):
                    for entry in os.scandir(self.storage_folder):
                        logger.info("nuke(%s)", entry.path)
                        if entry.is_dir(follow_symlinks=False):
                            shutil.rmtree(entry.path)
                        else:
                            os.remove(entry.path)
                return Payload.NUKE_SUCCESSFUL
            except OSError:
                logger.exception(Payload.NUKE_UNSUCCESSFUL.reason)
                return Payload.NUKE_UNSUCCESSFUL
