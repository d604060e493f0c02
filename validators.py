import logging
import re

from models import PlexLibrary, PlexSearch

logger = logging.getLogger(__name__)

_HOST_RE = re.compile(r'^(https?://)?[A-Za-z0-9._\-\[\]:]+/?$')


class BindingResult:
    """Field errors collected while binding and validating one form."""

    def __init__(self):
        self.errors = []

    def reject(self, field, message):
        self.errors.append((field, message))

    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def messages(self):
        return [f"{field}: {message}" for field, message in self.errors]


def _clean(value):
    value = (value or '').strip()
    return value or None


def bind_plex_search(form):
    """Build a PlexSearch from a form-encoded body.

    Type conversion problems are recorded on the returned BindingResult
    instead of raising.
    """
    result = BindingResult()
    search = PlexSearch(
        movie_db_api_key=_clean(form.get('movieDbApiKey')),
        plex_token=_clean(form.get('plexToken')),
        address=_clean(form.get('address')),
    )

    raw_port = _clean(form.get('port'))
    if raw_port is not None:
        try:
            search.port = int(raw_port)
        except ValueError:
            result.reject('port', f"'{raw_port}' is not a number")

    for raw_key in form.getlist('libraries'):
        raw_key = (raw_key or '').strip()
        if not raw_key:
            continue
        try:
            search.libraries.append(PlexLibrary(int(raw_key), selected=True))
        except ValueError:
            result.reject('libraries', f"'{raw_key}' is not a library key")
    return search, result


def validate_plex_properties(search: PlexSearch, result: BindingResult):
    if not search.address:
        result.reject('address', 'Plex address is required')
    elif not _HOST_RE.match(search.address):
        result.reject('address', 'Plex address must be a host name or IP address')
    if search.port is None:
        if not any(f == 'port' for f, _ in result.errors):
            result.reject('port', 'Plex port is required')
    elif not 0 < search.port < 65536:
        result.reject('port', 'Plex port must be between 1 and 65535')
    if not search.plex_token:
        result.reject('plexToken', 'Plex token is required')
    return result


def validate_plex_libraries(search: PlexSearch, result: BindingResult):
    if not search.libraries and not any(f == 'libraries' for f, _ in result.errors):
        result.reject('libraries', 'Select at least one library')
    return result


def has_binding_errors(result: BindingResult) -> bool:
    if result.has_errors():
        for field, message in result.errors:
            logger.error("Binding error on %s: %s", field, message)
        return True
    return False
