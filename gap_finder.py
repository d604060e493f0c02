import re

from rapidfuzz import fuzz, process


_YEAR_SUFFIX = re.compile(r'\s*[(\[]\s*(19|20)\d{2}\s*[)\]]\s*$')
# Plex keeps cuts and editions in the title; recommended lists never do
_EDITION_SUFFIX = re.compile(
    r"\s*[-:(\[]?\s*(extended|unrated|remastered|imax"
    r"|(director'?s|theatrical|special|ultimate|collector'?s|anniversary)\s+(edition|cut|version))"
    r"(\s+(edition|cut|version))?\s*[)\]]?\s*$"
)
_STOPWORDS = {'the', 'a', 'an', 'and'}


def normalize_title(title: str) -> str:
    """Lowercase title words without articles, release year or edition tag."""
    if not title:
        return ''
    t = title.lower().replace('’', "'")
    t = _YEAR_SUFFIX.sub('', t)
    t = _EDITION_SUFFIX.sub('', t)
    t = re.sub(r'\s*[&+]\s*', ' and ', t)
    t = t.replace("'", '')
    words = re.sub(r'[^a-z0-9]+', ' ', t).split()
    return ' '.join(w for w in words if w not in _STOPWORDS)


def _years_compatible(a: int, b: int) -> bool:
    # Release years drift by one between sources; unknown years always pass
    return not a or not b or abs(a - b) <= 1


def find_missing(owned, recommended, threshold=90):
    """Recommended movies that are not in the owned list.

    Matches on IMDB id, then TMDB/TVDB id, then on normalized title and year
    with a fuzzy score of at least ``threshold``. Keeps the order of
    ``recommended`` and drops duplicates.
    """
    owned = list(owned)
    owned_imdb = {m.imdb_id for m in owned if m.imdb_id}
    owned_tvdb = {m.tvdb_id for m in owned if m.tvdb_id != -1}
    owned_titles = [normalize_title(m.name) for m in owned]

    missing = []
    seen = set()
    for movie in recommended:
        if movie in seen:
            continue
        seen.add(movie)

        if movie.imdb_id and movie.imdb_id in owned_imdb:
            continue
        if movie.tvdb_id != -1 and movie.tvdb_id in owned_tvdb:
            continue
        if _owned_by_title(movie, owned, owned_titles, threshold):
            continue
        missing.append(movie)
    return missing


def _owned_by_title(movie, owned, owned_titles, threshold):
    norm = normalize_title(movie.name)
    if not norm or not owned_titles:
        return False
    matches = process.extract(norm, owned_titles, scorer=fuzz.token_sort_ratio,
                              score_cutoff=threshold, limit=5)
    for _, _, idx in matches:
        candidate = owned[idx]
        # Two different ids on both sides means two different films
        if movie.imdb_id and candidate.imdb_id and movie.imdb_id != candidate.imdb_id:
            continue
        if _years_compatible(movie.year, candidate.year):
            return True
    return False
