import logging
from datetime import datetime
from typing import Dict, Iterable, Optional

from config.config import Config
from movie_catalog.errors import NotFoundError, ValidationError
from movie_catalog.models import UNKNOWN_RELEASE_DATE, Genre, Movie
from movie_catalog.tmdb_api import TMDBClient

logger = logging.getLogger(__name__)

NO_OVERVIEW = "No overview available."


def format_tmdb_movie(
    movie_data: Dict, image_base_url: str = Config.TMDB_IMAGE_BASE_URL
) -> Optional[Dict]:
    """
    Map a TMDB movie record onto Movie column values.

    Returns None for records missing a title, id or release date. Genres are
    returned as a list of ``{"id", "name"}`` pairs whichever shape TMDB sent:
    list results carry bare ``genre_ids`` (names unknown here, left as None),
    detail results carry ``genres`` objects.
    """
    if not all(movie_data.get(key) for key in ("title", "id", "release_date")):
        logger.warning(f"Skipping TMDB movie with missing data: {movie_data.get('id')}")
        return None

    try:
        release_date = datetime.strptime(movie_data["release_date"], "%Y-%m-%d").date()
    except (TypeError, ValueError):
        logger.warning(
            f"Invalid release date for {movie_data['title']} ({movie_data['id']}): "
            f"{movie_data['release_date']}"
        )
        release_date = UNKNOWN_RELEASE_DATE

    genres = {}
    if movie_data.get("genres"):
        for genre in movie_data["genres"]:
            genres[genre["id"]] = {"id": genre["id"], "name": genre.get("name")}
    else:
        for genre_id in movie_data.get("genre_ids") or []:
            genres[genre_id] = {"id": genre_id, "name": None}

    poster_path = movie_data.get("poster_path")
    backdrop_path = movie_data.get("backdrop_path")

    return {
        "tmdb_id": str(movie_data["id"]),
        "title": movie_data["title"],
        "overview": movie_data.get("overview") or NO_OVERVIEW,
        "release_date": release_date,
        "vote_average": movie_data.get("vote_average") or 0.0,
        "poster_path": f"{image_base_url}{poster_path}" if poster_path else "",
        "backdrop_path": f"{image_base_url}{backdrop_path}" if backdrop_path else "",
        "runtime": movie_data.get("runtime"),
        "genres": list(genres.values()),
    }


class CatalogImporter:
    """Import movie data from TMDB into the catalog"""

    def __init__(self, session, client: Optional[TMDBClient] = None, config=Config):
        self.session = session
        self.config = config
        self.client = client or TMDBClient(config)
        self._genre_names: Optional[Dict[int, str]] = None

    def sync_genres(self) -> int:
        """Store the TMDB genre list; returns the number of genres seen"""
        genres_data = self.client.get_genres()
        self._genre_names = {}

        for genre_data in genres_data:
            self._genre_names[genre_data["id"]] = genre_data["name"]
            genre = self.session.get(Genre, genre_data["id"])
            if genre is None:
                self.session.add(Genre(id=genre_data["id"], name=genre_data["name"]))
            else:
                genre.name = genre_data["name"]

        self.session.commit()
        logger.info(f"Synced {len(genres_data)} genres")
        return len(genres_data)

    def _genre(self, genre_id: int, name: Optional[str]) -> Genre:
        genre = self.session.get(Genre, genre_id)
        if name is None and self._genre_names:
            name = self._genre_names.get(genre_id)
        if genre is None:
            genre = Genre(id=genre_id, name=name or "Unknown")
            self.session.add(genre)
        elif name and genre.name != name:
            genre.name = name
        return genre

    def upsert(self, values: Dict) -> bool:
        """Insert or update one formatted movie; returns True when inserted"""
        values = dict(values)
        genres = [self._genre(g["id"], g["name"]) for g in values.pop("genres")]

        movie = self.session.query(Movie).filter_by(tmdb_id=values["tmdb_id"]).first()
        inserted = movie is None
        if inserted:
            movie = Movie(**values)
            self.session.add(movie)
        else:
            for key, value in values.items():
                # Basic list records carry no runtime; keep the one we have
                if key == "runtime" and value is None:
                    continue
                setattr(movie, key, value)

        movie.genres = genres
        return inserted

    def import_records(self, records: Iterable[Dict]) -> int:
        """Format, upsert and commit provider records; returns inserted count"""
        inserted = 0
        for movie_data in records:
            values = format_tmdb_movie(movie_data, self.config.TMDB_IMAGE_BASE_URL)
            if values is None:
                continue
            if self.upsert(values):
                inserted += 1

        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return inserted

    def import_popular(self, max_pages: int = 5) -> int:
        """Import popular movies page by page; returns the number of new movies"""
        logger.info(f"Importing popular movies from TMDB (up to {max_pages} pages)...")
        if self._genre_names is None:
            self.sync_genres()

        inserted = 0
        page = 1
        total_pages = 1
        while page <= total_pages and page <= max_pages:
            logger.info(f"Importing page {page} of popular movies")
            popular = self.client.get_popular_movies(page=page)
            if not isinstance(popular.get("results"), list):
                logger.error(f"Unexpected TMDB response for popular page {page}")
                break

            total_pages = popular.get("total_pages") or 1
            inserted += self.import_records(popular["results"])
            page += 1

        logger.info(f"Inserted {inserted} new movies")
        return inserted

    def search_and_import(self, query: str) -> int:
        """Search TMDB for ``query`` and import the matches; returns new movies"""
        query = (query or "").strip()
        if not query:
            raise ValidationError("A search query is required to import movies.")

        if self._genre_names is None:
            self.sync_genres()

        results = self.client.search_movies(query)
        if not isinstance(results.get("results"), list):
            logger.error(f"Unexpected TMDB response for search '{query}'")
            return 0

        inserted = self.import_records(results["results"])
        logger.info(f"Inserted {inserted} new movies for search '{query}'")
        return inserted

    def import_movie(self, tmdb_id) -> Movie:
        """Import or refresh a single movie from its TMDB detail record"""
        values = format_tmdb_movie(
            self.client.get_movie_details(tmdb_id), self.config.TMDB_IMAGE_BASE_URL
        )
        if values is None:
            raise NotFoundError(f"TMDB movie {tmdb_id} is missing required data.")

        self.upsert(values)
        self.session.commit()
        return self.session.query(Movie).filter_by(tmdb_id=values["tmdb_id"]).one()
