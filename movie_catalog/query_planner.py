"""
Movie listing query planner

A listing request is turned into an ordered list of named stages, each one a
transformation of a single SELECT over the catalog:

    match -> comment join/aggregate -> rating match -> sort -> paginate -> project

Stages are included only when the request needs them, and always in that
order, so aggregate narrowing only ever sees movies that passed the base
filters. The ``popular`` section view ranks by comment count and, while the
catalog has few commented movies, backfills from the whole catalog.
"""

import logging
import random
from datetime import date, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import func, null, select

from config.config import Config
from movie_catalog.models import Genre, Movie, movie_genres_table
from movie_catalog.ratings import comment_stats
from movie_catalog.schemas import MovieQuery

logger = logging.getLogger(__name__)

MOVIE_FIELDS = (
    "id",
    "tmdb_id",
    "title",
    "overview",
    "release_date",
    "vote_average",
    "poster_path",
    "backdrop_path",
    "runtime",
)

# minRating alone selects the bucket [minRating, minRating + 0.9999]
RATING_BUCKET_WIDTH = 0.9999


class Pipeline:
    """A SELECT built up by named stages"""

    def __init__(self):
        self.stmt = select(Movie.id).select_from(Movie)
        self.stages: List[str] = []
        # Output field name -> column expression, in response order
        self.columns: Dict = {name: getattr(Movie, name) for name in MOVIE_FIELDS}

    def add(self, name: str, transform: Callable) -> "Pipeline":
        self.stmt = transform(self.stmt)
        self.stages.append(name)
        return self

    @property
    def fields(self) -> Tuple[str, ...]:
        return tuple(self.columns) + ("genres",)


class MovieQueryPlanner:
    """Plans and runs movie listing queries"""

    def __init__(self, config=Config, rng: Optional[random.Random] = None, today=None):
        self.config = config
        self.rng = rng or random.Random()
        self.today = today or date.today

    def base_criteria(self, query: MovieQuery) -> list:
        """WHERE clauses that do not depend on comments"""
        criteria = []

        if query.search:
            criteria.append(Movie.title.icontains(query.search, autoescape=True))

        if query.genre_ids:
            genre_movies = select(movie_genres_table.c.movie_id).where(
                movie_genres_table.c.genre_id.in_(query.genre_ids)
            )
            criteria.append(Movie.id.in_(genre_movies))

        if query.start_year is not None:
            criteria.append(Movie.release_date >= date(query.start_year, 1, 1))
        if query.end_year is not None:
            criteria.append(Movie.release_date <= date(query.end_year, 12, 31))

        if query.type == "latest":
            criteria.append(Movie.release_date <= self.today())
        elif query.type == "upcoming":
            criteria.append(Movie.release_date >= self.today() + timedelta(days=1))

        return criteria

    @staticmethod
    def rating_bounds(query: MovieQuery) -> Tuple[Optional[float], Optional[float]]:
        low, high = query.min_rating, query.max_rating
        if low is not None and high is None:
            high = low + RATING_BUCKET_WIDTH
        return low, high

    def plan(self, query: MovieQuery) -> Pipeline:
        pipeline = Pipeline()

        criteria = self.base_criteria(query)
        if criteria:
            pipeline.add("match", lambda stmt: stmt.where(*criteria))

        if query.type == "popular":
            self._plan_popular(pipeline, query)
        else:
            if query.needs_rating_aggregate:
                self._plan_rating_aggregate(pipeline, query)
            else:
                pipeline.columns["averageCommentRating"] = null()

            self._plan_sort(pipeline, query)

            if query.is_section:
                pipeline.add("limit", lambda stmt: stmt.limit(query.page_size))
            else:
                pipeline.add(
                    "paginate", lambda stmt: stmt.offset(query.offset).limit(query.page_size)
                )

        columns = [column.label(name) for name, column in pipeline.columns.items()]
        pipeline.add("project", lambda stmt: stmt.with_only_columns(*columns))
        return pipeline

    def _plan_popular(self, pipeline: Pipeline, query: MovieQuery):
        counts = comment_stats().subquery("comment_counts")
        comment_count = func.coalesce(counts.c.rating_count, 0)
        pipeline.columns["commentCount"] = comment_count

        pipeline.add(
            "comment_count",
            lambda stmt: stmt.outerjoin(counts, counts.c.movie_id == Movie.id),
        )
        pipeline.add(
            "popularity_sort",
            lambda stmt: stmt.order_by(
                comment_count.desc(),
                Movie.vote_average.desc(),
                Movie.release_date.desc(),
                Movie.id.asc(),
            ),
        )
        pipeline.add("limit", lambda stmt: stmt.limit(query.page_size))

    def _plan_rating_aggregate(self, pipeline: Pipeline, query: MovieQuery):
        stats = comment_stats().subquery("comment_stats")
        pipeline.columns["averageCommentRating"] = stats.c.average_rating

        # Inner join: a movie without comments has no rating to filter or sort on
        pipeline.add(
            "rating_aggregate", lambda stmt: stmt.join(stats, stats.c.movie_id == Movie.id)
        )

        low, high = self.rating_bounds(query)
        rating_criteria = []
        if low is not None:
            rating_criteria.append(stats.c.average_rating >= low)
        if high is not None:
            rating_criteria.append(stats.c.average_rating <= high)

        if rating_criteria:
            pipeline.add("rating_match", lambda stmt: stmt.where(*rating_criteria))

    def _plan_sort(self, pipeline: Pipeline, query: MovieQuery):
        column = pipeline.columns[query.sort_by]
        key = column.asc() if query.order == "asc" else column.desc()
        pipeline.add("sort", lambda stmt: stmt.order_by(key, Movie.id.asc()))

    def run(self, session, query: MovieQuery) -> List[Dict]:
        """Execute the plan for ``query`` and return serialized movies"""
        pipeline = self.plan(query)
        movies = [dict(row) for row in session.execute(pipeline.stmt).mappings()]

        if query.type == "popular":
            movies = self._backfill_popular(session, query, movies)

        self._attach_genres(session, movies)
        return [self._serialize(movie) for movie in movies]

    def _backfill_popular(self, session, query: MovieQuery, movies: List[Dict]) -> List[Dict]:
        wanted = query.page_size
        if len(movies) >= wanted or len(movies) >= self.config.POPULAR_FALLBACK_THRESHOLD:
            return movies

        needed = wanted - len(movies)
        present = [movie["id"] for movie in movies]
        logger.info(
            f"Popular view returned {len(movies)} movies, backfilling up to {needed} from catalog"
        )

        remaining = select(func.count(Movie.id))
        if present:
            remaining = remaining.where(Movie.id.notin_(present))
        available = session.execute(remaining).scalar_one()
        # Random skip so the backfill is not always the same set
        skip = self.rng.randint(0, max(0, available - needed))

        counts = comment_stats().subquery("comment_counts")
        stmt = (
            select(
                *[getattr(Movie, name).label(name) for name in MOVIE_FIELDS],
                func.coalesce(counts.c.rating_count, 0).label("commentCount"),
            )
            .select_from(Movie)
            .outerjoin(counts, counts.c.movie_id == Movie.id)
        )
        if present:
            stmt = stmt.where(Movie.id.notin_(present))
        stmt = (
            stmt.order_by(Movie.release_date.desc(), Movie.vote_average.desc(), Movie.id.asc())
            .offset(skip)
            .limit(needed)
        )

        backfill = [dict(row) for row in session.execute(stmt).mappings()]
        return (movies + backfill)[:wanted]

    @staticmethod
    def _attach_genres(session, movies: List[Dict]):
        genres = {movie["id"]: [] for movie in movies}

        if genres:
            rows = session.execute(
                select(movie_genres_table.c.movie_id, Genre.id, Genre.name)
                .join(Genre, Genre.id == movie_genres_table.c.genre_id)
                .where(movie_genres_table.c.movie_id.in_(list(genres)))
                .order_by(Genre.id)
            )
            for movie_id, genre_id, name in rows:
                genres[movie_id].append({"id": genre_id, "name": name})

        for movie in movies:
            movie["genres"] = genres[movie["id"]]

    @staticmethod
    def _serialize(movie: Dict) -> Dict:
        data = dict(movie)
        if data.get("release_date") is not None:
            data["release_date"] = data["release_date"].isoformat()
        if data.get("vote_average") is not None:
            data["vote_average"] = float(data["vote_average"])
        if data.get("averageCommentRating") is not None:
            data["averageCommentRating"] = float(data["averageCommentRating"])
        return data
