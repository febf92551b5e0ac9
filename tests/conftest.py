"""
Pytest configuration and fixtures for testing
"""

from datetime import date, datetime, timedelta

import pytest

from config.config import Config
from movie_catalog.app import create_app
from movie_catalog.models import Comment, Genre, Movie, User


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret-key"
    DATABASE_URL = "sqlite://"
    TMDB_API_KEY = "test-api-key"
    IMPORT_ON_STARTUP = False


class FakeTMDBClient:
    """Stands in for TMDBClient; serves canned provider payloads"""

    def __init__(self, popular_pages=None, search_results=None, details=None, genres=None):
        self.popular_pages = popular_pages or []
        self.search_results = search_results or []
        self.details = details or {}
        self.genres = genres if genres is not None else [
            {"id": 28, "name": "Action"},
            {"id": 18, "name": "Drama"},
        ]
        self.calls = []

    def get_genres(self):
        self.calls.append(("genres",))
        return self.genres

    def get_popular_movies(self, page=1):
        self.calls.append(("popular", page))
        if page > len(self.popular_pages):
            return {"page": page, "results": [], "total_pages": len(self.popular_pages)}
        return {
            "page": page,
            "results": self.popular_pages[page - 1],
            "total_pages": len(self.popular_pages),
        }

    def search_movies(self, query, page=1):
        self.calls.append(("search", query))
        return {"page": 1, "results": self.search_results, "total_pages": 1}

    def get_movie_details(self, movie_id):
        self.calls.append(("details", movie_id))
        return self.details.get(str(movie_id), {})


@pytest.fixture(scope="function")
def fake_tmdb():
    return FakeTMDBClient()


@pytest.fixture(scope="function")
def make_tmdb():
    """Factory for fake TMDB clients with canned payloads"""
    return FakeTMDBClient


@pytest.fixture(scope="function")
def app(fake_tmdb):
    """Create application for testing, backed by a fresh in-memory database"""
    flask_app = create_app(TestingConfig, tmdb_client=fake_tmdb)
    yield flask_app


@pytest.fixture(scope="function")
def catalog_config(app):
    return app.extensions["catalog_config"]


@pytest.fixture(scope="function")
def db_session(app):
    """Database session bound to the application's engine"""
    session = app.extensions["session_factory"]()
    yield session
    session.close()


@pytest.fixture(scope="function")
def client(app, db_session):
    """Create test client - depends on db_session to ensure proper setup"""
    return app.test_client()


@pytest.fixture(scope="function")
def sample_genres(db_session):
    """Create Action and Drama genres"""
    genres = [Genre(id=28, name="Action"), Genre(id=18, name="Drama")]
    db_session.add_all(genres)
    db_session.commit()
    return genres


@pytest.fixture(scope="function")
def make_movie(db_session):
    """Factory for movies; ``released`` is a date or an ISO string"""
    counter = {"n": 0}

    def _make(title, released="2020-01-01", vote_average=5.0, genres=()):
        counter["n"] += 1
        if isinstance(released, str):
            released = datetime.strptime(released, "%Y-%m-%d").date()
        movie = Movie(
            tmdb_id=str(1000 + counter["n"]),
            title=title,
            overview=f"Overview of {title}",
            release_date=released,
            vote_average=vote_average,
        )
        movie.genres.extend(genres)
        db_session.add(movie)
        db_session.commit()
        return movie

    return _make


@pytest.fixture(scope="function")
def sample_movie(make_movie, sample_genres):
    """Create a sample movie"""
    return make_movie("Fight Club", "1999-10-15", 8.4, genres=[sample_genres[1]])


@pytest.fixture(scope="function")
def sample_movies(make_movie, sample_genres):
    """Create 25 movies, one per year from 2000, alternating genres"""
    return [
        make_movie(
            f"Test Movie {i}",
            date(2000 + i, 6, 1),
            vote_average=5.0 + (i % 3),
            genres=[sample_genres[i % 2]],
        )
        for i in range(25)
    ]


@pytest.fixture(scope="function")
def make_user(db_session):
    def _make(username, email=None, password="password123", is_critic=False):
        user = User(
            email=email or f"{username}@example.com", username=username, is_critic=is_critic
        )
        user.password = password
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture(scope="function")
def sample_user(make_user):
    """Create a sample user for testing"""
    return make_user("testuser")


@pytest.fixture(scope="function")
def multiple_users(make_user):
    """Create multiple users for testing"""
    return [make_user(f"user{i}", password=f"password{i}") for i in range(3)]


@pytest.fixture(scope="function")
def make_comment(db_session):
    """Factory for comments, spaced one minute apart in creation order"""
    start = datetime(2024, 1, 1, 12, 0, 0)
    counter = {"n": 0}

    def _make(user, movie, rating, text="Great movie"):
        counter["n"] += 1
        comment = Comment(
            user_id=user.id,
            movie_id=movie.id,
            text=text,
            rating=rating,
            created_at=start + timedelta(minutes=counter["n"]),
        )
        db_session.add(comment)
        db_session.commit()
        return comment

    return _make


@pytest.fixture(scope="function")
def auth_headers(client, sample_user):
    """Bearer token headers for ``sample_user``"""
    response = client.post(
        "/api/auth/login", json={"email": sample_user.email, "password": "password123"}
    )
    token = response.get_json()["token"]
    return {"Authorization": f"Bearer {token}"}
