from datetime import date, datetime

from flask import current_app
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    create_engine,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool
from werkzeug.security import check_password_hash, generate_password_hash

Base = declarative_base()

# Release date stored when the provider does not supply a usable one
UNKNOWN_RELEASE_DATE = date(1900, 1, 1)

# Largest value a signed 64-bit INTEGER column (and LIMIT/OFFSET) can hold
MAX_ID = 2**63 - 1

movie_genres_table = Table(
    "movie_genres",
    Base.metadata,
    Column("movie_id", Integer, ForeignKey("movies.id"), primary_key=True),
    Column("genre_id", Integer, ForeignKey("genres.id"), primary_key=True),
)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    email = Column(String(255), unique=True, nullable=False)
    username = Column(String(15), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    is_critic = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    @property
    def password(self):
        raise AttributeError("password is write-only")

    @password.setter
    def password(self, plaintext: str):
        self.set_password(plaintext)

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def to_principal(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "username": self.username,
            "isCritic": bool(self.is_critic),
        }

    def __repr__(self):
        return f"<User(username='{self.username}')>"


class Genre(Base):
    __tablename__ = "genres"

    # Provider genre id, so client filters can use it directly
    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(100), nullable=False)

    movies = relationship("Movie", secondary=movie_genres_table, back_populates="genres")

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}

    def __repr__(self):
        return f"<Genre(name='{self.name}')>"


class Movie(Base):
    __tablename__ = "movies"

    id = Column(Integer, primary_key=True)
    tmdb_id = Column(String(32), unique=True, nullable=False)
    title = Column(String(255), nullable=False)
    overview = Column(Text, default="", nullable=False)
    release_date = Column(Date, default=UNKNOWN_RELEASE_DATE, nullable=False)
    vote_average = Column(Float, default=0.0, nullable=False)
    poster_path = Column(String(255), default="", nullable=False)
    backdrop_path = Column(String(255), default="", nullable=False)
    runtime = Column(Integer)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    genres = relationship(
        "Genre", secondary=movie_genres_table, back_populates="movies", order_by=Genre.id
    )

    __table_args__ = (
        Index("idx_movie_release_date", "release_date"),
        Index("idx_movie_title", "title"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tmdb_id": self.tmdb_id,
            "title": self.title,
            "overview": self.overview,
            "release_date": self.release_date.isoformat() if self.release_date else None,
            "vote_average": self.vote_average,
            "poster_path": self.poster_path,
            "backdrop_path": self.backdrop_path,
            "runtime": self.runtime,
            "genres": [genre.to_dict() for genre in self.genres],
        }

    def __repr__(self):
        year = self.release_date.year if self.release_date else "N/A"
        return f"<Movie(title='{self.title}', year={year})>"


class Comment(Base):
    __tablename__ = "comments"

    id = Column(Integer, primary_key=True)
    # No cascades: deleting a user or movie leaves its comments in place
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    movie_id = Column(Integer, ForeignKey("movies.id"), nullable=False)
    text = Column(String(500), nullable=False)
    rating = Column(Float, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User")

    __table_args__ = (Index("idx_comment_movie_user", "movie_id", "user_id"),)

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "movie": self.movie_id,
            "user": {"id": self.user_id},
            "text": self.text,
            "rating": self.rating,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
        if self.user is not None:
            data["user"] = {
                "id": self.user.id,
                "username": self.user.username,
                "email": self.user.email,
            }
        return data

    def __repr__(self):
        return f"<Comment(user_id={self.user_id}, movie_id={self.movie_id}, rating={self.rating})>"


def create_session_factory(database_url: str):
    """Create an engine for ``database_url`` and return a bound session factory"""
    kwargs = {}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        # In-memory databases live on one connection; share it across sessions
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **kwargs)
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine):
    """Create all tables"""
    Base.metadata.create_all(engine)


def get_db_session():
    """Get a new database session from the current application"""
    return current_app.extensions["session_factory"]()
