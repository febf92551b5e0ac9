import os


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Application configuration, read once from the environment"""

    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")
    DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///movies.db")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # TMDB
    TMDB_API_KEY = os.environ.get("TMDB_API_KEY", "")
    TMDB_BASE_URL = os.environ.get("TMDB_BASE_URL", "https://api.themoviedb.org/3")
    TMDB_IMAGE_BASE_URL = os.environ.get(
        "TMDB_IMAGE_BASE_URL", "https://image.tmdb.org/t/p/w500"
    )
    TMDB_LANGUAGE = os.environ.get("TMDB_LANGUAGE", "es-ES")
    TMDB_TIMEOUT = float(os.environ.get("TMDB_TIMEOUT", 10))
    TMDB_MAX_RETRIES = int(os.environ.get("TMDB_MAX_RETRIES", 3))

    # Auth
    TOKEN_MAX_AGE = int(os.environ.get("TOKEN_MAX_AGE", 3600))

    # Comments
    COMMENT_RATING_MIN = float(os.environ.get("COMMENT_RATING_MIN", 0.5))
    COMMENT_RATING_MAX = float(os.environ.get("COMMENT_RATING_MAX", 5.0))
    COMMENT_RATING_STEP = float(os.environ.get("COMMENT_RATING_STEP", 0.5))
    COMMENT_MAX_LENGTH = int(os.environ.get("COMMENT_MAX_LENGTH", 500))

    # Movie listing
    DEFAULT_PAGE_SIZE = int(os.environ.get("DEFAULT_PAGE_SIZE", 20))
    MAX_PAGE_SIZE = int(os.environ.get("MAX_PAGE_SIZE", 100))
    POPULAR_FALLBACK_THRESHOLD = int(os.environ.get("POPULAR_FALLBACK_THRESHOLD", 5))

    # Catalog import
    IMPORT_ON_STARTUP = _env_bool("IMPORT_ON_STARTUP")
    STARTUP_IMPORT_PAGES = int(os.environ.get("STARTUP_IMPORT_PAGES", 5))
    MANUAL_IMPORT_PAGES = int(os.environ.get("MANUAL_IMPORT_PAGES", 10))
