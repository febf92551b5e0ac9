import logging
from typing import Dict, List, Optional

import requests

from config.config import Config
from movie_catalog.errors import UpstreamError

logger = logging.getLogger(__name__)


class TMDBClient:
    """Client for interacting with TMDB API"""

    def __init__(self, config=Config):
        self.api_key = config.TMDB_API_KEY
        self.base_url = config.TMDB_BASE_URL
        self.language = config.TMDB_LANGUAGE
        self.timeout = config.TMDB_TIMEOUT
        self.max_retries = max(1, config.TMDB_MAX_RETRIES)

    def _make_request(self, endpoint: str, params: Optional[Dict] = None) -> Dict:
        """Make a request to TMDB API, retrying on timeouts and connection errors"""
        if params is None:
            params = {}

        params["api_key"] = self.api_key
        params.setdefault("language", self.language)
        url = f"{self.base_url}/{endpoint}"

        for attempt in range(1, self.max_retries + 1):
            try:
                response = requests.get(url, params=params, timeout=self.timeout)
                response.raise_for_status()
                return response.json()
            except (requests.Timeout, requests.ConnectionError) as e:
                logger.warning(f"Attempt {attempt}/{self.max_retries} to {url} failed: {e}")
                if attempt == self.max_retries:
                    raise UpstreamError.from_status(
                        None, "Could not reach TMDB. Check your connection."
                    ) from e
            except requests.HTTPError as e:
                status = e.response.status_code if e.response is not None else None
                logger.error(f"TMDB returned {status} for {url}")
                if status in (401, 403):
                    message = "TMDB rejected the API key."
                elif status == 404:
                    message = "TMDB resource not found."
                else:
                    message = "TMDB request failed. Try again later."
                raise UpstreamError.from_status(status, message) from e
            except ValueError as e:
                raise UpstreamError("TMDB returned an unreadable response.", 502) from e

    def get_popular_movies(self, page: int = 1) -> Dict:
        """Get popular movies"""
        return self._make_request("movie/popular", {"page": page})

    def get_movie_details(self, movie_id) -> Dict:
        """Get detailed information about a movie"""
        return self._make_request(f"movie/{movie_id}")

    def search_movies(self, query: str, page: int = 1) -> Dict:
        """Search for movies"""
        return self._make_request("search/movie", {"query": query, "page": page})

    def get_genres(self) -> List[Dict]:
        """Get all movie genres"""
        result = self._make_request("genre/movie/list")
        return result.get("genres", [])
