"""
Request schemas

Every request body or query string is validated once, at the edge, into one of
these models. ``MovieQuery`` never rejects input: values that do not parse are
treated as absent so that any combination of listing parameters is served.
"""

import math
from typing import List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)

from movie_catalog.models import MAX_ID

SORT_FIELDS = ("release_date", "vote_average", "title", "averageCommentRating")
SECTION_TYPES = ("latest", "popular", "upcoming")

DEFAULT_SORT_BY = "release_date"
DEFAULT_ORDER = "desc"
DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def parse_float(value) -> Optional[float]:
    """Parse ``value`` as a finite float, or None"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def parse_int(value) -> Optional[int]:
    """Parse ``value`` as an integer, or None"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        value = value.strip()
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class MovieQuery(BaseModel):
    """Validated parameters for one movie listing request"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    search: Optional[str] = None
    genre_ids: List[int] = Field(default_factory=list, alias="genreId")
    min_rating: Optional[float] = Field(None, alias="minRating")
    max_rating: Optional[float] = Field(None, alias="maxRating")
    start_year: Optional[int] = Field(None, alias="startYear")
    end_year: Optional[int] = Field(None, alias="endYear")
    sort_by: str = Field(DEFAULT_SORT_BY, alias="sortBy")
    order: str = DEFAULT_ORDER
    type: Optional[str] = None
    page: int = DEFAULT_PAGE
    # Absent or invalid sizes fall back to the configured default
    page_size: int = Field(None, alias="pageSize", validate_default=True)

    @model_validator(mode="before")
    @classmethod
    def reset_unknown_sort(cls, data):
        # An unknown sort field falls back to the default field and direction
        if isinstance(data, dict):
            sort_by = data.get("sortBy", data.get("sort_by"))
            if sort_by is not None and sort_by not in SORT_FIELDS:
                data = {k: v for k, v in data.items() if k not in ("sortBy", "sort_by", "order")}
        return data

    @field_validator("search", mode="before")
    @classmethod
    def blank_search(cls, value):
        if not isinstance(value, str):
            return None
        value = value.strip()
        return value or None

    @field_validator("genre_ids", mode="before")
    @classmethod
    def split_genre_ids(cls, value):
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            parts = []
            for item in value:
                parts.extend(str(item).split(","))
        else:
            parts = str(value).split(",")
        ids = [parse_int(part) for part in parts]
        return [genre_id for genre_id in ids if genre_id is not None and abs(genre_id) <= MAX_ID]

    @field_validator("min_rating", "max_rating", mode="before")
    @classmethod
    def parse_rating(cls, value):
        return parse_float(value)

    @field_validator("start_year", "end_year", mode="before")
    @classmethod
    def parse_year(cls, value):
        year = parse_int(value)
        if year is None or not 1 <= year <= 9999:
            return None
        return year

    @field_validator("sort_by", mode="before")
    @classmethod
    def allowed_sort(cls, value):
        return value if value in SORT_FIELDS else DEFAULT_SORT_BY

    @field_validator("order", mode="before")
    @classmethod
    def normalise_order(cls, value):
        return "asc" if value == "asc" else "desc"

    @field_validator("type", mode="before")
    @classmethod
    def known_type(cls, value):
        return value if value in SECTION_TYPES else None

    @field_validator("page", mode="before")
    @classmethod
    def parse_page(cls, value):
        page = parse_int(value)
        return page if page is not None and page >= 1 else DEFAULT_PAGE

    @field_validator("page_size", mode="before")
    @classmethod
    def parse_page_size(cls, value, info: ValidationInfo):
        limit = (info.context or {}).get("max_page_size", MAX_PAGE_SIZE)
        default = (info.context or {}).get("default_page_size", DEFAULT_PAGE_SIZE)
        page_size = parse_int(value)
        if page_size is None or page_size < 1:
            return default
        return min(page_size, limit)

    @classmethod
    def from_args(cls, args, config=None) -> "MovieQuery":
        """Build a query from a Werkzeug ``MultiDict`` of request arguments"""
        data = args.to_dict()
        genre_ids = args.getlist("genreId")
        if genre_ids:
            data["genreId"] = genre_ids
        context = {}
        if config is not None:
            context = {
                "max_page_size": config.MAX_PAGE_SIZE,
                "default_page_size": config.DEFAULT_PAGE_SIZE,
            }
        return cls.model_validate(data, context=context)

    @property
    def is_section(self) -> bool:
        return self.type in SECTION_TYPES

    @property
    def needs_rating_aggregate(self) -> bool:
        return (
            self.min_rating is not None
            or self.max_rating is not None
            or self.sort_by == "averageCommentRating"
        )

    @property
    def offset(self) -> int:
        # Past the last storable offset every page is empty anyway
        return min((self.page - 1) * self.page_size, MAX_ID)


def _check_rating(value: float, info: ValidationInfo) -> float:
    context = info.context or {}
    low = context.get("rating_min", 0.5)
    high = context.get("rating_max", 5.0)
    step = context.get("rating_step")
    if value < low or value > high:
        raise ValueError(f"Rating must be a number between {low:g} and {high:g}")
    if step:
        steps = (value - low) / step
        if abs(steps - round(steps)) > 1e-9:
            raise ValueError(f"Rating must be a multiple of {step:g}")
    return value


class CommentCreate(BaseModel):
    movie_id: int = Field(alias="movieId", gt=0, le=MAX_ID)
    text: str = Field(min_length=1)
    rating: float

    @field_validator("text")
    @classmethod
    def limit_text(cls, value, info: ValidationInfo):
        max_length = (info.context or {}).get("max_length", 500)
        if not value.strip():
            raise ValueError("Comment text cannot be empty")
        if len(value) > max_length:
            raise ValueError(f"Comment cannot exceed {max_length} characters")
        return value

    @field_validator("rating")
    @classmethod
    def rating_in_bounds(cls, value, info: ValidationInfo):
        return _check_rating(value, info)


class CommentUpdate(BaseModel):
    text: Optional[str] = None
    rating: Optional[float] = None

    @field_validator("text")
    @classmethod
    def limit_text(cls, value, info: ValidationInfo):
        if value is None:
            return value
        max_length = (info.context or {}).get("max_length", 500)
        if not value.strip():
            raise ValueError("Comment text cannot be empty")
        if len(value) > max_length:
            raise ValueError(f"Comment cannot exceed {max_length} characters")
        return value

    @field_validator("rating")
    @classmethod
    def rating_in_bounds(cls, value, info: ValidationInfo):
        if value is None:
            return value
        return _check_rating(value, info)

    @model_validator(mode="after")
    def require_change(self):
        if self.text is None and self.rating is None:
            raise ValueError("Provide text or rating to update")
        return self


def _check_email_length(value: str) -> str:
    if not 5 <= len(value) <= 50:
        raise ValueError("Email must be between 5 and 50 characters")
    return value


class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    password: str = Field(min_length=6)
    username: str = Field(min_length=3, max_length=15)
    is_critic: bool = Field(False, alias="isCritic")

    @field_validator("email")
    @classmethod
    def email_length(cls, value):
        return _check_email_length(value)


class LoginRequest(BaseModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class ProfileUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: Optional[EmailStr] = None
    username: Optional[str] = Field(None, min_length=3, max_length=15)
    password: Optional[str] = None
    new_password: Optional[str] = Field(None, min_length=6, alias="newPassword")

    @field_validator("email")
    @classmethod
    def email_length(cls, value):
        return value if value is None else _check_email_length(value)

