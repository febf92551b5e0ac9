"""
Comment rating aggregation

One routine computes average rating and rating count per movie. The standalone
ratings endpoint and the listing planner both go through ``comment_stats``.
"""

from typing import Dict

from sqlalchemy import func, select

from movie_catalog.models import Comment


def comment_stats(*criteria):
    """
    Select ``movie_id``, ``average_rating`` and ``rating_count`` per movie.

    ``criteria`` are extra WHERE clauses on ``Comment`` (e.g. a single movie).
    Movies without comments produce no row.
    """
    stmt = select(
        Comment.movie_id.label("movie_id"),
        func.avg(Comment.rating).label("average_rating"),
        func.count(Comment.id).label("rating_count"),
    )
    if criteria:
        stmt = stmt.where(*criteria)
    return stmt.group_by(Comment.movie_id)


def movie_rating_summary(session, movie_id: int) -> Dict:
    """Average rating (1 decimal) and number of ratings for one movie"""
    row = session.execute(comment_stats(Comment.movie_id == movie_id)).first()

    if row is None:
        return {"averageRating": 0, "numberOfRatings": 0}

    return {
        "averageRating": round(float(row.average_rating), 1),
        "numberOfRatings": row.rating_count,
    }
