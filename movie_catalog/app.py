import logging

from flask import Blueprint, Flask, current_app, g, jsonify, request
from pydantic import ValidationError as SchemaError
from requests import RequestException
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.routing import IntegerConverter

from config.config import Config
from movie_catalog.auth import issue_token, login_required
from movie_catalog.errors import (
    AppError,
    AuthError,
    ConflictError,
    InternalError,
    NotFoundError,
    OwnershipError,
    ValidationError,
    from_schema_error,
    register_error_handlers,
)
from movie_catalog.importer import CatalogImporter
from movie_catalog.models import (
    MAX_ID,
    Comment,
    Movie,
    User,
    create_session_factory,
    get_db_session,
    init_db,
)
from movie_catalog.query_planner import MovieQueryPlanner
from movie_catalog.ratings import movie_rating_summary
from movie_catalog.schemas import (
    CommentCreate,
    CommentUpdate,
    LoginRequest,
    MovieQuery,
    ProfileUpdate,
    RegisterRequest,
)
from movie_catalog.tmdb_api import TMDBClient

logger = logging.getLogger(__name__)

api = Blueprint("api", __name__, url_prefix="/api")


class DatabaseIdConverter(IntegerConverter):
    """``int`` converter that only matches values an id column can hold"""

    def __init__(self, map, *args, **kwargs):
        kwargs.setdefault("max", MAX_ID)
        super().__init__(map, *args, **kwargs)


def catalog_config():
    return current_app.extensions["catalog_config"]


def parse_body(schema, **context):
    """Validate the JSON body against ``schema`` or raise a 400"""
    data = request.get_json(silent=True) or {}
    try:
        return schema.model_validate(data, context=context)
    except SchemaError as e:
        raise from_schema_error(e) from e


def comment_rules() -> dict:
    config = catalog_config()
    return {
        "rating_min": config.COMMENT_RATING_MIN,
        "rating_max": config.COMMENT_RATING_MAX,
        "rating_step": config.COMMENT_RATING_STEP,
        "max_length": config.COMMENT_MAX_LENGTH,
    }


def make_importer(session) -> CatalogImporter:
    config = catalog_config()
    if not config.TMDB_API_KEY:
        raise InternalError("Server configuration error: TMDB API key is not set.")
    return CatalogImporter(session, client=current_app.extensions["tmdb_client"], config=config)


def serialize_comments(comments):
    """Serialize comments in creation order, flagging repeat comments per user"""
    seen_users = set()
    data = []
    for comment in comments:
        item = comment.to_dict()
        item["isSubsequentComment"] = comment.user_id in seen_users
        seen_users.add(comment.user_id)
        data.append(item)
    return data


# ==========================================
# AUTHENTICATION ROUTES
# ==========================================


@api.route("/auth/register", methods=["POST"])
def register():
    body = parse_body(RegisterRequest)
    session = get_db_session()
    try:
        if session.query(User).filter_by(email=body.email).first():
            raise ConflictError("Email is already registered.")
        if session.query(User).filter_by(username=body.username).first():
            raise ConflictError("Username is already taken.")

        user = User(email=body.email, username=body.username, is_critic=body.is_critic)
        user.password = body.password
        session.add(user)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise ConflictError("Email or username is already in use.")

        logger.info(f"Registered user {user.username}")
        return jsonify({"message": "User registered successfully."}), 201
    finally:
        session.close()


@api.route("/auth/login", methods=["POST"])
def login():
    body = parse_body(LoginRequest)
    session = get_db_session()
    try:
        user = session.query(User).filter_by(email=body.email).first()
        if not user or not user.check_password(body.password):
            raise AuthError("Invalid credentials.")

        return jsonify({"user": user.to_principal(), "token": issue_token(user)})
    finally:
        session.close()


# ==========================================
# USER PROFILE ROUTES
# ==========================================


@api.route("/users/me", methods=["GET"])
@login_required
def get_profile():
    return jsonify(g.current_user)


@api.route("/users/me", methods=["PUT"])
@login_required
def update_profile():
    body = parse_body(ProfileUpdate)
    session = get_db_session()
    try:
        user = session.get(User, g.current_user["id"])
        if not user:
            raise NotFoundError("User not found.")

        email_changed = body.email is not None and body.email != user.email
        username_changed = body.username is not None and body.username != user.username

        # Sensitive changes need the current password
        if email_changed or username_changed or body.new_password:
            if not body.password:
                raise ValidationError(
                    "Current password is required to change email, username or password."
                )
            if not user.check_password(body.password):
                raise AuthError("Current password is incorrect.")

        if email_changed:
            if session.query(User).filter_by(email=body.email).first():
                raise ConflictError("The new email is already in use.")
            user.email = body.email

        if username_changed:
            if session.query(User).filter_by(username=body.username).first():
                raise ConflictError("The new username is already in use.")
            user.username = body.username

        if body.new_password is not None:
            if body.password == body.new_password:
                raise ValidationError("The new password cannot match the current one.")
            user.password = body.new_password

        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise ConflictError("Email or username is already in use.")

        return jsonify({"message": "Profile updated successfully.", "user": user.to_principal()})
    finally:
        session.close()


@api.route("/users/me", methods=["DELETE"])
@login_required
def delete_profile():
    password = (request.get_json(silent=True) or {}).get("password")
    session = get_db_session()
    try:
        user = session.get(User, g.current_user["id"])
        if not user:
            raise NotFoundError("User not found.")

        if not password or not user.check_password(password):
            raise AuthError("Incorrect password. The account was not deleted.")

        session.delete(user)
        session.commit()
        logger.info(f"Deleted user {user.username}")
        return jsonify({"message": "Account deleted successfully."})
    finally:
        session.close()


# ==========================================
# MOVIE ROUTES
# ==========================================


@api.route("/movies", methods=["GET"])
@login_required
def list_movies():
    """List movies with search, filters, section views, sorting and pagination"""
    query = MovieQuery.from_args(request.args, catalog_config())
    session = get_db_session()
    try:
        movies = current_app.extensions["planner"].run(session, query)
    except SQLAlchemyError as e:
        logger.exception("Movie listing query failed")
        raise InternalError("Server error while fetching movies.", details=e.__class__.__name__)
    finally:
        session.close()

    return jsonify(movies)


@api.route("/movies/<movie_id>", methods=["GET"])
@login_required
def get_movie(movie_id):
    if not (movie_id.isascii() and movie_id.isdigit()):
        raise ValidationError("Invalid movie id format.")
    if int(movie_id) > MAX_ID:
        raise NotFoundError("Movie not found.")

    session = get_db_session()
    try:
        movie = session.get(Movie, int(movie_id))
        if not movie:
            raise NotFoundError("Movie not found.")
        return jsonify(movie.to_dict())
    finally:
        session.close()


@api.route("/movies/import-popular", methods=["GET"])
@login_required
def import_popular_movies():
    session = get_db_session()
    try:
        importer = make_importer(session)
        logger.info(f"User {g.current_user['email']} triggered a popular movies import")
        imported_count = importer.import_popular(catalog_config().MANUAL_IMPORT_PAGES)
        return jsonify(
            {
                "message": "TMDB popular movies import completed.",
                "importedCount": imported_count,
            }
        )
    finally:
        session.close()


@api.route("/movies/search-and-import", methods=["GET"])
@login_required
def search_and_import_movies():
    query = request.args.get("search", "").strip()
    session = get_db_session()
    try:
        importer = make_importer(session)
        logger.info(f"User {g.current_user['email']} is importing movies for '{query}'")
        imported_count = importer.search_and_import(query)
        return jsonify(
            {
                "message": f"Import for query '{query}' completed.",
                "importedCount": imported_count,
            }
        )
    finally:
        session.close()


@api.route("/movies/import/<id:tmdb_id>", methods=["GET"])
@login_required
def import_single_movie(tmdb_id):
    session = get_db_session()
    try:
        movie = make_importer(session).import_movie(tmdb_id)
        return jsonify(movie.to_dict())
    finally:
        session.close()


# ==========================================
# COMMENT ROUTES
# ==========================================


@api.route("/comments/ratings/<id:movie_id>", methods=["GET"])
def get_movie_ratings(movie_id):
    """Average rating and number of ratings for a movie"""
    session = get_db_session()
    try:
        return jsonify(movie_rating_summary(session, movie_id))
    finally:
        session.close()


@api.route("/comments/<id:movie_id>", methods=["GET"])
def list_comments(movie_id):
    session = get_db_session()
    try:
        comments = (
            session.query(Comment)
            .filter_by(movie_id=movie_id)
            .order_by(Comment.created_at, Comment.id)
            .all()
        )
        data = serialize_comments(comments)
        return jsonify({"status": "success", "results": len(data), "data": {"comments": data}})
    finally:
        session.close()


@api.route("/comments/single/<id:comment_id>", methods=["GET"])
def get_comment(comment_id):
    session = get_db_session()
    try:
        comment = session.get(Comment, comment_id)
        if not comment:
            raise NotFoundError("Comment not found.")

        earlier = (
            session.query(func.count(Comment.id))
            .filter(
                Comment.user_id == comment.user_id,
                Comment.movie_id == comment.movie_id,
                Comment.created_at < comment.created_at,
            )
            .scalar()
        )
        data = comment.to_dict()
        data["isSubsequentComment"] = earlier > 0
        return jsonify({"status": "success", "data": {"comment": data}})
    finally:
        session.close()


@api.route("/comments", methods=["POST"])
@login_required
def create_comment():
    body = parse_body(CommentCreate, **comment_rules())
    session = get_db_session()
    try:
        if not session.get(Movie, body.movie_id):
            raise NotFoundError("Movie not found.")

        comment = Comment(
            user_id=g.current_user["id"],
            movie_id=body.movie_id,
            text=body.text,
            rating=body.rating,
        )
        session.add(comment)
        session.commit()
        return jsonify({"status": "success", "data": {"comment": comment.to_dict()}}), 201
    finally:
        session.close()


@api.route("/comments/<id:comment_id>", methods=["PUT"])
@login_required
def update_comment(comment_id):
    body = parse_body(CommentUpdate, **comment_rules())
    session = get_db_session()
    try:
        comment = session.get(Comment, comment_id)
        if not comment:
            raise NotFoundError("Comment not found.")
        if comment.user_id != g.current_user["id"]:
            raise OwnershipError("You do not have permission to edit this comment.")

        if body.text is not None:
            comment.text = body.text
        if body.rating is not None:
            comment.rating = body.rating
        session.commit()

        return jsonify(
            {
                "status": "success",
                "message": "Comment updated successfully.",
                "data": {"comment": comment.to_dict()},
            }
        )
    finally:
        session.close()


@api.route("/comments/<id:comment_id>", methods=["DELETE"])
@login_required
def delete_comment(comment_id):
    session = get_db_session()
    try:
        comment = session.get(Comment, comment_id)
        if not comment:
            raise NotFoundError("Comment not found.")
        if comment.user_id != g.current_user["id"]:
            raise OwnershipError("You do not have permission to delete this comment.")

        session.delete(comment)
        session.commit()
        return "", 204
    finally:
        session.close()


# ==========================================
# SYSTEM ROUTES
# ==========================================


@api.route("/health", methods=["GET"])
def health():
    """Health check endpoint"""
    session = get_db_session()
    try:
        movie_count = session.query(func.count(Movie.id)).scalar()
        return jsonify({"status": "healthy", "database": "connected", "movie_count": movie_count})
    except SQLAlchemyError as e:
        return jsonify({"status": "unhealthy", "error": str(e)}), 500
    finally:
        session.close()


def run_startup_import(app):
    """Import popular movies once at startup; failures are logged, not raised"""
    config = app.extensions["catalog_config"]
    if not config.TMDB_API_KEY:
        logger.warning("TMDB_API_KEY is not set; skipping startup import")
        return

    with app.app_context():
        session = get_db_session()
        try:
            importer = CatalogImporter(
                session, client=app.extensions["tmdb_client"], config=config
            )
            imported = importer.import_popular(config.STARTUP_IMPORT_PAGES)
            logger.info(f"Startup import finished: {imported} new movies")
        except (AppError, RequestException, SQLAlchemyError) as e:
            logger.error(f"Startup import failed: {e}")
        finally:
            session.close()


def create_app(config=Config, tmdb_client=None):
    """Application factory"""
    app = Flask(__name__)
    app.config.from_object(config)
    app.json.sort_keys = False
    app.url_map.converters["id"] = DatabaseIdConverter

    logging.getLogger("movie_catalog").setLevel(config.LOG_LEVEL)

    session_factory = create_session_factory(config.DATABASE_URL)
    init_db(session_factory.kw["bind"])

    app.extensions["catalog_config"] = config
    app.extensions["session_factory"] = session_factory
    app.extensions["planner"] = MovieQueryPlanner(config)
    app.extensions["tmdb_client"] = tmdb_client or TMDBClient(config)

    app.register_blueprint(api)
    register_error_handlers(app)

    if config.IMPORT_ON_STARTUP:
        run_startup_import(app)

    return app


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    create_app().run(debug=True)
