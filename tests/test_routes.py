"""
Tests for Flask application routes
"""

from movie_catalog.models import Comment, Movie


class TestMovieListRoute:
    """Tests for GET /api/movies"""

    def test_requires_login(self, client, sample_movies):
        assert client.get("/api/movies").status_code == 401

    def test_returns_plain_array(self, client, sample_movies, auth_headers):
        response = client.get("/api/movies", headers=auth_headers)

        assert response.status_code == 200
        movies = response.get_json()
        assert isinstance(movies, list)
        assert len(movies) == 20
        assert movies[0]["title"] == "Test Movie 24"

    def test_page_size_and_page(self, client, sample_movies, auth_headers):
        response = client.get("/api/movies?page=3&pageSize=10", headers=auth_headers)
        assert [m["title"] for m in response.get_json()] == [
            "Test Movie 4",
            "Test Movie 3",
            "Test Movie 2",
            "Test Movie 1",
            "Test Movie 0",
        ]

    def test_repeated_genre_params(self, client, sample_movies, auth_headers):
        response = client.get("/api/movies?genreId=28&genreId=18&pageSize=50", headers=auth_headers)
        assert len(response.get_json()) == 25

    def test_garbage_params_never_fail(self, client, sample_movies, auth_headers):
        response = client.get(
            "/api/movies?minRating=NaN&startYear=abc&sortBy=budget&order=up&type=weird&page=-1",
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert len(response.get_json()) == 20

    def test_huge_numbers_never_fail(self, client, sample_movies, auth_headers):
        huge = "99999999999999999999"

        response = client.get(f"/api/movies?page={huge}", headers=auth_headers)
        assert response.status_code == 200
        assert response.get_json() == []

        response = client.get(f"/api/movies?genreId={huge}&pageSize=50", headers=auth_headers)
        assert response.status_code == 200
        assert len(response.get_json()) == 25

        response = client.get(f"/api/movies?genreId=28,{huge}&pageSize=50", headers=auth_headers)
        assert len(response.get_json()) == 13

    def test_rating_filter(self, client, sample_movies, sample_user, make_comment, auth_headers):
        make_comment(sample_user, sample_movies[3], 4.5)
        make_comment(sample_user, sample_movies[7], 2.0)

        response = client.get("/api/movies?minRating=4", headers=auth_headers)
        movies = response.get_json()

        assert [m["title"] for m in movies] == ["Test Movie 3"]
        assert movies[0]["averageCommentRating"] == 4.5

    def test_popular_view(self, client, sample_movies, multiple_users, make_comment, auth_headers):
        for user in multiple_users:
            make_comment(user, sample_movies[0], 4.0)
        make_comment(multiple_users[0], sample_movies[1], 3.0)

        response = client.get("/api/movies?type=popular&pageSize=4", headers=auth_headers)
        movies = response.get_json()

        assert [m["commentCount"] for m in movies] == [3, 1, 0, 0]
        assert movies[0]["title"] == "Test Movie 0"


class TestMovieDetailRoute:
    """Tests for GET /api/movies/<id>"""

    def test_movie_detail(self, client, sample_movie, auth_headers):
        response = client.get(f"/api/movies/{sample_movie.id}", headers=auth_headers)

        assert response.status_code == 200
        data = response.get_json()
        assert data["title"] == "Fight Club"
        assert data["genres"] == [{"id": 18, "name": "Drama"}]

    def test_invalid_id(self, client, auth_headers):
        response = client.get("/api/movies/abc", headers=auth_headers)

        assert response.status_code == 400
        assert response.get_json()["message"] == "Invalid movie id format."

    def test_missing_movie(self, client, auth_headers):
        assert client.get("/api/movies/99999", headers=auth_headers).status_code == 404

    def test_oversized_id_is_not_found(self, client, auth_headers):
        response = client.get("/api/movies/99999999999999999999", headers=auth_headers)
        assert response.status_code == 404

    def test_non_ascii_digits_are_malformed(self, client, auth_headers):
        assert client.get("/api/movies/%C2%B2", headers=auth_headers).status_code == 400


class TestImportRoutes:
    """Tests for the TMDB import endpoints, backed by a fake client"""

    RECORD = {
        "id": 550,
        "title": "Fight Club",
        "release_date": "1999-10-15",
        "overview": "An insomniac office worker...",
        "vote_average": 8.4,
        "poster_path": "/poster.jpg",
        "genre_ids": [18],
    }

    def test_import_popular(self, client, db_session, fake_tmdb, auth_headers):
        fake_tmdb.popular_pages = [[self.RECORD]]
        response = client.get("/api/movies/import-popular", headers=auth_headers)

        assert response.status_code == 200
        assert response.get_json()["importedCount"] == 1
        assert db_session.query(Movie).filter_by(tmdb_id="550").count() == 1

    def test_search_and_import(self, client, fake_tmdb, auth_headers):
        fake_tmdb.search_results = [self.RECORD]
        response = client.get("/api/movies/search-and-import?search=fight", headers=auth_headers)

        assert response.status_code == 200
        assert response.get_json()["importedCount"] == 1
        assert ("search", "fight") in fake_tmdb.calls

    def test_search_and_import_without_query(self, client, auth_headers):
        response = client.get("/api/movies/search-and-import", headers=auth_headers)
        assert response.status_code == 400

    def test_import_single_movie(self, client, fake_tmdb, auth_headers):
        detail = dict(self.RECORD, runtime=139, genres=[{"id": 18, "name": "Drama"}])
        fake_tmdb.details = {"550": detail}
        response = client.get("/api/movies/import/550", headers=auth_headers)

        assert response.status_code == 200
        assert response.get_json()["runtime"] == 139

    def test_import_requires_api_key(self, app, client, auth_headers):
        class NoKeyConfig(app.extensions["catalog_config"]):
            TMDB_API_KEY = ""

        app.extensions["catalog_config"] = NoKeyConfig
        response = client.get("/api/movies/import-popular", headers=auth_headers)

        assert response.status_code == 500
        assert "TMDB API key" in response.get_json()["message"]

    def test_import_requires_login(self, client):
        assert client.get("/api/movies/import-popular").status_code == 401


class TestCommentRoutes:
    """Tests for /api/comments"""

    def test_create_comment(self, client, sample_movie, auth_headers):
        response = client.post(
            "/api/comments",
            headers=auth_headers,
            json={"movieId": sample_movie.id, "text": "Loved it", "rating": 4.5},
        )

        assert response.status_code == 201
        comment = response.get_json()["data"]["comment"]
        assert comment["text"] == "Loved it"
        assert comment["rating"] == 4.5
        assert comment["user"]["username"] == "testuser"

    def test_created_comment_reads_back(self, client, sample_movie, auth_headers):
        created = client.post(
            "/api/comments",
            headers=auth_headers,
            json={"movieId": sample_movie.id, "text": "Twist ending!", "rating": 3.5},
        ).get_json()["data"]["comment"]

        response = client.get(f"/api/comments/single/{created['id']}")
        comment = response.get_json()["data"]["comment"]

        assert (comment["text"], comment["rating"]) == ("Twist ending!", 3.5)
        assert comment["isSubsequentComment"] is False

    def test_rating_bounds(self, client, sample_movie, auth_headers):
        for rating in (0.4, 5.5):
            response = client.post(
                "/api/comments",
                headers=auth_headers,
                json={"movieId": sample_movie.id, "text": "Hmm", "rating": rating},
            )
            assert response.status_code == 400

    def test_comment_on_missing_movie(self, client, auth_headers):
        response = client.post(
            "/api/comments",
            headers=auth_headers,
            json={"movieId": 424242, "text": "Hmm", "rating": 3},
        )
        assert response.status_code == 404

    def test_create_requires_login(self, client, sample_movie):
        response = client.post(
            "/api/comments", json={"movieId": sample_movie.id, "text": "Hmm", "rating": 3}
        )
        assert response.status_code == 401

    def test_list_comments(self, client, sample_movie, sample_user, make_user, make_comment):
        other = make_user("other")
        make_comment(sample_user, sample_movie, 4.0, text="First")
        make_comment(other, sample_movie, 3.0, text="Other")
        make_comment(sample_user, sample_movie, 5.0, text="Second")

        response = client.get(f"/api/comments/{sample_movie.id}")
        data = response.get_json()

        assert response.status_code == 200
        assert data["status"] == "success"
        assert data["results"] == 3
        comments = data["data"]["comments"]
        assert [c["text"] for c in comments] == ["First", "Other", "Second"]
        assert [c["isSubsequentComment"] for c in comments] == [False, False, True]

    def test_get_single_comment(self, client, sample_movie, sample_user, make_comment):
        make_comment(sample_user, sample_movie, 4.0, text="First")
        second = make_comment(sample_user, sample_movie, 5.0, text="Second")

        response = client.get(f"/api/comments/single/{second.id}")

        assert response.status_code == 200
        comment = response.get_json()["data"]["comment"]
        assert comment["text"] == "Second"
        assert comment["isSubsequentComment"] is True

    def test_get_missing_comment(self, client):
        assert client.get("/api/comments/single/999").status_code == 404

    def test_oversized_ids_are_not_found(self, client, auth_headers):
        huge = "99999999999999999999"

        assert client.get(f"/api/comments/single/{huge}").status_code == 404
        assert client.get(f"/api/comments/{huge}").status_code == 404
        assert client.get(f"/api/comments/ratings/{huge}").status_code == 404
        assert client.delete(f"/api/comments/{huge}", headers=auth_headers).status_code == 404
        response = client.put(f"/api/comments/{huge}", headers=auth_headers, json={"rating": 3})
        assert response.status_code == 404

    def test_comment_on_oversized_movie_id(self, client, auth_headers):
        response = client.post(
            "/api/comments",
            headers=auth_headers,
            json={"movieId": 99999999999999999999, "text": "Hmm", "rating": 3},
        )
        assert response.status_code == 400

    def test_update_comment(self, client, sample_movie, sample_user, make_comment, auth_headers):
        comment = make_comment(sample_user, sample_movie, 4.0)
        response = client.put(
            f"/api/comments/{comment.id}", headers=auth_headers, json={"rating": 2.5}
        )

        assert response.status_code == 200
        data = response.get_json()["data"]["comment"]
        assert data["rating"] == 2.5
        assert data["text"] == "Great movie"

    def test_update_someone_elses_comment(
        self, client, sample_movie, make_user, make_comment, auth_headers
    ):
        comment = make_comment(make_user("other"), sample_movie, 4.0)
        response = client.put(
            f"/api/comments/{comment.id}", headers=auth_headers, json={"text": "Mine now"}
        )
        assert response.status_code == 403

    def test_update_without_changes(
        self, client, sample_movie, sample_user, make_comment, auth_headers
    ):
        comment = make_comment(sample_user, sample_movie, 4.0)
        response = client.put(f"/api/comments/{comment.id}", headers=auth_headers, json={})
        assert response.status_code == 400

    def test_update_with_blank_text(
        self, client, db_session, sample_movie, sample_user, make_comment, auth_headers
    ):
        comment = make_comment(sample_user, sample_movie, 4.0)

        for text in ("   ", ""):
            response = client.put(
                f"/api/comments/{comment.id}", headers=auth_headers, json={"text": text}
            )
            assert response.status_code == 400

        db_session.expire_all()
        assert db_session.get(Comment, comment.id).text == "Great movie"

    def test_delete_comment(
        self, client, db_session, sample_movie, sample_user, make_comment, auth_headers
    ):
        comment = make_comment(sample_user, sample_movie, 4.0)
        response = client.delete(f"/api/comments/{comment.id}", headers=auth_headers)

        assert response.status_code == 204
        db_session.expire_all()
        assert db_session.get(Comment, comment.id) is None

    def test_delete_someone_elses_comment(
        self, client, sample_movie, make_user, make_comment, auth_headers
    ):
        comment = make_comment(make_user("other"), sample_movie, 4.0)
        response = client.delete(f"/api/comments/{comment.id}", headers=auth_headers)
        assert response.status_code == 403

    def test_delete_missing_comment(self, client, auth_headers):
        assert client.delete("/api/comments/999", headers=auth_headers).status_code == 404

    def test_ratings_summary(self, client, sample_movie, multiple_users, make_comment):
        make_comment(multiple_users[0], sample_movie, 4.0)
        make_comment(multiple_users[1], sample_movie, 3.0)

        response = client.get(f"/api/comments/ratings/{sample_movie.id}")
        assert response.get_json() == {"averageRating": 3.5, "numberOfRatings": 2}

    def test_ratings_summary_without_comments(self, client, sample_movie):
        response = client.get(f"/api/comments/ratings/{sample_movie.id}")
        assert response.get_json() == {"averageRating": 0, "numberOfRatings": 0}


class TestSystemRoutes:
    def test_health(self, client, sample_movies):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.get_json() == {
            "status": "healthy",
            "database": "connected",
            "movie_count": 25,
        }

    def test_unknown_route_is_json(self, client):
        response = client.get("/api/nowhere")

        assert response.status_code == 404
        assert "message" in response.get_json()
