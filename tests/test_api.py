import pytest


def _seed(client):
    """Add one publisher, book, branch and card that other rows can reference."""
    assert client.post("/api/publishers", json={"name": "Penguin", "phone": "555-0100", "address": "London"}).status_code == 201
    assert client.post("/api/books", json={"bookId": 1, "title": "Dune", "pubYear": 1965, "publisherName": "Penguin"}).status_code == 201
    assert client.post("/api/branches", json={"branchId": 10, "branchName": "Central", "branchAddress": "Main St"}).status_code == 201
    assert client.post("/api/cards", json={"cardNo": 100}).status_code == 201


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["db"] is True


def test_health_does_not_reveal_database_path(client, db_file):
    response = client.get("/health")
    assert set(response.json()["pool"]) == {"size", "available"}
    assert db_file not in response.text


def test_index_is_served(client):
    response = client.get("/")
    assert response.status_code == 200
    assert "Library Management" in response.text


def test_publisher_round_trip(client):
    response = client.post("/api/publishers", json={"name": "Penguin", "phone": "555-0100", "address": "London"})
    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Operation successful."
    assert isinstance(body["insertId"], int)

    response = client.get("/api/publishers")
    assert response.status_code == 200
    assert response.json() == [{"NAME": "Penguin", "PHONE": "555-0100", "ADDRESS": "London"}]


def test_book_round_trip(client):
    _seed(client)
    books = client.get("/api/books").json()
    assert books == [{"BOOK_ID": 1, "TITLE": "Dune", "PUB_YEAR": 1965, "PUBLISHER_NAME": "Penguin", "Authors": None}]


def test_book_insert_id_is_book_id(client):
    response = client.post("/api/books", json={"bookId": 42, "title": "Emma", "pubYear": 1815})
    assert response.status_code == 201
    assert response.json()["insertId"] == 42


def test_books_concatenate_authors_one_row_per_book(client):
    _seed(client)
    client.post("/api/books", json={"bookId": 2, "title": "Good Omens", "pubYear": 1990, "publisherName": "Penguin"})
    client.post("/api/authors", json={"authorName": "Terry Pratchett", "bookId": 2})
    client.post("/api/authors", json={"authorName": "Neil Gaiman", "bookId": 2})
    client.post("/api/authors", json={"authorName": "Frank Herbert", "bookId": 1})

    books = {b["BOOK_ID"]: b for b in client.get("/api/books").json()}
    assert len(books) == 2
    assert books[1]["Authors"] == "Frank Herbert"
    assert set(books[2]["Authors"].split(", ")) == {"Terry Pratchett", "Neil Gaiman"}


def test_book_without_authors_still_listed(client):
    client.post("/api/books", json={"bookId": 3, "title": "Anonymous Tales"})
    books = client.get("/api/books").json()
    assert len(books) == 1
    assert books[0]["Authors"] is None


def test_author_round_trip_and_delete(client):
    _seed(client)
    assert client.post("/api/authors", json={"authorName": "Frank Herbert", "bookId": 1}).status_code == 201
    assert client.get("/api/authors").json() == [{"AUTHOR_NAME": "Frank Herbert", "BOOK_ID": 1}]

    response = client.delete("/api/authors/1/Frank Herbert")
    assert response.status_code == 200
    assert client.get("/api/authors").json() == []


def test_branch_round_trip(client):
    client.post("/api/branches", json={"branchId": 10, "branchName": "Central", "branchAddress": "Main St"})
    assert client.get("/api/branches").json() == [{"BRANCH_ID": 10, "BRANCH_NAME": "Central", "ADDRESS": "Main St"}]


def test_copies_join_title_and_branch_name(client):
    _seed(client)
    response = client.post("/api/book_copies", json={"noOfCopies": 4, "bookId": 1, "branchId": 10})
    assert response.status_code == 201

    copies = client.get("/api/book_copies").json()
    assert copies == [{"NO_OF_COPIES": 4, "BookTitle": "Dune", "BranchName": "Central", "BOOK_ID": 1, "BRANCH_ID": 10}]


def test_card_round_trip(client):
    response = client.post("/api/cards", json={"cardNo": 7})
    assert response.status_code == 201
    assert response.json()["insertId"] == 7
    assert client.get("/api/cards").json() == [{"CARD_NO": 7}]


def test_lending_round_trip(client):
    _seed(client)
    payload = {"dateOut": "2024-03-01", "dueDate": "2024-03-15", "bookId": 1, "branchId": 10, "cardNo": 100}
    assert client.post("/api/lendings", json=payload).status_code == 201

    lendings = client.get("/api/lendings").json()
    assert lendings == [{
        "BookTitle": "Dune",
        "BranchName": "Central",
        "BOOK_ID": 1,
        "BRANCH_ID": 10,
        "CARD_NO": 100,
        "DATE_OUT": "2024-03-01",
        "DUE_DATE": "2024-03-15",
    }]


def test_lendings_newest_first_with_limit(client):
    _seed(client)
    for day in ("2024-01-01", "2024-01-03", "2024-01-02"):
        client.post("/api/lendings", json={"dateOut": day, "dueDate": "2024-02-01", "bookId": 1, "branchId": 10, "cardNo": 100})

    dates = [row["DATE_OUT"] for row in client.get("/api/lendings").json()]
    assert dates == ["2024-01-03", "2024-01-02", "2024-01-01"]

    limited = client.get("/api/lendings", params={"limit": 2}).json()
    assert [row["DATE_OUT"] for row in limited] == ["2024-01-03", "2024-01-02"]


def test_lendings_rejects_non_positive_limit(client):
    assert client.get("/api/lendings", params={"limit": 0}).status_code == 422


@pytest.mark.parametrize("route,key,listing", [
    ("publishers", "Penguin", "publishers"),
    ("books", "1", "books"),
    ("branches", "10", "branches"),
    ("cards", "100", "cards"),
])
def test_delete_existing_row(client, route, key, listing):
    _seed(client)
    response = client.delete(f"/api/{route}/{key}")
    assert response.status_code == 200
    assert response.json() == {"message": "Operation successful (Deleted)."}
    assert client.get(f"/api/{listing}").json() == []


def test_delete_missing_row_is_not_found(client):
    _seed(client)
    before = client.get("/api/stats").json()

    response = client.delete("/api/books/999")
    assert response.status_code == 404
    assert response.json() == {"message": "Record not found for deletion."}

    assert client.get("/api/stats").json() == before
    assert len(client.get("/api/books").json()) == 1


def test_delete_copies_by_composite_key(client):
    _seed(client)
    client.post("/api/book_copies", json={"noOfCopies": 2, "bookId": 1, "branchId": 10})

    assert client.delete("/api/book_copies/1/11").status_code == 404
    assert client.delete("/api/book_copies/1/10").status_code == 200
    assert client.get("/api/book_copies").json() == []


def test_delete_lending_by_composite_key(client):
    _seed(client)
    client.post("/api/lendings", json={"dateOut": "2024-03-01", "dueDate": "2024-03-15", "bookId": 1, "branchId": 10, "cardNo": 100})

    assert client.delete("/api/lendings/1/10/100/2024-03-02").status_code == 404
    assert client.delete("/api/lendings/1/10/100/2024-03-01").status_code == 200
    assert client.get("/api/lendings").json() == []


def test_deleting_book_removes_dependent_rows(client):
    _seed(client)
    client.post("/api/authors", json={"authorName": "Frank Herbert", "bookId": 1})
    client.post("/api/book_copies", json={"noOfCopies": 2, "bookId": 1, "branchId": 10})

    assert client.delete("/api/books/1").status_code == 200
    assert client.get("/api/authors").json() == []
    assert client.get("/api/book_copies").json() == []


def test_stats_match_table_counts(client):
    assert client.get("/api/stats").json() == {"totalBooks": 0, "totalBranches": 0, "totalCards": 0}

    _seed(client)
    client.post("/api/books", json={"bookId": 2, "title": "Emma"})
    client.post("/api/cards", json={"cardNo": 101})
    client.post("/api/cards", json={"cardNo": 102})

    stats = client.get("/api/stats").json()
    assert stats == {
        "totalBooks": len(client.get("/api/books").json()),
        "totalBranches": len(client.get("/api/branches").json()),
        "totalCards": len(client.get("/api/cards").json()),
    }
    assert stats == {"totalBooks": 2, "totalBranches": 1, "totalCards": 3}


def test_duplicate_key_returns_database_error(client):
    client.post("/api/cards", json={"cardNo": 1})
    response = client.post("/api/cards", json={"cardNo": 1})
    assert response.status_code == 500
    body = response.json()
    assert body["message"] == "Failed to execute database operation for /api/cards."
    assert "UNIQUE constraint failed" in body["sqlMessage"]


def test_unknown_reference_returns_database_error(client):
    response = client.post("/api/books", json={"bookId": 1, "title": "Dune", "pubYear": 1965, "publisherName": "Nobody"})
    assert response.status_code == 500
    assert "FOREIGN KEY constraint failed" in response.json()["sqlMessage"]
    assert client.get("/api/books").json() == []


def test_missing_field_returns_database_error(client):
    response = client.post("/api/publishers", json={"phone": "555"})
    assert response.status_code == 500
    assert "NOT NULL constraint failed: PUBLISHER.NAME" in response.json()["sqlMessage"]


def test_malformed_date_returns_database_error(client):
    _seed(client)
    response = client.post("/api/lendings", json={"dateOut": "yesterday", "dueDate": "2024-03-15", "bookId": 1, "branchId": 10, "cardNo": 100})
    assert response.status_code == 500
    assert "CHECK constraint failed" in response.json()["sqlMessage"]


def test_wrong_column_type_returns_database_error(client):
    response = client.post("/api/books", json={"bookId": 5, "title": "Dune", "pubYear": "nineteen sixty-five"})
    assert response.status_code == 500
    assert response.json()["sqlMessage"]


def test_unbindable_value_returns_database_error(client):
    response = client.post("/api/cards", json={"cardNo": {"nested": True}})
    assert response.status_code == 500
    assert response.json()["sqlMessage"]


def test_oversized_integer_returns_database_error(client):
    response = client.post("/api/cards", json={"cardNo": 99999999999999999999})
    assert response.status_code == 500
    body = response.json()
    assert body["message"] == "Failed to execute database operation for /api/cards."
    assert "too large" in body["sqlMessage"]
    assert client.get("/api/cards").json() == []


def test_static_script_formats_lending_dates(client):
    response = client.get("/static/app.js")
    assert response.status_code == 200
    assert "function formatDate" in response.text
    assert "DATE_COLUMNS" in response.text


def test_body_must_be_a_json_object(client):
    response = client.post("/api/cards", json=[1, 2, 3])
    assert response.status_code == 422
