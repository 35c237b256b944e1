from typing import Any, Dict, List, Optional

import database
from config import settings
from database import execute, initialize_database, query_all, query_one

Row = Dict[str, Any]

BOOKS_WITH_AUTHORS_SQL = """
    SELECT B.BOOK_ID, B.TITLE, B.PUB_YEAR, B.PUBLISHER_NAME,
           GROUP_CONCAT(A.AUTHOR_NAME, ', ') AS Authors
    FROM BOOK B
    LEFT JOIN BOOK_AUTHOR A ON B.BOOK_ID = A.BOOK_ID
    GROUP BY B.BOOK_ID, B.TITLE, B.PUB_YEAR, B.PUBLISHER_NAME
    ORDER BY B.BOOK_ID
"""

COPIES_SQL = """
    SELECT C.NO_OF_COPIES, B.TITLE AS BookTitle, L.BRANCH_NAME AS BranchName,
           C.BOOK_ID, C.BRANCH_ID
    FROM BOOK_COPIES C
    JOIN BOOK B ON C.BOOK_ID = B.BOOK_ID
    JOIN LIBRARY_BRANCH L ON C.BRANCH_ID = L.BRANCH_ID
"""

LENDINGS_SQL = """
    SELECT B.TITLE AS BookTitle, L.BRANCH_NAME AS BranchName,
           BL.BOOK_ID, BL.BRANCH_ID, BL.CARD_NO, BL.DATE_OUT, BL.DUE_DATE
    FROM BOOK_LENDING BL
    JOIN BOOK B ON BL.BOOK_ID = B.BOOK_ID
    JOIN LIBRARY_BRANCH L ON BL.BRANCH_ID = L.BRANCH_ID
    ORDER BY BL.DATE_OUT DESC
    LIMIT ?
"""


class Library:
    """Query layer of the library database: one SQL statement per operation.

    Nothing is validated here. Parameters are bound as given and every
    ``sqlite3.Error`` raised by the engine propagates to the caller.
    """

    def __init__(self, db_file: Optional[str] = None) -> None:
        if db_file:
            database.use_database_file(db_file)
        initialize_database()

    # ------------------------- Publishers ------------------------- #
    def list_publishers(self) -> List[Row]:
        return query_all("SELECT NAME, PHONE, ADDRESS FROM PUBLISHER")

    def add_publisher(self, name: Any, phone: Any, address: Any) -> int:
        insert_id, _ = execute(
            "INSERT INTO PUBLISHER (NAME, PHONE, ADDRESS) VALUES (?, ?, ?)",
            (name, phone, address),
        )
        return insert_id

    def remove_publisher(self, name: Any) -> bool:
        _, removed = execute("DELETE FROM PUBLISHER WHERE NAME = ?", (name,))
        return removed > 0

    # --------------------------- Books ---------------------------- #
    def list_books(self) -> List[Row]:
        """One row per book, authors concatenated (``None`` when it has none)."""
        return query_all(BOOKS_WITH_AUTHORS_SQL)

    def add_book(self, book_id: Any, title: Any, pub_year: Any, publisher_name: Any) -> int:
        insert_id, _ = execute(
            "INSERT INTO BOOK (BOOK_ID, TITLE, PUB_YEAR, PUBLISHER_NAME) VALUES (?, ?, ?, ?)",
            (book_id, title, pub_year, publisher_name),
        )
        return insert_id

    def remove_book(self, book_id: Any) -> bool:
        _, removed = execute("DELETE FROM BOOK WHERE BOOK_ID = ?", (book_id,))
        return removed > 0

    # -------------------------- Authors --------------------------- #
    def list_authors(self) -> List[Row]:
        return query_all("SELECT AUTHOR_NAME, BOOK_ID FROM BOOK_AUTHOR ORDER BY BOOK_ID, AUTHOR_NAME")

    def add_author(self, author_name: Any, book_id: Any) -> int:
        insert_id, _ = execute(
            "INSERT INTO BOOK_AUTHOR (AUTHOR_NAME, BOOK_ID) VALUES (?, ?)",
            (author_name, book_id),
        )
        return insert_id

    def remove_author(self, book_id: Any, author_name: Any) -> bool:
        _, removed = execute(
            "DELETE FROM BOOK_AUTHOR WHERE BOOK_ID = ? AND AUTHOR_NAME = ?",
            (book_id, author_name),
        )
        return removed > 0

    # ------------------------- Branches --------------------------- #
    def list_branches(self) -> List[Row]:
        return query_all("SELECT BRANCH_ID, BRANCH_NAME, ADDRESS FROM LIBRARY_BRANCH")

    def add_branch(self, branch_id: Any, branch_name: Any, address: Any) -> int:
        insert_id, _ = execute(
            "INSERT INTO LIBRARY_BRANCH (BRANCH_ID, BRANCH_NAME, ADDRESS) VALUES (?, ?, ?)",
            (branch_id, branch_name, address),
        )
        return insert_id

    def remove_branch(self, branch_id: Any) -> bool:
        _, removed = execute("DELETE FROM LIBRARY_BRANCH WHERE BRANCH_ID = ?", (branch_id,))
        return removed > 0

    # -------------------------- Copies ---------------------------- #
    def list_copies(self) -> List[Row]:
        """Copies joined to the book title and branch name."""
        return query_all(COPIES_SQL)

    def add_copies(self, no_of_copies: Any, book_id: Any, branch_id: Any) -> int:
        insert_id, _ = execute(
            "INSERT INTO BOOK_COPIES (NO_OF_COPIES, BOOK_ID, BRANCH_ID) VALUES (?, ?, ?)",
            (no_of_copies, book_id, branch_id),
        )
        return insert_id

    def remove_copies(self, book_id: Any, branch_id: Any) -> bool:
        _, removed = execute(
            "DELETE FROM BOOK_COPIES WHERE BOOK_ID = ? AND BRANCH_ID = ?",
            (book_id, branch_id),
        )
        return removed > 0

    # --------------------------- Cards ---------------------------- #
    def list_cards(self) -> List[Row]:
        return query_all("SELECT CARD_NO FROM CARD")

    def add_card(self, card_no: Any) -> int:
        insert_id, _ = execute("INSERT INTO CARD (CARD_NO) VALUES (?)", (card_no,))
        return insert_id

    def remove_card(self, card_no: Any) -> bool:
        _, removed = execute("DELETE FROM CARD WHERE CARD_NO = ?", (card_no,))
        return removed > 0

    # ------------------------- Lendings --------------------------- #
    def list_lendings(self, limit: Optional[int] = None) -> List[Row]:
        """Most recent lendings first, with book title and branch name."""
        if limit is None:
            limit = settings.lendings_limit
        return query_all(LENDINGS_SQL, (limit,))

    def add_lending(self, date_out: Any, due_date: Any, book_id: Any, branch_id: Any, card_no: Any) -> int:
        insert_id, _ = execute(
            "INSERT INTO BOOK_LENDING (DATE_OUT, DUE_DATE, BOOK_ID, BRANCH_ID, CARD_NO) VALUES (?, ?, ?, ?, ?)",
            (date_out, due_date, book_id, branch_id, card_no),
        )
        return insert_id

    def remove_lending(self, book_id: Any, branch_id: Any, card_no: Any, date_out: Any) -> bool:
        _, removed = execute(
            "DELETE FROM BOOK_LENDING WHERE BOOK_ID = ? AND BRANCH_ID = ? AND CARD_NO = ? AND DATE_OUT = ?",
            (book_id, branch_id, card_no, date_out),
        )
        return removed > 0

    # -------------------------- Stats ----------------------------- #
    def get_statistics(self) -> Dict[str, int]:
        books = query_one("SELECT COUNT(*) AS count FROM BOOK")
        branches = query_one("SELECT COUNT(*) AS count FROM LIBRARY_BRANCH")
        cards = query_one("SELECT COUNT(*) AS count FROM CARD")
        return {
            "totalBooks": books["count"],
            "totalBranches": branches["count"],
            "totalCards": cards["count"],
        }

    def close(self) -> None:
        database.close_pool()
