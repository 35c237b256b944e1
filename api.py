import logging
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict, Field

import database
from config import settings
from library import Library

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Open the pool and make sure the schema exists before serving
    app.state.library = Library()
    logger.info(f"{settings.app_name} listening under {settings.api_prefix} (port {settings.api_port})")
    try:
        yield
    finally:
        app.state.library.close()


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

# --- Middleware ---
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Errors ---
@app.exception_handler(sqlite3.Error)
async def database_error_handler(request: Request, exc: sqlite3.Error):
    """Any database failure becomes a 500 carrying the engine's message."""
    logger.error(f"Query error ({request.method} {request.url.path}): {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "message": f"Failed to execute database operation for {request.url.path}.",
            "sqlMessage": str(exc),
        },
    )


def get_library(request: Request) -> Library:
    return request.app.state.library


# --- Models ---
class _Body(BaseModel):
    # Fields are bound as sent; the database decides what is acceptable
    model_config = ConfigDict(populate_by_name=True)


class PublisherIn(_Body):
    name: Any = None
    phone: Any = None
    address: Any = None


class BookIn(_Body):
    book_id: Any = Field(default=None, alias="bookId")
    title: Any = None
    pub_year: Any = Field(default=None, alias="pubYear")
    publisher_name: Any = Field(default=None, alias="publisherName")


class AuthorIn(_Body):
    author_name: Any = Field(default=None, alias="authorName")
    book_id: Any = Field(default=None, alias="bookId")


class BranchIn(_Body):
    branch_id: Any = Field(default=None, alias="branchId")
    branch_name: Any = Field(default=None, alias="branchName")
    branch_address: Any = Field(default=None, alias="branchAddress")


class CopiesIn(_Body):
    no_of_copies: Any = Field(default=None, alias="noOfCopies")
    book_id: Any = Field(default=None, alias="bookId")
    branch_id: Any = Field(default=None, alias="branchId")


class CardIn(_Body):
    card_no: Any = Field(default=None, alias="cardNo")


class LendingIn(_Body):
    date_out: Any = Field(default=None, alias="dateOut")
    due_date: Any = Field(default=None, alias="dueDate")
    book_id: Any = Field(default=None, alias="bookId")
    branch_id: Any = Field(default=None, alias="branchId")
    card_no: Any = Field(default=None, alias="cardNo")


class CreatedModel(BaseModel):
    message: str
    insertId: int


class MessageModel(BaseModel):
    message: str


class StatsModel(BaseModel):
    totalBooks: int
    totalBranches: int
    totalCards: int


# --- Helpers ---
def _created(insert_id: int) -> Dict[str, Any]:
    return {"message": "Operation successful.", "insertId": insert_id}


def _deleted(removed: bool, request: Request):
    if not removed:
        logger.debug(f"Nothing to delete at {request.url.path}")
        return JSONResponse(status_code=404, content={"message": "Record not found for deletion."})
    return {"message": "Operation successful (Deleted)."}


_DELETE_RESPONSES = {404: {"model": MessageModel}}

router = APIRouter(prefix=settings.api_prefix)


# --- Publishers ---
@router.get("/publishers")
def get_publishers(lib: Library = Depends(get_library)) -> List[Dict[str, Any]]:
    return lib.list_publishers()


@router.post("/publishers", status_code=201, response_model=CreatedModel)
def add_publisher(payload: PublisherIn, lib: Library = Depends(get_library)):
    return _created(lib.add_publisher(payload.name, payload.phone, payload.address))


@router.delete("/publishers/{name}", response_model=MessageModel, responses=_DELETE_RESPONSES)
def delete_publisher(name: str, request: Request, lib: Library = Depends(get_library)):
    return _deleted(lib.remove_publisher(name), request)


# --- Books ---
@router.get("/books")
def get_books(lib: Library = Depends(get_library)) -> List[Dict[str, Any]]:
    """All books, one row each, with their authors joined into ``Authors``."""
    return lib.list_books()


@router.post("/books", status_code=201, response_model=CreatedModel)
def add_book(payload: BookIn, lib: Library = Depends(get_library)):
    return _created(lib.add_book(payload.book_id, payload.title, payload.pub_year, payload.publisher_name))


@router.delete("/books/{book_id}", response_model=MessageModel, responses=_DELETE_RESPONSES)
def delete_book(book_id: str, request: Request, lib: Library = Depends(get_library)):
    return _deleted(lib.remove_book(book_id), request)


# --- Authors ---
@router.get("/authors")
def get_authors(lib: Library = Depends(get_library)) -> List[Dict[str, Any]]:
    return lib.list_authors()


@router.post("/authors", status_code=201, response_model=CreatedModel)
def add_author(payload: AuthorIn, lib: Library = Depends(get_library)):
    return _created(lib.add_author(payload.author_name, payload.book_id))


@router.delete("/authors/{book_id}/{author_name}", response_model=MessageModel, responses=_DELETE_RESPONSES)
def delete_author(book_id: str, author_name: str, request: Request, lib: Library = Depends(get_library)):
    return _deleted(lib.remove_author(book_id, author_name), request)


# --- Branches ---
@router.get("/branches")
def get_branches(lib: Library = Depends(get_library)) -> List[Dict[str, Any]]:
    return lib.list_branches()


@router.post("/branches", status_code=201, response_model=CreatedModel)
def add_branch(payload: BranchIn, lib: Library = Depends(get_library)):
    return _created(lib.add_branch(payload.branch_id, payload.branch_name, payload.branch_address))


@router.delete("/branches/{branch_id}", response_model=MessageModel, responses=_DELETE_RESPONSES)
def delete_branch(branch_id: str, request: Request, lib: Library = Depends(get_library)):
    return _deleted(lib.remove_branch(branch_id), request)


# --- Copies ---
@router.get("/book_copies")
def get_book_copies(lib: Library = Depends(get_library)) -> List[Dict[str, Any]]:
    """Copies per branch with human-readable book title and branch name."""
    return lib.list_copies()


@router.post("/book_copies", status_code=201, response_model=CreatedModel)
def add_book_copies(payload: CopiesIn, lib: Library = Depends(get_library)):
    return _created(lib.add_copies(payload.no_of_copies, payload.book_id, payload.branch_id))


@router.delete("/book_copies/{book_id}/{branch_id}", response_model=MessageModel, responses=_DELETE_RESPONSES)
def delete_book_copies(book_id: str, branch_id: str, request: Request, lib: Library = Depends(get_library)):
    return _deleted(lib.remove_copies(book_id, branch_id), request)


# --- Cards ---
@router.get("/cards")
def get_cards(lib: Library = Depends(get_library)) -> List[Dict[str, Any]]:
    return lib.list_cards()


@router.post("/cards", status_code=201, response_model=CreatedModel)
def add_card(payload: CardIn, lib: Library = Depends(get_library)):
    return _created(lib.add_card(payload.card_no))


@router.delete("/cards/{card_no}", response_model=MessageModel, responses=_DELETE_RESPONSES)
def delete_card(card_no: str, request: Request, lib: Library = Depends(get_library)):
    return _deleted(lib.remove_card(card_no), request)


# --- Lendings ---
@router.get("/lendings")
def get_lendings(
    limit: Optional[int] = Query(None, ge=1, description="Maximum number of lendings, newest first"),
    lib: Library = Depends(get_library),
) -> List[Dict[str, Any]]:
    return lib.list_lendings(limit)


@router.post("/lendings", status_code=201, response_model=CreatedModel)
def add_lending(payload: LendingIn, lib: Library = Depends(get_library)):
    return _created(lib.add_lending(payload.date_out, payload.due_date, payload.book_id, payload.branch_id, payload.card_no))


@router.delete(
    "/lendings/{book_id}/{branch_id}/{card_no}/{date_out}",
    response_model=MessageModel,
    responses=_DELETE_RESPONSES,
)
def delete_lending(book_id: str, branch_id: str, card_no: str, date_out: str, request: Request,
                   lib: Library = Depends(get_library)):
    return _deleted(lib.remove_lending(book_id, branch_id, card_no, date_out), request)


# --- Dashboard ---
@router.get("/stats", response_model=StatsModel)
def get_stats(lib: Library = Depends(get_library)):
    """Totals of books, branches and cards."""
    return lib.get_statistics()


app.include_router(router)


# --- Health ---
@app.get("/health")
def health():
    """Liveness check with a quick database round trip."""
    db_ok = True
    try:
        database.query_one("SELECT 1 AS ok")
    except sqlite3.Error as e:
        logger.error(f"Health check query failed: {e}")
        db_ok = False
    pool = database.pool_status()
    return {
        "status": "healthy" if db_ok else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "db": db_ok,
        "pool": {key: pool[key] for key in ("size", "available")},
    }


# --- Static files ---
app.mount("/static", StaticFiles(directory=settings.static_dir, check_dir=False), name="static")


@app.get("/")
def read_root():
    """Serve the single-page frontend."""
    return FileResponse(f"{settings.static_dir}/index.html")
