import logging
import re
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse
from pydantic import BaseModel, Field

from bookshelf.book import Book
from bookshelf.config import Settings, configure_logging, settings
from bookshelf.database import BookDatabase, NotFoundError, StorageError, open_database

logger = logging.getLogger(__name__)

_BOOK_ID_RE = re.compile(r"[0-9]+")
_MAX_BOOK_ID = 2 ** 63 - 1


# --- Models ---
class BookInModel(BaseModel):
    """Request body for create and update. Any ``id`` sent by the client is ignored."""

    title: str = ""
    author: str = ""
    published_date: str = Field(default="", description="Free-form text, not parsed as a date")
    description: str = ""


class BookModel(BookInModel):
    id: int
    created_by_id: str = ""


# --- Dependencies ---
def get_db(request: Request) -> BookDatabase:
    """The store opened at startup (or injected through create_app)."""
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise StorageError("get_db", "database is not open")
    return db


def parse_book_id(raw: str) -> int:
    digits = raw.lstrip("0") or "0"
    if not _BOOK_ID_RE.fullmatch(raw) or len(digits) > 19 or int(digits) > _MAX_BOOK_ID:
        raise HTTPException(status_code=400, detail=f"bad book id: {raw!r}")
    return int(digits)


def _to_model(book: Book) -> BookModel:
    return BookModel(**book.to_dict())


# --- Routes ---
router = APIRouter()


@router.get("/", include_in_schema=False)
def index():
    return RedirectResponse("/books", status_code=302)


@router.get("/healthz", response_class=PlainTextResponse)
def healthz():
    return "ok"


@router.get("/books", response_model=List[BookModel])
def list_books(db: BookDatabase = Depends(get_db)):
    """All books, ordered by title."""
    return [_to_model(b) for b in db.list_books()]


@router.get("/books/mine", response_model=List[BookModel])
def list_my_books(db: BookDatabase = Depends(get_db), x_user_id: Optional[str] = Header(default=None)):
    """Books created by the caller named in the X-User-ID header."""
    return [_to_model(b) for b in db.list_books_created_by(x_user_id or "")]


@router.post("/books", response_model=BookModel)
def create_book(
    payload: BookInModel,
    db: BookDatabase = Depends(get_db),
    x_user_id: Optional[str] = Header(default=None),
):
    book = Book(**payload.model_dump(), created_by_id=x_user_id or "")
    book_id = db.add_book(book)
    logger.info(f"Created book {book_id}")
    return _to_model(book.with_id(book_id))


@router.get("/books/{book_id}", response_model=BookModel)
def get_book(book_id: str, db: BookDatabase = Depends(get_db)):
    return _to_model(db.get_book(parse_book_id(book_id)))


# Registered before the update route, which would otherwise claim "/books/1:delete".
@router.post("/books/{book_id}:delete")
@router.delete("/books/{book_id}")
def delete_book(book_id: str, db: BookDatabase = Depends(get_db)) -> Dict[str, int]:
    parsed = parse_book_id(book_id)
    db.delete_book(parsed)
    logger.info(f"Deleted book {parsed}")
    return {"deleted": parsed}


@router.api_route("/books/{book_id}", methods=["PUT", "POST"], response_model=BookModel)
def update_book(book_id: str, payload: BookInModel, db: BookDatabase = Depends(get_db)):
    """Replace the book's fields. The creator recorded at creation is kept."""
    parsed = parse_book_id(book_id)
    existing = db.get_book(parsed)
    book = Book(id=parsed, **payload.model_dump(), created_by_id=existing.created_by_id)
    db.update_book(book)
    return _to_model(book)


# --- Error handling ---
def _log_handler_error(status_code: int, message: str, exc: Exception) -> None:
    logger.warning(
        f"Handler error: status code: {status_code}, message: {message}, underlying err: {exc!r}"
    )


async def _not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    _log_handler_error(404, "book not found", exc)
    return JSONResponse(status_code=404, content={"detail": str(exc)})


async def _storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    _log_handler_error(500, "could not access the book database", exc)
    logger.error(f"Storage failure during {exc.op}", exc_info=exc)
    # Backing-store details stay in the log.
    return JSONResponse(status_code=500, content={"detail": "could not access the book database"})


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    _log_handler_error(400, "invalid request", exc)
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


def create_app(db: Optional[BookDatabase] = None, config: Optional[Settings] = None) -> FastAPI:
    """Build the API around ``db``; without one, the configured store is opened at startup."""
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(config.log_level)
        owned = app.state.db is None
        if owned:
            app.state.db = open_database(config)
        logger.info(f"{config.app_name} ready ({type(app.state.db).__name__})")
        try:
            yield
        finally:
            # Injected stores belong to the caller.
            if owned:
                app.state.db.close()
                app.state.db = None

    app = FastAPI(title=config.app_name, lifespan=lifespan)
    app.state.db = db
    app.include_router(router)
    app.add_exception_handler(NotFoundError, _not_found_handler)
    app.add_exception_handler(StorageError, _storage_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    return app


app = create_app()
