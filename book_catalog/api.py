import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .errors import NotBorrowed, NotFound, OutOfStock
from .library import Library, seed_demo_books
from .validation import BookValidator

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)

validator = BookValidator()
library = Library()
if settings.seed_demo_data:
    seed_demo_books(library, validator)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("%s %s starting (%s)", settings.app_name, settings.app_version, settings.environment)
    yield
    logger.info("%s shutting down", settings.app_name)


app = FastAPI(title=settings.app_name, version=settings.app_version, debug=settings.debug, lifespan=lifespan)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Dependencies ---
def get_library() -> Library:
    return library


def get_validator() -> BookValidator:
    return validator


def get_caller(x_caller_id: Optional[str] = Header(default=None)) -> str:
    """Caller context for circulation. There is no identity model; the header only scopes loans."""
    return (x_caller_id or "").strip() or settings.default_caller


# --- Errors ---
def error_envelope(messages: List[str]) -> Dict[str, Any]:
    return {
        "success": False,
        "errorComponent": {"type": "ErrorDisplay", "props": {"messages": messages}},
    }


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    messages = exc.detail if isinstance(exc.detail, list) else [str(exc.detail)]
    return JSONResponse(status_code=exc.status_code, content=error_envelope(messages),
                        headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def request_error_handler(request: Request, exc: RequestValidationError):
    """Malformed requests (a body that is not a JSON object, say) get the same envelope as a 400."""
    messages = []
    for error in exc.errors():
        where = ".".join(str(part) for part in error.get("loc", ()))
        msg = error.get("msg", "Invalid request")
        messages.append(f"{where}: {msg}" if where else msg)
    logger.info("Rejected malformed request to %s: %s", request.url.path, messages)
    return JSONResponse(status_code=400, content=error_envelope(messages or ["Invalid request"]))


# --- Models ---
class BookModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    author: str
    isbn: str = Field(alias="ISBN")
    published_date: str = Field(alias="publishedDate")
    genre: str = ""
    copies_available: int = Field(alias="copiesAvailable")


class LoanModel(BookModel):
    borrowed_date: str = Field(alias="borrowedDate")


class MessageModel(BaseModel):
    success: bool = True
    message: str


class StatsModel(BaseModel):
    total_books: int
    unique_authors: int
    copies_available: int
    active_loans: int
    borrowers: int
    genres: Dict[str, int]


# --- Health ---
@app.get("/health")
def health(lib: Library = Depends(get_library)):
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "total_books": len(lib.list_books()),
        "version": settings.app_version,
    }


# --- Books ---
@app.get("/api/books", response_model=List[BookModel])
def list_books(
    q: Optional[str] = Query(None, description="Match title, author or ISBN"),
    genre: Optional[str] = Query(None, description="Exact genre label"),
    lib: Library = Depends(get_library),
):
    """List the catalog, optionally filtered."""
    books = lib.search_books(q or "", genre or "") if (q or genre) else lib.list_books()
    return [BookModel(**b.to_dict()) for b in books]


@app.get("/api/books/{book_id}", response_model=BookModel)
def get_book(book_id: str, lib: Library = Depends(get_library)):
    try:
        return BookModel(**lib.get_book(book_id).to_dict())
    except NotFound as e:
        raise HTTPException(status_code=404, detail=e.messages)


@app.post("/api/books", response_model=BookModel, status_code=201)
def add_book(
    payload: Dict[str, Any] = Body(...),
    lib: Library = Depends(get_library),
    engine: BookValidator = Depends(get_validator),
):
    """Validate and add a book. Any ``id`` in the body is ignored."""
    result = engine.validate(payload)
    if not result.valid:
        logger.info("Rejected new book: %s", result.errors)
        raise HTTPException(status_code=400, detail=result.errors)
    book = lib.add_book(result.record)
    return BookModel(**book.to_dict())


@app.put("/api/books/{book_id}", response_model=BookModel)
def update_book(
    book_id: str,
    payload: Dict[str, Any] = Body(...),
    lib: Library = Depends(get_library),
    engine: BookValidator = Depends(get_validator),
):
    """Revalidate and replace a book; the id in the path wins."""
    try:
        lib.get_book(book_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=e.messages)

    result = engine.validate(payload)
    if not result.valid:
        logger.info("Rejected update of %s: %s", book_id, result.errors)
        raise HTTPException(status_code=400, detail=result.errors)
    try:
        book = lib.update_book(book_id, result.record)
    except NotFound as e:
        # deleted between the two calls
        raise HTTPException(status_code=404, detail=e.messages)
    return BookModel(**book.to_dict())


@app.delete("/api/books/{book_id}", response_model=MessageModel)
def delete_book(book_id: str, lib: Library = Depends(get_library)):
    try:
        lib.delete_book(book_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=e.messages)
    return MessageModel(message="Book deleted successfully")


# --- Circulation ---
@app.post("/api/books/{book_id}/borrow", response_model=LoanModel)
def borrow_book(book_id: str, lib: Library = Depends(get_library), caller: str = Depends(get_caller)):
    try:
        loan = lib.borrow(book_id, caller)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=e.messages)
    except OutOfStock as e:
        raise HTTPException(status_code=400, detail=e.messages)
    return LoanModel(**loan.to_dict())


@app.post("/api/books/{book_id}/return", response_model=MessageModel)
def return_book(book_id: str, lib: Library = Depends(get_library), caller: str = Depends(get_caller)):
    try:
        lib.return_book(book_id, caller)
    except NotBorrowed as e:
        raise HTTPException(status_code=404, detail=e.messages)
    return MessageModel(message="Book returned successfully")


@app.get("/api/user/books", response_model=List[LoanModel])
def list_user_books(lib: Library = Depends(get_library), caller: str = Depends(get_caller)):
    return [LoanModel(**loan.to_dict()) for loan in lib.list_loans(caller)]


# --- Catalog info ---
@app.get("/api/genres", response_model=List[str])
def list_genres(lib: Library = Depends(get_library)):
    return lib.list_genres()


@app.get("/api/stats", response_model=StatsModel)
def get_stats(lib: Library = Depends(get_library)):
    return StatsModel(**lib.get_statistics())
