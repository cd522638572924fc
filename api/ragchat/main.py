import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, Header, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel

from .datasets import DatasetStore
from .db import Database
from .errors import (AccessDeniedError, AuthenticationError, EmbeddingError, RagChatError,
                     ServiceError, ValidationError)
from .identifiers import DatasetName
from .ingest import TEXT_EXT, import_text
from .llm import FALLBACK_ANSWER, build_completer, build_embedder
from .retrieval import build_prompt, retrieve_context
from .settings import Settings, settings as default_settings
from .users import AppUser, UserRepository

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything a request needs, built once by the app factory."""
    settings: Settings
    db: Database
    users: UserRepository
    datasets: DatasetStore
    embedder: object
    completer: object


def build_services(settings: Settings) -> Services:
    db = Database(settings.dsn, settings.pg_pool_min_size, settings.pg_pool_max_size)
    return Services(
        settings=settings,
        db=db,
        users=UserRepository(db, settings.default_access_level),
        datasets=DatasetStore(db, settings.embedding_dimensions),
        embedder=build_embedder(settings),
        completer=build_completer(settings),
    )


class HistoryItem(BaseModel):
    sender: str
    text: str


class ChatRequest(BaseModel):
    query: str = ""
    datasetName: str = ""
    history: List[HistoryItem] = []


class ChatResponse(BaseModel):
    answer: str
    datasetUsed: str


class ImportResponse(BaseModel):
    message: str
    dataset: str
    chunksProcessedAndStored: int
    chunksFailed: int


# ==== Dependencies ====

def get_services(request: Request) -> Services:
    return request.app.state.services


def get_current_user(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    x_user_email: Optional[str] = Header(default=None, alias="X-User-Email"),
    services: Services = Depends(get_services),
) -> AppUser:
    if not x_user_id:
        raise AuthenticationError("Unauthorized. Please sign in.")
    try:
        return services.users.get_or_create(x_user_id, x_user_email)
    except RagChatError:
        raise
    except Exception as e:
        logger.exception("Failed to get or create app user")
        raise ServiceError("Error processing your user account.") from e


def require_access(user: AppUser = Depends(get_current_user),
                   services: Services = Depends(get_services)) -> AppUser:
    if user.access_level not in services.settings.allowed_access_levels:
        logger.info("Access DENIED for user %s. Current access level: %s",
                    user.external_user_id, user.access_level)
        raise AccessDeniedError(
            "Access Denied. Your account is not approved or lacks permission for this feature.")
    logger.info("Access GRANTED for user %s, access level %s",
                user.external_user_id, user.access_level)
    return user


# ==== App ====

def create_app(services: Optional[Services] = None, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or (services.settings if services else default_settings)
    logging.basicConfig(level=settings.log_level,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.services is None
        if owned:
            app.state.services = build_services(settings)
            app.state.services.db.open()
            app.state.services.db.ensure_app_schema()
        try:
            yield
        finally:
            if owned:
                app.state.services.db.close()

    app = FastAPI(title="RAG Chat", default_response_class=ORJSONResponse, lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RagChatError)
    async def handle_ragchat_error(request: Request, exc: RagChatError):
        return ORJSONResponse(exc.to_dict(), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def handle_bad_request(request: Request, exc: RequestValidationError):
        return ORJSONResponse({"error": "Invalid request body.", "details": str(exc)}, status_code=400)

    register_routes(app)
    return app


def register_routes(app: FastAPI):

    @app.get("/health")
    def health(services: Services = Depends(get_services)):
        # quick DB ping
        try:
            services.db.ping()
        except Exception as e:
            return {"ok": False, "error": str(e)}
        return {"ok": True}

    @app.get("/api/me")
    def me(user: AppUser = Depends(get_current_user)):
        return {"userId": user.external_user_id, "email": user.email,
                "accessLevel": user.access_level}

    @app.get("/api/datasets")
    def list_datasets(user: AppUser = Depends(require_access),
                      services: Services = Depends(get_services)):
        try:
            return services.datasets.list_datasets()
        except Exception as e:
            logger.exception("Database query error in /api/datasets")
            raise ServiceError("Failed to fetch datasets.", details=str(e)) from e

    @app.post("/api/import", response_model=ImportResponse)
    def import_data(
        datasetName: Optional[str] = Form(default=None),
        text: Optional[str] = Form(default=None),
        file: Optional[UploadFile] = File(default=None),
        user: AppUser = Depends(require_access),
        services: Services = Depends(get_services),
    ):
        dataset = DatasetName(datasetName or "")

        if file is not None and file.filename:
            ext = file.filename.rsplit(".", 1)[-1].lower() if "." in file.filename else ""
            if f".{ext}" not in TEXT_EXT:
                raise ValidationError(f"Unsupported file type: {ext}. Please use .txt or .md.")
            content = file.file.read().decode("utf-8", errors="ignore")
        elif text and text.strip():
            content = text
        else:
            raise ValidationError("No file or text content provided.")
        if not content.strip():
            raise ValidationError("Content to process is empty.")

        try:
            services.datasets.ensure_dataset(dataset)
        except Exception as e:
            logger.exception('Failed to set up dataset "%s"', dataset)
            raise ServiceError("Failed to import data.", details=str(e)) from e

        result = import_text(services.datasets, services.embedder, dataset, content,
                             services.settings.chunk_size)
        if result.succeeded == 0 and result.total > 0:
            raise ServiceError("Failed to process and store any content.")

        return ImportResponse(
            message=(f'Import process finished for dataset "{dataset}". Successfully processed '
                     f"and stored: {result.succeeded} chunk(s). Failed operations: "
                     f"{result.failed} chunk(s)."),
            dataset=str(dataset),
            chunksProcessedAndStored=result.succeeded,
            chunksFailed=result.failed,
        )

    @app.post("/api/chat", response_model=ChatResponse)
    def chat(req: ChatRequest, user: AppUser = Depends(require_access),
             services: Services = Depends(get_services)):
        if not req.query.strip():
            raise ValidationError("Query is required.")
        dataset = DatasetName(req.datasetName)
        logger.info('Chat: dataset "%s", query of %d chars', dataset, len(req.query))

        cfg = services.settings
        try:
            context = retrieve_context(services.datasets, services.embedder, dataset, req.query,
                                       limit=cfg.retrieval_limit,
                                       max_distance=cfg.retrieval_max_distance)
        except EmbeddingError as e:
            logger.error("Failed to generate query embedding: %s", e.details or e.message)
            raise EmbeddingError("Failed to process query embedding.",
                                 details=e.details or e.message) from e
        except Exception as e:
            logger.exception("Failed to retrieve context from database")
            raise ServiceError("Failed to retrieve context from database.", details=str(e)) from e

        prompt = build_prompt(req.query, context, [h.model_dump() for h in req.history])

        answer = FALLBACK_ANSWER
        try:
            reply = services.completer.complete(prompt)
            if reply:
                answer = reply
            else:
                logger.warning("LLM returned empty content, using default message.")
        except RagChatError as e:
            logger.error("Error calling LLM: %s", e.details or e.message)
            answer = ("Sorry, there was an error communicating with the AI. "
                      f"({e.details or e.message})")

        return ChatResponse(answer=answer, datasetUsed=str(dataset))


app = create_app()
