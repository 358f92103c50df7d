"""
HTTP routes for the Personal Finance API.

Handlers only check that required inputs are present, call a repository or
service, and shape the JSON body. Status codes come from the exception
handlers registered in create_app().
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo.errors import PyMongoError

from config import Settings
from database import DocumentStore
from errors import DomainError, InternalError, UnauthorizedError, ValidationError
from repositories import TransactionRepository, UserRepository
from schemas import AuthResponse, TokenClaims, UserView
from security import PasswordHasher, TokenError, TokenService

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def _error(status_code: int, message: str, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message}, headers=headers)


def _require(body: Dict[str, Any], *fields: str) -> None:
    missing = [name for name in fields if body.get(name) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


# Dependencies

def get_users(request: Request) -> UserRepository:
    return request.app.state.users


def get_transactions(request: Request) -> TransactionRepository:
    return request.app.state.transactions


def get_token_service(request: Request) -> TokenService:
    return request.app.state.tokens


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_current_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    tokens: TokenService = Depends(get_token_service),
) -> TokenClaims:
    try:
        return tokens.verify(credentials.credentials if credentials else None)
    except TokenError as exc:
        logger.warning("Rejected bearer token (%s)", exc.reason)
        raise


def _auth_response(message: str, user: UserView, tokens: TokenService) -> Dict[str, Any]:
    token = tokens.issue(user.id, user.email)
    return jsonable_encoder(AuthResponse(message=message, token=token, user=user))


def create_app(settings: Optional[Settings] = None, store: Optional[DocumentStore] = None) -> FastAPI:
    """Build the ASGI app. Raises ConfigError when the settings are unusable."""
    settings = (settings or Settings.from_env()).check()
    tokens = TokenService.from_settings(settings)
    store = store or DocumentStore.from_settings(settings)
    UserRepository.declare_indexes(store)
    TransactionRepository.declare_indexes(store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        store.close()

    app = FastAPI(title="Personal Finance API", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.tokens = tokens
    app.state.users = UserRepository(store, PasswordHasher(settings.bcrypt_rounds))
    app.state.transactions = TransactionRepository(store)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_error_handlers(app)
    _register_routes(app)
    return app


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthorizedError) else None
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
            return _error(exc.status_code, "Internal server error")
        return _error(exc.status_code, exc.message, headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid request body")

    @app.exception_handler(PyMongoError)
    async def store_error_handler(request: Request, exc: PyMongoError):
        logger.exception("Database error on %s %s", request.method, request.url.path)
        return await domain_error_handler(request, InternalError(type(exc).__name__))

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def _register_routes(app: FastAPI) -> None:
    # Public endpoints
    @app.get("/")
    def root():
        return {"message": "Personal Finance API is running"}

    @app.get("/health")
    def health(request: Request):
        store: DocumentStore = request.app.state.store
        response = {"backend": "running", "database": "unavailable", "database_name": store.name}
        try:
            store.ping()
            response["database"] = "connected"
        except Exception:
            logger.exception("Health check could not reach the database")
        return response

    # Auth endpoints
    @app.post("/auth/register", status_code=status.HTTP_201_CREATED)
    def register(
        body: Dict[str, Any] = Body(...),
        users: UserRepository = Depends(get_users),
        tokens: TokenService = Depends(get_token_service),
    ):
        _require(body, "email", "password", "name")
        user = users.register(body["email"], body["password"], body["name"])
        return _auth_response("User registered successfully", user, tokens)

    @app.post("/auth/login")
    def login(
        body: Dict[str, Any] = Body(...),
        users: UserRepository = Depends(get_users),
        tokens: TokenService = Depends(get_token_service),
    ):
        _require(body, "email", "password")
        user = users.authenticate(body["email"], body["password"])
        logger.info("User %s logged in", user.id)
        return _auth_response("Login successful", user, tokens)

    @app.get("/auth/me")
    def me(claims: TokenClaims = Depends(get_current_claims), users: UserRepository = Depends(get_users)):
        return {"user": jsonable_encoder(users.find_by_id(claims.user_id))}

    # Transaction endpoints
    @app.get("/transactions")
    def list_transactions(transactions: TransactionRepository = Depends(get_transactions)):
        return {"success": True, "data": jsonable_encoder(transactions.list())}

    @app.post("/transactions", status_code=status.HTTP_201_CREATED)
    def create_transaction(
        body: Dict[str, Any] = Body(...),
        transactions: TransactionRepository = Depends(get_transactions),
    ):
        _require(body, "type", "amount", "category")
        return {"success": True, "data": jsonable_encoder(transactions.create(body))}

    @app.delete("/transactions")
    def delete_all_transactions(
        transactions: TransactionRepository = Depends(get_transactions),
        settings: Settings = Depends(get_settings),
    ):
        deleted = transactions.delete_all(confirm=settings.allow_delete_all)
        return {"success": True, "message": "All transactions deleted", "deletedCount": deleted}

    @app.patch("/transactions")
    def bulk_update_transactions(
        body: Dict[str, Any] = Body(...),
        transactions: TransactionRepository = Depends(get_transactions),
    ):
        ids = body.get("ids")
        update = body.get("update")
        if not isinstance(ids, list) or not isinstance(update, dict):
            raise ValidationError("Invalid PATCH request format")
        modified = transactions.bulk_update(ids, update)
        return {"success": True, "message": f"Updated {modified} transactions", "modifiedCount": modified}

    @app.get("/transactions/summary")
    def transactions_summary(transactions: TransactionRepository = Depends(get_transactions)):
        return {"success": True, "data": transactions.summary().model_dump()}

    @app.put("/transactions/{transaction_id}")
    def update_transaction(
        transaction_id: str,
        body: Dict[str, Any] = Body(...),
        transactions: TransactionRepository = Depends(get_transactions),
    ):
        return {"success": True, "data": jsonable_encoder(transactions.update(transaction_id, body))}

    @app.delete("/transactions/{transaction_id}")
    def delete_transaction(transaction_id: str, transactions: TransactionRepository = Depends(get_transactions)):
        return {"success": True, "data": jsonable_encoder(transactions.delete(transaction_id))}
