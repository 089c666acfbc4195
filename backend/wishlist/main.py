import logging
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from strawberry.fastapi import GraphQLRouter
from wishlist import __version__
from wishlist.database import init_db, async_session_maker
from wishlist.config import get_settings
from wishlist.core.errors import (
    AlreadyClaimed,
    Forbidden,
    InvalidClaim,
    NotFound,
    PartialFailure,
    ValidationError,
    WishlistError,
)
from wishlist.graphql.schema import schema
from wishlist.api.auth import router as auth_router
from wishlist.api.items import router as items_router
from wishlist.api.collections import router as collections_router
from wishlist.services.auth import AuthService
from wishlist.services.wishlist_service import get_wishlist_service

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    NotFound: 404,
    InvalidClaim: 400,
    AlreadyClaimed: 409,
    Forbidden: 403,
    ValidationError: 422,
    PartialFailure: 207,
}


async def get_context(request: Request):
    """Build GraphQL context with optional authenticated user"""
    user = None
    auth_header = request.headers.get("Authorization")

    if auth_header and auth_header.startswith("Bearer "):
        token = auth_header[7:]
        async with async_session_maker() as db:
            user = await AuthService(db).get_current_user(token)

    return {"request": request, "user": user, "service": get_wishlist_service()}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    await init_db()
    logger.info("Database initialized")

    yield

    get_wishlist_service().registry.clear()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Wishlist API",
    description="Shared wishlists with claims, collections and search",
    version=__version__,
    lifespan=lifespan,
)

# In production, set CORS_ORIGINS env var to your frontend URL
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(WishlistError)
async def wishlist_error_handler(request: Request, exc: WishlistError):
    status_code = next(
        (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)),
        400,
    )
    logger.info("%s %s -> %s %s: %s", request.method, request.url.path, status_code, exc.code, exc.detail)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(exc.to_dict()))


# REST API routers
app.include_router(auth_router)
app.include_router(items_router)
app.include_router(collections_router)

# GraphQL endpoint with auth context
graphql_app = GraphQLRouter(schema, context_getter=get_context)
app.include_router(graphql_app, prefix="/graphql")


@app.get("/")
async def root():
    return {
        "message": "Wishlist API",
        "version": __version__,
        "docs": "/docs",
        "graphql": "/graphql",
        "endpoints": {
            "auth": "/auth",
            "items": "/wishlists/{owner_id}/items",
            "collections": "/wishlists/{owner_id}/collections",
        }
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
