import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from promptmarket.config import settings
from promptmarket.database import create_db_and_tables
from promptmarket.errors import MarketplaceError, PreconditionFailed
from promptmarket.routes import (
    admin,
    auth,
    cart,
    categories,
    notifications,
    payments,
    payouts,
    prompts,
    purchases,
    reviews,
)

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Run DB creation ONLY in local
    if settings.ENV == "local":
        create_db_and_tables()
    yield

app = FastAPI(title="PromptMarket API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    if not isinstance(exc, PreconditionFailed) and exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(prompts.router, prefix="/prompts", tags=["Prompts"])
app.include_router(categories.router, tags=["Catalog"])
app.include_router(cart.router, prefix="/cart", tags=["Cart"])
app.include_router(purchases.router, prefix="/purchases", tags=["Purchases"])
app.include_router(payments.router, prefix="/payments", tags=["Payments"])
app.include_router(payouts.router, prefix="/payouts", tags=["Payouts"])
app.include_router(reviews.router, prefix="/reviews", tags=["Reviews"])
app.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
app.include_router(admin.router, prefix="/admin", tags=["Admin Endpoints"])


@app.get("/")
def root():
    return {"message": f"{settings.STORE_NAME} API is running"}
