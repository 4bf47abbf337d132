from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import CORS_ORIGINS, DATABASE_URL, PORT
from database import create_tables
from errors import AppError
from routers import auth, categories, category_rules, credit_card, transactions
from security.rate_limiter import RateLimiter
from utils.logger import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables()
    logger.info(f"Database ready ({'sqlite fallback' if DATABASE_URL.startswith('sqlite') else 'configured url'})")
    yield


# ----------------------------------------------------------------------------
# App setup
# ----------------------------------------------------------------------------
app = FastAPI(title="Personal Finance API", lifespan=lifespan)
app.state.login_limiter = RateLimiter()

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message, "code": exc.code})


# credit card routes first: their literal paths share the /transactions prefix
app.include_router(auth.router)
app.include_router(credit_card.router)
app.include_router(transactions.router)
app.include_router(categories.router)
app.include_router(category_rules.router)


# ----------------------------------------------------------------------------
# Health
# ----------------------------------------------------------------------------
@app.get("/")
async def read_root():
    return {"message": "Personal Finance Backend is running"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=PORT)
