import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from callrecon.api.router import api_router
from callrecon.config import settings
from callrecon.database import engine
from callrecon.errors import ConfigurationError, FetchError, SchemaContractError
from callrecon.middleware.logging import RequestLoggingMiddleware
from callrecon.store.schema_contract import verify_schema

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Initialize Sentry if DSN is configured
    if settings.sentry_dsn:
        try:
            import sentry_sdk
            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                traces_sample_rate=0.1,
                environment=settings.environment,
            )
            logger.info("Sentry initialized (env=%s)", settings.environment)
        except Exception as e:
            logger.warning("Failed to initialize Sentry: %s", e)

    try:
        await verify_schema(engine)
    except SchemaContractError:
        logger.error("Database schema does not satisfy the call reconciliation contract")
        raise
    except Exception as e:
        # Database unreachable at startup; /health reports it
        logger.warning("Schema contract check skipped: %s", e)

    logger.info("Starting call reconciliation engine (env=%s)", settings.environment)
    yield
    logger.info("Shutting down call reconciliation engine")
    await engine.dispose()


app = FastAPI(
    title="Call Reconciliation Engine",
    description="Matches lead-ledger and routing-ledger calls, merges payout adjustments, and syncs payouts",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(FetchError)
async def fetch_error_handler(request: Request, exc: FetchError) -> JSONResponse:
    return JSONResponse(status_code=502, content={"detail": str(exc), "source": exc.source})


app.include_router(api_router, prefix="/api")
