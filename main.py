import os
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from dotenv import load_dotenv
import logging

from nlq_engine.presentation.api.v1 import query, schema, health, documents
from nlq_engine.presentation.api.dependencies import (
    get_settings,
    get_vector_store,
    get_embedding_service
)

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO if not os.getenv("DEBUG", "False").lower() == "true" else logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Starting hybrid query engine...")

    if os.getenv("SKIP_WARMUP", "False").lower() != "true":
        try:
            settings = get_settings()
            logger.info(
                f"Cache TTL {settings.cache_ttl_seconds}s, match threshold {settings.match_threshold}, "
                f"SQL fallback {settings.sql_fallback_policy.value}"
            )

            get_vector_store()
            logger.info("Vector store initialized")

            get_embedding_service()
            logger.info("Embedding model loaded")

        except Exception as e:
            logger.error(f"Failed to initialize components: {e}")
            raise

    yield

    logger.info("Shutting down hybrid query engine...")


# Create FastAPI application
app = FastAPI(
    title=os.getenv("APP_NAME", "NLQ Engine"),
    description="Hybrid natural-language query engine over employee data and documents",
    version=os.getenv("APP_VERSION", "1.0.0"),
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure properly in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, prefix="/api/v1", tags=["Health"])
app.include_router(schema.router, prefix="/api/v1/schema", tags=["Schema"])
app.include_router(query.router, prefix="/api/v1/query", tags=["Query"])
app.include_router(documents.router, prefix="/api/v1/documents", tags=["Documents"])


# Root endpoint
@app.get("/")
async def root():
    return {
        "name": os.getenv("APP_NAME", "NLQ Engine"),
        "version": os.getenv("APP_VERSION", "1.0.0"),
        "docs": "/docs",
        "redoc": "/redoc"
    }


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error occurred"}
    )


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=os.getenv("DEBUG", "False").lower() == "true"
    )
