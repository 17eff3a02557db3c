import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse
from datetime import datetime

from .config import settings
from .api.routes import router
from .api.middleware import setup_middleware
from .core.engine import get_engine
from .core.exceptions import (
    InvalidAnswerError, InvariantViolation, QuestionNotFound, ArchetypeNotFound
)

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Skin Archetype Consultation service...")

    try:
        # Loads and validates the question bank; DataIntegrityError aborts startup
        engine = get_engine()
        logger.info(f"Question bank validated: {engine.bank.summary()}")
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise

    yield

    logger.info("Shutting down...")


app = FastAPI(
    title="Skin Archetype Consultation",
    description="Adaptive skin questionnaire that classifies users into one of 12 archetypes",
    version="1.0.0",
    lifespan=lifespan
)

setup_middleware(app)

app.include_router(router, prefix="/api/v1", tags=["Consultation"])


@app.get("/", response_class=HTMLResponse)
async def root():
    return HTMLResponse(content="""
    <!DOCTYPE html>
    <html>
    <head>
        <title>Skin Archetype Consultation</title>
        <style>
            body { font-family: Arial, sans-serif; max-width: 800px; margin: 0 auto; padding: 20px; }
            .header { background: linear-gradient(135deg, #f6d365 0%, #fda085 100%); color: white; padding: 20px; border-radius: 10px; }
            .endpoint { background: #f8f9fa; padding: 10px; margin: 5px 0; border-radius: 3px; }
        </style>
    </head>
    <body>
        <div class="header">
            <h1>Skin Archetype Consultation</h1>
            <p>Answer a few questions, find your skin archetype</p>
        </div>
        <h2>API Endpoints</h2>
        <div class="endpoint"><strong>POST</strong> /api/v1/sessions - Start a consultation</div>
        <div class="endpoint"><strong>POST</strong> /api/v1/sessions/{id}/answers - Answer the pending question</div>
        <div class="endpoint"><strong>POST</strong> /api/v1/consultation/classify - Classify an answer list</div>
        <div class="endpoint"><strong>GET</strong> /api/v1/archetypes - List archetypes</div>
        <p><a href="/docs">Interactive API Documentation</a> | <a href="/api/v1/health">Health Check</a></p>
    </body>
    </html>
    """)


@app.exception_handler(InvalidAnswerError)
async def invalid_answer_handler(request: Request, exc: InvalidAnswerError):
    logger.warning(f"Rejected answer: {exc}")
    return JSONResponse(status_code=400, content=exc.to_dict())


@app.exception_handler(QuestionNotFound)
@app.exception_handler(ArchetypeNotFound)
async def not_found_handler(request: Request, exc: KeyError):
    return JSONResponse(
        status_code=404,
        content={"error": "not_found", "message": f"Unknown id: {exc.args[0] if exc.args else ''}"}
    )


@app.exception_handler(InvariantViolation)
async def invariant_violation_handler(request: Request, exc: InvariantViolation):
    logger.error(f"Invariant violation: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "invariant_violation",
            "message": str(exc),
            "timestamp": datetime.now().isoformat()
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "timestamp": datetime.now().isoformat()
        }
    )
