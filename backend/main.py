"""Main FastAPI application module."""

from typing import Any, Dict, Optional
import traceback

from fastapi import FastAPI, Query, Request, Response
from fastapi.responses import JSONResponse

# Import configuration
import config

# Import services
from services.errors import PipelineError
from services.pipeline import RecommendationPipeline, build_pipelines

# Import database components
from database.connection import get_engine, init_db

# Import utilities
from utils import _cors_headers


app = FastAPI(
    title="AI Stock Ratings",
    description="Cached, AI-generated buy/hold/sell recommendations built from market data.",
    version="0.1.0",
)

# Clients and pipelines are built once per process; missing API keys fail here
PIPELINES: Dict[str, RecommendationPipeline] = build_pipelines(get_engine())


@app.middleware("http")
async def cors_middleware(request: Request, call_next):
    headers = _cors_headers(request.headers.get("origin"), config.ALLOWED_ORIGINS, config.PRIMARY_ORIGIN)
    # Preflight: answer directly with the CORS headers and no body
    if request.method == "OPTIONS":
        return Response(status_code=204, headers=headers)
    response = await call_next(request)
    for k, v in headers.items():
        response.headers[k] = v
    return response


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.on_event("startup")
async def startup_event():
    """Initialize application on startup."""
    print("🚀 Application starting up...")
    try:
        init_db()
    except Exception as e:
        print(f"⚠️ DB init failed: {e}")
    print(f"✅ Pipelines ready: {', '.join(sorted(PIPELINES))}")


def _serve(variant: str, symbol: Optional[str]) -> Dict[str, Any]:
    try:
        return PIPELINES[variant].run(symbol)
    except PipelineError as e:
        if e.status_code >= 500:
            print(f"❌ {variant} failed for {symbol}: {type(e).__name__}: {e.message}")
        raise
    except Exception as e:
        print(f"❌ {variant} crashed for {symbol}: {type(e).__name__}: {e}")
        traceback.print_exc()
        raise PipelineError(str(e)) from e


@app.get("/")
def root():
    return {"ok": True, "endpoints": sorted(f"/{name}" for name in PIPELINES)}


@app.get("/ai-rating")
def ai_rating(symbol: Optional[str] = Query(None, description="Ticker symbol, e.g. AAPL")):
    return _serve("ai-rating", symbol)


@app.get("/gemini-ai-rating")
def gemini_ai_rating(symbol: Optional[str] = Query(None, description="Ticker symbol, e.g. AAPL")):
    return _serve("gemini-ai-rating", symbol)


@app.get("/ai-prediction")
def ai_prediction(symbol: Optional[str] = Query(None, description="Ticker symbol, e.g. AAPL")):
    return _serve("ai-prediction", symbol)
