"""FastAPI application entry point"""

from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
import logging

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from contribconnect.config.settings import settings
from contribconnect.errors import InvalidInputError
from contribconnect.models.recommendation import OutcomeStatus
from contribconnect.orchestrator import RecommendationOrchestrator

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Global orchestrator instance
orchestrator = RecommendationOrchestrator()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await orchestrator.aclose()


app = FastAPI(
    title=settings.APP_NAME,
    description="Open-source project recommendations from technical and cultural signals",
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure properly in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class RecommendationRequest(BaseModel):
    query: str
    technical_filters: Dict[str, Any] = Field(default_factory=dict)
    use_cultural_insights: bool = True
    github_username: Optional[str] = None


def get_orchestrator() -> RecommendationOrchestrator:
    return orchestrator


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "endpoints": {
            "health": "/api/health",
            "recommendations": "POST /api/recommendations",
        }
    }


@app.get("/api/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "contributor-connect",
        "version": settings.APP_VERSION
    }


@app.post("/api/recommendations")
async def recommend(
    request: RecommendationRequest,
    pipeline: RecommendationOrchestrator = Depends(get_orchestrator),
):
    """Recommend repositories for a free-text request"""
    try:
        outcome = await pipeline.generate_recommendations(
            request.query,
            request.technical_filters,
            use_cultural_insights=request.use_cultural_insights,
            github_username=request.github_username,
        )
    except InvalidInputError as e:
        raise HTTPException(status_code=422, detail=str(e))

    if outcome.status == OutcomeStatus.UPSTREAM_UNAVAILABLE:
        return JSONResponse(status_code=503, content=outcome.to_dict())
    return outcome.to_dict()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "contribconnect.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
