"""FastAPI main application."""

import logging

from typing import Any, Dict, List, Optional, Tuple

import structlog

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, model_validator

from ..config import settings
from ..core.bounds import Bounds
from ..core.generation import GenerationOptions, generate

# Configure logging
logging.basicConfig(format="%(message)s", level=settings.log_level.upper())

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer()
        if settings.log_format == "json"
        else structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

# Initialize FastAPI app
app = FastAPI(
    title="Place Network API",
    description="Procedural road networks between real places",
    version="0.1.0"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request/Response models
class GenerationRequest(BaseModel):
    """Request to generate places and roads for a region."""

    west: float = Field(..., ge=-180, le=180, description="West longitude")
    south: float = Field(..., ge=-90, le=90, description="South latitude")
    east: float = Field(..., ge=-180, le=180, description="East longitude")
    north: float = Field(..., ge=-90, le=90, description="North latitude")
    zoom: float = Field(..., ge=0, le=22, description="Map zoom level")
    options: Optional[GenerationOptions] = Field(None, description="Generation options override")

    @model_validator(mode="after")
    def check_extent(self):
        if self.east <= self.west or self.north <= self.south:
            raise ValueError("Bounds must have positive width and height")
        return self


class PlaceResponse(BaseModel):
    id: str
    name: str
    name_display: str
    category: str
    position: float
    lat: float
    lng: float


class PathResponse(BaseModel):
    segment: Tuple[int, int]
    start: Tuple[float, float] = Field(description="[lng, lat] of the first node")
    end: Tuple[float, float] = Field(description="[lng, lat] of the second node")


class GenerationResponse(BaseModel):
    id: str
    result: str
    error_message: str
    places: List[PlaceResponse]
    paths: List[PathResponse]
    lines_geojson: Dict[str, Any]


# API endpoints
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Place Network API",
        "version": "0.1.0",
        "status": "running"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    groups = settings.source_groups()
    if not groups:
        logger.error("Health check failed", error="no place sources configured")
        raise HTTPException(status_code=503, detail="Service unhealthy")
    return {"status": "healthy", "source_groups": len(groups)}


@app.post("/generate", response_model=GenerationResponse)
async def generate_network(request: GenerationRequest):
    """
    Generate places and roads for the requested region.

    A region without places is not an HTTP error: it returns result "error"
    with a user-facing message.
    """
    logger.info("Generation requested", request=request.model_dump(exclude={"options"}))

    bounds = Bounds.from_wsen(request.west, request.south, request.east, request.north)
    options = request.options or GenerationOptions()

    result = await generate(bounds, request.zoom, options, settings.source_groups())

    return GenerationResponse(
        id=result.id,
        result=result.result,
        error_message=result.error_message,
        places=[
            PlaceResponse(
                id=place.id,
                name=place.name,
                name_display=place.name_display,
                category=place.category.value,
                position=place.position,
                lat=place.coordinates.lat,
                lng=place.coordinates.lng,
            )
            for place in result.places
        ],
        paths=[
            PathResponse(
                segment=path.segment,
                start=(path.line.start.lng, path.line.start.lat),
                end=(path.line.end.lng, path.line.end.lat),
            )
            for path in result.paths
        ],
        lines_geojson=result.lines_geojson(),
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
