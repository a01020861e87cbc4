"""
Recipe Acquisition Pipeline - FastAPI Application
Main entry point with REST API endpoints.
"""
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from recipe_acquisition.config import config
from recipe_acquisition.errors import RecipePipelineError
from recipe_acquisition.layers.conversion import KidConversionService
from recipe_acquisition.layers.ingestion import RecipeImportPipeline
from recipe_acquisition.models.limits import ActionType, RateLimitStatus
from recipe_acquisition.models.recipe import ImportResult, ScrapedRecipe
from recipe_acquisition.utils.logger import bind_request_context, get_logger, get_trace_id, set_trace_id

VERSION = "1.0.0"

# Initialize layers
pipeline = RecipeImportPipeline()
conversion_service = KidConversionService(pipeline.rate_limiter, pipeline.claude)

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await pipeline.close()


# Initialize FastAPI app
app = FastAPI(
    title="Recipe Acquisition Pipeline",
    description="Turns recipe page URLs into normalized, classified recipes",
    version=VERSION,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request/Response models
class ImportRequest(BaseModel):
    """Request model for recipe import."""
    url: str
    html: Optional[str] = None  # pre-fetched page from a share extension
    user_id: Optional[str] = None


class ImportResponse(ImportResult):
    trace_id: str


class ExtractRequest(BaseModel):
    url: str


class ConvertRequest(BaseModel):
    """Request model for kid-friendly conversion."""
    user_id: str
    recipe: ScrapedRecipe
    kid_age: int = Field(ge=2, le=17)
    reading_level: str = "beginner"
    allergy_flags: List[str] = Field(default_factory=list)


@app.exception_handler(RecipePipelineError)
async def pipeline_error_handler(request: Request, exc: RecipePipelineError):
    """Render pipeline errors with their recovery hints."""
    logger.warning(
        "pipeline_error",
        error=exc.message,
        code=exc.code,
        status_code=exc.status_code,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={**exc.to_dict(), "trace_id": get_trace_id()},
    )


# API Routes
@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": VERSION,
        "ai_available": pipeline.ai_cascade.is_available(),
        "environment": config.APP_ENV,
    }


@app.post("/api/import", response_model=ImportResponse)
async def import_recipe(request: ImportRequest):
    """
    Import a recipe from a URL.

    Always answers with a status (complete, needs_review or not_recipe)
    unless the page could not be fetched or the model failed.
    """
    trace_id = set_trace_id()
    bind_request_context(url=request.url, user_id=request.user_id)
    logger.info("import_request", has_html=bool(request.html))

    try:
        result = await pipeline.import_recipe(request.url, html=request.html, user_id=request.user_id)
    except RecipePipelineError:
        raise
    except Exception as e:
        logger.error("import_error", error=str(e), url=request.url)
        raise HTTPException(status_code=500, detail=str(e))

    logger.info(
        "import_completed",
        url=request.url,
        status=result.status.value,
        method=result.method,
        confidence=result.confidence,
        issues_count=len(result.issues),
    )
    return ImportResponse(**result.model_dump(), trace_id=trace_id)


@app.post("/api/extract", response_model=ScrapedRecipe)
async def extract_recipe(request: ExtractRequest):
    """Strict extraction: a validated recipe or an error."""
    set_trace_id()
    bind_request_context(url=request.url)
    logger.info("extract_request")

    try:
        return await pipeline.extract_recipe(request.url)
    except RecipePipelineError:
        raise
    except Exception as e:
        logger.error("extract_error", error=str(e), url=request.url)
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/convert")
async def convert_recipe(request: ConvertRequest):
    """Kid-friendly conversion, gated by the conversion quota."""
    trace_id = set_trace_id()
    bind_request_context(user_id=request.user_id)
    logger.info("convert_request", kid_age=request.kid_age, title=request.recipe.title[:50])

    try:
        conversion = await conversion_service.convert_recipe(
            request.user_id,
            request.recipe,
            kid_age=request.kid_age,
            reading_level=request.reading_level,
            allergy_flags=request.allergy_flags,
        )
    except RecipePipelineError:
        raise
    except Exception as e:
        logger.error("convert_error", error=str(e), user_id=request.user_id)
        raise HTTPException(status_code=500, detail=str(e))

    return {**conversion.model_dump(by_alias=True), "trace_id": trace_id}


@app.get("/api/rate-limit/{user_id}", response_model=RateLimitStatus)
async def rate_limit_status(
    user_id: str,
    action_type: ActionType = Query(ActionType.CONVERSION, description="import or conversion"),
):
    """Current rolling-window usage for a user."""
    set_trace_id()
    bind_request_context(user_id=user_id)
    return await pipeline.rate_limiter.get_status(user_id, action_type)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.HOST, port=config.PORT)
