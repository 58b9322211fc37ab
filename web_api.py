"""FastAPI scrape backend for the layer-sync plugin.

Endpoints:
    GET  /api/health  liveness check
    POST /api/scrape  run the extraction pipeline for one URL

Input errors answer 400 with ``{success: false, error}``; pipeline results
answer 200 or 500 depending on ``success``.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict

from fastapi import Body, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from layersync import __version__
from layersync.config import Config, configure_logging, load_config
from layersync.core.errors import ScrapeInputError
from layersync.core.scraper import ScrapePipeline, validate_request
from layersync.services.browser_pool import BrowserPool

SERVICE_NAME = "layersync-scrape-api"


@asynccontextmanager
async def lifespan(app: FastAPI):
    cfg = get_config()
    logger.info(f"[API] 🚀 {SERVICE_NAME} {__version__}, browser headless={cfg.browser.headless}")
    yield
    await BrowserPool.shutdown()


app = FastAPI(title="layer-sync scrape API", version=__version__, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


@lru_cache()
def get_config() -> Config:
    """Process-wide configuration, built from the environment on first request."""
    return load_config()


def get_pipeline(cfg: Config = Depends(get_config)) -> ScrapePipeline:
    return ScrapePipeline(cfg)


@app.get("/api/health")
async def api_health() -> Dict[str, Any]:
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
        "service": SERVICE_NAME,
    }


@app.post("/api/scrape")
async def api_scrape(
    payload: Any = Body(default=None),
    cfg: Config = Depends(get_config),
    pipeline: ScrapePipeline = Depends(get_pipeline),
) -> JSONResponse:
    try:
        request = validate_request(payload, cfg)
    except ScrapeInputError as exc:
        logger.info(f"[API] rejected request: {exc}")
        return JSONResponse({"success": False, "error": str(exc)}, status_code=400)

    logger.info(f"[API] 🌐 Scraping: {request.url} (mode={request.options.extraction_mode.value})")
    try:
        response = await pipeline.run(request)
    except Exception as exc:  # noqa: BLE001
        logger.exception(f"[API] scrape failed: {exc}")
        message = str(exc) or "An unexpected error occurred"
        return JSONResponse(
            {"success": False, "error": message, "url": request.url, "results": [], "errors": [message]},
            status_code=500,
        )

    logger.info(
        f"[API] {'✅' if response.success else '❌'} {request.url[:80]} "
        f"mode={response.extraction_mode} results={len(response.results)} total={response.timing.total}ms"
    )
    return JSONResponse(response.to_dict(), status_code=200 if response.success else 500)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "no-referrer"
    return response


if __name__ == "__main__":
    import uvicorn

    # file logging for troubleshooting (logs/app.log)
    configure_logging()
    uvicorn.run("web_api:app", host="0.0.0.0", port=3000, reload=False)
