from __future__ import annotations

import logging
from pathlib import Path

from fastapi import FastAPI, Form, Request
from fastapi.responses import FileResponse, HTMLResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

import image_crawler

logger = logging.getLogger("image_crawler.web")

BASE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = BASE_DIR / "templates"
STATIC_DIR = BASE_DIR / "static"
CSV_FILENAME = "image-details.csv"


def _default_csv_path() -> Path:
    configured = str(image_crawler._get_cfg("WEBAPP_CSV_PATH", "") or "").strip()
    if configured:
        return Path(configured).expanduser()
    return Path.home() / "Desktop" / CSV_FILENAME


CSV_PATH = _default_csv_path()
HOST = str(image_crawler._get_cfg("WEBAPP_HOST", "127.0.0.1"))
PORT = int(image_crawler._get_cfg("WEBAPP_PORT", 3000))
DEFAULT_RATE_LIMIT = str(image_crawler._get_cfg("WEBAPP_RATE_LIMIT", "60/minute"))
SCRAPE_RATE_LIMIT = str(image_crawler._get_cfg("WEBAPP_SCRAPE_RATE_LIMIT", "10/minute"))
NAV_TIMEOUT_SECONDS = float(image_crawler._get_cfg("NAV_TIMEOUT_SECONDS", image_crawler.NAV_TIMEOUT_SECONDS))
PROBE_TIMEOUT_SECONDS = float(image_crawler._get_cfg("PROBE_TIMEOUT_SECONDS", image_crawler.PROBE_TIMEOUT_SECONDS))

app = FastAPI(title="Image Crawler")
limiter = Limiter(key_func=get_remote_address, default_limits=[DEFAULT_RATE_LIMIT])
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)
app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
templates.env.filters["size_kb"] = lambda v: "Unknown" if v is None else str(v)


@app.get("/", response_class=HTMLResponse)
def index() -> FileResponse:
    return FileResponse(str(STATIC_DIR / "index.html"), media_type="text/html")


@app.post("/scrape")
@limiter.limit(SCRAPE_RATE_LIMIT)
def scrape(request: Request, url: str = Form("")):
    target = (url or "").strip()
    if not target:
        return PlainTextResponse("No URL provided", status_code=400)

    if not target.startswith("http"):
        target = f"https://{target}"
    logger.info("Crawling from: %s", target)

    try:
        result = image_crawler.run_crawl(
            target,
            timeout_seconds=NAV_TIMEOUT_SECONDS,
            headless=True,
            probe_timeout_seconds=PROBE_TIMEOUT_SECONDS,
        )
    except Exception:
        logger.exception("Scraping error for %s", target)
        return PlainTextResponse("Scraping failed.", status_code=500)

    try:
        csv_path = image_crawler.write_csv(CSV_PATH, result.records, skip_empty=False)
    except OSError:
        logger.exception("Could not write %s", CSV_PATH)
        csv_path = None

    return templates.TemplateResponse(
        request,
        "results.html",
        {
            "records": result.records,
            "pages_count": len(result.pages),
            "stats": result.stats,
            "csv_path": str(csv_path) if csv_path else "",
        },
    )


def main() -> None:
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logger.info("App running at http://%s:%d", HOST, PORT)
    uvicorn.run(app, host=HOST, port=PORT)


if __name__ == "__main__":
    main()
