import logging

from fastapi import FastAPI

from icecream.api.routes import router
from icecream.config import get_settings
from icecream.content.startup import init_content_for_app

app = FastAPI(title="icecream", version="0.1.0")
app.include_router(router)
# Configure logging
logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)


@app.on_event("startup")
async def _startup() -> None:
    init_content_for_app()
    logger.info("content loaded")


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "icecream", "version": "0.1.0"}
