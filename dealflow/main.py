import logging

from fastapi import FastAPI

from dealflow.api.routes import router
from dealflow.settings import settings_from_env

settings = settings_from_env()

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="dealflow", version="0.1.0")
app.include_router(router)


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "dealflow", "version": "0.1.0"}
