import os

from fastapi import APIRouter

from .. import config

router = APIRouter()


@router.get("/version")
def get_version():
    return {
        "status": "ok",
        "api_version": config.API_PREFIX.strip("/"),
        "version": config.API_VERSION,
        "app": config.APP_NAME,
        "git_sha": os.getenv("GIT_SHA", "unknown")[:7],
    }
