"""JSON API for the dashboard and external tools."""

import logging
import time
from typing import Any

from fastapi import APIRouter, Body, HTTPException
from fastapi.responses import HTMLResponse
from pydantic import SecretStr, ValidationError

from digestarr import __version__
from digestarr.core.config import Settings, get_settings, save_settings
from digestarr.core.log_buffer import log_buffer
from digestarr.providers.base import SourceError
from digestarr.services.jobs import manager
from digestarr.services.newsletter import newsletter, response_cache
from digestarr.services.pipeline import SourceClients
from digestarr.services.scheduler import next_scheduled_run, scheduler
from digestarr.services.stats import stats

logger = logging.getLogger(__name__)

router = APIRouter()

STARTED_AT = time.monotonic()
MASK = "********"


def _env_value(value: Any) -> str:
    """Serialize a JSON value the way it is written to the env file."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)


def masked_config(settings: Settings) -> dict[str, Any]:
    """All settings, with secrets replaced by a mask when set."""
    config: dict[str, Any] = {}
    for name, value in settings.model_dump().items():
        if isinstance(value, SecretStr):
            config[name] = MASK if value.get_secret_value() else ""
        else:
            config[name] = value
    return config


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "service": "digestarr"}


@router.get("/dashboard")
async def dashboard():
    """Version, uptime, send statistics, next run and service status."""
    settings = get_settings()
    next_run = scheduler.next_run() or next_scheduled_run(settings)
    return {
        "version": __version__,
        "uptime_seconds": int(time.monotonic() - STARTED_AT),
        "stats": stats.snapshot().model_dump(),
        "next_run": next_run.isoformat() if next_run else None,
        "schedule_type": settings.schedule_type,
        "services": {
            "sonarr": settings.sonarr_configured,
            "radarr": settings.radarr_configured,
            "trakt": settings.trakt_configured,
            "email": settings.email_configured,
        },
    }


# --- Configuration ---


@router.get("/config")
async def get_config():
    """Current configuration with secrets masked."""
    return masked_config(get_settings())


@router.post("/config")
async def update_config(updates: dict[str, Any] = Body(...)):
    """Persist a partial configuration update and reload."""
    known = set(Settings.model_fields)
    unknown = sorted(set(updates) - known)
    if unknown:
        raise HTTPException(
            status_code=400, detail=f"Unknown settings: {', '.join(unknown)}"
        )

    # A masked secret coming back from the form means "unchanged"
    values = {
        key: _env_value(value)
        for key, value in updates.items()
        if value is not None and value != MASK
    }

    try:
        settings = save_settings(values)
    except ValidationError as e:
        errors = e.errors(include_url=False, include_context=False, include_input=False)
        raise HTTPException(status_code=422, detail=errors)

    scheduler.reschedule(settings)
    logger.info("Configuration updated: %s", ", ".join(sorted(values)) or "nothing")
    return {"status": "saved", "config": masked_config(settings)}


# --- Newsletter ---


@router.post("/preview", response_class=HTMLResponse)
async def preview_newsletter():
    """Render the newsletter without sending it."""
    html = await newsletter.preview()
    return HTMLResponse(content=html)


@router.post("/send")
async def send_newsletter():
    """Queue a newsletter send and return the job id."""
    job = await manager.submit()
    return {"id": job["id"], "status": job["status"]}


@router.get("/jobs")
async def list_jobs():
    """List send jobs and their statuses."""
    return {"jobs": manager.get_all_jobs()}


@router.get("/jobs/{job_id}")
async def get_job(job_id: str):
    """Get a specific send job status."""
    job = manager.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.post("/test/{service}")
async def test_service(service: str):
    """Check connectivity to sonarr, radarr or trakt with the saved settings."""
    if service not in ("sonarr", "radarr", "trakt"):
        raise HTTPException(status_code=404, detail=f"Unknown service: {service}")

    clients = SourceClients.from_settings(get_settings(), response_cache)
    client = getattr(clients, service)
    try:
        version = await client.test_connection()
    except SourceError as e:
        logger.warning("%s connection test failed: %s", client.name, e)
        return {"success": False, "message": str(e)}
    finally:
        await clients.aclose()

    return {"success": True, "message": f"Connected to {client.name}", "version": version}


@router.get("/logs")
async def get_logs():
    """Recent log lines, oldest first."""
    return {"logs": log_buffer.lines()}
