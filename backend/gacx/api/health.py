"""Health check endpoints."""
from fastapi import APIRouter, Depends

from gacx.config import ConfigurationError, Settings, get_settings

router = APIRouter()


@router.get("/health")
@router.head("/health")
async def health_check():
    """Basic health check."""
    return {"status": "healthy", "service": "gacx"}


@router.get("/health/detailed")
async def detailed_health_check(settings: Settings = Depends(get_settings)):
    """
    Detailed health check including the effective experiment configuration.
    """
    try:
        domain = settings.resolve_domain_name()
    except ConfigurationError:
        # "auto" is resolved per request from the Host header
        domain = None

    return {
        "status": "healthy",
        "checks": {
            "api": "healthy",
            "domain_name": domain or settings.domain_name,
            "cache": "enabled" if settings.cache_dir else "disabled"
        }
    }
