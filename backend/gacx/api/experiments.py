"""Experiment endpoints - server-side variation choice with tracking cookies.

The endpoints act as the cookie transport for the experiment service: they
read "__utmx" / "__utmxx" from the request and send updated values back
with exactly the attributes the browser client would use.
"""
from datetime import datetime, timezone
from typing import Iterable, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from gacx.config import ConfigurationError, Settings, get_settings
from gacx.middleware.logging import get_logger
from gacx.schemas.api import SetVariationRequest, VariationResponse
from gacx.schemas.experiment import CookieSpec, VariationDecision
from gacx.services.cookies import UTMX_COOKIE, UTMXX_COOKIE, build_cookies
from gacx.services.experiment_data import ExperimentDataClient, ExperimentDataError
from gacx.services.experiments import ExperimentService

router = APIRouter()
logger = get_logger()

# Process-wide client: one connection pool and one fetch lock per experiment
_experiment_data_client: Optional[ExperimentDataClient] = None


def get_experiment_data_client(
    settings: Settings = Depends(get_settings)
) -> ExperimentDataClient:
    """Get or create the global experiment data client."""
    global _experiment_data_client
    if _experiment_data_client is None:
        _experiment_data_client = ExperimentDataClient(settings)
    return _experiment_data_client


async def close_experiment_data_client():
    """Close the global experiment data client."""
    global _experiment_data_client
    if _experiment_data_client is not None:
        await _experiment_data_client.close()
        _experiment_data_client = None


def get_experiment_service(
    provider: ExperimentDataClient = Depends(get_experiment_data_client),
    settings: Settings = Depends(get_settings)
) -> ExperimentService:
    """Dependency providing the experiment service."""
    return ExperimentService(provider, settings)


def apply_cookies(response: Response, cookies: Iterable[CookieSpec]) -> None:
    """Set cookies on a response, values are written raw."""
    for cookie in cookies:
        response.set_cookie(
            key=cookie.name,
            value=cookie.value,
            expires=datetime.fromtimestamp(cookie.expires, tz=timezone.utc),
            path=cookie.path,
            domain=cookie.domain,
            secure=cookie.secure,
            httponly=cookie.httponly,
            samesite=None,
        )


def _configuration_failed(experiment_id: str, error: ConfigurationError) -> HTTPException:
    logger.error(
        "experiment_configuration_failed",
        experiment_id=experiment_id,
        error=str(error),
        error_type=type(error).__name__
    )
    return HTTPException(status_code=500, detail=str(error))


def _send_decision(
    request: Request,
    response: Response,
    decision: VariationDecision,
    settings: Settings,
    experiment_id: str
) -> None:
    """Set both cookies, only when the decision rewrote them."""
    if not decision.assigned:
        return
    try:
        domain_name = settings.resolve_domain_name(request.headers.get("host"))
    except ConfigurationError as e:
        raise _configuration_failed(experiment_id, e)

    now = int(datetime.now(timezone.utc).timestamp())
    apply_cookies(
        response,
        build_cookies(decision.utmx, decision.utmxx, domain_name, now, settings)
    )


@router.get("/experiments/{experiment_id}/variation", response_model=VariationResponse)
async def choose_variation(
    experiment_id: str,
    request: Request,
    response: Response,
    service: ExperimentService = Depends(get_experiment_service),
    settings: Settings = Depends(get_settings)
):
    """
    Choose the variation to render for the requesting visitor.

    Returning visitors keep the variation stored in their "__utmx" cookie and
    get no Set-Cookie headers. New visitors get a weighted draw and both
    cookies are set.
    """
    try:
        decision = await service.choose_variation(
            experiment_id,
            utmx=request.cookies.get(UTMX_COOKIE),
            utmxx=request.cookies.get(UTMXX_COOKIE),
            host=request.headers.get("host")
        )
    except ConfigurationError as e:
        raise _configuration_failed(experiment_id, e)
    except ExperimentDataError as e:
        logger.error(
            "experiment_data_unavailable",
            experiment_id=experiment_id,
            error=str(e),
            error_type=type(e).__name__
        )
        raise HTTPException(status_code=502, detail=str(e))

    _send_decision(request, response, decision, settings, experiment_id)

    return VariationResponse(
        experiment_id=experiment_id,
        variation=decision.variation,
        assigned=decision.assigned
    )


@router.post("/experiments/{experiment_id}/variation", response_model=VariationResponse)
async def set_variation(
    experiment_id: str,
    body: SetVariationRequest,
    request: Request,
    response: Response,
    service: ExperimentService = Depends(get_experiment_service),
    settings: Settings = Depends(get_settings)
):
    """Force a variation for the requesting visitor (like cxApi.setChosenVariation())."""
    try:
        decision = service.set_chosen_variation(
            experiment_id,
            body.variation,
            utmx=request.cookies.get(UTMX_COOKIE),
            utmxx=request.cookies.get(UTMXX_COOKIE),
            host=request.headers.get("host")
        )
    except ConfigurationError as e:
        raise _configuration_failed(experiment_id, e)

    _send_decision(request, response, decision, settings, experiment_id)

    return VariationResponse(
        experiment_id=experiment_id,
        variation=decision.variation,
        assigned=decision.assigned
    )
