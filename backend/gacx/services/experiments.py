"""Experiment session service: server-side chooseVariation()."""
import time
from typing import List, Optional, Protocol

import structlog

from gacx.config import Settings
from gacx.schemas.experiment import VariationDecision, VariationRecord
from gacx.services.cookies import (
    decode_variation,
    update_assignment_cookie,
    update_timestamp_cookie,
)
from gacx.services.selector import draw_random, select_variation

logger = structlog.get_logger()


class ExperimentDataProvider(Protocol):
    """Anything that can deliver the variation records of an experiment."""

    async def fetch(self, experiment_id: str) -> List[VariationRecord]:
        ...


class ExperimentService:
    """Chooses and persists variations the way the browser client would."""

    def __init__(self, provider: ExperimentDataProvider, settings: Settings):
        self.provider = provider
        self.settings = settings

    def get_chosen_variation(self, experiment_id: str, utmx: Optional[str]) -> Optional[int]:
        """Variation previously stored in the "__utmx" cookie, None if there is none."""
        return decode_variation(utmx, experiment_id)

    async def choose_new_variation(self, experiment_id: str, draw: Optional[float] = None) -> int:
        """
        Draw a new variation based on the current experiment weights.

        Raises:
            ExperimentDataError: If the weights cannot be retrieved
        """
        records = await self.provider.fetch(experiment_id)
        if draw is None:
            draw = draw_random()
        return select_variation(records, draw)

    def set_chosen_variation(
        self,
        experiment_id: str,
        variation: int,
        utmx: Optional[str] = None,
        utmxx: Optional[str] = None,
        now: Optional[int] = None,
        domain_name: Optional[str] = None,
        host: Optional[str] = None,
    ) -> VariationDecision:
        """
        Store a variation in both cookie values.

        Args:
            experiment_id: Experiment identifier
            variation: Variation number to store
            utmx: Current "__utmx" cookie value
            utmxx: Current "__utmxx" cookie value
            now: Unix timestamp of the assignment (defaults to current time)
            domain_name: Cookie domain (defaults to the configured one)
            host: Request host, used when the configured domain is "auto"

        Returns:
            Decision carrying the new cookie values

        Raises:
            ConfigurationError: If no domain name can be determined
        """
        if domain_name is None:
            domain_name = self.settings.resolve_domain_name(host)
        if now is None:
            now = int(time.time())

        return VariationDecision(
            variation=variation,
            utmx=update_assignment_cookie(utmx, experiment_id, variation, domain_name),
            utmxx=update_timestamp_cookie(utmxx, experiment_id, now, domain_name),
            assigned=True,
        )

    async def choose_variation(
        self,
        experiment_id: str,
        utmx: Optional[str] = None,
        utmxx: Optional[str] = None,
        draw: Optional[float] = None,
        now: Optional[int] = None,
        domain_name: Optional[str] = None,
        host: Optional[str] = None,
    ) -> VariationDecision:
        """
        Return the visitor's variation, drawing and storing one if needed.

        A variation found in the "__utmx" cookie is returned as is and the
        cookies are left alone. Like the browser client, a stored 0 (the
        original) does not count as a choice, so such visitors are drawn
        again on every call.

        Args:
            experiment_id: Experiment identifier
            utmx: Current "__utmx" cookie value
            utmxx: Current "__utmxx" cookie value
            draw: Uniform random number in [0, 1) (random if omitted)
            now: Unix timestamp of the assignment (defaults to current time)
            domain_name: Cookie domain (defaults to the configured one)
            host: Request host, used when the configured domain is "auto"

        Returns:
            Decision with the variation and the cookie values to send back

        Raises:
            ConfigurationError: If no domain name can be determined
            ExperimentDataError: If the experiment weights cannot be retrieved
        """
        variation = self.get_chosen_variation(experiment_id, utmx)
        if variation:
            logger.debug("variation_reused", experiment_id=experiment_id, variation=variation)
            return VariationDecision(variation=variation, utmx=utmx, utmxx=utmxx)

        if domain_name is None:
            domain_name = self.settings.resolve_domain_name(host)

        variation = await self.choose_new_variation(experiment_id, draw)
        decision = self.set_chosen_variation(
            experiment_id, variation, utmx, utmxx, now=now, domain_name=domain_name
        )
        logger.info("variation_assigned", experiment_id=experiment_id, variation=variation)
        return decision
