"""
Experiment data client - variation weights from the Content Experiments endpoint.

The weights are read from the same JavaScript API the browser client loads
instead of the official management API, which only works with OAuth. The
script embeds all experiment definitions as a JSON object, which is cut out
and parsed here.
"""
import asyncio
import json
import os
import re
import time
import weakref
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote

import httpx
import structlog
from pydantic import ValidationError

from gacx.config import Settings
from gacx.schemas.experiment import ExperimentData, VariationRecord

logger = structlog.get_logger()

_EXPERIMENTS_MARKER = re.compile(r"\.experiments_\s*=\s*\{")


class ExperimentDataError(Exception):
    """Raised when experiment data cannot be retrieved or understood."""
    pass


def extract_experiments(body: str) -> Optional[str]:
    """
    Cut the JSON object assigned to ".experiments_" out of a script body.

    Relies on the fact that strings inside the object never contain "{" or "}".

    Returns:
        JSON text of the object, or None if there is no complete object
    """
    match = _EXPERIMENTS_MARKER.search(body)
    if not match:
        return None

    start = match.end() - 1
    depth = 0
    for pos in range(start, len(body)):
        char = body[pos]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return body[start:pos + 1]

    return None


def parse_experiment_data(body: str, experiment_id: str) -> List[VariationRecord]:
    """
    Get the variation records of one experiment from an endpoint response.

    Args:
        body: Response body of the Content Experiments endpoint
        experiment_id: Experiment to extract

    Returns:
        Variation records in the order they appear in the response

    Raises:
        ExperimentDataError: If the response holds no usable data for the experiment
    """
    raw = extract_experiments(body)
    if raw is None:
        raise ExperimentDataError(
            "Unable to find experiments in Content Experiments API response."
        )

    try:
        experiments = json.loads(raw)
    except ValueError as e:
        raise ExperimentDataError(
            f"Unable to parse JSON from Content Experiments API response: {e}"
        ) from e

    experiment = experiments.get(experiment_id) if isinstance(experiments, dict) else None
    if not isinstance(experiment, dict):
        experiment = {}

    if experiment.get("data") is not None:
        try:
            return ExperimentData.model_validate(experiment["data"]).items
        except ValidationError as e:
            raise ExperimentDataError(
                f"Invalid experiment data in Content Experiments API response: {e}"
            ) from e

    error = experiment.get("error")
    if error is not None:
        if not isinstance(error, dict):
            error = {"message": error}
        raise ExperimentDataError(
            f"Error from Content Experiments API: {error.get('code')} - {error.get('message')}"
        )

    raise ExperimentDataError(
        "Unable to find experiment data in JSON from Content Experiments API response."
    )


class ExperimentDataClient:
    """
    Client for the Content Experiments endpoint.

    Optionally caches raw responses on disk so that variation weights are
    only refreshed every cache_ttl seconds. With the cache enabled, fetches
    for the same experiment are serialized so that concurrent requests share
    one round trip. Without it, every fetch goes to the endpoint directly.
    """

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        """
        Initialize the experiment data client.

        Args:
            settings: Endpoint URL, timeouts and cache options
            client: Preconfigured HTTP client (created lazily if omitted)
        """
        self.settings = settings
        self._client = client
        # Entries disappear once no fetch holds or waits for the lock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.timeout, connect=self.settings.connect_timeout),
                follow_redirects=True,
                headers={"User-Agent": ""},
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _cache_path(self, experiment_id: str) -> Optional[Path]:
        if not self.settings.cache_dir:
            return None
        return Path(self.settings.cache_dir) / f"gacx-{quote(experiment_id, safe='')}.cache"

    def _read_cache(self, path: Path) -> Optional[str]:
        """Return the cached response if it is still fresh."""
        if not os.access(path, os.R_OK):
            return None
        try:
            if time.time() > path.stat().st_mtime + self.settings.cache_ttl:
                return None
            return path.read_text(encoding="utf-8") or None
        except FileNotFoundError:
            # Removed since the access check
            return None
        except OSError as e:
            raise ExperimentDataError(f'Unable to read cache file "{path}": {e}') from e

    def _write_cache(self, path: Path, body: str) -> None:
        if not os.access(path.parent, os.W_OK):
            raise ExperimentDataError(f'Cache directory "{path.parent}" is not writable.')
        try:
            path.write_text(body, encoding="utf-8")
        except OSError as e:
            raise ExperimentDataError(f'Unable to write cache file "{path}": {e}') from e

    async def _request(self, experiment_id: str) -> str:
        """Fetch the raw endpoint response for an experiment."""
        client = await self._get_client()
        try:
            response = await client.get(
                self.settings.api_url,
                params={"experiment": experiment_id},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ExperimentDataError(
                f"Unable to retrieve Content Experiments API response: {e}"
            ) from e

        if not response.text:
            raise ExperimentDataError(
                "Unable to retrieve Content Experiments API response: empty body"
            )
        return response.text

    async def _load(self, experiment_id: str, cache_path: Optional[Path]) -> str:
        """Get the response body from the cache or the endpoint."""
        try:
            if cache_path is not None:
                body = self._read_cache(cache_path)
                if body is not None:
                    logger.debug("experiment_data_cache_hit", experiment_id=experiment_id)
                    return body

            body = await self._request(experiment_id)
            if cache_path is not None:
                self._write_cache(cache_path, body)
        except ExperimentDataError as e:
            logger.error(
                "experiment_data_failed",
                experiment_id=experiment_id,
                error=str(e),
            )
            raise

        logger.info("experiment_data_fetched", experiment_id=experiment_id)
        return body

    async def fetch(self, experiment_id: str) -> List[VariationRecord]:
        """
        Get the current variation records of an experiment.

        Args:
            experiment_id: Experiment identifier

        Returns:
            Variation records in endpoint order

        Raises:
            ExperimentDataError: On transport failures, unusable responses or
                cache files that cannot be read or written
        """
        cache_path = self._cache_path(experiment_id)
        if cache_path is None:
            body = await self._load(experiment_id, None)
        else:
            lock = self._locks.get(experiment_id)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[experiment_id] = lock
            async with lock:
                body = await self._load(experiment_id, cache_path)

        return parse_experiment_data(body, experiment_id)
