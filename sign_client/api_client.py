"""
HTTP Client for the recognition service.

Handles:
- Async JSON POST requests for window classification and sentences
- Parsing of structured {error} bodies (also on non-2xx responses)
- Transport failures surfaced as ClassifierUnavailable
- Request statistics
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional, Sequence

import httpx
import numpy as np

from .message import PredictRequest, PredictionResult, SentenceRequest, SentenceResult

logger = logging.getLogger(__name__)


class ClassifierUnavailable(Exception):
    """The service could not be reached or did not answer with a JSON object."""


@dataclass
class ClientStats:
    """Statistics about service requests."""
    requests_sent: int = 0
    requests_failed: int = 0
    last_request_time: Optional[float] = None
    last_latency_ms: Optional[float] = None


class ClassifierClient:
    """
    Async client for the /predict and /sentence endpoints.

    One attempt per request, no retries. No timeout is applied at the HTTP
    layer unless one is given; the prediction gate bounds classification
    requests itself.
    """

    def __init__(
        self,
        predict_url: str,
        sentence_url: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            predict_url: Classification endpoint URL
            sentence_url: Sentence endpoint URL
            timeout: HTTP timeout in seconds, None for no timeout
            transport: Optional httpx transport (used to stub the service)
        """
        self.predict_url = predict_url
        self.sentence_url = sentence_url
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )
        self.stats = ClientStats()

    async def __aenter__(self) -> 'ClassifierClient':
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._client.aclose()
        logger.info("Classifier client closed")

    async def _post_json(self, url: str, payload: dict) -> dict:
        start = time.monotonic()
        self.stats.requests_sent += 1
        self.stats.last_request_time = time.time()
        try:
            resp = await self._client.post(url, json=payload)
        except httpx.HTTPError as e:
            self.stats.requests_failed += 1
            raise ClassifierUnavailable(f"POST {url} failed: {e}") from e
        finally:
            self.stats.last_latency_ms = (time.monotonic() - start) * 1000

        try:
            data = resp.json()
        except ValueError as e:
            self.stats.requests_failed += 1
            raise ClassifierUnavailable(
                f"POST {url} returned non-JSON body (HTTP {resp.status_code})"
            ) from e

        if not isinstance(data, dict):
            self.stats.requests_failed += 1
            raise ClassifierUnavailable(f"POST {url} returned {type(data).__name__}, expected object")

        if resp.status_code >= 400:
            logger.debug(f"POST {url} -> HTTP {resp.status_code}: {data}")
        return data

    async def predict(self, window: np.ndarray) -> PredictionResult:
        """
        Classify one window.

        Args:
            window: (SEQ_LEN, FEATURE_DIM) feature array

        Returns:
            Parsed PredictionResult (may carry an error)

        Raises:
            ClassifierUnavailable: On transport failure or a non-JSON body
        """
        data = await self._post_json(self.predict_url, PredictRequest(window).to_payload())
        result = PredictionResult.from_dict(data)
        if result.word and result.confidence is not None:
            logger.info(f"/predict -> {result.word!r} ({result.confidence:.3f})")
        else:
            logger.info(f"/predict -> Error: {result.error or 'Unknown error'}")
        return result

    async def sentence(self, words: Sequence[str]) -> SentenceResult:
        """
        Ask the service to build a sentence from words.

        Raises:
            ClassifierUnavailable: On transport failure or a non-JSON body
        """
        data = await self._post_json(self.sentence_url, SentenceRequest(list(words)).to_payload())
        logger.info(f"/sentence -> {data}")
        return SentenceResult.from_dict(data)

    def get_stats(self) -> dict:
        """Get request statistics."""
        return {
            "requests_sent": self.stats.requests_sent,
            "requests_failed": self.stats.requests_failed,
            "last_request_time": self.stats.last_request_time,
            "last_latency_ms": self.stats.last_latency_ms,
        }
