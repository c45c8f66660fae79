"""
Single-Flight Prediction Gate - At most one classification request at a time.

The frame loop produces windows much faster than the service answers. The
gate accepts a window only while no request is outstanding; windows that
arrive while a request is in flight are rejected and never queued, so the
next prediction is always made on recent frames.

States:
    IDLE --submit_if_idle()--> REQUESTING --(any outcome)--> IDLE
"""

import asyncio
import enum
import logging
import time
from typing import Awaitable, Callable, Optional

import numpy as np

from .api_client import ClassifierUnavailable
from .message import PredictionResult

logger = logging.getLogger(__name__)


class GateState(enum.Enum):
    IDLE = "idle"
    REQUESTING = "requesting"


class PredictionGate:
    """
    Dispatches windows to the classifier, one request at a time.

    The classify coroutine may return None to signal that its result should
    be ignored (for example after the camera was stopped).
    """

    def __init__(
        self,
        classify: Callable[[np.ndarray], Awaitable[Optional[PredictionResult]]],
        on_result: Optional[Callable[[PredictionResult], None]] = None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize the gate.

        Args:
            classify: Coroutine function sending one window to the service
            on_result: Called with every result that arrives in time
            timeout: Seconds before a request is abandoned, None waits forever
        """
        self._classify = classify
        self._on_result = on_result
        self.timeout = timeout

        self._state = GateState.IDLE
        self._task: Optional[asyncio.Task] = None
        self._request_started: Optional[float] = None

        # Statistics
        self._submitted = 0
        self._rejected = 0
        self._completed = 0
        self._failed = 0
        self._timed_out = 0

    @property
    def state(self) -> GateState:
        return self._state

    @property
    def in_flight(self) -> bool:
        """True while a classification request is outstanding."""
        return self._state is GateState.REQUESTING

    def submit_if_idle(self, window: np.ndarray) -> bool:
        """
        Start classifying a window unless a request is already in flight.

        Must be called from inside a running event loop. The gate takes
        ownership of the window.

        Args:
            window: Complete (SEQ_LEN, FEATURE_DIM) window

        Returns:
            True if the window was accepted, False if the gate was busy
        """
        if self.in_flight:
            self._rejected += 1
            logger.debug("Prediction in flight, rejecting window")
            return False

        loop = asyncio.get_running_loop()
        self._state = GateState.REQUESTING
        self._request_started = time.monotonic()
        self._submitted += 1
        self._task = loop.create_task(self._run(window))
        return True

    async def _run(self, window: np.ndarray) -> None:
        try:
            if self.timeout is not None:
                result = await asyncio.wait_for(self._classify(window), timeout=self.timeout)
            else:
                result = await self._classify(window)
        except asyncio.TimeoutError:
            self._timed_out += 1
            logger.warning(f"Predict request timed out after {self.timeout:.1f}s")
        except ClassifierUnavailable as e:
            self._failed += 1
            logger.error(f"Predict request failed: {e}")
        except Exception as e:
            self._failed += 1
            logger.exception(f"Unexpected error during prediction: {e}")
        else:
            self._completed += 1
            if result is not None and self._on_result:
                try:
                    self._on_result(result)
                except Exception as e:
                    logger.exception(f"Result handler failed: {e}")
        finally:
            self._state = GateState.IDLE
            self._request_started = None

    async def wait_idle(self) -> None:
        """Wait for the outstanding request, if any, to resolve."""
        if self._task is not None and not self._task.done():
            await asyncio.shield(self._task)

    def get_stats(self) -> dict:
        """Get gate statistics."""
        busy_ms = 0.0
        if self._request_started is not None:
            busy_ms = (time.monotonic() - self._request_started) * 1000
        return {
            "state": self._state.value,
            "submitted": self._submitted,
            "rejected": self._rejected,
            "completed": self._completed,
            "failed": self._failed,
            "timed_out": self._timed_out,
            "current_request_ms": busy_ms,
        }
