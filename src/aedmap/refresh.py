"""Dataset refresh controller.

States: IDLE -> FETCHING -> INGESTING -> IDLE, or FETCHING -> FAILED -> IDLE.
Only one refresh runs at a time; a request while one is in flight is a no-op.
The dataset and its metadata timestamp are fetched concurrently and fail
independently: a metadata problem only produces a staleness message.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

from .errors import DecodeError, FetchError, MetadataError
from .normalize import normalize_features, parse_feature_collection
from .settings import Settings
from .source_client import fetch_json, fetch_last_edit
from .view_state import ViewStateCoordinator

logger = logging.getLogger(__name__)

LOAD_FAILED_MESSAGE = "Failed to load the dataset. Reload the page to try again."
REFRESH_FAILED_MESSAGE = "Refresh failed; showing the previously loaded data."
STALE_MESSAGE = "Source update time unavailable; data may be stale."


class RefreshState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    INGESTING = "ingesting"
    FAILED = "failed"


@dataclass
class RefreshOutcome:
    status: str  # "ok" | "failed" | "busy"
    message: str = ""
    dropped: int = 0
    metadata_message: str = ""

    @property
    def ok(self) -> bool:
        return self.status == "ok"


class RefreshController:
    def __init__(
        self,
        coordinator: ViewStateCoordinator,
        settings: Settings | None = None,
        *,
        fetch_dataset: Optional[Callable[[], Any]] = None,
        fetch_metadata: Optional[Callable[[], datetime]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.coordinator = coordinator
        self.settings = settings or coordinator.settings
        self._fetch_dataset = fetch_dataset or self._default_fetch_dataset
        self._fetch_metadata = fetch_metadata or self._default_fetch_metadata
        self._clock = clock
        self.state = RefreshState.IDLE
        self.last_outcome: Optional[RefreshOutcome] = None
        self.refresh_count = 0

    @property
    def busy(self) -> bool:
        return self.state in (RefreshState.FETCHING, RefreshState.INGESTING)

    def _default_fetch_dataset(self) -> Any:
        s = self.settings
        return fetch_json(
            s.data_url, timeout=s.http_timeout, max_retries=s.http_max_retries, backoff_factor=s.http_backoff
        )

    def _default_fetch_metadata(self) -> datetime:
        s = self.settings
        return fetch_last_edit(
            s.metadata_url,
            s.metadata_path,
            timeout=s.http_timeout,
            max_retries=s.http_max_retries,
            backoff_factor=s.http_backoff,
        )

    async def refresh(self) -> RefreshOutcome:
        if self.busy:
            logger.debug("Refresh already in flight; ignoring request")
            return RefreshOutcome(status="busy", message="Refresh already in progress.")

        first_load = not self.coordinator.state.loaded
        self.state = RefreshState.FETCHING
        data_task = asyncio.ensure_future(asyncio.to_thread(self._fetch_dataset))
        meta_task = asyncio.ensure_future(asyncio.to_thread(self._fetch_metadata))
        try:
            try:
                payload = await data_task
                features = parse_feature_collection(payload)
            except (FetchError, DecodeError) as exc:
                logger.error("Dataset fetch failed: %s", exc)
                self.state = RefreshState.FAILED
                outcome = RefreshOutcome(
                    status="failed", message=LOAD_FAILED_MESSAGE if first_load else REFRESH_FAILED_MESSAGE
                )
                outcome.metadata_message = await self._record_metadata(meta_task)
                return self._finish(outcome)

            self.state = RefreshState.INGESTING
            result = normalize_features(features, self.settings)
            self.coordinator.ingest(result, reconcile=not first_load)
            self.coordinator.state.last_ingested_at = self._clock()
            self.refresh_count += 1
            logger.info("Ingested %s sites (%s dropped)", len(result.sites), result.dropped)

            outcome = RefreshOutcome(status="ok", dropped=result.dropped)
            outcome.metadata_message = await self._record_metadata(meta_task)
            return self._finish(outcome)
        except BaseException:
            self.state = RefreshState.IDLE
            raise

    async def _record_metadata(self, task: "asyncio.Future[datetime]") -> str:
        try:
            edited = await task
        except (MetadataError, FetchError, DecodeError) as exc:
            logger.warning("Metadata unavailable: %s", exc)
            return STALE_MESSAGE
        self.coordinator.state.source_last_edited = edited
        return ""

    def _finish(self, outcome: RefreshOutcome) -> RefreshOutcome:
        self.last_outcome = outcome
        self.state = RefreshState.IDLE
        return outcome

    async def run_periodic(
        self,
        interval: float | None = None,
        stop: Optional[asyncio.Event] = None,
        *,
        iterations: int = 0,
        on_outcome: Optional[Callable[[RefreshOutcome], None]] = None,
    ) -> int:
        """Refresh on a timer until ``stop`` is set or ``iterations`` runs complete; a failed first load ends it."""
        interval = self.settings.refresh_interval if interval is None else interval
        stop = stop or asyncio.Event()
        runs = 0
        while not stop.is_set():
            outcome = await self.refresh()
            runs += 1
            if on_outcome is not None:
                on_outcome(outcome)
            if outcome.status == "failed" and not self.coordinator.state.loaded:
                # First load failed: fatal, no retry on the timer.
                logger.error("Initial load failed; periodic refresh stopped")
                break
            if iterations and runs >= iterations:
                break
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
        return runs
