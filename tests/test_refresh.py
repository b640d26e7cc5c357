import asyncio
import json
import threading
from datetime import datetime, timezone

from aedmap.errors import FetchError, MetadataError
from aedmap.refresh import (
    LOAD_FAILED_MESSAGE,
    REFRESH_FAILED_MESSAGE,
    STALE_MESSAGE,
    RefreshController,
    RefreshState,
)
from aedmap.settings import ALL_REGIONS, Settings
from aedmap.view_state import ViewStateCoordinator

from conftest import collection, feature

EDITED = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
NOW = datetime(2024, 5, 2, 9, 30)


def _controller(settings, dataset, metadata=lambda: EDITED):
    coord = ViewStateCoordinator(settings)
    fetch = dataset if callable(dataset) else (lambda: dataset)
    return RefreshController(coord, fetch_dataset=fetch, fetch_metadata=metadata, clock=lambda: NOW)


def _fail():
    raise FetchError("HTTP 503", status=503)


def test_initial_load_ingests_and_records_times(settings, sample_features):
    controller = _controller(settings, collection(*sample_features))
    outcome = asyncio.run(controller.refresh())

    state = controller.coordinator.state
    assert outcome.ok
    assert outcome.metadata_message == ""
    assert len(state.all_sites) == 3
    assert state.source_last_edited == EDITED
    assert state.last_ingested_at == NOW
    assert controller.state is RefreshState.IDLE


def test_first_load_failure_is_reported(settings):
    controller = _controller(settings, _fail)
    outcome = asyncio.run(controller.refresh())
    assert outcome.status == "failed"
    assert outcome.message == LOAD_FAILED_MESSAGE
    assert controller.coordinator.state.loaded is False
    assert controller.state is RefreshState.IDLE


def test_failed_refresh_leaves_view_untouched(settings, sample_features):
    responses = [collection(*sample_features)]

    def fetch():
        if responses:
            return responses.pop()
        raise FetchError("network down")

    controller = _controller(settings, fetch)
    asyncio.run(controller.refresh())
    coord = controller.coordinator
    coord.set_region("Region A")
    coord.focus(2)
    before_sites = coord.state.all_sites.copy()
    before_view = coord.state.filtered_view.copy()

    outcome = asyncio.run(controller.refresh())

    assert outcome.status == "failed"
    assert outcome.message == REFRESH_FAILED_MESSAGE
    assert coord.state.all_sites.equals(before_sites)
    assert coord.state.filtered_view.equals(before_view)
    assert coord.state.active_selection_id == 2
    assert coord.state.last_ingested_at == NOW


def test_decode_failure_treated_like_fetch_failure(settings):
    controller = _controller(settings, "<html>oops</html>")
    outcome = asyncio.run(controller.refresh())
    assert outcome.status == "failed"
    assert controller.coordinator.state.all_sites.empty


def test_metadata_failure_does_not_fail_refresh(settings, sample_features):
    def no_metadata():
        raise MetadataError("missing editingInfo")

    controller = _controller(settings, collection(*sample_features), metadata=no_metadata)
    outcome = asyncio.run(controller.refresh())
    assert outcome.ok
    assert outcome.metadata_message == STALE_MESSAGE
    assert controller.coordinator.state.source_last_edited is None
    assert len(controller.coordinator.state.all_sites) == 3


def test_refresh_without_previous_region_resets_to_all(settings, sample_features):
    datasets = [
        collection(feature("体育館", "Region B", 139.70, 36.00, OBJECTID=3)),
        collection(*sample_features),
    ]
    controller = _controller(settings, lambda: datasets.pop())
    asyncio.run(controller.refresh())
    coord = controller.coordinator
    coord.set_region("Region A")
    coord.focus(1)

    outcome = asyncio.run(controller.refresh())

    assert outcome.ok
    assert coord.state.active_region == ALL_REGIONS
    assert coord.state.active_selection_id is None
    assert coord.last_update.fit_bounds is not None


def test_refresh_while_fetching_is_a_noop(settings, sample_features):
    gate = threading.Event()
    calls = []

    def slow_fetch():
        calls.append(1)
        gate.wait(5)
        return collection(*sample_features)

    controller = _controller(settings, slow_fetch)

    async def scenario():
        first = asyncio.ensure_future(controller.refresh())
        await asyncio.sleep(0)
        assert controller.busy
        second = await controller.refresh()
        gate.set()
        return await first, second

    first, second = asyncio.run(scenario())
    assert first.ok
    assert second.status == "busy"
    assert len(calls) == 1
    assert controller.refresh_count == 1


def test_dropped_records_are_counted(settings):
    data = collection(feature("ok", "r", 139.0, 35.0), feature("bad", "r", None, 35.0))
    controller = _controller(settings, data)
    outcome = asyncio.run(controller.refresh())
    assert outcome.dropped == 1
    assert controller.coordinator.state.dropped == 1


def test_run_periodic_stops_after_iterations(settings, sample_features):
    controller = _controller(settings, collection(*sample_features))
    outcomes = []
    runs = asyncio.run(controller.run_periodic(0, iterations=2, on_outcome=outcomes.append))
    assert runs == 2
    assert [o.status for o in outcomes] == ["ok", "ok"]


def test_default_fetch_reads_local_dataset(tmp_path, sample_features):
    path = tmp_path / "aed.geojson"
    path.write_text(json.dumps(collection(*sample_features), ensure_ascii=False), encoding="utf-8")
    settings = Settings(data_url=str(path))
    controller = RefreshController(ViewStateCoordinator(settings), settings)
    outcome = asyncio.run(controller.refresh())
    assert outcome.ok
    # No metadata URL configured: reported as staleness only.
    assert outcome.metadata_message == STALE_MESSAGE
    assert len(controller.coordinator.state.all_sites) == 3


def test_first_load_failure_is_not_retried_on_timer(settings):
    calls = []

    def failing_fetch():
        calls.append(1)
        raise FetchError("HTTP 503", status=503)

    controller = _controller(settings, failing_fetch)
    outcomes = []
    runs = asyncio.run(controller.run_periodic(0, iterations=3, on_outcome=outcomes.append))

    assert runs == 1
    assert len(calls) == 1
    assert outcomes[0].message == LOAD_FAILED_MESSAGE


def test_later_failures_keep_the_timer_running(settings, sample_features):
    responses = [collection(*sample_features)]

    def fetch():
        if responses:
            return responses.pop()
        raise FetchError("network down")

    controller = _controller(settings, fetch)
    outcomes = []
    runs = asyncio.run(controller.run_periodic(0, iterations=3, on_outcome=outcomes.append))

    assert runs == 3
    assert [o.status for o in outcomes] == ["ok", "failed", "failed"]
    assert outcomes[-1].message == REFRESH_FAILED_MESSAGE


def test_undecodable_local_dataset_fails_cleanly(tmp_path):
    path = tmp_path / "aed.geojson"
    path.write_bytes(b'{"features": [\xff\xfe]}')
    settings = Settings(data_url=str(path))
    controller = RefreshController(ViewStateCoordinator(settings), settings)

    outcome = asyncio.run(controller.refresh())

    assert outcome.status == "failed"
    assert outcome.message == LOAD_FAILED_MESSAGE
    assert controller.state is RefreshState.IDLE
