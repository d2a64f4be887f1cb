"""Tests for QueryCoordinator."""

import json

import pytest

from tailgrid.coordinator import CoordinatorStatus, PagedMode, QueryCoordinator
from tailgrid.geometry import Geometry
from tailgrid.protocol import QueryParams
from tailgrid.store import StoreChange

from tests.wire import done_push, response, tail_push, wire_line, wire_window

GEOMETRY = Geometry(80, 24)


@pytest.fixture
def coordinator(session, store):
    return QueryCoordinator(session, store)


@pytest.fixture
def loaded(coordinator, session, transport):
    """A coordinator with log set 'a.log' loaded with 3 lines."""
    coordinator.set_geometry(GEOMETRY)
    coordinator.set_log_set("a.log")
    session.on_message(response(transport.last("logs")["id"], wire_window(3)))
    return coordinator


def record_changes(store):
    changes = []
    store.subscribe(lambda s, change: changes.append(change.kind))
    return changes


def snapshot(store):
    return (store.total_display_lines, list(store.lines), store.generation, store.awaiting_replace)


def test_no_query_until_geometry_and_log_set(coordinator, transport):
    """Test that the first logs request waits for both a log set and a geometry."""
    coordinator.set_log_set("a.log")
    assert transport.sent("logs") == []

    coordinator.set_geometry(None)
    assert transport.sent("logs") == []

    coordinator.set_geometry(GEOMETRY)
    frames = transport.sent("logs")
    assert len(frames) == 1
    assert frames[0]["params"] == {"logset": "a.log", "cols": 80, "from": 0}
    assert coordinator.params == QueryParams("a.log", 80)
    assert coordinator.status == CoordinatorStatus.LOADING


def test_no_query_without_log_set(coordinator, transport):
    """Test that a geometry alone sends nothing."""
    coordinator.set_geometry(GEOMETRY)
    assert transport.sent("logs") == []
    assert coordinator.status == CoordinatorStatus.IDLE


def test_first_response_replaces_then_pushes_append(loaded, session, store):
    """Test that the first response replaces and later tail pushes append."""
    assert store.total_display_lines == 3
    assert loaded.status == CoordinatorStatus.STREAMING

    session.on_message(tail_push([wire_line(3), wire_line(4)]))
    session.on_message(tail_push([wire_line(5)]))

    assert store.total_display_lines == 6
    assert [line.logical_line_number for line in store.lines] == [0, 1, 2, 3, 4, 5]


def test_filter_is_sent_when_committed(loaded, transport):
    """Test that a committed filter goes on the wire and an empty one is omitted."""
    loaded.commit_filter("ERROR|WARN")

    assert transport.last("logs")["params"]["filter"] == "ERROR|WARN"
    assert loaded.params.filter_pattern == "ERROR|WARN"

    loaded.commit_filter("")
    assert "filter" not in transport.last("logs")["params"]


def test_identical_values_do_not_reload(loaded, transport, store):
    """Test that setting unchanged values neither resets nor sends."""
    changes = record_changes(store)
    sent = len(transport.frames)

    assert loaded.set_log_set("a.log") is False
    assert loaded.commit_filter(None) is False
    assert loaded.set_geometry(Geometry(80, 24)) is False

    assert changes == []
    assert len(transport.frames) == sent


def test_rows_change_does_not_reload_in_stream_mode(loaded, transport):
    """Test that a rows-only resize is ignored when streaming."""
    sent = len(transport.frames)
    assert loaded.set_geometry(Geometry(80, 50)) is False
    assert len(transport.frames) == sent


def test_columns_change_reloads(loaded, transport, store):
    """Test that a new width starts a new generation."""
    generation = loaded.generation

    assert loaded.set_geometry(Geometry(120, 24)) is True

    assert loaded.generation == generation + 1
    assert transport.last("logs")["params"]["cols"] == 120
    assert store.total_display_lines == 0


def test_exactly_one_reset_before_next_replace(loaded, session, transport, store):
    """Test that in-flight requests never add resets or replaces of their own."""
    in_flight = []
    for pattern in ("a", "b", "c"):
        loaded.commit_filter(pattern)
        in_flight.append(transport.last("logs")["id"])

    changes = record_changes(store)
    loaded.commit_filter("final")
    final_id = transport.last("logs")["id"]

    for request_id in in_flight:
        session.on_message(response(request_id, wire_window(9)))
    session.on_message(response(final_id, wire_window(4)))

    assert changes == [StoreChange.RESET, StoreChange.REPLACE]
    assert store.total_display_lines == 4


def test_older_generations_are_abandoned(loaded, session, transport):
    """Test that superseded requests leave the pending map."""
    loaded.commit_filter("x")
    old_id = transport.last("logs")["id"]

    loaded.commit_filter("y")

    assert not session.is_pending(old_id)
    assert session.pending_count == 1


def test_stale_push_never_mutates_store(loaded, session, store):
    """Test that pushes racing a reload do not touch the store."""
    loaded.set_log_set("b.log")
    before = snapshot(store)

    session.on_message(tail_push([wire_line(3), wire_line(4)]))
    session.on_message(done_push())

    assert snapshot(store) == before
    assert not store.done


def test_log_set_switch_discards_late_response(coordinator, session, transport, store):
    """Test switching from A (37 lines) to B, with A's old request answering late."""
    coordinator.set_geometry(GEOMETRY)
    coordinator.set_log_set("A")
    session.on_message(response(transport.last("logs")["id"], wire_window(37)))
    assert store.total_display_lines == 37

    # A reload of A is still in flight when the user switches
    coordinator.reload()
    late_a = transport.last("logs")["id"]
    coordinator.set_log_set("B")
    b_request = transport.last("logs")

    assert b_request["params"]["logset"] == "B"
    assert store.total_display_lines == 0
    assert store.lines == []

    session.on_message(response(late_a, wire_window(37)))
    assert store.total_display_lines == 0

    session.on_message(response(b_request["id"], wire_window(5, start_lln=100)))
    assert store.total_display_lines == 5
    assert store.lines[0].logical_line_number == 100


def test_generation_filter_does_not_rely_on_ids(loaded, session, transport, store):
    """Test that a resolver of an older generation is ignored even if the session resolves it."""
    loaded.commit_filter("x")
    old_id = transport.last("logs")["id"]
    # Simulate the session still holding the abandoned entry
    entry_generation = loaded.generation
    loaded.commit_filter("y")

    loaded._on_logs(entry_generation, old_id, wire_window(9))

    assert store.total_display_lines == 0
    assert store.awaiting_replace


def test_out_of_order_push_forces_reload(loaded, session, transport, store):
    """Test that a push going back in logical lines reloads the query."""
    generation = loaded.generation
    sent = len(transport.sent("logs"))

    session.on_message(tail_push([wire_line(1)]))

    assert loaded.generation == generation + 1
    assert len(transport.sent("logs")) == sent + 1
    assert store.total_display_lines == 0


def test_done_marks_store(loaded, session, store):
    """Test that a done push ends the stream."""
    session.on_message(done_push())

    assert store.done
    assert loaded.status == CoordinatorStatus.DONE


def test_error_response_leaves_store_empty(coordinator, session, transport, store):
    """Test that a server error is reported through the status only."""
    coordinator.set_geometry(GEOMETRY)
    coordinator.set_log_set("a.log")
    request_id = transport.last("logs")["id"]

    session.on_message(json.dumps({"id": request_id, "error": {"code": 1, "message": "bad regex"}}))

    assert store.total_display_lines == 0
    assert coordinator.status == CoordinatorStatus.IDLE


def test_malformed_result_is_ignored(coordinator, session, transport, store):
    """Test that an invalid logs result keeps the store waiting."""
    coordinator.set_geometry(GEOMETRY)
    coordinator.set_log_set("a.log")

    session.on_message(response(transport.last("logs")["id"], {"total_display_lines": -1}))

    assert store.awaiting_replace
    assert store.total_display_lines == 0


def test_list_selects_first_log_set(coordinator, session, transport):
    """Test that listing log sets selects the first one when none is selected."""
    seen = []
    coordinator.on_log_sets(seen.append)
    coordinator.set_geometry(GEOMETRY)

    coordinator.on_channel_open()
    session.on_message(response(transport.last("list")["id"], ["app.log", "db.log"]))

    assert seen == [["app.log", "db.log"]]
    assert coordinator.log_set == "app.log"
    assert transport.last("logs")["params"]["logset"] == "app.log"


def test_list_keeps_current_log_set(loaded, session, transport):
    """Test that a refreshed list keeps the selected log set."""
    loaded.refresh_log_sets()
    session.on_message(response(transport.last("list")["id"], ["z.log", "a.log"]))

    assert loaded.log_set == "a.log"
    assert loaded.log_sets == ["z.log", "a.log"]


def test_channel_close_and_reopen_reloads(loaded, session, transport, store):
    """Test that a reconnect resends the latest query."""
    loaded.commit_filter("x")
    statuses = []
    loaded.on_status(statuses.append)

    transport.closed = True
    session.connection_lost("gone")
    loaded.on_channel_closed()
    assert loaded.status == CoordinatorStatus.DISCONNECTED

    # Changes while disconnected reset but cannot send
    loaded.commit_filter("y")
    assert store.total_display_lines == 0
    assert loaded.status == CoordinatorStatus.DISCONNECTED

    transport.closed = False
    loaded.on_channel_open()
    request = transport.last("logs")
    assert request["params"]["filter"] == "y"
    assert loaded.status == CoordinatorStatus.LOADING

    session.on_message(response(request["id"], wire_window(2)))
    assert store.total_display_lines == 2
    assert statuses[0] == CoordinatorStatus.DISCONNECTED
    assert statuses[-1] == CoordinatorStatus.STREAMING


def test_paged_mode_requests_pages(session, transport, store):
    """Test that pages extend the window one request at a time."""
    coordinator = QueryCoordinator(session, store, PagedMode(page_size=10, start_at_end=False))
    coordinator.set_geometry(GEOMETRY)
    coordinator.set_log_set("big.log")

    first = transport.last("logs")
    assert first["params"]["from"] == 0
    assert first["params"]["to"] == 10

    session.on_message(response(first["id"], wire_window(10, total=25)))
    assert store.total_display_lines == 25
    assert store.sparse

    # Rows already loaded need nothing
    assert coordinator.ensure_rows(0, 9) is None

    page_id = coordinator.ensure_rows(5, 14)
    page = transport.last("logs")
    assert page["id"] == page_id
    assert page["params"]["from"] == 10
    assert page["params"]["to"] == 20

    # One page request at a time
    assert coordinator.ensure_rows(5, 24) is None

    session.on_message(response(page_id, wire_window(10, start_lln=10, total=25, row_offset=10)))
    assert len(store.lines) == 20
    assert store.line_at(19).logical_line_number == 19

    last_id = coordinator.ensure_rows(15, 24)
    assert transport.last("logs")["params"]["to"] == 25
    session.on_message(response(last_id, wire_window(5, start_lln=20, total=25, row_offset=20)))
    assert not store.sparse
    assert coordinator.ensure_rows(15, 24) is None


def test_paged_page_size_follows_rows(session, transport, store):
    """Test that derived page sizes follow the viewport rows."""
    coordinator = QueryCoordinator(session, store, PagedMode(pages_per_screen=2))
    coordinator.set_geometry(GEOMETRY)
    coordinator.set_log_set("big.log")
    assert transport.last("logs")["params"]["to"] == 48

    assert coordinator.set_geometry(Geometry(80, 30)) is True
    assert transport.last("logs")["params"]["to"] == 60


def test_stream_mode_ignores_ensure_rows(loaded):
    """Test that stream mode never requests pages."""
    assert loaded.ensure_rows(0, 100) is None


def test_paged_first_response_loads_last_page(session, transport, store):
    """Test that a paged view asks for the last page once the total is known."""
    coordinator = QueryCoordinator(session, store, PagedMode(page_size=10))
    coordinator.set_geometry(GEOMETRY)
    coordinator.set_log_set("huge.log")

    session.on_message(response(transport.last("logs")["id"], wire_window(10, total=1_000_000)))

    last_page = transport.last("logs")
    assert last_page["params"]["from"] == 999_990
    assert last_page["params"]["to"] == 1_000_000

    session.on_message(
        response(last_page["id"], wire_window(10, start_lln=999_990, total=1_000_000, row_offset=999_990))
    )
    assert store.row_offset == 999_990
    assert store.line_at(999_999).logical_line_number == 999_999
    assert not store.sparse


def test_paged_jump_to_bottom_requests_one_page(session, transport, store):
    """Test that showing the last rows of a huge log fetches a bounded page around them."""
    coordinator = QueryCoordinator(session, store, PagedMode(page_size=10, start_at_end=False))
    coordinator.set_geometry(GEOMETRY)
    coordinator.set_log_set("huge.log")
    session.on_message(response(transport.last("logs")["id"], wire_window(10, total=1_000_000)))

    page_id = coordinator.ensure_rows(999_976, 999_999)

    params = transport.last("logs")["params"]
    assert params["from"] == 999_976
    assert params["to"] == 1_000_000

    session.on_message(response(page_id, wire_window(24, start_lln=999_976, total=1_000_000, row_offset=999_976)))
    assert coordinator.ensure_rows(999_976, 999_999) is None
    assert store.line_at(0) is None


def test_paged_page_is_centred_on_distant_rows(session, transport, store):
    """Test that rows far from the window get a page around them."""
    coordinator = QueryCoordinator(session, store, PagedMode(page_size=40, start_at_end=False))
    coordinator.set_geometry(GEOMETRY)
    coordinator.set_log_set("huge.log")
    session.on_message(response(transport.last("logs")["id"], wire_window(40, total=10_000)))

    coordinator.ensure_rows(5_000, 5_009)

    params = transport.last("logs")["params"]
    assert params["from"] == 4_985
    assert params["to"] == 5_025


def test_paged_rows_wanted_during_a_page_are_fetched_next(session, transport, store):
    """Test that a scroll while a page is in flight is served when it lands."""
    coordinator = QueryCoordinator(session, store, PagedMode(page_size=10, start_at_end=False))
    coordinator.set_geometry(GEOMETRY)
    coordinator.set_log_set("big.log")
    session.on_message(response(transport.last("logs")["id"], wire_window(10, total=100)))

    first = coordinator.ensure_rows(10, 19)
    assert coordinator.ensure_rows(50, 59) is None

    session.on_message(response(first, wire_window(10, start_lln=10, total=100, row_offset=10)))

    params = transport.last("logs")["params"]
    assert params["from"] == 50
    assert params["to"] == 60
