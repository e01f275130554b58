import pytest

from conftest import make_directory, make_events
from stackflame.callercallee import build_caller_callee_graph
from stackflame.columnar import create_columnar_caller_callee
from stackflame.directory import EventsIndex
from stackflame.errors import InvalidInput
from stackflame.flamegraph import ElasticFlameGraph, FlameGraph, create_flame_graph
from stackflame.sampling import (
    create_elastic_flame_graph,
    estimate_total_traces,
    select_events_index,
)


def test_downsampled_by_five():
    assert estimate_total_traces(1000, EventsIndex.downsampled(1)) == 5000
    assert estimate_total_traces(1000, EventsIndex("events", 0.2)) == 5000


def test_full_index_keeps_total():
    assert estimate_total_traces(1234, EventsIndex.downsampled(0)) == 1234
    assert estimate_total_traces(1234, EventsIndex()) == 1234


@pytest.mark.parametrize("sampled", [1, 3, 7, 99, 12345])
@pytest.mark.parametrize("level", [1, 2, 3, 6])
def test_rate_only_index_is_exact(sampled, level):
    rate = 5 ** -level
    assert estimate_total_traces(sampled, EventsIndex("events", rate)) == sampled * 5 ** level


def test_non_power_rate_is_floored():
    assert estimate_total_traces(10, EventsIndex("events", 0.3)) == 33


@pytest.mark.parametrize("rate", [1.0, 0.5, 0.2, 0.04, 0.0016, 1e-6])
def test_total_never_below_sampled(rate):
    for sampled in (0, 1, 17, 20000):
        assert estimate_total_traces(sampled, EventsIndex("events", rate)) >= sampled


def test_negative_sample_count_is_invalid():
    with pytest.raises(InvalidInput):
        estimate_total_traces(-1, EventsIndex())


@pytest.mark.parametrize("rate", [0, -0.5, 1.5, "0.2", None])
def test_sample_rate_must_be_in_unit_interval(rate):
    with pytest.raises(InvalidInput):
        EventsIndex("events", rate)


def test_sample_rate_must_match_level():
    with pytest.raises(InvalidInput, match="does not match"):
        EventsIndex("events", 0.2, level=2)


def test_downsampled_index_names():
    assert EventsIndex.downsampled(0).name == "profiling-events-all"
    idx = EventsIndex.downsampled(3)
    assert idx.name == "profiling-events-5pow03"
    assert idx.sample_rate == pytest.approx(1 / 125)
    with pytest.raises(InvalidInput):
        EventsIndex.downsampled(-1)


def test_elastic_flame_graph_totals(two_branch):
    events, directory = two_branch
    graph = build_caller_callee_graph(events, directory)
    fg = create_flame_graph(create_columnar_caller_callee(graph, directory))

    payload = create_elastic_flame_graph(fg, EventsIndex.downsampled(2), 3600)
    assert isinstance(payload, ElasticFlameGraph)
    assert payload.sampled_traces == 15
    assert payload.total_traces == 375
    assert payload.total_seconds == 3600.0
    # per-node values stay raw sample counts
    assert payload.count_inclusive == fg.count_inclusive

    body = payload.to_dict()
    assert body["TotalSeconds"] == 3600.0
    assert body["TotalTraces"] == 375
    assert body["SampledTraces"] == 15


def test_elastic_flame_graph_empty():
    payload = create_elastic_flame_graph(FlameGraph(), EventsIndex.downsampled(4), 60)
    assert payload.size == 0
    assert payload.total_traces == 0
    assert payload.sampled_traces == 0


@pytest.mark.parametrize(
    "full_count,expected_level",
    [(0, 0), (19999, 0), (20000, 0), (99999, 0), (100000, 1), (499999, 1), (500000, 2)],
)
def test_select_events_index(full_count, expected_level):
    idx = select_events_index(full_count, target_sample_size=20000)
    assert idx.level == expected_level


def test_select_events_index_is_capped():
    assert select_events_index(10 ** 30, 1, max_level=4).level == 4


def test_select_events_index_rejects_bad_target():
    with pytest.raises(InvalidInput):
        select_events_index(100, target_sample_size=0)


def test_elastic_flame_graph_copies_columns(two_branch):
    events, directory = two_branch
    graph = build_caller_callee_graph(events, directory)
    fg = create_flame_graph(create_columnar_caller_callee(graph, directory))

    payload = create_elastic_flame_graph(fg, EventsIndex.downsampled(1), 1)
    assert payload.count_inclusive == fg.count_inclusive
    assert payload.count_inclusive is not fg.count_inclusive
    assert payload.width is not fg.width
    assert payload.label is not fg.label
    payload.count_inclusive[0] = -1
    assert fg.count_inclusive[0] == 15
