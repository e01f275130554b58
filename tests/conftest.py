import json

import pytest

from stackflame.directory import (
    Directory,
    EventsIndex,
    Executable,
    FetchResult,
    StackFrame,
    StackTrace,
    StackTraceEvent,
)


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg"))
    monkeypatch.setenv("STACKFLAME_DISABLE_TELEMETRY", "1")
    for name in (
        "STACKFLAME_TELEMETRY_DB",
        "STACKFLAME_TARGET_SAMPLE_SIZE",
        "STACKFLAME_MAX_DOWNSAMPLE_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


def make_directory(traces, names=None):
    """Directory where every frame id used by ``traces`` lives in one executable."""
    names = dict(names or {})
    for ids in traces.values():
        for fid in ids:
            names.setdefault(fid, fid)
    return Directory(
        {tid: StackTrace(tuple(ids)) for tid, ids in traces.items()},
        {
            fid: StackFrame(fid, name, f"{name}.py", 10, executable_id="exe")
            for fid, name in names.items()
        },
        {"exe": Executable("exe", "app", "build-1")},
    )


def make_events(counts):
    return [StackTraceEvent(tid, count) for tid, count in counts]


@pytest.fixture
def two_branch():
    """Trace A = root;f1;f2 x10 and trace B = root;f1;f3 x5."""
    directory = make_directory({"A": ["root", "f1", "f2"], "B": ["root", "f1", "f3"]})
    return make_events([("A", 10), ("B", 5)]), directory


@pytest.fixture
def fetch_payload():
    return {
        "stackTraceEvents": [
            {"stackTraceId": "t1", "Count": 10},
            {"stackTraceId": "t2", "Count": 5},
            {"stackTraceId": "t3", "Count": 1},
        ],
        "stackTraces": {
            "t1": ["main", "run", "parse"],
            "t2": {"frameIds": ["main", "run", "render"]},
            "t3": ["main"],
        },
        "stackFrames": {
            "main": {"functionName": "main", "fileName": "app.py", "lineNumber": 1, "executableId": "py"},
            "run": {"functionName": "run", "fileName": "app.py", "lineNumber": 20, "executableId": "py"},
            "parse": {"functionName": "parse", "fileName": "parser.py", "lineNumber": 7, "executableId": "py"},
            "render": {"functionName": "", "executableId": "libui"},
        },
        "executables": {
            "py": {"fileName": "python3.11", "buildId": "abc"},
            "libui": {"fileName": "libui.so", "buildId": "def"},
        },
        "eventsIndex": {"name": "profiling-events-5pow01", "sampleRate": 0.2, "level": 1},
        "totalCount": 16,
    }


@pytest.fixture
def fetch_file(tmp_path, fetch_payload):
    path = tmp_path / "fetch.json"
    path.write_text(json.dumps(fetch_payload), encoding="utf-8")
    return path


@pytest.fixture
def fetch_result(fetch_payload):
    return FetchResult.from_dict(fetch_payload)


@pytest.fixture
def full_index():
    return EventsIndex.downsampled(0)
