"""
directory.py

Data model shared by every pipeline stage, and the read-only directory of
stack traces, frames and executables supplied by the data-fetch collaborator.

Stack traces are stored root-to-leaf: the outermost caller first, the frame
where the sample was taken last.
"""

import json
import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from .errors import InvalidInput, UnresolvedFrame

FrameID = str
ExecutableID = str
StackTraceID = str

FULL_EVENTS_INDEX = "profiling-events-all"
DOWNSAMPLE_FACTOR = 5


@dataclass(frozen=True)
class Executable:
    executable_id: ExecutableID
    file_name: str = ""
    build_id: str = ""


@dataclass(frozen=True)
class StackFrame:
    frame_id: FrameID
    function_name: str = ""
    file_name: str = ""
    line_number: int = 0
    executable_id: ExecutableID = ""


@dataclass(frozen=True)
class StackTrace:
    frame_ids: Tuple[FrameID, ...]

    def __len__(self):
        return len(self.frame_ids)


@dataclass(frozen=True)
class StackTraceEvent:
    stack_trace_id: StackTraceID
    count: int = 1


@dataclass(frozen=True)
class EventsIndex:
    """The (possibly downsampled) events table the events were read from."""

    name: str = FULL_EVENTS_INDEX
    sample_rate: float = 1.0
    level: Optional[int] = None

    def __post_init__(self):
        rate = self.sample_rate
        if isinstance(rate, bool) or not isinstance(rate, (int, float)):
            raise InvalidInput(f"sample rate must be a number, got {rate!r}")
        if not 0 < rate <= 1:
            raise InvalidInput(f"sample rate must be in (0, 1], got {rate!r}")
        if self.level is not None and not math.isclose(rate, DOWNSAMPLE_FACTOR ** -self.level):
            raise InvalidInput(
                f"sample rate {rate!r} does not match downsample level {self.level}"
            )

    @classmethod
    def downsampled(cls, level: int) -> "EventsIndex":
        """Index for downsample level N, holding 1/5^N of the raw samples."""
        if level < 0:
            raise InvalidInput(f"downsample level must be >= 0, got {level}")
        if level == 0:
            return cls(FULL_EVENTS_INDEX, 1.0, 0)
        return cls(
            f"profiling-events-{DOWNSAMPLE_FACTOR}pow{level:02d}",
            DOWNSAMPLE_FACTOR ** -level,
            level,
        )


class Directory:
    """Read-only lookup tables; safe to share between concurrent requests."""

    def __init__(
        self,
        stack_traces: Mapping[StackTraceID, StackTrace],
        stack_frames: Mapping[FrameID, StackFrame],
        executables: Mapping[ExecutableID, Executable],
    ):
        self.stack_traces = MappingProxyType(dict(stack_traces))
        self.stack_frames = MappingProxyType(dict(stack_frames))
        self.executables = MappingProxyType(dict(executables))

    def stack_trace(self, stack_trace_id: StackTraceID) -> StackTrace:
        try:
            return self.stack_traces[stack_trace_id]
        except KeyError:
            raise InvalidInput(f"event references unknown stack trace {stack_trace_id!r}") from None

    def frame(self, frame_id: FrameID) -> StackFrame:
        try:
            return self.stack_frames[frame_id]
        except KeyError:
            raise UnresolvedFrame("frame", frame_id) from None

    def executable(self, executable_id: ExecutableID) -> Executable:
        try:
            return self.executables[executable_id]
        except KeyError:
            raise UnresolvedFrame("executable", executable_id) from None

    def resolve(self, frame_id: FrameID) -> Tuple[StackFrame, Executable]:
        """Return the frame and its executable, failing on either being absent."""
        frame = self.frame(frame_id)
        return frame, self.executable(frame.executable_id)

    def label(self, frame_id: FrameID) -> str:
        frame, exe = self.resolve(frame_id)
        if frame.function_name:
            return frame.function_name
        if exe.file_name:
            return exe.file_name
        return frame_id


@dataclass(frozen=True)
class FetchResult:
    """Everything the data-fetch collaborator hands to the pipeline."""

    stack_trace_events: Tuple[StackTraceEvent, ...]
    directory: Directory
    events_index: EventsIndex
    total_count: int

    @classmethod
    def from_dict(cls, data: Mapping) -> "FetchResult":
        """
        Build a fetch result from the collaborator's mapping shape:

            {"stackTraceEvents": [{"stackTraceId": ..., "Count": ...}, ...],
             "stackTraces": {id: [frameId, ...] | {"frameIds": [...]}},
             "stackFrames": {id: {"functionName", "fileName", "lineNumber", "executableId"}},
             "executables": {id: {"fileName", "buildId"}},
             "eventsIndex": {"name", "sampleRate", "level"},
             "totalCount": int}
        """
        if not isinstance(data, Mapping):
            raise InvalidInput("fetch result must be a mapping")
        try:
            events = tuple(_parse_event(e) for e in data.get("stackTraceEvents") or [])
            traces = {
                str(tid): _parse_trace(tid, raw)
                for tid, raw in (data.get("stackTraces") or {}).items()
            }
            frames = {
                str(fid): StackFrame(
                    frame_id=str(fid),
                    function_name=str(raw.get("functionName") or ""),
                    file_name=str(raw.get("fileName") or ""),
                    line_number=int(raw.get("lineNumber") or 0),
                    executable_id=str(raw.get("executableId") or ""),
                )
                for fid, raw in (data.get("stackFrames") or {}).items()
            }
            executables = {
                str(eid): Executable(
                    executable_id=str(eid),
                    file_name=str(raw.get("fileName") or ""),
                    build_id=str(raw.get("buildId") or ""),
                )
                for eid, raw in (data.get("executables") or {}).items()
            }
            index = _parse_index(data.get("eventsIndex") or {})
        except (AttributeError, TypeError, ValueError) as exc:
            if isinstance(exc, InvalidInput):
                raise
            raise InvalidInput(f"malformed fetch result: {exc}") from exc

        total = data.get("totalCount")
        if total is None:
            total = sum(e.count for e in events)
        elif isinstance(total, bool) or not isinstance(total, int) or total < 0:
            raise InvalidInput(f"totalCount must be a non-negative integer, got {total!r}")
        return cls(events, Directory(traces, frames, executables), index, total)


def _parse_event(raw) -> StackTraceEvent:
    tid = raw.get("stackTraceId", raw.get("StackTraceID"))
    if tid is None:
        raise InvalidInput(f"stack trace event without stackTraceId: {raw!r}")
    count = raw.get("Count", raw.get("count", 1))
    if isinstance(count, bool) or not isinstance(count, int) or count < 1:
        raise InvalidInput(f"event count must be a positive integer, got {count!r}")
    return StackTraceEvent(str(tid), count)


def _parse_trace(tid, raw) -> StackTrace:
    if isinstance(raw, Mapping):
        raw = raw.get("frameIds", raw.get("FrameIDs"))
    if isinstance(raw, (str, bytes)) or not isinstance(raw, (list, tuple)):
        raise InvalidInput(f"stack trace {tid!r} must be a list of frame ids")
    return StackTrace(tuple(str(f) for f in raw))


def _parse_index(raw: Mapping) -> EventsIndex:
    if "level" in raw and "sampleRate" not in raw:
        return EventsIndex.downsampled(int(raw["level"]))
    level = raw.get("level")
    return EventsIndex(
        name=str(raw.get("name", FULL_EVENTS_INDEX)),
        sample_rate=raw.get("sampleRate", 1.0),
        level=int(level) if level is not None else None,
    )


def load_fetch_result(path: str) -> FetchResult:
    """Read a fetch result from a JSON file."""
    with open(path, encoding="utf-8") as f:
        try:
            data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise InvalidInput(f"{path}: not valid JSON ({exc})") from exc
    return FetchResult.from_dict(data)
