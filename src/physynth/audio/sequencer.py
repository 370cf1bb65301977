"""
Event sequencer.

A ``Sequencer`` schedules generator graphs on a timeline, each with a start
and end time and fade-in/fade-out lengths in seconds. It is a unit in its
own right; once ``backend()`` has been called every edit is forwarded to the
backend over a bounded queue and the backend is what gets played.
"""

import itertools
import logging
import queue
from dataclasses import dataclass
from typing import List, Optional

from .units import AudioUnit

logger = logging.getLogger(__name__)

_event_ids = itertools.count()

BACKEND_QUEUE_SIZE = 256


@dataclass(frozen=True)
class EventId:
    value: int

    def __str__(self) -> str:
        return f"EventId({self.value})"


@dataclass
class _Event:
    id: EventId
    start: float
    end: float
    fade_in: float
    fade_out: float
    unit: AudioUnit


@dataclass
class _Push:
    event: _Event
    relative: bool


@dataclass
class _Edit:
    id: EventId
    end: float
    fade_out: float
    relative: bool


def _smooth(x: float) -> float:
    x = min(max(x, 0.0), 1.0)
    return x * x * (3.0 - 2.0 * x)


class Sequencer(AudioUnit):

    inputs = 0

    def __init__(self, replay_events: bool, outputs: int):
        super().__init__()
        self.outputs = outputs
        self._replay = replay_events
        self._events: List[_Event] = []
        self._done: List[_Event] = []
        self.time = 0.0
        self._queue: Optional[queue.Queue] = None

    def __deepcopy__(self, memo):
        import copy
        seq = Sequencer(self._replay, self.outputs)
        seq.sample_rate = self.sample_rate
        seq.time = self.time
        seq._events = [copy.deepcopy(e, memo) for e in self._events]
        seq._done = [copy.deepcopy(e, memo) for e in self._done]
        return seq

    def replay_events(self) -> bool:
        return self._replay

    @property
    def has_backend(self) -> bool:
        return self._queue is not None

    # =========================================================================
    # Scheduling
    # =========================================================================

    def _submit(self, message) -> None:
        if self._queue is None:
            self._apply(message)
            return
        try:
            self._queue.put_nowait(message)
        except queue.Full:
            logger.warning("sequencer backend is not keeping up, dropped an event")

    def _apply(self, message) -> None:
        if isinstance(message, _Push):
            event = message.event
            if message.relative:
                event.start += self.time
                event.end += self.time
            event.unit.set_sample_rate(self.sample_rate)
            event.unit.allocate()
            self._events.append(event)
        else:
            for event in self._events:
                if event.id == message.id:
                    event.end = message.end + (self.time if message.relative else 0.0)
                    event.fade_out = message.fade_out

    def push(self, start: float, end: float, fade_in: float, fade_out: float,
             unit: AudioUnit, relative: bool = False) -> Optional[EventId]:
        """Schedule a generator; it must have no inputs and our output count."""
        if unit.inputs != 0 or unit.outputs != self.outputs:
            return None
        eid = EventId(next(_event_ids))
        event = _Event(eid, start, end, max(fade_in, 0.0), max(fade_out, 0.0), unit.clone())
        self._submit(_Push(event, relative))
        return eid

    def push_relative(self, start, end, fade_in, fade_out, unit) -> Optional[EventId]:
        return self.push(start, end, fade_in, fade_out, unit, relative=True)

    def push_duration(self, start, duration, fade_in, fade_out, unit) -> Optional[EventId]:
        return self.push(start, start + duration, fade_in, fade_out, unit)

    def edit(self, event: EventId, end: float, fade_out: float) -> None:
        self._submit(_Edit(event, end, max(fade_out, 0.0), False))

    def edit_relative(self, event: EventId, end: float, fade_out: float) -> None:
        self._submit(_Edit(event, end, max(fade_out, 0.0), True))

    def backend(self) -> Optional["SequencerBackend"]:
        if self._queue is not None:
            return None
        self._queue = queue.Queue(maxsize=BACKEND_QUEUE_SIZE)
        return SequencerBackend(self.clone(), self._queue)

    # =========================================================================
    # Processing
    # =========================================================================

    def _gain(self, event: _Event) -> float:
        gain = 1.0
        if event.fade_in > 0.0:
            gain *= _smooth((self.time - event.start) / event.fade_in)
        if event.fade_out > 0.0:
            gain *= _smooth((event.end - self.time) / event.fade_out)
        return gain

    def tick(self, frame):
        out = [0.0] * self.outputs
        finished = False
        for event in self._events:
            if self.time >= event.end:
                finished = True
                continue
            if self.time < event.start:
                continue
            gain = self._gain(event)
            for ch, x in enumerate(event.unit.tick(())):
                out[ch] += x * gain
        if finished:
            keep = []
            for event in self._events:
                if self.time >= event.end:
                    if self._replay:
                        self._done.append(event)
                else:
                    keep.append(event)
            self._events = keep
        self.time += 1.0 / self.sample_rate
        return out

    def reset(self) -> None:
        self.time = 0.0
        self._events.extend(self._done)
        self._done = []
        for event in self._events:
            event.unit.reset()

    def set_sample_rate(self, sample_rate):
        super().set_sample_rate(sample_rate)
        for event in self._events + self._done:
            event.unit.set_sample_rate(sample_rate)


class SequencerBackend(AudioUnit):
    """Plays a sequencer's events; edits arrive over a bounded queue."""

    inputs = 0

    def __init__(self, sequencer: Sequencer, updates: queue.Queue):
        super().__init__()
        self.sequencer = sequencer
        self.updates = updates
        self.outputs = sequencer.outputs

    def __deepcopy__(self, memo):
        return self

    def tick(self, frame):
        while True:
            try:
                message = self.updates.get_nowait()
            except queue.Empty:
                break
            self.sequencer._apply(message)
        return self.sequencer.tick(frame)

    def reset(self):
        self.sequencer.reset()

    def set_sample_rate(self, sample_rate):
        super().set_sample_rate(sample_rate)
        self.sequencer.set_sample_rate(sample_rate)
