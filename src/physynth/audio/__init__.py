"""
Audio engine: units, graphs, waves, sequencing and the device bridge.
"""

from .shared import Shared, AtomicTable
from .units import (
    AudioUnit, Constant, Pass, Sink, Split, Join, Reverse, Binary, Scalar,
    Oscillator, Noise, Var, LowPole, Delay, WaveChannel, AtomicSynth, InputUnit,
    DEFAULT_SAMPLE_RATE,
)
from .net import Net, NetBackend, NetError, NodeId, Source, SourceKind
from .wave import Wave
from .sequencer import EventId, Sequencer, SequencerBackend
from .slot import Fade, Slot, SlotBackend
from .device import AudioDeviceError
from .bridge import AudioBridge

__all__ = [
    "Shared", "AtomicTable",
    "AudioUnit", "Constant", "Pass", "Sink", "Split", "Join", "Reverse",
    "Binary", "Scalar", "Oscillator", "Noise", "Var", "LowPole", "Delay",
    "WaveChannel", "AtomicSynth", "InputUnit", "DEFAULT_SAMPLE_RATE",
    "Net", "NetBackend", "NetError", "NodeId", "Source", "SourceKind",
    "Wave",
    "EventId", "Sequencer", "SequencerBackend",
    "Fade", "Slot", "SlotBackend",
    "AudioDeviceError",
    "AudioBridge",
]
