"""
Audio device streams through sounddevice (PortAudio).

``sounddevice`` is imported on first use so the console, the evaluator and
the tests work on machines without PortAudio.
"""

import logging
import queue
from typing import List, Optional, Tuple

import numpy as np

from .units import AudioUnit

logger = logging.getLogger(__name__)

# Per-channel capacity of the input queues, in samples
INPUT_QUEUE_SIZE = 4096


class AudioDeviceError(Exception):
    """A stream could not be opened or a device could not be found."""


def _load_backend():
    try:
        import sounddevice
    except OSError as exc:
        # sounddevice raises OSError when the PortAudio library is missing
        raise AudioDeviceError(f"PortAudio is not available: {exc}") from exc
    return sounddevice


def sanitize(block: np.ndarray) -> np.ndarray:
    """Zero every sample that is not finite and normal, then clamp to [-1, 1]."""
    tiny = np.finfo(np.float32).tiny
    bad = ~np.isfinite(block) | ((block != 0.0) & (np.abs(block) < tiny))
    block[bad] = 0.0
    np.clip(block, -1.0, 1.0, out=block)
    return block


def _resolve_device(sd, host: Optional[int], device: Optional[int], kind: str) -> Optional[int]:
    """Map a (host api, device within host) pair to a global device index.

    ``None`` or a negative value picks the default.
    """
    if host is None or host < 0:
        if device is None or device < 0:
            return None
        return device
    apis = sd.query_hostapis()
    if host >= len(apis):
        raise AudioDeviceError(f"no host api {host}")
    api = apis[host]
    if device is None or device < 0:
        index = api[f"default_{kind}_device"]
        return None if index < 0 else index
    devices = api["devices"]
    if device >= len(devices):
        raise AudioDeviceError(f"host api {host} has no device {device}")
    return devices[device]


def list_devices(kind: str = "output") -> List[str]:
    """One line per device: ``host:device name``, filtered to devices with ``kind`` channels."""
    sd = _load_backend()
    key = "max_output_channels" if kind == "output" else "max_input_channels"
    lines = []
    devices = sd.query_devices()
    for h, api in enumerate(sd.query_hostapis()):
        lines.append(f"{h}: {api['name']}")
        for d, index in enumerate(api["devices"]):
            info = devices[index]
            if info[key] > 0:
                lines.append(f"    {d}: {info['name']}")
    return lines


def open_output(unit: AudioUnit, host: Optional[int] = None, device: Optional[int] = None,
                channels: Optional[int] = None, sample_rate: Optional[float] = None,
                buffer: Optional[int] = None) -> Tuple[object, int, float]:
    """Start an output stream pulling frames from ``unit``.

    Returns the started stream with its channel count and sample rate.
    """
    sd = _load_backend()
    try:
        index = _resolve_device(sd, host, device, "output")
        info = sd.query_devices(index, "output")
        channels = channels if channels and channels > 0 else min(int(info["max_output_channels"]), 2)
        sample_rate = sample_rate if sample_rate and sample_rate > 0 else float(info["default_samplerate"])
        unit.set_sample_rate(sample_rate)
        unit.allocate()

        def callback(outdata, frames, time_info, status):
            if status:
                logger.warning("output stream: %s", status)
            for i in range(frames):
                outdata[i, :] = unit.tick(())
            sanitize(outdata)

        stream = sd.OutputStream(
            samplerate=sample_rate,
            channels=channels,
            blocksize=buffer if buffer and buffer > 0 else 0,
            dtype="float32",
            device=index,
            callback=callback,
        )
        stream.start()
    except (sd.PortAudioError, ValueError) as exc:
        raise AudioDeviceError(str(exc)) from exc
    return stream, channels, sample_rate


def open_input(left: queue.Queue, right: queue.Queue, host: Optional[int] = None,
               device: Optional[int] = None, channels: Optional[int] = None,
               sample_rate: Optional[float] = None, buffer: Optional[int] = None):
    """Start an input stream feeding the first two channels into ``left`` and ``right``.

    Mono devices feed both queues. Samples are dropped when a queue is full.
    """
    sd = _load_backend()
    try:
        index = _resolve_device(sd, host, device, "input")
        info = sd.query_devices(index, "input")
        channels = channels if channels and channels > 0 else min(int(info["max_input_channels"]), 2)
        sample_rate = sample_rate if sample_rate and sample_rate > 0 else float(info["default_samplerate"])

        def callback(indata, frames, time_info, status):
            if status:
                logger.warning("input stream: %s", status)
            stereo = indata.shape[1] > 1
            for i in range(frames):
                try:
                    left.put_nowait(float(indata[i, 0]))
                    right.put_nowait(float(indata[i, 1 if stereo else 0]))
                except queue.Full:
                    break

        stream = sd.InputStream(
            samplerate=sample_rate,
            channels=channels,
            blocksize=buffer if buffer and buffer > 0 else 0,
            dtype="float32",
            device=index,
            callback=callback,
        )
        stream.start()
    except (sd.PortAudioError, ValueError) as exc:
        raise AudioDeviceError(str(exc)) from exc
    return stream
