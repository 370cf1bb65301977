"""
Tests for the audio engine: nets, backends, the output slot, the
sequencer, waves and the device layer.
"""

import queue

import numpy as np
import pytest

from physynth.audio import (
    AtomicTable, AudioBridge, Constant, Fade, Net, NetError, Pass, Scalar,
    Sequencer, Shared, Slot, Source, Var, Wave,
)
from physynth.audio import device
from physynth.audio.net import BACKEND_QUEUE_SIZE, binary, branch, bus, pipe, stack
from physynth.audio.units import Oscillator


def const(*values):
    return Net.wrap(Constant(values))


# --- Net Tests ---

class TestComposition:
    """Test graph operators."""

    def test_wrap_is_idempotent(self):
        net = const(1.0)
        assert Net.wrap(net) is net
        assert net.size() == 1

    def test_pipe(self):
        net = pipe(const(2.0), Net.wrap(Scalar("*", 3.0, 1)))
        assert (net.inputs, net.outputs) == (0, 1)
        assert net.tick([]) == [6.0]

    def test_pipe_arity(self):
        assert pipe(const(1.0), const(2.0)) is None

    def test_stack(self):
        net = stack(Net.wrap(Pass(1)), const(5.0))
        assert (net.inputs, net.outputs) == (1, 2)
        assert net.tick([3.0]) == [3.0, 5.0]

    def test_branch(self):
        net = branch(Net.wrap(Pass(1)), Net.wrap(Scalar("+", 1.0, 1)))
        assert net.tick([1.0]) == [1.0, 2.0]

    def test_branch_needs_same_inputs(self):
        assert branch(const(1.0), Net.wrap(Pass(1))) is None

    def test_bus_and_binary(self):
        assert bus(const(1.0, 2.0), const(3.0, 4.0)).tick([]) == [4.0, 6.0]
        assert binary("-", const(1.0), const(3.0)).tick([]) == [-2.0]
        assert binary("*", const(1.0), const(1.0, 2.0)) is None

    def test_operands_are_copied(self):
        a = const(1.0)
        stack(a, const(2.0))
        assert a.size() == 1


class TestNetEditing:
    """Test node level editing."""

    def test_push_reads_silence(self):
        net = Net(1, 1)
        node = net.push(Pass(1))
        net.pipe_output(node)
        assert net.tick([7.0]) == [0.0]
        assert net.source(node, 0) == Source.zero()

    def test_chain(self):
        net = Net(1, 1)
        net.chain(Scalar("*", 2.0, 1))
        net.chain(Scalar("+", 1.0, 1))
        assert net.tick([3.0]) == [7.0]

    def test_remove_silences_readers(self):
        net = Net(0, 1)
        c = net.push(Constant([4.0]))
        p = net.push(Pass(1))
        net.connect(c, 0, p, 0)
        net.pipe_output(p)
        assert net.tick([]) == [4.0]
        removed = net.remove(c)
        assert isinstance(removed, Constant)
        assert net.source(p, 0) == Source.zero()
        assert net.tick([]) == [0.0]
        assert net.remove(c) is None

    def test_replace_keeps_wiring(self):
        net = Net.wrap(Constant([1.0]))
        node = net.node_ids()[0]
        assert net.replace(node, Constant([2.0])) is not None
        assert net.tick([]) == [2.0]
        assert net.replace(node, Constant([1.0, 2.0])) is None

    def test_invalid_ports(self):
        net = Net(1, 1)
        node = net.push(Pass(1))
        assert not net.connect(node, 1, node, 0)
        assert not net.connect_input(1, node, 0)
        assert not net.connect_output(node, 0, 1)
        assert not net.set_source(node, 0, Source.global_input(3))
        assert net.output_source(2) is None

    def test_pipe_all(self):
        net = Net(0, 2)
        a = net.push(Constant([1.0, 2.0]))
        b = net.push(Pass(2))
        assert net.pipe_all(a, b)
        net.pipe_output(b)
        assert net.tick([]) == [1.0, 2.0]

    def test_cycle(self):
        net = Net(0, 1)
        a = net.push(Pass(1))
        b = net.push(Pass(1))
        net.connect(a, 0, b, 0)
        net.pipe_output(b)
        assert net.error() is None
        net.connect(b, 0, a, 0)
        assert net.error() is NetError.CYCLE
        assert net.tick([]) == [0.0]
        net.disconnect(a, 0)
        assert net.error() is None

    def test_display(self):
        assert const(1.0, 2.0).display() == "Inputs         : 0\nOutputs        : 2\n"

    def test_sample_rate_reaches_nodes(self):
        net = Net.wrap(Oscillator("sine", 1.0))
        net.set_sample_rate(4.0)
        out = [net.tick([])[0] for _ in range(4)]
        assert out == pytest.approx([0.0, 1.0, 0.0, -1.0], abs=1e-9)
        net.reset()
        assert net.tick([])[0] == pytest.approx(0.0)


class TestBackends:
    """Test net backends and commits."""

    def test_backend_once(self):
        net = const(1.0)
        assert not net.has_backend
        assert net.backend() is not None
        assert net.has_backend
        assert net.backend() is None

    def test_commit_without_backend(self):
        assert not const(1.0).commit()

    def test_commit_updates_backend(self):
        net = const(1.0)
        backend = net.backend()
        assert backend.tick([]) == [1.0]
        net.replace(net.node_ids()[0], Constant([2.0]))
        assert backend.tick([]) == [1.0]
        assert net.commit()
        assert backend.tick([]) == [2.0]

    def test_commit_never_blocks(self):
        net = const(1.0)
        net.backend()
        for _ in range(BACKEND_QUEUE_SIZE):
            assert net.commit()
        assert not net.commit()

    def test_backend_is_not_copied(self):
        net = const(1.0)
        backend = net.backend()
        assert backend.clone() is backend
        assert not net.clone().has_backend


class TestSlot:
    """Test the crossfading output slot."""

    def test_starts_silent(self):
        slot = Slot(2)
        assert slot.backend().tick(()) == [0.0, 0.0]

    def test_rejects_wrong_arity(self):
        slot = Slot(2)
        assert not slot.set(Fade.SMOOTH, 0.1, Constant([1.0]))
        assert not slot.set(Fade.SMOOTH, 0.1, Pass(2))

    def test_crossfade(self):
        slot = Slot(1)
        backend = slot.backend()
        backend.set_sample_rate(10.0)
        assert slot.set(Fade.SMOOTH, 1.0, Constant([1.0]))
        out = [backend.tick(())[0] for _ in range(12)]
        assert out[0] == 0.0
        assert out[-1] == 1.0
        assert all(a <= b for a, b in zip(out, out[1:]))

    def test_power_fade(self):
        slot = Slot(1)
        backend = slot.backend()
        backend.set_sample_rate(10.0)
        slot.set(Fade.POWER, 1.0, Constant([1.0]))
        out = [backend.tick(())[0] for _ in range(12)]
        assert out[5] == pytest.approx(np.sin(np.pi / 4))

    def test_instant_swap(self):
        slot = Slot(1)
        slot.set(Fade.SMOOTH, 0.0, Constant([0.5]))
        assert slot.backend().tick(()) == [0.5]


# --- Sequencer Tests ---

def sequencer(replay=False, outputs=1):
    seq = Sequencer(replay, outputs)
    seq.set_sample_rate(10.0)
    return seq


def run(unit, n):
    return [unit.tick(())[0] for _ in range(n)]


class TestSequencer:
    """Test event scheduling."""

    def test_push_plays_between_start_and_end(self):
        seq = sequencer()
        assert seq.push(0.15, 0.45, 0.0, 0.0, Constant([1.0])) is not None
        assert run(seq, 7) == [0.0, 0.0, 1.0, 1.0, 1.0, 0.0, 0.0]

    def test_push_checks_arity(self):
        seq = sequencer(outputs=2)
        assert seq.push(0.0, 1.0, 0.0, 0.0, Constant([1.0])) is None
        assert seq.push(0.0, 1.0, 0.0, 0.0, Pass(2)) is None

    def test_push_duration(self):
        seq = sequencer()
        seq.push_duration(0.05, 0.2, 0.0, 0.0, Constant([1.0]))
        assert run(seq, 4) == [0.0, 1.0, 1.0, 0.0]

    def test_push_relative(self):
        seq = sequencer()
        run(seq, 3)
        seq.push_relative(0.0, 0.15, 0.0, 0.0, Constant([1.0]))
        assert run(seq, 3) == [1.0, 1.0, 0.0]

    def test_edit(self):
        seq = sequencer()
        event = seq.push(0.0, 10.0, 0.0, 0.0, Constant([1.0]))
        seq.edit(event, 0.15, 0.0)
        assert run(seq, 3) == [1.0, 1.0, 0.0]

    def test_fade_in(self):
        seq = sequencer()
        seq.push(0.0, 10.0, 0.5, 0.0, Constant([1.0]))
        out = run(seq, 7)
        assert out[0] == 0.0
        assert 0.0 < out[2] < 1.0
        assert out[6] == 1.0

    def test_replay(self):
        seq = sequencer(replay=True)
        seq.push(0.0, 0.15, 0.0, 0.0, Constant([1.0]))
        assert run(seq, 3) == [1.0, 1.0, 0.0]
        seq.reset()
        assert run(seq, 3) == [1.0, 1.0, 0.0]

    def test_no_replay(self):
        seq = sequencer(replay=False)
        seq.push(0.0, 0.15, 0.0, 0.0, Constant([1.0]))
        run(seq, 3)
        seq.reset()
        assert run(seq, 3) == [0.0, 0.0, 0.0]

    def test_backend_receives_pushes(self):
        seq = sequencer()
        backend = seq.backend()
        assert seq.backend() is None
        assert seq.has_backend
        seq.push(0.0, 10.0, 0.0, 0.0, Constant([1.0]))
        assert backend.tick(()) == [1.0]


# --- Shared Data Tests ---

class TestShared:
    """Test shared cells and tables."""

    def test_shared_is_not_copied(self):
        cell = Shared(1.0)
        net = Net.wrap(Var(cell))
        copy = net.clone()
        cell.set(2.0)
        assert copy.tick([]) == [2.0]

    def test_table_power_of_two(self):
        assert AtomicTable.try_new([1.0, 2.0, 3.0]) is None
        assert AtomicTable.try_new([]) is None
        with pytest.raises(ValueError):
            AtomicTable([1.0, 2.0, 3.0])

    def test_table_access(self):
        table = AtomicTable([0.0, 1.0, 2.0, 3.0])
        assert table.at(3) == 3.0
        assert table.at(4) is None
        assert not table.set(4, 1.0)
        assert table.read_wrapped(5) == 1.0
        assert table.read_linear(0.125) == pytest.approx(0.5)


class TestWave:
    """Test waves."""

    def test_render(self):
        wave = Wave.render(10.0, 0.5, const(0.25, 0.5))
        assert wave.channels() == 2
        assert wave.len() == 5
        assert wave.at(1, 4) == 0.5
        assert wave.duration() == 0.5

    def test_render_needs_generator(self):
        assert Wave.render(10.0, 1.0, Net.wrap(Pass(1))) is None

    def test_render_rejects_non_finite(self):
        assert Wave.render(10.0, float("nan"), const(0.5)) is None
        assert Wave.render(10.0, float("inf"), const(0.5)) is None
        assert Wave.render(float("inf"), 1.0, const(0.5)) is None
        assert Wave.render(0.0, 1.0, const(0.5)) is None

    def test_render_leaves_unit_alone(self):
        osc = Oscillator("saw", 1.0)
        Wave.render(10.0, 1.0, osc)
        assert osc.phase == 0.0

    def test_channel(self):
        wave = Wave.from_samples(4.0, [0.5, -0.5])
        assert wave.channel(0) == [0.5, -0.5]
        assert wave.channel(1) is None

    def test_save_and_load(self, tmp_path):
        path = str(tmp_path / "stereo.wav")
        wave = Wave.render(100.0, 0.1, const(0.5, -0.25))
        assert wave.save_wav16(path)
        loaded = Wave.load(path)
        assert loaded.channels() == 2
        assert loaded.len() == 10
        assert loaded.sample_rate() == 100.0
        assert loaded.at(1, 0) == pytest.approx(-0.25, abs=1e-3)

    def test_load_missing(self, tmp_path):
        assert Wave.load(str(tmp_path / "missing.wav")) is None


# --- Device Tests ---

class FakeStream:
    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.callback = kwargs["callback"]
        self.started = False
        self.closed = False

    def start(self):
        self.started = True

    def stop(self):
        self.started = False

    def close(self):
        self.closed = True


class FakeSoundDevice:
    """Stands in for the sounddevice module."""

    class PortAudioError(Exception):
        pass

    def __init__(self, fail=False):
        self.fail = fail
        self.devices = [
            {"name": "Speakers", "max_output_channels": 2, "max_input_channels": 0,
             "default_samplerate": 48000.0},
            {"name": "Microphone", "max_output_channels": 0, "max_input_channels": 1,
             "default_samplerate": 44100.0},
        ]

    def query_hostapis(self):
        return [{"name": "ALSA", "devices": [0, 1],
                 "default_output_device": 0, "default_input_device": 1}]

    def query_devices(self, index=None, kind=None):
        if kind is None:
            return self.devices
        if index is None:
            index = 0 if kind == "output" else 1
        return self.devices[index]

    def _stream(self, **kwargs):
        if self.fail:
            raise self.PortAudioError("device unavailable")
        return FakeStream(**kwargs)

    def OutputStream(self, **kwargs):
        return self._stream(**kwargs)

    def InputStream(self, **kwargs):
        return self._stream(**kwargs)


@pytest.fixture
def fake_sd(monkeypatch):
    sd = FakeSoundDevice()
    monkeypatch.setattr(device, "_load_backend", lambda: sd)
    return sd


class TestDevice:
    """Test the sounddevice layer with a fake backend."""

    def test_sanitize(self):
        block = np.array([np.nan, np.inf, 1e-40, 2.0, -0.5, 0.0], dtype=np.float32)
        assert device.sanitize(block).tolist() == [0.0, 0.0, 0.0, 1.0, -0.5, 0.0]

    def test_list_devices(self, fake_sd):
        assert device.list_devices("output") == ["0: ALSA", "    0: Speakers"]
        assert device.list_devices("input") == ["0: ALSA", "    1: Microphone"]

    def test_resolve_device(self, fake_sd):
        assert device._resolve_device(fake_sd, None, None, "output") is None
        assert device._resolve_device(fake_sd, -1, 3, "output") == 3
        assert device._resolve_device(fake_sd, 0, None, "input") == 1
        with pytest.raises(device.AudioDeviceError):
            device._resolve_device(fake_sd, 4, 0, "output")
        with pytest.raises(device.AudioDeviceError):
            device._resolve_device(fake_sd, 0, 9, "output")

    def test_open_output_defaults(self, fake_sd):
        stream, channels, rate = device.open_output(Constant([2.0, -0.5]))
        assert stream.started
        assert (channels, rate) == (2, 48000.0)
        out = np.zeros((3, 2), dtype=np.float32)
        stream.callback(out, 3, None, None)
        assert out.tolist() == [[1.0, -0.5]] * 3

    def test_open_input_feeds_queues(self, fake_sd):
        left, right = queue.Queue(maxsize=4), queue.Queue(maxsize=4)
        stream = device.open_input(left, right)
        stream.callback(np.array([[0.25], [0.5]], dtype=np.float32), 2, None, None)
        assert [left.get_nowait(), left.get_nowait()] == [0.25, 0.5]
        assert right.get_nowait() == 0.25

    def test_stream_error(self, fake_sd):
        fake_sd.fail = True
        with pytest.raises(device.AudioDeviceError):
            device.open_output(Constant([0.0, 0.0]))


class TestBridge:
    """Test the audio bridge."""

    def test_play(self):
        bridge = AudioBridge(channels=1)
        assert bridge.play(Net.wrap(Constant([0.5])))
        assert not bridge.play(Net.wrap(Pass(1)))
        assert not bridge.play(const(0.5, 0.5))

    def test_set_out_device(self, fake_sd):
        bridge = AudioBridge()
        assert bridge.set_out_device()
        assert bridge.out_stream.started
        assert bridge.sample_rate == 48000.0
        bridge.close()
        assert bridge.out_stream is None

    def test_failure_keeps_state(self, fake_sd):
        bridge = AudioBridge()
        bridge.set_out_device()
        stream, slot = bridge.out_stream, bridge.slot
        fake_sd.fail = True
        assert not bridge.set_out_device(channels=1)
        assert bridge.out_stream is stream
        assert bridge.slot is slot
        assert bridge.channels == 2

    def test_input_unit(self, fake_sd):
        bridge = AudioBridge()
        assert bridge.set_in_device()
        unit = bridge.input_unit()
        assert unit.tick(()) == [0.0, 0.0]
        bridge.in_stream.callback(np.array([[0.5]], dtype=np.float32), 1, None, None)
        assert unit.tick(()) == [0.5, 0.5]

    def test_listing(self, fake_sd):
        assert AudioBridge().list_out_devices() == "\n// 0: ALSA\n//     0: Speakers"
