"""
Tests for the console interpreter: statements, sorts, control flow and
the transcript.
"""

import math

import pytest

from physynth import Config, EvaluatorPanic, Sandbox
from physynth.runtime import Sort


@pytest.fixture
def sandbox():
    sb = Sandbox(Config(attraction=0.0))
    yield sb
    sb.close()


def results(sb: Sandbox, text: str):
    """Evaluate ``text`` and return the result lines it appended."""
    before = len(sb.transcript)
    sb.eval(text)
    chunk = sb.transcript[before:]
    echo = "\n" + text
    assert chunk.startswith(echo)
    rest = chunk[len(echo):]
    return rest.split("\n// ")[1:] if rest else []


# --- Transcript Tests ---

class TestTranscript:
    """Test echo and result lines."""

    def test_let_then_read(self, sandbox):
        """Binding produces no output; reading prints the number."""
        assert results(sandbox, "let a = 2.0 + 3.0;") == []
        assert results(sandbox, "a;") == ["5.0"]
        assert sandbox.transcript.endswith("\na;\n// 5.0")

    def test_several_results(self, sandbox):
        assert results(sandbox, "1; 2.5; true;") == ["1.0", "2.5", "true"]

    def test_unresolved_expression_is_silent(self, sandbox):
        assert results(sandbox, "nothing_here;") == []

    def test_empty_input(self, sandbox):
        sandbox.eval("")
        assert sandbox.transcript == ""

    def test_parse_error(self, sandbox):
        """Parse errors are reported instead of echoing the input."""
        sandbox.eval("let = ;")
        assert sandbox.transcript.startswith("\n\n// error: ")
        assert "let = ;" not in sandbox.transcript
        assert sandbox.interpreter.diagnostics.error_count == 1

    def test_quiet_mode(self, sandbox):
        """In quiet mode inputs are echoed without results."""
        sandbox.eval('"quiet" = true;')
        assert results(sandbox, "1;") == []
        sandbox.eval('"quiet" = false;')
        assert results(sandbox, "1;") == ["1.0"]

    def test_quiet_eval_leaves_transcript(self, sandbox):
        sandbox.quiet_eval("let a = 1; a;")
        assert sandbox.transcript == ""
        assert sandbox.ctx.store.get("a", Sort.NUMBER) == 1.0


# --- Number Tests ---

class TestNumbers:
    """Test Number evaluation."""

    def test_arithmetic(self, sandbox):
        assert results(sandbox, "1 + 2 * 3; 2 ** 10; -7 % 3;") == ["7.0", "1024.0", "-1.0"]

    def test_division_by_zero(self, sandbox):
        assert results(sandbox, "1 / 0; -1 / 0; 0 / 0;") == ["inf", "-inf", "NaN"]

    def test_functions(self, sandbox):
        assert results(sandbox, "sin(0); max(2, 3); clamp(5, 0, 1);") == ["0.0", "3.0", "1.0"]

    def test_wrong_arity_is_silent(self, sandbox):
        assert results(sandbox, "sin(1, 2);") == []

    def test_method_form(self, sandbox):
        sandbox.eval("let x = 4;")
        assert results(sandbox, "x.sqrt(); x.max(9); x.recip();") == ["2.0", "9.0", "0.25"]

    def test_constants(self, sandbox):
        assert results(sandbox, "PI;") == [repr(math.pi)]

    def test_constant_can_be_shadowed(self, sandbox):
        sandbox.eval("let PI = 3;")
        assert results(sandbox, "PI;") == ["3.0"]

    def test_time(self, sandbox):
        assert results(sandbox, "time.elapsed(); time.is_paused();") == ["0.0", "false"]
        sandbox.eval("time.pause();")
        assert results(sandbox, "time.is_paused();") == ["true"]
        sandbox.eval("time.resume();")
        assert results(sandbox, "time.is_paused();") == ["false"]


# --- Assignment Tests ---

class TestAssignment:
    """Test assignment and compound assignment."""

    def test_compound(self, sandbox):
        sandbox.eval("let a = 2; a += 3; a *= 2; a -= 1; a /= 3; a %= 2;")
        assert results(sandbox, "a;") == ["1.0"]

    def test_assignment_keeps_sort(self, sandbox):
        """A name keeps its sort; a right side of another sort is ignored."""
        sandbox.eval("let a = 2; a = [1, 2];")
        assert results(sandbox, "a;") == ["2.0"]
        sandbox.eval("a = 7;")
        assert results(sandbox, "a;") == ["7.0"]

    def test_unbound_assignment_is_ignored(self, sandbox):
        sandbox.eval("b = 1;")
        assert "b" not in sandbox.ctx.store

    def test_let_rebinds_any_sort(self, sandbox):
        sandbox.eval("let a = 2; let a = [1];")
        assert results(sandbox, "a;") == ["[1.0]"]

    def test_compound_only_on_numbers(self, sandbox):
        sandbox.eval("let v = [1]; v += 1;")
        assert results(sandbox, "v;") == ["[1.0]"]

    def test_index_assignment(self, sandbox):
        sandbox.eval("let v = [1, 2, 3]; v[1] = 5; v[2] += 1; v[9] = 1;")
        assert results(sandbox, "v;") == ["[1.0, 5.0, 4.0]"]

    def test_booleans(self, sandbox):
        sandbox.eval("let b = 1 < 2 && !false;")
        assert results(sandbox, "b; b || false; 2 == 3;") == ["true", "true", "false"]


# --- Control Flow Tests ---

class TestControlFlow:
    """Test for, if, break and continue."""

    def test_for_range(self, sandbox):
        assert results(sandbox, "for i in 0..3 { i; }") == ["0.0", "1.0", "2.0"]

    def test_for_array(self, sandbox):
        assert results(sandbox, "for x in [5, 6] { x * 2; }") == ["10.0", "12.0"]

    def test_empty_range(self, sandbox):
        assert results(sandbox, "for i in 3..0 { i; }") == []

    def test_loop_variable_restored(self, sandbox):
        """A binding shadowed by the loop variable comes back afterwards."""
        sandbox.eval("let i = [7]; for i in 0..2 { }")
        assert results(sandbox, "i;") == ["[7.0]"]

    def test_loop_variable_dropped(self, sandbox):
        sandbox.eval("for i in 0..2 { }")
        assert "i" not in sandbox.ctx.store

    def test_break(self, sandbox):
        assert results(sandbox, "for i in 0..10 { if i > 1 { break; } i; }") == ["0.0", "1.0"]

    def test_continue(self, sandbox):
        assert results(sandbox, "for i in 0..4 { if i == 1 { continue; } i; }") == [
            "0.0", "2.0", "3.0",
        ]

    def test_break_leaves_inner_loop_only(self, sandbox):
        text = "for i in 0..2 { for j in 0..5 { if j > 0 { break; } j; } i; }"
        assert results(sandbox, text) == ["0.0", "0.0", "0.0", "1.0"]

    def test_break_at_top_level_stops_input(self, sandbox):
        assert results(sandbox, "1; break; 2;") == ["1.0"]

    def test_if_else(self, sandbox):
        text = "let a = 5; if a < 3 { 1; } else if a < 6 { 2; } else { 3; }"
        assert results(sandbox, text) == ["2.0"]

    def test_non_boolean_condition_skips(self, sandbox):
        assert results(sandbox, "if 1 { 1; } else { 2; }") == []


# --- Array Tests ---

class TestArrays:
    """Test NumberArray methods."""

    def test_push(self, sandbox):
        sandbox.eval("let v = [1.0, 2.0, 3.0]; v.push(4.0);")
        assert results(sandbox, "v;") == ["[1.0, 2.0, 3.0, 4.0]"]

    def test_edits(self, sandbox):
        sandbox.eval("let v = [1, 2, 3]; v.pop(); v.insert(0, 9); v.remove(1);")
        assert results(sandbox, "v; v.len(); v.first(); v.last(); v.get(1);") == [
            "[9.0, 2.0]", "2.0", "9.0", "2.0", "2.0",
        ]

    def test_out_of_range_is_ignored(self, sandbox):
        sandbox.eval("let v = [1]; v.insert(5, 2); v.remove(3);")
        assert results(sandbox, "v; v[4]; v.get(4);") == ["[1.0]"]

    def test_resize_and_clear(self, sandbox):
        sandbox.eval("let v = [1, 2]; v.resize(4, 0.5);")
        assert results(sandbox, "v;") == ["[1.0, 2.0, 0.5, 0.5]"]
        sandbox.eval("v.resize(1, 0); v.clear();")
        assert results(sandbox, "v; v.first();") == ["[]"]

    def test_let_copies(self, sandbox):
        """Arrays are values: editing a copy leaves the original alone."""
        sandbox.eval("let v = [1]; let w = v; w.push(2);")
        assert results(sandbox, "v; w;") == ["[1.0]", "[1.0, 2.0]"]

    def test_drop(self, sandbox):
        sandbox.eval("let v = [1]; v.drop();")
        assert "v" not in sandbox.ctx.store


# --- Audio Graph Tests ---

class TestGraphs:
    """Test graph values from the console."""

    def test_display(self, sandbox):
        sandbox.eval("let g = dc(0.5);")
        sandbox.eval("g;")
        assert sandbox.transcript.endswith(
            "\n// Inputs         : 0\n// Outputs        : 1\n// Size           : 1"
        )

    def test_tick_statement(self, sandbox):
        sandbox.eval("let g = dc(0.5) >> mul(2);")
        assert results(sandbox, "g.tick([]);") == ["[1.0]"]

    def test_tick_into_array(self, sandbox):
        sandbox.eval("let g = dc([1, 2]) >> reverse(2); let out = [0, 0]; g.tick([], out);")
        assert results(sandbox, "out;") == ["[2.0, 1.0]"]

    def test_tick_expression(self, sandbox):
        sandbox.eval("let g = pass() * 3; let y = g.tick([2]);")
        assert results(sandbox, "y;") == ["[6.0]"]

    def test_tick_wrong_frame(self, sandbox):
        sandbox.eval("let g = pass();")
        assert results(sandbox, "g.tick([]);") == []

    def test_scalar_left(self, sandbox):
        sandbox.eval("let g = 1 - dc(0.25);")
        assert results(sandbox, "g.tick([]);") == ["[0.75]"]

    def test_arity_mismatch(self, sandbox):
        """'>>' needs matching outputs and inputs."""
        sandbox.eval("let g = dc(1) >> dc(2);")
        assert "g" not in sandbox.ctx.store

    def test_stack_and_branch(self, sandbox):
        sandbox.eval("let g = dc(1) | dc(2); let h = pass() ^ mul(2);")
        assert results(sandbox, "g.outputs(); h.inputs(); h.tick([3]);") == [
            "2.0", "1.0", "[3.0, 6.0]",
        ]

    def test_bus(self, sandbox):
        sandbox.eval("let g = dc(1) & dc(2);")
        assert results(sandbox, "g.tick([]);") == ["[3.0]"]

    def test_let_clones(self, sandbox):
        sandbox.eval("let g = Net::new(0, 1); let h = g; g.chain(dc(1));")
        assert results(sandbox, "g.size(); h.size();") == ["1.0", "0.0"]

    def test_net_editing(self, sandbox):
        sandbox.eval("let n = Net::new(0, 1); let id = n.chain(dc(0.3));")
        assert results(sandbox, "n.tick([]);") == ["[0.3]"]
        assert sandbox.ctx.store.get("id", Sort.NODE) is not None
        sandbox.quiet_eval("n.remove(id);")
        assert results(sandbox, "n.tick([]); n.size();") == ["[0.0]", "0.0"]

    def test_cycle_error(self, sandbox):
        sandbox.eval(
            "let n = Net::new(0, 1); let a = n.push(pass()); let b = n.push(pass());"
            " n.connect(a, 0, b, 0);"
        )
        assert results(sandbox, "n.error();") == ["None"]
        sandbox.eval("n.connect(b, 0, a, 0);")
        assert results(sandbox, "n.error();") == ["Cycle"]

    def test_sources(self, sandbox):
        sandbox.eval("let n = Net::new(1, 1); let a = n.push(pass());")
        assert results(sandbox, "n.source(a, 0); Source::Zero; Source::Global(1);") == [
            "Zero", "Zero", "Global(1)",
        ]
        sandbox.eval("n.connect_input(0, a, 0); n.connect_output(a, 0, 0);")
        assert results(sandbox, "n.source(a, 0); n.tick([4]);") == ["Global(0)", "[4.0]"]

    def test_set_source(self, sandbox):
        sandbox.eval(
            "let n = Net::new(0, 1); let c = n.push(dc(2)); let p = n.push(pass());"
            " n.set_source(p, 0, Source::Local(c, 0)); n.set_output_source(0, Source::Local(p, 0));"
        )
        assert results(sandbox, "n.tick([]);") == ["[2.0]"]

    def test_play_requires_matching_channels(self, sandbox):
        """A mono generator on a stereo bridge is not played."""
        queue = sandbox.ctx.audio.slot._queue
        sandbox.eval("let m = sine_hz(440); m.play();")
        assert queue.empty()
        sandbox.eval("(sine_hz(440) | sine_hz(220)).play();")
        assert queue.qsize() == 1

    def test_play_backend_and_commit(self, sandbox):
        sandbox.eval("let n = Net::new(0, 2); let id = n.chain(dc([0.1, 0.2])); n.play_backend();")
        assert results(sandbox, "n.has_backend();") == ["true"]
        _, _, unit = sandbox.ctx.audio.slot._queue.get_nowait()
        assert unit.tick(()) == pytest.approx([0.1, 0.2])
        sandbox.quiet_eval("n.replace(id, dc([0.3, 0.4])); n.commit();")
        assert unit.tick(()) == pytest.approx([0.3, 0.4])

    def test_backend_only_once(self, sandbox):
        sandbox.eval("let n = Net::new(0, 1); let b = n.backend(); let c = n.backend();")
        assert sandbox.ctx.store.sort_of("b") is Sort.GRAPH
        assert "c" not in sandbox.ctx.store


class TestSharedValues:
    """Test shared cells, tables, waves and sequencers."""

    def test_shared_var(self, sandbox):
        sandbox.eval("let s = shared(0.5); let g = var(s); s.set(0.25);")
        assert results(sandbox, "g.tick([]); s.value(); s;") == ["[0.25]", "0.25", "Shared(0.25)"]

    def test_atomic_table(self, sandbox):
        sandbox.eval("let t = AtomicTable::new([0, 1, 2, 3]); t.set(2, 5);")
        assert results(sandbox, "t.len(); t.at(2); t.at(9);") == ["4.0", "5.0"]

    def test_atomic_table_needs_power_of_two(self, sandbox):
        sandbox.eval("let t = AtomicTable::new([1, 2, 3]);")
        assert "t" not in sandbox.ctx.store

    def test_wave_render(self, sandbox):
        sandbox.eval("let w = Wave::render(8, 1, dc(0.5));")
        assert results(sandbox, "w; w.len(); w.at(0, 3); w.channels();") == [
            "Wave(ch:1, sr:8, len:8, dur:1)", "8.0", "0.5", "1.0",
        ]

    def test_wave_from_samples(self, sandbox):
        sandbox.eval("let w = Wave::from_samples(4, [1, 0, -1, 0]); let c = w.channel(0);")
        assert results(sandbox, "c; w.duration();") == ["[1.0, 0.0, -1.0, 0.0]", "1.0"]

    def test_wave_save_and_load(self, sandbox, tmp_path):
        path = tmp_path / "half.wav"
        sandbox.eval(f'let w = Wave::render(8, 1, dc(0.5)); w.save_wav16("{path}");')
        sandbox.eval(f'let l = Wave::load("{path}");')
        wave = sandbox.ctx.store.get("l", Sort.WAVE)
        assert wave is not None
        assert wave.sample_rate() == 8.0
        assert wave.at(0, 0) == pytest.approx(0.5, abs=1e-3)

    def test_wavech(self, sandbox):
        sandbox.eval("let w = Wave::from_samples(4, [0.5, 0.25]); let g = wavech(w, 0, true);")
        assert results(sandbox, "g.tick([]); g.tick([]); g.tick([]);") == ["[0.5]", "[0.25]", "[0.5]"]

    def test_sequencer(self, sandbox):
        sandbox.eval("let q = Sequencer::new(true, 2); let e = q.push(0, 1, 0, 0, dc([1, 1]));")
        assert sandbox.ctx.store.sort_of("e") is Sort.EVENT
        assert results(sandbox, "q; q.outputs(); q.replay_events();") == [
            "Sequencer(outs: 2, has_backend: false, replay: true)", "2.0", "true",
        ]

    def test_sequencer_rejects_wrong_outputs(self, sandbox):
        sandbox.eval("let q = Sequencer::new(false, 2); let e = q.push(0, 1, 0, 0, dc(1));")
        assert "e" not in sandbox.ctx.store

    def test_sequencer_play_backend(self, sandbox):
        sandbox.eval("let q = Sequencer::new(false, 2); q.play_backend();")
        assert results(sandbox, "q.has_backend();") == ["true"]
        assert sandbox.ctx.audio.slot._queue.qsize() == 1


class TestVerbs:
    """Test statement-only built-ins."""

    def test_gravity_and_attraction(self, sandbox):
        sandbox.eval("gravity(0, -9.8); attraction(0.5);")
        assert sandbox.world.gravity == (0.0, -9.8)
        assert sandbox.world.attraction == 0.5

    def test_panic(self, sandbox):
        with pytest.raises(EvaluatorPanic, match="boom"):
            sandbox.eval('panic("boom");')

    def test_list_devices_without_backend(self, sandbox, monkeypatch):
        from physynth.audio import device

        def missing():
            raise device.AudioDeviceError("PortAudio is not available")

        monkeypatch.setattr(device, "_load_backend", missing)
        assert results(sandbox, "list_out_devices();") == []


# --- Non-finite Argument Tests ---

class TestNonFinite:
    """NaN, infinite and oversized numbers yield no value instead of raising."""

    def test_huge_integer_literal_is_inf(self, sandbox):
        assert results(sandbox, "1" + "0" * 400 + ";") == ["inf"]

    def test_rounding_keeps_infinities(self, sandbox):
        assert results(sandbox, "floor(-1 / 0); ceil(1 / 0); trunc(-1 / 0); floor(0 / 0);") == [
            "-inf", "inf", "-inf", "NaN",
        ]

    def test_logarithms_at_and_below_zero(self, sandbox):
        assert results(sandbox, "ln(0); log2(-0.0); log10(0); ln(-1); log2(1 / 0);") == [
            "-inf", "-inf", "-inf", "NaN", "inf",
        ]

    def test_index_and_count(self, sandbox):
        sandbox.eval("let v = [1, 2];")
        assert results(sandbox, "v[0 / 0]; v[1 / 0]; v.get(0 / 0);") == []
        sandbox.eval("v.insert(0 / 0, 5); v.resize(1 / 0, 0);")
        assert results(sandbox, "v;") == ["[1.0, 2.0]"]
        sandbox.eval("let g = multipass(0 / 0); let h = split(1 / 0);")
        assert "g" not in sandbox.ctx.store
        assert "h" not in sandbox.ctx.store

    def test_delay_time(self, sandbox):
        sandbox.eval("let d = delay(1 / 0); let n = delay(0 / 0);")
        assert "d" not in sandbox.ctx.store
        assert "n" not in sandbox.ctx.store

    def test_wave_arguments(self, sandbox):
        sandbox.eval("let w = Wave::render(44100, 0 / 0, dc(1));")
        sandbox.eval("let x = Wave::render(44100, 1 / 0, dc(1));")
        sandbox.eval("let y = Wave::render(0 / 0, 1, dc(1));")
        sandbox.eval("let z = Wave::zero(1, 1 / 0, 4);")
        for name in "wxyz":
            assert name not in sandbox.ctx.store

    def test_device_arguments_fall_back_to_defaults(self, sandbox, monkeypatch):
        calls = []
        monkeypatch.setattr(sandbox.ctx.audio, "set_out_device", lambda *args: calls.append(args))
        sandbox.eval("set_out_device(0 / 0, 1 / 0, -1 / 0, 0 / 0);")
        assert calls == [(None, None, None, None, None)]
