"""
Tests for the physynth command line.
"""

import json

import pytest

from physynth.__main__ import iter_inputs, main


@pytest.fixture(autouse=True)
def config_home(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))


@pytest.fixture
def script(tmp_path):
    def write(text, name="script.phs"):
        path = tmp_path / name
        path.write_text(text)
        return str(path)
    return write


class TestIterInputs:
    """Test splitting scripts into console inputs."""

    def test_lines(self):
        assert list(iter_inputs("let a = 1;\n\na;\n")) == ["let a = 1;", "a;"]

    def test_blocks_stay_together(self):
        source = "for i in 0..3 {\n    a += i;\n}\na;"
        assert list(iter_inputs(source)) == ["for i in 0..3 {\n    a += i;\n}", "a;"]

    def test_nested_blocks(self):
        source = "if a > 0 {\n  if b > 0 {\n    c = 1;\n  }\n}"
        assert list(iter_inputs(source)) == [source]

    def test_unclosed_block_is_flushed(self):
        assert list(iter_inputs("{\n1;")) == ["{\n1;"]


class TestCheckCommand:
    """Test `physynth check`."""

    def test_ok(self, script, capsys):
        path = script("let a = 1;\nif a > 0 {\n    a = 2;\n}\n", name="ok.phs")
        assert main(["check", path]) == 0
        assert "OK: ok.phs - 2 statement(s), no errors" in capsys.readouterr().out

    def test_errors(self, script, capsys):
        path = script("let = 1;\nlet b = 2;\n1 +;\n")
        assert main(["check", path]) == 1
        out = capsys.readouterr().out
        assert "Parsing failed with 2 error(s)" in out

    def test_json(self, script, capsys):
        path = script("let a = @;\n")
        assert main(["check", "--json", path]) == 1
        report = json.loads(capsys.readouterr().out)
        assert report["error_count"] == 1
        assert report["diagnostics"][0]["code"] == "E001"

    def test_ast(self, script, capsys):
        assert main(["check", "--ast", script("let a = 1;\n")]) == 0
        assert "LetStatement" in capsys.readouterr().out

    def test_missing_file(self, tmp_path, capsys):
        assert main(["check", str(tmp_path / "missing.phs")]) == 1
        assert "File not found" in capsys.readouterr().err


class TestRunCommand:
    """Test `physynth run`."""

    def test_prints_transcript(self, script, capsys):
        assert main(["run", script("let a = 2 + 3;\na;\n")]) == 0
        out = capsys.readouterr().out
        assert out.startswith("let a = 2 + 3;")
        assert "a;\n// 5.0" in out

    def test_frames(self, script, capsys):
        path = script("let e = spawn(1).vx(60);\n")
        assert main(["--attraction", "0", "run", path, "--frames", "60"]) == 0
        assert "let e = spawn(1).vx(60);" in capsys.readouterr().out

    def test_parse_error_is_reported(self, script, capsys):
        assert main(["run", script("1 +;\n")]) == 0
        assert "// error:" in capsys.readouterr().out

    def test_panic(self, script, capsys):
        assert main(["run", script('panic("stop");\n')]) == 1
        assert "panic: stop" in capsys.readouterr().err


class TestConfigCommand:
    """Test `physynth config` and configuration errors."""

    def test_prints_yaml(self, capsys):
        assert main(["--channels", "1", "config"]) == 0
        out = capsys.readouterr().out
        assert "channels: 1\n" in out
        assert "pause: false\n" in out

    def test_missing_config_file(self, tmp_path, capsys):
        assert main(["--config", str(tmp_path / "missing.yaml"), "config"]) == 2
        assert "Error:" in capsys.readouterr().err

    def test_bad_config_file(self, tmp_path, capsys):
        path = tmp_path / "bad.yaml"
        path.write_text("channels: many\n")
        assert main(["--config", str(path), "config"]) == 2
