import io
import sys

import pytest

from llprospero import cli

ADD_XY = "a var-x\nb var-y\nc add a b\n"
CIRCLE = (
    "x var-x\ny var-y\nxx square x\nyy square y\n"
    "s add xx yy\nr const 0.5\nd sub r s\n"
)


def _feed(monkeypatch, program):
    monkeypatch.setattr(sys, "stdin", io.StringIO(program))


def _binary_stdout(monkeypatch):
    stdout = io.TextIOWrapper(io.BytesIO(), encoding="ascii")
    monkeypatch.setattr(sys, "stdout", stdout)
    return stdout


def _collect(stdout):
    stdout.flush()
    return stdout.buffer.getvalue()


def test_print_canonical_names(monkeypatch, capsys):
    _feed(monkeypatch, ADD_XY)
    code = cli.print_main([])
    out = capsys.readouterr().out
    assert code == 0
    assert out == "v0 var-x\nv1 var-y\nv2 add v0 v1\n"
    _feed(monkeypatch, out)
    assert cli.print_main([]) == 0
    again = capsys.readouterr().out
    assert again == out


def test_reorder_drops_dead_code(monkeypatch, capsys):
    _feed(monkeypatch, "a var-x\nb var-y\nc var-z\nd add a b\n")
    code = cli.reorder_main([])
    out = capsys.readouterr().out
    assert code == 0
    lines = out.splitlines()
    assert len(lines) == 3
    assert not any("var-z" in line for line in lines)


def test_simplify_removes_duplicates(monkeypatch, capsys):
    _feed(monkeypatch, "a var-x\nb var-x\nc add a b\n")
    code = cli.simplify_main([])
    out = capsys.readouterr().out
    assert code == 0
    lines = out.splitlines()
    assert len(lines) == 2
    assert lines[1] == "v1 add v0 v0"


def test_reassociate_preserves_image(monkeypatch, capsys):
    _feed(monkeypatch, CIRCLE)
    code = cli.reassociate_main([])
    out = capsys.readouterr().out
    assert code == 0

    _feed(monkeypatch, CIRCLE)
    stdout = _binary_stdout(monkeypatch)
    assert cli.interp_main(["16"]) == 0
    original = _collect(stdout)

    _feed(monkeypatch, out)
    stdout = _binary_stdout(monkeypatch)
    assert cli.interp_main(["16"]) == 0
    rewritten = _collect(stdout)

    assert rewritten == original


def test_memoize_output(monkeypatch, capsys):
    _feed(monkeypatch, ADD_XY)
    code = cli.memoize_main([])
    out = capsys.readouterr().out
    assert code == 0
    lines = out.splitlines()
    assert lines[0] == "# consts: 0"
    assert any(line.startswith("# store ") for line in lines)


def test_interp_image_size(monkeypatch):
    _feed(monkeypatch, CIRCLE)
    stdout = _binary_stdout(monkeypatch)
    code = cli.interp_main(["8"])
    raw = _collect(stdout)
    assert code == 0
    header = b"P4 8 8\n"
    assert raw.startswith(header)
    assert len(raw) == len(header) + 8


def test_interp_default_size(monkeypatch):
    _feed(monkeypatch, CIRCLE)
    stdout = _binary_stdout(monkeypatch)
    code = cli.interp_main([])
    raw = _collect(stdout)
    assert code == 0
    header = b"P4 512 512\n"
    assert raw.startswith(header)
    assert len(raw) == len(header) + 512 * 512 // 8


def test_interp_rejects_bad_size(monkeypatch):
    _feed(monkeypatch, CIRCLE)
    with pytest.raises(SystemExit):
        cli.interp_main(["abc"])


def test_empty_input_reports_error(monkeypatch, capsys):
    _feed(monkeypatch, "")
    code = cli.print_main([])
    captured = capsys.readouterr()
    assert code == 1
    assert captured.out == ""
    assert "no input" in captured.err


def test_unknown_instruction_reports_error(monkeypatch, capsys):
    _feed(monkeypatch, "a frobnicate\n")
    code = cli.simplify_main([])
    err = capsys.readouterr().err
    assert code == 1
    assert "unknown instruction" in err


def test_x86_defaults(monkeypatch, capsys):
    _feed(monkeypatch, ADD_XY)
    code = cli.x86_main([])
    out = capsys.readouterr().out
    assert code == 0
    lines = out.splitlines()
    assert "stride: .short 4" in lines
    assert lines.count("ret") == 7


def test_x86_scalar(monkeypatch, capsys):
    _feed(monkeypatch, ADD_XY)
    code = cli.x86_main(["--vectorize", "off"])
    out = capsys.readouterr().out
    assert code == 0
    assert "stride: .short 1" in out.splitlines()


def test_x86_unmemoized(monkeypatch, capsys):
    _feed(monkeypatch, ADD_XY)
    code = cli.x86_main(["--memoize", "no"])
    out = capsys.readouterr().out
    assert code == 0
    lines = out.splitlines()
    after_x = lines.index("x:")
    assert lines[after_x + 1] == "ret"
    after_xy = lines.index("xy:")
    assert lines[after_xy + 1] != "ret"


def test_x86_sink_loads_option(monkeypatch, capsys):
    _feed(monkeypatch, "x var-x\ny var-y\ns add y x\n")
    code = cli.x86_main(["--sink-loads", "none"])
    out = capsys.readouterr().out
    assert code == 0
    adds = [line for line in out.splitlines() if line.startswith("vaddps")]
    assert len(adds) == 1
    assert all(op.startswith("%xmm") for op in adds[0].split(" ", 1)[1].split(","))


def test_x86_rejects_bad_boolean(monkeypatch):
    _feed(monkeypatch, ADD_XY)
    with pytest.raises(SystemExit):
        cli.x86_main(["--memoize", "maybe"])