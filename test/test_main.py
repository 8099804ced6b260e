"""
Command line driver tests
"""

import pytest
import main as klang_main
from main import create_arg_parser, context_from_args, main, needs_more_input


@pytest.fixture
def script(tmp_path):
  def write(source, name="prog.klang"):
    path = tmp_path / name
    path.write_text(source, encoding="utf-8")
    return str(path)

  return write


class TestRunScript:
  """Running a script file"""

  def test_prints_program_result(self, script, capsys):
    main([script('print("hi")\n1 + 2')])
    assert capsys.readouterr().out == "hi\nProgram result: 3\n"

  def test_null_result_is_not_printed(self, script, capsys):
    main([script('print("only")')])
    assert capsys.readouterr().out == "only\n"

  def test_quiet(self, script, capsys):
    main(["--quiet", script("40 + 2")])
    assert capsys.readouterr().out == ""

  def test_runtime_error_exits_with_report(self, script, capsys):
    path = script("let a = 1;\nprint(b);\n")
    with pytest.raises(SystemExit) as exc_info:
      main([path])
    assert exc_info.value.code == 1
    out = capsys.readouterr().out
    assert "UndefinedVariable in" in out
    assert "Variable 'b' is not defined" in out
    assert "print(b);" in out
    assert "^ Error here" in out

  def test_parse_error_exits(self, script, capsys):
    with pytest.raises(SystemExit) as exc_info:
      main([script("let = 1")])
    assert exc_info.value.code == 1
    assert "Parse error" in capsys.readouterr().out

  def test_missing_file(self, tmp_path, capsys):
    with pytest.raises(SystemExit) as exc_info:
      main([str(tmp_path / "nope.klang")])
    assert exc_info.value.code == 1
    assert "not found" in capsys.readouterr().out

  def test_policy_flags(self, script, capsys):
    path = script("def f() { 7 }\nf()")
    main([path])
    assert capsys.readouterr().out == "Program result: 7\n"
    main(["--no-implicit-return", path])
    assert capsys.readouterr().out == ""

  def test_short_circuit_flag(self, script, capsys):
    main(["--short-circuit", script("false && undefinedName")])
    assert capsys.readouterr().out == "Program result: false\n"

  def test_no_top_level_return_flag(self, script, capsys):
    with pytest.raises(SystemExit):
      main(["--no-top-level-return", script("return 1;")])
    assert "outside of a function" in capsys.readouterr().out


class TestInspection:
  """--tokens and --parse"""

  def test_tokens(self, script, capsys):
    main(["--tokens", script("let x = 1;")])
    out = capsys.readouterr().out
    assert out.splitlines()[0] == "6 tokens:"
    assert "KEYWORD(let)" in out
    assert "NUMBER(1)" in out

  def test_parse(self, script, capsys):
    main(["--parse", script("let x = 1;")])
    out = capsys.readouterr().out
    assert "Parsed 1 top-level statements:" in out
    assert "VAR_DECLARATION(let x)" in out


class TestArguments:
  """Argument parsing helpers"""

  def test_defaults(self):
    args = create_arg_parser().parse_args(["prog.klang"])
    context = context_from_args(args)
    assert args.recursion_limit == 10000
    assert context['short_circuit'] is False
    assert context['implicit_return'] is True
    assert context['allow_top_level_return'] is True

  def test_needs_more_input(self):
    assert needs_more_input("def f() {")
    assert needs_more_input("let xs = [1,")
    assert not needs_more_input("def f() { 1 }")
    assert not needs_more_input('"unterminated')


class TestInteractive:
  """REPL sessions driven by scripted input"""

  @pytest.fixture
  def feed(self, monkeypatch):
    def install(*lines):
      pending = iter(lines)
      monkeypatch.setattr("builtins.input", lambda prompt="": next(pending))
      monkeypatch.setattr(klang_main, "setup_readline", lambda: None)

    return install

  def test_session_keeps_bindings(self, feed, capsys):
    feed("let x = 2", "def f(n) {", "  n * x", "}", "f(21)", ":env", "exit")
    main([])
    out = capsys.readouterr().out
    assert "=> 2" in out
    assert "=> 42" in out
    assert "  x = 2" in out
    assert "  f = <function f>" in out

  def test_errors_do_not_end_session(self, feed, capsys):
    feed("nope", "1 + 1", "exit")
    main([])
    out = capsys.readouterr().out
    assert "UndefinedVariable: Variable 'nope' is not defined" in out
    assert "=> 2" in out

  def test_end_of_input(self, monkeypatch, capsys):
    def closed(prompt=""):
      raise EOFError

    monkeypatch.setattr("builtins.input", closed)
    monkeypatch.setattr(klang_main, "setup_readline", lambda: None)
    main([])
    assert "Goodbye!" in capsys.readouterr().out

  def test_interactive_after_script(self, feed, script, capsys):
    feed("answer + 1", "exit")
    main(["-i", "--quiet", script("let answer = 41;")])
    assert "=> 42" in capsys.readouterr().out
