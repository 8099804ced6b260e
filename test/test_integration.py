"""
End-to-end tests: source text in, printed output out
"""

import pytest
from error_handling import UndefinedVariable
from main import run_source


class TestScenarios:
  """Complete programs run through lexer, parser and evaluator"""

  def test_variables(self, capsys):
    run_source("let x = 1\nlet y = x + 2\nprint(y)")
    assert capsys.readouterr().out == "3\n"

  def test_function_call(self, capsys):
    run_source("def add(a,b){return a+b}\nprint(add(2,3))")
    assert capsys.readouterr().out == "5\n"

  def test_recursive_factorial(self, capsys):
    run_source("def fact(n){ if (n<=1) { return 1 } return n*fact(n-1) }\nprint(fact(5))")
    assert capsys.readouterr().out == "120\n"

  def test_map_index_assignment(self, capsys):
    run_source('let m = {"a":1}\nm["b"] = 2\nprint(m)')
    assert capsys.readouterr().out == "{a: 1, b: 2}\n"

  def test_filter_even(self, capsys):
    run_source("let isEven = forge(n) -> n % 2 == 0\nprint(filter([1,2,3,4], isEven))")
    assert capsys.readouterr().out == "[2, 4]\n"

  def test_undefined_variable(self, capsys):
    with pytest.raises(UndefinedVariable) as exc_info:
      run_source("print(x)")
    assert exc_info.value.name == "x"
    assert "'x'" in str(exc_info.value)
    assert capsys.readouterr().out == ""


class TestLargerPrograms:
  """Programs mixing several features"""

  def test_fizzbuzz(self, capsys):
    source = """
    // classic
    for (i in range(1, 16)) {
      if i % 15 == 0 { print("FizzBuzz") }
      else if i % 3 == 0 { print("Fizz") }
      else if i % 5 == 0 { print("Buzz") }
      else { print(i) }
    }
    """
    run_source(source)
    lines = capsys.readouterr().out.splitlines()
    assert lines[:5] == ["1", "2", "Fizz", "4", "Buzz"]
    assert lines[14] == "FizzBuzz"

  def test_word_counts(self, capsys):
    source = """
    let words = ["a", "b", "a", "c", "a"];
    let counts = {};
    for w in words {
      if type(counts[w]) == "null" { counts[w] = 0; }
      counts[w] = counts[w] + 1;
    }
    print(counts);
    """
    run_source(source)
    assert capsys.readouterr().out == "{a: 3, b: 1, c: 1}\n"

  def test_higher_order_pipeline(self, capsys):
    source = """
    final square = forge(x: number) -> x * x;
    let evens = filter(range(10), forge(n) -> n % 2 == 0);
    print(sum(map(evens, square)));
    """
    run_source(source)
    assert capsys.readouterr().out == "120\n"

  def test_session_environment_persists(self):
    from stdlib import create_global_env
    env = create_global_env()
    run_source("let total = 0;", env)
    run_source("total = total + 5;", env)
    assert run_source("total", env)['value'] == 5
