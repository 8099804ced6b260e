"""
Tokenizer tests for Klang
"""

import pytest
from parsing import tokenize, KlangTokenizer
from error_handling import KlangLexError, locate, newline_offsets


def kinds_and_values(source):
  return [(token.type, token.value) for token in tokenize(source)]


class TestTokenKinds:
  """Token classification"""

  def test_declaration(self):
    """A declaration yields keyword, identifier, operator, number and delimiter tokens"""
    assert kinds_and_values("let x = 42;") == [
        ("KEYWORD", "let"),
        ("IDENTIFIER", "x"),
        ("OPERATOR", "="),
        ("NUMBER", "42"),
        ("DELIMITER", ";"),
        ("EOF", ""),
    ]

  def test_two_character_operators_win(self):
    """Longest operator match: '<=' is one token, not '<' then '='"""
    values = [value for _, value in kinds_and_values("a <= b == c && d || e != f >= g -> h")]
    assert values == ["a", "<=", "b", "==", "c", "&&", "d", "||", "e", "!=", "f", ">=", "g",
                      "->", "h", ""]

  def test_word_operators_are_keywords(self):
    tokens = kinds_and_values("a and b or c")
    assert ("KEYWORD", "and") in tokens
    assert ("KEYWORD", "or") in tokens

  def test_lambda_keyword(self):
    assert kinds_and_values("forge")[0] == ("KEYWORD", "forge")

  def test_identifier_with_keyword_prefix(self):
    """Words that merely start with a keyword stay identifiers"""
    assert kinds_and_values("letter iffy")[:2] == [("IDENTIFIER", "letter"), ("IDENTIFIER", "iffy")]

  def test_decimal_number(self):
    assert kinds_and_values("3.14")[0] == ("NUMBER", "3.14")

  def test_empty_source_is_just_eof(self):
    assert kinds_and_values("") == [("EOF", "")]


class TestStringsAndComments:
  """String escapes and comment skipping"""

  def test_string_escapes(self):
    tokens = tokenize(r'"a\nb\t\"q\""')
    assert tokens[0].type == "STRING"
    assert tokens[0].value == 'a\nb\t"q"'

  def test_unknown_escape_keeps_character(self):
    assert tokenize(r'"\q"')[0].value == "q"

  def test_comments_are_skipped(self):
    source = "// line comment\nx /* block\ncomment */ y"
    assert kinds_and_values(source) == [("IDENTIFIER", "x"), ("IDENTIFIER", "y"), ("EOF", "")]

  def test_line_comment_ending_in_backslash_stops_at_newline(self):
    """A trailing backslash does not pull the next line into the comment"""
    tokens = tokenize("let y = 1 // path C:\\temp\\\nlet z = 2")
    assert [token.value for token in tokens] == ["let", "y", "=", "1", "let", "z", "=", "2", ""]
    assert tokens[4].span.start_line == 2

  def test_backslash_comment_keeps_following_declaration(self, run_klang):
    result = run_klang("let y = 1 // windows path C:\\temp\\\nlet z = 2\nz")
    assert result['value'] == 2


class TestSpans:
  """Source positions attached to tokens"""

  def test_line_and_column(self):
    tokens = tokenize("let\n  x = 1")
    x = tokens[1]
    assert x.span.start_line == 2
    assert x.span.start_col == 3

  def test_filename_is_recorded(self):
    tokens = KlangTokenizer("demo.klang").tokenize("x")
    assert tokens[0].span.filename == "demo.klang"

  def test_spans_across_many_lines(self):
    """Positions stay exact deep into a long input; EOF sits after the last newline"""
    line_count = 2000
    tokens = tokenize("let a1 = b + c * d - e / f\n" * line_count)
    assert len(tokens) == 12 * line_count + 1
    last_line = tokens[-2]
    assert (last_line.value, last_line.span.start_line, last_line.span.start_col) == ("f", line_count, 26)
    assert (tokens[-1].span.start_line, tokens[-1].span.start_col) == (line_count + 1, 1)

  def test_token_at_newline_boundary(self):
    tokens = tokenize("a\n\nb")
    assert (tokens[1].span.start_line, tokens[1].span.start_col) == (3, 1)
    assert (tokens[0].span.end_line, tokens[0].span.end_col) == (1, 2)


class TestLocate:
  """Offset to line/column conversion"""

  def test_matches_line_and_column(self):
    text = "ab\ncd\n"
    newlines = newline_offsets(text)
    assert newlines == [2, 5]
    assert locate(text, 0, newlines) == (1, 1)
    assert locate(text, 2, newlines) == (1, 3)
    assert locate(text, 3, newlines) == (2, 1)
    assert locate(text, 6, newlines) == (3, 1)

  def test_offsets_are_clamped(self):
    assert locate("", 0) == (1, 1)
    assert locate("abc", 99) == (1, 4)


class TestLexErrors:
  """Invalid input is rejected at the offending character"""

  def test_invalid_character(self):
    with pytest.raises(KlangLexError) as exc_info:
      tokenize("let x = 1 @ 2")
    assert "'@'" in exc_info.value.message
    assert exc_info.value.span.start_col == 11

  def test_dot_is_not_a_token(self):
    """Member access does not exist; the dot is rejected where it appears"""
    with pytest.raises(KlangLexError) as exc_info:
      tokenize("a.b")
    assert exc_info.value.message == "Unexpected character '.'"
    assert exc_info.value.span.start_col == 2

  def test_trailing_dot_after_number(self):
    with pytest.raises(KlangLexError, match="Unexpected character '.'"):
      tokenize("1.")

  def test_unterminated_string(self):
    with pytest.raises(KlangLexError, match="Unterminated string"):
      tokenize('let s = "abc')

  def test_unterminated_block_comment(self):
    with pytest.raises(KlangLexError, match="Unterminated block comment"):
      tokenize("x /* never closed")

  def test_error_carries_source_line(self):
    with pytest.raises(KlangLexError) as exc_info:
      tokenize("ok\nbad $ here")
    assert exc_info.value.context == "bad $ here"
