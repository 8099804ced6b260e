"""
Error taxonomy for Klang with source-aware error messages
Every stage fails fast: errors are raised where detected and never recovered
"""

from typing import List, Optional, Tuple
from bisect import bisect_left
import re


# ============================================================================
# SOURCE HELPERS
# ============================================================================

def newline_offsets(source_text: str) -> List[int]:
    """Offsets of every newline in source_text, ascending"""
    return [match.start() for match in re.finditer("\n", source_text)]


def locate(source_text: str, loc: int, newlines: Optional[List[int]] = None) -> Tuple[int, int]:
    """
    Convert a character offset into a 1-based (line, column) pair.
    Pass newline_offsets(source_text) when locating many offsets in one text.
    """
    if newlines is None:
        newlines = newline_offsets(source_text)
    loc = max(0, min(loc, len(source_text)))
    line_index = bisect_left(newlines, loc)
    line_start = newlines[line_index - 1] + 1 if line_index else 0
    return line_index + 1, loc - line_start + 1


def get_context_lines(source_text: str, line_num: int, col_num: int, context_lines: int = 2) -> str:
    """Get context lines around the error"""
    lines = source_text.split('\n')
    start_line = max(0, line_num - context_lines - 1)
    end_line = min(len(lines), line_num + context_lines)

    context_parts = []
    for i in range(start_line, end_line):
        line_prefix = f"{i+1:4d}: "
        context_parts.append(f"{line_prefix}{lines[i]}")
        if i == line_num - 1:  # Error line
            context_parts.append(f"{'':6}{' ' * (col_num - 1)}^ Error here")

    return '\n'.join(context_parts)


def source_line(source_text: str, line_num: int) -> str:
    """Return a single line of source, or '' if out of range"""
    lines = source_text.split('\n')
    if 1 <= line_num <= len(lines):
        return lines[line_num - 1]
    return ""


# ============================================================================
# ERROR CLASSES
# ============================================================================

class KlangError(Exception):
    """Base class for every error the Klang core raises"""

    kind = "Error"

    def __init__(self, message: str, span=None, context: str = ""):
        self.message = message
        self.span = span
        self.context = context
        super().__init__(message)

    def __str__(self) -> str:
        if self.span:
            result = f"{self.kind} at {self.span}: {self.message}"
        else:
            result = f"{self.kind}: {self.message}"
        if self.context:
            result += f"\n  Context: {self.context}"
        return result


class KlangLexError(KlangError):
    """Invalid character, unterminated string or unterminated comment"""
    kind = "Lex error"


class KlangParseError(KlangError):
    """Malformed token sequence"""

    kind = "Parse error"

    def __init__(self, message: str, span=None, context: str = "",
                 expected: Optional[List[str]] = None, got: Optional[str] = None):
        self.expected = expected or []
        self.got = got
        super().__init__(message, span, context)


class KlangRuntimeError(KlangError):
    """Error raised while evaluating a program"""
    kind = "Runtime error"


class UndefinedVariable(KlangRuntimeError):
    kind = "UndefinedVariable"

    def __init__(self, name: str, span=None):
        self.name = name
        super().__init__(f"Variable '{name}' is not defined", span)


class RedeclaredVariable(KlangRuntimeError):
    kind = "RedeclaredVariable"

    def __init__(self, name: str, span=None):
        self.name = name
        super().__init__(f"Variable '{name}' already declared in this scope", span)


class ConstReassignment(KlangRuntimeError):
    kind = "ConstReassignment"

    def __init__(self, name: str, span=None):
        self.name = name
        super().__init__(f"Cannot assign to final variable '{name}'", span)


class TypeMismatch(KlangRuntimeError):
    """Operator type errors, non-boolean conditions, bad call targets,
    non-iterable loop targets and type-annotation violations"""
    kind = "TypeMismatch"


class KlangIndexError(KlangRuntimeError):
    """Out-of-bounds, non-integer or wrong-kind index"""
    kind = "IndexError"


# ============================================================================
# REPORTING
# ============================================================================

def format_error_report(error: KlangError, source_text: Optional[str] = None) -> str:
    """Render an error with its location and the surrounding source"""
    report = f"{error.kind}: {error.message}\n"

    span = error.span
    if span:
        report += f"  Location: {span}\n"

    if isinstance(error, KlangParseError):
        if error.expected:
            report += f"  Expected: {', '.join(error.expected)}\n"
        if error.got:
            report += f"  Got: {error.got}\n"

    if span and source_text:
        report += get_context_lines(source_text, span.start_line, span.start_col) + "\n"
    elif error.context:
        report += f"  Context: {error.context}\n"

    return report
