"""
Klang Programming Language Parser
pyparsing-driven tokenizer and a recursive-descent parser producing the AST
"""

from typing import List, Optional, Tuple
from dataclasses import dataclass
import re

from pyparsing import ParserElement, Regex, MatchFirst, c_style_comment

from error_handling import KlangLexError, KlangParseError, locate, newline_offsets, source_line
from syntax_tree import (
    SourceSpan, Node, Program, Block, ExpressionStatement, VarDeclaration,
    FunctionDeclaration, IfStatement, WhileStatement, ForStatement,
    ReturnStatement, NumberLiteral, StringLiteral, BooleanLiteral, ListLiteral,
    MapLiteral, Identifier, UnaryExpr, BinaryExpr, AssignmentExpr, CallExpr,
    IndexExpr, FunctionExpr, Parameter, children_of,
)
from utilities import debug_trace


@dataclass(frozen=True)
class Token:
    """Klang token with source information"""
    type: str
    value: str
    span: SourceSpan

    def __str__(self) -> str:
        return f"{self.type}({self.value})"


KEYWORDS = {
    'let', 'final', 'def', 'if', 'else', 'while', 'for', 'in', 'return',
    'forge', 'true', 'false', 'and', 'or',
}

OPERATORS = {
    '==', '!=', '<=', '>=', '&&', '||', '->',
    '+', '-', '*', '/', '%', '!', '=', '<', '>',
}

DELIMITERS = {'(', ')', '{', '}', '[', ']', ',', ':', ';'}

ESCAPES = {'n': '\n', 't': '\t', 'r': '\r', '\\': '\\', '"': '"', '0': '\0'}

# Operator spellings that map onto the same AST operator
LOGICAL_ALIASES = {'and': '&&', 'or': '||'}


def process_string_escapes(s: str) -> str:
    """Process escape sequences in strings; unknown escapes keep the escaped character"""
    result = []
    i = 0
    while i < len(s):
        if s[i] == '\\' and i + 1 < len(s):
            result.append(ESCAPES.get(s[i + 1], s[i + 1]))
            i += 2
        else:
            result.append(s[i])
            i += 1
    return ''.join(result)


class KlangTokenizer:
    """Klang tokenizer: pyparsing token rules scanned left to right"""

    def __init__(self, filename: str = "<input>", debug: bool = False):
        self.filename = filename
        self.debug = debug
        self._setup_token_patterns()

    def _setup_token_patterns(self):
        """Setup all token rules, highest priority first"""

        def rule(kind: str, pattern: str, flags: int = 0) -> ParserElement:
            return Regex(pattern, flags).set_parse_action(lambda s, loc, t: (kind, t[0]))

        def classify_word(s, loc, t):
            return ("KEYWORD" if t[0] in KEYWORDS else "IDENTIFIER", t[0])

        def classify_symbol(s, loc, t):
            return ("DELIMITER" if t[0] in DELIMITERS else "OPERATOR", t[0])

        # Longest symbols first so that two-character operators win
        symbols_sorted = sorted(OPERATORS | DELIMITERS, key=len, reverse=True)
        symbol_pattern = '|'.join(re.escape(sym) for sym in symbols_sorted)

        self.token_rules = MatchFirst([
            rule("STRING", r'"(?:[^"\\]|\\.)*"', re.DOTALL),
            rule("UNTERMINATED_STRING", r'"'),
            rule("UNTERMINATED_COMMENT", r'/\*'),
            rule("NUMBER", r'\d+(?:\.\d+)?'),
            Regex(r'[A-Za-z_][A-Za-z0-9_]*').set_parse_action(classify_word),
            Regex(symbol_pattern).set_parse_action(classify_symbol),
            rule("INVALID", r'.', re.DOTALL),
        ])
        self.token_rules.ignore(c_style_comment)
        # Line comments end at the newline; a trailing backslash does not continue them
        self.token_rules.ignore(Regex(r'//[^\n]*'))
        self.token_rules.parse_with_tabs()

    def _span(self, text: str, start: int, end: int, newlines: List[int]) -> SourceSpan:
        start_line, start_col = locate(text, start, newlines)
        end_line, end_col = locate(text, end, newlines)
        return SourceSpan(self.filename, start_line, start_col, end_line, end_col, text[start:end])

    def tokenize(self, text: str) -> List[Token]:
        """Tokenize Klang source code, always ending with an EOF token"""
        tokens = []
        newlines = newline_offsets(text)

        for result, start, end in self.token_rules.scan_string(text):
            kind, value = result[0]
            span = self._span(text, start, end, newlines)

            if kind == "INVALID":
                raise KlangLexError(f"Unexpected character '{value}'", span,
                                    source_line(text, span.start_line))
            if kind == "UNTERMINATED_STRING":
                raise KlangLexError("Unterminated string literal", span,
                                    source_line(text, span.start_line))
            if kind == "UNTERMINATED_COMMENT":
                raise KlangLexError("Unterminated block comment", span,
                                    source_line(text, span.start_line))
            if kind == "STRING":
                value = process_string_escapes(value[1:-1])

            tokens.append(Token(kind, value, span))

        tokens.append(Token("EOF", "", self._span(text, len(text), len(text), newlines)))
        if self.debug:
            debug_trace(f"[tokenize] {self.filename}: {len(tokens)} tokens")
        return tokens


def tokenize(source: str, filename: str = "<input>") -> List[Token]:
    """Convert source text into a flat token stream"""
    return KlangTokenizer(filename).tokenize(source)


# ============================================================================
# RECURSIVE DESCENT PARSER
# ============================================================================

EQUALITY_OPS = ('==', '!=')
RELATIONAL_OPS = ('<', '<=', '>', '>=')
ADDITIVE_OPS = ('+', '-')
MULTIPLICATIVE_OPS = ('*', '/', '%')
UNARY_OPS = ('!', '-')


class TokenParser:
    """Parses one token stream into a Program"""

    def __init__(self, tokens: List[Token], source: Optional[str] = None):
        if not tokens or tokens[-1].type != "EOF":
            raise KlangParseError("Token stream must end with EOF")
        self.tokens = tokens
        self.source = source
        self.pos = 0

    # ---------------------------------------------------------------- helpers

    def _peek(self, offset: int = 0) -> Token:
        index = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[index]

    def _advance(self) -> Token:
        token = self.tokens[self.pos]
        if token.type != "EOF":
            self.pos += 1
        return token

    def _check(self, token_type: str, value: Optional[str] = None, offset: int = 0) -> bool:
        token = self._peek(offset)
        return token.type == token_type and (value is None or token.value == value)

    def _check_symbol(self, *values: str) -> bool:
        token = self._peek()
        return token.type in ("OPERATOR", "DELIMITER") and token.value in values

    def _check_keyword(self, *values: str) -> bool:
        token = self._peek()
        return token.type == "KEYWORD" and token.value in values

    def _describe(self, token: Token) -> str:
        if token.type == "EOF":
            return "end of input"
        if token.type == "STRING":
            return f'string "{token.value}"'
        return f"'{token.value}'"

    def _error(self, message: str, token: Optional[Token] = None,
               expected: Optional[List[str]] = None) -> KlangParseError:
        token = token or self._peek()
        got = self._describe(token)
        context = source_line(self.source, token.span.start_line) if self.source else ""
        return KlangParseError(f"{message}, got {got}", token.span, context, expected, got)

    def _expect_symbol(self, value: str, message: str) -> Token:
        if self._check_symbol(value):
            return self._advance()
        raise self._error(message, expected=[f"'{value}'"])

    def _expect_identifier(self, message: str) -> Token:
        if self._check("IDENTIFIER"):
            return self._advance()
        raise self._error(message, expected=["identifier"])

    def _skip_separators(self):
        while self._check_symbol(';'):
            self._advance()

    def _looks_like_map(self) -> bool:
        """`{` starts a map literal if empty, or if a key is followed by ':'"""
        if not self._check_symbol('{'):
            return False
        if self._check("DELIMITER", "}", offset=1):
            return True
        key_ahead = self._check("STRING", offset=1) or self._check("IDENTIFIER", offset=1)
        return key_ahead and self._check("DELIMITER", ":", offset=2)

    # ------------------------------------------------------------- statements

    def parse_program(self) -> Program:
        start = self._peek()
        statements = []
        self._skip_separators()
        while not self._check("EOF"):
            statements.append(self._parse_statement())
            self._skip_separators()
        return Program(tuple(statements), span=start.span)

    def parse_single_expression(self) -> Node:
        expression = self._parse_expression()
        if not self._check("EOF"):
            raise self._error("Expected end of expression", expected=["end of input"])
        return expression

    def _parse_statement(self) -> Node:
        token = self._peek()

        if self._check_keyword('let', 'final'):
            return self._parse_var_declaration()
        if self._check_keyword('def') and self._check("IDENTIFIER", offset=1):
            return self._parse_function_declaration()
        if self._check_keyword('if'):
            return self._parse_if_statement()
        if self._check_keyword('while'):
            return self._parse_while_statement()
        if self._check_keyword('for'):
            return self._parse_for_statement()
        if self._check_keyword('return'):
            return self._parse_return_statement()
        if self._check_symbol('{') and not self._looks_like_map():
            return self._parse_block()

        expression = self._parse_expression()
        return ExpressionStatement(expression, span=token.span)

    def _parse_var_declaration(self) -> VarDeclaration:
        keyword = self._advance()
        name = self._expect_identifier(f"Expected variable name after '{keyword.value}'").value
        type_annotation = None
        if self._check_symbol(':'):
            self._advance()
            type_annotation = self._expect_identifier("Expected type name after ':'").value
        self._expect_symbol('=', f"Expected '=' after '{name}'")
        value = self._parse_expression()
        return VarDeclaration(name, value, keyword.value == 'final', type_annotation,
                              span=keyword.span)

    def _parse_parameters(self) -> Tuple[Parameter, ...]:
        self._expect_symbol('(', "Expected '(' before parameters")
        params = []
        if not self._check_symbol(')'):
            while True:
                name = self._expect_identifier("Expected parameter name").value
                type_annotation = None
                if self._check_symbol(':'):
                    self._advance()
                    type_annotation = self._expect_identifier("Expected type name after ':'").value
                if any(p.name == name for p in params):
                    raise self._error(f"Duplicate parameter '{name}'")
                params.append(Parameter(name, type_annotation))
                if not self._check_symbol(','):
                    break
                self._advance()
        self._expect_symbol(')', "Expected ')' after parameters")
        return tuple(params)

    def _parse_function_declaration(self) -> FunctionDeclaration:
        keyword = self._advance()
        name = self._expect_identifier("Expected function name").value
        params = self._parse_parameters()
        body = self._parse_block()
        return FunctionDeclaration(name, params, body, span=keyword.span)

    def _parse_if_statement(self) -> IfStatement:
        keyword = self._advance()
        condition = self._parse_expression()
        then_branch = self._parse_block()
        else_branch = None
        if self._check_keyword('else'):
            self._advance()
            if self._check_keyword('if'):
                else_branch = self._parse_if_statement()
            else:
                else_branch = self._parse_block()
        return IfStatement(condition, then_branch, else_branch, span=keyword.span)

    def _parse_while_statement(self) -> WhileStatement:
        keyword = self._advance()
        condition = self._parse_expression()
        body = self._parse_block()
        return WhileStatement(condition, body, span=keyword.span)

    def _parse_for_statement(self) -> ForStatement:
        keyword = self._advance()
        parenthesized = self._check_symbol('(') and self._check("IDENTIFIER", offset=1) \
            and self._check("KEYWORD", "in", offset=2)
        if parenthesized:
            self._advance()
        iterator = self._expect_identifier("Expected loop variable after 'for'").value
        if not self._check_keyword('in'):
            raise self._error("Expected 'in' after loop variable", expected=["'in'"])
        self._advance()
        iterable = self._parse_expression()
        if parenthesized:
            self._expect_symbol(')', "Expected ')' after loop header")
        body = self._parse_block()
        return ForStatement(iterator, iterable, body, span=keyword.span)

    def _parse_return_statement(self) -> ReturnStatement:
        keyword = self._advance()
        if self._check_symbol('}', ';') or self._check("EOF"):
            return ReturnStatement(None, span=keyword.span)
        return ReturnStatement(self._parse_expression(), span=keyword.span)

    def _parse_block(self) -> Block:
        opening = self._expect_symbol('{', "Expected '{'")
        statements = []
        self._skip_separators()
        while not self._check_symbol('}'):
            if self._check("EOF"):
                raise self._error(f"Expected '}}' to close block opened at {opening.span}",
                                  expected=["'}'"])
            statements.append(self._parse_statement())
            self._skip_separators()
        self._advance()
        return Block(tuple(statements), span=opening.span)

    # ------------------------------------------------------------ expressions

    def _parse_expression(self) -> Node:
        return self._parse_assignment()

    def _parse_assignment(self) -> Node:
        target = self._parse_logical_or()
        if self._check("OPERATOR", "="):
            equals = self._advance()
            if not isinstance(target, (Identifier, IndexExpr)):
                raise self._error("Invalid assignment target", equals)
            value = self._parse_assignment()
            return AssignmentExpr(target, value, span=target.span)
        return target

    def _parse_binary_level(self, operand_parser, operators) -> Node:
        left = operand_parser()
        while self._check_symbol(*operators):
            operator = self._advance().value
            right = operand_parser()
            left = BinaryExpr(operator, left, right, span=left.span)
        return left

    def _parse_logical_or(self) -> Node:
        left = self._parse_logical_and()
        while self._check("OPERATOR", "||") or self._check_keyword('or'):
            token = self._advance()
            right = self._parse_logical_and()
            left = BinaryExpr(LOGICAL_ALIASES.get(token.value, token.value), left, right,
                              span=left.span)
        return left

    def _parse_logical_and(self) -> Node:
        left = self._parse_equality()
        while self._check("OPERATOR", "&&") or self._check_keyword('and'):
            token = self._advance()
            right = self._parse_equality()
            left = BinaryExpr(LOGICAL_ALIASES.get(token.value, token.value), left, right,
                              span=left.span)
        return left

    def _parse_equality(self) -> Node:
        return self._parse_binary_level(self._parse_relational, EQUALITY_OPS)

    def _parse_relational(self) -> Node:
        return self._parse_binary_level(self._parse_additive, RELATIONAL_OPS)

    def _parse_additive(self) -> Node:
        return self._parse_binary_level(self._parse_multiplicative, ADDITIVE_OPS)

    def _parse_multiplicative(self) -> Node:
        return self._parse_binary_level(self._parse_unary, MULTIPLICATIVE_OPS)

    def _parse_unary(self) -> Node:
        if self._check_symbol(*UNARY_OPS):
            token = self._advance()
            operand = self._parse_unary()
            return UnaryExpr(token.value, operand, span=token.span)
        return self._parse_postfix()

    def _parse_postfix(self) -> Node:
        expression = self._parse_primary()
        while True:
            if self._check_symbol('('):
                opening = self._advance()
                args = []
                if not self._check_symbol(')'):
                    args.append(self._parse_expression())
                    while self._check_symbol(','):
                        self._advance()
                        args.append(self._parse_expression())
                self._expect_symbol(')', "Expected ')' after arguments")
                expression = CallExpr(expression, tuple(args), span=opening.span)
            elif self._check_symbol('['):
                opening = self._advance()
                index = self._parse_expression()
                self._expect_symbol(']', "Expected ']' after index")
                expression = IndexExpr(expression, index, span=opening.span)
            else:
                return expression

    def _parse_primary(self) -> Node:
        token = self._peek()

        if token.type == "NUMBER":
            self._advance()
            return NumberLiteral(float(token.value), span=token.span)
        if token.type == "STRING":
            self._advance()
            return StringLiteral(token.value, span=token.span)
        if token.type == "IDENTIFIER":
            self._advance()
            return Identifier(token.value, span=token.span)
        if self._check_keyword('true', 'false'):
            self._advance()
            return BooleanLiteral(token.value == 'true', span=token.span)
        if self._check_keyword('def'):
            return self._parse_function_expression()
        if self._check_keyword('forge'):
            return self._parse_lambda()
        if self._check_symbol('('):
            self._advance()
            expression = self._parse_expression()
            self._expect_symbol(')', "Expected ')' after expression")
            return expression
        if self._check_symbol('['):
            return self._parse_list_literal()
        if self._check_symbol('{'):
            if self._looks_like_map():
                return self._parse_map_literal()
            raise self._error("Expected map literal ('{}' or '{key: value}') in expression position")

        raise self._error("Expected expression")

    def _parse_list_literal(self) -> ListLiteral:
        opening = self._advance()
        elements = []
        if not self._check_symbol(']'):
            elements.append(self._parse_expression())
            while self._check_symbol(','):
                self._advance()
                elements.append(self._parse_expression())
        self._expect_symbol(']', "Expected ',' or ']' in list literal")
        return ListLiteral(tuple(elements), span=opening.span)

    def _parse_map_key(self) -> str:
        if self._check("STRING") or self._check("IDENTIFIER"):
            return self._advance().value
        raise self._error("Expected string or identifier as map key",
                          expected=["string", "identifier"])

    def _parse_map_literal(self) -> MapLiteral:
        opening = self._advance()
        entries = []
        if not self._check_symbol('}'):
            while True:
                key = self._parse_map_key()
                self._expect_symbol(':', f"Expected ':' after map key '{key}'")
                entries.append((key, self._parse_expression()))
                if not self._check_symbol(','):
                    break
                self._advance()
        self._expect_symbol('}', "Expected ',' or '}' in map literal")
        return MapLiteral(tuple(entries), span=opening.span)

    def _parse_function_expression(self) -> FunctionExpr:
        keyword = self._advance()
        params = self._parse_parameters()
        body = self._parse_block()
        return FunctionExpr(params, body, span=keyword.span)

    def _parse_lambda(self) -> FunctionExpr:
        keyword = self._advance()
        params = self._parse_parameters()
        if self._check("OPERATOR", "->"):
            self._advance()
            if self._check_symbol('{') and not self._looks_like_map():
                body = self._parse_block()
            else:
                expression = self._parse_expression()
                body = Block((ReturnStatement(expression, span=expression.span),),
                             span=expression.span)
        elif self._check_symbol('{'):
            body = self._parse_block()
        else:
            raise self._error("Expected '->' or '{' after lambda parameters",
                              expected=["'->'", "'{'"])
        return FunctionExpr(params, body, span=keyword.span)


def parse(tokens: List[Token], source: Optional[str] = None) -> Program:
    """Parse a token stream into a Program"""
    return TokenParser(tokens, source).parse_program()


class KlangParser:
    """Main Klang parser combining tokenizer and recursive descent"""

    def __init__(self, debug: bool = False):
        self.debug = debug

    def parse_file(self, filepath: str) -> Program:
        """Parse a Klang source file"""
        try:
            with open(filepath, 'r', encoding='utf-8') as f:
                content = f.read()
        except FileNotFoundError:
            raise KlangParseError(f"File not found: {filepath}")
        except UnicodeDecodeError as e:
            raise KlangParseError(f"Cannot decode file {filepath}: {e}")
        return self.parse_string(content, filepath)

    def parse_string(self, text: str, filename: str = "<input>") -> Program:
        """Parse Klang source code from string"""
        tokens = self.tokenize(text, filename)
        program = parse(tokens, text)
        if self.debug:
            debug_trace(f"[parse] {filename}: {len(program.statements)} top-level statements")
        return program

    def parse_expression(self, text: str, filename: str = "<input>") -> Node:
        """Parse a single Klang expression"""
        return TokenParser(self.tokenize(text, filename), text).parse_single_expression()

    def tokenize(self, text: str, filename: str = "<input>") -> List[Token]:
        """Tokenize Klang source code"""
        return KlangTokenizer(filename, self.debug).tokenize(text)


# Factory functions for creating parsers
def create_parser(debug: bool = False) -> KlangParser:
    """Create a Klang parser"""
    return KlangParser(debug=debug)


# Utility functions for working with the AST
def find_nodes_by_type(node: Node, node_type: str) -> List[Node]:
    """Find all nodes of a specific type in an AST"""
    result = []

    def search(current: Node):
        if current.type == node_type:
            result.append(current)
        for child in children_of(current):
            search(child)

    search(node)
    return result


def _describe_node(node: Node) -> str:
    if isinstance(node, (NumberLiteral, StringLiteral, BooleanLiteral)):
        return repr(node.value)
    if isinstance(node, Identifier):
        return node.name
    if isinstance(node, (UnaryExpr, BinaryExpr)):
        return node.operator
    if isinstance(node, VarDeclaration):
        keyword = "final" if node.is_final else "let"
        annotation = f": {node.type_annotation}" if node.type_annotation else ""
        return f"{keyword} {node.name}{annotation}"
    if isinstance(node, (FunctionDeclaration, FunctionExpr)):
        params = ", ".join(
            p.name + (f": {p.type_annotation}" if p.type_annotation else "") for p in node.params)
        name = getattr(node, 'name', '')
        return f"{name}({params})"
    if isinstance(node, ForStatement):
        return f"{node.iterator} in"
    if isinstance(node, MapLiteral):
        return ", ".join(key for key, _ in node.entries)
    return ""


def pretty_print_ast(node: Node, indent: int = 0) -> str:
    """Pretty print an AST node for debugging"""
    detail = _describe_node(node)
    result = "  " * indent + node.type
    if detail:
        result += f"({detail})"
    result += "\n"

    for child in children_of(node):
        result += pretty_print_ast(child, indent + 1)

    return result
