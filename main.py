"""
Klang Programming Language - Main Entry Point
Runs scripts, dumps tokens or the AST, and hosts the interactive REPL
"""

import sys
import argparse
from typing import Optional, Dict, List
import os

# Readline support for history and auto-completion
try:
  import readline
  READLINE_AVAILABLE = True
except ImportError:
  READLINE_AVAILABLE = False

from environment import Environment
from error_handling import KlangError, KlangLexError, format_error_report
from interpreter import make_execution_context, run_program
from parsing import KEYWORDS, create_parser, pretty_print_ast, tokenize
from stdlib import create_global_env, list_builtin_functions
from values import NULL, format_value, type_of

VERSION = "Klang v1.0.0"
HISTORY_FILE = "~/.klang_history"


def create_arg_parser() -> argparse.ArgumentParser:
  """Create command line argument parser"""
  parser = argparse.ArgumentParser(
      prog='klang',
      description='Klang Programming Language - a small dynamically typed scripting language',
      formatter_class=argparse.RawDescriptionHelpFormatter,
      epilog="""
Examples:
  %(prog)s script.klang             # Run a Klang script
  %(prog)s -i                       # Interactive mode
  %(prog)s --tokens script.klang    # Show the token stream
  %(prog)s --parse script.klang     # Parse and show the AST
  %(prog)s --debug script.klang     # Run with evaluation trace on stderr
        """
  )

  parser.add_argument('script', nargs='?', help='Klang script file to execute')
  parser.add_argument('-i', '--interactive', action='store_true',
                      help='Start interactive mode (after running the script, if one is given)')
  parser.add_argument('--tokens', action='store_true', help='Tokenize file and show tokens')
  parser.add_argument('--parse', action='store_true', help='Parse file and show the AST')
  parser.add_argument('--debug', action='store_true', help='Enable debug output for all stages')
  parser.add_argument('--short-circuit', action='store_true',
                      help="Skip the right operand of '&&' and '||' when the left decides")
  parser.add_argument('--no-implicit-return', action='store_true',
                      help="Functions without 'return' yield null")
  parser.add_argument('--no-top-level-return', action='store_true',
                      help="Treat 'return' outside a function as an error")
  parser.add_argument('--quiet', action='store_true', help='Do not print the program result')
  parser.add_argument('--recursion-limit', type=int, default=10000,
                      help='Python recursion limit for deep Klang recursion (default: 10000)')
  parser.add_argument('--version', action='version', version=VERSION)

  return parser


def context_from_args(args: argparse.Namespace) -> Dict:
  return make_execution_context(
      debug=args.debug,
      short_circuit=args.short_circuit,
      implicit_return=not args.no_implicit_return,
      allow_top_level_return=not args.no_top_level_return,
  )


def run_source(source: str, env: Optional[Environment] = None,
               context: Optional[Dict] = None, filename: str = "<input>") -> Dict:
  """Tokenize, parse and evaluate source text; a fresh root environment is used when env is None"""
  if context is None:
    context = make_execution_context()
  if env is None:
    env = create_global_env(context)

  program = create_parser(context['debug']).parse_string(source, filename)
  return run_program(program, env, context)


def read_script(script_path: str) -> str:
  """Read a script as UTF-8, exiting with status 1 when it cannot be read"""
  try:
    with open(script_path, 'r', encoding='utf-8') as f:
      return f.read()
  except FileNotFoundError:
    print(f"Error: Script file '{script_path}' not found")
    print(f"  Hint: Check the file path and make sure the file exists")
  except PermissionError:
    print(f"Error: Permission denied reading '{script_path}'")
    print(f"  Hint: Make sure you have read permissions for this file")
  except UnicodeDecodeError as e:
    print(f"Error: Cannot decode file '{script_path}': {e}")
    print(f"  Hint: Make sure the file is a text file with UTF-8 encoding")
  except IsADirectoryError:
    print(f"Error: '{script_path}' is a directory")
  sys.exit(1)


def report_error(error: KlangError, script_path: str, source: str) -> None:
  print(f"\n{'='*70}")
  print(f"{error.kind} in '{script_path}'")
  print(f"{'='*70}\n")
  print(format_error_report(error, source))
  print(f"{'='*70}\n")


def show_tokens(script_path: str, debug: bool = False) -> None:
  """Tokenize a Klang script file and show the tokens"""
  source = read_script(script_path)
  try:
    tokens = create_parser(debug).tokenize(source, script_path)
  except KlangError as e:
    report_error(e, script_path, source)
    sys.exit(1)

  print(f"{len(tokens)} tokens:")
  for token in tokens:
    print(f"  {token.span.start_line}:{token.span.start_col}  {token}")


def show_parse(script_path: str, debug: bool = False) -> None:
  """Parse a Klang script file and show the AST"""
  source = read_script(script_path)
  try:
    program = create_parser(debug).parse_string(source, script_path)
  except KlangError as e:
    report_error(e, script_path, source)
    sys.exit(1)

  print(f"Parsed {len(program.statements)} top-level statements:")
  print("=" * 50)
  print(pretty_print_ast(program), end='')


def run_script_file(script_path: str, context: Dict, quiet: bool = False) -> Environment:
  """Run a Klang script file with full interpretation and return its root environment"""
  source = read_script(script_path)
  env = create_global_env(context)
  try:
    result = run_source(source, env, context, script_path)
  except KlangError as e:
    report_error(e, script_path, source)
    sys.exit(1)
  except RecursionError:
    print(f"Runtime error in '{script_path}': maximum recursion depth exceeded")
    print(f"  Hint: Raise the limit with --recursion-limit")
    sys.exit(1)

  if not quiet and type_of(result) != NULL:
    print(f"Program result: {format_value(result)}")
  return env


# ============================================================================
# INTERACTIVE MODE
# ============================================================================

def setup_readline() -> None:
  """Setup readline with history and auto-completion"""
  if not READLINE_AVAILABLE:
    return

  history_file = os.path.expanduser(HISTORY_FILE)
  try:
    readline.read_history_file(history_file)
  except OSError:
    pass  # First session, no history yet
  readline.set_history_length(1000)

  completions = sorted(KEYWORDS) + list_builtin_functions() + \
      [":tokens", ":parse", ":env", ":help", "exit"]

  def completer(text, state):
    options = [cmd for cmd in completions if cmd.startswith(text)]
    if state < len(options):
      return options[state]
    return None

  readline.set_completer(completer)
  readline.parse_and_bind("tab: complete")

  import atexit
  atexit.register(readline.write_history_file, history_file)


def needs_more_input(code: str) -> bool:
  """True while brackets opened in code are still unclosed"""
  try:
    tokens = tokenize(code)
  except KlangLexError:
    return False
  depth = 0
  for token in tokens:
    if token.type == "DELIMITER" and token.value in "([{":
      depth += 1
    elif token.type == "DELIMITER" and token.value in ")]}":
      depth -= 1
  return depth > 0


def print_repl_help() -> None:
  print("REPL Commands:")
  print("  :tokens <code>    - Show the token stream")
  print("  :parse <code>     - Show the parsed AST")
  print("  :env              - Show user-defined bindings")
  print("  :help             - Show this help")
  print("  exit              - Exit REPL")
  print()
  print("Language features:")
  print("  let x = 5;                     - Mutable binding")
  print("  final y: int = 10;             - Final, annotated binding")
  print("  def add(a, b) { return a + b; } - Function declaration")
  print("  let sq = forge(x) -> x * x;    - Lambda")
  print("  for (n in range(3)) { print(n); }")


def print_env(session_env: Environment) -> None:
  builtins = set(list_builtin_functions())
  user_names = [name for name in session_env.local_names() if name not in builtins]
  print("Current environment:")
  if not user_names:
    print("  (no user-defined bindings)")
    return
  for name in user_names:
    val_str = format_value(session_env.lookup(name))
    if len(val_str) > 60:
      val_str = val_str[:57] + "..."
    print(f"  {name} = {val_str}")


def run_interactive_mode(context: Dict, session_env: Optional[Environment] = None) -> None:
  """Run Klang in interactive mode; one root environment lives for the whole session"""
  print(f"{VERSION} - Interactive Mode")
  print("Type 'exit' to quit, ':help' for commands")
  if READLINE_AVAILABLE:
    print("Readline enabled: Use ↑/↓ for history, Tab for completion")
  if context['debug']:
    print("Debug mode enabled")
  print()

  setup_readline()
  parser = create_parser(context['debug'])
  if session_env is None:
    session_env = create_global_env(context)

  while True:
    try:
      code = input("klang> ")
      while needs_more_input(code):
        code += "\n" + input("  ...> ")

      stripped = code.strip()
      if stripped == "exit":
        break
      if not stripped:
        continue

      if stripped.startswith(":tokens "):
        try:
          for token in parser.tokenize(stripped[len(":tokens "):]):
            print(f"  {token}")
        except KlangError as e:
          print(format_error_report(e))
        continue

      if stripped.startswith(":parse "):
        snippet = stripped[len(":parse "):]
        try:
          print(pretty_print_ast(parser.parse_string(snippet)), end='')
        except KlangError as e:
          print(format_error_report(e, snippet))
        continue

      if stripped == ":env":
        print_env(session_env)
        continue

      if stripped == ":help":
        print_repl_help()
        continue

      try:
        result = run_program(parser.parse_string(code), session_env, context)
        if type_of(result) != NULL:
          print(f"=> {format_value(result)}")
      except KlangError as e:
        print(format_error_report(e, code))
      except RecursionError:
        print("Runtime error: maximum recursion depth exceeded")

    except (KeyboardInterrupt, EOFError):
      print("\nGoodbye!")
      break


def main(argv: Optional[List[str]] = None) -> None:
  """Main entry point for Klang"""
  arg_parser = create_arg_parser()
  args = arg_parser.parse_args(argv)
  context = context_from_args(args)

  sys.setrecursionlimit(max(sys.getrecursionlimit(), args.recursion_limit))

  if args.script:
    if args.tokens:
      show_tokens(args.script, debug=args.debug)
    elif args.parse:
      show_parse(args.script, debug=args.debug)
    else:
      env = run_script_file(args.script, context, quiet=args.quiet)
      if args.interactive:
        run_interactive_mode(context, env)
  else:
    run_interactive_mode(context)


if __name__ == "__main__":
  main()
