"""
Klang Standard Library
Built-in functions installed into every root environment
Builtins are host callables (args, caller_env) -> value
"""

from typing import Dict, Callable, List, Optional
import sys

from environment import Environment
from error_handling import KlangRuntimeError, TypeMismatch
from interpreter import call_function, make_execution_context
from utilities import arity_error, type_mismatch_error, validate_function_args
from values import (
  NUMBER, STRING, BOOLEAN, NULL, LIST, MAP, FUNCTION, BUILTIN,
  make_number, make_string, make_null, make_list, make_builtin,
  format_value, is_callable, type_of,
)


# Lowercase names reported by type()
TYPE_NAMES = {
  NUMBER: "number",
  STRING: "string",
  BOOLEAN: "boolean",
  NULL: "null",
  LIST: "list",
  MAP: "map",
  FUNCTION: "function",
  BUILTIN: "builtin",
}


def expect_arity(name: str, args: List[Dict], expected: int) -> None:
  if len(args) != expected:
    raise arity_error(name, expected, len(args))


# ============================================================================
# I/O FUNCTIONS
# ============================================================================

def klang_print(args: List[Dict], context: Dict) -> Dict:
  """Print the display text of each argument separated by spaces"""
  stream = context['output'] if context['output'] is not None else sys.stdout
  print(" ".join(format_value(arg) for arg in args), file=stream)
  return make_null()


def klang_str(args: List[Dict], context: Dict) -> Dict:
  expect_arity("str", args, 1)
  return make_string(format_value(args[0]))


def klang_type(args: List[Dict], context: Dict) -> Dict:
  expect_arity("type", args, 1)
  return make_string(TYPE_NAMES.get(type_of(args[0]), type_of(args[0]).lower()))


# ============================================================================
# COLLECTION FUNCTIONS
# ============================================================================

def klang_len(args: List[Dict], context: Dict) -> Dict:
  validate_function_args("len", args, [(LIST, STRING, MAP)])
  return make_number(len(args[0]['value']))


def klang_sum(args: List[Dict], context: Dict) -> Dict:
  validate_function_args("sum", args, [LIST])
  total = 0.0
  for element in args[0]['value']:
    if type_of(element) != NUMBER:
      raise TypeMismatch(f"sum requires a List of Numbers, found {type_of(element)}")
    total += element['value']
  return make_number(total)


def klang_list(args: List[Dict], context: Dict) -> Dict:
  """List copy of a List, characters of a String, or keys of a Map"""
  validate_function_args("list", args, [(LIST, STRING, MAP)])
  source = args[0]
  if type_of(source) == LIST:
    return make_list(list(source['value']))
  if type_of(source) == STRING:
    return make_list([make_string(ch) for ch in source['value']])
  return make_list([make_string(key) for key in source['value']])


def klang_range(args: List[Dict], context: Dict) -> Dict:
  """
  range(end), range(start, end) or range(start, end, step)

  Counts up while below end for a positive step, down while above end
  for a negative one. A zero step is an error.
  """
  if not 1 <= len(args) <= 3:
    raise TypeMismatch(f"range expects 1 to 3 arguments, got {len(args)}")
  validate_function_args("range", args, [NUMBER] * len(args))

  numbers = [arg['value'] for arg in args]
  start, step = 0.0, 1.0
  if len(numbers) == 1:
    end = numbers[0]
  elif len(numbers) == 2:
    start, end = numbers
  else:
    start, end, step = numbers

  if step == 0:
    raise KlangRuntimeError("range step must not be 0")

  result = []
  current = start
  while (current < end) if step > 0 else (current > end):
    result.append(make_number(current))
    current += step
  return make_list(result)


def function_and_list(name: str, args: List[Dict]):
  """Accept (fn, list) or (list, fn)"""
  expect_arity(name, args, 2)
  first, second = args
  if is_callable(first) and type_of(second) == LIST:
    return first, second
  if type_of(first) == LIST and is_callable(second):
    return second, first
  if not is_callable(first) and not is_callable(second):
    raise type_mismatch_error(name, "argument 1", "Function", first)
  raise TypeMismatch(
    f"{name} requires a Function and a List, got {type_of(first)} and {type_of(second)}"
  )


def klang_map(args: List[Dict], context: Dict) -> Dict:
  func, items = function_and_list("map", args)
  return make_list([call_function(func, [element], context) for element in items['value']])


def klang_filter(args: List[Dict], context: Dict) -> Dict:
  """Keep the elements whose predicate result is true"""
  func, items = function_and_list("filter", args)
  kept = []
  for element in items['value']:
    verdict = call_function(func, [element], context)
    if type_of(verdict) != BOOLEAN:
      raise TypeMismatch(f"filter predicate must return a Boolean, got {type_of(verdict)}")
    if verdict['value']:
      kept.append(element)
  return make_list(kept)


# ============================================================================
# BUILT-IN FUNCTION REGISTRY
# ============================================================================

# name -> (implementation, signature)
BUILTIN_FUNCTIONS: Dict[str, tuple] = {
  "print": (klang_print, "...any -> null"),
  "len": (klang_len, "list | string | map -> number"),
  "sum": (klang_sum, "list -> number"),
  "list": (klang_list, "list | string | map -> list"),
  "range": (klang_range, "number [, number [, number]] -> list"),
  "map": (klang_map, "function, list -> list"),
  "filter": (klang_filter, "function, list -> list"),
  "str": (klang_str, "any -> string"),
  "type": (klang_type, "any -> string"),
}


def bind_builtin(name: str, implementation: Callable, context: Dict) -> Dict:
  """Wrap an implementation as a builtin value that sees the execution context"""
  def invoke(args: List[Dict], caller_env: Optional[Environment] = None) -> Dict:
    return implementation(args, context)

  return make_builtin(name, invoke)


def create_global_env(context: Optional[Dict] = None,
                      extra_builtins: Optional[Dict[str, Callable]] = None) -> Environment:
  """
  Build a fresh root environment with every builtin bound as final.

  Args:
    context: Execution context the builtins print and call through
    extra_builtins: name -> host callable (args, caller_env) -> value,
      installed after the standard builtins

  Returns:
    A new Environment with no parent
  """
  if context is None:
    context = make_execution_context()

  env = Environment()
  for name, (implementation, _signature) in BUILTIN_FUNCTIONS.items():
    env.declare(name, bind_builtin(name, implementation, context), True)

  for name, host_callable in (extra_builtins or {}).items():
    env.declare(name, make_builtin(name, host_callable), True)

  return env


def list_builtin_functions() -> List[str]:
  """List all standard built-in function names"""
  return list(BUILTIN_FUNCTIONS.keys())
