"""
Utilities module for the Klang interpreter
Operator tables, coercions and error builders shared by the interpreter and stdlib
"""

from typing import Any, Callable, Dict, List, Sequence, Union
import math
import operator
import sys

from error_handling import TypeMismatch, KlangIndexError
from values import (
    NUMBER, STRING, BOOLEAN, LIST, MAP,
    make_number, make_string, make_bool, make_list, make_map,
    type_of, format_number, is_integral,
)


def debug_trace(message: str) -> None:
  """Debug output goes to stderr so it never mixes with program output"""
  print(message, file=sys.stderr)


# ==================== ERROR MESSAGE BUILDERS ====================

def type_mismatch_error(
  func_name: str,
  param_name: str,
  expected: str,
  actual: Dict
) -> TypeMismatch:
  """
  Generate type mismatch error

  Args:
    func_name: Function name
    param_name: Parameter name
    expected: Expected type
    actual: Actual value dict

  Returns:
    TypeMismatch with formatted message
  """
  return TypeMismatch(
    f"{func_name} requires {expected} for {param_name}, got {type_of(actual)}"
  )


def arity_error(func_name: str, expected: int, got: int) -> TypeMismatch:
  """
  Generate arity mismatch error

  Args:
    func_name: Function name
    expected: Expected number of arguments
    got: Actual number of arguments

  Returns:
    TypeMismatch with formatted message
  """
  return TypeMismatch(
    f"{func_name} expects {expected} argument{'s' if expected != 1 else ''}, got {got}"
  )


def operation_error(op: str, left_type: str, right_type: str) -> TypeMismatch:
  """
  Generate operation error naming the operator and both operand types
  """
  return TypeMismatch(
    f"Unsupported operation: {left_type} {op} {right_type}"
  )


# ==================== VALIDATION UTILITIES ====================

def validate_function_args(
  func_name: str,
  args: List[Dict],
  expected_types: Sequence[Union[str, Sequence[str]]]
) -> None:
  """
  Validate function arguments match expected types

  Args:
    func_name: Function name for error messages
    args: List of argument values
    expected_types: One entry per argument, a type tag or a tuple of accepted tags

  Raises:
    TypeMismatch if validation fails
  """
  if len(args) != len(expected_types):
    raise arity_error(func_name, len(expected_types), len(args))

  for i, (arg, expected) in enumerate(zip(args, expected_types)):
    accepted = (expected,) if isinstance(expected, str) else tuple(expected)
    if type_of(arg) not in accepted:
      raise type_mismatch_error(
        func_name,
        f"argument {i+1}",
        " or ".join(accepted),
        arg
      )


# ==================== COERCIONS ====================

def coerce_to_text(val: Dict) -> str:
  """Text form of a value used by string concatenation"""
  value_type = type_of(val)
  if value_type == STRING:
    return val['value']
  if value_type == NUMBER:
    return format_number(val['value'])
  if value_type == BOOLEAN:
    return "true" if val['value'] else "false"
  raise TypeMismatch(f"Cannot concatenate {value_type} to String")


def map_key(index: Dict) -> str:
  """Map keys are strings; numbers and booleans are converted to their text"""
  if type_of(index) in (STRING, NUMBER, BOOLEAN):
    return coerce_to_text(index)
  raise KlangIndexError(f"Map key must be String, Number or Boolean, got {type_of(index)}")


def sequence_index(index: Dict, length: int, target_type: str) -> int:
  """Validate a List/String index: integral Number within [0, length)"""
  if type_of(index) != NUMBER:
    raise KlangIndexError(f"{target_type} index must be a Number, got {type_of(index)}")
  number = index['value']
  if not is_integral(number):
    raise KlangIndexError(f"{target_type} index must be an integer, got {format_number(number)}")
  if number < 0 or number >= length:
    raise KlangIndexError(
      f"{target_type} index out of bounds: {format_number(number)} (length {length})"
    )
  return int(number)


# ==================== NUMERIC SEMANTICS ====================

def divide(x: float, y: float) -> float:
  """IEEE division: a zero divisor yields an infinity or NaN"""
  if y == 0:
    if x == 0 or math.isnan(x):
      return math.nan
    return math.copysign(math.inf, x) * math.copysign(1.0, y)
  return x / y


def remainder(x: float, y: float) -> float:
  """Truncated remainder, sign follows the dividend"""
  if y == 0 or math.isinf(x) or math.isnan(x) or math.isnan(y):
    return math.nan
  return math.fmod(x, y)


# ==================== BINARY OPERATION FACTORIES ====================

def binary_arithmetic_op(op: Callable[[Any, Any], Any]) -> Callable[[Dict, Dict], Dict]:
  """
  Factory for numeric operations

  Examples:
    add = binary_arithmetic_op(operator.add)
    add(make_number(1), make_number(2)) -> {'type': 'Number', 'value': 3.0}
  """
  def arithmetic(x: Dict, y: Dict) -> Dict:
    return make_number(op(x['value'], y['value']))

  return arithmetic


def binary_comparison_op(op: Callable[[Any, Any], bool]) -> Callable[[Dict, Dict], Dict]:
  """
  Factory for comparisons producing a Boolean

  Examples:
    lt = binary_comparison_op(operator.lt)
    lt(make_string("a"), make_string("b")) -> {'type': 'Boolean', 'value': True}
  """
  def comparison(x: Dict, y: Dict) -> Dict:
    return make_bool(op(x['value'], y['value']))

  return comparison


def concat_lists(x: Dict, y: Dict) -> Dict:
  """New list spine, shared elements"""
  return make_list(x['value'] + y['value'])


def merge_maps(x: Dict, y: Dict) -> Dict:
  """Right operand wins on duplicate keys"""
  return make_map({**x['value'], **y['value']})


COMPARISON_OPS = {
  '==': binary_comparison_op(operator.eq),
  '!=': binary_comparison_op(operator.ne),
  '<': binary_comparison_op(operator.lt),
  '<=': binary_comparison_op(operator.le),
  '>': binary_comparison_op(operator.gt),
  '>=': binary_comparison_op(operator.ge),
}

NUMBER_OPS = {
  '+': binary_arithmetic_op(operator.add),
  '-': binary_arithmetic_op(operator.sub),
  '*': binary_arithmetic_op(operator.mul),
  '/': binary_arithmetic_op(divide),
  '%': binary_arithmetic_op(remainder),
  **COMPARISON_OPS,
}

BOOLEAN_OPS = {
  '&&': binary_comparison_op(lambda a, b: a and b),
  '||': binary_comparison_op(lambda a, b: a or b),
  '==': COMPARISON_OPS['=='],
  '!=': COMPARISON_OPS['!='],
}

# Operand-type pair -> operator -> implementation
BINARY_OPERATIONS = {
  (NUMBER, NUMBER): NUMBER_OPS,
  (STRING, STRING): COMPARISON_OPS,
  (BOOLEAN, BOOLEAN): BOOLEAN_OPS,
  (LIST, LIST): {'+': concat_lists},
  (MAP, MAP): {'+': merge_maps},
}


def apply_binary_operator(op: str, left: Dict, right: Dict) -> Dict:
  """Apply a binary operator to two evaluated operands"""
  left_type, right_type = type_of(left), type_of(right)

  handler = BINARY_OPERATIONS.get((left_type, right_type), {}).get(op)
  if handler is not None:
    return handler(left, right)

  textual = (STRING, NUMBER, BOOLEAN)
  if op == '+' and STRING in (left_type, right_type) \
      and left_type in textual and right_type in textual:
    return make_string(coerce_to_text(left) + coerce_to_text(right))

  raise operation_error(op, left_type, right_type)


def apply_unary_operator(op: str, operand: Dict) -> Dict:
  """Unary '-' negates a Number, unary '!' inverts a Boolean"""
  operand_type = type_of(operand)
  if op == '-':
    if operand_type != NUMBER:
      raise TypeMismatch(f"Unary '-' expects a Number, got {operand_type}")
    return make_number(-operand['value'])
  if op == '!':
    if operand_type != BOOLEAN:
      raise TypeMismatch(f"Unary '!' expects a Boolean, got {operand_type}")
    return make_bool(not operand['value'])
  raise TypeMismatch(f"Unsupported unary operator: {op}")
