"""
Klang runtime values
Every value is a tagged dictionary: {'type': <tag>, 'value': <payload>, ...}
"""

from typing import Any, Callable, Dict, List, Optional
import math


NUMBER = "Number"
STRING = "String"
BOOLEAN = "Boolean"
NULL = "Null"
LIST = "List"
MAP = "Map"
FUNCTION = "Function"
BUILTIN = "BuiltinFunction"

CALLABLE_TYPES = (FUNCTION, BUILTIN)


# ============================================================================
# CONSTRUCTORS
# ============================================================================

def make_value(value: Any, type_name: str) -> Dict:
  """Create a runtime value"""
  return {
      'value': value,
      'type': type_name
  }


def make_number(value: float) -> Dict:
  return make_value(float(value), NUMBER)


def make_string(value: str) -> Dict:
  return make_value(value, STRING)


def make_bool(value: bool) -> Dict:
  return make_value(bool(value), BOOLEAN)


def make_null() -> Dict:
  return make_value(None, NULL)


def make_list(elements: Optional[List[Dict]] = None) -> Dict:
  """Lists own a mutable Python list; copies share the element values"""
  return make_value(elements if elements is not None else [], LIST)


def make_map(entries: Optional[Dict[str, Dict]] = None) -> Dict:
  """Maps are keyed by strings and keep insertion order"""
  return make_value(entries if entries is not None else {}, MAP)


def make_function(params, body, closure_env, name: Optional[str] = None) -> Dict:
  """Create a function value; closure_env is shared, never copied"""
  return {
      'type': FUNCTION,
      'value': None,
      'name': name,
      'params': params,
      'body': body,
      'closure_env': closure_env,
  }


def make_builtin(name: str, invoke: Callable) -> Dict:
  """Create a host function value; invoke(args, caller_env) -> value"""
  return {
      'type': BUILTIN,
      'value': None,
      'name': name,
      'invoke': invoke,
  }


# ============================================================================
# INSPECTION
# ============================================================================

def type_of(val: Dict) -> str:
  return val.get('type', 'Unknown')


def is_callable(val: Dict) -> bool:
  return type_of(val) in CALLABLE_TYPES


def is_integral(number: float) -> bool:
  return math.isfinite(number) and float(number).is_integer()


# ============================================================================
# DISPLAY
# ============================================================================

# Integral numbers at or above this magnitude print in exponent form
MAX_PLAIN_INTEGER = 1e21


def format_number(number: float) -> str:
  """Integral numbers below 1e21 print without a fractional part"""
  if math.isnan(number):
    return "NaN"
  if math.isinf(number):
    return "Infinity" if number > 0 else "-Infinity"
  if is_integral(number) and abs(number) < MAX_PLAIN_INTEGER:
    return str(int(number))
  return repr(float(number))


def format_value(val: Dict) -> str:
  """Convert value to its display text"""
  value_type = type_of(val)
  if value_type == NUMBER:
    return format_number(val['value'])
  elif value_type == STRING:
    return val['value']
  elif value_type == BOOLEAN:
    return "true" if val['value'] else "false"
  elif value_type == NULL:
    return "null"
  elif value_type == LIST:
    return "[" + ", ".join(format_value(elem) for elem in val['value']) + "]"
  elif value_type == MAP:
    entries = [f"{key}: {format_value(item)}" for key, item in val['value'].items()]
    return "{" + ", ".join(entries) + "}"
  elif value_type == FUNCTION:
    return f"<function {val['name']}>" if val.get('name') else "<function>"
  elif value_type == BUILTIN:
    return f"<builtin {val['name']}>"
  return f"<{value_type}>"


def to_python(val: Dict) -> Any:
  """Recursively unwrap a runtime value into plain Python data"""
  value_type = type_of(val)
  if value_type == LIST:
    return [to_python(elem) for elem in val['value']]
  elif value_type == MAP:
    return {key: to_python(item) for key, item in val['value'].items()}
  elif value_type in CALLABLE_TYPES:
    return format_value(val)
  return val['value']
