"""
Klang Interpreter - Tree-walking evaluator
Dispatches on AST node type against a chain of Environment frames
Side effects happen only inside builtins supplied through the root environment
"""

from typing import Dict, List, Optional, IO

from error_handling import KlangRuntimeError, TypeMismatch
from environment import Environment
from syntax_tree import Node, Program, Block
from utilities import (
  apply_binary_operator,
  apply_unary_operator,
  arity_error,
  debug_trace,
  map_key,
  sequence_index,
)
from values import (
  STRING, BOOLEAN, LIST, MAP, FUNCTION, BUILTIN,
  make_number, make_string, make_bool, make_null, make_list, make_map,
  make_function, type_of,
)


# ============================================================================
# EXECUTION CONTEXT
# ============================================================================

def make_execution_context(
  debug: bool = False,
  short_circuit: bool = False,
  implicit_return: bool = True,
  allow_top_level_return: bool = True,
  output: Optional[IO[str]] = None
) -> Dict:
  """
  Create the policy switches threaded through evaluation

  Args:
    debug: Trace every evaluated node to stderr
    short_circuit: '&&' and '||' skip the right operand once the result is known
    implicit_return: A function without 'return' yields its last statement value
    allow_top_level_return: 'return' outside any function ends the program
    output: Stream builtins print to (None means the current sys.stdout)
  """
  return {
      'debug': debug,
      'short_circuit': short_circuit,
      'implicit_return': implicit_return,
      'allow_top_level_return': allow_top_level_return,
      'output': output,
  }


class ReturnSignal(Exception):
  """Unwinds from a 'return' to the nearest function call; never an error"""

  def __init__(self, value: Dict):
    self.value = value
    super().__init__("return outside of a function call")


# ============================================================================
# EVALUATION FUNCTIONS
# ============================================================================

def evaluate(ast_node: Node, env: Environment, context: Optional[Dict] = None) -> Dict:
  """
  Evaluate an AST node in env and return its runtime value.
  Runtime errors are tagged with the span of the innermost node that raised them.
  """
  if context is None:
    context = make_execution_context()

  if context['debug']:
    debug_trace(f"[eval] {ast_node.type} @ {ast_node.span}")

  node_type = ast_node.type
  handler = EVALUATORS.get(node_type)
  if handler is None:
    raise KlangRuntimeError(f"Unknown AST node type: {node_type}", ast_node.span)

  try:
    return handler(ast_node, env, context)
  except KlangRuntimeError as e:
    if e.span is None:
      e.span = ast_node.span
    raise


def eval_block_statements(statements, env: Environment, context: Dict) -> Dict:
  """Run statements in env; the last statement value is the result"""
  result = make_null()
  for statement in statements:
    result = evaluate(statement, env, context)
  return result


def eval_program(ast_node: Program, env: Environment, context: Dict) -> Dict:
  return eval_block_statements(ast_node.statements, env, context)


def eval_block(ast_node: Block, env: Environment, context: Dict) -> Dict:
  """Blocks get their own frame; a ReturnSignal passes straight through"""
  return eval_block_statements(ast_node.statements, env.child(), context)


def eval_expression_statement(ast_node, env: Environment, context: Dict) -> Dict:
  return evaluate(ast_node.expression, env, context)


def eval_var_declaration(ast_node, env: Environment, context: Dict) -> Dict:
  """Evaluate the initializer, then bind it in the current frame"""
  value = evaluate(ast_node.value, env, context)
  return env.declare(ast_node.name, value, ast_node.is_final, ast_node.type_annotation)


def eval_function_declaration(ast_node, env: Environment, context: Dict) -> Dict:
  """Named functions close over the declaring frame and are bound as final"""
  func = make_function(ast_node.params, ast_node.body, env, ast_node.name)
  return env.declare(ast_node.name, func, True)


def eval_function_expr(ast_node, env: Environment, context: Dict) -> Dict:
  return make_function(ast_node.params, ast_node.body, env)


def eval_return(ast_node, env: Environment, context: Dict) -> Dict:
  value = make_null() if ast_node.value is None else evaluate(ast_node.value, env, context)
  raise ReturnSignal(value)


def expect_boolean(value: Dict, construct: str) -> bool:
  if type_of(value) != BOOLEAN:
    raise TypeMismatch(f"{construct} condition must be a Boolean, got {type_of(value)}")
  return value['value']


def eval_if(ast_node, env: Environment, context: Dict) -> Dict:
  condition = evaluate(ast_node.condition, env, context)
  if expect_boolean(condition, "If"):
    return evaluate(ast_node.then_branch, env.child(), context)
  if ast_node.else_branch is not None:
    return evaluate(ast_node.else_branch, env.child(), context)
  return make_null()


def eval_while(ast_node, env: Environment, context: Dict) -> Dict:
  result = make_null()
  while expect_boolean(evaluate(ast_node.condition, env, context), "While"):
    result = evaluate(ast_node.body, env.child(), context)
  return result


def iteration_items(iterable: Dict) -> List[Dict]:
  """Snapshot of the values a for-loop visits"""
  iterable_type = type_of(iterable)
  if iterable_type == LIST:
    return list(iterable['value'])
  if iterable_type == STRING:
    return [make_string(ch) for ch in iterable['value']]
  if iterable_type == MAP:
    return [make_string(key) for key in iterable['value']]
  raise TypeMismatch(f"For-loop expects a List, String or Map, got {iterable_type}")


def eval_for(ast_node, env: Environment, context: Dict) -> Dict:
  result = make_null()
  for item in iteration_items(evaluate(ast_node.iterable, env, context)):
    iteration_env = env.child()
    iteration_env.declare(ast_node.iterator, item)
    result = evaluate(ast_node.body, iteration_env, context)
  return result


def eval_number(ast_node, env: Environment, context: Dict) -> Dict:
  return make_number(ast_node.value)


def eval_string(ast_node, env: Environment, context: Dict) -> Dict:
  return make_string(ast_node.value)


def eval_boolean(ast_node, env: Environment, context: Dict) -> Dict:
  return make_bool(ast_node.value)


def eval_list(ast_node, env: Environment, context: Dict) -> Dict:
  return make_list([evaluate(element, env, context) for element in ast_node.elements])


def eval_map(ast_node, env: Environment, context: Dict) -> Dict:
  entries = {}
  for key, value_node in ast_node.entries:
    entries[key] = evaluate(value_node, env, context)
  return make_map(entries)


def eval_identifier(ast_node, env: Environment, context: Dict) -> Dict:
  return env.lookup(ast_node.name)


def eval_unary(ast_node, env: Environment, context: Dict) -> Dict:
  operand = evaluate(ast_node.operand, env, context)
  return apply_unary_operator(ast_node.operator, operand)


def eval_binary(ast_node, env: Environment, context: Dict) -> Dict:
  op = ast_node.operator
  left = evaluate(ast_node.left, env, context)

  if context['short_circuit'] and op in ('&&', '||'):
    decided = expect_boolean(left, f"Left operand of '{op}'")
    if (op == '&&' and not decided) or (op == '||' and decided):
      return make_bool(decided)
    right = evaluate(ast_node.right, env, context)
    if type_of(right) != BOOLEAN:
      raise TypeMismatch(f"Unsupported operation: {BOOLEAN} {op} {type_of(right)}")
    return right

  right = evaluate(ast_node.right, env, context)
  return apply_binary_operator(op, left, right)


# ============================================================================
# INDEXING
# ============================================================================

def index_value(target: Dict, index: Dict) -> Dict:
  """Read target[index]"""
  target_type = type_of(target)
  if target_type == LIST:
    return target['value'][sequence_index(index, len(target['value']), LIST)]
  if target_type == STRING:
    text = target['value']
    return make_string(text[sequence_index(index, len(text), STRING)])
  if target_type == MAP:
    return target['value'].get(map_key(index), make_null())
  raise TypeMismatch(f"Cannot index into {target_type}")


def assign_index(target: Dict, index: Dict, value: Dict) -> Dict:
  """Write target[index] = value in place"""
  target_type = type_of(target)
  if target_type == LIST:
    target['value'][sequence_index(index, len(target['value']), LIST)] = value
    return value
  if target_type == MAP:
    target['value'][map_key(index)] = value
    return value
  if target_type == STRING:
    raise TypeMismatch("Strings are immutable; cannot assign to a String index")
  raise TypeMismatch(f"Cannot index into {target_type}")


def eval_index(ast_node, env: Environment, context: Dict) -> Dict:
  target = evaluate(ast_node.target, env, context)
  index = evaluate(ast_node.index, env, context)
  return index_value(target, index)


def eval_assignment(ast_node, env: Environment, context: Dict) -> Dict:
  target_node = ast_node.target
  if target_node.type == "IDENTIFIER":
    value = evaluate(ast_node.value, env, context)
    return env.assign(target_node.name, value)

  if target_node.type == "INDEX":
    target = evaluate(target_node.target, env, context)
    index = evaluate(target_node.index, env, context)
    value = evaluate(ast_node.value, env, context)
    return assign_index(target, index, value)

  raise TypeMismatch(f"Invalid assignment target: {target_node.type}")


# ============================================================================
# FUNCTION CALLS
# ============================================================================

def call_function(func: Dict, args: List[Dict], context: Optional[Dict] = None,
                  caller_env: Optional[Environment] = None) -> Dict:
  """
  Invoke a function value with evaluated arguments.

  User functions run in a new frame whose parent is the closure frame,
  which gives lexical scoping. A ReturnSignal raised anywhere in the body
  stops here and becomes the call result.
  """
  if context is None:
    context = make_execution_context()

  func_type = type_of(func)
  if func_type == BUILTIN:
    return func['invoke'](args, caller_env)
  if func_type != FUNCTION:
    raise TypeMismatch(f"Cannot call a value of type {func_type}")

  params = func['params']
  name = func.get('name') or "<anonymous function>"
  if len(args) != len(params):
    raise arity_error(name, len(params), len(args))

  call_env = Environment(func['closure_env'])
  for param, arg in zip(params, args):
    call_env.declare(param.name, arg, False, param.type_annotation)

  if context['debug']:
    debug_trace(f"[call] {name}({len(args)} args)")

  try:
    result = eval_block_statements(func['body'].statements, call_env, context)
  except ReturnSignal as signal:
    return signal.value

  return result if context['implicit_return'] else make_null()


def eval_call(ast_node, env: Environment, context: Dict) -> Dict:
  callee = evaluate(ast_node.callee, env, context)
  args = [evaluate(arg, env, context) for arg in ast_node.args]
  return call_function(callee, args, context, env)


EVALUATORS = {
  "PROGRAM": eval_program,
  "BLOCK": eval_block,
  "EXPRESSION_STATEMENT": eval_expression_statement,
  "VAR_DECLARATION": eval_var_declaration,
  "FUNCTION_DECLARATION": eval_function_declaration,
  "IF": eval_if,
  "WHILE": eval_while,
  "FOR": eval_for,
  "RETURN": eval_return,
  "NUMBER": eval_number,
  "STRING": eval_string,
  "BOOLEAN": eval_boolean,
  "LIST": eval_list,
  "MAP": eval_map,
  "IDENTIFIER": eval_identifier,
  "UNARY": eval_unary,
  "BINARY": eval_binary,
  "ASSIGNMENT": eval_assignment,
  "CALL": eval_call,
  "INDEX": eval_index,
  "FUNCTION_EXPR": eval_function_expr,
}


# ============================================================================
# PROGRAM EVALUATION
# ============================================================================

def run_program(program: Program, env: Environment, context: Optional[Dict] = None) -> Dict:
  """
  Evaluate top-level statements directly in env and return the last value.
  A top-level 'return' ends the program with its value when the context allows it.
  """
  if context is None:
    context = make_execution_context()

  try:
    return evaluate(program, env, context)
  except ReturnSignal as signal:
    if context['allow_top_level_return']:
      return signal.value
    raise KlangRuntimeError("'return' outside of a function") from None
