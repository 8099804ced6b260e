"""
Klang lexical environments
A chain of mutable scope frames; closures hold frames by reference
"""

from typing import Dict, List, Optional
from dataclasses import dataclass

from error_handling import (
    UndefinedVariable, RedeclaredVariable, ConstReassignment, TypeMismatch,
)
from values import NUMBER, STRING, BOOLEAN, LIST, MAP, type_of


# Annotation spellings accepted by declarations and parameters
TYPE_ALIASES = {
    'int': NUMBER,
    'float': NUMBER,
    'number': NUMBER,
    'num': NUMBER,
    'string': STRING,
    'str': STRING,
    'bool': BOOLEAN,
    'boolean': BOOLEAN,
    'list': LIST,
    'array': LIST,
    'map': MAP,
    'dict': MAP,
    'object': MAP,
}


def resolve_annotation(type_annotation: str) -> str:
  """Map an annotation to its runtime type tag"""
  expected = TYPE_ALIASES.get(type_annotation.lower())
  if expected is None:
    raise TypeMismatch(f"Unknown type annotation '{type_annotation}'")
  return expected


def enforce_type(value: Dict, type_annotation: str) -> None:
  """Raise TypeMismatch unless value satisfies the annotation"""
  expected = resolve_annotation(type_annotation)
  if type_of(value) != expected:
    raise TypeMismatch(
      f"Type mismatch: expected '{type_annotation}', got {type_of(value)}"
    )


@dataclass
class Binding:
  value: Dict
  is_final: bool = False
  type_annotation: Optional[str] = None


class Environment:
  """One scope frame with an optional parent frame"""

  def __init__(self, parent: Optional['Environment'] = None):
    self.parent = parent
    self.bindings: Dict[str, Binding] = {}

  def child(self) -> 'Environment':
    return Environment(self)

  def has_local(self, name: str) -> bool:
    return name in self.bindings

  def local_names(self) -> List[str]:
    return list(self.bindings)

  def declare(self, name: str, value: Dict, is_final: bool = False,
              type_annotation: Optional[str] = None) -> Dict:
    """Create a binding in this frame"""
    if name in self.bindings:
      raise RedeclaredVariable(name)
    if type_annotation:
      enforce_type(value, type_annotation)
    self.bindings[name] = Binding(value, is_final, type_annotation)
    return value

  def resolve(self, name: str) -> 'Environment':
    """Nearest frame owning name, walking outward"""
    env = self
    while env is not None:
      if name in env.bindings:
        return env
      env = env.parent
    raise UndefinedVariable(name)

  def assign(self, name: str, value: Dict) -> Dict:
    binding = self.resolve(name).bindings[name]
    if binding.is_final:
      raise ConstReassignment(name)
    if binding.type_annotation:
      enforce_type(value, binding.type_annotation)
    binding.value = value
    return value

  def lookup(self, name: str) -> Dict:
    return self.resolve(name).bindings[name].value

  def __repr__(self) -> str:
    depth = 0
    env = self.parent
    while env is not None:
      depth += 1
      env = env.parent
    return f"<Environment depth={depth} names={self.local_names()}>"
