"""
Scope chain tests for Klang environments
"""

import pytest
from environment import Environment, resolve_annotation, enforce_type
from error_handling import (
    UndefinedVariable, RedeclaredVariable, ConstReassignment, TypeMismatch,
)
from values import make_number, make_string, make_list, NUMBER, STRING, LIST, MAP


class TestBindings:
  """Declare, look up and assign"""

  @pytest.fixture
  def env(self):
    return Environment()

  def test_declare_and_lookup(self, env):
    env.declare("x", make_number(1))
    assert env.lookup("x") == make_number(1)

  def test_redeclare_in_same_frame(self, env):
    env.declare("x", make_number(1))
    with pytest.raises(RedeclaredVariable) as exc_info:
      env.declare("x", make_number(2))
    assert exc_info.value.name == "x"

  def test_undefined_lookup(self, env):
    with pytest.raises(UndefinedVariable) as exc_info:
      env.lookup("missing")
    assert exc_info.value.name == "missing"
    assert "missing" in exc_info.value.message

  def test_assign_undeclared(self, env):
    with pytest.raises(UndefinedVariable):
      env.assign("ghost", make_number(1))

  def test_final_binding_rejects_assignment(self, env):
    env.declare("y", make_number(5), is_final=True)
    with pytest.raises(ConstReassignment):
      env.assign("y", make_number(6))
    assert env.lookup("y") == make_number(5)


class TestScopeChain:
  """Child frames shadow and write through to their parents"""

  def test_child_sees_parent(self):
    root = Environment()
    root.declare("x", make_number(1))
    assert root.child().lookup("x") == make_number(1)

  def test_shadowing_leaves_outer_binding(self):
    root = Environment()
    root.declare("x", make_number(1))
    inner = root.child()
    inner.declare("x", make_number(2))
    assert inner.lookup("x") == make_number(2)
    assert root.lookup("x") == make_number(1)

  def test_assignment_updates_owning_frame(self):
    root = Environment()
    root.declare("count", make_number(0))
    inner = root.child().child()
    inner.assign("count", make_number(3))
    assert root.lookup("count") == make_number(3)
    assert not inner.has_local("count")

  def test_resolve_returns_owner(self):
    root = Environment()
    root.declare("x", make_number(1))
    inner = root.child()
    assert inner.resolve("x") is root

  def test_frames_are_shared_by_reference(self):
    """A later write to a frame is visible through every child holding it"""
    root = Environment()
    root.declare("factor", make_number(5))
    captured = root.child()
    root.assign("factor", make_number(2))
    assert captured.lookup("factor") == make_number(2)

  def test_repr_shows_depth(self):
    root = Environment()
    root.declare("a", make_number(1))
    assert repr(root) == "<Environment depth=0 names=['a']>"
    assert "depth=2" in repr(root.child().child())


class TestTypeAnnotations:
  """Declared types are checked on declaration and on every assignment"""

  @pytest.mark.parametrize("annotation,expected", [
      ("int", NUMBER), ("float", NUMBER), ("number", NUMBER), ("num", NUMBER),
      ("string", STRING), ("str", STRING), ("array", LIST), ("dict", MAP), ("Object", MAP),
  ])
  def test_aliases(self, annotation, expected):
    assert resolve_annotation(annotation) == expected

  def test_unknown_annotation(self):
    with pytest.raises(TypeMismatch, match="Unknown type annotation"):
      resolve_annotation("widget")

  def test_enforce_type(self):
    enforce_type(make_list(), "list")
    with pytest.raises(TypeMismatch):
      enforce_type(make_string("x"), "int")

  def test_mismatched_declaration_creates_no_binding(self):
    env = Environment()
    with pytest.raises(TypeMismatch):
      env.declare("x", make_string("oops"), type_annotation="int")
    assert not env.has_local("x")

  def test_mismatched_assignment_keeps_value(self):
    env = Environment()
    env.declare("x", make_number(1), type_annotation="int")
    with pytest.raises(TypeMismatch):
      env.assign("x", make_string("two"))
    assert env.lookup("x") == make_number(1)
    env.assign("x", make_number(2))
    assert env.lookup("x") == make_number(2)
