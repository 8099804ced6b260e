"""
Test configuration for the Klang test suite
"""

import pytest
import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from interpreter import make_execution_context, run_program
from parsing import create_parser
from stdlib import create_global_env


@pytest.fixture
def parser():
  return create_parser()


@pytest.fixture
def run_klang():
  """Run source in a fresh root environment and return the final value"""
  def run(source, env=None, **policy):
    context = make_execution_context(**policy)
    if env is None:
      env = create_global_env(context)
    program = create_parser().parse_string(source)
    return run_program(program, env, context)

  return run
