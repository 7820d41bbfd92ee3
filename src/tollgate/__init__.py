"""
Tollgate - security gate for the operations of a coding agent.

Tollgate sits between an agent and the machine it works on. It provides:
- Guardian scanning: secrets, risky code constructs, unsafe paths
- Policy evaluation: prioritized rules rendering allow / warn /
  needs_approval / block over proposed reads, writes, deletes and commands
- A sandbox for short untrusted Python fragments

Example usage:
    $ tollgate scan src/
    $ tollgate evaluate --operation exec --command "git status" --mode fast
    $ tollgate run "sum(range(10))"
"""

__version__ = "0.1.0"
__author__ = "Tollgate Contributors"

__all__ = [
    "__version__",
    "__author__",
]
