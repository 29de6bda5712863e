"""
Engine: operation union and dispatcher.
"""

from .operations import OPERATIONS, OpType, operation_from_dict
from .engine import ExecResult, GovernanceEngine

__all__ = ["ExecResult", "GovernanceEngine", "OPERATIONS", "OpType", "operation_from_dict"]
