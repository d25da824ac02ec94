from .operations import (
    Clear,
    Operation,
    Preempt,
    Register,
    RegisterIgnore,
    Release,
    Reserve,
    apply_operation,
    legal_operations,
    predicted_expectation,
)
from .state import UNREGISTERED, Initiator, IOExpectation, PRState

__all__ = [
    "Clear",
    "Operation",
    "Preempt",
    "Register",
    "RegisterIgnore",
    "Release",
    "Reserve",
    "apply_operation",
    "legal_operations",
    "predicted_expectation",
    "UNREGISTERED",
    "Initiator",
    "IOExpectation",
    "PRState",
]
