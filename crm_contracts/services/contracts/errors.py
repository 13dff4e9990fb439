"""Shared error classes for contract reconciliation and its repositories."""

from __future__ import annotations


class ContractsError(RuntimeError):
    """Base exception raised by the contracts report service."""

    def __init__(self, message: str, code: str = "CONTRACTS_ERROR") -> None:
        super().__init__(message)
        self.code = code


class ContractsPersistenceError(ContractsError):
    """Raised when a repository fails to read or write lead data."""


class LeadNotFoundError(ContractsError):
    """Raised when a row key does not resolve to a stored lead."""


class InvalidLeadReferenceError(ContractsError):
    """Raised when a row key cannot be parsed into a lead reference."""
