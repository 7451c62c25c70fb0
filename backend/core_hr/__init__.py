"""Core HR module — the Employee model that carries the leave ledger."""

from backend.core_hr.models import Employee

__all__ = ["Employee"]
