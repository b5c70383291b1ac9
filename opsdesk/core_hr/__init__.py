"""Core HR module — Employee model."""

from opsdesk.core_hr.models import Employee

__all__ = ["Employee"]
