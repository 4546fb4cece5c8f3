"""Core HR module — Employee and Department models plus organisation rules."""

from leavepro.core_hr.models import Department, Employee

__all__ = ["Employee", "Department"]
