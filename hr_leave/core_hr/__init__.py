"""Core HR module — Employee and Department models used by the leave engine."""

from hr_leave.core_hr.models import Department, Employee, department_heads

__all__ = ["Employee", "Department", "department_heads"]
