"""
FastAPI routers for EDM Forms.
"""

from edm_forms.routers import entities, records

__all__ = ["entities", "records"]
