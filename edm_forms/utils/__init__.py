"""
Utility modules for EDM Forms.
"""

from edm_forms.utils.annotations import resolve_display_metadata
from edm_forms.utils.edm_mapping import EDM_TO_ABSTRACT, infer_field_kind

__all__ = ["EDM_TO_ABSTRACT", "infer_field_kind", "resolve_display_metadata"]
