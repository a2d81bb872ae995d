"""
HTTP clients for upstream services.
"""

from edm_forms.clients.odata_client import ODataHttpClient

__all__ = ["ODataHttpClient"]
