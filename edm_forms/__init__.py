# EDM Forms
"""
Schema-driven forms for OData services

This package turns the metadata document of any OData/EDM service into
typed entity descriptors, renderer-agnostic form schemas and a generic CRUD
client, without per-entity code.

Architecture:
- Metadata Cache: per-endpoint metadata download with TTL and coalescing
- Parser: EDMX-to-descriptor transformation
- Compiler: descriptor-to-form-schema transformation with option lookups
- Form State / Registry: rendering-independent form instances
- CRUD Client: persistence with normalized validation errors
"""

__version__ = "1.0.0"
