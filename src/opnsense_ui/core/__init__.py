"""Core components of the OPNsense UI provider.

This package contains table scraping, natural key to position resolution,
and the form mutation protocol.
"""

from .mutation import FormToken, Mutation, MutationState, TableForm, parse_form_token
from .resolver import IdentityResolver, find_position
from .scraper import FieldSchema, SchemaCache, TableScraper, discover_schema, extract_rows

__all__ = [
    "FieldSchema",
    "FormToken",
    "IdentityResolver",
    "Mutation",
    "MutationState",
    "SchemaCache",
    "TableForm",
    "TableScraper",
    "discover_schema",
    "extract_rows",
    "find_position",
    "parse_form_token",
]
