"""Parsing, column mapping, templates, and exports for lead spreadsheets."""

from .exporters import EXPORT_COLUMNS, EXPORT_FORMATS, export_leads
from .mapping import DEFAULT_FIELD_MAPPING, FieldPath, resolve_field
from .parser import ParseError, ParseResult, UnsupportedFileTypeError, parse_file
from .templates import TEMPLATE_COLUMNS, build_template, template_headers

__all__ = [
    "DEFAULT_FIELD_MAPPING",
    "EXPORT_COLUMNS",
    "EXPORT_FORMATS",
    "FieldPath",
    "ParseError",
    "ParseResult",
    "TEMPLATE_COLUMNS",
    "UnsupportedFileTypeError",
    "build_template",
    "export_leads",
    "parse_file",
    "resolve_field",
    "template_headers",
]
