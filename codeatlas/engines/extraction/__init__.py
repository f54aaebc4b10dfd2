"""Function extraction adapter: parser service client and unit naming."""

from codeatlas.engines.extraction.languages import language_for_path, resolve_import
from codeatlas.engines.extraction.models import FunctionUnit, ParseResult
from codeatlas.engines.extraction.parser_client import ParserClient
from codeatlas.engines.extraction.units import assign_unit_names, normalize_code, whole_file_unit

__all__ = [
    "FunctionUnit",
    "ParseResult",
    "ParserClient",
    "assign_unit_names",
    "language_for_path",
    "normalize_code",
    "resolve_import",
    "whole_file_unit",
]
