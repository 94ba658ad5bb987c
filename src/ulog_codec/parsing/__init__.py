"""Parsing module for ULOG format definitions."""

from ulog_codec.parsing.format_lexer import FormatLexer
from ulog_codec.parsing.format_parser import FormatParser, encode_field_key, encode_format

__all__ = [
    "FormatLexer",
    "FormatParser",
    "encode_field_key",
    "encode_format",
]
