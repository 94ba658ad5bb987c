"""Parser for ULOG format definition strings."""

from __future__ import annotations

from typing import Any

import ply.yacc as yacc

from ulog_codec.errors import FormatParseError
from ulog_codec.parsing.format_lexer import FormatLexer
from ulog_codec.types import (
    FieldDefinition,
    FormatDefinition,
    TypeExpr,
    resolve_base_type,
)

_TOKEN_DESCRIPTIONS = {
    "$end": "end of input",
}


class FormatParser:
    """Parser for format definitions and the ``"<type> <name>"`` field keys
    of info and parameter records.

    A format definition is ``name:`` followed by ``type[N] field;`` entries,
    e.g. ``"sensor:uint64_t timestamp;float[3] accel;"``.
    """

    tokens = FormatLexer.tokens
    start = "definition"

    def __init__(self) -> None:
        self.lexer = FormatLexer()
        self.lexer.build()
        self.parser: yacc.LRParser = None  # type: ignore

    def p_definition_format(self, p: yacc.YaccProduction) -> None:
        """definition : IDENTIFIER COLON field_list"""
        p[0] = FormatDefinition(name=p[1], fields=tuple(p[3]))

    def p_definition_format_empty(self, p: yacc.YaccProduction) -> None:
        """definition : IDENTIFIER COLON"""
        p[0] = FormatDefinition(name=p[1], fields=())

    def p_definition_field(self, p: yacc.YaccProduction) -> None:
        """definition : field"""
        p[0] = p[1]

    def p_field_list_single(self, p: yacc.YaccProduction) -> None:
        """field_list : field SEMICOLON"""
        p[0] = [p[1]]

    def p_field_list_multiple(self, p: yacc.YaccProduction) -> None:
        """field_list : field_list field SEMICOLON"""
        p[0] = p[1] + [p[2]]

    def p_field_scalar(self, p: yacc.YaccProduction) -> None:
        """field : IDENTIFIER IDENTIFIER"""
        p[0] = FieldDefinition(name=p[2], type_expr=TypeExpr(resolve_base_type(p[1])))

    def p_field_array(self, p: yacc.YaccProduction) -> None:
        """field : IDENTIFIER LBRACKET NUMBER RBRACKET IDENTIFIER"""
        p[0] = FieldDefinition(
            name=p[5],
            type_expr=TypeExpr(resolve_base_type(p[1]), array_size=p[3]),
        )

    def p_error(self, p: yacc.YaccProduction) -> None:
        expected = ", ".join(self._expected_tokens())
        if p:
            raise FormatParseError(
                f"Expected one of [{expected}], found {p.type} '{p.value}' at position {p.lexpos}"
            )
        raise FormatParseError(f"Expected one of [{expected}], found end of input")

    def _expected_tokens(self) -> list[str]:
        state = getattr(self.parser, "state", None)
        actions = getattr(self.parser, "action", {}).get(state, {})
        return sorted(_TOKEN_DESCRIPTIONS.get(name, name) for name in actions)

    def build(self, **kwargs: Any) -> None:
        """Build the parser."""
        self.parser = yacc.yacc(module=self, **kwargs)

    def _parse(self, data: str) -> FormatDefinition | FieldDefinition:
        if self.parser is None:
            self.build(debug=False, write_tables=False, errorlog=yacc.NullLogger())
        result = self.parser.parse(data, lexer=self.lexer.lexer)
        if result is None:
            raise FormatParseError("Expected one of [IDENTIFIER], found end of input")
        return result

    def parse(self, data: str) -> FormatDefinition:
        """Parse a format definition string."""
        result = self._parse(data)
        if not isinstance(result, FormatDefinition):
            raise FormatParseError(f"Expected a format definition 'name:...', got '{data}'")
        return result

    def parse_field(self, data: str) -> FieldDefinition:
        """Parse a single ``"<type> <name>"`` field key."""
        result = self._parse(data)
        if not isinstance(result, FieldDefinition):
            raise FormatParseError(f"Expected a '<type> <name>' field key, got '{data}'")
        return result


def encode_format(definition: FormatDefinition) -> str:
    """Render a format definition as wire text; inverse of FormatParser.parse."""
    return definition.name + ":" + "".join(
        f"{f.type_expr} {f.name};" for f in definition.fields
    )


def encode_field_key(field: FieldDefinition) -> str:
    """Render the ``"<type> <name>"`` key used by info and parameter records."""
    return f"{field.type_expr} {field.name}"
