"""Lexer for ULOG format definition strings."""

import ply.lex as lex


class FormatLexer:
    """Lexer for tokenizing format definitions like ``name:float[3] x;``."""

    tokens = [
        "IDENTIFIER",
        "NUMBER",
        "COLON",
        "SEMICOLON",
        "LBRACKET",
        "RBRACKET",
        "UNKNOWN",
    ]

    # Simple tokens
    t_COLON = r":"
    t_SEMICOLON = r";"
    t_LBRACKET = r"\["
    t_RBRACKET = r"\]"

    # Ignored characters (spaces, tabs, carriage returns)
    t_ignore = " \t\r\f\v"

    def __init__(self) -> None:
        self.lexer: lex.LexToken = None  # type: ignore

    def t_IDENTIFIER(self, t: lex.LexToken) -> lex.LexToken:
        r"[a-zA-Z_][a-zA-Z0-9_]*"
        return t

    def t_NUMBER(self, t: lex.LexToken) -> lex.LexToken:
        r"\d+"
        t.value = int(t.value)
        return t

    def t_NEWLINE(self, t: lex.LexToken) -> None:
        r"\n+"
        t.lexer.lineno += len(t.value)

    def t_error(self, t: lex.LexToken) -> lex.LexToken:
        # Unmatched characters become single UNKNOWN tokens
        t.type = "UNKNOWN"
        t.value = t.value[0]
        t.lexer.skip(1)
        return t

    def build(self, **kwargs) -> None:  # type: ignore
        """Build the lexer."""
        self.lexer = lex.lex(module=self, **kwargs)

    def input(self, data: str) -> None:
        """Set the input string to tokenize."""
        self.lexer.input(data)

    def token(self) -> lex.LexToken | None:
        """Return the next token."""
        return self.lexer.token()

    def tokenize(self, data: str) -> list[lex.LexToken]:
        """Tokenize the input and return all tokens."""
        self.input(data)
        tokens = []
        while True:
            tok = self.token()
            if tok is None:
                break
            tokens.append(tok)
        return tokens
