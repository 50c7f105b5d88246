"""
Token types for the Ari lexer.

Token categories follow the diagnostic code ranges:
- E0xx: Lexer errors
- E1xx: Parser errors
- E4xx: Runtime errors
- E5xx: Native function errors
"""

from enum import Enum, auto
from dataclasses import dataclass
from typing import Any, Optional


class TokenType(Enum):
    """All token types recognized by the Ari lexer."""

    # --- Literals ---
    NUMBER = auto()             # 42, 3.14, 1e-9
    STRING = auto()             # "hello", 'world'
    TRUE = auto()               # true
    FALSE = auto()              # false
    NULL = auto()               # null

    # --- Identifiers ---
    IDENTIFIER = auto()         # user-defined names

    # --- Keywords ---
    LET = auto()                # let
    FN = auto()                 # fn
    IF = auto()                 # if
    ELSE = auto()               # else
    WHILE = auto()              # while
    FOR = auto()                # for
    RETURN = auto()             # return
    BREAK = auto()              # break
    CONTINUE = auto()           # continue
    PRINT = auto()              # print
    PRINTLN = auto()            # println
    BAI = auto()                # bai

    # --- Arithmetic operators ---
    PLUS = auto()               # +
    MINUS = auto()              # -
    STAR = auto()               # *
    SLASH = auto()              # /
    PERCENT = auto()            # %

    # --- Comparison operators ---
    LT = auto()                 # <
    GT = auto()                 # >
    LE = auto()                 # <=
    GE = auto()                 # >=
    EQ = auto()                 # ==
    NE = auto()                 # !=

    # --- Logical operators ---
    AND = auto()                # && / and
    OR = auto()                 # || / or
    BANG = auto()               # !

    # --- Assignment ---
    ASSIGN = auto()             # =

    # --- Delimiters ---
    LBRACE = auto()             # {
    RBRACE = auto()             # }
    LPAREN = auto()             # (
    RPAREN = auto()             # )
    LBRACKET = auto()           # [
    RBRACKET = auto()           # ]
    SEMICOLON = auto()          # ;
    COMMA = auto()              # ,
    ARROW = auto()              # -> (lambdas)

    # --- Special ---
    EOF = auto()                # end of input


@dataclass(frozen=True)
class SourceLocation:
    """Represents a position in source code."""
    line: int           # 1-indexed line number
    column: int         # 1-indexed column number
    offset: int         # 0-indexed character offset from start
    filename: Optional[str] = None

    def __str__(self) -> str:
        if self.filename:
            return f"{self.filename}:{self.line}:{self.column}"
        return f"{self.line}:{self.column}"


@dataclass(frozen=True)
class SourceSpan:
    """Represents a range in source code."""
    start: SourceLocation
    end: SourceLocation

    def __str__(self) -> str:
        if self.start.filename:
            return f"{self.start.filename}:{self.start.line}:{self.start.column}-{self.end.line}:{self.end.column}"
        return f"{self.start.line}:{self.start.column}-{self.end.line}:{self.end.column}"


@dataclass(frozen=True)
class Token:
    """A single token from the lexer."""
    type: TokenType
    value: Any              # float for NUMBER, decoded text for STRING, name for IDENTIFIER
    lexeme: str             # The original source text
    span: SourceSpan        # Location in source

    def __str__(self) -> str:
        if self.type in (TokenType.NUMBER, TokenType.STRING, TokenType.IDENTIFIER):
            return f"{self.type.name}({self.value!r})"
        return self.type.name

    def describe(self) -> str:
        """Short human-readable description used in parser diagnostics."""
        if self.type == TokenType.EOF:
            return "end of input"
        if self.type == TokenType.IDENTIFIER:
            return f"identifier '{self.lexeme}'"
        if self.type == TokenType.NUMBER:
            return f"number '{self.lexeme}'"
        if self.type == TokenType.STRING:
            return f"string {self.lexeme}"
        return f"'{self.lexeme}'"


# Keyword mapping - maps string to token type
KEYWORDS: dict[str, TokenType] = {
    "let": TokenType.LET,
    "fn": TokenType.FN,
    "if": TokenType.IF,
    "else": TokenType.ELSE,
    "while": TokenType.WHILE,
    "for": TokenType.FOR,
    "return": TokenType.RETURN,
    "break": TokenType.BREAK,
    "continue": TokenType.CONTINUE,
    "print": TokenType.PRINT,
    "println": TokenType.PRINTLN,
    "bai": TokenType.BAI,

    # Literals
    "true": TokenType.TRUE,
    "false": TokenType.FALSE,
    "null": TokenType.NULL,

    # Logical operators (keyword spelling)
    "and": TokenType.AND,
    "or": TokenType.OR,
}


LITERAL_TOKENS: frozenset[TokenType] = frozenset({
    TokenType.NUMBER,
    TokenType.STRING,
    TokenType.TRUE,
    TokenType.FALSE,
    TokenType.NULL,
})
