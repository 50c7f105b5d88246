"""
Lexer for the Ari scripting language.

Converts source text into a stream of tokens for the parser.
Supports:
- Line comments (//) and nestable block comments (/* */)
- Double- and single-quoted strings with escape sequences
- Number literals (integer, decimal, scientific notation)
- Keywords, identifiers, operators and delimiters

Scanning is single-pass.  Iterating a :class:`Lexer` yields tokens lazily;
each new iteration starts again from the beginning of the source.  The
first malformed token raises a :class:`~ari.errors.LexerError`.
"""

from typing import Iterator, List, Optional
from .tokens import Token, TokenType, SourceLocation, SourceSpan, KEYWORDS
from .errors import (
    error_unexpected_character,
    error_unterminated_string,
    error_unterminated_comment,
    error_invalid_escape_sequence,
    error_invalid_number_literal,
)


# Operators that may be followed by a second character
TWO_CHAR_OPERATORS: dict[str, TokenType] = {
    "==": TokenType.EQ,
    "!=": TokenType.NE,
    "<=": TokenType.LE,
    ">=": TokenType.GE,
    "&&": TokenType.AND,
    "||": TokenType.OR,
    "->": TokenType.ARROW,
}

SINGLE_CHAR_TOKENS: dict[str, TokenType] = {
    '+': TokenType.PLUS,
    '-': TokenType.MINUS,
    '*': TokenType.STAR,
    '/': TokenType.SLASH,
    '%': TokenType.PERCENT,
    '<': TokenType.LT,
    '>': TokenType.GT,
    '=': TokenType.ASSIGN,
    '!': TokenType.BANG,
    '(': TokenType.LPAREN,
    ')': TokenType.RPAREN,
    '[': TokenType.LBRACKET,
    ']': TokenType.RBRACKET,
    '{': TokenType.LBRACE,
    '}': TokenType.RBRACE,
    ',': TokenType.COMMA,
    ';': TokenType.SEMICOLON,
}

ESCAPE_CHARS: dict[str, str] = {
    'n': '\n',
    't': '\t',
    'r': '\r',
    '\\': '\\',
    '"': '"',
    "'": "'",
    '0': '\0',
}


class Lexer:
    """
    Tokenizer for Ari source text.

    Usage:
        lexer = Lexer(source_code)
        tokens = lexer.tokenize()

    Or for streaming:
        lexer = Lexer(source_code)
        for token in lexer:
            process(token)
    """

    def __init__(self, source: str, filename: Optional[str] = None):
        self.source = source
        self.filename = filename
        self._lines: Optional[List[str]] = None  # Cached line list
        self._reset()

    def _reset(self) -> None:
        self.pos = 0            # Current position in source
        self.line = 1           # Current line (1-indexed)
        self.column = 1         # Current column (1-indexed)

    @property
    def lines(self) -> List[str]:
        """Lazy-load line list for error reporting."""
        if self._lines is None:
            self._lines = self.source.splitlines()
        return self._lines

    def get_source_line(self, line_num: int) -> Optional[str]:
        """Get a specific line of source (1-indexed)."""
        if 1 <= line_num <= len(self.lines):
            return self.lines[line_num - 1]
        return None

    def _location(self) -> SourceLocation:
        """Get current source location."""
        return SourceLocation(self.line, self.column, self.pos, self.filename)

    def _span(self, start: SourceLocation) -> SourceSpan:
        """Create a span from start to current position."""
        return SourceSpan(start, self._location())

    def _peek(self, offset: int = 0) -> str:
        """Look at character at current position + offset without consuming."""
        idx = self.pos + offset
        if idx >= len(self.source):
            return '\0'
        return self.source[idx]

    def _advance(self) -> str:
        """Consume and return current character."""
        if self.pos >= len(self.source):
            return '\0'
        ch = self.source[self.pos]
        self.pos += 1
        if ch == '\n':
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return ch

    def _is_at_end(self) -> bool:
        return self.pos >= len(self.source)

    def _skip_line_comment(self) -> None:
        """Skip a // comment up to (not including) the newline."""
        while self._peek() != '\n' and not self._is_at_end():
            self._advance()

    def _skip_block_comment(self) -> None:
        """Skip /* ... */ comment."""
        start = self._location()
        self._advance()  # consume '/'
        self._advance()  # consume '*'
        depth = 1  # Support nested comments

        while not self._is_at_end() and depth > 0:
            if self._peek() == '/' and self._peek(1) == '*':
                self._advance()
                self._advance()
                depth += 1
            elif self._peek() == '*' and self._peek(1) == '/':
                self._advance()
                self._advance()
                depth -= 1
            else:
                self._advance()

        if depth > 0:
            raise error_unterminated_comment(
                self._span(start),
                self.get_source_line(start.line)
            )

    def _skip_trivia(self) -> None:
        """Skip whitespace and comments between tokens."""
        while not self._is_at_end():
            ch = self._peek()
            if ch in ' \t\r\n':
                self._advance()
            elif ch == '/' and self._peek(1) == '/':
                self._skip_line_comment()
            elif ch == '/' and self._peek(1) == '*':
                self._skip_block_comment()
            else:
                return

    def _make_token(self, token_type: TokenType, value, start: SourceLocation,
                    lexeme: Optional[str] = None) -> Token:
        """Create a token."""
        span = self._span(start)
        if lexeme is None:
            lexeme = self.source[start.offset:self.pos]
        return Token(token_type, value, lexeme, span)

    def _scan_string(self) -> Token:
        """Scan a string literal."""
        start = self._location()
        quote = self._advance()  # consume opening quote

        chars = []
        while not self._is_at_end() and self._peek() != quote:
            ch = self._peek()
            if ch == '\n':
                raise error_unterminated_string(
                    self._span(start),
                    self.get_source_line(start.line)
                )
            if ch == '\\':
                self._advance()  # consume backslash
                chars.append(self._scan_escape_sequence())
            else:
                chars.append(self._advance())

        if self._is_at_end():
            raise error_unterminated_string(
                self._span(start),
                self.get_source_line(start.line)
            )

        self._advance()  # consume closing quote
        return self._make_token(TokenType.STRING, ''.join(chars), start)

    def _scan_hex_digits(self, count: int, prefix: str, esc_start: SourceLocation) -> str:
        digits = ''
        for _ in range(count):
            if self._peek() not in '0123456789abcdefABCDEF' or self._is_at_end():
                raise error_invalid_escape_sequence(
                    f"{prefix}{digits}", self._span(esc_start),
                    self.get_source_line(esc_start.line)
                )
            digits += self._advance()
        code_point = int(digits, 16)
        # Lone UTF-16 surrogates cannot be encoded as text
        if 0xD800 <= code_point <= 0xDFFF:
            raise error_invalid_escape_sequence(
                f"{prefix}{digits}", self._span(esc_start),
                self.get_source_line(esc_start.line)
            )
        return chr(code_point)

    def _scan_escape_sequence(self) -> str:
        """Decode an escape sequence after the backslash."""
        esc_start = self._location()
        if self._is_at_end():
            raise error_unterminated_string(
                self._span(esc_start), self.get_source_line(esc_start.line)
            )

        ch = self._advance()
        if ch in ESCAPE_CHARS:
            return ESCAPE_CHARS[ch]
        if ch == 'x':
            return self._scan_hex_digits(2, 'x', esc_start)
        if ch == 'u':
            return self._scan_hex_digits(4, 'u', esc_start)
        raise error_invalid_escape_sequence(
            ch, self._span(esc_start), self.get_source_line(esc_start.line)
        )

    def _scan_number(self) -> Token:
        """Scan a numeric literal; all numbers are floats."""
        start = self._location()

        while self._peek().isdecimal():
            self._advance()

        if self._peek() == '.' and self._peek(1).isdecimal():
            self._advance()  # consume '.'
            while self._peek().isdecimal():
                self._advance()

        # Scientific notation
        if self._peek() in 'eE':
            self._advance()
            if self._peek() in '+-':
                self._advance()
            if not self._peek().isdecimal():
                lexeme = self.source[start.offset:self.pos]
                raise error_invalid_number_literal(
                    lexeme, self._span(start), self.get_source_line(start.line)
                )
            while self._peek().isdecimal():
                self._advance()

        # "1abc" is a malformed literal, not a number followed by a name
        if self._peek().isalpha() or self._peek() == '_':
            while self._peek().isalnum() or self._peek() == '_':
                self._advance()
            lexeme = self.source[start.offset:self.pos]
            raise error_invalid_number_literal(
                lexeme, self._span(start), self.get_source_line(start.line)
            )

        lexeme = self.source[start.offset:self.pos]
        return self._make_token(TokenType.NUMBER, float(lexeme), start, lexeme)

    def _scan_identifier_or_keyword(self) -> Token:
        """Scan an identifier or keyword (longest match)."""
        start = self._location()

        while self._peek().isalnum() or self._peek() == '_':
            self._advance()

        lexeme = self.source[start.offset:self.pos]
        token_type = KEYWORDS.get(lexeme)
        if token_type is None:
            return self._make_token(TokenType.IDENTIFIER, lexeme, start, lexeme)
        if token_type == TokenType.TRUE:
            return self._make_token(token_type, True, start, lexeme)
        if token_type == TokenType.FALSE:
            return self._make_token(token_type, False, start, lexeme)
        if token_type == TokenType.NULL:
            return self._make_token(token_type, None, start, lexeme)
        return self._make_token(token_type, lexeme, start, lexeme)

    def _scan_token(self) -> Token:
        """Scan the next token."""
        self._skip_trivia()

        if self._is_at_end():
            return self._make_token(TokenType.EOF, None, self._location(), "")

        start = self._location()
        ch = self._peek()

        if ch in '"\'':
            return self._scan_string()

        if ch.isdecimal():
            return self._scan_number()

        if ch.isalpha() or ch == '_':
            return self._scan_identifier_or_keyword()

        pair = ch + self._peek(1)
        if pair in TWO_CHAR_OPERATORS:
            self._advance()
            self._advance()
            return self._make_token(TWO_CHAR_OPERATORS[pair], pair, start)

        if ch in SINGLE_CHAR_TOKENS:
            self._advance()
            return self._make_token(SINGLE_CHAR_TOKENS[ch], ch, start)

        # Unknown character
        self._advance()
        raise error_unexpected_character(
            ch, self._span(start), self.get_source_line(start.line)
        )

    def tokenize(self) -> List[Token]:
        """Tokenize the entire source, returning a list of tokens."""
        return list(self)

    def __iter__(self) -> Iterator[Token]:
        """Iterate over tokens, restarting from the beginning of the source."""
        self._reset()
        while True:
            token = self._scan_token()
            yield token
            if token.type == TokenType.EOF:
                break


def tokenize(source: str, filename: Optional[str] = None) -> List[Token]:
    """
    Convenience function to tokenize source code.

    Args:
        source: The source code to tokenize
        filename: Optional filename for error messages

    Returns:
        List of tokens

    Raises:
        LexerError: If tokenization fails
    """
    lexer = Lexer(source, filename)
    return lexer.tokenize()
