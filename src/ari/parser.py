"""
Recursive descent parser for Ari.

Converts a token stream into an Abstract Syntax Tree (AST).  Parsing stops
at the first grammar violation, reported as a ParserError carrying the
expected construct, the token actually found and its span.
"""

from typing import Iterable, List, Optional
from .tokens import Token, TokenType, SourceSpan, LITERAL_TOKENS
from .ast import (
    # Expressions
    Expression, Literal, Identifier, BinaryOp, UnaryOp,
    ArrayLiteral, IndexAccess, FunctionCall, FunctionLiteral,
    Assignment, IfExpr,
    # Statements
    Statement, ExpressionStatement, LetStatement, FunctionDef,
    Block, IfStatement, WhileStatement, ForStatement,
    ReturnStatement, BreakStatement, ContinueStatement, PrintStatement,
    ExitStatement,
    Program,
)
from .errors import (
    error_unexpected_token,
    error_unexpected_eof,
    error_invalid_assignment_target,
    error_duplicate_parameter,
    error_nesting_too_deep,
)


class Parser:
    """
    Recursive descent parser for Ari.

    Usage:
        parser = Parser(tokens)
        program = parser.parse_program()

    The parser implements standard precedence climbing for binary
    expressions:
        Lowest:  = (right-associative, handled separately)
                 || or
                 && and
                 == !=
                 < > <= >=
                 + -
                 * / %
        Highest: unary (! -), then postfix call/index
    """

    # Operator precedence levels (higher = tighter binding)
    PRECEDENCE = {
        TokenType.OR: 1,
        TokenType.AND: 2,
        TokenType.EQ: 3,
        TokenType.NE: 3,
        TokenType.LT: 4,
        TokenType.GT: 4,
        TokenType.LE: 4,
        TokenType.GE: 4,
        TokenType.PLUS: 5,
        TokenType.MINUS: 5,
        TokenType.STAR: 6,
        TokenType.SLASH: 6,
        TokenType.PERCENT: 6,
    }

    def __init__(self, tokens: Iterable[Token], filename: Optional[str] = None,
                 source: Optional[str] = None):
        self.tokens: List[Token] = list(tokens)
        if not self.tokens or self.tokens[-1].type != TokenType.EOF:
            raise ValueError("token stream must end with an EOF token")
        self.filename = filename
        self.source = source  # Original source code for diagnostics
        self._source_lines: Optional[List[str]] = None
        self.pos = 0

    # =========================================================================
    # Token Navigation
    # =========================================================================

    def _current(self) -> Token:
        """Get current token."""
        if self.pos >= len(self.tokens):
            return self.tokens[-1]  # EOF
        return self.tokens[self.pos]

    def _peek(self, offset: int = 0) -> Token:
        """Peek at token at current position + offset."""
        idx = self.pos + offset
        if idx >= len(self.tokens):
            return self.tokens[-1]  # EOF
        return self.tokens[idx]

    def _is_at_end(self) -> bool:
        """Check if at end of tokens."""
        return self._current().type == TokenType.EOF

    def _check(self, token_type: TokenType) -> bool:
        """Check if current token is of given type."""
        return self._current().type == token_type

    def _check_any(self, *token_types: TokenType) -> bool:
        """Check if current token is any of given types."""
        return self._current().type in token_types

    def _advance(self) -> Token:
        """Consume and return current token."""
        token = self._current()
        if not self._is_at_end():
            self.pos += 1
        return token

    def _consume(self, token_type: TokenType, expected: str) -> Token:
        """Consume token of expected type, or raise error."""
        if self._check(token_type):
            return self._advance()
        self._error(expected)

    def _match(self, *token_types: TokenType) -> Optional[Token]:
        """Consume token if it matches any of the given types."""
        if self._current().type in token_types:
            return self._advance()
        return None

    def _source_line(self, span: SourceSpan) -> Optional[str]:
        if self.source is None:
            return None
        if self._source_lines is None:
            self._source_lines = self.source.splitlines()
        line = span.start.line
        if 1 <= line <= len(self._source_lines):
            return self._source_lines[line - 1]
        return None

    def _error(self, expected: str) -> None:
        """Raise a parser error."""
        token = self._current()
        if token.type == TokenType.EOF:
            raise error_unexpected_eof(expected, token.span, self._source_line(token.span))
        raise error_unexpected_token(
            expected, token.describe(), token.span, self._source_line(token.span)
        )

    def _span_from(self, start: Token) -> SourceSpan:
        """Create a span from start token to the end of the previous token."""
        prev_pos = max(0, self.pos - 1)
        end_token = self.tokens[prev_pos]
        return SourceSpan(start.span.start, end_token.span.end)

    # =========================================================================
    # Expression Parsing
    # =========================================================================

    def _parse_expression(self) -> Expression:
        """Parse an expression (lowest level is assignment)."""
        return self._parse_assignment()

    def _parse_assignment(self) -> Expression:
        """Parse ``target = value`` (right-associative) or fall through."""
        target = self._parse_binary_expr(1)

        if not self._check(TokenType.ASSIGN):
            return target

        self._advance()  # consume '='
        value = self._parse_assignment()

        if not self._is_assignable(target):
            raise error_invalid_assignment_target(target.span, self._source_line(target.span))

        return Assignment(
            span=SourceSpan(target.span.start, value.span.end),
            target=target,
            value=value,
        )

    @staticmethod
    def _is_assignable(target: Expression) -> bool:
        """Identifiers and index chains rooted at an identifier."""
        while isinstance(target, IndexAccess):
            target = target.target
        return isinstance(target, Identifier)

    def _parse_binary_expr(self, min_precedence: int) -> Expression:
        """Parse binary expressions with precedence climbing."""
        left = self._parse_unary_expr()

        while True:
            op_token = self._current()
            precedence = self.PRECEDENCE.get(op_token.type)

            if precedence is None or precedence < min_precedence:
                break

            self._advance()  # consume operator

            # All binary operators are left-associative
            right = self._parse_binary_expr(precedence + 1)

            left = BinaryOp(
                span=SourceSpan(left.span.start, right.span.end),
                left=left,
                operator=op_token.type,
                right=right
            )

        return left

    def _parse_unary_expr(self) -> Expression:
        """Parse unary expressions (!, -)."""
        if self._check_any(TokenType.BANG, TokenType.MINUS):
            op = self._advance()
            operand = self._parse_unary_expr()
            return UnaryOp(
                span=SourceSpan(op.span.start, operand.span.end),
                operator=op.type,
                operand=operand
            )

        return self._parse_postfix_expr()

    def _parse_postfix_expr(self) -> Expression:
        """Parse postfix expressions (calls and indexing, chainable)."""
        expr = self._parse_primary_expr()

        while True:
            if self._check(TokenType.LPAREN):
                expr = self._parse_call(expr)
            elif self._check(TokenType.LBRACKET):
                self._advance()  # consume '['
                index = self._parse_expression()
                self._consume(TokenType.RBRACKET, "']'")
                expr = IndexAccess(
                    span=SourceSpan(expr.span.start, self.tokens[self.pos - 1].span.end),
                    target=expr,
                    index=index
                )
            else:
                break

        return expr

    def _parse_call(self, callee: Expression) -> FunctionCall:
        """Parse function call arguments."""
        args = self._parse_arguments()
        return FunctionCall(
            span=SourceSpan(callee.span.start, self.tokens[self.pos - 1].span.end),
            callee=callee,
            arguments=args,
        )

    def _parse_arguments(self) -> List[Expression]:
        """Parse a parenthesised, comma-separated argument list."""
        self._consume(TokenType.LPAREN, "'('")

        args = []
        if not self._check(TokenType.RPAREN):
            args.append(self._parse_expression())
            while self._match(TokenType.COMMA):
                if self._check(TokenType.RPAREN):
                    break  # Allow trailing comma
                args.append(self._parse_expression())

        self._consume(TokenType.RPAREN, "')'")
        return args

    def _parse_primary_expr(self) -> Expression:
        """Parse primary expressions (literals, identifiers, grouped, etc.)."""
        token = self._current()

        if token.type in LITERAL_TOKENS:
            self._advance()
            return Literal(span=token.span, value=token.value, literal_type=token.type)

        if token.type == TokenType.IDENTIFIER:
            # Single-parameter lambda: x -> expr
            if self._peek(1).type == TokenType.ARROW:
                self._advance()  # consume name
                self._advance()  # consume '->'
                return self._parse_lambda_body(token, [token.value])
            self._advance()
            return Identifier(span=token.span, name=token.value)

        # Grouped expression or lambda
        if token.type == TokenType.LPAREN:
            return self._parse_grouped_or_lambda()

        if token.type == TokenType.LBRACKET:
            return self._parse_array_literal()

        # Anonymous function: fn (a, b) { ... }
        if token.type == TokenType.FN:
            self._advance()
            params = self._parse_parameters()
            body = self._parse_block()
            return FunctionLiteral(span=self._span_from(token), parameters=params, body=body)

        if token.type == TokenType.IF:
            return self._parse_if_expr()

        self._error("expression")

    def _parse_grouped_or_lambda(self) -> Expression:
        """Parse grouped expression or ``(params) -> body`` lambda."""
        start = self._advance()  # consume '('

        # Look ahead for a parameter list followed by ')' '->'
        saved_pos = self.pos
        param_names: List[str] = []
        is_lambda = False
        if self._check(TokenType.RPAREN):
            is_lambda = self._peek(1).type == TokenType.ARROW
        elif self._check(TokenType.IDENTIFIER):
            param_names.append(self._advance().value)
            while self._match(TokenType.COMMA):
                if not self._check(TokenType.IDENTIFIER):
                    break
                param_names.append(self._advance().value)
            is_lambda = self._check(TokenType.RPAREN) and self._peek(1).type == TokenType.ARROW

        if is_lambda:
            self._consume(TokenType.RPAREN, "')'")
            self._consume(TokenType.ARROW, "'->'")
            self._check_unique_parameters(param_names, start)
            return self._parse_lambda_body(start, param_names)

        # Not a lambda, restore position and parse as grouped expression
        self.pos = saved_pos
        expr = self._parse_expression()
        self._consume(TokenType.RPAREN, "')'")
        return expr

    def _parse_lambda_body(self, start: Token, parameters: List[str]) -> FunctionLiteral:
        """Parse the body after '->': a block, or an expression to return."""
        if self._check(TokenType.LBRACE):
            body = self._parse_block()
        else:
            expr = self._parse_assignment()
            body = Block(
                span=expr.span,
                statements=[ReturnStatement(span=expr.span, value=expr)],
            )
        return FunctionLiteral(span=self._span_from(start), parameters=parameters, body=body)

    def _parse_array_literal(self) -> ArrayLiteral:
        """Parse ``[e1, e2, ...]`` (a trailing comma is allowed)."""
        start = self._advance()  # consume '['
        elements = []
        if not self._check(TokenType.RBRACKET):
            elements.append(self._parse_expression())
            while self._match(TokenType.COMMA):
                if self._check(TokenType.RBRACKET):
                    break
                elements.append(self._parse_expression())
        self._consume(TokenType.RBRACKET, "']'")
        return ArrayLiteral(span=self._span_from(start), elements=elements)

    def _parse_if_expr(self) -> IfExpr:
        """Parse ``if (cond) a else b`` in expression position."""
        start = self._advance()  # consume 'if'
        self._consume(TokenType.LPAREN, "'(' after 'if'")
        condition = self._parse_expression()
        self._consume(TokenType.RPAREN, "')' after condition")
        then_expr = self._parse_expression()
        self._consume(TokenType.ELSE, "'else' (an if expression needs both branches)")
        else_expr = self._parse_expression()
        return IfExpr(
            span=self._span_from(start),
            condition=condition,
            then_expr=then_expr,
            else_expr=else_expr,
        )

    def _parse_parameters(self) -> List[str]:
        """Parse ``(a, b, c)`` into a list of parameter names."""
        start = self._consume(TokenType.LPAREN, "'(' before parameters")
        params: List[str] = []
        if not self._check(TokenType.RPAREN):
            params.append(self._consume(TokenType.IDENTIFIER, "parameter name").value)
            while self._match(TokenType.COMMA):
                params.append(self._consume(TokenType.IDENTIFIER, "parameter name").value)
        self._consume(TokenType.RPAREN, "')' after parameters")
        self._check_unique_parameters(params, start)
        return params

    def _check_unique_parameters(self, params: List[str], start: Token) -> None:
        seen = set()
        for name in params:
            if name in seen:
                span = self._span_from(start)
                raise error_duplicate_parameter(name, span, self._source_line(span))
            seen.add(name)

    # =========================================================================
    # Statement Parsing
    # =========================================================================

    def _parse_declaration(self) -> Statement:
        """Parse a declaration (fn, let) or any other statement."""
        if self._check(TokenType.FN) and self._peek(1).type == TokenType.IDENTIFIER:
            return self._parse_function_def()
        if self._check(TokenType.LET):
            return self._parse_let_statement()
        return self._parse_statement()

    def _parse_statement(self) -> Statement:
        token = self._current()

        if token.type == TokenType.IF:
            return self._parse_if_statement()
        if token.type == TokenType.WHILE:
            return self._parse_while_statement()
        if token.type == TokenType.FOR:
            return self._parse_for_statement()
        if token.type == TokenType.RETURN:
            return self._parse_return_statement()
        if token.type == TokenType.BREAK:
            self._advance()
            self._consume(TokenType.SEMICOLON, "';' after 'break'")
            return BreakStatement(span=self._span_from(token))
        if token.type == TokenType.CONTINUE:
            self._advance()
            self._consume(TokenType.SEMICOLON, "';' after 'continue'")
            return ContinueStatement(span=self._span_from(token))
        if token.type in (TokenType.PRINT, TokenType.PRINTLN):
            return self._parse_print_statement()
        if token.type == TokenType.BAI:
            return self._parse_exit_statement()
        if token.type == TokenType.LBRACE:
            return self._parse_block()

        return self._parse_expression_statement()

    def _parse_expression_statement(self) -> ExpressionStatement:
        start = self._current()
        expr = self._parse_expression()
        self._consume(TokenType.SEMICOLON, "';' after expression")
        return ExpressionStatement(span=self._span_from(start), expression=expr)

    def _parse_function_def(self) -> FunctionDef:
        """Parse ``fn name(params) { body }``."""
        start = self._advance()  # consume 'fn'
        name = self._consume(TokenType.IDENTIFIER, "function name").value
        params = self._parse_parameters()
        body = self._parse_block()
        return FunctionDef(span=self._span_from(start), name=name, parameters=params, body=body)

    def _parse_let_statement(self) -> LetStatement:
        """Parse ``let name (= value)?;``."""
        start = self._advance()  # consume 'let'
        name = self._consume(TokenType.IDENTIFIER, "variable name after 'let'").value
        initializer = None
        if self._match(TokenType.ASSIGN):
            initializer = self._parse_expression()
        self._consume(TokenType.SEMICOLON, "';' after variable declaration")
        return LetStatement(span=self._span_from(start), name=name, initializer=initializer)

    def _parse_if_statement(self) -> IfStatement:
        start = self._advance()  # consume 'if'
        self._consume(TokenType.LPAREN, "'(' after 'if'")
        condition = self._parse_expression()
        self._consume(TokenType.RPAREN, "')' after condition")
        then_branch = self._parse_statement()
        else_branch = None
        if self._match(TokenType.ELSE):
            else_branch = self._parse_statement()
        return IfStatement(
            span=self._span_from(start),
            condition=condition,
            then_branch=then_branch,
            else_branch=else_branch,
        )

    def _parse_while_statement(self) -> WhileStatement:
        start = self._advance()  # consume 'while'
        self._consume(TokenType.LPAREN, "'(' after 'while'")
        condition = self._parse_expression()
        self._consume(TokenType.RPAREN, "')' after condition")
        body = self._parse_statement()
        return WhileStatement(span=self._span_from(start), condition=condition, body=body)

    def _parse_for_statement(self) -> ForStatement:
        """Parse ``for (init; cond; step) body``; every clause is optional."""
        start = self._advance()  # consume 'for'
        self._consume(TokenType.LPAREN, "'(' after 'for'")

        if self._match(TokenType.SEMICOLON):
            initializer = None
        elif self._check(TokenType.LET):
            initializer = self._parse_let_statement()
        else:
            initializer = self._parse_expression_statement()

        condition = None
        if not self._check(TokenType.SEMICOLON):
            condition = self._parse_expression()
        self._consume(TokenType.SEMICOLON, "';' after loop condition")

        increment = None
        if not self._check(TokenType.RPAREN):
            increment = self._parse_expression()
        self._consume(TokenType.RPAREN, "')' after for clauses")

        body = self._parse_statement()
        return ForStatement(
            span=self._span_from(start),
            initializer=initializer,
            condition=condition,
            increment=increment,
            body=body,
        )

    def _parse_return_statement(self) -> ReturnStatement:
        start = self._advance()  # consume 'return'
        value = None
        if not self._check(TokenType.SEMICOLON):
            value = self._parse_expression()
        self._consume(TokenType.SEMICOLON, "';' after return value")
        return ReturnStatement(span=self._span_from(start), value=value)

    def _parse_print_statement(self) -> PrintStatement:
        start = self._advance()  # consume 'print' / 'println'
        expr = self._parse_expression()
        self._consume(TokenType.SEMICOLON, "';' after value")
        return PrintStatement(
            span=self._span_from(start),
            expression=expr,
            newline=start.type == TokenType.PRINTLN,
        )

    def _parse_exit_statement(self) -> ExitStatement:
        """Parse ``bai;`` or ``bai message;``."""
        start = self._advance()  # consume 'bai'
        message = None
        if not self._check(TokenType.SEMICOLON):
            message = self._parse_expression()
        self._consume(TokenType.SEMICOLON, "';' after 'bai'")
        return ExitStatement(span=self._span_from(start), message=message)

    def _parse_block(self) -> Block:
        """Parse ``{ declaration* }``."""
        start = self._consume(TokenType.LBRACE, "'{'")
        statements = []
        while not self._check(TokenType.RBRACE) and not self._is_at_end():
            statements.append(self._parse_declaration())
        self._consume(TokenType.RBRACE, "'}' after block")
        return Block(span=self._span_from(start), statements=statements)

    # =========================================================================
    # Program Parsing
    # =========================================================================

    def parse_program(self) -> Program:
        """Parse the whole token stream into a Program."""
        start = self._current()
        statements = []
        try:
            while not self._is_at_end():
                statements.append(self._parse_declaration())
        except RecursionError:
            # Nesting deeper than the Python stack allows
            span = self._current().span
            raise error_nesting_too_deep(span, self._source_line(span)) from None
        end = self._current()
        return Program(
            span=SourceSpan(start.span.start, end.span.end),
            statements=statements,
            filename=self.filename,
        )


def parse(tokens: Iterable[Token], filename: Optional[str] = None,
          source: Optional[str] = None) -> Program:
    """
    Convenience function to parse tokens into a program.

    Args:
        tokens: Tokens from the lexer, ending with EOF
        filename: Optional filename for error messages
        source: Optional original source code for diagnostics

    Returns:
        Parsed Program AST

    Raises:
        ParserError: If parsing fails
    """
    parser = Parser(tokens, filename, source)
    return parser.parse_program()
