"""
Token types and the immutable Token record handed over by the external scanner.
"""
from enum import Enum, auto
from dataclasses import dataclass
from typing import Any


class TokenType(Enum):
    # Single-character tokens.
    LEFT_PAREN = auto()
    RIGHT_PAREN = auto()
    LEFT_BRACE = auto()
    RIGHT_BRACE = auto()
    COMMA = auto()
    DOT = auto()
    MINUS = auto()
    PLUS = auto()
    SEMICOLON = auto()
    SLASH = auto()
    STAR = auto()
    MOD = auto()
    QUESTION = auto()
    COLON = auto()

    # One or two character tokens.
    BANG = auto()
    BANG_EQUAL = auto()
    EQUAL = auto()
    EQUAL_EQUAL = auto()
    GREATER = auto()
    GREATER_EQUAL = auto()
    LESS = auto()
    LESS_EQUAL = auto()

    # Literals.
    IDENTIFIER = auto()
    STRING = auto()
    NUMBER = auto()

    # Keywords.
    AND = auto()
    BREAK = auto()
    CLASS = auto()
    CONTINUE = auto()
    ELSE = auto()
    FALSE = auto()
    FOR = auto()
    FUN = auto()
    IF = auto()
    NIL = auto()
    OR = auto()
    PRINT = auto()
    RETURN = auto()
    STATIC = auto()
    SUPER = auto()
    THIS = auto()
    TRAIT = auto()
    TRUE = auto()
    VAR = auto()
    WHILE = auto()
    WITH = auto()

    EOF = auto()


# Operator lexemes accepted in tree documents.
OPERATORS = {
    "+": TokenType.PLUS,
    "-": TokenType.MINUS,
    "*": TokenType.STAR,
    "/": TokenType.SLASH,
    "%": TokenType.MOD,
    ",": TokenType.COMMA,
    "!": TokenType.BANG,
    "!=": TokenType.BANG_EQUAL,
    "==": TokenType.EQUAL_EQUAL,
    ">": TokenType.GREATER,
    ">=": TokenType.GREATER_EQUAL,
    "<": TokenType.LESS,
    "<=": TokenType.LESS_EQUAL,
    "and": TokenType.AND,
    "or": TokenType.OR,
}

FLOW_KEYWORDS = {
    "break": TokenType.BREAK,
    "continue": TokenType.CONTINUE,
}


@dataclass(frozen=True)
class Token:
    type: TokenType
    lexeme: str
    literal: Any = None
    line: int = 0

    def __str__(self) -> str:
        return f"{self.type.name} {self.lexeme} {self.literal}"


def identifier(name: str, line: int = 0) -> Token:
    """Builds an IDENTIFIER token; also used for the `this`/`super` keywords."""
    match name:
        case "this":
            return Token(TokenType.THIS, name, None, line)
        case "super":
            return Token(TokenType.SUPER, name, None, line)
    return Token(TokenType.IDENTIFIER, name, None, line)
