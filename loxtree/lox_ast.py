"""
Expression and statement nodes for the Lox tree-walking core.

Nodes are plain records produced by the transformer (or built directly by a
host). Equality is identity: the resolver keys its (distance, index)
addresses on the node object itself, so two structurally equal `Variable`
nodes at different places in a program must stay distinct.
"""
from abc import ABC
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from loxtree.lox_tokens import Token


class Expr(ABC):
    """Abstract base class for expression nodes."""
    pass


class Stmt(ABC):
    """Abstract base class for statement nodes."""
    pass


# =================================================================
# Expressions
# =================================================================

@dataclass(eq=False)
class Assign(Expr):
    name: Token
    value: Expr


@dataclass(eq=False)
class Binary(Expr):
    left: Expr
    operator: Token
    right: Expr


@dataclass(eq=False)
class Call(Expr):
    callee: Expr
    paren: Token
    arguments: List[Expr]


@dataclass(eq=False)
class Get(Expr):
    object: Expr
    name: Token


@dataclass(eq=False)
class Grouping(Expr):
    expression: Expr


@dataclass(eq=False)
class Lambda(Expr):
    keyword: Token
    params: List[Token]
    body: List[Stmt]


@dataclass(eq=False)
class Literal(Expr):
    value: Any


@dataclass(eq=False)
class Logical(Expr):
    left: Expr
    operator: Token
    right: Expr


@dataclass(eq=False)
class Set(Expr):
    object: Expr
    name: Token
    value: Expr


@dataclass(eq=False)
class Super(Expr):
    keyword: Token
    method: Token


@dataclass(eq=False)
class Ternary(Expr):
    condition: Expr
    true_branch: Expr
    false_branch: Expr


@dataclass(eq=False)
class This(Expr):
    keyword: Token


@dataclass(eq=False)
class Unary(Expr):
    operator: Token
    right: Expr


@dataclass(eq=False)
class Variable(Expr):
    name: Token


# =================================================================
# Statements
# =================================================================

@dataclass(eq=False)
class Block(Stmt):
    statements: List[Stmt]


@dataclass(eq=False)
class Function(Stmt):
    name: Token
    params: List[Token]
    body: List[Stmt]


@dataclass(eq=False)
class Class(Stmt):
    """A class declaration.

    `methods` maps each method declaration to its getter flag and keeps
    declaration order. Static methods live on the metaclass only.
    """
    name: Token
    superclass: Optional[Variable] = None
    traits: List[Variable] = field(default_factory=list)
    methods: Dict[Function, bool] = field(default_factory=dict)
    static_methods: List[Function] = field(default_factory=list)


@dataclass(eq=False)
class Expression(Stmt):
    expression: Expr


@dataclass(eq=False)
class Flow(Stmt):
    """A loop-exit signal; `type` is the BREAK or CONTINUE keyword token."""
    type: Token


@dataclass(eq=False)
class If(Stmt):
    condition: Expr
    then_branch: Stmt
    else_branch: Optional[Stmt] = None


@dataclass(eq=False)
class Print(Stmt):
    expression: Expr


@dataclass(eq=False)
class Return(Stmt):
    keyword: Token
    value: Optional[Expr] = None


@dataclass(eq=False)
class Trait(Stmt):
    """A trait: required method signatures (name -> arity) plus default bodies."""
    name: Token
    methods: Dict[str, int] = field(default_factory=dict)
    default_impls: List[Function] = field(default_factory=list)


@dataclass(eq=False)
class Var(Stmt):
    name: Token
    initializer: Optional[Expr] = None


@dataclass(eq=False)
class While(Stmt):
    condition: Expr
    body: Stmt
    increment: Optional[Stmt] = None
