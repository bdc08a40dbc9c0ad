"""
Static scope resolution.

The resolver walks a statement list once before execution. It gives every
local variable reference a (distance, index) address, which it hands to the
evaluator, and collects errors and warnings. Its scope stack mirrors exactly
the environments the evaluator creates at runtime; the global scope is never
on the stack, so unresolved references fall back to global lookup.
"""
from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, List, Literal, Optional, TYPE_CHECKING

from loxtree.lox_ast import (
    Expr, Stmt,
    Assign, Binary, Call, Get, Grouping, Lambda, Literal as LiteralExpr, Logical, Set,
    Super, Ternary, This, Unary, Variable,
    Block, Class, Expression, Flow, Function, If, Print, Return, Trait, Var, While,
)
from loxtree.lox_tokens import Token, TokenType

if TYPE_CHECKING:
    from loxtree.lox_interpreter import Evaluator


class FunctionType(Enum):
    NONE = auto()
    FUNCTION = auto()
    INITIALIZER = auto()
    METHOD = auto()


class ClassType(Enum):
    NONE = auto()
    CLASS = auto()
    STATIC_METHOD_BODY = auto()
    SUBCLASS = auto()
    TRAIT = auto()


@dataclass
class Diagnostic:
    """A resolve-time error or warning."""
    line: int
    where: str
    message: str
    severity: Literal['error', 'warning'] = 'error'

    def format(self) -> str:
        label = "Error" if self.severity == 'error' else "Warning"
        return f"[line {self.line}] {label}{self.where}: {self.message}"


@dataclass
class SlotRecord:
    defined: bool
    used: bool
    line: int
    index: int


class Resolver:
    def __init__(self, evaluator: 'Evaluator', traits: Optional[Dict[str, Dict[str, int]]] = None):
        self.evaluator = evaluator
        self.scopes: List[Dict[str, SlotRecord]] = []
        self.current_function = FunctionType.NONE
        self.current_class = ClassType.NONE
        # trait name -> (method name -> declared arity); may be shared between programs
        self.traits: Dict[str, Dict[str, int]] = traits if traits is not None else {}
        self.diagnostics: List[Diagnostic] = []

    @property
    def errors(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == 'error']

    @property
    def warnings(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == 'warning']

    @property
    def had_error(self) -> bool:
        return any(d.severity == 'error' for d in self.diagnostics)

    def resolve(self, statements: List[Stmt]) -> bool:
        """Resolves a program; returns False if any error was reported."""
        for statement in statements:
            self._resolve_stmt(statement)
        return not self.had_error

    # --- Diagnostics ---

    def _error(self, token: Token, message: str):
        where = " at end" if token.type == TokenType.EOF else f" at '{token.lexeme}'"
        self.diagnostics.append(Diagnostic(token.line, where, message, 'error'))

    def _warning(self, line: int, message: str):
        self.diagnostics.append(Diagnostic(line, "", message, 'warning'))

    # --- Scope bookkeeping ---

    def _begin_scope(self):
        self.scopes.append({})

    def _end_scope(self):
        for name, record in self.scopes.pop().items():
            if not record.used:
                self._warning(record.line, f"Unused variable '{name}'.")

    def _declare(self, name: Token):
        if not self.scopes:
            return
        scope = self.scopes[-1]
        if name.lexeme in scope:
            self._error(name, "Already a variable with this name in this scope.")
            return
        scope[name.lexeme] = SlotRecord(False, False, name.line, len(scope))

    def _define(self, name: Token):
        if not self.scopes:
            return
        self.scopes[-1][name.lexeme].defined = True

    def _push_implicit(self, name: str):
        """Opens a scope holding one pre-used slot, for `this` and `super`."""
        self._begin_scope()
        self.scopes[-1][name] = SlotRecord(True, True, 0, 0)

    def _resolve_local(self, expr: Expr, name: Token):
        for i in range(len(self.scopes) - 1, -1, -1):
            record = self.scopes[i].get(name.lexeme)
            if record is not None:
                distance = len(self.scopes) - 1 - i
                self.evaluator.resolve(expr, distance, record.index)
                record.used = True
                self.evaluator._dbg("RESOLVE", name.lexeme, "line", name.line, "->", distance, record.index)
                return
        # Not found: left to global lookup.

    def _resolve_function(self, function: Function | Lambda, kind: FunctionType):
        enclosing_function = self.current_function
        self.current_function = kind

        self._begin_scope()
        for param in function.params:
            self._declare(param)
            self._define(param)
        for statement in function.body:
            self._resolve_stmt(statement)
        self._end_scope()

        self.current_function = enclosing_function

    # --- Statements ---

    def _resolve_stmt(self, stmt: Stmt):
        match stmt:
            case Block():
                self._begin_scope()
                for statement in stmt.statements:
                    self._resolve_stmt(statement)
                self._end_scope()

            case Class():
                self._resolve_class(stmt)

            case Expression():
                self._resolve_expr(stmt.expression)

            case Flow():
                pass

            case Function():
                self._declare(stmt.name)
                self._define(stmt.name)
                self._resolve_function(stmt, FunctionType.FUNCTION)

            case If():
                self._resolve_expr(stmt.condition)
                self._resolve_stmt(stmt.then_branch)
                if stmt.else_branch is not None:
                    self._resolve_stmt(stmt.else_branch)

            case Print():
                self._resolve_expr(stmt.expression)

            case Return():
                if self.current_function == FunctionType.NONE:
                    self._error(stmt.keyword, "Can't return from top-level code.")
                if stmt.value is not None:
                    if self.current_function == FunctionType.INITIALIZER:
                        self._error(stmt.keyword, "Can't return a value from an initializer.")
                    self._resolve_expr(stmt.value)

            case Trait():
                self._resolve_trait(stmt)

            case Var():
                self._declare(stmt.name)
                if stmt.initializer is not None:
                    self._resolve_expr(stmt.initializer)
                self._define(stmt.name)

            case While():
                self._resolve_expr(stmt.condition)
                self._resolve_stmt(stmt.body)
                if stmt.increment is not None:
                    self._resolve_stmt(stmt.increment)

            case _:
                raise TypeError(f"Unknown statement node: {stmt!r}")

    def _resolve_class(self, stmt: Class):
        enclosing_class = self.current_class
        self.current_class = ClassType.CLASS

        self._declare(stmt.name)
        self._define(stmt.name)

        if stmt.superclass is not None:
            if stmt.superclass.name.lexeme == stmt.name.lexeme:
                self._error(stmt.superclass.name, "A class can't inherit from itself.")
            self.current_class = ClassType.SUBCLASS
            self._resolve_expr(stmt.superclass)
            self._push_implicit("super")

        # Traits are looked up at runtime from inside the `super` scope.
        pending: Dict[str, int] = {}
        for trait in stmt.traits:
            signatures = self.traits.get(trait.name.lexeme)
            if signatures is None:
                self._error(stmt.name, f"Undefined trait: '{trait.name.lexeme}'.")
            else:
                pending.update(signatures)
            self._resolve_expr(trait)

        self._push_implicit("this")
        for method, _is_getter in stmt.methods.items():
            name = method.name.lexeme
            if name == "init":
                kind = FunctionType.INITIALIZER
            else:
                kind = FunctionType.METHOD
                if name in pending:
                    expected = pending.pop(name)
                    actual = len(method.params)
                    if expected != actual:
                        self._error(
                            method.name,
                            f"Trait method '{name}' isn't implemented with the declared arity."
                            f" (Expected: {expected}; Actual: {actual})",
                        )
            self._resolve_function(method, kind)

        if pending:
            missing = ", ".join(f"'{name}'" for name in pending)
            self._error(stmt.name, f"Trait methods {missing} not all properly implemented.")
        self._end_scope()

        self._resolve_static_methods(stmt)

        if stmt.superclass is not None:
            self._end_scope()

        self.current_class = enclosing_class

    def _resolve_static_methods(self, stmt: Class):
        enclosing_class = self.current_class
        self.current_class = ClassType.STATIC_METHOD_BODY

        # Static methods are bound to the static namespace when accessed, which
        # adds one scope at runtime. `this` stays illegal inside them.
        self._push_implicit("this")
        for method in stmt.static_methods:
            self._resolve_function(method, FunctionType.METHOD)
        self._end_scope()

        self.current_class = enclosing_class

    def _resolve_trait(self, stmt: Trait):
        enclosing_class = self.current_class
        self.current_class = ClassType.TRAIT

        self._declare(stmt.name)
        self._define(stmt.name)

        self._push_implicit("this")
        for method in stmt.default_impls:
            self._resolve_function(method, FunctionType.METHOD)
        self._end_scope()

        self.traits[stmt.name.lexeme] = dict(stmt.methods)

        self.current_class = enclosing_class

    # --- Expressions ---

    def _resolve_expr(self, expr: Expr):
        match expr:
            case Assign():
                self._resolve_expr(expr.value)
                self._resolve_local(expr, expr.name)

            case Binary() | Logical():
                self._resolve_expr(expr.left)
                self._resolve_expr(expr.right)

            case Call():
                self._resolve_expr(expr.callee)
                for argument in expr.arguments:
                    self._resolve_expr(argument)

            case Get():
                self._resolve_expr(expr.object)

            case Grouping():
                self._resolve_expr(expr.expression)

            case Lambda():
                self._resolve_function(expr, FunctionType.FUNCTION)

            case LiteralExpr():
                pass

            case Set():
                self._resolve_expr(expr.value)
                self._resolve_expr(expr.object)

            case Super():
                if self.current_class == ClassType.NONE:
                    self._error(expr.keyword, "Can't use 'super' outside of a class.")
                elif self.current_class != ClassType.SUBCLASS:
                    self._error(expr.keyword, "Can't use 'super' in a class with no superclass.")
                self._resolve_local(expr, expr.keyword)

            case Ternary():
                self._resolve_expr(expr.condition)
                self._resolve_expr(expr.true_branch)
                self._resolve_expr(expr.false_branch)

            case This():
                if self.current_class == ClassType.NONE:
                    self._error(expr.keyword, "Can't use 'this' outside of a class.")
                    return
                if self.current_class == ClassType.STATIC_METHOD_BODY:
                    self._error(expr.keyword, "Can't use 'this' within a static method.")
                    return
                self._resolve_local(expr, expr.keyword)

            case Unary():
                self._resolve_expr(expr.right)

            case Variable():
                if self.scopes:
                    record = self.scopes[-1].get(expr.name.lexeme)
                    if record is not None and not record.defined:
                        self._error(expr.name, "Can't read local variable in its own initializer.")
                self._resolve_local(expr, expr.name)

            case _:
                raise TypeError(f"Unknown expression node: {expr!r}")
