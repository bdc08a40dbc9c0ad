"""
The Lox tree-walking evaluator.

Statements execute against the active Environment chain and the global
namespace. Execution of a statement yields a completion: None for normal
completion, or a ReturnCompletion/FlowCompletion that the nearest call frame
or loop consumes. Runtime faults raise LoxRuntimeError.
"""
import math
import os
import sys
import weakref
from typing import Any, Dict, List, Optional, TextIO, Tuple

from loxtree.lox_ast import (
    Expr, Stmt,
    Assign, Binary, Call, Get, Grouping, Lambda, Literal, Logical, Set,
    Super, Ternary, This, Unary, Variable,
    Block, Class, Expression, Flow, Function, If, Print, Return, Trait as TraitStmt, Var, While,
)
from loxtree.lox_datatypes import (
    Completion, FlowCompletion, ReturnCompletion, FLOW_OUTSIDE_LOOP,
    LoxCallable, LoxClass, LoxFunction, LoxObject, LoxRuntimeError, Trait,
)
from loxtree.lox_environment import Environment, ScopeMismatch
from loxtree.lox_printer import Printer
from loxtree.lox_tokens import Token, TokenType


class Evaluator:
    """The Lox execution engine."""

    def __init__(self):
        self.globals: Dict[str, Any] = {}
        # None while executing top-level code.
        self.environment: Optional[Environment] = None
        # Weakly keyed, so addresses of discarded programs go away with their nodes.
        self.locals: "weakref.WeakKeyDictionary[Expr, Tuple[int, int]]" = weakref.WeakKeyDictionary()
        self.side_effects: List[Dict[str, Any]] = []
        self.call_stack: List[Dict[str, Any]] = []
        self.current_node = None
        self.printer = Printer()
        # When set, output is also written here as it happens.
        self.echo: Optional[TextIO] = None

    def _dbg(self, *parts):
        if os.environ.get("LOXTREE_DEBUG"):
            print("[DBG]", *parts, file=sys.stderr)

    # ===================================================================
    # Entry points
    # ===================================================================

    def resolve(self, expr: Expr, depth: int, index: int):
        """Records the resolver's address for a local variable reference."""
        self.locals[expr] = (depth, index)

    def interpret(self, statements: List[Stmt]) -> Any:
        """Executes top-level statements.

        Returns the value of the last statement when it is an expression
        statement, otherwise None.
        """
        value = None
        try:
            for statement in statements:
                self.current_node = statement
                if isinstance(statement, Expression):
                    value = self.evaluate(statement.expression)
                    continue
                value = None
                completion = self.execute(statement)
                if isinstance(completion, FlowCompletion):
                    raise LoxRuntimeError(completion.keyword, FLOW_OUTSIDE_LOOP)
                if isinstance(completion, ReturnCompletion):
                    return completion.value
        except RecursionError:
            raise LoxRuntimeError(self._current_token(), "Stack overflow.") from None
        return value

    def emit(self, topic: str, message: str, newline: bool = True):
        effect: Dict[str, Any] = {'topics': [topic], 'message': message}
        if not newline:
            effect['newline'] = False
        self.side_effects.append(effect)
        if self.echo is not None and topic == 'stdout':
            self.echo.write(message + ("\n" if newline else ""))
            self.echo.flush()

    # ===================================================================
    # Statements
    # ===================================================================

    def execute(self, stmt: Stmt) -> Completion:
        match stmt:
            case Block():
                return self.execute_block(stmt.statements, Environment(self.environment))

            case Class():
                self._execute_class(stmt)

            case Expression():
                self.evaluate(stmt.expression)

            case Flow():
                return FlowCompletion(stmt.type)

            case Function():
                self._define(stmt.name.lexeme, LoxFunction(stmt, self.environment))

            case If():
                if self._is_truthy(self.evaluate(stmt.condition)):
                    return self.execute(stmt.then_branch)
                if stmt.else_branch is not None:
                    return self.execute(stmt.else_branch)

            case Print():
                value = self.evaluate(stmt.expression)
                self.emit('stdout', self.printer.stringify(value))

            case Return():
                value = None
                if stmt.value is not None:
                    value = self.evaluate(stmt.value)
                return ReturnCompletion(value)

            case TraitStmt():
                default_impls = {
                    method.name.lexeme: LoxFunction(method, self.environment)
                    for method in stmt.default_impls
                }
                self._define(stmt.name.lexeme, Trait(stmt.name.lexeme, default_impls))

            case Var():
                value = None
                if stmt.initializer is not None:
                    value = self.evaluate(stmt.initializer)
                self._define(stmt.name.lexeme, value)

            case While():
                return self._execute_while(stmt)

            case _:
                raise TypeError(f"Unknown statement node: {stmt!r}")
        return None

    def execute_block(self, statements: List[Stmt], environment: Environment) -> Completion:
        previous = self.environment
        try:
            self.environment = environment
            for statement in statements:
                completion = self.execute(statement)
                if completion is not None:
                    return completion
        finally:
            self.environment = previous
        return None

    def _execute_while(self, stmt: While) -> Completion:
        while self._is_truthy(self.evaluate(stmt.condition)):
            completion = self.execute(stmt.body)
            if isinstance(completion, ReturnCompletion):
                return completion
            if isinstance(completion, FlowCompletion) and completion.is_break:
                break
            # Any other flow tag is absorbed here and the loop carries on.
            if stmt.increment is not None:
                completion = self.execute(stmt.increment)
                if completion is not None:
                    return completion
        return None

    def _execute_class(self, stmt: Class):
        superclass = None
        if stmt.superclass is not None:
            superclass = self.evaluate(stmt.superclass)
            if not isinstance(superclass, LoxClass):
                raise LoxRuntimeError(stmt.superclass.name, "Superclass must be a class.")

        slot = self._define(stmt.name.lexeme, None)

        enclosing = self.environment
        if superclass is not None:
            self.environment = Environment(enclosing)
            self.environment.define("super", superclass)
        try:
            klass = self._build_class(stmt, superclass)
        finally:
            self.environment = enclosing

        if slot is not None:
            self.environment.assign(klass, 0, slot)
        else:
            self.globals[stmt.name.lexeme] = klass
        self._dbg("CLASS", stmt.name.lexeme, "methods", list(klass.methods),
                  "traits", [t.name for t in klass.traits])

    def _build_class(self, stmt: Class, superclass: Optional[LoxClass]) -> LoxClass:
        methods = {}
        for method, is_getter in stmt.methods.items():
            name = method.name.lexeme
            function = LoxFunction(method, self.environment, name == "init")
            methods[name] = (function, is_getter)

        traits = []
        for reference in stmt.traits:
            trait = self._look_up_variable(reference.name, reference)
            if not isinstance(trait, Trait):
                raise LoxRuntimeError(reference.name, "Can only mix in traits.")
            traits.append(trait)

        static_methods = {
            method.name.lexeme: LoxFunction(method, self.environment)
            for method in stmt.static_methods
        }

        return LoxClass(stmt.name.lexeme, superclass, traits, methods, static_methods)

    def _define(self, name: str, value: Any) -> Optional[int]:
        """Binds a declaration; returns the slot index, or None for globals."""
        if self.environment is not None:
            return self.environment.define(name, value)
        self.globals[name] = value
        return None

    # ===================================================================
    # Expressions
    # ===================================================================

    def evaluate(self, expr: Expr) -> Any:
        match expr:
            case Assign():
                value = self.evaluate(expr.value)
                address = self.locals.get(expr)
                if address is not None:
                    self._scope_for(address).assign(value, *address)
                elif expr.name.lexeme in self.globals:
                    self.globals[expr.name.lexeme] = value
                else:
                    raise LoxRuntimeError(expr.name, f"Undefined variable '{expr.name.lexeme}'.")
                return value

            case Binary():
                return self._evaluate_binary(expr)

            case Call():
                callee = self.evaluate(expr.callee)
                arguments = [self.evaluate(argument) for argument in expr.arguments]
                return self.call(callee, arguments, expr.paren)

            case Get():
                obj = self.evaluate(expr.object)
                if isinstance(obj, LoxObject):
                    return obj.get(expr.name, self)
                raise LoxRuntimeError(expr.name, "Only instances have properties.")

            case Grouping():
                return self.evaluate(expr.expression)

            case Lambda():
                return LoxFunction(expr, self.environment)

            case Literal():
                return expr.value

            case Logical():
                left = self.evaluate(expr.left)
                if expr.operator.type == TokenType.OR:
                    if self._is_truthy(left):
                        return left
                elif not self._is_truthy(left):
                    return left
                return self.evaluate(expr.right)

            case Set():
                obj = self.evaluate(expr.object)
                if not isinstance(obj, LoxObject):
                    raise LoxRuntimeError(expr.name, "Only instances have fields.")
                value = self.evaluate(expr.value)
                obj.set(expr.name, value)
                return value

            case Super():
                return self._evaluate_super(expr)

            case Ternary():
                if self._is_truthy(self.evaluate(expr.condition)):
                    return self.evaluate(expr.true_branch)
                return self.evaluate(expr.false_branch)

            case This():
                return self._look_up_variable(expr.keyword, expr)

            case Unary():
                right = self.evaluate(expr.right)
                if expr.operator.type == TokenType.BANG:
                    return not self._is_truthy(right)
                self._check_number_operand(expr.operator, right)
                return -right

            case Variable():
                return self._look_up_variable(expr.name, expr)

            case _:
                raise TypeError(f"Unknown expression node: {expr!r}")

    def _evaluate_binary(self, expr: Binary) -> Any:
        left = self.evaluate(expr.left)
        right = self.evaluate(expr.right)
        operator = expr.operator

        match operator.type:
            case TokenType.BANG_EQUAL:
                return not self._is_equal(left, right)
            case TokenType.EQUAL_EQUAL:
                return self._is_equal(left, right)
            case TokenType.GREATER:
                self._check_number_operands(operator, left, right)
                return left > right
            case TokenType.GREATER_EQUAL:
                self._check_number_operands(operator, left, right)
                return left >= right
            case TokenType.LESS:
                self._check_number_operands(operator, left, right)
                return left < right
            case TokenType.LESS_EQUAL:
                self._check_number_operands(operator, left, right)
                return left <= right
            case TokenType.MINUS:
                self._check_number_operands(operator, left, right)
                return left - right
            case TokenType.PLUS:
                if self._is_number(left) and self._is_number(right):
                    return left + right
                if isinstance(left, str) and isinstance(right, str):
                    return left + right
                if isinstance(left, str):
                    return left + self.printer.stringify(right)
                if isinstance(right, str):
                    return self.printer.stringify(left) + right
                return self.printer.stringify(left) + self.printer.stringify(right)
            case TokenType.SLASH:
                self._check_number_operands(operator, left, right)
                # The left operand is checked deliberately; a zero divisor is
                # reported the same way instead of leaking ZeroDivisionError.
                if left == 0 or right == 0:
                    raise LoxRuntimeError(operator, "Division by zero.")
                return left / right
            case TokenType.STAR:
                self._check_number_operands(operator, left, right)
                return left * right
            case TokenType.MOD:
                self._check_number_operands(operator, left, right)
                if right == 0:
                    return math.nan
                return math.fmod(left, right)
            case TokenType.COMMA:
                return right

        raise LoxRuntimeError(operator, f"Unknown binary operator '{operator.lexeme}'.")

    def _evaluate_super(self, expr: Super) -> Any:
        distance, _ = self.locals[expr]
        environment = self._scope_for((distance, 0))
        superclass = environment.get(distance, 0)
        # `this` always sits in the scope just inside the `super` scope.
        instance = environment.get(distance - 1, 0)

        entry = superclass.find_method(expr.method.lexeme)
        if entry is None:
            raise LoxRuntimeError(expr.method, f"Undefined property '{expr.method.lexeme}'.")
        method, is_getter = entry
        bound = method.bind(instance)
        if is_getter:
            return bound.call(self, [])
        return bound

    # ===================================================================
    # Calls
    # ===================================================================

    def call(self, callee: Any, arguments: List[Any], paren: Token) -> Any:
        if not isinstance(callee, LoxCallable):
            raise LoxRuntimeError(paren, "Can only call functions and classes.")

        if len(arguments) != callee.arity():
            raise LoxRuntimeError(
                paren, f"Expected {callee.arity()} arguments but got {len(arguments)}."
            )

        self._dbg("CALL", repr(callee), "argc", len(arguments), "line", paren.line)
        self._push_frame(callee, arguments, paren)
        try:
            return callee.call(self, arguments)
        except LoxRuntimeError as error:
            if error.token is None:
                error.token = paren
            if error.trace is None:
                error.trace = [frame['name'] for frame in self.call_stack]
            raise
        except RecursionError:
            raise LoxRuntimeError(paren, "Stack overflow.") from None
        finally:
            self._pop_frame()

    def _push_frame(self, callee, arguments, paren: Token):
        self.call_stack.append({
            'name': self.printer.frame_name(callee),
            'args': arguments,
            'line': paren.line,
        })

    def _pop_frame(self):
        if self.call_stack:
            self.call_stack.pop()

    # ===================================================================
    # Variables
    # ===================================================================

    def _scope_for(self, address: Tuple[int, int]) -> Environment:
        if self.environment is None:
            raise ScopeMismatch(*address)
        return self.environment

    def _look_up_variable(self, name: Token, expr: Expr) -> Any:
        address = self.locals.get(expr)
        if address is not None:
            return self._scope_for(address).get(*address)
        if name.lexeme in self.globals:
            return self.globals[name.lexeme]
        raise LoxRuntimeError(name, f"Undefined variable '{name.lexeme}'.")

    # ===================================================================
    # Helpers
    # ===================================================================

    def _current_token(self) -> Optional[Token]:
        for attr in ('keyword', 'name', 'type'):
            token = getattr(self.current_node, attr, None)
            if isinstance(token, Token):
                return token
        return None

    @staticmethod
    def _is_number(value: Any) -> bool:
        return isinstance(value, (int, float)) and not isinstance(value, bool)

    def _check_number_operand(self, operator: Token, operand: Any):
        if self._is_number(operand):
            return
        raise LoxRuntimeError(operator, "Operand must be a number.")

    def _check_number_operands(self, operator: Token, left: Any, right: Any):
        if self._is_number(left) and self._is_number(right):
            return
        raise LoxRuntimeError(operator, "Operands must be numbers.")

    @staticmethod
    def _is_truthy(value: Any) -> bool:
        if value is None:
            return False
        if isinstance(value, bool):
            return value
        return True

    @staticmethod
    def _is_equal(a: Any, b: Any) -> bool:
        if a is None and b is None:
            return True
        if a is None or b is None:
            return False
        if isinstance(a, bool) or isinstance(b, bool):
            return type(a) is type(b) and a == b
        return a == b
