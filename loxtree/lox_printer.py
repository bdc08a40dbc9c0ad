"""
Textual representations of Lox values and a Lisp-style dump of AST nodes.
"""
import math
from typing import List

from loxtree.lox_ast import (
    Assign, Binary, Call, Get, Grouping, Lambda, Literal, Logical, Set,
    Super, Ternary, This, Unary, Variable,
    Block, Class, Expression, Flow, Function, If, Print, Return, Trait, Var, While,
)
from loxtree.lox_datatypes import (
    LoxClass, LoxFunction, Metaclass, NativeFunction,
)


class Printer:
    """Formats Lox values the way `print` shows them, and nodes for debugging."""

    def __init__(self, indent_width=2):
        self._indent_char = " " * indent_width
        self._handlers = self._create_handlers()
        self._node_handlers = self._create_node_handlers()

    # ===================================================================
    # Values
    # ===================================================================

    def stringify(self, obj) -> str:
        handler = self._handlers.get(type(obj))
        if handler is not None:
            return handler(obj)
        return repr(obj)

    def _create_handlers(self):
        return {
            type(None): lambda o: 'nil',
            bool: lambda o: 'true' if o else 'false',
            float: self._format_number,
            int: self._format_number,
            str: lambda o: o,
        }

    def _format_number(self, obj) -> str:
        value = float(obj)
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        text = repr(value)
        if text.endswith(".0"):
            text = text[:-2]
        return text

    def frame_name(self, callee) -> str:
        """Short callee name used in stack traces."""
        match callee:
            case LoxFunction():
                return callee.name or "lambda"
            case NativeFunction() | LoxClass() | Metaclass():
                return callee.name
        return self.stringify(callee)

    # ===================================================================
    # Nodes
    # ===================================================================

    def pformat_node(self, node, level=0) -> str:
        if isinstance(node, list):
            return "\n".join(self.pformat_node(n, level) for n in node)
        handler = self._node_handlers.get(type(node))
        if handler is None:
            return repr(node)
        return self._indent_char * level + handler(node, level)

    def _expr(self, node) -> str:
        return self.pformat_node(node, 0)

    def _body(self, statements, level) -> str:
        if not statements:
            return ""
        return "\n" + "\n".join(self.pformat_node(s, level + 1) for s in statements)

    def _parenthesize(self, name: str, *exprs) -> str:
        parts = [name] + [self._expr(e) for e in exprs]
        return "(" + " ".join(parts) + ")"

    def _params(self, params) -> str:
        return "(" + " ".join(p.lexeme for p in params) + ")"

    def _create_node_handlers(self):
        return {
            Assign: lambda n, l: self._parenthesize(f"Assign {n.name.lexeme}", n.value),
            Binary: lambda n, l: self._parenthesize(n.operator.lexeme, n.left, n.right),
            Call: lambda n, l: self._parenthesize("call", n.callee, *n.arguments),
            Get: lambda n, l: self._parenthesize(f"get {n.name.lexeme}", n.object),
            Grouping: lambda n, l: self._parenthesize("group", n.expression),
            Lambda: lambda n, l: f"(fun {self._params(n.params)}{self._body(n.body, l)})",
            Literal: self._pformat_literal,
            Logical: lambda n, l: self._parenthesize(n.operator.lexeme.capitalize(), n.left, n.right),
            Set: lambda n, l: self._parenthesize(f"set {n.name.lexeme}", n.object, n.value),
            Super: lambda n, l: f"(super {n.method.lexeme})",
            Ternary: lambda n, l: self._parenthesize("?:", n.condition, n.true_branch, n.false_branch),
            This: lambda n, l: "this",
            Unary: lambda n, l: self._parenthesize(n.operator.lexeme, n.right),
            Variable: lambda n, l: f"(Eval {n.name.lexeme})",
            Block: lambda n, l: f"(block{self._body(n.statements, l)})",
            Class: self._pformat_class,
            Expression: lambda n, l: self._parenthesize(";", n.expression),
            Flow: lambda n, l: f"({n.type.lexeme})",
            Function: self._pformat_function,
            If: self._pformat_if,
            Print: lambda n, l: self._parenthesize("print", n.expression),
            Return: lambda n, l: self._parenthesize("return", *([n.value] if n.value is not None else [])),
            Trait: self._pformat_trait,
            Var: lambda n, l: self._parenthesize(f"var {n.name.lexeme}", *([n.initializer] if n.initializer is not None else [])),
            While: self._pformat_while,
        }

    def _pformat_literal(self, node, level) -> str:
        if isinstance(node.value, str):
            return f'"{node.value}"'
        return self.stringify(node.value)

    def _pformat_function(self, node, level, prefix="fun") -> str:
        return f"({prefix} {node.name.lexeme} {self._params(node.params)}{self._body(node.body, level)})"

    def _pformat_class(self, node: Class, level) -> str:
        head = f"(class {node.name.lexeme}"
        if node.superclass is not None:
            head += f" < {node.superclass.name.lexeme}"
        if node.traits:
            head += " with " + " ".join(t.name.lexeme for t in node.traits)
        lines: List[str] = [head]
        inner = self._indent_char * (level + 1)
        for method, is_getter in node.methods.items():
            lines.append(inner + self._pformat_function(method, level + 1, "getter" if is_getter else "method"))
        for method in node.static_methods:
            lines.append(inner + self._pformat_function(method, level + 1, "static"))
        return "\n".join(lines) + ")"

    def _pformat_if(self, node: If, level) -> str:
        out = f"(if {self._expr(node.condition)}\n{self.pformat_node(node.then_branch, level + 1)}"
        if node.else_branch is not None:
            out += f"\n{self.pformat_node(node.else_branch, level + 1)}"
        return out + ")"

    def _pformat_trait(self, node: Trait, level) -> str:
        sigs = " ".join(f"{name}/{arity}" for name, arity in node.methods.items())
        lines = [f"(trait {node.name.lexeme} ({sigs})"]
        inner = self._indent_char * (level + 1)
        for method in node.default_impls:
            lines.append(inner + self._pformat_function(method, level + 1, "method"))
        return "\n".join(lines) + ")"

    def _pformat_while(self, node: While, level) -> str:
        out = f"(while {self._expr(node.condition)}\n{self.pformat_node(node.body, level + 1)}"
        if node.increment is not None:
            out += f"\n{self.pformat_node(node.increment, level + 1)}"
        return out + ")"
