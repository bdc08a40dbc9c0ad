"""
Transforms tree documents produced by an external parser into Lox AST nodes,
and back.

A tree document is built from mappings with a `tag` naming the node kind, an
optional `line`, and named fields. Lines are inherited from the enclosing
node when a node does not carry its own.
"""
from typing import Any, Dict, List, Optional

from loxtree.lox_ast import (
    Expr, Stmt,
    Assign, Binary, Call, Get, Grouping, Lambda, Literal, Logical, Set,
    Super, Ternary, This, Unary, Variable,
    Block, Class, Expression, Flow, Function, If, Print, Return, Trait, Var, While,
)
from loxtree.lox_tokens import FLOW_KEYWORDS, OPERATORS, Token, TokenType, identifier


class TreeFormatError(ValueError):
    """A tree document does not describe a valid node."""
    def __init__(self, message: str, node: Any = None, line: Optional[int] = None):
        super().__init__(message)
        self.node = node
        self._line = line

    @property
    def line(self) -> Optional[int]:
        if self._line is not None:
            return self._line
        if isinstance(self.node, dict):
            return self.node.get('line')
        return None


class LoxTransformer:
    def transform(self, document: Any) -> List[Stmt]:
        """Transforms a whole program document into a statement list."""
        if isinstance(document, dict) and document.get('tag') == 'program':
            return self._statements(document.get('statements') or [], document.get('line', 1))
        if isinstance(document, list):
            return self._statements(document, 1)
        raise TreeFormatError("A program must be a list of statements or a 'program' node.", document)

    # --- Helpers ---

    def _line(self, node: Dict[str, Any], line: int) -> int:
        value = node.get('line', line)
        if not isinstance(value, int):
            raise TreeFormatError(f"Invalid line number: {value!r}", node)
        return value

    def _field(self, node: Dict[str, Any], key: str) -> Any:
        if key not in node:
            raise TreeFormatError(f"'{node.get('tag')}' node is missing '{key}'.", node)
        return node[key]

    def _name(self, node: Dict[str, Any], key: str, line: int) -> Token:
        name = self._field(node, key)
        if not isinstance(name, str) or not name:
            raise TreeFormatError(f"'{key}' must be a non-empty string.", node)
        return identifier(name, line)

    def _operator(self, node: Dict[str, Any], line: int) -> Token:
        lexeme = self._field(node, 'op')
        token_type = OPERATORS.get(lexeme)
        if token_type is None:
            raise TreeFormatError(f"Unknown operator: {lexeme!r}", node)
        return Token(token_type, lexeme, None, line)

    def _params(self, node: Dict[str, Any], line: int) -> List[Token]:
        params = node.get('params') or []
        if not isinstance(params, list) or not all(isinstance(p, str) for p in params):
            raise TreeFormatError("'params' must be a list of names.", node)
        return [identifier(p, line) for p in params]

    def _statements(self, nodes: Any, line: int) -> List[Stmt]:
        if not isinstance(nodes, list):
            raise TreeFormatError("Expected a list of statements.", nodes)
        return [self.statement(n, line) for n in nodes]

    def _optional_stmt(self, node: Dict[str, Any], key: str, line: int) -> Optional[Stmt]:
        value = node.get(key)
        return None if value is None else self.statement(value, line)

    def _optional_expr(self, node: Dict[str, Any], key: str, line: int) -> Optional[Expr]:
        value = node.get(key)
        return None if value is None else self.expression(value, line)

    def _literal(self, node: Dict[str, Any]) -> Any:
        value = node.get('value')
        match value:
            case bool() | str() | None:
                return value
            case int() | float():
                return float(value)
        raise TreeFormatError(f"Unsupported literal: {value!r}", node)

    # --- Statements ---

    def statement(self, node: Any, line: int = 1) -> Stmt:
        if not isinstance(node, dict) or 'tag' not in node:
            raise TreeFormatError("Expected a statement node.", node)
        line = self._line(node, line)
        tag = node['tag']

        match tag:
            case 'block':
                return Block(self._statements(node.get('statements') or [], line))
            case 'class':
                return self._class(node, line)
            case 'expression':
                return Expression(self.expression(self._field(node, 'expr'), line))
            case 'flow':
                kind = node.get('kind', 'break')
                token_type = FLOW_KEYWORDS.get(kind)
                if token_type is None:
                    raise TreeFormatError(f"Unknown flow kind: {kind!r}", node)
                return Flow(Token(token_type, kind, None, line))
            case 'function':
                return self._function(node, line)
            case 'if':
                return If(
                    self.expression(self._field(node, 'condition'), line),
                    self.statement(self._field(node, 'then'), line),
                    self._optional_stmt(node, 'else', line),
                )
            case 'print':
                return Print(self.expression(self._field(node, 'expr'), line))
            case 'return':
                keyword = Token(TokenType.RETURN, 'return', None, line)
                return Return(keyword, self._optional_expr(node, 'value', line))
            case 'trait':
                return self._trait(node, line)
            case 'var':
                return Var(self._name(node, 'name', line), self._optional_expr(node, 'initializer', line))
            case 'while':
                return While(
                    self.expression(self._field(node, 'condition'), line),
                    self.statement(self._field(node, 'body'), line),
                    self._optional_stmt(node, 'increment', line),
                )
            case _:
                raise TreeFormatError(f"No statement for tag '{tag}'", node, line)

    def _function(self, node: Any, line: int) -> Function:
        if not isinstance(node, dict) or node.get('tag') != 'function':
            raise TreeFormatError("Expected a 'function' node.", node)
        line = self._line(node, line)
        return Function(
            self._name(node, 'name', line),
            self._params(node, line),
            self._statements(node.get('body') or [], line),
        )

    def _class(self, node: Dict[str, Any], line: int) -> Class:
        superclass = None
        if node.get('superclass') is not None:
            superclass = Variable(self._name(node, 'superclass', line))

        traits = []
        for trait_name in node.get('traits') or []:
            if not isinstance(trait_name, str):
                raise TreeFormatError("'traits' must be a list of names.", node)
            traits.append(Variable(identifier(trait_name, line)))

        methods: Dict[Function, bool] = {}
        for method_node in node.get('methods') or []:
            method = self._function(method_node, line)
            methods[method] = bool(method_node.get('getter', False))

        static_methods = [self._function(m, line) for m in node.get('static_methods') or []]

        return Class(self._name(node, 'name', line), superclass, traits, methods, static_methods)

    def _trait(self, node: Dict[str, Any], line: int) -> Trait:
        signatures = node.get('methods') or {}
        if not isinstance(signatures, dict) or not all(
            isinstance(k, str) and isinstance(v, int) and not isinstance(v, bool)
            for k, v in signatures.items()
        ):
            raise TreeFormatError("Trait 'methods' must map names to arities.", node)
        defaults = [self._function(m, line) for m in node.get('defaults') or []]
        return Trait(self._name(node, 'name', line), dict(signatures), defaults)

    # --- Expressions ---

    def expression(self, node: Any, line: int = 1) -> Expr:
        if not isinstance(node, dict) or 'tag' not in node:
            raise TreeFormatError("Expected an expression node.", node)
        line = self._line(node, line)
        tag = node['tag']

        match tag:
            case 'assign':
                return Assign(self._name(node, 'name', line), self.expression(self._field(node, 'value'), line))
            case 'binary':
                return Binary(
                    self.expression(self._field(node, 'left'), line),
                    self._operator(node, line),
                    self.expression(self._field(node, 'right'), line),
                )
            case 'call':
                arguments = node.get('args') or []
                if not isinstance(arguments, list):
                    raise TreeFormatError("'args' must be a list.", node)
                return Call(
                    self.expression(self._field(node, 'callee'), line),
                    Token(TokenType.RIGHT_PAREN, ')', None, line),
                    [self.expression(a, line) for a in arguments],
                )
            case 'get':
                return Get(self.expression(self._field(node, 'object'), line), self._name(node, 'name', line))
            case 'grouping':
                return Grouping(self.expression(self._field(node, 'expr'), line))
            case 'lambda':
                return Lambda(
                    Token(TokenType.FUN, 'fun', None, line),
                    self._params(node, line),
                    self._statements(node.get('body') or [], line),
                )
            case 'literal':
                return Literal(self._literal(node))
            case 'logical':
                operator = self._operator(node, line)
                if operator.type not in (TokenType.AND, TokenType.OR):
                    raise TreeFormatError(f"Not a logical operator: {operator.lexeme!r}", node)
                return Logical(
                    self.expression(self._field(node, 'left'), line),
                    operator,
                    self.expression(self._field(node, 'right'), line),
                )
            case 'set':
                return Set(
                    self.expression(self._field(node, 'object'), line),
                    self._name(node, 'name', line),
                    self.expression(self._field(node, 'value'), line),
                )
            case 'super':
                return Super(Token(TokenType.SUPER, 'super', None, line), self._name(node, 'method', line))
            case 'ternary':
                return Ternary(
                    self.expression(self._field(node, 'condition'), line),
                    self.expression(self._field(node, 'then'), line),
                    self.expression(self._field(node, 'else'), line),
                )
            case 'this':
                return This(Token(TokenType.THIS, 'this', None, line))
            case 'unary':
                operator = self._operator(node, line)
                if operator.type not in (TokenType.BANG, TokenType.MINUS):
                    raise TreeFormatError(f"Not a unary operator: {operator.lexeme!r}", node)
                return Unary(operator, self.expression(self._field(node, 'right'), line))
            case 'variable':
                return Variable(self._name(node, 'name', line))
            case _:
                raise TreeFormatError(f"No expression for tag '{tag}'", node, line)

    # --- Nodes back to documents ---

    def to_tree(self, node: Any) -> Any:
        """Converts nodes (or a list of statements) back into a tree document."""
        if isinstance(node, list):
            return [self.to_tree(n) for n in node]

        match node:
            case Assign():
                return self._tagged('assign', node.name, name=node.name.lexeme, value=self.to_tree(node.value))
            case Binary() | Logical():
                tag = 'binary' if isinstance(node, Binary) else 'logical'
                return self._tagged(tag, node.operator, op=node.operator.lexeme,
                                    left=self.to_tree(node.left), right=self.to_tree(node.right))
            case Call():
                return self._tagged('call', node.paren, callee=self.to_tree(node.callee),
                                    args=self.to_tree(node.arguments))
            case Get():
                return self._tagged('get', node.name, object=self.to_tree(node.object), name=node.name.lexeme)
            case Grouping():
                return {'tag': 'grouping', 'expr': self.to_tree(node.expression)}
            case Lambda():
                return self._tagged('lambda', node.keyword, params=[p.lexeme for p in node.params],
                                    body=self.to_tree(node.body))
            case Literal():
                return {'tag': 'literal', 'value': node.value}
            case Set():
                return self._tagged('set', node.name, object=self.to_tree(node.object), name=node.name.lexeme,
                                    value=self.to_tree(node.value))
            case Super():
                return self._tagged('super', node.keyword, method=node.method.lexeme)
            case Ternary():
                return {'tag': 'ternary', 'condition': self.to_tree(node.condition),
                        'then': self.to_tree(node.true_branch), 'else': self.to_tree(node.false_branch)}
            case This():
                return self._tagged('this', node.keyword)
            case Unary():
                return self._tagged('unary', node.operator, op=node.operator.lexeme, right=self.to_tree(node.right))
            case Variable():
                return self._tagged('variable', node.name, name=node.name.lexeme)
            case Block():
                return {'tag': 'block', 'statements': self.to_tree(node.statements)}
            case Class():
                return self._class_tree(node)
            case Expression():
                return {'tag': 'expression', 'expr': self.to_tree(node.expression)}
            case Flow():
                return self._tagged('flow', node.type, kind=node.type.lexeme)
            case Function():
                return self._function_tree(node)
            case If():
                out = {'tag': 'if', 'condition': self.to_tree(node.condition), 'then': self.to_tree(node.then_branch)}
                if node.else_branch is not None:
                    out['else'] = self.to_tree(node.else_branch)
                return out
            case Print():
                return {'tag': 'print', 'expr': self.to_tree(node.expression)}
            case Return():
                out = self._tagged('return', node.keyword)
                if node.value is not None:
                    out['value'] = self.to_tree(node.value)
                return out
            case Trait():
                return self._tagged('trait', node.name, name=node.name.lexeme, methods=dict(node.methods),
                                    defaults=[self._function_tree(m) for m in node.default_impls])
            case Var():
                out = self._tagged('var', node.name, name=node.name.lexeme)
                if node.initializer is not None:
                    out['initializer'] = self.to_tree(node.initializer)
                return out
            case While():
                out = {'tag': 'while', 'condition': self.to_tree(node.condition), 'body': self.to_tree(node.body)}
                if node.increment is not None:
                    out['increment'] = self.to_tree(node.increment)
                return out

        raise TreeFormatError(f"Not a Lox node: {node!r}", None)

    def _tagged(self, tag: str, token: Token, **fields) -> Dict[str, Any]:
        out: Dict[str, Any] = {'tag': tag}
        if token.line:
            out['line'] = token.line
        out.update(fields)
        return out

    def _function_tree(self, node: Function, getter: bool = False) -> Dict[str, Any]:
        out = self._tagged('function', node.name, name=node.name.lexeme, params=[p.lexeme for p in node.params],
                           body=self.to_tree(node.body))
        if getter:
            out['getter'] = True
        return out

    def _class_tree(self, node: Class) -> Dict[str, Any]:
        out = self._tagged('class', node.name, name=node.name.lexeme)
        if node.superclass is not None:
            out['superclass'] = node.superclass.name.lexeme
        if node.traits:
            out['traits'] = [t.name.lexeme for t in node.traits]
        out['methods'] = [self._function_tree(m, is_getter) for m, is_getter in node.methods.items()]
        if node.static_methods:
            out['static_methods'] = [self._function_tree(m) for m in node.static_methods]
        return out
