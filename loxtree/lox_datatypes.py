"""
Defines the runtime data types for the Lox object model.

This module provides the callable values (closures, natives, classes and
metaclasses), instances, traits, the runtime error type, and the completion
records statements hand back to their enclosing call frame or loop.
"""
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple, Union, TYPE_CHECKING

from loxtree.lox_ast import Function, Lambda
from loxtree.lox_environment import Environment
from loxtree.lox_tokens import Token, TokenType

if TYPE_CHECKING:
    from loxtree.lox_interpreter import Evaluator


class LoxRuntimeError(Exception):
    """A user-facing runtime error, carrying the token used for line reporting."""
    def __init__(self, token: Optional[Token], message: str):
        super().__init__(message)
        self.token = token
        self.message = message
        # Names of the call frames active when the error was raised, outermost first.
        self.trace: Optional[List[str]] = None

    @property
    def line(self) -> Optional[int]:
        return self.token.line if self.token is not None else None


# =================================================================
# Completions
# =================================================================

class ReturnCompletion:
    """A `return` unwinding towards the nearest call frame."""
    __slots__ = ("value",)

    def __init__(self, value: Any):
        self.value = value

    def __repr__(self) -> str:
        return f"ReturnCompletion({self.value!r})"


class FlowCompletion:
    """A loop-exit signal unwinding towards the nearest loop."""
    __slots__ = ("keyword",)

    def __init__(self, keyword: Token):
        self.keyword = keyword

    @property
    def is_break(self) -> bool:
        return self.keyword.type == TokenType.BREAK

    def __repr__(self) -> str:
        return f"FlowCompletion({self.keyword.lexeme})"


# None stands for normal completion.
Completion = Optional[Union[ReturnCompletion, FlowCompletion]]

FLOW_OUTSIDE_LOOP = "Flow statement outside of loop."


# =================================================================
# Abstract Base Classes
# =================================================================

class LoxCallable(ABC):
    """Anything the language can call: closures, natives, classes, metaclasses."""

    @abstractmethod
    def arity(self) -> int:
        raise NotImplementedError

    @abstractmethod
    def call(self, evaluator: 'Evaluator', arguments: List[Any]) -> Any:
        raise NotImplementedError


class LoxObject(ABC):
    """A value with a field store and class-driven property lookup."""

    @abstractmethod
    def get(self, name: Token, evaluator: 'Evaluator') -> Any:
        raise NotImplementedError

    @abstractmethod
    def set(self, name: Token, value: Any):
        raise NotImplementedError


# (closure, is_getter)
MethodEntry = Tuple['LoxFunction', bool]


# =================================================================
# Callables
# =================================================================

class LoxFunction(LoxCallable):
    """A closure over a function declaration or a lambda.

    The closure is the environment active where the function was created,
    captured by reference.
    """
    def __init__(self, declaration: Union[Function, Lambda], closure: Optional[Environment],
                 is_initializer: bool = False):
        self.declaration = declaration
        self.closure = closure
        self.is_initializer = is_initializer

    @property
    def name(self) -> Optional[str]:
        if isinstance(self.declaration, Function):
            return self.declaration.name.lexeme
        return None

    def bind(self, instance: Any) -> 'LoxFunction':
        """Layers a scope defining `this` over the captured closure."""
        environment = Environment(self.closure)
        environment.define("this", instance)
        return LoxFunction(self.declaration, environment, self.is_initializer)

    def arity(self) -> int:
        return len(self.declaration.params)

    def call(self, evaluator: 'Evaluator', arguments: List[Any]) -> Any:
        environment = Environment(self.closure)
        for param, argument in zip(self.declaration.params, arguments):
            environment.define(param.lexeme, argument)

        completion = evaluator.execute_block(self.declaration.body, environment)

        if isinstance(completion, FlowCompletion):
            raise LoxRuntimeError(completion.keyword, FLOW_OUTSIDE_LOOP)
        if self.is_initializer:
            return self.closure.get(0, 0)
        if isinstance(completion, ReturnCompletion):
            return completion.value
        return None

    def __repr__(self) -> str:
        if self.name is None:
            return "<fn lambda>"
        return f"<fn {self.name}>"


class NativeFunction(LoxCallable):
    """A host-provided builtin exposed through the callable contract."""
    def __init__(self, name: str, arity: int, function: Callable[..., Any]):
        self.name = name
        self._arity = arity
        self.function = function

    def arity(self) -> int:
        return self._arity

    def call(self, evaluator: 'Evaluator', arguments: List[Any]) -> Any:
        return self.function(*arguments)

    def __repr__(self) -> str:
        return "<native fn>"


# =================================================================
# Classes, Metaclasses, Instances, Traits
# =================================================================

class Trait:
    """A named, non-instantiable bag of default method implementations."""
    def __init__(self, name: str, default_impls: Dict[str, LoxFunction]):
        self.name = name
        self.default_impls = default_impls

    def find_method(self, name: str) -> Optional[LoxFunction]:
        return self.default_impls.get(name)

    def __repr__(self) -> str:
        return f"<trait {self.name}>"


class LoxInstance(LoxObject):
    """An object: a class descriptor plus a lazily populated field store.

    The descriptor is anything exposing `name` and `find_method(name)`,
    i.e. a LoxClass for ordinary instances or a Metaclass for the static
    namespace of a class.
    """
    def __init__(self, klass: Union['LoxClass', 'Metaclass']):
        self.klass = klass
        self.fields: Dict[str, Any] = {}

    def get(self, name: Token, evaluator: 'Evaluator') -> Any:
        if name.lexeme in self.fields:
            return self.fields[name.lexeme]

        entry = self.klass.find_method(name.lexeme)
        if entry is not None:
            method, is_getter = entry
            bound = method.bind(self)
            if is_getter:
                return bound.call(evaluator, [])
            return bound

        raise LoxRuntimeError(name, f"Undefined property '{name.lexeme}'.")

    def set(self, name: Token, value: Any):
        self.fields[name.lexeme] = value

    def __repr__(self) -> str:
        return f"{self.klass.name} instance"


class Metaclass(LoxCallable):
    """The class of a class: holds the static-method table."""
    def __init__(self, name: str, superclass: Optional['LoxClass'], methods: Dict[str, LoxFunction]):
        self.name = name
        self.superclass = superclass
        self.methods = methods

    def find_method(self, name: str) -> Optional[MethodEntry]:
        if name in self.methods:
            return self.methods[name], False
        return None

    def arity(self) -> int:
        return 0

    def call(self, evaluator: 'Evaluator', arguments: List[Any]) -> Any:
        return LoxInstance(self)

    def __repr__(self) -> str:
        return self.name


class LoxClass(LoxCallable, LoxObject):
    """A user-defined class.

    Calling it constructs an instance. Property access on the class itself goes
    through its static namespace, an instance of its metaclass with its own
    field store.
    """
    def __init__(self, name: str, superclass: Optional['LoxClass'], traits: List[Trait],
                 methods: Dict[str, MethodEntry], static_methods: Dict[str, LoxFunction]):
        self.name = name
        self.superclass = superclass
        self.traits = traits
        self.methods = methods
        self.metaclass = Metaclass(f"{name} class", superclass, static_methods)
        self.static_namespace = LoxInstance(self.metaclass)

    def find_method(self, name: str) -> Optional[MethodEntry]:
        """Own methods, then traits in declaration order, then the superclass."""
        if name in self.methods:
            return self.methods[name]

        for trait in self.traits:
            method = trait.find_method(name)
            if method is not None:
                return method, False

        if self.superclass is not None:
            return self.superclass.find_method(name)

        return None

    def _initializer(self) -> Optional[LoxFunction]:
        entry = self.find_method("init")
        return entry[0] if entry is not None else None

    def arity(self) -> int:
        initializer = self._initializer()
        if initializer is None:
            return 0
        return initializer.arity()

    def call(self, evaluator: 'Evaluator', arguments: List[Any]) -> Any:
        instance = LoxInstance(self)
        initializer = self._initializer()
        if initializer is not None:
            initializer.bind(instance).call(evaluator, arguments)
        return instance

    def get(self, name: Token, evaluator: 'Evaluator') -> Any:
        return self.static_namespace.get(name, evaluator)

    def set(self, name: Token, value: Any):
        self.static_namespace.set(name, value)

    def __repr__(self) -> str:
        return self.name
