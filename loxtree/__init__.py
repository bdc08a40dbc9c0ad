from loxtree.lox_runtime import ScriptRunner, ExecutionResult, NativeLib
from loxtree.lox_interpreter import Evaluator
from loxtree.lox_resolver import Resolver, Diagnostic
from loxtree.lox_transformer import LoxTransformer, TreeFormatError
from loxtree.lox_datatypes import LoxRuntimeError
from loxtree.lox_printer import Printer

__all__ = [
    "ScriptRunner",
    "ExecutionResult",
    "NativeLib",
    "Evaluator",
    "Resolver",
    "Diagnostic",
    "LoxTransformer",
    "TreeFormatError",
    "LoxRuntimeError",
    "Printer",
]
