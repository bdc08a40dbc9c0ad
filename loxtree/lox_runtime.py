import inspect
import os
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, TextIO

from loxtree.lox_ast import Stmt
from loxtree.lox_datatypes import LoxRuntimeError, NativeFunction
from loxtree.lox_environment import ScopeMismatch
from loxtree.lox_interpreter import Evaluator
from loxtree.lox_resolver import Diagnostic, Resolver
from loxtree.lox_serialize import deserialize, load_tree_file
from loxtree.lox_tokens import Token
from loxtree.lox_transformer import LoxTransformer, TreeFormatError

EXIT_OK = 0
EXIT_STATIC_ERROR = 65
EXIT_RUNTIME_ERROR = 70

# Each Lox call nests about five Python frames.
DEFAULT_RECURSION_LIMIT = 10000


# ===================================================================
# 1. Native Functions
# ===================================================================

def _native_name(method_name: str) -> str:
    """`_read_line` -> `readLine`"""
    head, *rest = method_name.lstrip('_').split('_')
    return head + "".join(part.capitalize() for part in rest)


class NativeLib:
    """Python implementations of the Lox builtins.

    Every `_name` method is registered as a global under its camelCase name,
    with the arity of its signature.
    """
    def __init__(self, runner: 'ScriptRunner'):
        self.runner = runner

    def _clock(self):
        return time.time()

    def _read_line(self):
        stream = self.runner.stdin or sys.stdin
        line = stream.readline()
        if not line:
            return None
        return line.rstrip('\r\n')

    def _printw(self, text):
        evaluator = self.runner.evaluator
        evaluator.emit('stdout', evaluator.printer.stringify(text), newline=False)
        return None

    def _load_file(self, path):
        if not isinstance(path, str):
            raise LoxRuntimeError(None, "loadFile expects a path string.")
        self.runner.load_file(path)
        return None

    def _reload(self):
        self.runner.reload()
        return None


# ===================================================================
# 2. Script Execution
# ===================================================================

@dataclass
class ExecutionResult:
    """The structured result of a program execution."""
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error_token: Optional[Token] = None
    side_effects: List[Dict] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    exit_code: int = EXIT_OK

    def format_error(self) -> str:
        if self.status != 'error':
            return ""
        return str(self.error_message or "Unknown error")

    @property
    def output(self) -> List[str]:
        """Lines printed to stdout, in order."""
        return [e['message'] for e in self.side_effects if 'stdout' in e['topics']]


class ScriptRunner:
    """Transforms, resolves and executes Lox programs against one global namespace."""

    def __init__(self, load_natives: bool = True, stdin: Optional[TextIO] = None,
                 source_dir: Optional[str] = None, recursion_limit: int = DEFAULT_RECURSION_LIMIT):
        self.stdin = stdin
        self.source_dir = source_dir
        self.recursion_limit = recursion_limit
        self.transformer = LoxTransformer()
        self.evaluator = Evaluator()
        # Paths run through loadFile, in load order.
        self.loaded_files: List[Path] = []
        # Trait signatures declared so far, shared by every resolve pass.
        self.trait_signatures: Dict[str, Dict[str, int]] = {}

        if load_natives:
            self._load_natives()

    def _load_natives(self):
        natives = NativeLib(self)
        for name, member in inspect.getmembers(natives):
            if name.startswith('_') and not name.startswith('__') and callable(member):
                lox_name = _native_name(name)
                arity = len(inspect.signature(member).parameters)
                self.evaluator.globals[lox_name] = NativeFunction(lox_name, arity, member)

    # --- Entry points ---

    def handle_tree(self, document: Any) -> ExecutionResult:
        """Runs a tree document already loaded into Python structures."""
        self._begin_run()
        try:
            statements = self.transformer.transform(document)
        except TreeFormatError as e:
            return self._tree_error(e)
        return self._execute(statements)

    def handle_source(self, text: str, fmt: Optional[str] = None) -> ExecutionResult:
        """Runs a tree document given as JSON or YAML text."""
        self._begin_run()
        try:
            document = deserialize(text, fmt=fmt)
        except ValueError as e:  # TreeFormatError included
            return self._tree_error(e)
        return self.handle_tree(document)

    def handle_program(self, statements: List[Stmt]) -> ExecutionResult:
        """Runs statements produced by an external parser."""
        self._begin_run()
        return self._execute(statements)

    def _begin_run(self):
        self.evaluator.side_effects = []
        self.evaluator.call_stack.clear()
        self.evaluator.environment = None

    def _execute(self, statements: List[Stmt]) -> ExecutionResult:
        resolver = Resolver(self.evaluator, self.trait_signatures)
        resolved = resolver.resolve(statements)
        for diagnostic in resolver.diagnostics:
            self.evaluator.emit('stderr', diagnostic.format())

        if not resolved:
            message = "\n".join(d.format() for d in resolver.errors)
            return ExecutionResult(
                status='error',
                error_message=message,
                side_effects=self.evaluator.side_effects,
                diagnostics=resolver.diagnostics,
                exit_code=EXIT_STATIC_ERROR,
            )

        previous_limit = sys.getrecursionlimit()
        sys.setrecursionlimit(max(previous_limit, self.recursion_limit))
        try:
            value = self.evaluator.interpret(statements)
        except LoxRuntimeError as e:
            message = self._format_runtime_error(e)
            self.evaluator.emit('stderr', message)
            return ExecutionResult(
                status='error',
                error_message=message,
                error_token=e.token,
                side_effects=self.evaluator.side_effects,
                diagnostics=resolver.diagnostics,
                exit_code=EXIT_RUNTIME_ERROR,
            )
        except ScopeMismatch as e:
            message = f"InternalError: {e}"
            self.evaluator.emit('stderr', message)
            return ExecutionResult(
                status='error',
                error_message=message,
                side_effects=self.evaluator.side_effects,
                diagnostics=resolver.diagnostics,
                exit_code=EXIT_RUNTIME_ERROR,
            )
        finally:
            sys.setrecursionlimit(previous_limit)
            self.evaluator.environment = None
            self.evaluator.current_node = None

        return ExecutionResult(
            status='success',
            value=value,
            side_effects=self.evaluator.side_effects,
            diagnostics=resolver.diagnostics,
        )

    # --- Error formatting ---

    def _format_runtime_error(self, error: LoxRuntimeError) -> str:
        msg = error.message
        if error.line is not None:
            msg = f"{msg}\n[line {error.line}]"
        if error.trace:
            msg += "\nLox stacktrace: " + " ".join(f"({name})" for name in error.trace)
        return msg

    def _tree_error(self, error: Exception) -> ExecutionResult:
        msg = f"TreeFormatError: {error}"
        line = getattr(error, 'line', None)
        if line is not None:
            msg = f"{msg}\n[line {line}]"
        self.evaluator.emit('stderr', msg)
        return ExecutionResult(
            status='error',
            error_message=msg,
            side_effects=self.evaluator.side_effects,
            exit_code=EXIT_STATIC_ERROR,
        )

    # --- Script loading ---

    def _resolve_path(self, path: str) -> Path:
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = Path(self.source_dir or os.getcwd()) / candidate
        return candidate.resolve()

    def load_file(self, path: str):
        """Runs a tree document file in the global namespace and remembers it for reload()."""
        full_path = self._resolve_path(path)
        self._run_file(full_path)
        if full_path not in self.loaded_files:
            self.loaded_files.append(full_path)

    def reload(self):
        """Re-runs every loaded file in load order."""
        for path in list(self.loaded_files):
            self._run_file(path)

    def _run_file(self, path: Path):
        self.evaluator._dbg("LOAD", str(path))
        try:
            statements = load_tree_file(path, transformer=self.transformer)
        except OSError as e:
            raise LoxRuntimeError(None, f"Could not load '{path}': {e.strerror or e}.") from None
        except ValueError as e:  # TreeFormatError included
            raise LoxRuntimeError(None, f"Could not load '{path}': {e}") from None

        resolver = Resolver(self.evaluator, self.trait_signatures)
        resolved = resolver.resolve(statements)
        for warning in resolver.warnings:
            self.evaluator.emit('stderr', warning.format())
        if not resolved:
            details = "\n".join(d.format() for d in resolver.errors)
            raise LoxRuntimeError(None, f"Could not load '{path}':\n{details}")

        # Loaded code is top-level code, whatever scope the call came from.
        evaluator = self.evaluator
        previous_environment, previous_node = evaluator.environment, evaluator.current_node
        evaluator.environment = None
        try:
            evaluator.interpret(statements)
        finally:
            evaluator.environment = previous_environment
            evaluator.current_node = previous_node
