import sys
from pathlib import Path

from loxtree.lox_runtime import ScriptRunner
from loxtree.lox_printer import Printer
from loxtree.lox_serialize import load_tree_file


def dump_file(file_path: str):
    """Print the Lisp-style dump of a tree document without running it."""
    try:
        statements = load_tree_file(file_path)
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    except ValueError as e:  # TreeFormatError included
        print(f"TreeFormatError: {e}", file=sys.stderr)
        raise SystemExit(65)
    print(Printer().pformat_node(statements))


def run_script_file(file_path: str):
    """Run a tree document non-interactively and exit with the matching status."""
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    runner = ScriptRunner(source_dir=str(p.parent.resolve()))
    runner.evaluator.echo = sys.stdout
    fmt = 'json' if p.suffix.lower() == '.json' else 'yaml'
    result = runner.handle_source(source, fmt=fmt)
    for diagnostic in result.diagnostics:
        if diagnostic.severity == 'warning':
            print(diagnostic.format(), file=sys.stderr)
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        raise SystemExit(result.exit_code)


def main():
    """Run a tree file when provided, otherwise read one document per line."""
    args = [a for a in sys.argv[1:] if not a.startswith("-")]
    if args:
        if "--dump" in sys.argv[1:]:
            dump_file(args[0])
        else:
            run_script_file(args[0])
        return

    print("loxtree REPL v0.1")
    print("Enter one statement list (JSON or YAML flow style) per line. Type 'exit' or press Ctrl+D to quit.")

    runner = ScriptRunner(source_dir=str(Path.cwd()))
    runner.evaluator.echo = sys.stdout
    printer = Printer()

    while True:
        try:
            sys.stdout.write("> ")
            sys.stdout.flush()
            raw = sys.stdin.readline()
            if raw == "":
                raise EOFError
            line = raw.strip()

            if not line:
                continue
            if line == "exit":
                break

            result = runner.handle_source(line)

            if result.status == 'error':
                print(result.format_error(), file=sys.stderr)
                continue

            if result.value is not None:
                print(printer.stringify(result.value))

        except EOFError:
            print("\nExiting.")
            break


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\nExiting.")
