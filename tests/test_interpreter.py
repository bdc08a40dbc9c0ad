from loxtree.lox_runtime import ScriptRunner

from lox_trees import (
    lit, var, assign, binary, logical, unary, call, get, set_, group, ternary, lam,
    expr, print_, var_decl, block, fun, ret, if_, while_, brk, cont, at,
    run_tree, assert_ok, assert_error,
)


# --- Expressions ---

def test_arithmetic_precedence_is_tree_shape():
    res = run_tree(print_(binary(lit(1), '+', binary(lit(2), '*', lit(3)))))
    assert_ok(res)
    assert res.output == ["7"]


def test_last_expression_statement_is_the_result_value():
    res = run_tree(expr(binary(lit(1), '+', lit(2))))
    assert_ok(res, 3)


def test_numbers_print_without_trailing_zero():
    res = run_tree(
        print_(binary(lit(7), '/', lit(2))),
        print_(lit(10)),
        print_(unary('-', lit(0.5))),
    )
    assert res.output == ["3.5", "10", "-0.5"]


def test_plus_concatenates_with_stringification():
    res = run_tree(
        print_(binary(lit("a"), '+', lit(1))),
        print_(binary(lit(2), '+', lit("b"))),
        print_(binary(lit(None), '+', lit(True))),
        print_(binary(lit("x"), '+', lit("y"))),
    )
    assert res.output == ["a1", "2b", "niltrue", "xy"]


def test_division_by_zero_divisor():
    res = run_tree(at(3, print_(binary(lit(1), '/', lit(0)))))
    assert_error(res, "Division by zero.\n[line 3]", exit_code=70)


def test_division_with_zero_dividend_is_an_error():
    res = run_tree(print_(binary(lit(0), '/', lit(5))))
    assert_error(res, "Division by zero.")


def test_modulo_keeps_sign_of_dividend():
    res = run_tree(
        print_(binary(lit(7), '%', lit(3))),
        print_(binary(unary('-', lit(7)), '%', lit(3))),
    )
    assert res.output == ["1", "-1"]


def test_modulo_by_zero_is_nan():
    res = run_tree(print_(binary(lit(7), '%', lit(0))))
    assert_ok(res)
    assert res.output == ["NaN"]


def test_booleans_concatenate_as_text():
    res = run_tree(print_(binary(lit(True), '+', lit(False))))
    assert_ok(res)
    assert res.output == ["truefalse"]


def test_operands_must_be_numbers():
    res = run_tree(print_(binary(lit("a"), '-', lit(1))))
    assert_error(res, "Operands must be numbers.")
    res = run_tree(print_(unary('-', lit("a"))))
    assert_error(res, "Operand must be a number.")
    res = run_tree(print_(binary(lit(True), '<', lit(1))))
    assert_error(res, "Operands must be numbers.")


def test_equality_is_type_aware():
    res = run_tree(
        print_(binary(lit(True), '==', lit(1))),
        print_(binary(lit(None), '==', lit(None))),
        print_(binary(lit(None), '==', lit(False))),
        print_(binary(lit("a"), '==', lit("a"))),
        print_(binary(lit(1), '!=', lit(2))),
    )
    assert res.output == ["false", "true", "false", "true", "true"]


def test_truthiness_only_nil_and_false_are_falsey():
    res = run_tree(
        print_(ternary(lit(0), lit("yes"), lit("no"))),
        print_(ternary(lit(""), lit("yes"), lit("no"))),
        print_(ternary(lit(None), lit("yes"), lit("no"))),
        print_(unary('!', lit(False))),
    )
    assert res.output == ["yes", "yes", "no", "true"]


def test_logical_operators_return_operands():
    res = run_tree(
        print_(logical(lit(None), 'or', lit("fallback"))),
        print_(logical(lit(1), 'and', lit(2))),
        print_(logical(lit(False), 'and', call(var("undefinedFn")))),
    )
    assert_ok(res)
    assert res.output == ["fallback", "2", "false"]


def test_comma_yields_right_operand():
    res = run_tree(expr(group(binary(lit(1), ',', lit(2)))))
    assert_ok(res, 2)


# --- Variables and scopes ---

def test_globals_can_be_redefined_and_assigned():
    res = run_tree(
        var_decl("a", lit(1)),
        var_decl("a", lit(2)),
        expr(assign("a", binary(var("a"), '+', lit(1)))),
        print_(var("a")),
    )
    assert res.output == ["3"]


def test_undefined_global_read_and_assign():
    res = run_tree(at(2, print_(var("missing"))))
    assert_error(res, "Undefined variable 'missing'.\n[line 2]", exit_code=70)
    res = run_tree(expr(assign("missing", lit(1))))
    assert_error(res, "Undefined variable 'missing'.")


def test_block_scopes_shadow_and_restore():
    res = run_tree(
        var_decl("a", lit("outer")),
        block(
            var_decl("a", lit("inner")),
            print_(var("a")),
        ),
        print_(var("a")),
    )
    assert res.output == ["inner", "outer"]


def test_closure_binding_is_static():
    res = run_tree(
        var_decl("a", lit("global")),
        block(
            fun("showA", [], print_(var("a"))),
            expr(call(var("showA"))),
            var_decl("a", lit("block")),
            expr(call(var("showA"))),
        ),
    )
    assert_ok(res)
    assert res.output == ["global", "global"]


def test_closures_capture_environment_by_reference():
    res = run_tree(
        fun("makeCounter", [],
            var_decl("i", lit(0)),
            fun("count", [],
                expr(assign("i", binary(var("i"), '+', lit(1)))),
                ret(var("i"))),
            ret(var("count"))),
        var_decl("counter", call(var("makeCounter"))),
        expr(call(var("counter"))),
        expr(call(var("counter"))),
    )
    assert_ok(res, 2)


def test_local_recursive_function():
    fib = fun("fib", ["n"],
              if_(binary(var("n"), '<', lit(2)), ret(var("n"))),
              ret(binary(call(var("fib"), binary(var("n"), '-', lit(1))),
                         '+',
                         call(var("fib"), binary(var("n"), '-', lit(2))))))
    res = run_tree(block(fib, print_(call(var("fib"), lit(10)))))
    assert res.output == ["55"]


def test_lambdas_are_closures():
    res = run_tree(
        var_decl("add", lam(["a", "b"], ret(binary(var("a"), '+', var("b"))))),
        print_(call(var("add"), lit(1), lit(2))),
        print_(var("add")),
    )
    assert res.output == ["3", "<fn lambda>"]


# --- Control flow ---

def _counting_loop(body_statements):
    # var i = 0; while (i < 5) { ... } with i = i + 1 as the increment
    return [
        var_decl("i", lit(0)),
        while_(binary(var("i"), '<', lit(5)),
               block(*body_statements),
               expr(assign("i", binary(var("i"), '+', lit(1))))),
    ]


def test_continue_still_runs_increment():
    res = run_tree(*_counting_loop([
        if_(binary(var("i"), '==', lit(2)), cont()),
        print_(var("i")),
    ]))
    assert_ok(res)
    assert res.output == ["0", "1", "3", "4"]


def test_break_skips_increment():
    res = run_tree(*_counting_loop([
        if_(binary(var("i"), '==', lit(3)), brk()),
        print_(var("i")),
    ]), print_(var("i")))
    assert_ok(res)
    assert res.output == ["0", "1", "2", "3"]


def test_return_from_inside_loop():
    res = run_tree(
        fun("firstOver", ["limit"],
            var_decl("n", lit(0)),
            while_(lit(True), block(
                if_(binary(var("n"), '>', var("limit")), ret(var("n"))),
                expr(assign("n", binary(var("n"), '+', lit(1)))),
            ))),
        expr(call(var("firstOver"), lit(3))),
    )
    assert_ok(res, 4)


def test_flow_outside_loop_is_a_runtime_error():
    res = run_tree(at(4, brk()))
    assert_error(res, "Flow statement outside of loop.\n[line 4]", exit_code=70)


def test_flow_escaping_function_body_is_a_runtime_error():
    res = run_tree(
        fun("f", [], cont()),
        while_(lit(True), block(expr(call(var("f"))), brk())),
    )
    assert_error(res, "Flow statement outside of loop.")


# --- Calls ---

def test_call_errors():
    res = run_tree(expr(call(lit("text"))))
    assert_error(res, "Can only call functions and classes.")
    res = run_tree(
        fun("pair", ["a", "b"], ret(var("a"))),
        expr(call(var("pair"), lit(1))),
    )
    assert_error(res, "Expected 2 arguments but got 1.")


def test_function_without_return_yields_nil():
    res = run_tree(
        fun("noop", []),
        print_(call(var("noop"))),
        print_(var("noop")),
    )
    assert res.output == ["nil", "<fn noop>"]


def test_runtime_error_reports_lox_stacktrace():
    res = run_tree(
        fun("inner", [], at(2, ret(binary(lit(1), '/', lit(0))))),
        fun("outer", [], ret(call(var("inner")))),
        expr(call(var("outer"))),
    )
    assert_error(res, "Division by zero.\n[line 2]")
    assert "Lox stacktrace: (outer) (inner)" in res.error_message
    stderr = [e for e in res.side_effects if e['topics'] == ['stderr']]
    assert stderr and stderr[-1]['message'] == res.error_message


def test_unbounded_recursion_is_a_stack_overflow():
    res = run_tree(
        fun("forever", ["n"], ret(call(var("forever"), binary(var("n"), '+', lit(1))))),
        expr(call(var("forever"), lit(0))),
    )
    assert_error(res, "Stack overflow.", exit_code=70)


def test_deep_recursion_completes():
    res = run_tree(
        fun("down", ["n"],
            if_(binary(var("n"), '==', lit(0)), ret(lit(0))),
            ret(call(var("down"), binary(var("n"), '-', lit(1))))),
        expr(call(var("down"), lit(1000))),
    )
    assert_ok(res, 0)


def test_side_effects_are_fresh_per_run():
    runner = ScriptRunner()
    first = run_tree(print_(lit("one")), runner=runner)
    second = run_tree(print_(lit("two")), runner=runner)
    assert first.output == ["one"]
    assert second.output == ["two"]


def test_globals_persist_across_runs():
    runner = ScriptRunner()
    run_tree(var_decl("total", lit(40)), runner=runner)
    res = run_tree(expr(binary(var("total"), '+', lit(2))), runner=runner)
    assert_ok(res, 42)


def test_set_on_non_instance():
    res = run_tree(expr(set_(lit(1), "x", lit(2))))
    assert_error(res, "Only instances have fields.")
    res = run_tree(expr(get(lit("s"), "length")))
    assert_error(res, "Only instances have properties.")
