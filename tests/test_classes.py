from lox_trees import (
    lit, var, binary, call, get, set_, this, super_,
    expr, print_, var_decl, block, fun, ret, klass, trait, at,
    run_tree, assert_ok, assert_error,
)


def point_class():
    return klass("Point", methods=[
        fun("init", ["x", "y"],
            expr(set_(this(), "x", var("x"))),
            expr(set_(this(), "y", var("y")))),
        fun("sum", [], ret(binary(get(this(), "x"), '+', get(this(), "y")))),
    ])


# --- Instances ---

def test_constructor_and_methods():
    res = run_tree(
        point_class(),
        print_(call(get(call(var("Point"), lit(1), lit(2)), "sum"))),
        print_(var("Point")),
        print_(call(var("Point"), lit(0), lit(0))),
    )
    assert_ok(res)
    assert res.output == ["3", "Point", "Point instance"]


def test_class_arity_comes_from_init():
    res = run_tree(point_class(), expr(call(var("Point"), lit(1))))
    assert_error(res, "Expected 2 arguments but got 1.")


def test_calling_init_directly_returns_the_instance():
    res = run_tree(
        point_class(),
        var_decl("p", call(var("Point"), lit(1), lit(2))),
        print_(call(get(var("p"), "init"), lit(3), lit(4))),
        print_(call(get(var("p"), "sum"))),
    )
    assert res.output == ["Point instance", "7"]


def test_bare_return_in_initializer_yields_instance():
    res = run_tree(
        klass("Early", methods=[fun("init", [], ret())]),
        print_(call(var("Early"))),
    )
    assert res.output == ["Early instance"]


def test_fields_shadow_methods():
    res = run_tree(
        point_class(),
        var_decl("p", call(var("Point"), lit(1), lit(2))),
        expr(set_(var("p"), "sum", lit("field"))),
        print_(get(var("p"), "sum")),
    )
    assert res.output == ["field"]


def test_undefined_property():
    res = run_tree(
        klass("Empty"),
        at(5, print_(get(call(var("Empty")), "nothing"))),
    )
    assert_error(res, "Undefined property 'nothing'.\n[line 5]")


def test_bound_methods_remember_their_instance():
    res = run_tree(
        point_class(),
        var_decl("method", get(call(var("Point"), lit(10), lit(5)), "sum")),
        print_(call(var("method"))),
        print_(var("method")),
    )
    assert res.output == ["15", "<fn sum>"]


def test_methods_bound_from_different_instances_keep_separate_state():
    res = run_tree(
        klass("Counter", methods=[
            fun("init", ["start"], expr(set_(this(), "count", var("start")))),
            fun("bump", [],
                expr(set_(this(), "count", binary(get(this(), "count"), '+', lit(1)))),
                ret(get(this(), "count"))),
        ]),
        var_decl("a", call(var("Counter"), lit(1))),
        var_decl("b", call(var("Counter"), lit(100))),
        var_decl("ma", get(var("a"), "bump")),
        var_decl("mb", get(var("b"), "bump")),
        print_(call(var("ma"))),
        print_(call(var("mb"))),
        print_(call(var("ma"))),
        print_(get(var("b"), "count")),
    )
    assert_ok(res)
    assert res.output == ["2", "101", "3", "101"]


def test_getter_runs_on_access():
    res = run_tree(
        klass("Circle", methods=[
            fun("init", ["r"], expr(set_(this(), "r", var("r")))),
            fun("area", [], ret(binary(get(this(), "r"), '*', lit(3))), getter=True),
        ]),
        print_(get(call(var("Circle"), lit(2)), "area")),
    )
    assert_ok(res)
    assert res.output == ["6"]


# --- Inheritance ---

def test_inherited_methods_and_super_calls():
    res = run_tree(
        klass("A", methods=[fun("speak", [], ret(lit("A")))]),
        klass("B", superclass="A", methods=[
            fun("speak", [], ret(binary(call(super_("speak")), '+', lit("B")))),
        ]),
        klass("C", superclass="B"),
        print_(call(get(call(var("C")), "speak"))),
    )
    assert_ok(res)
    assert res.output == ["AB"]


def test_super_resolves_against_the_defining_class():
    res = run_tree(
        klass("A", methods=[fun("speak", [], ret(lit("A")))]),
        klass("B", superclass="A", methods=[
            fun("speak", [], ret(binary(call(super_("speak")), '+', lit("B")))),
        ]),
        klass("C", superclass="B", methods=[
            fun("speak", [], ret(binary(call(super_("speak")), '+', lit("C")))),
        ]),
        print_(call(get(call(var("C")), "speak"))),
    )
    assert_ok(res)
    assert res.output == ["ABC"]


def test_super_inside_local_classes():
    res = run_tree(block(
        klass("A", methods=[fun("value", [], ret(lit(1)))]),
        klass("B", superclass="A", methods=[
            fun("value", [], ret(binary(call(super_("value")), '+', lit(1)))),
        ]),
        print_(call(get(call(var("B")), "value"))),
    ))
    assert_ok(res)
    assert res.output == ["2"]


def test_super_honors_getters():
    res = run_tree(
        klass("Base", methods=[fun("label", [], ret(lit("base")), getter=True)]),
        klass("Derived", superclass="Base", methods=[
            fun("label", [], ret(binary(super_("label"), '+', lit("!"))), getter=True),
        ]),
        print_(get(call(var("Derived")), "label")),
    )
    assert res.output == ["base!"]


def test_superclass_must_be_a_class():
    res = run_tree(
        var_decl("NotAClass", lit("nope")),
        klass("Sub", superclass="NotAClass"),
    )
    assert_error(res, "Superclass must be a class.", exit_code=70)


# --- Metaclasses and static members ---

def test_static_methods_live_on_the_metaclass():
    res = run_tree(
        klass("Math", static_methods=[
            fun("square", ["n"], ret(binary(var("n"), '*', var("n")))),
        ]),
        print_(call(get(var("Math"), "square"), lit(3))),
        print_(get(var("Math"), "square")),
    )
    assert_ok(res)
    assert res.output == ["9", "<fn square>"]


def test_static_fields_are_stored_on_the_class():
    res = run_tree(
        klass("Config"),
        expr(set_(var("Config"), "level", lit(3))),
        print_(get(var("Config"), "level")),
    )
    assert res.output == ["3"]


def test_static_methods_are_not_instance_methods():
    res = run_tree(
        klass("Math", static_methods=[fun("one", [], ret(lit(1)))]),
        expr(get(call(var("Math")), "one")),
    )
    assert_error(res, "Undefined property 'one'.")


def test_static_method_inside_function_reads_locals():
    res = run_tree(
        fun("make", ["factor"],
            klass("Scaler", static_methods=[
                fun("scale", ["n"], ret(binary(var("n"), '*', var("factor")))),
            ]),
            ret(var("Scaler"))),
        print_(call(get(call(var("make"), lit(4)), "scale"), lit(5))),
    )
    assert_ok(res)
    assert res.output == ["20"]


# --- Traits ---

def greeter_trait():
    return trait("Greets", {"name": 0}, defaults=[
        fun("hello", [], ret(binary(lit("Hello "), '+', call(get(this(), "name"))))),
    ])


def test_trait_default_methods_are_mixed_in():
    res = run_tree(
        greeter_trait(),
        klass("Person", traits=["Greets"], methods=[fun("name", [], ret(lit("Bob")))]),
        print_(call(get(call(var("Person")), "hello"))),
        print_(var("Greets")),
    )
    assert_ok(res)
    assert res.output == ["Hello Bob", "<trait Greets>"]


def test_own_methods_override_trait_defaults():
    res = run_tree(
        greeter_trait(),
        klass("Robot", traits=["Greets"], methods=[
            fun("name", [], ret(lit("R2"))),
            fun("hello", [], ret(lit("beep"))),
        ]),
        print_(call(get(call(var("Robot")), "hello"))),
    )
    assert res.output == ["beep"]


def test_trait_methods_take_precedence_over_superclass():
    res = run_tree(
        greeter_trait(),
        klass("Base", methods=[fun("hello", [], ret(lit("base")))]),
        klass("Child", superclass="Base", traits=["Greets"], methods=[fun("name", [], ret(lit("kid")))]),
        print_(call(get(call(var("Child")), "hello"))),
    )
    assert res.output == ["Hello kid"]


def test_mixing_in_a_non_trait():
    res = run_tree(
        greeter_trait(),
        block(
            var_decl("Greets", lit("shadowed")),
            klass("Fake", traits=["Greets"], methods=[fun("name", [], ret(lit("F")))]),
        ),
    )
    assert_error(res, "Can only mix in traits.", exit_code=70)
