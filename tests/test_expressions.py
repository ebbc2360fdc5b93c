import pytest

from pipelint.errors import (
    ArityMismatch,
    ExpressionSyntaxError,
    MissingParameter,
    PhaseError,
    RuntimeReferenceError,
    TypeMismatch,
    UnknownFunction,
    UnknownName,
)
from pipelint.expressions import (
    FAILED,
    RUN_TIME,
    COMPILE_TIME,
    SUCCEEDED,
    BinaryOp,
    DependencyResult,
    FunctionCall,
    Literal,
    RuntimeContext,
    TemplateContext,
    VariableRef,
    check,
    evaluate_condition,
    evaluate_template,
    interpolate,
    parse,
)


def test_parse_builds_one_ast_for_both_phases():
    expr = parse("eq(variables['Build.Reason'], 'PullRequest')")
    assert expr == FunctionCall(
        "eq",
        (BinaryOp("index", VariableRef(("variables",)), Literal("Build.Reason")), Literal("PullRequest")),
    )
    assert parse("dependencies.A.result") == VariableRef(("dependencies", "A", "result"))


def test_parse_literals():
    assert parse("true") == Literal(True)
    assert parse("'it''s'") == Literal("it's")
    assert parse("1.5") == Literal(1.5)
    assert parse("null") == Literal(None)


@pytest.mark.parametrize("text", ["", "eq(1,", "'open", "eq(1 2)", "a.", "#"])
def test_parse_rejects_bad_syntax(text):
    with pytest.raises(ExpressionSyntaxError):
        parse(text)


def test_template_phase_reads_parameters_and_variables():
    ctx = TemplateContext(parameters={"env": "prod", "count": 3}, variables={"region": "EU"})
    assert evaluate_template("eq(parameters.env, 'PROD')", ctx) is True
    assert evaluate_template("parameters.count", ctx) == 3
    assert evaluate_template("format('{0}-{1}', parameters.env, variables.region)", ctx) == "prod-EU"


def test_template_phase_rejects_status_functions():
    with pytest.raises(PhaseError, match="succeeded"):
        evaluate_template("succeeded()", TemplateContext())


def test_template_phase_rejects_dependencies():
    with pytest.raises(PhaseError):
        evaluate_template("dependencies.A.result", TemplateContext())


def test_template_phase_rejects_runtime_variables():
    ctx = TemplateContext(runtime_variables=frozenset({"version"}))
    with pytest.raises(RuntimeReferenceError, match="version"):
        evaluate_template("variables.version", ctx)
    with pytest.raises(RuntimeReferenceError):
        evaluate_template("variables['version']", ctx)


def test_runtime_phase_rejects_parameters():
    with pytest.raises(PhaseError):
        evaluate_condition("eq(parameters.x, 1)", RuntimeContext())


def test_unknown_root_name():
    with pytest.raises(UnknownName):
        evaluate_condition("eq(foo, 1)", RuntimeContext())


def test_each_loop_variable_is_visible_at_compile_time():
    ctx = TemplateContext().with_local("item", {"name": "x"})
    assert evaluate_template("item.name", ctx) == "x"


def test_status_functions():
    ok = RuntimeContext(dependencies={"A": DependencyResult(SUCCEEDED), "B": DependencyResult(SUCCEEDED)})
    bad = RuntimeContext(dependencies={"A": DependencyResult(SUCCEEDED), "B": DependencyResult(FAILED)})
    assert evaluate_condition("succeeded()", ok) is True
    assert evaluate_condition("succeeded()", bad) is False
    assert evaluate_condition("failed()", bad) is True
    assert evaluate_condition("succeeded('A')", bad) is True
    assert evaluate_condition("succeededOrFailed()", bad) is True
    assert evaluate_condition("always()", RuntimeContext(canceled=True)) is True
    assert evaluate_condition("succeeded()", RuntimeContext(canceled=True)) is False


def test_condition_reads_dependency_results_and_outputs():
    ctx = RuntimeContext(
        variables={"Build.SourceBranch": "refs/heads/main"},
        dependencies={"A": DependencyResult(SUCCEEDED, {"setver.version": "1.2"})},
    )
    assert evaluate_condition("eq(dependencies.A.result, 'Succeeded')", ctx) is True
    assert evaluate_condition("dependencies.A.outputs['setver.version']", ctx) == "1.2"
    assert evaluate_condition("eq(variables['Build.SourceBranch'], 'refs/heads/main')", ctx) is True


def test_comparisons_are_case_insensitive_and_convert_numbers():
    ctx = RuntimeContext()
    assert evaluate_condition("eq('ABC', 'abc')", ctx) is True
    assert evaluate_condition("eq(1, '1.0')", ctx) is True
    assert evaluate_condition("gt(10, '9')", ctx) is True
    assert evaluate_condition("in('b', 'a', 'B')", ctx) is True
    assert evaluate_condition("notIn('c', 'a', 'b')", ctx) is True


def test_incompatible_types_raise_type_mismatch():
    with pytest.raises(TypeMismatch):
        evaluate_condition("eq(1, 'one')", RuntimeContext())
    with pytest.raises(TypeMismatch):
        evaluate_condition("lt('a', true)", RuntimeContext())


def test_unknown_function_and_arity():
    with pytest.raises(UnknownFunction):
        evaluate_condition("nope(1)", RuntimeContext())
    with pytest.raises(ArityMismatch) as exc:
        evaluate_condition("eq(1)", RuntimeContext())
    assert exc.value.got == 1


def test_and_or_short_circuit():
    # the right side would raise if it were evaluated
    assert evaluate_condition("or(true, nope())", RuntimeContext()) is True
    assert evaluate_condition("and(false, eq(1, 'x'))", RuntimeContext()) is False


def test_string_functions():
    ctx = RuntimeContext()
    assert evaluate_condition("startsWith('refs/heads/main', 'REFS/')", ctx) is True
    assert evaluate_condition("upper(replace('a-b', '-', '_'))", ctx) == "A_B"
    assert evaluate_condition("join(',', split('a b c', ' '))", ctx) == "a,b,c"
    assert evaluate_condition("length('abcd')", ctx) == 4
    assert evaluate_condition("coalesce('', null, 'x')", ctx) == "x"
    assert evaluate_condition("iif(eq(1, 1), 'yes', 'no')", ctx) == "yes"


def test_static_check_collects_every_problem():
    problems = check(parse("and(succeeded(), nope(), eq(1))"), COMPILE_TIME)
    kinds = sorted(type(p).__name__ for p in problems)
    assert kinds == ["ArityMismatch", "PhaseError", "UnknownFunction"]
    assert check(parse("and(succeeded(), eq(variables.a, 'b'))"), RUN_TIME) == []


def test_interpolate_keeps_type_of_whole_expression():
    ctx = TemplateContext(parameters={"n": 3, "name": "web"})
    assert interpolate("${{ parameters.n }}", ctx) == 3
    assert interpolate("build-${{ parameters.name }}-${{ parameters.n }}", ctx) == "build-web-3"
    assert interpolate("plain", ctx) == "plain"


def test_membership_skips_incomparable_candidates():
    ctx = RuntimeContext()
    assert evaluate_condition("in('abc', 1, true, 'ABC')", ctx) is True
    assert evaluate_condition("in('abc', 1)", ctx) is False
    assert evaluate_condition("notIn('abc', 1, 2)", ctx) is True
    assert evaluate_condition("containsValue(split('1 x', ' '), 'X')", ctx) is True


def test_undeclared_parameter_is_missing_at_compile_time():
    ctx = TemplateContext(parameters={"env": "prod"})
    assert evaluate_template("parameters.ENV", ctx) == "prod"
    with pytest.raises(MissingParameter) as exc:
        evaluate_template("parameters.region", ctx)
    assert exc.value.name == "region"
    with pytest.raises(MissingParameter):
        evaluate_template("parameters['region']", ctx)
    with pytest.raises(MissingParameter):
        interpolate("deploy ${{ parameters.region }}", TemplateContext())


def test_declared_parameter_without_value_is_not_missing():
    ctx = TemplateContext(parameters={"extra": None})
    assert evaluate_template("coalesce(parameters.extra, 'none')", ctx) == "none"
