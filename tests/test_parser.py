import math

import pytest

from errors import LambParseError, UnbalancedParenthesesError
from parser import Body, Leaf, Number, Symbol, classify_atom, parse
from printer import format_node


def test_classify_numbers():
    assert classify_atom("1") == Number(1.0)
    assert classify_atom("-2.5e3") == Number(-2500.0)
    assert classify_atom(".5") == Number(0.5)
    assert classify_atom("3.") == Number(3.0)
    assert classify_atom("+7") == Number(7.0)
    assert math.isinf(classify_atom("inf").value)


def test_classify_symbols():
    for text in ["pi", "outer", "a1", "*", "+", "-", ".", "1e", "1_000", "define", "#t"]:
        assert classify_atom(text) == Symbol(text)


def test_parse_application():
    assert parse("(* 1 2)") == [
        Body([Leaf(Symbol("*")), Leaf(Number(1.0)), Leaf(Number(2.0))]),
    ]


def test_parse_nested_forms():
    (form,) = parse("(define outer (lambda (a) (lambda (b) (* a b))))")
    assert isinstance(form, Body)
    assert form.items[0] == Leaf(Symbol("define"))
    lam = form.items[2]
    assert isinstance(lam, Body)
    assert lam.items[1] == Body([Leaf(Symbol("a"))])
    inner = lam.items[2]
    assert inner.items[2] == Body([Leaf(Symbol("*")), Leaf(Symbol("a")), Leaf(Symbol("b"))])


def test_forest_size_matches_top_level_forms():
    assert len(parse("(a) (b c) 3 x")) == 4
    assert len(parse("")) == 0
    assert len(parse("(define r 10) (* pi (* r r))")) == 2


def test_empty_body():
    assert parse("()") == [Body([])]


@pytest.mark.parametrize("source", ["(* 1 2", ")", "(a))(", "((a)", "(a) (b"])
def test_unbalanced_parentheses(source):
    with pytest.raises(UnbalancedParenthesesError):
        parse(source)


def test_unbalanced_is_a_parse_error_with_location():
    with pytest.raises(LambParseError) as info:
        parse("(foo)\n  (* 1 2", "prog.lamb")
    error = info.value
    assert error.location.line == 2
    assert error.location.column == 3
    assert "prog.lamb:2:3" in str(error)


def test_stray_close_paren_location():
    with pytest.raises(UnbalancedParenthesesError) as info:
        parse("(a) )")
    assert info.value.location.column == 5


def test_nodes_carry_source_locations():
    (form,) = parse("\n  (foo 1)", "prog.lamb")
    assert form.location.file == "prog.lamb"
    assert (form.location.line, form.location.column) == (2, 3)
    assert form.location.statement == "(foo 1)"
    assert form.items[1].location.column == 8


def test_format_node_round_trip():
    source = "(define outer (lambda (a) (lambda (b) (* a b))))"
    assert format_node(parse(source)[0]) == source
    assert format_node(parse("(* 2.5 -1)")[0]) == "(* 2.5 -1)"


@pytest.mark.parametrize("text", ["٣", "1٣", "１", "١.5"])
def test_non_ascii_digits_are_symbols(text):
    assert classify_atom(text) == Symbol(text)
