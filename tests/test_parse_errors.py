import redfa
import pytest

@pytest.fixture
def lenient():
    redfa.ProgramData.load_commandline_flags(["-fno-strict-syntax", "dummy"])

@pytest.mark.parametrize("regex,column", [
    ("(a", 3),
    ("a)", 2),
    ("a|", 3),
    ("|a", 1),
    ("()", 2),
    ("*a", 1),
    ("a\\", 2),
    ("(a|b))", 6),
])
def test_strict_syntax_errors(regex, column):
    with pytest.raises(redfa.ParseError) as e:
        redfa.RegexTree(regex)

    assert e.value.column == column
    assert e.value.regex == regex

def test_strict_error_message():
    with pytest.raises(redfa.ParseError) as e:
        redfa.RegexTree("ab|")

    assert str(e.value) == "Unexpected end of regex at column 4:\nab|\n   ^"

    with pytest.raises(redfa.ParseError) as e:
        redfa.check_syntax("ab\\")

    assert "Unexpected character '\\\\'" in str(e.value)

def test_check_syntax_accepts_supported_regexes():
    for regex in ["", "a", "a**", "(a|b)*c", r"\(\)\|\*\\", "((a))", "a b"]:
        redfa.check_syntax(regex)

def test_unclosed_paren(lenient):
    with pytest.raises(redfa.UnmatchedParenthesisError) as e:
        redfa.RegexTree("(a")
    assert e.value.column == 1

    with pytest.raises(redfa.UnmatchedParenthesisError) as e:
        redfa.RegexTree("x(a(b)")
    assert e.value.column == 2

def test_unmatched_close_paren(lenient):
    with pytest.raises(redfa.UnmatchedParenthesisError) as e:
        redfa.RegexTree("a)")
    assert e.value.column == 2
    assert str(e.value) == "Unmatched ')' at column 2:\na)\n ^"

    with pytest.raises(redfa.UnmatchedParenthesisError) as e:
        redfa.RegexTree("ab)*")
    assert e.value.column == 3

def test_empty_subexpressions(lenient):
    with pytest.raises(redfa.ParseError, match="Empty subexpression"):
        redfa.RegexTree("a|")

    with pytest.raises(redfa.ParseError, match="Empty subexpression"):
        redfa.RegexTree("x()")

def test_lenient_single_symbols(lenient):
    tree = redfa.RegexTree("*")
    assert tree.alphabet == {"*"}

    tree = redfa.RegexTree("|")
    assert tree.alphabet == {"|"}

def test_parse_error_is_redfa_error():
    assert issubclass(redfa.UnmatchedParenthesisError, redfa.ParseError)
    assert issubclass(redfa.ParseError, redfa.REDFAError)
    assert issubclass(redfa.IllegalDFAStateError, redfa.REDFAError)
    assert issubclass(redfa.IllegalTreeStateError, redfa.IllegalStateError)
    assert not issubclass(redfa.IllegalDFAStateError, redfa.IllegalTreeStateError)
    assert not issubclass(redfa.IllegalTreeStateError, redfa.IllegalDFAStateError)

def test_illegal_tree_state_message():
    tree = redfa.RegexTree("ab")
    leaf = tree.root.left.right

    err = redfa.IllegalTreeStateError("broken", leaf, regex=tree.regex)
    assert str(err) == "broken\nDue to:\n- b: at column 2:\nab\n ^"
