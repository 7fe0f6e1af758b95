import pytest
import redfa

def test_help_doesnt_crash():
    redfa.ProgramData._print_help()
    redfa.ProgramData._print_help(show_all=True)

    with pytest.raises(SystemExit):
        redfa.ProgramData.load_commandline_flags(("--help",))
    with pytest.raises(SystemExit):
        redfa.ProgramData.load_commandline_flags(("--help-all",))
    with pytest.raises(SystemExit):
        redfa.ProgramData.load_commandline_flags(("--version",))

def test_defaults():
    assert redfa.ProgramData.load_commandline_flags(("a|b",)) == ("a|b", "regex")

    assert redfa.ProgramData.do(redfa.ProgramFlag.STRICT_SYNTAX)
    assert not redfa.ProgramData.do(redfa.ProgramFlag.VERBOSE_FOLLOWPOS)
    assert redfa.ProgramData.option(redfa.ProgramOption.DEBUG_GRAPH_DUMP_FORMAT) == "dot"
    assert redfa.ProgramData.dump(redfa.DebugDumpable.TREE)
    assert redfa.ProgramData.dump(redfa.DebugDumpable.DFA)
    assert not redfa.ProgramData.dump(redfa.DebugDumpable.FOLLOWPOS)
    assert not redfa.ProgramData.dry_run

def test_param_load_methods():
    assert redfa.ProgramData.load_commandline_flags((
        "--flag", "verbose-followpos=yes", "-fno-strict-syntax", "-t", "-dfollowpos,tree", "-odumtest",
        "--debug-graph-dump-format", "svg", "(a|b)*"
    )) == ("(a|b)*", "dumtest")

    assert redfa.ProgramData.do(redfa.ProgramFlag.VERBOSE_FOLLOWPOS)
    assert not redfa.ProgramData.do(redfa.ProgramFlag.STRICT_SYNTAX)
    assert redfa.ProgramData.dry_run
    assert redfa.ProgramData.dump(redfa.DebugDumpable.FOLLOWPOS)
    assert redfa.ProgramData.dump(redfa.DebugDumpable.TREE)
    assert not redfa.ProgramData.dump(redfa.DebugDumpable.DFA)
    assert redfa.ProgramData.option(redfa.ProgramOption.DEBUG_GRAPH_DUMP_FORMAT) == "svg"

def test_flag_off_with_long_form():
    redfa.ProgramData.load_commandline_flags(("--flag", "strict-syntax=off", "a"))

    assert not redfa.ProgramData.do(redfa.ProgramFlag.STRICT_SYNTAX)

def test_regex_after_double_dash():
    assert redfa.ProgramData.load_commandline_flags(("-ttt", "--", "-a")) == ("-a", "regex")

def test_param_errors():
    with pytest.raises(RuntimeError, match="multiple times"):
        redfa.ProgramData.load_commandline_flags(("a", "b"))

    with pytest.raises(RuntimeError, match="Missing value for argument"):
        redfa.ProgramData.load_commandline_flags(("a", "--output"))

    with pytest.raises(RuntimeError, match="Unknown option"):
        redfa.ProgramData.load_commandline_flags(("a", "-GHA"))

    with pytest.raises(RuntimeError, match="Unknown flag"):
        redfa.ProgramData.load_commandline_flags(("a", "-fdoes-not-exist"))

    with pytest.raises(RuntimeError, match="Unknown dump"):
        redfa.ProgramData.load_commandline_flags(("a", "-dnfa"))

    with pytest.raises(RuntimeError, match="Invalid argument"):
        redfa.ProgramData.load_commandline_flags(("a", "-"))

    with pytest.raises(RuntimeError, match="No regex"):
        redfa.ProgramData.load_commandline_flags(())
