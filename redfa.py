#!/usr/bin/env python
"""
REDFA - the "regex eats dfa" automaton builder.

turns a regular expression into a dfa directly, without ever building an nfa: the regex becomes an augmented syntax tree,
every node learns its nullable/firstpos/lastpos, the leaves learn their followpos and the dfa states are just sets of
leaf positions glued together with followpos.

Copyright (C) 2023 the redfa developers

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU General Public License for more details.
"""

__version__ = "0.2.0"

import abc
import enum
import queue
import sys
import weakref
import lark
import graphviz
from collections import defaultdict
from typing import List, Optional, Iterable, Dict, Set, Tuple, FrozenSet

grammar = r"""
start: regex_alternation?

?regex_alternation: regex_group ("|" regex_group)*

?regex_group: regex_alternation_element+
?regex_alternation_element: regex_literal
                          | regex_literal REGEX_OP -> regex_operation

?regex_literal: REGEX_UNIMPORTANT -> regex_raw_match
              | "(" regex_alternation ")" -> regex_paren_group

REGEX_UNIMPORTANT: /[^*()|\\]|\\./s
REGEX_OP: /\*+/
"""

parser = lark.Lark(grammar, parser="lalr")

"""
REDFA operates in a few 'stages':

- 1. (optional) syntax check of the regex against the grammar above
- 2. conversion to the augmented syntax tree, computing nullable/firstpos/lastpos bottom-up
- 3. a single followpos pass over the finished tree
- 4. subset construction over followpos into the final DFA

Much like the stages of a compiler, each one has a context class which owns the tables it fills in.
"""

# =============
# DEBUG SUPPORT
# =============

class DTAG(enum.Enum):
    NAME = 0
    SOURCE_COLUMN = 1
    PARENT = 2

class ProgramFlag(int, enum.Enum):
    def __new__(cls, value, helpstr="", default=False):
        obj = int.__new__(cls, value)
        obj.default = default
        obj.helpstr = helpstr
        obj._value_ = value
        return obj

    # Syntax options
    STRICT_SYNTAX = (1, "Check the regex against the full grammar before building the tree", True)

    # Verbosity options
    VERBOSE_FOLLOWPOS = 200
    VERBOSE_SUBSET_CONSTRUCTION = 201

    # Debug options
    DEBUG_TREE_SHOW_POSITIONS = (100, "Show nullable/firstpos/lastpos on syntax tree dumps", True)
    DEBUG_DFA_SHOW_POSITIONS = (101, "Show the position set of each state on dfa dumps", True)

class ProgramOption(enum.Enum):
    def __init__(self, default, helpstr):
        self.default = default
        self.helpstr = helpstr

    # Debug options
    DEBUG_GRAPH_DUMP_FORMAT = ("dot", "Output format for graphviz dumpers, use 'dot' to get raw dot file")

class DebugDumpable(enum.Enum):
    TREE = "tree"
    DFA = "dfa"
    FOLLOWPOS = "followpos"
    POSITIONS = "positions"
    TRACEBACK = "traceback"

class ProgramData:
    _collection = weakref.WeakKeyDictionary()
    _flags = {
            x: x.default for x in ProgramFlag
    }
    _options = {
            x: x.default for x in ProgramOption
    }
    _dump = [DebugDumpable.TREE, DebugDumpable.DFA]

    dump_prefix = "regex"
    dry_run = False

    @classmethod
    def imbue(cls, obj: object, tag: DTAG, value: object, *extra_tags):
        """
        Imbue this object with this debug information
        """

        if tag == DTAG.PARENT:
            if obj is value:
                raise REDFAError([obj], "Attempt to set object as its own parent")
            # held weakly, parents already own their children
            value = weakref.ref(value)

        cls._collection.setdefault(obj, {})[tag] = value
        if extra_tags:
            return cls.imbue(obj, *extra_tags)
        return obj

    @classmethod
    def lookup(cls, obj: object, tag: DTAG, recurse_upwards=True, default=None):
        """
        Find the imbued object's data, or -- if none exists -- find it's parents
        """

        try:
            data = cls._collection.get(obj, {})
        except TypeError:
            # not weakly referenceable, so it can't have anything imbued
            return default

        parent = data[DTAG.PARENT]() if DTAG.PARENT in data else None

        if tag == DTAG.PARENT:
            return default if parent is None else parent
        if tag in data:
            return data[tag]
        if recurse_upwards and parent is not None:
            return cls.lookup(parent, tag, default=default)
        return default

    @classmethod
    def _print_version(cls):
        print("redfa", __version__)
        print("Copyright (C) 2023 the redfa developers")
        print("This is free software; see the source for copying conditions.  There is NO")
        print("warranty; not even for MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.")

    @classmethod
    def _print_help(cls, show_all=False):
        print("Usage: redfa [options] [--] regex")
        print("")
        print("Global Options:")
        print("  -o<arg>, --output <arg>                    Write dumped graphs to files starting with <arg> (default: regex)")
        print("  -f<flag>, -fno-<flag>, --flag <flag>=<arg> Enable or disable a flag")
        print("  -d<arg>,<arg>, --dump <arg>,<arg>          Dump <args> to graphs or stdout. Possible values are: " + ", ".join(x.value for x in DebugDumpable))
        print("  -t, --dry-run                              Only build the DFA, don't dump anything")
        print("  -h, --help                                 Show this help screen")
        print("  --help-all                                 Show this help screen; showing hidden debug options")
        print("  --version                                  Show the version of redfa")
        print("")
        print("Options:")

        def filter_options_for_all(options):
            for i in options:
                if show_all:
                    yield i
                else:
                    if i.name.startswith("VERBOSE") or i.name.startswith("DEBUG"):
                        continue
                    yield i

        all_options = list(filter_options_for_all(ProgramOption))
        if all_options:
            pad_length = 4 + len(max(all_options, key=lambda x: len(x.name)).name) + 6
            for option in all_options:
                flag_name = option.name.replace("_", "-").lower()
                opt_str = f"  --{flag_name} <arg>"
                print(f"{opt_str: <{pad_length}} {option.helpstr} (default: {option.default})")
        else:
            print("  (none; use --help-all to show debug options)")
        print("")
        print("Flags:")
        all_flags = list(filter_options_for_all(ProgramFlag))
        pad_length = 2 + len(max(all_flags, key=lambda x: len(x.name)).name)
        for flag in all_flags:
            flag_name = flag.name.replace("_", "-").lower()
            opt_str = f"  {flag_name}"
            if flag.helpstr:
                print(f"{opt_str: <{pad_length}} {flag.helpstr} (default: {flag.default})")
            else:
                print(opt_str)

    @classmethod
    def _reset_flags(cls):
        cls._flags = {
                x: x.default for x in ProgramFlag
        }
        cls._options = {
                x: x.default for x in ProgramOption
        }
        cls._dump = [DebugDumpable.TREE, DebugDumpable.DFA]
        cls.dry_run = False
        cls.dump_prefix = "regex"
        cls._collection = weakref.WeakKeyDictionary()

    @classmethod
    def load_commandline_flags(cls, all_cmd_options: List[str]):
        """
        Load the command line flags passed in. Returns a tuple of (regex, dump_prefix)
        """

        cls._reset_flags()

        regex = None
        dumps = None
        only_positional = False

        all_cmd_options_iter = iter(all_cmd_options)

        for option in all_cmd_options_iter:
            if not option:
                continue
            try:
                if option[0] != "-" or only_positional:
                    if regex is not None:
                        raise RuntimeError("Regex specified multiple times")
                    regex = option
                    continue
                elif option == "--":
                    only_positional = True
                    continue
                elif option[1] == "-":
                    option_name = option[2:]
                    if option_name not in ["help", "dry-run", "version", "help-all"]:
                        option_value = next(all_cmd_options_iter)
                else:
                    option_name = option[1]
                    option_value = option[2:]
            except IndexError:
                raise RuntimeError("Invalid argument " + option)
            except StopIteration:
                raise RuntimeError("Missing value for argument " + option)

            if option_name in ["o", "output"]:
                if not option_value:
                    raise RuntimeError("Missing value for argument " + option)
                cls.dump_prefix = option_value
            elif option_name in ["f", "flag"]:
                if option_name == "f":
                    set_to = True
                    if option_value.startswith("no-"):
                        set_to = False
                        option_value = option_value[3:]
                    flag_name = option_value.upper().replace("-", "_")
                else:
                    if "=" not in option_value:
                        set_to = True
                        flag_name = option_value
                    else:
                        flag_name, set_to = option_value.split("=")
                        set_to = set_to in ["yes", "on"]
                    option_value = flag_name
                    flag_name = flag_name.upper().replace("-", "_")
                if flag_name not in ProgramFlag.__members__:
                    raise RuntimeError("Unknown flag " + option_value)
                cls._flags[ProgramFlag[flag_name]] = set_to
            elif option_name in ["h", "help"]:
                cls._print_help()
                exit(0)
            elif option_name == "help-all":
                cls._print_help(show_all=True)
                exit(0)
            elif option_name == "version":
                cls._print_version()
                exit(0)
            elif option_name in ["d", "dump"]:
                if dumps is None:
                    dumps = []
                for i in option_value.split(","):
                    try:
                        dumps.append(DebugDumpable(i))
                    except ValueError as e:
                        raise RuntimeError("Unknown dump " + i) from e
            elif option_name in ["t", "dry-run"]:
                cls.dry_run = True
            else:
                p_option_name = option_name.upper().replace("-", "_")
                if p_option_name not in ProgramOption.__members__:
                    raise RuntimeError("Unknown option " + option_name)
                try:
                    cls._options[ProgramOption[p_option_name]] = type(ProgramOption[p_option_name].default)(option_value)
                except ValueError as e:
                    raise RuntimeError("Invalid value for option " + option_name) from e

        if regex is None:
            raise RuntimeError("No regex provided!")

        if dumps is not None:
            cls._dump = dumps

        return (regex, cls.dump_prefix)

    @classmethod
    def do(self, flag):
        return self._flags[flag]

    @classmethod
    def option(self, opt):
        return self._options[opt]

    @classmethod
    def dump(self, dumpable):
        return dumpable in self._dump

class IndexableInstance(type):
    def __init__(self, name, bases, dct):
        self._ii_cache = {}

    def __getitem__(cls, obj):
        if obj in cls._ii_cache:
            return cls._ii_cache[obj]
        else:
            cls._ii_cache[obj] = cls(obj) # pylint: disable=no-value-for-parameter
            return cls._ii_cache[obj]

class dprint(metaclass=IndexableInstance):
    def __init__(self, condition):
        self.condition = condition

    def __call__(self, *args, **kwargs):
        if ProgramData.do(self.condition):
            print(*args, **kwargs)


# ===========
# ERROR TYPES
# ===========

class REDFAError(Exception):
    def __init__(self, reasons, message=None, regex=None):
        self.reasons = reasons
        self.message = message
        self.regex = regex

    @classmethod
    def _generate_whitespace_marker(cls, line, column):
        marker = ""
        for i in range(column):
            if i == column - 1:
                marker += "^"
            elif i < len(line) and line[i] == "\t":
                marker += "\t"
            else:
                marker += " "
        return marker

    def _get_message(self, show_potential_reasons=True, reasons_header="Potential reasons include:", subset=None):
        if subset is None:
            subset = self.reasons
        info_strs = []
        for reason in subset:
            name, column = (ProgramData.lookup(reason, tag) for tag in (DTAG.NAME, DTAG.SOURCE_COLUMN))
            if name is None:
                name = getattr(reason, "symbol", None)
            info_str = ""
            if name:
                info_str += f"- {name}:"
            if column is not None and self.regex is not None:
                if not info_str:
                    info_str = "-"
                info_str += f" at column {column}:\n{self.regex}\n" + REDFAError._generate_whitespace_marker(self.regex, column)
            elif not info_str:
                continue
            info_strs.append(info_str)

        if info_strs:
            return (f"{reasons_header}\n" if show_potential_reasons else "") + "\n".join(info_strs)
        else:
            return ""

    def __str__(self):
        if self.message:
            return self.message + " " + self._get_message()
        return self._get_message()

class ParseError(REDFAError):
    """
    The regex itself is malformed; carries the 1-based column the problem was found at
    """

    def __init__(self, msg, regex, column):
        super().__init__([], regex=regex)
        self.msg = msg
        self.column = column

    def __str__(self):
        return f"{self.msg} at column {self.column}:\n{self.regex}\n" + REDFAError._generate_whitespace_marker(self.regex, self.column)

class UnmatchedParenthesisError(ParseError):
    pass

class IllegalStateError(REDFAError):
    """
    Something that should be impossible happened while building; source holds the objects involved
    """

    def __init__(self, msg, *source, regex=None):
        super().__init__([*source], regex=regex)
        self.source = source
        self.msg = msg

    def __str__(self):
        return self.msg + "\n" + self._get_message(reasons_header="Due to:")

class IllegalTreeStateError(IllegalStateError):
    pass

class IllegalDFAStateError(IllegalStateError):
    pass


# ============
# SYNTAX CHECK
# ============

def check_syntax(regex: str):
    """
    Validate the regex against the full grammar, raising a ParseError pointing at the first bad character
    """

    try:
        parser.parse(regex)
    except lark.UnexpectedCharacters as e:
        # columns are counted over the whole regex, not per line
        raise ParseError(f"Unexpected character {regex[e.pos_in_stream]!r}", regex, e.pos_in_stream + 1) from e
    except lark.UnexpectedToken as e:
        if e.token.type == "$END":
            raise ParseError("Unexpected end of regex", regex, len(regex) + 1) from e
        raise ParseError(f"Unexpected {e.token.value!r}", regex, e.token.start_pos + 1) from e
    except lark.UnexpectedEOF as e:
        raise ParseError("Unexpected end of regex", regex, len(regex) + 1) from e


# ==========
# TREE TYPES
# ==========

class Node(abc.ABC):
    """
    A node in the augmented syntax tree.

    The position sets are computed once in the constructor from the children and are frozen from then on.
    """

    nullable: bool
    firstpos: FrozenSet[int]
    lastpos: FrozenSet[int]

    @property
    @abc.abstractmethod
    def symbol(self) -> str:  # pragma: no cover
        """
        Short display name of this node
        """

    @property
    def children(self) -> Tuple["Node", ...]:
        return ()

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.symbol} first={sorted(self.firstpos)} last={sorted(self.lastpos)}>"

class LeafNode(Node):
    def __init__(self, position: int, label: str):
        self.position = position
        self.label = label
        self.firstpos = frozenset((position,))
        self.lastpos = self.firstpos
        self.nullable = False

    @property
    def symbol(self):
        return self.label

class EndNode(Node):
    """
    The '#' marker concatenated after the whole regex. Reaching it means the input can end here.
    """

    def __init__(self, position: int):
        self.position = position
        self.firstpos = frozenset((position,))
        self.lastpos = self.firstpos
        self.nullable = False

    @property
    def symbol(self):
        return "#"

class ConcatNode(Node):
    def __init__(self, left: Node, right: Node):
        ProgramData.imbue(left, DTAG.PARENT, self)
        ProgramData.imbue(right, DTAG.PARENT, self)
        self.left = left
        self.right = right

        if left.nullable:
            self.firstpos = left.firstpos | right.firstpos
        else:
            self.firstpos = left.firstpos

        if right.nullable:
            self.lastpos = right.lastpos | left.lastpos
        else:
            self.lastpos = right.lastpos

        self.nullable = left.nullable and right.nullable

    @property
    def symbol(self):
        return "•"

    @property
    def children(self):
        return (self.left, self.right)

class UnionNode(Node):
    def __init__(self, left: Node, right: Node):
        ProgramData.imbue(left, DTAG.PARENT, self)
        ProgramData.imbue(right, DTAG.PARENT, self)
        self.left = left
        self.right = right
        self.firstpos = left.firstpos | right.firstpos
        self.lastpos = left.lastpos | right.lastpos
        self.nullable = left.nullable or right.nullable

    @property
    def symbol(self):
        return "|"

    @property
    def children(self):
        return (self.left, self.right)

class StarNode(Node):
    def __init__(self, child: Node):
        ProgramData.imbue(child, DTAG.PARENT, self)
        self.child = child
        self.firstpos = child.firstpos
        self.lastpos = child.lastpos
        self.nullable = True

    @property
    def symbol(self):
        return "*"

    @property
    def children(self):
        return (self.child,)

class LeafEntry:
    """
    Arena record for a single leaf position; followpos is the only thing that gets filled in after the tree exists
    """

    def __init__(self, label: str):
        self.label = label
        self.followpos: Set[int] = set()

    def __repr__(self):
        return f"<LeafEntry {self.label!r} follow={sorted(self.followpos)}>"

class TreeBuildCtx:
    """
    Splits a regex into the augmented syntax tree.

    The regex is split outside-in: a top level alternation first, then the last unit (a character, an escape or a
    parenthesized group, possibly starred) is peeled off the right end and concatenated after whatever precedes it.
    Since the left side is always built first, leaves are numbered in left-to-right textual order.
    """

    def __init__(self, regex: str):
        self.regex = regex
        self.leaves: List[LeafEntry] = []

    def build(self) -> Node:
        if not self.regex:
            return self._make_end()
        body = self._build(0, len(self.regex))
        return ProgramData.imbue(ConcatNode(body, self._make_end()), DTAG.SOURCE_COLUMN, len(self.regex) + 1)

    def _make_end(self):
        return ProgramData.imbue(EndNode(len(self.leaves)), DTAG.SOURCE_COLUMN, len(self.regex) + 1)

    def _make_leaf(self, label, start):
        leaf = LeafNode(len(self.leaves), label)
        self.leaves.append(LeafEntry(label))
        return ProgramData.imbue(leaf, DTAG.SOURCE_COLUMN, start + 1)

    def _maybe_star(self, node, star):
        if star is None:
            return node
        return ProgramData.imbue(StarNode(node), DTAG.SOURCE_COLUMN, star + 1)

    def _is_escaped(self, idx, start):
        backslashes = 0
        while idx - backslashes - 1 >= start and self.regex[idx - backslashes - 1] == "\\":
            backslashes += 1
        return backslashes % 2 == 1

    def _find_open_paren(self, start, close):
        """
        Scan backwards from the ')' at close for the '(' that matches it
        """

        depth = 1
        for i in range(close - 1, start - 1, -1):
            if self._is_escaped(i, start):
                continue
            if self.regex[i] == ")":
                depth += 1
            elif self.regex[i] == "(":
                depth -= 1
                if depth == 0:
                    return i

        raise UnmatchedParenthesisError("Unmatched ')'", self.regex, close + 1)

    def _build(self, start: int, end: int, star: Optional[int] = None) -> Node:
        """
        Build the subtree for regex[start:end].

        star is the index of a trailing '*' the caller already stripped off; the subtree built here gets wrapped in it.
        """
        regex = self.regex

        if start >= end:
            raise ParseError("Empty subexpression", regex, start + 1)

        # a / \a
        if end - start == 1 or (end - start == 2 and regex[start] == "\\"):
            return self._maybe_star(self._make_leaf(regex[end - 1], start), star)

        # ...|...
        depth = 0
        opened = []
        i = start
        while i < end:
            if regex[i] == "\\":
                i += 2
                continue
            if regex[i] == "(":
                depth += 1
                opened.append(i)
            elif regex[i] == ")":
                depth -= 1
                if opened:
                    opened.pop()
            elif regex[i] == "|" and depth == 0:
                left = self._build(start, i)
                right = self._build(i + 1, end)
                union = ProgramData.imbue(UnionNode(left, right), DTAG.SOURCE_COLUMN, i + 1)
                return self._maybe_star(union, star)
            i += 1

        if depth > 0:
            raise UnmatchedParenthesisError("Unclosed '('", regex, opened[-1] + 1)

        last = end - 1
        if self._is_escaped(last, start):
            # ...\x
            unit_start = last - 1
        elif regex[last] == "*":
            return self._build(start, last, star=last)
        elif regex[last] == ")":
            unit_start = self._find_open_paren(start, last)
            if unit_start == start:
                # (...)
                return self._maybe_star(self._build(start + 1, last), star)
            # ...(...) is handled below like any other unit
        else:
            # ...x
            unit_start = last

        prefix = self._build(start, unit_start)
        unit = self._maybe_star(self._build(unit_start, end), star)
        return ProgramData.imbue(ConcatNode(prefix, unit), DTAG.SOURCE_COLUMN, unit_start + 1)

class RegexTree:
    """
    The augmented syntax tree for a regex, along with the followpos table over its leaves.

    Everything downstream (the DFA constructor, the dumpers) only goes through the read-only query methods here.
    """

    def __init__(self, regex: str):
        self.regex = regex

        if ProgramData.do(ProgramFlag.STRICT_SYNTAX):
            check_syntax(regex)

        ctx = TreeBuildCtx(regex)
        self._root = ctx.build()
        self._leaves = ctx.leaves
        self._alphabet = frozenset(self._compute_alphabet(self._root))

        self.compute_followpos()

    @property
    def root(self) -> Node:
        return self._root

    @property
    def alphabet(self) -> FrozenSet[str]:
        return self._alphabet

    @property
    def root_firstpos(self) -> FrozenSet[int]:
        return self._root.firstpos

    @property
    def end_pos(self) -> int:
        """
        Position of the end marker, which is also the number of leaves
        """
        return len(self._leaves)

    def followpos(self, pos: int) -> FrozenSet[int]:
        if 0 <= pos < len(self._leaves):
            return frozenset(self._leaves[pos].followpos)
        return frozenset()

    def has_label(self, pos: int, label: str) -> bool:
        if 0 <= pos < len(self._leaves):
            return self._leaves[pos].label == label
        return False

    def label(self, pos: int) -> Optional[str]:
        if 0 <= pos < len(self._leaves):
            return self._leaves[pos].label
        return None

    def walk(self) -> Iterable[Node]:
        """
        Yield every node of the tree in pre-order
        """

        to_visit = [self._root]
        while to_visit:
            node = to_visit.pop()
            yield node
            to_visit.extend(reversed(node.children))

    def _compute_alphabet(self, node: Node) -> Set[str]:
        if isinstance(node, (ConcatNode, UnionNode)):
            return self._compute_alphabet(node.left) | self._compute_alphabet(node.right)
        elif isinstance(node, StarNode):
            return self._compute_alphabet(node.child)
        elif isinstance(node, LeafNode):
            return {node.label}
        elif isinstance(node, EndNode):
            return set()
        else:
            raise IllegalTreeStateError("Unknown node type in regex tree", node, regex=self.regex)

    def _add_followpos(self, positions: Iterable[int], following: FrozenSet[int], node: Node):
        for pos in positions:
            if not 0 <= pos < len(self._leaves):
                raise IllegalTreeStateError("End marker is not the last position of the tree", node, regex=self.regex)
            dprint[ProgramFlag.VERBOSE_FOLLOWPOS]("followpos", pos, "+=", sorted(following))
            self._leaves[pos].followpos |= following

    def compute_followpos(self):
        """
        Fill in followpos for every leaf. This only ever adds to the (set) tables, so running it again is harmless.
        """

        to_visit = [self._root]
        while to_visit:
            node = to_visit.pop()
            if isinstance(node, ConcatNode):
                self._add_followpos(node.left.lastpos, node.right.firstpos, node)
            elif isinstance(node, StarNode):
                self._add_followpos(node.child.lastpos, node.child.firstpos, node)
            elif not isinstance(node, (UnionNode, LeafNode, EndNode)):
                raise IllegalTreeStateError("Unknown node type in regex tree", node, regex=self.regex)
            to_visit.extend(node.children)


# =========
# DFA TYPES
# =========

class DFA:
    """
    Deterministic automaton whose states are sets of tree positions.

    States are plain integer ids handed out in the order they were discovered; the transition table is partial, with
    a missing entry meaning the input is rejected.
    """

    def __init__(self):
        self.states: Dict[int, FrozenSet[int]] = {}
        self.starting_state: Optional[int] = None
        self.accepting_states: Set[int] = set()
        self.transitions: Dict[Tuple[int, str], int] = {}

    def add(self, positions: Iterable[int]) -> int:
        state = len(self.states)
        self.states[state] = frozenset(positions)
        if self.starting_state is None:
            self.starting_state = state
        return state

    def mark_accepting(self, state: int):
        if state not in self.states:
            raise IllegalDFAStateError(f"Cannot accept on unknown state {state}")
        self.accepting_states.add(state)

    def transition(self, state: int, symbol: str, target: int):
        for x in (state, target):
            if x not in self.states:
                raise IllegalDFAStateError(f"Transition refers to unknown state {x}")
        existing = self.transitions.get((state, symbol))
        if existing is not None and existing != target:
            raise IllegalDFAStateError(f"State {state} already goes to {existing} on {symbol!r}, not {target}")
        self.transitions[(state, symbol)] = target

    def positions_of(self, state: int) -> FrozenSet[int]:
        return self.states[state]

    def target(self, state: int, symbol: str) -> Optional[int]:
        return self.transitions.get((state, symbol))

    def is_accepting(self, state: int) -> bool:
        return state in self.accepting_states

    def all_transitions(self) -> Iterable[Tuple[int, str, int]]:
        """
        Yield every transition as (state, symbol, target), ordered by state then symbol
        """

        for (state, symbol), target in sorted(self.transitions.items()):
            yield (state, symbol, target)

    def dfs(self):
        """
        Construct a dfs-order traversal of the DFA
        """

        outgoing = defaultdict(list)
        for state, _, target in self.all_transitions():
            outgoing[state].append(target)

        visited = set()

        def aux(state):
            if state is None or state in visited:
                return
            visited.add(state)
            yield state

            for target in outgoing[state]:
                yield from aux(target)

        yield from aux(self.starting_state)

    def is_valid(self):
        """
        Can we still reach at least one accept state?
        """

        for state in self.dfs():
            if state in self.accepting_states:
                return True

        return False

class DfaCompileCtx:
    """
    Runs the subset construction, where each subset is a union of followpos sets
    """

    def __init__(self, tree: RegexTree):
        self.tree = tree
        self.dfa: Optional[DFA] = None

    def _moves(self, positions: FrozenSet[int], on: str) -> FrozenSet[int]:
        result = set()
        for pos in sorted(positions):
            if self.tree.has_label(pos, on):
                result |= self.tree.followpos(pos)
        return frozenset(result)

    def compile(self) -> DFA:
        dfa = DFA()
        alphabet = sorted(self.tree.alphabet)
        visited_states: Dict[FrozenSet[int], int] = {}
        to_process = queue.Queue()

        start_dfa_state = frozenset(self.tree.root_firstpos)
        visited_states[start_dfa_state] = dfa.add(start_dfa_state)
        to_process.put(start_dfa_state)

        while not to_process.empty():
            processing = to_process.get()
            for symbol in alphabet:
                new_state = self._moves(processing, symbol)
                if not new_state:
                    continue
                if new_state not in visited_states:
                    visited_states[new_state] = dfa.add(new_state)
                    dprint[ProgramFlag.VERBOSE_SUBSET_CONSTRUCTION]("new state", visited_states[new_state], sorted(new_state))
                    to_process.put(new_state)
                dfa.transition(visited_states[processing], symbol, visited_states[new_state])

        end_pos = self.tree.end_pos
        for state, positions in dfa.states.items():
            if end_pos in positions:
                dfa.mark_accepting(state)

        self.dfa = dfa
        return dfa


# =====
# DEBUG
# =====

def _format_positions(positions: Iterable[int]):
    return "{" + ", ".join(str(x) for x in sorted(positions)) + "}"

def _save_graph(g: graphviz.Digraph, out_name: str):
    if ProgramData.option(ProgramOption.DEBUG_GRAPH_DUMP_FORMAT) == "dot":
        g.save(out_name + ".dot")
    else:
        g.render(out_name, format=ProgramData.option(ProgramOption.DEBUG_GRAPH_DUMP_FORMAT), cleanup=True)

def debug_dump_tree(tree: RegexTree, out_name="tree"):
    g = graphviz.Digraph(name='regex_tree', comment=tree.regex)
    g.attr("node", shape="plaintext")

    for node in tree.walk():
        label = graphviz.escape(node.symbol)
        if isinstance(node, LeafNode):
            label += f"@{node.position}"
        if ProgramData.do(ProgramFlag.DEBUG_TREE_SHOW_POSITIONS):
            label += "\\nnullable: {}\\nfirstpos: {}\\nlastpos: {}".format(
                node.nullable, _format_positions(node.firstpos), _format_positions(node.lastpos)
            )
        g.node(str(id(node)), label=graphviz.nohtml(label))
        for child in node.children:
            g.edge(str(id(node)), str(id(child)))

    _save_graph(g, out_name)
    return g

def debug_dump_dfa(dfa: DFA, out_name="dfa"):
    g = graphviz.Digraph(name='dfa')

    for state, positions in dfa.states.items():
        shape = "circle"
        if state in dfa.accepting_states:
            shape = "doublecircle"
        elif state == dfa.starting_state:
            shape = "square"
        label = str(state)
        if ProgramData.do(ProgramFlag.DEBUG_DFA_SHOW_POSITIONS):
            label += "\\n" + _format_positions(positions)
        g.node(str(state), shape=shape, label=graphviz.nohtml(label))

    # group all the symbols going between the same pair of states onto one edge
    edges = defaultdict(list)
    for state, symbol, target in dfa.all_transitions():
        edges[(state, target)].append(symbol)

    for (state, target), symbols in sorted(edges.items()):
        g.edge(str(state), str(target), label=graphviz.escape(",".join(sorted(symbols))))

    _save_graph(g, out_name)
    return g

def debug_dump_followpos(tree: RegexTree, target=None):
    if target is None:
        target = sys.stdout

    def name(pos):
        return "#" if pos == tree.end_pos else tree.label(pos)

    for pos in range(tree.end_pos):
        print(f"{pos} {tree.label(pos)}: " + ", ".join(f"{x} {name(x)}" for x in sorted(tree.followpos(pos))), file=target)

def debug_dump_positions(tree: RegexTree, target=None):
    if target is None:
        target = sys.stdout

    for node in tree.walk():
        column = ProgramData.lookup(node, DTAG.SOURCE_COLUMN, recurse_upwards=False)
        print(f"{node.symbol}[{column}]:", file=target)
        print(f"\tnullable: {node.nullable}", file=target)
        print(f"\tfirstpos: {_format_positions(node.firstpos)}", file=target)
        print(f"\tlastpos: {_format_positions(node.lastpos)}", file=target)

def main():
    try:
        regex, dump_prefix = ProgramData.load_commandline_flags(sys.argv[1:])
    except RuntimeError as e:
        print(str(e), file=sys.stderr)
        print("Try redfa --help for more information", file=sys.stderr)
        exit(1)

    try:
        tree = RegexTree(regex)
    except REDFAError as e:
        if ProgramData.dump(DebugDumpable.TRACEBACK):
            raise
        else:
            print("Parse error:", str(e), file=sys.stderr)
            exit(3)

    dctx = DfaCompileCtx(tree)
    dfa = dctx.compile()

    if ProgramData.dry_run:
        print("... dry run, built {} states over {} symbols".format(len(dfa.states), len(tree.alphabet)))
        exit(0)

    if ProgramData.dump(DebugDumpable.FOLLOWPOS): debug_dump_followpos(tree)
    if ProgramData.dump(DebugDumpable.POSITIONS): debug_dump_positions(tree)
    if ProgramData.dump(DebugDumpable.TREE): debug_dump_tree(tree, dump_prefix + ".tree")
    if ProgramData.dump(DebugDumpable.DFA): debug_dump_dfa(dfa, dump_prefix + ".dfa")

if __name__ == "__main__":
    main()
