"""
Tokenizer and operator-precedence parser for DiffSolver.

Turns text such as ``2*sin(x) - y/3`` into an expression tree:

  text ──tokenize──▶ tokens ──to_rpn──▶ postfix ──build_tree──▶ Node

The grammar is fixed: numbers, the constants ``pi`` and ``e``, the
variables ``x`` and ``y``, one-argument functions, ``+ - * / ^``, unary
minus and parentheses. Identifiers are case-insensitive.
"""

import math
import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import List

from diffsolver.errors import ParseError
from diffsolver.expression import (
    CONSTANTS, FUNCTIONS, MAX_DEPTH, VARIABLES, Node,
    Binary, Function, Number, Unary, Variable, NEGATION,
)
from diffsolver.render import node_to_string
from diffsolver.simplify import simplify

# ── Token table ──────────────────────────────────────────────────────────

TOKEN_TYPES = [
    ("WHITESPACE", r"\s+"),
    ("NUMBER", r"[0-9.]+"),
    ("IDENT", r"[A-Za-z_][A-Za-z0-9_]*"),
    ("OPERATOR", r"[-+*/^]"),
    ("LPAREN", r"\("),
    ("RPAREN", r"\)"),
    ("COMMA", r","),
    ("MISMATCH", r"."),
]

token_pattern = re.compile("|".join(f"(?P<{name}>{pattern})" for name, pattern in TOKEN_TYPES))

UNARY_MINUS = "u-"


@dataclass(frozen=True)
class OperatorInfo:
    precedence: int
    right_assoc: bool
    arity: int


OPERATOR_INFO = MappingProxyType({
    "+": OperatorInfo(1, False, 2),
    "-": OperatorInfo(1, False, 2),
    "*": OperatorInfo(2, False, 2),
    "/": OperatorInfo(2, False, 2),
    "^": OperatorInfo(3, True, 2),
    UNARY_MINUS: OperatorInfo(4, True, 1),
})

# Token kinds after which a '-' is a negation rather than a subtraction.
_NEGATION_CONTEXT = frozenset({"START", "OPERATOR", "LPAREN", "COMMA"})


@dataclass
class Token:
    """A lexical token; *position* is the offset into the source text."""
    type: str
    value: object = None
    position: int = 0

    def __repr__(self):
        return f"{self.type}:{self.value}@{self.position}"


def normalize_input(text: str) -> str:
    """Map look-alike Unicode characters to ASCII and collapse whitespace."""
    text = text.replace("−", "-").replace("،", ",")
    return re.sub(r"\s+", " ", text).strip()


def tokenize(source: str) -> List[Token]:
    """Split *source* into tokens, folding constants into numbers."""
    tokens = []
    previous = "START"
    for match in token_pattern.finditer(source):
        kind = match.lastgroup
        text = match.group()
        position = match.start()

        if kind == "WHITESPACE":
            continue
        if kind == "MISMATCH":
            raise ParseError(f"Invalid character '{text}' at position {position + 1}.")

        if kind == "NUMBER":
            if text.count(".") > 1 or text == ".":
                raise ParseError(f"Malformed number '{text}' at position {position + 1}.")
            token = Token("NUMBER", float(text), position)
        elif kind == "IDENT":
            token = _identifier_token(text, position)
        elif kind == "OPERATOR":
            op = text
            if op == "-" and previous in _NEGATION_CONTEXT:
                op = UNARY_MINUS
            token = Token("OPERATOR", op, position)
        else:
            token = Token(kind, text, position)

        tokens.append(token)
        previous = token.type
    return tokens


def _identifier_token(text: str, position: int) -> Token:
    lower = text.lower()
    if lower in CONSTANTS:
        return Token("NUMBER", CONSTANTS[lower], position)
    if lower in FUNCTIONS:
        return Token("FUNCTION", lower, position)
    if lower in VARIABLES:
        return Token("VARIABLE", lower, position)
    raise ParseError(
        f"Unknown symbol '{text}'. Use x, y, pi, e or one of: "
        f"{', '.join(sorted(FUNCTIONS))}."
    )


# ── Shunting-yard ────────────────────────────────────────────────────────

def to_rpn(tokens: List[Token]) -> List[Token]:
    """Reorder infix *tokens* into postfix order."""
    output = []
    stack = []
    for token in tokens:
        if token.type in ("NUMBER", "VARIABLE"):
            output.append(token)
        elif token.type in ("FUNCTION", "LPAREN"):
            stack.append(token)
        elif token.type == "COMMA":
            while stack and stack[-1].type != "LPAREN":
                output.append(stack.pop())
            if not stack:
                raise ParseError("Mismatched parentheses.")
        elif token.type == "OPERATOR":
            incoming = OPERATOR_INFO[token.value]
            while stack:
                top = stack[-1]
                if top.type == "FUNCTION":
                    output.append(stack.pop())
                    continue
                if top.type == "OPERATOR":
                    waiting = OPERATOR_INFO[top.value]
                    if (waiting.precedence > incoming.precedence or
                            (waiting.precedence == incoming.precedence
                             and not incoming.right_assoc)):
                        output.append(stack.pop())
                        continue
                break
            stack.append(token)
        elif token.type == "RPAREN":
            while stack and stack[-1].type != "LPAREN":
                output.append(stack.pop())
            if not stack:
                raise ParseError("Mismatched parentheses.")
            stack.pop()
            if stack and stack[-1].type == "FUNCTION":
                output.append(stack.pop())

    while stack:
        top = stack.pop()
        if top.type == "LPAREN":
            raise ParseError("Mismatched parentheses.")
        output.append(top)
    return output


def build_tree(rpn: List[Token]) -> Node:
    """Reduce a postfix token stream to a single expression tree.

    Every stack entry carries its subtree depth so over-deep input is
    rejected before any recursive walk touches it.
    """
    stack = []
    for token in rpn:
        if token.type == "NUMBER":
            stack.append((Number(float(token.value)), 1))
            continue
        if token.type == "VARIABLE":
            stack.append((Variable(token.value), 1))
            continue
        if token.type == "FUNCTION":
            if not stack:
                raise ParseError(f"Function '{token.value}' has no argument.")
            argument, level = stack.pop()
            stack.append(_checked(Function(token.value, argument), level + 1))
            continue
        info = OPERATOR_INFO[token.value]
        if info.arity == 1:
            if not stack:
                raise ParseError("Unary minus is missing its operand.")
            argument, level = stack.pop()
            stack.append(_checked(Unary(NEGATION, argument), level + 1))
        else:
            if len(stack) < 2:
                raise ParseError(f"Operator '{token.value}' is missing an operand.")
            right, right_level = stack.pop()
            left, left_level = stack.pop()
            level = max(left_level, right_level) + 1
            stack.append(_checked(Binary(token.value, left, right), level))

    if len(stack) != 1:
        raise ParseError("The expression does not form a single formula.")
    return stack[0][0]


def _checked(node: Node, level: int) -> tuple:
    if level > MAX_DEPTH:
        raise ParseError("The expression is nested too deeply.")
    return node, level


# ── Public entry points ──────────────────────────────────────────────────

def parse(text: str) -> Node:
    """Parse an expression string into a simplified tree.

    Raises ``ParseError`` with a readable reason on malformed input.
    """
    if text is None or not text.strip():
        raise ParseError("The expression is empty.")
    tokens = tokenize(normalize_input(text))
    node = simplify(build_tree(to_rpn(tokens)))
    if not _all_finite(node):
        raise ParseError("The expression divides by zero or overflows.")
    return node


def _all_finite(node: Node) -> bool:
    if isinstance(node, Number):
        return math.isfinite(node.value)
    if isinstance(node, Variable):
        return True
    if isinstance(node, (Unary, Function)):
        return _all_finite(node.argument)
    return _all_finite(node.left) and _all_finite(node.right)


_LHS_PATTERN = re.compile(r"^dy/dx$")


def parse_equation(text: str) -> tuple:
    """Parse ``dy/dx = <rhs>`` and return ``(rhs_node, normalized_text)``."""
    if text is None or not text.strip():
        raise ParseError("Please enter a differential equation, e.g. dy/dx = x*y.")
    cleaned = normalize_input(text)
    if "=" not in cleaned:
        raise ParseError("The equation must contain '='. Example: dy/dx = x*y")
    lhs, rhs_text = cleaned.split("=", 1)
    if "=" in rhs_text:
        raise ParseError("The equation must contain exactly one '=' sign.")
    if not _LHS_PATTERN.match(lhs.replace(" ", "").lower()):
        raise ParseError("The left-hand side must be dy/dx.")
    rhs = parse(rhs_text)
    return rhs, f"dy/dx = {node_to_string(rhs)}"
