"""Constrained arithmetic evaluation for math puzzles.

Only numeric literals, ``+ - * /``, unary signs and parentheses are
accepted; anything else in the expression is rejected.
"""

from __future__ import annotations

import ast
import operator
from typing import Callable, Dict, Type

__all__ = ["ExpressionError", "evaluate", "extract_expression", "format_number"]

_SYMBOL_REPLACEMENTS = {"×": "*", "÷": "/", "−": "-"}

_BINARY_OPERATORS: Dict[Type[ast.operator], Callable[[float, float], float]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}

_UNARY_OPERATORS: Dict[Type[ast.unaryop], Callable[[float], float]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

MAX_EXPRESSION_LENGTH = 200


class ExpressionError(ValueError):
    """Raised when an expression is malformed or uses forbidden syntax."""


def extract_expression(question: str) -> str:
    """Pull the arithmetic part out of a ``"Solve: ... = ?"`` question."""

    text = question.split("=", 1)[0]
    if ":" in text:
        text = text.split(":", 1)[1]
    return text.strip()


def _normalise(expression: str) -> str:
    for symbol, replacement in _SYMBOL_REPLACEMENTS.items():
        expression = expression.replace(symbol, replacement)
    return expression


def _evaluate_node(node: ast.AST) -> float:
    if isinstance(node, ast.Expression):
        return _evaluate_node(node.body)
    if isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            raise ExpressionError("Only numeric literals are allowed")
        return node.value
    if isinstance(node, ast.BinOp):
        handler = _BINARY_OPERATORS.get(type(node.op))
        if handler is None:
            raise ExpressionError("Unsupported operator")
        left = _evaluate_node(node.left)
        right = _evaluate_node(node.right)
        try:
            return handler(left, right)
        except ZeroDivisionError as exc:
            raise ExpressionError("Division by zero") from exc
    if isinstance(node, ast.UnaryOp):
        handler_unary = _UNARY_OPERATORS.get(type(node.op))
        if handler_unary is None:
            raise ExpressionError("Unsupported operator")
        return handler_unary(_evaluate_node(node.operand))
    raise ExpressionError(f"Unsupported syntax: {type(node).__name__}")


def evaluate(expression: str) -> float:
    """Evaluate ``expression`` and return its numeric value."""

    normalised = _normalise(expression).strip()
    if not normalised:
        raise ExpressionError("Expression is empty")
    if len(normalised) > MAX_EXPRESSION_LENGTH:
        raise ExpressionError("Expression is too long")
    try:
        tree = ast.parse(normalised, mode="eval")
    except SyntaxError as exc:
        raise ExpressionError(f"Invalid expression: {expression}") from exc
    return _evaluate_node(tree)


def format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"
