from __future__ import annotations

import ast
from collections.abc import Callable, Mapping
import math

import numpy as np

from shadeplot.errors import UsageError


Value = np.ndarray | float

_UNARY: dict[str, Callable[[Value], Value]] = {
    "sqr": lambda a: a * a,
    "sqrt": np.sqrt,
    "exp": np.exp,
    "ln": np.log,
    "log": np.log10,
    "sin": np.sin,
    "cos": np.cos,
    "tan": np.tan,
    "atan": np.arctan,
    "abs": np.abs,
    "chs": np.negative,
}
_BINARY: dict[str, Callable[[Value, Value], Value]] = {
    "+": np.add,
    "-": np.subtract,
    "*": np.multiply,
    "/": np.divide,
    "pow": np.power,
    "min": np.minimum,
    "max": np.maximum,
}
_CONSTANTS = {"pi": math.pi, "e": math.e}

_AST_BINARY: dict[type, Callable[[Value, Value], Value]] = {
    ast.Add: np.add,
    ast.Sub: np.subtract,
    ast.Mult: np.multiply,
    ast.Div: np.divide,
    ast.Pow: np.power,
    ast.Mod: np.mod,
}


def evaluate(expression: str, variables: Mapping[str, Value], *, algebraic: bool = False) -> Value:
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        if algebraic:
            return evaluate_algebraic(expression, variables)
        return evaluate_rpn(expression, variables)


def evaluate_rpn(expression: str, variables: Mapping[str, Value]) -> Value:
    """Stack evaluation of a whitespace-separated postfix expression."""
    stack: list[Value] = []
    tokens = expression.split()
    if not tokens:
        raise UsageError("equation is empty")
    for token in tokens:
        if token in _BINARY:
            if len(stack) < 2:
                raise UsageError(f"equation stack underflow at {token!r}")
            b = stack.pop()
            a = stack.pop()
            stack.append(_BINARY[token](a, b))
        elif token in _UNARY:
            if not stack:
                raise UsageError(f"equation stack underflow at {token!r}")
            stack.append(_UNARY[token](stack.pop()))
        else:
            stack.append(_operand(token, variables))
    if len(stack) != 1:
        raise UsageError(f"equation leaves {len(stack)} values on the stack")
    return stack[0]


def evaluate_algebraic(expression: str, variables: Mapping[str, Value]) -> Value:
    try:
        tree = ast.parse(expression.replace("^", "**"), mode="eval")
    except SyntaxError as exc:
        raise UsageError(f"cannot parse equation {expression!r}: {exc.msg}") from exc
    return _eval_node(tree.body, variables)


def _operand(token: str, variables: Mapping[str, Value]) -> Value:
    if token in variables:
        return variables[token]
    if token in _CONSTANTS:
        return _CONSTANTS[token]
    try:
        return float(token)
    except ValueError:
        raise UsageError(f"unknown equation symbol {token!r}") from None


def _eval_node(node: ast.AST, variables: Mapping[str, Value]) -> Value:
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
        return float(node.value)
    if isinstance(node, ast.Name):
        return _operand(node.id, variables)
    if isinstance(node, ast.BinOp) and type(node.op) in _AST_BINARY:
        return _AST_BINARY[type(node.op)](_eval_node(node.left, variables), _eval_node(node.right, variables))
    if isinstance(node, ast.UnaryOp) and isinstance(node.op, (ast.USub, ast.UAdd)):
        operand = _eval_node(node.operand, variables)
        return np.negative(operand) if isinstance(node.op, ast.USub) else operand
    if isinstance(node, ast.Call) and isinstance(node.func, ast.Name) and not node.keywords:
        name = node.func.id
        args = [_eval_node(arg, variables) for arg in node.args]
        if name in _UNARY and len(args) == 1:
            return _UNARY[name](args[0])
        if name in ("pow", "min", "max") and len(args) == 2:
            return _BINARY[name](args[0], args[1])
        raise UsageError(f"unsupported function call {name}() with {len(args)} arguments")
    raise UsageError(f"unsupported equation syntax: {type(node).__name__}")
