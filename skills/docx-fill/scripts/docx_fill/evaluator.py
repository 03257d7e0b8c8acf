#!/usr/bin/env python3
"""
ABOUTME: Evaluators that turn a placeholder key or expression into text
ABOUTME: Contract: evaluate(expression, context) -> Resolution(value, found)
"""

import re
from collections.abc import Mapping
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Protocol

from jinja2 import Environment, StrictUndefined, TemplateSyntaxError, UndefinedError

from .common import NO_VALUE


class Resolution(NamedTuple):
    """Outcome of evaluating one placeholder"""
    value: str
    found: bool
    reason: Optional[str] = None


def not_found(reason: str) -> Resolution:
    return Resolution('', False, reason)


class Evaluator(Protocol):
    def evaluate(self, expression: str, context: Any) -> Resolution:
        ...


# A leading-dot field reference (".name") outside of string literals.
# Group 1 captures string literals so they are kept verbatim.
_FIELD_REF_PATTERN = re.compile(
    r'("(?:[^"\\]|\\.)*"|\'(?:[^\'\\]|\\.)*\'|`[^`]*`)'
    r'|(?<![\w)\]}])\.(?=[A-Za-z_])'
)

# Trim markers: "{{- .x -}}"
_TRIM_PATTERN = re.compile(r'^-\s+|\s+-$')

_STRING = r'"(?:[^"\\]|\\.)*"|\'(?:[^\'\\]|\\.)*\''

# Pipeline pieces: string literals, brackets, pipes, other text, stray quotes
_PIPELINE_TOKEN_PATTERN = re.compile(_STRING + r'|[()\[\]{}|]|[^"\'()\[\]{}|]+|.', re.DOTALL)

# Go command form "f arg1 arg2" with literal or name arguments
_ARGUMENT = _STRING + r'|-?\d+(?:\.\d+)?|[A-Za-z_][\w.]*'
_COMMAND_PATTERN = re.compile(r'^([A-Za-z_]\w*)((?:\s+(?:' + _ARGUMENT + r'))+)$')
_ARGUMENT_PATTERN = re.compile(_ARGUMENT)

# Words that make "a b c" a Jinja expression rather than a command
_JINJA_KEYWORDS = frozenset({'and', 'or', 'not', 'in', 'is', 'if', 'else'})

# Go actions; never turned into calls
_GO_ACTIONS = frozenset({'range', 'with', 'define', 'template', 'block', 'end'})


def _split_pipeline(expression: str) -> List[str]:
    """Split on '|' outside of string literals and brackets"""
    segments = []
    current = []
    depth = 0
    for token in _PIPELINE_TOKEN_PATTERN.findall(expression):
        if token in ('(', '[', '{'):
            depth += 1
        elif token in (')', ']', '}'):
            depth -= 1
        elif token == '|' and depth == 0:
            segments.append(''.join(current))
            current = []
            continue
        current.append(token)
    segments.append(''.join(current))
    return segments


def _command_to_call(segment: str) -> str:
    """Turn the command "add x 5" into "add(x, 5)"; other segments come back stripped"""
    segment = segment.strip()
    match = _COMMAND_PATTERN.match(segment)
    if not match:
        return segment
    args = _ARGUMENT_PATTERN.findall(match.group(2))
    name = match.group(1)
    if name in _JINJA_KEYWORDS or name in _GO_ACTIONS or _JINJA_KEYWORDS.intersection(args):
        return segment
    return f"{name}({', '.join(args)})"


def normalize_expression(expression: str) -> str:
    """
    Convert a Go-style field expression to a Jinja expression.

    ".name" becomes "name" and ".company.employees.0.name" becomes
    "company.employees.0.name". Dots after names, calls and subscripts are
    attribute access and stay. Go command forms become calls:
    "add .x 5" becomes "add(x, 5)" and ".items | join ", "" becomes
    "items | join(", ")". Jinja passes the piped value as the first argument.

    Args:
        expression: Text between the {{ and }} markers

    Returns:
        Expression suitable for compiling as "{{ <expression> }}"
    """
    expression = _TRIM_PATTERN.sub('', expression.strip())

    def replace(match):
        literal = match.group(1)
        if literal is None:
            return ''
        if literal.startswith('`'):
            # Go raw string
            return repr(literal[1:-1])
        return literal

    expression = _FIELD_REF_PATTERN.sub(replace, expression)
    return ' | '.join(_command_to_call(segment) for segment in _split_pipeline(expression))


def context_variables(context: Any) -> Dict[str, Any]:
    """Expose a mapping's string keys, or an object's public attributes, as variables"""
    if isinstance(context, Mapping):
        return {k: v for k, v in context.items() if isinstance(k, str)}
    return {
        name: getattr(context, name)
        for name in dir(context)
        if not name.startswith('_')
    }


def _finalize(value):
    if value is None:
        return NO_VALUE
    return value


class JinjaEvaluator:
    """
    Expression evaluator backed by a Jinja2 environment.

    Missing fields raise through StrictUndefined and resolve as not found,
    as do expressions that fail to compile (unknown filter, stray syntax).
    Exceptions raised by user functions propagate. Go control actions
    ({{if}}, {{range}}, {{end}}) are not expressions and stay literal.
    """

    def __init__(self, funcs: Optional[Dict[str, Callable]] = None):
        self.env = Environment(
            undefined=StrictUndefined,
            finalize=_finalize,
            autoescape=False,
            keep_trailing_newline=True,
        )
        self._compiled = {}
        if funcs:
            self.add_funcs(funcs)

    def add_funcs(self, funcs: Dict[str, Callable]):
        """Register callables as both filters ("x | f") and globals ("f(x)")"""
        self.env.filters.update(funcs)
        self.env.globals.update(funcs)
        # Filters are bound at compile time
        self._compiled.clear()

    def _compile(self, expression: str):
        template = self._compiled.get(expression)
        if template is None:
            source = "{{ " + normalize_expression(expression) + " }}"
            template = self.env.from_string(source)
            self._compiled[expression] = template
        return template

    def evaluate(self, expression: str, context: Any) -> Resolution:
        if context is None:
            return not_found("no template data")
        if not expression.strip():
            return not_found("empty expression")
        try:
            template = self._compile(expression)
        except TemplateSyntaxError as e:
            return not_found(f"invalid expression: {e.message}")
        try:
            value = template.render(context_variables(context))
        except UndefinedError as e:
            return not_found(f"missing field: {e.message}")
        if NO_VALUE in value:
            return not_found("result contains <no value>")
        return Resolution(value, True)


class MapEvaluator:
    """Looks simple {key} placeholders up in a flat mapping"""

    def evaluate(self, key: str, context: Any) -> Resolution:
        if context is None:
            return not_found("no replacement map")
        if key not in context:
            return not_found("key not in replacement map")
        value = context[key]
        if value is None:
            return not_found("replacement value is None")
        return Resolution(str(value), True)
