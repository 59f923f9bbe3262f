"""Minimal prompt template rendering.

Templates reference bindings with ``{{.name}}`` or ``{{ .user.name }}``
(the leading dot is optional). Whitespace trimming markers ``{{-`` and
``-}}`` are accepted and remove the adjacent whitespace. Anything else
between braces is rejected so a typo fails loudly instead of rendering
half a prompt.
"""

import re
from typing import Any, Callable, Mapping

from ..errors import RenderError

Renderer = Callable[[str, Mapping[str, Any]], str]

_ACTION = re.compile(r"\{\{(-\s)?\s*(.*?)\s*(\s-)?\}\}", re.DOTALL)
_REFERENCE = re.compile(r"^\.?([A-Za-z_][\w-]*(?:\.[A-Za-z_][\w-]*)*)$")
_MISSING = object()
_TRIM_NEXT = object()


def render(template: str, bindings: Mapping[str, Any], name: str = "template") -> str:
    """Render ``template`` against ``bindings``.

    Raises:
        RenderError: unbalanced braces, an unsupported expression or a
            reference that is not present in the bindings.
    """
    out: list[str] = []
    pos = 0
    for match in _ACTION.finditer(template):
        text = template[pos:match.start()]
        _check_unbalanced(text, name)
        if match.group(1):
            text = text.rstrip()
        if out and out[-1] is _TRIM_NEXT:
            out.pop()
            text = text.lstrip()
        out.append(text)
        out.append(_format(_resolve(match.group(2), bindings, name)))
        if match.group(3):
            out.append(_TRIM_NEXT)
        pos = match.end()

    tail = template[pos:]
    _check_unbalanced(tail, name)
    if out and out[-1] is _TRIM_NEXT:
        out.pop()
        tail = tail.lstrip()
    out.append(tail)
    return "".join(out)


def _check_unbalanced(text: str, name: str) -> None:
    if "{{" in text:
        raise RenderError(f"{name}: unclosed action", template_name=name)


def _resolve(expression: str, bindings: Mapping[str, Any], name: str) -> Any:
    if expression == ".":
        return bindings
    match = _REFERENCE.match(expression)
    if not match:
        raise RenderError(f"{name}: unsupported expression '{{{{{expression}}}}}'", template_name=name)

    value: Any = bindings
    for part in match.group(1).split("."):
        if isinstance(value, Mapping):
            value = value.get(part, _MISSING)
        else:
            value = getattr(value, part, _MISSING)
        if value is _MISSING:
            raise RenderError(f"{name}: no value for '.{match.group(1)}'", template_name=name)
    return value


def _format(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return " ".join(_format(v) for v in value)
    return str(value)
