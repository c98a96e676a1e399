"""Helper functionality that is used in other modules of this package.

Covers the identifier policy (casing, reserved names, derived names) and small builders
that turn one logical unit of Go code (signature, block, table row) into source lines.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import override

CLIENT_ROLE = "Client"
SERVER_ROLE = "Server"

INDENT = "\t"

# Method names that would collide with members of the generated client types.
RESERVED_CLIENT_NAMES: frozenset[str] = frozenset()

GO_KEYWORDS = frozenset(
    {
        "break",
        "case",
        "chan",
        "const",
        "continue",
        "default",
        "defer",
        "else",
        "fallthrough",
        "for",
        "func",
        "go",
        "goto",
        "if",
        "import",
        "interface",
        "map",
        "package",
        "range",
        "return",
        "select",
        "struct",
        "switch",
        "type",
        "var",
    }
)

GO_PREDECLARED_IDENTIFIERS = frozenset(
    {
        # Types
        "any",
        "bool",
        "byte",
        "comparable",
        "complex64",
        "complex128",
        "error",
        "float32",
        "float64",
        "int",
        "int8",
        "int16",
        "int32",
        "int64",
        "rune",
        "string",
        "uint",
        "uint8",
        "uint16",
        "uint32",
        "uint64",
        "uintptr",
        # Constants and the zero value
        "true",
        "false",
        "iota",
        "nil",
        # Functions
        "append",
        "cap",
        "clear",
        "close",
        "complex",
        "copy",
        "delete",
        "imag",
        "len",
        "make",
        "max",
        "min",
        "new",
        "panic",
        "print",
        "println",
        "real",
        "recover",
    }
)

_NON_IDENTIFIER_CHARACTERS = re.compile(r"[^0-9A-Za-z_]")


@dataclass(frozen=True)
class GeneratedIdentifier:
    """A generated Go identifier together with the role it plays in the output."""

    name: str
    provenance: str

    @override
    def __str__(self) -> str:
        return self.name


def _is_ascii_lower(c: str) -> bool:
    return "a" <= c <= "z"


def _is_ascii_digit(c: str) -> bool:
    return "0" <= c <= "9"


def camel_case(name: str) -> str:
    """Convert a schema name to an exported Go identifier.

    An underscore followed by a lowercase letter is dropped and the letter is capitalized.
    A leading underscore becomes `X`, digits are copied unchanged. Names that already are
    in camel case are returned unchanged.

    Examples:
        >>> camel_case("get_feature")
        'GetFeature'
        >>> camel_case("_my_field")
        'XMyField'
        >>> camel_case("GetFeature")
        'GetFeature'

    Args:
        name (str): The schema name.

    Returns:
        str: The camel cased name.
    """
    if not name:
        return ""

    result: list[str] = []
    i = 0
    if name[0] == "_":
        result.append("X")
        i += 1

    while i < len(name):
        c = name[i]
        if c == "_" and i + 1 < len(name) and _is_ascii_lower(name[i + 1]):
            i += 1
            continue

        if _is_ascii_digit(c):
            result.append(c)
            i += 1
            continue

        if _is_ascii_lower(c):
            c = c.upper()
        result.append(c)

        # Accept the lowercase sequence that follows.
        while i + 1 < len(name) and _is_ascii_lower(name[i + 1]):
            i += 1
            result.append(name[i])
        i += 1

    return "".join(result)


def unexport(name: str) -> str:
    """Lowercase exactly the first character of a name.

    Args:
        name (str): A non-empty identifier.

    Raises:
        ValueError: If the name is empty.

    Returns:
        str: The unexported identifier.
    """
    if not name:
        raise ValueError("Cannot unexport an empty name.")
    return name[:1].lower() + name[1:]


def reserved_suffix(name: str, reserved: frozenset[str] = RESERVED_CLIENT_NAMES) -> str:
    """Append an underscore to names that are reserved on the client side.

    Args:
        name (str): The camel cased method name.
        reserved (frozenset[str]): The reserved names. Defaults to RESERVED_CLIENT_NAMES.

    Returns:
        str: The name, suffixed with `_` if it is reserved.
    """
    if name in reserved:
        return f"{name}_"
    return name


def sanitize_name(name: str) -> str:
    """Turn an arbitrary string into a valid Go identifier.

    Invalid characters become underscores, a leading digit gets an underscore prefix,
    and Go keywords get an underscore suffix.
    """
    result = _NON_IDENTIFIER_CHARACTERS.sub("_", name)
    if not result or _is_ascii_digit(result[0]):
        result = f"_{result}"
    if result in GO_KEYWORDS:
        result = f"{result}_"
    return result


# ===== Derived names =====


def client_interface_name(service: str) -> str:
    return f"{service}Client"


def client_struct_name(service: str) -> str:
    return f"{unexport(service)}Client"


def client_constructor_name(service: str) -> str:
    return f"New{service}Client"


def server_interface_name(service: str) -> str:
    return f"{service}Server"


def unimplemented_server_name(service: str) -> str:
    return f"Unimplemented{service}Server"


def register_function_name(service: str) -> str:
    return f"Register{service}Server"


def stream_interface_name(service: str, method: str, role: str) -> str:
    """Name of the exported stream interface, e.g. `RouteGuide_RouteChatClient`."""
    return f"{service}_{method}{role}"


def stream_struct_name(service: str, method: str, role: str) -> str:
    """Name of the unexported stream wrapper, e.g. `routeGuideRouteChatClient`."""
    return f"{unexport(service)}{method}{role}"


def handler_name(service: str, method: str) -> str:
    return f"_{service}_{method}_Handler"


def service_desc_name(service: str) -> str:
    return f"_{service}_serviceDesc"


# ===== Go source builders =====


def go_quote(value: str) -> str:
    """Quote a string as a Go interpreted string literal.

    Args:
        value (str): The raw string.

    Returns:
        str: The quoted literal, including the surrounding double quotes.
    """
    escaped: list[str] = []
    for c in value:
        if c == "\\":
            escaped.append("\\\\")
        elif c == '"':
            escaped.append('\\"')
        elif c == "\n":
            escaped.append("\\n")
        elif c == "\t":
            escaped.append("\\t")
        elif c == "\r":
            escaped.append("\\r")
        elif ord(c) < 0x20 or ord(c) == 0x7F:
            escaped.append(f"\\x{ord(c):02x}")
        else:
            escaped.append(c)
    return '"' + "".join(escaped) + '"'


def join_parameters(parameters: Sequence[str] | None) -> str:
    """Joins parameters by means of ', ', skipping empty entries.

    Args:
        parameters (Sequence[str] | None): The parameters to join.

    Returns:
        str: The joined parameters.
    """
    if parameters:
        return ", ".join(p for p in parameters if p)
    return ""


def new_signature(name: str, parameters: Sequence[str] | None, results: str) -> str:
    """Create a Go function signature without the `func` keyword.

    For example `Ping(ctx context.Context) (*Pong, error)`.
    """
    return f"{name}({join_parameters(parameters)}) {results}"


def indent(lines: Sequence[str]) -> list[str]:
    """Indent lines by one level; empty lines stay empty."""
    return [f"{INDENT}{line}" if line else line for line in lines]


def new_comment(text: str) -> list[str]:
    """Turn comment text into `//` lines, one per line of text.

    The text is used as-is after each `//`, which keeps the leading space that protoc
    preserves in source comments.
    """
    return [f"//{line}" for line in text.removesuffix("\n").split("\n")]


def new_interface(name: str, members: Sequence[str]) -> list[str]:
    return [f"type {name} interface {{", *indent(members), "}"]


def new_struct(name: str, fields: Sequence[str] = ()) -> list[str]:
    return [f"type {name} struct {{", *indent(fields), "}"]


def new_func(header: str, body: Sequence[str]) -> list[str]:
    """Create a Go function from its header (signature) and body lines."""
    return [f"func {header} {{", *indent(body), "}"]


def new_method(receiver: str, header: str, body: Sequence[str]) -> list[str]:
    """Create a Go method on a receiver such as `x *pingClient`."""
    return new_func(f"({receiver}) {header}", body)


def new_err_return(results: str) -> list[str]:
    """The `if err != nil` check that follows an assignment to `err`."""
    return ["if err != nil {", f"{INDENT}return {results}", "}"]


def new_call_err_return(call: str, results: str) -> list[str]:
    """An inline `if err := call; err != nil` check."""
    return [f"if err := {call}; err != nil {{", f"{INDENT}return {results}", "}"]


def new_keyed_element(fields: Sequence[tuple[str, str]]) -> list[str]:
    """Create one element `{Key: value, ...},` of a composite literal."""
    return ["{", *indent([f"{key}: {value}," for key, value in fields]), "},"]
