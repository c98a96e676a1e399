"""Go package naming, import registration and message type resolution."""

from __future__ import annotations

import logging
import posixpath
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Protocol

from google.protobuf import descriptor_pb2

from protoc_gen_kite import helper

logger = logging.getLogger(__name__)

AddImport = Callable[[str], str]


class ResolutionError(Exception):
    """Raised when a type reference does not name any known message."""

    def __init__(self, type_ref: str, file_name: str = ""):
        self.type_ref = type_ref
        self.file_name = file_name
        location = f" (referenced from {file_name})" if file_name else ""
        super().__init__(f"Unable to resolve message type '{type_ref}'{location}.")


def go_import_path(proto: descriptor_pb2.FileDescriptorProto) -> str:
    """The Go import path of the package generated for a proto file.

    Uses the `go_package` option (without a `;name` suffix) and falls back to the
    directory of the proto file.
    """
    go_package = proto.options.go_package
    if go_package:
        return go_package.split(";", 1)[0]
    return posixpath.dirname(proto.name)


def go_package_name(proto: descriptor_pb2.FileDescriptorProto) -> str:
    """The Go package name used in the package clause of generated files.

    Args:
        proto (descriptor_pb2.FileDescriptorProto): The proto file.

    Returns:
        str: The package name, sanitized to a Go identifier.
    """
    go_package = proto.options.go_package
    if ";" in go_package:
        return helper.sanitize_name(go_package.split(";", 1)[1])

    import_path = go_import_path(proto)
    if import_path:
        return helper.sanitize_name(posixpath.basename(import_path))

    if proto.package:
        return helper.sanitize_name(proto.package.replace(".", "_"))

    base_name = posixpath.basename(proto.name)
    return helper.sanitize_name(base_name.removesuffix(".proto"))


class ImportRegistry:
    """Records the Go packages referenced by one generated file and the aliases used for them."""

    def __init__(self, own_package_name: str):
        self._aliases: dict[str, str] = {}
        # An alias must not shadow a predeclared identifier such as `error`.
        self._used_names: set[str] = {own_package_name, *helper.GO_PREDECLARED_IDENTIFIERS}

    def add_import(self, import_path: str) -> str:
        """Register an import and return the alias to use for it in generated code.

        The alias is the sanitized last path element, made unique with a numeric suffix.
        Registering the same path again returns the same alias.

        Args:
            import_path (str): The Go import path.

        Returns:
            str: The package alias.
        """
        if import_path in self._aliases:
            return self._aliases[import_path]

        base = helper.sanitize_name(posixpath.basename(import_path))
        alias = base
        suffix = 1
        while alias in self._used_names:
            alias = f"{base}{suffix}"
            suffix += 1

        self._aliases[import_path] = alias
        self._used_names.add(alias)
        logger.debug("Registered import %s as %s", import_path, alias)
        return alias

    @property
    def imports(self) -> list[tuple[str, str]]:
        """All registered imports as `(alias, import path)`, sorted by import path."""
        return sorted(((alias, path) for path, alias in self._aliases.items()), key=lambda item: item[1])

    def dumps(self) -> list[str]:
        """The import declaration of the generated file; empty if nothing was imported."""
        if not self._aliases:
            return []
        return ["import (", *helper.indent([f"{alias} {helper.go_quote(path)}" for alias, path in self.imports]), ")"]


@dataclass(frozen=True)
class GoType:
    """Where a message lives in the generated Go code."""

    go_name: str
    import_path: str


def _index_messages(
    index: dict[str, GoType],
    messages: Iterable[descriptor_pb2.DescriptorProto],
    proto_prefix: str,
    go_prefix: str,
    import_path: str,
) -> None:
    for message in messages:
        full_name = f"{proto_prefix}.{message.name}"
        go_name = f"{go_prefix}{helper.camel_case(message.name)}"
        index[full_name] = GoType(go_name, import_path)
        _index_messages(index, message.nested_type, full_name, f"{go_name}_", import_path)


def build_type_index(files: Iterable[descriptor_pb2.FileDescriptorProto]) -> dict[str, GoType]:
    """Map every fully-qualified message name (e.g. `.pkg.Outer.Inner`) to its Go type.

    Nested messages are named by joining the camel cased names of all parents with `_`.

    Args:
        files (Iterable[descriptor_pb2.FileDescriptorProto]): All files known to the run, including dependencies.

    Returns:
        dict[str, GoType]: The type index.
    """
    index: dict[str, GoType] = {}
    for proto in files:
        prefix = f".{proto.package}" if proto.package else ""
        _index_messages(index, proto.message_type, prefix, "", go_import_path(proto))
    return index


class TypeResolver(Protocol):
    """Turns a type reference from a method descriptor into a printable Go type name."""

    def resolve(self, type_ref: str) -> str: ...


class GoTypeResolver:
    """Resolves message references, qualifying types from other Go packages with their import alias."""

    def __init__(self, type_index: Mapping[str, GoType], own_import_path: str, add_import: AddImport, file_name: str = ""):
        self._type_index = type_index
        self._own_import_path = own_import_path
        self._add_import = add_import
        self._file_name = file_name

    def resolve(self, type_ref: str) -> str:
        """Resolve a type reference.

        Args:
            type_ref (str): A fully-qualified message name, e.g. `.routeguide.Point`.

        Raises:
            ResolutionError: If the type is not known.

        Returns:
            str: The Go type name, qualified with a package alias if needed.
        """
        try:
            go_type = self._type_index[type_ref]
        except KeyError as e:
            raise ResolutionError(type_ref, self._file_name) from e

        if go_type.import_path == self._own_import_path:
            return go_type.go_name
        return f"{self._add_import(go_type.import_path)}.{go_type.go_name}"
