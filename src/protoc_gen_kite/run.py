"""Top-level module for code generation, as a protoc plugin or from descriptor set files."""

from __future__ import annotations

import argparse
import glob
import logging
import os.path
import posixpath
import subprocess
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from typing import BinaryIO

from google.protobuf import descriptor_pb2
from google.protobuf.compiler import plugin_pb2

from protoc_gen_kite.descriptor import FileDescriptor
from protoc_gen_kite.imports import (
    GoType,
    GoTypeResolver,
    ImportRegistry,
    ResolutionError,
    build_type_index,
    go_import_path,
    go_package_name,
)
from protoc_gen_kite.rpc_types import GO_FILE_SUFFIX, KITE_PACKAGE_PATH
from protoc_gen_kite.writer import Writer

logger = logging.getLogger(__name__)

PATHS_IMPORT = "import"
PATHS_SOURCE_RELATIVE = "source_relative"
PROTO_SUFFIX = ".proto"


class ParameterError(Exception):
    """Raised when the plugin parameter string is malformed."""

    pass


@dataclass(frozen=True)
class GeneratorOptions:
    """Options of one generation run.

    Attributes:
        paths: Where output files are placed, `import` (Go import path) or `source_relative`
        gofmt: Whether to run gofmt on the generated files
        gen_new: Whether to generate `New()` methods for `Req*` messages
        transport: Import path of the kiteg transport package
    """

    paths: str = PATHS_IMPORT
    gofmt: bool = True
    gen_new: bool = False
    transport: str = KITE_PACKAGE_PATH


def _parse_bool(key: str, value: str) -> bool:
    lowered = value.lower()
    if lowered in ("", "true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    raise ParameterError(f"Invalid boolean value '{value}' for parameter '{key}'.")


def parse_parameter(parameter: str) -> GeneratorOptions:
    """Parse the plugin parameter string, e.g. `paths=source_relative,gofmt=false`.

    Args:
        parameter (str): The comma separated `key=value` list passed by protoc.

    Raises:
        ParameterError: If a key is unknown or a value is invalid.

    Returns:
        GeneratorOptions: The parsed options.
    """
    options = GeneratorOptions()
    if not parameter:
        return options

    for chunk in parameter.split(","):
        if not chunk:
            continue
        key, _, value = chunk.partition("=")
        key = key.strip()
        value = value.strip()

        if key == "paths":
            if value not in (PATHS_IMPORT, PATHS_SOURCE_RELATIVE):
                raise ParameterError(f"Unknown value '{value}' for parameter 'paths'.")
            options = replace(options, paths=value)
        elif key == "gofmt":
            options = replace(options, gofmt=_parse_bool(key, value))
        elif key == "gen_new":
            options = replace(options, gen_new=_parse_bool(key, value))
        elif key == "transport":
            if not value:
                raise ParameterError("Parameter 'transport' requires an import path.")
            options = replace(options, transport=value)
        else:
            raise ParameterError(f"Unknown parameter '{key}'.")

    return options


def output_file_name(proto: descriptor_pb2.FileDescriptorProto, paths: str = PATHS_IMPORT) -> str:
    """The name of the generated file, relative to the output directory.

    Args:
        proto (descriptor_pb2.FileDescriptorProto): The proto file.
        paths (str): `import` to place the file below its Go import path, `source_relative` to place it next
            to the proto file.

    Returns:
        str: The file name, e.g. `routeguide/route_guide_kite.pb.go`.
    """
    base_name = proto.name.removesuffix(PROTO_SUFFIX) + GO_FILE_SUFFIX
    if paths == PATHS_SOURCE_RELATIVE or not proto.options.go_package:
        return base_name
    return posixpath.join(go_import_path(proto), posixpath.basename(base_name))


def format_outputs(raw_input: str, use_gofmt: bool = True) -> str:
    """Formats raw input using gofmt.

    Args:
        raw_input (str): The unformatted input.
        use_gofmt (bool): Whether to run gofmt at all.

    Returns:
        str: The formatted outputs, or the unformatted input if gofmt is unavailable or fails.
    """
    if not use_gofmt:
        return raw_input

    try:
        result = subprocess.run(
            ["gofmt"],
            input=raw_input,
            capture_output=True,
            text=True,
            check=True,
        )
        return result.stdout

    except FileNotFoundError:
        logger.warning("gofmt not found, writing unformatted output. Install Go or pass gofmt=false.")
        return raw_input
    except subprocess.CalledProcessError as e:
        logger.error(f"gofmt failed: {e}")
        logger.error(f"Stderr: {e.stderr}")
        return raw_input


def new_writer(
    proto: descriptor_pb2.FileDescriptorProto,
    type_index: Mapping[str, GoType],
    options: GeneratorOptions | None = None,
) -> Writer:
    """Create a writer for one proto file, wired to its own import registry and type resolver.

    Args:
        proto (descriptor_pb2.FileDescriptorProto): The proto file to generate bindings for.
        type_index (Mapping[str, GoType]): Index of all message types known to the run.
        options (GeneratorOptions | None): Generation options. Defaults to GeneratorOptions().

    Returns:
        Writer: The writer, ready for `generate_all`.
    """
    options = options or GeneratorOptions()
    import_path = go_import_path(proto)
    package_name = go_package_name(proto)

    import_registry = ImportRegistry(package_name)
    resolver = GoTypeResolver(type_index, import_path, import_registry.add_import, proto.name)

    return Writer(
        FileDescriptor.from_proto(proto),
        resolver,
        import_registry,
        package_name,
        transport_path=options.transport,
        generate_request_constructors=options.gen_new,
    )


def generate_file(
    proto: descriptor_pb2.FileDescriptorProto,
    type_index: Mapping[str, GoType],
    options: GeneratorOptions | None = None,
) -> tuple[str, str] | None:
    """Generate the bindings for one proto file.

    Returns:
        tuple[str, str] | None: The output file name and its content, or None if there is nothing to generate.
    """
    options = options or GeneratorOptions()
    writer = new_writer(proto, type_index, options)
    writer.generate_all()

    if writer.is_empty:
        logger.debug("Nothing to generate for '%s'.", proto.name)
        return None

    return output_file_name(proto, options.paths), format_outputs(writer.dumps(), options.gofmt)


def generate_code(request: plugin_pb2.CodeGeneratorRequest) -> plugin_pb2.CodeGeneratorResponse:
    """Run the generator on a protoc request and return a populated response message.

    Errors in the parameters or unresolvable types are reported through the `error` field
    of the response, as protoc expects.

    Args:
        request (plugin_pb2.CodeGeneratorRequest): The request sent by protoc.

    Returns:
        plugin_pb2.CodeGeneratorResponse: The response.
    """
    response = plugin_pb2.CodeGeneratorResponse()
    response.supported_features = plugin_pb2.CodeGeneratorResponse.FEATURE_PROTO3_OPTIONAL

    try:
        options = parse_parameter(request.parameter)
        type_index = build_type_index(request.proto_file)
        protos = {proto.name: proto for proto in request.proto_file}

        for file_name in request.file_to_generate:
            result = generate_file(protos[file_name], type_index, options)
            if result is None:
                continue
            name, content = result
            response_file = response.file.add()
            response_file.name = name
            response_file.content = content

    except (ParameterError, ResolutionError) as e:
        logger.error(str(e))
        response.error = str(e)

    return response


def run_plugin(stdin: BinaryIO, stdout: BinaryIO) -> None:
    """Execute the protoc plugin workflow: request on stdin, response on stdout."""
    request = plugin_pb2.CodeGeneratorRequest()
    request.ParseFromString(stdin.read())

    response = generate_code(request)
    stdout.write(response.SerializeToString())
    stdout.flush()


def load_descriptor_sets(paths: Iterable[str]) -> list[descriptor_pb2.FileDescriptorProto]:
    """Read serialized FileDescriptorSet files.

    Files that appear in several sets are only kept once, in order of first appearance.

    Args:
        paths (Iterable[str]): Paths to the descriptor set files.

    Returns:
        list[descriptor_pb2.FileDescriptorProto]: All contained proto files.
    """
    protos: dict[str, descriptor_pb2.FileDescriptorProto] = {}
    for path in paths:
        descriptor_set = descriptor_pb2.FileDescriptorSet()
        with open(path, "rb") as f:
            descriptor_set.ParseFromString(f.read())
        logger.info("Loaded %d file descriptor(s) from '%s'.", len(descriptor_set.file), path)

        for proto in descriptor_set.file:
            protos.setdefault(proto.name, proto)
    return list(protos.values())


def run(args: argparse.Namespace, root_directory: str):
    """Run the generator on a set of paths that point to descriptor set files.

    Uses `generate_file` on each selected proto file.

    Args:
        args (argparse.Namespace): The arguments that were passed when calling the generator.
        root_directory (str): The directory, from which the generator is executed.
    """
    descriptor_sets: list[str] = args.descriptor_sets
    files: list[str] = getattr(args, "files", [])
    clean: list[str] = getattr(args, "clean", [])
    output_dir: str = getattr(args, "output_dir", "")
    recursive: bool = getattr(args, "recursive", False)

    cleanup_paths: set[str] = set()
    for c in clean:
        cleanup_paths = cleanup_paths.union(glob.glob(os.path.join(root_directory, c), recursive=recursive))

    for cleanup_path in sorted(cleanup_paths):
        logger.info("Removing '%s'.", cleanup_path)
        os.remove(cleanup_path)

    search_paths: set[str] = set()
    for path in descriptor_sets:
        search_paths = search_paths.union(glob.glob(os.path.join(root_directory, path), recursive=recursive))

    if not search_paths:
        logger.warning("No descriptor sets matched %s.", descriptor_sets)
        return

    options = parse_parameter(getattr(args, "parameter", ""))
    if getattr(args, "skip_gofmt", False):
        options = replace(options, gofmt=False)

    protos = load_descriptor_sets(sorted(search_paths))
    known_names = {proto.name for proto in protos}
    missing = [name for name in files if name not in known_names]
    if missing:
        raise FileNotFoundError(f"Not found in the descriptor sets: {', '.join(missing)}")

    targets = set(files) if files else known_names
    type_index = build_type_index(protos)
    output_directory = os.path.join(root_directory, output_dir)

    for proto in protos:
        if proto.name not in targets:
            continue

        result = generate_file(proto, type_index, options)
        if result is None:
            continue

        name, content = result
        output_path = os.path.join(output_directory, name)
        os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
        with open(output_path, "w", encoding="utf8") as output_file:
            output_file.write(content)

        logger.info("Wrote bindings for '%s' to '%s'.", proto.name, output_path)
