"""Pytest configuration and fixtures for protoc-gen-kite tests.

Proto files are built in code as `FileDescriptorProto` objects, so the tests do not need protoc.
"""

from __future__ import annotations

from collections.abc import Sequence

import pytest
from google.protobuf import descriptor_pb2

from protoc_gen_kite.imports import build_type_index
from protoc_gen_kite.run import GeneratorOptions, new_writer
from protoc_gen_kite.writer import Writer


def new_method(
    name: str,
    input_type: str,
    output_type: str,
    client_streaming: bool = False,
    server_streaming: bool = False,
    deprecated: bool = False,
) -> descriptor_pb2.MethodDescriptorProto:
    """Create a method descriptor; type names are fully qualified, e.g. `.ping.PingRequest`."""
    method = descriptor_pb2.MethodDescriptorProto(
        name=name,
        input_type=input_type,
        output_type=output_type,
        client_streaming=client_streaming,
        server_streaming=server_streaming,
    )
    if deprecated:
        method.options.deprecated = True
    return method


def new_service(
    name: str, methods: Sequence[descriptor_pb2.MethodDescriptorProto], deprecated: bool = False
) -> descriptor_pb2.ServiceDescriptorProto:
    service = descriptor_pb2.ServiceDescriptorProto(name=name, method=list(methods))
    if deprecated:
        service.options.deprecated = True
    return service


def new_file(
    name: str,
    package: str,
    messages: Sequence[str] = (),
    services: Sequence[descriptor_pb2.ServiceDescriptorProto] = (),
    go_package: str = "",
) -> descriptor_pb2.FileDescriptorProto:
    """Create a proto3 file descriptor with empty messages."""
    proto = descriptor_pb2.FileDescriptorProto(
        name=name,
        package=package,
        syntax="proto3",
        message_type=[descriptor_pb2.DescriptorProto(name=message) for message in messages],
        service=list(services),
    )
    if go_package:
        proto.options.go_package = go_package
    return proto


def add_leading_comment(proto: descriptor_pb2.FileDescriptorProto, path: Sequence[int], comment: str) -> None:
    location = proto.source_code_info.location.add()
    location.path.extend(path)
    location.leading_comments = comment


def generate(
    proto: descriptor_pb2.FileDescriptorProto,
    dependencies: Sequence[descriptor_pb2.FileDescriptorProto] = (),
    options: GeneratorOptions | None = None,
) -> Writer:
    """Run the writer on a file and return it; its sink holds the generated lines."""
    writer = new_writer(proto, build_type_index([*dependencies, proto]), options)
    writer.generate_all()
    return writer


def extract_block(lines: Sequence[str], header: str) -> list[str]:
    """Return the lines of the block that starts with `header`, up to its closing brace."""
    start = lines.index(header)
    indentation = header[: len(header) - len(header.lstrip("\t"))]
    for end in range(start + 1, len(lines)):
        if lines[end] == f"{indentation}}}":
            return list(lines[start : end + 1])
    raise AssertionError(f"Block '{header}' is not closed.")


@pytest.fixture
def ping_file() -> descriptor_pb2.FileDescriptorProto:
    """A service `Ping` with one unary method."""
    return new_file(
        "ping.proto",
        "ping",
        messages=["PingRequest", "PingResponse"],
        services=[new_service("Ping", [new_method("Ping", ".ping.PingRequest", ".ping.PingResponse")])],
        go_package="example.com/ping;ping",
    )


@pytest.fixture
def chat_file() -> descriptor_pb2.FileDescriptorProto:
    """A service `Chat` with one bidirectional streaming method."""
    return new_file(
        "chat.proto",
        "chat",
        messages=["ChatMessage"],
        services=[
            new_service(
                "Chat",
                [
                    new_method(
                        "Chat", ".chat.ChatMessage", ".chat.ChatMessage", client_streaming=True, server_streaming=True
                    )
                ],
            )
        ],
        go_package="example.com/chat",
    )


@pytest.fixture
def route_guide_file() -> descriptor_pb2.FileDescriptorProto:
    """A service with all four method shapes, unary and streaming methods interleaved."""
    methods = [
        new_method("GetFeature", ".routeguide.Point", ".routeguide.Feature"),
        new_method("ListFeatures", ".routeguide.Rectangle", ".routeguide.Feature", server_streaming=True),
        new_method("RecordRoute", ".routeguide.Point", ".routeguide.RouteSummary", client_streaming=True),
        new_method("GetVersion", ".routeguide.Empty", ".routeguide.Version"),
        new_method(
            "RouteChat", ".routeguide.RouteNote", ".routeguide.RouteNote", client_streaming=True, server_streaming=True
        ),
        new_method("get_stats", ".routeguide.Empty", ".routeguide.Stats"),
    ]
    return new_file(
        "routeguide/route_guide.proto",
        "routeguide",
        messages=["Point", "Rectangle", "Feature", "RouteNote", "RouteSummary", "Empty", "Version", "Stats"],
        services=[new_service("RouteGuide", methods)],
        go_package="example.com/routeguide;routeguide",
    )
