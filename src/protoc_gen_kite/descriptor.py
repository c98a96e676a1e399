"""Read-only views over protobuf descriptors, as handed over by protoc."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from google.protobuf import descriptor_pb2

from protoc_gen_kite.rpc_types import MethodShape, classify_method

# Field numbers used in source code location paths.
FILE_SERVICE_FIELD = 6
SERVICE_METHOD_FIELD = 2

LocationPath = tuple[int, ...]


def build_comment_index(source_code_info: descriptor_pb2.SourceCodeInfo) -> dict[LocationPath, str]:
    """Index the leading comments of a file by location path.

    Locations without a leading comment are not indexed.

    Args:
        source_code_info (descriptor_pb2.SourceCodeInfo): The source info of a file descriptor.

    Returns:
        dict[LocationPath, str]: Leading comment text for each location path.
    """
    comments: dict[LocationPath, str] = {}
    for location in source_code_info.location:
        if location.HasField("leading_comments"):
            comments[tuple(location.path)] = location.leading_comments
    return comments


@dataclass(frozen=True)
class MethodDescriptor:
    """An RPC method of a service."""

    name: str
    input_type: str
    output_type: str
    client_streaming: bool
    server_streaming: bool
    deprecated: bool
    location_path: LocationPath

    @classmethod
    def from_proto(cls, proto: descriptor_pb2.MethodDescriptorProto, location_path: LocationPath) -> MethodDescriptor:
        return cls(
            name=proto.name,
            input_type=proto.input_type,
            output_type=proto.output_type,
            client_streaming=proto.client_streaming,
            server_streaming=proto.server_streaming,
            deprecated=proto.options.deprecated,
            location_path=location_path,
        )

    @property
    def shape(self) -> MethodShape:
        return classify_method(self.client_streaming, self.server_streaming)


@dataclass(frozen=True)
class ServiceDescriptor:
    """A service and its methods in declaration order."""

    name: str
    full_name: str
    methods: tuple[MethodDescriptor, ...]
    deprecated: bool
    location_path: LocationPath

    @classmethod
    def from_proto(
        cls, proto: descriptor_pb2.ServiceDescriptorProto, package: str, index: int
    ) -> ServiceDescriptor:
        """Create the view of the service at position `index` of a file.

        Args:
            proto (descriptor_pb2.ServiceDescriptorProto): The service descriptor.
            package (str): The proto package of the file; may be empty.
            index (int): The position of the service in the file.

        Returns:
            ServiceDescriptor: The service view.
        """
        path = (FILE_SERVICE_FIELD, index)
        methods = tuple(
            MethodDescriptor.from_proto(method, (*path, SERVICE_METHOD_FIELD, i)) for i, method in enumerate(proto.method)
        )
        return cls(
            name=proto.name,
            full_name=f"{package}.{proto.name}" if package else proto.name,
            methods=methods,
            deprecated=proto.options.deprecated,
            location_path=path,
        )


@dataclass(frozen=True)
class FileDescriptor:
    """The parts of a proto file that code generation needs."""

    name: str
    package: str
    services: tuple[ServiceDescriptor, ...]
    message_names: tuple[str, ...] = ()
    comments: Mapping[LocationPath, str] = field(default_factory=dict, compare=False)

    @classmethod
    def from_proto(cls, proto: descriptor_pb2.FileDescriptorProto) -> FileDescriptor:
        return cls(
            name=proto.name,
            package=proto.package,
            services=tuple(
                ServiceDescriptor.from_proto(service, proto.package, i) for i, service in enumerate(proto.service)
            ),
            message_names=tuple(message.name for message in proto.message_type),
            comments=build_comment_index(proto.source_code_info),
        )

    def leading_comments(self, path: LocationPath) -> str | None:
        """The leading comment attached to a location, if there is one."""
        return self.comments.get(path)
