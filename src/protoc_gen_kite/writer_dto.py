"""Data transfer objects that are shared between the emission phases of the writer."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from protoc_gen_kite import helper
from protoc_gen_kite.helper import GeneratedIdentifier
from protoc_gen_kite.rpc_types import MethodShape

if TYPE_CHECKING:
    from protoc_gen_kite.descriptor import MethodDescriptor, ServiceDescriptor
    from protoc_gen_kite.imports import TypeResolver

METHODS_BUCKET = "Methods"
STREAMS_BUCKET = "Streams"


@dataclass(frozen=True)
class MethodGenerationContext:
    """All names and resolved types needed to emit one method.

    Every phase of the writer reads the names from this object instead of rebuilding
    them, so the interface, implementation, stub and descriptor table agree on them.

    Attributes:
        method: The method descriptor
        shape: The streaming shape of the method
        go_name: The camel cased method name (e.g., "RouteChat")
        method_name: The canonical member name, `go_name` with the reserved-name suffix applied
        input_type: Printable Go name of the request message
        output_type: Printable Go name of the response message
        rpc_path: The path used by the client to address the method (e.g., "/routeguide.RouteGuide/RouteChat")
        full_method: The method path reported to unary interceptors
        handler: The server dispatch handler function
        client_stream_interface: Exported client stream interface, only for streaming methods
        client_stream_struct: Unexported client stream wrapper, only for streaming methods
        server_stream_interface: Exported server stream interface, only for streaming methods
        server_stream_struct: Unexported server stream wrapper, only for streaming methods
    """

    method: MethodDescriptor
    shape: MethodShape
    go_name: str
    method_name: str
    input_type: str
    output_type: str
    rpc_path: str
    full_method: str
    handler: GeneratedIdentifier
    client_stream_interface: GeneratedIdentifier | None = None
    client_stream_struct: GeneratedIdentifier | None = None
    server_stream_interface: GeneratedIdentifier | None = None
    server_stream_struct: GeneratedIdentifier | None = None

    @classmethod
    def create(
        cls,
        method: MethodDescriptor,
        service_go_name: str,
        service_full_name: str,
        resolver: TypeResolver,
        reserved_names: frozenset[str] = helper.RESERVED_CLIENT_NAMES,
    ) -> MethodGenerationContext:
        """Factory method that derives every name of a method exactly once.

        Args:
            method: The method descriptor
            service_go_name: The camel cased service name
            service_full_name: The package qualified service name
            resolver: Resolver for the request and response types
            reserved_names: Method names that get an underscore suffix

        Returns:
            A fully initialized MethodGenerationContext
        """
        go_name = helper.camel_case(method.name)
        shape = method.shape

        streams: dict[str, GeneratedIdentifier] = {}
        if shape.is_streaming:
            for role in (helper.CLIENT_ROLE, helper.SERVER_ROLE):
                lowered = role.lower()
                streams[f"{lowered}_stream_interface"] = GeneratedIdentifier(
                    helper.stream_interface_name(service_go_name, go_name, role), f"{lowered}-stream-interface"
                )
                streams[f"{lowered}_stream_struct"] = GeneratedIdentifier(
                    helper.stream_struct_name(service_go_name, go_name, role), f"{lowered}-stream-struct"
                )

        return cls(
            method=method,
            shape=shape,
            go_name=go_name,
            method_name=helper.reserved_suffix(go_name, reserved_names),
            input_type=resolver.resolve(method.input_type),
            output_type=resolver.resolve(method.output_type),
            rpc_path=f"/{service_full_name}/{method.name}",
            full_method=f"/{service_full_name}/{go_name}",
            handler=GeneratedIdentifier(helper.handler_name(service_go_name, go_name), "handler"),
            **streams,
        )

    @property
    def identifiers(self) -> list[GeneratedIdentifier]:
        candidates = [
            self.handler,
            self.client_stream_interface,
            self.client_stream_struct,
            self.server_stream_interface,
            self.server_stream_struct,
        ]
        return [identifier for identifier in candidates if identifier is not None]


@dataclass(frozen=True)
class ServiceGenerationContext:
    """Context object containing all names needed for the generation of one service.

    Attributes:
        service: The service descriptor
        go_name: The camel cased service name
        methods: Method contexts in declaration order
    """

    service: ServiceDescriptor
    go_name: str
    client_interface: GeneratedIdentifier
    client_struct: GeneratedIdentifier
    client_constructor: GeneratedIdentifier
    server_interface: GeneratedIdentifier
    unimplemented_server: GeneratedIdentifier
    register_function: GeneratedIdentifier
    service_desc: GeneratedIdentifier
    methods: tuple[MethodGenerationContext, ...]

    @classmethod
    def create(
        cls,
        service: ServiceDescriptor,
        resolver: TypeResolver,
        reserved_names: frozenset[str] = helper.RESERVED_CLIENT_NAMES,
    ) -> ServiceGenerationContext:
        go_name = helper.camel_case(service.name)
        return cls(
            service=service,
            go_name=go_name,
            client_interface=GeneratedIdentifier(helper.client_interface_name(go_name), "client-interface"),
            client_struct=GeneratedIdentifier(helper.client_struct_name(go_name), "client-struct"),
            client_constructor=GeneratedIdentifier(helper.client_constructor_name(go_name), "client-constructor"),
            server_interface=GeneratedIdentifier(helper.server_interface_name(go_name), "server-interface"),
            unimplemented_server=GeneratedIdentifier(helper.unimplemented_server_name(go_name), "unimplemented-server"),
            register_function=GeneratedIdentifier(helper.register_function_name(go_name), "server-registration"),
            service_desc=GeneratedIdentifier(helper.service_desc_name(go_name), "service-desc"),
            methods=tuple(
                MethodGenerationContext.create(method, go_name, service.full_name, resolver, reserved_names)
                for method in service.methods
            ),
        )

    @property
    def identifiers(self) -> list[GeneratedIdentifier]:
        """Every identifier generated for the service, service-level names first."""
        identifiers = [
            self.client_interface,
            self.client_struct,
            self.client_constructor,
            self.server_interface,
            self.unimplemented_server,
            self.register_function,
            self.service_desc,
        ]
        for method in self.methods:
            identifiers.extend(method.identifiers)
        return identifiers


@dataclass(frozen=True)
class TableSlot:
    """The position of a method inside the service descriptor table."""

    service_desc: str
    bucket: str
    index: int

    @property
    def expression(self) -> str:
        """Go expression addressing the slot, e.g. `&_RouteGuide_serviceDesc.Streams[1]`."""
        return f"&{self.service_desc}.{self.bucket}[{self.index}]"


@dataclass(frozen=True)
class DescriptorIndex:
    """The two running counters of a service: next unary index and next stream index."""

    unary: int = 0
    stream: int = 0

    def assign(self, shape: MethodShape, service_desc: str) -> tuple[TableSlot, DescriptorIndex]:
        """Assign the next slot for a method of the given shape.

        Args:
            shape (MethodShape): The shape of the method.
            service_desc (str): The name of the service descriptor variable.

        Returns:
            tuple[TableSlot, DescriptorIndex]: The slot and the advanced counters.
        """
        if shape.is_streaming:
            return TableSlot(service_desc, STREAMS_BUCKET, self.stream), DescriptorIndex(self.unary, self.stream + 1)
        return TableSlot(service_desc, METHODS_BUCKET, self.unary), DescriptorIndex(self.unary + 1, self.stream)


def assign_table_slots(methods: Sequence[MethodGenerationContext], service_desc: str) -> list[TableSlot]:
    """Assign table slots to methods in declaration order, starting from fresh counters."""
    slots: list[TableSlot] = []
    index = DescriptorIndex()
    for method in methods:
        slot, index = index.assign(method.shape, service_desc)
        slots.append(slot)
    return slots


@dataclass(frozen=True)
class MethodDescRecord:
    """One entry of the `Methods` bucket."""

    method_name: str
    handler: str


@dataclass(frozen=True)
class StreamDescRecord:
    """One entry of the `Streams` bucket."""

    stream_name: str
    handler: str
    server_streams: bool
    client_streams: bool


@dataclass
class ServiceDescCollection:
    """The two buckets of the service descriptor table, filled in declaration order."""

    methods: list[MethodDescRecord] = field(default_factory=list)
    streams: list[StreamDescRecord] = field(default_factory=list)

    def add(self, method: MethodGenerationContext) -> None:
        """Add a method to the bucket that matches its shape.

        Args:
            method (MethodGenerationContext): The method to register.
        """
        if method.shape.is_streaming:
            self.streams.append(
                StreamDescRecord(
                    stream_name=method.method.name,
                    handler=method.handler.name,
                    server_streams=method.shape.server_streaming,
                    client_streams=method.shape.client_streaming,
                )
            )
        else:
            self.methods.append(MethodDescRecord(method_name=method.method.name, handler=method.handler.name))

    def position(self, name: str) -> tuple[str, int] | None:
        """Find the bucket and index under which a method was registered, by its schema name."""
        for i, record in enumerate(self.methods):
            if record.method_name == name:
                return METHODS_BUCKET, i
        for i, stream in enumerate(self.streams):
            if stream.stream_name == name:
                return STREAMS_BUCKET, i
        return None
