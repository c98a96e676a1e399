"""Generate kiteg client and server bindings for the services of a proto file.

Each service is emitted in four ordered phases:

1. interfaces: the client interface and the server interface,
2. client implementation: client struct, constructor, methods and client stream types,
3. server stub: the `Unimplemented<Service>Server` struct and the registration function,
4. handlers: one dispatch handler per method, server stream types and the service descriptor table.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from protoc_gen_kite import helper
from protoc_gen_kite.descriptor import FileDescriptor, MethodDescriptor, ServiceDescriptor
from protoc_gen_kite.imports import ImportRegistry, TypeResolver
from protoc_gen_kite.rpc_types import (
    CONTEXT_PACKAGE_PATH,
    DEPRECATION_COMMENT,
    GENERATED_CODE_VERSION,
    KITE_PACKAGE_PATH,
    codes_package_path,
    status_package_path,
)
from protoc_gen_kite.signatures import CLOSE_AND_RECV, RECV, SignatureBuilder, StreamMember
from protoc_gen_kite.sink import TextSink
from protoc_gen_kite.writer_dto import (
    MethodGenerationContext,
    ServiceDescCollection,
    ServiceGenerationContext,
    TableSlot,
    assign_table_slots,
)

logger = logging.getLogger(__name__)

CLIENT_STREAM_FIELD = "ClientStream"
SERVER_STREAM_FIELD = "ServerStream"
REQUEST_CONSTRUCTOR_PREFIX = "Req"


class Writer:
    """A class that handles writing the Go bindings, based on a provided file descriptor."""

    def __init__(
        self,
        file: FileDescriptor,
        resolver: TypeResolver,
        import_registry: ImportRegistry,
        package_name: str,
        transport_path: str = KITE_PACKAGE_PATH,
        generate_request_constructors: bool = False,
        reserved_names: frozenset[str] = helper.RESERVED_CLIENT_NAMES,
    ):
        """Initialize the writer.

        Args:
            file (FileDescriptor): The file to generate bindings for.
            resolver (TypeResolver): Resolver for the request and response message types.
            import_registry (ImportRegistry): Registry that hands out package aliases for imports.
            package_name (str): The Go package name of the generated file.
            transport_path (str): Import path of the kiteg transport package.
            generate_request_constructors (bool): Whether to emit `New()` methods for `Req*` messages.
            reserved_names (frozenset[str]): Method names that get an underscore suffix.
        """
        self._file = file
        self._resolver = resolver
        self._import_registry = import_registry
        self._package_name = package_name
        self._transport_path = transport_path
        self._generate_request_constructors = generate_request_constructors
        self._reserved_names = reserved_names

        self.sink = TextSink()

        self._context_package = ""
        self._kite_package = ""
        self._signatures = SignatureBuilder("", "")

        # Results of the last phase of every service, keyed by service name.
        self.service_descs: dict[str, ServiceDescCollection] = {}
        # Table slots consumed by the client implementation of every service, keyed by service name.
        self.table_slots: dict[str, list[TableSlot]] = {}

    @property
    def is_empty(self) -> bool:
        """Whether nothing was generated."""
        return len(self.sink) == 0

    def generate_all(self) -> None:
        """Generate the bindings for all services of the file, in declaration order."""
        if self._file.services:
            self._context_package = self._import_registry.add_import(CONTEXT_PACKAGE_PATH)
            self._kite_package = self._import_registry.add_import(self._transport_path)
            self._signatures = SignatureBuilder(self._context_package, self._kite_package)

            self._gen_preamble()
            for service in self._file.services:
                self.gen_service(service)
        else:
            logger.debug("No services in '%s', skipping service generation.", self._file.name)

        if self._generate_request_constructors:
            self.gen_request_constructors()

    def _gen_preamble(self) -> None:
        kite = self._kite_package
        self.sink.add("// Reference imports to suppress errors if they are not otherwise used.")
        self.sink.add("var _ ", self._context_package, ".Context")
        self.sink.add("var _ ", kite, ".ClientConnInterface")
        self.sink.add()
        self.sink.add("// This is a compile-time assertion to ensure that this generated file")
        self.sink.add("// is compatible with the ", kite, " package it is being compiled against.")
        self.sink.add("const _ = ", kite, ".SupportPackageIsVersion", GENERATED_CODE_VERSION)
        self.sink.add()

    def gen_service(self, service: ServiceDescriptor) -> None:
        """Generate all the code for one service.

        Args:
            service (ServiceDescriptor): The service.
        """
        logger.debug("Generating service %s with %d method(s).", service.full_name, len(service.methods))
        context = ServiceGenerationContext.create(service, self._resolver, self._reserved_names)

        self._gen_interfaces(context)
        self.table_slots[service.name] = self._gen_client_implementation(context)
        self._gen_server_stub(context)
        self.service_descs[service.name] = self._gen_handlers(context)

    # ===== Phase 1: interfaces =====

    def _method_comments(self, method: MethodDescriptor) -> list[str]:
        lines: list[str] = []
        comments = self._file.leading_comments(method.location_path)
        if comments is not None:
            lines.extend(helper.new_comment(comments))
        if method.deprecated:
            lines.extend(["//", DEPRECATION_COMMENT])
        return lines

    def _gen_interfaces(self, context: ServiceGenerationContext) -> None:
        service_name = context.go_name
        deprecated = context.service.deprecated

        self.sink.add()
        self.sink.extend(
            helper.new_comment(
                f" {context.client_interface} is the client API for {service_name} service.\n"
                "\n"
                " For semantics around ctx use and closing/ending streaming RPCs, please refer to "
                "https://godoc.org/google.golang.org/grpc#ClientConn.NewStream."
            )
        )
        if deprecated:
            self.sink.extend(["//", DEPRECATION_COMMENT])

        client_members: list[str] = []
        for method in context.methods:
            client_members.extend(self._method_comments(method.method))
            client_members.append(self._signatures.client_signature(method))
        self.sink.extend(helper.new_interface(context.client_interface.name, client_members))
        self.sink.add()

        self.sink.add("// ", context.server_interface, " is the server API for ", service_name, " service.")
        if deprecated:
            self.sink.extend(["//", DEPRECATION_COMMENT])

        server_members: list[str] = []
        for method in context.methods:
            server_members.extend(self._method_comments(method.method))
            server_members.append(self._signatures.server_signature(method))
        self.sink.extend(helper.new_interface(context.server_interface.name, server_members))
        self.sink.add()

    # ===== Phase 2: client implementation =====

    def _gen_client_implementation(self, context: ServiceGenerationContext) -> list[TableSlot]:
        kite = self._kite_package

        self.sink.extend(helper.new_struct(context.client_struct.name, [f"cc {kite}.ClientConnInterface"]))
        self.sink.add()

        if context.service.deprecated:
            self.sink.add(DEPRECATION_COMMENT)
        self.sink.extend(
            helper.new_func(
                f"{context.client_constructor}(cc {kite}.ClientConnInterface) {context.client_interface}",
                [f"return &{context.client_struct}{{cc}}"],
            )
        )
        self.sink.add()

        slots = assign_table_slots(context.methods, context.service_desc.name)
        for method, slot in zip(context.methods, slots):
            self._gen_client_method(context, method, slot)
        return slots

    def _gen_client_method(
        self, context: ServiceGenerationContext, method: MethodGenerationContext, slot: TableSlot
    ) -> None:
        if method.method.deprecated:
            self.sink.add(DEPRECATION_COMMENT)

        receiver = f"c *{context.client_struct}"
        header = self._signatures.client_signature(method)
        rpc_path = helper.go_quote(method.rpc_path)

        if not method.shape.is_streaming:
            # The Invoke call of the transport addresses unary methods by path only, the slot goes unused.
            body = [
                f"out := new({method.output_type})",
                f"err := c.cc.Invoke(ctx, {rpc_path}, in, out, opts...)",
                *helper.new_err_return("nil, err"),
                "return out, nil",
            ]
            self.sink.extend(helper.new_method(receiver, header, body))
            self.sink.add()
            return

        assert method.client_stream_interface is not None and method.client_stream_struct is not None
        body = [
            f"stream, err := c.cc.NewStream(ctx, {slot.expression}, {rpc_path}, opts...)",
            *helper.new_err_return("nil, err"),
            f"x := &{method.client_stream_struct}{{stream}}",
        ]
        if not method.shape.client_streaming:
            body.extend(helper.new_call_err_return(f"x.{CLIENT_STREAM_FIELD}.SendMsg(in)", "nil, err"))
            body.extend(helper.new_call_err_return(f"x.{CLIENT_STREAM_FIELD}.CloseSend()", "nil, err"))
        body.append("return x, nil")
        self.sink.extend(helper.new_method(receiver, header, body))
        self.sink.add()

        self._gen_stream_types(
            method.client_stream_interface.name,
            method.client_stream_struct.name,
            CLIENT_STREAM_FIELD,
            self._signatures.client_stream_members(method),
        )

    def _gen_stream_types(self, interface_name: str, struct_name: str, field: str, members: Sequence[StreamMember]):
        """Generate a stream interface, its wrapper struct and the wrapper's member methods.

        Args:
            interface_name (str): The exported stream interface.
            struct_name (str): The unexported wrapper struct.
            field (str): The embedded transport stream, `ClientStream` or `ServerStream`.
            members (Sequence[StreamMember]): The members of the stream type.
        """
        embedded = f"{self._kite_package}.{field}"

        self.sink.extend(helper.new_interface(interface_name, [*(m.interface_line for m in members), embedded]))
        self.sink.add()

        self.sink.extend(helper.new_struct(struct_name, [embedded]))
        self.sink.add()

        for member in members:
            self.sink.extend(helper.new_method(f"x *{struct_name}", member.header, self._stream_member_body(member, field)))
            self.sink.add()

    @staticmethod
    def _stream_member_body(member: StreamMember, field: str) -> list[str]:
        if member.is_sending:
            return [f"return x.{field}.SendMsg(m)"]

        body: list[str] = []
        if member.name == CLOSE_AND_RECV:
            body.extend(helper.new_call_err_return(f"x.{field}.CloseSend()", "nil, err"))
        else:
            assert member.name == RECV
        body.append(f"m := new({member.message_type})")
        body.extend(helper.new_call_err_return(f"x.{field}.RecvMsg(m)", "nil, err"))
        body.append("return m, nil")
        return body

    # ===== Phase 3: server stub =====

    def _gen_server_stub(self, context: ServiceGenerationContext) -> None:
        unimplemented = context.unimplemented_server.name

        if context.service.deprecated:
            self.sink.add(DEPRECATION_COMMENT)
        self.sink.add("// ", unimplemented, " can be embedded to have forward compatible implementations.")
        self.sink.extend(helper.new_struct(unimplemented))
        self.sink.add()

        if context.methods:
            status = self._import_registry.add_import(status_package_path(self._transport_path))
            codes = self._import_registry.add_import(codes_package_path(self._transport_path))

            for method in context.methods:
                nil_result = "" if method.shape.is_streaming else "nil, "
                message = helper.go_quote(f"method {method.go_name} not implemented")
                self.sink.extend(
                    helper.new_method(
                        f"*{unimplemented}",
                        self._signatures.server_signature(method, with_param_names=True),
                        [f"return {nil_result}{status}.Errorf({codes}.Unimplemented, {message})"],
                    )
                )
                self.sink.add()

        if context.service.deprecated:
            self.sink.add(DEPRECATION_COMMENT)
        self.sink.extend(
            helper.new_func(
                f"{context.register_function}(s *{self._kite_package}.Server, srv {context.server_interface})",
                [f"s.RegisterService(&{context.service_desc}, srv)"],
            )
        )
        self.sink.add()

    # ===== Phase 4: handlers and service descriptor =====

    def _gen_handlers(self, context: ServiceGenerationContext) -> ServiceDescCollection:
        service_desc = ServiceDescCollection()
        for method in context.methods:
            if method.shape.is_streaming:
                self._gen_stream_handler(context, method)
            else:
                self._gen_unary_handler(context, method)
            service_desc.add(method)

        self.sink.extend(self._service_desc_lines(context, service_desc))
        self.sink.add()
        return service_desc

    def _gen_unary_handler(self, context: ServiceGenerationContext, method: MethodGenerationContext) -> None:
        ctx = self._context_package
        kite = self._kite_package
        server = f"srv.({context.server_interface})"

        header = (
            f"{method.handler}(srv interface{{}}, ctx {ctx}.Context, dec func(interface{{}}) error, "
            f"interceptor {kite}.UnaryServerInterceptor) (interface{{}}, error)"
        )
        body = [
            f"in := new({method.input_type})",
            *helper.new_call_err_return("dec(in)", "nil, err"),
            "if interceptor == nil {",
            *helper.indent([f"return {server}.{method.method_name}(ctx, in)"]),
            "}",
            f"info := &{kite}.UnaryServerInfo{{",
            *helper.indent(["Server: srv,", f"FullMethod: {helper.go_quote(method.full_method)},"]),
            "}",
            f"handler := func(ctx {ctx}.Context, req interface{{}}) (interface{{}}, error) {{",
            *helper.indent([f"return {server}.{method.method_name}(ctx, req.(*{method.input_type}))"]),
            "}",
            "return interceptor(ctx, in, info, handler)",
        ]
        self.sink.extend(helper.new_func(header, body))
        self.sink.add()

    def _gen_stream_handler(self, context: ServiceGenerationContext, method: MethodGenerationContext) -> None:
        assert method.server_stream_interface is not None and method.server_stream_struct is not None
        server = f"srv.({context.server_interface})"
        stream = f"&{method.server_stream_struct}{{stream}}"

        header = f"{method.handler}(srv interface{{}}, stream {self._kite_package}.{SERVER_STREAM_FIELD}) error"
        if method.shape.client_streaming:
            body = [f"return {server}.{method.method_name}({stream})"]
        else:
            body = [
                f"m := new({method.input_type})",
                *helper.new_call_err_return("stream.RecvMsg(m)", "err"),
                f"return {server}.{method.method_name}(m, {stream})",
            ]
        self.sink.extend(helper.new_func(header, body))
        self.sink.add()

        self._gen_stream_types(
            method.server_stream_interface.name,
            method.server_stream_struct.name,
            SERVER_STREAM_FIELD,
            self._signatures.server_stream_members(method),
        )

    def _service_desc_lines(self, context: ServiceGenerationContext, service_desc: ServiceDescCollection) -> list[str]:
        kite = self._kite_package

        method_rows: list[str] = []
        for record in service_desc.methods:
            method_rows.extend(
                helper.new_keyed_element([("MethodName", helper.go_quote(record.method_name)), ("Handler", record.handler)])
            )

        stream_rows: list[str] = []
        for stream in service_desc.streams:
            fields = [("StreamName", helper.go_quote(stream.stream_name)), ("Handler", stream.handler)]
            if stream.server_streams:
                fields.append(("ServerStreams", "true"))
            if stream.client_streams:
                fields.append(("ClientStreams", "true"))
            stream_rows.extend(helper.new_keyed_element(fields))

        body = [
            f"ServiceName: {helper.go_quote(context.service.full_name)},",
            f"HandlerType: (*{context.server_interface})(nil),",
            *self._bucket_lines("Methods", f"[]{kite}.MethodDesc", method_rows),
            *self._bucket_lines("Streams", f"[]{kite}.StreamDesc", stream_rows),
            f"Metadata: {helper.go_quote(self._file.name)},",
        ]
        return [f"var {context.service_desc} = {kite}.ServiceDesc{{", *helper.indent(body), "}"]

    @staticmethod
    def _bucket_lines(key: str, type_name: str, rows: Sequence[str]) -> list[str]:
        if not rows:
            return [f"{key}: {type_name}{{}},"]
        return [f"{key}: {type_name}{{", *helper.indent(rows), "},"]

    # ===== Request constructors =====

    def gen_request_constructors(self) -> None:
        """Generate a `New()` method for every top-level message whose name starts with `Req`."""
        for message_name in self._file.message_names:
            go_name = helper.camel_case(message_name)
            if len(go_name) > len(REQUEST_CONSTRUCTOR_PREFIX) and go_name.startswith(REQUEST_CONSTRUCTOR_PREFIX):
                self.sink.extend(helper.new_method(f"m *{go_name}", f"New() *{go_name}", [f"return &{go_name}{{}}"]))
                self.sink.add()

    def dumps(self) -> str:
        """Generates string output for the complete Go source file.

        Returns:
            str: The output string.
        """
        out = [
            "// Code generated by protoc-gen-kite. DO NOT EDIT.",
            f"// source: {self._file.name}",
            "",
            f"package {self._package_name}",
            "",
        ]
        imports = self._import_registry.dumps()
        if imports:
            out.extend(imports)
            out.append("")
        return "\n".join(out) + "\n" + self.sink.dumps()
