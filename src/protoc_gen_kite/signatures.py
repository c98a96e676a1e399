"""Method signatures and stream member sets for the generated client and server types."""

from __future__ import annotations

from dataclasses import dataclass

from protoc_gen_kite import helper
from protoc_gen_kite.writer_dto import MethodGenerationContext

SEND = "Send"
RECV = "Recv"
CLOSE_AND_RECV = "CloseAndRecv"
SEND_AND_CLOSE = "SendAndClose"

_SENDING_MEMBERS = (SEND, SEND_AND_CLOSE)


@dataclass(frozen=True)
class StreamMember:
    """A method of a generated stream type, e.g. `Send(*Point) error`."""

    name: str
    message_type: str

    @property
    def is_sending(self) -> bool:
        return self.name in _SENDING_MEMBERS

    @property
    def interface_line(self) -> str:
        """The member as declared inside the stream interface."""
        if self.is_sending:
            return f"{self.name}(*{self.message_type}) error"
        return f"{self.name}() (*{self.message_type}, error)"

    @property
    def header(self) -> str:
        """The member signature as used by the wrapper implementation."""
        if self.is_sending:
            return f"{self.name}(m *{self.message_type}) error"
        return self.interface_line


class SignatureBuilder:
    """Builds the shape-dependent signatures of a method.

    Package aliases are fixed per generated file, so one builder serves all services of a file.
    """

    def __init__(self, context_package: str, kite_package: str):
        """Initialize the builder with the aliases of the imported packages.

        Args:
            context_package (str): Alias of the `context` package.
            kite_package (str): Alias of the kiteg transport package.
        """
        self.context_package = context_package
        self.kite_package = kite_package

    def client_signature(self, method: MethodGenerationContext) -> str:
        """The client-side signature, e.g. `Ping(ctx context.Context, in *Req, opts ...kiteg.CallOption) (*Resp, error)`.

        Args:
            method (MethodGenerationContext): The method.

        Returns:
            str: The signature.
        """
        parameters = [f"ctx {self.context_package}.Context"]
        if not method.shape.client_streaming:
            parameters.append(f"in *{method.input_type}")
        parameters.append(f"opts ...{self.kite_package}.CallOption")

        if method.shape.is_streaming:
            assert method.client_stream_interface is not None
            response = method.client_stream_interface.name
        else:
            response = f"*{method.output_type}"

        return helper.new_signature(method.method_name, parameters, f"({response}, error)")

    def server_signature(self, method: MethodGenerationContext, with_param_names: bool = False) -> str:
        """The server-side signature.

        Args:
            method (MethodGenerationContext): The method.
            with_param_names (bool): Whether to name the parameters (`ctx`, `req`, `srv`). Defaults to False.

        Returns:
            str: The signature.
        """
        shape = method.shape

        def parameter(name: str, type_name: str) -> str:
            return f"{name} {type_name}" if with_param_names else type_name

        parameters: list[str] = []
        results = "error"
        if not shape.is_streaming:
            parameters.append(parameter("ctx", f"{self.context_package}.Context"))
            results = f"(*{method.output_type}, error)"
        if not shape.client_streaming:
            parameters.append(parameter("req", f"*{method.input_type}"))
        if shape.is_streaming:
            assert method.server_stream_interface is not None
            parameters.append(parameter("srv", method.server_stream_interface.name))

        return helper.new_signature(method.method_name, parameters, results)

    @staticmethod
    def client_stream_members(method: MethodGenerationContext) -> list[StreamMember]:
        """Members of the client stream type, in declaration order."""
        shape = method.shape
        members: list[StreamMember] = []
        if shape.client_streaming:
            members.append(StreamMember(SEND, method.input_type))
        if shape.server_streaming:
            members.append(StreamMember(RECV, method.output_type))
        if not shape.server_streaming:
            members.append(StreamMember(CLOSE_AND_RECV, method.output_type))
        return members

    @staticmethod
    def server_stream_members(method: MethodGenerationContext) -> list[StreamMember]:
        """Members of the server stream type, in declaration order."""
        shape = method.shape
        members: list[StreamMember] = []
        if shape.server_streaming:
            members.append(StreamMember(SEND, method.output_type))
        if not shape.server_streaming:
            members.append(StreamMember(SEND_AND_CLOSE, method.output_type))
        if shape.client_streaming:
            members.append(StreamMember(RECV, method.input_type))
        return members
