"""Types and constants that are common to the generated kiteg bindings."""

from __future__ import annotations

import enum

# Incremented whenever the generated code and the kiteg package become incompatible.
# The generated code asserts `kiteg.SupportPackageIsVersion<N>`.
GENERATED_CODE_VERSION = 6

CONTEXT_PACKAGE_PATH = "context"
KITE_PACKAGE_PATH = "git.dhgames.cn/svr_comm/kiteg"

DEPRECATION_COMMENT = "// Deprecated: Do not use."

GO_FILE_SUFFIX = "_kite.pb.go"


def codes_package_path(transport_path: str) -> str:
    """Import path of the status-code package that belongs to a transport package."""
    return f"{transport_path}/codes"


def status_package_path(transport_path: str) -> str:
    """Import path of the status package that belongs to a transport package."""
    return f"{transport_path}/status"


class MethodShape(enum.Enum):
    """The four structurally different kinds of RPC methods."""

    UNARY = "unary"
    SERVER_STREAM = "server_stream"
    CLIENT_STREAM = "client_stream"
    BIDI_STREAM = "bidi_stream"

    @property
    def client_streaming(self) -> bool:
        return self in (MethodShape.CLIENT_STREAM, MethodShape.BIDI_STREAM)

    @property
    def server_streaming(self) -> bool:
        return self in (MethodShape.SERVER_STREAM, MethodShape.BIDI_STREAM)

    @property
    def is_streaming(self) -> bool:
        """Whether the method is registered in the `Streams` bucket of the service descriptor."""
        return self is not MethodShape.UNARY


def classify_method(client_streaming: bool, server_streaming: bool) -> MethodShape:
    """Map the two streaming flags of a method to its shape.

    Args:
        client_streaming (bool): Whether the client sends a sequence of requests.
        server_streaming (bool): Whether the server sends a sequence of responses.

    Returns:
        MethodShape: The shape of the method.
    """
    if client_streaming and server_streaming:
        return MethodShape.BIDI_STREAM
    if client_streaming:
        return MethodShape.CLIENT_STREAM
    if server_streaming:
        return MethodShape.SERVER_STREAM
    return MethodShape.UNARY
