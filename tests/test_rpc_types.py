"""Tests for the classification of methods into streaming shapes."""

from __future__ import annotations

import pytest

from protoc_gen_kite.rpc_types import (
    MethodShape,
    classify_method,
    codes_package_path,
    status_package_path,
)


class TestClassifyMethod:
    """The shape is a pure function of the two streaming flags."""

    @pytest.mark.parametrize(
        ("client_streaming", "server_streaming", "expected"),
        [
            (False, False, MethodShape.UNARY),
            (False, True, MethodShape.SERVER_STREAM),
            (True, False, MethodShape.CLIENT_STREAM),
            (True, True, MethodShape.BIDI_STREAM),
        ],
    )
    def test_all_flag_combinations(self, client_streaming, server_streaming, expected):
        assert classify_method(client_streaming, server_streaming) is expected

    @pytest.mark.parametrize("shape", list(MethodShape))
    def test_flags_round_trip(self, shape):
        """The flags exposed by a shape classify back to the same shape."""
        assert classify_method(shape.client_streaming, shape.server_streaming) is shape

    def test_only_unary_is_not_streaming(self):
        assert [shape for shape in MethodShape if not shape.is_streaming] == [MethodShape.UNARY]


class TestPackagePaths:
    def test_sub_packages_of_transport(self):
        assert codes_package_path("example.com/kiteg") == "example.com/kiteg/codes"
        assert status_package_path("example.com/kiteg") == "example.com/kiteg/status"
