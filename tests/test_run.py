"""Tests for parameter parsing, output naming, formatting and the protoc plugin workflow."""

from __future__ import annotations

import io
import subprocess
from unittest.mock import Mock

import pytest
from conftest import new_file, new_method, new_service
from google.protobuf import descriptor_pb2
from google.protobuf.compiler import plugin_pb2

from protoc_gen_kite import run
from protoc_gen_kite.imports import build_type_index
from protoc_gen_kite.run import (
    GeneratorOptions,
    ParameterError,
    format_outputs,
    generate_code,
    generate_file,
    load_descriptor_sets,
    output_file_name,
    parse_parameter,
    run_plugin,
)


def _request(*protos: descriptor_pb2.FileDescriptorProto, parameter: str = "gofmt=false") -> plugin_pb2.CodeGeneratorRequest:
    return plugin_pb2.CodeGeneratorRequest(
        file_to_generate=[proto.name for proto in protos],
        parameter=parameter,
        proto_file=list(protos),
    )


class TestParseParameter:
    def test_defaults(self):
        options = parse_parameter("")

        assert options == GeneratorOptions()
        assert options.paths == "import"
        assert options.gofmt is True
        assert options.gen_new is False
        assert options.transport == "git.dhgames.cn/svr_comm/kiteg"

    def test_all_parameters(self):
        options = parse_parameter("paths=source_relative,gofmt=false,gen_new=true,transport=example.com/rpc")

        assert options == GeneratorOptions(
            paths="source_relative", gofmt=False, gen_new=True, transport="example.com/rpc"
        )

    def test_flag_without_value_is_true(self):
        assert parse_parameter("gen_new").gen_new is True

    def test_empty_chunks_are_ignored(self):
        assert parse_parameter(",gofmt=0,").gofmt is False

    @pytest.mark.parametrize(
        "parameter",
        ["paths=relative", "gofmt=maybe", "transport=", "plugins=grpc"],
    )
    def test_invalid_parameters(self, parameter):
        with pytest.raises(ParameterError):
            parse_parameter(parameter)


class TestOutputFileName:
    def test_import_path_layout(self, route_guide_file):
        assert output_file_name(route_guide_file) == "example.com/routeguide/route_guide_kite.pb.go"

    def test_source_relative(self, route_guide_file):
        assert output_file_name(route_guide_file, "source_relative") == "routeguide/route_guide_kite.pb.go"

    def test_without_go_package(self):
        assert output_file_name(new_file("protos/ping.proto", "ping")) == "protos/ping_kite.pb.go"


class TestFormatOutputs:
    def test_gofmt_output_is_used(self, monkeypatch):
        mock_run = Mock(return_value=subprocess.CompletedProcess(["gofmt"], 0, stdout="formatted\n", stderr=""))
        monkeypatch.setattr(run.subprocess, "run", mock_run)

        assert format_outputs("raw") == "formatted\n"
        assert mock_run.call_args.args[0] == ["gofmt"]
        assert mock_run.call_args.kwargs["input"] == "raw"

    def test_disabled(self, monkeypatch):
        mock_run = Mock()
        monkeypatch.setattr(run.subprocess, "run", mock_run)

        assert format_outputs("raw", use_gofmt=False) == "raw"
        mock_run.assert_not_called()

    def test_missing_gofmt_keeps_raw_input(self, monkeypatch, caplog):
        monkeypatch.setattr(run.subprocess, "run", Mock(side_effect=FileNotFoundError("gofmt")))

        assert format_outputs("raw") == "raw"
        assert "gofmt not found" in caplog.text

    def test_failing_gofmt_keeps_raw_input(self, monkeypatch, caplog):
        error = subprocess.CalledProcessError(2, ["gofmt"], stderr="<standard input>:1:1: expected 'package'")
        monkeypatch.setattr(run.subprocess, "run", Mock(side_effect=error))

        assert format_outputs("raw") == "raw"
        assert "expected 'package'" in caplog.text


class TestGenerateFile:
    def test_returns_name_and_content(self, ping_file):
        name, content = generate_file(ping_file, build_type_index([ping_file]), GeneratorOptions(gofmt=False))

        assert name == "example.com/ping/ping_kite.pb.go"
        assert "package ping\n" in content

    def test_nothing_to_generate(self):
        proto = new_file("types.proto", "types", messages=["Point"])
        assert generate_file(proto, build_type_index([proto]), GeneratorOptions(gofmt=False)) is None


class TestGenerateCode:
    def test_response_files(self, ping_file, chat_file):
        response = generate_code(_request(ping_file, chat_file))

        assert not response.HasField("error")
        assert response.supported_features == plugin_pb2.CodeGeneratorResponse.FEATURE_PROTO3_OPTIONAL
        assert [f.name for f in response.file] == [
            "example.com/ping/ping_kite.pb.go",
            "example.com/chat/chat_kite.pb.go",
        ]
        assert "type ChatClient interface {" in response.file[1].content

    def test_only_requested_files(self, ping_file):
        common = new_file(
            "common.proto",
            "common",
            messages=["Empty"],
            services=[new_service("Health", [new_method("Check", ".common.Empty", ".common.Empty")])],
            go_package="example.com/common",
        )
        request = _request(common, ping_file)
        del request.file_to_generate[0]

        response = generate_code(request)

        assert [f.name for f in response.file] == ["example.com/ping/ping_kite.pb.go"]

    def test_files_without_services_are_omitted(self):
        response = generate_code(_request(new_file("types.proto", "types", messages=["Point"])))

        assert not response.HasField("error")
        assert len(response.file) == 0

    def test_invalid_parameter(self, ping_file):
        response = generate_code(_request(ping_file, parameter="unknown=1"))

        assert "Unknown parameter 'unknown'" in response.error
        assert len(response.file) == 0

    def test_unresolved_type(self):
        proto = new_file(
            "broken.proto",
            "broken",
            services=[new_service("Broken", [new_method("Do", ".broken.Missing", ".broken.Missing")])],
        )

        response = generate_code(_request(proto))

        assert ".broken.Missing" in response.error
        assert "broken.proto" in response.error


class TestRunPlugin:
    def test_reads_request_and_writes_response(self, ping_file):
        stdin = io.BytesIO(_request(ping_file).SerializeToString())
        stdout = io.BytesIO()

        run_plugin(stdin, stdout)

        response = plugin_pb2.CodeGeneratorResponse.FromString(stdout.getvalue())
        assert [f.name for f in response.file] == ["example.com/ping/ping_kite.pb.go"]


class TestLoadDescriptorSets:
    def test_duplicates_are_loaded_once(self, tmp_path, ping_file, chat_file):
        first = tmp_path / "first.pb"
        second = tmp_path / "second.pb"
        first.write_bytes(descriptor_pb2.FileDescriptorSet(file=[ping_file]).SerializeToString())
        second.write_bytes(descriptor_pb2.FileDescriptorSet(file=[chat_file, ping_file]).SerializeToString())

        protos = load_descriptor_sets([str(first), str(second)])

        assert [proto.name for proto in protos] == ["ping.proto", "chat.proto"]
