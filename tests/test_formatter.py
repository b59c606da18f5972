"""Tests for log format compilation."""

from __future__ import annotations

import uuid

import pytest

from dbaudit.errors import ConfigurationError, RenderError
from dbaudit.entry import Status
from dbaudit.formatter import (
    LogTemplateCompiler,
    compile_template,
    standard_fields,
    timestamp_function,
)

PERCENT = ("%", "%%")


@pytest.fixture
def port_fields():
    return {
        "EQUAL": lambda event: event.client_port,
        "PLUS1": lambda event: event.client_port + 1,
    }


class TestCompile:
    """Tests for compiling format strings."""

    def test_mandatory_fields(self, make_event, port_fields):
        """Test fields are replaced by anchors and rendered in order."""
        template = LogTemplateCompiler(port_fields).compile("Value=${EQUAL}, Plus one=${PLUS1}")

        assert template.template == "Value=%s, Plus one=%s"
        assert template.field_names == ["EQUAL", "PLUS1"]
        assert template.arguments(make_event(client_port=42)) == ["42", "43"]

    def test_no_fields(self, make_event):
        """Test a format without fields compiles to its literal text."""
        template = compile_template("static text")
        assert template.template == "static text"
        assert template.arguments(make_event()) == []

    def test_adjacent_fields(self, make_event):
        """Test adjacent fields are matched separately."""
        template = compile_template("${USER}${CLIENT_IP}")
        assert template.template == "%s%s"
        assert template.arguments(make_event()) == ["bob", "10.0.0.1"]

    def test_repeated_field(self, make_event):
        """Test a field may occur more than once."""
        template = compile_template("${USER}/${USER}")
        assert template.arguments(make_event()) == ["bob", "bob"]

    def test_unknown_field(self):
        """Test unknown fields are rejected at compile time."""
        with pytest.raises(ConfigurationError, match="Unknown log format field: NOPE"):
            compile_template("user:${USER} ${NOPE}")

    def test_empty_anchor(self):
        """Test an empty anchor is rejected."""
        with pytest.raises(ConfigurationError):
            LogTemplateCompiler(standard_fields(), anchor="")

    def test_invalid_escape(self):
        """Test an invalid escape pattern is rejected."""
        with pytest.raises(ConfigurationError):
            LogTemplateCompiler(standard_fields(), escape=("(", ""))

    def test_custom_anchor(self, make_event):
        """Test the anchor token is configurable."""
        template = compile_template("user:${USER}", anchor="{}")
        assert template.template == "user:{}"
        assert template.template.format(*template.arguments(make_event())) == "user:bob"


class TestConditionalFields:
    """Tests for {?text${FIELD}text?} fields."""

    FORMAT = "user:${USER}{?, batch:${BATCH_ID}?}"

    def test_absent_value_renders_empty(self, make_event):
        """Test the whole fragment is dropped when the value is missing."""
        template = compile_template(self.FORMAT)
        assert template.template == "user:%s%s"
        assert template.arguments(make_event()) == ["bob", ""]
        assert template.interpolate(make_event()) == "user:bob"

    def test_present_value_renders_fragment(self, make_event):
        """Test the surrounding text is rendered with the value."""
        batch_id = uuid.UUID("e501f872-6f45-4fd8-a6c6-0a1b6e5e7f00")
        template = compile_template(self.FORMAT)
        assert template.arguments(make_event(batch_id=batch_id)) == [
            "bob",
            f", batch:{batch_id}",
        ]

    def test_empty_string_is_present(self, make_event):
        """Test an empty value is not treated as missing."""
        template = compile_template("{?[${OPERATION}]?}")
        assert template.arguments(make_event(operation="")) == ["[]"]

    def test_adjacent_conditional_blocks(self, make_event):
        """Test a null block vanishes while its present sibling renders."""
        template = compile_template("{?batch=${BATCH_ID};?}{?port=${CLIENT_PORT};?}")
        assert template.template == "%s%s"
        assert template.arguments(make_event()) == ["", "port=9042;"]
        assert template.interpolate(make_event()) == "port=9042;"

    def test_mandatory_null(self, make_event):
        """Test missing mandatory values render as null."""
        template = compile_template("batch:${BATCH_ID}")
        assert template.interpolate(make_event()) == "batch:null"


class TestEscaping:
    """Tests for escaping literal text."""

    def test_literal_text_escaped(self, make_event):
        """Test escape applies to literal text only."""
        template = compile_template("100% ${USER}", escape=PERCENT)
        assert template.template == "100%% %s"

        event = make_event(principal="50%")
        arguments = template.arguments(event)
        assert arguments == ["50%"]
        assert template.template % tuple(arguments) == "100% 50%"

    def test_conditional_text_not_escaped(self, make_event):
        """Test conditional text travels in the argument."""
        template = compile_template("{?%${USER}%?}", escape=PERCENT)
        assert template.template == "%s"
        assert template.arguments(make_event()) == ["%bob%"]

    @pytest.mark.parametrize(
        "format",
        [
            "client:'${CLIENT_IP}'|user:'${USER}'{?|batchId:'${BATCH_ID}'?}|status:'${STATUS}'",
            "%d%s ${OPERATION} 100%",
            "${TIMESTAMP}|${CLIENT_PORT}|${COORDINATOR_IP}",
        ],
    )
    def test_interpolate_matches_substitution(self, make_event, format):
        """Test the substituted template equals the direct rendering."""
        template = compile_template(format, escape=PERCENT)
        event = make_event(operation="UPDATE ks.tbl SET v = '%s'")
        assert template.template % tuple(template.arguments(event)) == template.interpolate(event)


class TestFallback:
    """Tests for resolving unregistered fields."""

    def test_fallback_resolves_unknown_field(self, make_event):
        """Test the fallback is consulted for missing fields."""
        compiler = LogTemplateCompiler(
            standard_fields(), fallback=lambda field, event: f"<{field}:{event.principal}>"
        )
        template = compiler.compile("${USER} ${CUSTOM}")
        assert template.arguments(make_event()) == ["bob", "<CUSTOM:bob>"]

    def test_resolve(self):
        """Test resolve reports whether a field was found."""
        compiler = LogTemplateCompiler(standard_fields())
        function, found = compiler.resolve("USER")
        assert found is True
        assert function is not None

        assert compiler.resolve("NOPE") == (None, False)

    def test_fallback_called_at_render_time(self, make_event):
        """Test the fallback is not invoked while compiling."""
        calls = []

        def fallback(field, event):
            calls.append(field)
            return "x"

        template = LogTemplateCompiler({}, fallback=fallback).compile("${A}")
        assert calls == []
        template.arguments(make_event())
        assert calls == ["A"]


class TestStandardFields:
    """Tests for the built-in field registry."""

    def test_fields(self, make_event):
        """Test every standard field renders."""
        template = compile_template(
            "${CLIENT_IP}|${CLIENT_PORT}|${COORDINATOR_IP}|${USER}|${STATUS}|${OPERATION}"
        )
        event = make_event(status=Status.FAILED)
        assert template.interpolate(event) == (
            "10.0.0.1|9042|10.0.0.100|bob|FAILED|SELECT * FROM ks.tbl"
        )

    def test_naked_operation_falls_back(self, make_event):
        """Test OPERATION_NAKED uses the operation when no naked text exists."""
        template = compile_template("${OPERATION_NAKED}")
        assert template.interpolate(make_event()) == "SELECT * FROM ks.tbl"
        assert (
            template.interpolate(make_event(naked_operation="SELECT * FROM ks.tbl WHERE k = ?"))
            == "SELECT * FROM ks.tbl WHERE k = ?"
        )

    def test_raw_timestamp(self, make_event):
        """Test the raw millisecond timestamp without a time format."""
        assert compile_template("${TIMESTAMP}").interpolate(make_event()) == "1500000000000"

    def test_formatted_timestamp(self, make_event):
        """Test the timestamp is formatted in the configured zone."""
        utc = compile_template(
            "${TIMESTAMP}", fields=standard_fields("%Y-%m-%d %H:%M:%S", "UTC")
        )
        stockholm = compile_template(
            "${TIMESTAMP}", fields=standard_fields("%Y-%m-%d %H:%M:%S", "Europe/Stockholm")
        )

        assert utc.interpolate(make_event()) == "2017-07-14 02:40:00"
        assert stockholm.interpolate(make_event()) == "2017-07-14 04:40:00"

    def test_invalid_time_zone(self):
        """Test unknown zones are rejected."""
        with pytest.raises(ConfigurationError, match="time zone"):
            timestamp_function("%H:%M", "Mars/Olympus_Mons")

    def test_empty_time_format(self):
        """Test an empty time format is rejected."""
        with pytest.raises(ConfigurationError, match="time format"):
            timestamp_function("")

    @pytest.mark.parametrize("time_format", ["%Y-%Q", "%H:%M %", "%-d"])
    def test_unsupported_directive(self, time_format):
        """Test directives outside the documented set are rejected."""
        with pytest.raises(ConfigurationError, match="unsupported directive"):
            timestamp_function(time_format)

    def test_literal_percent(self, make_event):
        """Test an escaped percent sign is an accepted directive."""
        field = timestamp_function("%H%% %Y", "UTC")
        assert field(make_event()) == "02% 2017"

    def test_failing_field_raises_render_error(self, make_event):
        """Test errors raised by field functions surface as RenderError."""

        def broken(event):
            raise KeyError("gone")

        template = LogTemplateCompiler({"BROKEN": broken}).compile("${BROKEN}")
        with pytest.raises(RenderError) as exc_info:
            template.arguments(make_event())
        assert exc_info.value.field == "BROKEN"
