"""Tests for the streaming decoder."""

import logging
import struct

import pytest

from ulog_codec import iter_messages
from ulog_codec.config import ParserConfig
from ulog_codec.engine import EngineState, SubscriptionFilter
from ulog_codec.errors import (
    FormatParseError,
    InvalidHeaderError,
    InvalidMagicBitsError,
    MissingTimestampError,
    NestingDepthError,
    OutOfBoundsError,
    StringDecodeError,
    UndefinedFormatError,
    UndefinedSubscriptionError,
    UnexpectedEndOfFileError,
    UnknownIncompatBitsError,
    UnknownParameterTypeError,
)
from ulog_codec.messages import (
    AddSubscription,
    DefaultParameter,
    Dropout,
    FileHeader,
    FlagBits,
    FormatMessage,
    Ignored,
    Info,
    LoggedData,
    LoggedString,
    LogLevel,
    MultiInfo,
    Parameter,
    Subscription,
    ULogMessageType,
    Unhandled,
)
from ulog_codec.types import PrimitiveType

from ulog_samples import (
    build_log,
    data_record,
    default_parameter_record,
    demo_log,
    dropout_record,
    engine_for,
    flag_bits_record,
    format_record,
    header,
    info_record,
    logging_record,
    multi_info_record,
    parameter_record,
    record,
    remove_subscription_record,
    subscription_record,
)


class TestEndToEnd:
    """Tests for decoding a minimal complete log."""

    def test_demo_log(self):
        """Test the messages yielded for a one-record log."""
        messages = list(engine_for(demo_log()))

        assert len(messages) == 3
        fmt, sub, data = messages
        assert isinstance(fmt, FormatMessage)
        assert fmt.format.name == "demo"
        assert isinstance(sub, AddSubscription)
        assert sub.subscription == Subscription(msg_id=1, multi_id=0, message_name="demo")
        assert isinstance(data, LoggedData)
        assert data.timestamp == 42
        assert data.msg_id == 1
        assert data.data.to_dict() == {"timestamp": 42, "x": 3.5}
        assert data.data.multi_id_index is None

    def test_states(self):
        """Test the state transitions while decoding."""
        engine = engine_for(demo_log())

        assert engine.state is EngineState.HEADER
        engine.next_message()
        assert engine.state is EngineState.DEFINITIONS
        engine.next_message()
        assert engine.state is EngineState.DATA
        engine.next_message()
        assert engine.next_message() is None
        assert engine.state is EngineState.EOF
        assert engine.next_message() is None

    def test_include_header(self):
        """Test yielding the file header."""
        log = build_log(format_record("demo:uint64_t timestamp;float x;"), version=1, timestamp=777)
        messages = list(engine_for(log, include_header=True))

        assert messages[0] == FileHeader(version=1, timestamp=777)
        assert isinstance(messages[1], FormatMessage)

    def test_header_accessor(self):
        """Test that the header is available without being yielded."""
        engine = engine_for(demo_log())
        list(engine)

        assert engine.header == FileHeader(version=1, timestamp=0)

    def test_exclude_timestamp(self):
        """Test dropping the top-level timestamp field."""
        messages = list(engine_for(demo_log(), include_timestamp=False))

        data = messages[-1]
        assert data.timestamp == 42
        assert [f.name for f in data.data.fields] == ["x"]

    def test_accessors(self):
        """Test the session state accessors."""
        log = demo_log()
        engine = engine_for(log)
        list(engine)

        assert engine.get_format("demo").name == "demo"
        assert engine.get_subscription(1).message_name == "demo"
        assert engine.subscriptions == {1: Subscription(1, 0, "demo")}
        assert engine.formats.list_formats() == ["demo"]
        assert engine.bytes_read == len(log)
        assert engine.max_bytes_to_read is None

    def test_iter_messages_from_path(self, tmp_path):
        """Test decoding a log file by path."""
        path = tmp_path / "demo.ulg"
        path.write_bytes(demo_log())

        messages = list(iter_messages(path))

        assert [type(m) for m in messages] == [FormatMessage, AddSubscription, LoggedData]

    def test_config_object(self):
        """Test passing a configuration object."""
        config = ParserConfig(include_header=True, include_timestamp=False)
        messages = list(engine_for(demo_log(), config))

        assert isinstance(messages[0], FileHeader)
        assert "timestamp" not in messages[-1].data


class TestFraming:
    """Tests for the header and record framing."""

    def test_empty_stream(self):
        """Test error on an empty stream."""
        with pytest.raises(InvalidHeaderError):
            engine_for(b"").next_message()

    def test_truncated_header(self):
        """Test error on a header shorter than 16 bytes."""
        with pytest.raises(InvalidHeaderError):
            engine_for(header()[:10]).next_message()

    def test_invalid_magic(self):
        """Test error on wrong magic bytes."""
        data = b"NotULog" + header()[7:]

        with pytest.raises(InvalidMagicBitsError):
            engine_for(data).next_message()

    def test_header_only(self):
        """Test that a log with no records ends cleanly."""
        engine = engine_for(header())

        assert list(engine) == []
        assert engine.state is EngineState.EOF

    def test_truncated_record_length(self):
        """Test error when the stream ends inside a record length."""
        with pytest.raises(UnexpectedEndOfFileError):
            list(engine_for(header() + b"\x05"))

    def test_truncated_record_type(self):
        """Test error when the stream ends before the record type."""
        with pytest.raises(UnexpectedEndOfFileError):
            list(engine_for(header() + b"\x05\x00"))

    def test_truncated_payload(self):
        """Test error when the stream ends inside a payload."""
        with pytest.raises(UnexpectedEndOfFileError):
            list(engine_for(header() + b"\x0a\x00F" + b"demo"))

    def test_error_is_terminal(self):
        """Test that the engine yields nothing after an error."""
        engine = engine_for(b"NotULog" + header()[7:] + format_record("a:"))

        with pytest.raises(InvalidMagicBitsError):
            engine.next_message()

        assert engine.state is EngineState.ERROR
        assert engine.next_message() is None
        assert list(engine) == []


class TestDefinitions:
    """Tests for records of the definitions section."""

    def test_flag_bits(self):
        """Test decoding flag bits."""
        compat = bytes([1]) + bytes(7)
        messages = list(engine_for(build_log(flag_bits_record(compat=compat))))

        flag_bits = messages[0]
        assert isinstance(flag_bits, FlagBits)
        assert flag_bits.has_default_parameters
        assert not flag_bits.has_data_appended
        assert flag_bits.appended_data_offsets == (0, 0, 0)
        assert flag_bits.extra_bytes == b""

    @pytest.mark.parametrize(
        "incompat",
        [bytes([0b10]) + bytes(7), bytes(3) + bytes([1]) + bytes(4)],
    )
    def test_unknown_incompat_bits(self, incompat):
        """Test error on incompat bits other than data-appended."""
        with pytest.raises(UnknownIncompatBitsError):
            list(engine_for(build_log(flag_bits_record(incompat=incompat))))

    def test_long_flag_bits(self, caplog):
        """Test that extra flag bits bytes are kept with a warning."""
        log = build_log(flag_bits_record(extra=b"\x07"))

        with caplog.at_level(logging.WARNING, logger="ulog_codec.engine"):
            messages = list(engine_for(log))

        assert messages[0].extra_bytes == b"\x07"
        assert "Flag bits message is 41 bytes" in caplog.text

    def test_short_flag_bits(self):
        """Test error on a truncated flag bits payload."""
        with pytest.raises(OutOfBoundsError):
            list(engine_for(build_log(record("B", bytes(20)))))

    def test_info(self):
        """Test decoding info records."""
        log = build_log(
            info_record("char[5] sys_name", b"PX4\x00\x00"),
            info_record("uint32_t ver_hw_rev", struct.pack("<I", 7)),
        )
        name, rev = list(engine_for(log))

        assert isinstance(name, Info)
        assert name.key == "sys_name"
        assert name.value.as_text() == "PX4\x00\x00"
        assert rev.value.value == 7
        assert rev.type_expr.base_type is PrimitiveType.UINT32

    def test_multi_info(self):
        """Test decoding a continued multi info record."""
        log = build_log(multi_info_record("char[3] perf", b"abc", continued=True))
        (message,) = list(engine_for(log))

        assert isinstance(message, MultiInfo)
        assert message.is_continued
        assert message.key == "perf"
        assert message.value.value == b"abc"

    def test_parameters(self):
        """Test decoding int32 and float parameters."""
        log = build_log(
            parameter_record("int32_t SYS_AUTOSTART", struct.pack("<i", 4001)),
            parameter_record("float MPC_XY_VEL", struct.pack("<f", 2.5)),
        )
        autostart, vel = list(engine_for(log))

        assert isinstance(autostart, Parameter)
        assert autostart.key == "SYS_AUTOSTART"
        assert autostart.value.value == 4001
        assert vel.value.value == 2.5

    def test_default_parameter(self):
        """Test decoding a default parameter."""
        log = build_log(default_parameter_record(0b11, "float MIS_TAKEOFF_ALT", struct.pack("<f", 2.5)))
        (message,) = list(engine_for(log))

        assert isinstance(message, DefaultParameter)
        assert message.is_system_wide
        assert message.is_configuration
        assert message.value.value == 2.5

    @pytest.mark.parametrize("key", ["double RATE", "int32_t[2] PAIR", "uint8_t FLAG"])
    def test_unsupported_parameter_type(self, key):
        """Test error on parameter types other than scalar int32/float."""
        with pytest.raises(UnknownParameterTypeError):
            list(engine_for(build_log(parameter_record(key, bytes(8)))))

    def test_invalid_format(self):
        """Test error on a malformed format definition."""
        with pytest.raises(FormatParseError):
            list(engine_for(build_log(format_record("demo:float"))))

    def test_subscription_requires_format(self):
        """Test error when subscribing to an unregistered format."""
        with pytest.raises(UndefinedFormatError, match="ghost"):
            list(engine_for(build_log(subscription_record(1, "ghost"))))

    def test_unknown_record_type(self, caplog):
        """Test that unknown record types are passed through."""
        log = build_log(record("Z", b"\x01\x02"))

        with caplog.at_level(logging.WARNING, logger="ulog_codec.engine"):
            (message,) = list(engine_for(log))

        assert isinstance(message, Unhandled)
        assert message.msg_type == ord("Z")
        assert message.raw_bytes == b"\x01\x02"
        assert "Unknown message type: 0x5A" in caplog.text

    def test_data_before_subscription_unhandled(self):
        """Test that data records in the definitions section are not decoded."""
        log = build_log(data_record(1, b"\x00"))
        (message,) = list(engine_for(log))

        assert isinstance(message, Unhandled)
        assert message.raw_bytes == b"\x01\x00\x00"

    def test_redefined_format_last_definition_wins(self):
        """Test that redefining a format name replaces it for later data."""
        log = build_log(
            format_record("demo:uint64_t timestamp;float x;"),
            format_record("demo:uint64_t timestamp;int16_t y;"),
            subscription_record(1, "demo"),
            data_record(1, struct.pack("<Qh", 1, -3)),
        )
        messages = list(engine_for(log))

        assert messages[-1].data.to_dict() == {"timestamp": 1, "y": -3}


class TestData:
    """Tests for records of the data section."""

    def _log(self, *records):
        return build_log(
            format_record("demo:uint64_t timestamp;float x;"),
            subscription_record(1, "demo"),
            *records,
        )

    def test_logged_string(self):
        """Test decoding a plain log message."""
        log = self._log(logging_record(b"6", 100, b"hello"))
        message = list(engine_for(log))[-1]

        assert message == LoggedString(level=LogLevel.INFO, timestamp=100, text="hello")
        assert message.message_type == ULogMessageType.LOGGING

    def test_tagged_logged_string(self):
        """Test decoding a tagged log message."""
        log = self._log(logging_record(b"3", 5, b"bad", tag=9))
        message = list(engine_for(log))[-1]

        assert message.tag == 9
        assert message.level is LogLevel.ERR
        assert message.message_type == ULogMessageType.LOGGING_TAGGED

    def test_log_level_mapping(self):
        """Test mapping log levels onto the logging module."""
        assert LogLevel.EMERG.logging_level == logging.CRITICAL
        assert LogLevel.ERR.logging_level == logging.ERROR
        assert LogLevel.NOTICE.logging_level == logging.INFO
        assert LogLevel.DEBUG.logging_level == logging.DEBUG
        assert str(LogLevel.WARNING) == "WARNING"

    def test_invalid_log_level(self):
        """Test error on a log level outside '0'..'7'."""
        with pytest.raises(FormatParseError, match="LogLevel"):
            list(engine_for(self._log(logging_record(b"9", 0, b"x"))))

    def test_invalid_utf8_text(self):
        """Test error on log text that is not UTF-8."""
        with pytest.raises(StringDecodeError):
            list(engine_for(self._log(logging_record(b"6", 0, b"\xff"))))

    def test_dropout(self):
        """Test decoding a dropout mark."""
        message = list(engine_for(self._log(dropout_record(250))))[-1]

        assert message == Dropout(duration=250)

    def test_parameter_in_data_section(self):
        """Test that parameter changes are decoded after the first subscription."""
        log = self._log(parameter_record("int32_t SYS_AUTOSTART", struct.pack("<i", 1)))
        message = list(engine_for(log))[-1]

        assert isinstance(message, Parameter)

    def test_late_subscription(self):
        """Test subscriptions added in the data section."""
        log = self._log(
            subscription_record(2, "demo", multi_id=0),
            data_record(2, struct.pack("<Qf", 8, 1.0)),
        )
        messages = list(engine_for(log))

        assert isinstance(messages[-2], AddSubscription)
        assert messages[-1].msg_id == 2

    def test_remove_subscription(self):
        """Test that removing a subscription evicts its msg_id."""
        engine = engine_for(self._log(remove_subscription_record(1), data_record(1, bytes(12))))

        messages = [engine.next_message() for _ in range(3)]
        removed = messages[-1]
        assert isinstance(removed, Unhandled)
        assert removed.msg_type == ord("R")
        assert removed.raw_bytes == b"\x01\x00"
        assert engine.subscriptions == {}
        assert "demo" in engine.formats

        with pytest.raises(UndefinedSubscriptionError):
            engine.next_message()

    def test_sync_unhandled(self):
        """Test that sync records are passed through."""
        message = list(engine_for(self._log(record("S", b"\x2f\x73\x13\x20\x25\x0c\xbb\x12"))))[-1]

        assert isinstance(message, Unhandled)
        assert message.msg_type == ULogMessageType.SYNC

    def test_unknown_msg_id(self):
        """Test error on data for an unknown subscription."""
        with pytest.raises(UndefinedSubscriptionError) as excinfo:
            list(engine_for(self._log(data_record(9, bytes(12)))))

        assert excinfo.value.msg_id == 9

    def test_short_data_record(self):
        """Test error when a data record is shorter than its format."""
        with pytest.raises(OutOfBoundsError):
            list(engine_for(self._log(data_record(1, struct.pack("<Q", 1)))))

    def test_leftover_bytes_warning(self, caplog):
        """Test warning on bytes left after decoding a data record."""
        log = self._log(data_record(1, struct.pack("<Qf", 1, 1.0) + b"\x00\x00"))

        with caplog.at_level(logging.WARNING, logger="ulog_codec.engine"):
            messages = list(engine_for(log))

        assert messages[-1].timestamp == 1
        assert "leftover bytes" in caplog.text


class TestTimestamps:
    """Tests for the record timestamp rules."""

    def test_missing_timestamp(self):
        """Test error on data whose format has no timestamp."""
        log = build_log(
            format_record("notime:float x;"),
            subscription_record(1, "notime"),
            data_record(1, struct.pack("<f", 1.0)),
        )
        engine = engine_for(log)

        with pytest.raises(MissingTimestampError, match="notime"):
            list(engine)
        assert engine.state is EngineState.ERROR

    def test_wrong_timestamp_type(self):
        """Test that a timestamp field must be uint64_t."""
        log = build_log(
            format_record("small:uint32_t timestamp;"),
            subscription_record(1, "small"),
            data_record(1, struct.pack("<I", 1)),
        )

        with pytest.raises(MissingTimestampError):
            list(engine_for(log))

    def test_nested_timestamp(self):
        """Test that a timestamp inside a nested format is the record timestamp."""
        log = build_log(
            format_record("inner:uint64_t timestamp;int32_t v;"),
            format_record("outer:inner sample;"),
            subscription_record(1, "outer"),
            data_record(1, struct.pack("<Qi", 99, -1)),
        )
        data = list(engine_for(log))[-1]

        assert data.timestamp == 99
        assert data.data.timestamp is None
        assert data.data["sample"].timestamp == 99


class TestNestedFormats:
    """Tests for formats referencing other formats."""

    def _log(self, payload):
        return build_log(
            format_record("vec:float x;float y;"),
            format_record("pose:uint64_t timestamp;vec position;vec[2] path;"),
            subscription_record(1, "pose"),
            data_record(1, payload),
        )

    def test_nested_and_array(self):
        """Test decoding a nested scalar and an array of formats."""
        payload = struct.pack("<Q6f", 10, 1.0, 2.0, 3.0, 4.0, 5.0, 6.0)
        data = list(engine_for(self._log(payload)))[-1].data

        position = data.get_field("position").value
        assert position.variant == "ScalarOther"
        assert position.value.to_dict() == {"x": 1.0, "y": 2.0}
        path = data.get_field("path").value
        assert path.variant == "ArrayOther"
        assert [p.to_dict() for p in path.value] == [{"x": 3.0, "y": 4.0}, {"x": 5.0, "y": 6.0}]
        assert path.value[0].definition is path.value[1].definition

    def test_undefined_nested_format(self):
        """Test error when a nested format is never defined."""
        log = build_log(
            format_record("outer:uint64_t timestamp;ghost g;"),
            subscription_record(1, "outer"),
            data_record(1, bytes(12)),
        )

        with pytest.raises(UndefinedFormatError, match="ghost"):
            list(engine_for(log))

    def test_nesting_depth_limit(self):
        """Test that self-referencing formats stop at the depth limit."""
        log = build_log(
            format_record("chain:uint64_t timestamp;chain next;"),
            subscription_record(1, "chain"),
            data_record(1, bytes(64)),
        )

        with pytest.raises(NestingDepthError):
            list(engine_for(log, max_nesting_depth=3))


class TestPadding:
    """Tests for _padding fields."""

    FORMAT = "pad:uint64_t timestamp;uint8_t a;uint8_t[3] _padding0;"

    def _log(self, payload):
        return build_log(
            format_record(self.FORMAT),
            subscription_record(1, "pad"),
            data_record(1, payload),
        )

    def test_padding_skipped(self):
        """Test that padding is skipped by default."""
        data = list(engine_for(self._log(struct.pack("<QB", 1, 5) + bytes(3))))[-1].data

        assert [f.name for f in data.fields] == ["timestamp", "a"]

    def test_padding_included(self):
        """Test that padding bytes are kept when requested."""
        log = self._log(struct.pack("<QB", 1, 5) + b"\x00\x01\x02")
        data = list(engine_for(log, include_padding=True))[-1].data

        padding = data.get_field("_padding0")
        assert padding.value.variant == "ArrayU8"
        assert padding.value.value == [0, 1, 2]

    def test_trailing_padding_may_be_truncated(self, caplog):
        """Test that padding missing at the end of the record is tolerated."""
        with caplog.at_level(logging.WARNING, logger="ulog_codec.engine"):
            data = list(engine_for(self._log(struct.pack("<QB", 1, 5))))[-1].data

        assert data["a"] == 5
        assert caplog.text == ""

    def test_partial_padding_warns(self, caplog):
        """Test warning when padding is larger than what remains."""
        with caplog.at_level(logging.WARNING, logger="ulog_codec.engine"):
            data = list(engine_for(self._log(struct.pack("<QB", 1, 5) + b"\x00")))[-1].data

        assert data["a"] == 5
        assert "Padding '_padding0' is 3 bytes but only 1 remain" in caplog.text

    def test_scalar_padding_consumes_nothing(self, caplog):
        """Test that a scalar padding field is ignored without reading bytes."""
        log = build_log(
            format_record("pad:uint64_t timestamp;uint8_t _padding0;uint8_t a;"),
            subscription_record(1, "pad"),
            data_record(1, struct.pack("<QB", 1, 5)),
        )
        with caplog.at_level(logging.WARNING, logger="ulog_codec.engine"):
            data = list(engine_for(log, include_padding=True))[-1].data

        assert [f.name for f in data.fields] == ["timestamp", "a"]
        assert data["a"] == 5
        assert "Padding '_padding0' has a scalar type" in caplog.text


class TestSubscriptionFiltering:
    """Tests for the subscription allow-list."""

    def _log(self):
        records = []
        for name in ["a", "b", "c"]:
            records.append(format_record(f"{name}:uint64_t timestamp;int32_t v;"))
        for msg_id, name in enumerate(["a", "b", "c"], start=1):
            records.append(subscription_record(msg_id, name))
        for msg_id in (1, 2, 3):
            records.append(data_record(msg_id, struct.pack("<Qi", msg_id, msg_id * 10)))
        return build_log(*records)

    def test_allow_list(self):
        """Test that only allowed subscriptions are decoded."""
        engine = engine_for(self._log(), subscription_allow_list={"a", "b"})
        messages = list(engine)

        decoded = [m for m in messages if isinstance(m, LoggedData)]
        ignored = [m for m in messages if isinstance(m, Ignored)]
        assert [engine.get_subscription(m.msg_id).message_name for m in decoded] == ["a", "b"]
        assert len(ignored) == 1
        assert ignored[0].msg_type == ULogMessageType.DATA
        assert ignored[0].raw_bytes == b"\x03\x00" + struct.pack("<Qi", 3, 30)

    def test_bytes_read_unaffected(self):
        """Test that filtering does not change how much is read."""
        log = self._log()
        filtered = engine_for(log, subscription_allow_list={"a"})
        unfiltered = engine_for(log)
        list(filtered)
        list(unfiltered)

        assert filtered.bytes_read == unfiltered.bytes_read == len(log)

    def test_set_allow_list_after_start(self):
        """Test changing the allow-list once subscriptions are known."""
        engine = engine_for(self._log())
        for _ in range(6):
            engine.next_message()

        engine.set_subscription_allow_list(["c"])
        rest = list(engine)

        assert [type(m) for m in rest] == [Ignored, Ignored, LoggedData]

    def test_subscription_filter(self):
        """Test the derived msg_id set."""
        flt = SubscriptionFilter({"a"})
        flt.update(Subscription(1, 0, "a"))
        flt.update(Subscription(2, 0, "b"))

        assert flt.is_allowed(1)
        assert not flt.is_allowed(2)

        flt.update(Subscription(1, 0, "b"))
        assert not flt.is_allowed(1)

    def test_no_allow_list(self):
        """Test that every msg_id is allowed without an allow-list."""
        assert SubscriptionFilter(None).is_allowed(123)


class TestMultiInstance:
    """Tests for multi-instance subscriptions."""

    def test_multi_id_index(self):
        """Test that records carry the multi_id of their subscription."""
        log = build_log(
            format_record("demo:uint64_t timestamp;float x;"),
            subscription_record(1, "demo", multi_id=0),
            subscription_record(2, "demo", multi_id=1),
            data_record(1, struct.pack("<Qf", 1, 1.0)),
            data_record(2, struct.pack("<Qf", 2, 2.0)),
        )
        engine = engine_for(log)
        data = [m for m in engine if isinstance(m, LoggedData)]

        assert [d.data.multi_id_index for d in data] == [0, 1]
        assert engine.multi_instance_names == frozenset({"demo"})
        assert str(data[1].data) == "demo[1] timestamp: 2, x: 2.0"

    def test_single_instance_has_no_index(self):
        """Test that single-instance records have no multi_id index."""
        data = list(engine_for(demo_log()))[-1]

        assert data.data.multi_id_index is None


class TestAppendedData:
    """Tests for the appended-data cutoff."""

    def test_cutoff(self):
        """Test that decoding stops at the appended data offset."""
        incompat = bytes([1]) + bytes(7)
        prefix = build_log(
            flag_bits_record(incompat=incompat, offsets=(1000, 0, 0)),
            format_record("demo:uint64_t timestamp;float x;"),
            subscription_record(1, "demo"),
            data_record(1, struct.pack("<Qf", 42, 3.5)),
        )
        filler = record("S", bytes(1000 - len(prefix) - 3))
        appended = b"\xff\xff" + b"crash dump" * 20
        log = prefix + filler + appended

        engine = engine_for(log)
        messages = list(engine)

        assert engine.max_bytes_to_read == 1000
        assert engine.bytes_read == 1000
        assert engine.state is EngineState.EOF
        assert isinstance(messages[0], FlagBits)
        assert messages[0].has_data_appended
        assert isinstance(messages[-1], Unhandled)
        assert messages[-1].msg_type == ULogMessageType.SYNC

    def test_smallest_nonzero_offset(self):
        """Test that the first cutoff is the smallest non-zero offset."""
        incompat = bytes([1]) + bytes(7)
        log = build_log(flag_bits_record(incompat=incompat, offsets=(0, 500, 300)))
        engine = engine_for(log)
        list(engine)

        assert engine.max_bytes_to_read == 300

    def test_no_cutoff_without_flag(self):
        """Test that offsets are ignored unless the data-appended bit is set."""
        log = build_log(flag_bits_record(offsets=(100, 0, 0)))
        engine = engine_for(log)
        list(engine)

        assert engine.max_bytes_to_read is None
