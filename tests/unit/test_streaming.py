import pytest

from robochat.errors import ProtocolAnomaly, ToolArgumentParseError
from robochat.streaming import ToolCallAccumulator


# ---------------------------------------------------------------------------
# Reassembly
# ---------------------------------------------------------------------------


class TestAccumulatorReassembly:
    def test_fragments_concatenate_in_order(self):
        acc = ToolCallAccumulator()
        acc.on_start("inv_1", "formCreate", "toolu_1")
        for fragment in ['{"na', 'me": "Cust', 'omer Contact Form"}']:
            acc.on_fragment("inv_1", fragment)

        done = acc.on_complete("inv_1")

        assert done.tool_name == "formCreate"
        assert done.arguments == {"name": "Customer Contact Form"}
        assert done.call_id == "toolu_1"
        assert done.raw_arguments == '{"name": "Customer Contact Form"}'

    def test_empty_buffer_parses_as_empty_object(self):
        acc = ToolCallAccumulator()
        acc.on_start("inv_1", "formList")
        assert acc.on_complete("inv_1").arguments == {}

    def test_whitespace_only_buffer_parses_as_empty_object(self):
        acc = ToolCallAccumulator()
        acc.on_start("inv_1", "formList")
        acc.on_fragment("inv_1", "  ")
        assert acc.on_complete("inv_1").arguments == {}

    def test_call_id_defaults_to_invocation_id(self):
        acc = ToolCallAccumulator()
        acc.on_start("inv_1", "formList")
        assert acc.on_complete("inv_1").call_id == "inv_1"

    def test_interleaved_invocations_reconstruct_both(self):
        acc = ToolCallAccumulator()
        acc.on_start("a", "formCreate")
        acc.on_start("b", "formDelete")
        acc.on_fragment("a", '{"name": ')
        acc.on_fragment("b", '{"form_id": ')
        acc.on_fragment("a", '"Survey"}')
        acc.on_fragment("b", '"form_7"}')

        assert acc.on_complete("b").arguments == {"form_id": "form_7"}
        assert acc.on_complete("a").arguments == {"name": "Survey"}

    def test_non_object_json_is_returned_as_is(self):
        acc = ToolCallAccumulator()
        acc.on_start("inv_1", "formCreate")
        acc.on_fragment("inv_1", "[1, 2]")
        assert acc.on_complete("inv_1").arguments == [1, 2]


# ---------------------------------------------------------------------------
# Anomalies and parse errors
# ---------------------------------------------------------------------------


class TestAccumulatorErrors:
    def test_duplicate_start_is_anomaly(self):
        acc = ToolCallAccumulator()
        acc.on_start("inv_1", "formCreate")
        with pytest.raises(ProtocolAnomaly, match="duplicate start"):
            acc.on_start("inv_1", "formCreate")

    def test_orphan_fragment_is_anomaly(self):
        acc = ToolCallAccumulator()
        with pytest.raises(ProtocolAnomaly, match="never started"):
            acc.on_fragment("ghost", '{"a": 1}')

    def test_complete_unknown_is_anomaly(self):
        acc = ToolCallAccumulator()
        with pytest.raises(ProtocolAnomaly):
            acc.on_complete("ghost")

    def test_invalid_json_raises_parse_error_with_raw_buffer(self):
        acc = ToolCallAccumulator()
        acc.on_start("inv_1", "formCreate")
        acc.on_fragment("inv_1", "{bad json")

        with pytest.raises(ToolArgumentParseError) as exc_info:
            acc.on_complete("inv_1")

        err = exc_info.value
        assert err.tool_name == "formCreate"
        assert err.raw == "{bad json"
        assert err.diagnostic
        assert str(err).startswith("could not parse tool arguments: ")

    def test_state_discarded_after_parse_error(self):
        acc = ToolCallAccumulator()
        acc.on_start("inv_1", "formCreate")
        acc.on_fragment("inv_1", "{bad")
        with pytest.raises(ToolArgumentParseError):
            acc.on_complete("inv_1")

        assert len(acc) == 0
        # The id may be reused once discarded.
        acc.on_start("inv_1", "formCreate")
        assert acc.open_ids == ["inv_1"]

    def test_state_discarded_after_success(self):
        acc = ToolCallAccumulator()
        acc.on_start("inv_1", "formCreate")
        acc.on_complete("inv_1")
        with pytest.raises(ProtocolAnomaly):
            acc.on_complete("inv_1")


class TestAccumulatorIsolation:
    def test_separate_accumulators_share_nothing(self):
        first = ToolCallAccumulator()
        second = ToolCallAccumulator()
        first.on_start("inv_1", "formCreate")

        assert len(first) == 1
        assert len(second) == 0
        with pytest.raises(ProtocolAnomaly):
            second.on_fragment("inv_1", "{}")
