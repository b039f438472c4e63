"""Unit tests for tool-call reassembly."""

import random

from fleetassist.events import ToolCallDelta
from fleetassist.streaming import ToolCall, ToolCallAccumulator


class TestToolCallAccumulator:
    def test_single_tool_call_single_fragment(self):
        acc = ToolCallAccumulator()
        acc.apply(ToolCallDelta(index=0, call_id="c1", name="echo", arguments='{"text": "hi"}'))
        result = acc.finalize()

        assert len(result) == 1
        assert result[0] == ToolCall(id="c1", name="echo", arguments='{"text": "hi"}')

    def test_search_call_split_mid_key(self):
        acc = ToolCallAccumulator()
        acc.apply(ToolCallDelta(index=0, call_id="c1", name="search_customer_by_name", arguments='{"na'))
        acc.apply(ToolCallDelta(index=0, arguments='me":"Ali"}'))

        assert acc.finalize() == [
            ToolCall(id="c1", name="search_customer_by_name", arguments='{"name":"Ali"}')
        ]

    def test_arguments_are_concatenation_of_fragments(self):
        arguments = '{"customerId": "cust-0001", "bookingType": "weekend"}'
        rng = random.Random(7)
        cuts = sorted(rng.sample(range(1, len(arguments)), 6))
        pieces = [arguments[i:j] for i, j in zip([0] + cuts, cuts + [len(arguments)])]

        acc = ToolCallAccumulator()
        acc.apply(ToolCallDelta(index=0, call_id="c1", name="create_quick_booking", arguments=pieces[0]))
        for piece in pieces[1:]:
            acc.apply(ToolCallDelta(index=0, arguments=piece))

        assert acc.finalize()[0].arguments == arguments

    def test_interleaved_tool_calls(self):
        acc = ToolCallAccumulator()
        acc.apply(ToolCallDelta(index=0, call_id="c1", name="foo", arguments='{"a":'))
        acc.apply(ToolCallDelta(index=1, call_id="c2", name="bar", arguments='{"b":'))
        acc.apply(ToolCallDelta(index=0, arguments=' 1}'))
        acc.apply(ToolCallDelta(index=1, arguments=' 2}'))
        result = acc.finalize()

        assert result == [
            ToolCall(id="c1", name="foo", arguments='{"a": 1}'),
            ToolCall(id="c2", name="bar", arguments='{"b": 2}'),
        ]

    def test_finalize_returns_index_order(self):
        acc = ToolCallAccumulator()
        acc.apply(ToolCallDelta(index=2, call_id="c3", name="c"))
        acc.apply(ToolCallDelta(index=0, call_id="c1", name="a"))
        acc.apply(ToolCallDelta(index=1, call_id="c2", name="b"))

        assert [tc.name for tc in acc.finalize()] == ["a", "b", "c"]

    def test_later_fragments_do_not_overwrite_id_or_name(self):
        acc = ToolCallAccumulator()
        acc.apply(ToolCallDelta(index=0, call_id="c1", name="first"))
        acc.apply(ToolCallDelta(index=0, call_id="c2", name="second", arguments="{}"))

        assert acc.finalize() == [ToolCall(id="c1", name="first", arguments="{}")]

    def test_id_and_name_filled_by_later_fragment(self):
        acc = ToolCallAccumulator()
        acc.apply(ToolCallDelta(index=0, arguments="{"))
        acc.apply(ToolCallDelta(index=0, call_id="c1", name="late", arguments="}"))

        assert acc.finalize() == [ToolCall(id="c1", name="late", arguments="{}")]

    def test_skipped_indices_leave_no_gap(self):
        acc = ToolCallAccumulator()
        acc.apply(ToolCallDelta(index=0, call_id="c1", name="a"))
        acc.apply(ToolCallDelta(index=3, call_id="c4", name="d"))

        result = acc.finalize()
        assert [tc.id for tc in result] == ["c1", "c4"]

    def test_missing_id_synthesized_from_index(self):
        acc = ToolCallAccumulator()
        acc.apply(ToolCallDelta(index=2, name="anon", arguments="{}"))

        assert acc.finalize()[0].id == "call_2"

    def test_len_counts_distinct_indices(self):
        acc = ToolCallAccumulator()
        acc.apply(ToolCallDelta(index=0, call_id="c1", name="a"))
        acc.apply(ToolCallDelta(index=0, arguments="{}"))
        acc.apply(ToolCallDelta(index=1, call_id="c2", name="b"))
        assert len(acc) == 2

    def test_empty_accumulator(self):
        acc = ToolCallAccumulator()
        assert acc.finalize() == []
