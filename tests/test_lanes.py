"""Tests for sub-agent lane packing."""

import random

from vizier.graph import AgentSpan, apply_lanes, compute_agent_spans, pack_lanes


class TestComputeAgentSpans:
    def test_min_max_per_agent(self):
        spans = compute_agent_spans(
            [("a", 5), (None, 1), ("b", 3), ("a", 2), ("a", 9), ("b", 4)]
        )
        assert spans == {"a": AgentSpan(2, 9), "b": AgentSpan(3, 4)}

    def test_discovery_order(self):
        spans = compute_agent_spans([("late", 10), ("early", 1)])
        assert list(spans) == ["late", "early"]


class TestPackLanes:
    """Tests for pack_lanes."""

    def test_disjoint_agents_share_a_lane(self):
        lanes = pack_lanes({"a": AgentSpan(1, 2), "b": AgentSpan(3, 4)})
        assert lanes == {"a": 1, "b": 1}

    def test_overlapping_agents_get_separate_lanes(self):
        lanes = pack_lanes({"a": AgentSpan(1, 5), "b": AgentSpan(2, 3)})
        assert lanes == {"a": 1, "b": 2}

    def test_touching_spans_share_a_lane(self):
        """A lane is free once the previous agent ended at the new start."""
        lanes = pack_lanes({"a": AgentSpan(1, 3), "b": AgentSpan(3, 6)})
        assert lanes == {"a": 1, "b": 1}

    def test_lowest_free_lane_is_reused(self):
        lanes = pack_lanes(
            {
                "a": AgentSpan(0, 10),
                "b": AgentSpan(1, 3),
                "c": AgentSpan(2, 4),
                "d": AgentSpan(5, 6),
            }
        )
        assert lanes == {"a": 1, "b": 2, "c": 3, "d": 2}

    def test_equal_starts_keep_discovery_order(self):
        lanes = pack_lanes({"second": AgentSpan(1, 4), "first": AgentSpan(1, 2)})
        assert lanes == {"second": 1, "first": 2}

    def test_sorted_by_start_not_discovery(self):
        lanes = pack_lanes({"late": AgentSpan(10, 12), "early": AgentSpan(1, 11)})
        assert lanes == {"early": 1, "late": 2}

    def test_empty(self):
        assert pack_lanes({}) == {}

    def test_no_two_overlapping_agents_share_a_lane(self):
        rng = random.Random(7)
        spans = {}
        for i in range(40):
            start = rng.randint(0, 100)
            spans[f"agent-{i}"] = AgentSpan(start, start + rng.randint(0, 20))

        lanes = pack_lanes(spans)

        assert set(lanes) == set(spans)
        assert all(lane >= 1 for lane in lanes.values())
        for a, span_a in spans.items():
            for b, span_b in spans.items():
                if a < b and span_a.overlaps(span_b):
                    assert lanes[a] != lanes[b], f"{a} and {b} overlap"


class TestApplyLanes:
    """Tests for apply_lanes."""

    def test_sets_branch_level_and_links_root(self, make_node):
        nodes = [
            make_node("t1", "tool_call", timestamp=1),
            make_node("x1", "assistant", timestamp=2, agent_id="ag", parent_id="p0"),
            make_node("x2", "assistant", timestamp=3, agent_id="ag", parent_id="x1"),
        ]
        result = apply_lanes(nodes, {"ag": 2}, {"ag": "t1"})

        assert [n.branch_level for n in result] == [0, 2, 2]
        assert result[1].parent_id == "t1"
        assert result[2].parent_id == "x1"

    def test_unknown_spawner_keeps_parent(self, make_node):
        nodes = [make_node("x1", "assistant", agent_id="ag", parent_id="p0")]
        result = apply_lanes(nodes, {"ag": 1})
        assert result[0].parent_id == "p0"
        assert result[0].branch_level == 1

    def test_main_line_untouched(self, make_node):
        node = make_node("u1", "user")
        assert apply_lanes([node], {"ag": 1}, {"ag": "t1"}) == [node]
