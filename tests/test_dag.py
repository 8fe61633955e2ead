import pytest

from pipedef.dag import build_stage_graph, find_cycle_nodes, topo_levels


def test_levels_keep_document_order():
    adj, indeg = build_stage_graph({"b": [], "a": [], "c": ["a", "b"]})
    assert topo_levels(adj, indeg, order=["b", "a", "c"]) == [["b", "a"], ["c"]]


def test_missing_dependency_raises():
    with pytest.raises(ValueError, match="missing stage 'x'"):
        build_stage_graph({"a": ["x"]})


def test_cycle_raises_and_is_reported():
    adj, indeg = build_stage_graph({"a": ["c"], "b": ["a"], "c": ["b"], "d": []})
    assert find_cycle_nodes(adj, indeg) == ["a", "b", "c"]
    with pytest.raises(ValueError, match="cycle"):
        topo_levels(adj, indeg)
