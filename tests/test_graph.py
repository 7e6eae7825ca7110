"""Tests for the pipeline stage graph."""

from __future__ import annotations

import pytest

from geoscan.exceptions import GraphFrozenError, PipelineError
from geoscan.graph import Connection, PipelineGraph
from geoscan.stages import BlockCacheConfig, LocalBlockSourceConfig, RemoveAlphaConfig


def _source_cache_graph() -> PipelineGraph:
    graph = PipelineGraph()
    graph.add_stage("source", LocalBlockSourceConfig(path="a.tif"))
    graph.add_stage("cache", BlockCacheConfig(), attribute_source="source")
    graph.connect("source", "blocks", "cache", "blocks")
    return graph


class TestConstruction:
    """Test stage and connection bookkeeping."""

    def test_add_stage(self):
        graph = _source_cache_graph()
        assert graph.stage_names == ["source", "cache"]
        assert graph.stage("cache").attribute_source == "source"
        assert "cache" in graph
        assert len(graph) == 2

    def test_stage_ports_from_config(self):
        stage = _source_cache_graph().stage("cache")
        assert stage.inputs == ("blocks",)
        assert stage.outputs == ("subsets",)

    def test_duplicate_stage(self):
        graph = _source_cache_graph()
        with pytest.raises(PipelineError, match="Duplicate stage name 'cache'"):
            graph.add_stage("cache", BlockCacheConfig())

    def test_unknown_attribute_source(self):
        graph = PipelineGraph()
        with pytest.raises(PipelineError, match="Attribute source 'ghost'"):
            graph.add_stage("cache", BlockCacheConfig(), attribute_source="ghost")

    def test_unknown_stage(self):
        with pytest.raises(PipelineError, match="No stage named 'nope'"):
            PipelineGraph().stage("nope")

    def test_unknown_output_port(self):
        graph = _source_cache_graph()
        graph.add_stage("alpha", RemoveAlphaConfig())
        with pytest.raises(PipelineError, match="has no output 'subsets'"):
            graph.connect("source", "subsets", "alpha", "blocks")

    def test_unknown_input_port(self):
        graph = _source_cache_graph()
        graph.add_stage("alpha", RemoveAlphaConfig())
        with pytest.raises(PipelineError, match="has no input 'subsets'"):
            graph.connect("source", "blocks", "alpha", "subsets")

    def test_input_connected_twice(self):
        graph = _source_cache_graph()
        graph.add_stage("other", LocalBlockSourceConfig(path="b.tif"))
        with pytest.raises(PipelineError, match="already connected"):
            graph.connect("other", "blocks", "cache", "blocks")

    def test_output_may_fan_out(self):
        graph = _source_cache_graph()
        graph.add_stage("alpha", RemoveAlphaConfig())
        graph.connect("source", "blocks", "alpha", "blocks")
        assert sorted(graph.downstream("source")) == ["alpha", "cache"]

    def test_connection_str(self):
        assert str(Connection("a", "x", "b", "y")) == "a.x -> b.y"
        assert _source_cache_graph().describe() == ["source.blocks -> cache.blocks"]


class TestValidation:
    """Test graph validation and freezing."""

    def test_empty_graph(self):
        with pytest.raises(PipelineError, match="no stages"):
            PipelineGraph().validate()

    def test_dangling_input(self):
        graph = _source_cache_graph()
        graph.add_stage("alpha", RemoveAlphaConfig())
        with pytest.raises(PipelineError, match="Input 'alpha.blocks' is not connected") as excinfo:
            graph.validate()
        assert excinfo.value.context == {"stage": "alpha", "port": "blocks"}

    def test_cycle(self):
        graph = PipelineGraph()
        graph.add_stage("a", RemoveAlphaConfig())
        graph.add_stage("b", RemoveAlphaConfig())
        graph.connect("a", "blocks", "b", "blocks")
        graph.connect("b", "blocks", "a", "blocks")
        with pytest.raises(PipelineError, match="cycle"):
            graph.validate()

    def test_topological_order(self):
        graph = PipelineGraph()
        graph.add_stage("cache", BlockCacheConfig())
        graph.add_stage("alpha", RemoveAlphaConfig())
        graph.add_stage("source", LocalBlockSourceConfig(path="a.tif"))
        graph.connect("source", "blocks", "alpha", "blocks")
        graph.connect("alpha", "blocks", "cache", "blocks")
        assert graph.topological_order() == ["source", "alpha", "cache"]

    def test_upstream(self):
        assert _source_cache_graph().upstream("cache") == ["source"]

    def test_freeze_returns_graph(self):
        graph = _source_cache_graph()
        assert graph.freeze() is graph
        assert graph.frozen
        assert "frozen" in repr(graph)

    def test_frozen_graph_rejects_changes(self):
        graph = _source_cache_graph().freeze()
        with pytest.raises(GraphFrozenError):
            graph.add_stage("alpha", RemoveAlphaConfig())
        with pytest.raises(GraphFrozenError):
            graph.connect("source", "blocks", "cache", "blocks")

    def test_invalid_graph_not_frozen(self):
        graph = PipelineGraph()
        graph.add_stage("alpha", RemoveAlphaConfig())
        with pytest.raises(PipelineError):
            graph.freeze()
        assert not graph.frozen
