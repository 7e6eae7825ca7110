"""Dataflow graph of named pipeline stages.

A PipelineGraph is a DAG: stages are nodes carrying a typed configuration,
connections join a named output port of one stage to a named input port of
another. Building the graph never runs anything. Once validated and frozen
the graph is handed to an ExecutionEngine, which owns scheduling.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from graphlib import CycleError, TopologicalSorter
from typing import Any, Protocol

from geoscan.exceptions import GraphFrozenError, PipelineError
from geoscan.stages import StageConfig


@dataclass(frozen=True)
class Connection:
    """``source.output -> target.input``."""

    source: str
    output: str
    target: str
    input: str

    def __str__(self) -> str:
        return f"{self.source}.{self.output} -> {self.target}.{self.input}"


@dataclass(frozen=True)
class Stage:
    """A named node of the graph.

    ``attribute_source`` names the stage whose raster attributes (size,
    band layout) this stage reports, when it differs from its input.
    """

    name: str
    config: StageConfig
    attribute_source: str | None = None

    @property
    def inputs(self) -> tuple[str, ...]:
        return type(self.config).INPUTS

    @property
    def outputs(self) -> tuple[str, ...]:
        return type(self.config).OUTPUTS


class PipelineGraph:
    """Mutable builder for a stage DAG, frozen once validated."""

    def __init__(self) -> None:
        self._stages: dict[str, Stage] = {}
        self._connections: list[Connection] = []
        self._frozen = False

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_mutable(self) -> None:
        if self._frozen:
            raise GraphFrozenError("Pipeline graph is frozen and cannot be modified.")

    def add_stage(self, name: str, config: StageConfig, attribute_source: str | None = None) -> Stage:
        """Add a stage.

        Raises:
            GraphFrozenError: If the graph is frozen.
            PipelineError: For a duplicate name or unknown attribute source.
        """
        self._check_mutable()
        if name in self._stages:
            raise PipelineError(f"Duplicate stage name '{name}'.", stage=name)
        if attribute_source is not None and attribute_source not in self._stages:
            raise PipelineError(
                f"Attribute source '{attribute_source}' of stage '{name}' is not in the graph.",
                stage=name,
                attribute_source=attribute_source,
            )
        stage = Stage(name, config, attribute_source)
        self._stages[name] = stage
        return stage

    def connect(self, source: str, output: str, target: str, input: str) -> Connection:
        """Connect ``source.output`` to ``target.input``.

        An output may feed several inputs; an input accepts one connection.

        Raises:
            GraphFrozenError: If the graph is frozen.
            PipelineError: For unknown stages or ports, or an input that
                is already connected.
        """
        self._check_mutable()
        source_stage = self.stage(source)
        target_stage = self.stage(target)

        if output not in source_stage.outputs:
            raise PipelineError(
                f"Stage '{source}' has no output '{output}' (outputs: {list(source_stage.outputs)}).",
                stage=source,
                port=output,
            )
        if input not in target_stage.inputs:
            raise PipelineError(
                f"Stage '{target}' has no input '{input}' (inputs: {list(target_stage.inputs)}).",
                stage=target,
                port=input,
            )
        for existing in self._connections:
            if existing.target == target and existing.input == input:
                raise PipelineError(f"Input '{target}.{input}' is already connected ({existing}).", stage=target)

        connection = Connection(source, output, target, input)
        self._connections.append(connection)
        return connection

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def stage(self, name: str) -> Stage:
        try:
            return self._stages[name]
        except KeyError:
            raise PipelineError(f"No stage named '{name}' in the graph.", stage=name) from None

    @property
    def stages(self) -> tuple[Stage, ...]:
        return tuple(self._stages.values())

    @property
    def stage_names(self) -> list[str]:
        return list(self._stages)

    @property
    def connections(self) -> tuple[Connection, ...]:
        return tuple(self._connections)

    def __contains__(self, name: object) -> bool:
        return name in self._stages

    def __len__(self) -> int:
        return len(self._stages)

    def upstream(self, name: str) -> list[str]:
        """Names of the stages feeding ``name``."""
        self.stage(name)
        return [c.source for c in self._connections if c.target == name]

    def downstream(self, name: str) -> list[str]:
        """Names of the stages fed by ``name``."""
        self.stage(name)
        return [c.target for c in self._connections if c.source == name]

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def topological_order(self) -> list[str]:
        """Stage names with every stage after all of its sources.

        Raises:
            PipelineError: If the graph contains a cycle.
        """
        sorter: TopologicalSorter[str] = TopologicalSorter()
        for name in self._stages:
            sorter.add(name, *self.upstream(name))
        try:
            return list(sorter.static_order())
        except CycleError as err:
            raise PipelineError(f"Pipeline graph contains a cycle: {err.args[1]}.", cycle=err.args[1]) from err

    def validate(self) -> None:
        """Check every input port is connected and the graph is acyclic.

        Raises:
            PipelineError: Describing the first problem found.
        """
        if not self._stages:
            raise PipelineError("Pipeline graph has no stages.")

        connected = {(c.target, c.input) for c in self._connections}
        for stage in self._stages.values():
            for port in stage.inputs:
                if (stage.name, port) not in connected:
                    raise PipelineError(
                        f"Input '{stage.name}.{port}' is not connected.",
                        stage=stage.name,
                        port=port,
                    )

        self.topological_order()

    def freeze(self) -> PipelineGraph:
        """Validate and freeze the graph. Returns the graph itself."""
        self.validate()
        self._frozen = True
        return self

    def describe(self) -> list[str]:
        """One line per connection, in insertion order."""
        return [str(c) for c in self._connections]

    def __repr__(self) -> str:
        state = "frozen" if self._frozen else "open"
        return f"PipelineGraph(stages={len(self._stages)}, connections={len(self._connections)}, {state})"


# ---------------------------------------------------------------------------
# Execution engine contract
# ---------------------------------------------------------------------------


class Signal(Protocol):
    def connect(self, callback: Callable[[Any], None]) -> Any: ...

    def disconnect(self, callback: Callable[[Any], None]) -> None: ...


class Metric(Protocol):
    """An observable value published by a running stage."""

    @property
    def value(self) -> Any: ...

    def changed(self) -> Signal: ...


class StageHandle(Protocol):
    """A stage of a running pipeline."""

    def metric(self, name: str) -> Metric: ...

    def cancel(self) -> None: ...


class RunningPipeline(Protocol):
    def stage(self, name: str) -> StageHandle: ...

    def run(self) -> None: ...

    def wait(self, cancel_on_error: bool = False) -> None: ...

    def cancel(self) -> None: ...


class ExecutionEngine(Protocol):
    """Runs a frozen PipelineGraph."""

    def launch(self, graph: PipelineGraph) -> RunningPipeline: ...
