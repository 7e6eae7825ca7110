"""GeoScan main class - public API for planning and running a detection pipeline.

This module provides the primary user-facing interface. GeoScan opens the
image, loads the model, plans the sliding windows, builds the region filter
and assembles the pipeline graph, delegating each step to its module. The
graph is then handed to an external execution engine.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from geoscan._adapter import (
    ModelLoader,
    ModelMetadata,
    ModelPackage,
    RasterToPolygonConfig,
    describe_model,
    model_default_step,
    resolve_model,
)
from geoscan._typing import WindowSizeStep
from geoscan.assembler import DETECTOR, FEATURE_SINK, SLIDING_WINDOW, assemble_pipeline
from geoscan.config import RunConfig, SourceKind
from geoscan.exceptions import ConfigurationError
from geoscan.graph import ExecutionEngine, PipelineGraph
from geoscan.io import ImageContext, MapServiceClient, open_local_image, open_map_service_image
from geoscan.progress import CATEGORIES, PROCESSED_METRIC, ProgressDisplay, ProgressObserver
from geoscan.region_filter import FilterReader, RegionFilter, build_region_filter, read_filter_layers
from geoscan.tiling import plan_windows

logger = logging.getLogger(__name__)

MapClientFactory = Callable[[RunConfig], MapServiceClient]


class GeoScan:
    """Plan, assemble and run a streaming detection pipeline.

    Example::

        scan = GeoScan(RunConfig(image="scene.tif", model_package="cars.gbdxm",
                                 output_path="cars.shp"),
                       model_loader=load_package, engine=engine)
        count = scan.process()

    Args:
        config: Run settings. Validated on construction.
        model_loader: Runtime callable loading a model package.
        engine: Execution engine running the assembled graph.
        map_client_factory: Builds a map service client for remote sources.
        filter_reader: Reads region filter files.
        progress_display: Display fed by the progress observer. None for
            no progress reporting.

    Raises:
        ConfigurationError: If ``config`` is invalid.
    """

    def __init__(
        self,
        config: RunConfig,
        model_loader: ModelLoader,
        engine: ExecutionEngine,
        map_client_factory: MapClientFactory | None = None,
        filter_reader: FilterReader = read_filter_layers,
        progress_display: ProgressDisplay | None = None,
    ) -> None:
        config.validate()
        self._config = config
        self._model_loader = model_loader
        self._engine = engine
        self._map_client_factory = map_client_factory
        self._filter_reader = filter_reader
        self._progress_display = progress_display

        self._image: ImageContext | None = None
        self._model: Any = None
        self._metadata: ModelMetadata | None = None
        self._graph: PipelineGraph | None = None

    @property
    def config(self) -> RunConfig:
        return self._config

    @property
    def image(self) -> ImageContext | None:
        """The opened image, or None before open_image()."""
        return self._image

    @property
    def metadata(self) -> ModelMetadata | None:
        return self._metadata

    @property
    def graph(self) -> PipelineGraph | None:
        return self._graph

    def open_image(self) -> ImageContext:
        """Open the configured local image or map service.

        Raises:
            ConfigurationError: If a remote source has no client factory.
            EmptyIntersectionError: If the bbox misses the image.
        """
        config = self._config
        if config.source is SourceKind.LOCAL:
            self._image = open_local_image(config.image, config.bbox)
        else:
            if self._map_client_factory is None:
                raise ConfigurationError(
                    f"A map service client factory is required for the {config.source.value} source."
                )
            client = self._map_client_factory(config)
            self._image = open_map_service_image(
                client,
                config.source,
                config.bbox,
                zoom=config.zoom,
                max_connections=config.max_connections,
            )
        return self._image

    def load_model(self) -> ModelMetadata:
        """Load the model package and log its summary."""
        config = self._config
        self._model, self._metadata = resolve_model(
            ModelPackage(config.model_package),
            self._model_loader,
            use_gpu=config.use_gpu,
            max_utilization=config.max_utilization_fraction,
            raster_to_polygon=RasterToPolygonConfig(config.method, config.epsilon, config.min_area),
        )
        if not config.quiet:
            for line in describe_model(self._metadata):
                logger.info(line)
        return self._metadata

    def plan(self) -> list[WindowSizeStep]:
        """Sliding window scales for the loaded model."""
        if self._metadata is None:
            self.load_model()
        return plan_windows(
            self._metadata.model_size,
            self._config.window_size,
            self._config.window_step,
            default_step=model_default_step(self._model),
            resampled_size=self._config.resampled_size,
        )

    def region_filter(self) -> RegionFilter | None:
        image = self._image if self._image is not None else self.open_image()
        return build_region_filter(self._config.filter_definition, image, reader=self._filter_reader)

    def build(self) -> PipelineGraph:
        """Assemble the frozen pipeline graph, opening inputs as needed."""
        image = self._image if self._image is not None else self.open_image()
        if self._metadata is None:
            self.load_model()
        window_plan = self.plan()
        region_filter = self.region_filter()

        self._graph = assemble_pipeline(
            self._config,
            image,
            self._model,
            self._metadata,
            window_plan,
            region_filter=region_filter,
        )
        return self._graph

    def process(self) -> int:
        """Run the pipeline to completion.

        Returns:
            Number of features written by the sink.
        """
        graph = self._graph if self._graph is not None else self.build()
        quiet = self._config.quiet

        running = self._engine.launch(graph)
        sink = running.stage(FEATURE_SINK)

        display = self._progress_display if not quiet else None
        observer: ProgressObserver | None = None
        if display is not None:
            display.set_categories(CATEGORIES)
            display.start()
            observer = ProgressObserver(display, sink)
            observer.attach(running.stage(SLIDING_WINDOW), running.stage(DETECTOR))

        start = time.perf_counter()
        try:
            running.run()
            running.wait(cancel_on_error=observer is not None)
        finally:
            if observer is not None:
                observer.detach()
                display.stop()

        count = int(sink.metric(PROCESSED_METRIC).value)
        if not quiet:
            logger.info("%d features detected.", count)
            logger.info("Processing time %.3f s", time.perf_counter() - start)
        return count
