"""Assembly of the detection pipeline graph.

Which stages exist and how they are wired depends on the run: an alpha
band adds a band remover in front of the cache, a region filter sits
between the border and the sliding window, label filtering and
non-max suppression are optional, detection models need their boxes
turned into polygons and a catalog id adds a field extractor before the
sink. Every optional stage is spliced into a single linear chain, so
the wiring rules live in one place.
"""

from __future__ import annotations

import logging
import warnings
from collections.abc import Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any

from geoscan._adapter import ModelMetadata
from geoscan._typing import WindowSizeStep
from geoscan.catalog import build_catalog_extractor
from geoscan.config import RunConfig
from geoscan.exceptions import LabelFilterWarning
from geoscan.export import build_extra_fields, build_field_definitions
from geoscan.graph import PipelineGraph
from geoscan.stages import (
    BlockCacheConfig,
    BoxToPolygonConfig,
    DetectorConfig,
    FeatureSinkConfig,
    LabelFilterConfig,
    LabelFilterMode,
    NmsConfig,
    PredictionGeometry,
    PredictionToFeatureConfig,
    RemoveAlphaConfig,
    SlidingWindowConfig,
    StageConfig,
    SubsetRegionFilterConfig,
    SubsetWithBorderConfig,
)
from geoscan.tiling import resampled_window_size

if TYPE_CHECKING:
    from geoscan.io import ImageContext
    from geoscan.region_filter import RegionFilter

logger = logging.getLogger(__name__)

# Stage names
BLOCK_SOURCE = "blockSource"
REMOVE_ALPHA = "removeAlpha"
BLOCK_CACHE = "blockCache"
BORDER = "border"
REGION_FILTER = "regionFilter"
SLIDING_WINDOW = "slidingWindow"
DETECTOR = "detector"
LABEL_FILTER = "labelFilter"
NMS = "nms"
PREDICTION_TO_POLY = "predictionToPoly"
PRED_TO_FEATURE = "predToFeature"
FIELD_EXTRACTOR = "fieldExtractor"
FEATURE_SINK = "featureSink"


def select_label_filter(
    include_labels: Sequence[str],
    exclude_labels: Sequence[str],
) -> tuple[tuple[str, ...], LabelFilterMode] | None:
    """Pick the label list and mode; exclusion wins over inclusion.

    Returns:
        (labels, mode), or None when both lists are empty.
    """
    if exclude_labels:
        if include_labels:
            warnings.warn(
                "Both include and exclude labels were given; the include labels are ignored.",
                LabelFilterWarning,
                stacklevel=3,
            )
        return tuple(exclude_labels), LabelFilterMode.EXCLUDE
    if include_labels:
        return tuple(include_labels), LabelFilterMode.INCLUDE
    return None


class _ChainBuilder:
    """Adds stages to a graph, each fed by the previously added one."""

    def __init__(self, graph: PipelineGraph) -> None:
        self.graph = graph
        self.tail: str | None = None

    def add(self, name: str, config: StageConfig, attribute_source: str | None = None) -> None:
        self.graph.add_stage(name, config, attribute_source)
        if self.tail is not None:
            source = self.graph.stage(self.tail)
            self.graph.connect(self.tail, source.outputs[0], name, type(config).INPUTS[0])
        self.tail = name


def assemble_pipeline(
    config: RunConfig,
    image: ImageContext,
    model: Any,
    metadata: ModelMetadata,
    window_plan: Sequence[WindowSizeStep],
    region_filter: RegionFilter | None = None,
    now: datetime | None = None,
    username: str | None = None,
) -> PipelineGraph:
    """Build, validate and freeze the pipeline graph of a run.

    Args:
        config: Run settings.
        image: Opened image: block source, transforms, AOI and alpha flag.
        model: Loaded model handle given to the detector.
        metadata: Metadata of ``model``.
        window_plan: Sliding window scales from plan_windows().
        region_filter: Optional mask from build_region_filter().
        now: Timestamp stamped on features. Current UTC time if None.
        username: Producer name for producer info fields.

    Returns:
        Frozen PipelineGraph.

    Raises:
        ConfigurationError: If a stage setting is invalid or catalog
            lookup is requested without credentials or token.
        PipelineError: If the assembled graph does not validate.
    """
    # Fails before any stage is created
    catalog = build_catalog_extractor(config, image.image_reference)

    geometry = PredictionGeometry.for_category(metadata.category)
    label_filter = select_label_filter(config.include_labels, config.exclude_labels)
    buffer_size = config.cache_buffer_size

    graph = PipelineGraph()
    chain = _ChainBuilder(graph)

    chain.add(BLOCK_SOURCE, image.source)
    attributes = BLOCK_SOURCE
    if image.has_alpha:
        chain.add(REMOVE_ALPHA, RemoveAlphaConfig(), attribute_source=BLOCK_SOURCE)
        attributes = REMOVE_ALPHA

    chain.add(BLOCK_CACHE, BlockCacheConfig(buffer_size=buffer_size), attribute_source=attributes)
    padded_size = metadata.model_size if config.resampled_size is not None else None
    chain.add(BORDER, SubsetWithBorderConfig(padded_size=padded_size), attribute_source=attributes)

    if region_filter is not None:
        chain.add(REGION_FILTER, SubsetRegionFilterConfig(region_filter=region_filter))

    chain.add(
        SLIDING_WINDOW,
        SlidingWindowConfig(
            window_sizes=tuple(window_plan),
            resampled_size=resampled_window_size(metadata.model_size, config.resampled_size),
            aoi=image.aoi,
            buffer_size=buffer_size,
        ),
        attribute_source=attributes,
    )
    chain.add(DETECTOR, DetectorConfig(model=model, confidence=config.confidence_fraction, geometry=geometry))

    if label_filter is not None:
        labels, mode = label_filter
        chain.add(LABEL_FILTER, LabelFilterConfig(labels=labels, mode=mode, geometry=geometry))

    if config.nms:
        chain.add(NMS, NmsConfig(overlap_threshold=config.overlap_fraction, geometry=geometry))

    if geometry is PredictionGeometry.BOX:
        chain.add(PREDICTION_TO_POLY, BoxToPolygonConfig())

    chain.add(
        PRED_TO_FEATURE,
        PredictionToFeatureConfig(
            geometry_type=config.geometry_type,
            pixel_to_proj=image.pixel_to_proj,
            extra_fields=build_extra_fields(config.producer_info, config.extra_fields, now=now, username=username),
        ),
    )

    if catalog is not None:
        chain.add(FIELD_EXTRACTOR, catalog)

    chain.add(
        FEATURE_SINK,
        FeatureSinkConfig(
            spatial_reference=image.image_reference,
            output_reference=image.output_reference,
            geometry_type=config.geometry_type,
            path=str(config.output_path),
            layer_name=config.layer_name,
            output_format=config.output_format,
            open_mode=config.open_mode,
            field_definitions=build_field_definitions(
                producer_info=config.producer_info,
                catalog=catalog is not None,
                extra_fields=config.extra_fields,
            ),
        ),
    )

    graph.freeze()
    logger.debug("Assembled pipeline: %s", " | ".join(graph.describe()))
    return graph
