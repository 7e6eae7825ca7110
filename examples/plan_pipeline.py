"""Plan a multi-scale detection pipeline for a GeoTIFF without running it.

Everything geoscan does before inference starts happens here:

  1. Open the raster and derive its pixel/projected/lon-lat transforms
  2. Plan the sliding window scales for the model's input size
  3. Turn include/exclude vector files into a pixel-space region mask
  4. Assemble and validate the stage graph an execution engine would run

No model runtime is needed: the model is described by its metadata only,
so this is a quick way to check window counts and filter coverage before
committing GPU time.

Usage:
    python examples/plan_pipeline.py scene.tif [include.geojson ...]
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from geoscan import (
    BoundingBox,
    ModelCategory,
    ModelMetadata,
    RunConfig,
    Size,
    assemble_pipeline,
    build_region_filter,
    open_local_image,
    plan_windows,
)
from geoscan.tiling import count_windows


def main(image_path: str, include_files: list[str]) -> None:
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    config = RunConfig(
        image=image_path,
        model_package="unused.gbdxm",
        output_path=f"{Path(image_path).stem}_detections.shp",
        window_size=[256, 512],
        nms=True,
        filter_definition=[("include", include_files)] if include_files else [],
    )
    config.validate()

    # A 512x512 vehicle detector, described without loading it
    metadata = ModelMetadata(
        name="vehicles",
        version="1.0",
        time_created=0.0,
        description="Example detector",
        model_size=Size(512, 512),
        color_mode="rgb",
        category=ModelCategory.DETECTION,
        labels=("car", "truck"),
        bounding_box=BoundingBox(-180.0, -90.0, 180.0, 90.0),
    )

    image = open_local_image(config.image, config.bbox)
    print(f"Raster: {Path(image_path).name}")
    print(f"  Size: {image.size.width} x {image.size.height} pixels")
    print(f"  AOI:  {image.aoi.bounds}")

    window_plan = plan_windows(metadata.model_size, config.window_size, config.window_step)
    print(f"\nWindow scales ({count_windows(image.aoi, window_plan)} windows in total):")
    for scale in window_plan:
        print(f"  {scale.size.width}x{scale.size.height} every {scale.step.x}x{scale.step.y} px")

    region_filter = build_region_filter(config.filter_definition, image)
    if region_filter is not None:
        coverage = region_filter.mask.area / (image.aoi.width * image.aoi.height)
        print(f"\nRegion filter covers {coverage:.1%} of the AOI")

    graph = assemble_pipeline(config, image, None, metadata, window_plan, region_filter=region_filter)
    print("\nPipeline:")
    for stage_name in graph.topological_order():
        print(f"  {stage_name}")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python plan_pipeline.py <geotiff.tif> [include.geojson ...]")
        sys.exit(1)
    main(sys.argv[1], sys.argv[2:])
