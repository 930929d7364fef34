"""
VRM Atlas Advanced Example

This example drives the pipeline on a Scenegraph directly, restricts the
atlased slots, and watches the rewriter through a debug sink.
"""

import json
import logging

from vrm_atlas import OptimizationOptions, Scenegraph, optimize_scenegraph

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")


def print_snapshot(stage, snapshot):
    print(f"--- {stage} ---")
    print(json.dumps(snapshot, indent=2, default=str)[:500])


with open("avatar.vrm", "rb") as f:
    graph = Scenegraph.from_glb(f.read())

print(f"Schema: {graph.schema_version.value}")
print(f"Textures before: {len(graph.textures)}")

# Only merge base color and shade textures, leave normal maps alone
options = OptimizationOptions(
    slots=["baseColor", "custom:shadeMultiply"],
    texture_scale=0.5,
    compress_textures=True,
)
report = optimize_scenegraph(graph, options, debug_sink=print_snapshot)

print(f"\nTextures after: {len(graph.textures)}")
print(f"Removed textures: {report.removed_textures}")
print(f"Packing efficiency: {report.packing_efficiency:.1%}")

with open("output/avatar.optimized.vrm", "wb") as f:
    f.write(graph.to_glb())
print("✅ Saved to output/avatar.optimized.vrm")
