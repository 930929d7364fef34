"""
Texture atlas optimization pipeline

    bytes -> GLB codec -> Scenegraph -> material descriptors
          -> decode / pack / composite -> rewrite + flush -> UV remap
          -> Scenegraph -> GLB codec -> bytes
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from vrm_atlas.errors import OptimizationError, UnknownError
from vrm_atlas.options import OptimizationOptions
from vrm_atlas.rewriter import DebugSink, TextureRewriter
from vrm_atlas.scenegraph.model import Scenegraph
from vrm_atlas.texturing.atlas_builder import build_atlases
from vrm_atlas.texturing.image_io import ImageCapabilities, default_capabilities
from vrm_atlas.uv_remap import remap_uvs

logger = logging.getLogger(__name__)


@dataclass
class OptimizationReport:
    """Summary of one optimization run."""
    schema_version: str
    textures_before: int
    images_before: int
    textures_after: int = 0
    images_after: int = 0
    materials_atlased: int = 0
    atlas_slots: List[str] = field(default_factory=list)
    removed_textures: List[int] = field(default_factory=list)
    accessors_remapped: int = 0
    texture_scale: float = 1.0
    packing_efficiency: float = 0.0


@dataclass
class OptimizationResult:
    """Optimized GLB bytes plus the run report."""
    data: bytes
    report: OptimizationReport

    def save(self, path: Union[str, Path]) -> None:
        Path(path).write_bytes(self.data)


def optimize_scenegraph(
    scenegraph: Scenegraph,
    options: Optional[OptimizationOptions] = None,
    capabilities: Optional[ImageCapabilities] = None,
    debug_sink: Optional[DebugSink] = None,
) -> OptimizationReport:
    """
    Atlas the textures of a scenegraph in place.

    A document without any atlas candidate is left untouched.

    Raises:
        NoEligibleMaterialsError: Every candidate material had an undecodable texture
        PackingFailedError: Textures do not fit at any scale
        CompositeFailedError: Internal packer/compositor mismatch
    """
    options = options or OptimizationOptions()
    capabilities = capabilities or default_capabilities()

    report = OptimizationReport(
        schema_version=scenegraph.schema_version.value,
        textures_before=len(scenegraph.textures),
        images_before=len(scenegraph.images),
    )

    rewriter = TextureRewriter(scenegraph, debug_sink)
    descriptors = rewriter.build_descriptors(options.slots)
    if not descriptors:
        logger.info("No material textures to atlas, leaving document unchanged")
        report.textures_after = report.textures_before
        report.images_after = report.images_before
        return report

    result = build_atlases(scenegraph, descriptors, options, capabilities)
    placements = rewriter.apply_atlas_result(result)
    flush_report = rewriter.flush()
    report.accessors_remapped = remap_uvs(scenegraph, placements)

    report.materials_atlased = len(result.descriptors)
    report.atlas_slots = [atlas.slot for atlas in result.atlases]
    report.removed_textures = flush_report.removed_textures
    report.texture_scale = result.packing.scale
    report.packing_efficiency = result.packing.efficiency
    report.textures_after = len(scenegraph.textures)
    report.images_after = len(scenegraph.images)

    logger.info(
        f"Atlased {report.materials_atlased} material(s): textures {report.textures_before} -> "
        f"{report.textures_after}, images {report.images_before} -> {report.images_after}"
    )
    return report


def optimize_vrm(
    data: bytes,
    options: Optional[OptimizationOptions] = None,
    capabilities: Optional[ImageCapabilities] = None,
    debug_sink: Optional[DebugSink] = None,
) -> OptimizationResult:
    """
    Optimize VRM/GLB bytes.

    Args:
        data: Input GLB bytes
        options: Optimization options (defaults apply when omitted)
        capabilities: Image decode/encode/resize implementation (Pillow by default)
        debug_sink: Optional callback receiving rewriter snapshots

    Returns:
        OptimizationResult with the new GLB bytes and a report

    Raises:
        OptimizationError: Any pipeline failure; unexpected exceptions arrive as UnknownError

    Example:
        >>> result = optimize_vrm(Path("avatar.vrm").read_bytes())
        >>> result.save("avatar.optimized.vrm")
    """
    try:
        scenegraph = Scenegraph.from_glb(data)
        report = optimize_scenegraph(scenegraph, options, capabilities, debug_sink)
        return OptimizationResult(scenegraph.to_glb(), report)
    except OptimizationError:
        raise
    except Exception as e:
        raise UnknownError(f"Unexpected error during optimization: {e}") from e


def optimize_file(
    input_path: Union[str, Path],
    output_path: Union[str, Path],
    options: Optional[OptimizationOptions] = None,
) -> OptimizationReport:
    """Read a VRM/GLB file, optimize it and write the result."""
    input_path = Path(input_path)
    if not input_path.exists():
        raise FileNotFoundError(f"Input file not found: {input_path}")
    result = optimize_vrm(input_path.read_bytes(), options)
    result.save(output_path)
    return result.report
