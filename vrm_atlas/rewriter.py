"""
Reference rewriter and texture garbage collector

Swaps per-material textures for atlas textures in two phases:

    apply_atlas_result()  queue new textures and (material, slot) assignments
    flush()               insert textures, write assignments, delete textures
                          nobody references any more

Run states: IDLE -> DESCRIPTORS_BUILT -> ATLAS_APPLIED -> FLUSHED.
reset() starts a new run on the same scenegraph.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Set

from vrm_atlas.errors import InvalidStateError
from vrm_atlas.materials.resolver import MaterialDescriptor, build_descriptors, find_material_properties
from vrm_atlas.materials.slots import TextureRef, write_texture_ref
from vrm_atlas.scenegraph.format_utils import get_index
from vrm_atlas.scenegraph.model import Scenegraph, SchemaVersion
from vrm_atlas.texturing.atlas_builder import AtlasBuildResult
from vrm_atlas.uv_remap import MaterialPlacement

logger = logging.getLogger(__name__)

DebugSink = Callable[[str, Dict[str, Any]], None]


class RewriteState(str, Enum):
    IDLE = "idle"
    DESCRIPTORS_BUILT = "descriptors_built"
    ATLAS_APPLIED = "atlas_applied"
    FLUSHED = "flushed"


@dataclass(frozen=True)
class AssignmentKey:
    material_index: int
    slot: str


@dataclass
class PendingTexture:
    """Atlas image waiting to be inserted as image + texture."""
    slot: str
    data: bytes
    mime_type: str
    name: str
    sampler: Optional[int] = None


@dataclass
class PendingAssignment:
    key: AssignmentKey
    pending_texture: int  # position in the rewriter's pending texture list
    tex_coord: int = 0

    @property
    def material_index(self) -> int:
        return self.key.material_index

    @property
    def slot(self) -> str:
        return self.key.slot


class PendingAssignments:
    """Assignments keyed by (material, slot); the first request for a key wins."""

    def __init__(self):
        self._items: Dict[AssignmentKey, PendingAssignment] = {}

    def add(self, assignment: PendingAssignment) -> bool:
        """Queue an assignment. Returns False if its key was already queued."""
        if assignment.key in self._items:
            return False
        self._items[assignment.key] = assignment
        return True

    def referenced_textures(self) -> Set[int]:
        return {a.pending_texture for a in self._items.values()}

    def clear(self) -> None:
        self._items.clear()

    def __contains__(self, key: AssignmentKey) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[PendingAssignment]:
        return iter(list(self._items.values()))


@dataclass
class FlushReport:
    """What flush() changed. Indices are final (after deletions)."""
    added_textures: List[int] = field(default_factory=list)
    removed_textures: List[int] = field(default_factory=list)
    assignments_written: int = 0


class TextureRewriter:
    """
    Drives one atlas run against a Scenegraph.

    Args:
        scenegraph: Document to rewrite (owned by the caller)
        debug_sink: Optional callback receiving (stage, snapshot) at every transition
    """

    def __init__(self, scenegraph: Scenegraph, debug_sink: Optional[DebugSink] = None):
        self.scenegraph = scenegraph
        self.debug_sink = debug_sink
        self.reset()

    def reset(self) -> None:
        """Forget all pending work and return to IDLE."""
        self._state = RewriteState.IDLE
        self._descriptors: List[MaterialDescriptor] = []
        self._pending_textures: List[PendingTexture] = []
        self._assignments = PendingAssignments()
        self._removal_candidates: Set[int] = set()
        self._placed_materials: Set[int] = set()

    @property
    def state(self) -> RewriteState:
        return self._state

    @property
    def descriptors(self) -> List[MaterialDescriptor]:
        return list(self._descriptors)

    def _require(self, action: str, *states: RewriteState) -> None:
        if self._state not in states:
            raise InvalidStateError(
                f"Cannot {action} in state '{self._state.value}' "
                f"(expected {' or '.join(s.value for s in states)})"
            )

    def _emit(self, stage: str, **details: Any) -> None:
        if self.debug_sink is None:
            return
        snapshot = {
            'state': self._state.value,
            'textures': len(self.scenegraph.textures),
            'images': len(self.scenegraph.images),
            'pending_textures': len(self._pending_textures),
            'pending_assignments': len(self._assignments),
        }
        snapshot.update(details)
        self.debug_sink(stage, snapshot)

    def build_descriptors(self, slots: Optional[Iterable[str]] = None) -> List[MaterialDescriptor]:
        """Resolve material descriptors for this run (IDLE -> DESCRIPTORS_BUILT)."""
        self._require("build descriptors", RewriteState.IDLE)
        self._descriptors = build_descriptors(self.scenegraph, slots)
        self._state = RewriteState.DESCRIPTORS_BUILT
        self._emit("descriptors_built", descriptors=len(self._descriptors))
        return self.descriptors

    def apply_atlas_result(self, result: AtlasBuildResult) -> List[MaterialPlacement]:
        """
        Queue atlas textures and slot assignments.

        Repeated (material, slot) pairs are ignored, so applying the same
        result twice changes nothing.

        Returns:
            Placements of materials that received their first assignment in this call
        """
        self._require("apply an atlas result", RewriteState.DESCRIPTORS_BUILT, RewriteState.ATLAS_APPLIED)

        by_material = {d.material_index: d for d in self._descriptors}
        tex_coords = {p.material_index: p.tex_coord for p in result.placements}
        newly_assigned: Set[int] = set()

        for atlas in result.atlases:
            pending_index = len(self._pending_textures)
            self._pending_textures.append(PendingTexture(
                atlas.slot, atlas.data, atlas.mime_type, f"atlas_{atlas.slot}",
                self._shared_sampler(atlas.slot, atlas.material_indices, by_material),
            ))
            for material_index in atlas.material_indices:
                descriptor = by_material.get(material_index)
                if descriptor is None or atlas.slot not in descriptor.slots:
                    logger.warning(f"Atlas {atlas.slot} lists unknown material {material_index}, skipping")
                    continue
                key = AssignmentKey(material_index, atlas.slot)
                assignment = PendingAssignment(key, pending_index, tex_coords.get(material_index, 0))
                if not self._assignments.add(assignment):
                    logger.debug(f"Material {material_index} slot {atlas.slot} already assigned")
                    continue
                self._removal_candidates.add(descriptor.slots[atlas.slot].texture_index)
                newly_assigned.add(material_index)

        placements = [
            p for p in result.placements
            if p.material_index in newly_assigned and p.material_index not in self._placed_materials
        ]
        self._placed_materials.update(p.material_index for p in placements)

        self._state = RewriteState.ATLAS_APPLIED
        self._emit("atlas_applied", new_assignments=len(newly_assigned))
        return placements

    def _shared_sampler(
        self,
        slot: str,
        material_indices: Iterable[int],
        by_material: Dict[int, MaterialDescriptor],
    ) -> Optional[int]:
        """Sampler of the merged source textures, if they all use the same one."""
        textures = self.scenegraph.textures
        samplers = set()
        for material_index in material_indices:
            descriptor = by_material.get(material_index)
            if descriptor is None or slot not in descriptor.slots:
                continue
            texture_index = descriptor.slots[slot].texture_index
            if texture_index < len(textures):
                samplers.add(get_index(textures[texture_index], 'sampler'))
        if len(samplers) == 1:
            return samplers.pop()
        if samplers:
            logger.debug(f"Sources of the {slot} atlas use different samplers, leaving it unset")
        return None

    def flush(self) -> FlushReport:
        """
        Commit pending work to the scenegraph (ATLAS_APPLIED -> FLUSHED).

        Removal candidates are deleted in descending index order, and only
        if a full usage scan finds no remaining reference to them.
        """
        self._require("flush", RewriteState.ATLAS_APPLIED)
        graph = self.scenegraph
        report = FlushReport()

        inserted: Dict[int, int] = {}
        for pending_index in sorted(self._assignments.referenced_textures()):
            pending = self._pending_textures[pending_index]
            image_index = graph.add_image(pending.data, pending.mime_type, pending.name)
            inserted[pending_index] = graph.add_texture(image_index, pending.sampler, pending.name)

        for assignment in self._assignments:
            material = graph.materials[assignment.material_index]
            properties = None
            if graph.schema_version == SchemaVersion.VRM0:
                properties = find_material_properties(graph, assignment.material_index)
            write_texture_ref(
                graph.schema_version,
                material,
                properties,
                assignment.slot,
                TextureRef(inserted[assignment.pending_texture], assignment.tex_coord),
            )
            report.assignments_written += 1

        usage = graph.texture_usage()
        for index in sorted(self._removal_candidates, reverse=True):
            if usage.get(index, 0) > 0:
                logger.debug(f"Texture {index} still has {usage[index]} reference(s), keeping it")
                continue
            graph.delete_texture(index)
            report.removed_textures.append(index)

        report.added_textures = [
            index - sum(1 for removed in report.removed_textures if removed < index)
            for index in sorted(inserted.values())
        ]

        self._state = RewriteState.FLUSHED
        logger.info(
            f"Flushed {report.assignments_written} assignment(s): "
            f"+{len(report.added_textures)} / -{len(report.removed_textures)} texture(s)"
        )
        self._emit("flushed", removed=list(report.removed_textures))
        return report
