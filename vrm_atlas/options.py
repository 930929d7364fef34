"""
Optimization options

Validated configuration for a single optimization run. Mirrors the knobs
exposed by the CLI.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from vrm_atlas.materials.slots import DEFAULT_ATLAS_SLOTS, validate_slot


class OptimizationOptions(BaseModel):
    """Options controlling how textures are merged into atlases."""
    model_config = ConfigDict(extra='forbid')

    max_texture_size: int = Field(
        2048, gt=0,
        description="Width and height bound of every generated atlas, in pixels"
    )
    texture_scale: Optional[float] = Field(
        None, ge=0.1, le=1.0,
        description="Scale applied to source textures before packing. "
                    "Derived from max_texture_size when unset"
    )
    padding: int = Field(4, ge=0, description="Pixels reserved around every packed texture")
    compress_textures: bool = Field(
        False, description="Spend extra time on lossless PNG optimisation of the atlases"
    )
    slots: List[str] = Field(
        default_factory=lambda: list(DEFAULT_ATLAS_SLOTS),
        description="Canonical material slots to merge into atlases"
    )
    max_workers: int = Field(4, gt=0, description="Threads used to decode source textures")

    @field_validator('slots')
    @classmethod
    def validate_slots(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("at least one slot must be selected")
        for slot in v:
            validate_slot(slot)
        # dedupe, keep order
        return list(dict.fromkeys(v))

    def resolve_texture_scale(self, largest_dimension: int) -> float:
        """
        Scale to apply to source textures before packing.

        An explicit texture_scale wins. Otherwise textures larger than
        max_texture_size are shrunk so the largest one fits, clamped to
        the [0.1, 1.0] range.
        """
        if self.texture_scale is not None:
            return self.texture_scale
        if largest_dimension <= 0:
            return 1.0
        return max(0.1, min(1.0, self.max_texture_size / largest_dimension))
