"""
VRM Atlas Quick Start Example

This example merges the textures of a VRM avatar into atlases and
prints what changed.
"""

from pathlib import Path

from vrm_atlas import OptimizationOptions, calculate_statistics, optimize_vrm

data = Path("avatar.vrm").read_bytes()

print("Optimizing avatar.vrm...")
result = optimize_vrm(data, OptimizationOptions(max_texture_size=2048, padding=4))
result.save("output/avatar.optimized.vrm")
print("✅ Saved to output/avatar.optimized.vrm")

before = calculate_statistics(data)
after = calculate_statistics(result.data)
print(f"\nTextures: {before.texture_count} -> {after.texture_count}")
print(f"VRAM estimate: {before.vram_estimate_mb:.2f} MB -> {after.vram_estimate_mb:.2f} MB")
print(f"Atlas slots: {', '.join(result.report.atlas_slots) or 'none'}")
