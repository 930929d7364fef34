"""
VRM Atlas CLI - Command-line interface for texture atlas optimization
"""

import click
import logging
import sys
from pathlib import Path

from vrm_atlas import __version__
from vrm_atlas.errors import InvalidContainerError, OptimizationError, PackingFailedError
from vrm_atlas.optimizer import optimize_vrm
from vrm_atlas.options import OptimizationOptions
from vrm_atlas.statistics import ModelStatistics, calculate_statistics


def _print_statistics(title: str, stats: ModelStatistics) -> None:
    click.echo(f"\n{title}:")
    click.echo(f"  File size: {stats.file_size_mb:.2f} MB")
    click.echo(f"  Polygons: {stats.polygon_count}")
    click.echo(f"  Materials: {stats.material_count}")
    click.echo(f"  Textures: {stats.texture_count} (images: {stats.image_count})")
    click.echo(f"  Meshes: {stats.mesh_count}")
    click.echo(f"  Bones: {stats.bone_count}")
    click.echo(f"  VRAM estimate: {stats.vram_estimate_mb:.2f} MB")


@click.group()
@click.version_option(version=__version__)
def cli():
    """
    VRM Atlas - Merge VRM avatar textures into texture atlases.

    Examples:
        vrm-atlas optimize avatar.vrm -o avatar.optimized.vrm
        vrm-atlas inspect avatar.vrm
    """
    pass


@cli.command()
@click.argument('input_path')
@click.option('-o', '--output', required=True, help='Output file path (.vrm, .glb)')
@click.option('--max-texture-size', default=2048, show_default=True, type=int,
              help='Atlas width/height in pixels')
@click.option('--texture-scale', default=None, type=float,
              help='Scale source textures (0.1-1.0) before packing')
@click.option('--padding', default=4, show_default=True, type=int,
              help='Pixels reserved around each packed texture')
@click.option('--compress-textures', is_flag=True, help='Optimise atlas PNG size (slower)')
@click.option('--verbose', '-v', is_flag=True, help='Show progress and before/after statistics')
def optimize(input_path, output, max_texture_size, texture_scale, padding, compress_textures, verbose):
    """
    Optimize a VRM model by merging its material textures into atlases.

    Examples:
        vrm-atlas optimize avatar.vrm -o out.vrm
        vrm-atlas optimize avatar.vrm -o out.vrm --max-texture-size 4096 --padding 8
        vrm-atlas optimize avatar.vrm -o out.vrm --texture-scale 0.5 --verbose
    """
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )
    try:
        # Check if input exists
        if not Path(input_path).exists():
            raise FileNotFoundError(f"Input file not found: {input_path}")

        options = OptimizationOptions(
            max_texture_size=max_texture_size,
            texture_scale=texture_scale,
            padding=padding,
            compress_textures=compress_textures,
        )

        click.echo(f"Optimizing: {input_path}")
        data = Path(input_path).read_bytes()
        result = optimize_vrm(data, options)

        click.echo(f"Saving to: {output}")
        result.save(output)

        if verbose:
            _print_statistics("Before", calculate_statistics(data))
            _print_statistics("After", calculate_statistics(result.data))
            report = result.report
            click.echo(f"\n  Atlased materials: {report.materials_atlased}")
            if report.atlas_slots:
                click.echo(f"  Atlas slots: {', '.join(report.atlas_slots)}")
            click.echo(f"  Packing efficiency: {report.packing_efficiency:.1%}")

        click.secho(f"✓ Success! Optimized model saved to {output}", fg='green')

    except FileNotFoundError as e:
        click.secho(f"Error: {e}", fg='red', err=True)
        sys.exit(1)
    except InvalidContainerError as e:
        click.secho(f"Invalid file: {e}", fg='red', err=True)
        sys.exit(1)
    except PackingFailedError as e:
        click.secho(f"Packing Error: {e} (try a larger --max-texture-size)", fg='red', err=True)
        sys.exit(1)
    except OptimizationError as e:
        click.secho(f"Optimization Error [{e.code}]: {e}", fg='red', err=True)
        sys.exit(1)
    except ValueError as e:
        click.secho(f"Error: {e}", fg='red', err=True)
        sys.exit(1)
    except Exception as e:
        click.secho(f"Unexpected error: {e}", fg='red', err=True)
        if verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


@cli.command()
@click.argument('input_path')
def inspect(input_path):
    """
    Show statistics for a VRM/GLB file.

    Examples:
        vrm-atlas inspect avatar.vrm
    """
    try:
        if not Path(input_path).exists():
            raise FileNotFoundError(f"Input file not found: {input_path}")
        stats = calculate_statistics(Path(input_path).read_bytes())
        click.echo(f"Schema: {stats.schema_version or 'not a VRM'}")
        _print_statistics("Statistics", stats)
    except FileNotFoundError as e:
        click.secho(f"Error: {e}", fg='red', err=True)
        sys.exit(1)
    except OptimizationError as e:
        click.secho(f"Invalid file: {e}", fg='red', err=True)
        sys.exit(1)


def main():
    """Entry point for the CLI"""
    cli()


if __name__ == '__main__':
    main()
