"""
Command-line interface for the Landsat surface reflectance correction.

Usage::

    landsat-sr SCENE.nc --lut LUT.nc --climatology CMG.nc --output SR.nc
"""

import logging
import sys
from typing import Optional

import click

from landsat_sr import __version__
from landsat_sr.constants import AERO_WINDOW, REFLECTANCE_BANDS, THERMAL_BANDS


@click.command()
@click.version_option(version=__version__)
@click.argument("scene", type=click.Path(exists=True, dir_okay=False))
@click.option("--lut", "lut_path", required=True,
              type=click.Path(exists=True, dir_okay=False),
              help="Radiative transfer lookup tables (netCDF)")
@click.option("--climatology", "climatology_path", required=True,
              type=click.Path(exists=True, dir_okay=False),
              help="CMG climatology (netCDF)")
@click.option("--output", "-o", required=True, type=click.Path(dir_okay=False),
              help="Output product (netCDF)")
@click.option("--workers", "-n", type=int, default=None,
              help="Worker threads (default: number of CPUs)")
@click.option("--window", type=int, default=AERO_WINDOW, show_default=True,
              help="Aerosol window size in pixels")
@click.option("--diagnostics/--no-diagnostics", default=False,
              help="Also write the AOT and Angstrom exponent rasters")
@click.option("--progress/--no-progress", default=True,
              help="Show a progress bar during the aerosol retrieval")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def main(
    scene: str,
    lut_path: str,
    climatology_path: str,
    output: str,
    workers: Optional[int],
    window: int,
    diagnostics: bool,
    progress: bool,
    verbose: bool,
):
    """Correct a calibrated Landsat 8/9 SCENE to surface reflectance."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    from landsat_sr import io
    from landsat_sr.correction import SurfaceReflectanceCorrection

    try:
        lut = io.load_lut(lut_path)
        climatology = io.load_climatology(climatology_path)
        data = io.load_scene(scene)

        sr = SurfaceReflectanceCorrection(
            lut, climatology, window=window, max_workers=workers,
            progress=progress,
        )
        result = sr.process(data.sband, data.qaband, data.geometry, data.geolocator)

        thermal = {b: data.sband[b] for b in THERMAL_BANDS if b in data.sband}
        io.write_products(
            output,
            {b: result.surface_reflectance[b] for b in REFLECTANCE_BANDS},
            result.ipflag,
            result.fill_mask,
            thermal=thermal,
            taero=result.taero if diagnostics else None,
            teps=result.teps if diagnostics else None,
            attrs={"satellite": data.geometry.satellite.value,
                   "pressure": result.atmosphere.pressure,
                   "ozone": result.atmosphere.ozone,
                   "water_vapor": result.atmosphere.water_vapor},
        )
    except Exception as e:
        click.echo(click.style(f"\n✗ Correction failed: {e}", fg="red"), err=True)
        if verbose:
            raise
        sys.exit(1)

    click.echo(click.style(f"\n✓ Surface reflectance written to {output}", fg="green"))


if __name__ == "__main__":
    main()
