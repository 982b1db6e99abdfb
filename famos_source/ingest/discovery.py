from __future__ import annotations

from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import List, Optional
import logging

import pandas as pd

from famos_source.errors import SamplePeriodError
from famos_source.ingest.famos_file import FamosFile
from famos_source.models.catalog import (
    INVALID_ID_CHARS_EXPRESSION,
    INVALID_ID_START_CHARS_EXPRESSION,
    VALID_ID_EXPRESSION,
    Representation,
    Resource,
)
from famos_source.models.famos import FamosComponent, FamosFieldType, XAxisScaling


logger = logging.getLogger(__name__)

# DeltaX carries float noise from the acquisition (e.g. 0.019999999999); periods are
# defined on a 100 ns grid. Ties round to even.
SAMPLE_PERIOD_RESOLUTION = Decimal("0.0000001")


def sanitize_resource_id(name: str) -> str:
    """Drop characters outside ``[A-Za-z0-9_]``, then leading digits.

    Idempotent: the result contains neither, so a second pass changes nothing.
    """
    out = INVALID_ID_CHARS_EXPRESSION.sub("", name)
    return INVALID_ID_START_CHARS_EXPRESSION.sub("", out)


def enforce_naming_convention(name: str) -> Optional[str]:
    """Sanitized resource id for a channel name, or None if no valid id remains."""
    resource_id = sanitize_resource_id(name)
    if not VALID_ID_EXPRESSION.match(resource_id):
        return None
    return resource_id


def sample_period_from_scaling(scaling: Optional[XAxisScaling]) -> pd.Timedelta:
    """Sample period of an equidistant x axis, rounded to 100 ns.

    Raises
    ------
    SamplePeriodError
        If the axis is missing, its unit is not seconds, or the rounded period
        is not positive.
    """
    if scaling is None or scaling.unit != "s":
        raise SamplePeriodError("Could not determine the sample rate.")
    try:
        seconds = Decimal(scaling.delta_x).quantize(SAMPLE_PERIOD_RESOLUTION, rounding=ROUND_HALF_EVEN)
    except InvalidOperation as e:
        raise SamplePeriodError(f"Invalid sample period {scaling.delta_x!r}.") from e
    ns = int(seconds * 1_000_000_000)
    if ns <= 0:
        raise SamplePeriodError(f"Sample period {scaling.delta_x} s rounds to {seconds} s, which is not positive.")
    return pd.Timedelta(ns, unit="ns")


def unit_of(component: FamosComponent) -> str:
    calibration = component.calibration_info
    return calibration.unit if calibration is not None else ""


def discover_resources(famos_file: FamosFile, file_source_id: str) -> List[Resource]:
    """Resources of all analog components in equidistant time fields.

    One resource per component, named after the component's first channel.
    Components whose name cannot be turned into a valid id are skipped; a
    non-seconds x axis aborts discovery with :class:`SamplePeriodError`.
    """
    resources: List[Resource] = []

    for field in famos_file.fields:
        if field.type != FamosFieldType.MULTIPLE_Y_TO_SINGLE_EQUIDISTANT_TIME:
            continue

        for component in field.components:
            if not component.is_analog or not component.channels:
                continue

            channel = component.channels[0]
            resource_id = enforce_naming_convention(channel.name)
            if resource_id is None:
                logger.debug("%s: skipping channel %r (no valid resource id)", famos_file.path.name, channel.name)
                continue

            sample_period = sample_period_from_scaling(component.x_axis_scaling)

            resources.append(
                Resource(
                    id=resource_id,
                    unit=unit_of(component),
                    groups=(file_source_id,),
                    file_source_id=file_source_id,
                    original_name=channel.name,
                    representations=(Representation(sample_period=sample_period, data_type="FLOAT64"),),
                )
            )

    return resources
