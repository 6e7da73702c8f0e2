"""
Pandera DataFrame schemas for pipeline validation gates.

Per-point and per-cell tables are kept as distinct, declared shapes:
observations carry a nullable (row, col) cell assignment, grid cells are
unique on (row, col), and the prediction frame covers every valid raster
cell. Covariate columns depend on the raster bands, so the cell-level
schemas are built by factory functions.

Usage:
    from occupancy_sdm.schemas import grid_cell_schema
    grid_cell_schema(["MAT", "ALT"]).validate(df)  # raises pa.errors.SchemaError
"""

import pandera as pa
from pandera import Column, Check, DataFrameSchema

from occupancy_sdm import config


# ── Point observations ──────────────────────────────────────────────────

ObservationSchema = DataFrameSchema(
    columns={
        "longitude": Column(float, Check.in_range(-180.0, 180.0), nullable=False, coerce=True),
        "latitude": Column(float, Check.in_range(-90.0, 90.0), nullable=False, coerce=True),
        "presence": Column(int, Check.isin([0, 1]), nullable=False, coerce=True),
        "duration_minutes": Column(float, Check.greater_than_or_equal_to(0.0), nullable=True, coerce=True),
        "effort_distance_km": Column(float, Check.greater_than_or_equal_to(0.0), nullable=True, coerce=True),
        "effort_area_ha": Column(float, Check.greater_than_or_equal_to(0.0), nullable=True, coerce=True),
    },
    strict=False,
    coerce=False,
    name="ObservationSchema",
)


# ── Joined observations (cell assignment attached) ──────────────────────

JoinedObservationSchema = DataFrameSchema(
    columns={
        "longitude": Column(float, nullable=False),
        "latitude": Column(float, nullable=False),
        "presence": Column(int, Check.isin([0, 1]), nullable=False, coerce=True),
        "row": Column("Int64", Check.greater_than_or_equal_to(0), nullable=True),
        "col": Column("Int64", Check.greater_than_or_equal_to(0), nullable=True),
    },
    strict=False,
    coerce=False,
    name="JoinedObservationSchema",
)


# ── Grid cells ──────────────────────────────────────────────────────────

def grid_cell_schema(covariates):
    """Schema for the per-cell fitting table with the given covariates."""
    columns = {
        "row": Column(int, Check.greater_than_or_equal_to(0), nullable=False),
        "col": Column(int, Check.greater_than_or_equal_to(0), nullable=False),
        "cell_lon": Column(float, nullable=False),
        "cell_lat": Column(float, nullable=False),
        "presences": Column(int, Check.greater_than_or_equal_to(0), nullable=False),
        "trials": Column(int, Check.greater_than(0), nullable=False),
    }
    for cov in covariates:
        columns[cov] = Column(float, nullable=False)
    return DataFrameSchema(
        columns=columns,
        checks=[
            Check(lambda df: df["trials"] >= df["presences"],
                  error="trials must be >= presences"),
        ],
        unique=config.CELL_KEY,
        strict=False,
        coerce=False,
        name="GridCellSchema",
    )


# ── Prediction frame ────────────────────────────────────────────────────

def prediction_frame_schema(covariates):
    """Schema for the full-extent prediction table."""
    columns = {
        "row": Column(int, Check.greater_than_or_equal_to(0), nullable=False),
        "col": Column(int, Check.greater_than_or_equal_to(0), nullable=False),
        "x": Column(float, nullable=False),
        "y": Column(float, nullable=False),
    }
    for cov in covariates:
        columns[cov] = Column(float, nullable=False)
    return DataFrameSchema(
        columns=columns,
        unique=config.CELL_KEY,
        strict=False,
        coerce=False,
        name="PredictionFrameSchema",
    )


# ── Posterior summaries ─────────────────────────────────────────────────

PosteriorSummarySchema = DataFrameSchema(
    columns={
        "model": Column(str, nullable=False),
        "modelname": Column(str, nullable=False),
        "parameter": Column(str, nullable=False),
        "mean": Column(float, nullable=False),
        "sd": Column(float, Check.greater_than_or_equal_to(0.0), nullable=True),
        "median": Column(float, nullable=False),
        "lower": Column(float, nullable=False),
        "upper": Column(float, nullable=False),
        "rejection_rate": Column(float, Check.in_range(0.0, 1.0), nullable=True),
    },
    checks=[
        Check(lambda df: df["lower"] <= df["upper"], error="lower must be <= upper"),
    ],
    unique=["modelname", "parameter"],
    strict=False,
    coerce=False,
    name="PosteriorSummarySchema",
)


# ── Convenience validation function ─────────────────────────────────────

def validate_schema(df, schema, step_name, strict=False):
    """Validate a DataFrame against a Pandera schema.

    Parameters
    ----------
    df : pd.DataFrame
        DataFrame to validate.
    schema : pa.DataFrameSchema
        Schema to validate against.
    step_name : str
        Pipeline step name for error messages.
    strict : bool
        If True, raise on failure. If False, return warnings list.

    Returns
    -------
    list[str]
        Validation warning messages (empty if all pass).

    Raises
    ------
    ValueError
        Only if strict=True and validation fails.
    """
    warnings_list = []

    if df is None:
        msg = f"[{step_name}] DataFrame is None"
        if strict:
            raise ValueError(msg)
        return [msg]

    if len(df) == 0:
        msg = f"[{step_name}] DataFrame is empty (0 rows)"
        if strict:
            raise ValueError(msg)
        return [msg]

    try:
        schema.validate(df, lazy=True)
    except pa.errors.SchemaErrors as exc:
        for failure in exc.failure_cases.itertuples():
            msg = (
                f"[{step_name}] Schema violation: "
                f"column='{failure.column}' check='{failure.check}' "
                f"failure_case={failure.failure_case}"
            )
            warnings_list.append(msg)

        if strict:
            raise ValueError(
                f"[{step_name}] Schema validation failed with "
                f"{len(warnings_list)} errors"
            ) from exc

    return warnings_list
