"""Solver engine module."""

from .params import DiscountParams, discount_factors
from .strategy import NodePolicy, PolicyTable
from .pools import (
    FloatSlicePool,
    KeyIntMapPool,
    ThreadSafeFloatSlicePool,
    ThreadSafeKeyIntMapPool,
)
from .sampled_actions import LockedSampledActions, SampledActions
from .engine import (
    BaselineCorrection,
    Correction,
    ImportanceCorrection,
    Reach,
    ReachCorrection,
    TraversalEngine,
)
from .cfr import (
    MCCFR,
    VRMCCFR,
    AverageStrategySamplingCFR,
    CFRSolver,
    ChanceSamplingCFR,
    ExternalSamplingCFR,
    OutcomeSamplingCFR,
    RobustSamplingCFR,
    SolverConfig,
    VanillaCFR,
    VarianceReductionParams,
    make_engine,
)
from .best_response import (
    average_strategy_fn,
    best_response_value,
    current_strategy_fn,
    expected_value,
    exploitability,
)
from .io import (
    decode_record,
    dump_table,
    encode_record,
    load_table,
    load_table_file,
    save_table,
)

__all__ = [
    "DiscountParams",
    "discount_factors",
    "NodePolicy",
    "PolicyTable",
    "FloatSlicePool",
    "KeyIntMapPool",
    "ThreadSafeFloatSlicePool",
    "ThreadSafeKeyIntMapPool",
    "LockedSampledActions",
    "SampledActions",
    "BaselineCorrection",
    "Correction",
    "ImportanceCorrection",
    "Reach",
    "ReachCorrection",
    "TraversalEngine",
    "MCCFR",
    "VRMCCFR",
    "AverageStrategySamplingCFR",
    "CFRSolver",
    "ChanceSamplingCFR",
    "ExternalSamplingCFR",
    "OutcomeSamplingCFR",
    "RobustSamplingCFR",
    "SolverConfig",
    "VanillaCFR",
    "VarianceReductionParams",
    "make_engine",
    "average_strategy_fn",
    "best_response_value",
    "current_strategy_fn",
    "expected_value",
    "exploitability",
    "decode_record",
    "dump_table",
    "encode_record",
    "load_table",
    "load_table_file",
    "save_table",
]
