"""
Simulation engine boundary.

The engine (domain loading, scenario sampling, scenario execution and
metric computation) lives outside this package. Handlers talk to it only
through the SimulationEngine protocol. A concrete engine is built by a
factory named in configuration as "module:function"; only allowlisted
modules may provide factories.
"""

import importlib
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Protocol, Sequence, runtime_checkable

from reefworker.errors import EngineLoadError
from reefworker.schemas import ModelParam

if TYPE_CHECKING:
    import pandas as pd

logger = logging.getLogger(__name__)


# Allowlist for engine factory modules
# Only exact matches or submodules allowed (prefix + ".")
ALLOWED_ENGINE_MODULES = [
    "adria_bridge",
    "reefworker_engines",
]


@runtime_checkable
class SimulationEngine(Protocol):
    """Protocol for the external simulation engine.

    Every call is blocking and non-cancellable from the worker's point of
    view. Results are written by run_scenarios() into the directory named
    by the output environment variable.

    Metrics come back in wide form with one column per scenario, in the
    same order as the sampled scenarios. Scenario-type labelling and
    reshaping happen in reefworker.processing.
    """

    def load_domain(self, data_package_path: str, rcp_scenario: str) -> Any:
        """Load a domain from a data package for an RCP scenario."""
        ...

    def set_factor_bounds(self, domain: Any, factor: str, bounds: tuple) -> None:
        """Override the sampling bounds of one model factor."""
        ...

    def sample(self, domain: Any, num_scenarios: int) -> Any:
        """Sample num_scenarios scenarios from the domain."""
        ...

    def run_scenarios(self, domain: Any, scenarios: Any, rcp_scenario: str) -> Any:
        """Run scenarios and return the result set."""
        ...

    def scenario_types(self, scenarios: Any) -> Mapping[str, Sequence[bool]]:
        """Scenario type masks, e.g. {"guided": [True, False, ...], ...}."""
        ...

    def scenario_metric(self, result: Any, metric: str) -> "pd.DataFrame":
        """A metric indexed by timestep, one column per scenario."""
        ...

    def location_metric(self, result: Any, metric: str) -> "pd.DataFrame":
        """A metric indexed by (timestep, location), one column per scenario."""
        ...


def _is_allowed_module(module_path: str) -> bool:
    """Check if module is in allowlist (exact match or submodule)."""
    for allowed in ALLOWED_ENGINE_MODULES:
        if module_path == allowed or module_path.startswith(allowed + "."):
            return True
    return False


def load_engine_factory(factory_path: str) -> Callable[..., SimulationEngine]:
    """Load an engine factory by "module:function" path.

    Raises:
        EngineLoadError: If the path is malformed, not allowlisted, cannot be
            imported, or does not name a callable
    """
    if ":" not in factory_path:
        raise EngineLoadError(f"Factory path must be 'module:function', got: {factory_path}")

    module_path, func_name = factory_path.rsplit(":", 1)

    if not _is_allowed_module(module_path):
        raise EngineLoadError(
            f"Engine module '{module_path}' not in allowlist. "
            f"Allowed: {ALLOWED_ENGINE_MODULES}"
        )

    try:
        module = importlib.import_module(module_path)
    except ImportError as e:
        raise EngineLoadError(f"Cannot import engine module '{module_path}': {e}") from e

    factory = getattr(module, func_name, None)
    if factory is None:
        raise EngineLoadError(f"Engine factory '{func_name}' not found in '{module_path}'")
    if not callable(factory):
        raise EngineLoadError(f"{factory_path} is not callable")

    return factory


def build_engine(factory_path: str | None) -> SimulationEngine:
    """Build the configured engine."""
    if not factory_path:
        raise EngineLoadError("No engine_factory configured")
    engine = load_engine_factory(factory_path)()
    if not isinstance(engine, SimulationEngine):
        raise EngineLoadError(
            f"{factory_path} returned {type(engine).__name__}, which does not "
            "implement SimulationEngine"
        )
    logger.info(f"Loaded simulation engine from {factory_path}")
    return engine


def apply_model_params(engine: SimulationEngine, domain: Any, params: Iterable[ModelParam]) -> int:
    """Apply user-defined factor bounds to a loaded domain. Returns the count applied."""
    count = 0
    for param in params:
        bounds = param.to_bounds()
        logger.debug(f"Setting parameter {param.param_name}: {bounds}")
        engine.set_factor_bounds(domain, param.param_name, bounds)
        count += 1
    return count
