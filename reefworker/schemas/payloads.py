"""
Job input and output shapes.

Every job type registers one JobInput subclass and one JobOutput subclass.
Inputs are coerced from raw payloads with from_dict(); coercion raises
TypeError, ValueError or KeyError on mismatch, which the dispatcher wraps
in InvalidInputPayload. Outputs serialize with to_dict().
"""

import types
from dataclasses import asdict, dataclass, field, fields, is_dataclass
from typing import Any, Iterable, Optional, Union, get_args, get_origin, get_type_hints


DEFAULT_RCP_SCENARIO = "45"


class JobInput:
    """
    Base class for job input payloads.

    Concrete inputs are dataclasses. The default from_dict() rejects
    unknown keys, checks every provided value against its field annotation,
    and relies on the dataclass constructor (and any __post_init__
    validation) for missing fields and the rest.
    """

    @classmethod
    def from_dict(cls, data: Any) -> "JobInput":
        if not isinstance(data, dict):
            raise TypeError(
                f"{cls.__name__} payload must be an object, got {type(data).__name__}"
            )
        if not is_dataclass(cls):
            raise TypeError(f"{cls.__name__} must be a dataclass to use the default from_dict")
        names = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - names)
        if unknown:
            raise ValueError(f"Unknown fields for {cls.__name__}: {unknown}")

        hints = get_type_hints(cls)
        for name, value in data.items():
            _check_type(value, hints.get(name, Any), f"{cls.__name__}.{name}")
        return cls(**data)


class JobOutput:
    """Base class for job output payloads."""

    def to_dict(self) -> dict[str, Any]:
        if is_dataclass(self):
            return asdict(self)
        raise TypeError(f"{type(self).__name__} must implement to_dict()")


def _require(value: Any, expected: type | tuple[type, ...], name: str) -> None:
    # bool is an int subclass; never accept it where a number is expected
    if isinstance(value, bool) and expected is not bool:
        raise TypeError(f"{name} must be {expected}, got bool")
    if not isinstance(value, expected):
        raise TypeError(f"{name} must be {expected}, got {type(value).__name__}")


def _check_type(value: Any, annotation: Any, name: str) -> None:
    """Check a decoded JSON value against a field annotation.

    Supports Any, plain classes, Optional/unions, list, tuple and dict.
    JSON numbers are ints or floats, so float fields also accept ints.
    """
    if annotation is Any:
        return

    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = get_args(annotation)
        if value is None and type(None) in args:
            return
        for arg in args:
            if arg is type(None):
                continue
            try:
                _check_type(value, arg, name)
                return
            except TypeError:
                continue
        raise TypeError(f"{name} must be {annotation}, got {type(value).__name__}")

    if origin in (list, tuple):
        _require(value, (list, tuple), name)
        args = get_args(annotation)
        if origin is tuple and len(args) == 2 and args[1] is Ellipsis:
            args = (args[0],)
        if origin is list or len(args) == 1:
            for i, item in enumerate(value):
                _check_type(item, args[0] if args else Any, f"{name}[{i}]")
        elif args:
            if len(args) != len(value):
                raise TypeError(f"{name} must have {len(args)} items, got {len(value)}")
            for i, (item, arg) in enumerate(zip(value, args)):
                _check_type(item, arg, f"{name}[{i}]")
        return

    if origin is dict:
        _require(value, dict, name)
        key_type, value_type = get_args(annotation) or (Any, Any)
        for key, item in value.items():
            _check_type(key, key_type, f"{name} key")
            _check_type(item, value_type, f"{name}[{key!r}]")
        return

    if annotation is float:
        _require(value, (int, float), name)
    elif isinstance(annotation, type):
        _require(value, annotation, name)


# =============================================================================
# ADRIA_MODEL_RUN
# =============================================================================


@dataclass(frozen=True)
class ModelParam:
    """
    A model factor bound override.

    Converts to the bounds tuple passed to the engine's set_factor_bounds:
    (lower, upper) or (lower, upper, optional_third) when third_param_flag
    is set.
    """
    param_name: str
    third_param_flag: bool
    lower: float
    upper: float
    optional_third: Optional[float] = None

    def __post_init__(self):
        _require(self.param_name, str, "param_name")
        _require(self.third_param_flag, bool, "third_param_flag")
        _require(self.lower, (int, float), "lower")
        _require(self.upper, (int, float), "upper")
        if self.optional_third is not None:
            _require(self.optional_third, (int, float), "optional_third")
        if self.third_param_flag and self.optional_third is None:
            raise ValueError(
                f"Parameter {self.param_name}: optional_third is required "
                "when third_param_flag is set"
            )

    def to_bounds(self) -> tuple:
        if self.third_param_flag:
            return (float(self.lower), float(self.upper), float(self.optional_third))
        return (float(self.lower), float(self.upper))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ModelParam":
        _require(data, dict, "model_param")
        return cls(
            param_name=data["param_name"],
            third_param_flag=data.get("third_param_flag", False),
            lower=data["lower"],
            upper=data["upper"],
            optional_third=data.get("optional_third"),
        )


@dataclass(frozen=True)
class ModelRunInput(JobInput):
    """Input payload for ADRIA_MODEL_RUN jobs."""
    num_scenarios: int
    model_params: tuple[ModelParam, ...] = ()
    rcp_scenario: Optional[str] = None
    data_package: Optional[str] = None

    def __post_init__(self):
        _require(self.num_scenarios, int, "num_scenarios")
        if self.num_scenarios <= 0:
            raise ValueError(f"num_scenarios must be positive, got {self.num_scenarios}")
        if self.rcp_scenario is not None:
            _require(self.rcp_scenario, str, "rcp_scenario")
        if self.data_package is not None:
            _require(self.data_package, str, "data_package")

    @property
    def rcp(self) -> str:
        """RCP scenario, defaulting to "45" when not provided."""
        return self.rcp_scenario or DEFAULT_RCP_SCENARIO

    @classmethod
    def from_dict(cls, data: Any) -> "ModelRunInput":
        _require(data, dict, "payload")
        raw_params = data.get("model_params") or []
        _require(raw_params, list, "model_params")
        return cls(
            num_scenarios=data["num_scenarios"],
            model_params=tuple(ModelParam.from_dict(p) for p in raw_params),
            rcp_scenario=data.get("rcp_scenario"),
            data_package=data.get("data_package"),
        )


@dataclass(frozen=True)
class ArtifactMetadata:
    """Metadata recorded for each successfully generated artifact."""
    generation_seconds: float
    label: str
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "generation_seconds": round(self.generation_seconds, 3),
            "label": self.label,
            "description": self.description,
        }


@dataclass(frozen=True)
class Artifact:
    """A named output file produced during a job execution."""
    title: str
    filename: str
    metadata: ArtifactMetadata


@dataclass(frozen=True)
class ModelRunOutput(JobOutput):
    """
    Output payload for ADRIA_MODEL_RUN jobs.

    Attributes:
        result_location: Location of the result set, relative to the
            assignment's storage URI
        artifacts: Artifact title -> relative filename
        artifact_metadata: Artifact title -> metadata
    """
    result_location: str
    artifacts: dict[str, str] = field(default_factory=dict)
    artifact_metadata: dict[str, ArtifactMetadata] = field(default_factory=dict)

    @classmethod
    def from_artifacts(cls, result_location: str, artifacts: Iterable[Artifact]) -> "ModelRunOutput":
        """Build the title -> filename and title -> metadata maps from Artifact records."""
        artifacts = list(artifacts)
        return cls(
            result_location=result_location,
            artifacts={a.title: a.filename for a in artifacts},
            artifact_metadata={a.title: a.metadata for a in artifacts},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "result_location": self.result_location,
            "artifacts": dict(self.artifacts),
            "artifact_metadata": {
                title: meta.to_dict() for title, meta in self.artifact_metadata.items()
            },
        }
