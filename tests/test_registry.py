"""Tests for JobTypeRegistry."""

import logging

import pytest

from reefworker.errors import UnregisteredJobType
from reefworker.handlers.base import JobHandler
from reefworker.handlers.model_run import ModelRunHandler
from reefworker.registry import JobTypeRegistry
from reefworker.schemas import JobType, ModelRunInput, ModelRunOutput


class StubHandler(JobHandler):
    def handle(self, job_input, context):
        return ModelRunOutput(result_location="result_set")


class TestJobTypeRegistry:

    def test_register_and_lookup(self):
        registry = JobTypeRegistry()
        handler = StubHandler()
        registry.register(JobType.ADRIA_MODEL_RUN, handler, ModelRunInput, ModelRunOutput)

        assert registry.get_handler(JobType.ADRIA_MODEL_RUN) is handler
        assert registry.input_type_of(JobType.ADRIA_MODEL_RUN) is ModelRunInput
        assert registry.output_type_of(JobType.ADRIA_MODEL_RUN) is ModelRunOutput

    def test_enum_and_string_tags_share_a_key(self):
        registry = JobTypeRegistry()
        registry.register("ADRIA_MODEL_RUN", StubHandler(), ModelRunInput, ModelRunOutput)
        assert registry.has(JobType.ADRIA_MODEL_RUN)
        assert registry.has("ADRIA_MODEL_RUN")

    def test_unregistered_type(self):
        registry = JobTypeRegistry()
        registry.register(JobType.ADRIA_MODEL_RUN, StubHandler(), ModelRunInput, ModelRunOutput)

        with pytest.raises(UnregisteredJobType) as exc_info:
            registry.get_handler("ECHO")
        assert exc_info.value.registered == ["ADRIA_MODEL_RUN"]

        with pytest.raises(UnregisteredJobType):
            registry.input_type_of("ECHO")
        with pytest.raises(UnregisteredJobType):
            registry.output_type_of("ECHO")

    def test_duplicate_registration_overwrites_with_warning(self, caplog):
        registry = JobTypeRegistry()
        first, second = StubHandler(), StubHandler()
        registry.register("ECHO", first, ModelRunInput, ModelRunOutput)

        with caplog.at_level(logging.WARNING, logger="reefworker.registry"):
            registry.register("ECHO", second, ModelRunInput, ModelRunOutput)

        assert registry.get_handler("ECHO") is second
        assert "Overwriting existing handler registration for job type: ECHO" in caplog.text

    def test_register_requires_shapes(self):
        registry = JobTypeRegistry()
        with pytest.raises(ValueError):
            registry.register("ECHO", StubHandler(), None, ModelRunOutput)

    def test_list_types_sorted(self):
        registry = JobTypeRegistry()
        registry.register("ZETA", StubHandler(), ModelRunInput, ModelRunOutput)
        registry.register("ALPHA", StubHandler(), ModelRunInput, ModelRunOutput)
        assert registry.list_types() == ["ALPHA", "ZETA"]

    def test_binding_shapes(self):
        registry = JobTypeRegistry()
        registry.register("ECHO", StubHandler(), ModelRunInput, ModelRunOutput)
        binding = registry.binding("ECHO")

        assert binding.parse_input({"num_scenarios": 4}) == ModelRunInput(num_scenarios=4)
        assert binding.accepts_output(ModelRunOutput(result_location="result_set"))
        assert not binding.accepts_output({"result_location": "result_set"})


class TestCreateDefault:

    def test_registers_model_run(self, engine):
        registry = JobTypeRegistry.create_default(engine=engine, artifact_workers=3)

        assert registry.list_types() == ["ADRIA_MODEL_RUN"]
        handler = registry.get_handler(JobType.ADRIA_MODEL_RUN)
        assert isinstance(handler, ModelRunHandler)
        assert handler.engine is engine
        assert handler.artifact_workers == 3
        assert registry.input_type_of(JobType.ADRIA_MODEL_RUN) is ModelRunInput
        assert registry.output_type_of(JobType.ADRIA_MODEL_RUN) is ModelRunOutput
