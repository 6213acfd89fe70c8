"""Tests for agent configuration models and the in-memory provider."""

import json

import pytest
from pydantic import ValidationError

from callflow.agents.provider import AgentConfigProvider, InMemoryAgentConfigProvider
from callflow.schemas.agent_schema import AgentConfig, FieldDataType, FieldSchema, MatchingType
from tests.conftest import make_agent

CAMEL_PAYLOAD = {
    "agentId": "camel-agent",
    "name": "Camel",
    "fieldSchemas": [
        {"fieldName": "phone", "dataType": "phone", "required": True, "displayOrder": 1},
        {"fieldName": "name", "nlpExtractionHints": ["my name is"]},
    ],
    "intentDefinitions": [
        {
            "name": "Stop",
            "matchingType": "regex",
            "regexPattern": "/stop/i",
            "routingAction": "opt-out",
            "confidenceThreshold": 0.9,
        }
    ],
    "customRoutingActions": ["book-visit"],
}


class TestModels:
    def test_camel_case_payload(self):
        agent = AgentConfig.model_validate(CAMEL_PAYLOAD)
        assert agent.agent_id == "camel-agent"
        assert agent.field_schemas[0].data_type == FieldDataType.PHONE
        assert agent.field_schemas[1].nlp_extraction_hints == ["my name is"]
        assert agent.intent_definitions[0].matching_type == MatchingType.REGEX
        assert agent.custom_routing_actions == ["book-visit"]

    def test_intent_defaults(self):
        agent = AgentConfig.model_validate(
            {"agentId": "a", "intentDefinitions": [{"name": "Hi", "sampleUtterances": ["hi"]}]}
        )
        intent = agent.intent_definitions[0]
        assert intent.enabled is True
        assert intent.routing_action == "continue-flow"
        assert intent.confidence_threshold is None

    def test_duplicate_field_names_rejected(self):
        with pytest.raises(ValidationError, match="Duplicate fieldName"):
            make_agent(fields=[FieldSchema(field_name="x"), FieldSchema(field_name="x")])

    def test_blank_field_name_rejected(self):
        with pytest.raises(ValidationError):
            FieldSchema(field_name="  ")

    def test_threshold_range_enforced(self):
        with pytest.raises(ValidationError):
            AgentConfig.model_validate(
                {"agentId": "a", "intentDefinitions": [{"name": "x", "confidenceThreshold": 1.5}]}
            )

    def test_unknown_data_type_rejected(self):
        with pytest.raises(ValidationError):
            FieldSchema(field_name="x", data_type="colour")


class TestInMemoryProvider:
    def test_satisfies_protocol(self):
        assert isinstance(InMemoryAgentConfigProvider(), AgentConfigProvider)

    def test_register_and_lookup(self):
        provider = InMemoryAgentConfigProvider()
        provider.register(make_agent(agent_id="a1"))
        assert provider.get_agent_config("a1").agent_id == "a1"
        assert provider.get_agent_config("a2") is None
        assert provider.agent_ids() == ["a1"]

    def test_remove(self):
        provider = InMemoryAgentConfigProvider([make_agent(agent_id="a1")])
        assert provider.remove("a1") is True
        assert provider.remove("a1") is False

    def test_from_dicts(self):
        provider = InMemoryAgentConfigProvider.from_dicts([CAMEL_PAYLOAD])
        assert provider.get_agent_config("camel-agent") is not None

    def test_from_json_file_single_agent(self, tmp_path):
        path = tmp_path / "agent.json"
        path.write_text(json.dumps(CAMEL_PAYLOAD), encoding="utf-8")
        provider = InMemoryAgentConfigProvider.from_json_file(path)
        assert provider.agent_ids() == ["camel-agent"]

    def test_from_json_file_agent_list(self, tmp_path):
        second = {**CAMEL_PAYLOAD, "agentId": "second"}
        path = tmp_path / "agents.json"
        path.write_text(json.dumps([CAMEL_PAYLOAD, second]), encoding="utf-8")
        provider = InMemoryAgentConfigProvider.from_json_file(str(path))
        assert sorted(provider.agent_ids()) == ["camel-agent", "second"]
