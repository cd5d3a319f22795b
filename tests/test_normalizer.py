"""Tests for workflow normalization.

Covers every accepted connection encoding, lenient reference resolution,
node defaults and the pinned settings.
"""
from copy import deepcopy

import pytest

from workflow_builder.models.workflow import EXECUTION_ORDER
from workflow_builder.n8n.errors import InvalidInputError
from workflow_builder.n8n.normalizer import (
    ConnectionShape,
    DiagnosticKind,
    detect_connection_shape,
    infer_default_source,
    normalize_with_diagnostics,
    normalize_workflow,
)


def _node(name: str, node_type: str = "n8n-nodes-base.noOp", **extra) -> dict:
    return {"name": name, "type": node_type, **extra}


def _edge(target: str, index: int = 0) -> dict:
    return {"node": target, "type": "main", "index": index}


@pytest.fixture
def abc_nodes():
    return [_node("A"), _node("B"), _node("C")]


class TestTopLevelValidation:
    """Malformed input is rejected before anything else happens."""

    @pytest.mark.parametrize("raw", [None, "workflow", 42, ["nodes"]])
    def test_non_object_input_is_rejected(self, raw):
        with pytest.raises(InvalidInputError, match="must be an object"):
            normalize_workflow(raw)

    @pytest.mark.parametrize("nodes", [None, {}, "A,B"])
    def test_nodes_must_be_an_array(self, nodes):
        with pytest.raises(InvalidInputError, match="nodes must be an array"):
            normalize_workflow({"nodes": nodes})

    def test_node_without_type_is_rejected(self):
        with pytest.raises(InvalidInputError, match="type"):
            normalize_workflow({"nodes": [{"name": "A"}]})

    def test_node_without_name_is_rejected(self):
        with pytest.raises(InvalidInputError, match="name"):
            normalize_workflow({"nodes": [{"type": "n8n-nodes-base.noOp", "name": ""}]})

    def test_node_must_be_an_object(self):
        with pytest.raises(InvalidInputError, match="index 1"):
            normalize_workflow({"nodes": [_node("A"), "B"]})

    def test_unrecognised_connections_are_rejected(self, abc_nodes):
        with pytest.raises(InvalidInputError):
            normalize_workflow({"nodes": abc_nodes, "connections": "A->B"})

    def test_edge_record_without_target_is_rejected(self, abc_nodes):
        with pytest.raises(InvalidInputError, match="source and target"):
            normalize_workflow({"nodes": abc_nodes, "connections": [{"source": "A"}]})


class TestNodeDefaults:

    def test_defaults_are_filled_in(self):
        workflow = normalize_workflow({"nodes": [_node("A")]})
        node = workflow.nodes[0]

        assert node.id
        assert node.position == [100, 240]
        assert node.typeVersion == 1
        assert node.disabled is False
        assert node.parameters == {}

    def test_existing_id_is_kept(self):
        workflow = normalize_workflow({"nodes": [_node("A", id="abc-123")]})
        assert workflow.nodes[0].id == "abc-123"

    def test_generated_ids_are_unique(self):
        workflow = normalize_workflow({"nodes": [_node("A"), _node("B")]})
        assert workflow.nodes[0].id != workflow.nodes[1].id

    def test_object_position_is_emitted_as_pair(self):
        workflow = normalize_workflow({"nodes": [_node("A", position={"x": 420, "y": 60})]})
        assert workflow.nodes[0].position == [420, 60]

    @pytest.mark.parametrize("position", [{"x": 1}, {"y": 1}, [1], [1, 2, 3], 5, "ab"])
    def test_malformed_position_is_invalid_input(self, position):
        with pytest.raises(InvalidInputError, match="Invalid node 'A'"):
            normalize_with_diagnostics({"nodes": [_node("A", position=position)]})

    def test_optional_flags_pass_through(self):
        raw = _node(
            "A",
            credentials={"slackApi": {"id": "7", "name": "Slack"}},
            onError="continueRegularOutput",
            retryOnFail=True,
            maxTries=3,
            notes="keep me",
            webhookId="hook-1",
            typeVersion=4.2,
        )
        data = normalize_workflow({"nodes": [raw]}).to_n8n()["nodes"][0]

        assert data["credentials"] == {"slackApi": {"id": "7", "name": "Slack"}}
        assert data["onError"] == "continueRegularOutput"
        assert data["retryOnFail"] is True
        assert data["maxTries"] == 3
        assert data["notes"] == "keep me"
        assert data["webhookId"] == "hook-1"
        assert data["typeVersion"] == 4.2

    def test_unset_flags_are_omitted_from_output(self):
        data = normalize_workflow({"nodes": [_node("A")]}).to_n8n()["nodes"][0]

        assert "continueOnFail" not in data
        assert "credentials" not in data
        assert "notes" not in data

    def test_parameters_with_null_values_survive_serialization(self):
        raw = _node("A", parameters={"url": None, "options": {}})
        data = normalize_workflow({"nodes": [raw]}).to_n8n()["nodes"][0]

        assert data["parameters"] == {"url": None, "options": {}}


class TestConnectionShapes:

    def test_shape_detection(self):
        names = {"A", "B"}

        assert detect_connection_shape(None, names) == ConnectionShape.EMPTY
        assert detect_connection_shape([], names) == ConnectionShape.EMPTY
        assert detect_connection_shape({"A": {"main": [[_edge("B")]]}}, names) == ConnectionShape.CANONICAL
        assert detect_connection_shape({"A": [_edge("B")]}, names) == ConnectionShape.FLAT_PER_SOURCE
        assert detect_connection_shape([{"source": "A", "target": "B"}], names) == ConnectionShape.EDGE_LIST
        assert detect_connection_shape([_edge("B")], names) == ConnectionShape.ORPHAN_PORT
        assert detect_connection_shape({"main": [[_edge("B")]]}, names) == ConnectionShape.ORPHAN_PORT

    def test_node_called_main_is_not_an_orphan_port(self):
        shape = detect_connection_shape({"main": {"main": [[_edge("B")]]}}, {"main", "B"})
        assert shape == ConnectionShape.CANONICAL

    def test_edge_list_with_output_ports(self, abc_nodes):
        workflow = normalize_workflow({
            "nodes": abc_nodes,
            "connections": [
                {"source": "A", "target": "B"},
                {"source": "A", "target": "C", "sourceOutput": 1},
            ],
        })

        assert workflow.connections_to_n8n() == {
            "A": {"main": [[_edge("B")], [_edge("C")]]},
        }

    def test_edge_list_pads_unused_lower_ports(self, abc_nodes):
        workflow = normalize_workflow({
            "nodes": abc_nodes,
            "connections": [{"source": "A", "target": "B", "sourceOutput": 2, "targetInput": 1}],
        })

        assert workflow.connections_to_n8n() == {"A": {"main": [[], [], [_edge("B", 1)]]}}

    def test_edge_list_resolves_ids_to_names(self):
        nodes = [_node("Webhook", id="n1"), _node("Reply", id="n2")]
        workflow = normalize_workflow({"nodes": nodes, "connections": [{"source": "n1", "target": "n2"}]})

        assert workflow.connections_to_n8n() == {"Webhook": {"main": [[_edge("Reply")]]}}

    def test_fan_out_keeps_order_and_duplicates(self, abc_nodes):
        workflow = normalize_workflow({
            "nodes": abc_nodes,
            "connections": [
                {"source": "A", "target": "C"},
                {"source": "A", "target": "B"},
                {"source": "A", "target": "B"},
            ],
        })

        targets = [e["node"] for e in workflow.connections_to_n8n()["A"]["main"][0]]
        assert targets == ["C", "B", "B"]

    def test_flat_per_source_goes_to_port_zero(self, abc_nodes):
        workflow = normalize_workflow({
            "nodes": abc_nodes,
            "connections": {"A": [{"node": "B"}, {"node": "C", "index": 1}]},
        })

        assert workflow.connections_to_n8n() == {"A": {"main": [[_edge("B"), _edge("C", 1)]]}}

    def test_flat_main_array_goes_to_port_zero(self, abc_nodes):
        workflow = normalize_workflow({
            "nodes": abc_nodes,
            "connections": {"B": {"main": [{"node": "C"}]}},
        })

        assert workflow.connections_to_n8n() == {"B": {"main": [[_edge("C")]]}}

    def test_canonical_table_is_idempotent(self, abc_nodes):
        table = {
            "A": {"main": [[_edge("B"), _edge("C")], [], [_edge("C", 1)]]},
            "B": {"main": [[_edge("C")]]},
            "C": {"main": []},
        }
        first = normalize_workflow({"nodes": abc_nodes, "connections": table})
        second = normalize_workflow(first.to_n8n())

        assert first.connections_to_n8n() == table
        assert second.connections_to_n8n() == first.connections_to_n8n()

    def test_non_main_connection_types_are_dropped(self, abc_nodes):
        result = normalize_with_diagnostics({
            "nodes": abc_nodes,
            "connections": {"A": {"main": [[_edge("B")]], "ai_tool": [[{"node": "C", "type": "ai_tool"}]]}},
        })

        assert result.workflow.connections_to_n8n() == {"A": {"main": [[_edge("B")]]}}
        assert result.has(DiagnosticKind.UNSUPPORTED_CONNECTION_TYPE)

    def test_sources_without_main_outputs_are_canonical(self):
        nodes = [
            _node("Start", "n8n-nodes-base.manualTrigger"),
            _node("Agent", "@n8n/n8n-nodes-langchain.agent"),
            _node("Model", "@n8n/n8n-nodes-langchain.lmChatOpenAi"),
            _node("Idle"),
        ]
        connections = {
            "Start": {"main": [[_edge("Agent")]]},
            "Model": {"ai_languageModel": [[{"node": "Agent", "type": "ai_languageModel", "index": 0}]]},
            "Idle": {},
        }

        assert detect_connection_shape(connections, {"Start", "Agent", "Model", "Idle"}) is ConnectionShape.CANONICAL

        result = normalize_with_diagnostics({"nodes": nodes, "connections": connections})

        assert result.workflow.connections_to_n8n() == {"Start": {"main": [[_edge("Agent")]]}}
        unsupported = [d for d in result.diagnostics if d.kind is DiagnosticKind.UNSUPPORTED_CONNECTION_TYPE]
        assert [d.source for d in unsupported] == ["Model"]

    def test_connection_table_with_scalar_ports_is_rejected(self, abc_nodes):
        with pytest.raises(InvalidInputError):
            normalize_workflow({"nodes": abc_nodes, "connections": {"A": {"main": "B"}}})

    def test_edge_list_accepts_integral_float_ports(self, abc_nodes):
        workflow = normalize_workflow({
            "nodes": abc_nodes,
            "connections": [{"source": "A", "target": "B", "sourceOutput": 1.0, "targetInput": 0.0}],
        })

        assert workflow.connections_to_n8n() == {"A": {"main": [[], [_edge("B")]]}}

    def test_edge_list_rejects_fractional_ports(self, abc_nodes):
        with pytest.raises(InvalidInputError, match="sourceOutput"):
            normalize_workflow({
                "nodes": abc_nodes,
                "connections": [{"source": "A", "target": "B", "sourceOutput": 1.5}],
            })


class TestLenientResolution:

    def test_unknown_target_is_dropped_without_error(self, abc_nodes):
        result = normalize_with_diagnostics({
            "nodes": abc_nodes,
            "connections": [
                {"source": "A", "target": "B"},
                {"source": "A", "target": "Ghost"},
                {"source": "B", "target": "C"},
            ],
        })

        assert result.workflow.connections_to_n8n() == {
            "A": {"main": [[_edge("B")]]},
            "B": {"main": [[_edge("C")]]},
        }
        unresolved = [d for d in result.diagnostics if d.kind == DiagnosticKind.UNRESOLVED_REFERENCE]
        assert len(unresolved) == 1
        assert unresolved[0].target == "Ghost"

    def test_unknown_source_in_canonical_table_is_dropped(self, abc_nodes):
        result = normalize_with_diagnostics({
            "nodes": abc_nodes,
            "connections": {"Ghost": {"main": [[_edge("A")]]}, "A": {"main": [[_edge("B")]]}},
        })

        assert result.workflow.connections_to_n8n() == {"A": {"main": [[_edge("B")]]}}
        assert result.has(DiagnosticKind.UNRESOLVED_REFERENCE)

    def test_unknown_target_in_canonical_table_is_dropped(self, abc_nodes):
        workflow = normalize_workflow({
            "nodes": abc_nodes,
            "connections": {"A": {"main": [[_edge("Ghost"), _edge("B")]]}},
        })

        assert workflow.connections_to_n8n() == {"A": {"main": [[_edge("B")]]}}


class TestSourceInference:

    def test_prefers_node_named_start(self):
        nodes = [_node("Fetch"), _node("Start"), _node("Log")]
        result = normalize_with_diagnostics({"nodes": nodes, "connections": [{"node": "Log"}]})

        assert result.workflow.connections_to_n8n() == {"Start": {"main": [[_edge("Log")]]}}
        inferred = [d for d in result.diagnostics if d.kind == DiagnosticKind.INFERRED_SOURCE]
        assert inferred[0].source == "Start"
        assert inferred[0].ambiguous is False

    def test_falls_back_to_trigger_type(self):
        nodes = [_node("Fetch"), _node("Every hour", "n8n-nodes-base.scheduleTrigger"), _node("Log")]
        workflow = normalize_workflow({"nodes": nodes, "connections": {"main": [[{"node": "Log"}]]}})

        assert list(workflow.connections_to_n8n()) == ["Every hour"]

    def test_falls_back_to_first_node_and_flags_ambiguity(self):
        nodes = [_node("Fetch"), _node("Log")]
        result = normalize_with_diagnostics({"nodes": nodes, "connections": [{"node": "Log"}]})

        assert result.workflow.connections_to_n8n() == {"Fetch": {"main": [[_edge("Log")]]}}
        assert result.diagnostics[0].ambiguous is True

    def test_inference_can_be_disabled(self):
        nodes = [_node("Start"), _node("Log")]
        with pytest.raises(InvalidInputError, match="source node"):
            normalize_workflow({"nodes": nodes, "connections": [{"node": "Log"}]}, infer_source=False)

    def test_infer_default_source_on_empty_list(self):
        assert infer_default_source([]) == (None, False)


class TestWorkflowFields:

    def test_name_defaults(self):
        assert normalize_workflow({"nodes": []}).name == "New Workflow"

    def test_settings_merge_over_defaults_and_pin_execution_order(self):
        workflow = normalize_workflow({
            "nodes": [],
            "settings": {"executionOrder": "v0", "timezone": "Europe/Berlin", "saveManualExecutions": False},
        })
        settings = workflow.to_n8n()["settings"]

        assert settings["executionOrder"] == EXECUTION_ORDER
        assert settings["timezone"] == "Europe/Berlin"
        assert settings["saveManualExecutions"] is False
        assert settings["saveExecutionProgress"] is True
        assert settings["saveDataErrorExecution"] == "all"

    @pytest.mark.parametrize("order", [None, "v0", "v1", "legacy"])
    def test_execution_order_is_always_pinned(self, order):
        workflow = normalize_workflow({"nodes": [], "settings": {"executionOrder": order}})
        assert workflow.settings.executionOrder == EXECUTION_ORDER

    def test_invalid_settings_are_rejected(self):
        with pytest.raises(InvalidInputError):
            normalize_workflow({"nodes": [], "settings": {"saveDataErrorExecution": "sometimes"}})

    def test_tags_and_active_never_reach_output(self, abc_nodes):
        data = normalize_workflow({"nodes": abc_nodes, "tags": ["x"], "active": True}).to_n8n()

        assert "tags" not in data
        assert "active" not in data

    def test_input_is_not_mutated(self, abc_nodes):
        raw = {
            "nodes": abc_nodes + [_node("D", position={"x": 1, "y": 2})],
            "connections": [{"source": "A", "target": "B"}],
            "settings": {"executionOrder": "v0"},
        }
        snapshot = deepcopy(raw)

        normalize_workflow(raw)

        assert raw == snapshot
