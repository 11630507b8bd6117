import pytest

from smartops.nodes import BlueprintRegistry, NodeBlueprint, NodeKind


def test_builtin_pipeline_is_ordered_by_sequence(builtin_registry):
    assert builtin_registry.codes() == ["ACP", "ENS", "MDF", "ACO", "ATR", "PUB", "PTR"]
    assert len(builtin_registry) == 7


def test_media_fetcher_is_the_only_source_sync_node(builtin_registry):
    source_nodes = [b.code for b in builtin_registry if b.kind is NodeKind.SOURCE_SYNC]
    assert source_nodes == ["MDF"]
    assert builtin_registry.get("MDF").source_paths == ("/Clients",)
    assert builtin_registry.get("MDF").endpoint_template is None


def test_webhook_nodes_have_endpoint_templates(builtin_registry):
    for blueprint in builtin_registry:
        if blueprint.kind is NodeKind.WEBHOOK:
            assert blueprint.endpoint_template == f"/workflow/{blueprint.code.lower()}"


def test_lookup_is_case_insensitive(builtin_registry):
    assert builtin_registry.get("ens").code == "ENS"
    assert builtin_registry.find("mdf").code == "MDF"
    assert "ptr" in builtin_registry
    assert builtin_registry.find("zzz") is None


def test_unknown_code_raises_key_error(builtin_registry):
    with pytest.raises(KeyError):
        builtin_registry.get("ZZZ")


def test_duplicate_code_is_rejected():
    registry = BlueprintRegistry()
    registry.register(NodeBlueprint("A", "Alpha", NodeKind.WEBHOOK, 1))
    with pytest.raises(ValueError):
        registry.register(NodeBlueprint("a", "Again", NodeKind.WEBHOOK, 2))
