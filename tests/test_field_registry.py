"""
Tests for the field definition registry.
"""

import pytest
from mcp_jira.field_registry import (
    AccessPath,
    FieldDefinition,
    FieldDefinitionError,
    FieldRegistry,
    ResourceDefinition,
    build_path_index,
    load_field_registry,
    load_resource_definition,
    path_root,
)


def make_status_definition():
    return FieldDefinition(
        id="status",
        name="Status",
        type="object",
        access_paths=(
            AccessPath("status", "Complete status object", "object", "medium"),
            AccessPath("status.name", "Status name", "string", "high"),
            AccessPath("status.statusCategory.key", "Category key", "string", "high"),
        ),
    )


def make_registry():
    issue = ResourceDefinition(entity_type="issue", fields={
        "status": make_status_definition(),
        "summary": FieldDefinition(id="summary", name="Summary",
                                   access_paths=(AccessPath("summary", "Issue summary", "string", "high"),)),
    })
    return FieldRegistry([issue])


class TestPathRoot:
    """Test first-segment extraction."""

    def test_simple_path(self):
        assert path_root("summary") == "summary"

    def test_nested_path(self):
        assert path_root("status.statusCategory.key") == "status"

    def test_array_marker_removed(self):
        assert path_root("components[].name") == "components"


class TestBuildPathIndex:
    """Test reverse index construction and its invariants."""

    def test_index_maps_every_path(self):
        index = build_path_index("issue", {"status": make_status_definition()})
        assert index == {
            "status": "status",
            "status.name": "status",
            "status.statusCategory.key": "status",
        }

    def test_duplicate_path_rejected(self):
        definition = FieldDefinition(id="status", name="Status", access_paths=(
            AccessPath("status.name"), AccessPath("status.name")))
        with pytest.raises(FieldDefinitionError, match="registered by both"):
            build_path_index("issue", {"status": definition})

    def test_path_outside_field_rejected(self):
        definition = FieldDefinition(id="status", name="Status", access_paths=(AccessPath("priority.name"),))
        with pytest.raises(FieldDefinitionError, match="does not belong"):
            build_path_index("issue", {"status": definition})

    def test_mismatched_key_rejected(self):
        with pytest.raises(FieldDefinitionError):
            build_path_index("issue", {"state": make_status_definition()})

    def test_array_path_belongs_to_field(self):
        definition = FieldDefinition(id="components", name="Components", access_paths=(
            AccessPath("components", type="array"), AccessPath("components[].name")))
        index = build_path_index("issue", {"components": definition})
        assert index["components[].name"] == "components"


class TestResourceDefinition:
    """Test derived values of a resource definition."""

    def test_derived_fields(self):
        definition = ResourceDefinition(entity_type="issue", fields={"status": make_status_definition()})
        assert definition.total_fields == 1
        assert "status.name" in definition.path_index
        assert definition.uri == "jira://issue/fields"

    def test_unknown_entity_type_rejected(self):
        with pytest.raises(FieldDefinitionError, match="Unknown entity type"):
            ResourceDefinition(entity_type="worklog", fields={})

    def test_with_fields_rebuilds_index(self):
        definition = ResourceDefinition(entity_type="issue", fields={"status": make_status_definition()})
        summary = FieldDefinition(id="summary", name="Summary", access_paths=(AccessPath("summary"),))
        updated = definition.with_fields({"summary": summary})

        assert updated.total_fields == 1
        assert "summary" in updated.path_index
        assert "status.name" not in updated.path_index
        # original untouched
        assert "status.name" in definition.path_index

    def test_fields_and_index_are_read_only(self):
        definition = ResourceDefinition(entity_type="issue", fields={"status": make_status_definition()})
        summary = FieldDefinition(id="summary", name="Summary", access_paths=(AccessPath("summary"),))

        with pytest.raises(TypeError):
            definition.fields["summary"] = summary
        with pytest.raises(TypeError):
            definition.path_index["summary"] = "summary"
        assert "summary" not in definition.fields

    def test_source_mapping_changes_do_not_leak(self):
        fields = {"status": make_status_definition()}
        definition = ResourceDefinition(entity_type="issue", fields=fields)
        fields["summary"] = FieldDefinition(id="summary", name="Summary", access_paths=(AccessPath("summary"),))
        assert list(definition.fields) == ["status"]

    def test_to_dict_shape(self):
        definition = ResourceDefinition(entity_type="issue", fields={"status": make_status_definition()},
                                        version="2.0.0")
        document = definition.to_dict()

        assert document["entityType"] == "issue"
        assert document["version"] == "2.0.0"
        assert document["totalFields"] == 1
        assert document["fields"]["status"]["accessPaths"][1] == {
            "path": "status.name", "description": "Status name", "type": "string", "frequency": "high"}
        assert document["pathIndex"]["status.statusCategory.key"] == "status"


class TestFieldRegistry:
    """Test registry lookups."""

    def setup_method(self):
        self.registry = make_registry()

    def test_get_known_type(self):
        assert self.registry.get("issue").entity_type == "issue"

    def test_get_unknown_type_returns_none(self):
        assert self.registry.get("project") is None
        assert self.registry.get("worklog") is None

    def test_is_known_path_exact_match_only(self):
        assert self.registry.is_known_path("issue", "status.name")
        assert not self.registry.is_known_path("issue", "status.name.")
        assert not self.registry.is_known_path("issue", ".status.name")
        assert not self.registry.is_known_path("issue", "status..name")
        assert not self.registry.is_known_path("issue", "Status.Name")
        assert not self.registry.is_known_path("project", "status.name")

    def test_resolve(self):
        info = self.registry.resolve("issue", "status.statusCategory.key")
        assert info.field_id == "status"
        assert info.type == "string"
        assert info.description == "Category key"

    def test_resolve_unknown(self):
        assert self.registry.resolve("issue", "nonexistent") is None
        assert self.registry.resolve("worklog", "status") is None

    def test_all_paths_is_restartable_and_ordered(self):
        first = list(self.registry.all_paths("issue"))
        second = list(self.registry.all_paths("issue"))
        assert first == second
        assert first == ["status", "status.name", "status.statusCategory.key", "summary"]

    def test_all_paths_unknown_type_is_empty(self):
        assert list(self.registry.all_paths("worklog")) == []

    def test_frequency(self):
        assert self.registry.frequency("issue", "status.name") == "high"
        assert self.registry.frequency("issue", "status") == "medium"
        assert self.registry.frequency("issue", "unknown") == "low"

    def test_duplicate_entity_type_rejected(self):
        issue = ResourceDefinition(entity_type="issue", fields={})
        with pytest.raises(FieldDefinitionError, match="Duplicate"):
            FieldRegistry([issue, issue])


class TestLoading:
    """Test YAML catalog loading."""

    def test_load_packaged_catalogs(self):
        registry = load_field_registry()
        assert registry.entity_types() == ["issue", "project", "user", "agile", "system"]
        assert registry.is_known_path("issue", "status.statusCategory.key")
        assert registry.is_known_path("issue", "status")
        assert registry.is_known_path("project", "lead.displayName")
        assert registry.is_known_path("user", "groups.items[].name")
        assert registry.is_known_path("system", "serverTime")

    def test_every_field_has_whole_field_path(self):
        registry = load_field_registry()
        for entity_type in registry.entity_types():
            definition = registry.get(entity_type)
            for field_id in definition.fields:
                assert field_id in definition.path_index, f"{entity_type}.{field_id}"

    def test_load_resource_definition(self, tmp_path):
        catalog = tmp_path / "project.yml"
        catalog.write_text(
            "entity_type: project\n"
            "version: '3.1.0'\n"
            "fields:\n"
            "  key:\n"
            "    name: Key\n"
            "    type: string\n"
            "    access_paths:\n"
            "      - {path: key, type: string, frequency: high, description: Project key}\n"
        )
        definition = load_resource_definition(catalog)
        assert definition.entity_type == "project"
        assert definition.version == "3.1.0"
        assert definition.path_index == {"key": "key"}

    def test_load_rejects_invalid_frequency(self, tmp_path):
        catalog = tmp_path / "user.yml"
        catalog.write_text(
            "entity_type: user\n"
            "fields:\n"
            "  name:\n"
            "    access_paths:\n"
            "      - {path: name, frequency: sometimes}\n"
        )
        with pytest.raises(FieldDefinitionError, match="invalid frequency"):
            load_resource_definition(catalog)

    def test_load_rejects_missing_entity_type(self, tmp_path):
        catalog = tmp_path / "broken.yml"
        catalog.write_text("fields: {}\n")
        with pytest.raises(FieldDefinitionError):
            load_resource_definition(catalog)

    def test_load_directory(self, tmp_path):
        (tmp_path / "agile.yml").write_text(
            "entity_type: agile\n"
            "fields:\n"
            "  sprint:\n"
            "    type: object\n"
            "    access_paths:\n"
            "      - {path: sprint, type: object}\n"
            "      - {path: sprint.name}\n"
        )
        registry = load_field_registry(tmp_path)
        assert registry.entity_types() == ["agile"]
        assert registry.is_known_path("agile", "sprint.name")
