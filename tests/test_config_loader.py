"""Tests for field_sync.config_loader -- hierarchical config loading."""

import pytest
import yaml

from field_sync.config_loader import (
    _interpolate,
    discover_config_files,
    interpolate_env_vars,
    load_config_file,
    load_hierarchical_config,
    load_mapping_table,
    merge_configs,
    parse_mapping_entry,
)
from field_sync.config_schema import (
    FieldMappingConfig,
    build_config,
    build_mapping_manual,
)


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Run in an empty CWD with a fake HOME and no FIELD_SYNC_CONFIG."""
    monkeypatch.delenv("FIELD_SYNC_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    return tmp_path


# -------------------------------------------------------------------------
# Env var interpolation
# -------------------------------------------------------------------------


class TestInterpolateEnvVars:
    def test_set_var(self, monkeypatch):
        monkeypatch.setenv("CRM_JUDGE", "internal-wins")
        assert interpolate_env_vars("${CRM_JUDGE}") == "internal-wins"

    def test_unset_var_becomes_empty(self, monkeypatch):
        monkeypatch.delenv("FS_UNSET_VAR", raising=False)
        assert interpolate_env_vars("x${FS_UNSET_VAR}y") == "xy"

    def test_default_when_unset_or_empty(self, monkeypatch):
        monkeypatch.delenv("FS_UNSET_VAR", raising=False)
        monkeypatch.setenv("FS_EMPTY_VAR", "")
        assert interpolate_env_vars("${FS_UNSET_VAR:-INFO}") == "INFO"
        assert interpolate_env_vars("${FS_EMPTY_VAR:-INFO}") == "INFO"

    def test_default_ignored_when_set(self, monkeypatch):
        monkeypatch.setenv("FS_LEVEL", "DEBUG")
        assert interpolate_env_vars("${FS_LEVEL:-INFO}") == "DEBUG"

    def test_unterminated_pattern_untouched(self):
        assert interpolate_env_vars("${NOT_CLOSED") == "${NOT_CLOSED"

    def test_recursive_walk(self, monkeypatch):
        monkeypatch.setenv("FS_FIELD", "Email")
        data = {
            "mappings": [{"integration_field": "${FS_FIELD}", "n": 1}],
            "concurrent_fetch": True,
        }
        assert _interpolate(data) == {
            "mappings": [{"integration_field": "Email", "n": 1}],
            "concurrent_fetch": True,
        }


# -------------------------------------------------------------------------
# Mapping tables
# -------------------------------------------------------------------------


class TestParseMappingEntry:
    def test_short_form(self):
        entry = parse_mapping_entry("lead.email <-> Contact.Email")
        assert entry == FieldMappingConfig(
            internal_entity="lead",
            internal_field="email",
            integration_entity="Contact",
            integration_field="Email",
        )

    def test_short_form_keeps_dotted_field_names(self):
        entry = parse_mapping_entry("lead.address.city<->Contact.MailingCity")
        assert entry.internal_field == "address.city"
        assert entry.integration_field == "MailingCity"

    def test_four_key_form(self):
        entry = parse_mapping_entry(
            {
                "internal_entity": "lead",
                "internal_field": "points",
                "integration_entity": "Contact",
                "integration_field": "Score__c",
            }
        )
        assert entry.integration_field == "Score__c"

    def test_malformed_short_form(self):
        with pytest.raises(ValueError, match="entity.field <-> Entity.Field"):
            parse_mapping_entry("lead.email -> Contact.Email")

    def test_missing_keys_named(self):
        with pytest.raises(ValueError, match="integration_entity, integration_field"):
            parse_mapping_entry({"internal_entity": "lead", "internal_field": "email"})

    def test_other_types_rejected(self):
        with pytest.raises(ValueError, match="got int"):
            parse_mapping_entry(42)


class TestMappingTables:
    def test_table_referenced_from_integration(self, tmp_path):
        (tmp_path / "crm_mappings.yml").write_text(
            "- lead.email <-> Contact.Email\n"
            "- {internal_entity: lead, internal_field: points,\n"
            "   integration_entity: Contact, integration_field: Score__c}\n"
        )
        main = tmp_path / "config.yml"
        main.write_text(
            "integrations:\n"
            "  crm:\n"
            "    mappings: !mappings crm_mappings.yml\n"
        )

        mappings = load_config_file(main)["integrations"]["crm"]["mappings"]
        assert [m["integration_field"] for m in mappings] == ["Email", "Score__c"]
        assert mappings[0] == {
            "internal_entity": "lead",
            "internal_field": "email",
            "integration_entity": "Contact",
            "integration_field": "Email",
        }

    def test_table_feeds_mapping_manual(self, isolated, tmp_path):
        (tmp_path / "crm.yml").write_text("- lead.email <-> Contact.Email\n")
        main = tmp_path / "config.yml"
        main.write_text("integrations: {crm: {mappings: !mappings crm.yml}}\n")

        config = build_config(load_hierarchical_config(main))
        manual = build_mapping_manual("crm", config.integrations["crm"])
        assert len(manual) == 1

    def test_absolute_path_and_env_var(self, tmp_path, monkeypatch):
        tables = tmp_path / "tables"
        tables.mkdir()
        (tables / "crm.yml").write_text("- lead.email <-> Contact.Email\n")
        monkeypatch.setenv("FS_TABLES", str(tables))
        main = tmp_path / "config.yml"
        main.write_text("mappings: !mappings ${FS_TABLES}/crm.yml\n")

        assert len(load_config_file(main)["mappings"]) == 1

    def test_bad_entry_names_file_and_number(self, tmp_path):
        table = tmp_path / "crm.yml"
        table.write_text("- lead.email <-> Contact.Email\n- lead.phone\n")

        with pytest.raises(ValueError, match=r"crm.yml, entry 2"):
            load_mapping_table(table)

    def test_table_must_be_a_list(self, tmp_path):
        table = tmp_path / "crm.yml"
        table.write_text("lead.email: Contact.Email\n")

        with pytest.raises(ValueError, match="must be a list"):
            load_mapping_table(table)

    def test_empty_table(self, tmp_path):
        table = tmp_path / "crm.yml"
        table.write_text("")

        assert load_mapping_table(table) == []

    def test_missing_table_raises(self, tmp_path):
        main = tmp_path / "config.yml"
        main.write_text("mappings: !mappings nowhere.yml\n")

        with pytest.raises(FileNotFoundError, match="nowhere.yml"):
            load_config_file(main)

    def test_tables_cannot_nest(self, tmp_path):
        (tmp_path / "inner.yml").write_text("- lead.email <-> Contact.Email\n")
        table = tmp_path / "crm.yml"
        table.write_text("- !mappings inner.yml\n")

        with pytest.raises(yaml.constructor.ConstructorError):
            load_mapping_table(table)

    def test_safe_loader_untouched(self, tmp_path):
        cfg = tmp_path / "config.yml"
        cfg.write_text("mappings: !mappings other.yml\n")

        with pytest.raises(yaml.constructor.ConstructorError):
            with open(cfg) as fh:
                yaml.safe_load(fh)


# -------------------------------------------------------------------------
# Discovery and merge
# -------------------------------------------------------------------------


class TestDiscoverConfigFiles:
    def test_nothing_found(self, isolated):
        assert discover_config_files() == []

    def test_explicit_first(self, isolated, monkeypatch):
        explicit = isolated / "explicit.yml"
        explicit.write_text("a: 1\n")
        from_env = isolated / "env.yml"
        from_env.write_text("a: 2\n")
        monkeypatch.setenv("FIELD_SYNC_CONFIG", str(from_env))

        result = discover_config_files(explicit)
        assert result[:2] == [explicit.resolve(), from_env.resolve()]

    def test_project_before_global(self, isolated):
        project = isolated / ".field_sync" / "config.yml"
        project.parent.mkdir()
        project.write_text("a: 1\n")
        global_cfg = isolated / "home" / ".config" / "field_sync" / "config.yml"
        global_cfg.parent.mkdir(parents=True)
        global_cfg.write_text("a: 2\n")

        result = [p.resolve() for p in discover_config_files()]
        assert result.index(project.resolve()) < result.index(global_cfg.resolve())

    def test_yaml_extension(self, isolated):
        project = isolated / ".field_sync" / "config.yaml"
        project.parent.mkdir()
        project.write_text("a: 1\n")

        assert [p.resolve() for p in discover_config_files()] == [project.resolve()]


class TestLoadHierarchicalConfig:
    def test_zero_config(self, isolated):
        assert load_hierarchical_config() == {}

    def test_project_and_user_files_merged(self, isolated):
        project = isolated / ".field_sync" / "config.yml"
        project.parent.mkdir()
        project.write_text(
            "logging: {level: DEBUG}\n"
            "integrations: {crm: {judge: latest-wins}}\n"
        )
        global_cfg = isolated / "home" / ".config" / "field_sync" / "config.yml"
        global_cfg.parent.mkdir(parents=True)
        global_cfg.write_text(
            "logging: {level: WARNING, file: /tmp/fs.log}\n"
            "integrations:\n"
            "  crm: {judge: internal-wins, concurrent_fetch: false}\n"
            "  erp: {judge: integration-wins}\n"
        )

        merged = load_hierarchical_config()
        assert merged["logging"] == {"level": "DEBUG", "file": "/tmp/fs.log"}
        # a project integration replaces the user one as a whole
        assert merged["integrations"]["crm"] == {"judge": "latest-wins"}
        assert merged["integrations"]["erp"]["judge"] == "integration-wins"

    def test_env_interpolated_after_merge(self, isolated, monkeypatch):
        monkeypatch.setenv("FS_TEST_LEVEL", "ERROR")
        cfg = isolated / "sync.yml"
        cfg.write_text("logging: {level: '${FS_TEST_LEVEL:-INFO}'}\n")

        assert load_hierarchical_config(cfg) == {"logging": {"level": "ERROR"}}

    def test_non_dict_root_skipped(self, isolated):
        cfg = isolated / "sync.yml"
        cfg.write_text("- just\n- a list\n")

        assert load_hierarchical_config(cfg) == {}

    def test_broken_yaml_raises(self, isolated):
        cfg = isolated / "sync.yml"
        cfg.write_text("integrations: [unclosed\n")

        with pytest.raises(yaml.YAMLError):
            load_hierarchical_config(cfg)


class TestMergeConfigs:
    def test_later_layer_wins(self):
        merged = merge_configs(
            [
                {"integrations": {"crm": {"judge": "internal-wins"}}},
                {"integrations": {"crm": {"judge": "latest-wins"}}},
            ]
        )
        assert merged == {"integrations": {"crm": {"judge": "latest-wins"}}}

    def test_unknown_top_level_keys_replaced(self):
        merged = merge_configs([{"extra": {"a": 1}}, {"extra": {"b": 2}}])
        assert merged == {"extra": {"b": 2}}

    def test_section_replaced_by_non_mapping(self):
        merged = merge_configs([{"integrations": {"crm": {}}}, {"integrations": None}])
        assert merged == {"integrations": None}

    def test_layers_not_mutated(self):
        low = {"integrations": {"crm": {}}}
        high = {"integrations": {"erp": {}}}
        merged = merge_configs([low, high])

        assert set(merged["integrations"]) == {"crm", "erp"}
        assert low == {"integrations": {"crm": {}}}
        assert high == {"integrations": {"erp": {}}}
