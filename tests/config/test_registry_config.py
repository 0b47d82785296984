"""
Registry configuration tests.

Verifies the shipped defaults load and bridge into a RegistryPolicy, the
resolution order (argument, environment, defaults), and that invalid
documents are rejected at load time rather than at first use.
"""

from decimal import Decimal

import pytest
import yaml

from asset_config import CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH, get_active_config
from asset_config.bridges import build_identifier_policy, build_registry_policy
from asset_config.loader import compute_checksum, load_yaml_file, parse_registry_config
from asset_kernel.domain.authorization import Capability, Role
from asset_kernel.domain.enums import DepreciationMethod, IdentifierKind


@pytest.fixture
def default_document() -> dict:
    return load_yaml_file(DEFAULT_CONFIG_PATH)


@pytest.fixture
def write_config(tmp_path, default_document):
    """Factory: write the defaults with ``changes`` merged per section."""

    def _write(**changes):
        data = dict(default_document)
        for section, value in changes.items():
            if isinstance(value, dict) and isinstance(data.get(section), dict):
                data[section] = {**data[section], **value}
            else:
                data[section] = value
        path = tmp_path / "registry.yaml"
        path.write_text(yaml.safe_dump(data))
        return path

    return _write


class TestDefaults:

    def test_shipped_defaults(self):
        config = get_active_config()
        assert config.config_id == "asset-registry-default"
        assert config.version == 1
        assert config.identifiers.max_attempts == 25
        assert config.depreciation.declining_balance_factor == Decimal("2")
        assert config.depreciation.quantum == Decimal("0.01")
        assert config.pagination.default_limit == 10
        assert config.pagination.max_limit == 100
        assert config.compliance.audit_interval_days == 365

    def test_every_role_has_defaults(self):
        config = get_active_config()
        assert {role for role, _ in config.role_default_permissions} == {r.value for r in Role}
        assert set(config.permissions_for("super_admin")) == Capability.all()
        assert "asset:lifecycle_override" not in config.permissions_for("admin")

    def test_load_is_logged_with_checksum(self, captured_logs):
        config = get_active_config()
        loaded = [r for r in captured_logs() if r["message"] == "asset_config_loaded"]
        assert loaded[-1]["checksum"] == config.checksum
        assert loaded[-1]["config_id"] == "asset-registry-default"


class TestResolution:

    def test_path_argument_wins(self, write_config, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(DEFAULT_CONFIG_PATH))
        path = write_config(config_id="from-argument")
        assert get_active_config(path).config_id == "from-argument"

    def test_environment_variable(self, write_config, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(write_config(config_id="from-env")))
        assert get_active_config().config_id == "from-env"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "nope.yaml")

    def test_checksum_tracks_content(self, write_config, default_document):
        base = get_active_config(write_config())
        changed = get_active_config(write_config(pagination={"max_limit": 50}))
        assert base.checksum == compute_checksum(default_document)
        assert base.checksum != changed.checksum

    def test_omitted_sections_take_defaults(self):
        config = parse_registry_config({"config_id": "minimal", "version": 3})
        assert config.identifiers.base_length == 6
        assert dict(config.identifiers.suffix_widths)["asset_number"] == 4
        assert config.depreciation.default_method == "straight_line"
        assert config.role_default_permissions == ()


class TestValidation:

    @pytest.mark.parametrize(
        "changes, message",
        [
            ({"pagination": {"default_limit": 500}}, "exceeds max_limit"),
            ({"pagination": {"max_limit": 0}}, "positive integer"),
            ({"identifiers": {"max_attempts": True}}, "positive integer"),
            ({"identifiers": {"pad_char": "00"}}, "one character"),
            ({"identifiers": {"suffix_widths": {"asset_number": -1}}}, ">= 0"),
            ({"depreciation": {"declining_balance_factor": "abc"}}, "not a decimal"),
            ({"depreciation": {"quantum": "0"}}, "must be positive"),
            ({"role_default_permissions": {"viewer": ["asset:fly"]}}, "unknown capabilities"),
        ],
    )
    def test_rejected(self, write_config, changes, message):
        with pytest.raises(ValueError, match=message):
            get_active_config(write_config(**changes))

    @pytest.mark.parametrize(
        "changes",
        [
            {"role_default_permissions": {"janitor": []}},
            {"identifiers": {"suffix_widths": {"badge_number": 3}}},
            {"depreciation": {"default_method": "sum_of_years"}},
        ],
    )
    def test_unknown_vocabulary_rejected(self, write_config, changes):
        with pytest.raises(ValueError):
            get_active_config(write_config(**changes))

    def test_config_id_required(self):
        with pytest.raises(KeyError):
            parse_registry_config({"version": 1})

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("identifiers: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            get_active_config(path)


class TestBridge:

    def test_registry_policy(self, write_config):
        policy = build_registry_policy(get_active_config(write_config(
            depreciation={"default_method": "declining_balance", "declining_balance_factor": "1.5"},
            compliance={"audit_interval_days": 90},
        )))
        assert policy.depreciation.default_method is DepreciationMethod.DECLINING_BALANCE
        assert policy.depreciation.declining_balance_factor == Decimal("1.5")
        assert policy.compliance.audit_interval_days == 90
        assert policy.pagination.clamp(1000) == 100
        assert policy.default_permissions_for(Role.VIEWER) == frozenset({"company:read", "asset:read"})

    def test_identifier_policy(self):
        policy = build_identifier_policy(get_active_config())
        assert policy.suffix_widths[IdentifierKind.EMPLOYEE_ID] == 3
        assert policy.suffix_widths[IdentifierKind.TENANT_CODE] == 0
        with pytest.raises(TypeError):
            policy.suffix_widths[IdentifierKind.ASSET_NUMBER] = 9

    def test_configured_policy_drives_services(self, session, clock, write_config, register_tenant):
        from asset_kernel.domain.dtos import AssetCreateRequest
        from asset_kernel.services.asset_ledger import AssetLedger
        from asset_kernel.services.tenant_service import TenantService

        policy = build_registry_policy(get_active_config(write_config(
            identifiers={"suffix_widths": {"asset_number": 6}},
        )))
        onboarding = register_tenant("Config Co")
        admin = TenantService(session, clock, policy).principal_for(onboarding.admin.id)
        record = AssetLedger(session, clock, policy).create(admin, AssetCreateRequest(name="Desk"))
        assert record.asset_number == "AST-2024-000001"
