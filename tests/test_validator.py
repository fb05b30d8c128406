"""Tests for configuration validation."""
import pytest
from pabawi_orchestrator.engine.validator import (
    ConfigValidator,
    DEFAULT_INSTALL_CLASS,
    DEFAULT_PROXY_CLASS,
)
from pabawi_orchestrator.errors import (
    ConflictingInstance,
    InvalidIdentifier,
    MissingDependentField,
    TypeMismatch,
)


class TestDefaults:
    """Tests for the default configuration."""

    def test_empty_config_uses_defaults(self):
        """An empty configuration manages proxy and install with default classes."""
        config = ConfigValidator().validate({})

        assert config.proxy_manage is True
        assert config.proxy_class == DEFAULT_PROXY_CLASS
        assert config.install_manage is True
        assert config.install_class == DEFAULT_INSTALL_CLASS
        assert config.integrations == ()

    def test_none_is_empty_config(self):
        """A missing document validates like an empty one."""
        config = ConfigValidator().validate(None)
        assert config.proxy_class == DEFAULT_PROXY_CLASS

    def test_non_mapping_root(self):
        """The root must be a mapping."""
        with pytest.raises(TypeMismatch) as exc:
            ConfigValidator().validate(["proxy"])
        assert exc.value.field == "configuration"

    def test_unknown_keys_warn(self):
        """Unknown top-level keys produce warnings, not errors."""
        result = ConfigValidator().check({"proxy_mange": False})

        assert result.valid
        assert any("proxy_mange" in w for w in result.warnings)


class TestIdentifiers:
    """Tests for component identifier fields."""

    def test_proxy_class_with_trailing_newline(self):
        """A trailing newline fails the grammar instead of the lookup."""
        with pytest.raises(InvalidIdentifier) as exc:
            ConfigValidator().validate({"proxy_class": "pabawi::proxy::nginx\n"})

        assert exc.value.field == "proxy_class"

    def test_invalid_proxy_class(self):
        """A malformed proxy_class names the field in the error."""
        with pytest.raises(InvalidIdentifier) as exc:
            ConfigValidator().validate({"proxy_class": "Invalid-Class-Name"})

        assert exc.value.field == "proxy_class"
        assert "Invalid proxy_class" in str(exc.value)

    @pytest.mark.parametrize("value", ["123proxy", "Proxy::Class", "pabawi::proxy::nginx\n"])
    def test_invalid_install_class(self, value):
        """install_class follows the same grammar."""
        with pytest.raises(InvalidIdentifier):
            ConfigValidator().validate({"install_class": value})

    @pytest.mark.parametrize("value", ["pabawi::proxy::nginx", "my_custom_proxy"])
    def test_valid_proxy_class(self, value):
        """Well-formed identifiers pass even when nothing is registered under them."""
        config = ConfigValidator().validate({"proxy_class": value})
        assert config.proxy_class == value

    def test_non_string_class(self):
        """A non-string class is a type mismatch."""
        with pytest.raises(TypeMismatch):
            ConfigValidator().validate({"proxy_class": 42})


class TestBooleans:
    """Tests for boolean flags."""

    def test_truthy_string_is_rejected(self):
        """A truthy string is not a Boolean."""
        with pytest.raises(TypeMismatch) as exc:
            ConfigValidator().validate({"proxy_manage": "yes"})

        assert exc.value.field == "proxy_manage"
        assert exc.value.expected_type == "Boolean"

    def test_integer_is_rejected(self):
        """1 is not a Boolean."""
        with pytest.raises(TypeMismatch):
            ConfigValidator().validate({"install_manage": 1})

    def test_nested_boolean_param(self):
        """Known boolean parameters are checked inside parameter maps."""
        with pytest.raises(TypeMismatch) as exc:
            ConfigValidator().validate({"proxy": {"ssl": "true"}})
        assert exc.value.field == "proxy.ssl"

    def test_params_must_be_mapping(self):
        """Component parameters are a mapping."""
        with pytest.raises(TypeMismatch) as exc:
            ConfigValidator().validate({"install": ["port"]})
        assert exc.value.field == "install"


class TestSSLRules:
    """Tests for the SSL cross-field rule."""

    def test_external_ssl_without_sources(self):
        """ssl_self_signed=false without sources fails before compilation."""
        result = ConfigValidator().check({"proxy": {"ssl": True, "ssl_self_signed": False}})

        assert not result.valid
        fields = {e.field for e in result.errors}
        assert fields == {"proxy.ssl_cert_source", "proxy.ssl_key_source"}
        assert all(isinstance(e, MissingDependentField) for e in result.errors)
        assert result.errors[0].required_by == "proxy.ssl_self_signed"

    def test_external_ssl_missing_key(self):
        """Both sources are required."""
        with pytest.raises(MissingDependentField) as exc:
            ConfigValidator().validate({
                "proxy": {"ssl_self_signed": False, "ssl_cert_source": "/srv/cert.pem"}
            })
        assert exc.value.field == "proxy.ssl_key_source"

    def test_external_ssl_with_sources(self):
        """Certificate and key sources satisfy the rule."""
        config = ConfigValidator().validate({
            "proxy": {
                "ssl_self_signed": False,
                "ssl_cert_source": "/srv/cert.pem",
                "ssl_key_source": "/srv/key.pem",
            }
        })
        assert config.proxy_params["ssl_cert_source"] == "/srv/cert.pem"

    def test_ssl_disabled_needs_no_sources(self):
        """With ssl off the self-signed flag is irrelevant."""
        config = ConfigValidator().validate({"proxy": {"ssl": False, "ssl_self_signed": False}})
        assert config.proxy_params["ssl"] is False

    def test_integration_ssl_without_sources(self):
        """Integration SSL always uses external material."""
        with pytest.raises(MissingDependentField) as exc:
            ConfigValidator().validate({"integrations": {"puppetdb": {"ssl": True}}})
        assert exc.value.field == "integrations.puppetdb.ssl_cert_source"


class TestAuthRule:
    """Tests for the authentication rule."""

    def test_auth_without_secret(self):
        """auth_enabled requires a jwt_secret."""
        with pytest.raises(MissingDependentField) as exc:
            ConfigValidator().validate({"install": {"auth_enabled": True}})
        assert exc.value.field == "install.jwt_secret"

    def test_auth_with_blank_secret(self):
        """A blank secret does not count."""
        with pytest.raises(MissingDependentField):
            ConfigValidator().validate({"install": {"auth_enabled": True, "jwt_secret": "  "}})

    def test_auth_with_secret(self):
        """A secret satisfies the rule."""
        config = ConfigValidator().validate(
            {"install": {"auth_enabled": True, "jwt_secret": "s3cret"}}
        )
        assert config.install_params["auth_enabled"] is True


class TestIntegrations:
    """Tests for the enabled-integrations collection."""

    def test_list_form(self):
        """A list of names maps each name to its identifier."""
        config = ConfigValidator().validate({"integrations": ["bolt", "puppetdb"]})

        assert [e.name for e in config.integrations] == ["bolt", "puppetdb"]
        assert config.integrations[0].identifier == "pabawi::integrations::bolt"
        assert config.integrations[0].params == {}

    def test_map_form(self):
        """A map carries parameters per integration."""
        config = ConfigValidator().validate({
            "integrations": {"puppetdb": {"server_url": "https://db.example.com:8081"}}
        })

        entry = config.integrations[0]
        assert entry.identifier == "pabawi::integrations::puppetdb"
        assert entry.params["server_url"] == "https://db.example.com:8081"

    def test_map_form_without_params(self):
        """A map entry may be empty."""
        config = ConfigValidator().validate({"integrations": {"bolt": None}})
        assert config.integrations[0].params == {}

    def test_duplicates_collapse(self):
        """A name listed twice yields one entry and a warning."""
        result = ConfigValidator().check({"integrations": ["bolt", "bolt"]})

        assert result.valid
        assert len(result.config.integrations) == 1
        assert any("bolt" in w for w in result.warnings)

    def test_non_string_entry(self):
        """Entries must be strings."""
        with pytest.raises(TypeMismatch) as exc:
            ConfigValidator().validate({"integrations": [123]})
        assert exc.value.field == "integrations[0]"

    def test_scalar_integrations(self):
        """A scalar is neither a list nor a map."""
        with pytest.raises(TypeMismatch) as exc:
            ConfigValidator().validate({"integrations": "bolt"})
        assert exc.value.expected_type == "Array[String]"

    def test_qualified_name_rejected(self):
        """Entries are short names, not identifiers."""
        with pytest.raises(InvalidIdentifier):
            ConfigValidator().validate({"integrations": ["pabawi::integrations::bolt"]})

    @pytest.mark.parametrize("integrations", [["bolt\n"], {"bolt\n": {}}])
    def test_trailing_newline_rejected(self, integrations):
        """A name with a trailing newline is not a valid short name."""
        with pytest.raises(InvalidIdentifier):
            ConfigValidator().validate({"integrations": integrations})

    def test_unknown_name_passes_validation(self):
        """Resolution is the compiler's job."""
        config = ConfigValidator().validate({"integrations": ["terraform"]})
        assert config.integrations[0].identifier == "pabawi::integrations::terraform"


class TestConflicts:
    """Tests for one instance per identifier."""

    def test_proxy_and_install_same_class(self):
        """The same identifier cannot serve two roles."""
        with pytest.raises(ConflictingInstance) as exc:
            ConfigValidator().validate({
                "proxy_class": "site::web",
                "install_class": "site::web",
            })
        assert exc.value.name == "site::web"

    def test_disabled_role_does_not_conflict(self):
        """A disabled role's class is not declared."""
        config = ConfigValidator().validate({
            "proxy_manage": False,
            "proxy_class": "site::web",
            "install_class": "site::web",
        })
        assert config.install_class == "site::web"

    def test_check_collects_all_errors(self):
        """check() reports every problem at once."""
        result = ConfigValidator().check({
            "proxy_class": "Bad",
            "install_manage": "no",
        })

        assert not result.valid
        assert len(result.errors) == 2
        assert result.config is None
