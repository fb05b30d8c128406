"""End-to-end tests for the Orchestrator."""
import pytest
from pabawi_orchestrator import InMemoryApplier, Orchestrator
from pabawi_orchestrator.engine.registry import ComponentRegistry
from pabawi_orchestrator.engine.schema import (
    BuildOutput,
    ExecuteOptions,
    OutcomeStatus,
    ResourceDecl,
    ResourceKind,
)
from pabawi_orchestrator.errors import (
    CycleError,
    InvalidIdentifier,
    MissingDependentField,
    UnknownComponent,
)
from pabawi_orchestrator.utils.audit_log import get_recent_changes

FULL_CONFIG = {
    "proxy_manage": True,
    "install_manage": True,
    "integrations": ["bolt", "puppetdb", "hiera"],
}


class RecordingApplier(InMemoryApplier):
    """In-memory applier that counts every call."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.calls = []

    def apply(self, decl, noop=False, refresh=False):
        self.calls.append(decl.id)
        return super().apply(decl, noop=noop, refresh=refresh)


class TestApply:
    """Tests for Orchestrator.apply."""

    def test_first_run_converges(self):
        """A fresh host converges without failures."""
        applier = InMemoryApplier()
        report = Orchestrator().apply(FULL_CONFIG, applier)

        assert report.success
        assert report.changed
        assert applier.state.services["pabawi"] == {"running": True, "enabled": True}
        assert applier.state.services["nginx"] == {"running": True, "enabled": True}

    def test_second_run_unchanged(self):
        """Applying the same configuration twice changes nothing the second time."""
        applier = InMemoryApplier()
        orchestrator = Orchestrator()

        orchestrator.apply(FULL_CONFIG, applier)
        actions = list(applier.actions)
        second = orchestrator.apply(FULL_CONFIG, applier)

        assert second.converged
        assert all(r.status == OutcomeStatus.UNCHANGED for r in second.results)
        assert applier.actions == actions

    @pytest.mark.parametrize("install_class", ["pabawi::install::npm", "pabawi::install::docker"])
    def test_idempotent_for_each_installer(self, install_class):
        """Both installers are idempotent."""
        config = {"install_class": install_class, "integrations": ["bolt"]}
        applier = InMemoryApplier()
        orchestrator = Orchestrator()

        orchestrator.apply(config, applier)
        assert orchestrator.apply(config, applier).converged

    def test_integration_change_restarts_service(self):
        """Enabling an integration later restarts the application once."""
        applier = InMemoryApplier()
        orchestrator = Orchestrator()
        orchestrator.apply({"integrations": ["bolt"]}, applier)

        report = orchestrator.apply({"integrations": ["bolt", "puppetdb"]}, applier)

        assert report.result_for("service:pabawi").status == OutcomeStatus.CHANGED
        assert applier.restarts == {"pabawi": 1}
        assert report.result_for("service:nginx").status == OutcomeStatus.UNCHANGED

    def test_external_ssl_from_sources(self):
        """External certificate material is copied from its sources."""
        applier = InMemoryApplier(sources={"/srv/cert.pem": "CERT", "/srv/key.pem": "KEY"})
        report = Orchestrator().apply({
            "install_manage": False,
            "proxy": {
                "ssl_self_signed": False,
                "ssl_cert_source": "/srv/cert.pem",
                "ssl_key_source": "/srv/key.pem",
            },
        }, applier)

        assert report.success
        assert applier.state.files["/etc/nginx/ssl/pabawi.key"]["content"] == "KEY"

    def test_proxy_disabled(self):
        """The installer converges on its own when the proxy is disabled."""
        applier = InMemoryApplier()
        report = Orchestrator().apply({"proxy_manage": False}, applier)

        assert report.success
        assert all(r.owner != "pabawi::proxy::nginx" for r in report.results)
        assert "nginx" not in applier.state.packages

    def test_proxy_resources_before_installer(self):
        """Every proxy resource is applied before any installer resource."""
        report = Orchestrator().apply(FULL_CONFIG, InMemoryApplier())

        owners = [r.owner for r in report.results]
        last_proxy = max(i for i, o in enumerate(owners) if o == "pabawi::proxy::nginx")
        first_install = min(i for i, o in enumerate(owners) if o == "pabawi::install::npm")
        assert last_proxy < first_install

    def test_duplicate_integration_notifies_once(self):
        """A duplicated integration yields one notification."""
        report = Orchestrator().apply({"integrations": ["bolt", "bolt"]}, InMemoryApplier())

        notices = [r for r in report.results if r.kind == ResourceKind.NOTIFY]
        assert [r.resource_id for r in notices] == ["notify:pabawi_integration_bolt"]
        assert any("bolt" in w for w in report.warnings)

    def test_unresolved_integration(self):
        """An unknown integration is reported and everything else applies."""
        applier = InMemoryApplier()
        report = Orchestrator().apply({"integrations": ["terraform", "bolt"]}, applier)

        assert report.success
        assert [u.identifier for u in report.unresolved] == ["pabawi::integrations::terraform"]
        assert "Unresolved: pabawi::integrations::terraform" in report.summary()
        assert report.result_for("notify:pabawi_integration_bolt").status == OutcomeStatus.CHANGED
        assert "pabawi" in applier.state.services

    def test_unresolved_logged_once(self, caplog):
        """An unresolved integration produces a single warning."""
        with caplog.at_level("WARNING", logger="pabawi_orchestrator"):
            Orchestrator().apply({"integrations": ["terraform"]}, InMemoryApplier())

        messages = [r.getMessage() for r in caplog.records if "terraform" in r.getMessage()]
        assert len(messages) == 1

    def test_dry_run(self):
        """A dry run touches nothing."""
        applier = InMemoryApplier()
        report = Orchestrator().apply(FULL_CONFIG, applier, dry_run=True)

        assert report.dry_run
        assert report.changed
        assert applier.actions == []

    def test_fatal_failure(self):
        """A failed installer package halts the run."""
        applier = InMemoryApplier(failures={"package:nodejs": "repository unavailable"})
        report = Orchestrator().apply({"proxy_manage": False}, applier)

        assert report.halted
        assert report.first_failure.resource_id == "package:nodejs"
        assert "service:pabawi" in report.not_applied

    def test_transient_clone_failure(self):
        """A flaky clone is retried."""
        applier = InMemoryApplier(transient_failures={"repo:/opt/pabawi": 1})
        report = Orchestrator().apply(
            {"proxy_manage": False},
            applier,
            options=ExecuteOptions(retry_min_wait=0, retry_max_wait=0),
        )

        assert report.success
        assert report.result_for("repo:/opt/pabawi").attempts == 2


class TestAbortBeforeApply:
    """Validation and compile errors happen before any resource is applied."""

    def test_invalid_identifier(self):
        """A malformed class name applies nothing."""
        applier = RecordingApplier()
        with pytest.raises(InvalidIdentifier):
            Orchestrator().apply({"proxy_class": "Invalid-Class-Name"}, applier)
        assert applier.calls == []

    def test_missing_ssl_sources(self):
        """External SSL without sources applies nothing."""
        applier = RecordingApplier()
        with pytest.raises(MissingDependentField):
            Orchestrator().apply({"proxy": {"ssl_self_signed": False}}, applier)
        assert applier.calls == []

    def test_unknown_proxy_class(self):
        """An unregistered proxy class applies nothing."""
        applier = RecordingApplier()
        with pytest.raises(UnknownComponent):
            Orchestrator().apply({"proxy_class": "pabawi::proxy::custom"}, applier)
        assert applier.calls == []

    def test_cycle(self):
        """A contrived cycle between two components applies nothing."""
        registry = ComponentRegistry.create_default()

        @registry.component("site::left")
        def left(params):
            return BuildOutput(
                resources=[ResourceDecl(ResourceKind.PACKAGE, "left")],
                depends_on=["site::right"],
            )

        @registry.component("site::right")
        def right(params):
            return BuildOutput(depends_on=["site::left"])

        applier = RecordingApplier()
        with pytest.raises(CycleError) as exc:
            Orchestrator(registry=registry).apply(
                {"proxy_class": "site::left", "install_manage": False}, applier
            )

        assert "site::left" in exc.value.path
        assert "site::right" in exc.value.path
        assert applier.calls == []


class TestCustomComponents:
    """Tests for user-registered components."""

    def test_custom_proxy(self):
        """A custom proxy class is used when registered."""
        registry = ComponentRegistry.create_default()

        @registry.component("pabawi::proxy::custom")
        def custom(params):
            return BuildOutput(resources=[ResourceDecl(ResourceKind.PACKAGE, "caddy")])

        report = Orchestrator(registry=registry).apply(
            {"proxy_class": "pabawi::proxy::custom"}, InMemoryApplier()
        )

        assert report.results[0].resource_id == "package:caddy"
        assert report.results[0].owner == "pabawi::proxy::custom"


class TestPreview:
    """Tests for Orchestrator.preview."""

    def test_preview_lists_order(self):
        """preview() shows components, resources and unresolved names."""
        text = Orchestrator().preview({"integrations": ["bolt", "terraform"]})

        assert "Component order:" in text
        assert "1. pabawi::proxy::nginx" in text
        assert "notify:pabawi_integration_bolt [pabawi::integrations::bolt]" in text
        assert "Unresolved: pabawi::integrations::terraform" in text

    def test_validate(self):
        """validate() returns the typed configuration."""
        config = Orchestrator().validate({"integrations": ["bolt"]})
        assert config.integrations[0].name == "bolt"


class TestAuditTrail:
    """Tests for audit logging through the orchestrator."""

    def test_run_is_audited(self, tmp_path):
        """Every outcome of a run is written with the same run id."""
        orchestrator = Orchestrator(audit_log_path=str(tmp_path))
        report = orchestrator.apply(
            {"proxy_manage": False}, InMemoryApplier(), audit_context="bootstrap", user="ops"
        )

        records = get_recent_changes(str(tmp_path / "audit.log"), limit=1000)
        assert len(records) == len(report.results)
        assert len({r.run_id for r in records}) == 1
        assert all(r.user == "ops" and r.context == "bootstrap" for r in records)

    def test_orchestrators_audit_separately(self, tmp_path):
        """Each orchestrator writes to its own audit directory."""
        first = Orchestrator(audit_log_path=str(tmp_path / "a"))
        Orchestrator(audit_log_path=str(tmp_path / "b"))

        report = first.apply({"proxy_manage": False}, InMemoryApplier())

        assert len(get_recent_changes(str(tmp_path / "a" / "audit.log"), limit=1000)) == \
            len(report.results)
        assert get_recent_changes(str(tmp_path / "b" / "audit.log")) == []
