"""Tests for the in-memory applier."""
import pytest
from pabawi_orchestrator.appliers import APPLIER_TYPES, InMemoryApplier, create_applier
from pabawi_orchestrator.appliers.memory import HostState
from pabawi_orchestrator.engine.schema import OutcomeStatus, ResourceDecl, ResourceKind
from pabawi_orchestrator.errors import ResourceError, TransientResourceError


class TestFactory:
    """Tests for create_applier."""

    def test_create_memory_applier(self):
        """The memory type creates an InMemoryApplier."""
        applier = create_applier("memory", sources={"a": "b"})

        assert isinstance(applier, InMemoryApplier)
        assert applier.sources == {"a": "b"}
        assert "memory" in APPLIER_TYPES

    def test_unknown_type(self):
        """Unknown applier types are rejected."""
        with pytest.raises(ValueError, match="Unknown applier type"):
            create_applier("ssh")


class TestDispatch:
    """Tests for ResourceApplier.apply dispatch."""

    def test_name_fills_primary_argument(self):
        """The resource name becomes the package name."""
        applier = InMemoryApplier()
        outcome = applier.apply(ResourceDecl(ResourceKind.PACKAGE, "nginx"))

        assert outcome.status == OutcomeStatus.CHANGED
        assert applier.state.packages == {"nginx": "latest"}

    def test_refresh_passed_to_services(self):
        """Refreshable kinds receive the refresh flag."""
        applier = InMemoryApplier()
        decl = ResourceDecl(ResourceKind.SERVICE, "nginx")
        applier.apply(decl)

        outcome = applier.apply(decl, refresh=True)

        assert outcome.message == "restart service nginx"
        assert applier.restarts == {"nginx": 1}

    def test_permanent_failure(self):
        """Injected failures raise ResourceError."""
        applier = InMemoryApplier(failures={"package:nginx": "gone"})

        with pytest.raises(ResourceError, match="gone"):
            applier.apply(ResourceDecl(ResourceKind.PACKAGE, "nginx"))

    def test_transient_failure_counts_down(self):
        """Transient failures clear after the injected count."""
        applier = InMemoryApplier(transient_failures={"package:nginx": 1})
        decl = ResourceDecl(ResourceKind.PACKAGE, "nginx")

        with pytest.raises(TransientResourceError):
            applier.apply(decl)
        assert applier.apply(decl).status == OutcomeStatus.CHANGED


class TestResources:
    """Tests for individual resource kinds."""

    def test_package_version(self):
        """A pinned version upgrades an installed package."""
        applier = InMemoryApplier(state=HostState(packages={"nodejs": "18.0.0"}))

        outcome = applier.ensure_package("nodejs", version="20.11.0")

        assert outcome.status == OutcomeStatus.CHANGED
        assert "upgrade" in outcome.message
        assert applier.ensure_package("nodejs", version="20.11.0").status == OutcomeStatus.UNCHANGED

    def test_file_from_source(self):
        """File content can come from a source reference."""
        applier = InMemoryApplier(sources={"/srv/cert.pem": "CERT"})

        applier.ensure_file("/etc/ssl/cert.pem", source="/srv/cert.pem")

        assert applier.state.files["/etc/ssl/cert.pem"]["content"] == "CERT"

    def test_file_missing_source(self):
        """An unknown source is a resource error."""
        with pytest.raises(ResourceError, match="Could not retrieve source"):
            InMemoryApplier().ensure_file("/etc/x", source="/srv/missing")

    def test_file_mode_change(self):
        """Metadata drift is corrected."""
        applier = InMemoryApplier()
        applier.ensure_file("/etc/x", content="a")

        outcome = applier.ensure_file("/etc/x", content="a", mode="0600")

        assert outcome.message == "update file /etc/x"

    def test_exec_creates_guard(self):
        """A command with creates runs once."""
        applier = InMemoryApplier()
        first = applier.run_command("npm ci", cwd="/opt/app", creates="/opt/app/node_modules")
        second = applier.run_command("npm ci", cwd="/opt/app", creates="/opt/app/node_modules")

        assert first.status == OutcomeStatus.CHANGED
        assert second.status == OutcomeStatus.UNCHANGED

    def test_exec_unless_guard(self):
        """A satisfied unless guard skips the command."""
        applier = InMemoryApplier(state=HostState(satisfied_guards={"test -f /x"}))

        outcome = applier.run_command("touch /x", unless="test -f /x")

        assert outcome.status == OutcomeStatus.UNCHANGED
        assert applier.actions == []

    def test_exec_refreshonly(self):
        """refreshonly commands only run on refresh."""
        applier = InMemoryApplier()

        assert applier.run_command("systemctl daemon-reload", refreshonly=True).status \
            == OutcomeStatus.UNCHANGED
        assert applier.run_command("systemctl daemon-reload", refreshonly=True, refresh=True).status \
            == OutcomeStatus.CHANGED

    def test_repository_revision(self):
        """A new revision is checked out in place."""
        applier = InMemoryApplier()
        applier.ensure_repository("/opt/app", "https://example.com/app.git")

        outcome = applier.ensure_repository("/opt/app", "https://example.com/app.git", revision="v2")

        assert outcome.message == "check out v2 in /opt/app"
        assert applier.state.repositories["/opt/app"]["revision"] == "v2"

    def test_container_recreated_on_change(self):
        """A changed image recreates the container."""
        applier = InMemoryApplier()
        applier.ensure_container("app", "app:1")

        outcome = applier.ensure_container("app", "app:2")

        assert outcome.message == "recreate container app from app:2"

    def test_certificate_once(self):
        """A self-signed certificate is generated only when missing."""
        applier = InMemoryApplier()
        args = ("pabawi.local", "/etc/ssl/p.crt", "/etc/ssl/p.key")

        assert applier.generate_self_signed_certificate(*args).status == OutcomeStatus.CHANGED
        assert applier.generate_self_signed_certificate(*args).status == OutcomeStatus.UNCHANGED
        assert applier.state.files["/etc/ssl/p.key"]["mode"] == "0600"

    def test_user_and_group(self):
        """Accounts are created once."""
        applier = InMemoryApplier()
        applier.ensure_group("pabawi")
        applier.ensure_user("pabawi", group="pabawi")

        assert applier.ensure_group("pabawi").status == OutcomeStatus.UNCHANGED
        assert applier.ensure_user("pabawi", group="pabawi").status == OutcomeStatus.UNCHANGED
        assert applier.actions == ["create group pabawi", "create user pabawi"]

    def test_notify_once(self, caplog):
        """A notification is emitted once per message."""
        applier = InMemoryApplier()

        with caplog.at_level("INFO"):
            first = applier.notify("Enabling integration: pabawi::integrations::bolt")
        second = applier.notify("Enabling integration: pabawi::integrations::bolt")

        assert first.status == OutcomeStatus.CHANGED
        assert second.status == OutcomeStatus.UNCHANGED
        assert "Enabling integration" in caplog.text

    def test_noop_does_not_mutate(self):
        """noop reports would-be changes only."""
        applier = InMemoryApplier()

        outcome = applier.ensure_directory("/etc/pabawi", noop=True)

        assert outcome.status == OutcomeStatus.CHANGED
        assert outcome.message == "would create directory /etc/pabawi"
        assert applier.state.directories == {}
