"""
Tests for attributes and exported outputs.
"""

import pytest

from webstack.core.outputs import Attribute, OutputExporter
from webstack.errors import UnresolvedAttributeError


class TestAttribute:
    """Tests for post-realization attributes."""

    def test_unresolved_get_raises(self):
        """Reading an attribute before realization raises."""
        ip = Attribute("web_server", "public_ip")

        assert not ip.is_resolved
        with pytest.raises(UnresolvedAttributeError, match="web_server.public_ip"):
            ip.get()

    def test_resolve(self):
        """A resolved attribute returns its value."""
        ip = Attribute("web_server", "public_ip")
        ip.resolve("203.0.113.10")

        assert ip.is_resolved
        assert ip.get() == "203.0.113.10"
        assert ip() == "203.0.113.10"

    def test_resolve_to_none_rejected(self):
        """Resolving to nothing is an error."""
        with pytest.raises(UnresolvedAttributeError):
            Attribute("web_server", "public_ip").resolve(None)


class TestOutputExporter:
    """Tests for OutputExporter."""

    def test_export_before_realization_raises(self, instance):
        """Exporting an unresolved address fails."""
        outputs = OutputExporter()

        with pytest.raises(UnresolvedAttributeError):
            outputs.export_value("IP Address", instance.public_ip)

    def test_export_after_realization(self, instance):
        """Once resolved, the exported value is the address."""
        outputs = OutputExporter()
        instance.public_ip.resolve("203.0.113.10")

        assert outputs.export_value("IP Address", instance.public_ip) == "203.0.113.10"
        assert outputs.values == {"IP Address": "203.0.113.10"}

    def test_declare_then_resolve(self, instance):
        """Declared outputs resolve later, after realization."""
        outputs = OutputExporter()
        outputs.declare("IP Address", instance.public_ip)
        assert "IP Address" in outputs
        assert outputs.values == {}

        instance.public_ip.resolve("198.51.100.7")

        assert outputs.resolve_all() == {"IP Address": "198.51.100.7"}

    def test_last_write_wins(self):
        """Re-exporting a name replaces the earlier value."""
        outputs = OutputExporter()
        outputs.export_value("endpoint", lambda: "first")
        outputs.export_value("endpoint", lambda: "second")

        assert len(outputs) == 1
        assert outputs.resolve("endpoint") == "second"

    def test_redeclare_clears_value(self):
        """A redeclared output drops the value resolved for the old resolver."""
        outputs = OutputExporter()
        outputs.export_value("endpoint", lambda: "first")
        outputs.declare("endpoint", lambda: "second")

        assert outputs.values == {}

    def test_failed_reexport_keeps_previous(self, make_instance):
        """An export that cannot resolve leaves the earlier export in place."""
        outputs = OutputExporter()
        first = make_instance("first")
        first.public_ip.resolve("203.0.113.10")
        outputs.export_value("IP Address", first.public_ip)

        with pytest.raises(UnresolvedAttributeError):
            outputs.export_value("IP Address", make_instance("second").public_ip)

        assert outputs.values == {"IP Address": "203.0.113.10"}
        assert outputs.declared() == {"IP Address": first.public_ip}
        assert outputs.resolve("IP Address") == "203.0.113.10"

    def test_unknown_output(self):
        """Resolving an undeclared name raises KeyError."""
        with pytest.raises(KeyError):
            OutputExporter().resolve("missing")

    def test_callable_returning_none(self):
        """A resolver that yields nothing is unresolved."""
        outputs = OutputExporter()
        outputs.declare("empty", lambda: None)

        with pytest.raises(UnresolvedAttributeError):
            outputs.resolve("empty")
