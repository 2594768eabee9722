"""Tests for settings, logging setup and the probe registry."""
import logging
from unittest.mock import patch

import pytest

from dnsaudit.adapters.http_probe import HttpxDnsProbe
from dnsaudit.adapters.registry import NullProbe, get_probe
from dnsaudit.core.config import Settings
from dnsaudit.core.log import configure_logging


def test_settings_defaults():
    s = Settings(_env_file=None)
    assert s.probe_backend == "http"
    assert s.probe_timeout_seconds == 1.0
    assert s.probe_verify_tls is False
    assert s.dns_management_port is None


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("DNSAUDIT_PROBE_BACKEND", "none")
    monkeypatch.setenv("DNSAUDIT_DNS_MANAGEMENT_PORT", "8443")
    s = Settings(_env_file=None)
    assert s.probe_backend == "none"
    assert s.dns_management_port == 8443


def test_get_probe_http_uses_settings():
    probe = get_probe("http", Settings(_env_file=None, probe_timeout_seconds=2.5, probe_verify_tls=True))
    assert isinstance(probe, HttpxDnsProbe)
    assert probe._timeout == 2.5
    assert probe._verify is True


def test_get_probe_none():
    probe = get_probe("none", Settings(_env_file=None))
    assert isinstance(probe, NullProbe)
    assert not probe.probe("192.168.1.5").detected


def test_get_probe_unknown_raises():
    with pytest.raises(ValueError, match="Unknown probe"):
        get_probe("snmp", Settings(_env_file=None))


def test_configure_logging_applies_level():
    with patch("dnsaudit.core.log.logging.basicConfig") as basic:
        configure_logging(Settings(_env_file=None, log_level="debug"))
    basic.assert_called_once_with(level=logging.DEBUG)
    assert logging.getLogger("httpx").level == logging.WARNING
