"""End-to-end tests for DnsSecurityAnalyzer using a stub third-party probe."""
from unittest.mock import MagicMock, patch

from dnsaudit.adapters.base import ProbeResult
from dnsaudit.adapters.registry import NullProbe
from dnsaudit.core.config import Settings
from dnsaudit.models.issue import SEVERITY_CRITICAL, SEVERITY_INFORMATIONAL, IssueType
from dnsaudit.models.network import SwitchInfo
from dnsaudit.services.analyzer import DnsSecurityAnalyzer

from conftest import StubProbe, make_network

CLOUDFLARE_DOH = "sdns://AgcAAAAAAAAABzEuMC4wLjEAEmRucy5jbG91ZGZsYXJlLmNvbQovZG5zLXF1ZXJ5"


def _make_analyzer(probe=None, **settings):
    return DnsSecurityAnalyzer(probe=probe or StubProbe(), settings=Settings(probe_backend="none", **settings))


def _doh_settings(*names, state="custom"):
    return [{"key": "doh", "state": state, "server_names": list(names or ["cloudflare"])}]


def _policy(id, protocol="udp", port="53", action="BLOCK", source=None, **dest):
    destination = {"matching_target": "PORT" if port else "ANY", **dest}
    if port:
        destination["port"] = port
    return {"_id": id, "name": f"Block {id}", "action": action, "protocol": protocol, "enabled": True,
            "source": source or {"matching_target": "ANY"}, "destination": destination}


def _nat(target, network="net-lan", **dst):
    return {"_id": f"nat-{network}", "type": "DNAT", "enabled": True, "protocol": "udp", "ip_address": target,
            "description": f"DNS {network}", "destination_filter": {"port": "53", **dst},
            "source_filter": {"filter_type": "NETWORK_CONF", "network_conf_id": network}}


def _full_firewall():
    return [
        _policy("dns53"),
        _policy("dot", protocol="tcp_udp", port="853"),
        {"_id": "doh", "name": "Block DoH", "action": "BLOCK", "protocol": "all",
         "destination": {"matching_target": "WEB", "web_domains": ["dns.google", "cloudflare-dns.com"]}},
    ]


def _types(result):
    return result.issue_types()


def _issue(result, issue_type):
    return next(i for i in result.issues if i.type == issue_type)


# ---------------------------------------------------------------------------
# Firewall bypass rules
# ---------------------------------------------------------------------------

def test_udp_53_block_rule_detected():
    assert _make_analyzer().analyze(firewall_data=[_policy("r1")]).has_dns53_block_rule
    assert not _make_analyzer().analyze(firewall_data=[_policy("r1", protocol="tcp")]).has_dns53_block_rule


def test_tcp_udp_853_blocks_dot_and_doq():
    result = _make_analyzer().analyze(firewall_data=[_policy("r1", protocol="tcp_udp", port="853")])
    assert result.has_dot_block_rule
    assert result.has_doq_block_rule


def test_opposite_ports_rule_does_not_block_53():
    result = _make_analyzer().analyze(firewall_data=[_policy("r1", match_opposite_ports=True)])
    assert not result.has_dns53_block_rule


def test_app_traffic_rule_blocks_dot():
    traffic = [{"origin_id": "t1", "name": "Block DoT", "matching_target": "APP", "app_ids": [1310917],
                "traffic_rule_action": "BLOCK", "traffic_direction": "TO"}]
    result = _make_analyzer().analyze(traffic_rules_data=traffic)
    assert result.has_dot_block_rule
    assert result.dot_rule_name == "Block DoT"
    assert result.has_doq_block_rule


def test_external_zone_from_zone_table():
    zones = [{"_id": "z-int", "zone_key": "internal"}, {"_id": "z-ext", "zone_key": "external"}]
    internal = _make_analyzer().analyze(firewall_data=[_policy("r1", zone_id="z-int")], zones=zones)
    external = _make_analyzer().analyze(firewall_data=[_policy("r1", zone_id="z-ext")], zones=zones)
    assert not internal.has_dns53_block_rule
    assert external.has_dns53_block_rule


def test_full_hardening_note_and_no_leak_issues():
    result = _make_analyzer().analyze(settings_data=_doh_settings(), firewall_data=_full_firewall())
    assert result.doh_configured
    assert result.has_doh_block_rule and result.has_doh3_block_rule
    assert result.doh_blocked_domains == ["dns.google", "cloudflare-dns.com"]
    assert result.issues == []
    assert result.hardening_notes == [
        "DNS leak prevention fully configured with DoH and firewall blocking (DNS53, DoT, DoH, DoQ, DoH3)"
    ]


def test_basic_hardening_note():
    result = _make_analyzer().analyze(settings_data=_doh_settings(), firewall_data=[_policy("r1")])
    assert "DoH configured with basic DNS leak prevention (port 53 blocked)" in result.hardening_notes
    assert IssueType.DNS_NO_DOH_BLOCK in _types(result)
    assert IssueType.DNS_NO_DOQ_BLOCK in _types(result)


def test_dns53_partial_coverage(two_networks):
    rule = _policy("r1", source={"matching_target": "NETWORK", "network_ids": ["net-iot"]})
    result = _make_analyzer().analyze(settings_data=_doh_settings(), firewall_data=[rule], networks=two_networks)
    assert result.has_dns53_block_rule
    assert not result.dns53_provides_full_coverage
    issue = _issue(result, IssueType.DNS_53_PARTIAL_COVERAGE)
    assert issue.metadata["uncovered_networks"] == ["LAN"]


# ---------------------------------------------------------------------------
# DoH configuration
# ---------------------------------------------------------------------------

def test_no_doh_no_third_party():
    analyzer = _make_analyzer()
    result = analyzer.analyze()
    assert _types(result) == [
        IssueType.DNS_UNKNOWN_CONFIG,
        IssueType.DNS_NO_DOH,
        IssueType.DNS_NO_53_BLOCK,
        IssueType.DNS_NO_DOT_BLOCK,
    ]
    assert _issue(result, IssueType.DNS_NO_DOH).severity == SEVERITY_CRITICAL
    assert _issue(result, IssueType.DNS_NO_DOH).rule_id == "DNS-DOH-001"

    summary = analyzer.get_summary(result)
    assert summary.issue_count == 4
    assert summary.critical_issue_count == 2
    assert not summary.fully_protected


def test_doh_auto_mode():
    result = _make_analyzer().analyze(settings_data=_doh_settings(state="auto"))
    assert _issue(result, IssueType.DNS_DOH_AUTO).score_impact == 3


def test_isp_dns_without_doh():
    result = _make_analyzer().analyze(settings_data=[{"key": "dns", "mode": "dhcp"}])
    assert result.using_isp_dns
    assert IssueType.DNS_ISP in _types(result)


def test_custom_stamp_servers():
    settings = [{"key": "doh", "state": "custom", "custom_servers": [
        {"server_name": "cf", "sdns_stamp": CLOUDFLARE_DOH, "enabled": True},
        {"server_name": "broken", "sdns_stamp": "sdns://!!"},
    ]}]
    analyzer = _make_analyzer()
    result = analyzer.analyze(settings_data=settings)
    assert [s.server_name for s in result.configured_servers] == ["cf"]
    assert result.configured_servers[0].resolved_provider.name == "Cloudflare"
    assert analyzer.get_summary(result).doh_providers == ["Cloudflare"]
    assert "DoH configured: cf" in result.hardening_notes


# ---------------------------------------------------------------------------
# WAN DNS
# ---------------------------------------------------------------------------

def _gateway_device(*ports, type="udm"):
    return {"data": [{"type": type, "name": "Dream Machine", "port_table": list(ports)}]}


def test_wan_mismatch_from_settings():
    settings = _doh_settings("cloudflare") + [{"key": "dns", "mode": "static", "dns_servers": ["8.8.8.8", "8.8.4.4"]}]
    result = _make_analyzer().analyze(settings_data=settings)
    assert not result.wan_dns_matches_doh
    assert result.expected_dns_provider == "Cloudflare"
    issue = _issue(result, IssueType.DNS_WAN_MISMATCH)
    assert issue.message == "WAN uses 8.8.8.8 (Google), 8.8.4.4 (Google) instead of Cloudflare"
    assert issue.recommended_action == "Set DNS to Cloudflare servers: 1.1.1.1, 1.0.0.1"
    assert issue.metadata["actual_servers"] == ["8.8.8.8 (Google)", "8.8.4.4 (Google)"]


def test_wan_matches_provider():
    device = _gateway_device({"network_name": "wan", "name": "Port 9", "up": True, "dns": ["1.1.1.1", "1.0.0.1"]})
    result = _make_analyzer().analyze(settings_data=_doh_settings("cloudflare"), device_data=device)
    assert result.wan_dns_matches_doh
    assert result.wan_dns_provider == "Cloudflare"
    assert result.wan_interfaces[0].detected_provider == "Cloudflare"
    assert "WAN DNS correctly configured for Cloudflare" in result.hardening_notes


def test_nextdns_order_and_missing_static_dns():
    device = _gateway_device(
        {"network_name": "wan", "name": "Port 9", "ip": "203.0.113.2", "up": True, "dns": ["45.90.30.1", "45.90.28.1"]},
        {"network_name": "wan2", "name": "Port 10", "up": True, "dns": []},
        {"network_name": "lan", "name": "Port 1"},
    )
    result = _make_analyzer().analyze(settings_data=_doh_settings("NextDNS-abc123"), device_data=device)
    assert [w.interface_name for w in result.wan_interfaces] == ["wan", "wan2"]
    assert result.using_isp_dns
    assert not result.wan_dns_matches_doh
    assert not result.wan_dns_order_correct

    order = _issue(result, IssueType.DNS_WAN_ORDER)
    assert order.message == ("WAN (Port 9) DNS in wrong order: 45.90.30.1, 45.90.28.1. "
                             "Should be 45.90.28.1, 45.90.30.1")
    no_static = _issue(result, IssueType.DNS_WAN_NO_STATIC)
    assert no_static.port == "WAN2"
    assert "WAN2 (Port 10)" in no_static.message


# ---------------------------------------------------------------------------
# Device DNS
# ---------------------------------------------------------------------------

def test_device_dns_misconfigured():
    devices = {"data": [
        {"type": "udm", "name": "Gateway", "port_table": []},
        {"type": "usw", "name": "Switch", "ip": "192.168.1.2", "config_network": {"type": "static", "dns1": "8.8.8.8"}},
        {"type": "usw", "name": "Switch 2", "config_network": {"type": "static", "dns1": "192.168.1.1"}},
        {"type": "uap", "mac": "aa:bb:cc:dd:ee:ff", "config_network": {"type": "dhcp"}},
    ]}
    result = _make_analyzer().analyze(device_data=devices, networks=[make_network()])
    assert result.total_devices_checked == 2
    assert result.devices_with_correct_dns == 1
    assert result.dhcp_device_count == 1
    assert not result.device_dns_points_to_gateway
    issue = _issue(result, IssueType.DNS_DEVICE_MISCONFIGURED)
    assert issue.metadata == {"misconfigured_devices": ["Switch"], "expected_gateway": "192.168.1.1"}
    assert issue.message == "1 of 2 infrastructure devices have DNS pointing to non-gateway address"


def test_switch_fallback_device_dns():
    switches = [
        SwitchInfo(name="Gateway", type="udm", is_gateway=True),
        SwitchInfo(name="Core", type="usw", configured_dns1="192.168.1.1", network_config_type="static"),
    ]
    result = _make_analyzer().analyze(switches=switches, networks=[make_network()])
    assert result.gateway_name == "Gateway"
    assert result.device_dns_points_to_gateway
    assert result.devices_with_correct_dns == 1
    assert all(i.device_name == "Gateway" for i in result.issues)


# ---------------------------------------------------------------------------
# Third-party LAN DNS
# ---------------------------------------------------------------------------

def test_pihole_with_dnat_redirect():
    network = make_network(dns_servers=["192.168.1.5"])
    probe = StubProbe({"192.168.1.5": ProbeResult(is_pihole=True)})
    result = _make_analyzer(probe).analyze(networks=[network], nat_rules_data=[_nat("192.168.1.5")])

    assert result.has_third_party_dns
    assert result.third_party_dns_provider_name == "Pi-hole"
    assert result.has_dnat_dns_rules
    assert result.dnat_provides_full_coverage
    assert result.dnat_redirect_target_is_valid
    assert result.dnat_redirect_target == "192.168.1.5"

    types = _types(result)
    assert IssueType.DNS_NO_53_BLOCK not in types
    assert IssueType.DNS_UNKNOWN_CONFIG not in types
    third_party = _issue(result, IssueType.DNS_THIRD_PARTY_DETECTED)
    assert third_party.severity == SEVERITY_INFORMATIONAL
    assert third_party.metadata["is_pihole"] is True
    assert "Pi-hole configured as DNS resolver on 1 network(s)" in result.hardening_notes


def test_unknown_third_party_dnat_redirect():
    network = make_network(dns_servers=["192.168.1.5"])
    result = _make_analyzer().analyze(networks=[network], nat_rules_data=[_nat("192.168.1.5")])
    assert result.third_party_dns_provider_name == "Third-Party LAN DNS"
    assert result.dnat_redirect_target_is_valid
    assert _issue(result, IssueType.DNS_THIRD_PARTY_DETECTED).score_impact == 3


def test_inconsistent_third_party(two_networks):
    networks = [make_network(dns_servers=["192.168.1.5"]), two_networks[1]]
    probe = StubProbe({"192.168.1.5": ProbeResult(is_adguard_home=True)})
    result = _make_analyzer(probe).analyze(networks=networks)
    issue = _issue(result, IssueType.DNS_INCONSISTENT_CONFIG)
    assert issue.metadata["missing_networks"] == ["IoT"]
    assert issue.metadata["provider_name"] == "AdGuard Home"
    assert issue.metadata["doh_configured"] is False


def test_management_port_from_settings():
    probe = StubProbe()
    network = make_network(dns_servers=["192.168.1.5"])
    _make_analyzer(probe, dns_management_port=8443).analyze(networks=[network])
    _make_analyzer(probe, dns_management_port=8443).analyze(networks=[network], custom_dns_management_port=81)
    assert probe.calls == [("192.168.1.5", 8443), ("192.168.1.5", 81)]


# ---------------------------------------------------------------------------
# DNAT
# ---------------------------------------------------------------------------

def test_dnat_restricted_destination():
    result = _make_analyzer().analyze(settings_data=_doh_settings(), networks=[make_network()],
                                      nat_rules_data=[_nat("192.168.1.1", address="8.8.8.8")])
    assert not result.dnat_destination_filter_is_valid
    assert result.restricted_dnat_rules == ["DNS net-lan (destination 8.8.8.8)"]
    assert IssueType.DNS_DNAT_RESTRICTED_DESTINATION in _types(result)
    assert IssueType.DNS_NO_53_BLOCK in _types(result)


def test_dnat_not_validated_without_dns_control():
    result = _make_analyzer().analyze(networks=[make_network()],
                                      nat_rules_data=[_nat("8.8.8.8", address="8.8.8.8")])
    assert result.dnat_destination_filter_is_valid
    assert result.dnat_redirect_target_is_valid
    assert IssueType.DNS_NO_53_BLOCK in _types(result)


def test_dnat_wrong_destination():
    result = _make_analyzer().analyze(settings_data=_doh_settings(), networks=[make_network()],
                                      nat_rules_data=[_nat("8.8.8.8")])
    assert not result.dnat_redirect_target_is_valid
    issue = _issue(result, IssueType.DNS_DNAT_WRONG_DESTINATION)
    assert issue.metadata["expected_destinations"] == ["192.168.1.1"]
    assert IssueType.DNS_NO_53_BLOCK in _types(result)


def test_dnat_partial_coverage(two_networks):
    result = _make_analyzer().analyze(settings_data=_doh_settings(), networks=two_networks,
                                      nat_rules_data={"data": [_nat("192.168.1.1")]})
    assert not result.dnat_provides_full_coverage
    assert result.dnat_uncovered_networks == ["IoT"]
    types = _types(result)
    assert IssueType.DNS_DNAT_PARTIAL_COVERAGE in types
    assert IssueType.DNS_NO_53_BLOCK not in types


def test_dnat_partial_coverage_with_excluded_vlan(two_networks):
    result = _make_analyzer().analyze(settings_data=_doh_settings(), networks=two_networks,
                                      nat_rules_data=[_nat("192.168.1.1")], excluded_vlan_ids=[20])
    assert result.dnat_provides_full_coverage
    assert result.dnat_excluded_networks == ["IoT"]
    assert IssueType.DNS_DNAT_PARTIAL_COVERAGE not in _types(result)


def test_subnet_dnat_on_interface_is_partial_coverage(two_networks):
    nat = {"_id": "n1", "type": "DNAT", "enabled": True, "protocol": "udp", "ip_address": "192.168.1.1",
           "description": "Half LAN", "in_interface": "net-lan", "destination_filter": {"port": "53"},
           "source_filter": {"filter_type": "ADDRESS_AND_PORT", "address": "192.168.1.0/25"}}
    result = _make_analyzer().analyze(settings_data=_doh_settings(), networks=two_networks, nat_rules_data=[nat])
    assert not result.dnat_provides_full_coverage
    assert result.dnat_uncovered_networks == ["LAN", "IoT"]
    assert IssueType.DNS_DNAT_PARTIAL_COVERAGE in _types(result)


def test_single_ip_dnat_source():
    nat = {"_id": "n1", "type": "DNAT", "enabled": True, "protocol": "udp", "ip_address": "192.168.1.1",
           "destination_filter": {"port": "53"},
           "source_filter": {"filter_type": "ADDRESS_AND_PORT", "address": "192.168.1.50"}}
    result = _make_analyzer().analyze(settings_data=_doh_settings(), networks=[make_network()], nat_rules_data=[nat])
    assert result.dnat_single_ip_rules == ["192.168.1.50"]
    assert IssueType.DNS_DNAT_SINGLE_IP in _types(result)


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

def test_default_probe_from_settings():
    analyzer = DnsSecurityAnalyzer(settings=Settings(probe_backend="none"))
    assert isinstance(analyzer._probe, NullProbe)


def test_close_releases_only_the_probe_it_built():
    built = MagicMock()
    with patch("dnsaudit.services.analyzer.get_probe", return_value=built):
        with DnsSecurityAnalyzer(settings=Settings(probe_backend="http")):
            pass
    built.close.assert_called_once_with()

    supplied = MagicMock()
    with DnsSecurityAnalyzer(probe=supplied, settings=Settings(probe_backend="none")):
        pass
    supplied.close.assert_not_called()
