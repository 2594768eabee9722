"""
DNS leak analyzer for router configuration snapshots.

DnsSecurityAnalyzer.analyze() takes the raw JSON sections a controller exports
(settings, firewall policies, NAT rules, devices) plus the typed network
inventory, and returns a DnsSecurityResult: per-protocol block findings,
WAN and device DNS checks, third-party resolver detection, DNAT coverage and
an ordered list of AuditIssue entries.  Nothing here raises on bad input;
missing sections read as "nothing configured".
"""
import logging
from typing import Any, Iterable, List, Optional

from dnsaudit.adapters.base import ThirdPartyDnsProbe
from dnsaudit.adapters.registry import get_probe
from dnsaudit.core.config import Settings, get_settings
from dnsaudit.models.dns import (
    GENERIC_THIRD_PARTY_NAME,
    DeviceDnsInfo,
    DnsServerConfig,
    ProviderRecord,
    WanInterfaceDns,
)
from dnsaudit.models.firewall import FirewallRule, FirewallZone
from dnsaudit.models.issue import (
    SEVERITY_CRITICAL,
    SEVERITY_INFORMATIONAL,
    SEVERITY_RECOMMENDED,
    AuditIssue,
    IssueType,
)
from dnsaudit.models.network import NATIVE_VLAN_ID, NetworkInfo, NetworkPurpose, SwitchInfo
from dnsaudit.models.result import DnsSecurityResult, DnsSecuritySummary
from dnsaudit.services.bypass_detector import DNS53, DOH, DOH3, DOQ, DOT, detect_bypass_blocks
from dnsaudit.services.canonicalizer import FirewallZoneLookup, canonicalize_rules, parse_zones
from dnsaudit.services.coverage import firewall_coverage
from dnsaudit.services.dnat import analyze_dnat_coverage, validate_dnat_rules
from dnsaudit.services.providers import (
    NEXTDNS_PRIMARY_PREFIX,
    identify_provider,
    identify_provider_from_ip,
    identify_provider_from_name,
    nextdns_order_correct,
)
from dnsaudit.services.records import get_bool, get_dict, get_str, get_str_list, unwrap_data_array
from dnsaudit.services.stamps import decode_stamp
from dnsaudit.services.third_party import (
    ThirdPartyDnsDetector,
    detect_external_dns,
    is_site_wide,
    networks_missing_third_party,
    provider_name_for,
)

logger = logging.getLogger(__name__)

SETTINGS_KEY_DOH = "doh"
SETTINGS_KEY_DNS = "dns"
SETTINGS_KEY_WAN_DNS = "wan_dns"

GATEWAY_DEVICE_TYPES = {"ugw", "udm", "uxg", "ucg", "udr"}

SUGGESTED_DOH_DOMAINS = "dns.google, cloudflare-dns.com, dns.quad9.net, doh.opendns.com"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _issue(
    type: str,
    severity: str,
    message: str,
    recommended_action: Optional[str] = None,
    rule_id: Optional[str] = None,
    score_impact: int = 0,
    device_name: Optional[str] = None,
    port: Optional[str] = None,
    port_name: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> AuditIssue:
    return AuditIssue(
        type=type,
        severity=severity,
        message=message,
        recommended_action=recommended_action,
        rule_id=rule_id,
        score_impact=score_impact,
        device_name=device_name,
        port=port,
        port_name=port_name,
        metadata=metadata or {},
    )


def _distinct(values: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(values))


def _expected_internal_gateway(networks: List[NetworkInfo], native_vlan_id: int = NATIVE_VLAN_ID) -> Optional[str]:
    management = next((n for n in networks if n.purpose == NetworkPurpose.MANAGEMENT), None)
    if management is None:
        management = next((n for n in networks if n.vlan_id == native_vlan_id), None)
    if management and management.gateway:
        return management.gateway
    return next((n.gateway for n in networks if n.gateway), None)


def _nextdns_sorted(servers: List[str]) -> List[str]:
    return sorted(servers, key=lambda s: 0 if s.startswith(NEXTDNS_PRIMARY_PREFIX) else 1)


class DnsSecurityAnalyzer:

    def __init__(self, probe: Optional[ThirdPartyDnsProbe] = None, settings: Optional[Settings] = None):
        self._settings = settings or get_settings()
        # A probe built here is ours to close; a caller-supplied one is not
        self._owns_probe = probe is None
        self._probe = probe if probe is not None else get_probe(self._settings.probe_backend, self._settings)
        self._detector = ThirdPartyDnsDetector(self._probe, self._settings.probe_max_workers)

    def close(self) -> None:
        if self._owns_probe:
            self._probe.close()

    def __enter__(self) -> "DnsSecurityAnalyzer":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def analyze(
        self,
        settings_data: Any = None,
        firewall_data: Any = None,
        switches: Optional[List[SwitchInfo]] = None,
        networks: Optional[List[NetworkInfo]] = None,
        device_data: Any = None,
        custom_dns_management_port: Optional[int] = None,
        nat_rules_data: Any = None,
        port_groups: Any = None,
        zones: Any = None,
        traffic_rules_data: Any = None,
        external_zone_id: Optional[str] = None,
        excluded_vlan_ids: Optional[List[int]] = None,
        native_vlan_id: int = NATIVE_VLAN_ID,
    ) -> DnsSecurityResult:
        result = DnsSecurityResult()
        inventory = list(networks or [])

        if settings_data is not None:
            self._parse_settings(settings_data, result)
        else:
            logger.warning("No settings data available for DNS security analysis")

        if device_data is not None:
            self._extract_wan_dns(device_data, result)

        if switches:
            gateway = next((s for s in switches if s.is_gateway), None)
            result.gateway_name = gateway.name if gateway else None

        if external_zone_id is None and zones is not None:
            zone_list = zones if all(isinstance(z, FirewallZone) for z in zones or []) else parse_zones(zones)
            external_zone_id = FirewallZoneLookup(zone_list).external_zone_id()

        rules = canonicalize_rules(firewall_data, port_groups, traffic_rules_data)
        if firewall_data is None and traffic_rules_data is None:
            logger.warning("No firewall data available for DNS security analysis")
        self._analyze_firewall(rules, inventory, external_zone_id, excluded_vlan_ids, result)

        if device_data is not None and inventory:
            self._analyze_device_dns(device_data, inventory, native_vlan_id, result)
        elif switches and inventory:
            self._analyze_switch_dns(switches, inventory, native_vlan_id, result)

        if inventory:
            port = custom_dns_management_port or self._settings.dns_management_port
            self._analyze_third_party(inventory, port, result)
            result.external_dns_servers = detect_external_dns(inventory)

        if nat_rules_data is not None:
            self._analyze_dnat(nat_rules_data, inventory, excluded_vlan_ids, native_vlan_id, result)

        self._generate_issues(result)

        logger.debug(
            "DNS security analysis complete: DoH=%s DNS53=%s DoT=%s DoH-block=%s DoQ=%s DoH3=%s DNAT=%s",
            result.doh_state, result.has_dns53_block_rule, result.has_dot_block_rule,
            result.has_doh_block_rule, result.has_doq_block_rule, result.has_doh3_block_rule,
            result.has_dnat_dns_rules,
        )
        return result

    # ------------------------------------------------------------------
    # Settings snapshot
    # ------------------------------------------------------------------

    def _parse_settings(self, settings_data: Any, result: DnsSecurityResult) -> None:
        for record in unwrap_data_array(settings_data):
            key = get_str(record, "key")
            if key == SETTINGS_KEY_DOH:
                self._parse_doh(record, result)
            elif key in (SETTINGS_KEY_DNS, SETTINGS_KEY_WAN_DNS):
                for server in get_str_list(record, "dns_servers"):
                    if server not in result.wan_dns_servers:
                        result.wan_dns_servers.append(server)
                mode = get_str(record, "mode")
                if mode is not None:
                    result.using_isp_dns = mode in ("auto", "dhcp")

    def _parse_doh(self, record: dict, result: DnsSecurityResult) -> None:
        result.doh_state = get_str(record, "state") or "disabled"

        custom = record.get("custom_servers")
        for server in custom if isinstance(custom, list) else []:
            stamp = get_str(server, "sdns_stamp")
            if not stamp:
                continue
            name = get_str(server, "server_name")
            decoded = decode_stamp(stamp)
            if decoded is None:
                logger.warning("Failed to decode SDNS stamp for server %s: %s", name, stamp[:50])
                continue
            result.configured_servers.append(DnsServerConfig(
                server_name=name or decoded.hostname or "Unknown",
                stamp=decoded,
                enabled=get_bool(server, "enabled", True),
                is_custom=True,
            ))
            logger.debug("DoH custom server %s: %s", name, decoded.display_summary())

        for name in get_str_list(record, "server_names"):
            result.configured_servers.append(DnsServerConfig(
                server_name=name, provider=identify_provider_from_name(name), enabled=True,
            ))

        result.doh_configured = any(s.enabled for s in result.configured_servers)

    # ------------------------------------------------------------------
    # WAN DNS from the gateway's port table
    # ------------------------------------------------------------------

    def _extract_wan_dns(self, device_data: Any, result: DnsSecurityResult) -> None:
        gateway = next((d for d in unwrap_data_array(device_data)
                        if (get_str(d, "type") or "").lower() in GATEWAY_DEVICE_TYPES), None)
        if gateway is None:
            logger.debug("No gateway device found for WAN DNS extraction")
            return
        port_table = gateway.get("port_table")
        for port in port_table if isinstance(port_table, list) else []:
            network_name = get_str(port, "network_name")
            if not network_name or not network_name.lower().startswith("wan"):
                continue
            wan = WanInterfaceDns(
                interface_name=network_name,
                port_name=get_str(port, "name"),
                ip_address=get_str(port, "ip"),
                is_up=get_bool(port, "up"),
                dns_servers=get_str_list(port, "dns"),
            )
            logger.info("WAN interface detected: %s (name=%s, up=%s, ip=%s, dns=%s)",
                        wan.interface_name, wan.port_name, wan.is_up, wan.ip_address, wan.dns_servers)
            for server in wan.dns_servers:
                if server not in result.wan_dns_servers:
                    result.wan_dns_servers.append(server)
            if not wan.has_static_dns:
                result.using_isp_dns = True
            result.wan_interfaces.append(wan)

    # ------------------------------------------------------------------
    # Firewall
    # ------------------------------------------------------------------

    def _analyze_firewall(
        self,
        rules: List[FirewallRule],
        networks: List[NetworkInfo],
        external_zone_id: Optional[str],
        excluded_vlan_ids: Optional[List[int]],
        result: DnsSecurityResult,
    ) -> None:
        found = detect_bypass_blocks(rules, external_zone_id)

        result.has_dns53_block_rule = found.has(DNS53)
        result.dns53_rule_name = found.rule_name(DNS53)
        result.has_dot_block_rule = found.has(DOT)
        result.dot_rule_name = found.rule_name(DOT)
        result.has_doq_block_rule = found.has(DOQ)
        result.doq_rule_name = found.rule_name(DOQ)
        result.has_doh_block_rule = found.has(DOH)
        result.doh_rule_name = found.rule_name(DOH)
        result.doh_blocked_domains = found.domains(DOH)
        result.has_doh3_block_rule = found.has(DOH3)
        result.doh3_rule_name = found.rule_name(DOH3)
        result.doh3_blocked_domains = found.domains(DOH3)

        if found.dns53_rules:
            coverage = firewall_coverage(found.dns53_rules, networks, excluded_vlan_ids)
            result.dns53_provides_full_coverage = coverage.has_full_coverage
            result.dns53_covered_networks = coverage.covered_network_names
            result.dns53_uncovered_networks = coverage.uncovered_network_names

    # ------------------------------------------------------------------
    # Infrastructure device DNS
    # ------------------------------------------------------------------

    def _record_device(self, result: DnsSecurityResult, info: DeviceDnsInfo) -> None:
        result.device_dns_details.append(info)
        if info.uses_dhcp:
            result.dhcp_device_count += 1
            return
        result.total_devices_checked += 1
        if info.points_to_gateway:
            result.devices_with_correct_dns += 1

    def _analyze_device_dns(self, device_data: Any, networks: List[NetworkInfo], native_vlan_id: int,
                            result: DnsSecurityResult) -> None:
        expected = _expected_internal_gateway(networks, native_vlan_id)
        if not expected:
            logger.debug("Could not determine expected internal gateway IP for device DNS validation")
            return
        for device in unwrap_data_array(device_data):
            device_type = get_str(device, "type")
            if (device_type or "").lower() in GATEWAY_DEVICE_TYPES:
                continue
            config = get_dict(device, "config_network")
            self._classify_device(
                result, expected,
                name=get_str(device, "name") or get_str(device, "mac") or "Unknown",
                device_type=device_type,
                ip=get_str(device, "ip"),
                dns1=get_str(config, "dns1"),
                config_type=get_str(config, "type"),
            )
        self._finish_device_dns(result, expected)

    def _analyze_switch_dns(self, switches: List[SwitchInfo], networks: List[NetworkInfo], native_vlan_id: int,
                            result: DnsSecurityResult) -> None:
        if not any(s.is_gateway for s in switches):
            logger.debug("No gateway found for device DNS validation")
            return
        expected = _expected_internal_gateway(networks, native_vlan_id)
        if not expected:
            return
        for switch in switches:
            if switch.is_gateway:
                continue
            self._classify_device(
                result, expected,
                name=switch.name,
                device_type=switch.type,
                ip=switch.ip_address,
                dns1=switch.configured_dns1,
                config_type=switch.network_config_type,
            )
        self._finish_device_dns(result, expected)

    def _classify_device(self, result, expected, name, device_type, ip, dns1, config_type) -> None:
        if dns1:
            self._record_device(result, DeviceDnsInfo(
                device_name=name, device_type=device_type or "unknown", device_ip=ip,
                configured_dns=dns1, expected_gateway=expected, points_to_gateway=dns1 == expected,
            ))
        elif not config_type or config_type == "dhcp":
            # DHCP clients get the gateway from the DHCP server
            self._record_device(result, DeviceDnsInfo(
                device_name=name, device_type=device_type or "unknown", device_ip=ip,
                expected_gateway=expected, points_to_gateway=True, uses_dhcp=True,
            ))

    def _finish_device_dns(self, result: DnsSecurityResult, expected: str) -> None:
        result.device_dns_points_to_gateway = result.devices_with_correct_dns == result.total_devices_checked
        logger.debug("Device DNS check: %d static, %d DHCP, %d correct",
                     result.total_devices_checked, result.dhcp_device_count, result.devices_with_correct_dns)
        if result.device_dns_points_to_gateway:
            return
        misconfigured = [d.device_name for d in result.device_dns_details if not d.uses_dhcp and not d.points_to_gateway]
        result.issues.append(_issue(
            IssueType.DNS_DEVICE_MISCONFIGURED, SEVERITY_INFORMATIONAL,
            f"{len(misconfigured)} of {result.total_devices_checked} infrastructure devices have DNS pointing to non-gateway address",
            f"Configure device DNS to point to gateway ({expected})",
            rule_id="DNS-DEVICE-001", score_impact=3,
            metadata={"misconfigured_devices": misconfigured, "expected_gateway": expected},
        ))

    # ------------------------------------------------------------------
    # Third-party LAN DNS
    # ------------------------------------------------------------------

    def _analyze_third_party(self, networks: List[NetworkInfo], port: Optional[int], result: DnsSecurityResult) -> None:
        servers = self._detector.detect(networks, port)
        if not servers:
            return
        result.has_third_party_dns = True
        result.third_party_dns_servers = servers
        result.third_party_dns_provider_name = provider_name_for(servers)
        result.is_third_party_site_wide = is_site_wide(servers)
        logger.info("%s detected on %d network(s)", result.third_party_dns_provider_name,
                    len({s.network_name for s in servers}))

        missing = networks_missing_third_party(networks, servers)
        if not missing:
            return
        provider = result.third_party_dns_provider_name or GENERIC_THIRD_PARTY_NAME
        ips = _distinct(s.dns_server_ip for s in servers)
        configured = _distinct(s.network_name for s in servers)
        missing_names = [n.name for n in missing]
        logger.warning("DNS consistency issue: %s (%s) missing on DHCP networks: %s",
                       provider, ", ".join(ips), ", ".join(missing_names))
        if result.doh_configured:
            message = (f"{provider} is configured on {len(configured)} network(s) but {len(missing_names)} "
                       f"DHCP-enabled network(s) are using gateway DoH instead: {', '.join(missing_names)}.")
            action = (f"Configure all DHCP-enabled networks to use {provider} ({', '.join(ips)}) for consistent "
                      "filtering, or keep gateway DoH for those networks")
        else:
            message = (f"{provider} is configured on {len(configured)} network(s) but {len(missing_names)} "
                       f"DHCP-enabled network(s) are not using it: {', '.join(missing_names)}. "
                       "Devices on these networks can bypass DNS filtering.")
            action = (f"Configure all DHCP-enabled networks to use {provider} ({', '.join(ips)}) for consistent "
                      "DNS filtering, or verify this is intentional")
        result.issues.append(_issue(
            IssueType.DNS_INCONSISTENT_CONFIG, SEVERITY_RECOMMENDED, message, action,
            rule_id="DNS-CONSISTENCY-001", score_impact=5, device_name=result.gateway_name,
            metadata={
                "third_party_dns_ips": ips,
                "configured_networks": configured,
                "missing_networks": missing_names,
                "provider_name": provider,
                "doh_configured": result.doh_configured,
            },
        ))

    # ------------------------------------------------------------------
    # DNAT redirection
    # ------------------------------------------------------------------

    def _analyze_dnat(self, nat_rules_data: Any, networks: List[NetworkInfo], excluded_vlan_ids: Optional[List[int]],
                      native_vlan_id: int, result: DnsSecurityResult) -> None:
        coverage = analyze_dnat_coverage(nat_rules_data, networks, excluded_vlan_ids)
        result.has_dnat_dns_rules = coverage.has_dnat_dns_rules
        result.dnat_excluded_networks = coverage.excluded_network_names
        if not coverage.has_dnat_dns_rules:
            return
        result.dnat_provides_full_coverage = coverage.has_full_coverage
        result.dnat_covered_networks = coverage.covered_network_names
        result.dnat_uncovered_networks = coverage.uncovered_network_names
        result.dnat_single_ip_rules = coverage.single_ip_rules
        result.dnat_redirect_target = coverage.redirect_target_ip

        validation = validate_dnat_rules(
            coverage.rules, networks,
            has_dns_control=result.has_dns_control,
            third_party_ips=_distinct(s.dns_server_ip for s in result.third_party_dns_servers),
            third_party_site_wide=result.is_third_party_site_wide,
            native_vlan_id=native_vlan_id,
        )
        result.dnat_redirect_target_is_valid = validation.redirect_target_is_valid
        result.dnat_destination_filter_is_valid = validation.destination_filter_is_valid
        result.expected_dnat_destinations = validation.expected_destinations
        result.invalid_dnat_rules = validation.invalid_rules
        result.restricted_dnat_rules = validation.restricted_destination_rules

    # ------------------------------------------------------------------
    # WAN DNS validation
    # ------------------------------------------------------------------

    def _expected_provider(self, result: DnsSecurityResult) -> Optional[ProviderRecord]:
        primary = next((s for s in result.configured_servers if s.enabled), None)
        if primary is None:
            return None
        provider = primary.resolved_provider or identify_provider_from_name(primary.server_name)
        if provider is None and primary.stamp and primary.stamp.hostname:
            provider = identify_provider(primary.stamp.hostname)
        if provider is None:
            for ip in result.wan_dns_servers:
                provider = identify_provider_from_ip(ip)
                if provider:
                    logger.info("Identified DoH provider from WAN DNS IP %s: %s", ip, provider.name)
                    break
        return provider

    def _validate_wan_dns(self, result: DnsSecurityResult) -> None:
        if not result.doh_configured or not result.wan_dns_servers:
            return
        expected = self._expected_provider(result)
        if expected is None:
            logger.debug("Could not identify DoH provider for WAN DNS validation")
            return
        result.expected_dns_provider = expected.name

        if not result.wan_interfaces:
            # Settings-only snapshot: treat the configured list as the single WAN
            result.wan_interfaces.append(WanInterfaceDns(interface_name="wan", dns_servers=list(result.wan_dns_servers)))

        correct: list[WanInterfaceDns] = []
        mismatched: list[tuple[WanInterfaceDns, list[str]]] = []
        no_static: list[WanInterfaceDns] = []
        for wan in result.wan_interfaces:
            if not wan.has_static_dns:
                no_static.append(wan)
                continue
            bad: list[str] = []
            for server in wan.dns_servers:
                provider = identify_provider_from_ip(server)
                if provider:
                    wan.detected_provider = wan.detected_provider or provider.name
                    result.wan_dns_provider = result.wan_dns_provider or provider.name
                if provider is None or provider.name != expected.name:
                    bad.append(f"{server} ({provider.name if provider else 'Unknown'})")
            wan.matches_doh = not bad
            if wan.matches_doh:
                if expected.name == "NextDNS" and len(wan.dns_servers) >= 2:
                    wan.order_correct = nextdns_order_correct(wan.dns_servers)
                    if not wan.order_correct:
                        logger.warning("NextDNS WAN DNS servers are in reverse order on %s: %s",
                                       wan.interface_name, wan.dns_servers)
                correct.append(wan)
            else:
                mismatched.append((wan, bad))

        result.wan_dns_matches_doh = bool(correct) and not mismatched and not no_static
        if result.wan_dns_matches_doh:
            result.hardening_notes.append(f"WAN DNS correctly configured for {expected.name}")

        expected_ips = expected.exact_ips[:2]
        for wan, bad in mismatched:
            action = (f"Set DNS to {expected.name} servers: {', '.join(expected_ips)}" if expected_ips
                      else f"Set DNS to {expected.name} servers")
            result.issues.append(_issue(
                IssueType.DNS_WAN_MISMATCH, SEVERITY_RECOMMENDED,
                f"{wan.display_name} uses {', '.join(bad)} instead of {expected.name}",
                action, rule_id="DNS-WAN-001", score_impact=4, device_name=result.gateway_name,
                port=wan.interface_name.upper(), port_name=wan.port_name,
                metadata={
                    "interface": wan.interface_name,
                    "port_name": wan.port_name or "",
                    "expected_provider": expected.name,
                    "expected_ips": list(expected.dns_ips),
                    "actual_servers": bad,
                },
            ))

        for wan in correct:
            if wan.order_correct:
                continue
            fixed = ", ".join(_nextdns_sorted(wan.dns_servers))
            result.issues.append(_issue(
                IssueType.DNS_WAN_ORDER, SEVERITY_RECOMMENDED,
                f"{wan.display_name} DNS in wrong order: {', '.join(wan.dns_servers)}. Should be {fixed}",
                f"Swap DNS order to {fixed}",
                rule_id="DNS-WAN-002", score_impact=2, device_name=result.gateway_name,
                port=wan.interface_name.upper(), port_name=wan.port_name,
                metadata={"interface": wan.interface_name, "port_name": wan.port_name or "",
                          "dns_servers": list(wan.dns_servers)},
            ))

        for wan in no_static:
            result.issues.append(_issue(
                IssueType.DNS_WAN_NO_STATIC, SEVERITY_RECOMMENDED,
                f"WAN interface '{wan.display_name}' has no static DNS configured. "
                "If DoH fails, DNS queries will leak to your ISP's DNS servers.",
                f"Configure static DNS on {wan.display_name} to use {expected.name} servers",
                rule_id="DNS-WAN-003", score_impact=3, device_name=result.gateway_name,
                port=wan.interface_name.upper(), port_name=wan.port_name,
                metadata={"interface": wan.interface_name, "port_name": wan.port_name or "",
                          "ip_address": wan.ip_address or ""},
            ))

    # ------------------------------------------------------------------
    # Issues
    # ------------------------------------------------------------------

    def _generate_issues(self, result: DnsSecurityResult) -> None:
        gw = result.gateway_name

        if not result.doh_configured:
            if result.has_third_party_dns:
                self._third_party_issue(result)
            else:
                result.issues.append(_issue(
                    IssueType.DNS_UNKNOWN_CONFIG, SEVERITY_INFORMATIONAL,
                    "Unable to determine DNS security solution. No DoH configured and no third-party LAN DNS detected.",
                    "Enable encrypted DNS (DoH) on the gateway or deploy a DNS filtering solution like Pi-hole or AdGuard Home",
                    rule_id="DNS-UNKNOWN-001", score_impact=0, device_name=gw,
                ))
                result.issues.append(_issue(
                    IssueType.DNS_NO_DOH, SEVERITY_CRITICAL,
                    "DNS-over-HTTPS (DoH) is not configured. Network traffic uses unencrypted DNS which can be "
                    "monitored or manipulated.",
                    "Enable encrypted DNS (DoH) on the gateway with a trusted provider like NextDNS or Cloudflare",
                    rule_id="DNS-DOH-001", score_impact=12, device_name=gw,
                ))
        elif result.doh_state == "auto":
            result.issues.append(_issue(
                IssueType.DNS_DOH_AUTO, SEVERITY_INFORMATIONAL,
                "DoH is set to 'auto' mode which may fall back to unencrypted DNS. "
                "Consider setting to 'custom' for guaranteed encryption.",
                "Configure DoH with explicit custom servers for guaranteed encryption",
                rule_id="DNS-DOH-002", score_impact=3, device_name=gw,
            ))

        self._validate_wan_dns(result)
        self._leak_issues(result)
        self._dnat_issues(result)
        self._hardening_notes(result)

    def _third_party_issue(self, result: DnsSecurityResult) -> None:
        ips = _distinct(s.dns_server_ip for s in result.third_party_dns_servers)
        names = _distinct(s.network_name for s in result.third_party_dns_servers)
        provider = result.third_party_dns_provider_name or GENERIC_THIRD_PARTY_NAME
        known = result.is_known_third_party
        if known:
            action = ("Verify third-party DNS provides adequate security and filtering. "
                      "Consider enabling DNS firewall rules to prevent bypass.")
        else:
            action = ("If using Pi-hole or AdGuard Home, configure its management port to enable detection. "
                      "Otherwise, consider a known DNS filtering solution or encrypted DNS (DoH) on the gateway.")
        result.issues.append(_issue(
            IssueType.DNS_THIRD_PARTY_DETECTED,
            SEVERITY_INFORMATIONAL if known else SEVERITY_RECOMMENDED,
            f"{provider} detected handling DNS queries. Networks using third-party DNS: {', '.join(names)}. "
            f"DNS server(s): {', '.join(ips)}.",
            action, rule_id="DNS-3RDPARTY-001", score_impact=0 if known else 3, device_name=result.gateway_name,
            metadata={
                "third_party_dns_ips": ips,
                "is_pihole": result.is_pihole_detected,
                "is_known_provider": known,
                "affected_networks": names,
                "provider_name": provider,
            },
        ))
        if known:
            result.hardening_notes.append(f"{provider} configured as DNS resolver on {len(names)} network(s)")

    def _leak_issues(self, result: DnsSecurityResult) -> None:
        gw = result.gateway_name
        dnat_redirects = (
            result.has_dns_control
            and result.has_dnat_dns_rules
            and result.dnat_redirect_target_is_valid
            and result.dnat_destination_filter_is_valid
        )

        if not result.has_dns53_block_rule and not dnat_redirects:
            result.issues.append(_issue(
                IssueType.DNS_NO_53_BLOCK, SEVERITY_CRITICAL,
                "No firewall rule blocks external DNS (port 53). Devices can bypass network DNS settings "
                "and leak queries to untrusted servers.",
                "Create firewall rule: Block outbound UDP port 53 to Internet for all VLANs (except gateway)",
                rule_id="DNS-LEAK-001", score_impact=12, device_name=gw,
            ))
        elif (result.has_dns53_block_rule and not result.dns53_provides_full_coverage
              and not result.dnat_provides_full_coverage):
            result.issues.append(_issue(
                IssueType.DNS_53_PARTIAL_COVERAGE, SEVERITY_RECOMMENDED,
                f"Firewall rule '{result.dns53_rule_name}' blocks external DNS for only some networks. "
                f"Uncovered: {', '.join(result.dns53_uncovered_networks)}.",
                "Extend the port 53 block rule to every network, or add a DNAT redirect for the uncovered networks",
                rule_id="DNS-LEAK-005", score_impact=6, device_name=gw,
                metadata={
                    "covered_networks": list(result.dns53_covered_networks),
                    "uncovered_networks": list(result.dns53_uncovered_networks),
                },
            ))

        if not result.has_dot_block_rule:
            result.issues.append(_issue(
                IssueType.DNS_NO_DOT_BLOCK, SEVERITY_RECOMMENDED,
                "No firewall rule blocks DNS-over-TLS (port 853). Devices can use encrypted DNS that bypasses "
                "your DoH configuration.",
                "Create firewall rule: Block outbound TCP port 853 to Internet for all VLANs",
                rule_id="DNS-LEAK-002", score_impact=6, device_name=gw,
            ))

        if result.doh_configured and not result.has_doh_block_rule:
            result.issues.append(_issue(
                IssueType.DNS_NO_DOH_BLOCK, SEVERITY_RECOMMENDED,
                "No firewall rule blocks public DoH providers. Devices can bypass your DNS filtering by using "
                "their own DoH servers.",
                "Create firewall rule: Block TCP 443 to known DoH provider domains",
                rule_id="DNS-LEAK-003", score_impact=5, device_name=gw,
                metadata={"suggested_domains": SUGGESTED_DOH_DOMAINS},
            ))

        if result.doh_configured and not result.has_doq_block_rule:
            result.issues.append(_issue(
                IssueType.DNS_NO_DOQ_BLOCK, SEVERITY_RECOMMENDED,
                "No firewall rule blocks DNS over QUIC (DoQ). Devices can bypass your DNS filtering using "
                "QUIC-based DNS on UDP port 853.",
                "Create firewall rule: Block outbound UDP port 853 to Internet for all VLANs",
                rule_id="DNS-LEAK-004", score_impact=4, device_name=gw,
            ))

        if result.using_isp_dns and not result.doh_configured:
            result.issues.append(_issue(
                IssueType.DNS_ISP, SEVERITY_INFORMATIONAL,
                "Network is using ISP-provided DNS servers. This may expose browsing history to your ISP and "
                "lacks filtering capabilities.",
                "Configure custom DNS servers or enable DoH with a privacy-focused provider",
                rule_id="DNS-ISP-001", score_impact=4, device_name=gw,
            ))

    def _dnat_issues(self, result: DnsSecurityResult) -> None:
        if not result.has_dnat_dns_rules:
            return
        gw = result.gateway_name
        firewall_full = result.has_dns53_block_rule and result.dns53_provides_full_coverage

        if not result.dnat_provides_full_coverage and not firewall_full:
            result.issues.append(_issue(
                IssueType.DNS_DNAT_PARTIAL_COVERAGE, SEVERITY_RECOMMENDED,
                f"DNS DNAT redirect covers only some networks. Uncovered: {', '.join(result.dnat_uncovered_networks)}.",
                "Add DNAT rules for the uncovered networks, or block outbound port 53 for them",
                rule_id="DNS-DNAT-001", score_impact=4, device_name=gw,
                metadata={
                    "covered_networks": list(result.dnat_covered_networks),
                    "uncovered_networks": list(result.dnat_uncovered_networks),
                    "excluded_networks": list(result.dnat_excluded_networks),
                },
            ))

        if result.dnat_single_ip_rules:
            result.issues.append(_issue(
                IssueType.DNS_DNAT_SINGLE_IP, SEVERITY_INFORMATIONAL,
                f"DNS DNAT rule(s) match a single source address: {', '.join(result.dnat_single_ip_rules)}. "
                "Only that one host is redirected.",
                "Use a network or subnet source so every client on the VLAN is redirected",
                rule_id="DNS-DNAT-002", score_impact=2, device_name=gw,
                metadata={"single_ip_rules": list(result.dnat_single_ip_rules)},
            ))

        if not result.dnat_destination_filter_is_valid:
            result.issues.append(_issue(
                IssueType.DNS_DNAT_RESTRICTED_DESTINATION, SEVERITY_RECOMMENDED,
                "DNS DNAT rule(s) only match traffic already addressed to one destination: "
                f"{', '.join(result.restricted_dnat_rules)}. Queries to any other resolver are not redirected.",
                "Clear the destination address, or invert it so every query not bound for the resolver is redirected",
                rule_id="DNS-DNAT-003", score_impact=4, device_name=gw,
                metadata={"restricted_rules": list(result.restricted_dnat_rules)},
            ))

        if not result.dnat_redirect_target_is_valid:
            result.issues.append(_issue(
                IssueType.DNS_DNAT_WRONG_DESTINATION, SEVERITY_RECOMMENDED,
                f"DNS DNAT rule(s) redirect to an unexpected resolver: {', '.join(result.invalid_dnat_rules)}.",
                f"Redirect DNS to {', '.join(result.expected_dnat_destinations) or 'the gateway'}",
                rule_id="DNS-DNAT-004", score_impact=5, device_name=gw,
                metadata={
                    "invalid_rules": list(result.invalid_dnat_rules),
                    "expected_destinations": list(result.expected_dnat_destinations),
                },
            ))

    def _hardening_notes(self, result: DnsSecurityResult) -> None:
        if not result.doh_configured:
            return
        if (result.has_dns53_block_rule and result.has_dot_block_rule
                and result.has_doh_block_rule and result.has_doq_block_rule):
            protocols = "DNS53, DoT, DoH, DoQ"
            if result.has_doh3_block_rule:
                protocols += ", DoH3"
            result.hardening_notes.append(
                f"DNS leak prevention fully configured with DoH and firewall blocking ({protocols})")
        elif result.has_dns53_block_rule and result.has_dot_block_rule and result.has_doh_block_rule:
            result.hardening_notes.append("DNS leak prevention configured with DoH and firewall blocking (DNS53, DoT, DoH)")
        elif result.has_dns53_block_rule:
            result.hardening_notes.append("DoH configured with basic DNS leak prevention (port 53 blocked)")
        else:
            names = ", ".join(s.server_name for s in result.configured_servers if s.enabled)
            result.hardening_notes.append(f"DoH configured: {names}")

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    def get_summary(self, result: DnsSecurityResult) -> DnsSecuritySummary:
        providers = _distinct(
            (s.resolved_provider.name if s.resolved_provider else s.server_name)
            for s in result.configured_servers if s.enabled
        )
        return DnsSecuritySummary(
            doh_enabled=result.doh_configured,
            doh_providers=providers,
            dns_leak_protection=result.has_dns53_block_rule,
            dot_blocked=result.has_dot_block_rule,
            doh_bypass_blocked=result.has_doh_block_rule,
            doq_bypass_blocked=result.has_doq_block_rule,
            doh3_bypass_blocked=result.has_doh3_block_rule,
            fully_protected=(
                result.doh_configured and result.has_dns53_block_rule and result.has_dot_block_rule
                and result.has_doh_block_rule and result.has_doq_block_rule and result.wan_dns_matches_doh
                and result.device_dns_points_to_gateway
            ),
            issue_count=len(result.issues),
            critical_issue_count=DnsSecuritySummary.count_critical(result.issues),
            wan_dns_servers=list(result.wan_dns_servers),
            wan_dns_matches_doh=result.wan_dns_matches_doh,
            wan_dns_provider=result.wan_dns_provider,
            expected_dns_provider=result.expected_dns_provider,
            device_dns_points_to_gateway=result.device_dns_points_to_gateway,
            total_devices_checked=result.total_devices_checked,
            devices_with_correct_dns=result.devices_with_correct_dns,
            dhcp_device_count=result.dhcp_device_count,
        )
