"""
DNAT DNS-redirect analysis.

A NAT entry is a DNS redirect when it is an enabled DNAT rule over UDP whose
destination port set contains 53.  Coverage uses the shared calculator;
validation checks destination-filter restrictiveness and that every redirect
target address is an expected resolver.
"""
import ipaddress
import logging
import uuid
from typing import Any, Iterable, List, Optional

from dnsaudit.models.nat import DnatDestinationFilter, DnatRule, DnatSourceFilter
from dnsaudit.models.network import NATIVE_VLAN_ID, NetworkInfo
from dnsaudit.models.result import DnatCoverageResult, DnatValidation
from dnsaudit.services.coverage import compute_coverage, scope_from_dnat
from dnsaudit.services.matching import port_list_includes
from dnsaudit.services.records import get_bool, get_dict, get_str, unwrap_data_array

logger = logging.getLogger(__name__)

DNS_PORT = 53
_UDP_PROTOCOLS = {"udp", "tcp_udp", "all"}

# Redirect-target ranges are only expanded inside one subnet of this size
_RANGE_PREFIX_V4 = 24
_RANGE_PREFIX_V6 = 64
_MAX_RANGE_MEMBERS = 256


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def is_dns_redirect(record: dict) -> bool:
    if (get_str(record, "type") or "").upper() != "DNAT":
        return False
    if not get_bool(record, "enabled"):
        return False
    if (get_str(record, "protocol") or "").lower() not in _UDP_PROTOCOLS:
        return False
    return port_list_includes(get_str(get_dict(record, "destination_filter"), "port"), DNS_PORT)


def parse_dnat_rule(record: dict) -> DnatRule:
    dst = get_dict(record, "destination_filter")
    src = get_dict(record, "source_filter")
    return DnatRule(
        id=get_str(record, "_id") or str(uuid.uuid4()),
        description=get_str(record, "description"),
        enabled=get_bool(record, "enabled"),
        protocol=get_str(record, "protocol"),
        ip_address=get_str(record, "ip_address"),
        destination_filter=DnatDestinationFilter(
            filter_type=get_str(dst, "filter_type"),
            address=get_str(dst, "address"),
            invert_address=get_bool(dst, "invert_address"),
            port=get_str(dst, "port"),
        ),
        source_filter=DnatSourceFilter(
            filter_type=(get_str(src, "filter_type") or "NONE").upper(),
            network_conf_id=get_str(src, "network_conf_id"),
            address=get_str(src, "address"),
            match_opposite=get_bool(src, "match_opposite"),
        ),
        in_interface=get_str(record, "in_interface"),
    )


def parse_dnat_dns_rules(nat_rules_data: Any) -> List[DnatRule]:
    rules = [parse_dnat_rule(r) for r in unwrap_data_array(nat_rules_data) if is_dns_redirect(r)]
    logger.debug("Found %d DNAT DNS redirect rules", len(rules))
    return rules


def _same_subnet(start, end) -> bool:
    prefix = _RANGE_PREFIX_V4 if start.version == 4 else _RANGE_PREFIX_V6
    return ipaddress.ip_network(f"{start}/{prefix}", strict=False) == \
        ipaddress.ip_network(f"{end}/{prefix}", strict=False)


def parse_ip_range(value: Optional[str]) -> List[str]:
    """Expand "a-b" into every address from a to b inclusive.

    A single address comes back as a one-element list.  Reversed ranges,
    ranges whose ends sit in different subnets (/24 for IPv4, /64 for IPv6),
    ranges longer than _MAX_RANGE_MEMBERS and anything unparsable come back
    as the literal string in a one-element list.
    """
    if not value:
        return []
    text = value.strip()
    if "-" not in text:
        return [text]
    start_s, end_s = (p.strip() for p in text.split("-", 1))
    try:
        start = ipaddress.ip_address(start_s)
        end = ipaddress.ip_address(end_s)
    except ValueError:
        return [text]
    if start.version != end.version or int(start) > int(end):
        return [text]
    if not _same_subnet(start, end) or int(end) - int(start) >= _MAX_RANGE_MEMBERS:
        logger.debug("Not expanding DNAT target range %s", text)
        return [text]
    address_cls = type(start)
    return [str(address_cls(i)) for i in range(int(start), int(end) + 1)]


# ---------------------------------------------------------------------------
# Coverage
# ---------------------------------------------------------------------------

def analyze_dnat_coverage(
    nat_rules_data: Any,
    networks: Optional[List[NetworkInfo]],
    excluded_vlan_ids: Optional[Iterable[int]] = None,
) -> DnatCoverageResult:
    rules = parse_dnat_dns_rules(nat_rules_data)
    coverage = compute_coverage((scope_from_dnat(r) for r in rules), networks, excluded_vlan_ids)
    result = DnatCoverageResult(**coverage.model_dump())
    result.rules = rules
    result.has_dnat_dns_rules = bool(rules)
    if rules:
        result.redirect_target_ip = rules[0].ip_address
    return result


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _rule_network(rule: DnatRule, networks: List[NetworkInfo]) -> Optional[NetworkInfo]:
    network_id = rule.source_filter.network_conf_id or rule.in_interface
    if not network_id:
        return None
    return next((n for n in networks if n.id == network_id), None)


def expected_destinations(
    rule: DnatRule,
    networks: List[NetworkInfo],
    third_party_ips: Iterable[str] = (),
    third_party_site_wide: bool = False,
    native_vlan_id: int = NATIVE_VLAN_ID,
) -> List[str]:
    """Addresses that legitimately answer DNS for the rule's source network."""
    if third_party_site_wide:
        return sorted(set(third_party_ips))
    expected: list[str] = []
    own = _rule_network(rule, networks)
    if own and own.gateway:
        expected.append(own.gateway)
    native = next((n for n in networks if n.vlan_id == native_vlan_id and n.gateway), None)
    if native and native.gateway not in expected:
        expected.append(native.gateway)
    if not own:
        # Source not tied to one network: any gateway on the inventory is the resolver for someone
        expected.extend(n.gateway for n in networks if n.gateway and n.gateway not in expected)
    return expected


def validate_dnat_rules(
    rules: List[DnatRule],
    networks: Optional[List[NetworkInfo]],
    has_dns_control: bool,
    third_party_ips: Iterable[str] = (),
    third_party_site_wide: bool = False,
    native_vlan_id: int = NATIVE_VLAN_ID,
) -> DnatValidation:
    result = DnatValidation()
    # Without DoH or a LAN resolver there is no known-good target to compare against
    if not rules or not has_dns_control:
        return result

    inventory = list(networks or [])
    third_party = list(third_party_ips)
    all_expected: list[str] = []

    for rule in rules:
        if rule.has_restricted_destination:
            result.destination_filter_is_valid = False
            result.restricted_destination_rules.append(
                f"{rule.label} (destination {rule.destination_filter.address})")

        expected = expected_destinations(rule, inventory, third_party, third_party_site_wide, native_vlan_id)
        for ip in expected:
            if ip not in all_expected:
                all_expected.append(ip)

        targets = parse_ip_range(rule.ip_address)
        if not targets or any(t not in expected for t in targets):
            result.redirect_target_is_valid = False
            result.invalid_rules.append(f"{rule.label} (redirects to {rule.ip_address or 'nothing'})")
            logger.debug("DNAT rule %s redirects to %s, expected one of %s", rule.label, rule.ip_address, expected)

    result.expected_destinations = all_expected
    return result
