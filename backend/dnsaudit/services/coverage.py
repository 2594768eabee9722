"""
Network coverage calculator.

Both firewall source selectors and DNAT source filters are reduced to a
SourceScope, then unioned over the network inventory.  VLANs on the
exclusion list are dropped before anything is computed.
"""
import ipaddress
import logging
from typing import Iterable, List, NamedTuple, Optional

from dnsaudit.models.firewall import FirewallRule
from dnsaudit.models.nat import (
    COVERAGE_ANY,
    COVERAGE_INTERFACE,
    COVERAGE_NETWORK,
    COVERAGE_SINGLE_IP,
    COVERAGE_SUBNET,
    DnatRule,
)
from dnsaudit.models.network import NetworkInfo
from dnsaudit.models.result import CoverageResult

logger = logging.getLogger(__name__)


class SourceScope(NamedTuple):
    kind: str
    network_ids: tuple = ()
    match_opposite: bool = False
    cidrs: tuple = ()
    single_ips: tuple = ()
    interface_id: Optional[str] = None
    zone_id: Optional[str] = None


def cidr_covers_subnet(rule_cidr: str, network_subnet: str) -> bool:
    """True when rule_cidr is the same block as network_subnet or a larger aligned one."""
    try:
        rule_net = ipaddress.ip_network(rule_cidr.strip(), strict=False)
        net = ipaddress.ip_network(network_subnet.strip(), strict=False)
    except (ValueError, AttributeError):
        return False
    if rule_net.version != net.version:
        return False
    if rule_net.prefixlen > net.prefixlen:
        return False
    return net.supernet(new_prefix=rule_net.prefixlen).network_address == rule_net.network_address


# ---------------------------------------------------------------------------
# Selector → scope
# ---------------------------------------------------------------------------

def scope_from_dnat(rule: DnatRule) -> SourceScope:
    src = rule.source_filter
    kind = rule.coverage_type
    if kind == COVERAGE_NETWORK:
        return SourceScope(COVERAGE_NETWORK, (src.network_conf_id,), src.match_opposite,
                           interface_id=rule.in_interface)
    if kind == COVERAGE_SUBNET:
        return SourceScope(COVERAGE_SUBNET, cidrs=(src.address,))
    if kind == COVERAGE_SINGLE_IP:
        return SourceScope(COVERAGE_SINGLE_IP, single_ips=(src.address,))
    if kind == COVERAGE_INTERFACE:
        return SourceScope(COVERAGE_INTERFACE, interface_id=rule.in_interface)
    return SourceScope(COVERAGE_ANY)


def scope_from_firewall(rule: FirewallRule) -> SourceScope:
    src = rule.source
    target = src.matching_target.upper()
    if target == "NETWORK" and src.network_ids:
        return SourceScope(COVERAGE_NETWORK, tuple(src.network_ids), src.match_opposite_networks,
                           zone_id=src.zone_id)
    if target == "IP" and src.ips:
        if src.match_opposite_ips:
            # "Everything except these addresses" still reaches every network
            return SourceScope(COVERAGE_ANY, zone_id=src.zone_id)
        cidrs = tuple(ip for ip in src.ips if "/" in ip)
        singles = tuple(ip for ip in src.ips if "/" not in ip)
        return SourceScope(COVERAGE_SUBNET, cidrs=cidrs, single_ips=singles, zone_id=src.zone_id)
    return SourceScope(COVERAGE_ANY, zone_id=src.zone_id)


# ---------------------------------------------------------------------------
# Union
# ---------------------------------------------------------------------------

def _in_zone(network: NetworkInfo, zone_id: Optional[str]) -> bool:
    return not zone_id or not network.firewall_zone_id or network.firewall_zone_id == zone_id


def covered_by(scope: SourceScope, networks: List[NetworkInfo]) -> set[str]:
    covered: set[str] = set()
    if scope.kind == COVERAGE_ANY:
        covered.update(n.id for n in networks if _in_zone(n, scope.zone_id))
    elif scope.kind == COVERAGE_NETWORK:
        listed = {i for i in scope.network_ids if i}
        if scope.match_opposite:
            covered.update(n.id for n in networks if n.id not in listed and _in_zone(n, scope.zone_id))
        else:
            covered.update(listed)
    elif scope.kind == COVERAGE_SUBNET:
        for network in networks:
            if network.subnet and any(cidr_covers_subnet(c, network.subnet) for c in scope.cidrs):
                covered.add(network.id)
    if scope.interface_id:
        covered.add(scope.interface_id)
    return covered


def compute_coverage(
    scopes: Iterable[SourceScope],
    networks: Optional[List[NetworkInfo]],
    excluded_vlan_ids: Optional[Iterable[int]] = None,
) -> CoverageResult:
    excluded = set(excluded_vlan_ids or [])
    all_networks = list(networks or [])
    remaining = [n for n in all_networks if n.vlan_id not in excluded]

    result = CoverageResult(excluded_network_names=[n.name for n in all_networks if n.vlan_id in excluded])

    covered: set[str] = set()
    for scope in scopes:
        covered |= covered_by(scope, remaining)
        result.single_ip_rules.extend(ip for ip in scope.single_ips if ip)

    for network in remaining:
        if network.id in covered:
            result.covered_network_ids.append(network.id)
            result.covered_network_names.append(network.name)
        else:
            result.uncovered_network_ids.append(network.id)
            result.uncovered_network_names.append(network.name)

    logger.debug("Coverage: %d covered, %d uncovered, %d excluded",
                 len(result.covered_network_ids), len(result.uncovered_network_ids),
                 len(result.excluded_network_names))
    return result


def firewall_coverage(
    rules: Iterable[FirewallRule],
    networks: Optional[List[NetworkInfo]],
    excluded_vlan_ids: Optional[Iterable[int]] = None,
) -> CoverageResult:
    return compute_coverage((scope_from_firewall(r) for r in rules), networks, excluded_vlan_ids)
