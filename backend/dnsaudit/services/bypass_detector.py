"""
DNS bypass detector.

For each of the five resolver-bypass protocols, find the first enabled rule
(input order) that blocks it toward the WAN.  Every matching DNS-53 rule is
also returned so firewall coverage can be unioned across them.
"""
import logging
from typing import Dict, List, NamedTuple, Optional

from pydantic import BaseModel

from dnsaudit.models.firewall import FirewallRule
from dnsaudit.models.result import ProtocolBlock
from dnsaudit.services.matching import has_explicit_port, port_includes, protocol_includes, rule_blocks

logger = logging.getLogger(__name__)

# Vendor DPI application ids
DNS_APP_ID = 589885
DOT_APP_ID = 1310917  # port 853: DoT over TCP, DoQ over UDP
DOH_APP_ID = 1310919  # port 443: DoH over TCP, DoH3 over UDP
DNS_APP_IDS = frozenset({DNS_APP_ID, DOT_APP_ID, DOH_APP_ID})

DNS53 = "dns53"
DOT = "dot"
DOQ = "doq"
DOH = "doh"
DOH3 = "doh3"

# Substrings marking a web-domain entry as an encrypted-DNS endpoint
DOH_DOMAIN_PATTERNS = (
    "dns", "doh", "cloudflare-dns", "quad9", "nextdns", "adguard", "opendns", "one.one.one",
)


class BypassProtocol(NamedTuple):
    key: str
    port: int
    transport: str
    web_based: bool
    app_id: int


BYPASS_PROTOCOLS: tuple = (
    BypassProtocol(DNS53, 53, "udp", False, DNS_APP_ID),
    BypassProtocol(DOT, 853, "tcp", False, DOT_APP_ID),
    BypassProtocol(DOQ, 853, "udp", False, DOT_APP_ID),
    BypassProtocol(DOH, 443, "tcp", True, DOH_APP_ID),
    BypassProtocol(DOH3, 443, "udp", True, DOH_APP_ID),
)

_INBOUND_RULESETS = {"WAN_IN", "WAN_LOCAL"}


class BypassBlocks(BaseModel):
    blocks: Dict[str, ProtocolBlock] = {}
    dns53_rules: List[FirewallRule] = []

    def has(self, protocol: str) -> bool:
        return protocol in self.blocks

    def rule_name(self, protocol: str) -> Optional[str]:
        block = self.blocks.get(protocol)
        return block.rule_name if block else None

    def domains(self, protocol: str) -> List[str]:
        block = self.blocks.get(protocol)
        return list(block.blocked_domains) if block else []


def is_doh_domain(domain: str) -> bool:
    value = domain.lower()
    return any(p in value for p in DOH_DOMAIN_PATTERNS)


def _ruleset_allows(ruleset: str, protocol: BypassProtocol) -> bool:
    if ruleset == "LAN_IN":
        # Blocking UDP/53 here also cuts clients off from the gateway resolver
        return protocol.key != DNS53
    if ruleset == "GUEST_IN":
        return protocol.key not in (DOT, DOQ)
    return True


def zone_condition(rule: FirewallRule, protocol: BypassProtocol, external_zone_id: Optional[str]) -> bool:
    """Whether the rule sits where it can stop traffic leaving for the WAN.

    traffic_direction FROM marks an inbound app rule and never counts; TO marks
    an outbound one and counts unless its ruleset excludes the protocol.
    """
    if rule.traffic_direction == "FROM":
        return False

    ruleset = (rule.ruleset or "").upper()
    if not _ruleset_allows(ruleset, protocol):
        return False
    if rule.traffic_direction == "TO":
        return True

    zone_id = rule.destination.zone_id
    if zone_id:
        return not external_zone_id or zone_id == external_zone_id
    return ruleset not in _INBOUND_RULESETS


def _app_match(rule: FirewallRule, protocol: BypassProtocol) -> bool:
    if protocol.app_id not in rule.destination.app_ids:
        return False
    if not rule.is_block or not protocol_includes(rule, protocol.transport):
        return False
    # The app id implies its port unless the rule narrows ports explicitly
    return port_includes(rule, protocol.port) if has_explicit_port(rule) else True


def _web_match(rule: FirewallRule, protocol: BypassProtocol) -> bool:
    dest = rule.destination
    if not any(is_doh_domain(d) for d in dest.web_domains):
        return False
    if not rule.is_block or not protocol_includes(rule, protocol.transport):
        return False
    return port_includes(rule, protocol.port) if has_explicit_port(rule) else True


def rule_matches(rule: FirewallRule, protocol: BypassProtocol, external_zone_id: Optional[str] = None) -> bool:
    target = rule.destination.matching_target.upper()
    if target == "APP":
        matched = _app_match(rule, protocol)
    elif protocol.web_based:
        matched = target == "WEB" and _web_match(rule, protocol)
    elif target == "WEB":
        matched = False
    else:
        matched = rule_blocks(rule, protocol.transport, protocol.port)
    return matched and zone_condition(rule, protocol, external_zone_id)


def detect_bypass_blocks(rules: List[FirewallRule], external_zone_id: Optional[str] = None) -> BypassBlocks:
    result = BypassBlocks()
    for rule in rules:
        if not rule.is_block:
            continue
        for protocol in BYPASS_PROTOCOLS:
            if not rule_matches(rule, protocol, external_zone_id):
                continue
            if protocol.key == DNS53:
                result.dns53_rules.append(rule)
            if protocol.key in result.blocks:
                continue
            domains = [d for d in rule.destination.web_domains if is_doh_domain(d)] if protocol.web_based else []
            result.blocks[protocol.key] = ProtocolBlock(
                protocol=protocol.key, rule_id=rule.id, rule_name=rule.name or rule.id, blocked_domains=domains,
            )
            logger.debug("Rule %r blocks %s", rule.name, protocol.key)
    return result
