"""
Protocol and port matching algebra for canonical firewall rules.

Each axis is reduced once to an effective set (inversion flag applied) and
then tested by plain membership, so match_opposite_protocol and
match_opposite_ports compose independently.
"""
import logging
from typing import Optional

from dnsaudit.models.firewall import FirewallRule

logger = logging.getLogger(__name__)

# Sentinel member meaning "every protocol"
ANY_PROTOCOL = "*"
TRANSPORTS = frozenset({"tcp", "udp"})

MIN_PORT = 0
MAX_PORT = 65535


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

def literal_protocols(protocol: Optional[str]) -> frozenset:
    value = (protocol or "").strip().lower()
    if value in ("", "all", "any"):
        return frozenset({ANY_PROTOCOL})
    if value == "tcp_udp":
        return TRANSPORTS
    return frozenset({value})


def effective_protocols(rule: FirewallRule) -> frozenset:
    """Protocol set the rule actually matches after match_opposite_protocol.

    Inversion is taken within {tcp, udp}: "not all" matches nothing and
    "not icmp" matches both transports.
    """
    literal = literal_protocols(rule.protocol)
    if not rule.match_opposite_protocol:
        return literal
    if ANY_PROTOCOL in literal:
        return frozenset()
    return TRANSPORTS - literal


def protocol_includes(rule: FirewallRule, candidate: str) -> bool:
    effective = effective_protocols(rule)
    return ANY_PROTOCOL in effective or candidate.lower() in effective


# ---------------------------------------------------------------------------
# Ports
# ---------------------------------------------------------------------------

def parse_port_ranges(ports: Optional[str]) -> list[tuple[int, int]]:
    """Parse "53", "80,443", "50-100" or "50:100" into inclusive (start, end) pairs.

    Tokens that are not numbers, fall outside 0-65535 or run backwards are skipped.
    """
    ranges: list[tuple[int, int]] = []
    if not ports:
        return ranges
    for token in str(ports).split(","):
        token = token.strip()
        if not token:
            continue
        sep = "-" if "-" in token else (":" if ":" in token else None)
        try:
            if sep:
                start_s, end_s = token.split(sep, 1)
                start, end = int(start_s), int(end_s)
            else:
                start = end = int(token)
        except ValueError:
            logger.debug("Ignoring unparsable port token %r in %r", token, ports)
            continue
        if start > end or start < MIN_PORT or end > MAX_PORT:
            logger.debug("Ignoring out-of-range port token %r in %r", token, ports)
            continue
        ranges.append((start, end))
    return ranges


def port_list_includes(ports: Optional[str], port: int) -> bool:
    return any(start <= port <= end for start, end in parse_port_ranges(ports))


def port_includes(rule: FirewallRule, candidate_port: int) -> bool:
    dest = rule.destination
    # An unresolved port group stands for an empty set the inversion flag cannot widen
    if dest.port_group_unresolved:
        return False
    member = port_list_includes(dest.port, candidate_port)
    return not member if dest.match_opposite_ports else member


def has_explicit_port(rule: FirewallRule) -> bool:
    return bool(rule.destination.port) or rule.destination.port_group_unresolved


def rule_blocks(rule: FirewallRule, protocol: str, port: int) -> bool:
    """Enabled block rule whose effective protocol and port sets both contain the candidate."""
    return rule.is_block and protocol_includes(rule, protocol) and port_includes(rule, port)
