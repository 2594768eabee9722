"""
Canonical firewall model.

Every vendor representation (zone-based policies, legacy ruleset rules,
app-based traffic rules) is normalized into FirewallRule before any DNS
bypass check looks at it.
"""
from typing import List, Optional

from pydantic import BaseModel, Field

ACTION_ALLOW = "allow"
ACTION_BLOCK = "block"

# Vendor action synonyms
BLOCK_ACTIONS = {"block", "drop", "deny", "reject"}
ALLOW_ACTIONS = {"allow", "accept"}


def normalize_action(raw: Optional[str]) -> str:
    """Map a vendor action string onto allow|block. Unknown actions never block."""
    value = (raw or "").strip().lower()
    if value in BLOCK_ACTIONS:
        return ACTION_BLOCK
    return ACTION_ALLOW


class PortGroup(BaseModel):
    id: str
    name: Optional[str] = None
    group_type: str = "port-group"  # port-group | address-group | ipv6-address-group
    members: List[str] = []


class FirewallZone(BaseModel):
    id: str
    zone_key: Optional[str] = None  # internal | external | dmz | hotspot | vpn | gateway
    name: Optional[str] = None


class SourceSelector(BaseModel):
    matching_target: str = "ANY"  # ANY | NETWORK | IP
    network_ids: List[str] = []
    ips: List[str] = []
    match_opposite_networks: bool = False
    match_opposite_ips: bool = False
    zone_id: Optional[str] = None


class DestinationSelector(BaseModel):
    matching_target: str = "ANY"  # ANY | PORT | WEB | APP | IP | NETWORK
    port: Optional[str] = None
    port_group_id: Optional[str] = None
    # Set when port_group_id could not be resolved; the rule then matches no port.
    port_group_unresolved: bool = False
    match_opposite_ports: bool = False
    web_domains: List[str] = []
    app_ids: List[int] = []
    app_category_ids: List[int] = []
    zone_id: Optional[str] = None
    address: Optional[str] = None
    invert_address: bool = False


class FirewallRule(BaseModel):
    id: str
    name: str = ""
    enabled: bool = True
    action: str = ACTION_ALLOW
    protocol: str = "all"
    match_opposite_protocol: bool = False
    index: int = 0
    predefined: bool = False
    source: SourceSelector = Field(default_factory=SourceSelector)
    destination: DestinationSelector = Field(default_factory=DestinationSelector)
    # Legacy ruleset tag (LAN_IN, WAN_OUT, GUEST_IN, ...); None for zone-based policies
    ruleset: Optional[str] = None
    # App-based traffic rules: TO = outbound to external, FROM = inbound
    traffic_direction: Optional[str] = None

    @property
    def is_block(self) -> bool:
        return self.enabled and self.action == ACTION_BLOCK
