"""
Firewall rule canonicalizer.

Turns the three raw rule shapes a controller can export into FirewallRule:

  * zone-based policies   {_id, action, protocol, source{...}, destination{...}}
  * legacy ruleset rules  {_id|rule_id, ruleset, dst_port, dst_firewallgroup_ids, ...}
  * app traffic rules     {origin_id, matching_target: "APP", app_ids, traffic_rule_action, ...}

Port-group references are expanded here.  A group that cannot be resolved
marks the destination as port_group_unresolved so the rule matches no port.
Parsing never raises on vendor data.
"""
import logging
import uuid
from typing import Any, Optional

from dnsaudit.models.firewall import (
    DestinationSelector,
    FirewallRule,
    FirewallZone,
    PortGroup,
    SourceSelector,
    normalize_action,
)
from dnsaudit.services.records import (
    get_bool,
    get_dict,
    get_int,
    get_int_list,
    get_str,
    get_str_list,
    unwrap_data_array,
)

logger = logging.getLogger(__name__)

PORT_GROUP_TYPE = "port-group"
EXTERNAL_ZONE_KEY = "external"


# ---------------------------------------------------------------------------
# Lookup tables
# ---------------------------------------------------------------------------

def parse_port_groups(groups_data: Any) -> list[PortGroup]:
    groups: list[PortGroup] = []
    for record in unwrap_data_array(groups_data):
        group_id = get_str(record, "_id")
        if not group_id:
            continue
        groups.append(PortGroup(
            id=group_id,
            name=get_str(record, "name"),
            group_type=get_str(record, "group_type") or PORT_GROUP_TYPE,
            members=get_str_list(record, "group_members"),
        ))
    return groups


def parse_zones(zones_data: Any) -> list[FirewallZone]:
    zones: list[FirewallZone] = []
    for record in unwrap_data_array(zones_data):
        zone_id = get_str(record, "_id")
        if not zone_id:
            continue
        zones.append(FirewallZone(id=zone_id, zone_key=get_str(record, "zone_key"), name=get_str(record, "name")))
    return zones


class FirewallZoneLookup:
    """Zone table indexed by id and by symbolic zone_key."""

    def __init__(self, zones: Optional[list[FirewallZone]] = None):
        self._by_id: dict[str, FirewallZone] = {}
        self._by_key: dict[str, FirewallZone] = {}
        for zone in zones or []:
            self._by_id[zone.id] = zone
            if zone.zone_key:
                self._by_key.setdefault(zone.zone_key.lower(), zone)

    def __len__(self) -> int:
        return len(self._by_id)

    def get(self, zone_id: Optional[str]) -> Optional[FirewallZone]:
        return self._by_id.get(zone_id) if zone_id else None

    def by_key(self, zone_key: str) -> Optional[FirewallZone]:
        return self._by_key.get(zone_key.lower())

    def external_zone_id(self) -> Optional[str]:
        zone = self.by_key(EXTERNAL_ZONE_KEY)
        return zone.id if zone else None

    def zone_key_of(self, zone_id: Optional[str]) -> Optional[str]:
        zone = self.get(zone_id)
        return zone.zone_key if zone else None


class RuleCanonicalizer:

    def __init__(self, port_groups: Optional[list[PortGroup]] = None):
        self._port_groups: dict[str, PortGroup] = {g.id: g for g in port_groups or []}

    # ------------------------------------------------------------------
    # Port groups
    # ------------------------------------------------------------------

    def resolve_port_group(self, group_id: str) -> Optional[str]:
        """Comma-joined members of a port group, or None when missing, mistyped or empty."""
        group = self._port_groups.get(group_id)
        if group is None:
            logger.debug("Port group %s not found in %d loaded groups", group_id, len(self._port_groups))
            return None
        if group.group_type != PORT_GROUP_TYPE:
            logger.warning("Group %s (%s) is type %r, expected %s",
                           group_id, group.name, group.group_type, PORT_GROUP_TYPE)
            return None
        if not group.members:
            return None
        return ",".join(group.members)

    # ------------------------------------------------------------------
    # Zone-based policies
    # ------------------------------------------------------------------

    def parse_policy(self, policy: dict) -> Optional[FirewallRule]:
        if not isinstance(policy, dict):
            return None
        rule_id = get_str(policy, "_id") or str(uuid.uuid4())
        name = get_str(policy, "name") or ""

        src = get_dict(policy, "source")
        source = SourceSelector(
            matching_target=(get_str(src, "matching_target") or "ANY").upper(),
            network_ids=get_str_list(src, "network_ids"),
            ips=get_str_list(src, "ips"),
            match_opposite_networks=get_bool(src, "match_opposite_networks"),
            match_opposite_ips=get_bool(src, "match_opposite_ips"),
            zone_id=get_str(src, "zone_id"),
        )

        dst = get_dict(policy, "destination")
        port = get_str(dst, "port")
        port_group_id = get_str(dst, "port_group_id")
        unresolved = False
        if get_str(dst, "port_matching_type") == "OBJECT" and port_group_id:
            resolved = self.resolve_port_group(port_group_id)
            if resolved:
                port = resolved
                logger.debug("Flattened destination port group %s to %r for rule %s", port_group_id, resolved, name)
            else:
                logger.warning("Failed to resolve destination port group %s for rule %s", port_group_id, name)
                port = None
                unresolved = True

        ips = get_str_list(dst, "ips")
        destination = DestinationSelector(
            matching_target=(get_str(dst, "matching_target") or "ANY").upper(),
            port=port,
            port_group_id=port_group_id,
            port_group_unresolved=unresolved,
            match_opposite_ports=get_bool(dst, "match_opposite_ports"),
            web_domains=get_str_list(dst, "web_domains"),
            app_ids=get_int_list(dst, "app_ids"),
            app_category_ids=get_int_list(dst, "app_category_ids"),
            zone_id=get_str(dst, "zone_id"),
            address=",".join(ips) if ips else None,
            invert_address=get_bool(dst, "match_opposite_ips"),
        )

        return FirewallRule(
            id=rule_id,
            name=name,
            enabled=get_bool(policy, "enabled", True),
            action=normalize_action(get_str(policy, "action")),
            protocol=get_str(policy, "protocol") or "all",
            match_opposite_protocol=get_bool(policy, "match_opposite_protocol"),
            index=get_int(policy, "index"),
            predefined=get_bool(policy, "predefined"),
            source=source,
            destination=destination,
        )

    def parse_policies(self, policies_data: Any) -> list[FirewallRule]:
        rules = [r for r in (self.parse_policy(p) for p in unwrap_data_array(policies_data)) if r]
        logger.info("Extracted %d firewall rules from policies", len(rules))
        return rules

    # ------------------------------------------------------------------
    # Legacy ruleset rules
    # ------------------------------------------------------------------

    def parse_legacy_rule(self, record: dict) -> Optional[FirewallRule]:
        if not isinstance(record, dict):
            return None
        rule_id = get_str(record, "_id") or get_str(record, "rule_id") or str(uuid.uuid4())
        name = get_str(record, "name") or ""

        port = get_str(record, "dst_port")
        unresolved = False
        group_ids = get_str_list(record, "dst_firewallgroup_ids")
        if not port and group_ids:
            resolved = [p for p in (self.resolve_port_group(g) for g in group_ids) if p]
            if resolved:
                port = ",".join(resolved)
                logger.debug("Resolved legacy rule %s destination ports from groups: %s", name, port)
            else:
                # Address groups also live in dst_firewallgroup_ids; only flag when no port was found
                unresolved = any(g not in self._port_groups for g in group_ids)

        network_ids = get_str_list(get_dict(record, "source"), "network_ids")
        if not network_ids:
            src_network = get_str(record, "src_network_id")
            if src_network:
                network_ids = [src_network]

        return FirewallRule(
            id=rule_id,
            name=name,
            enabled=get_bool(record, "enabled", True),
            action=normalize_action(get_str(record, "action")),
            protocol=get_str(record, "protocol") or "all",
            match_opposite_protocol=get_bool(record, "protocol_match_excepted"),
            index=get_int(record, "rule_index"),
            source=SourceSelector(
                matching_target="NETWORK" if network_ids else "ANY",
                network_ids=network_ids,
            ),
            destination=DestinationSelector(
                matching_target="PORT" if port else "ANY",
                port=port,
                port_group_unresolved=unresolved,
                web_domains=get_str_list(get_dict(record, "destination"), "web_domains"),
                address=get_str(record, "dst_address"),
            ),
            ruleset=(get_str(record, "ruleset") or "").upper() or None,
        )

    def parse_legacy_rules(self, rules_data: Any) -> list[FirewallRule]:
        rules = [r for r in (self.parse_legacy_rule(x) for x in unwrap_data_array(rules_data)) if r]
        logger.info("Extracted %d legacy firewall rules", len(rules))
        return rules

    # ------------------------------------------------------------------
    # App-based traffic rules
    # ------------------------------------------------------------------

    def parse_traffic_rule(self, record: dict) -> Optional[FirewallRule]:
        """Only APP rules with app ids are kept; domain and device rules are skipped."""
        if get_str(record, "matching_target") != "APP":
            return None
        app_ids = get_int_list(record, "app_ids")
        if not app_ids:
            return None

        ruleset: Optional[str] = None
        details = record.get("firewall_rule_details")
        for detail in details if isinstance(details, list) else []:
            candidate = get_str(detail, "ruleset")
            if not candidate:
                continue
            if "v6" not in candidate.lower():
                ruleset = candidate
                break
            ruleset = ruleset or candidate

        direction = (get_str(record, "traffic_direction") or "").upper() or None
        name = get_str(record, "name") or ""
        logger.debug("App rule %r direction=%s ruleset=%s", name, direction, ruleset)

        return FirewallRule(
            id=get_str(record, "origin_id") or str(uuid.uuid4()),
            name=name,
            enabled=get_bool(record, "enabled", True),
            action=normalize_action(get_str(record, "traffic_rule_action")),
            # No protocol field on these records: the app block applies to every transport
            protocol="all",
            destination=DestinationSelector(matching_target="APP", app_ids=app_ids),
            ruleset=ruleset.upper() if ruleset else None,
            traffic_direction=direction,
        )

    def parse_traffic_rules(self, rules_data: Any) -> list[FirewallRule]:
        rules = [r for r in (self.parse_traffic_rule(x) for x in unwrap_data_array(rules_data)) if r]
        logger.debug("Extracted %d app-based traffic rules", len(rules))
        return rules


def canonicalize_rules(
    firewall_data: Any = None,
    port_groups: Any = None,
    traffic_rules_data: Any = None,
) -> list[FirewallRule]:
    """Canonicalize a mixed rule export.

    Each record is routed by shape: a "ruleset" key marks a legacy rule, anything
    else is read as a zone-based policy.  Already-canonical rules pass through.
    port_groups may be PortGroup models or raw group records.
    """
    groups = port_groups if _is_model_list(port_groups, PortGroup) else parse_port_groups(port_groups)
    canonicalizer = RuleCanonicalizer(groups)

    rules: list[FirewallRule] = []
    if isinstance(firewall_data, list) and firewall_data and all(isinstance(r, FirewallRule) for r in firewall_data):
        rules.extend(firewall_data)
    else:
        for record in unwrap_data_array(firewall_data):
            if "ruleset" in record or "rule_index" in record:
                parsed = canonicalizer.parse_legacy_rule(record)
            else:
                parsed = canonicalizer.parse_policy(record)
            if parsed:
                rules.append(parsed)
    rules.extend(canonicalizer.parse_traffic_rules(traffic_rules_data))
    return rules


def _is_model_list(value: Any, model: type) -> bool:
    return isinstance(value, list) and bool(value) and all(isinstance(v, model) for v in value)
