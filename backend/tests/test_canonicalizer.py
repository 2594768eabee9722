"""Tests for normalizing vendor rule exports into FirewallRule."""
from dnsaudit.models.firewall import ACTION_ALLOW, ACTION_BLOCK, FirewallRule, PortGroup, normalize_action
from dnsaudit.services.canonicalizer import (
    FirewallZoneLookup,
    RuleCanonicalizer,
    canonicalize_rules,
    parse_port_groups,
    parse_zones,
)

_GROUPS = [
    {"_id": "pg-dns", "name": "DNS Ports", "group_type": "port-group", "group_members": ["53", "853"]},
    {"_id": "ag-1", "name": "Servers", "group_type": "address-group", "group_members": ["10.0.0.5"]},
]


def test_normalize_action_synonyms():
    assert normalize_action("DROP") == ACTION_BLOCK
    assert normalize_action("reject") == ACTION_BLOCK
    assert normalize_action("accept") == ACTION_ALLOW
    assert normalize_action("weird") == ACTION_ALLOW
    assert normalize_action(None) == ACTION_ALLOW


def test_parse_policy_reads_source_and_destination():
    policy = {
        "_id": "p1",
        "name": "Block external DNS",
        "action": "BLOCK",
        "protocol": "udp",
        "enabled": True,
        "index": 10000,
        "source": {"matching_target": "network", "network_ids": ["n1"], "zone_id": "z-int"},
        "destination": {"matching_target": "ANY", "port": "53", "zone_id": "z-ext",
                        "ips": ["8.8.8.8"], "match_opposite_ips": True},
    }
    rule = RuleCanonicalizer().parse_policy(policy)
    assert rule.id == "p1"
    assert rule.action == ACTION_BLOCK
    assert rule.source.matching_target == "NETWORK"
    assert rule.source.network_ids == ["n1"]
    assert rule.destination.port == "53"
    assert rule.destination.zone_id == "z-ext"
    assert rule.destination.address == "8.8.8.8"
    assert rule.destination.invert_address is True


def test_policy_port_group_is_flattened():
    canon = RuleCanonicalizer(parse_port_groups(_GROUPS))
    rule = canon.parse_policy({
        "_id": "p2", "action": "block",
        "destination": {"port_matching_type": "OBJECT", "port_group_id": "pg-dns"},
    })
    assert rule.destination.port == "53,853"
    assert rule.destination.port_group_unresolved is False


def test_policy_missing_port_group_is_unresolved():
    rule = RuleCanonicalizer().parse_policy({
        "_id": "p3", "action": "block",
        "destination": {"port_matching_type": "OBJECT", "port_group_id": "gone"},
    })
    assert rule.destination.port is None
    assert rule.destination.port_group_unresolved is True


def test_address_group_is_not_a_port_group():
    canon = RuleCanonicalizer(parse_port_groups(_GROUPS))
    assert canon.resolve_port_group("ag-1") is None


def test_parse_legacy_rule():
    rule = RuleCanonicalizer().parse_legacy_rule({
        "_id": "l1", "name": "Drop DNS", "ruleset": "lan_in", "action": "drop",
        "protocol": "udp", "dst_port": "53", "rule_index": 2000, "src_network_id": "n1",
        "protocol_match_excepted": False,
    })
    assert rule.ruleset == "LAN_IN"
    assert rule.index == 2000
    assert rule.is_block
    assert rule.source.network_ids == ["n1"]
    assert rule.destination.port == "53"


def test_legacy_rule_resolves_port_group_ids():
    canon = RuleCanonicalizer(parse_port_groups(_GROUPS))
    rule = canon.parse_legacy_rule({
        "_id": "l2", "ruleset": "WAN_OUT", "action": "drop", "dst_firewallgroup_ids": ["ag-1", "pg-dns"],
    })
    assert rule.destination.port == "53,853"
    assert not rule.destination.port_group_unresolved


def test_legacy_rule_with_known_address_group_only_is_not_unresolved():
    canon = RuleCanonicalizer(parse_port_groups(_GROUPS))
    rule = canon.parse_legacy_rule({"_id": "l3", "ruleset": "WAN_OUT", "dst_firewallgroup_ids": ["ag-1"]})
    assert rule.destination.port is None
    assert not rule.destination.port_group_unresolved


def test_parse_traffic_rule_keeps_app_rules_only():
    canon = RuleCanonicalizer()
    assert canon.parse_traffic_rule({"matching_target": "DOMAIN", "app_ids": [1]}) is None
    assert canon.parse_traffic_rule({"matching_target": "APP", "app_ids": []}) is None

    rule = canon.parse_traffic_rule({
        "origin_id": "t1", "name": "Block DoT", "matching_target": "APP", "app_ids": [1310917],
        "traffic_rule_action": "BLOCK", "traffic_direction": "to",
        "firewall_rule_details": [{"ruleset": "LANv6_IN"}, {"ruleset": "LAN_IN"}],
    })
    assert rule.id == "t1"
    assert rule.ruleset == "LAN_IN"
    assert rule.traffic_direction == "TO"
    assert rule.destination.app_ids == [1310917]
    assert rule.is_block


def test_canonicalize_rules_routes_by_shape():
    data = {"data": [
        {"_id": "p1", "action": "block", "protocol": "udp", "destination": {"port": "53"}},
        {"_id": "l1", "ruleset": "WAN_OUT", "action": "drop", "dst_port": "853"},
        "not-a-record",
    ]}
    traffic = [{"origin_id": "t1", "matching_target": "APP", "app_ids": [589885], "traffic_rule_action": "BLOCK"}]
    rules = canonicalize_rules(data, _GROUPS, traffic)
    assert [r.id for r in rules] == ["p1", "l1", "t1"]
    assert rules[0].ruleset is None
    assert rules[1].ruleset == "WAN_OUT"


def test_canonicalize_rules_passes_models_through():
    rule = FirewallRule(id="x", action="block")
    groups = [PortGroup(id="pg", members=["53"])]
    assert canonicalize_rules([rule], groups) == [rule]


def test_canonicalize_rules_tolerates_garbage():
    assert canonicalize_rules(None) == []
    assert canonicalize_rules("nope", 42, {"data": "x"}) == []


def test_zone_lookup_external_zone():
    zones = parse_zones([
        {"_id": "z1", "zone_key": "internal", "name": "Internal"},
        {"_id": "z2", "zone_key": "external", "name": "External"},
        {"name": "no id"},
    ])
    lookup = FirewallZoneLookup(zones)
    assert len(lookup) == 2
    assert lookup.external_zone_id() == "z2"
    assert lookup.zone_key_of("z1") == "internal"
    assert lookup.get(None) is None
