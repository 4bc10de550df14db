"""
Tests for command routing between endpoint families.
"""

from spacemolt_agent.game.commands import EndpointFamily, Route, resolve_route, strip_v2_prefix

DIRECT = frozenset({"v2_get_player", "v2_get_ship"})
ROUTED = frozenset({"storage", "market"})


def test_direct_command_goes_to_family_b():
    """Test direct commands lose their prefix and ignore any action."""
    route = resolve_route("v2_get_ship", {"action": "upgrade"}, DIRECT, ROUTED)

    assert route == Route(EndpointFamily.B, "get_ship")


def test_routed_command_with_action():
    """Test routed commands with a string action get a sub-path."""
    route = resolve_route("storage", {"action": "deposit", "item": "ore"}, DIRECT, ROUTED)

    assert route == Route(EndpointFamily.B, "storage/deposit")


def test_routed_command_without_action_falls_back():
    """Test routed commands without a string action stay on family A."""
    assert resolve_route("storage", None, DIRECT, ROUTED) == Route(EndpointFamily.A, "storage")
    assert resolve_route("storage", {}, DIRECT, ROUTED) == Route(EndpointFamily.A, "storage")
    assert resolve_route("market", {"action": 3}, DIRECT, ROUTED) == Route(EndpointFamily.A, "market")


def test_other_commands_go_to_family_a():
    """Test everything else is a family A command."""
    route = resolve_route("mine", {"action": "deposit"}, DIRECT, ROUTED)

    assert route.family is EndpointFamily.A
    assert route.path == "mine"


def test_strip_v2_prefix():
    """Test the prefix is removed only when present."""
    assert strip_v2_prefix("v2_get_map") == "get_map"
    assert strip_v2_prefix("get_map") == "get_map"
