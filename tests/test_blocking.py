"""Tests for network blocking rules."""

from page_compressor.services.blocking import BlockingPolicy, ToggleState, build_rules
from page_compressor.services.classifier import ResourceClass, ResourceDescriptor

EXEMPT = ["localhost", "127.0.0.1"]


def _classes(rules):
    return [rule.resource_class for rule in rules]


class TestBuildRules:
    def test_disabled_blocks_nothing(self):
        assert build_rules(ToggleState(enabled=False, css_removal_enabled=True), EXEMPT) == ()

    def test_enabled_with_css_removal(self):
        rules = build_rules(ToggleState(enabled=True, css_removal_enabled=True), EXEMPT)
        assert _classes(rules) == [
            ResourceClass.IMAGE,
            ResourceClass.VIDEO,
            ResourceClass.FONT,
            ResourceClass.STYLESHEET,
            ResourceClass.SCRIPT,
        ]

    def test_enabled_without_css_removal_keeps_styles_and_scripts(self):
        rules = build_rules(ToggleState(enabled=True, css_removal_enabled=False), EXEMPT)
        assert _classes(rules) == [ResourceClass.IMAGE, ResourceClass.VIDEO, ResourceClass.FONT]

    def test_every_rule_exempts_own_hosts(self):
        rules = build_rules(ToggleState(enabled=True), ["localhost", "compressor.example"])
        for rule in rules:
            assert rule.is_exempt("localhost")
            assert rule.is_exempt("app.compressor.example")
            assert not rule.is_exempt("example.com")


class TestBlockingPolicy:
    def test_should_block_follows_state(self):
        policy = BlockingPolicy(EXEMPT)
        image = ResourceDescriptor(url="https://cdn.example.com/a.png")
        script = ResourceDescriptor(url="https://cdn.example.com/app.js")

        assert not policy.should_block(image)

        policy.apply(ToggleState(enabled=True, css_removal_enabled=True))
        assert policy.should_block(image)
        assert policy.should_block(script)

        policy.apply(ToggleState(enabled=True, css_removal_enabled=False))
        assert policy.should_block(image)
        assert not policy.should_block(script)

        policy.apply(ToggleState(enabled=False))
        assert not policy.should_block(image)

    def test_exempt_host_not_blocked(self):
        policy = BlockingPolicy(EXEMPT)
        policy.apply(ToggleState(enabled=True))
        assert not policy.should_block(ResourceDescriptor(url="http://localhost:5173/logo.png"))

    def test_apply_swaps_whole_rule_set(self):
        policy = BlockingPolicy(EXEMPT)
        before = policy.rules
        after = policy.apply(ToggleState(enabled=True))
        assert policy.rules is after
        assert before == ()
        assert policy.state == ToggleState(enabled=True)

    def test_match_returns_rule(self):
        policy = BlockingPolicy(EXEMPT)
        policy.apply(ToggleState(enabled=True))
        rule = policy.match(ResourceDescriptor(url="https://example.com/f.woff"))
        assert rule is not None
        assert rule.resource_class == ResourceClass.FONT
