"""Tests for tag overlay merging."""

from __future__ import annotations

from authcmd.config import ArgPolicy, Policy, Rule
from authcmd.merge import apply_tags, merge_policy


class TestScalarFields:
    """Tests for flags and string settings."""

    def test_overlay_sets_flag(self) -> None:
        merged = merge_policy(Policy(), Policy(show_allowed=True))
        assert merged.show_allowed is True

    def test_overlay_can_set_false(self) -> None:
        merged = merge_policy(Policy(show_denied=True), Policy(show_denied=False))
        assert merged.show_denied is False

    def test_absent_flag_keeps_base(self) -> None:
        merged = merge_policy(Policy(show_denied=True), Policy())
        assert merged.show_denied is True

    def test_empty_string_keeps_base(self) -> None:
        merged = merge_policy(Policy(help_text="base help"), Policy(help_text=""))
        assert merged.help_text == "base help"

    def test_string_overridden(self) -> None:
        merged = merge_policy(Policy(use_shell="/bin/sh"), Policy(use_shell="default"))
        assert merged.use_shell == "default"

    def test_base_not_mutated(self) -> None:
        base = Policy(allowed_commands=[Rule(command="ls")])
        merge_policy(base, Policy(show_denied=True, allowed_commands=[Rule(command="id")]))
        assert base.show_denied is None
        assert base.command_names == ["ls"]


class TestMapFields:
    """Tests for set_env_vars union."""

    def test_union_overlay_wins(self) -> None:
        base = Policy(set_env_vars={"A": "1", "B": "2"})
        merged = merge_policy(base, Policy(set_env_vars={"B": "3", "C": "4"}))
        assert merged.set_env_vars == {"A": "1", "B": "3", "C": "4"}

    def test_empty_base_replaced(self) -> None:
        merged = merge_policy(Policy(), Policy(set_env_vars={"A": "1"}))
        assert merged.set_env_vars == {"A": "1"}


class TestAllowedCommands:
    """Tests for merging the allowed command list."""

    def test_new_command_appended_in_order(self) -> None:
        base = Policy(allowed_commands=[Rule(command="ls")])
        merged = merge_policy(base, Policy(allowed_commands=[Rule(command="id")]))
        assert merged.command_names == ["ls", "id"]

    def test_appended_rule_is_a_copy(self) -> None:
        overlay = Policy(allowed_commands=[Rule(command="id", must_match=["x"])])
        merged = merge_policy(Policy(), overlay)
        merged.allowed_commands[0].must_match.append("y")
        assert overlay.allowed_commands[0].must_match == ["x"]

    def test_existing_command_lists_concatenated(self) -> None:
        base = Policy(
            allowed_commands=[
                Rule(command="ls", args=ArgPolicy(allowed=["a"], forbidden=["f1"]), must_match=["m1"])
            ]
        )
        overlay = Policy(
            allowed_commands=[
                Rule(command="ls", args=ArgPolicy(allowed=["b"], forbidden=["f2"]), must_match=["m2"])
            ]
        )
        rule = merge_policy(base, overlay).allowed_commands[0]
        assert rule.args.forbidden == ["f1", "f2"]
        assert rule.args.allowed == ["a", "b"]
        assert rule.must_match == ["m1", "m2"]

    def test_allowed_does_not_inherit_forbidden(self) -> None:
        base = Policy(allowed_commands=[Rule(command="ls", args=ArgPolicy(forbidden=["f1"]))])
        overlay = Policy(allowed_commands=[Rule(command="ls", args=ArgPolicy(allowed=["a"]))])
        rule = merge_policy(base, overlay).allowed_commands[0]
        assert rule.args.allowed == ["a"]
        assert rule.args.forbidden == ["f1"]

    def test_args_created_when_base_has_none(self) -> None:
        base = Policy(allowed_commands=[Rule(command="ls")])
        overlay = Policy(allowed_commands=[Rule(command="ls", args=ArgPolicy(forbidden=["x"]))])
        rule = merge_policy(base, overlay).allowed_commands[0]
        assert rule.args is not None
        assert rule.args.forbidden == ["x"]
        assert rule.args.allowed == []

    def test_maps_unioned_without_args(self) -> None:
        base = Policy(allowed_commands=[Rule(command="echo", replace={"a": "b"})])
        overlay = Policy(
            allowed_commands=[
                Rule(command="echo", replace={"c": "d"}, set_env_vars={"X": "1"})
            ]
        )
        rule = merge_policy(base, overlay).allowed_commands[0]
        assert rule.replace == {"a": "b", "c": "d"}
        assert rule.set_env_vars == {"X": "1"}
        assert rule.args is None

    def test_matching_is_by_exact_string(self) -> None:
        base = Policy(allowed_commands=[Rule(command="/bin/ls")])
        merged = merge_policy(base, Policy(allowed_commands=[Rule(command="ls")]))
        assert merged.command_names == ["/bin/ls", "ls"]

    def test_double_merge_duplicates_lists(self) -> None:
        base = Policy(allowed_commands=[Rule(command="ls")])
        overlay = Policy(
            show_denied=True,
            allowed_commands=[Rule(command="ls", args=ArgPolicy(forbidden=["x"]))],
        )
        once = merge_policy(base, overlay)
        twice = merge_policy(once, overlay)
        assert twice.show_denied is once.show_denied is True
        assert twice.allowed_commands[0].args.forbidden == ["x", "x"]


class TestApplyTags:
    """Tests for selecting overlays by tag."""

    def test_tags_applied_in_order(self) -> None:
        policy = Policy(
            help_text="base",
            allowed_commands=[Rule(command="ls")],
            key_tags={
                "first": Policy(help_text="first", allowed_commands=[Rule(command="id")]),
                "second": Policy(help_text="second", allowed_commands=[Rule(command="df")]),
            },
        )
        merged = apply_tags(policy, ["second", "first"])
        assert merged.help_text == "first"
        assert merged.command_names == ["ls", "df", "id"]

    def test_unknown_tag_ignored(self) -> None:
        policy = Policy(allowed_commands=[Rule(command="ls")])
        assert apply_tags(policy, ["nope"]).command_names == ["ls"]

    def test_no_tags_returns_policy(self) -> None:
        policy = Policy(allowed_commands=[Rule(command="ls")])
        assert apply_tags(policy, []) is policy
