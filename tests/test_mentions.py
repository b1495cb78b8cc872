"""Tests for @mention resolution."""
from __future__ import annotations

from conftest import make_agent

from swarmchat.core.mentions import resolve_mentions

ROSTER = [make_agent("pm", "Product Manager"), make_agent("dev", "Developer")]


def test_explicit_mention_resolves_single_agent() -> None:
    assert resolve_mentions("@dev please review", ROSTER) == ["dev"]


def test_display_name_substring_is_case_insensitive() -> None:
    assert resolve_mentions("@product what is the scope?", ROSTER) == ["pm"]
    assert resolve_mentions("@DEVELOPER ping", ROSTER) == ["dev"]


def test_exact_id_wins_over_earlier_name_match() -> None:
    roster = [make_agent("ops", "Devops Guru"), make_agent("dev", "Developer")]

    assert resolve_mentions("@dev hi", roster) == ["dev"]


def test_duplicates_removed_in_first_occurrence_order() -> None:
    assert resolve_mentions("@dev @pm then @dev again, @Developer", ROSTER) == ["dev", "pm"]


def test_unknown_tokens_are_dropped() -> None:
    assert resolve_mentions("@nobody @dev hello", ROSTER) == ["dev"]
    assert resolve_mentions("@nobody hello", ROSTER) == []


def test_hyphenated_ids() -> None:
    roster = [make_agent("code-expert", "Code Expert")]

    assert resolve_mentions("ask @code-expert about it", roster) == ["code-expert"]


def test_total_for_odd_input() -> None:
    assert resolve_mentions("", ROSTER) == []
    assert resolve_mentions("@", ROSTER) == []
    assert resolve_mentions("@@@ !!", ROSTER) == []
    assert resolve_mentions("mail me at someone@example.com", ROSTER) == []
    assert resolve_mentions(None, ROSTER) == []  # type: ignore[arg-type]
    assert resolve_mentions("@dev", []) == []


def test_resolution_is_idempotent() -> None:
    first = resolve_mentions("@developer and @product please sync, @dev", ROSTER)
    second = resolve_mentions(" ".join(f"@{agent_id}" for agent_id in first), ROSTER)

    assert first == ["dev", "pm"]
    assert second == first
