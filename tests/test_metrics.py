"""Tests for the per-member activity metrics."""

from datetime import timedelta

from conftest import NOW, YESTERDAY, make_message
from friendle.bot.services.metrics import active_window
from friendle.bot.services.metrics import build_metrics_map
from friendle.bot.services.metrics import build_name_map
from friendle.bot.services.metrics import summarize_member
from friendle.bot.services.models import Sample


class TestMetricsMap:
    def test_one_entry_per_snapshot_member(self, members):
        sample = Sample(
            messages=[make_message("1", YESTERDAY + timedelta(hours=9), "hello friends")],
            date_label="2024-01-01",
        )
        snapshot = [members["1"], members["2"], members["3"]]

        metrics = build_metrics_map(snapshot, sample, NOW)

        assert set(metrics) == {"1", "2", "3"}

    def test_silent_member_gets_neutral_values(self, members):
        sample = Sample(messages=[], date_label="2024-01-01")

        metrics = build_metrics_map([members["2"]], sample, NOW)["2"]

        assert metrics.message_count == 0
        assert metrics.top_word is None
        assert metrics.active_window == "Not active"
        assert metrics.mentions == 0
        assert metrics.first_message_bucket is None
        assert metrics.account_age_range == "1–2 years"

    def test_messages_from_non_members_are_ignored(self, members):
        sample = Sample(
            messages=[make_message("99", YESTERDAY + timedelta(hours=9), "outsider text")],
            date_label="2024-01-01",
        )

        metrics = build_metrics_map([members["1"]], sample, NOW)

        assert list(metrics) == ["1"]
        assert metrics["1"].message_count == 0


class TestSummarizeMember:
    def test_full_profile(self, members):
        messages = [
            make_message("1", YESTERDAY + timedelta(hours=19), "raccoon raccoon", mention_count=2),
            make_message("1", YESTERDAY + timedelta(hours=7), "morning raccoon", mention_count=1),
        ]

        metrics = summarize_member(members["1"], messages, NOW)

        assert metrics.message_count == 2
        assert metrics.top_word == "raccoon"
        assert metrics.active_window == "Morning — Evening"
        assert metrics.mentions == 3
        assert metrics.first_message_bucket == "Morning"
        assert metrics.account_age_range == "Less than 1 year"

    def test_missing_member_has_no_age_range(self):
        metrics = summarize_member(None, [], NOW)

        assert metrics.account_age_range is None

    def test_to_dict_uses_wire_keys(self, members):
        payload = summarize_member(members["4"], [], NOW).to_dict()

        assert payload == {
            "messageCount": 0,
            "topWord": None,
            "activeWindow": "Not active",
            "mentions": 0,
            "firstMessageBucket": None,
            "accountAgeRange": "4+ years",
        }


def test_active_window_empty():
    assert active_window([]) == "Not active"


def test_build_name_map(members):
    assert build_name_map([members["1"], members["3"]]) == {"1": "Alice", "3": "Carol"}
