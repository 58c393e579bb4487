"""
Tests for the Activity Aggregator

Test Coverage:
- Single event scenario (one daily bucket, opened = 1)
- Unknown actors attributed to the sentinel developer
- Duplicate pages deduplicated by (source, id)
- Order independence and partition/merge equivalence
- Label frequency and action-required counting
- Hourly / weekly bucketing in UTC
"""

import random
from dataclasses import replace
from datetime import UTC, datetime, timedelta, timezone

import pytest

from devtracker.collectors.activity_aggregator import aggregate, deduplicate_events, merge_statistics
from devtracker.domain.gitlab import (
    UNKNOWN_DEVELOPER,
    UNKNOWN_DEVELOPER_ID,
    ActivityEvent,
    Developer,
    EventSource,
    MergeRequestRecord,
    MergeRequestState,
)
from devtracker.domain.statistics import Granularity, IssueStatistics

ALICE = Developer(user_id=7, username="alice")
BOB = Developer(user_id=8, username="bob")


def event(event_id, actor=7, action="opened", resource_type="issue", created_at=None, label=None):
    return ActivityEvent(
        id=event_id,
        actor_user_id=actor,
        created_at=created_at or datetime(2024, 1, 1, 10, 0, tzinfo=UTC),
        resource_type=resource_type,
        action=action,
        label=label,
    )


def merge_request(mr_id, author=7, state=MergeRequestState.OPENED, created_at=None, labels=()):
    created = created_at or datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
    return MergeRequestRecord(
        id=mr_id,
        iid=mr_id,
        title=f"MR {mr_id}",
        state=state,
        created_at=created,
        updated_at=created,
        labels=frozenset(labels),
        author_user_id=author,
    )


def sample_events():
    base = datetime(2024, 1, 1, 8, 0, tzinfo=UTC)
    return [
        event(1, actor=7, action="opened", created_at=base),
        event(2, actor=7, action="add", created_at=base + timedelta(hours=3), label="in-progress"),
        event(3, actor=8, action="closed", created_at=base + timedelta(days=1)),
        event(4, actor=8, action="add", created_at=base + timedelta(days=1, hours=2), label="action-required"),
        event(5, actor=999, action="opened", created_at=base + timedelta(days=2)),
        event(6, actor=7, action="remove", created_at=base + timedelta(days=2), label="in-progress"),
    ]


def sample_merge_requests():
    base = datetime(2024, 1, 1, 9, 0, tzinfo=UTC)
    return [
        merge_request(101, author=7, state=MergeRequestState.MERGED, created_at=base, labels={"review"}),
        merge_request(102, author=8, created_at=base + timedelta(days=1), labels={"action-required2", "review"}),
        merge_request(103, author=555, state=MergeRequestState.CLOSED, created_at=base + timedelta(days=3)),
    ]


class TestSingleEventScenario:
    """Tests for the basic one-event aggregate"""

    def test_one_daily_bucket_for_alice(self):
        """Test one opened issue yields one bucket with opened = 1"""
        stats = aggregate([event(1)], [], [ALICE], granularity="daily")

        assert len(stats) == 1
        assert stats[0].developer_id == 7
        assert stats[0].username == "alice"
        assert stats[0].bucket_start == datetime(2024, 1, 1, tzinfo=UTC)
        assert stats[0].events_by_action == {"opened": 1}
        assert stats[0].events_by_resource_type == {"issue": 1}
        assert stats[0].event_count == 1

    def test_empty_input(self):
        """Test no activity means no statistics"""
        assert aggregate([], [], [ALICE]) == []

    def test_unknown_granularity(self):
        """Test an unknown granularity is rejected"""
        with pytest.raises(ValueError):
            aggregate([event(1)], [], [ALICE], granularity="monthly")


class TestUnknownDeveloper:
    """Tests for sentinel attribution"""

    def test_unmatched_actor_goes_to_sentinel(self):
        """Test an unknown actor is attributed, not dropped"""
        stats = aggregate([event(1, actor=999)], [], [ALICE])

        assert len(stats) == 1
        assert stats[0].developer_id == UNKNOWN_DEVELOPER_ID
        assert stats[0].username == UNKNOWN_DEVELOPER.username

    def test_event_count_unchanged_versus_known_actor(self):
        """Test the total count is the same whether 999 is a member or not"""
        events = sample_events()
        unknown = aggregate(events, [], [ALICE, BOB])
        known = aggregate(events, [], [ALICE, BOB, Developer(999, "carol")])

        assert sum(s.event_count for s in unknown) == sum(s.event_count for s in known) == len(events)

    def test_unknown_merge_request_author(self):
        """Test merge requests by non-members go to the sentinel"""
        stats = aggregate([], sample_merge_requests(), [ALICE, BOB])

        unknown = [s for s in stats if s.developer_id == UNKNOWN_DEVELOPER_ID]
        assert len(unknown) == 1
        assert unknown[0].merge_requests_by_state == {"closed": 1}

    def test_sentinel_sorts_first(self):
        """Test output order is by (developer_id, bucket_start)"""
        stats = aggregate(sample_events(), sample_merge_requests(), [ALICE, BOB])

        assert [s.key for s in stats] == sorted(s.key for s in stats)
        assert stats[0].developer_id == UNKNOWN_DEVELOPER_ID


class TestDeterminism:
    """Tests for deduplication, order independence and partitioning"""

    def test_duplicate_page_is_idempotent(self):
        """Test re-consuming a page with the same ids gives identical output"""
        events = sample_events()
        duplicated_page = events[:3]

        assert aggregate(events + duplicated_page, [], [ALICE, BOB]) == aggregate(events, [], [ALICE, BOB])

    def test_duplicate_merge_requests_are_idempotent(self):
        """Test merge requests are deduplicated by id"""
        mrs = sample_merge_requests()

        assert aggregate([], mrs + mrs, [ALICE, BOB]) == aggregate([], mrs, [ALICE, BOB])

    def test_order_independent(self):
        """Test shuffled input produces the same output"""
        events = sample_events()
        mrs = sample_merge_requests()
        expected = aggregate(events, mrs, [ALICE, BOB])

        rng = random.Random(1234)
        for _ in range(10):
            shuffled_events = events[:]
            shuffled_mrs = mrs[:]
            rng.shuffle(shuffled_events)
            rng.shuffle(shuffled_mrs)
            assert aggregate(shuffled_events, shuffled_mrs, [BOB, ALICE]) == expected

    def test_partition_then_merge_equals_whole(self):
        """Test aggregating parts and summing equals aggregating everything"""
        events = sample_events()
        mrs = sample_merge_requests()
        whole = aggregate(events, mrs, [ALICE, BOB])

        parts = [
            aggregate(events[:2], mrs[:1], [ALICE, BOB]),
            aggregate(events[2:5], [], [ALICE, BOB]),
            aggregate(events[5:], mrs[1:], [ALICE, BOB]),
        ]

        assert merge_statistics(*parts) == whole
        assert merge_statistics(*reversed(parts)) == whole

    def test_partition_by_developer(self):
        """Test splitting the input by developer and merging is lossless"""
        events = sample_events()
        by_actor: dict[int, list[ActivityEvent]] = {}
        for item in events:
            by_actor.setdefault(item.actor_user_id, []).append(item)

        parts = [aggregate(group, [], [ALICE, BOB]) for group in by_actor.values()]

        assert merge_statistics(*parts) == aggregate(events, [], [ALICE, BOB])

    def test_conflicting_duplicate_resolved_deterministically(self):
        """Test two differing records with one id resolve the same way in any order"""
        early = event(1, action="opened", created_at=datetime(2024, 1, 1, 9, tzinfo=UTC))
        late = event(1, action="reopened", created_at=datetime(2024, 1, 1, 11, tzinfo=UTC))

        assert deduplicate_events([early, late]) == deduplicate_events([late, early]) == [early]

    def test_same_id_from_different_sources_kept(self):
        """Test a project event and a label event sharing an id are both counted"""
        project_event = event(1, action="opened")
        label_event = replace(event(1, action="add", label="review"), source=EventSource.LABEL)

        stats = aggregate([project_event, label_event, label_event], [], [ALICE])

        assert stats[0].event_count == 2
        assert stats[0].label_counts == {"review": 1}


class TestCounts:
    """Tests for per-bucket counters"""

    def test_label_frequency_and_action_required(self):
        """Test label counts from added labels and merge request labels"""
        stats = {s.key: s for s in aggregate(sample_events(), sample_merge_requests(), [ALICE, BOB])}

        alice_day1 = stats[(7, datetime(2024, 1, 1, tzinfo=UTC))]
        assert alice_day1.label_counts == {"in-progress": 1, "review": 1}
        assert alice_day1.merge_requests_by_state == {"merged": 1}
        assert alice_day1.action_required_count == 0

        bob_day2 = stats[(8, datetime(2024, 1, 2, tzinfo=UTC))]
        assert bob_day2.label_counts == {"action-required": 1, "action-required2": 1, "review": 1}
        assert bob_day2.action_required_count == 2
        assert bob_day2.merge_request_count == 1
        assert bob_day2.event_count == 2

    def test_removed_label_not_counted(self):
        """Test only label additions count towards label frequency"""
        stats = {s.key: s for s in aggregate(sample_events(), [], [ALICE, BOB])}

        alice_day3 = stats[(7, datetime(2024, 1, 3, tzinfo=UTC))]
        assert alice_day3.events_by_action == {"remove": 1}
        assert alice_day3.label_counts == {}


class TestBucketing:
    """Tests for UTC bucket boundaries"""

    def test_hourly_buckets(self):
        """Test hourly granularity splits by hour"""
        events = [
            event(1, created_at=datetime(2024, 1, 1, 10, 5, tzinfo=UTC)),
            event(2, created_at=datetime(2024, 1, 1, 10, 55, tzinfo=UTC)),
            event(3, created_at=datetime(2024, 1, 1, 11, 0, tzinfo=UTC)),
        ]

        stats = aggregate(events, [], [ALICE], granularity=Granularity.HOURLY)

        assert [(s.bucket_start.hour, s.event_count) for s in stats] == [(10, 2), (11, 1)]

    def test_weekly_buckets_start_monday(self):
        """Test weekly buckets start Monday 00:00 UTC"""
        events = [
            event(1, created_at=datetime(2024, 1, 3, 15, tzinfo=UTC)),  # Wednesday
            event(2, created_at=datetime(2024, 1, 7, 23, tzinfo=UTC)),  # Sunday
            event(3, created_at=datetime(2024, 1, 8, 0, tzinfo=UTC)),  # next Monday
        ]

        stats = aggregate(events, [], [ALICE], granularity="weekly")

        assert [(s.bucket_start, s.event_count) for s in stats] == [
            (datetime(2024, 1, 1, tzinfo=UTC), 2),
            (datetime(2024, 1, 8, tzinfo=UTC), 1),
        ]

    def test_bucketing_ignores_caller_timezone(self):
        """Test the same instant in another offset lands in the same UTC bucket"""
        plus_two = timezone(timedelta(hours=2))
        local = event(1, created_at=datetime(2024, 1, 2, 1, 0, tzinfo=plus_two))

        stats = aggregate([local], [], [ALICE])

        assert stats[0].bucket_start == datetime(2024, 1, 1, tzinfo=UTC)


class TestMergeStatistics:
    """Tests for IssueStatistics.merge and merge_statistics"""

    def test_merge_rejects_different_keys(self):
        """Test merging across buckets is an error"""
        first = IssueStatistics(developer_id=7, username="alice", bucket_start=datetime(2024, 1, 1, tzinfo=UTC))
        second = IssueStatistics(developer_id=7, username="alice", bucket_start=datetime(2024, 1, 2, tzinfo=UTC))

        with pytest.raises(ValueError, match="different keys"):
            first.merge(second)

    def test_merge_statistics_of_nothing(self):
        """Test merging no lists yields nothing"""
        assert merge_statistics() == []
