import pytest
from datetime import datetime, timedelta

from devinsight.alerts import (
    COMMIT_DROPS,
    LONG_OPEN_PRS,
    NO_ACTIVITY,
    AlertEvaluator,
    AlertFlags,
    AlertThresholds,
    is_commit_drop,
    validate_transition,
)
from devinsight.errors import ValidationError
from devinsight.metrics import MetricsSnapshot

NOW = datetime(2026, 10, 5, 12, 0)


@pytest.fixture
def evaluator():
    return AlertEvaluator()


@pytest.fixture
def repository(store, make_repo):
    alice = store.upsert_user("1", "alice", "tok-a", email="alice@example.com")
    bob = store.upsert_user("2", "bob", "tok-b", email="bob@example.com")
    repo = store.connect_repository(alice.id, "octo/widgets", make_repo())
    store.connect_repository(bob.id, "octo/widgets")
    return repo


def test_quiet_week_after_activity_triggers_no_activity_and_commit_drop(evaluator):
    evaluation = evaluator.evaluate(MetricsSnapshot(weekly_commits=(5, 5, 5, 5, 5, 0)), now=NOW)

    assert evaluation.findings[NO_ACTIVITY].triggered
    assert evaluation.findings[COMMIT_DROPS].triggered
    assert evaluation.findings[COMMIT_DROPS].value == 100.0
    assert not evaluation.findings[LONG_OPEN_PRS].triggered
    assert evaluation.flags() == AlertFlags(no_activity=True, long_open_prs=False, commit_drops=True)


def test_steady_activity_triggers_nothing(evaluator):
    evaluation = evaluator.evaluate(MetricsSnapshot(weekly_commits=(10, 10)), now=NOW)
    assert evaluation.triggered() == []
    assert evaluation.flags() == AlertFlags()


def test_commit_drop_needs_two_weeks(evaluator):
    evaluation = evaluator.evaluate(MetricsSnapshot(weekly_commits=(3,)), now=NOW)

    assert COMMIT_DROPS not in evaluation.findings
    # Not evaluated: the previous flag stays as it was.
    assert evaluation.flags(AlertFlags(commit_drops=True)).commit_drops is True
    assert evaluation.flags(AlertFlags(commit_drops=False)).commit_drops is False


def test_empty_series_is_not_inactivity(evaluator):
    evaluation = evaluator.evaluate(MetricsSnapshot(), now=NOW)
    assert not evaluation.findings[NO_ACTIVITY].triggered


@pytest.mark.parametrize("previous,current,pct,expected", [
    (10, 0, 70, True),
    (10, 2, 70, True),
    (10, 3, 70, False),  # exactly a 70% drop is not more than 70%
    (10, 8, 70, False),
    (0, 0, 70, False),
    (10, 6, 30, True),
    (3, 10, 70, False),
])
def test_is_commit_drop(previous, current, pct, expected):
    assert is_commit_drop(previous, current, pct) is expected


def test_long_open_pull_requests(evaluator, make_pull):
    pulls = [
        make_pull(1, NOW - timedelta(days=15), state="open"),
        make_pull(2, NOW - timedelta(days=2), state="open"),
    ]
    finding = evaluator.evaluate(MetricsSnapshot(weekly_commits=(1, 1)), pulls, now=NOW).findings[LONG_OPEN_PRS]

    assert finding.triggered
    assert finding.value == 15.0
    assert finding.threshold == 14.0
    assert "1 pull request(s)" in finding.message


def test_recent_pull_requests_do_not_trigger(evaluator, make_pull):
    pulls = [make_pull(1, NOW - timedelta(days=10), state="open")]
    finding = evaluator.evaluate(MetricsSnapshot(weekly_commits=(1, 1)), pulls, now=NOW).findings[LONG_OPEN_PRS]
    assert not finding.triggered


def test_custom_thresholds_change_evaluation(evaluator, make_pull):
    thresholds = AlertThresholds(no_activity_days=14, long_open_prs_days=5, commit_drop_percentage=30)
    pulls = [make_pull(1, NOW - timedelta(days=10), state="open")]

    one_quiet_week = evaluator.evaluate(MetricsSnapshot(weekly_commits=(10, 6)), pulls, thresholds, now=NOW)
    assert one_quiet_week.findings[LONG_OPEN_PRS].triggered
    assert one_quiet_week.findings[COMMIT_DROPS].triggered
    assert not evaluator.evaluate(MetricsSnapshot(weekly_commits=(5, 0)), (), thresholds,
                                  now=NOW).findings[NO_ACTIVITY].triggered
    assert evaluator.evaluate(MetricsSnapshot(weekly_commits=(5, 0, 0)), (), thresholds,
                              now=NOW).findings[NO_ACTIVITY].triggered


def test_thresholds_validation_and_defaults():
    assert AlertThresholds.from_values() == AlertThresholds(7, 14, 70)
    assert AlertThresholds.from_values(long_open_prs_days=30).long_open_prs_days == 30
    assert AlertThresholds.from_values(long_open_prs_days=0).long_open_prs_days == 0
    assert AlertThresholds().to_dict() == {"noActivityDays": 7, "longOpenPRsDays": 14, "commitDropPercentage": 70}
    with pytest.raises(ValidationError):
        AlertThresholds(no_activity_days=0)
    with pytest.raises(ValidationError):
        AlertThresholds(commit_drop_percentage=150)


def test_raise_alerts_creates_one_alert_per_subscriber(evaluator, store, repository):
    evaluation = evaluator.evaluate(MetricsSnapshot(weekly_commits=(5, 5, 5, 5, 5, 0)), now=NOW)

    created = evaluator.raise_alerts(store, repository.id, store.subscriber_ids(repository.id), evaluation)

    assert len(created) == 4
    assert {(a.user_id, a.type) for a in created} == {
        (uid, t) for uid in store.subscriber_ids(repository.id) for t in (NO_ACTIVITY, COMMIT_DROPS)
    }
    assert all(a.status == "active" for a in created)


def test_raise_alerts_does_not_duplicate_active_alerts(evaluator, store, repository):
    evaluation = evaluator.evaluate(MetricsSnapshot(weekly_commits=(5, 0)), now=NOW)
    subscribers = store.subscriber_ids(repository.id)
    evaluator.raise_alerts(store, repository.id, subscribers, evaluation)

    assert evaluator.raise_alerts(store, repository.id, subscribers, evaluation) == []
    assert len(store.list_alerts(subscribers[0])) == 2


def test_alert_raised_again_after_resolution(evaluator, store, repository):
    evaluation = evaluator.evaluate(MetricsSnapshot(weekly_commits=(5, 0)), now=NOW)
    user_id = store.subscriber_ids(repository.id)[0]
    first = evaluator.raise_alerts(store, repository.id, [user_id], evaluation)
    store.set_alert_status(first[0].id, "resolved", resolved_at=NOW)

    again = evaluator.raise_alerts(store, repository.id, [user_id], evaluation)

    assert {a.type for a in again} == {first[0].type}


def test_alerts_are_not_resolved_when_a_rule_stops_firing(evaluator, store, repository):
    subscribers = store.subscriber_ids(repository.id)
    quiet = evaluator.evaluate(MetricsSnapshot(weekly_commits=(5, 0)), now=NOW)
    evaluator.raise_alerts(store, repository.id, subscribers, quiet)

    recovered = evaluator.evaluate(MetricsSnapshot(weekly_commits=(5, 0, 9)), now=NOW)
    assert recovered.triggered() == []
    evaluator.raise_alerts(store, repository.id, subscribers, recovered)

    alerts = store.list_alerts(subscribers[0])
    assert len(alerts) == 2
    assert all(a.status == "active" and a.resolved_at is None for a in alerts)


@pytest.mark.parametrize("current,new", [
    ("active", "resolved"),
    ("active", "dismissed"),
])
def test_allowed_transitions(current, new):
    validate_transition(current, new)


@pytest.mark.parametrize("current,new", [
    ("resolved", "active"),
    ("dismissed", "resolved"),
    ("resolved", "dismissed"),
    ("active", "active"),
    ("active", "archived"),
])
def test_rejected_transitions(current, new):
    with pytest.raises(ValidationError):
        validate_transition(current, new)
