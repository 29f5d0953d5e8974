from datetime import date

from princess_scheduler.core.io.load_stages import load_stages
from princess_scheduler.core.persist import StageUpdate
from princess_scheduler.core.schedule.contracts import ProposalState, SuggestionAction
from princess_scheduler.core.session import SchedulingSession
from princess_scheduler.core.validate.validate_stages import validate_stages


def _session(path: str) -> SchedulingSession:
    document, errors = validate_stages(load_stages(path))
    assert errors == []
    return SchedulingSession.from_document(document)


def test_preview_attaches_suggestion():
    session = _session("examples/chain-stages.yaml")
    report = session.preview("S1", date(2025, 1, 11), date(2025, 1, 14))
    assert report.suggestion is not None
    assert report.suggestion.action is SuggestionAction.APPLY


def test_confirm_returns_store_updates():
    session = _session("examples/chain-stages.yaml")
    report = session.preview("S1", date(2025, 1, 11), date(2025, 1, 14))

    updates = session.confirm(report)

    assert updates == [
        StageUpdate("S1", date(2025, 1, 11), date(2025, 1, 14)),
        StageUpdate("S2", date(2025, 1, 14), date(2025, 1, 16)),
        StageUpdate("S3", date(2025, 1, 16), date(2025, 1, 20)),
    ]
    assert updates[0].fields() == {"start_date": "2025-01-11", "end_date": "2025-01-14"}


def test_apply_compress_suggestion():
    session = _session("examples/fan-out-stages.yaml")
    report = session.preview("S1", date(2025, 1, 7), date(2025, 1, 10))
    assert report.suggestion.action is SuggestionAction.COMPRESS_TIMELINE

    applied = session.apply_suggestion(report)

    assert (applied.proposed_start, applied.proposed_end) == (date(2025, 1, 7), date(2025, 1, 9))
    assert applied.state is ProposalState.CLEAN
    assert applied.affected == []


def test_apply_shift_phase_suggestion():
    session = _session("examples/chain-stages.yaml")
    report = session.preview("S1", date(2025, 1, 16), date(2025, 1, 19))
    assert report.suggestion.action is SuggestionAction.SHIFT_PHASE

    applied = session.apply_suggestion(report)

    assert (applied.proposed_start, applied.proposed_end) == (date(2025, 1, 11), date(2025, 1, 14))
    assert applied.max_delay == 5


def test_apply_adjust_dates_suggestion_clears_violation():
    session = _session("examples/chain-stages.yaml")
    report = session.preview("S2", date(2025, 1, 7), date(2025, 1, 9))
    assert report.state is ProposalState.REJECTED

    applied = session.apply_suggestion(report)

    assert (applied.proposed_start, applied.proposed_end) == (date(2025, 1, 9), date(2025, 1, 11))
    assert applied.state is ProposalState.CLEAN


def test_apply_suggestion_with_nothing_to_do():
    session = _session("examples/completed-stage.yaml")
    locked = session.preview("S1", date(2025, 1, 7), date(2025, 1, 10))
    assert session.apply_suggestion(locked) is None

    chain = _session("examples/chain-stages.yaml")
    clean = chain.preview("S3", date(2025, 1, 12), date(2025, 1, 16))
    assert clean.suggestion is None
    assert chain.apply_suggestion(clean) is None

    fine = chain.preview("S1", date(2025, 1, 11), date(2025, 1, 14))
    assert chain.apply_suggestion(fine) is fine


def test_critical_path_property():
    session = _session("examples/basic-stages.yaml")
    assert session.critical_path.total_days == 60


def test_document_deadline_reaches_the_engine():
    session = _session("examples/resource-overlap.yaml")
    assert session.deadline == date(2025, 2, 1)
    report = session.preview("S4", date(2025, 1, 24), date(2025, 2, 3))
    assert report.state is ProposalState.HAS_WARNINGS
    assert [w.stage_ids for w in report.warnings] == [("S4",)]
