from datetime import date, timedelta

from princess_scheduler.core.critical_path.analyze import compute_critical_path, critical_stage_ids
from princess_scheduler.core.graph.stage_graph import build_graph
from princess_scheduler.core.io.load_stages import load_stages
from princess_scheduler.core.model import Stage, StageCategory, StageStatus
from princess_scheduler.core.validate.validate_stages import validate_stages


def _graph(path: str):
    document, errors = validate_stages(load_stages(path))
    assert errors == []
    return build_graph(document.stages)


def _stage(sid: str, number_index: int, days: int, deps: list[str] | None = None) -> Stage:
    start = date(2025, 1, 6)
    return Stage(
        id=sid,
        number_index=number_index,
        name=sid,
        category=StageCategory.STRATEGY,
        status=StageStatus.NOT_READY,
        start_date=start,
        end_date=start + timedelta(days=days),
        dependencies=deps or [],
    )


def _heaviest_chain(graph) -> int:
    def walk(sid: str) -> int:
        nxt = [walk(d.id) for d in graph.dependents_of(sid)]
        return graph.get(sid).duration_days + (max(nxt) if nxt else 0)

    return max(walk(s.id) for s in graph.stages() if not s.dependencies)


def test_critical_path_basic_project():
    graph = _graph("examples/basic-stages.yaml")
    cp = compute_critical_path(graph)
    assert cp.stage_ids == ["S1", "S2", "S3", "S4", "S5", "S7", "S8"]
    assert cp.total_days == 60
    assert cp.total_days == _heaviest_chain(graph)
    assert "S6" not in cp
    assert "S5" in cp


def test_critical_path_is_a_dependency_chain():
    graph = _graph("examples/basic-stages.yaml")
    cp = compute_critical_path(graph)
    for prev, cur in zip(cp.stage_ids, cp.stage_ids[1:]):
        assert prev in graph.dependency_ids(cur)
    assert sum(s.duration_days for s in cp.stages(graph)) == cp.total_days


def test_slack_days():
    cp = compute_critical_path(_graph("examples/basic-stages.yaml"))
    assert cp.slack_days["S6"] == 7
    assert all(cp.slack_days[sid] == 0 for sid in cp.stage_ids)


def test_ties_go_to_lowest_number_index():
    cp = compute_critical_path(_graph("examples/fan-out-stages.yaml"))
    assert cp.stage_ids == ["S1", "S2"]
    assert cp.total_days == 6


def test_heavier_branch_wins_over_number_index():
    graph = build_graph(
        [
            _stage("A", 1, 2),
            _stage("B", 2, 1, ["A"]),
            _stage("C", 3, 9, ["A"]),
            _stage("D", 4, 1, ["B", "C"]),
        ]
    )
    cp = compute_critical_path(graph)
    assert cp.stage_ids == ["A", "C", "D"]
    assert cp.total_days == 12
    assert cp.slack_days["B"] == 8


def test_empty_graph():
    cp = compute_critical_path(build_graph([]))
    assert cp.stage_ids == []
    assert cp.total_days == 0


def test_critical_stage_ids():
    graph = _graph("examples/chain-stages.yaml")
    assert critical_stage_ids(graph) == frozenset({"S1", "S2", "S3"})
