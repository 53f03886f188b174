from datetime import datetime, timedelta, timezone

import pytest

from execgraph.risk.scoring import (
    NodeRiskState,
    ScoringEdge,
    ScoringNode,
    build_amount_scale,
    clamp_risk,
    compute_base_risk,
    org_risk_score,
    propagate,
    score_base,
    select_top_drivers,
)

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
YESTERDAY = NOW - timedelta(days=1)
TOMORROW = NOW + timedelta(days=1)


def _edge(edge_id, source, target, type="BLOCKS", weight=1, offset=0):
    return ScoringEdge(
        id=edge_id,
        from_node_id=source,
        to_node_id=target,
        type=type,
        weight=weight,
        created_at=NOW - timedelta(days=5) + timedelta(seconds=offset),
    )


def _states(**risks):
    return {node_id: NodeRiskState(base_risk=risk, risk=risk) for node_id, risk in risks.items()}


@pytest.mark.parametrize(
    "value,expected",
    [(-10, 0), (0, 0), (0.4, 0), (40.4, 40), (40.5, 41), (99.6, 100), (100, 100), (250, 100)],
)
def test_clamp_risk_bounds_and_rounding(value, expected):
    assert clamp_risk(value) == expected


def test_single_overdue_invoice_scores_full_risk():
    invoice = ScoringNode(
        id="inv-1", type="INVOICE", entity_id="i1", status="OVERDUE", amount_cents=100000, due_at=YESTERDAY
    )

    states = score_base([invoice], NOW)

    assert states["inv-1"].base_risk == 100
    assert sorted(states["inv-1"].reasons) == ["INVOICE_HIGH_AMOUNT", "INVOICE_OVERDUE"]


def test_terminal_statuses_have_zero_base_risk():
    nodes = [
        ScoringNode(id="inv", type="INVOICE", entity_id="i", status="paid", amount_cents=900000, due_at=YESTERDAY),
        ScoringNode(id="w1", type="WORK_ITEM", entity_id="w1", status="DONE", due_at=YESTERDAY),
        ScoringNode(id="w2", type="WORK_ITEM", entity_id="w2", status="COMPLETED", due_at=YESTERDAY),
        ScoringNode(id="w3", type="WORK_ITEM", entity_id="w3", status="CLOSED", due_at=YESTERDAY),
        ScoringNode(id="d1", type="DEAL", entity_id="d1", status="WON", amount_cents=500),
        ScoringNode(id="d2", type="DEAL", entity_id="d2", status="CLOSED_WON", amount_cents=700),
    ]

    states = score_base(nodes, NOW)

    for node in nodes:
        assert states[node.id].base_risk == 0, node.id
        assert states[node.id].reasons == set()


def test_work_item_overdue_and_blocked():
    work = ScoringNode(id="w", type="WORK_ITEM", entity_id="w", status="BLOCKED", due_at=YESTERDAY)

    risk, reasons = compute_base_risk(work, NOW, {}, {})

    assert risk == 75
    assert reasons == ["WORK_OVERDUE", "WORK_BLOCKED"]


def test_work_item_due_in_future_is_not_overdue():
    work = ScoringNode(id="w", type="WORK_ITEM", entity_id="w", status="OPEN", due_at=TOMORROW)

    assert compute_base_risk(work, NOW, {}, {}) == (0, [])


def test_naive_due_date_is_treated_as_utc():
    naive_yesterday = YESTERDAY.replace(tzinfo=None)
    work = ScoringNode(id="w", type="WORK_ITEM", entity_id="w", status="OPEN", due_at=naive_yesterday)

    assert compute_base_risk(work, NOW, {}, {}) == (50, ["WORK_OVERDUE"])


def test_invoice_status_without_due_date():
    invoice = ScoringNode(id="inv", type="INVOICE", entity_id="i", status="SENT")

    assert compute_base_risk(invoice, NOW, {}, {}) == (20, [])


def test_deal_stale_and_amount_boost_emit_reasons():
    small = ScoringNode(id="d-small", type="DEAL", entity_id="a", status="OPEN", amount_cents=1000)
    large = ScoringNode(id="d-large", type="DEAL", entity_id="b", status="STALE_30D", amount_cents=5000)

    states = score_base([small, large], NOW)

    assert states["d-small"].base_risk == 0
    assert states["d-large"].base_risk == 45
    assert states["d-large"].reasons == {"DEAL_STALE", "DEAL_HIGH_AMOUNT"}


def test_incident_open_and_resolved():
    open_incident = ScoringNode(id="i1", type="INCIDENT", entity_id="i1", status="ACKNOWLEDGED")
    resolved = ScoringNode(id="i2", type="INCIDENT", entity_id="i2", status="RESOLVED")
    company = ScoringNode(id="c1", type="COMPANY", entity_id="c1", status="ACTIVE")

    states = score_base([open_incident, resolved, company], NOW)

    assert states["i1"].base_risk == 70
    assert states["i1"].reasons == {"INCIDENT_OPEN"}
    assert states["i2"].base_risk == 0
    assert states["c1"].base_risk == 0


def test_amount_scale_is_percentile_rank():
    nodes = [
        ScoringNode(id="c", type="INVOICE", entity_id="c", amount_cents=300),
        ScoringNode(id="a", type="INVOICE", entity_id="a", amount_cents=100),
        ScoringNode(id="b", type="INVOICE", entity_id="b", amount_cents=200),
        ScoringNode(id="zero", type="INVOICE", entity_id="z", amount_cents=0),
        ScoringNode(id="none", type="INVOICE", entity_id="n"),
        ScoringNode(id="deal", type="DEAL", entity_id="d", amount_cents=999),
    ]

    scale = build_amount_scale(nodes, "INVOICE", 20)

    assert scale == {"a": 0, "b": 10, "c": 20}


def test_amount_scale_ties_break_by_id():
    nodes = [
        ScoringNode(id="y", type="DEAL", entity_id="y", amount_cents=500),
        ScoringNode(id="x", type="DEAL", entity_id="x", amount_cents=500),
    ]

    assert build_amount_scale(nodes, "DEAL", 25) == {"x": 0, "y": 25}


def test_blocks_edge_propagates_in_one_round():
    nodes = [
        ScoringNode(id="src", type="WORK_ITEM", entity_id="s"),
        ScoringNode(id="dst", type="WORK_ITEM", entity_id="d"),
    ]
    states = _states(src=80, dst=0)

    propagate(nodes, [_edge("e1", "src", "dst", weight=2)], states, rounds=1)

    assert states["dst"].risk == 40
    assert "PROPAGATED_FROM_WORK_ITEM" in states["dst"].reasons
    assert states["dst"].incoming_by_type == {"WORK_ITEM": 40.0}
    assert states["src"].risk == 80


def test_increments_apply_at_end_of_round():
    nodes = [ScoringNode(id=node_id, type="WORK_ITEM", entity_id=node_id) for node_id in ("a", "b", "c")]
    edges = [_edge("e1", "a", "b", offset=1), _edge("e2", "b", "c", offset=2)]
    states = _states(a=80, b=0, c=0)

    propagate(nodes, edges, states, rounds=1)

    assert states["b"].risk == 20
    # b had no risk when the round started
    assert states["c"].risk == 0

    propagate(nodes, edges, states, rounds=1)

    assert states["c"].risk == 5


def test_propagation_is_order_independent_and_deterministic():
    nodes = [
        ScoringNode(id="a", type="INVOICE", entity_id="a"),
        ScoringNode(id="b", type="WORK_ITEM", entity_id="b"),
        ScoringNode(id="c", type="DEAL", entity_id="c"),
        ScoringNode(id="d", type="COMPANY", entity_id="d"),
    ]
    edges = [
        _edge("e1", "a", "b", type="BILLED_BY", weight=3, offset=1),
        _edge("e2", "b", "c", type="DEPENDS_ON", weight=2, offset=2),
        _edge("e3", "c", "a", type="RELATES_TO", weight=5, offset=3),
        _edge("e4", "b", "d", type="CREATED_FROM", weight=1, offset=4),
    ]

    forward = propagate(nodes, edges, _states(a=90, b=30, c=10, d=0))
    backward = propagate(nodes, list(reversed(edges)), _states(a=90, b=30, c=10, d=0))
    again = propagate(nodes, edges, _states(a=90, b=30, c=10, d=0))

    assert {k: v.risk for k, v in forward.items()} == {k: v.risk for k, v in backward.items()}
    assert {k: v.risk for k, v in forward.items()} == {k: v.risk for k, v in again.items()}
    assert all(0 <= state.risk <= 100 for state in forward.values())


def test_noise_floor_and_unknown_edge_types_are_skipped():
    nodes = [
        ScoringNode(id="src", type="CONTACT", entity_id="s"),
        ScoringNode(id="dst", type="WORK_ITEM", entity_id="d"),
    ]
    edges = [
        _edge("e1", "src", "dst", type="ASSIGNED_TO", weight=1),
        _edge("e2", "src", "dst", type="MENTIONS", weight=5),
    ]
    states = _states(src=10, dst=0)

    propagate(nodes, edges, states)

    # 10 * 0.05 * 1 = 0.5 sits on the floor
    assert states["dst"].risk == 0
    assert states["dst"].reasons == set()


def test_edge_weight_is_clamped():
    nodes = [
        ScoringNode(id="src", type="WORK_ITEM", entity_id="s"),
        ScoringNode(id="dst", type="WORK_ITEM", entity_id="d"),
    ]

    heavy = _states(src=40, dst=0)
    propagate(nodes, [_edge("e1", "src", "dst", weight=50)], heavy, rounds=1)
    zero = _states(src=40, dst=0)
    propagate(nodes, [_edge("e1", "src", "dst", weight=0)], zero, rounds=1)

    assert heavy["dst"].risk == 50
    assert zero["dst"].risk == 10


def test_propagation_clamps_at_100():
    nodes = [
        ScoringNode(id="src", type="WORK_ITEM", entity_id="s"),
        ScoringNode(id="dst", type="WORK_ITEM", entity_id="d"),
    ]
    states = _states(src=80, dst=0)

    propagate(nodes, [_edge("e1", "src", "dst", weight=2)], states)

    assert states["dst"].risk == 100


def test_org_risk_score_weights_buckets():
    assert org_risk_score([]) == 0
    assert org_risk_score([("INVOICE", 100), ("WORK_ITEM", 40)]) == 59
    assert org_risk_score([("DEAL", 50), ("INCIDENT", 70)]) == 12


def test_org_risk_score_uses_top_of_each_bucket():
    scored = [("INVOICE", 100)] * 20 + [("INVOICE", 0)] * 30

    assert org_risk_score(scored) == 45


def test_top_drivers_rank_by_risk_then_id():
    nodes = [
        ScoringNode(id=f"n{index:02d}", type="WORK_ITEM", entity_id=f"w{index}", title=f"Task {index}")
        for index in range(12)
    ]
    states = {node.id: NodeRiskState(base_risk=0, risk=50) for node in nodes}
    states["n11"].risk = 90
    states["n11"].reasons = {"WORK_OVERDUE", "PROPAGATED_FROM_INVOICE"}
    states["n11"].incoming_by_type = {"INVOICE": 12.4}

    drivers = select_top_drivers(nodes, states)

    assert len(drivers) == 10
    assert [driver.node_id for driver in drivers[:3]] == ["n11", "n00", "n01"]
    top = drivers[0]
    assert top.reason_codes == ["PROPAGATED_FROM_INVOICE", "WORK_OVERDUE"]
    assert top.evidence.counts == {"INVOICE": 12}
    assert top.deeplink.url == "/ops/work/w11"
    assert top.deeplink.label == "Task 11"
