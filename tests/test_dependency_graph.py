"""
Dependency graph builder and queries (pure, no database).

Categories:
  1. Build: forward edges in declaration order, reverse pass, empty input
  2. Edge round trip (forward ⇔ reverse)
  3. Missing declared dependencies (warn / error policy)
  4. Cycles and duplicates
  5. Queries: blocking, dependents, can_proceed, next_in_sequence
  6. Topological order
"""

import pytest

from printflow.core.exceptions import IntegrityError, NotFoundError
from printflow.services.dependency_graph import (
    FormRecord,
    blocking_dependencies,
    build_graph,
    can_proceed,
    dependent_forms,
    find_cycle,
    find_key_cycle,
    next_in_sequence,
    query_form,
    topological_positions,
)

pytestmark = pytest.mark.unit


def _rec(form_id, template_id=None, status="DRAFT", order=None, depends_on=(), blocking=True):
    """FormRecord where template id defaults to form id * 10."""
    return FormRecord(
        form_id=form_id,
        form_name=f"Form {form_id}",
        status=status,
        template_id=template_id if template_id is not None else form_id * 10,
        order=order,
        depends_on_templates=tuple(t * 10 for t in depends_on),
        is_blocking=blocking,
    )


def _ids(nodes):
    return [n.form_id for n in nodes]


def _diamond():
    """1 ← 2, 1 ← 3, (2, 3) ← 4"""
    return build_graph([
        _rec(1, status="COMPLETED", order=1),
        _rec(2, depends_on=[1], order=2),
        _rec(3, depends_on=[1], order=2),
        _rec(4, depends_on=[2, 3], order=3),
    ])


class TestBuildGraph:

    # ── 1. Build ────────────────────────────────────────────────────────

    def test_empty_input_yields_empty_graph(self):
        graph = build_graph([])
        assert len(graph) == 0
        assert graph.to_dict() == {"nodes": [], "warnings": []}

    def test_forward_edges_keep_declaration_order(self):
        graph = build_graph([_rec(1), _rec(2), _rec(3, depends_on=[2, 1])])
        assert graph.node(3).dependencies == (2, 1)

    def test_reverse_edges_filled(self):
        graph = _diamond()
        assert graph.node(1).dependents == (2, 3)
        assert graph.node(2).dependents == (4,)
        assert graph.node(4).dependents == ()

    def test_node_order_follows_input(self):
        graph = build_graph([_rec(5), _rec(2), _rec(9)])
        assert _ids(graph.nodes) == [5, 2, 9]

    def test_node_to_dict_shape(self):
        data = _diamond().node(4).to_dict()
        assert data == {
            "form_id": 4,
            "form_name": "Form 4",
            "status": "DRAFT",
            "template_id": 40,
            "dependencies": [2, 3],
            "dependents": [],
            "order": 3,
            "is_blocking": True,
        }

    # ── 2. Round trip ──────────────────────────────────────────────────

    def test_forward_and_reverse_edges_mirror(self):
        graph = build_graph([
            _rec(1), _rec(2, depends_on=[1]), _rec(3, depends_on=[1, 2]),
            _rec(4, depends_on=[3]), _rec(5), _rec(6, depends_on=[5, 1]),
        ])
        forward = {(n.form_id, d) for n in graph.nodes for d in n.dependencies}
        reverse = {(d, n.form_id) for n in graph.nodes for d in n.dependents}
        assert forward == reverse

    # ── 3. Missing dependencies ────────────────────────────────────────

    def test_missing_template_dropped_with_warning(self):
        graph = build_graph([_rec(1), _rec(2, depends_on=[1, 7])])
        assert graph.node(2).dependencies == (1,)
        (warning,) = graph.warnings
        assert warning.form_id == 2
        assert warning.missing_template_id == 70

    def test_missing_template_strict_policy_raises(self):
        with pytest.raises(IntegrityError) as exc:
            build_graph([_rec(1), _rec(2, depends_on=[7])], missing_policy="error")
        assert exc.value.form_ids == [2]

    def test_unknown_policy_rejected(self):
        with pytest.raises(ValueError):
            build_graph([], missing_policy="ignore")

    # ── 4. Cycles and duplicates ───────────────────────────────────────

    def test_two_node_cycle_raises(self):
        with pytest.raises(IntegrityError, match="cycle") as exc:
            build_graph([_rec(1, depends_on=[2]), _rec(2, depends_on=[1])])
        assert sorted(exc.value.form_ids) == [1, 2]

    def test_self_dependency_raises(self):
        with pytest.raises(IntegrityError):
            build_graph([_rec(1, depends_on=[1])])

    def test_duplicate_template_in_project_raises(self):
        with pytest.raises(IntegrityError):
            build_graph([_rec(1, template_id=10), _rec(2, template_id=10)])

    def test_duplicate_form_id_raises(self):
        with pytest.raises(IntegrityError):
            build_graph([_rec(1, template_id=10), _rec(1, template_id=20)])

    def test_long_chain_is_not_a_cycle(self):
        records = [_rec(1)] + [_rec(i, depends_on=[i - 1]) for i in range(2, 2001)]
        graph = build_graph(records)
        assert graph.node(2000).dependencies == (1999,)

    def test_find_cycle_returns_closed_path(self):
        assert find_cycle([[1], [2], [0]]) == [0, 1, 2, 0]
        assert find_cycle([[1], [2], []]) is None

    def test_find_key_cycle_on_template_ids(self):
        assert find_key_cycle({"a": ["b"], "b": ["c"]}) is None
        cycle = find_key_cycle({"a": ["b"], "b": ["a"]})
        assert cycle[0] == cycle[-1]
        assert set(cycle) == {"a", "b"}


class TestQueries:

    # ── 5. F0 / F1 scenario ────────────────────────────────────────────

    def test_blocking_dependency_until_completed(self):
        graph = build_graph([_rec(0, order=1), _rec(1, depends_on=[0], order=2)])
        view = query_form(graph, 1)
        assert _ids(view.blocking_dependencies) == [0]
        assert view.can_proceed is False

        graph = build_graph([_rec(0, status="COMPLETED", order=1), _rec(1, depends_on=[0], order=2)])
        view = query_form(graph, 1)
        assert view.blocking_dependencies == ()
        assert view.can_proceed is True

    def test_non_blocking_requirement_never_blocks(self):
        graph = build_graph([_rec(0), _rec(1, depends_on=[0], blocking=False)])
        assert blocking_dependencies(graph, 1) == []
        assert can_proceed(graph, 1) is True

    def test_can_proceed_iff_no_blocking(self):
        graph = _diamond()
        for node in graph.nodes:
            assert can_proceed(graph, node.form_id) == (not blocking_dependencies(graph, node.form_id))

    def test_blocking_lists_only_incomplete(self):
        graph = _diamond()
        assert _ids(blocking_dependencies(graph, 2)) == []
        assert _ids(blocking_dependencies(graph, 4)) == [2, 3]

    def test_dependents(self):
        assert _ids(dependent_forms(_diamond(), 1)) == [2, 3]

    def test_next_in_sequence_sorted_and_stable(self):
        graph = build_graph([
            _rec(9, order=3), _rec(1, order=1), _rec(5, order=2),
            _rec(4, order=2), _rec(7), _rec(2, order=1),
        ])
        assert _ids(next_in_sequence(graph, 1)) == [5, 4, 9]
        assert _ids(next_in_sequence(graph, 5)) == [9]
        assert _ids(next_in_sequence(graph, 9)) == []

    def test_next_in_sequence_empty_when_unordered(self):
        graph = build_graph([_rec(1), _rec(2, order=5)])
        assert next_in_sequence(graph, 1) == []

    def test_unknown_form_raises_not_found(self):
        with pytest.raises(NotFoundError):
            query_form(_diamond(), 99)

    def test_view_to_dict(self):
        data = query_form(_diamond(), 4).to_dict()
        assert data["current_form"]["form_id"] == 4
        assert [n["form_id"] for n in data["blocking_dependencies"]] == [2, 3]
        assert data["can_proceed"] is False
        assert data["dependent_forms"] == []
        assert data["next_in_sequence"] == []
        assert data["warnings"] == []

    def test_view_carries_own_dropped_dependencies(self):
        graph = build_graph([_rec(1, depends_on=[8]), _rec(2, depends_on=[1, 7])])
        (warning,) = query_form(graph, 2).warnings
        assert warning.missing_template_id == 70
        assert query_form(graph, 1).to_dict()["warnings"][0]["missing_template_id"] == 80

    # ── 6. Topological order ───────────────────────────────────────────

    def test_dependencies_precede_dependents(self):
        graph = build_graph([_rec(4, depends_on=[2, 3]), _rec(3, depends_on=[1]), _rec(2, depends_on=[1]), _rec(1)])
        order = [graph.nodes[p].form_id for p in topological_positions(graph)]
        assert order.index(1) < order.index(2) < order.index(4)
        assert order.index(3) < order.index(4)
        assert len(order) == 4
