"""
Form Dependency Service: graph loading and dependency editing against SQLite.

Categories:
  1. Graph loading from stored requirements
  2. Requirement resolution (phase-specific over phase-agnostic)
  3. Missing-dependency policy from config
  4. Dependency editing: replace, clear, flags
  5. Dependency editing: rejected input
  6. Removing one dependency
"""

import pytest

from printflow.core.exceptions import IntegrityError, NotFoundError, ValidationError
from printflow.models.forms import FormCompletionRequirement
from printflow.services import form_dependency_service as svc

pytestmark = pytest.mark.integration


@pytest.fixture()
def job(make_project, make_template, make_form):
    """Project with three forms: brief → proof → print sign-off."""
    project = make_project()
    brief_t = make_template("Design Brief")
    proof_t = make_template("Proof Approval")
    print_t = make_template("Print Sign-off")
    forms = {
        "brief": make_form(project, brief_t, order=1),
        "proof": make_form(project, proof_t, order=2),
        "print": make_form(project, print_t, order=3),
    }
    templates = {"brief": brief_t, "proof": proof_t, "print": print_t}
    return project, templates, forms


class TestGraphLoading:

    # ── 1. Loading ──────────────────────────────────────────────────────

    def test_graph_edges_follow_requirements(self, job, make_requirement):
        project, t, f = job
        make_requirement(t["proof"], depends_on=[t["brief"]])
        make_requirement(t["print"], depends_on=[t["proof"], t["brief"]])

        graph = svc.get_dependency_graph(project.id)

        assert [n.form_id for n in graph.nodes] == [f["brief"].id, f["proof"].id, f["print"].id]
        assert graph.node(f["print"].id).dependencies == (f["proof"].id, f["brief"].id)
        assert graph.node(f["brief"].id).dependents == (f["proof"].id, f["print"].id)
        assert graph.node(f["proof"].id).form_name == "Proof Approval"

    def test_form_without_requirement_is_non_blocking(self, job):
        project, _, f = job
        node = svc.get_dependency_graph(project.id).node(f["brief"].id)
        assert node.dependencies == ()
        assert node.is_blocking is False

    def test_unordered_forms_load_last(self, make_project, make_template, make_form):
        project = make_project()
        loose = make_form(project, make_template("Loose"), order=None)
        first = make_form(project, make_template("First"), order=1)
        graph = svc.get_dependency_graph(project.id)
        assert [n.form_id for n in graph.nodes] == [first.id, loose.id]

    def test_unknown_project_raises(self):
        with pytest.raises(NotFoundError):
            svc.get_dependency_graph(999)

    def test_empty_project_has_empty_graph(self, make_project):
        assert len(svc.get_dependency_graph(make_project().id)) == 0

    def test_other_projects_do_not_leak(self, job, make_project, make_form):
        project, t, _ = job
        other = make_project("Shopfront")
        make_form(other, t["brief"])
        assert len(svc.get_dependency_graph(project.id)) == 3

    def test_stored_cycle_raises_integrity_error(self, job, make_requirement):
        project, t, _ = job
        make_requirement(t["brief"], depends_on=[t["proof"]])
        make_requirement(t["proof"], depends_on=[t["brief"]])
        with pytest.raises(IntegrityError):
            svc.get_dependency_graph(project.id)

    def test_dependency_view(self, job, make_requirement):
        project, t, f = job
        make_requirement(t["proof"], depends_on=[t["brief"]])
        view = svc.get_form_dependency_view(project.id, f["proof"].id)
        assert [n.form_id for n in view.blocking_dependencies] == [f["brief"].id]
        assert view.can_proceed is False
        assert [n.form_id for n in view.next_in_sequence] == [f["print"].id]

    def test_dependency_view_form_of_other_project(self, job, make_project):
        _, _, f = job
        other = make_project("Other")
        with pytest.raises(NotFoundError):
            svc.get_form_dependency_view(other.id, f["brief"].id)

    # ── 2. Requirement resolution ──────────────────────────────────────

    def test_phase_specific_requirement_wins(self, make_project, make_phase, make_template,
                                             make_form, make_requirement):
        project = make_project()
        phase = make_phase(project, "Install")
        a_t, b_t, c_t = make_template("A"), make_template("B"), make_template("C")
        a = make_form(project, a_t)
        b = make_form(project, b_t)
        c = make_form(project, c_t, phase=phase)
        make_requirement(c_t, depends_on=[a_t])
        make_requirement(c_t, depends_on=[b_t], phase=phase, is_blocking=False)

        node = svc.get_dependency_graph(project.id).node(c.id)
        assert node.dependencies == (b.id,)
        assert node.is_blocking is False
        assert a.id not in node.dependencies

    # ── 3. Missing dependency policy ───────────────────────────────────

    def test_missing_dependency_warns_by_default(self, job, make_template, make_requirement):
        project, t, f = job
        absent = make_template("Vehicle Survey")
        make_requirement(t["proof"], depends_on=[absent, t["brief"]])

        graph = svc.get_dependency_graph(project.id)
        assert graph.node(f["proof"].id).dependencies == (f["brief"].id,)
        assert [w.missing_template_id for w in graph.warnings] == [absent.id]

    def test_dependency_view_reports_dropped_dependency(self, job, make_template, make_requirement):
        project, t, f = job
        absent = make_template("Vehicle Survey")
        make_requirement(t["proof"], depends_on=[absent, t["brief"]])

        data = svc.get_form_dependency_view(project.id, f["proof"].id).to_dict()
        assert [w["missing_template_id"] for w in data["warnings"]] == [absent.id]
        assert svc.get_form_dependency_view(project.id, f["brief"].id).warnings == ()

    def test_missing_dependency_strict_policy(self, app, monkeypatch, job, make_template, make_requirement):
        project, t, _ = job
        monkeypatch.setitem(app.config, "DEPENDENCY_MISSING_POLICY", "error")
        make_requirement(t["proof"], depends_on=[make_template("Vehicle Survey")])
        with pytest.raises(IntegrityError):
            svc.get_dependency_graph(project.id)


class TestUpdateDependencies:

    # ── 4. Replace / clear ──────────────────────────────────────────────

    def test_creates_requirement_in_declared_order(self, job):
        project, t, f = job
        req = svc.update_form_dependencies(f["print"].id, [f["proof"].id, f["brief"].id])
        assert req.template_id == t["print"].id
        assert req.phase_id is None
        assert req.depends_on_ids == [t["proof"].id, t["brief"].id]
        graph = svc.get_dependency_graph(project.id)
        assert graph.node(f["print"].id).dependencies == (f["proof"].id, f["brief"].id)

    def test_replaces_existing_set(self, job, make_requirement):
        _, t, f = job
        make_requirement(t["print"], depends_on=[t["brief"]])
        req = svc.update_form_dependencies(f["print"].id, [f["proof"].id])
        assert req.depends_on_ids == [t["proof"].id]
        assert FormCompletionRequirement.query.filter_by(template_id=t["print"].id).count() == 1

    def test_reorders_existing_targets(self, job, make_requirement):
        _, t, f = job
        make_requirement(t["print"], depends_on=[t["brief"], t["proof"]])
        req = svc.update_form_dependencies(f["print"].id, [f["proof"].id, f["brief"].id])
        assert req.depends_on_ids == [t["proof"].id, t["brief"].id]

    def test_empty_list_clears(self, job, make_requirement):
        project, t, f = job
        make_requirement(t["print"], depends_on=[t["brief"]])
        svc.update_form_dependencies(f["print"].id, [])
        assert svc.get_dependency_graph(project.id).node(f["print"].id).dependencies == ()

    def test_flags_updated(self, job):
        _, _, f = job
        req = svc.update_form_dependencies(
            f["proof"].id, [f["brief"].id], is_blocking=False, blocking_scope="TASK",
        )
        assert req.is_blocking is False
        assert req.blocking_scope == "TASK"

    def test_new_requirement_blocks_by_default(self, job):
        _, _, f = job
        assert svc.update_form_dependencies(f["proof"].id, [f["brief"].id]).is_blocking is True

    # ── 5. Rejected input ──────────────────────────────────────────────

    def test_self_dependency_rejected(self, job):
        _, _, f = job
        with pytest.raises(ValidationError, match="itself"):
            svc.update_form_dependencies(f["brief"].id, [f["brief"].id])

    def test_cycle_rejected_and_nothing_written(self, job, make_requirement):
        _, t, f = job
        make_requirement(t["proof"], depends_on=[t["brief"]])
        make_requirement(t["print"], depends_on=[t["proof"]])
        with pytest.raises(ValidationError, match="cycle") as exc:
            svc.update_form_dependencies(f["brief"].id, [f["print"].id])
        assert set(exc.value.details["cycle_template_ids"]) == {t["brief"].id, t["proof"].id, t["print"].id}
        assert FormCompletionRequirement.query.filter_by(template_id=t["brief"].id).count() == 0

    def test_unknown_dependency_rejected(self, job):
        _, _, f = job
        with pytest.raises(NotFoundError) as exc:
            svc.update_form_dependencies(f["print"].id, [f["brief"].id, 999])
        assert exc.value.resource_id == [999]

    def test_cross_project_dependency_rejected(self, job, make_project, make_template, make_form):
        _, _, f = job
        foreign = make_form(make_project("Other job"), make_template("Foreign"))
        with pytest.raises(NotFoundError):
            svc.update_form_dependencies(f["print"].id, [foreign.id])

    def test_unknown_form_rejected(self):
        with pytest.raises(NotFoundError):
            svc.update_form_dependencies(999, [])

    @pytest.mark.parametrize("bad", ["1,2", [1, 1], ["x"], [True], None])
    def test_malformed_ids_rejected(self, job, bad):
        _, _, f = job
        if isinstance(bad, list) and bad and bad[0] == 1:
            bad = [f["brief"].id, f["brief"].id]
        with pytest.raises(ValidationError):
            svc.update_form_dependencies(f["print"].id, bad)

    def test_invalid_blocking_scope_rejected(self, job):
        _, _, f = job
        with pytest.raises(ValidationError):
            svc.update_form_dependencies(f["print"].id, [], blocking_scope="PROJECT")


class TestRemoveDependency:

    # ── 6. Remove one ──────────────────────────────────────────────────

    def test_remove_keeps_remaining_order(self, job, make_template, make_form, make_requirement):
        project, t, f = job
        extra_t = make_template("Colour Match")
        extra = make_form(project, extra_t, order=4)
        make_requirement(t["print"], depends_on=[t["brief"], t["proof"], extra_t])

        req = svc.remove_form_dependency(f["print"].id, f["proof"].id)

        assert req.depends_on_ids == [t["brief"].id, extra_t.id]
        assert svc.get_dependency_graph(project.id).node(f["print"].id).dependencies == (
            f["brief"].id, extra.id,
        )

    def test_remove_undeclared_raises(self, job, make_requirement):
        _, t, f = job
        make_requirement(t["print"], depends_on=[t["brief"]])
        with pytest.raises(NotFoundError):
            svc.remove_form_dependency(f["print"].id, f["proof"].id)

    def test_remove_without_requirement_raises(self, job):
        _, _, f = job
        with pytest.raises(NotFoundError):
            svc.remove_form_dependency(f["print"].id, f["brief"].id)
