"""
Shared pytest fixtures for the PrintFlow engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_*: seed factories that write straight through the models
"""

import pytest

from printflow import create_app
from printflow.middleware.timing import reset_metrics
from printflow.models import db as _db
from printflow.models.forms import (
    FormCompletionRequirement,
    FormInstance,
    FormResponse,
    FormTemplate,
    RequirementDependency,
)
from printflow.models.project import Project, ProjectPhase, ProjectTask

# One required TEXT field, one optional TEXTAREA
REQUIRED_NAME_SCHEMA = {
    "sections": [
        {
            "id": "customer",
            "title": "Customer",
            "fields": [
                {"id": "customer_name", "label": "Customer name", "type": "TEXT", "required": True},
                {"id": "notes", "label": "Notes", "type": "TEXTAREA", "required": False},
            ],
        }
    ]
}

NO_REQUIRED_SCHEMA = {
    "sections": [
        {"id": "misc", "fields": [{"id": "comment", "type": "TEXT", "required": False}]}
    ]
}


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        reset_metrics()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Seed factories ───────────────────────────────────────────────────────


@pytest.fixture()
def make_project():
    def _make(name="Fleet wrap: 12 vans", **kw):
        project = Project(name=name, **kw)
        _db.session.add(project)
        _db.session.commit()
        return project
    return _make


@pytest.fixture()
def make_phase():
    def _make(project, name="Design", order=0):
        phase = ProjectPhase(project_id=project.id, name=name, order=order)
        _db.session.add(phase)
        _db.session.commit()
        return phase
    return _make


@pytest.fixture()
def make_template():
    def _make(name="Design Brief", schema=None):
        template = FormTemplate(name=name)
        _db.session.add(template)
        template.add_version(REQUIRED_NAME_SCHEMA if schema is None else schema)
        _db.session.commit()
        return template
    return _make


@pytest.fixture()
def make_form():
    """Instance of ``template`` in ``project``, optionally with a current response."""
    def _make(project, template, status="DRAFT", order=None, phase=None, response=None):
        instance = FormInstance(
            project_id=project.id,
            template_id=template.id,
            version_id=template.latest_version().id,
            phase_id=phase.id if phase else None,
            status=status,
            order=order,
        )
        _db.session.add(instance)
        _db.session.flush()
        if response is not None:
            _db.session.add(FormResponse(instance_id=instance.id, data=response, is_current=True))
        _db.session.commit()
        return instance
    return _make


@pytest.fixture()
def make_requirement():
    """Declare that ``template`` depends on ``depends_on`` templates, in order."""
    def _make(template, depends_on=(), is_blocking=True, phase=None, blocking_scope="PHASE"):
        req = FormCompletionRequirement(
            template_id=template.id,
            phase_id=phase.id if phase else None,
            is_blocking=is_blocking,
            blocking_scope=blocking_scope,
        )
        req.dependencies = [
            RequirementDependency(depends_on_template_id=t.id, position=pos)
            for pos, t in enumerate(depends_on)
        ]
        _db.session.add(req)
        _db.session.commit()
        return req
    return _make


@pytest.fixture()
def make_task():
    def _make(project, name="Print panels", man_hours=8.0, **kw):
        task = ProjectTask(project_id=project.id, name=name, man_hours=man_hours, **kw)
        _db.session.add(task)
        _db.session.commit()
        return task
    return _make
