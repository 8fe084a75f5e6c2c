"""
Form dependency graph: builder and queries.

The graph is an arena: nodes live in a list, edges are lists of integer
positions into that list. Nothing holds object references to other nodes, so
the structure cannot loop back on itself in memory and serializes as plain
ids. A graph is built from plain ``FormRecord`` values for one project and is
thrown away after the request; it is never cached because instance status
changes between builds.

Build rules:
    - one node per form instance
    - forward edges follow the node's requirement ``depends_on`` templates,
      resolved to the instance of that template in the same project, in
      declaration order
    - a declared template with no instance in the project is dropped and
      reported as a GraphWarning ("warn" policy) or raises IntegrityError
      ("error" policy)
    - dependents are filled by one reverse pass over the forward edges
    - any cycle raises IntegrityError

Queries (``query_form``):
    blocking_dependencies  declared dependencies not yet COMPLETED, when the
                           focal node's requirement is blocking
    dependent_forms        nodes that list the focal node as a dependency
    can_proceed            no blocking dependencies
    next_in_sequence       nodes with a larger ``order``, ascending, stable
"""

import heapq
import logging
from dataclasses import dataclass, field

from printflow.core.exceptions import IntegrityError, NotFoundError
from printflow.models.forms import COMPLETED

logger = logging.getLogger(__name__)

MISSING_POLICIES = {"warn", "error"}


# ── Input / output value types ───────────────────────────────────────────────


@dataclass(frozen=True)
class FormRecord:
    """Everything the builder needs to know about one form instance."""

    form_id: int
    form_name: str
    status: str
    template_id: int
    order: int | None = None
    depends_on_templates: tuple[int, ...] = ()
    is_blocking: bool = False


@dataclass(frozen=True)
class DependencyNode:
    form_id: int
    form_name: str
    status: str
    template_id: int
    order: int | None
    is_blocking: bool
    dependencies: tuple[int, ...]
    dependents: tuple[int, ...]

    @property
    def is_completed(self) -> bool:
        return self.status == COMPLETED

    def to_dict(self) -> dict:
        return {
            "form_id": self.form_id,
            "form_name": self.form_name,
            "status": self.status,
            "template_id": self.template_id,
            "dependencies": list(self.dependencies),
            "dependents": list(self.dependents),
            "order": self.order,
            "is_blocking": self.is_blocking,
        }


@dataclass(frozen=True)
class GraphWarning:
    form_id: int
    missing_template_id: int
    message: str

    def to_dict(self) -> dict:
        return {
            "form_id": self.form_id,
            "missing_template_id": self.missing_template_id,
            "message": self.message,
        }


@dataclass
class DependencyGraph:
    nodes: list[DependencyNode] = field(default_factory=list)
    warnings: list[GraphWarning] = field(default_factory=list)
    _index: dict[int, int] = field(default_factory=dict, repr=False)
    _edges: list[list[int]] = field(default_factory=list, repr=False)

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, form_id) -> bool:
        return form_id in self._index

    def position(self, form_id: int) -> int:
        try:
            return self._index[form_id]
        except KeyError:
            raise NotFoundError(
                "FormInstance", form_id,
                message=f"Form id={form_id} not found in dependency graph",
            ) from None

    def node(self, form_id: int) -> DependencyNode:
        return self.nodes[self.position(form_id)]

    def dependency_positions(self, form_id: int) -> list[int]:
        return list(self._edges[self.position(form_id)])

    def to_list(self) -> list[dict]:
        return [n.to_dict() for n in self.nodes]

    def to_dict(self) -> dict:
        return {
            "nodes": self.to_list(),
            "warnings": [w.to_dict() for w in self.warnings],
        }


@dataclass(frozen=True)
class FormDependencyView:
    current_form: DependencyNode
    blocking_dependencies: tuple[DependencyNode, ...]
    dependent_forms: tuple[DependencyNode, ...]
    can_proceed: bool
    next_in_sequence: tuple[DependencyNode, ...]
    warnings: tuple[GraphWarning, ...] = ()

    def to_dict(self) -> dict:
        return {
            "current_form": self.current_form.to_dict(),
            "blocking_dependencies": [n.to_dict() for n in self.blocking_dependencies],
            "dependent_forms": [n.to_dict() for n in self.dependent_forms],
            "can_proceed": self.can_proceed,
            "next_in_sequence": [n.to_dict() for n in self.next_in_sequence],
            "warnings": [w.to_dict() for w in self.warnings],
        }


# ── Cycle detection ──────────────────────────────────────────────────────────


def find_cycle(edges: list[list[int]]) -> list[int] | None:
    """Return the positions of one cycle in an index graph, or None if acyclic.

    Iterative three-colour DFS, so deep chains do not hit the recursion limit.
    The returned path starts and ends at the same position.
    """
    white, grey, black = 0, 1, 2
    colour = [white] * len(edges)

    for root in range(len(edges)):
        if colour[root] != white:
            continue
        path = [root]
        iters = [iter(edges[root])]
        colour[root] = grey
        while iters:
            nxt = next(iters[-1], None)
            if nxt is None:
                colour[path.pop()] = black
                iters.pop()
                continue
            if colour[nxt] == grey:
                return path[path.index(nxt):] + [nxt]
            if colour[nxt] == white:
                colour[nxt] = grey
                path.append(nxt)
                iters.append(iter(edges[nxt]))
    return None


def find_key_cycle(adjacency: dict) -> list | None:
    """``find_cycle`` for a graph keyed by arbitrary hashable ids."""
    pos: dict = {}
    for key, targets in adjacency.items():
        for k in (key, *targets):
            pos.setdefault(k, len(pos))
    keys = list(pos)
    edges = [[pos[t] for t in adjacency.get(k, ())] for k in keys]
    cycle = find_cycle(edges)
    return [keys[i] for i in cycle] if cycle else None


def topological_positions(graph: DependencyGraph) -> list[int]:
    """Positions ordered so every dependency precedes its dependents.

    Kahn's algorithm; among ready nodes the lowest arena position goes first,
    which keeps the order stable between calls.
    """
    indegree = [len(edges) for edges in graph._edges]
    reverse: list[list[int]] = [[] for _ in graph.nodes]
    for pos, edges in enumerate(graph._edges):
        for dep in edges:
            reverse[dep].append(pos)

    ready = [pos for pos, d in enumerate(indegree) if d == 0]
    heapq.heapify(ready)
    ordered = []
    while ready:
        pos = heapq.heappop(ready)
        ordered.append(pos)
        for succ in reverse[pos]:
            indegree[succ] -= 1
            if indegree[succ] == 0:
                heapq.heappush(ready, succ)
    return ordered


# ── Builder ──────────────────────────────────────────────────────────────────


def build_graph(records: list[FormRecord], missing_policy: str = "warn") -> DependencyGraph:
    """Build the dependency graph for one project's form instances.

    Args:
        records: One FormRecord per instance, in stable input order.
        missing_policy: "warn" or "error" for declared dependencies whose
            template has no instance among ``records``.

    Returns:
        The built DependencyGraph. Empty input yields an empty graph.

    Raises:
        IntegrityError: On a cycle (including self-dependency) or, under the
            "error" policy, on an unresolvable declared dependency.
    """
    if missing_policy not in MISSING_POLICIES:
        raise ValueError(f"missing_policy must be one of {sorted(MISSING_POLICIES)}")

    index: dict[int, int] = {}
    by_template: dict[int, int] = {}
    for pos, rec in enumerate(records):
        if rec.form_id in index:
            raise IntegrityError(f"Form id={rec.form_id} appears twice in the project", [rec.form_id])
        index[rec.form_id] = pos
        if rec.template_id in by_template:
            other = records[by_template[rec.template_id]].form_id
            raise IntegrityError(
                f"Template id={rec.template_id} has more than one instance in the project",
                [other, rec.form_id],
            )
        by_template[rec.template_id] = pos

    # Forward edges, in declaration order
    edges: list[list[int]] = []
    warnings: list[GraphWarning] = []
    for pos, rec in enumerate(records):
        out: list[int] = []
        for template_id in rec.depends_on_templates:
            dep_pos = by_template.get(template_id)
            if dep_pos is None:
                msg = (
                    f"Form id={rec.form_id} declares a dependency on template "
                    f"id={template_id}, which has no instance in this project"
                )
                if missing_policy == "error":
                    raise IntegrityError(msg, [rec.form_id])
                logger.warning(msg, extra={"form_id": rec.form_id})
                warnings.append(GraphWarning(rec.form_id, template_id, msg))
                continue
            if dep_pos not in out:
                out.append(dep_pos)
        edges.append(out)

    cycle = find_cycle(edges)
    if cycle:
        ids = [records[p].form_id for p in cycle]
        raise IntegrityError(
            "Dependency cycle detected: " + " → ".join(str(i) for i in ids),
            ids[:-1],
        )

    # Reverse pass
    reverse: list[list[int]] = [[] for _ in records]
    for pos, out in enumerate(edges):
        for dep_pos in out:
            reverse[dep_pos].append(pos)

    nodes = [
        DependencyNode(
            form_id=rec.form_id,
            form_name=rec.form_name,
            status=rec.status,
            template_id=rec.template_id,
            order=rec.order,
            is_blocking=rec.is_blocking,
            dependencies=tuple(records[p].form_id for p in edges[pos]),
            dependents=tuple(records[p].form_id for p in reverse[pos]),
        )
        for pos, rec in enumerate(records)
    ]
    return DependencyGraph(nodes=nodes, warnings=warnings, _index=index, _edges=edges)


# ── Queries ──────────────────────────────────────────────────────────────────


def blocking_dependencies(graph: DependencyGraph, form_id: int) -> list[DependencyNode]:
    focal = graph.node(form_id)
    if not focal.is_blocking:
        return []
    return [
        graph.nodes[p]
        for p in graph.dependency_positions(form_id)
        if not graph.nodes[p].is_completed
    ]


def dependent_forms(graph: DependencyGraph, form_id: int) -> list[DependencyNode]:
    focal = graph.node(form_id)
    return [graph.node(fid) for fid in focal.dependents]


def can_proceed(graph: DependencyGraph, form_id: int) -> bool:
    return not blocking_dependencies(graph, form_id)


def next_in_sequence(graph: DependencyGraph, form_id: int) -> list[DependencyNode]:
    focal = graph.node(form_id)
    if focal.order is None:
        return []
    later = [
        (n.order, pos, n)
        for pos, n in enumerate(graph.nodes)
        if n.order is not None and n.order > focal.order
    ]
    later.sort(key=lambda t: (t[0], t[1]))
    return [n for _, _, n in later]


def query_form(graph: DependencyGraph, form_id: int) -> FormDependencyView:
    """Compute the full dependency view for one form.

    Raises:
        NotFoundError: If ``form_id`` is not a node of the graph.
    """
    focal = graph.node(form_id)
    blocking = blocking_dependencies(graph, form_id)
    return FormDependencyView(
        current_form=focal,
        blocking_dependencies=tuple(blocking),
        dependent_forms=tuple(dependent_forms(graph, form_id)),
        can_proceed=not blocking,
        next_in_sequence=tuple(next_in_sequence(graph, form_id)),
        warnings=tuple(w for w in graph.warnings if w.form_id == form_id),
    )
