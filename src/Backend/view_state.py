"""
Cerebra view overlay
--------------------
Layers the user's transient selections (difficulty filter, search text,
completed nodes) over an already positioned diagram. Nothing here computes
coordinates: filter and search only hide / highlight, and a completion
toggle only swaps node data and re-derives the touching edge styles.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from graph import LEVELS, LearningMap, LearningNode
from layout import Point, PositionedDiagram, StyledEdge


# ---------------------------------------------------------------------------
# View state  (one per session, never persisted as such)
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class ViewState:
	active_filter: str | None = None
	search: str = ""
	completed: set[str] = field(default_factory=set)

	@classmethod
	def from_map(cls, lm: LearningMap) -> "ViewState":
		"""Fresh view whose completion set mirrors the map's node flags."""
		return cls(completed=lm.completed_ids())

	def set_filter(self, level: str | None) -> None:
		if level is not None:
			level = level.strip().lower() or None
		if level is not None and level not in LEVELS:
			raise ValueError(f"unknown difficulty level {level!r}")
		self.active_filter = level

	def set_search(self, query: str | None) -> None:
		self.search = query or ""

	def to_dict(self) -> dict[str, Any]:
		return {
			"filter":    self.active_filter,
			"search":    self.search,
			"completed": sorted(self.completed),
		}


@dataclass(frozen=True, slots=True)
class ToggleCompletion:
	"""Request to change one node's completion; completed=None flips it."""
	node_id: str
	completed: bool | None = None


# ---------------------------------------------------------------------------
# Render output
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RenderNode:
	id: str
	position: Point
	data: LearningNode
	highlighted: bool = False

	def to_dict(self) -> dict[str, Any]:
		return {
			"id":          self.id,
			"position":    self.position.to_dict(),
			"data":        self.data.to_dict(),
			"highlighted": self.highlighted,
		}


@dataclass(frozen=True, slots=True)
class RenderDiagram:
	nodes: tuple[RenderNode, ...] = ()
	edges: tuple[StyledEdge, ...] = ()
	match_count: int = 0
	completion_percentage: float = 0.0

	@property
	def visible_ids(self) -> list[str]:
		return [n.id for n in self.nodes]

	def to_dict(self) -> dict[str, Any]:
		return {
			"nodes":                [n.to_dict() for n in self.nodes],
			"edges":                [e.to_dict() for e in self.edges],
			"matchCount":           self.match_count,
			"completionPercentage": self.completion_percentage,
		}


# ---------------------------------------------------------------------------
# Derived metrics
# ---------------------------------------------------------------------------
def completion_percentage(diagram: PositionedDiagram, completed: set[str]) -> float:
	"""100 · completed / total, counting only ids present in the diagram."""
	total = len(diagram.nodes)
	if total == 0:
		return 0.0
	done = sum(1 for nid in diagram.nodes if nid in completed)
	return 100.0 * done / total


# ---------------------------------------------------------------------------
# applyView
# ---------------------------------------------------------------------------
def apply_view(diagram: PositionedDiagram, view: ViewState) -> RenderDiagram:
	"""
	Filter, then search. A node is visible when it passes the level filter
	and, if a query is set, matches it. match_count counts matches among the
	filter-passing nodes. Edges survive only between visible nodes.
	"""
	query = view.search.strip()

	filtered = [
		node for node in diagram.nodes.values()
		if view.active_filter is None or node.level == view.active_filter
	]

	if query:
		matching = [node for node in filtered if node.matches(query)]
		visible = matching
		match_count = len(matching)
	else:
		visible = filtered
		match_count = 0

	visible_ids = {node.id for node in visible}
	nodes = tuple(
		RenderNode(node.id, diagram.positions[node.id], node, highlighted=bool(query))
		for node in visible
	)
	edges = tuple(
		e for e in diagram.edges
		if e.source in visible_ids and e.target in visible_ids
	)
	return RenderDiagram(
		nodes=nodes,
		edges=edges,
		match_count=match_count,
		completion_percentage=completion_percentage(diagram, view.completed),
	)


# ---------------------------------------------------------------------------
# Completion toggle
# ---------------------------------------------------------------------------
def toggle_completion(
	lm: LearningMap,
	diagram: PositionedDiagram,
	view: ViewState,
	command: ToggleCompletion,
) -> tuple[LearningMap, PositionedDiagram]:
	"""
	Apply *command* to the map, the diagram's node copy and the view's
	completion set. Returns the new (map, diagram); coordinates are reused
	as-is. An unknown node id leaves everything unchanged.
	"""
	node = diagram.nodes.get(command.node_id)
	if node is None or lm.get_node(command.node_id) is None:
		return lm, diagram

	completed = (not node.completed) if command.completed is None else command.completed

	new_map = lm.with_completion(node.id, completed)
	new_diagram = diagram.with_node(new_map.get_node(node.id))
	if completed:
		view.completed.add(node.id)
	else:
		view.completed.discard(node.id)
	return new_map, new_diagram
