from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

"""
Cerebra learning map  (immutable value types)
---------------------------------------------
A learning map is what the generation service (or a curated template) hands
back for a topic: an ordered list of topic nodes and an ordered list of
prerequisite edges.

  • Every type here is a frozen dataclass → safe to share between the layout
    engine, the view overlay and the HTTP session store
  • from_dict() is the single validation boundary for collaborator output
  • with_completion() returns a *new* map; nothing mutates in place
"""


# ---------------------------------------------------------------------------
# Difficulty levels
# ---------------------------------------------------------------------------
LEVELS: tuple[str, ...] = ("beginner", "intermediate", "advanced")


# ---------------------------------------------------------------------------
# Node / edge value types
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Resource:
	"""A learning resource attached to a node (video, article, book, other)."""
	type: str
	title: str
	url: str = ""

	@classmethod
	def from_dict(cls, data: dict[str, Any]) -> "Resource":
		return cls(
			type=str(data.get("type") or "other"),
			title=str(data.get("title") or ""),
			url=str(data.get("url") or ""),
		)

	def to_dict(self) -> dict[str, str]:
		return {"type": self.type, "title": self.title, "url": self.url}


@dataclass(frozen=True, slots=True)
class LearningNode:
	"""A single topic on the map."""
	id: str
	title: str
	description: str = ""
	level: str = "beginner"
	category: str = "general"
	resources: tuple[Resource, ...] = ()
	children: tuple[str, ...] = ()
	completed: bool = False

	@classmethod
	def from_dict(cls, data: dict[str, Any]) -> "LearningNode":
		if not isinstance(data, dict):
			raise ValueError(f"node must be an object, got {type(data).__name__}")
		node_id = data.get("id")
		if node_id is None or str(node_id) == "":
			raise ValueError("node is missing its 'id'")
		return cls(
			id=str(node_id),
			title=str(data.get("title") or ""),
			description=str(data.get("description") or ""),
			level=str(data.get("level") or "beginner").lower(),
			category=str(data.get("category") or "general"),
			resources=tuple(
				Resource.from_dict(r) for r in (data.get("resources") or [])
				if isinstance(r, dict)
			),
			children=tuple(str(c) for c in (data.get("children") or [])),
			completed=bool(data.get("completed", False)),
		)

	def to_dict(self) -> dict[str, Any]:
		out: dict[str, Any] = {
			"id":          self.id,
			"title":       self.title,
			"description": self.description,
			"level":       self.level,
			"category":    self.category,
			"resources":   [r.to_dict() for r in self.resources],
			"children":    list(self.children),
		}
		if self.completed:
			out["completed"] = True
		return out

	def matches(self, query: str) -> bool:
		"""Case-insensitive substring match on title or description."""
		q = query.lower()
		return q in self.title.lower() or q in self.description.lower()


@dataclass(frozen=True, slots=True)
class Edge:
	"""Directed prerequisite edge: source → target."""
	source: str
	target: str

	@property
	def id(self) -> str:
		return f"e{self.source}-{self.target}"

	@property
	def is_self_loop(self) -> bool:
		return self.source == self.target

	@classmethod
	def from_dict(cls, data: dict[str, Any]) -> "Edge":
		if not isinstance(data, dict) or "from" not in data or "to" not in data:
			raise ValueError(f"edge must have 'from' and 'to': {data!r}")
		return cls(source=str(data["from"]), target=str(data["to"]))

	def to_dict(self) -> dict[str, str]:
		return {"from": self.source, "to": self.target}


# ---------------------------------------------------------------------------
# LearningMap
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class LearningMap:
	"""
	Topic label + ordered nodes + ordered edges.

	Node ids are unique within a map. Edges may still dangle (reference a
	node that is not present); the layout engine tolerates that, so it is
	not rejected here.
	"""
	topic: str
	nodes: tuple[LearningNode, ...] = ()
	edges: tuple[Edge, ...] = ()
	template_id: str | None = None
	template_name: str | None = None

	def __post_init__(self) -> None:
		seen: set[str] = set()
		for n in self.nodes:
			if n.id in seen:
				raise ValueError(f"duplicate node id {n.id!r}")
			seen.add(n.id)

	# ---- helpers -----------------------------------------------------------
	@property
	def num_nodes(self) -> int:
		return len(self.nodes)

	def node_index(self) -> dict[str, LearningNode]:
		return {n.id: n for n in self.nodes}

	def get_node(self, node_id: str) -> LearningNode | None:
		for n in self.nodes:
			if n.id == node_id:
				return n
		return None

	def completed_ids(self) -> set[str]:
		return {n.id for n in self.nodes if n.completed}

	# ---- completion --------------------------------------------------------
	def with_completion(self, node_id: str, completed: bool) -> "LearningMap":
		"""New map with one node's completion flag set; unknown id → self."""
		node = self.get_node(node_id)
		if node is None or node.completed == completed:
			return self
		nodes = tuple(
			replace(n, completed=completed) if n.id == node_id else n
			for n in self.nodes
		)
		return replace(self, nodes=nodes)

	def with_completed_ids(self, completed: set[str]) -> "LearningMap":
		"""New map whose completion flags mirror *completed* exactly."""
		nodes = tuple(
			n if n.completed == (n.id in completed) else replace(n, completed=n.id in completed)
			for n in self.nodes
		)
		return replace(self, nodes=nodes)

	# ---- (de)serialisation -------------------------------------------------
	@classmethod
	def from_dict(cls, data: dict[str, Any]) -> "LearningMap":
		"""
		Build a map from the collaborator's JSON shape:
			{ topic, nodes: [...], edges: [{from, to}, ...] }

		Raises ValueError when the structure itself is unusable.
		"""
		if not isinstance(data, dict):
			raise ValueError("learning map must be a JSON object")
		raw_nodes = data.get("nodes")
		raw_edges = data.get("edges")
		if not isinstance(raw_nodes, list):
			raise ValueError("Invalid or missing 'nodes' array")
		if not isinstance(raw_edges, list):
			raise ValueError("Invalid or missing 'edges' array")
		return cls(
			topic=str(data.get("topic") or ""),
			nodes=tuple(LearningNode.from_dict(n) for n in raw_nodes),
			edges=tuple(Edge.from_dict(e) for e in raw_edges),
			template_id=data.get("templateId"),
			template_name=data.get("templateName"),
		)

	def to_dict(self) -> dict[str, Any]:
		out: dict[str, Any] = {
			"topic": self.topic,
			"nodes": [n.to_dict() for n in self.nodes],
			"edges": [e.to_dict() for e in self.edges],
		}
		if self.template_id:
			out["templateId"] = self.template_id
		if self.template_name:
			out["templateName"] = self.template_name
		return out


# ---------------------------------------------------------------------------
# Sample map (plain data, cheap to rebuild from)
# ---------------------------------------------------------------------------
SAMPLE_WEB_MAP: dict[str, Any] = {
	"topic": "Frontend Basics",
	"nodes": [
		{"id": "1", "title": "How the Web Works", "description": "HTTP, browsers, DNS",               "level": "beginner",     "category": "fundamentals", "children": ["2", "3"]},
		{"id": "2", "title": "HTML",              "description": "Document structure and semantics", "level": "beginner",     "category": "frontend",     "children": ["4"]},
		{"id": "3", "title": "CSS",               "description": "Selectors, layout, responsive design with flexbox and grid", "level": "beginner", "category": "frontend", "children": ["4"]},
		{"id": "4", "title": "JavaScript",        "description": "Language basics and the DOM",      "level": "intermediate", "category": "fundamentals", "children": ["5", "6"]},
		{"id": "5", "title": "React",             "description": "Components, state and hooks",      "level": "advanced",     "category": "frontend"},
		{"id": "6", "title": "Build Tools",       "description": "Bundlers, linters, package managers", "level": "intermediate", "category": "tools"},
	],
	"edges": [
		{"from": "1", "to": "2"},
		{"from": "1", "to": "3"},
		{"from": "2", "to": "4"},
		{"from": "3", "to": "4"},
		{"from": "4", "to": "5"},
		{"from": "4", "to": "6"},
	],
}


def build_sample_map() -> LearningMap:
	"""Build from the sample data — one line, instant rebuild."""
	return LearningMap.from_dict(SAMPLE_WEB_MAP)
