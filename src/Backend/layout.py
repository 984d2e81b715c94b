"""
Cerebra layout engine
=====================
Turns a LearningMap into a PositionedDiagram: one (x, y) per node and one
style record per edge. Pure function of the map, no view state involved.

Two-pass tidy-tree layout, left → right:

  1. Extent pass   — memoised per node id, the vertical room a subtree needs:
                     max(NODE_HEIGHT, Σ child extents + (n-1)·SIBLING_GAP)
  2. Placement     — depth-first from the root; x = depth · HORIZONTAL_SPACING,
                     children stacked top → bottom in edge order, each node
                     centred on the span its own subtree occupies.

Anything the root cannot reach (disconnected nodes, further roots, the rest
of a cycle) is placed as an extra level-0 root underneath. Finally every y
is shifted by one offset so the root sits at -extent(root) / 2.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any

import numpy as np

from graph import Edge, LearningMap, LearningNode

log = logging.getLogger(__name__)


# ── geometry constants ──────────────────────────────────────────────
NODE_WIDTH                = 250
NODE_HEIGHT               = 120     # minimum subtree extent
HORIZONTAL_SPACING        = 300     # x distance between depth levels
SIBLING_GAP               = 30      # base vertical gap between siblings
DESCRIPTION_STRETCH_CHARS = 60      # one extra gap unit per this many chars
MAX_GAP_FACTOR            = 3.0     # gap never exceeds SIBLING_GAP × this
ROOT_GAP                  = 2 * SIBLING_GAP

# ── edge style tables ───────────────────────────────────────────────
_CATEGORY_GRADIENTS: dict[str, tuple[str, str]] = {
	"frontend":     ("#3b82f6", "#8b5cf6"),
	"backend":      ("#10b981", "#059669"),
	"database":     ("#f59e0b", "#d97706"),
	"fundamentals": ("#6366f1", "#4f46e5"),
	"tools":        ("#ec4899", "#db2777"),
	"general":      ("#64748b", "#475569"),
}
_DEFAULT_GRADIENT = ("#94a3b8", "#64748b")

_LEVEL_OPACITY: dict[str, float] = {
	"beginner":     0.9,
	"intermediate": 0.75,
	"advanced":     0.6,
}
_DEFAULT_OPACITY = 0.7

STROKE_WIDTH           = 2.5
COMPLETED_STROKE_WIDTH = 1.5
ARROW_SIZE             = 20
COMPLETED_ARROW_SIZE   = 14


# ---------------------------------------------------------------------------
# Output types
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Point:
	x: float
	y: float

	def to_dict(self) -> dict[str, float]:
		return {"x": self.x, "y": self.y}


@dataclass(frozen=True, slots=True)
class EdgeStyle:
	gradient_from: str
	gradient_to: str
	opacity: float
	stroke_width: float
	animated: bool
	drop_shadow: bool
	arrow_size: int

	def stroke_dict(self) -> dict[str, Any]:
		return {
			"gradient":    [self.gradient_from, self.gradient_to],
			"opacity":     self.opacity,
			"strokeWidth": self.stroke_width,
			"dropShadow":  self.drop_shadow,
		}


@dataclass(frozen=True, slots=True)
class StyledEdge:
	id: str
	source: str
	target: str
	style: EdgeStyle

	@property
	def animated(self) -> bool:
		return self.style.animated

	@property
	def arrow_size(self) -> int:
		return self.style.arrow_size

	def to_dict(self) -> dict[str, Any]:
		return {
			"id":          self.id,
			"source":      self.source,
			"target":      self.target,
			"strokeStyle": self.style.stroke_dict(),
			"animated":    self.style.animated,
			"arrowSize":   self.style.arrow_size,
		}


@dataclass(frozen=True, slots=True)
class PositionedDiagram:
	"""Coordinates, node data copies and styled edges, keyed by identity."""
	positions: dict[str, Point] = field(default_factory=dict)
	nodes: dict[str, LearningNode] = field(default_factory=dict)
	edges: tuple[StyledEdge, ...] = ()
	root_id: str | None = None
	extents: dict[str, float] = field(default_factory=dict)

	def with_node(self, node: LearningNode) -> "PositionedDiagram":
		"""
		Swap in new data for an existing node and re-derive the style of every
		edge touching it. Positions are shared untouched.
		"""
		if node.id not in self.nodes:
			return self
		nodes = dict(self.nodes)
		nodes[node.id] = node
		edges = tuple(
			StyledEdge(e.id, e.source, e.target, style_edge(nodes[e.source], nodes[e.target]))
			if node.id in (e.source, e.target) else e
			for e in self.edges
		)
		return replace(self, nodes=nodes, edges=edges)

	def bounds(self) -> dict[str, float]:
		"""Bounding box of all node boxes (for fit-to-view on the client)."""
		if not self.positions:
			return {"minX": 0.0, "minY": 0.0, "maxX": 0.0, "maxY": 0.0, "width": 0.0, "height": 0.0}
		xy = np.array([(p.x, p.y) for p in self.positions.values()], dtype=float)
		lo = xy.min(axis=0)
		hi = xy.max(axis=0) + (NODE_WIDTH, NODE_HEIGHT)
		return {
			"minX": float(lo[0]), "minY": float(lo[1]),
			"maxX": float(hi[0]), "maxY": float(hi[1]),
			"width": float(hi[0] - lo[0]), "height": float(hi[1] - lo[1]),
		}

	def to_dict(self) -> dict[str, Any]:
		return {
			"nodes": {nid: p.to_dict() for nid, p in self.positions.items()},
			"edges": [e.to_dict() for e in self.edges],
		}


# ---------------------------------------------------------------------------
# Edge styling
# ---------------------------------------------------------------------------
def style_edge(source: LearningNode, target: LearningNode) -> EdgeStyle:
	"""
	Colour by the source's category, opacity by the source's level.
	An edge into a completed node is drawn thin, static and without shadow.
	"""
	grad_from, grad_to = _CATEGORY_GRADIENTS.get(source.category.lower(), _DEFAULT_GRADIENT)
	opacity = _LEVEL_OPACITY.get(source.level.lower(), _DEFAULT_OPACITY)
	if target.completed:
		return EdgeStyle(grad_from, grad_to, opacity, COMPLETED_STROKE_WIDTH, False, False, COMPLETED_ARROW_SIZE)
	return EdgeStyle(grad_from, grad_to, opacity, STROKE_WIDTH, True, True, ARROW_SIZE)


def style_edges(edges: tuple[Edge, ...], index: dict[str, LearningNode]) -> tuple[StyledEdge, ...]:
	"""One StyledEdge per distinct edge whose endpoints both exist."""
	styled: list[StyledEdge] = []
	seen: set[str] = set()
	for e in edges:
		src = index.get(e.source)
		dst = index.get(e.target)
		if src is None or dst is None:
			log.debug("dangling edge %s skipped", e.id)
			continue
		if e.id in seen:
			continue
		seen.add(e.id)
		styled.append(StyledEdge(e.id, e.source, e.target, style_edge(src, dst)))
	return tuple(styled)


# ---------------------------------------------------------------------------
# Structure helpers
# ---------------------------------------------------------------------------
def _children_map(lm: LearningMap, index: dict[str, LearningNode]) -> dict[str, list[str]]:
	"""id → child ids in edge order; dangling edges and self-loops dropped."""
	children: dict[str, list[str]] = {n.id: [] for n in lm.nodes}
	for e in lm.edges:
		if e.source not in index or e.target not in index:
			continue
		if e.is_self_loop:
			log.warning("self-loop on node %r ignored for layout", e.source)
			continue
		kids = children[e.source]
		if e.target not in kids:
			kids.append(e.target)
	return children


def select_root(order: list[str], children: dict[str, list[str]]) -> str | None:
	"""First node in sequence with no incoming edge, else the first node."""
	if not order:
		return None
	has_parent = {c for kids in children.values() for c in kids}
	for nid in order:
		if nid not in has_parent:
			return nid
	log.info("no node without incoming edges; falling back to %r as root", order[0])
	return order[0]


# ---------------------------------------------------------------------------
# Pass 1 — subtree extents
# ---------------------------------------------------------------------------
def subtree_extents(order: list[str], children: dict[str, list[str]]) -> dict[str, float]:
	"""
	Memoised vertical extent for every node in *order*, computed post-order
	with an explicit stack so map depth is not bounded by the interpreter's
	recursion limit. A child already on the current DFS path (a back-edge of
	a cycle) contributes nothing.
	"""
	extents: dict[str, float] = {}

	def _enter(nid: str, path: set[str]) -> list:
		path.add(nid)
		return [nid, [c for c in children[nid] if c not in path], 0]

	for start in order:
		if start in extents:
			continue
		path: set[str] = set()
		stack = [_enter(start, path)]
		while stack:
			frame = stack[-1]
			nid, kids, i = frame
			while i < len(kids) and kids[i] in extents:
				i += 1
			if i < len(kids):
				frame[2] = i + 1
				stack.append(_enter(kids[i], path))
				continue
			total = sum(extents[c] for c in kids) + max(len(kids) - 1, 0) * SIBLING_GAP
			extents[nid] = max(float(NODE_HEIGHT), total)
			path.discard(nid)
			stack.pop()
	return extents


# ---------------------------------------------------------------------------
# Pass 2 — placement
# ---------------------------------------------------------------------------
def sibling_gap(node: LearningNode) -> float:
	"""Gap above a non-first sibling; longer descriptions get more room."""
	stretch = 1.0 + len(node.description) / DESCRIPTION_STRETCH_CHARS
	return SIBLING_GAP * min(stretch, MAX_GAP_FACTOR)


def _place(
	start: str,
	level: int,
	top: float,
	children: dict[str, list[str]],
	extents: dict[str, float],
	index: dict[str, LearningNode],
	coords: dict[str, tuple[float, float]],
	placed: set[str],
) -> float:
	"""
	Place *start*'s subtree from y=top downward; return the span's bottom.

	Depth-first with an explicit stack. Each frame is
	[id, level, top, cursor, next child index, first child pending]; a
	finished child hands its span bottom to the parent's cursor.
	"""
	if start in placed:
		return top
	placed.add(start)

	bottom = top
	stack = [[start, level, top, top, 0, True]]
	while stack:
		frame = stack[-1]
		nid, lvl, span_top, cursor, i, first = frame
		kids = children[nid]
		while i < len(kids) and kids[i] in placed:
			i += 1
		if i < len(kids):
			child = kids[i]
			if not first:
				cursor += sibling_gap(index[child])
			frame[3], frame[4], frame[5] = cursor, i + 1, False
			placed.add(child)
			stack.append([child, lvl + 1, cursor, cursor, 0, True])
			continue

		bottom = max(span_top + extents[nid], cursor)
		coords[nid] = (float(lvl * HORIZONTAL_SPACING), (span_top + bottom) / 2)
		stack.pop()
		if stack:
			stack[-1][3] = bottom
	return bottom


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------
def layout(lm: LearningMap) -> PositionedDiagram:
	"""
	Position every node of *lm* and style every edge with both endpoints.

	Deterministic: the only iteration orders used are the map's own node and
	edge sequences.
	"""
	if not lm.nodes:
		return PositionedDiagram()

	index = lm.node_index()
	order = [n.id for n in lm.nodes]
	children = _children_map(lm, index)
	root = select_root(order, children)
	extents = subtree_extents(order, children)

	coords: dict[str, tuple[float, float]] = {}
	placed: set[str] = set()
	bottom = _place(root, 0, 0.0, children, extents, index, coords, placed)

	# everything the root did not reach becomes another top-level root
	for nid in order:
		if nid in placed:
			continue
		bottom = _place(nid, 0, bottom + ROOT_GAP, children, extents, index, coords, placed)

	# ── re-centre around the root (vectorised shift) ────────────────
	ys = np.fromiter((coords[nid][1] for nid in order), dtype=float, count=len(order))
	ys += -extents[root] / 2 - coords[root][1]

	positions = {
		nid: Point(coords[nid][0], float(y))
		for nid, y in zip(order, ys)
	}
	return PositionedDiagram(
		positions=positions,
		nodes=dict(index),
		edges=style_edges(lm.edges, index),
		root_id=root,
		extents=extents,
	)
