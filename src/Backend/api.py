"""
Cerebra — Flask REST API  (layout + view overlay over AI learning maps)
=======================================================================
Exposes the learning-map engine as JSON endpoints for the frontend.

A map is produced once (curated template or generation service), laid out
once, and then kept in a per-topic session. Filter / search / completion
requests only re-run the view overlay against the stored diagram; they
never re-generate or re-layout.

Endpoints
---------
GET    /api/health            — Health check
GET    /api/templates         — Curated sample maps
POST   /api/generate          — Template lookup or AI generation + layout
POST   /api/layout            — Stateless layout of a posted map
GET    /api/view/<topic>      — Rendered view (?filter=&search=)
POST   /api/complete          — Toggle a node's completion
GET    /api/progress/<topic>  — Completion state for a stored map
GET    /api/history           — Saved maps (newest first)
GET    /api/history/<id>      — Re-open a saved map
DELETE /api/history           — Clear saved maps
GET    /api/export/<topic>    — Map JSON + download file name
"""
from __future__ import annotations

import logging
import re
import threading
import time
import traceback
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any

from flask import Flask, jsonify, request
from flask_cors import CORS

# ── Backend imports ─────────────────────────────────────────────────
from generation import GenerationError, generate_map
from graph import LEVELS, LearningMap
from layout import PositionedDiagram, layout
from map_history import HistoryStore
from roadmap_templates import ROADMAP_TEMPLATES, find_template
from settings import settings
from view_state import RenderDiagram, ToggleCompletion, ViewState, apply_view, toggle_completion

# ── App setup ───────────────────────────────────────────────────────
app = Flask(__name__)
CORS(app)  # allow requests from the frontend dev server

logging.basicConfig(level=settings.log_level, format="%(asctime)s  %(message)s")
log = logging.getLogger(__name__)

_history = HistoryStore(settings.history_path, limit=settings.history_limit)


# ═══════════════════════════════════════════════════════════════════
# Session store
# ═══════════════════════════════════════════════════════════════════
@dataclass(slots=True)
class MapSession:
    """Everything the overlay needs for one topic: map, diagram, view."""
    map: LearningMap
    diagram: PositionedDiagram
    view: ViewState
    source: str = "ai"
    # history entry that completion progress is saved onto
    entry_id: str | None = None
    # serialises toggle + view reads on this session
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def render(self) -> RenderDiagram:
        return apply_view(self.diagram, self.view)


# In-memory session store: topic (lowercased) → MapSession.
# OrderedDict with LRU eviction caps memory at settings.session_store_max.
_session_store: OrderedDict[str, MapSession] = OrderedDict()
_session_lock = threading.Lock()


def _store_session(key: str, value: MapSession) -> None:
    """Thread-safe LRU insert into the session store."""
    with _session_lock:
        if key in _session_store:
            _session_store.move_to_end(key)
        _session_store[key] = value
        while len(_session_store) > settings.session_store_max:
            _session_store.popitem(last=False)


def _get_session(key: str) -> MapSession | None:
    """Thread-safe LRU lookup."""
    with _session_lock:
        entry = _session_store.get(key)
        if entry is not None:
            _session_store.move_to_end(key)
        return entry


# ═══════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════
def _open_session(lm: LearningMap, source: str, entry_id: str | None = None) -> MapSession:
    """Lay out *lm* once and register the session under its topic."""
    t0 = time.time()
    diagram = layout(lm)
    log.info("layout  topic=%r  nodes=%d  layout=%.1fms", lm.topic, lm.num_nodes, (time.time() - t0) * 1000)

    session = MapSession(
        map=lm, diagram=diagram, view=ViewState.from_map(lm), source=source, entry_id=entry_id,
    )
    _store_session(lm.topic.strip().lower(), session)
    return session


def _session_payload(session: MapSession) -> dict[str, Any]:
    return {
        "topic":   session.map.topic,
        "source":  session.source,
        "entryId": session.entry_id,
        "map":     session.map.to_dict(),
        "diagram": session.diagram.to_dict(),
        "bounds":  session.diagram.bounds(),
        "view":    session.view.to_dict(),
        "render":  session.render().to_dict(),
    }


def _progress_payload(session: MapSession) -> dict[str, Any]:
    render = session.render()
    completed = [nid for nid in session.diagram.nodes if nid in session.view.completed]
    return {
        "completed":            completed,
        "completedCount":       len(completed),
        "total":                len(session.diagram.nodes),
        "completionPercentage": render.completion_percentage,
    }


def _slug(text: str) -> str:
    return re.sub(r"\s+", "-", text.strip().lower())


# ═══════════════════════════════════════════════════════════════════
# Routes
# ═══════════════════════════════════════════════════════════════════
@app.route("/api/health", methods=["GET"])
def health():
    return jsonify({
        "status":           "ok",
        "geminiConfigured": settings.gemini_configured,
        "templates":        len(ROADMAP_TEMPLATES),
    })


@app.route("/api/templates", methods=["GET"])
def list_templates():
    return jsonify({
        "templates": [
            {
                "templateId":   t.template_id,
                "templateName": t.template_name,
                "topic":        t.topic,
                "numNodes":     t.num_nodes,
            }
            for t in ROADMAP_TEMPLATES
        ],
    })


@app.route("/api/generate", methods=["POST"])
def generate():
    """
    Build (or fetch) a learning map for a topic and lay it out.

    Request JSON:  { "topic": "Web Development", "difficulty": "beginner" }
    Response JSON: { "topic", "source", "map", "diagram", "bounds", "view", "render" }
    """
    body = request.get_json(silent=True) or {}
    topic = (body.get("topic") or "").strip()
    difficulty = (body.get("difficulty") or "beginner").strip().lower()
    if not topic:
        return jsonify({"error": "missing 'topic' field"}), 400
    if difficulty not in LEVELS:
        return jsonify({"error": f"unknown difficulty '{difficulty}'"}), 400

    log.info("generate  topic=%r  difficulty=%s", topic, difficulty)
    t0 = time.time()

    template = find_template(topic)
    if template is not None:
        lm, source = template, "template"
    else:
        try:
            lm, source = generate_map(topic, difficulty, settings), "ai"
        except GenerationError as exc:
            log.error("generate failed  topic=%r: %s", topic, exc)
            return jsonify({"error": str(exc)}), 502

    try:
        session = _open_session(lm, source)
    except Exception as exc:
        log.error("generate failed: %s\n%s", exc, traceback.format_exc())
        return jsonify({"error": str(exc)}), 500

    try:
        session.entry_id = _history.save(session.map).id
    except (OSError, ValueError) as exc:
        log.warning("history save failed  topic=%r: %s", lm.topic, exc)

    log.info("generate  topic=%r  source=%s  nodes=%d  elapsed=%.2fs",
             lm.topic, source, lm.num_nodes, time.time() - t0)
    return jsonify(_session_payload(session))


@app.route("/api/layout", methods=["POST"])
def layout_only():
    """
    Lay out a posted map without storing anything.

    Request JSON:  { "map": { "topic", "nodes": [...], "edges": [...] } }
    Response JSON: { "nodes": { id: {x, y} }, "edges": [...], "bounds": {...} }
    """
    body = request.get_json(silent=True) or {}
    try:
        lm = LearningMap.from_dict(body.get("map"))
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    diagram = layout(lm)
    return jsonify({**diagram.to_dict(), "bounds": diagram.bounds()})


@app.route("/api/view/<topic>", methods=["GET", "POST"])
def view(topic: str):
    """
    Update filter / search for a stored map and return the rendered view.

    Query params (GET) or JSON body (POST):
      filter — beginner | intermediate | advanced | "" (clears)
      search — free text, "" clears
    Omitted keys keep their current value.
    """
    session = _get_session(topic.strip().lower())
    if session is None:
        return jsonify({"error": f"no map stored for '{topic}', generate first"}), 404

    params = request.get_json(silent=True) if request.method == "POST" else request.args
    params = params or {}

    with session.lock:
        try:
            if "filter" in params:
                session.view.set_filter(params.get("filter") or None)
            if "search" in params:
                session.view.set_search(params.get("search"))
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400
        render = session.render()
        view_state = session.view.to_dict()

    return jsonify({"view": view_state, "render": render.to_dict()})


@app.route("/api/complete", methods=["POST"])
def complete():
    """
    Toggle (or set) a node's completion.

    Request JSON:  { "topic": "Web Development", "nodeId": "3", "completed": true }
                   "completed" omitted → flip the current flag
    Response JSON: { "success", "render", "progress" }
    """
    body = request.get_json(silent=True) or {}
    topic = (body.get("topic") or "").strip()
    node_id = body.get("nodeId", "")
    if not topic or node_id == "":
        return jsonify({"error": "missing 'topic' and/or 'nodeId'"}), 400

    session = _get_session(topic.lower())
    if session is None:
        return jsonify({"error": f"no map stored for '{topic}', generate first"}), 404

    completed = body.get("completed")
    if completed is not None and not isinstance(completed, bool):
        return jsonify({"error": "'completed' must be true, false or omitted"}), 400
    command = ToggleCompletion(str(node_id), completed)

    with session.lock:
        known = command.node_id in session.diagram.nodes
        session.map, session.diagram = toggle_completion(
            session.map, session.diagram, session.view, command,
        )
        render = session.render()
        progress = _progress_payload(session)
        completed_ids = set(session.view.completed)
        entry_id = session.entry_id

    if entry_id is not None:
        try:
            _history.save_progress(entry_id, completed_ids)
        except (OSError, ValueError) as exc:
            log.warning("progress save failed  entry=%s: %s", entry_id, exc)

    return jsonify({
        "success":  known,
        "render":   render.to_dict(),
        "progress": progress,
    })


@app.route("/api/progress/<topic>", methods=["GET"])
def get_progress(topic: str):
    session = _get_session(topic.strip().lower())
    if session is None:
        return jsonify({"error": f"no map stored for '{topic}'"}), 404
    with session.lock:
        return jsonify(_progress_payload(session))


@app.route("/api/history", methods=["GET"])
def history():
    try:
        entries = _history.list()
    except (OSError, ValueError) as exc:
        log.warning("history load failed: %s", exc)
        entries = []
    return jsonify({
        "history": [
            {
                "id":                   e.id,
                "topic":                e.topic,
                "savedAt":              e.saved_at,
                "numNodes":             e.map.num_nodes,
                "completedCount":       len(e.completed),
                "completionPercentage": e.completion_percentage,
            }
            for e in entries
        ],
    })


@app.route("/api/history/<entry_id>", methods=["GET"])
def open_history(entry_id: str):
    try:
        entry = _history.find(entry_id)
    except (OSError, ValueError) as exc:
        log.warning("history load failed: %s", exc)
        entry = None
    if entry is None:
        return jsonify({"error": f"no saved map '{entry_id}'"}), 404

    lm = entry.map.with_completed_ids(set(entry.completed))
    session = _open_session(lm, "history", entry.id)
    return jsonify(_session_payload(session))


@app.route("/api/history", methods=["DELETE"])
def clear_history():
    try:
        _history.clear()
    except (OSError, ValueError) as exc:
        log.warning("history clear failed: %s", exc)
        return jsonify({"success": False}), 500
    return jsonify({"success": True})


@app.route("/api/export/<topic>", methods=["GET"])
def export_map(topic: str):
    """Current map (with completion flags) as downloadable JSON."""
    session = _get_session(topic.strip().lower())
    if session is None:
        return jsonify({"error": f"no map stored for '{topic}'"}), 404
    with session.lock:
        data = session.map.to_dict()
    return jsonify({
        "fileName": f"{_slug(session.map.topic)}-learning-map.json",
        "map":      data,
    })


# ═══════════════════════════════════════════════════════════════════
# Entry point
# ═══════════════════════════════════════════════════════════════════
if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=True)
