import logging
import re

from graph import LearningMap

"""
Curated roadmap templates
-------------------------
A handful of hand-made maps returned immediately for common topics, so the
generation service is only called when nothing here fits.

Lookup order for a topic text (after normalisation):
  1. exact match
  2. substring either way  ("web dev" ⊂ "web development")
  3. highest count of shared tokens, if at least one
"""

log = logging.getLogger(__name__)


_TEMPLATE_DATA: list[dict] = [
	{
		"topic": "Web Development",
		"templateId": "template-web-dev-v1",
		"templateName": "Web Development (Core)",
		"nodes": [
			{"id": "1", "title": "HTML & CSS",              "description": "Basics of structure and styling", "level": "beginner",     "category": "frontend",     "resources": [{"type": "article", "title": "MDN HTML", "url": "https://developer.mozilla.org/en-US/docs/Web/HTML"}], "children": ["2"]},
			{"id": "2", "title": "JavaScript Fundamentals", "description": "Language basics and DOM",         "level": "beginner",     "category": "fundamentals", "resources": [{"type": "article", "title": "MDN JS Guide", "url": "https://developer.mozilla.org/en-US/docs/Web/JavaScript/Guide"}], "children": ["3"]},
			{"id": "3", "title": "Frontend Framework",      "description": "React or similar SPA framework",  "level": "intermediate", "category": "frontend",     "resources": [{"type": "video", "title": "React Official", "url": "https://react.dev"}], "children": ["4"]},
			{"id": "4", "title": "Backend Basics",          "description": "APIs, Node.js, and servers",      "level": "intermediate", "category": "backend",      "resources": [{"type": "article", "title": "Node.js Guide", "url": "https://nodejs.org/en/docs"}], "children": ["5"]},
			{"id": "5", "title": "Databases",               "description": "Relational and NoSQL basics",     "level": "intermediate", "category": "database",     "resources": [{"type": "article", "title": "Intro to Databases", "url": "https://www.postgresql.org/docs/"}], "children": []},
		],
		"edges": [
			{"from": "1", "to": "2"},
			{"from": "2", "to": "3"},
			{"from": "3", "to": "4"},
			{"from": "4", "to": "5"},
		],
	},
	{
		"topic": "Machine Learning",
		"templateId": "template-ml-v1",
		"templateName": "Machine Learning (Intro)",
		"nodes": [
			{"id": "1", "title": "Linear Algebra & Stats", "description": "Math foundations",              "level": "beginner",     "category": "fundamentals", "resources": [{"type": "article", "title": "Khan Academy Linear Algebra", "url": "https://www.khanacademy.org/math/linear-algebra"}], "children": ["2"]},
			{"id": "2", "title": "Python & Libraries",     "description": "NumPy, pandas basics",          "level": "beginner",     "category": "fundamentals", "resources": [{"type": "article", "title": "Pandas", "url": "https://pandas.pydata.org"}], "children": ["3"]},
			{"id": "3", "title": "Supervised Learning",    "description": "Regression and classification", "level": "intermediate", "category": "backend",      "resources": [{"type": "article", "title": "Scikit-learn", "url": "https://scikit-learn.org"}], "children": ["4"]},
			{"id": "4", "title": "Deep Learning",          "description": "Neural networks basics",        "level": "advanced",     "category": "backend",      "resources": [{"type": "video", "title": "Deep Learning Intro", "url": "https://www.youtube.com"}], "children": []},
		],
		"edges": [
			{"from": "1", "to": "2"},
			{"from": "2", "to": "3"},
			{"from": "3", "to": "4"},
		],
	},
]

ROADMAP_TEMPLATES: tuple[LearningMap, ...] = tuple(LearningMap.from_dict(t) for t in _TEMPLATE_DATA)


def normalize(text: str) -> str:
	"""Lower-case, separators → spaces, drop other punctuation, collapse spaces."""
	s = text.lower()
	s = re.sub(r"[.\-_/+]", " ", s)
	s = re.sub(r"[^a-z0-9\s]", "", s)
	return re.sub(r"\s+", " ", s).strip()


def find_template(topic: str, templates: tuple[LearningMap, ...] = ROADMAP_TEMPLATES) -> LearningMap | None:
	"""Best curated template for *topic*, or None to fall back to generation."""
	if not topic:
		return None
	q = normalize(topic)
	if not q:
		return None

	for t in templates:
		if normalize(t.topic) == q:
			log.debug("template exact match  topic=%r  template=%r", topic, t.template_id)
			return t

	q_tokens = set(q.split(" "))
	best_score = 0
	best: LearningMap | None = None
	for t in templates:
		t_norm = normalize(t.topic)
		if q in t_norm or t_norm in q:
			log.debug("template substring match  topic=%r  template=%r", topic, t.template_id)
			return t
		overlap = len(q_tokens & set(t_norm.split(" ")))
		if overlap > best_score:
			best_score = overlap
			best = t

	if best is not None:
		log.debug("template token match  topic=%r  template=%r  overlap=%d", topic, best.template_id, best_score)
	return best
