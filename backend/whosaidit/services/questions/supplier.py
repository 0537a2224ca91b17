import random
from typing import Iterable, List, Optional

from whosaidit import db
from whosaidit.models import Question
from .cache import QuestionCache

NAME_PLACEHOLDER = '{name}'


def format_for_player(template: str, player_name: str) -> str:
    return template.replace(NAME_PLACEHOLDER, player_name)


class QuestionSupplier:
    """Hands out prompt templates, least-used first.

    Usage counters are global across rooms and only move when a game
    finishes (:meth:`record_usage`), so the cache is invalidated there and
    whenever the corpus changes.
    """

    format_for_player = staticmethod(format_for_player)

    def __init__(self, cache: Optional[QuestionCache] = None, rng=None):
        self.cache = cache if cache is not None else QuestionCache()
        self._random = rng or random

    def _load(self):
        rows = db.session.execute(
            db.select(Question.template, Question.usage_count).where(Question.is_active.is_(True))
        ).all()
        return [(row.template, row.usage_count) for row in rows]

    def get_candidate(self, exclude: Iterable[str] = ()) -> Optional[str]:
        """Pick an unused template among the least-used ones, or None when none is left."""
        excluded = set(exclude or ())
        pool = [(t, n) for t, n in self.cache.get(self._load) if t not in excluded]
        if not pool:
            return None
        least = min(n for _, n in pool)
        return self._random.choice([t for t, n in pool if n == least])

    def record_usage(self, templates: Iterable[str]) -> int:
        templates = sorted(set(templates or ()))
        if not templates:
            return 0
        result = db.session.execute(
            db.update(Question)
            .where(Question.template.in_(templates))
            .values(usage_count=Question.usage_count + 1),
            execution_options={'synchronize_session': False},
        )
        db.session.commit()
        self.cache.invalidate()
        return result.rowcount

    def add_question(self, template: str, category: Optional[str] = None) -> Question:
        question = Question(template=template, category=category or 'general', is_active=True, usage_count=0)
        db.session.add(question)
        db.session.commit()
        self.cache.invalidate()
        return question

    def seed(self, templates: Iterable[str]) -> int:
        """Insert the templates that are not stored yet; returns how many were added."""
        existing = set(db.session.execute(db.select(Question.template)).scalars())
        added: List[str] = []
        for template in templates:
            template = (template or '').strip()
            if not template or template in existing:
                continue
            db.session.add(Question(template=template, category='general', is_active=True, usage_count=0))
            existing.add(template)
            added.append(template)
        db.session.commit()
        if added:
            self.cache.invalidate()
        return len(added)

    def count(self) -> int:
        return db.session.execute(
            db.select(db.func.count(Question.id)).where(Question.is_active.is_(True))
        ).scalar_one()
