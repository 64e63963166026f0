"""
Exécution d'une suite d'étapes compensables.

Chaque étape retourne (résultat, données_de_compensation). Les étapes
tournent dans l'ordre ; si l'une échoue, les étapes déjà validées sont
compensées en ordre inverse, puis l'erreur d'origine est relevée.
Une compensation qui échoue est loggée et n'écrase jamais l'erreur d'origine.

Pas de reprise automatique : un rejeu est une nouvelle exécution.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)

Action = Callable[[dict[str, Any]], tuple[Any, Any]]
Compensation = Callable[[Any], None]


@dataclass
class SagaStep:
    name: str
    action: Action
    compensate: Compensation | None = None


@dataclass
class _Done:
    step: SagaStep
    compensation_data: Any


@dataclass
class Saga:
    """
    ``commit`` est appelé après chaque action et chaque compensation réussies,
    ``rollback`` après chaque échec (action ou compensation) pour repartir
    d'une transaction propre.
    """

    name: str
    steps: list[SagaStep]
    commit: Callable[[], None] | None = None
    rollback: Callable[[], None] | None = None
    done: list[_Done] = field(default_factory=list)

    def run(self, context: dict[str, Any] | None = None) -> dict[str, Any]:
        ctx: dict[str, Any] = dict(context or {})
        self.done = []

        for step in self.steps:
            logger.info("[%s] step %s: start", self.name, step.name)
            try:
                result, compensation_data = step.action(ctx)
                if self.commit:
                    self.commit()
            except Exception as exc:
                logger.warning("[%s] step %s failed: %s", self.name, step.name, exc)
                self._rollback()
                self._compensate()
                raise
            ctx[step.name] = result
            self.done.append(_Done(step, compensation_data))
            logger.info("[%s] step %s: committed", self.name, step.name)

        return ctx

    def _compensate(self) -> None:
        for done in reversed(self.done):
            if done.step.compensate is None:
                continue
            logger.info("[%s] compensating %s", self.name, done.step.name)
            try:
                done.step.compensate(done.compensation_data)
                if self.commit:
                    self.commit()
            except Exception:
                logger.exception("[%s] compensation of %s failed", self.name, done.step.name)
                self._rollback()

    def _rollback(self) -> None:
        if self.rollback is None:
            return
        try:
            self.rollback()
        except Exception:
            logger.exception("[%s] rollback failed", self.name)
