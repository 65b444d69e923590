"""
Turn plumbing for the Clerk: a step pipeline and a first-match rule chain.

A chat turn is a fixed sequence of named steps over one TurnContext
(profile sync, signal extraction, deterministic rules, tool pass, safety
net, backfill, intent guard, reply). Later steps are skipped once an
earlier one has settled the turn, except the reply step, which always runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

logger = logging.getLogger("clerk.runtime")


@dataclass
class PipelineStep:
    """One named stage of a chat turn."""
    name: str
    fn: Callable[[object], None]
    skip_if: Optional[Callable[[object], bool]] = None
    always_run: bool = False

    def should_run(self, context: object) -> bool:
        return self.always_run or not (self.skip_if and self.skip_if(context))


class Pipeline:
    """Runs the stages of a chat turn in order over a shared TurnContext."""

    def __init__(self, steps: List[PipelineStep]) -> None:
        self._steps = list(steps)

    @property
    def step_names(self) -> List[str]:
        return [step.name for step in self._steps]

    def run(self, context: object) -> List[str]:
        """Purpose: Drive one turn through its stages.
        Inputs/Outputs: Input is the turn context; output is the names of the
            stages that actually ran, in order.
        Side Effects / State: Stages mutate the context (cards, actions, reply).
        Dependencies: PipelineStep.should_run.
        Failure Modes: A raising stage aborts the turn; the caller does not
            commit the profile in that case.
        If Removed: ClerkAgent.handle_message has nothing to drive the turn.
        Testing Notes: A stage whose skip_if holds is absent from the result,
            an always_run stage is present even after a short-circuit.
        """
        ran: List[str] = []
        for step in self._steps:
            if not step.should_run(context):
                logger.debug("step=%s skipped", step.name)
                continue
            step.fn(context)
            ran.append(step.name)
        return ran


@dataclass
class Rule:
    """Predicate + handler pair; the handler runs only when the predicate holds."""
    name: str
    applies: Callable[[object], bool]
    handle: Callable[[object], None]


class RuleChain:
    """Ordered short-circuit rules: the first rule whose predicate holds wins."""

    def __init__(self, rules: List[Rule]) -> None:
        self._rules = rules

    @property
    def rule_names(self) -> List[str]:
        return [rule.name for rule in self._rules]

    def run(self, context: object) -> Optional[str]:
        """Purpose: Fire the first applicable rule.
        Inputs/Outputs: Input is a mutable context; output is the fired rule's name or None.
        Side Effects / State: The fired handler mutates the context.
        Dependencies: Rule.applies / Rule.handle.
        Failure Modes: Exceptions in predicates or handlers propagate.
        If Removed: Priority order of deterministic paths would live in nested ifs.
        Testing Notes: Two always-true rules -> only the first handler runs.
        """
        # Priority is list order.
        for rule in self._rules:
            if rule.applies(context):
                rule.handle(context)
                return rule.name
        return None
