"""Phase controller — sequences the authoring phases of one installment.

    planning → prewriting → drafting → revision → finalize

Phases run strictly in that order, each exactly once. Every authoring phase
renders its template from the run context and runs one tool-calling loop:

    phase        references          output
    planning     load if not loaded  draft.plan
    prewriting   reload              draft.prewriting
    drafting     reload              draft.content
    revision     reload              draft.content (replaced)
    finalize     (reconciler)        FinalizeResult

Tool-call side effects land in draft.characters / draft.places during every
loop, including the reconciliation pass run by finalize.
"""

from __future__ import annotations

import logging
from typing import Any

from fantasy_diary.config import Settings
from fantasy_diary.drafts import SideEffectRecorder
from fantasy_diary.models import PHASE_ORDER, FinalizeResult, Phase, RunContext, ToolSpec
from fantasy_diary.prompts import render_prompt
from fantasy_diary.provider import ReasoningProvider
from fantasy_diary.references import ReferenceLoader
from fantasy_diary.tool_client import ToolClient

from .loop import run_tool_loop
from .reconciler import Reconciler
from .templates import DEFAULT_TEMPLATES

logger = logging.getLogger(__name__)

SUMMARY_LENGTH = 280
PREVIOUS_EXCERPT_LENGTH = 1000


class PhaseError(RuntimeError):
    """A phase could not produce its output."""


class PhaseOrderError(PhaseError):
    """A phase was entered out of order or twice."""


def make_summary(content: str) -> str:
    """Whitespace-collapsed opening of the installment."""
    return " ".join(content.split())[:SUMMARY_LENGTH]


class PhaseController:
    def __init__(
        self,
        ctx: RunContext,
        *,
        provider: ReasoningProvider,
        tools: ToolClient,
        catalog: list[ToolSpec],
        settings: Settings | None = None,
        loader: ReferenceLoader | None = None,
    ) -> None:
        self.ctx = ctx
        self._provider = provider
        self._tools = tools
        self._catalog = catalog
        self._settings = settings or Settings()
        self._loader = loader or ReferenceLoader(tools)
        self._recorder = SideEffectRecorder(ctx.draft)
        self._templates = {**DEFAULT_TEMPLATES, **self._settings.phase_templates}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _enter(self, phase: Phase) -> None:
        expected = PHASE_ORDER[0] if self.ctx.phase is None else None
        if self.ctx.phase is not None:
            index = PHASE_ORDER.index(self.ctx.phase) + 1
            expected = PHASE_ORDER[index] if index < len(PHASE_ORDER) else None
        if phase != expected:
            raise PhaseOrderError(
                f"Cannot enter {phase} after {self.ctx.phase or 'start'}"
                + (f"; next phase is {expected}" if expected else "; run is complete")
            )
        self.ctx.phase = phase
        logger.info("[%s] Phase %s", self.ctx.run_id, phase)

    async def refresh_references(self, force: bool = True) -> None:
        if force or not self.ctx.references.loaded:
            self.ctx.references = await self._loader.load()

    def build_context(self) -> dict[str, Any]:
        ctx = self.ctx
        previous = None
        if ctx.previous is not None:
            previous = {
                "id": ctx.previous.id,
                "content": ctx.previous.content[:PREVIOUS_EXCERPT_LENGTH],
                "created_at": ctx.previous.created_at or "",
            }
        return {
            "now": ctx.current_time.isoformat(),
            "installment_id": ctx.run_id,
            "previous": previous,
            "characters": [c.model_dump() for c in ctx.references.characters],
            "places": [p.model_dump() for p in ctx.references.places],
            "plan": ctx.draft.plan or "",
            "prewriting": ctx.draft.prewriting or "",
            "content": ctx.draft.content or "",
        }

    async def converse(self, template_key: str) -> str:
        """Render `template_key` and run one tool-calling loop on it."""
        context = self.build_context()
        system = render_prompt(self._templates["system"], context)
        instruction = render_prompt(self._templates[template_key], context)
        logger.debug("[%s] %s instruction: %d chars", self.ctx.run_id, template_key, len(instruction))
        return await run_tool_loop(
            self._provider,
            self._tools,
            system=system,
            instruction=instruction,
            catalog=self._catalog,
            recorder=self._recorder,
            max_iterations=self._settings.max_iterations,
            parallel=self._settings.parallel_tool_calls,
            label=f"{self.ctx.run_id}/{template_key}",
        )

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def planning(self) -> str:
        self._enter("planning")
        await self.refresh_references(force=False)
        self.ctx.draft.plan = (await self.converse("planning")).strip()
        return self.ctx.draft.plan

    async def prewriting(self) -> str:
        self._enter("prewriting")
        await self.refresh_references()
        self.ctx.draft.prewriting = (await self.converse("prewriting")).strip()
        return self.ctx.draft.prewriting

    async def drafting(self) -> str:
        self._enter("drafting")
        await self.refresh_references()
        content = (await self.converse("drafting")).strip()
        if not content:
            raise PhaseError("Drafting produced no content")
        self.ctx.draft.content = content
        return content

    async def revision(self) -> str:
        self._enter("revision")
        await self.refresh_references()
        content = (await self.converse("revision")).strip()
        if not content:
            raise PhaseError("Revision produced no content")
        self.ctx.draft.content = content
        return content

    async def finalize(self) -> FinalizeResult:
        self._enter("finalize")
        draft = self.ctx.draft
        if not draft.content:
            raise PhaseError("Nothing to finalize: draft has no content")

        reconciler = Reconciler(self, self._loader)
        await reconciler.run()

        draft.summary = make_summary(draft.content)
        return FinalizeResult(
            content=draft.content,
            summary=draft.summary,
            characters=list(draft.characters),
            places=list(draft.places),
        )

    async def run(self) -> FinalizeResult:
        """Run every phase in order."""
        await self.planning()
        await self.prewriting()
        await self.drafting()
        await self.revision()
        return await self.finalize()
