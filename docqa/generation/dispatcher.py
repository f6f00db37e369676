"""
Mode Dispatcher
----------------
Each mode is a profile carrying its own retrieval budgets and template:

  SampledProfile     -- extract, summarize: two-stage random sampling
  SimilarityProfile  -- question: top-k similarity search on the prompt

dispatch() resolves the profile and runs one exhaustive branch per
profile type.  Every branch is "stuff" prompting: all context texts are
joined into the template's {context} slot, {question} is substituted,
and exactly one completion call is made.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from langsmith import traceable
from loguru import logger

from docqa.generation.prompts import (
    DOCUMENT_SEPARATOR,
    EXTRACT_QUESTION,
    EXTRACT_TEMPLATE,
    QUESTION_TEMPLATE,
    SUMMARIZE_QUESTION,
    SUMMARIZE_TEMPLATE,
)
from docqa.protocols import LanguageModel
from docqa.retrieval.retriever import SimilarityRetriever
from docqa.retrieval.sampler import RetrievalSampler
from docqa.schemas import DocumentIdentity, Mode, SampledItem


# ---------------------------------------------------------------------------
# Mode profiles
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SampledProfile:
    mode: Mode
    template: str
    question: str
    first_pass_top_k: int
    second_pass_top_k: int
    sample_count: int


@dataclass(frozen=True)
class SimilarityProfile:
    mode: Mode
    template: str
    top_k: int


ModeProfile = Union[SampledProfile, SimilarityProfile]

PROFILES: dict[Mode, ModeProfile] = {
    Mode.EXTRACT: SampledProfile(
        mode=Mode.EXTRACT,
        template=EXTRACT_TEMPLATE,
        question=EXTRACT_QUESTION,
        first_pass_top_k=60,
        second_pass_top_k=60,
        sample_count=50,
    ),
    Mode.SUMMARIZE: SampledProfile(
        mode=Mode.SUMMARIZE,
        template=SUMMARIZE_TEMPLATE,
        question=SUMMARIZE_QUESTION,
        first_pass_top_k=15,
        second_pass_top_k=60,
        sample_count=50,
    ),
    Mode.QUESTION: SimilarityProfile(
        mode=Mode.QUESTION,
        template=QUESTION_TEMPLATE,
        top_k=6,
    ),
}


def render_prompt(template: str, items: list[SampledItem], question: str) -> str:
    """Stuff every context text into {context} and the question into {question}."""
    context = DOCUMENT_SEPARATOR.join(item.page_content for item in items)
    return template.format(context=context, question=question)


@dataclass
class DispatchResult:
    mode: Mode
    answer: str
    context_size: int


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

class ModeDispatcher:
    def __init__(
        self,
        llm: LanguageModel,
        sampler: RetrievalSampler,
        retriever: SimilarityRetriever,
        profiles: dict[Mode, ModeProfile] | None = None,
    ) -> None:
        self.llm = llm
        self.sampler = sampler
        self.retriever = retriever
        self.profiles = dict(PROFILES if profiles is None else profiles)

    @classmethod
    def from_config(
        cls,
        config: dict,
        llm: LanguageModel,
        sampler: RetrievalSampler,
        retriever: SimilarityRetriever,
    ) -> "ModeDispatcher":
        profiles = dict(PROFILES)
        top_k = config.get("retrieval", {}).get("question_top_k")
        if top_k:
            base = profiles[Mode.QUESTION]
            profiles[Mode.QUESTION] = SimilarityProfile(
                mode=base.mode, template=base.template, top_k=top_k
            )
        return cls(llm, sampler, retriever, profiles)

    @traceable(name="dispatch", run_type="chain")
    async def dispatch(
        self,
        mode: Mode,
        identity: DocumentIdentity,
        prompt_text: Optional[str] = None,
    ) -> DispatchResult:
        profile = self.profiles.get(Mode(mode))
        if profile is None:
            raise ValueError(f"No profile registered for mode '{mode}'")

        if isinstance(profile, SampledProfile):
            items = await self.sampler.sample(
                identity,
                first_pass_top_k=profile.first_pass_top_k,
                second_pass_top_k=profile.second_pass_top_k,
                sample_count=profile.sample_count,
            )
            question = profile.question
        elif isinstance(profile, SimilarityProfile):
            if not (prompt_text or "").strip():
                raise ValueError("question mode requires a prompt")
            items = await self.retriever.retrieve(prompt_text, identity, top_k=profile.top_k)
            question = prompt_text
        else:
            raise TypeError(f"Unhandled profile type {type(profile).__name__}")

        prompt = render_prompt(profile.template, items, question)
        logger.info(
            f"[Dispatcher] {profile.mode.value} | {identity} | "
            f"{len(items)} context item(s) | prompt={len(prompt)} chars"
        )
        answer = await self.llm.complete(prompt)
        return DispatchResult(mode=profile.mode, answer=answer, context_size=len(items))
