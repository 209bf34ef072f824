from __future__ import annotations

from dataclasses import dataclass

from rynk.services.tools.base import run_text

MODE_PROMPTS = {
    "standard": (
        "Rewrite the text using different words and sentence structures while preserving "
        "the exact meaning. Make it natural and readable."
    ),
    "fluency": (
        "Rewrite the text to improve flow and readability. Fix any awkward phrasing while "
        "keeping the meaning intact."
    ),
    "formal": (
        "Rewrite the text in a formal, professional tone suitable for academic or business "
        "contexts. Use sophisticated vocabulary."
    ),
    "simple": (
        "Rewrite the text using simpler words and shorter sentences. Make it easy to "
        "understand for a general audience."
    ),
    "creative": (
        "Rewrite the text in a more engaging, creative way. Add variety and flair while "
        "preserving the core message."
    ),
}
MODES = tuple(MODE_PROMPTS)


@dataclass
class ParaphraseResult:
    paraphrased: str
    changes: int
    mode: str


def change_percent(original: str, rewritten: str) -> int:
    """Rough share of words in ``rewritten`` that never appear in ``original``."""
    original_words = set(original.lower().split())
    new_words = rewritten.lower().split()
    if not new_words:
        return 0
    changed = sum(1 for w in new_words if w not in original_words)
    return round(changed / len(new_words) * 100)


async def paraphrase_text(text: str, mode: str = "standard") -> ParaphraseResult:
    if mode not in MODE_PROMPTS:
        raise ValueError(f"Invalid mode. Use: {', '.join(MODES)}.")

    paraphrased = await run_text(
        "tools.paraphraser",
        text,
        temperature=0.7 if mode == "creative" else 0.4,
        caller="paraphraser",
        mode_instruction=MODE_PROMPTS[mode],
    )
    return ParaphraseResult(paraphrased=paraphrased, changes=change_percent(text, paraphrased), mode=mode)
