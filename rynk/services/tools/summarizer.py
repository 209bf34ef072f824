from __future__ import annotations

from dataclasses import dataclass

from rynk.services.tools.base import run_text, word_count

MAX_CHARS = 30000

LENGTHS = ("brief", "standard", "detailed")
FORMATS = ("paragraph", "bullets", "numbered")

LENGTH_INSTRUCTIONS = {
    "brief": "Summarize in 1-2 sentences capturing only the most essential point.",
    "standard": "Summarize in a short paragraph (3-5 sentences) covering the main ideas.",
    "detailed": "Provide a comprehensive summary covering all key points and supporting details.",
}

FORMAT_INSTRUCTIONS = {
    "paragraph": "Write the summary as flowing prose.",
    "bullets": "Write the summary as bullet points, each starting with •",
    "numbered": "Write the summary as a numbered list.",
}


@dataclass
class SummaryResult:
    summary: str
    original_word_count: int
    summary_word_count: int
    compression_ratio: int
    truncated: bool = False


def compression_ratio(original_words: int, summary_words: int) -> int:
    """Percentage of words removed, rounded."""
    if not original_words:
        return 0
    return round((1 - summary_words / original_words) * 100)


async def summarize_text(text: str, length: str = "standard", fmt: str = "paragraph") -> SummaryResult:
    truncated = len(text) > MAX_CHARS
    processed = text[:MAX_CHARS] + "...[truncated]" if truncated else text

    summary = await run_text(
        "tools.summarizer",
        f"Summarize this text:\n\n{processed}",
        temperature=0.3,
        caller="summarizer",
        length_instruction=LENGTH_INSTRUCTIONS.get(length, LENGTH_INSTRUCTIONS["standard"]),
        format_instruction=FORMAT_INSTRUCTIONS.get(fmt, FORMAT_INSTRUCTIONS["paragraph"]),
    )

    original_words = word_count(text)
    summary_words = word_count(summary)
    return SummaryResult(
        summary=summary,
        original_word_count=original_words,
        summary_word_count=summary_words,
        compression_ratio=compression_ratio(original_words, summary_words),
        truncated=truncated,
    )
