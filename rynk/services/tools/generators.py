"""Short-form copy generators: blog titles, email subject lines, Instagram captions."""

from __future__ import annotations

from typing import Any

from rynk.services.tools.base import run_json

TITLE_STYLES = {
    "viral": "Create attention-grabbing, shareable titles with emotional hooks",
    "professional": "Create authoritative, trustworthy titles suitable for business",
    "curiosity": "Create intriguing titles that spark curiosity and make readers want to learn more",
    "how-to": "Create practical, actionable titles that promise to teach something",
    "listicle": "Create numbered list titles (e.g., '7 Ways to...', '10 Best...')",
}

CAPTION_VIBES = ("funny", "inspirational", "professional", "minimalist", "question")


async def generate_titles(topic: str, style: str = "viral", count: int = 10) -> dict[str, Any]:
    parsed = await run_json(
        "tools.blog_title",
        f"Topic: {topic}",
        temperature=0.8,
        caller="blog_title",
        parse_error="Failed to parse title generation response",
        style_instruction=TITLE_STYLES.get(style, TITLE_STYLES["viral"]),
        count=count,
    )
    return {"titles": parsed.get("titles") or []}


async def generate_email_subjects(email_body: str) -> dict[str, Any]:
    parsed = await run_json(
        "tools.email_subject",
        f'Email Content/Topic: "{email_body}"',
        temperature=0.7,
        caller="email_subject",
        parse_error="Failed to parse email subject response",
    )
    return {"subjects": parsed.get("subjects") or []}


async def generate_instagram_captions(context: str, vibe: str = "funny") -> dict[str, Any]:
    parsed = await run_json(
        "tools.instagram_caption",
        f'Photo/Context description: "{context}"',
        temperature=0.8,
        caller="instagram_caption",
        parse_error="Failed to parse caption response",
        vibe=vibe if vibe in CAPTION_VIBES else "funny",
    )
    return {"captions": parsed.get("captions") or []}
