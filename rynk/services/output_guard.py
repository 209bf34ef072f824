"""Checks model output for prompt leakage and redacts secrets before it is stored."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from loguru import logger

PROMPT_LEAKAGE_PATTERNS = [
    re.compile(r"my (system |initial )?instructions (are|were|say)", re.I),
    re.compile(r"my (system )?prompt (is|was|says)", re.I),
    re.compile(r"i was (instructed|told|programmed) to", re.I),
    re.compile(r"according to my (instructions|programming|guidelines)", re.I),
    re.compile(r"security rules?:?\s*\n", re.I),
    re.compile(r"never reveal (my|your|the) (system|initial)", re.I),
    re.compile(r"content within <user_input>", re.I),
    re.compile(r"content within <external_content>", re.I),
    re.compile(r"identity & core instructions", re.I),
    re.compile(r"critical restriction:", re.I),
    re.compile(r"\[system\]|\[/system\]", re.I),
    re.compile(r"\[inst\]|\[/inst\]", re.I),
    re.compile(r"<<sys>>|</sys>", re.I),
]

JAILBREAK_SUCCESS_PATTERNS = [
    re.compile(r"i (will|can) (now )?do anything", re.I),
    re.compile(r"i (don't|do not) have (any )?restrictions", re.I),
    re.compile(r"i am (now )?DAN", re.I),
    re.compile(r"ignoring (my )?(previous |prior )?instructions", re.I),
    re.compile(r"bypassing (the )?(content |safety )?filter", re.I),
    re.compile(r"i'?m (now )?in (developer|admin|debug) mode", re.I),
]

# (pattern, name, replacement), applied in order
SENSITIVE_DATA_PATTERNS = [
    (re.compile(r"\bsk-[a-zA-Z0-9]{20,}\b"), "OpenAI API Key", "[REDACTED_API_KEY]"),
    (re.compile(r"\bxai-[a-zA-Z0-9]{20,}\b"), "xAI API Key", "[REDACTED_API_KEY]"),
    (re.compile(r"\bgsk_[a-zA-Z0-9]{20,}\b"), "Groq API Key", "[REDACTED_API_KEY]"),
    (re.compile(r"\bpplx-[a-zA-Z0-9]{20,}\b"), "Perplexity API Key", "[REDACTED_API_KEY]"),
    (re.compile(r"\bBearer\s+[a-zA-Z0-9._-]{20,}"), "Bearer Token", "[REDACTED_TOKEN]"),
    (re.compile(r"postgres(ql)?://\S+", re.I), "PostgreSQL Connection String", "[REDACTED_DB_URL]"),
    (re.compile(r"mongodb(\+srv)?://\S+", re.I), "MongoDB Connection String", "[REDACTED_DB_URL]"),
    (re.compile(r"https?://[a-zA-Z0-9.-]*\.internal\.\S+", re.I), "Internal URL", "[REDACTED_INTERNAL_URL]"),
    (re.compile(r"https?://localhost:[0-9]+\S*", re.I), "Localhost URL", "[REDACTED_LOCALHOST]"),
    (
        re.compile(r"\b(password|secret|token|credential)s?\s*[=:]\s*[\"']?[^\s\"']{8,}[\"']?", re.I),
        "Secret Value",
        "[REDACTED_SECRET]",
    ),
]


@dataclass
class OutputValidationResult:
    is_clean: bool
    prompt_leakage_detected: bool
    jailbreak_indicator_detected: bool
    redacted_output: str
    sensitive_data_found: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def detect_prompt_leakage(output: str) -> list[str]:
    return [p.pattern for p in PROMPT_LEAKAGE_PATTERNS if p.search(output)]


def detect_jailbreak_success(output: str) -> list[str]:
    return [p.pattern for p in JAILBREAK_SUCCESS_PATTERNS if p.search(output)]


def redact_sensitive(output: str) -> tuple[str, list[str]]:
    redacted = output
    found: list[str] = []
    for pattern, name, replacement in SENSITIVE_DATA_PATTERNS:
        redacted, count = pattern.subn(replacement, redacted)
        if count:
            found.append(name)
    return redacted, found


def validate_output(output: str) -> OutputValidationResult:
    warnings: list[str] = []

    leaks = detect_prompt_leakage(output)
    if leaks:
        warnings.append(f"Potential prompt leakage detected: {len(leaks)} patterns matched")
        logger.warning(f"[OutputGuard] Prompt leakage detected: {leaks[:3]}")

    jailbreaks = detect_jailbreak_success(output)
    if jailbreaks:
        warnings.append(f"Jailbreak success indicators detected: {len(jailbreaks)} patterns matched")
        logger.warning(f"[OutputGuard] Jailbreak indicators detected: {jailbreaks[:3]}")

    redacted, found = redact_sensitive(output)
    if found:
        warnings.append(f"Sensitive data redacted: {', '.join(found)}")
        logger.warning(f"[OutputGuard] Sensitive data found and redacted: {found}")

    return OutputValidationResult(
        is_clean=not leaks and not jailbreaks and not found,
        prompt_leakage_detected=bool(leaks),
        jailbreak_indicator_detected=bool(jailbreaks),
        redacted_output=redacted,
        sensitive_data_found=found,
        warnings=warnings,
    )
