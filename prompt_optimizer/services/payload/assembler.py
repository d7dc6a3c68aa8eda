"""
Builds the instruction text sent to a provider.

Section order is part of the prompt structure the model sees:
preamble (with preference directives), raw prompt, always-include text,
saved snippets, detected filenames, embedded context files.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from prompt_optimizer.services.preferences import PreferenceSet


MAX_CONTEXT_LINES = 50

SNIPPET_SEPARATOR = "\n\n---\n\n"

LANGUAGE_TAGS = {
    "js": "javascript",
    "jsx": "jsx",
    "ts": "typescript",
    "tsx": "tsx",
    "py": "python",
    "rb": "ruby",
    "java": "java",
    "cpp": "cpp",
    "c": "c",
    "cs": "csharp",
    "go": "go",
    "rs": "rust",
    "php": "php",
    "html": "html",
    "css": "css",
    "scss": "scss",
    "json": "json",
    "yaml": "yaml",
    "yml": "yaml",
    "md": "markdown",
    "sql": "sql",
    "sh": "bash",
    "bash": "bash",
    "zsh": "bash",
    "ps1": "powershell",
    "txt": "text",
}

# (preference flag, directive lines) in the order they appear in the preamble
DIRECTIVES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("no_readme", ("Do NOT include README files or documentation unless explicitly needed",)),
    (
        "full_code",
        (
            'Always provide complete, runnable code (no placeholders, no "// rest of code here")',
            "Include all imports, dependencies, and boilerplate",
        ),
    ),
    (
        "prefer_vanilla",
        (
            "Prefer vanilla JavaScript and standard web APIs when possible",
            "For browser extensions, use Chrome Manifest V3",
        ),
    ),
    (
        "short_summary",
        (
            "Keep explanations minimal; code should be self-documenting",
            "Add a brief 2-3 line summary at the end only",
        ),
    ),
)

_PREAMBLE_HEAD = """ROLE: You are an expert prompt engineer who rewrites prompts for large language models.

YOUR TASK: Rewrite the user's raw prompt into an optimized, ready-to-send prompt that will get the best possible results.

PROMPT BEST PRACTICES TO APPLY:

1. STRUCTURE AND CLARITY:
   - Use clear sections with markdown headers
   - Put the most important instruction first
   - Use XML-style tags for complex inputs (e.g., <context>, <requirements>, <examples>)
   - Be specific about the desired output format

2. CONTEXT SETTING:
   - Provide relevant background upfront
   - Define the role/persona if applicable (e.g., "You are a senior software engineer...")
   - Specify the target audience for the output

3. EXPLICIT CONSTRAINTS:
   - State what NOT to do
   - Specify length/format requirements
   - List any technologies, patterns, or approaches to prefer/avoid

4. CODE-SPECIFIC RULES:"""

_PREAMBLE_TAIL = """5. OUTPUT OPTIMIZATION:
   - Request structured output when appropriate
   - Ask for step-by-step reasoning for complex tasks
   - Include success criteria if applicable

TRANSFORMATION RULES:
- Make vague requests specific
- Add missing context the model would need
- Remove redundant or filler words
- Ensure the prompt is self-contained
- Add format specifications (code blocks, bullet points, etc.)
- If files are referenced, include clear instructions on how to use them

OUTPUT FORMAT:
Return ONLY the optimized prompt text, ready to paste and send.
Do not include any meta-commentary, explanations, or "Here's the optimized prompt:" prefixes."""


@dataclass(frozen=True)
class ContextFile:
    name: str
    extension: str
    text: str
    truncated: bool = False

    @classmethod
    def from_upload(cls, name: str, text: str) -> "ContextFile":
        extension = name.rsplit(".", 1)[-1] if "." in name else "txt"
        return cls(
            name=name,
            extension=extension,
            text=text,
            truncated=len(text.split("\n")) > MAX_CONTEXT_LINES,
        )


def language_tag(extension: str | None) -> str:
    if not extension:
        return "text"
    return LANGUAGE_TAGS.get(extension.lower(), extension)


def _section(title: str, body: str) -> str:
    return f"\n\n---\n{title}\n---\n{body}"


def _preamble(prefs: PreferenceSet) -> str:
    lines = [_PREAMBLE_HEAD]
    for flag, directives in DIRECTIVES:
        if getattr(prefs, flag):
            lines.extend(f"   - {d}" for d in directives)
    lines.append("")
    lines.append(_PREAMBLE_TAIL)
    return "\n".join(lines)


def _context_file_block(file: ContextFile) -> list[str]:
    parts = [f"\n=== {file.name} ===", "```" + language_tag(file.extension)]
    if file.truncated:
        lines = file.text.split("\n")
        parts.append("\n".join(lines[:MAX_CONTEXT_LINES]))
        parts.append(f"\n... [TRUNCATED: showing {MAX_CONTEXT_LINES} of {len(lines)} lines]")
    else:
        parts.append(file.text)
    parts.append("```")
    return parts


def dedupe_filenames(filenames: Iterable[str]) -> list[str]:
    """Exact-match dedupe that keeps first-seen order."""
    return list(dict.fromkeys(filenames))


def assemble_payload(
    raw_text: str,
    prefs: PreferenceSet,
    scraped_filenames: Sequence[str] = (),
    context_files: Sequence[ContextFile] = (),
) -> str:
    parts: list[str] = [_preamble(prefs)]

    parts.append(_section("RAW PROMPT TO OPTIMIZE:", raw_text))

    if prefs.always_include_text and prefs.always_include_text.strip():
        parts.append(_section("ADDITIONAL INSTRUCTIONS TO INCORPORATE:", prefs.always_include_text))

    snippets = [s for s in prefs.saved_snippets if s and s.strip()]
    if snippets:
        parts.append(_section("CONTEXT SNIPPETS (incorporate if relevant):", SNIPPET_SEPARATOR.join(snippets)))

    filenames = dedupe_filenames(scraped_filenames)
    if filenames:
        parts.append(
            _section(
                "FILES DETECTED IN CONTEXT:",
                ", ".join(filenames)
                + "\n\nNote: Reference these files appropriately in the optimized prompt if they are relevant to the task.",
            )
        )

    if context_files:
        parts.append(_section("EMBEDDED FILES (include as context in the optimized prompt):", "").rstrip("\n"))
        for file in context_files:
            parts.extend(_context_file_block(file))

    return "\n".join(parts)
