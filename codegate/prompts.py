"""Prompt templates sent to the AI providers."""

from __future__ import annotations

from typing import Dict, List, Sequence

from codegate.models.conflict import ConflictFile
from codegate.models.pull_request import ChangedFile, PullRequestRef
from codegate.models.review import ReviewCommandType
from codegate.tickets import TicketContext

MAX_FILES = 15
MAX_PATCH_CHARS = 4000

REVIEW_INSTRUCTIONS: Dict[ReviewCommandType, str] = {
    "review": (
        "You are an expert code reviewer. Analyze this pull request and provide:\n"
        "1. A concise summary of the changes\n"
        "2. Scores from 0 to 100: overall plus codeQuality, security, performance, "
        "maintainability and testability\n"
        "3. Specific suggestions with severity (low/medium/high/critical), type "
        "(improvement/bug/security/performance/style), file and line\n"
        "4. A recommended action: APPROVE, REQUEST_CHANGES or COMMENT\n\n"
        "Respond *only* with JSON in this shape:\n"
        "{\n"
        '  "summary": "...",\n'
        '  "overallScore": 85,\n'
        '  "categories": {"codeQuality": 80, "security": 90, "performance": 75, '
        '"maintainability": 85, "testability": 70},\n'
        '  "suggestions": [\n'
        '    {"type": "security", "severity": "high", "file": "...", "line": 42, '
        '"message": "...", "suggestion": "..."}\n'
        "  ],\n"
        '  "recommendation": "APPROVE"\n'
        "}"
    ),
    "summary": (
        "Summarize this pull request's changes in 2-3 sentences. "
        'Respond *only* with JSON: {"summary": "..."}'
    ),
    "guide": (
        "Write a review guide for this pull request listing the key areas a reviewer "
        'should focus on. Respond *only* with JSON: {"guide": "..."}'
    ),
    "title": (
        "Suggest a better pull request title following the conventional commits format. "
        'Respond *only* with JSON: {"title": "..."}'
    ),
}

BUSINESS_LOGIC_INSTRUCTIONS = (
    "You are validating that a pull request implements the requirements of its ticket.\n"
    "Map every requirement and acceptance criterion to the code changes and classify it as "
    "implemented, missing, partially_implemented or out_of_scope. Score the overall "
    "alignment from 0 to 100.\n\n"
    "Respond *only* with JSON in this shape:\n"
    "{\n"
    '  "alignmentScore": 80,\n'
    '  "summary": "...",\n'
    '  "requirements": [\n'
    '    {"requirement": "...", "status": "implemented", "evidence": "...", "files": ["..."]}\n'
    "  ]\n"
    "}"
)

CONFLICT_INSTRUCTIONS = (
    "You are an expert at analyzing merge conflicts and choosing the safest resolution.\n"
    "1. Identify what changes are in conflict\n"
    "2. Decide whether the conflict touches business logic or only imports, formatting or structure\n"
    "3. Recommend a strategy: ours, theirs, manual (complex business logic) or ai_assisted\n"
    "4. Only when the conflict does NOT involve business logic, provide the resolved content\n\n"
    "Respond *only* with JSON in this shape:\n"
    "{\n"
    '  "hasBusinessLogic": false,\n'
    '  "conflictType": "imports|formatting|logic|structure|mixed",\n'
    '  "recommendation": "ours|theirs|manual|ai_assisted",\n'
    '  "reasoning": "...",\n'
    '  "canAutoResolve": false,\n'
    '  "resolvedContent": "merged code when canAutoResolve is true"\n'
    "}"
)


def format_files(files: Sequence[ChangedFile], *, max_files: int = MAX_FILES, max_patch_chars: int = MAX_PATCH_CHARS) -> str:
    sections: List[str] = []
    with_patch = [file for file in files if file.patch]
    for file in with_patch[:max_files]:
        patch = file.patch or ""
        if len(patch) > max_patch_chars:
            patch = patch[:max_patch_chars] + "\n... (truncated)"
        sections.append(f"### {file.filename} ({file.status})\n```diff\n{patch}\n```")
    if len(with_patch) > max_files:
        sections.append(f"(Truncated to {max_files} files of {len(with_patch)} with diffs)")
    return "\n\n".join(sections) or "No code diff available"


def format_pull_request(pr: PullRequestRef, files: Sequence[ChangedFile]) -> str:
    return (
        f"## Pull Request #{pr.number}: {pr.title}\n\n"
        f"**Author:** {pr.author}\n"
        f"**Branch:** {pr.head_ref} -> {pr.base_ref}\n"
        f"**Changes:** {pr.additions} additions, {pr.deletions} deletions across "
        f"{pr.changed_files} files\n\n"
        f"### Description\n{pr.body or 'No description provided'}\n\n"
        f"### Code Changes\n{format_files(files)}"
    )


def build_review_prompt(
    pr: PullRequestRef,
    files: Sequence[ChangedFile],
    command: ReviewCommandType,
    ticket: TicketContext | None = None,
) -> str:
    if command not in REVIEW_INSTRUCTIONS:
        raise ValueError(f"Unknown review command '{command}'.")
    parts = [REVIEW_INSTRUCTIONS[command], format_pull_request(pr, files)]
    if ticket is not None:
        parts.append(f"### Linked Requirements\n{ticket.as_prompt_text()}")
    return "\n\n".join(parts)


def build_business_logic_prompt(pr: PullRequestRef, files: Sequence[ChangedFile], ticket: TicketContext) -> str:
    return "\n\n".join(
        [
            BUSINESS_LOGIC_INSTRUCTIONS,
            f"### Requirements\n{ticket.as_prompt_text()}",
            format_pull_request(pr, files),
        ]
    )


def build_conflict_prompt(file: ConflictFile) -> str:
    return (
        f"{CONFLICT_INSTRUCTIONS}\n\n"
        f"## File: {file.filename}\n\n"
        f"### Conflict Details\n{file.raw_diff or 'No raw content available'}"
    )
