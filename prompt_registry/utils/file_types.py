"""Content file types and the repository scope directory mapping.

Each content type maps to exactly one directory under the repository root.
The mapping is a fixed lookup; chat modes share the prompts directory.
"""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Literal

CopilotFileType = Literal["prompt", "instructions", "chatmode", "agent", "skill"]

FILE_EXTENSIONS: dict[str, str] = {
    "prompt": ".prompt.md",
    "instructions": ".instructions.md",
    "chatmode": ".chatmode.md",
    "agent": ".agent.md",
    "skill": "",
}

REPOSITORY_DIRECTORIES: dict[str, str] = {
    "prompt": ".github/prompts/",
    "instructions": ".github/instructions/",
    "chatmode": ".github/prompts/",
    "agent": ".github/agents/",
    "skill": ".github/skills/",
}

SKILL_FILE_NAME = "SKILL.md"

# Collection manifest item kinds to content types
KIND_TO_TYPE: dict[str, CopilotFileType] = {
    "prompt": "prompt",
    "instruction": "instructions",
    "instructions": "instructions",
    "chat-mode": "chatmode",
    "chatmode": "chatmode",
    "agent": "agent",
    "skill": "skill",
}


def determine_file_type(file_name: str, tags: list[str] | None = None) -> CopilotFileType:
    """Classify a content file.

    Priority: compound extension, SKILL.md, tags, 'instructions' in the name,
    then prompt.

    Example:
        >>> determine_file_type("prompts/review.chatmode.md")
        'chatmode'
        >>> determine_file_type("notes.md", ["agent"])
        'agent'
    """
    lower_name = PurePosixPath(file_name.replace("\\", "/")).name.lower()

    for file_type in ("prompt", "instructions", "chatmode", "agent"):
        if lower_name.endswith(FILE_EXTENSIONS[file_type]):
            return file_type

    if lower_name == SKILL_FILE_NAME.lower():
        return "skill"

    if tags:
        lower_tags = [tag.lower() for tag in tags]
        if "instructions" in lower_tags:
            return "instructions"
        if "chatmode" in lower_tags or "mode" in lower_tags:
            return "chatmode"
        if "agent" in lower_tags:
            return "agent"
        if "skill" in lower_tags:
            return "skill"

    if "instructions" in lower_name:
        return "instructions"

    return "prompt"


def map_kind_to_type(kind: str) -> CopilotFileType:
    return KIND_TO_TYPE.get(kind, "prompt")


def get_repository_target_directory(file_type: str) -> str:
    """Directory (relative to the repository root, trailing slash) for a content type.

    Raises:
        ValueError: For an unknown content type
    """
    try:
        return REPOSITORY_DIRECTORIES[file_type]
    except KeyError:
        raise ValueError(f"Unknown file type: {file_type}") from None


def get_target_file_name(item_id: str, file_type: str) -> str:
    if file_type == "skill":
        return SKILL_FILE_NAME
    return f"{item_id}{FILE_EXTENSIONS[file_type]}"


def strip_type_extension(file_name: str) -> str:
    """Item id from a file name: 'code-review.prompt.md' -> 'code-review'."""
    name = PurePosixPath(file_name).name
    for extension in (".prompt.md", ".instructions.md", ".chatmode.md", ".agent.md"):
        if name.endswith(extension):
            return name[: -len(extension)]
    if name.endswith(".md"):
        return name[:-3]
    return name


# Content types to the bundle breakdown keys
BREAKDOWN_KEYS: dict[str, str] = {
    "prompt": "prompts",
    "instructions": "instructions",
    "chatmode": "chatmodes",
    "agent": "agents",
    "skill": "skills",
}
