"""Skill resolution and activation for an agent runtime.

This package discovers skill packages (a directory holding a ``SKILL.md``
manifest), decides which skills apply to a conversation turn, and renders the
active ones into a deterministic prompt fragment.

Security model:
- Skills are data only (YAML front matter + Markdown). Eligibility rules are a
  closed predicate grammar; nothing from a manifest is executed.
- Broken manifests never abort a load; they are reported next to the catalog.
"""

from .config import SkillsConfig
from .manager import SkillsManager, TurnResult
from .schema import PromptFragment, SkillCatalog, SkillDefinition, TurnContext

__all__ = [
    "PromptFragment",
    "SkillCatalog",
    "SkillDefinition",
    "SkillsConfig",
    "SkillsManager",
    "TurnContext",
    "TurnResult",
]
