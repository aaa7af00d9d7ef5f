"""Scanner modules for installed skills"""

from .skills import SkillScanner, parse_skill_md, parse_skill_md_content

__all__ = ["SkillScanner", "parse_skill_md", "parse_skill_md_content"]
