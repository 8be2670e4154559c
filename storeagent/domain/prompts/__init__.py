"""Prompt construction: templates, response rules and assembly."""

from storeagent.domain.prompts.assembler import PromptAssembler
from storeagent.domain.prompts.response_rules import RuleSelection, compile_rules
from storeagent.domain.prompts.template_store import TemplateCache, TemplateStore

__all__ = ["PromptAssembler", "RuleSelection", "TemplateCache", "TemplateStore", "compile_rules"]
