"""
Steps: Step functions and helpers for the orchestration workflows.

Each step function follows the pattern:
    async def step_name(run: RunState, deps: Dependencies, options: RunOptions) -> RunUpdate

This package is organized into modules by concern:
- prompts: LLM prompt templates and role formatting
- common: Shared dependencies and the dispatch helper
- parsing: Envelope unwrapping, code extraction, chunking
- planner: Token/step estimation
- merge: Code merge policies
- safety: Unsafe-pattern warnings
- context: Vector-search prompt augmentation
- generation: Simple multi-step generation
- structured: Chat/think/code/debug stages
"""

# Core types
from steps.common import Dependencies, RunOptions, dispatch

# Pure helpers
from steps.parsing import ParsedResponse, parse_response, split_into_chunks, extract_code_block
from steps.merge import merge_code, concat_code
from steps.safety import SafetyReport, check_code_safety
from steps.context import augment_with_context

# Planning
from steps.planner import TokenEstimate, estimate_steps, find_json_object

# Simple multi-step generation
from steps.generation import plan_run, generate_step, final_debug, debug_selection

# Structured workflow
from steps.structured import (
    chat_stage,
    think_stage,
    code_stage,
    debug_stage,
    parse_step_count,
)

__all__ = [
    # Types
    "Dependencies",
    "RunOptions",
    "dispatch",
    # Parsing
    "ParsedResponse",
    "parse_response",
    "split_into_chunks",
    "extract_code_block",
    # Merge
    "merge_code",
    "concat_code",
    # Safety
    "SafetyReport",
    "check_code_safety",
    # Context
    "augment_with_context",
    # Planning
    "TokenEstimate",
    "estimate_steps",
    "find_json_object",
    # Generation
    "plan_run",
    "generate_step",
    "final_debug",
    "debug_selection",
    # Structured
    "chat_stage",
    "think_stage",
    "code_stage",
    "debug_stage",
    "parse_step_count",
]
