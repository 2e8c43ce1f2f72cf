"""
Main entry point for PromptPilot.

This module wires together all components and provides both CLI and programmatic interfaces.

Usage:
    # Command line
    promptpilot "Write a fibonacci function in Python" --auto-debug
    promptpilot --automation nightly --loop

    # Programmatic
    from main import run_prompt
    run = asyncio.run(run_prompt("Write a fibonacci function"))
"""

import argparse
import asyncio
import sys

from config import AppConfig, ensure_directories, load_config
from events import (
    ChatCompleted,
    CodeCompleted,
    DebugCompleted,
    PlanReady,
    RunCancelled,
    RunCompleted,
    RunFailed,
    StepCompleted,
    ThinkCompleted,
    WorkflowEvent,
)
from llm import LLMClient
from logging_utils import configure_logging, get_logger, set_verbose
from orchestrator import Orchestrator
from state import RunState, RunStatus
from steps import Dependencies
from storage import AutomationStore, KeyValueStore, PromptLibrary, load_model_selection

logger = get_logger("cli")


def create_dependencies(config: AppConfig, store: KeyValueStore | None = None) -> Dependencies:
    """
    Create the dependencies container.

    Args:
        config: Application configuration.
        store: Already-open store (opens config.paths.store_path if None).

    Returns:
        Dependencies with an LLM client and the JSON store.
    """
    ensure_directories(config)
    llm = LLMClient(config.llm, log_path=config.paths.llm_log_path)
    if store is None:
        store = KeyValueStore(config.paths.store_path)
    return Dependencies(config=config, llm=llm, store=store)


def apply_saved_selection(config: AppConfig, store: KeyValueStore) -> AppConfig:
    """Use the stored model when the config names none."""
    model, modules = load_model_selection(store)
    if model and not config.llm.model:
        config = config.with_model(
            model.get("id", ""),
            model_name=model.get("name", ""),
            provider=model.get("provider"),
        )
    if modules:
        config = config.with_modules(*modules)
    return config


def log_event(event: WorkflowEvent) -> None:
    """Event sink that narrates a run on the log."""
    if isinstance(event, PlanReady):
        logger.info(f"Plan: {event.total_steps} step(s), token limit {event.token_limit}")
    elif isinstance(event, StepCompleted):
        logger.info(f"Step {event.step}/{event.total_steps} done")
    elif isinstance(event, ChatCompleted):
        logger.info("Chat analysis done")
    elif isinstance(event, ThinkCompleted):
        logger.info(f"Plan from think stage: {event.steps} phase(s)")
    elif isinstance(event, CodeCompleted):
        logger.info(f"Code phase {event.step}/{event.total_steps} done")
    elif isinstance(event, DebugCompleted):
        logger.info("Debug pass done")
    elif isinstance(event, RunFailed):
        logger.error(f"Run failed: {event.error}")
    elif isinstance(event, RunCancelled):
        logger.warning("Run cancelled")
    elif isinstance(event, RunCompleted):
        logger.info("Run complete")


async def run_prompt(
    prompt: str,
    config: AppConfig | None = None,
    auto_debug: bool = False,
    thinking_mode: bool = False,
    verbose: bool = True,
) -> RunState:
    """
    Run one prompt from start to finish.

    This is the main programmatic interface.

    Args:
        prompt: What to ask the model for.
        config: Application configuration (loads default if None).
        auto_debug: Debug the generated code after the last step.
        thinking_mode: Send generation calls with the think role.
        verbose: Log progress.

    Returns:
        The finished run.
    """
    if config is None:
        config = load_config()

    deps = create_dependencies(config)
    orchestrator = Orchestrator(deps, sink=log_event, verbose=verbose)
    orchestrator.set_auto_debug(auto_debug)
    orchestrator.set_thinking_mode(thinking_mode)
    try:
        return await orchestrator.submit(prompt)
    finally:
        await deps.llm.aclose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="promptpilot",
        description="PromptPilot: multi-step LLM code generation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    promptpilot "Write a fibonacci function in Python"
    promptpilot "Build a todo app" --structured --auto-debug
    promptpilot --automation nightly --loop
        """
    )

    parser.add_argument(
        "prompt",
        nargs="?",
        default=None,
        help="Prompt to send (omit when running an automation)"
    )

    mode_group = parser.add_mutually_exclusive_group()
    mode_group.add_argument(
        "--structured",
        action="store_true",
        help="Force the chat/think/code/debug workflow"
    )
    mode_group.add_argument(
        "--simple",
        action="store_true",
        help="Force simple multi-step mode"
    )

    parser.add_argument(
        "--auto-debug",
        action="store_true",
        help="Debug the generated code after the last step"
    )
    parser.add_argument(
        "--thinking",
        action="store_true",
        help="Send generation calls with the think role"
    )
    parser.add_argument(
        "--system-prompt",
        type=str,
        default=None,
        help="Name of a saved system prompt (e.g. python, debugging); defaults to the current one"
    )
    parser.add_argument(
        "--automation",
        type=str,
        default=None,
        help="Name or id of a saved automation to run"
    )
    parser.add_argument(
        "--loop",
        action="store_true",
        help="Repeat the automation (or prompt) until interrupted"
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config JSON file"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Debug-level logging"
    )
    return parser


async def _run(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    ensure_directories(config)
    store = KeyValueStore(config.paths.store_path)
    config = apply_saved_selection(config, store)

    if args.structured:
        config = config.with_modules("chat", "think", "code", "debug")
    elif args.simple:
        config = config.with_modules(*(config.modules.enabled - {"think", "code"}))
    deps = create_dependencies(config, store=store)

    orchestrator = Orchestrator(deps, sink=log_event, verbose=True)
    orchestrator.set_auto_debug(args.auto_debug)
    orchestrator.set_thinking_mode(args.thinking)

    library = PromptLibrary(deps.store)
    if args.system_prompt:
        prompts = library.all()
        if args.system_prompt not in prompts:
            print(f"Error: Unknown system prompt: {args.system_prompt}")
            return 1
        orchestrator.set_system_prompt(prompts[args.system_prompt])
    else:
        orchestrator.set_system_prompt(library.current())

    try:
        if args.automation:
            automations = AutomationStore(deps.store)
            automation = automations.get(args.automation) or automations.find_by_name(args.automation)
            if automation is None:
                print(f"Error: Automation not found: {args.automation}")
                return 1
            outcome = await orchestrator.run_automation(
                automation.prompts,
                infinite_loop=args.loop or automation.infinite_loop,
            )
            runs = [r for r in outcome.results if isinstance(r, RunState)]
            ok = bool(runs) and all(r.status is RunStatus.COMPLETE for r in runs)
            print(f"\nAutomation dispatched {outcome.count} prompt(s)")
            return 0 if ok else 1

        if args.loop:
            await orchestrator.run_automation([args.prompt], infinite_loop=True)
            return 0

        run = await orchestrator.submit(args.prompt)
        if run.final_code:
            print(run.final_code)
        if run.status is RunStatus.COMPLETE:
            return 0
        print(f"\nRun ended with status {run.status.value}: {run.error or 'no error recorded'}")
        return 1
    finally:
        await deps.llm.aclose()


def main(argv: list[str] | None = None) -> int:
    """Command-line interface."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.prompt and not args.automation:
        parser.error("a prompt or --automation is required")

    configure_logging()
    set_verbose(args.verbose)

    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
