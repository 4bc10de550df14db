"""
Command-line interface for the SpaceMolt agent.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import structlog

from .config import get_settings

structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="%H:%M:%S"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


def main() -> None:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="spacemolt-agent",
        description="SpaceMolt AI Commander - an autonomous LLM player for SpaceMolt",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Start playing")
    run_parser.add_argument("instruction", nargs="*", help="Mission instruction")
    run_parser.add_argument(
        "--model", "-m",
        help="LLM model as provider/model-id (e.g. ollama/qwen3:8b)",
    )
    run_parser.add_argument(
        "--session", "-s",
        default="default",
        help="Session name for credentials/state",
    )
    run_parser.add_argument("--url", help="SpaceMolt API URL (default: production server)")
    run_parser.add_argument("--file", "-f", help="Read instruction from a file")
    run_parser.add_argument("--debug", "-d", action="store_true", help="Show LLM call details")

    config_parser = subparsers.add_parser("config", help="Show configuration")
    config_parser.add_argument("--check", action="store_true", help="Check configuration validity")

    subparsers.add_parser("init", help="Create .env and PROMPT.md templates")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "run":
        sys.exit(run_agent(args))
    elif args.command == "config":
        show_config(args.check)
    elif args.command == "init":
        init_workspace()
    else:
        parser.print_help()


def resolve_instruction(args: argparse.Namespace) -> str | None:
    """Instruction from --file, else from the positional words."""
    if args.file:
        try:
            return Path(args.file).read_text(encoding="utf-8").strip()
        except OSError:
            logger.error("Could not read instruction file", path=args.file)
            return None
    return " ".join(args.instruction).strip()


def run_agent(args: argparse.Namespace) -> int:
    """Run the commander until Ctrl+C."""
    from .commander import Commander, run_commander

    settings = get_settings()
    debug = args.debug or settings.debug
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=logging.DEBUG if debug else getattr(logging, settings.log_level.upper(), logging.INFO),
    )

    instruction = resolve_instruction(args)
    if not instruction:
        logger.error("Missing instruction; provide it as an argument or use --file <path>")
        return 1

    if args.url:
        settings = settings.model_copy(update={"spacemolt_url": args.url.rstrip("/")})

    logger.info(
        "SpaceMolt AI Commander starting",
        model=args.model or settings.default_model,
        session=args.session,
        instruction=instruction,
    )

    try:
        commander = Commander(
            instruction=instruction,
            session_name=args.session,
            settings=settings,
            model_string=args.model,
        )
    except ValueError as e:
        logger.error("Invalid configuration", error=str(e))
        return 1

    try:
        asyncio.run(run_commander(commander))
    except Exception as e:
        logger.error("Fatal error", error=str(e))
        return 1
    return 0


def show_config(check: bool) -> None:
    """Show current configuration."""
    settings = get_settings()

    def mask(value: str) -> str:
        if not value:
            return "(not set)"
        return value[:4] + "..." + value[-4:] if len(value) > 10 else "****"

    print("\n=== SpaceMolt-Agent Configuration ===\n")

    print("Game Server:")
    print(f"  v1 URL: {settings.spacemolt_url}")
    print(f"  v2 URL: {settings.v2_url}")
    print(f"  v2 direct commands: {', '.join(sorted(settings.v2_direct_commands_set))}")
    print(f"  v2 routed commands: {', '.join(sorted(settings.v2_routed_commands_set))}")

    print("\nLLM Providers:")
    print(f"  Default Model: {settings.default_model}")
    print(f"  Context Window: {settings.context_window}")
    print(f"  Anthropic Key: {mask(settings.anthropic_api_key)}")
    print(f"  OpenAI Key: {mask(settings.openai_api_key)}")
    print(f"  OpenRouter Key: {mask(settings.openrouter_api_key)}")
    print(f"  Ollama URL: {settings.ollama_base_url}")

    print("\nAgent:")
    print(f"  Sessions Dir: {settings.sessions_path}")
    print(f"  Prompt File: {settings.prompt_file}")
    print(f"  Turn Interval: {settings.turn_interval_seconds}s")

    if check:
        print("\n=== Configuration Check ===\n")
        errors = []
        warnings = []

        try:
            llm_config = settings.get_llm_config()
            if not llm_config.api_key:
                errors.append(f"No API key configured for provider '{llm_config.provider}'")
        except ValueError as e:
            errors.append(str(e))

        if not Path(settings.prompt_file).exists():
            warnings.append(f"{settings.prompt_file} not found - the agent will play without game knowledge")

        if errors:
            print("❌ Errors:")
            for e in errors:
                print(f"   - {e}")

        if warnings:
            print("⚠️  Warnings:")
            for w in warnings:
                print(f"   - {w}")

        if not errors and not warnings:
            print("✅ Configuration looks good!")
        elif not errors:
            print("\n✅ Configuration is valid (with warnings)")
        else:
            print("\n❌ Configuration has errors - fix them before starting")


def init_workspace() -> None:
    """Create template configuration files."""
    env_file = Path(".env")
    prompt_file = Path("PROMPT.md")

    if not env_file.exists():
        env_file.write_text("""# SpaceMolt-Agent Configuration

# LLM model as provider/model-id
DEFAULT_MODEL=anthropic/claude-sonnet-4-20250514
# DEFAULT_MODEL=ollama/qwen3:8b

# LLM API Keys (set the one matching DEFAULT_MODEL)
ANTHROPIC_API_KEY=
# OPENAI_API_KEY=
# OPENROUTER_API_KEY=

# Game server
# SPACEMOLT_URL=https://game.spacemolt.com/api/v1
# SPACEMOLT_V2_URL=https://game.spacemolt.com/api/v2

# Agent
# CONTEXT_WINDOW=128000
# SESSIONS_DIR=./sessions
""")
        print(f"✅ Created {env_file}")
    else:
        print(f"ℹ️  {env_file} already exists")

    if not prompt_file.exists():
        prompt_file.write_text("# SpaceMolt Game Knowledge\n\nDescribe gameplay tips for the agent here.\n")
        print(f"✅ Created {prompt_file}")
    else:
        print(f"ℹ️  {prompt_file} already exists")

    print("\n=== Next Steps ===")
    print("1. Edit .env and add the API key for your model")
    print("2. Fill PROMPT.md with gameplay knowledge")
    print('3. Run: spacemolt-agent run "mine ore and sell it until you can buy a better ship"')


if __name__ == "__main__":
    main()
