import logging
import os
import sys
from datetime import datetime

import shtab

from l2agent.args import get_parser
from l2agent.backend import AgentBackend
from l2agent.config import load_config
from l2agent.memory import ProjectMemoryManager
from l2agent.providers import ProviderError


def setup_logging(level):
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("git").setLevel(logging.WARNING)


def format_time(ms):
    if not ms:
        return "never"
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M")


def print_memories(records):
    if not records:
        print("No project memories found.")
        return
    for record in records:
        framework = f" ({record.context.framework})" if record.context.framework else ""
        print(
            f"{format_time(record.last_opened)}  {record.context.language}{framework}  "
            f"{record.project_path}  [{len(record.conversation_history)} messages]"
        )


def print_record(record):
    print(f"Project:   {record.project_path}")
    print(f"Language:  {record.context.language}")
    if record.context.framework:
        print(f"Framework: {record.context.framework}")
    print(f"Saved:     {format_time(record.timestamp)}")

    stats = record.metadata.get("projectStats") or {}
    if stats:
        print(f"Files:     {stats.get('totalFiles', 0)} ({stats.get('totalLines', 0)} lines)")

    git_info = record.metadata.get("gitInfo")
    if git_info:
        print(f"Git:       {git_info.get('branch')} @ {git_info.get('lastCommit')}")

    open_files = record.metadata.get("openFiles") or []
    if open_files:
        print("Open files:")
        for path in open_files:
            print(f"  {path}")

    if record.conversation_history:
        print("Conversation:")
        for msg in record.conversation_history:
            first_line = msg.content.splitlines()[0] if msg.content else ""
            print(f"  {msg.role}: {first_line}")


def main(argv=None):
    parser = get_parser()
    args = parser.parse_args(argv)

    if args.shell_completions:
        print(shtab.complete(parser, shell=args.shell_completions))
        return 0

    try:
        config = load_config(args.config)
    except (OSError, ValueError, TypeError) as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return 1

    setup_logging(logging.DEBUG if args.verbose else config.log_level.upper())

    if args.memory_dir:
        config.memory_dir = os.path.expanduser(args.memory_dir)
    if args.provider:
        config.default_provider = args.provider

    project = os.path.abspath(args.project)
    memory = ProjectMemoryManager(config.memory_dir, cache_ttl=config.cache_ttl)

    if args.list_memories:
        print_memories(memory.list_memories())
        return 0
    if args.recent is not None:
        print_memories(memory.recent_memories(args.recent))
        return 0
    if args.search is not None:
        print_memories(memory.search_memories(args.search))
        return 0
    if args.show:
        record = memory.load(project)
        if record is None:
            print(f"No memory stored for {project}")
            return 1
        print_record(record)
        return 0
    if args.forget:
        if not memory.delete(project):
            print(f"Failed to delete memory for {project}", file=sys.stderr)
            return 1
        print(f"Forgot {project}")
        return 0

    backend = AgentBackend(config, memory=memory)

    if args.provider and not backend.load_provider(args.provider):
        print(f"Provider {args.provider} is not configured", file=sys.stderr)
        return 1

    if args.list_providers:
        current = backend.get_current_provider()
        for provider in backend.get_providers():
            marker = "*" if provider["id"] == current else " "
            status = "configured" if provider["isConfigured"] else "not configured"
            print(f"{marker} {provider['id']:<10} {provider['name']:<20} {status}")
        return 0

    provider = backend.providers.current
    if args.list_models or args.test_connection:
        if provider is None:
            print("No provider configured", file=sys.stderr)
            return 1
        if args.list_models:
            for model in provider.get_models():
                print(model)
            return 0
        if backend.test_connection():
            print(f"{provider.get_name()}: connection OK")
            return 0
        print(f"{provider.get_name()}: connection failed", file=sys.stderr)
        return 1

    if not args.message:
        parser.print_help()
        return 0

    backend.restore_session(project)
    try:
        response = backend.send_message(" ".join(args.message), {"projectPath": project})
    except ProviderError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(response.content)

    if args.save and not backend.save_project_state(project):
        print(f"Warning: failed to save project memory for {project}", file=sys.stderr)

    return 0


if __name__ == "__main__":
    sys.exit(main())
