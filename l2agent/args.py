#!/usr/bin/env python

import argparse
import os

import shtab

from l2agent import __version__


def get_parser():
    """
    Argument parser for the l2agent command line.

    Provider credentials and tuning live in .l2agent.conf.yml; the command
    line picks a project, a provider and what to do with them.
    """
    parser = argparse.ArgumentParser(
        prog="l2agent",
        description="l2agent: project-aware AI assistant with persistent project memory",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Providers are configured through .l2agent.conf.yml (current directory,
git repository root, then home) or OPENAI_API_KEY, ANTHROPIC_API_KEY,
GEMINI_API_KEY, L2AGENT_LOCAL_ENDPOINT and G4F_SERVER_URL.
""",
    )

    parser.add_argument(
        "message",
        metavar="MESSAGE",
        nargs="*",
        help="Message to send to the AI provider (optional)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
        help="Show the version number and exit",
    )

    parser.add_argument(
        "-c",
        "--config",
        metavar="CONFIG_FILE",
        help="Specify the config file (default: search for .l2agent.conf.yml)",
    ).complete = shtab.FILE

    parser.add_argument(
        "-p",
        "--project",
        metavar="DIR",
        default=os.getcwd(),
        help="Project directory whose memory is used (default: current directory)",
    ).complete = shtab.DIRECTORY

    parser.add_argument(
        "--memory-dir",
        metavar="DIR",
        help="Directory holding project memory records (overrides config file)",
    ).complete = shtab.DIRECTORY

    parser.add_argument(
        "--provider",
        metavar="PROVIDER",
        choices=["openai", "anthropic", "google", "local", "g4f"],
        help="Provider to use for this run (overrides default_provider)",
    )

    parser.add_argument(
        "--save",
        action="store_true",
        help="Save the conversation and project state after sending MESSAGE",
    )

    # Memory queries
    group = parser.add_argument_group("Project memory")
    group.add_argument(
        "--list-memories",
        action="store_true",
        help="List every stored project memory and exit",
    )
    group.add_argument(
        "--recent",
        metavar="N",
        type=int,
        help="List the N most recently opened projects and exit",
    )
    group.add_argument(
        "--search",
        metavar="QUERY",
        help="List projects whose path, language or framework matches QUERY and exit",
    )
    group.add_argument(
        "--show",
        action="store_true",
        help="Show the stored memory for --project and exit",
    )
    group.add_argument(
        "--forget",
        action="store_true",
        help="Delete the stored memory for --project and exit",
    )

    # Provider queries
    group = parser.add_argument_group("Providers")
    group.add_argument(
        "--list-providers",
        action="store_true",
        help="List providers and whether they are configured, then exit",
    )
    group.add_argument(
        "--list-models",
        action="store_true",
        help="List the models offered by the selected provider and exit",
    )
    group.add_argument(
        "--test-connection",
        action="store_true",
        help="Check that the selected provider is reachable and exit",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output",
    )

    supported_shells_list = sorted(list(shtab.SUPPORTED_SHELLS))
    parser.add_argument(
        "--shell-completions",
        metavar="SHELL",
        choices=supported_shells_list,
        help="Print shell completion script for the specified shell and exit",
    )

    return parser
