"""
teamctl Command-Line Interface

Usage:
    teamctl serve
    teamctl probe claude
    teamctl inbox my-team controller --drain
"""

import sys
import json
import logging
import argparse

from teamctl import __version__


def cmd_serve(args):
    """Run the control API on 127.0.0.1."""
    import uvicorn

    from teamctl.api.main import create_app
    from teamctl.core.config import load_config

    config = load_config(args.config)
    if args.port:
        config.port = args.port
    logging.getLogger().setLevel(config.log_level.upper())

    print("teamctl control API")
    print(f"Listening on http://127.0.0.1:{config.port}")
    print(f"Team files: {config.base_dir}")
    print(f"Bearer token: {config.token}")
    print("=" * 60)

    uvicorn.run(create_app(config), host="127.0.0.1", port=config.port,
                log_level=config.log_level.lower())
    return 0


def cmd_probe(args):
    """Check that a teammate binary supports agent teams."""
    from teamctl.core.errors import CapabilityError
    from teamctl.execution import verify_teammate_support

    try:
        version = verify_teammate_support(args.binary)
    except CapabilityError as e:
        print(f"✗ {e}")
        return 1

    print(f"✓ {args.binary} supports agent teams ({version})")
    return 0


def cmd_inbox(args):
    """Print (or drain) one agent's mailbox as JSON."""
    from teamctl.communication.mailbox import MailboxStore
    from teamctl.core.paths import validate_name

    validate_name(args.team)
    validate_name(args.agent)
    store = MailboxStore(args.base_dir)

    if args.drain:
        messages = [event.raw for event in store.drain_unread(args.team, args.agent)]
    else:
        messages = store.read_all(args.team, args.agent)

    print(json.dumps([message.to_dict() for message in messages], indent=2))
    return 0


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="teamctl - local controller for a team of coding agents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  teamctl serve                              # Start the control API
  teamctl serve --port 5000 --config teamctl.yaml
  teamctl probe claude                       # Check teammate support
  teamctl inbox feature-x controller         # Show the controller inbox
  teamctl inbox feature-x alice --drain      # Mark alice's unread messages read
        """
    )

    parser.add_argument('--version', action='version', version=f'teamctl {__version__}')

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # Serve command
    serve_parser = subparsers.add_parser('serve', help='Run the control API')
    serve_parser.add_argument('--config', help='YAML config file (default: $TEAMCTL_CONFIG)')
    serve_parser.add_argument('--port', type=int, help='Port override')
    serve_parser.set_defaults(func=cmd_serve)

    # Probe command
    probe_parser = subparsers.add_parser('probe', help='Check a teammate binary')
    probe_parser.add_argument('binary', nargs='?', default='claude', help='Binary to probe')
    probe_parser.set_defaults(func=cmd_probe)

    # Inbox command
    inbox_parser = subparsers.add_parser('inbox', help='Inspect an agent mailbox')
    inbox_parser.add_argument('team', help='Team name')
    inbox_parser.add_argument('agent', help='Agent name')
    inbox_parser.add_argument('--drain', action='store_true',
                              help='Return only unread messages and mark them read')
    inbox_parser.add_argument('--base-dir', help='Base directory (default: $TEAMCTL_HOME or ~/.claude)')
    inbox_parser.set_defaults(func=cmd_inbox)

    # Parse arguments
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 0

    # Run command
    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        return 130
    except Exception as e:
        print(f"\n✗ Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
