#!/usr/bin/env python3
"""
Technical onboarding service.

Signs new team members in with GitHub, lets them choose onboarding tracks and
streams the provisioning job's progress to their browser.
"""

import argparse
import logging
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)

#
# NOTE: Keep onboarding imports lazy (inside functions) so `--version` and
# `--list-tracks` do not pull in the web stack.
#


def list_tracks(setup_file: str = "") -> None:
    """Print the tracks defined by the setup catalog and the tasks behind each."""
    import os

    from onboarding.catalog import available_tracks, load_setup, tasks_for_tracks

    if setup_file:
        os.environ["ONBOARDING_SETUP_FILE"] = setup_file
        load_setup.cache_clear()

    setup = load_setup()
    tracks = available_tracks(setup)
    if not tracks:
        print("No tracks defined.")
        return

    print(f"Repository: {setup.repository or '(not set)'}")
    for track in tracks:
        tasks = tasks_for_tracks(setup, [track])
        print(f"\n{track} ({len(tasks)} tasks)")
        for task in tasks:
            print(f"  - {task.title}")


def main():
    parser = argparse.ArgumentParser(
        description="Technical onboarding service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the web server
  python main.py --serve --port 9000

  # Show the tracks defined in a setup catalog
  python main.py --list-tracks --setup-file config/setup.yaml
        """,
    )
    parser.add_argument("--serve", action="store_true", help="Run the HTTP/WebSocket server")
    parser.add_argument("--host", default="0.0.0.0", help="Server bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=9000, help="Server listen port (default: 9000)")
    parser.add_argument("--list-tracks", action="store_true", help="List tracks from the setup catalog")
    parser.add_argument("--setup-file", default="", help="Setup catalog YAML (default: $ONBOARDING_SETUP_FILE)")
    parser.add_argument("--version", action="store_true", help="Print the service version")

    args = parser.parse_args()

    if args.version:
        from onboarding.version import SEMANTIC_VERSION

        print(SEMANTIC_VERSION)
        return

    if args.list_tracks:
        list_tracks(args.setup_file)
        return

    if args.serve:
        if args.setup_file:
            import os

            os.environ["ONBOARDING_SETUP_FILE"] = args.setup_file

        from onboarding.api.server import run

        run(host=args.host, port=args.port)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
