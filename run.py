#!/usr/bin/env python3
"""Run the task board notification service.

Usage:
    python run.py [--host HOST] [--port PORT] [--reload] [--data-dir DIR]

Examples:
    python run.py                      # Run with defaults (localhost:3001)
    python run.py --port 8080          # Run on port 8080
    python run.py --reload             # Run with auto-reload for development
    python run.py --data-dir /tmp/tb   # Keep notifications under /tmp/tb
"""

import argparse
import os
import sys


def main():
    parser = argparse.ArgumentParser(
        description="Run the task board notification service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run.py                      Run with defaults (localhost:3001)
  python run.py --port 8080          Run on port 8080
  python run.py --host 0.0.0.0       Listen on all interfaces
  python run.py --reload             Enable auto-reload (development)
  python run.py --data-dir /tmp/tb   Store notifications.json under /tmp/tb
        """,
    )

    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=3001,
        help="Port to bind to (default: 3001)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload on code changes (development mode)",
    )
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Directory for the notification document (default: .taskboard)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        default="info",
        help="Logging level (default: info)",
    )

    args = parser.parse_args()

    # Settings are read from the environment when the app module is imported.
    if args.data_dir:
        os.environ["TASKBOARD_DATA_DIR"] = args.data_dir
    os.environ.setdefault("TASKBOARD_LOG_LEVEL", args.log_level.upper())

    try:
        import uvicorn
    except ImportError:
        print("Error: uvicorn is not installed.")
        print("Install it with: pip install uvicorn[standard]")
        sys.exit(1)

    print(f"Starting task board service at http://{args.host}:{args.port} (docs at /docs)")

    # A single worker: the agent registry lives in process memory.
    uvicorn.run(
        "taskboard.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
