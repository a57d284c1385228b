#!/usr/bin/env python
"""
Run the Streamlit quote builder.

Usage:
    python scripts/run_app.py [--config PATH] [--port PORT]
"""
import argparse
import os
import subprocess
import sys
from pathlib import Path


def main():
    parser = argparse.ArgumentParser(description="Launch the quote builder UI")
    parser.add_argument("--config", type=Path, help="pricing config JSON (defaults to the bundled one)")
    parser.add_argument("--port", type=int, default=8501)
    args = parser.parse_args()

    project_root = Path(__file__).parent.parent
    ui_path = project_root / 'src' / 'quote_pricing' / 'ui' / 'app_streamlit.py'

    env = os.environ.copy()
    if args.config:
        if not args.config.exists():
            print(f"ERROR: pricing config not found at {args.config}")
            sys.exit(1)
        env["QUOTE_PRICING_CONFIG"] = str(args.config.resolve())

    cmd = [sys.executable, '-m', 'streamlit', 'run', str(ui_path), '--server.port', str(args.port)]
    print(f"Starting quote builder: {' '.join(cmd)}")

    try:
        subprocess.run(cmd, cwd=str(project_root), env=env)
    except KeyboardInterrupt:
        print("\nQuote builder stopped.")


if __name__ == "__main__":
    main()
