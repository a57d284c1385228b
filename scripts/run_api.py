#!/usr/bin/env python
"""
Run the quote pricing API with uvicorn.

Usage:
    python scripts/run_api.py
"""
import subprocess
import sys
import os
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from quote_pricing.config.settings import get_settings


def main():
    project_root = Path(__file__).parent.parent
    os.chdir(project_root)
    settings = get_settings()

    # Ensure src is in python path
    env = os.environ.copy()
    src_path = str(project_root / "src")
    if "PYTHONPATH" in env:
        env["PYTHONPATH"] = f"{src_path}{os.pathsep}{env['PYTHONPATH']}"
    else:
        env["PYTHONPATH"] = src_path

    print("Starting Quote Pricing API (FastAPI)...")
    print(f"  Pricing config: {settings.pricing_config}")
    try:
        subprocess.run([
            sys.executable, "-m", "uvicorn",
            "quote_pricing.api.main:app",
            "--host", settings.api_host,
            "--port", str(settings.api_port),
            "--reload"
        ], env=env)
    except KeyboardInterrupt:
        print("\nAPI stopped.")


if __name__ == "__main__":
    main()
