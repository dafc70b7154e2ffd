"""MetaVibe — dev launcher. Starts the API server in watch mode."""

import argparse
import os
import signal
import subprocess
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = os.getenv("PORT", "13013")


def main():
    parser = argparse.ArgumentParser(description="MetaVibe dev launcher")
    parser.add_argument("--offline", action="store_true",
                        help="Use canned generation results instead of Gemini")
    parser.add_argument("--port", default=PORT, help=f"Server port (default: {PORT})")
    args = parser.parse_args()

    # Build env for the subprocess so the app picks up the provider choice
    env = os.environ.copy()
    if args.offline:
        env["METAVIBE_PROVIDER"] = "offline"

    print(f"Starting MetaVibe on http://localhost:{args.port} ...")
    proc = subprocess.Popen(
        ["uv", "run", "uvicorn", "metavibe.app:app", "--reload", "--host", HOST, "--port", str(args.port)],
        cwd=ROOT, env=env,
    )

    def shutdown(*_):
        print("\nShutting down...")
        proc.terminate()
        proc.wait()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    proc.wait()


if __name__ == "__main__":
    main()
