"""Companion — server launcher. Starts the API with uvicorn."""

import argparse
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = os.getenv("PORT", "13015")


def main():
    parser = argparse.ArgumentParser(description="Companion API server")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: ./data)")
    parser.add_argument("--host", default=HOST)
    parser.add_argument("--port", type=int, default=int(PORT))
    parser.add_argument("--reset", action="store_true",
                        help="Delete all stored messages, memories, gallery and preferences first")
    parser.add_argument("--reload", action="store_true", help="Restart on code changes")
    args = parser.parse_args()

    # Data dir flows through the environment so the app factory picks it up
    if args.data_dir:
        os.environ["COMPANION_DATA_DIR"] = str(args.data_dir.resolve())

    from companion.config import load_settings
    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.reset:
        from companion import storage
        storage.init_store(settings.data_dir).clear_all()
        print(f"Cleared data in {settings.data_dir}")

    import uvicorn

    print(f"Starting companion on http://localhost:{args.port} ...")
    uvicorn.run(
        "companion.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
