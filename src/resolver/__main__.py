"""Entry point for running the resolver as a module.

Usage:
    python -m resolver analyze --file feedback.txt
    python -m resolver --help
"""

from dotenv import load_dotenv

load_dotenv()  # Load .env before any other imports that need env vars

from resolver.cli import main  # noqa: E402

if __name__ == "__main__":
    main()
