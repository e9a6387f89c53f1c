"""Entry point for ``python -m keypoints``."""

from keypoints.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
