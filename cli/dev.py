"""Dev server launcher."""

import sys

from app.core.config import get_settings


def main() -> None:
    """Check credentials, then run the dev server."""
    settings = get_settings()
    missing = settings.missing_credentials()
    if missing:
        print(f"Missing required configuration: {', '.join(missing)}", file=sys.stderr)
        sys.exit(1)

    from app.main import run

    run()


if __name__ == "__main__":
    main()
