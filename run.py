"""
Dashboard + bot entrypoint.

Operator notes:
- This file should remain extremely small and boring.
- Configuration is validated inside bumpdash.main.run(); missing values stop the process here.
- If this file crashes, the error should be immediately obvious to the operator.
"""

import logging
import sys

from bumpdash.errors import ConfigurationError
from bumpdash.main import run


def main() -> None:
    try:
        run()
    except KeyboardInterrupt:
        pass
    except ConfigurationError as exc:
        print(f"\n❌ {exc}\n")
        sys.exit(1)
    except Exception:
        logging.basicConfig(level=logging.ERROR)
        logging.exception("bumpdash failed to start.")
        print("\n❌ bumpdash stopped.")
        print("   See error above. Most common causes:")
        print("   - DISCORD_BOT_TOKEN invalid (bot login failed)")
        print("   - Port already in use (PORT)")
        print("   - Missing dependencies / broken venv\n")
        sys.exit(1)


if __name__ == "__main__":
    main()
