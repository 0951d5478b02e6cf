"""Entry point for the native scheduler.

Usage: python -m cron_claude <task-file> [cli-path]
"""

import sys

from cron_claude.executor import main

if __name__ == "__main__":
    sys.exit(main())
