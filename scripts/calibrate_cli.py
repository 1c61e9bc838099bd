import sys
from pathlib import Path

# Ensure repo root is on sys.path when running from anywhere
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from gas_calibration.cli import main  # noqa: E402


if __name__ == "__main__":
    sys.exit(main())
