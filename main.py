#!/usr/bin/env python3
"""
WebPrint - Main Entry Point
Web print queue server and Windows/CUPS print agent
"""

import sys
from pathlib import Path

# Add src directory to Python path
current_dir = Path(__file__).parent.absolute()
src_dir = current_dir / "src"
if str(src_dir) not in sys.path:
    sys.path.insert(0, str(src_dir))

from webprint.cli import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
