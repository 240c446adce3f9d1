"""
Example script for the complete stitching workflow

Registers two partial scans of one object and stitches them into a single
point cloud. Parameters come from config/default.yaml and the command line.
"""

import sys
from pathlib import Path

# Add the src to the path to import modules
sys.path.append(str(Path(__file__).parent.parent / "src"))

from surface_stitching.cli import main


if __name__ == "__main__":
    sys.exit(main())
