"""
Test package for dotstrap.

This package contains unit tests for the settings, download, sync, package
manager, font and installer workflows and for the command-line interface.
"""

import sys
from pathlib import Path

# Add src directory to path so tests can import dotstrap modules
test_dir = Path(__file__).parent
src_dir = test_dir.parent / 'src'
if str(src_dir) not in sys.path:
    sys.path.insert(0, str(src_dir))
