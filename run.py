#!/usr/bin/env python3
"""
S3 Permission Matrix Tester

Run this script to check that an S3-compatible service allows and denies
each storage operation exactly as the configured credential permissions say.

Usage:
    python run.py                     # All suites, config.json
    python run.py upload delete       # Specific suites
    python run.py -c custom.json      # Use custom config
    python run.py -p READ,READ_WRITE  # Test specific profiles
    python run.py --pattern '^LIST'   # Profiles matching a regex
    python run.py --parallel 4        # Run four suites at a time
    python run.py -q                  # Quiet mode (summary only)
    python run.py -j results.json     # Output JSON results
    python run.py --html              # Write an HTML report to reports/
    python run.py --list              # Show suites and profiles
"""

import sys
from s3_permission_matrix.cli import main

if __name__ == "__main__":
    sys.exit(main())
