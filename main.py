#!/usr/bin/env python3
"""
termxfer

A two-pane terminal client for moving files between this machine and
SFTP, SCP, FTP/FTPS or S3 storage.
"""

import sys

from termxfer.cli import main


if __name__ == "__main__":
    sys.exit(main())
