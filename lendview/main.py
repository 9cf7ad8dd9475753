#!/usr/bin/env python3
"""
Lendview
Entry point: python -m lendview.main <command>
"""
from .cli import main

if __name__ == "__main__":
    main()
