"""
Entry Point Script (Bootstrap)
==============================
Development runner for the demo simulation without installing the package.

Why is this file needed?
------------------------
It sits outside the 'src' package and puts 'src' on 'sys.path', so imports
like 'from vortexknots.model...' resolve from a plain checkout.

Usage:
    $ python run.py --shape trefoil --time 20
"""
import os
import sys

current_dir: str = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, os.path.join(current_dir, 'src'))

from vortexknots.main import main

if __name__ == "__main__":
    main()
