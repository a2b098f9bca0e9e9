import os
import sys

# Make the flat-layout package importable without installing it.
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
