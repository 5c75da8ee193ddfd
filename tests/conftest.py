import sys
import os

# backend/ modules import each other as top-level siblings
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "backend"))

# scripts/ holds the requirements validator CLI
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "scripts"))
