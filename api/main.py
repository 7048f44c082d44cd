"""
GraftWatch - Vercel Serverless Entry Point
Serves the FastAPI application.
"""

import os
import sys

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from graftwatch.api.main import app

# Vercel serverless handler
handler = app
