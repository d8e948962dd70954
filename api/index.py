import os
import sys

# Serverless functions run from api/, so put the project root on the import path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from homefinder.main import app  # noqa: E402

# Entry point picked up by the Vercel Python runtime
handler = app
